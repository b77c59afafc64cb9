"""
Empty sky image: the host galaxy is replaced by a patch of sky taken from a
displaced ellipse of the same shape, so the sky statistics of the field can be
measured without the host.
"""
import photometry_functions as phot_f
import detection_functions as det_f
import gnuastro_functions as gnu
import report_functions as report
import stageOrganizer as stage_org
import stream_config as cfg
from tqdm import tqdm
import logging
import os

logger = logging.getLogger(__name__)


def translation_offsets(host_centre, displaced_centre):
    """Integer shift moving the displaced ellipse centre onto the host centre."""
    dx = int(round(host_centre[0] - displaced_centre[0]))
    dy = int(round(host_centre[1] - displaced_centre[1]))
    return dx, dy


def crop_section(dx, dy, naxis1, naxis2):
    """Section of the translated image that overlaps the original pixel grid."""
    x0 = max(-dx, 0) + 2
    y0 = max(-dy, 0) + 2
    return f'{x0}:{x0 + naxis1 - 1},{y0}:{y0 + naxis2 - 1}'


def host_ellipse(tmpdir, filter_band, zeropoint, output):
    """Final host ellipse, read from emptysky-ellipse-geometry.csv when a previous run saved it."""
    geometry = stage_org.load_ellipse_geometry(tmpdir, 'emptysky')
    if geometry is not None and 'grown_semi_major' in geometry:
        logger.info(f"host ellipse read from {stage_org.ellipse_geometry_filename(tmpdir, 'emptysky')}")
        return geometry
    geometry = det_f.automatic_host_ellipse(tmpdir, filter_band)
    _, final = det_f.grow_host_ellipse(tmpdir, filter_band, geometry, zeropoint, output,
                                       parameters=cfg.empty_sky_growth, pipeline='emptysky')
    return final


def fill_host_with_sky(tmpdir, band, ellipse_on_host, dx, dy, section):
    nc = os.path.join(tmpdir, f'nc-{band}.fits')
    translated, _ = gnu.run_astwarp_translate(nc, dx, dy, os.path.join(tmpdir, f'translated-{band}.fits'))
    cropped, _ = gnu.run_astcrop_section(translated, section, os.path.join(tmpdir, f'translated-cropped-{band}.fits'))
    emptysky, _ = gnu.run_astarithmetic([nc, '-hINPUT-NO-SKY', 'set-image', ellipse_on_host, '-h1', 'set-ellipse',
                                         cropped, '-h1', 'set-displaced', 'image', 'ellipse', 'displaced', 'where'],
                                        os.path.join(tmpdir, f'image-emptysky-{band}.fits'), skip_existing=False)
    return emptysky


def generate_empty_sky(run):
    """Step 2 of the empty sky pipeline."""
    tmpdir, name, params = run['tmpdir'], run['name'], run['params']
    filter_band = params['filter']
    output = report.start_report(os.path.join(tmpdir, f'{name}-emptysky-output.txt'))
    for band in cfg.bands:
        stage_org.require_file(os.path.join(tmpdir, f'nc-{band}.fits'), 'NoiseChisel output of step 1')

    nc_r = os.path.join(tmpdir, 'nc-r.fits')
    info = phot_f.image_information(run['images'][filter_band], os.path.join(tmpdir, f'nc-{filter_band}.fits'))
    report.write_stream_header(output, name, params, run['images'], info, run['zeropoint'],
                               title='GENERATION OF EMPTY SKY IMAGE FOR HOST')

    label = det_f.host_label(tmpdir, filter_band)
    det_f.build_masks(tmpdir, filter_band, label)

    report.write_title(output, 'AUTOMATIC MASKING OF HOST WITH AN ELLIPSE')
    geometry = host_ellipse(tmpdir, filter_band, run['zeropoint'], output)
    semi_major = geometry['grown_semi_major']
    ellipse = det_f.build_ellipse(tmpdir, filter_band, geometry, semi_major)
    for band in cfg.bands:
        gnu.run_astarithmetic([os.path.join(tmpdir, f'nc-{band}.fits'), '-hINPUT-NO-SKY', 'set-image', ellipse,
                               '-h1', 'set-ellipse', 'image', 'ellipse', 'nan', 'where'],
                              os.path.join(tmpdir, f'image-host-masked-{band}.fits'), skip_existing=False)
    ellipse_on_host, _ = gnu.run_astmkprof([det_f.ellipse_line(geometry, semi_major)],
                                           os.path.join(tmpdir, 'ellipse-on-host.fits'), background=nc_r,
                                           backhdu='INPUT-NO-SKY')

    displaced = stage_org.read_ellipse_center(stage_org.region_filename(run['apdir'], name, 'displaced'))
    dx, dy = translation_offsets((geometry['x'], geometry['y']), displaced)
    naxis1, naxis2 = stage_org.image_shape(nc_r, hdu='INPUT-NO-SKY')
    section = crop_section(dx, dy, naxis1, naxis2)
    logger.info(f'translation {dx},{dy} and crop section {section}')

    images = {}
    for band in tqdm(cfg.bands, desc='Progress filling the host with sky'):
        images[band] = fill_host_with_sky(tmpdir, band, ellipse_on_host, dx, dy, section)

    centre = phot_f.masked_image_centre(tmpdir, filter_band)
    phot_f.upper_limit_sb(tmpdir, filter_band, run['zeropoint'], centre, info['pixscale'], output=output)
    print(f'The empty sky images have been saved into {tmpdir}')
    return images
