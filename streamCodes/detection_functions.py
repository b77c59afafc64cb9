import gnuastro_functions as gnu
import report_functions as report
import stageOrganizer as stage_org
import ellipse_growth as growth
import stream_config as cfg
from tqdm import tqdm
import logging
import os

logger = logging.getLogger(__name__)


def tmp(tmpdir, filename):
    return os.path.join(tmpdir, filename)


def build_kernels(tmpdir):
    kernel, _ = gnu.run_astmkprof_kernel(tmp(tmpdir, 'kernel.fits'), cfg.nc_kernel_fwhm, cfg.nc_kernel_trunc)
    kernel_seg, _ = gnu.run_astmkprof_kernel(tmp(tmpdir, 'kernel-seg.fits'), cfg.seg_kernel_fwhm,
                                             cfg.nc_kernel_trunc)
    return kernel, kernel_seg


def detect_and_segment(images, tmpdir):
    """NoiseChisel and Segment on the image of every band. Existing outputs are kept."""
    kernel, kernel_seg = build_kernels(tmpdir)
    outputs = {}
    for band in tqdm(images, desc='Progress detecting and segmenting bands'):
        nc, _ = gnu.run_astnoisechisel(images[band], tmp(tmpdir, f'nc-{band}.fits'), kernel, hdu=cfg.image_hdu,
                                       tilesize=cfg.nc_tilesize, holesize=cfg.nc_holesize,
                                       qthresh=cfg.qthreshold)
        seg, _ = gnu.run_astsegment(nc, tmp(tmpdir, f'seg-{band}.fits'), kernel_seg, gthresh=cfg.gthreshold,
                                    objbordersn=cfg.segbordersn)
        outputs[band] = (nc, seg)
    print('Detection and segmentation completed')
    return outputs


def host_label(tmpdir, filter_band):
    """Label of the largest detection of the masking image, assumed to be the host."""
    nc_lab, _ = gnu.run_astarithmetic([tmp(tmpdir, f'nc-{filter_band}.fits'), '-hDETECTIONS', 2,
                                       'connected-components'], tmp(tmpdir, 'nc-lab.fits'))
    cat, _ = gnu.run_astmkcatalog(nc_lab, tmp(tmpdir, 'cat.fits'), columns=gnu.AREA_COLUMNS,
                                  skip_existing=True)
    label = gnu.largest_label(cat)
    logger.info(f'largest detection label: {label}')
    return label


def build_masks(tmpdir, filter_band, label, bands=None):
    """masked-{b}: only the host detection and its largest clump.

    clumps-masked-{b}: every band masked with the clumps of the masking band.
    """
    allclumps, _ = gnu.run_astarithmetic([tmp(tmpdir, f'seg-{filter_band}.fits'), '-hCLUMPS', 0, 'gt', 2, 'dilate',
                                          2, 'fill-holes', 2, 'connected-components'],
                                         tmp(tmpdir, 'allclumps.fits'))
    allclumps_cat, _ = gnu.run_astmkcatalog(allclumps, tmp(tmpdir, 'allclumps-cat.fits'),
                                            columns=gnu.AREA_COLUMNS, skip_existing=True)
    largest_clump = gnu.largest_label(allclumps_cat)

    if bands is None:
        bands = cfg.bands
    for band in bands:
        nc = tmp(tmpdir, f'nc-{band}.fits')
        gnu.run_astarithmetic([nc, '-hINPUT-NO-SKY', 'set-conv',
                               tmp(tmpdir, 'nc-lab.fits'), '-h1', label, 'ne', 2, 'erode', 'set-det',
                               allclumps, 'set-i', 'i', 'i', largest_clump, 'eq', 0, 'where', 'set-clumps',
                               'conv', 'det', 'clumps', 'or', 'nan', 'where'],
                              tmp(tmpdir, f'masked-{band}.fits'))
        gnu.run_astarithmetic([nc, '-hINPUT-NO-SKY', tmp(tmpdir, f'seg-{filter_band}.fits'), '-hCLUMPS', 0, 'gt', 2,
                               'dilate', 'nan', 'where'],
                              tmp(tmpdir, f'clumps-masked-{band}.fits'))
    print('Masking completed')
    return largest_clump


def automatic_host_ellipse(tmpdir, filter_band):
    """Ellipse of the largest region with SNR above the galaxy threshold."""
    nc = tmp(tmpdir, f'nc-{filter_band}.fits')
    snr, _ = gnu.run_astarithmetic([nc, nc, '/', '-hINPUT-NO-SKY', '-hSKY_STD'], tmp(tmpdir, 'SNR.fits'))
    snrgt, _ = gnu.run_astarithmetic([snr, cfg.snr_galaxy_threshold, 'gt', 2, 'connected-components'],
                                     tmp(tmpdir, 'SNRgt.fits'))
    snrgt_cat, _ = gnu.run_astmkcatalog(snrgt, tmp(tmpdir, 'SNRgt-cat.fits'), columns=gnu.AREA_COLUMNS,
                                        skip_existing=True)
    galaxy_label = gnu.largest_label(snrgt_cat)
    galaxy_mask, _ = gnu.run_astarithmetic([snrgt, '-h1', galaxy_label, 'eq', 2, 'fill-holes', 2, 'dilate'],
                                           tmp(tmpdir, 'galaxy-mask.fits'))
    mask_cat, _ = gnu.run_astmkcatalog(galaxy_mask, tmp(tmpdir, 'galaxy-mask-cat.fits'),
                                       columns=gnu.GEOMETRY_COLUMNS, skip_existing=True)

    table = gnu.read_catalog(mask_cat)
    geometry = {'x': float(table['GEO_X'][0]),
                'y': float(table['GEO_Y'][0]),
                'position_angle': float(table['GEO_POSITION_ANGLE'][0]),
                'axis_ratio': float(table['GEO_AXIS_RATIO'][0]),
                'semi_major': float(table['GEO_SEMI_MAJOR'][0]),
                'semi_minor': float(table['GEO_SEMI_MINOR'][0])}
    logger.info(f'automatic host ellipse: {geometry}')
    return geometry


def ellipse_line(geometry, semi_major):
    return gnu.profile_line(1, geometry['x'], geometry['y'], semi_major,
                            position_angle=geometry['position_angle'], axis_ratio=geometry['axis_ratio'])


def build_ellipse(tmpdir, filter_band, geometry, semi_major, output_name='ellipse.fits'):
    ellipse, _ = gnu.run_astmkprof([ellipse_line(geometry, semi_major)], tmp(tmpdir, output_name),
                                   background=tmp(tmpdir, f'nc-{filter_band}.fits'), backhdu='INPUT-NO-SKY')
    return ellipse


def stream_footprint(tmpdir, filter_band, ellipse):
    """Binary image of the largest region left in masked-{f} once the ellipse is masked."""
    stream, _ = gnu.run_astarithmetic([tmp(tmpdir, f'masked-{filter_band}.fits'), '-h1', 'set-mask',
                                       ellipse, '-h1', 'set-ellipse', 'mask', 'ellipse', 'nan', 'where'],
                                      tmp(tmpdir, 'stream.fits'), skip_existing=False)
    labeled, _ = gnu.run_astarithmetic([stream, '-h1', 'isblank', 'not', 1, 'connected-components'],
                                       tmp(tmpdir, 'labeled-stream.fits'), skip_existing=False)
    labeled_cat, _ = gnu.run_astmkcatalog(labeled, tmp(tmpdir, 'cat-labeled-stream.fits'),
                                          columns=gnu.AREA_COLUMNS)
    stream_label = gnu.largest_label(labeled_cat)
    logger.debug(f'stream label: {stream_label}')
    nostream_label, _ = gnu.run_astarithmetic([labeled, '-h1', stream_label, 'ne'],
                                              tmp(tmpdir, 'nostream-label.fits'), skip_existing=False)
    stream_final, _ = gnu.run_astarithmetic([stream, '-h1', 'set-stream', nostream_label, '-h1', 'set-nolabel',
                                             'stream', 'nolabel', 'nan', 'where'],
                                            tmp(tmpdir, 'stream-final.fits'), skip_existing=False)
    footprint, _ = gnu.run_astarithmetic([stream_final, 'isblank', 'not'], tmp(tmpdir, 'stream-footprint.fits'),
                                         skip_existing=False)
    return footprint


def measure_footprint(tmpdir, filter_band, band, values, output_name, zeropoint):
    catalog, _ = gnu.run_astmkcatalog(tmp(tmpdir, 'stream-footprint.fits'), tmp(tmpdir, output_name),
                                      values=values, instd=tmp(tmpdir, f'nc-{band}.fits'),
                                      upmask=tmp(tmpdir, f'nc-{filter_band}.fits'), upnum=cfg.upnum,
                                      zeropoint=zeropoint)
    return catalog


def growth_measure(tmpdir, filter_band, geometry, zeropoint, output, bands=None):
    """Build the callable measuring the stream SB for one ellipse size."""
    if bands is None:
        bands = cfg.growth_bands

    def measure(factor, semi_major):
        ellipse = build_ellipse(tmpdir, filter_band, geometry, semi_major)
        stream_footprint(tmpdir, filter_band, ellipse)
        report.write_title(output, 'ITERATION FACTOR')
        report.write_lines(output, [f'{factor:g}'])
        sb = {}
        for band in bands:
            catalog = measure_footprint(tmpdir, filter_band, band, tmp(tmpdir, f'clumps-masked-{band}.fits'),
                                        f'cat-regions-{band}.fits', zeropoint)
            report.write_table(output, catalog)
            sb[band] = gnu.catalog_value(catalog, 'SURFACE_BRIGHTNESS')
        return sb

    return measure


def grow_host_ellipse(tmpdir, filter_band, geometry, zeropoint, output, parameters=None, pipeline='stream'):
    if parameters is None:
        parameters = cfg.ellipse_growth
    measure = growth_measure(tmpdir, filter_band, geometry, zeropoint, output)
    result = growth.grow_ellipse(measure, geometry['semi_major'], bands=cfg.growth_bands, **parameters)
    final = dict(geometry)
    final['factor'] = result['factor']
    final['grown_semi_major'] = result['semi_major']
    stage_org.save_ellipse_geometry(final, tmpdir, pipeline)
    return result, final


def snr_cutoff_photometry(tmpdir, filter_band, zeropoint, output, cutoff=None):
    """Mask the pixels around the stream with SNR below the cutoff and measure the footprint in every band."""
    if cutoff is None:
        cutoff = cfg.snr_cutoff
    nostream, _ = gnu.run_astarithmetic([tmp(tmpdir, 'labeled-stream.fits'), '-h1', 0, 'eq'],
                                        tmp(tmpdir, 'nostream.fits'), skip_existing=False)
    snr_stream, _ = gnu.run_astarithmetic([tmp(tmpdir, 'SNR.fits'), '-h1', 'set-streamSNR', nostream, '-h1',
                                           'set-nostream', 'streamSNR', 'nostream', 'nan', 'where'],
                                          tmp(tmpdir, 'SNR-stream.fits'), skip_existing=False)
    snr_lt, _ = gnu.run_astarithmetic([snr_stream, cutoff, 'lt', 2, 'connected-components'],
                                      tmp(tmpdir, f'SNR-stream-lt-{cutoff}.fits'), skip_existing=False)

    report.write_title(output, 'FINAL RESULTS WITH SNR-CUTOFF')
    report.write_lines(output, [f'{cutoff}'])
    catalogs = {}
    for band in cfg.bands:
        values, _ = gnu.run_astarithmetic([tmp(tmpdir, f'nc-{band}.fits'), '-hINPUT-NO-SKY', 'set-input',
                                           snr_lt, '-h1', 'set-cutoff', 'input', 'cutoff', 'cutoff', 'or',
                                           'nan', 'where'],
                                          tmp(tmpdir, f'stream-SNR-gt-{cutoff}-{band}.fits'), skip_existing=False)
        catalogs[band] = measure_footprint(tmpdir, filter_band, band, values, f'cat-autostream-{band}.fits',
                                           zeropoint)
        report.write_table(output, catalogs[band])
    return catalogs


def automatic_stream_photometry(tmpdir, filter_band, zeropoint, output):
    """Mask the host with a growing ellipse and measure the diffuse stream left around it."""
    print('')
    print('Running the function: automatic_stream_photometry')
    report.write_title(output, 'PHOTOMETRY MEASURED ON DIFFUSE REGION DETECTED BY NOISECHISEL')
    geometry = automatic_host_ellipse(tmpdir, filter_band)
    result, final = grow_host_ellipse(tmpdir, filter_band, geometry, zeropoint, output)
    catalogs = snr_cutoff_photometry(tmpdir, filter_band, zeropoint, output)
    mask_host_with_ellipse(tmpdir)
    return result, final, catalogs


def mask_host_with_ellipse(tmpdir, bands=None):
    """clumps-host-masked-{b}: clumps-masked-{b} with the final host ellipse also masked."""
    outputs = {}
    if bands is None:
        bands = cfg.bands
    for band in bands:
        outputs[band], _ = gnu.run_astarithmetic([tmp(tmpdir, f'clumps-masked-{band}.fits'), '-h1', 'set-mask',
                                                  tmp(tmpdir, 'ellipse.fits'), '-h1', 'set-ellipse',
                                                  'mask', 'ellipse', 'nan', 'where'],
                                                 tmp(tmpdir, f'clumps-host-masked-{band}.fits'),
                                                 skip_existing=False)
    return outputs
