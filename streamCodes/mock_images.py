"""
Mock images built from simulated surface brightness maps.

``run_noise`` turns a map into counts and adds Gaussian noise matching a range
of surface brightness limits, ``run_sky`` adds a real empty sky image instead.
With option 2 the generated images get a dummy WCS and their SB limit and
upper limit SB are measured, to check the result against the requested limit.
"""
import gnuastro_functions as gnu
import photometry_functions as phot_f
import report_functions as report
import stageOrganizer as stage_org
import stream_config as cfg
from tqdm import tqdm
import logging
import os

logger = logging.getLogger(__name__)


def sblimit_range(sblimit1, sblimit2):
    """Integer SB limits from sblimit1 up to sblimit2, both included."""
    return list(range(int(sblimit1), int(sblimit2) + 1))


def pixel_area(pixel_width=None):
    if pixel_width is None:
        pixel_width = cfg.pixel_width_arcsec
    return pixel_width ** 2


def noise_sigma(sblimit, zeropoint, pixarea):
    """Noise sigma in counts giving an n-sigma SB limit of sblimit in the reference area."""
    return gnu.run_astarithmetic_value([sblimit, zeropoint, cfg.sblimit_area_arcsec2, pixarea, 'x', 'sqrt',
                                        'sb-to-counts', cfg.sblimit_nsigma, '/'])


def noise_image(input_image, output_image, zeropoint, pixarea, sigma):
    output_image, _ = gnu.run_astarithmetic([input_image, '--hdu=0', zeropoint, pixarea, 'sb-to-counts', sigma,
                                             'mknoise-sigma'], output_image, extra_options=['--envseed'],
                                            skip_existing=False)
    return output_image


def sky_image(input_image, emptysky, output_image, zeropoint, pixarea):
    output_image, _ = gnu.run_astarithmetic([input_image, '--hdu=0', zeropoint, pixarea, 'sb-to-counts', emptysky,
                                             '+'], output_image, skip_existing=False)
    return output_image


def jpeg(image, jpgdir, basename, quality=None):
    params = list(cfg.convert_params)
    if quality is not None:
        params.append(f'--quality={quality}')
    output, _ = gnu.run_astconvertt(image, os.path.join(jpgdir, f'{basename}.jpg'), params=params)
    return output


def wcs_keywords(naxis1, naxis2, pixel_width=None):
    if pixel_width is None:
        pixel_width = cfg.pixel_width_arcsec
    cdelt = pixel_width / 3600
    return {'CDELT1': cdelt, 'CDELT2': cdelt,
            'CRPIX1': int(naxis1 / 2) + 1, 'CRPIX2': int(naxis2 / 2) + 1,
            'CRVAL1': cfg.mock_center_ra, 'CRVAL2': cfg.mock_center_dec}


def attach_wcs(image, workdir):
    """Copy of the image with a TAN WCS centred on the dummy sky position."""
    naxis1, naxis2 = stage_org.image_shape(image, hdu=1)
    keywords = wcs_keywords(naxis1, naxis2)
    structure, _ = gnu.run_wcs_structure(os.path.join(workdir, 'wcs-structure.fits'))
    gnu.run_astfits_update(structure, keywords)
    with_wcs, _ = gnu.run_astarithmetic([image, '-h1'], f'{image}-w-wcs.fits',
                                        extra_options=[f'--wcsfile={structure}'], skip_existing=False)
    return with_wcs, keywords


def write_image_characteristics(output, zeropoint):
    report.write_title(output, 'IMAGE CHARACTERISTICS')
    report.write_lines(output, [f'PIXEL SCALE (arcsec/pixel): {cfg.pixel_width_arcsec}',
                                f'PIXEL SCALE (deg/pixel): {cfg.pixel_width_arcsec / 3600:.6e}',
                                f'ZERO POINT = {zeropoint}'])
    report.write_detection_parameters(output)


def measure_sb_limit(image, workdir, zeropoint, output):
    """NoiseChisel on the image with WCS, then the SB limit in a circle at the reference pixel."""
    with_wcs, keywords = attach_wcs(image, workdir)
    kernel, _ = gnu.run_astmkprof_kernel(os.path.join(workdir, 'kernel.fits'), cfg.nc_kernel_fwhm,
                                         cfg.nc_kernel_trunc)
    nc, _ = gnu.run_astnoisechisel(with_wcs, f'{image}-nc.fits', kernel, hdu=1, tilesize=cfg.nc_tilesize,
                                   holesize=cfg.nc_holesize, qthresh=cfg.qthreshold)

    centre = (keywords['CRPIX1'], keywords['CRPIX2'])
    rpix = phot_f.ulsb_radius_pix(keywords['CDELT1'])
    basename = os.path.basename(image)
    aperture, _ = gnu.run_astmkprof([gnu.profile_line(1, centre[0], centre[1], rpix)],
                                    os.path.join(workdir, f'{basename}-aperture-ULSB.fits'), background=nc,
                                    mode='img', envseed=True)
    catalog, _ = gnu.run_astmkcatalog(aperture, os.path.join(workdir, f'{basename}-cat-region-ULSB.fits'),
                                      columns=gnu.PHOTOMETRY_COLUMNS + ['--upperlimit-sb'],
                                      values=nc, values_hdu='INPUT-NO-SKY', upmask=nc, upnum=cfg.upnum,
                                      zeropoint=zeropoint)

    report.write_lines(output, [f'IMAGE WITH WCS DATA: {with_wcs}',
                                'center_ra center_dec cdelt crpix1 crpix2 rpix',
                                ' '.join(report.fmt(v) for v in [keywords['CRVAL1'], keywords['CRVAL2'],
                                                                  keywords['CDELT1'], keywords['CRPIX1'],
                                                                  keywords['CRPIX2'], rpix])])
    report.write_table(output, catalog)
    sblim, ulsb = report.write_sb_limit_block(output, {basename: catalog})
    logger.info(f'{basename}: SB limit {sblim[basename]}, upper limit SB {ulsb[basename]}')
    return {'catalog': catalog, 'sblim': sblim[basename], 'ulsb': ulsb[basename]}


def noise_images_of(image, inpdir, imagedir, jpgdir, sblimits, zeropoint, pixarea, output=None):
    generated = []
    for sblimit in sblimits:
        sigma = noise_sigma(sblimit, zeropoint, pixarea)
        logger.info(f'{image} SB limit {sblimit}: sigma {sigma} counts')
        if output is not None:
            report.write_lines(output, [f'sigma_counts ({sblimit}): {sigma}'])
        basename = f'{image}-{zeropoint}-{sblimit}'
        generated.append(noise_image(os.path.join(inpdir, image), os.path.join(imagedir, f'{basename}.fits'),
                                     zeropoint, pixarea, sigma))
        jpeg(generated[-1], jpgdir, basename, quality=100)
    return generated


def run_noise(option, image, sblimit1, sblimit2, inpdir, outdir, zeropoint=None):
    """
    Noise images for every SB limit between sblimit1 and sblimit2.

    option 0: every subhalo of the configured array, images only
    option 1: a single image, images only
    option 2: a single image, and the SB limit of every generated image is measured
    """
    if option not in (0, 1, 2):
        raise stage_org.PipelineInputError(f'Option {option} not valid, it should be 0, 1 or 2')
    zeropoint = zeropoint if zeropoint is not None else cfg.zeropoint
    sblimits = sblimit_range(sblimit1, sblimit2)
    pixarea = pixel_area()
    os.makedirs(outdir, exist_ok=True)

    if option == 0:
        jpgdir = os.path.join(outdir, 'JPEG')
        os.makedirs(jpgdir, exist_ok=True)
        generated = {}
        for subhalo in tqdm(cfg.subhalo_array, desc='Progress over the subhalo array'):
            halo_image = cfg.subhalo_image.format(subhalo)
            imagedir = os.path.join(outdir, halo_image)
            os.makedirs(imagedir, exist_ok=True)
            generated[halo_image] = noise_images_of(halo_image, inpdir, imagedir, jpgdir, sblimits, zeropoint,
                                                    pixarea)
        return generated

    jpgdir = os.path.join(outdir, 'jpg')
    os.makedirs(jpgdir, exist_ok=True)
    output = None
    if option == 2:
        output = report.start_report(os.path.join(outdir, f'{image}-{zeropoint}-{sblimits[0]}-{sblimits[-1]}'
                                                          f'-output.txt'))
        report.write_lines(output, [f'INPUT IMAGE: {image}', f'ZERO POINT = {zeropoint}',
                                    f'SB LIMITS: {sblimits[0]} to {sblimits[-1]}'])
    generated = noise_images_of(image, inpdir, outdir, jpgdir, sblimits, zeropoint, pixarea, output=output)
    if option == 1:
        return {image: generated}

    write_image_characteristics(output, zeropoint)
    measurements = {}
    for noisy in generated:
        measurements[noisy] = measure_sb_limit(noisy, outdir, zeropoint, output)
    print(f'The measurements have been saved into {output}')
    return {image: generated, 'measurements': measurements}


def run_sky(option, image, emptysky, inpdir, outdir, zeropoint=None):
    """
    Mock image on a real sky background.

    option 1: image only
    option 2: the SB limit of the image is measured as well
    """
    if option not in (1, 2):
        raise stage_org.PipelineInputError(f'Option {option} not valid, it should be 1 or 2')
    zeropoint = zeropoint if zeropoint is not None else cfg.zeropoint
    stage_org.require_file(emptysky, 'empty sky image')
    jpgdir = os.path.join(outdir, 'jpg')
    os.makedirs(jpgdir, exist_ok=True)

    with_sky = sky_image(os.path.join(inpdir, image), emptysky, os.path.join(outdir, f'{image}-w-sky.fits'),
                         zeropoint, pixel_area())
    jpeg(with_sky, jpgdir, f'{image}-w-sky')
    if option == 1:
        return {image: with_sky}

    output = report.start_report(os.path.join(outdir, f'{image}-{zeropoint}-sky-output.txt'))
    report.write_lines(output, [f'INPUT IMAGE: {image}', f'EMPTY SKY IMAGE: {os.path.basename(emptysky)}',
                                f'ZERO POINT = {zeropoint}'])
    write_image_characteristics(output, zeropoint)
    measurement = measure_sb_limit(with_sky, outdir, zeropoint, output)
    print(f'The measurement has been saved into {output}')
    return {image: with_sky, 'measurements': {with_sky: measurement}}
