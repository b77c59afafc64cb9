from astropy.visualization import ZScaleInterval
from photutils.aperture import CircularAperture
from fpdf import FPDF, XPos, YPos
import gnuastro_functions as gnu
import stageOrganizer as stage_org
import stream_config as cfg
import matplotlib.pyplot as plt
from astropy.io import fits
import pandas as pd
import numpy as np
import logging
import os

logger = logging.getLogger(__name__)


def step2_previews(tmpdir, jpgdir, filter_band, label):
    """JPEG previews of the masking image and the host contour drawn on the input and masked images."""
    nc = os.path.join(tmpdir, f'nc-{filter_band}.fits')
    detections, _ = gnu.run_astfits_copy(nc, 'DETECTIONS', os.path.join(tmpdir, f'nc-{filter_band}-detections.fits'))
    input_no_sky, _ = gnu.run_astfits_copy(nc, 'INPUT-NO-SKY',
                                           os.path.join(tmpdir, f'nc-{filter_band}-input-no-sky.fits'))
    gnu.run_astconvertt(input_no_sky, os.path.join(jpgdir, f'nc-{filter_band}-input-no-sky.jpg'),
                        params=cfg.convert_params)
    gnu.run_astconvertt(detections, os.path.join(jpgdir, f'nc-{filter_band}-detections.jpg'))

    contour, _ = gnu.run_astarithmetic([os.path.join(tmpdir, 'nc-lab.fits'), 'set-i', 'i', label, 'eq', 2, 'dilate',
                                        2, 'fill-holes', 'set-j', 'j', 2, 'erode', 2, 'erode', 2, 'erode', 'set-k',
                                        'j', 'k', '-'], os.path.join(tmpdir, 'contour.fits'), skip_existing=False)
    gnu.run_astarithmetic([nc, '-g1', contour, cfg.contour_value, 'where'],
                          os.path.join(tmpdir, 'input-w-contour.fits'), skip_existing=False)
    gnu.run_astarithmetic([os.path.join(tmpdir, f'masked-{filter_band}.fits'), contour, cfg.contour_value, 'where',
                           '-g1'], os.path.join(tmpdir, 'masked-w-contour.fits'), skip_existing=False)


def image_with_apertures(fits_path, coordinates, save_path, hdu=1, title=None):
    with fits.open(fits_path) as hdulist:
        image = hdulist[hdu].data

    z = ZScaleInterval()
    z1, z2 = z.get_limits(image[np.isfinite(image)])
    fig, ax = plt.subplots(1, 1, figsize=(10, 10))
    ax.imshow(image, cmap='gray', origin='lower', interpolation='none', vmin=z1, vmax=z2)

    # ds9 regions are 1-based
    for _, row in coordinates.iterrows():
        aperture = CircularAperture((row['X'] - 1, row['Y'] - 1), r=row['R'])
        aperture.plot(ax=ax, color='blue', lw=1.5, alpha=0.5)
    if title is not None:
        ax.set_title(title)
    fig.savefig(save_path)
    plt.close(fig)
    return save_path


def pdf_figures(tmpdir, figdir, name, filter_band):
    basename = f'{name}-{filter_band}'
    masked_pdf = os.path.join(figdir, f'{basename}-masked.pdf')
    if os.path.exists(masked_pdf):
        print(f'{masked_pdf} already exists, PDF figures not regenerated')
        return []

    sources = [(f'nc-{filter_band}-input-no-sky.fits', f'{basename}.pdf', cfg.convert_params),
               ('input-w-contour.fits', f'{basename}-wc.pdf', cfg.convert_params),
               (f'nc-{filter_band}-detections.fits', f'{basename}-detect.pdf', ['--invert']),
               (f'masked-{filter_band}.fits', f'{basename}-masked.pdf', cfg.convert_params),
               ('masked-w-contour.fits', f'{basename}-masked-wc.pdf', cfg.convert_params)]
    figures = []
    for source, pdf, params in sources:
        fits_file = stage_org.require_file(os.path.join(tmpdir, source), 'step 2 image')
        figure, _ = gnu.run_astconvertt(fits_file, os.path.join(figdir, pdf), params=params)
        figures.append(figure)
    return figures


def sb_gradient_plot(photometry_csv, save_path):
    """Surface brightness in r against the distance of every aperture to the image centre."""
    photometry = pd.read_csv(photometry_csv)
    fig, ax = plt.subplots(1, 1, figsize=(8, 6))
    ax.errorbar(photometry['distas'], photometry['SURFACE_BRIGHTNESS'], yerr=photometry['SB_ERROR'],
                fmt='o', color='red', markersize=4, capsize=2)
    ax.invert_yaxis()
    ax.set_xlabel('Distance to image centre (arcsec)')
    ax.set_ylabel(r'SB$_r$ (mag arcsec$^{-2}$)')
    fig.savefig(save_path)
    plt.close(fig)
    return save_path


def pdf_creator(name, photometry_csv, images, save_path):
    photometry = pd.read_csv(photometry_csv)

    pdf = FPDF()
    pdf.set_auto_page_break(auto=True, margin=15)
    pdf.add_page()

    # Title
    pdf.set_font('Helvetica', 'B', 18)
    pdf.cell(0, 10, f'Photometry of the stream around {name}', new_x=XPos.LMARGIN, new_y=YPos.NEXT, align='C')

    # Paragraph
    pdf.set_font('Helvetica', '', 12)
    pdf.ln(10)
    text_paragraph = ('The following table has the photometry measured in the circular apertures placed on the '
                      'stream, corrected for Galactic extinction.')
    pdf.multi_cell(0, 10, text_paragraph)

    # Table
    pdf.ln(10)
    pdf.set_font('Helvetica', 'B', 12)
    pdf.cell(0, 10, 'Circular apertures', new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    columns = [('ID', 'OBJ_ID', '{:.0f}'), ('Dist (as)', 'distas', '{:.1f}'), ('mag r', 'MAGNITUDE-r', '{:.2f}'),
               ('SB r', 'SURFACE_BRIGHTNESS', '{:.2f}'), ('(g-r)o', 'g-r', '{:.2f}'), ('(r-z)o', 'r-z', '{:.2f}')]
    pdf.set_font('Helvetica', 'B', 10)
    for header, _, _ in columns:
        pdf.cell(30, 10, header, border=1)
    pdf.ln()
    pdf.set_font('Helvetica', '', 10)
    for _, row in photometry.iterrows():
        for _, column, form in columns:
            pdf.cell(30, 8, form.format(row[column]), border=1)
        pdf.ln()

    for image in images:
        if os.path.exists(image):
            pdf.add_page()
            pdf.image(image, x=10, y=None, w=180)

    pdf.output(save_path)
    return save_path


def run_figures(run):
    """Step 3: PDF figures, SB gradient plot and summary document."""
    tmpdir, name, filter_band = run['tmpdir'], run['name'], run['params']['filter']
    photometry_csv = stage_org.require_file(os.path.join(tmpdir, f'{name}-photometry-apertures.csv'),
                                            'aperture photometry of step 2')
    figures = pdf_figures(tmpdir, run['figdir'], name, filter_band)

    gradient = sb_gradient_plot(photometry_csv, os.path.join(run['figdir'], f'{name}-SB-gradient.png'))
    apertures_png = os.path.join(run['jpgdir'], f'{name}-apertures.png')
    previews = [os.path.join(run['jpgdir'], f'nc-{filter_band}-input-no-sky.jpg'), apertures_png, gradient]
    summary = pdf_creator(name, photometry_csv, previews, os.path.join(run['figdir'], f'{name}-summary.pdf'))
    print(f'The figures have been saved into {run["figdir"]}')
    return figures + [gradient, summary]


def run_step2_images(run, coordinates):
    """Images closing step 2: JPEG previews, contours and the apertures drawn on the masked image."""
    tmpdir, name, filter_band = run['tmpdir'], run['name'], run['params']['filter']
    step2_previews(tmpdir, run['jpgdir'], filter_band, run['label'])
    return image_with_apertures(os.path.join(tmpdir, f'masked-{filter_band}.fits'), coordinates,
                                os.path.join(run['jpgdir'], f'{name}-apertures.png'),
                                title=f'{name} {filter_band} band')
