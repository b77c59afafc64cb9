"""
Text reports of the pipelines and the LaTeX products of step 4.

Reports are plain text. Every section starts with a title line padded with
dashes, so the sections of a report can be read back with ``report_sections``.
"""
from astropy.table import Table
import gnuastro_functions as gnu
import stream_config as cfg
import numpy as np
import subprocess
import logging
import shutil
import re
import os

logger = logging.getLogger(__name__)

WIDTH = 95
RULE = WIDTH * '='
DASHES = WIDTH * '-'

TITLE_PATTERN = re.compile(r'^([A-Z][A-Z0-9 ,()\-]*[A-Z0-9)])-{3,}\s*$')

APERTURE_LEGEND = [
    '# Column 1:APERTURE ID           [Integer,] Circular aperture identifier.',
    '# Column 2:AREA                  [Integer,] Area of the circular aperture in pixels.',
    '# Column 3:AREA_ARCSEC2          [arcsec^2, f32,] Area of the circular aperture in arcsec^2.',
    '# Column 4:SUM                   [counts, f32,] Sum of sky-subtracted pixel values in the aperture.',
    '# Column 5:SUM_ERROR             [counts, f32,] Error (1-sigma) in measuring the sum.',
    '# Column 6:MAGNITUDE             [mag, f32,] Magnitude measured in the aperture.',
    '# Column 7:MAGNITUDE_ERROR       [mag, f32,] Error in measuring magnitude.',
    '# Column 8:UPPERLIMIT_SIGMA      [f32,] Multiple of upper limit sigma.',
    '# Column 9:SN                    [f32,] Signal to noise ratio.',
    '# Column 10:SURFACE_BRIGHTNESS   [mag/arcsec^2, f32,] Surface brightness.',
    '# Column 11:SB_ERROR             [mag/arcsec^2, f32,] Error in measuring surface brightness.']

COLOUR_LEGEND = [
    '# Column 1:APERTURE ID           [Integer,] Circular aperture identifier.',
    '# Column 2:{m}-g                 [mag, f32,] Magnitude in g band.',
    '# Column 3:{m}-r                 [mag, f32,] Magnitude in r band.',
    '# Column 4:{m}-z                 [mag, f32,] Magnitude in z band.',
    '# Column 5:MAGNITUDE_ERROR-g     [mag, f32,] Error in measuring magnitude in g band.',
    '# Column 6:MAGNITUDE_ERROR-r     [mag, f32,] Error in measuring magnitude in r band.',
    '# Column 7:MAGNITUDE_ERROR-z     [mag, f32,] Error in measuring magnitude in z band.',
    '# Column 8:{c}g-r                [mag, f32,] g-r colour.',
    '# Column 9:g-r-error             [mag, f32,] g-r colour error.',
    '# Column 10:{c}g-z               [mag, f32,] g-z colour.',
    '# Column 11:g-z-error            [mag, f32,] g-z colour error.',
    '# Column 12:{c}r-z               [mag, f32,] r-z colour.',
    '# Column 13:r-z-error            [mag, f32,] r-z colour error.']

AVERAGE_LEGEND = [
    '# Column 1:MAGNITUDE-r           [mag, f32,] Magnitude in r band.',
    '# Column 2:MAGNITUDE_ERROR-r     [mag, f32,] Error in measuring magnitude in r band.',
    '# Column 3:SURFACE_BRIGHTNESS-r  [mag/arcsec^2, f32,] Surface brightness in r band.',
    '# Column 4:SB_ERROR-r            [mag/arcsec^2, f32,] Error in measuring surface brightness in r band.',
    '# Column 5:MAGNITUDE-g           [mag, f32,] Magnitude in g band.',
    '# Column 6:MAGNITUDE_ERROR-g     [mag, f32,] Error in measuring magnitude in g band.',
    '# Column 7:SURFACE_BRIGHTNESS-g  [mag/arcsec^2, f32,] Surface brightness in g band.',
    '# Column 8:SB_ERROR-g            [mag/arcsec^2, f32,] Error in measuring surface brightness in g band.',
    '# Column 9:MAGNITUDE-z           [mag, f32,] Magnitude in z band.',
    '# Column 10:MAGNITUDE_ERROR-z    [mag, f32,] Error in measuring magnitude in z band.',
    '# Column 11:SURFACE_BRIGHTNESS-z [mag/arcsec^2, f32,] Surface brightness in z band.',
    '# Column 12:SB_ERROR-z           [mag/arcsec^2, f32,] Error in measuring surface brightness in z band.']

AVERAGE_COLOUR_LEGEND = [
    '# Column 13:g-r                  [mag, f32,] g-r colour.',
    '# Column 14:g-r-error            [mag, f32,] g-r colour error.',
    '# Column 15:g-z                  [mag, f32,] g-z colour.',
    '# Column 16:g-z-error            [mag, f32,] g-z colour error.',
    '# Column 17:r-z                  [mag, f32,] r-z colour.',
    '# Column 18:r-z-error            [mag, f32,] r-z colour error.']

ULSB_LEGEND = ('# Column {column}: UPPERLIMIT_SB-{label} [mag/arcsec^2, f32] Upper limit surface brightness for '
               '{region}, 3-sigma, 100 arcsec^2.')

APERTURE_TABLE_HEADER = ('Xpix Ypix Rpix RA Dec Ras DIST-H A-ID Apix Aas2 B-r B-r-ERR mag-r mag-r-err '
                         'DI-r SNR-r SB-r SB-r-err mag-g mag-g-err mag-z mag-z-err (g-r)0 (g-r)o-err '
                         '(g-z)0 (g-z)o-err (r-z)0 (r-z)o-err')


def title_line(title):
    return title + max(3, WIDTH - len(title)) * '-'


def fmt(value):
    if value is None:
        return ''
    if isinstance(value, (float, np.floating)):
        return f'{value:.6g}'
    return str(value)

### Writers ###

def start_report(output):
    with open(output, 'w'):
        pass
    return output


def write_lines(output, lines):
    with open(output, 'a') as output_file:
        for line in lines:
            output_file.write(f'{line}\n')


def write_title(output, title, rule=False):
    lines = [RULE] if rule else []
    write_lines(output, lines + [title_line(title)])


def write_values(output, values):
    write_lines(output, [' '.join(fmt(v) for v in values)])


def write_table(output, table, header=True):
    """Append an astropy Table, a pandas DataFrame or a catalog filename."""
    if isinstance(table, str):
        table = gnu.read_catalog(table)
    elif not isinstance(table, Table):
        table = Table.from_pandas(table)
    with open(output, 'a') as output_file:
        if header:
            table.write(output_file, format='ascii.commented_header')
        else:
            table.write(output_file, format='ascii.no_header')


def write_legend(output, legend, **names):
    write_lines(output, [DASHES] + [line.format(**names) for line in legend] + [DASHES])


def write_stream_header(output, name, params, images, info, zeropoint,
                        title='PHOTOMETRY MEASUREMENT OF STREAM AROUND GALAXY'):
    write_title(output, title)
    write_lines(output, [f'GALAXY: {name}',
                         f'RUN IDENTIFIER: {params["run_id"]}',
                         'INPUT IMAGES: ' + ' / '.join(os.path.basename(images[b]) for b in cfg.bands),
                         f'IMAGE CENTRE RA, Dec (degrees): {info["ra"]:.6f}, {info["dec"]:.6f} '
                         f'FoV (arcmin): {info["fov_ra"]:.2f} x {info["fov_dec"]:.2f}',
                         f'PIXEL SCALE (deg/pixel): {info["pixscale"]:.6e} '
                         f'IMAGE DIMENSIONS (pixels): {info["naxis1"]} x {info["naxis2"]}',
                         f'SELECTED IMAGE FOR MASKING: {os.path.basename(images[params["filter"]])}',
                         f'ZERO POINT = {zeropoint}'])
    write_detection_parameters(output)


def write_detection_parameters(output):
    write_title(output, 'NOISECHISEL DETECTION CONFIGURATION PARAMETERS')
    write_lines(output, [f'qthresh = {cfg.qthreshold}',
                         f'blocksize = {cfg.blocksize}',
                         f'interpngb = {cfg.interpngb}',
                         f'nc_tilesize = {cfg.nc_tilesize}',
                         f'nc_kernel_fwhm = {cfg.nc_kernel_fwhm}',
                         f'nc_holesize = {cfg.nc_holesize}',
                         f'nc_kernel_trunc = {cfg.nc_kernel_trunc}',
                         f'seg_kernel_fwhm = {cfg.seg_kernel_fwhm}',
                         f'gthresh = {cfg.gthreshold}',
                         f'objbordersn = {cfg.segbordersn}',
                         RULE])


def write_band_catalogs(output, catalogs):
    for band, catalog in catalogs.items():
        write_lines(output, [f'{band} band'])
        write_table(output, catalog)


def region_label(label):
    """'r band' for a band, the name itself for anything else, like a mock image."""
    return f'{label} band' if label in cfg.bands else str(label)


def write_sb_limit_block(output, ulsb_catalogs):
    """SB limit header cards and upper limit SB of every catalog, keyed by band or by image name."""
    write_title(output, 'SURFACE BRIGHTNESS LIMIT AND UPPER LIMIT SURFACE BRIGHTNESS', rule=True)
    write_title(output, 'SURFACE BRIGHTNESS LIMIT')
    ulsb = {}
    sblim = {}
    for label, catalog in ulsb_catalogs.items():
        cards, sblim[label] = gnu.sb_limit_cards(catalog)
        ulsb[label] = gnu.catalog_value(catalog, 'UPPERLIMIT_SB')
        write_lines(output, [region_label(label)] + cards)
    write_title(output, 'UPPER LIMIT MEASUREMENT')
    write_legend(output, [ULSB_LEGEND.format(column=i, label=label, region=region_label(label))
                          for i, label in enumerate(ulsb_catalogs, start=1)])
    write_values(output, [ulsb[label] for label in ulsb_catalogs])
    return sblim, ulsb

### Sections ###

def expected_sections(pipeline='stream', mask=0, host=0, progenitor=0, polygon=0, iterations=1,
                      images=1):
    """Titles a report of the given run mode contains, in order."""
    if pipeline == 'emptysky':
        return (['GENERATION OF EMPTY SKY IMAGE FOR HOST', 'NOISECHISEL DETECTION CONFIGURATION PARAMETERS',
                 'AUTOMATIC MASKING OF HOST WITH AN ELLIPSE'] + iterations * ['ITERATION FACTOR'] +
                ['SURFACE BRIGHTNESS LIMIT AND UPPER LIMIT SURFACE BRIGHTNESS', 'SURFACE BRIGHTNESS LIMIT',
                 'UPPER LIMIT MEASUREMENT'])
    if pipeline == 'mock':
        return (['IMAGE CHARACTERISTICS', 'NOISECHISEL DETECTION CONFIGURATION PARAMETERS'] +
                images * ['SURFACE BRIGHTNESS LIMIT AND UPPER LIMIT SURFACE BRIGHTNESS',
                          'SURFACE BRIGHTNESS LIMIT', 'UPPER LIMIT MEASUREMENT'])

    sections = ['PHOTOMETRY MEASUREMENT OF STREAM AROUND GALAXY', 'NOISECHISEL DETECTION CONFIGURATION PARAMETERS']
    if mask:
        sections += ['PHOTOMETRY MEASURED ON DIFFUSE REGION DETECTED BY NOISECHISEL']
        sections += iterations * ['ITERATION FACTOR']
        sections += ['FINAL RESULTS WITH SNR-CUTOFF']
    sections += ['PHOTOMETRY MEASURED IN CIRCULAR APERTURES', 'APERTURES', 'APERTURE PHOTOMETRY',
                 'MAGNITUDES AND COLOURS', 'AVERAGE VALUES FROM ALL APERTURES', 'EXTINCTION CALCULATION RESULTS',
                 'GALACTIC EXTINCTION CORRECTED MAGNITUDES AND COLOURS',
                 'GALACTIC EXTINCTION CORRECTED AVERAGE VALUES FROM ALL APERTURES']
    for toggle, who in [(host, 'HOST'), (progenitor, 'PROGENITOR')]:
        if toggle:
            sections += [f'PHOTOMETRY MEASUREMENT ON THE {who}', f'{who} APERTURE', f'{who} PHOTOMETRY',
                         f'{who} APERTURE MAGNITUDES AND ERRORS',
                         f'GALACTIC EXTINCTION CORRECTED {who} APERTURE MAGNITUDES AND ERRORS',
                         f'GALACTIC EXTINCTION CORRECTED {who} COLOURS AND ERRORS']
    if polygon:
        sections += ['PHOTOMETRY MEASURED IN POLYGON APERTURES']
        sections += [f'POLYGON {i}' for i in range(1, polygon + 1)]
    sections += ['SURFACE BRIGHTNESS LIMIT AND UPPER LIMIT SURFACE BRIGHTNESS', 'SURFACE BRIGHTNESS LIMIT',
                 'UPPER LIMIT MEASUREMENT']
    return sections


def report_sections(path):
    sections = []
    with open(path, 'r') as report:
        for line in report:
            match = TITLE_PATTERN.match(line.rstrip('\n'))
            if match:
                sections.append(match.group(1))
    return sections

### LaTeX ###

def write_latex_macros(texdir, filter_band, ulsb_catalog, version=None):
    macros = os.path.join(texdir, 'detection-macros.tex')
    catalog = gnu.read_catalog(ulsb_catalog)
    if version is None:
        version = gnu.gnuastro_version()
    values = [('detectionaperradarcsec', cfg.ulsb_radius_arcsec),
              ('detectioninterpngb', cfg.interpngb),
              ('detectionapernumrandom', cfg.upnum),
              ('detectionnckernelfwhm', cfg.nc_kernel_fwhm),
              ('detectionnckerneltrunc', cfg.nc_kernel_trunc),
              ('detectionnckernelfwhmseg', cfg.seg_kernel_fwhm),
              ('detectionnctilesize', cfg.nc_tilesize),
              ('detectionncholesize', cfg.nc_holesize),
              ('detectiongnuastrover', version),
              ('detectionaperbright', fmt(float(catalog['SUM'][0]))),
              ('detectionapersb', f"{float(catalog['SURFACE_BRIGHTNESS'][0]):.2f}"),
              ('detectionaperupsigma', f"{float(catalog['UPPERLIMIT_SIGMA'][0]):.2f}")]
    with open(macros, 'w') as macro_file:
        for macro, value in values:
            macro_file.write(f'\\newcommand{{\\{macro}}}{{{value}}}\n')
    logger.info(f'LaTeX macros written in {macros} for masking filter {filter_band}')
    return macros


def build_paper(name, texdir, curdir='.'):
    """Compile paper-NAME.tex with pdflatex and biber when it exists in the working directory."""
    paper = os.path.join(curdir, f'paper-{name}.tex')
    if not os.path.exists(paper):
        logger.info(f'{paper} not found, no document built')
        return None

    shutil.copy(paper, texdir)
    tex_sources = os.path.join(curdir, f'tex-{name}')
    if os.path.isdir(tex_sources):
        shutil.copytree(tex_sources, os.path.join(texdir, f'tex-{name}'), dirs_exist_ok=True)

    for cmd in (['pdflatex', '-shell-escape', '-halt-on-error', f'paper-{name}'],
                ['biber', f'paper-{name}'],
                ['pdflatex', '-shell-escape', '-halt-on-error', f'paper-{name}']):
        logger.debug(f"cmdline={' '.join(cmd)}")
        try:
            subprocess.run(cmd, cwd=texdir, check=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
        except FileNotFoundError:
            raise gnu.GnuastroError(cmd[0], -42, 'executable not found')
        except subprocess.CalledProcessError as err:
            raise gnu.GnuastroError(cmd[0], err.returncode, err.stderr.decode(errors='replace'))
    paper_pdf = os.path.join(texdir, f'paper-{name}.pdf')
    shutil.copy(paper_pdf, curdir)
    return paper_pdf
