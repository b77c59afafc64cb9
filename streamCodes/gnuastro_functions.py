"""
Wrappers around the Gnuastro command-line programs.

Every program has a ``determine_<program>_options`` function returning the
output filename and the argument list, and a ``run_<program>`` function
that executes it. The ``run_`` functions return ``(output_filename, status)``
where status is 0 when the program ran and 1 when an existing output was
reused. With ``dbg=True`` the argument list is returned in place of the
status and nothing is executed.
"""
from subprocess import Popen, PIPE
from astropy.io import fits
from astropy.table import Table
import stream_config as cfg
import numpy as np
import logging
import shutil
import os

logger = logging.getLogger(__name__)

# Columns measured on every photometric aperture
PHOTOMETRY_COLUMNS = ['--ids', '--area', '--area-arcsec2', '--sum', '--sum-error',
                      '--magnitude', '--magnitude-error', '--upperlimit-sigma',
                      '--sn', '--sb', '--sb-error']

AREA_COLUMNS = ['--ids', '--area']

GEOMETRY_COLUMNS = ['--ids', '--area', '--geo-x', '--geo-y', '--geo-axis-ratio',
                    '--geo-position-angle', '--geo-semi-major', '--geo-semi-minor']

# Column names written by older Gnuastro releases
CATALOG_ALIASES = {'BRIGHTNESS': 'SUM',
                   'BRIGHTNESS_ERROR': 'SUM_ERROR',
                   'AREAARCSEC2': 'AREA_ARCSEC2',
                   'UPPERLIMITSIGMA': 'UPPERLIMIT_SIGMA',
                   'SURFACE_BRIGHTNESS_ERROR': 'SB_ERROR'}


class GnuastroError(RuntimeError):
    """An external Gnuastro program could not be run or exited with an error."""

    def __init__(self, program, returncode, stderr=''):
        self.program = program
        self.returncode = returncode
        self.stderr = stderr or ''
        message = f'{program} exited with status {returncode}'
        if self.stderr.strip():
            message += f': {self.stderr.strip()}'
        super().__init__(message)


def find_binary(program):
    return shutil.which(program)


def execute(cmd_args, stdin=None, cwd=None):
    """Run one external command and return its standard output."""
    binary = find_binary(cmd_args[0])
    if binary is None:
        logger.error(f"Could not locate {cmd_args[0]} executable in PATH")
        raise GnuastroError(cmd_args[0], -42, 'executable not found')

    env = dict(os.environ, GSL_RNG_SEED=cfg.gsl_rng_seed)
    logger.debug(f"cmdline={' '.join(str(arg) for arg in cmd_args)}")
    cmd_call = Popen([binary] + [str(arg) for arg in cmd_args[1:]], cwd=cwd, env=env,
                     stdin=PIPE if stdin is not None else None,
                     stdout=PIPE, stderr=PIPE, text=True)
    (out, errors) = cmd_call.communicate(input=stdin)
    if cmd_call.returncode != 0:
        logger.error(f'{cmd_args[0]} failed: {errors}')
        raise GnuastroError(cmd_args[0], cmd_call.returncode, errors)
    return out


def run_program(output_filename, cmd_args, stdin=None, skip_existing=True, dbg=False):
    if skip_existing and os.path.exists(output_filename):
        logger.debug(f'{output_filename} already exists, {cmd_args[0]} not run')
        return output_filename, 1

    if dbg is True:
        return output_filename, cmd_args

    execute(cmd_args, stdin=stdin)
    return output_filename, 0


def profile_line(ident, x, y, radius, position_angle=0, axis_ratio=1, value=1, truncation=1, function=5):
    # MakeProfiles catalog row: id x y function radius sersic-n angle q value truncation
    return f'{ident} {x} {y} {function} {radius} 0 {position_angle} {axis_ratio} {value} {truncation}'

### Options ###

def determine_kernel_options(output_filename, fwhm, truncation):
    options = [f'--kernel=gaussian,{fwhm},{truncation}', '--oversample=1', '--envseed',
               f'--output={output_filename}']
    return output_filename, options


def determine_astnoisechisel_options(filename, output_filename, kernel, hdu=0, tilesize=40,
                                     holesize=10000, qthresh=0.3):
    options = [filename, f'-h{hdu}', f'--kernel={kernel}', f'--tilesize={tilesize},{tilesize}',
               f'--detgrowmaxholesize={holesize}', f'--qthresh={qthresh}',
               f'--output={output_filename}']
    return output_filename, options


def determine_astsegment_options(filename, output_filename, kernel, gthresh=0.5, objbordersn=1):
    options = [filename, f'--kernel={kernel}', f'--gthresh={gthresh}',
               f'--objbordersn={objbordersn}', f'--output={output_filename}']
    return output_filename, options


def determine_astarithmetic_options(tokens, output_filename, extra_options=None):
    options = [str(token) for token in tokens]
    if extra_options:
        options += extra_options
    options.append(f'--output={output_filename}')
    return output_filename, options


def determine_astmkcatalog_options(labels, output_filename, columns, labels_hdu=1, values=None,
                                   values_hdu='1', instd=None, upmask=None, upnum=None, zeropoint=None):
    options = [labels, f'-h{labels_hdu}']
    if values is not None:
        options += [f'--valuesfile={values}', f'--valueshdu={values_hdu}', '--envseed']
    if upmask is not None:
        if upnum is None:
            upnum = cfg.upnum
        options += ['--checkuplim=1', f'--upnum={upnum}', '--sfmagnsigma=3',
                    '--sfmagarea=100', '--upnsigma=3', f'--upmaskfile={upmask}',
                    '--upmaskhdu=DETECTIONS']
    if instd is not None:
        options.append(f'--instd={instd}')
    if zeropoint is not None:
        options.append(f'--zeropoint={zeropoint}')
    options += list(columns)
    options.append(f'--output={output_filename}')
    return output_filename, options


def determine_astmkprof_options(output_filename, background=None, backhdu=None, mode='img',
                                replace=False, clearcanvas=True, envseed=False):
    options = []
    if background is not None:
        options.append(f'--background={background}')
        if backhdu is not None:
            options.append(f'--backhdu={backhdu}')
    if clearcanvas:
        options.append('--clearcanvas')
    options += [f'--mode={mode}', '--oversample=1', '--mforflatpix', '--type=uint8']
    if replace:
        options.append('--replace')
    if envseed:
        options.append('--envseed')
    options.append(f'--output={output_filename}')
    return output_filename, options


def determine_wcs_structure_options(output_filename):
    return output_filename, ['--mergedsize=3,3', f'--output={output_filename}']


def determine_astcrop_polygon_options(filename, region, output_filename, hdu='INPUT-NO-SKY'):
    options = ['--mode=img', f'-h{hdu}', f'--polygon={region}', filename, '--polygonout',
               f'--output={output_filename}']
    return output_filename, options


def determine_astcrop_section_options(filename, section, output_filename, hdu=1):
    options = [filename, f'-h{hdu}', '--mode=img', f'--section={section}',
               f'--output={output_filename}']
    return output_filename, options


def determine_astwarp_translate_options(filename, dx, dy, output_filename, hdu='INPUT-NO-SKY'):
    options = [f'--translate={dx},{dy}', filename, f'-h{hdu}', f'--output={output_filename}']
    return output_filename, options


def determine_astfits_copy_options(filename, hdu, output_filename):
    return output_filename, [filename, f'--copy={hdu}', f'--output={output_filename}']


def determine_astconvertt_options(filename, output_filename, params=None, hdu=None):
    options = [filename]
    if hdu is not None:
        options.append(f'-h{hdu}')
    if params:
        options += list(params)
    options.append(f'--output={output_filename}')
    return output_filename, options


def determine_astquery_extinction_options(ra, dec, output_filename):
    options = ['ned', '--dataset=extinction', f'--center={ra},{dec}', f'--output={output_filename}']
    return output_filename, options

### Runners ###

def run_astmkprof_kernel(output_filename, fwhm, truncation, binary='astmkprof', dbg=False):
    output_filename, options = determine_kernel_options(output_filename, fwhm, truncation)
    return run_program(output_filename, [binary] + options, dbg=dbg)


def run_astnoisechisel(filename, output_filename, kernel, hdu=0, tilesize=40, holesize=10000,
                       qthresh=0.3, binary='astnoisechisel', dbg=False):
    output_filename, options = determine_astnoisechisel_options(filename, output_filename, kernel, hdu,
                                                                tilesize, holesize, qthresh)
    return run_program(output_filename, [binary] + options, dbg=dbg)


def run_astsegment(filename, output_filename, kernel, gthresh=0.5, objbordersn=1,
                   binary='astsegment', dbg=False):
    output_filename, options = determine_astsegment_options(filename, output_filename, kernel,
                                                            gthresh, objbordersn)
    return run_program(output_filename, [binary] + options, dbg=dbg)


def run_astarithmetic(tokens, output_filename, extra_options=None, skip_existing=True,
                      binary='astarithmetic', dbg=False):
    output_filename, options = determine_astarithmetic_options(tokens, output_filename, extra_options)
    return run_program(output_filename, [binary] + options, skip_existing=skip_existing, dbg=dbg)


def run_astarithmetic_value(tokens, binary='astarithmetic', dbg=False):
    """Evaluate a numbers-only expression and return the printed value."""
    cmd_args = [binary] + [str(token) for token in tokens] + ['--quiet']
    if dbg is True:
        return cmd_args
    out = execute(cmd_args)
    return float(out.split()[0])


def run_astmkcatalog(labels, output_filename, columns=PHOTOMETRY_COLUMNS, skip_existing=False,
                     binary='astmkcatalog', dbg=False, **kwargs):
    output_filename, options = determine_astmkcatalog_options(labels, output_filename, columns, **kwargs)
    return run_program(output_filename, [binary] + options, skip_existing=skip_existing, dbg=dbg)


def run_astmkprof(catalog_lines, output_filename, skip_existing=False, binary='astmkprof',
                  dbg=False, **kwargs):
    output_filename, options = determine_astmkprof_options(output_filename, **kwargs)
    stdin = '\n'.join(catalog_lines) + '\n'
    return run_program(output_filename, [binary] + options, stdin=stdin,
                       skip_existing=skip_existing, dbg=dbg)


def run_wcs_structure(output_filename, binary='astmkprof', dbg=False):
    output_filename, options = determine_wcs_structure_options(output_filename)
    return run_program(output_filename, [binary] + options, stdin='1 1 1 4 0 0 0 0 1 1\n',
                       skip_existing=False, dbg=dbg)


def run_astcrop_polygon(filename, region, output_filename, hdu='INPUT-NO-SKY', binary='astcrop', dbg=False):
    output_filename, options = determine_astcrop_polygon_options(filename, region, output_filename, hdu)
    return run_program(output_filename, [binary] + options, dbg=dbg)


def run_astcrop_section(filename, section, output_filename, hdu=1, binary='astcrop', dbg=False):
    output_filename, options = determine_astcrop_section_options(filename, section, output_filename, hdu)
    return run_program(output_filename, [binary] + options, dbg=dbg)


def run_astwarp_translate(filename, dx, dy, output_filename, hdu='INPUT-NO-SKY', binary='astwarp', dbg=False):
    output_filename, options = determine_astwarp_translate_options(filename, dx, dy, output_filename, hdu)
    return run_program(output_filename, [binary] + options, dbg=dbg)


def run_astfits_copy(filename, hdu, output_filename, binary='astfits', dbg=False):
    output_filename, options = determine_astfits_copy_options(filename, hdu, output_filename)
    return run_program(output_filename, [binary] + options, dbg=dbg)


def run_astfits_update(filename, keywords, hdu=1, binary='astfits', dbg=False):
    options = [filename, f'-h{hdu}'] + [f'--update={key},{value}' for key, value in keywords.items()]
    return run_program(filename, [binary] + options, skip_existing=False, dbg=dbg)


def run_astconvertt(filename, output_filename, params=None, hdu=None, skip_existing=False,
                    binary='astconvertt', dbg=False):
    output_filename, options = determine_astconvertt_options(filename, output_filename, params, hdu)
    return run_program(output_filename, [binary] + options, skip_existing=skip_existing, dbg=dbg)


def run_astquery_extinction(ra, dec, output_filename, binary='astquery', dbg=False):
    output_filename, options = determine_astquery_extinction_options(ra, dec, output_filename)
    return run_program(output_filename, [binary] + options, dbg=dbg)


def gnuastro_version(binary='astnoisechisel'):
    out = execute([binary, '--version'])
    return out.splitlines()[0].split()[-1]

### Catalog readers ###

def read_catalog(filename, hdu=1):
    table = Table.read(filename, hdu=hdu)
    for old_name, new_name in CATALOG_ALIASES.items():
        if old_name in table.colnames and new_name not in table.colnames:
            table.rename_column(old_name, new_name)
    return table


def area_column(table):
    return 'AREA_FULL' if 'AREA_FULL' in table.colnames else 'AREA'


def largest_label(catalog_filename):
    table = read_catalog(catalog_filename)
    n_max = np.argmax(np.asarray(table[area_column(table)]))
    return int(table['OBJ_ID'][n_max])


def catalog_value(catalog_filename, column, row=0):
    table = read_catalog(catalog_filename)
    return float(table[column][row])


def sb_limit_cards(catalog_filename):
    # The surface brightness limit is written in the keywords starting with SBL
    with fits.open(catalog_filename) as hdulist:
        header = hdulist[1].header
        cards = [str(card).rstrip() for card in header.cards if card.keyword.startswith('SBL')]
        sblmag = header.get('SBLMAG', np.nan)
    return cards, sblmag
