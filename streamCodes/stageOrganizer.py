from regions import Regions, CirclePixelRegion, PolygonPixelRegion, EllipsePixelRegion
from astropy.io import fits
import stream_config as cfg
import pandas as pd
import numpy as np
import logging
import shutil
import glob
import re
import sys
import os

logger = logging.getLogger(__name__)

STEP_NAMES = {1: 'Detection + Segmentation', 2: 'Photometry', 3: 'PDF generation', 4: 'LaTeX'}

# Final host ellipse saved by each pipeline, reused by later runs
ELLIPSE_GEOMETRY_FILES = {'stream': 'ellipse-geometry.csv',
                          'emptysky': 'emptysky-ellipse-geometry.csv'}


class PipelineInputError(Exception):
    """A prompt answer is invalid or a file needed by the run is missing."""


def welcome(title):
    print('')
    print(80 * '-')
    print('')
    print(title)
    print('')
    print(80 * '-')
    print('')


def step_banner(step, function_name):
    print('')
    print(f'STEP {step}:')
    print(f'Running the function: {function_name}')


def setup_logging(tmpdir, name, debug=False):
    os.makedirs(tmpdir, exist_ok=True)
    logger_root = logging.getLogger()
    logger_root.setLevel(logging.DEBUG)
    for handler in list(logger_root.handlers):
        logger_root.removeHandler(handler)
    f = logging.Formatter('%(levelname)s\t%(module)s - %(message)s')
    # handler to write log entries to file
    log_filename = os.path.join(tmpdir, f'{name}-log.txt')
    h1 = logging.FileHandler(log_filename)
    h1.setLevel(logging.DEBUG)
    h1.setFormatter(f)
    logger_root.addHandler(h1)
    # handler to write log entries to terminal
    h2 = logging.StreamHandler(stream=sys.stdout)
    h2.setLevel(logging.DEBUG) if debug else h2.setLevel(logging.INFO)
    h2.setFormatter(f)
    logger_root.addHandler(h2)
    return log_filename


def create_build_directories(bdir):
    dirs = {'bdir': bdir,
            'tmpdir': os.path.join(bdir, 'tmp'),
            'jpgdir': os.path.join(bdir, 'jpg'),
            'texdir': os.path.join(bdir, 'tex')}
    dirs['tikzdir'] = os.path.join(dirs['texdir'], 'tikz')
    dirs['figdir'] = os.path.join(dirs['texdir'], 'figures')
    for folder in dirs.values():
        os.makedirs(folder, exist_ok=True)
    return dirs

### Prompts ###

def ask(value, question, input_func=input):
    if value is not None:
        return str(value)
    return input_func(question).strip()


def ask_choice(value, question, choices, error_message, input_func=input):
    answer = ask(value, question, input_func)
    if answer not in [str(c) for c in choices]:
        raise PipelineInputError(error_message)
    return int(answer) if answer.isdigit() else answer


def collect_run_parameters(args, max_step=4, photometry_toggles=True, input_func=input):
    """Fill the run parameters from the command line, prompting for the missing ones.

    Returns a dict with name, step, filter, host, progenitor, polygon, mask and run_id.
    The masking filter is only asked after step 1 and the photometry toggles only
    for step 2.
    """
    params = {'name': None, 'step': None, 'filter': None, 'host': 0, 'progenitor': 0,
              'polygon': 0, 'mask': 0, 'run_id': ''}

    params['name'] = ask(getattr(args, 'name', None), 'Enter a galaxy name, like NGC922: ', input_func)
    if not params['name']:
        raise PipelineInputError('You must enter a galaxy name.')

    steps = range(1, max_step + 1)
    step_question = 'Enter execution step ' + ' '.join(f'{s}: {STEP_NAMES[s]}' for s in steps) + ': '
    params['step'] = ask_choice(getattr(args, 'step', None), step_question, steps,
                                f'The step must be a number between 1 and {max_step}.', input_func)

    if params['step'] != 1:
        params['filter'] = ask_choice(getattr(args, 'filter', None),
                                      'Enter filter to be used for masking (g,r,z): ', cfg.bands,
                                      'The masking filter must be one of g, r or z.', input_func)

    if params['step'] == 2:
        if photometry_toggles:
            yes_no = 'if yes enter 1, if no enter 0: '
            params['host'] = ask_choice(getattr(args, 'host', None),
                                        'Measure the photometry of the host? ' + yes_no, [0, 1],
                                        'The host answer must be 0 or 1.', input_func)
            params['progenitor'] = ask_choice(getattr(args, 'progenitor', None),
                                              'Measure the photometry of the progenitor? ' + yes_no, [0, 1],
                                              'The progenitor answer must be 0 or 1.', input_func)
            params['polygon'] = ask_choice(getattr(args, 'polygon', None),
                                           'Number of polygonal apertures to measure (0, 1 or 2): ', [0, 1, 2],
                                           'The number of polygons must be 0, 1 or 2.', input_func)
            params['mask'] = ask_choice(getattr(args, 'mask', None),
                                        'Mask the host galaxy influence? ' + yes_no, [0, 1],
                                        'The masking answer must be 0 or 1.', input_func)
        params['run_id'] = ask(getattr(args, 'run_id', None), 'Execution run id (e.g. Run01a): ', input_func)

    logger.debug(f'run parameters: {params}')
    return params

### Input images and regions ###

def find_band_images(datadir, name, bands=None):
    images = {}
    if bands is None:
        bands = cfg.bands
    for band in bands:
        matches = sorted(glob.glob(os.path.join(datadir, f'{name}-*-{band}.fits')))
        if len(matches) == 0:
            raise PipelineInputError(f'No input image {name}-*-{band}.fits in {datadir}')
        if len(matches) > 1:
            logger.warning(f'{len(matches)} images match band {band}, using {matches[0]}')
        images[band] = matches[0]
    return images


def require_file(path, what):
    if not os.path.exists(path):
        raise PipelineInputError(f'Missing {what}: {path}')
    return path


def region_filename(apdir, name, kind):
    names = {'apertures': f'{name}-apertures-physical.reg',
             'host': f'{name}-host-aperture-physical.reg',
             'progenitor': f'{name}-prog-aperture-physical.reg',
             'polygon-1': f'{name}-polygon-image.reg',
             'polygon-2': f'{name}-polygon-image-2.reg',
             'displaced': f'{name}-displaced-ellipse-physical.reg'}
    return os.path.join(apdir, names[kind])


def read_ds9_regions(region_file, what='region file'):
    """Pixel regions of a ds9 file, in the 1-based pixel coordinates of the Gnuastro programs.

    The images carry no LTV/LTM keywords, so physical coordinates are read as image coordinates.
    """
    require_file(region_file, what)
    with open(region_file, 'r') as file:
        text = re.sub(r'\bphysical\b', 'image', file.read())
    return Regions.parse(text, format='ds9')


def read_circle_regions(region_file):
    """Return the X, Y, R of every circle in a ds9 region file as a DataFrame."""
    circles = [r for r in read_ds9_regions(region_file) if isinstance(r, CirclePixelRegion)]
    if len(circles) == 0:
        raise PipelineInputError(f'No circle found in {region_file}')
    rows = [[float(c.center.x) + 1, float(c.center.y) + 1, float(c.radius)] for c in circles]
    return pd.DataFrame(rows, columns=['X', 'Y', 'R'])


def read_polygon_region(region_file):
    """Return the vertices of the first polygon as the 'x1,y1:x2,y2:...' string of astcrop."""
    for region in read_ds9_regions(region_file, 'polygon region file'):
        if isinstance(region, PolygonPixelRegion):
            return ':'.join(f'{x + 1:g},{y + 1:g}' for x, y in zip(region.vertices.x, region.vertices.y))
    raise PipelineInputError(f'No polygon found in {region_file}')


def read_ellipse_center(region_file):
    for region in read_ds9_regions(region_file, 'displaced ellipse region file'):
        if isinstance(region, EllipsePixelRegion):
            return float(region.center.x) + 1, float(region.center.y) + 1
    raise PipelineInputError(f'No ellipse found in {region_file}')


def write_xyr_file(regions, output_filename):
    with open(output_filename, 'w') as output_file:
        for _, row in regions.iterrows():
            output_file.write(f"{row['X']:<20g}{row['Y']:<20g}{row['R']:g}\n")
    return output_filename


def convert_regions(apdir, tmpdir, name, kind='apertures'):
    """Convert a ds9 circle file to XYR text in APDIR and keep copies of both in tmp."""
    region_file = region_filename(apdir, name, kind)
    regions = read_circle_regions(region_file)
    suffix = {'apertures': 'apertures', 'host': 'host-aperture', 'progenitor': 'prog-aperture'}[kind]
    xyr_file = write_xyr_file(regions, os.path.join(apdir, f'{name}-XYR-{suffix}.txt'))
    shutil.copy(region_file, os.path.join(tmpdir, os.path.basename(region_file)))
    shutil.copy(xyr_file, os.path.join(tmpdir, os.path.basename(xyr_file)))
    return regions

### Image information ###

def image_shape(filename, hdu=0):
    with fits.open(filename) as hdulist:
        header = hdulist[hdu].header
        return int(header['NAXIS1']), int(header['NAXIS2'])


def ellipse_geometry_filename(tmpdir, pipeline='stream'):
    return os.path.join(tmpdir, ELLIPSE_GEOMETRY_FILES[pipeline])


def save_ellipse_geometry(geometry, tmpdir, pipeline='stream'):
    filename = ellipse_geometry_filename(tmpdir, pipeline)
    pd.DataFrame([geometry]).to_csv(filename, index=False)
    return filename


def load_ellipse_geometry(tmpdir, pipeline='stream'):
    filename = ellipse_geometry_filename(tmpdir, pipeline)
    if not os.path.exists(filename):
        return None
    row = pd.read_csv(filename).iloc[0]
    return {key: float(value) for key, value in row.items() if not np.isnan(value)}

### Command line ###

def add_run_arguments(parser, max_step=4, photometry_toggles=True):
    parser.add_argument('datadir', help='Directory with the input images NAME-*-{g,r,z}.fits')
    parser.add_argument('bdir', help='Build directory, created when missing')
    parser.add_argument('apdir', nargs='?', default=None, help='Directory with the ds9 region files')
    parser.add_argument('--name', default=None, help='Galaxy name, like NGC922')
    parser.add_argument('--step', type=int, choices=range(1, max_step + 1), default=None)
    parser.add_argument('--filter', choices=cfg.bands, default=None, help='Band used for masking')
    if photometry_toggles:
        parser.add_argument('--host', type=int, choices=[0, 1], default=None)
        parser.add_argument('--progenitor', type=int, choices=[0, 1], default=None)
        parser.add_argument('--polygon', type=int, choices=[0, 1, 2], default=None)
        parser.add_argument('--mask', type=int, choices=[0, 1], default=None)
        parser.add_argument('--global-results', action='store_true', default=cfg.global_results,
                            help=f'Append the result lines to {cfg.results_dir}/SURVEY-results.txt')
        parser.add_argument('--extinction', type=float, nargs=3, metavar=('G', 'R', 'Z'), default=None,
                            help='Galactic extinction instead of the NED query')
    parser.add_argument('--run-id', default=None)
    parser.add_argument('--zeropoint', type=float, default=cfg.zeropoint)
    parser.add_argument('--survey', default=cfg.survey)
    parser.add_argument('-d', '--debug', action='store_true', help='Print debug messages on the terminal')
    return parser


def build_run(args, params):
    """Everything a step needs: directories, input images and the command line overrides."""
    dirs = create_build_directories(args.bdir)
    run = dict(dirs)
    run['name'] = params['name']
    run['params'] = params
    run['apdir'] = args.apdir
    run['images'] = find_band_images(args.datadir, params['name'])
    run['zeropoint'] = args.zeropoint
    run['survey'] = args.survey
    extinction = getattr(args, 'extinction', None)
    run['extinction'] = dict(zip(['g', 'r', 'z'], extinction)) if extinction is not None else None
    run['global_results'] = getattr(args, 'global_results', False)
    run['results_dir'] = cfg.results_dir
    return run


def require_apdir(run):
    if run['apdir'] is None or not os.path.isdir(run['apdir']):
        raise PipelineInputError(f'The regions directory APDIR is needed for step {run["params"]["step"]}')
    return run['apdir']
