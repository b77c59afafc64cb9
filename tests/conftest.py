from astropy.table import Table
from astropy.io import fits
from astropy.wcs import WCS
import gnuastro_functions as gnu
import numpy as np
import pytest


class CommandRecorder:
    """Stands in for gnuastro_functions.execute and keeps every command line."""

    def __init__(self, output='0.5\n'):
        self.calls = []
        self.output = output

    def __call__(self, cmd_args, stdin=None, cwd=None):
        self.calls.append((list(cmd_args), stdin))
        return self.output

    @property
    def programs(self):
        return [cmd[0] for cmd, _ in self.calls]

    def commands_of(self, program):
        return [cmd for cmd, _ in self.calls if cmd[0] == program]


@pytest.fixture
def commands(monkeypatch):
    recorder = CommandRecorder()
    monkeypatch.setattr(gnu, 'execute', recorder)
    return recorder


def write_catalog(path, columns, header=None):
    hdu = fits.table_to_hdu(Table(columns))
    for key, value in (header or {}).items():
        hdu.header[key] = value
    fits.HDUList([fits.PrimaryHDU(), hdu]).writeto(path)
    return str(path)


def write_wcs_image(path, extname='INPUT-NO-SKY', crval=(30.0, -10.0), size=101, data=None):
    """TAN image of size x size pixels of 0.262 arcsec. With extname None the image is the primary HDU."""
    wcs = WCS(naxis=2)
    wcs.wcs.ctype = ['RA---TAN', 'DEC--TAN']
    wcs.wcs.crpix = [51, 51]
    wcs.wcs.crval = list(crval)
    wcs.wcs.cdelt = [-0.262 / 3600, 0.262 / 3600]
    if data is None:
        data = np.zeros((size, size), dtype=np.float32)
    if extname is None:
        hdulist = fits.HDUList([fits.PrimaryHDU(data, header=wcs.to_header())])
    else:
        hdulist = fits.HDUList([fits.PrimaryHDU(), fits.ImageHDU(data, header=wcs.to_header(), name=extname)])
    hdulist.writeto(path)
    return str(path)


@pytest.fixture
def ulsb_catalog(tmp_path):
    def make(name='cat-region-r-ULSB.fits', sblmag=27.35, upperlimit_sb=29.1):
        columns = {'OBJ_ID': [1], 'AREA': [1452], 'SUM': [12.5], 'SURFACE_BRIGHTNESS': [26.8],
                   'UPPERLIMIT_SIGMA': [2.4], 'UPPERLIMIT_SB': [upperlimit_sb]}
        header = {'SBLNSIG': 3.0, 'SBLAREA': 100.0, 'SBLMAG': sblmag}
        return write_catalog(tmp_path / name, columns, header)
    return make


def photometry_columns(rows, magnitude, sb=26.0):
    return {'OBJ_ID': list(range(1, rows + 1)), 'AREA': rows * [80], 'AREA_ARCSEC2': rows * [5.49],
            'SUM': rows * [1.2], 'SUM_ERROR': rows * [0.1], 'MAGNITUDE': rows * [magnitude],
            'MAGNITUDE_ERROR': rows * [0.05], 'UPPERLIMIT_SIGMA': rows * [4.0], 'SN': rows * [12.0],
            'SURFACE_BRIGHTNESS': rows * [sb], 'SB_ERROR': rows * [0.1]}


MAGNITUDES = {'r': 20.0, 'g': 20.6, 'z': 19.7}


def write_step_outputs(tmpdir, apdir, datadir, name='NGC922', filter_band='r'):
    """Outputs of step 1, catalogs read back during step 2 and the ds9 region files of a small 101x101 field."""
    for band in ['r', 'g', 'z']:
        write_wcs_image(tmpdir / f'nc-{band}.fits')
        (tmpdir / f'seg-{band}.fits').write_text('')
        write_wcs_image(datadir / f'{name}-DESI-{band}.fits', extname=None)
        for prefix, rows in [('regions', 2), ('autostream', 1), ('host', 1), ('prog', 1),
                             ('polygon-1', 1), ('polygon-2', 1)]:
            write_catalog(tmpdir / f'cat-{prefix}-{band}.fits', photometry_columns(rows, MAGNITUDES[band]))
        write_catalog(tmpdir / f'cat-region-{band}-ULSB.fits',
                      dict(photometry_columns(1, MAGNITUDES[band]), UPPERLIMIT_SB=[29.5]),
                      {'SBLNSIG': 3.0, 'SBLAREA': 100.0, 'SBLMAG': 28.2})
    write_wcs_image(tmpdir / f'masked-{filter_band}.fits')
    write_catalog(tmpdir / 'cat.fits', {'OBJ_ID': [1, 2, 3], 'AREA': [50, 900, 20]})
    write_catalog(tmpdir / 'allclumps-cat.fits', {'OBJ_ID': [1, 2], 'AREA': [10, 40]})
    write_catalog(tmpdir / 'SNRgt-cat.fits', {'OBJ_ID': [1, 2], 'AREA': [700, 30]})
    write_catalog(tmpdir / 'galaxy-mask-cat.fits',
                  {'OBJ_ID': [1], 'AREA': [700], 'GEO_X': [51.0], 'GEO_Y': [51.0], 'GEO_AXIS_RATIO': [0.5],
                   'GEO_POSITION_ANGLE': [30.0], 'GEO_SEMI_MAJOR': [10.0], 'GEO_SEMI_MINOR': [5.0]})
    write_catalog(tmpdir / 'cat-labeled-stream.fits', {'OBJ_ID': [1, 2], 'AREA': [15, 300]})

    (apdir / f'{name}-apertures-physical.reg').write_text('physical\ncircle(51,51,5)\ncircle(61,51,5)\n')
    (apdir / f'{name}-host-aperture-physical.reg').write_text('physical\ncircle(51,51,20)\n')
    (apdir / f'{name}-prog-aperture-physical.reg').write_text('physical\ncircle(71,61,4)\n')
    (apdir / f'{name}-polygon-image.reg').write_text('image\npolygon(40,40,60,40,60,60)\n')
    (apdir / f'{name}-polygon-image-2.reg').write_text('image\npolygon(20,20,30,20,30,30)\n')
    (apdir / f'{name}-displaced-ellipse-physical.reg').write_text('physical\nellipse(61,56,20,10,45)\n')


@pytest.fixture
def step_run(tmp_path):
    """Run dictionary of step 2 with every file it reads already in place."""
    def make(filter_band='r', **params):
        dirs = {key: tmp_path / key for key in ['tmp', 'apertures', 'data', 'jpg', 'figures']}
        for folder in dirs.values():
            folder.mkdir(exist_ok=True)
        write_step_outputs(dirs['tmp'], dirs['apertures'], dirs['data'], filter_band=filter_band)
        run_params = {'name': 'NGC922', 'step': 2, 'filter': filter_band, 'host': 0, 'progenitor': 0,
                      'polygon': 0, 'mask': 0, 'run_id': 'Run01a'}
        run_params.update(params)
        return {'tmpdir': str(dirs['tmp']), 'apdir': str(dirs['apertures']), 'jpgdir': str(dirs['jpg']),
                'figdir': str(dirs['figures']), 'name': 'NGC922', 'params': run_params,
                'images': {b: str(dirs['data'] / f'NGC922-DESI-{b}.fits') for b in ['r', 'g', 'z']},
                'zeropoint': 22.5, 'survey': 'DES', 'extinction': {'g': 0.1, 'r': 0.07, 'z': 0.04},
                'global_results': False, 'results_dir': str(tmp_path / 'Results')}
    return make
