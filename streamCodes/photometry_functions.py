from astropy.coordinates import SkyCoord
from astropy.wcs.utils import proj_plane_pixel_scales
from astropy.io.votable import parse
import detection_functions as det_f
import gnuastro_functions as gnu
import report_functions as report
import stageOrganizer as stage_org
import stream_config as cfg
from astropy.io import fits
from astropy.wcs import WCS
from tqdm import tqdm
import pandas as pd
import numpy as np
import logging
import shutil
import os

logger = logging.getLogger(__name__)

COLOURS = [('g', 'r'), ('g', 'z'), ('r', 'z')]

AVERAGE_COLUMNS = ['MAGNITUDE', 'MAGNITUDE_ERROR', 'SURFACE_BRIGHTNESS', 'SB_ERROR']

GLOBAL_HEADER = ('HOSTID RA DEC H-SB-r H-SB-r-err H-SB-g H-SB-g-err H-SB-z H-SB-z-err H-(g-r)o H-(g-r)o-err '
                 'H-(g-z)o H-(g-z)o-err H-(r-z)o H-(r-z)o-err SB-lim-r SB-lim-g SB-lim-z UL-SB-r UL-SB-g UL-SB-z '
                 'ST-DIST-H-MAX ST-DIST-H-MIN ST-WIDTH ST-DI-r ST-DI-g ST-DI-z ST-SB-r ST-SB-r-err ST-SB-g '
                 'ST-SB-g-err ST-SB-z ST-SB-z-err ST-(g-r)o ST-(g-r)o-err ST-(g-z)o ST-(g-z)o-err ST-(r-z)o '
                 'ST-(r-z)o-err PRA PDEC P-DIST-H P-SB-r P-SB-r-err P-SB-g P-SB-g-err P-SB-z P-SB-z-err '
                 'P-(g-r)o P-(g-r)o-err P-(g-z)o P-(g-z)o-err P-(r-z)o P-(r-z)o-err RUN APERTURE')

### Image information ###

def image_information(image_path, nc_path, image_hdu=0):
    with fits.open(image_path) as hdulist:
        header = hdulist[image_hdu].header
        wcs = WCS(header)
        naxis1, naxis2 = int(header['NAXIS1']), int(header['NAXIS2'])
        centre = wcs.pixel_to_world((naxis1 - 1) / 2, (naxis2 - 1) / 2)
        corners = wcs.pixel_to_world([0, naxis1 - 1, 0], [0, 0, naxis2 - 1])

    with fits.open(nc_path) as hdulist:
        nc_header = hdulist['INPUT-NO-SKY'].header
        pixscale = float(proj_plane_pixel_scales(WCS(nc_header))[0])
        crval1, crval2 = float(nc_header['CRVAL1']), float(nc_header['CRVAL2'])
        nc_naxis1, nc_naxis2 = int(nc_header['NAXIS1']), int(nc_header['NAXIS2'])

    return {'ra': centre.ra.deg, 'dec': centre.dec.deg,
            'fov_ra': corners[0].separation(corners[1]).arcmin,
            'fov_dec': corners[0].separation(corners[2]).arcmin,
            'pixscale': pixscale, 'naxis1': nc_naxis1, 'naxis2': nc_naxis2,
            'crval1': crval1, 'crval2': crval2}


def aperture_coordinates(regions, nc_path, info):
    """X, Y, R (pix) of every aperture with RA, Dec (deg), radius and distance to the centre (arcsec)."""
    with fits.open(nc_path) as hdulist:
        wcs = WCS(hdulist['INPUT-NO-SKY'].header)
    ra, dec = wcs.all_pix2world(regions['X'].values, regions['Y'].values, 1)
    coords = SkyCoord(ra, dec, unit='deg')
    centre = SkyCoord(info['ra'], info['dec'], unit='deg')

    table = regions[['X', 'Y', 'R']].copy()
    table['RA'] = ra
    table['Dec'] = dec
    table['Ras'] = table['R'] * info['pixscale'] * 3600
    table['distas'] = coords.separation(centre).arcsecond
    return table

### Apertures and catalogs ###

def make_circular_apertures(regions, output_filename, background):
    lines = [gnu.profile_line(i, row['X'], row['Y'], row['R'], value=i)
             for i, (_, row) in enumerate(regions.iterrows(), start=1)]
    aperture, _ = gnu.run_astmkprof(lines, output_filename, background=background, replace=True)
    return aperture


def band_catalogs(aperture, tmpdir, filter_band, prefix, values, zeropoint, values_hdu='1', upnum=None,
                  upmask_band=None, bands=None, extra_columns=None):
    """One mkcatalog per band. ``values`` is a filename template with a {band} field."""
    if bands is None:
        bands = cfg.bands
    if upmask_band is None:
        upmask_band = filter_band
    if extra_columns is None:
        extra_columns = []
    catalogs = {}
    columns = gnu.PHOTOMETRY_COLUMNS + extra_columns
    for band in tqdm(bands, desc=f'Progress measuring {prefix}'):
        catalogs[band], _ = gnu.run_astmkcatalog(aperture, os.path.join(tmpdir, f'cat-{prefix}-{band}.fits'),
                                                 columns=columns, values=values.format(band=band),
                                                 values_hdu=values_hdu,
                                                 instd=os.path.join(tmpdir, f'nc-{band}.fits'),
                                                 upmask=os.path.join(tmpdir, f'nc-{upmask_band}.fits'),
                                                 upnum=upnum, zeropoint=zeropoint)
    return catalogs


def read_band_tables(catalogs):
    return {band: gnu.read_catalog(catalog) for band, catalog in catalogs.items()}

### Colours and averages ###

def colour_table(ids, magnitudes, errors, extinction=None):
    """Magnitudes, their errors and the g-r, g-z, r-z colours with errors added in quadrature."""
    df = pd.DataFrame({'ID': ids})
    for band in ['g', 'r', 'z']:
        magnitude = np.asarray(magnitudes[band], dtype=float)
        if extinction is not None:
            magnitude = magnitude - extinction[band]
        df[f'MAGNITUDE-{band}'] = magnitude
    for band in ['g', 'r', 'z']:
        df[f'MAGNITUDE_ERROR-{band}'] = np.asarray(errors[band], dtype=float)
    for b1, b2 in COLOURS:
        df[f'{b1}-{b2}'] = df[f'MAGNITUDE-{b1}'] - df[f'MAGNITUDE-{b2}']
        df[f'{b1}-{b2}-error'] = np.sqrt(df[f'MAGNITUDE_ERROR-{b1}'] ** 2 + df[f'MAGNITUDE_ERROR-{b2}'] ** 2)
    return df


def colours_from_tables(tables, extinction=None):
    ids = np.asarray(tables['r']['OBJ_ID'])
    magnitudes = {b: tables[b]['MAGNITUDE'] for b in tables}
    errors = {b: tables[b]['MAGNITUDE_ERROR'] for b in tables}
    return colour_table(ids, magnitudes, errors, extinction)


def average_values(tables, colours, extinction=None):
    """Mean values over all the apertures, band by band, followed by the mean colours."""
    averages = {}
    for band in ['r', 'g', 'z']:
        for column in AVERAGE_COLUMNS + ['UPPERLIMIT_SIGMA']:
            averages[f'{column}-{band}'] = float(np.nanmean(np.asarray(tables[band][column], dtype=float)))
        if extinction is not None:
            averages[f'MAGNITUDE-{band}'] -= extinction[band]
    for b1, b2 in COLOURS:
        averages[f'{b1}-{b2}'] = float(np.nanmean(colours[f'{b1}-{b2}']))
        averages[f'{b1}-{b2}-error'] = float(np.nanmean(colours[f'{b1}-{b2}-error']))
    return averages


def average_rows(averages):
    magnitudes = [averages[f'{c}-{b}'] for b in ['r', 'g', 'z'] for c in AVERAGE_COLUMNS]
    colours = [averages[f'{b1}-{b2}{e}'] for b1, b2 in COLOURS for e in ['', '-error']]
    return magnitudes, colours

### Extinction ###

def parse_ned_extinction(xml_filename):
    """Filter, central wavelength, extinction and reference of every row of the NED VOTable."""
    table = parse(xml_filename).get_first_table().to_table()
    if len(table.colnames) < 4:
        raise stage_org.PipelineInputError(f'Unexpected NED extinction table in {xml_filename}: {table.colnames}')
    # Columns by position: filter, central wavelength, extinction, reference
    filters, central, extinction, reference = [table[name] for name in table.colnames[:4]]
    return pd.DataFrame({'FILTER': [str(value).strip() for value in filters],
                         'CENTRAL': np.asarray(central, dtype=float),
                         'EXTINCTION': np.asarray(extinction, dtype=float),
                         'ADS_REF': [str(value).strip() for value in reference]})


def extinction_values(table, survey, bands=('g', 'r', 'z')):
    values = {}
    for band in bands:
        selected = table.loc[table['FILTER'] == f'{survey} {band}', 'EXTINCTION']
        if len(selected) == 0:
            raise stage_org.PipelineInputError(f'No extinction for filter "{survey} {band}" in the NED table')
        values[band] = float(selected.iloc[0])
    return values


def query_extinction(tmpdir, ra, dec, survey, override=None):
    if override is not None:
        logger.info(f'Galactic extinction given on the command line: {override}')
        return dict(override)
    xml, _ = gnu.run_astquery_extinction(ra, dec, os.path.join(tmpdir, 'ned-extinction.xml'))
    table = parse_ned_extinction(xml)
    table.to_csv(os.path.join(tmpdir, 'ned-extinction.csv'), index=False)
    values = extinction_values(table, survey)
    logger.info(f'Galactic extinction eg er ez: {values["g"]} {values["r"]} {values["z"]}')
    return values

### Circular apertures on the stream ###

def stream_aperture_photometry(run, output):
    """Photometry in the circular apertures placed on the stream."""
    tmpdir, name, filter_band = run['tmpdir'], run['name'], run['filter']
    nc_filter = os.path.join(tmpdir, f'nc-{filter_band}.fits')

    report.write_title(output, 'PHOTOMETRY MEASURED IN CIRCULAR APERTURES', rule=True)
    if cfg.aperture_conversion:
        regions = stage_org.convert_regions(run['apdir'], tmpdir, name, 'apertures')
    else:
        regions = stage_org.read_circle_regions(os.path.join(run['apdir'], f'{name}-XYR-apertures.txt'))
    coordinates = aperture_coordinates(regions, nc_filter, run['info'])
    coordinates.to_csv(os.path.join(tmpdir, f'{name}-apertures-coordinates.csv'), index=False)
    report.write_title(output, 'APERTURES')
    report.write_lines(output, ['Coordinates X,Y (pix) Radius (pix) RA,Dec (deg) Radius (as) '
                                'Distance to image centre (as)'])
    report.write_table(output, coordinates)

    aperture = make_circular_apertures(regions, os.path.join(tmpdir, 'apertures.fits'), nc_filter)
    values_prefix = 'clumps-host-masked' if run['params']['mask'] else 'clumps-masked'
    catalogs = band_catalogs(aperture, tmpdir, filter_band, 'regions',
                             os.path.join(tmpdir, values_prefix + '-{band}.fits'), run['zeropoint'])
    tables = read_band_tables(catalogs)
    report.write_title(output, 'APERTURE PHOTOMETRY')
    report.write_legend(output, report.APERTURE_LEGEND)
    report.write_band_catalogs(output, catalogs)

    colours = colours_from_tables(tables)
    report.write_title(output, 'MAGNITUDES AND COLOURS')
    report.write_legend(output, report.COLOUR_LEGEND, m='MAGNITUDE', c='')
    report.write_table(output, colours, header=False)

    averages = average_values(tables, colours)
    write_averages(output, 'AVERAGE VALUES FROM ALL APERTURES', averages)

    extinction = query_extinction(tmpdir, run['info']['crval1'], run['info']['crval2'], run['survey'],
                                  run.get('extinction'))
    report.write_title(output, 'EXTINCTION CALCULATION RESULTS')
    report.write_lines(output, ['eg er ez'])
    report.write_values(output, [extinction['g'], extinction['r'], extinction['z']])

    colours_e = colours_from_tables(tables, extinction)
    colours_e.to_csv(os.path.join(tmpdir, 'cat-all-colours-e.csv'), index=False)
    report.write_title(output, 'GALACTIC EXTINCTION CORRECTED MAGNITUDES AND COLOURS')
    report.write_legend(output, report.COLOUR_LEGEND, m='MAGNITUDE0', c='(corrected) ')
    report.write_table(output, colours_e, header=False)

    averages_e = average_values(tables, colours_e, extinction)
    write_averages(output, 'GALACTIC EXTINCTION CORRECTED AVERAGE VALUES FROM ALL APERTURES', averages_e)

    photometry = write_aperture_table(run, coordinates, tables['r'], colours_e)
    return {'coordinates': coordinates, 'tables': tables, 'colours': colours_e, 'averages': averages_e,
            'extinction': extinction, 'photometry': photometry,
            'width': 2 * float(coordinates['Ras'].mean()),
            'dist_max': float(coordinates['distas'].max()), 'dist_min': float(coordinates['distas'].min())}


def write_averages(output, title, averages):
    magnitudes, colours = average_rows(averages)
    report.write_title(output, title)
    report.write_legend(output, report.AVERAGE_LEGEND)
    report.write_values(output, magnitudes)
    report.write_legend(output, report.AVERAGE_COLOUR_LEGEND)
    report.write_values(output, colours)


def write_aperture_table(run, coordinates, table_r, colours_e):
    """Coordinates, r band catalog and corrected colours of every aperture, one row per aperture."""
    catalog = table_r.to_pandas()[['OBJ_ID', 'AREA', 'AREA_ARCSEC2', 'SUM', 'SUM_ERROR', 'MAGNITUDE',
                                   'MAGNITUDE_ERROR', 'UPPERLIMIT_SIGMA', 'SN', 'SURFACE_BRIGHTNESS', 'SB_ERROR']]
    colours = colours_e[['MAGNITUDE-r', 'MAGNITUDE_ERROR-r', 'MAGNITUDE-g', 'MAGNITUDE_ERROR-g', 'MAGNITUDE-z',
                         'MAGNITUDE_ERROR-z', 'g-r', 'g-r-error', 'g-z', 'g-z-error', 'r-z', 'r-z-error']]
    photometry = pd.concat([coordinates.reset_index(drop=True), catalog.reset_index(drop=True),
                            colours.reset_index(drop=True)], axis=1)
    photometry.to_csv(os.path.join(run['tmpdir'], f"{run['name']}-photometry-apertures.csv"), index=False)

    output_apertures = os.path.join(run['tmpdir'], f"{run['name']}-output-apertures.txt")
    with open(output_apertures, 'w') as output_file:
        output_file.write(report.APERTURE_TABLE_HEADER + '\n')
        photometry.drop(columns=['MAGNITUDE-r', 'MAGNITUDE_ERROR-r']).to_csv(output_file, sep=' ', index=False,
                                                                             header=False, float_format='%.6g')
    return photometry

### Host and progenitor ###

def single_aperture_photometry(run, output, kind='host'):
    """Photometry of the host or the progenitor in a single circular aperture."""
    tmpdir, name, filter_band = run['tmpdir'], run['name'], run['filter']
    who = {'host': 'HOST', 'progenitor': 'PROGENITOR'}[kind]
    prefix = {'host': 'host', 'progenitor': 'prog'}[kind]
    nc_filter = os.path.join(tmpdir, f'nc-{filter_band}.fits')

    report.write_title(output, f'PHOTOMETRY MEASUREMENT ON THE {who}', rule=True)
    regions = stage_org.convert_regions(run['apdir'], tmpdir, name, kind).iloc[:1]
    coordinates = aperture_coordinates(regions, nc_filter, run['info'])
    report.write_title(output, f'{who} APERTURE')
    report.write_lines(output, ['X,Y (pix) Radius (pix) RA,Dec (deg) Radius (as) Distance to image centre (as)'])
    report.write_table(output, coordinates)

    aperture = make_circular_apertures(regions, os.path.join(tmpdir, f'{prefix}aper.fits'), nc_filter)
    catalogs = band_catalogs(aperture, tmpdir, filter_band, prefix, os.path.join(tmpdir, 'nc-{band}.fits'),
                             run['zeropoint'], values_hdu='INPUT-NO-SKY')
    tables = read_band_tables(catalogs)
    report.write_title(output, f'{who} PHOTOMETRY')
    report.write_band_catalogs(output, catalogs)

    extinction = run['extinction']
    letter = prefix[0]
    magnitudes = {b: float(tables[b]['MAGNITUDE'][0]) for b in tables}
    errors = {b: float(tables[b]['MAGNITUDE_ERROR'][0]) for b in tables}
    report.write_title(output, f'{who} APERTURE MAGNITUDES AND ERRORS')
    report.write_lines(output, [f'{letter}-mag-r {letter}-mag-r-err {letter}-mag-g {letter}-mag-g-err '
                                f'{letter}-mag-z {letter}-mag-z-err', report.DASHES])
    report.write_values(output, [v for b in ['r', 'g', 'z'] for v in (magnitudes[b], errors[b])])

    colours = colour_table([1], {b: [magnitudes[b]] for b in magnitudes}, {b: [errors[b]] for b in errors},
                           extinction).iloc[0]
    report.write_title(output, f'GALACTIC EXTINCTION CORRECTED {who} APERTURE MAGNITUDES AND ERRORS')
    report.write_lines(output, [f'{letter}-mag-ro {letter}-mag-r-err {letter}-mag-go {letter}-mag-g-err '
                                f'{letter}-mag-zo {letter}-mag-z-err', report.DASHES])
    report.write_values(output, [v for b in ['r', 'g', 'z']
                                 for v in (colours[f'MAGNITUDE-{b}'], colours[f'MAGNITUDE_ERROR-{b}'])])

    colour_values = [colours[f'{b1}-{b2}{e}'] for b1, b2 in COLOURS for e in ['', '-error']]
    report.write_title(output, f'GALACTIC EXTINCTION CORRECTED {who} COLOURS AND ERRORS')
    report.write_lines(output, [f'{letter}-(g-r)o {letter}-(g-r)o-err {letter}-(g-z)o {letter}-(g-z)o-err '
                                f'{letter}-(r-z)o {letter}-(r-z)o-err', report.DASHES])
    report.write_values(output, colour_values)

    sb = [v for b in ['r', 'g', 'z'] for v in (float(tables[b]['SURFACE_BRIGHTNESS'][0]),
                                                 float(tables[b]['SB_ERROR'][0]))]
    return {'ra': float(coordinates['RA'].iloc[0]), 'dec': float(coordinates['Dec'].iloc[0]),
            'dist': float(coordinates['distas'].iloc[0]), 'sb': sb, 'colours': colour_values}

### Polygons ###

def polygon_photometry(run, output, index):
    tmpdir, name, filter_band = run['tmpdir'], run['name'], run['filter']
    region_file = stage_org.region_filename(run['apdir'], name, f'polygon-{index}')
    polygon = stage_org.read_polygon_region(region_file)
    cutout, status = gnu.run_astcrop_polygon(os.path.join(tmpdir, f'nc-{filter_band}.fits'), polygon,
                                             os.path.join(tmpdir, f'polygon-cutout-{index}.fits'))
    if status == 0:
        shutil.copy(region_file, tmpdir)
    aperture, _ = gnu.run_astarithmetic([cutout, 'isblank'], os.path.join(tmpdir, f'polygon-aperture-{index}.fits'))

    report.write_title(output, f'POLYGON {index}')
    catalogs = band_catalogs(aperture, tmpdir, filter_band, f'polygon-{index}',
                             os.path.join(tmpdir, 'clumps-masked-{band}.fits'), run['zeropoint'],
                             upnum=cfg.polygon_upnum)
    tables = read_band_tables(catalogs)
    report.write_band_catalogs(output, catalogs)

    colours = colours_from_tables(tables, run['extinction']).iloc[0]
    report.write_lines(output, [report.DASHES,
                                'mag-r-0 mag-r-err mag-g-0 mag-g-err mag-z-0 mag-z-err (g-r)0 (g-r)-err '
                                '(g-z)0 (g-z)-err (r-z)0 (r-z)-err'])
    colour_values = [colours[f'{b1}-{b2}{e}'] for b1, b2 in COLOURS for e in ['', '-error']]
    report.write_values(output, [v for b in ['r', 'g', 'z']
                                 for v in (colours[f'MAGNITUDE-{b}'], colours[f'MAGNITUDE_ERROR-{b}'])]
                        + colour_values)
    sb = [v for b in ['r', 'g', 'z'] for v in (float(tables[b]['SURFACE_BRIGHTNESS'][0]),
                                                 float(tables[b]['SB_ERROR'][0]))]
    return {'sb': sb, 'colours': colour_values}

### Upper limit surface brightness ###

def ulsb_radius_pix(pixscale, radius_arcsec=None):
    if radius_arcsec is None:
        radius_arcsec = cfg.ulsb_radius_arcsec
    return radius_arcsec / (pixscale * 3600)


def upper_limit_sb(tmpdir, filter_band, zeropoint, centre, pixscale, mode='wcs', background=None,
                   values_template=None, values_hdu='INPUT-NO-SKY', upmask=None, output=None):
    """Catalogs of a 100 arcsec^2 circle for the SB limit and the upper limit SB, then the report block."""
    if background is None:
        background = os.path.join(tmpdir, 'nc-r.fits')
    if values_template is None:
        values_template = os.path.join(tmpdir, 'nc-{band}.fits')
    if upmask is None:
        upmask = os.path.join(tmpdir, f'nc-{filter_band}.fits')
    rpix = ulsb_radius_pix(pixscale)
    aperture, _ = gnu.run_astmkprof([gnu.profile_line(1, centre[0], centre[1], rpix)],
                                    os.path.join(tmpdir, 'aperture-ULSB.fits'),
                                    background=background, mode=mode)
    catalogs = {}
    for band in cfg.bands:
        catalogs[band], _ = gnu.run_astmkcatalog(aperture, os.path.join(tmpdir, f'cat-region-{band}-ULSB.fits'),
                                                 columns=gnu.PHOTOMETRY_COLUMNS + ['--upperlimit-sb'],
                                                 skip_existing=True,
                                                 values=values_template.format(band=band),
                                                 values_hdu=values_hdu,
                                                 upmask=upmask,
                                                 upnum=cfg.upnum, zeropoint=zeropoint)
    if output is None:
        return catalogs, None, None
    sblim, ulsb = report.write_sb_limit_block(output, catalogs)
    return catalogs, sblim, ulsb


def masked_image_centre(tmpdir, filter_band):
    with fits.open(os.path.join(tmpdir, f'masked-{filter_band}.fits')) as hdulist:
        header = hdulist[1].header
        return float(header['CRVAL1']), float(header['CRVAL2'])

### Global results ###

def global_result_line(name, ra, dec, host, sblim, ulsb, stream, stream_sb, stream_colours, progenitor, run_id,
                       aperture='apertures'):
    """One line of the global results table. Missing host or progenitor values are left blank."""
    blank = '--'
    if host is None:
        host = {'sb': 6 * [None], 'colours': 6 * [None]}
    values = [name, ra, dec] + host['sb'] + host['colours']
    values += [sblim[b] for b in ['r', 'g', 'z']] + [ulsb[b] for b in ['r', 'g', 'z']]
    values += [stream['dist_max'], stream['dist_min'], stream['width']]
    values += [stream['ulsigma'][b] for b in ['r', 'g', 'z']]
    values += list(stream_sb) + list(stream_colours)
    if progenitor:
        values += [progenitor['ra'], progenitor['dec'], progenitor['dist']] + progenitor['sb'] + progenitor['colours']
    else:
        values += 15 * [None]
    values += [run_id or blank, aperture]
    return ' '.join(blank if v is None else report.fmt(v) for v in values)


def write_global_results(results_dir, survey, lines):
    os.makedirs(results_dir, exist_ok=True)
    results = os.path.join(results_dir, f'{survey}-results.txt')
    new_file = not os.path.exists(results)
    with open(results, 'a') as results_file:
        if new_file:
            results_file.write(GLOBAL_HEADER + '\n')
        for line in lines:
            results_file.write(line + '\n')
    return results

### Step 2 ###

def run_photometry(run):
    """Step 2 of the stream pipeline: masks, photometry and report."""
    tmpdir, name, params = run['tmpdir'], run['name'], run['params']
    filter_band = params['filter']
    output = report.start_report(os.path.join(tmpdir, f'{name}-output.txt'))
    run['output'] = output
    run['filter'] = filter_band

    for band in cfg.bands:
        stage_org.require_file(os.path.join(tmpdir, f'nc-{band}.fits'), 'NoiseChisel output of step 1')
        stage_org.require_file(os.path.join(tmpdir, f'seg-{band}.fits'), 'Segment output of step 1')

    run['info'] = image_information(run['images'][filter_band], os.path.join(tmpdir, f'nc-{filter_band}.fits'))
    report.write_stream_header(output, name, params, run['images'], run['info'], run['zeropoint'])

    label = det_f.host_label(tmpdir, filter_band)
    run['label'] = label
    det_f.build_masks(tmpdir, filter_band, label)

    growth_result = None
    if params['mask']:
        growth_result, _, _ = det_f.automatic_stream_photometry(tmpdir, filter_band, run['zeropoint'], output)

    stream = stream_aperture_photometry(run, output)
    run['extinction'] = stream['extinction']
    stream['ulsigma'] = {b: stream['averages'][f'UPPERLIMIT_SIGMA-{b}'] for b in cfg.bands}

    host = single_aperture_photometry(run, output, 'host') if params['host'] else None
    progenitor = single_aperture_photometry(run, output, 'progenitor') if params['progenitor'] else None

    polygons = []
    if params['polygon']:
        report.write_title(output, 'PHOTOMETRY MEASURED IN POLYGON APERTURES', rule=True)
        for index in range(1, params['polygon'] + 1):
            polygons.append(polygon_photometry(run, output, index))

    centre = masked_image_centre(tmpdir, filter_band)
    ulsb_catalogs, sblim, ulsb = upper_limit_sb(tmpdir, filter_band, run['zeropoint'], centre,
                                                run['info']['pixscale'], output=output)

    if run['global_results']:
        _, stream_colours = average_rows(stream['averages'])
        stream_sb = [stream['averages'][f'{c}-{b}'] for b in ['r', 'g', 'z']
                     for c in ['SURFACE_BRIGHTNESS', 'SB_ERROR']]
        args = (name, run['info']['crval1'], run['info']['crval2'], host, sblim, ulsb, stream)
        lines = [global_result_line(*args, stream_sb, stream_colours, progenitor, params['run_id'])]
        for index, polygon in enumerate(polygons, start=1):
            lines.append(global_result_line(*args, polygon['sb'], polygon['colours'], None, params['run_id'],
                                            aperture=f'polygon-{index}'))
        write_global_results(run['results_dir'], run['survey'], lines)

    print(f'The photometry report has been saved into {output}')
    return {'stream': stream, 'host': host, 'progenitor': progenitor, 'polygons': polygons,
            'ulsb_catalogs': ulsb_catalogs, 'sblim': sblim, 'ulsb': ulsb, 'growth': growth_result}
