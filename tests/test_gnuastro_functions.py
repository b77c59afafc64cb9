"""Tests for the Gnuastro command wrappers and catalog readers."""
from conftest import write_catalog
import gnuastro_functions as gnu
import numpy as np
import pytest


class TestOptions:

    def test_profile_line(self):
        assert gnu.profile_line(1, 10, 20, 5) == '1 10 20 5 5 0 0 1 1 1'
        assert gnu.profile_line(2, 1.5, 2.5, 30, position_angle=45, axis_ratio=0.5, value=2) == \
            '2 1.5 2.5 5 30 0 45 0.5 2 1'

    def test_noisechisel(self):
        output, options = gnu.determine_astnoisechisel_options('in.fits', 'nc.fits', 'kernel.fits', hdu=0)
        assert output == 'nc.fits'
        assert options == ['in.fits', '-h0', '--kernel=kernel.fits', '--tilesize=40,40',
                           '--detgrowmaxholesize=10000', '--qthresh=0.3', '--output=nc.fits']

    def test_mkcatalog_upper_limit(self):
        _, options = gnu.determine_astmkcatalog_options('aper.fits', 'cat.fits', ['--ids', '--sb'],
                                                        values='nc-r.fits', values_hdu='INPUT-NO-SKY',
                                                        upmask='nc-g.fits', upnum=20, zeropoint=22.5)
        assert options[:2] == ['aper.fits', '-h1']
        assert '--valuesfile=nc-r.fits' in options
        assert '--checkuplim=1' in options
        assert '--upnum=20' in options
        assert '--upmaskfile=nc-g.fits' in options
        assert '--upmaskhdu=DETECTIONS' in options
        assert options[-3:] == ['--ids', '--sb', '--output=cat.fits']

    def test_mkcatalog_without_values(self):
        _, options = gnu.determine_astmkcatalog_options('lab.fits', 'cat.fits', gnu.AREA_COLUMNS)
        assert options == ['lab.fits', '-h1', '--ids', '--area', '--output=cat.fits']

    def test_mkprof_replace(self):
        _, options = gnu.determine_astmkprof_options('aper.fits', background='nc.fits', backhdu='INPUT-NO-SKY',
                                                     replace=True)
        assert options[:3] == ['--background=nc.fits', '--backhdu=INPUT-NO-SKY', '--clearcanvas']
        assert '--replace' in options
        assert options[-1] == '--output=aper.fits'

    def test_polygon_crop(self):
        _, options = gnu.determine_astcrop_polygon_options('nc.fits', '1,2:3,4:5,6', 'crop.fits')
        assert options == ['--mode=img', '-hINPUT-NO-SKY', '--polygon=1,2:3,4:5,6', 'nc.fits', '--polygonout',
                           '--output=crop.fits']


class TestRunProgram:

    def test_existing_output_is_kept(self, tmp_path, commands):
        output = tmp_path / 'nc-r.fits'
        output.write_text('')
        assert gnu.run_program(str(output), ['astnoisechisel', 'in.fits']) == (str(output), 1)
        assert commands.calls == []

    def test_existing_output_is_remade(self, tmp_path, commands):
        output = tmp_path / 'cat.fits'
        output.write_text('')
        assert gnu.run_program(str(output), ['astmkcatalog'], skip_existing=False) == (str(output), 0)
        assert commands.programs == ['astmkcatalog']

    def test_debug_returns_command(self, commands):
        output, cmd_args = gnu.run_astarithmetic(['a.fits', 2, 'x'], 'b.fits', dbg=True)
        assert output == 'b.fits'
        assert cmd_args == ['astarithmetic', 'a.fits', '2', 'x', '--output=b.fits']
        assert commands.calls == []

    def test_mkprof_catalog_on_stdin(self, tmp_path, commands):
        gnu.run_astmkprof(['1 10 10 5 3 0 0 1 1 1', '2 20 20 5 3 0 0 1 2 1'], str(tmp_path / 'aper.fits'))
        _, stdin = commands.calls[0]
        assert stdin == '1 10 10 5 3 0 0 1 1 1\n2 20 20 5 3 0 0 1 2 1\n'

    def test_fits_update_always_runs(self, tmp_path, commands):
        structure = tmp_path / 'wcs-structure.fits'
        structure.write_text('')
        gnu.run_astfits_update(str(structure), {'CRPIX1': 1025, 'CRVAL1': 180})
        cmd, _ = commands.calls[0]
        assert cmd == ['astfits', str(structure), '-h1', '--update=CRPIX1,1025', '--update=CRVAL1,180']

    def test_arithmetic_value(self, commands):
        commands.output = '1.234e-02\n'
        value = gnu.run_astarithmetic_value([28, 22.5, 'sb-to-counts'])
        assert value == pytest.approx(0.01234)
        cmd, _ = commands.calls[0]
        assert cmd == ['astarithmetic', '28', '22.5', 'sb-to-counts', '--quiet']


class TestExecute:

    def test_missing_binary(self, monkeypatch):
        monkeypatch.setattr(gnu, 'find_binary', lambda program: None)
        with pytest.raises(gnu.GnuastroError) as exc_info:
            gnu.execute(['astnoisechisel', 'in.fits'])
        assert exc_info.value.program == 'astnoisechisel'
        assert exc_info.value.returncode == -42

    def test_non_zero_exit(self):
        with pytest.raises(gnu.GnuastroError) as exc_info:
            gnu.execute(['sh', '-c', 'echo broken >&2; exit 3'])
        assert exc_info.value.returncode == 3
        assert 'broken' in str(exc_info.value)

    def test_random_seed_is_fixed(self):
        assert gnu.execute(['sh', '-c', 'echo $GSL_RNG_SEED']).strip() == '1599251212'

    def test_stdin(self):
        assert gnu.execute(['sh', '-c', 'cat'], stdin='1 1 1 4 0 0 0 0 1 1\n') == '1 1 1 4 0 0 0 0 1 1\n'


class TestCatalogReaders:

    def test_old_column_names(self, tmp_path):
        catalog = write_catalog(tmp_path / 'cat.fits', {'OBJ_ID': [1, 2], 'BRIGHTNESS': [3.0, 4.0],
                                                        'AREAARCSEC2': [10.0, 20.0]})
        table = gnu.read_catalog(catalog)
        assert 'SUM' in table.colnames
        assert 'AREA_ARCSEC2' in table.colnames
        assert 'BRIGHTNESS' not in table.colnames

    def test_largest_label(self, tmp_path):
        catalog = write_catalog(tmp_path / 'cat.fits', {'OBJ_ID': [1, 2, 3], 'AREA': [10, 5000, 20]})
        assert gnu.largest_label(catalog) == 2

    def test_largest_label_prefers_full_area(self, tmp_path):
        catalog = write_catalog(tmp_path / 'cat.fits', {'OBJ_ID': [1, 2], 'AREA': [100, 10],
                                                        'AREA_FULL': [100, 900]})
        assert gnu.largest_label(catalog) == 2

    def test_sb_limit_cards(self, ulsb_catalog):
        cards, sblmag = gnu.sb_limit_cards(ulsb_catalog(sblmag=27.35))
        assert sblmag == pytest.approx(27.35)
        assert [card.split('=')[0].strip() for card in cards] == ['SBLNSIG', 'SBLAREA', 'SBLMAG']

    def test_sb_limit_missing(self, tmp_path):
        catalog = write_catalog(tmp_path / 'cat.fits', {'OBJ_ID': [1]})
        cards, sblmag = gnu.sb_limit_cards(catalog)
        assert cards == []
        assert np.isnan(sblmag)
