"""Tests for the translation geometry and the fill of the host with displaced sky."""
import empty_sky_functions as empty_sky
import detection_functions as det_f
import stageOrganizer as stage_org
import pytest


class TestGeometry:

    def test_translation_offsets(self):
        assert empty_sky.translation_offsets((1000.4, 800.2), (1312.3, 961.0)) == (-312, -161)
        assert empty_sky.translation_offsets((500.0, 500.0), (400.2, 450.6)) == (100, 49)

    def test_crop_section_negative_shift(self):
        assert empty_sky.crop_section(-312, -161, 2290, 2290) == '314:2603,163:2452'

    def test_crop_section_positive_shift(self):
        assert empty_sky.crop_section(100, 49, 1000, 800) == '2:1001,2:801'


class TestHostEllipse:

    def test_saved_geometry_is_reused(self, tmp_path, monkeypatch):
        geometry = {'x': 1000.4, 'y': 800.2, 'position_angle': 35.0, 'axis_ratio': 0.6, 'semi_major': 120.0,
                    'semi_minor': 72.0, 'factor': 3.0, 'grown_semi_major': 360.0}
        stage_org.save_ellipse_geometry(geometry, str(tmp_path), 'emptysky')

        def not_called(*args, **kwargs):
            raise AssertionError('the host ellipse should be read from the CSV file')
        monkeypatch.setattr(det_f, 'automatic_host_ellipse', not_called)
        final = empty_sky.host_ellipse(str(tmp_path), 'r', 22.5, str(tmp_path / 'out.txt'))
        assert final['grown_semi_major'] == pytest.approx(360.0)

    def test_geometry_without_growth_is_grown(self, tmp_path, monkeypatch):
        stage_org.save_ellipse_geometry({'x': 10.0, 'y': 10.0, 'semi_major': 5.0}, str(tmp_path), 'emptysky')
        grown = {}

        def fake_grow(tmpdir, filter_band, geometry, zeropoint, output, parameters=None, pipeline='stream'):
            grown['parameters'] = parameters
            grown['pipeline'] = pipeline
            return {}, dict(geometry, grown_semi_major=12.5)
        monkeypatch.setattr(det_f, 'automatic_host_ellipse', lambda tmpdir, f: {'x': 10.0, 'y': 10.0,
                                                                                  'semi_major': 5.0})
        monkeypatch.setattr(det_f, 'grow_host_ellipse', fake_grow)
        final = empty_sky.host_ellipse(str(tmp_path), 'r', 22.5, str(tmp_path / 'out.txt'))
        assert final['grown_semi_major'] == 12.5
        assert grown['parameters']['step'] == 0.25
        assert grown['pipeline'] == 'emptysky'

    def test_stream_ellipse_is_not_reused(self, tmp_path, monkeypatch):
        stream_geometry = {'x': 10.0, 'y': 10.0, 'semi_major': 5.0, 'factor': 2.4, 'grown_semi_major': 12.0}
        stage_org.save_ellipse_geometry(stream_geometry, str(tmp_path))
        grown = {}

        def fake_grow(tmpdir, filter_band, geometry, zeropoint, output, parameters=None, pipeline='stream'):
            grown['parameters'] = parameters
            return {}, dict(geometry, grown_semi_major=13.75)
        monkeypatch.setattr(det_f, 'automatic_host_ellipse', lambda tmpdir, f: {'x': 10.0, 'y': 10.0,
                                                                                  'semi_major': 5.0})
        monkeypatch.setattr(det_f, 'grow_host_ellipse', fake_grow)
        final = empty_sky.host_ellipse(str(tmp_path), 'r', 22.5, str(tmp_path / 'out.txt'))
        assert final['grown_semi_major'] == 13.75
        assert grown['parameters']['tolerance'] == 0.01
        assert stage_org.load_ellipse_geometry(str(tmp_path))['grown_semi_major'] == 12.0


class TestFillHost:

    def test_commands(self, tmp_path, commands):
        tmpdir = str(tmp_path)
        output = empty_sky.fill_host_with_sky(tmpdir, 'g', f'{tmpdir}/ellipse-on-host.fits', -312, -161,
                                              '314:2603,163:2452')
        assert output == f'{tmpdir}/image-emptysky-g.fits'
        assert commands.programs == ['astwarp', 'astcrop', 'astarithmetic']
        warp, crop, arithmetic = [cmd for cmd, _ in commands.calls]
        assert warp[1] == '--translate=-312,-161'
        assert f'{tmpdir}/nc-g.fits' in warp
        assert '--section=314:2603,163:2452' in crop
        assert arithmetic[-2:] == ['where', f'--output={tmpdir}/image-emptysky-g.fits']
