"""Step 2 of the stream and empty sky pipelines run end to end with the Gnuastro programs recorded."""
import empty_sky_functions as empty_sky
import photometry_functions as phot_f
import report_functions as report
import stageOrganizer as stage_org
import pytest
import os


def output_of(cmd):
    return cmd[-1].replace('--output=', '')


class TestStreamPhotometry:

    @pytest.mark.parametrize('mask', [0, 1])
    def test_apertures_only(self, step_run, commands, mask):
        run = step_run(mask=mask)
        result = phot_f.run_photometry(run)
        output = os.path.join(run['tmpdir'], 'NGC922-output.txt')
        assert report.report_sections(output) == report.expected_sections(mask=mask, iterations=2)
        assert result['host'] is None and result['progenitor'] is None
        assert result['sblim'] == {'r': 28.2, 'g': 28.2, 'z': 28.2}
        assert 'astquery' not in commands.programs

    def test_host_and_progenitor(self, step_run, commands):
        run = step_run(host=1, progenitor=1)
        result = phot_f.run_photometry(run)
        output = os.path.join(run['tmpdir'], 'NGC922-output.txt')
        assert report.report_sections(output) == report.expected_sections(host=1, progenitor=1)
        assert result['host']['dist'] == pytest.approx(0.0, abs=1e-6)
        assert result['progenitor']['dist'] == pytest.approx(0.262 * (20 ** 2 + 10 ** 2) ** 0.5, rel=1e-3)
        assert result['host']['colours'][0] == pytest.approx(0.6 - 0.1 + 0.07)

    @pytest.mark.parametrize('polygon', [1, 2])
    def test_polygons(self, step_run, commands, polygon):
        run = step_run(polygon=polygon, mask=1, host=1, progenitor=1)
        result = phot_f.run_photometry(run)
        output = os.path.join(run['tmpdir'], 'NGC922-output.txt')
        assert report.report_sections(output) == report.expected_sections(mask=1, host=1, progenitor=1,
                                                                           polygon=polygon, iterations=2)
        assert len(result['polygons']) == polygon
        crops = commands.commands_of('astcrop')
        assert [c for c in crops if '--polygon=40,40:60,40:60,60' in c]
        assert os.path.exists(os.path.join(run['tmpdir'], 'NGC922-polygon-image.reg'))

    def test_apertures_from_region_file(self, step_run, commands):
        run = step_run()
        result = phot_f.run_photometry(run)
        assert result['stream']['coordinates'][['X', 'Y', 'R']].values.tolist() == [[51.0, 51.0, 5.0],
                                                                                     [61.0, 51.0, 5.0]]
        apertures = [stdin for cmd, stdin in commands.calls
                     if cmd[0] == 'astmkprof' and output_of(cmd).endswith('/apertures.fits')]
        assert apertures[0].splitlines()[1].startswith('2 61.0 51.0 5 5.0 ')
        assert os.path.exists(os.path.join(run['apdir'], 'NGC922-XYR-apertures.txt'))
        assert os.path.exists(os.path.join(run['tmpdir'], 'NGC922-photometry-apertures.csv'))

    def test_masking_band_clumps(self, step_run, commands):
        run = step_run(filter_band='g', mask=1)
        phot_f.run_photometry(run)
        clumps = [cmd for cmd in commands.commands_of('astarithmetic')
                  if os.path.basename(output_of(cmd)).startswith('clumps-masked-')]
        assert len(clumps) == 3
        for cmd in clumps:
            assert os.path.join(run['tmpdir'], 'seg-g.fits') in cmd
            assert os.path.join(run['tmpdir'], 'seg-r.fits') not in cmd

    def test_host_masked_values(self, step_run, commands):
        run = step_run(mask=1)
        phot_f.run_photometry(run)
        stream_catalogs = [cmd for cmd in commands.commands_of('astmkcatalog')
                           if cmd[1].endswith('/apertures.fits')]
        assert len(stream_catalogs) == 3
        for cmd in stream_catalogs:
            assert any('clumps-host-masked-' in arg for arg in cmd)
        geometry = stage_org.load_ellipse_geometry(run['tmpdir'])
        assert geometry['grown_semi_major'] == pytest.approx(24.0)

    def test_global_results(self, step_run, commands):
        run = step_run(polygon=2)
        run['global_results'] = True
        phot_f.run_photometry(run)
        with open(os.path.join(run['results_dir'], 'DES-results.txt')) as results:
            lines = results.read().splitlines()
        assert lines[0] == phot_f.GLOBAL_HEADER
        assert [line.split()[-1] for line in lines[1:]] == ['apertures', 'polygon-1', 'polygon-2']

    def test_missing_segmentation(self, step_run, commands):
        run = step_run()
        os.remove(os.path.join(run['tmpdir'], 'seg-z.fits'))
        with pytest.raises(stage_org.PipelineInputError, match='seg-z.fits'):
            phot_f.run_photometry(run)


class TestEmptySky:

    def test_report_and_crop(self, step_run, commands):
        run = step_run()
        stream_geometry = {'x': 51.0, 'y': 51.0, 'semi_major': 10.0, 'factor': 3.0, 'grown_semi_major': 30.0}
        stage_org.save_ellipse_geometry(stream_geometry, run['tmpdir'])
        images = empty_sky.generate_empty_sky(run)
        output = os.path.join(run['tmpdir'], 'NGC922-emptysky-output.txt')
        assert report.report_sections(output) == report.expected_sections('emptysky', iterations=2)
        assert images['z'] == os.path.join(run['tmpdir'], 'image-emptysky-z.fits')

        crops = commands.commands_of('astcrop')
        assert len(crops) == 3
        assert all('--section=12:112,7:107' in cmd for cmd in crops)
        assert '--translate=-10,-5' in commands.commands_of('astwarp')[0]

        assert stage_org.load_ellipse_geometry(run['tmpdir'])['grown_semi_major'] == 30.0
        emptysky_geometry = stage_org.load_ellipse_geometry(run['tmpdir'], 'emptysky')
        assert emptysky_geometry['grown_semi_major'] == pytest.approx(25.0)

    def test_missing_displaced_ellipse(self, step_run, commands):
        run = step_run()
        os.remove(stage_org.region_filename(run['apdir'], 'NGC922', 'displaced'))
        with pytest.raises(stage_org.PipelineInputError, match='displaced ellipse'):
            empty_sky.generate_empty_sky(run)
