# Pipeline to measure the photometry of stellar streams around galaxies with Gnuastro
# Step 1: detection and segmentation of the g, r and z images
# Step 2: masks and photometry of the stream, host, progenitor and polygons
# Step 3: PDF figures and summary document
# Step 4: LaTeX macros and paper
import photometry_functions as phot_f
import detection_functions as det_f
import gnuastro_functions as gnu
import report_functions as report
import stageOrganizer as stage_org
import visualize_stream
import argparse
import logging
import sys
import os

logger = logging.getLogger(__name__)


def parse_arguments(argv=None):
    parser = argparse.ArgumentParser(description='Photometry of the stellar stream around a galaxy')
    stage_org.add_run_arguments(parser, max_step=4)
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_arguments(argv)
    stage_org.welcome('Photometry of stellar streams around galaxies')

    params = stage_org.collect_run_parameters(args, max_step=4)
    stage_org.setup_logging(os.path.join(args.bdir, 'tmp'), params['name'], debug=args.debug)
    run = stage_org.build_run(args, params)
    step = params['step']

    ### Step 1 ###
    if step == 1:
        stage_org.step_banner(1, 'detect_and_segment')
        det_f.detect_and_segment(run['images'], run['tmpdir'])
        print(f'The detection and segmentation images have been saved into {run["tmpdir"]}')

    ### Step 2 ###
    if step == 2:
        stage_org.require_apdir(run)
        stage_org.step_banner(2, 'run_photometry')
        result = phot_f.run_photometry(run)
        visualize_stream.run_step2_images(run, result['stream']['coordinates'])

    ### Step 3 ###
    if step == 3:
        stage_org.step_banner(3, 'run_figures')
        visualize_stream.run_figures(run)

    ### Step 4 ###
    if step == 4:
        stage_org.step_banner(4, 'write_latex_macros')
        filter_band = params['filter']
        ulsb_catalog = stage_org.require_file(os.path.join(run['tmpdir'], f'cat-region-{filter_band}-ULSB.fits'),
                                              'upper limit catalog of step 2')
        report.write_latex_macros(run['texdir'], filter_band, ulsb_catalog)
        paper = report.build_paper(params['name'], run['texdir'])
        if paper is not None:
            print(f'The paper has been saved as {paper}')

    print('')
    print(80 * '-')
    return run


if __name__ == '__main__':
    try:
        main()
    except (stage_org.PipelineInputError, gnu.GnuastroError) as err:
        logger.error(str(err))
        print(f'ERROR: {err}')
        sys.exit(1)
