# Empty sky image of a galaxy: the host is replaced by the sky of a displaced ellipse
# Step 1: detection and segmentation of the g, r and z images
# Step 2: host ellipse, translation of the displaced sky and upper limit SB
import empty_sky_functions as empty_sky
import detection_functions as det_f
import gnuastro_functions as gnu
import stageOrganizer as stage_org
import argparse
import logging
import sys
import os

logger = logging.getLogger(__name__)


def parse_arguments(argv=None):
    parser = argparse.ArgumentParser(description='Empty sky image around the host galaxy')
    stage_org.add_run_arguments(parser, max_step=2, photometry_toggles=False)
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_arguments(argv)
    stage_org.welcome('Generation of an empty sky image for the host galaxy')

    params = stage_org.collect_run_parameters(args, max_step=2, photometry_toggles=False)
    stage_org.setup_logging(os.path.join(args.bdir, 'tmp'), params['name'], debug=args.debug)
    run = stage_org.build_run(args, params)

    ### Step 1 ###
    if params['step'] == 1:
        stage_org.step_banner(1, 'detect_and_segment')
        det_f.detect_and_segment(run['images'], run['tmpdir'])

    ### Step 2 ###
    if params['step'] == 2:
        stage_org.require_apdir(run)
        stage_org.step_banner(2, 'generate_empty_sky')
        empty_sky.generate_empty_sky(run)

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
