# Mock images from simulated surface brightness maps
# noise: Gaussian noise for a range of SB limits (option 0: subhalo array, 1: one image, 2: one image and measurement)
# sky: real empty sky background (option 1: image, 2: image and measurement)
import gnuastro_functions as gnu
import stageOrganizer as stage_org
import stream_config as cfg
import mock_images
import argparse
import logging
import sys

logger = logging.getLogger(__name__)


def parse_arguments(argv=None):
    parser = argparse.ArgumentParser(description='Mock images with noise or real sky background')
    parser.add_argument('-d', '--debug', action='store_true', help='Print debug messages on the terminal')
    parser.add_argument('--zeropoint', type=float, default=cfg.zeropoint)
    subparsers = parser.add_subparsers(dest='command', required=True)

    noise = subparsers.add_parser('noise', help='Images with noise for SB limits sblimit1 to sblimit2')
    noise.add_argument('option', type=int, choices=[0, 1, 2])
    noise.add_argument('image', help='Surface brightness map (ignored with option 0)')
    noise.add_argument('sblimit1', type=int)
    noise.add_argument('sblimit2', type=int)
    noise.add_argument('inpdir')
    noise.add_argument('outdir')

    sky = subparsers.add_parser('sky', help='Image with the background of an empty sky image')
    sky.add_argument('option', type=int, choices=[1, 2])
    sky.add_argument('image', help='Surface brightness map')
    sky.add_argument('emptysky', help='Empty sky image added to the map')
    sky.add_argument('inpdir')
    sky.add_argument('outdir')
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_arguments(argv)
    stage_org.welcome('Mock images of stellar streams')
    stage_org.setup_logging(args.outdir, f'mock-{args.command}', debug=args.debug)

    if args.command == 'noise':
        if args.sblimit2 < args.sblimit1:
            raise stage_org.PipelineInputError('sblimit2 must not be smaller than sblimit1')
        stage_org.step_banner(1, 'run_noise')
        return mock_images.run_noise(args.option, args.image, args.sblimit1, args.sblimit2, args.inpdir,
                                     args.outdir, zeropoint=args.zeropoint)

    stage_org.step_banner(1, 'run_sky')
    return mock_images.run_sky(args.option, args.image, args.emptysky, args.inpdir, args.outdir,
                               zeropoint=args.zeropoint)


if __name__ == '__main__':
    try:
        main()
    except (stage_org.PipelineInputError, gnu.GnuastroError) as err:
        logger.error(str(err))
        print(f'ERROR: {err}')
        sys.exit(1)
