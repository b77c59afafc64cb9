"""
Growth of the ellipse that masks the host galaxy.

The ellipse semi-major axis is multiplied by a factor that grows by a fixed
step on every pass. After each pass the surface brightness of the remaining
stream is measured. The loop stops when the surface brightness of every band
has stopped growing (``new - old <= tolerance``) and the r band is faint
enough to be out of the host (``sb_floor - SB_r <= floor_tolerance``).
"""
import logging

logger = logging.getLogger(__name__)


def band_converged(sb_new, sb_old, tolerance):
    return (sb_new - sb_old) <= tolerance


def out_of_host(sb_reference, sb_floor, floor_tolerance):
    return (sb_floor - sb_reference) <= floor_tolerance


def grow_ellipse(measure, semi_major, factor=2.0, step=0.2, sb_start=21.0, tolerance=0.1,
                 sb_floor=25.0, floor_tolerance=0.1, max_iterations=100, bands=('r', 'g'),
                 reference_band='r'):
    """Run the growth loop.

    ``measure(factor, semi_major)`` is called once per pass and must return a dict
    with the surface brightness of every band in ``bands``.

    Returns a dict with the final factor and semi-major axis, the last surface
    brightness per band, the number of iterations, whether the loop converged and
    the history of every pass.
    """
    sb = {band: sb_start for band in bands}
    history = []
    converged = False
    semi_major_now = semi_major

    for iteration in range(1, max_iterations + 1):
        factor = round(factor + step, 6)
        semi_major_now = semi_major * factor
        sb_new = measure(factor, semi_major_now)

        bands_done = {}
        deltas = {}
        for band in bands:
            deltas[band] = sb_new[band] - sb[band]
            bands_done[band] = band_converged(sb_new[band], sb[band], tolerance)
            sb[band] = sb_new[band]
        outside = out_of_host(sb[reference_band], sb_floor, floor_tolerance)

        history.append({'iteration': iteration, 'factor': factor, 'semi_major': semi_major_now,
                        'sb': dict(sb), 'delta': deltas, 'outside': outside})
        logger.info(f'factor {factor:.2f}: ' + ' '.join(f'SB_{b}={sb[b]:.3f} (delta {deltas[b]:+.3f})'
                                                       for b in bands))

        if all(bands_done.values()) and outside:
            converged = True
            break

    if not converged:
        logger.warning(f'The ellipse growth did not converge after {max_iterations} iterations')

    return {'factor': factor, 'semi_major': semi_major_now, 'sb': sb,
            'iterations': len(history), 'converged': converged, 'history': history}
