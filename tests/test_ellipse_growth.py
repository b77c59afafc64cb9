"""Tests for the growth loop of the host ellipse."""
import ellipse_growth as growth
import pytest


def sequence_measure(values):
    """measure() returning the next SB of every band on each call, recording the factors."""
    calls = []

    def measure(factor, semi_major):
        calls.append((factor, semi_major))
        return {band: sbs[len(calls) - 1] for band, sbs in values.items()}
    return measure, calls


class TestCriteria:

    def test_band_converged_is_signed(self):
        assert growth.band_converged(25.05, 25.0, 0.1)
        assert growth.band_converged(24.0, 25.0, 0.1)
        assert not growth.band_converged(25.2, 25.0, 0.1)

    def test_out_of_host(self):
        assert growth.out_of_host(25.0, 25.0, 0.1)
        assert growth.out_of_host(24.95, 25.0, 0.1)
        assert not growth.out_of_host(24.5, 25.0, 0.1)


class TestGrowEllipse:

    def test_converges_when_sb_flattens(self):
        measure, calls = sequence_measure({'r': [23.0, 24.0, 24.95, 25.0],
                                           'g': [23.5, 24.5, 25.45, 25.5]})
        result = growth.grow_ellipse(measure, 10.0)
        assert result['converged']
        assert result['iterations'] == 4
        assert result['factor'] == pytest.approx(2.8)
        assert result['semi_major'] == pytest.approx(28.0)
        assert result['sb'] == {'r': 25.0, 'g': 25.5}
        assert [factor for factor, _ in calls] == pytest.approx([2.2, 2.4, 2.6, 2.8])

    def test_needs_every_band(self):
        # r is flat from the second pass, g keeps getting fainter until the fourth
        measure, _ = sequence_measure({'r': [25.0, 25.0, 25.0, 25.0],
                                       'g': [23.0, 24.0, 25.0, 25.05]})
        result = growth.grow_ellipse(measure, 10.0)
        assert result['iterations'] == 4

    def test_needs_faint_reference_band(self):
        # flat but still on the host until the SB reaches the floor
        measure, _ = sequence_measure({'r': [24.0, 24.0, 24.5, 25.0, 25.0],
                                       'g': [24.0, 24.0, 24.0, 24.0, 24.0]})
        result = growth.grow_ellipse(measure, 10.0, step=0.5)
        assert result['iterations'] == 5
        assert result['factor'] == pytest.approx(4.5)
        assert [entry['outside'] for entry in result['history']] == [False, False, False, True, True]

    def test_brighter_sb_counts_as_converged(self):
        measure, _ = sequence_measure({'r': [26.0, 25.5], 'g': [26.0, 25.5]})
        result = growth.grow_ellipse(measure, 10.0)
        assert result['converged']
        assert result['iterations'] == 2
        assert result['history'][-1]['delta']['r'] == pytest.approx(-0.5)

    def test_bounded_iterations(self):
        def measure(factor, semi_major):
            return {'r': 20.0 + factor, 'g': 20.0 + factor}

        result = growth.grow_ellipse(measure, 10.0, step=1.0, max_iterations=5)
        assert not result['converged']
        assert result['iterations'] == 5
        assert result['factor'] == pytest.approx(7.0)

    def test_history(self):
        measure, _ = sequence_measure({'r': [25.0, 25.0], 'g': [24.0, 24.05]})
        result = growth.grow_ellipse(measure, 20.0, factor=1.0, step=0.25)
        first = result['history'][0]
        assert first['iteration'] == 1
        assert first['factor'] == pytest.approx(1.25)
        assert first['semi_major'] == pytest.approx(25.0)
        assert first['delta']['r'] == pytest.approx(4.0)
