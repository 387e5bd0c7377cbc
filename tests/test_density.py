"""
Tests for kernel-density smoothing and the moving average.
"""
import numpy as np
import pytest
from scipy.stats import norm

from pydisturb.density import mds_smooth, moving_average, window_offsets
from pydisturb.exceptions import InvalidParameterError


WINDOW_CASES = [
    pytest.param(30, -15, 14, id="even_k30"),
    pytest.param(11, -5, 5, id="odd_k11"),
    pytest.param(1, 0, 0, id="k1"),
]


class TestWindowOffsets:

    @pytest.mark.parametrize("k,first,last", WINDOW_CASES)
    def test_bounds(self, k, first, last):
        offsets = window_offsets(k)
        assert len(offsets) == k
        assert offsets[0] == first
        assert offsets[-1] == last


class TestMdsSmooth:
    """Tests for mds_smooth."""

    def test_zeros_stay_zero(self):
        assert mds_smooth(np.zeros(50)) == pytest.approx(np.zeros(50))

    def test_length_preserved(self):
        assert len(mds_smooth(np.arange(7.0), k=30)) == 7

    def test_spike_gives_scaled_kernel(self):
        """A single spike is spread as the truncated Gaussian kernel."""
        x = np.zeros(61)
        x[30] = 1.0
        smoothed = mds_smooth(x, k=30, bw=5.0, st=7.0)
        assert smoothed[30] == pytest.approx(norm.pdf(0, scale=5.0) * 100 / 7.0)
        assert smoothed[33] == pytest.approx(norm.pdf(3, scale=5.0) * 100 / 7.0)
        assert smoothed[27] == pytest.approx(norm.pdf(-3, scale=5.0) * 100 / 7.0)
        # outside the window the spike has no influence
        assert smoothed[30 + 15] == pytest.approx(norm.pdf(15, scale=5.0) * 100 / 7.0)
        assert smoothed[30 - 15] == 0.0
        assert smoothed[30 + 16] == 0.0

    def test_spike_maximum_at_spike(self):
        x = np.zeros(100)
        x[40] = 25.0
        assert int(np.argmax(mds_smooth(x))) == 40

    def test_linear_in_values(self):
        rng = np.random.default_rng(3)
        a, b = rng.random(40), rng.random(40)
        assert mds_smooth(a + 2 * b) == pytest.approx(mds_smooth(a) + 2 * mds_smooth(b))

    def test_nan_counts_as_zero(self):
        x = np.array([0.0, np.nan, 1.0, 0.0])
        assert mds_smooth(x, k=3) == pytest.approx(mds_smooth([0.0, 0.0, 1.0, 0.0], k=3))

    def test_empty(self):
        assert len(mds_smooth([])) == 0

    @pytest.mark.parametrize("kwargs", [
        pytest.param({'k': 0}, id="k_zero"),
        pytest.param({'bw': 0.0}, id="bw_zero"),
        pytest.param({'st': -1.0}, id="st_negative"),
    ])
    def test_invalid_parameters(self, kwargs):
        with pytest.raises(InvalidParameterError):
            mds_smooth(np.ones(5), **kwargs)


class TestMovingAverage:

    def test_centered_partial_windows(self):
        result = moving_average([1.0, 2.0, 3.0, 4.0, 5.0], window=3)
        assert result == pytest.approx([1.5, 2.0, 3.0, 4.0, 4.5])

    def test_constant(self):
        assert moving_average([4.0] * 10, window=5) == pytest.approx([4.0] * 10)
