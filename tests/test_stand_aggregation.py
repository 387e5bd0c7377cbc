"""
Tests for the stand bootstrap consensus, the nearest-peak join and the
proportion of plots disturbed.
"""
import numpy as np
import pandas as pd
import pytest

from pydisturb.event_join import JOINED_COLUMNS, join_nearest_peak, nearest_positions
from pydisturb.exceptions import MissingColumnError
from pydisturb.resampling import (
    group_key,
    map_replicates,
    replicate_generators,
    resample,
)
from pydisturb.settings import StandSettings
from pydisturb.stand_aggregation import (
    REPLICATE_COLUMNS,
    STAND_PEAK_COLUMNS,
    StandBootstrap,
    make_peakid,
    proportion_disturbed,
)


@pytest.fixture
def stand_plots():
    """Two stands: S1 with three plots, S2 with two."""
    return pd.DataFrame({
        'plotid': ['A', 'B', 'C', 'D', 'E'],
        'country': 'SK',
        'landscape': ['L1', 'L1', 'L1', 'L2', 'L2'],
        'newstand': ['S1', 'S1', 'S1', 'S2', 'S2'],
    })


@pytest.fixture
def stand_plot_peaks():
    """Every S1 plot peaks in 1900; S2 plots have no peaks."""
    return pd.DataFrame({
        'plotid': ['A', 'B', 'C'],
        'year': [1900, 1900, 1900],
        'value': [50.0, 60.0, 55.0],
        'severity': [40.0, 50.0, 45.0],
    })


@pytest.fixture
def bootstrap():
    settings = StandSettings(historical_years=(1850, 1950), replicates=20,
                             plots_per_replicate=3)
    return StandBootstrap(settings, seed=11)


# =============================================================================
# Resampling
# =============================================================================

class TestResampling:
    """Tests for per-replicate seeded generators."""

    def test_group_key_stable(self):
        assert group_key(('SK', 'S1')) == group_key(('SK', 'S1'))
        assert group_key(('SK', 'S1')) != group_key(('SK', 'S2'))
        assert group_key('x') == group_key(('x',))

    def test_generators_reproducible(self):
        first = [g.random() for g in replicate_generators(5, 10, ('a',))]
        second = [g.random() for g in replicate_generators(5, 10, ('a',))]
        assert first == second
        assert len(set(first)) == 10

    def test_replicate_independent_of_count(self):
        """Replicate i draws the same numbers whatever the number of replicates."""
        short = [g.random() for g in replicate_generators(5, 3, 'k')]
        long = [g.random() for g in replicate_generators(5, 8, 'k')]
        assert short == long[:3]

    def test_map_replicates_passes_index(self):
        result = map_replicates(lambda rep, rng: rep, seed=1, n=4)
        assert result == [0, 1, 2, 3]

    def test_resample_draws_from_units(self):
        rng = np.random.default_rng(0)
        drawn = resample(rng, ['a', 'b', 'c'], 50)
        assert len(drawn) == 50
        assert set(drawn) <= {'a', 'b', 'c'}


# =============================================================================
# Stand Bootstrap
# =============================================================================

class TestStandBootstrap:
    """Tests for StandBootstrap."""

    def test_replicate_peaks(self, bootstrap, stand_plot_peaks, stand_plots):
        replicates = bootstrap.replicate_peaks(stand_plot_peaks, stand_plots)
        assert list(replicates.columns) == REPLICATE_COLUMNS
        assert set(replicates['newstand']) == {'S1'}
        assert set(replicates['year']) == {1900}
        assert sorted(replicates['rep']) == list(range(20))

    def test_peak_frequency(self, bootstrap, stand_plot_peaks, stand_plots):
        frequency = bootstrap.peak_frequency(stand_plot_peaks, stand_plots)
        assert len(frequency) == 2 * 101
        s1 = frequency[frequency['newstand'] == 'S1'].set_index('year')['frequency']
        assert s1[1900] == pytest.approx(1.0)
        assert s1.drop(1900).eq(0).all()
        s2 = frequency[frequency['newstand'] == 'S2']
        assert (s2['frequency'] == 0).all()

    def test_stand_peaks(self, bootstrap, stand_plot_peaks, stand_plots):
        frequency, peaks = bootstrap.run(stand_plot_peaks, stand_plots)
        assert list(peaks.columns) == STAND_PEAK_COLUMNS
        assert list(peaks['peakid']) == ['SK-S1-1900']
        assert peaks['frequency'].iloc[0] == pytest.approx(1.0)

    def test_consensus_keeps_rare_peaks(self):
        """A year flagged by 1% of replicates still gives a stand peak by default."""
        settings = StandSettings()
        assert settings.consensus_threshold == settings.threshold
        years = np.arange(1850, 1951)
        frequency = pd.DataFrame({'country': 'SK', 'newstand': 'S1', 'year': years,
                                  'frequency': np.where(years == 1900, 0.01, 0.0)})
        peaks = StandBootstrap(settings).detect_stand_peaks(frequency)
        assert list(peaks['peakid']) == ['SK-S1-1900']
        assert peaks['value'].iloc[0] < 0.1

    def test_reproducible(self, stand_plot_peaks, stand_plots):
        """Same seed gives identical frequencies, whatever the stand order."""
        settings = StandSettings(historical_years=(1850, 1950), replicates=10,
                                 plots_per_replicate=2)
        peaks = stand_plot_peaks.copy()
        peaks.loc[0, 'year'] = 1910
        first = StandBootstrap(settings, seed=3).peak_frequency(peaks, stand_plots)
        second = StandBootstrap(settings, seed=3).peak_frequency(peaks, stand_plots.iloc[::-1])
        pd.testing.assert_frame_equal(first, second)

    def test_requires_stand_columns(self, bootstrap, stand_plot_peaks, stand_plots):
        with pytest.raises(MissingColumnError):
            bootstrap.peak_frequency(stand_plot_peaks, stand_plots.drop(columns='newstand'))

    def test_no_plots(self, bootstrap, stand_plot_peaks, stand_plots):
        frequency, peaks = bootstrap.run(stand_plot_peaks, stand_plots.iloc[0:0])
        assert frequency.empty
        assert peaks.empty


# =============================================================================
# Nearest-Peak Join
# =============================================================================

class TestNearestPositions:

    @pytest.mark.parametrize("years,expected", [
        pytest.param([1900], [0], id="exact"),
        pytest.param([1850], [0], id="before_all"),
        pytest.param([1990], [2], id="after_all"),
        pytest.param([1905], [0], id="tie_goes_earlier"),
        pytest.param([1906], [1], id="closer_later"),
        pytest.param([1925, 1940], [1, 2], id="several"),
    ])
    def test_positions(self, years, expected):
        peaks = np.array([1900.0, 1910.0, 1940.0])
        assert list(nearest_positions(peaks, np.array(years, dtype=float))) == expected


class TestJoinNearestPeak:
    """Tests for join_nearest_peak."""

    @pytest.fixture
    def stand_peaks(self):
        return pd.DataFrame({
            'country': 'SK', 'newstand': 'S1',
            'year': [1900, 1930], 'value': [1.0, 1.0], 'frequency': [0.9, 0.8],
            'peakid': [make_peakid('SK', 'S1', 1900), make_peakid('SK', 'S1', 1930)],
        })

    @pytest.fixture
    def plot_peaks(self):
        return pd.DataFrame({
            'plotid': ['A', 'B', 'C', 'D'],
            'year': [1902, 1915, 1929, 1910],
            'value': 20.0, 'severity': 30.0,
        })

    def test_join(self, plot_peaks, stand_peaks, stand_plots):
        joined = join_nearest_peak(plot_peaks, stand_peaks, stand_plots)
        assert list(joined.columns) == JOINED_COLUMNS
        by_plot = joined.set_index('plotid')
        assert by_plot.loc['A', 'peakid'] == 'SK-S1-1900'
        assert by_plot.loc['B', 'peakid'] == 'SK-S1-1900'
        assert by_plot.loc['C', 'peakid'] == 'SK-S1-1930'
        assert by_plot.loc['C', 'stand_year'] == 1930
        assert by_plot.loc['A', 'landscape'] == 'L1'

    def test_stand_without_peaks_kept(self, plot_peaks, stand_peaks, stand_plots):
        joined = join_nearest_peak(plot_peaks, stand_peaks, stand_plots)
        row = joined[joined['plotid'] == 'D'].iloc[0]
        assert row['newstand'] == 'S2'
        assert pd.isna(row['peakid'])
        assert np.isnan(row['stand_year'])

    def test_year_range(self, plot_peaks, stand_peaks, stand_plots):
        joined = join_nearest_peak(plot_peaks, stand_peaks, stand_plots, years=(1900, 1920))
        assert set(joined['plotid']) == {'A', 'B', 'D'}

    def test_empty_stand_peaks(self, plot_peaks, stand_plots):
        empty = pd.DataFrame(columns=STAND_PEAK_COLUMNS)
        joined = join_nearest_peak(plot_peaks, empty, stand_plots)
        assert len(joined) == 4
        assert joined['peakid'].isna().all()

    def test_inputs_not_modified(self, plot_peaks, stand_peaks, stand_plots):
        before = plot_peaks.copy()
        join_nearest_peak(plot_peaks, stand_peaks, stand_plots)
        pd.testing.assert_frame_equal(plot_peaks, before)


class TestProportionDisturbed:

    def test_proportion(self, stand_plots):
        joined = pd.DataFrame({
            'plotid': ['A', 'B', 'D'],
            'country': 'SK', 'landscape': ['L1', 'L1', 'L2'],
            'newstand': ['S1', 'S1', 'S2'],
            'year': [1901, 1899, 1950], 'value': 1.0, 'severity': 20.0,
            'stand_year': [1900.0, 1900.0, np.nan],
            'peakid': ['SK-S1-1900', 'SK-S1-1900', None],
        })
        result = proportion_disturbed(joined, stand_plots)
        assert len(result) == 1
        row = result.iloc[0]
        assert row['year'] == 1900
        assert row['n_plots'] == 2
        assert row['proportion'] == pytest.approx(200.0 / 3)
