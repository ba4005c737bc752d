"""
Tests for unstable rate estimation.

Tests verify that:
1. Judgement counts reject negative values and impossible judgements
2. The maximum likelihood estimate recovers the deviation that produced the counts
3. Scores without successful hits have no estimate
4. The hold note mixture and the closed form agree with the plain estimate
   where they should
5. The legacy hold and circle/slider estimates recover the deviation that
   produced the counts, and classic mania scores pick the legacy hold model

Run with: pytest tests/test_unstable_rate.py -v
"""

import math
import pytest
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from rhythm_analysis.errors import InvalidInput, NoConvergence
from rhythm_analysis.hit_windows import (
    HitWindowSet,
    mania_hit_windows,
    osu_hit_windows,
    taiko_hit_windows,
)
from scipy.special import erfinv

from rhythm_analysis.unstable_rate import (
    LEGACY_HOLD_LENIENCY,
    NOT_AVAILABLE,
    TAIL_DEVIATION_MULTIPLIER,
    TAIL_WINDOW_MULTIPLIER,
    JudgementCounts,
    UnstableRateEstimator,
    _legacy_hold_windows,
    format_unstable_rate,
)


# =============================================================================
# Synthetic scores
# =============================================================================

def band_probabilities(windows, deviation):
    """Probability of each band (and the miss band) for a normal timing error."""
    cdfs = [math.erf(w / (deviation * math.sqrt(2))) for w in windows]
    bands = [cdfs[0]] + [outer - inner for inner, outer in zip(cdfs, cdfs[1:])]
    return bands + [1 - cdfs[-1]]


def synthetic_counts(hit_windows, probabilities, total):
    """JudgementCounts with each band holding its expected share of `total` hits."""
    counts = [round(total * p) for p in probabilities]
    statistics = dict(zip(hit_windows.results, counts[:-1]))
    statistics["miss"] = counts[-1]
    return JudgementCounts.from_statistics(statistics)


def hold_band_probabilities(windows, head_deviation, tail_deviation):
    """Band probabilities of a legacy hold, judged on head and release together."""
    def density(x):
        return math.exp(-x * x / 2) / math.sqrt(2 * math.pi)

    def complement(window):
        beta = window / head_deviation
        inside = 0.5 * math.erf(beta / math.sqrt(2))
        expected_offset = head_deviation * (density(0) - density(beta)) / inside

        head = math.erfc(window / (head_deviation * math.sqrt(2)))
        tail = math.erfc((2 * window - expected_offset) / (tail_deviation * math.sqrt(2)))
        return head + tail - head * tail

    complements = [complement(w) for w in windows]
    bands = [1 - complements[0]] + [inner - outer for inner, outer in zip(complements, complements[1:])]
    return bands + [complements[-1]]


def mixture_counts(hit_windows, note_count, hold_note_count, deviation):
    """Counts of a score with separately judged heads and tails."""
    heads = note_count + hold_note_count
    objects = heads + hold_note_count
    head_deviation = deviation / math.sqrt(
        (heads + hold_note_count * TAIL_DEVIATION_MULTIPLIER ** 2) / objects
    )

    head_bands = band_probabilities(hit_windows.windows, head_deviation)
    tail_bands = band_probabilities(
        hit_windows.scaled(TAIL_WINDOW_MULTIPLIER).windows,
        head_deviation * TAIL_DEVIATION_MULTIPLIER,
    )
    mixture = [
        (heads * h + hold_note_count * t) / objects
        for h, t in zip(head_bands, tail_bands)
    ]
    return synthetic_counts(hit_windows, mixture, objects)


# =============================================================================
# Tests for JudgementCounts
# =============================================================================

class TestJudgementCounts:
    """Tests for judgement count bookkeeping."""

    def test_totals(self):
        counts = JudgementCounts(perfect=1, great=2, good=3, ok=4, meh=5, miss=6)
        assert counts.total_successful_hits == 15
        assert counts.total_hits == 21

    def test_negative(self):
        with pytest.raises(InvalidInput):
            JudgementCounts(great=-1)

    def test_from_statistics(self):
        counts = JudgementCounts.from_statistics({"Great": 5, "Miss": 1, "LargeTickHit": 3})
        assert counts == JudgementCounts(great=5, miss=1)

    def test_band_counts(self):
        counts = JudgementCounts(great=10, ok=3, miss=2)
        assert counts.band_counts(("great", "ok")) == [10, 3, 2]

    def test_band_counts_impossible_judgement(self):
        """Taiko windows cannot produce a meh."""
        counts = JudgementCounts(great=10, meh=1)
        with pytest.raises(InvalidInput):
            counts.band_counts(("great", "ok"))


# =============================================================================
# Tests for UnstableRateEstimator.estimate
# =============================================================================

class TestEstimate:
    """Tests for the maximum likelihood estimate."""

    def test_no_hits(self):
        assert UnstableRateEstimator().estimate(JudgementCounts(), taiko_hit_windows(35.0)) is None

    def test_all_misses(self):
        counts = JudgementCounts(miss=50)
        assert UnstableRateEstimator().estimate(counts, taiko_hit_windows(35.0)) is None

    def test_single_window_rejected(self):
        with pytest.raises(InvalidInput):
            UnstableRateEstimator().estimate(JudgementCounts(great=10), HitWindowSet((20.0,)))

    def test_impossible_judgement_rejected(self):
        with pytest.raises(InvalidInput):
            UnstableRateEstimator().estimate(JudgementCounts(great=10, good=2), taiko_hit_windows(35.0))

    @pytest.mark.parametrize("deviation", [8.0, 15.0, 25.0])
    def test_recovers_taiko_deviation(self, deviation):
        hit_windows = taiko_hit_windows(35.0)
        counts = synthetic_counts(hit_windows, band_probabilities(hit_windows.windows, deviation), 1_000_000)

        estimate = UnstableRateEstimator().estimate(counts, hit_windows)

        assert estimate == pytest.approx(10 * deviation, rel=0.01)

    @pytest.mark.parametrize("deviation", [10.0, 20.0, 40.0])
    def test_recovers_mania_deviation(self, deviation):
        hit_windows = mania_hit_windows(8.0)
        counts = synthetic_counts(hit_windows, band_probabilities(hit_windows.windows, deviation), 1_000_000)

        estimate = UnstableRateEstimator().estimate(counts, hit_windows)

        assert estimate == pytest.approx(10 * deviation, rel=0.01)

    def test_recovers_osu_deviation(self):
        hit_windows = osu_hit_windows(9.0)
        counts = synthetic_counts(hit_windows, band_probabilities(hit_windows.windows, 18.0), 1_000_000)

        assert UnstableRateEstimator().estimate(counts, hit_windows) == pytest.approx(180.0, rel=0.01)

    def test_more_misses_higher_estimate(self):
        hit_windows = taiko_hit_windows(35.0)
        few = UnstableRateEstimator().estimate(JudgementCounts(great=900, ok=100, miss=5), hit_windows)
        many = UnstableRateEstimator().estimate(JudgementCounts(great=900, ok=100, miss=50), hit_windows)
        assert many > few

    def test_without_misses_ignores_misses(self):
        hit_windows = taiko_hit_windows(35.0)
        estimator = UnstableRateEstimator()

        with_misses = estimator.estimate(JudgementCounts(great=900, ok=100, miss=50), hit_windows)
        without = estimator.estimate(JudgementCounts(great=900, ok=100, miss=50), hit_windows, include_misses=False)

        assert without < with_misses

    def test_only_best_judgement(self):
        """A score of only greats still has a finite, positive estimate."""
        estimate = UnstableRateEstimator().estimate(JudgementCounts(great=500), taiko_hit_windows(35.0))
        assert 0 < estimate < 350

    def test_iteration_cap(self):
        counts = JudgementCounts(great=900, ok=100, miss=5)
        with pytest.raises(NoConvergence):
            UnstableRateEstimator(max_iterations=1).estimate(counts, taiko_hit_windows(35.0))


# =============================================================================
# Tests for UnstableRateEstimator.estimate_with_holds
# =============================================================================

class TestEstimateWithHolds:
    """Tests for the note/tail mixture estimate."""

    def test_no_holds_matches_plain_estimate(self):
        hit_windows = mania_hit_windows(8.0)
        counts = JudgementCounts(perfect=600, great=300, good=60, ok=20, meh=10, miss=10)
        estimator = UnstableRateEstimator()

        plain = estimator.estimate(counts, hit_windows)
        mixed = estimator.estimate_with_holds(counts, hit_windows, note_count=1000, hold_note_count=0)

        assert mixed == pytest.approx(plain, rel=1e-6)

    def test_no_objects(self):
        counts = JudgementCounts(perfect=10)
        assert UnstableRateEstimator().estimate_with_holds(counts, mania_hit_windows(8.0), 0, 0) is None

    def test_no_hits(self):
        counts = JudgementCounts(miss=10)
        assert UnstableRateEstimator().estimate_with_holds(counts, mania_hit_windows(8.0), 10, 0) is None

    def test_recovers_mixture_deviation(self):
        hit_windows = mania_hit_windows(8.0)
        counts = mixture_counts(hit_windows, 600_000, 200_000, 20.0)

        estimate = UnstableRateEstimator().estimate_with_holds(counts, hit_windows, 600_000, 200_000)

        assert estimate == pytest.approx(200.0, rel=0.01)

    def test_tail_misses_counted_beyond_wider_windows(self):
        """
        At a 60ms deviation a sixth of tails would miss the regular meh
        window but only a few percent miss the widened one. The estimate
        only comes back to 600 if tail misses are judged on the widened
        windows.
        """
        hit_windows = mania_hit_windows(8.0)
        counts = mixture_counts(hit_windows, 600_000, 200_000, 60.0)

        estimate = UnstableRateEstimator().estimate_with_holds(counts, hit_windows, 600_000, 200_000)

        assert estimate == pytest.approx(600.0, rel=0.01)


# =============================================================================
# Tests for UnstableRateEstimator.estimate_legacy_holds and estimate_mania
# =============================================================================

class TestEstimateLegacyHolds:
    """Tests for the mixture of notes and once-judged legacy holds."""

    def test_hold_windows(self):
        hit_windows = mania_hit_windows(8.0, classic=True)
        head, tail = LEGACY_HOLD_LENIENCY
        assert _legacy_hold_windows(hit_windows.windows) == (16.0 * head, 40.0 * tail, 73.0, 103.0, 127.0)

    def test_recovers_deviation(self):
        hit_windows = mania_hit_windows(8.0, classic=True)
        note_count, hold_note_count = 600_000, 200_000
        deviation = 20.0

        objects = note_count + 2 * hold_note_count
        note_deviation = deviation / math.sqrt(
            (note_count + hold_note_count + hold_note_count * TAIL_DEVIATION_MULTIPLIER ** 2) / objects
        )

        note_bands = band_probabilities(hit_windows.windows, note_deviation)
        hold_bands = hold_band_probabilities(
            _legacy_hold_windows(hit_windows.windows),
            note_deviation,
            note_deviation * TAIL_DEVIATION_MULTIPLIER,
        )
        total = note_count + hold_note_count
        mixture = [
            (note_count * n + hold_note_count * h) / total
            for n, h in zip(note_bands, hold_bands)
        ]
        counts = synthetic_counts(hit_windows, mixture, total)

        estimate = UnstableRateEstimator().estimate_legacy_holds(counts, hit_windows, note_count, hold_note_count)

        assert estimate == pytest.approx(10 * deviation, rel=0.01)

    def test_no_holds_matches_plain_estimate(self):
        hit_windows = mania_hit_windows(8.0, classic=True)
        counts = JudgementCounts(perfect=600, great=300, good=60, ok=20, meh=10, miss=10)
        estimator = UnstableRateEstimator()

        plain = estimator.estimate(counts, hit_windows)
        legacy = estimator.estimate_legacy_holds(counts, hit_windows, note_count=1000, hold_note_count=0)

        assert legacy == pytest.approx(plain, rel=1e-6)

    def test_no_hits(self):
        counts = JudgementCounts(miss=10)
        hit_windows = mania_hit_windows(8.0, classic=True)
        assert UnstableRateEstimator().estimate_legacy_holds(counts, hit_windows, 5, 5) is None

    def test_classic_score_uses_legacy_holds(self):
        hit_windows = mania_hit_windows(8.0, classic=True)
        counts = JudgementCounts(perfect=600, great=300, good=60, ok=20, meh=10, miss=10)
        estimator = UnstableRateEstimator()

        chosen = estimator.estimate_mania(counts, hit_windows, 800, 200, classic=True)

        assert chosen == estimator.estimate_legacy_holds(counts, hit_windows, 800, 200)
        assert chosen != estimator.estimate_with_holds(counts, hit_windows, 800, 200)

    def test_separate_tail_judgements_use_mixture(self):
        """More judgements than notes and holds means tails were judged on their own."""
        hit_windows = mania_hit_windows(8.0, classic=True)
        counts = JudgementCounts(perfect=700, great=400, good=60, ok=20, meh=10, miss=10)
        estimator = UnstableRateEstimator()

        assert counts.total_hits > 800 + 200
        chosen = estimator.estimate_mania(counts, hit_windows, 800, 200, classic=True)

        assert chosen == estimator.estimate_with_holds(counts, hit_windows, 800, 200)

    def test_not_classic_uses_mixture(self):
        hit_windows = mania_hit_windows(8.0)
        counts = JudgementCounts(perfect=600, great=300, good=60, ok=20, meh=10, miss=10)
        estimator = UnstableRateEstimator()

        chosen = estimator.estimate_mania(counts, hit_windows, 800, 200)

        assert chosen == estimator.estimate_with_holds(counts, hit_windows, 800, 200)


# =============================================================================
# Tests for UnstableRateEstimator.estimate_closed_form
# =============================================================================

class TestEstimateClosedForm:
    """Tests for the closed-form great/ok/meh estimate."""

    def test_normal_score(self):
        hit_windows = osu_hit_windows(9.0)
        counts = synthetic_counts(hit_windows, band_probabilities(hit_windows.windows, 15.0), 100_000)

        estimate = UnstableRateEstimator().estimate_closed_form(counts, hit_windows, 100_000)

        assert estimate == pytest.approx(150.0, rel=0.01)

    def test_no_hits(self):
        counts = JudgementCounts(miss=10)
        assert UnstableRateEstimator().estimate_closed_form(counts, osu_hit_windows(9.0), 10) is None

    def test_no_greats_falls_back(self):
        hit_windows = osu_hit_windows(9.0)
        counts = JudgementCounts(ok=20, meh=5, miss=2)
        estimator = UnstableRateEstimator()

        assert estimator.estimate_closed_form(counts, hit_windows, 27) == estimator.estimate(counts, hit_windows)

    def test_more_greats_than_objects(self):
        with pytest.raises(InvalidInput):
            UnstableRateEstimator().estimate_closed_form(JudgementCounts(great=20), osu_hit_windows(9.0), 10)

    def test_needs_three_windows(self):
        with pytest.raises(InvalidInput):
            UnstableRateEstimator().estimate_closed_form(JudgementCounts(great=20), taiko_hit_windows(35.0), 30)


# =============================================================================
# Tests for UnstableRateEstimator.estimate_legacy_circles
# =============================================================================

class TestEstimateLegacyCircles:
    """Tests for the circle, then slider, closed-form estimate."""

    def test_all_circles_matches_closed_form(self):
        hit_windows = osu_hit_windows(9.0)
        counts = synthetic_counts(hit_windows, band_probabilities(hit_windows.windows, 15.0), 100_000)
        estimator = UnstableRateEstimator()

        estimate = estimator.estimate_legacy_circles(counts, hit_windows, counts.total_hits, 0)

        assert estimate == pytest.approx(150.0, rel=0.01)
        assert estimate == pytest.approx(estimator.estimate_closed_form(counts, hit_windows, counts.total_hits))

    def test_errors_assigned_to_circles_first(self):
        """Oks and mehs fill the circles; the greats left over drive the estimate."""
        hit_windows = osu_hit_windows(9.0)
        w_great, w_ok, w_meh = hit_windows.windows
        counts = JudgementCounts(great=950, ok=40, meh=5, miss=5)

        estimate = UnstableRateEstimator().estimate_legacy_circles(counts, hit_windows, 100, 900)

        # 100 circles: 5 misses, 5 mehs, 40 oks, 50 greats
        deviation = w_great / (math.sqrt(2) * float(erfinv(50 / 91)))
        deviation *= math.sqrt(
            1 - math.sqrt(2 / math.pi) * w_ok * math.exp(-0.5 * (w_ok / deviation) ** 2)
            / (deviation * math.erf(w_ok / (math.sqrt(2) * deviation)))
        )
        meh_variance = (w_meh ** 2 + w_ok * w_meh + w_ok ** 2) / 3
        expected = math.sqrt((90 * deviation ** 2 + 5 * meh_variance) / 95)

        assert estimate == pytest.approx(10 * expected)

    def test_falls_back_to_sliders(self):
        hit_windows = osu_hit_windows(9.0)
        # All 10 circles missed, 3 of 50 sliders missed
        counts = JudgementCounts(great=47, miss=13)

        estimate = UnstableRateEstimator().estimate_legacy_circles(counts, hit_windows, 10, 50)

        expected = hit_windows.windows[-1] / (math.sqrt(2) * float(erfinv(47 / 51)))
        assert estimate == pytest.approx(10 * expected)

    def test_nothing_left_on_sliders(self):
        hit_windows = osu_hit_windows(9.0)
        counts = JudgementCounts(great=3, miss=15)

        assert UnstableRateEstimator().estimate_legacy_circles(counts, hit_windows, 10, 5) is None

    def test_no_hits(self):
        counts = JudgementCounts(miss=10)
        assert UnstableRateEstimator().estimate_legacy_circles(counts, osu_hit_windows(9.0), 10, 0) is None

    def test_needs_three_windows(self):
        with pytest.raises(InvalidInput):
            UnstableRateEstimator().estimate_legacy_circles(JudgementCounts(great=20), taiko_hit_windows(35.0), 30, 0)


# =============================================================================
# Tests for format_unstable_rate
# =============================================================================

class TestFormatUnstableRate:
    """Tests for the display string."""

    def test_not_available(self):
        assert format_unstable_rate(None) == NOT_AVAILABLE == "(not available)"

    def test_two_decimals(self):
        assert format_unstable_rate(123.456) == "123.46"

    def test_thousands_separator(self):
        assert format_unstable_rate(1234.5) == "1,234.50"
