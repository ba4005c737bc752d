"""
Tests for skill levels from full-combo probabilities.

Tests verify that:
1. Interpolated bins spread each difficulty over its neighbouring bins
2. Full-combo and miss-count probabilities behave at their edges
3. The skill level inverts the full-combo probability
4. The rhythm mistap model ignores sequences that are trivially full-comboed

Run with: pytest tests/test_skill_level.py -v
"""

import math
import pytest
import numpy as np
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from rhythm_analysis.probability import hit_probability
from rhythm_analysis.skill_level import (
    BIN_COUNT,
    FC_PROBABILITY,
    create_bins,
    fc_probability,
    miss_count_cdf,
    miss_probability_at_skill,
    rhythm_skill_level,
    skill_level_at_fc_probability,
)


# =============================================================================
# Tests for create_bins
# =============================================================================

class TestCreateBins:
    """Tests for interpolated difficulty bins."""

    def test_values_on_bins(self):
        bins, counts = create_bins([1, 2, 3, 4, 5], bin_count=5)
        np.testing.assert_allclose(bins, [1, 2, 3, 4, 5])
        np.testing.assert_allclose(counts, [1, 1, 1, 1, 1])

    def test_interpolation(self):
        """3.2 adds 0.8 to the 3 bin and 0.2 to the 4 bin."""
        bins, counts = create_bins([3.2, 5.0], bin_count=5)
        np.testing.assert_allclose(bins, [3, 4, 5])
        np.testing.assert_allclose(counts, [0.8, 0.2, 1.0])

    def test_below_first_bin(self):
        """The part below the first bin belongs to zero difficulty."""
        bins, counts = create_bins([0.5, 5.0], bin_count=5)
        np.testing.assert_allclose(bins, [1, 5])
        np.testing.assert_allclose(counts, [0.5, 1.0])

    def test_count_preserved(self):
        values = np.linspace(1.0, 10.0, 200)
        _, counts = create_bins(values, bin_count=10)
        assert counts.sum() == pytest.approx(200)

    def test_empty(self):
        bins, counts = create_bins([])
        assert bins.size == 0 and counts.size == 0

    def test_all_zero(self):
        bins, counts = create_bins([0.0, 0.0])
        assert bins.size == 0 and counts.size == 0


# =============================================================================
# Tests for probabilities at a skill level
# =============================================================================

class TestFcProbability:
    """Tests for the full-combo probability."""

    def test_zero_skill(self):
        assert fc_probability([1.0, 2.0], 0.0) == 0.0

    def test_single_note(self):
        assert fc_probability([2.0], 3.0) == pytest.approx(math.tanh(1.5))

    def test_product(self):
        assert fc_probability([1.0, 2.0], 2.0) == pytest.approx(math.tanh(2.0) * math.tanh(1.0))

    def test_binned_close_to_exact(self):
        """Long sequences are evaluated on bins."""
        difficulties = list(np.linspace(0.5, 2.0, 4 * BIN_COUNT))
        exact = math.prod(hit_probability(3.0, d) for d in difficulties)
        assert fc_probability(difficulties, 3.0) == pytest.approx(exact, rel=0.05)

    def test_custom_hit_probability(self):
        assert fc_probability([1.0, 1.0], 1.0, hit_prob=lambda s, d: 0.5) == pytest.approx(0.25)


class TestMissCountCdf:
    """Tests for the Poisson-binomial miss count distribution."""

    def test_no_misses(self):
        assert miss_count_cdf([0.5, 0.5], 0) == pytest.approx(0.25)

    def test_at_most_one(self):
        assert miss_count_cdf([0.5, 0.5], 1) == pytest.approx(0.75)

    def test_all_allowed(self):
        assert miss_count_cdf([0.3, 0.6, 0.9], 3) == pytest.approx(1.0)

    def test_uneven(self):
        # P(0) = 0.9 * 0.8, P(1) = 0.1 * 0.8 + 0.9 * 0.2
        assert miss_count_cdf([0.1, 0.2], 1) == pytest.approx(0.72 + 0.08 + 0.18)

    def test_miss_probability_at_skill(self):
        difficulties = [1.0, 2.0]
        expected = miss_count_cdf([1 - math.tanh(1.0), 1 - math.tanh(0.5)], 1)
        assert miss_probability_at_skill(difficulties, 1.0, 1) == pytest.approx(expected)

    def test_miss_probability_zero_skill(self):
        assert miss_probability_at_skill([1.0], 0.0, 1) == 0.0


# =============================================================================
# Tests for skill_level_at_fc_probability
# =============================================================================

class TestSkillLevelAtFcProbability:
    """Tests for inverting the full-combo probability."""

    def test_empty(self):
        assert skill_level_at_fc_probability([]) == 0.0

    def test_trivial(self):
        assert skill_level_at_fc_probability([0.0, 0.0]) == 0.0

    def test_single_note(self):
        assert skill_level_at_fc_probability([1.0]) == pytest.approx(math.atanh(FC_PROBABILITY), abs=2e-4)

    def test_inverts_fc_probability(self):
        difficulties = [1.0, 2.0, 1.5, 3.0, 0.5]
        skill = skill_level_at_fc_probability(difficulties)
        assert fc_probability(difficulties, skill) == pytest.approx(FC_PROBABILITY, rel=1e-2)

    def test_more_notes_higher_skill(self):
        short = skill_level_at_fc_probability([1.0] * 5)
        long = skill_level_at_fc_probability([1.0] * 20)
        assert long > short

    def test_harder_notes_higher_skill(self):
        assert skill_level_at_fc_probability([2.0] * 5) > skill_level_at_fc_probability([1.0] * 5)

    def test_allowed_misses_lower_skill(self):
        difficulties = [1.0] * 10
        assert skill_level_at_fc_probability(difficulties, miss_count=1) < skill_level_at_fc_probability(difficulties)

    def test_all_notes_missable(self):
        assert skill_level_at_fc_probability([1.0, 1.0], miss_count=2) == 0.0


# =============================================================================
# Tests for rhythm_skill_level
# =============================================================================

class TestRhythmSkillLevel:
    """Tests for the rhythm mistap model."""

    def test_empty(self):
        assert rhythm_skill_level([]) == 0.0

    def test_all_zero(self):
        assert rhythm_skill_level([0.0, 0.0, 0.0]) == 0.0

    def test_short_sequence_has_no_rhythm_difficulty(self):
        """exp(-3) > 0.02: three notes are full-comboed by chance."""
        assert rhythm_skill_level([1.0, 1.0, 1.0]) == 0.0

    def test_long_sequence(self):
        assert rhythm_skill_level([1.0] * 10) > 0.0

    def test_inverts_poisson_fc_probability(self):
        difficulties = [1.0] * 10
        skill = rhythm_skill_level(difficulties)
        occurrences = sum(1 - 0.9 ** (d ** 2 / skill) for d in difficulties)
        assert math.exp(-occurrences) == pytest.approx(FC_PROBABILITY, rel=1e-2)

    def test_more_notes_higher_skill(self):
        assert rhythm_skill_level([1.0] * 40) > rhythm_skill_level([1.0] * 10)
