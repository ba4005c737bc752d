"""
Skill levels from full-combo probabilities.

For a sequence of per-note difficulties, the skill level of the sequence is
the skill at which a player has a fixed, small chance of clearing every note
(or of missing at most a given number of notes). A higher target probability
rewards short, high difficulty sections; a lower one rewards consistency.

This module provides:
- Interpolated difficulty bins for long sequences
- Full-combo and miss-count probabilities at a skill level
- The inverse: the skill level reaching a target probability
- The rhythm mistap model
"""

import math
from typing import Callable, Sequence

import numpy as np

from .numerics import find_root_expand
from .probability import hit_probability


# =============================================================================
# Constants
# =============================================================================

# The returned skill level has this chance of hitting every note
FC_PROBABILITY = 0.02

# Sequences with at least 2 * BIN_COUNT notes are evaluated on bins
BIN_COUNT = 32

# Root search tolerance on the skill level
SKILL_XTOL = 1e-4

# Rhythm mistap model: 1 - RHYTHM_MISTAP_BASE ^ (difficulty^RHYTHM_DIFFICULTY_EXPONENT / skill)
RHYTHM_MISTAP_BASE = 0.9
RHYTHM_DIFFICULTY_EXPONENT = 2


# =============================================================================
# Binning
# =============================================================================

def create_bins(difficulties: Sequence[float], bin_count: int = BIN_COUNT) -> tuple[np.ndarray, np.ndarray]:
    """
    Spread difficulties over evenly spaced bins.

    Bin i sits at max * (i + 1) / bin_count. Each difficulty is split
    linearly between its two neighbouring bins: with bins at [1, 2, 3, 4, 5],
    a value of 3.2 adds 0.8 to the 3 bin and 0.2 to the 4 bin. The part
    falling below the first bin belongs to zero difficulty and is dropped.

    Returns:
        (bin_difficulties, bin_counts), without empty bins
    """
    values = np.asarray(difficulties, dtype=float)
    if values.size == 0 or values.max() <= 0:
        return np.empty(0), np.empty(0)

    max_difficulty = values.max()
    bin_difficulties = max_difficulty * np.arange(1, bin_count + 1) / bin_count
    counts = np.zeros(bin_count)

    positions = bin_count * (values / max_difficulty) - 1
    lower = np.floor(positions).astype(int)
    t = positions - lower

    has_lower = lower >= 0
    np.add.at(counts, lower[has_lower], 1 - t[has_lower])

    upper = lower + 1
    # Only the maximum lands on upper == bin_count, with t == 0
    has_upper = upper < bin_count
    np.add.at(counts, upper[has_upper], t[has_upper])

    keep = counts > 0
    return bin_difficulties[keep], counts[keep]


# =============================================================================
# Probabilities at a skill level
# =============================================================================

def fc_probability(
    difficulties: Sequence[float],
    skill: float,
    hit_prob: Callable[[float, float], float] = hit_probability,
) -> float:
    """Probability of hitting every note at `skill`."""
    if skill <= 0:
        return 0.0

    if len(difficulties) < 2 * BIN_COUNT:
        return math.prod(hit_prob(skill, d) for d in difficulties)

    bin_difficulties, bin_counts = create_bins(difficulties)
    return math.prod(
        hit_prob(skill, d) ** count for d, count in zip(bin_difficulties, bin_counts)
    )


def miss_count_cdf(miss_probabilities: Sequence[float], miss_count: int) -> float:
    """
    P(at most miss_count misses) for independent per-note miss probabilities.

    Poisson-binomial distribution truncated at miss_count.
    """
    distribution = np.zeros(int(miss_count) + 1)
    distribution[0] = 1.0

    for q in miss_probabilities:
        distribution[1:] = distribution[1:] * (1 - q) + distribution[:-1] * q
        distribution[0] *= 1 - q

    return float(distribution.sum())


def miss_probability_at_skill(
    difficulties: Sequence[float],
    skill: float,
    miss_count: int,
    hit_prob: Callable[[float, float], float] = hit_probability,
) -> float:
    """Probability of missing at most miss_count notes at `skill`."""
    if skill <= 0:
        return 0.0

    return miss_count_cdf([1 - hit_prob(skill, d) for d in difficulties], miss_count)


# =============================================================================
# Skill levels
# =============================================================================

def skill_level_at_fc_probability(
    difficulties: Sequence[float],
    target_probability: float = FC_PROBABILITY,
    miss_count: int = 0,
    hit_prob: Callable[[float, float], float] = hit_probability,
) -> float:
    """
    Skill level with `target_probability` of at most `miss_count` misses.

    Args:
        difficulties: Per-note difficulties (strain values)
        target_probability: Probability the returned skill level reaches
        miss_count: Number of misses allowed
        hit_prob: Closed-form probability of clearing one note

    Returns:
        The skill level, or 0 for empty or trivially easy sequences

    Raises:
        NoConvergence: If the root search fails
    """
    if len(difficulties) == 0 or max(difficulties) <= 1e-10 or miss_count >= len(difficulties):
        return 0.0

    if miss_count == 0:
        def objective(skill: float) -> float:
            return fc_probability(difficulties, skill, hit_prob) - target_probability
    else:
        def objective(skill: float) -> float:
            return miss_probability_at_skill(difficulties, skill, miss_count, hit_prob) - target_probability

    return find_root_expand(objective, 0.0, 3.0 * max(difficulties), xtol=SKILL_XTOL)


def _rhythm_mistap_occurrences(difficulties: Sequence[float], skill: float) -> float:
    if skill <= 0:
        return float(sum(1 for d in difficulties if d > 0))

    # An arbitrary formula to gauge rhythm scaling
    return sum(
        1 - RHYTHM_MISTAP_BASE ** (d ** RHYTHM_DIFFICULTY_EXPONENT / skill)
        for d in difficulties
    )


def rhythm_skill_level(difficulties: Sequence[float], target_probability: float = FC_PROBABILITY) -> float:
    """
    Skill level at which a rhythm strain sequence is full-comboed with
    `target_probability`, mistaps being Poisson distributed.

    Short sequences that are full-comboed by chance even at zero skill
    have no rhythm difficulty.
    """
    if len(difficulties) == 0 or max(difficulties) <= 0:
        return 0.0

    def fc_probability_at(skill: float) -> float:
        return math.exp(-_rhythm_mistap_occurrences(difficulties, skill))

    if fc_probability_at(0) > target_probability:
        return 0.0

    return find_root_expand(
        lambda skill: fc_probability_at(skill) - target_probability,
        0.0,
        3.0 * max(difficulties),
        xtol=SKILL_XTOL,
    )
