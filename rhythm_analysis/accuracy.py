"""
Accuracy simulation for a sequence of note difficulties.

Models the accuracy a player of a given skill level reaches on a chart and
inverts that model to find the skill level a target accuracy requires. The
inversion is what makes scores of different lengths and densities comparable.

The model:
1. A player's timing deviation on a note falls from MASH_DEVIATION (no skill)
   to SKILL_DEVIATION (skill equal to the note's difficulty) and towards 0
   beyond, with ACCURACY_EXPONENT setting how sharp the transition is.
2. The deviation and the hit windows give a distribution over judgements
   for every note, hence an expected score and a variance per note.
3. By the central limit theorem the chart's accuracy is approximately normal
   with the summed mean and variance.
4. The simulated accuracy at a skill level is the accuracy reached with
   ACCURACY_PROBABILITY chance; the skill level for an accuracy is the one
   with ACCURACY_PROBABILITY chance of reaching it.
"""

import logging
import math
from typing import Optional, Sequence

import numpy as np
import pandas as pd
from scipy.stats import norm

from .errors import InvalidInput, NoConvergence
from .hit_windows import HitWindowSet, mania_hit_windows
from .numerics import find_root_expand
from .probability import MAX_JUDGEMENT_WEIGHT, window_probabilities

logger = logging.getLogger(__name__)


# =============================================================================
# Model constants
# =============================================================================

# Window settings of the reference judgement scheme
DEFAULT_OVERALL_DIFFICULTY = 8.0

# The player has a 2% chance of reaching the simulated accuracy
ACCURACY_PROBABILITY = 0.02

# Deviation on a note whose difficulty equals the player's skill
SKILL_DEVIATION = 12.0

# Deviation when mashing, the very highest a deviation can get
MASH_DEVIATION = 100.0

# How fast deviation changes as note difficulty moves away from the skill level
ACCURACY_EXPONENT = 3.2

# Long note tails are released less precisely but judged more leniently
TAIL_DEVIATION_MULTIPLIER = 1.8
TAIL_WINDOW_MULTIPLIER = 1.5

# Keeps the accuracy distribution from collapsing to a point
MIN_ACCURACY_DEVIATION = 1e-6

# Sequences longer than this are evaluated on quantile bins
BINNING_THRESHOLD = 4096
QUANTILE_BIN_COUNT = 24

# Fractions of the SS skill level sampled by accuracy_curve()
CURVE_SKILL_FRACTIONS = (
    1.00, 0.95, 0.90, 0.85, 0.80, 0.75, 0.70, 0.65, 0.60, 0.55, 0.50,
    0.45, 0.40, 0.35, 0.30, 0.25, 0.20, 0.15, 0.10, 0.05, 0.0,
)


def skill_to_deviation(skill: float, difficulties, skill_deviation: float = SKILL_DEVIATION) -> np.ndarray:
    """
    Timing deviation of a player of `skill` on notes of the given difficulties.

    Zero-difficulty notes are hit perfectly (deviation 0).
    """
    difficulties = np.asarray(difficulties, dtype=float)
    safe = np.where(difficulties != 0, difficulties, 1.0)

    deviation = MASH_DEVIATION * (skill_deviation / MASH_DEVIATION) ** ((skill / safe) ** ACCURACY_EXPONENT)

    return np.where(difficulties != 0, deviation, 0.0)


def create_quantile_bins(difficulties: Sequence[float], bin_count: int = QUANTILE_BIN_COUNT) -> tuple[np.ndarray, np.ndarray]:
    """
    Group sorted difficulties into bin_count quantiles.

    Returns:
        (average difficulty, note count) per non-empty quantile
    """
    values = np.sort(np.asarray(difficulties, dtype=float))
    n = values.size

    edges = (np.arange(bin_count + 1) * n) // bin_count
    averages = []
    counts = []

    for start, end in zip(edges, edges[1:]):
        if start >= end:
            continue
        averages.append(values[start:end].mean())
        counts.append(end - start)

    return np.array(averages), np.array(counts, dtype=float)


class AccuracySimulator:
    """
    Expected accuracy on a note sequence as a function of skill level.

    Args:
        difficulties: Per-note difficulty values (already strain aggregated)
        overall_difficulty: Window setting of the judgement scheme; resolves the
            five successful-hit windows (six judgement categories with the miss)
        tail_difficulties: Difficulties of long note releases, if any
        classic: Use the legacy integer windows
        hard_rock: Tightened windows
        easy: Widened windows
    """

    def __init__(
        self,
        difficulties: Sequence[float],
        overall_difficulty: float = DEFAULT_OVERALL_DIFFICULTY,
        tail_difficulties: Sequence[float] = (),
        classic: bool = False,
        hard_rock: bool = False,
        easy: bool = False,
    ):
        self.note_difficulties = self._validated(difficulties, "difficulties")
        self.tail_difficulties = self._validated(tail_difficulties, "tail_difficulties")
        self.hit_windows: HitWindowSet = mania_hit_windows(
            overall_difficulty, hard_rock=hard_rock, easy=easy, classic=classic
        )

        windows = np.array(self.hit_windows.windows)
        self._groups = [
            (*self._binned(self.note_difficulties), SKILL_DEVIATION, windows),
            (*self._binned(self.tail_difficulties),
             SKILL_DEVIATION * TAIL_DEVIATION_MULTIPLIER,
             windows * TAIL_WINDOW_MULTIPLIER),
        ]

    @staticmethod
    def _validated(values: Sequence[float], name: str) -> np.ndarray:
        array = np.asarray(values, dtype=float).ravel()
        if not np.all(np.isfinite(array)) or np.any(array < 0):
            raise InvalidInput(f"{name} must be finite and non-negative")
        return array

    @staticmethod
    def _binned(difficulties: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        if difficulties.size > BINNING_THRESHOLD:
            return create_quantile_bins(difficulties)
        return difficulties, np.ones(difficulties.size)

    @property
    def note_count(self) -> int:
        return self.note_difficulties.size + self.tail_difficulties.size

    @property
    def max_difficulty(self) -> float:
        return max(
            self.note_difficulties.max(initial=0.0),
            self.tail_difficulties.max(initial=0.0),
        )

    def _accuracy_distribution(self, skill: float) -> tuple[float, float]:
        """Mean and standard deviation of accuracy at `skill`."""
        total_score = 0.0
        total_variance = 0.0

        for difficulties, counts, skill_deviation, windows in self._groups:
            if difficulties.size == 0:
                continue
            deviations = skill_to_deviation(skill, difficulties, skill_deviation)
            probabilities = window_probabilities(windows, deviations)
            total_score += float(np.dot(counts, probabilities.score))
            total_variance += float(np.dot(counts, probabilities.adjusted_variance))

        count = self.note_count
        mean = total_score / count / MAX_JUDGEMENT_WEIGHT
        deviation = math.sqrt(total_variance) / count / MAX_JUDGEMENT_WEIGHT + MIN_ACCURACY_DEVIATION

        return mean, deviation

    def accuracy_probability(self, accuracy: float, skill: float) -> float:
        """Probability of reaching at least `accuracy` at `skill`."""
        # Accuracy is above 0% even at 0 skill; returning 0 here gives the
        # root search a sign change at the lower bound.
        if skill <= 0 or self.note_count == 0:
            return 0.0

        mean, deviation = self._accuracy_distribution(skill)
        return float(norm.sf(accuracy, loc=mean, scale=deviation))

    def accuracy_at(self, skill: float) -> float:
        """
        Simulated accuracy at a skill level, in [0, 1].

        The accuracy reached with ACCURACY_PROBABILITY chance. Never
        decreases as skill increases.
        """
        if skill <= 0 or self.note_count == 0:
            return 0.0

        mean, deviation = self._accuracy_distribution(skill)
        accuracy = mean + deviation * norm.isf(ACCURACY_PROBABILITY)

        return min(1.0, max(0.0, float(accuracy)))

    def skill_level_at_accuracy(self, target_accuracy: float) -> float:
        """
        Skill level with ACCURACY_PROBABILITY chance of reaching target_accuracy.

        Args:
            target_accuracy: Accuracy in [0, 1]

        Returns:
            The skill level; 0 for empty or all-trivial sequences, and for
            sequences where mashing already has ACCURACY_PROBABILITY chance
            of reaching the target

        Raises:
            NoConvergence: If the target is outside [0, 1] or the root search fails
        """
        if not 0.0 <= target_accuracy <= 1.0:
            raise NoConvergence(f"Accuracy {target_accuracy} cannot be reached")

        if self.note_count == 0 or self.max_difficulty == 0:
            return 0.0

        # Short sequences can reach the target by mashing alone
        mean, deviation = self._accuracy_distribution(0.0)
        if norm.sf(target_accuracy, loc=mean, scale=deviation) >= ACCURACY_PROBABILITY:
            logger.debug("Accuracy %g reached at mashing level, skill level is 0", target_accuracy)
            return 0.0

        return find_root_expand(
            lambda skill: self.accuracy_probability(target_accuracy, skill) - ACCURACY_PROBABILITY,
            0.0,
            self.max_difficulty * 2,
        )

    def ss_value(self) -> float:
        """Skill level for 100% accuracy."""
        return self.skill_level_at_accuracy(1.0)

    def accuracy_curve(self, ss_value: Optional[float] = None) -> np.ndarray:
        """
        Accuracy at each of CURVE_SKILL_FRACTIONS of the SS skill level.
        """
        if self.note_count == 0:
            return np.zeros(len(CURVE_SKILL_FRACTIONS))

        if ss_value is None:
            ss_value = self.ss_value()

        accuracies = [1.0]
        accuracies.extend(self.accuracy_at(ss_value * fraction) for fraction in CURVE_SKILL_FRACTIONS[1:])

        return np.array(accuracies)

    def accuracy_curve_frame(self, ss_value: Optional[float] = None) -> pd.DataFrame:
        if ss_value is None:
            ss_value = self.ss_value()

        return pd.DataFrame({
            "skill_fraction": CURVE_SKILL_FRACTIONS,
            "skill_level": [ss_value * f for f in CURVE_SKILL_FRACTIONS],
            "accuracy": self.accuracy_curve(ss_value),
        })
