"""
Judgement probability models.

Two families serve different numerical regimes and are kept separate:

1. Closed-form hit probabilities, used when evaluating many notes at a
   candidate skill level. Probabilities stay moderate, so plain floats are fine.
2. Tail probabilities of a zero-mean timing error with scale `deviation`,
   worked out in natural-log space. Hit-window tails of a consistent player
   are far below the smallest double, so the complementary error function is
   replaced by its asymptotic expansion where it would underflow.

The log-space combinators derive the probability of a judgement band (the
error landing between two windows) from the complement probabilities of its
edges without ever leaving log space.
"""

import math
from dataclasses import dataclass

import numpy as np
from scipy.special import erf, erfc
from scipy.stats import norm


# =============================================================================
# Closed-form hit probability
# =============================================================================

def hit_probability(skill: float, difficulty: float) -> float:
    """
    Probability that a player of `skill` clears a note of `difficulty`.

    Trivial notes are always hit and zero skill never clears a nontrivial
    note. Increasing in skill, decreasing in difficulty.

    Args:
        skill: Player skill level (>= 0)
        difficulty: Note difficulty (>= 0)

    Returns:
        tanh(skill / difficulty), in [0, 1]
    """
    if difficulty <= 0:
        return 1.0
    if skill <= 0:
        return 0.0

    return math.tanh(skill / difficulty)


def window_hit_probability(skill: float, difficulty: float, hit_window: float) -> float:
    """
    Probability of landing inside `hit_window` on a note of `difficulty`.

    The player's base deviation is the inverse of 120 * (7.5 / deviation)^2,
    scaled up by the note difficulty.
    """
    if difficulty <= 0:
        return 1.0
    if skill <= 0:
        return 0.0

    base_deviation = 7.5 / math.sqrt(skill / 120)

    return float(erf(hit_window / (math.sqrt(2) * difficulty * base_deviation)))


# =============================================================================
# Log-space tail probabilities
# =============================================================================

# Above this argument erfc() loses all precision, use the asymptotic form
LOG_ERFC_ASYMPTOTIC_THRESHOLD = 5.0


def log_erfc(x: float) -> float:
    """Natural log of erfc(x), stable for large x."""
    if x <= LOG_ERFC_ASYMPTOTIC_THRESHOLD:
        return math.log(erfc(x))

    return -x * x - math.log(x * math.sqrt(math.pi))


def log_complement_prob_of_hit(x: float, deviation: float) -> float:
    """
    Log probability that a timing error's magnitude exceeds `x`.

    Args:
        x: Window threshold in milliseconds
        deviation: Scale of the zero-mean timing error distribution

    Returns:
        log(erfc(x / (deviation * sqrt(2)))), in (-inf, 0]
    """
    return log_erfc(x / (deviation * math.sqrt(2)))


def log_sum(first_log: float, second_log: float) -> float:
    """log(exp(first_log) + exp(second_log))."""
    max_val = max(first_log, second_log)
    min_val = min(first_log, second_log)

    # log(0) is -inf, and -inf - -inf would be NaN
    if max_val == -math.inf:
        return max_val

    return max_val + math.log1p(math.exp(min_val - max_val))


def log_diff(first_log: float, second_log: float) -> float:
    """
    log(exp(first_log) - exp(second_log)) for first_log >= second_log.

    A band of zero (or negative) width has probability 0, i.e. -inf.
    """
    max_val = max(first_log, second_log)

    if max_val == -math.inf:
        return max_val
    if first_log <= second_log:
        return -math.inf

    return first_log + math.log1p(-math.exp(-(first_log - second_log)))


def log_band_probabilities(windows, deviation: float) -> list[float]:
    """
    Log probabilities of each judgement band for a timing deviation.

    Band 0 lies inside windows[0], band i between windows[i-1] and
    windows[i]. The final element is the miss band beyond the last window.

    Args:
        windows: Ascending hit window thresholds
        deviation: Scale of the timing error distribution

    Returns:
        len(windows) + 1 log probabilities
    """
    return _log_bands([log_complement_prob_of_hit(w, deviation) for w in windows])


def log_complement_prob_of_hold(window: float, head_deviation: float, tail_deviation: float) -> float:
    """
    Log probability that a legacy hold note is judged outside `window`.

    A legacy hold is judged once, on the head and the release together: it
    misses the window if the head lands outside it, or if the release lands
    outside twice the window less the head's expected offset.

    Args:
        window: Window threshold in milliseconds
        head_deviation: Timing deviation of the head press
        tail_deviation: Timing deviation of the release

    Returns:
        log(P(head outside) + P(tail outside) - P(both outside))
    """
    log_pc_head = log_complement_prob_of_hit(window, head_deviation)

    # Expected distance from 0 of a head hit that landed inside the window
    beta = window / head_deviation
    inside = float(norm.cdf(beta)) - 0.5
    if inside > 0:
        expected_offset = head_deviation * float(norm.pdf(0) - norm.pdf(beta)) / inside
    else:
        # Density is flat across a window this narrow
        expected_offset = window / 2

    log_pc_tail = log_complement_prob_of_hit(2 * window - expected_offset, tail_deviation)

    return log_diff(log_sum(log_pc_head, log_pc_tail), log_pc_head + log_pc_tail)


def log_hold_band_probabilities(windows, head_deviation: float, tail_deviation: float) -> list[float]:
    """log_band_probabilities for legacy hold notes."""
    return _log_bands([
        log_complement_prob_of_hold(w, head_deviation, tail_deviation) for w in windows
    ])


def _log_bands(complements: list[float]) -> list[float]:
    bands = [log_diff(0.0, complements[0])]
    for outer, inner in zip(complements, complements[1:]):
        bands.append(log_diff(outer, inner))
    bands.append(complements[-1])

    return bands


# =============================================================================
# Judgement distributions for accuracy simulation
# =============================================================================

# Score value of each successful judgement, best first. A miss is worth 0.
# Increasing the max judgement weight increases the value of high ratios.
MAX_JUDGEMENT_WEIGHT = 305.0
JUDGEMENT_WEIGHTS = np.array([MAX_JUDGEMENT_WEIGHT, 300.0, 200.0, 100.0, 50.0])

# Real players vary in skill across a chart, so the observed standard
# deviation of accuracy is around 2.5x what the per-note model gives.
VARIANCE_INFLATION = 2.5 ** 2


@dataclass
class JudgementProbabilities:
    """
    Probabilities of each successful judgement, best first.

    `bands` has one row per judgement; columns (if any) are notes, so one
    instance can describe a single note or a whole sequence at once.
    """
    bands: np.ndarray

    def _weights(self) -> np.ndarray:
        return JUDGEMENT_WEIGHTS.reshape((-1,) + (1,) * (self.bands.ndim - 1))

    @property
    def miss(self):
        return 1.0 - self.bands.sum(axis=0)

    @property
    def score(self):
        """Expected judgement value."""
        return (self._weights() * self.bands).sum(axis=0)

    @property
    def variance(self):
        score = self.score
        return ((self._weights() - score) ** 2 * self.bands).sum(axis=0) + score ** 2 * self.miss

    @property
    def adjusted_variance(self):
        return self.variance * VARIANCE_INFLATION


def window_cdf(window, deviation) -> np.ndarray:
    """P(|error| <= window) for zero-mean normal timing error; 1 when deviation is 0."""
    deviation = np.asarray(deviation, dtype=float)
    safe = np.where(deviation > 0, deviation, 1.0)

    # A vanishing deviation overflows the ratio to inf, and erf(inf) is 1
    with np.errstate(over="ignore"):
        return np.where(deviation > 0, erf(window / (safe * math.sqrt(2))), 1.0)


def window_probabilities(windows, deviation) -> JudgementProbabilities:
    """
    Judgement distribution for notes hit with the given timing deviation.

    Args:
        windows: Ascending hit windows, one per successful judgement
        deviation: Scalar or array of per-note deviations

    Returns:
        JudgementProbabilities with one band per window
    """
    cdfs = np.array([window_cdf(w, deviation) for w in windows])
    bands = np.diff(cdfs, axis=0, prepend=0.0)
    return JudgementProbabilities(bands)
