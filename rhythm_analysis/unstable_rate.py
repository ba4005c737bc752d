"""
Unstable rate estimation from judgement counts.

A score only records how many hits landed in each judgement; the timing
errors themselves are lost. Assuming the errors are zero-mean and normally
distributed, the deviation that most likely produced the observed counts is
found by maximum likelihood, and the unstable rate is ten times it.

Band probabilities of a consistent player are far below the smallest
double, so the likelihood is built in log space (see probability.py).
"""

import logging
import math
from dataclasses import dataclass, fields
from typing import Mapping, Optional

from scipy.special import erf, erfinv

from .errors import InvalidInput
from .hit_windows import GREAT, MISS, OK, HitWindowSet
from .numerics import MAX_MINIMIZE_ITERATIONS, minimize_from
from .probability import log_band_probabilities, log_hold_band_probabilities, log_sum

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Starting deviation for the minimizer, in milliseconds
INITIAL_DEVIATION_GUESS = 30.0

# Unstable rate is deviation * 10
UNSTABLE_RATE_SCALE = 10.0

# Added to the count of the second band so the likelihood never has a
# degenerate optimum at a zero-width deviation
SECOND_BAND_OFFSET = 0.5

# Players release hold tails with a larger deviation, but tails are judged
# with wider windows
TAIL_DEVIATION_MULTIPLIER = 1.8
TAIL_WINDOW_MULTIPLIER = 1.5

# Legacy holds are judged once, with the two best windows widened
LEGACY_HOLD_LENIENCY = (1.2, 1.1)

NOT_AVAILABLE = "(not available)"


# =============================================================================
# Judgement counts
# =============================================================================

@dataclass(frozen=True)
class JudgementCounts:
    """Number of hits resolved to each judgement."""
    perfect: int = 0
    great: int = 0
    good: int = 0
    ok: int = 0
    meh: int = 0
    miss: int = 0

    def __post_init__(self):
        for f in fields(self):
            if getattr(self, f.name) < 0:
                raise InvalidInput(f"Judgement counts cannot be negative: {f.name}={getattr(self, f.name)}")

    @classmethod
    def from_statistics(cls, statistics: Mapping[str, int]) -> "JudgementCounts":
        """Build from a result-name -> count mapping. Unknown names are ignored."""
        known = {f.name for f in fields(cls)}
        return cls(**{
            name.lower(): count
            for name, count in statistics.items()
            if name.lower() in known
        })

    @property
    def total_hits(self) -> int:
        return self.total_successful_hits + self.miss

    @property
    def total_successful_hits(self) -> int:
        return self.perfect + self.great + self.good + self.ok + self.meh

    def count(self, result: str) -> int:
        return getattr(self, result)

    def band_counts(self, results: tuple[str, ...]) -> list[int]:
        """
        Counts in window order, followed by the miss count.

        Raises:
            InvalidInput: If hits were recorded for a judgement the windows
                cannot produce
        """
        for f in fields(self):
            if f.name != MISS and f.name not in results and getattr(self, f.name) > 0:
                raise InvalidInput(
                    f"{getattr(self, f.name)} {f.name} judgements cannot come from windows {results}"
                )

        return [self.count(name) for name in results] + [self.miss]


def _band_weights(counts: JudgementCounts, hit_windows: HitWindowSet) -> list[float]:
    weights = [float(c) for c in counts.band_counts(hit_windows.results)]
    weights[1] += SECOND_BAND_OFFSET
    return weights


def _log_likelihood(weights: list[float], log_bands: list[float], include_misses: bool) -> float:
    if not include_misses:
        weights = weights[:-1]

    # 0 * -inf would be NaN; a band nobody landed in adds nothing
    return sum(w * lp for w, lp in zip(weights, log_bands) if w != 0)


def _log_count(count: float) -> float:
    return math.log(count) if count > 0 else -math.inf


# =============================================================================
# Estimator
# =============================================================================

class UnstableRateEstimator:
    """
    Maximum likelihood unstable rate.

    Args:
        initial_guess: Starting deviation for the minimizer (ms)
        max_iterations: Iteration cap of the minimizer
    """

    def __init__(self, initial_guess: float = INITIAL_DEVIATION_GUESS,
                 max_iterations: int = MAX_MINIMIZE_ITERATIONS):
        self.initial_guess = initial_guess
        self.max_iterations = max_iterations

    def _minimize(self, objective) -> float:
        deviation = minimize_from(objective, self.initial_guess, self.max_iterations)
        return deviation * UNSTABLE_RATE_SCALE

    @staticmethod
    def _check_windows(hit_windows: HitWindowSet) -> None:
        if len(hit_windows) < 2:
            raise InvalidInput("Unstable rate estimation needs at least two hit windows")

    def estimate(
        self,
        counts: JudgementCounts,
        hit_windows: HitWindowSet,
        include_misses: bool = True,
    ) -> Optional[float]:
        """
        Estimate the unstable rate of a score.

        Args:
            counts: The score's judgement counts
            hit_windows: Resolved windows, already adjusted for mods and clock rate
            include_misses: Whether misses count towards the likelihood. The
                results screen leaves them out so that missing does not change
                the displayed value.

        Returns:
            Estimated unstable rate, or None for a score without successful hits

        Raises:
            InvalidInput: For counts the windows cannot produce
            NoConvergence: If the minimizer fails
        """
        if counts.total_successful_hits == 0:
            return None

        self._check_windows(hit_windows)

        weights = _band_weights(counts, hit_windows)
        total_hits = counts.total_hits

        def objective(deviation: float) -> float:
            if deviation <= 0:
                return 0.0

            log_bands = log_band_probabilities(hit_windows.windows, deviation)
            return -math.exp(_log_likelihood(weights, log_bands, include_misses) / total_hits)

        return self._minimize(objective)

    def estimate_with_holds(
        self,
        counts: JudgementCounts,
        hit_windows: HitWindowSet,
        note_count: int,
        hold_note_count: int,
        include_misses: bool = True,
    ) -> Optional[float]:
        """
        Estimate the unstable rate of a score on a chart with hold notes.

        Every note and hold head is judged with the regular windows; every
        hold tail with windows TAIL_WINDOW_MULTIPLIER times wider, released
        with TAIL_DEVIATION_MULTIPLIER times the deviation. Judgements are a
        mixture of the two populations. The estimate is the combined
        deviation of both, so the head and tail deviations average (in
        variance) to it.

        Args:
            note_count: Number of regular notes
            hold_note_count: Number of hold notes (each has a head and a tail)
        """
        if counts.total_successful_hits == 0 or note_count + hold_note_count == 0:
            return None

        self._check_windows(hit_windows)

        weights = _band_weights(counts, hit_windows)
        total_hits = counts.total_hits
        tail_windows = hit_windows.scaled(TAIL_WINDOW_MULTIPLIER).windows

        head_count = note_count + hold_note_count
        tail_count = hold_note_count
        object_count = head_count + tail_count

        log_head_portion = _log_count(head_count) - math.log(object_count)
        log_tail_portion = _log_count(tail_count) - math.log(object_count)

        variance_scale = math.sqrt(
            (head_count + tail_count * TAIL_DEVIATION_MULTIPLIER ** 2) / object_count
        )

        def objective(deviation: float) -> float:
            if deviation <= 0:
                return 0.0

            head_deviation = deviation / variance_scale
            tail_deviation = head_deviation * TAIL_DEVIATION_MULTIPLIER

            head_bands = log_band_probabilities(hit_windows.windows, head_deviation)
            tail_bands = log_band_probabilities(tail_windows, tail_deviation)

            log_bands = [
                log_sum(head + log_head_portion, tail + log_tail_portion)
                for head, tail in zip(head_bands, tail_bands)
            ]
            return -math.exp(_log_likelihood(weights, log_bands, include_misses) / total_hits)

        return self._minimize(objective)

    def estimate_closed_form(
        self,
        counts: JudgementCounts,
        hit_windows: HitWindowSet,
        object_count: int,
    ) -> Optional[float]:
        """
        Closed-form estimate for great/ok/meh windows.

        Greats and oks are taken as normally distributed and mehs as
        uniformly distributed between the ok and meh windows. The great
        probability is estimated from the count of greats, with one added
        object as a bias correction.

        Falls back to estimate() when there are no greats, where the
        closed form has no finite answer.

        Args:
            object_count: Number of objects judged on timing
        """
        if counts.total_successful_hits == 0:
            return None

        if len(hit_windows) != 3:
            raise InvalidInput("The closed-form estimate needs exactly three hit windows")
        counts.band_counts(hit_windows.results)

        great, ok, meh = (counts.count(name) for name in hit_windows.results)
        timed_objects = object_count - counts.miss - meh
        if great > timed_objects:
            raise InvalidInput(
                f"{great} {GREAT} judgements out of {timed_objects} objects hit within the {OK} window"
            )

        if great == 0:
            logger.debug("No %s judgements, falling back to maximum likelihood", GREAT)
            return self.estimate(counts, hit_windows)

        great_probability = great / (timed_objects + 1.0)
        deviation = _truncated_deviation(great, ok, meh, great_probability, hit_windows.windows)

        return deviation * UNSTABLE_RATE_SCALE

    def estimate_legacy_circles(
        self,
        counts: JudgementCounts,
        hit_windows: HitWindowSet,
        circle_count: int,
        slider_count: int,
    ) -> Optional[float]:
        """
        Closed-form estimate for scores where only circles are timed.

        Misses, mehs and oks are assigned to circles first, in that order.
        If any circles are left for greats, the closed form runs on circles
        alone. Otherwise the estimate comes from sliders, which can only be
        hit (within the meh window) or missed.

        Args:
            circle_count: Number of circles in the chart
            slider_count: Number of sliders in the chart

        Returns:
            Estimated unstable rate, or None if neither circles nor sliders
            have anything to go on
        """
        if counts.total_successful_hits == 0:
            return None

        if len(hit_windows) != 3:
            raise InvalidInput("The closed-form estimate needs exactly three hit windows")
        counts.band_counts(hit_windows.results)

        _, ok, meh = (counts.count(name) for name in hit_windows.results)

        miss_circles = min(counts.miss, circle_count)
        meh_circles = min(meh, circle_count - miss_circles)
        ok_circles = min(ok, circle_count - miss_circles - meh_circles)
        great_circles = max(0, circle_count - miss_circles - meh_circles - ok_circles)

        if great_circles > 0:
            great_probability = great_circles / (circle_count - miss_circles - meh_circles + 1.0)
            deviation = _truncated_deviation(
                great_circles, ok_circles, meh_circles, great_probability, hit_windows.windows
            )
            return deviation * UNSTABLE_RATE_SCALE

        miss_sliders = min(slider_count, counts.miss - miss_circles)
        hit_sliders = slider_count - miss_sliders

        if hit_sliders == 0:
            return None

        logger.debug("No %s judgements left on circles, estimating from sliders", GREAT)

        hit_probability = hit_sliders / (slider_count + 1.0)
        deviation = hit_windows.windows[-1] / (math.sqrt(2) * float(erfinv(hit_probability)))

        return deviation * UNSTABLE_RATE_SCALE

    def estimate_legacy_holds(
        self,
        counts: JudgementCounts,
        hit_windows: HitWindowSet,
        note_count: int,
        hold_note_count: int,
        include_misses: bool = True,
    ) -> Optional[float]:
        """
        Estimate the unstable rate of a score with legacy hold notes.

        A legacy hold gives one judgement for the head and the release
        together, with the two best windows made more lenient (see
        LEGACY_HOLD_LENIENCY). Regular notes use the windows as given.
        Judgements are a mixture of notes and holds, weighted by their counts.
        """
        if counts.total_successful_hits == 0 or note_count + hold_note_count == 0:
            return None

        self._check_windows(hit_windows)

        weights = _band_weights(counts, hit_windows)
        total_hits = counts.total_hits
        hold_windows = _legacy_hold_windows(hit_windows.windows)

        object_count = note_count + 2 * hold_note_count
        head_portion = (note_count + hold_note_count) / object_count
        tail_portion = hold_note_count / object_count
        variance_scale = math.sqrt(head_portion + tail_portion * TAIL_DEVIATION_MULTIPLIER ** 2)

        log_note_share = _log_count(note_count) - math.log(total_hits)
        log_hold_share = _log_count(hold_note_count) - math.log(total_hits)

        def objective(deviation: float) -> float:
            if deviation <= 0:
                return 0.0

            note_deviation = deviation / variance_scale
            tail_deviation = note_deviation * TAIL_DEVIATION_MULTIPLIER

            note_bands = log_band_probabilities(hit_windows.windows, note_deviation)
            hold_bands = log_hold_band_probabilities(hold_windows, note_deviation, tail_deviation)

            log_bands = [
                log_sum(note + log_note_share, hold + log_hold_share)
                for note, hold in zip(note_bands, hold_bands)
            ]
            return -math.exp(_log_likelihood(weights, log_bands, include_misses) / total_hits)

        return self._minimize(objective)

    def estimate_mania(
        self,
        counts: JudgementCounts,
        hit_windows: HitWindowSet,
        note_count: int,
        hold_note_count: int,
        classic: bool = False,
        include_misses: bool = True,
    ) -> Optional[float]:
        """
        Pick the hold note model for a mania score.

        Classic scores judge each hold once, so they have at most one
        judgement per note or hold; those use estimate_legacy_holds(). Scores
        with more judgements than that judge heads and tails separately.
        """
        if classic and counts.total_hits <= note_count + hold_note_count:
            return self.estimate_legacy_holds(
                counts, hit_windows, note_count, hold_note_count, include_misses
            )

        return self.estimate_with_holds(
            counts, hit_windows, note_count, hold_note_count, include_misses
        )


def _truncated_deviation(great, ok, meh, great_probability, windows) -> float:
    """
    Deviation with greats and oks normally distributed and mehs uniformly
    distributed between the ok and meh windows.
    """
    w_great, w_ok, w_meh = windows

    deviation = w_great / (math.sqrt(2) * float(erfinv(great_probability)))

    # Truncate the normal distribution at the ok window
    deviation *= math.sqrt(
        1 - math.sqrt(2 / math.pi) * w_ok * math.exp(-0.5 * (w_ok / deviation) ** 2)
        / (deviation * float(erf(w_ok / (math.sqrt(2) * deviation))))
    )

    meh_variance = (w_meh * w_meh + w_ok * w_meh + w_ok * w_ok) / 3

    return math.sqrt(
        ((great + ok) * deviation ** 2 + meh * meh_variance) / (great + ok + meh)
    )


def _legacy_hold_windows(windows: tuple[float, ...]) -> tuple[float, ...]:
    lenient = [w * m for w, m in zip(windows, LEGACY_HOLD_LENIENCY)]
    return tuple(lenient) + tuple(windows[len(lenient):])


def format_unstable_rate(value: Optional[float]) -> str:
    """Display string for an estimate; None shows as not available."""
    if value is None:
        return NOT_AVAILABLE
    return f"{value:,.2f}"

