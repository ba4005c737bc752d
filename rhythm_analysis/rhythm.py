"""
Rhythm classification for consecutive notes.

Maps the ratio between a note's delta time and its predecessor's delta time
onto the nearest entry of a small catalog of common rhythms. Each catalog
entry carries a tuned difficulty weight that per-note evaluators feed into
the strain aggregator.

A ratio above 1 indicates a slow-down; a ratio below 1 indicates a speed-up.
"""

import math
from dataclasses import dataclass
from typing import Iterable, Optional

from .errors import InvalidInput


@dataclass(frozen=True)
class RhythmPattern:
    """A canonical rhythm change between two consecutive notes."""
    numerator: int
    denominator: int
    difficulty: float  # Difficulty weight of this rhythm change

    @property
    def ratio(self) -> float:
        return self.numerator / self.denominator

    def __str__(self) -> str:
        return f"{self.numerator}:{self.denominator} (difficulty {self.difficulty})"


# =============================================================================
# Rhythm catalog - tuned values, order matters for tie breaking
# =============================================================================

COMMON_RHYTHMS: tuple[RhythmPattern, ...] = (
    RhythmPattern(1, 1, 0.0),
    RhythmPattern(2, 1, 0.3),
    RhythmPattern(1, 2, 0.5),
    RhythmPattern(3, 1, 0.3),
    RhythmPattern(1, 3, 0.35),
    RhythmPattern(3, 2, 0.6),
    RhythmPattern(2, 3, 0.4),
    RhythmPattern(5, 4, 0.5),
    RhythmPattern(4, 5, 0.7),
)

# Returned for the first note of a sequence, which has no predecessor
IDENTITY_RHYTHM = COMMON_RHYTHMS[0]


def classify_rhythm(
    current_delta_time: float,
    previous_delta_time: Optional[float] = None,
) -> RhythmPattern:
    """
    Find the catalog rhythm closest to the observed delta time ratio.

    Args:
        current_delta_time: Milliseconds between the current note and its predecessor
        previous_delta_time: Milliseconds between the predecessor and the note before it,
            or None for the first note of a sequence

    Returns:
        The RhythmPattern minimizing |pattern.ratio - current / previous|.
        Ties go to the entry declared first in COMMON_RHYTHMS.

    Raises:
        InvalidInput: If previous_delta_time is not a positive finite number
    """
    if previous_delta_time is None:
        return IDENTITY_RHYTHM

    if not math.isfinite(previous_delta_time) or previous_delta_time <= 0:
        raise InvalidInput(
            f"previous_delta_time must be positive, got {previous_delta_time}"
        )

    ratio = current_delta_time / previous_delta_time

    # min() keeps the first of equal keys, which gives declaration-order ties
    return min(COMMON_RHYTHMS, key=lambda pattern: abs(pattern.ratio - ratio))


def classify_sequence(delta_times: Iterable[float]) -> list[RhythmPattern]:
    """
    Classify every note of a time-ordered sequence.

    The first delta time is a placeholder (the first note has no
    predecessor) and is never read. The first two notes therefore have no
    previous delta time and both yield IDENTITY_RHYTHM.
    """
    patterns = []
    previous = None

    for index, delta_time in enumerate(delta_times):
        if index == 0:
            patterns.append(IDENTITY_RHYTHM)
            continue

        patterns.append(classify_rhythm(delta_time, previous))
        previous = delta_time

    return patterns
