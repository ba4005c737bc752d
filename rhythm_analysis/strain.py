"""
Time-decayed strain accumulation.

Turns a stream of per-note difficulty contributions into a strain curve:
the running strain decays exponentially with elapsed time and each note adds
its contribution scaled by the skill's multiplier.

This module provides:
- SkillKind: the closed set of skill dimensions with their decay constants
- StrainAggregator: the O(1) streaming fold, one instance per skill dimension
- strain_fold: the same fold over whole arrays
- StrainCurve: a recorded strain profile and the continuous difficulty value
  derived from it
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional

import numpy as np
import pandas as pd


# =============================================================================
# Skill dimensions
# =============================================================================

class SkillKind(Enum):
    """Skill dimensions, each with (strain decay base, skill multiplier)."""
    AIM = (0.15, 26.4)
    SPEED = (0.3, 1.40)
    RHYTHM = (0.3, 2.5)
    # Decays slower than the others so colour difficulty can build up on slower charts
    COLOUR = (0.8, 0.7)

    @property
    def decay_base(self) -> float:
        return self.value[0]

    @property
    def skill_multiplier(self) -> float:
        return self.value[1]


# Defaults for the continuous difficulty value
SECTION_LENGTH = 400
DECAY_WEIGHT = 0.9

# The top REDUCED_SECTION_COUNT sections of strain are scaled down, the
# highest one to REDUCED_STRAIN_BASELINE, to lower the impact of short spikes
REDUCED_SECTION_COUNT = 10
REDUCED_STRAIN_BASELINE = 0.75

# Speed reduces fewer sections
REDUCED_SECTION_COUNTS = {SkillKind.SPEED: 5}


def strain_decay(decay_base: float, delta_time: float) -> float:
    """Fraction of strain left after delta_time milliseconds."""
    return decay_base ** (delta_time / 1000)


# =============================================================================
# Streaming fold
# =============================================================================

class StrainAggregator:
    """
    Running strain for one skill dimension.

    process() must be called exactly once per note, in chronological order.
    Out-of-order or repeated calls are not detected and give meaningless
    strain values. Only the current scalar is kept, so memory use does not
    grow with the length of the note sequence.
    """

    def __init__(self, decay_base: float, skill_multiplier: float = 1.0):
        self.decay_base = decay_base
        self.skill_multiplier = skill_multiplier
        self.strain = 0.0

    @classmethod
    def from_kind(cls, kind: SkillKind) -> "StrainAggregator":
        return cls(kind.decay_base, kind.skill_multiplier)

    def decayed(self, delta_time: float) -> float:
        """Strain after delta_time milliseconds, without adding anything."""
        return self.strain * strain_decay(self.decay_base, delta_time)

    def process(self, delta_time: float, contribution: float) -> float:
        """
        Advance by delta_time and add one note's difficulty contribution.

        Returns:
            The strain at this note, i.e. its difficulty curve value
        """
        self.strain = self.decayed(delta_time) + contribution * self.skill_multiplier
        return self.strain

    def reset(self) -> None:
        self.strain = 0.0


def strain_fold(
    kind: SkillKind,
    delta_times: Iterable[float],
    contributions: Iterable[float],
) -> np.ndarray:
    """
    Fold a whole note sequence into its strain curve.

    Args:
        kind: Skill dimension supplying the decay base and multiplier
        delta_times: Milliseconds since the previous note, one per note
        contributions: Per-note difficulty contributions from an evaluator

    Returns:
        Array with the strain value at each note
    """
    aggregator = StrainAggregator.from_kind(kind)
    return np.array(
        [aggregator.process(dt, c) for dt, c in zip(delta_times, contributions, strict=True)],
        dtype=float,
    )


# =============================================================================
# Continuous difficulty value
# =============================================================================

@dataclass
class StrainEvent:
    """A strain level where the number of notes above it changes."""
    strain: float
    count_change: int  # +1 at a note's peak, -1 at the decayed level before it


@dataclass
class StrainCurve:
    """
    A recorded strain profile for one skill dimension.

    Each note contributes two events: the decayed strain just before the note
    and the strain right after it. Between the two, strain decays
    exponentially, so the sorted events describe how long the curve spends
    above every strain level.
    """
    decay_base: float
    skill_multiplier: float = 1.0
    reduced_section_count: int = REDUCED_SECTION_COUNT
    events: list[StrainEvent] = field(default_factory=list)
    _aggregator: StrainAggregator = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        self._aggregator = StrainAggregator(self.decay_base, self.skill_multiplier)

    @classmethod
    def from_kind(cls, kind: SkillKind) -> "StrainCurve":
        return cls(
            kind.decay_base,
            kind.skill_multiplier,
            reduced_section_count=REDUCED_SECTION_COUNTS.get(kind, REDUCED_SECTION_COUNT),
        )

    @classmethod
    def from_sequence(
        cls,
        kind: SkillKind,
        delta_times: Iterable[float],
        contributions: Iterable[float],
    ) -> "StrainCurve":
        curve = cls.from_kind(kind)
        for dt, c in zip(delta_times, contributions, strict=True):
            curve.process(dt, c)
        return curve

    def process(self, delta_time: float, contribution: float) -> float:
        self.events.append(StrainEvent(self._aggregator.decayed(delta_time), -1))
        strain = self._aggregator.process(delta_time, contribution)
        self.events.append(StrainEvent(strain, 1))
        return strain

    @property
    def peaks(self) -> list[float]:
        """Strain value at each note."""
        return [e.strain for e in self.events if e.count_change == 1]

    def _reduced_events(
        self,
        sorted_events: list[StrainEvent],
        section_length: float,
        reduced_section_count: int,
        reduced_strain_baseline: float,
    ) -> list[StrainEvent]:
        """
        Scale down the strain levels within the top reduced_section_count
        sections of time, from reduced_strain_baseline at the very top to 1
        at the end of the reduced span (log10 ramp).
        """
        reduced_time = reduced_section_count * section_length
        strain_decay_rate = math.log(self.decay_base) / 1000

        events = list(sorted_events)
        total_time = 0.0
        frequency = 0

        for i, (current, following) in enumerate(zip(sorted_events, sorted_events[1:])):
            frequency += current.count_change

            if total_time > reduced_time:
                break

            if current.strain > 0:
                if frequency > 0:
                    if following.strain > 0:
                        total_time += math.log(following.strain / current.strain) * (frequency / strain_decay_rate)
                    else:
                        total_time = math.inf

                progress = min(max(total_time / reduced_time, 0.0), 1.0)
                scale = math.log10(1 + 9 * progress)
                factor = reduced_strain_baseline + (1 - reduced_strain_baseline) * scale
                events[i] = StrainEvent(current.strain * factor, current.count_change)

        return sorted(events, key=lambda e: (e.strain, e.count_change), reverse=True)

    def difficulty_value(
        self,
        section_length: float = SECTION_LENGTH,
        decay_weight: float = DECAY_WEIGHT,
        multiplier: float = 1.0,
        reduced_section_count: Optional[int] = None,
        reduced_strain_baseline: float = REDUCED_STRAIN_BASELINE,
    ) -> float:
        """
        Integrate the strain profile into a single difficulty value.

        Strain levels are visited from highest to lowest. The time the curve
        spends above a level is worked out from the exponential decay and the
        number of notes currently above it; every section_length of that time
        lowers the weight of further levels by decay_weight.

        Before integrating, the levels within the first reduced_section_count
        sections of that time are scaled down (see _reduced_events).

        Args:
            section_length: Time span (ms) over which weights decay by decay_weight
            decay_weight: Weight decay per section
            multiplier: Final multiplier
            reduced_section_count: Sections to reduce; None uses the curve's
                setting, 0 disables the reduction
            reduced_strain_baseline: Multiplier of the highest strain level

        Returns:
            Weighted strain integral times multiplier
        """
        if reduced_section_count is None:
            reduced_section_count = self.reduced_section_count

        result = 0.0
        current_weight = 1.0
        frequency = 0

        sorted_events = sorted(
            self.events, key=lambda e: (e.strain, e.count_change), reverse=True
        )
        if reduced_section_count > 0:
            sorted_events = self._reduced_events(
                sorted_events, section_length, reduced_section_count, reduced_strain_baseline
            )

        strain_decay_rate = math.log(self.decay_base) / 1000
        sum_decay_rate = math.log(decay_weight) / section_length

        for current, following in zip(sorted_events, sorted_events[1:]):
            frequency += current.count_change

            if frequency > 0 and current.strain > 0:
                if following.strain > 0:
                    time = math.log(following.strain / current.strain) * (frequency / strain_decay_rate)
                    next_weight = current_weight * math.exp(sum_decay_rate * time)
                else:
                    # Reaching zero strain takes forever
                    next_weight = 0.0

                combined_decay = section_length * (sum_decay_rate + strain_decay_rate / frequency)
                result += (following.strain * next_weight - current.strain * current_weight) / combined_decay
                current_weight = next_weight

        return result * multiplier

    def count_top_weighted_strains(self) -> float:
        """
        Number of notes weighted against the top strain.

        A note whose strain is close to the strain a uniformly difficult
        sequence would need for the same difficulty value counts as ~1.
        """
        if not self.events:
            return 0.0

        # What the top strain would be if all strain values were identical
        consistent_top_strain = self.difficulty_value() / 10

        if consistent_top_strain == 0:
            return float(len(self.peaks))

        return sum(
            1.1 / (1 + math.exp(-10 * (s / consistent_top_strain - 0.88)))
            for s in self.peaks
        )

    def relevant_note_count(self) -> float:
        """Number of notes with a strain near the maximum."""
        peaks = self.peaks
        if not peaks:
            return 0.0

        max_strain = max(peaks)
        if max_strain == 0:
            return 0.0

        return sum(1.0 / (1.0 + math.exp(-(s / max_strain * 12.0 - 6.0))) for s in peaks)

    def to_dataframe(self) -> pd.DataFrame:
        """One row per note: strain before the note and at the note."""
        if not self.events:
            return pd.DataFrame(columns=["note", "decayed_strain", "strain"])

        return pd.DataFrame({
            "note": range(len(self.events) // 2),
            "decayed_strain": [e.strain for e in self.events[0::2]],
            "strain": [e.strain for e in self.events[1::2]],
        })
