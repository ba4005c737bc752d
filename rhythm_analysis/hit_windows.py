"""
Hit window sets and their per-ruleset derivation.

A HitWindowSet is the ascending list of timing thresholds (milliseconds) that
separate the successful judgements, best judgement first. Anything beyond
the last window is a miss.

The derivation functions are pure functions of the chart's window settings
and the clock rate. Mods that scale windows are passed in as flags; the
caller decides which mods are active.
"""

import math
from dataclasses import dataclass

from .errors import InvalidInput


# =============================================================================
# Judgement result names, best first
# =============================================================================

PERFECT = "perfect"
GREAT = "great"
GOOD = "good"
OK = "ok"
MEH = "meh"
MISS = "miss"

SUCCESSFUL_RESULTS = (PERFECT, GREAT, GOOD, OK, MEH)

# Default judgement names for common window counts
DEFAULT_RESULTS = {
    1: (GREAT,),
    2: (GREAT, OK),
    3: (GREAT, OK, MEH),
    4: (GREAT, GOOD, OK, MEH),
    5: (PERFECT, GREAT, GOOD, OK, MEH),
}

# Window scale of the HardRock / Easy mods in mania
HARD_ROCK_WINDOW_MULTIPLIER = 1 / 1.4
EASY_WINDOW_MULTIPLIER = 1.4


@dataclass(frozen=True)
class HitWindowSet:
    """Ascending hit windows, one per successful judgement."""
    windows: tuple[float, ...]
    results: tuple[str, ...] = ()

    def __post_init__(self):
        windows = tuple(float(w) for w in self.windows)
        object.__setattr__(self, "windows", windows)

        if not windows:
            raise InvalidInput("A hit window set needs at least one window")

        for w in windows:
            if not math.isfinite(w) or w <= 0:
                raise InvalidInput(f"Hit windows must be positive, got {windows}")

        for inner, outer in zip(windows, windows[1:]):
            if outer <= inner:
                raise InvalidInput(f"Hit windows must strictly increase, got {windows}")

        results = tuple(self.results) or DEFAULT_RESULTS.get(len(windows), ())
        if len(results) != len(windows):
            raise InvalidInput(
                f"Need one judgement name per window: {len(windows)} windows, results {results}"
            )
        for name in results:
            if name not in SUCCESSFUL_RESULTS:
                raise InvalidInput(f"Unknown judgement result: {name!r}")
        object.__setattr__(self, "results", results)

    def __len__(self) -> int:
        return len(self.windows)

    def __iter__(self):
        return iter(self.windows)

    def scaled(self, multiplier: float) -> "HitWindowSet":
        """The same judgements with every window multiplied."""
        return HitWindowSet(tuple(w * multiplier for w in self.windows), self.results)


# =============================================================================
# Ruleset derivations
# =============================================================================

def taiko_hit_windows(great_window: float, clock_rate: float = 1.0) -> HitWindowSet:
    """
    Taiko great/ok windows.

    Args:
        great_window: Great window from the difficulty attributes (already rate adjusted)
        clock_rate: Effective clock rate of the score

    Returns:
        HitWindowSet (great, ok)
    """
    overall_difficulty = (50 - great_window * clock_rate) / 3

    if overall_difficulty <= 5:
        ok_window = (120 - 8 * overall_difficulty) / clock_rate
    else:
        ok_window = (80 - 6 * (overall_difficulty - 5)) / clock_rate

    return HitWindowSet((great_window, ok_window), (GREAT, OK))


def osu_hit_windows(overall_difficulty: float, clock_rate: float = 1.0) -> HitWindowSet:
    """
    Standard great/ok/meh windows.

    The overall difficulty is the rate-adjusted value from the difficulty
    attributes; the ok and meh windows are rebuilt from the unadjusted value.
    """
    great_window = 80 - 6 * overall_difficulty
    base_difficulty = (80 - great_window * clock_rate) / 6

    ok_window = (140 - 8 * base_difficulty) / clock_rate
    meh_window = (200 - 10 * base_difficulty) / clock_rate

    return HitWindowSet((great_window, ok_window, meh_window), (GREAT, OK, MEH))


def mania_hit_windows(
    overall_difficulty: float,
    hard_rock: bool = False,
    easy: bool = False,
    classic: bool = False,
    convert: bool = False,
) -> HitWindowSet:
    """
    Mania perfect/great/good/ok/meh windows.

    Args:
        overall_difficulty: Chart overall difficulty
        hard_rock: Windows tightened by 1.4x
        easy: Windows widened by 1.4x (ignored when hard_rock is set)
        classic: Use the legacy (integer) windows
        convert: Legacy windows of a chart converted from another ruleset

    Returns:
        HitWindowSet with five windows
    """
    multiplier = 1.0
    if hard_rock:
        multiplier *= HARD_ROCK_WINDOW_MULTIPLIER
    elif easy:
        multiplier *= EASY_WINDOW_MULTIPLIER

    if classic:
        windows = _legacy_mania_windows(overall_difficulty, multiplier, convert)
    else:
        if overall_difficulty < 5:
            perfect = (22.4 - 0.6 * overall_difficulty) * multiplier
        else:
            perfect = (24.9 - 1.1 * overall_difficulty) * multiplier

        windows = (
            perfect,
            (64 - 3 * overall_difficulty) * multiplier,
            (97 - 3 * overall_difficulty) * multiplier,
            (127 - 3 * overall_difficulty) * multiplier,
            (151 - 3 * overall_difficulty) * multiplier,
        )

    return HitWindowSet(windows, DEFAULT_RESULTS[5])


def _legacy_mania_windows(overall_difficulty: float, multiplier: float, convert: bool):
    great_leniency = 0
    good_leniency = 0

    # Converted charts use OD 10 windows, with extra leniency when the source OD was low
    if convert:
        if overall_difficulty <= 4:
            great_leniency = 13
            good_leniency = 10
        overall_difficulty = 10

    return (
        math.floor(16 * multiplier),
        math.floor((64 - 3 * overall_difficulty + great_leniency) * multiplier),
        math.floor((97 - 3 * overall_difficulty + good_leniency) * multiplier),
        math.floor((127 - 3 * overall_difficulty) * multiplier),
        math.floor((151 - 3 * overall_difficulty) * multiplier),
    )
