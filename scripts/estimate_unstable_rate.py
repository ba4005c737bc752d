#!/usr/bin/env python3
"""
Unstable rate estimation CLI tool.

Estimates a score's unstable rate from its judgement counts. Hit windows
are derived for the chosen ruleset from the chart's window settings and the
score's clock rate.

Usage:
    python scripts/estimate_unstable_rate.py --ruleset RULESET --od OD [counts...]

Examples:
    # Taiko: great window from the difficulty attributes
    python scripts/estimate_unstable_rate.py --ruleset taiko --great-window 35 \
        --great 950 --ok 40 --miss 10

    # Mania with hold notes
    python scripts/estimate_unstable_rate.py --ruleset mania --od 8 \
        --perfect 1500 --great 400 --good 60 --ok 20 --meh 5 --miss 15 \
        --notes 1600 --holds 200

    # Results screen value (misses excluded)
    python scripts/estimate_unstable_rate.py --ruleset osu --od 9 --clock-rate 1.5 \
        --great 700 --ok 30 --meh 2 --miss 4 --without-misses

    # Closed-form great/ok/meh estimate
    python scripts/estimate_unstable_rate.py --ruleset osu --od 9 \
        --great 700 --ok 30 --meh 2 --miss 4 --closed-form --objects 736

    # Legacy osu estimate from circle and slider counts
    python scripts/estimate_unstable_rate.py --ruleset osu --od 9 \
        --great 700 --ok 30 --meh 2 --miss 4 --circles 500 --sliders 236

    # Classic mania: one judgement per hold
    python scripts/estimate_unstable_rate.py --ruleset mania --od 8 --classic \
        --perfect 1300 --great 400 --good 60 --ok 20 --meh 5 --miss 15 \
        --notes 1600 --holds 200
"""

import argparse
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from rhythm_analysis import (
    InvalidInput,
    JudgementCounts,
    NoConvergence,
    UnstableRateEstimator,
    format_unstable_rate,
    mania_hit_windows,
    osu_hit_windows,
    taiko_hit_windows,
)

load_dotenv(Path(__file__).resolve().parent.parent / ".env")

RULESETS = ("taiko", "osu", "mania")


def resolve_hit_windows(args):
    """Hit windows for the selected ruleset."""
    if args.ruleset == "taiko":
        if args.great_window is None:
            raise SystemExit("Error: --great-window is required for taiko")
        return taiko_hit_windows(args.great_window, args.clock_rate)

    if args.od is None:
        raise SystemExit(f"Error: --od is required for {args.ruleset}")

    if args.ruleset == "osu":
        return osu_hit_windows(args.od, args.clock_rate)

    return mania_hit_windows(
        args.od,
        hard_rock=args.hard_rock,
        easy=args.easy,
        classic=args.classic,
        convert=args.convert,
    )


def main():
    parser = argparse.ArgumentParser(
        description="Estimate the unstable rate of a score from its judgement counts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--ruleset", choices=RULESETS, default=None,
        help="Ruleset of the score (default: from .env or taiko)",
    )
    parser.add_argument("--od", type=float, default=None, help="Overall difficulty (osu, mania)")
    parser.add_argument("--great-window", type=float, default=None, help="Great hit window in ms (taiko)")
    parser.add_argument("--clock-rate", type=float, default=1.0, help="Clock rate of the score (default: 1.0)")
    parser.add_argument("--hard-rock", action="store_true", help="Tightened mania windows")
    parser.add_argument("--easy", action="store_true", help="Widened mania windows")
    parser.add_argument("--classic", action="store_true", help="Legacy mania windows")
    parser.add_argument("--convert", action="store_true", help="Chart converted from another ruleset (classic mania)")

    for name in ("perfect", "great", "good", "ok", "meh", "miss"):
        parser.add_argument(f"--{name}", type=int, default=0, help=f"Number of {name} judgements")

    parser.add_argument("--notes", type=int, default=None, help="Regular note count (mania hold models)")
    parser.add_argument("--holds", type=int, default=0, help="Hold note count (mania hold models)")
    parser.add_argument("--without-misses", action="store_true", help="Leave misses out of the estimate")
    parser.add_argument(
        "--closed-form", action="store_true",
        help="Closed-form estimate from great/ok/meh counts (osu); needs --objects",
    )
    parser.add_argument("--objects", type=int, default=None, help="Number of objects judged on timing")
    parser.add_argument("--circles", type=int, default=None, help="Circle count (osu legacy estimate)")
    parser.add_argument("--sliders", type=int, default=0, help="Slider count (osu legacy estimate)")
    parser.add_argument(
        "--max-iterations", type=int, default=None,
        help="Minimizer iteration cap (default: from .env or 500)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Show estimator debug output")

    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")

    args.ruleset = args.ruleset or os.environ.get("RHYTHM_ANALYSIS_RULESET", "taiko")
    if args.ruleset not in RULESETS:
        raise SystemExit(f"Error: unknown ruleset {args.ruleset!r}")

    max_iterations = args.max_iterations or int(os.environ.get("RHYTHM_ANALYSIS_MAX_ITERATIONS", "500"))

    try:
        counts = JudgementCounts(
            perfect=args.perfect,
            great=args.great,
            good=args.good,
            ok=args.ok,
            meh=args.meh,
            miss=args.miss,
        )
        hit_windows = resolve_hit_windows(args)
        estimator = UnstableRateEstimator(max_iterations=max_iterations)

        if args.closed_form:
            if args.objects is None:
                raise SystemExit("Error: --objects is required with --closed-form")
            value = estimator.estimate_closed_form(counts, hit_windows, args.objects)
        elif args.ruleset == "osu" and args.circles is not None:
            value = estimator.estimate_legacy_circles(counts, hit_windows, args.circles, args.sliders)
        elif args.ruleset == "mania" and args.notes is not None:
            value = estimator.estimate_mania(
                counts, hit_windows, args.notes, args.holds,
                classic=args.classic,
                include_misses=not args.without_misses,
            )
        else:
            value = estimator.estimate(counts, hit_windows, include_misses=not args.without_misses)
    except (InvalidInput, NoConvergence) as e:
        raise SystemExit(f"Error: {e}")

    print(f"Ruleset: {args.ruleset}")
    print(f"Hit windows: {', '.join(f'{r} {w:.2f}ms' for r, w in zip(hit_windows.results, hit_windows.windows))}")
    print(f"Judgements: {counts.total_successful_hits} hits, {counts.miss} misses")
    print(f"Estimated unstable rate: {format_unstable_rate(value)}")


if __name__ == "__main__":
    main()
