#!/usr/bin/env python3
"""
Chart rating CLI tool.

Folds a chart's per-note difficulty contributions into a strain curve and
reports its difficulty value, rhythm statistics and the skill levels needed
for a set of target accuracies.

Input CSV columns:
    delta_time    Milliseconds since the previous note
    contribution  Per-note difficulty contribution from an evaluator

Usage:
    python scripts/rate_chart.py CHART_CSV [--kind KIND] [--accuracy ACC ...] [--csv OUT]

Example:
    python scripts/rate_chart.py data/charts/example.csv --kind speed \
        --accuracy 0.95 0.98 1.0 --csv data/curves/example_strain.csv
"""

import argparse
import os
import sys
from collections import Counter
from pathlib import Path

import pandas as pd
from dotenv import load_dotenv

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from rhythm_analysis import (
    AccuracySimulator,
    InvalidInput,
    NoConvergence,
    SkillKind,
    StrainCurve,
    classify_sequence,
    rhythm_skill_level,
    skill_level_at_fc_probability,
)

load_dotenv(Path(__file__).resolve().parent.parent / ".env")

DEFAULT_ACCURACIES = [0.90, 0.95, 0.98, 1.0]


def load_chart(path: Path) -> pd.DataFrame:
    """Read a chart CSV and check its columns."""
    chart = pd.read_csv(path)

    missing = {"delta_time", "contribution"} - set(chart.columns)
    if missing:
        raise SystemExit(f"Error: {path} is missing columns: {', '.join(sorted(missing))}")

    return chart


def rate_chart(
    chart: pd.DataFrame,
    kind: SkillKind,
    accuracies: list[float],
    overall_difficulty: float,
    output_csv: Path | None = None,
):
    """Print the rating of one chart."""
    delta_times = chart["delta_time"].tolist()
    contributions = chart["contribution"].tolist()

    curve = StrainCurve.from_sequence(kind, delta_times, contributions)
    peaks = curve.peaks

    print(f"Notes: {len(peaks)}")
    print(f"Skill: {kind.name.lower()} (decay base {kind.decay_base}, multiplier {kind.skill_multiplier})")
    print()

    print("Strain")
    print(f"  Difficulty value:       {curve.difficulty_value():.4f}")
    print(f"  Top weighted strains:   {curve.count_top_weighted_strains():.2f}")
    print(f"  Relevant notes:         {curve.relevant_note_count():.2f}")
    print(f"  FC skill level:         {skill_level_at_fc_probability(peaks):.4f}")
    print()

    patterns = classify_sequence(delta_times)
    rhythm_curve = StrainCurve.from_sequence(
        SkillKind.RHYTHM, delta_times, [p.difficulty for p in patterns]
    )

    print("Rhythm")
    for (numerator, denominator), count in Counter(
        (p.numerator, p.denominator) for p in patterns
    ).most_common():
        print(f"  {numerator}:{denominator:<4} {count}")
    print(f"  Difficulty value:       {rhythm_curve.difficulty_value():.4f}")
    print(f"  Rhythm skill level:     {rhythm_skill_level(rhythm_curve.peaks):.4f}")
    print()

    simulator = AccuracySimulator(peaks, overall_difficulty)

    print(f"Accuracy (OD {overall_difficulty})")
    for accuracy in accuracies:
        skill = simulator.skill_level_at_accuracy(accuracy)
        print(f"  {accuracy * 100:6.2f}%  skill level {skill:.4f}")

    if output_csv:
        output_csv.parent.mkdir(parents=True, exist_ok=True)
        curve.to_dataframe().to_csv(output_csv, index=False)
        print(f"\nStrain curve written to {output_csv}")


def main():
    parser = argparse.ArgumentParser(
        description="Rate a chart from its per-note difficulty contributions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("chart", type=Path, help="Chart CSV (delta_time, contribution)")
    parser.add_argument(
        "--kind",
        choices=[k.name.lower() for k in SkillKind],
        default="speed",
        help="Skill dimension to fold the contributions into (default: speed)",
    )
    parser.add_argument(
        "--accuracy", type=float, nargs="+", default=None,
        help="Target accuracies in [0, 1] (default: 0.90 0.95 0.98 1.0)",
    )
    parser.add_argument(
        "--overall-difficulty", type=float, default=None,
        help="Overall difficulty setting of the judgement windows (default: from .env or 8)",
    )
    parser.add_argument(
        "--csv", type=Path, default=None,
        help="Export the strain curve to a CSV file",
    )

    args = parser.parse_args()

    overall_difficulty = args.overall_difficulty
    if overall_difficulty is None:
        overall_difficulty = float(os.environ.get("RHYTHM_ANALYSIS_OVERALL_DIFFICULTY", "8"))

    try:
        rate_chart(
            chart=load_chart(args.chart),
            kind=SkillKind[args.kind.upper()],
            accuracies=args.accuracy or DEFAULT_ACCURACIES,
            overall_difficulty=overall_difficulty,
            output_csv=args.csv,
        )
    except (InvalidInput, NoConvergence) as e:
        raise SystemExit(f"Error: {e}")


if __name__ == "__main__":
    main()
