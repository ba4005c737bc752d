"""
Rhythm game rating engine.

Turns per-note difficulty contributions into difficulty values and skill
levels, simulates the accuracy a player reaches, and estimates a score's
unstable rate from its judgement counts.
"""

from .errors import (
    RatingError,
    InvalidInput,
    NoConvergence,
)

from .rhythm import (
    RhythmPattern,
    COMMON_RHYTHMS,
    IDENTITY_RHYTHM,
    classify_rhythm,
    classify_sequence,
)

from .strain import (
    SkillKind,
    StrainAggregator,
    StrainCurve,
    StrainEvent,
    strain_decay,
    strain_fold,
)

from .probability import (
    JudgementProbabilities,
    hit_probability,
    window_hit_probability,
    log_erfc,
    log_complement_prob_of_hit,
    log_sum,
    log_diff,
    log_band_probabilities,
    log_complement_prob_of_hold,
    log_hold_band_probabilities,
    window_probabilities,
)

from .numerics import (
    find_root_expand,
    minimize_from,
)

from .skill_level import (
    create_bins,
    fc_probability,
    miss_count_cdf,
    miss_probability_at_skill,
    skill_level_at_fc_probability,
    rhythm_skill_level,
)

from .accuracy import (
    AccuracySimulator,
    create_quantile_bins,
    skill_to_deviation,
)

from .hit_windows import (
    HitWindowSet,
    taiko_hit_windows,
    osu_hit_windows,
    mania_hit_windows,
)

from .unstable_rate import (
    JudgementCounts,
    UnstableRateEstimator,
    format_unstable_rate,
)

__version__ = "0.1.0"
