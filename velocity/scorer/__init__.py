"""
velocity/scorer — rank scores and board ordering.

Deterministic for a fixed (record, now). No I/O.
"""

from velocity.scorer.velocity_scorer import (
    ARCHETYPE_CONFIG,
    BASE_SCORES,
    count_by_archetype,
    format_dollar_estimate,
    group_by_archetype,
    score,
    sort_by_velocity,
    velocity_order,
)

__all__ = [
    "ARCHETYPE_CONFIG",
    "BASE_SCORES",
    "count_by_archetype",
    "format_dollar_estimate",
    "group_by_archetype",
    "score",
    "sort_by_velocity",
    "velocity_order",
]
