"""
velocity/detectors/revenue_signals.py
Sorts a record's revenue_tier_signals so replacement-grade reasons come first.

The upstream tiering step sends short free-text reasons ("R-22 system",
"Unit is 18 years old"). A reason naming an obsolete refrigerant marks a
likely replacement rather than a repair, so it leads any "show first N" list.
Pure Python, no I/O.
"""

from __future__ import annotations

from typing import Iterable, List, NamedTuple, Optional

CRITICAL_SIGNAL_PATTERNS = (
    'r-22',
    'r22',
    'freon',
    'obsolete',
    'old refrigerant',
)


class TierSignals(NamedTuple):
    critical: List[str]
    normal:   List[str]


def is_critical_signal(signal: str) -> bool:
    """Case-insensitive substring match against CRITICAL_SIGNAL_PATTERNS."""
    lowered = signal.lower()
    return any(p in lowered for p in CRITICAL_SIGNAL_PATTERNS)


def categorize_tier_signals(signals: Optional[Iterable[str]]) -> TierSignals:
    """Split into critical and normal, each keeping input order."""
    result = TierSignals([], [])
    for signal in signals or ():
        (result.critical if is_critical_signal(signal) else result.normal).append(signal)
    return result


def ordered_signals(signals: Optional[Iterable[str]]) -> List[str]:
    critical, normal = categorize_tier_signals(signals)
    return critical + normal


def has_critical_signals(signals: Optional[Iterable[str]]) -> bool:
    return any(is_critical_signal(s) for s in signals or ())
