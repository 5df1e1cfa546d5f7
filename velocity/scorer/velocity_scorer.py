"""
velocity/scorer/velocity_scorer.py
Rank score for the triage board. Higher sorts first.

score = base(archetype) + adjustments(archetype, record)

Bases are far enough apart that adjustments never carry a record into the
band above it under normal inputs. Time since creation raises every score,
so the same record ranks higher the longer it waits.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Dict, Iterable, List, NamedTuple, Optional, Tuple

from velocity.clock import as_utc, resolve_now
from velocity.config import DEFAULT_THRESHOLDS, Thresholds
from velocity.detectors.tag_classifier import classify
from velocity.models.record import Archetype, Record, RevenueTier, Urgency
from velocity.models.taxonomy import (
    ContextTag,
    HazardTag,
    LogisticsTag,
    RecoveryTag,
    RevenueTag,
)

logger = logging.getLogger(__name__)

BASE_SCORES: Dict[Archetype, float] = {
    Archetype.HAZARD:    1000.0,
    Archetype.RECOVERY:  700.0,
    Archetype.REVENUE:   400.0,
    Archetype.LOGISTICS: 100.0,
}

ARCHETYPE_CONFIG: Dict[Archetype, Dict[str, str]] = {
    Archetype.HAZARD: {
        'label':       'HAZARD',
        'description': 'Safety emergency - immediate attention required',
        'icon':        'AlertTriangle',
    },
    Archetype.RECOVERY: {
        'label':       'RECOVERY',
        'description': 'Callback risk - customer needs immediate follow-up',
        'icon':        'PhoneCallback',
    },
    Archetype.REVENUE: {
        'label':       'REVENUE',
        'description': 'High-value opportunity',
        'icon':        'DollarSign',
    },
    Archetype.LOGISTICS: {
        'label':       'LOGISTICS',
        'description': 'Standard lead - routine follow-up',
        'icon':        'ClipboardList',
    },
}


# ── TIME ─────────────────────────────────────────────────────

def hours_since_created(record: Record, now: Optional[datetime] = None) -> float:
    """Elapsed hours, clamped at 0. Absent or future timestamps give 0."""
    created = as_utc(record.created_at)
    if created is None:
        return 0.0
    return max((resolve_now(now) - created).total_seconds() / 3600.0, 0.0)


def _finite(value: Optional[float]) -> Optional[float]:
    """None for absent, NaN and infinite values."""
    return value if value is not None and math.isfinite(value) else None


# ── ADJUSTMENTS ──────────────────────────────────────────────

def _hazard_bonus(record: Record, hours: float, t: Thresholds) -> float:
    tags = record.tags
    bonus = min(hours * 10, 50)
    if record.urgency is Urgency.EMERGENCY:
        bonus += 30
    if tags.has(HazardTag.GAS_LEAK, HazardTag.CO_EVENT):
        bonus += 40
    if tags.has(HazardTag.ELECTRICAL_FIRE):
        bonus += 35
    if tags.has(ContextTag.ELDERLY_OCCUPANT, ContextTag.INFANT_NEWBORN):
        bonus += 20
    return bonus


def _recovery_bonus(record: Record, hours: float, t: Thresholds) -> float:
    tags = record.tags
    bonus = 0.0
    if record.estimated_value is not None and record.estimated_value >= t.revenue_value_threshold:
        bonus += 40
    if record.revenue_tier is RevenueTier.REPLACEMENT:
        bonus += 30
    bonus += min(hours * 5, 60)
    sentiment = record.sentiment_score
    if sentiment is not None:
        if sentiment <= 2:
            bonus += 25
        elif sentiment == 3:
            bonus += 10
    if tags.has(RecoveryTag.REVIEW_THREAT, RecoveryTag.LEGAL_MENTION):
        bonus += 35
    if tags.has(RecoveryTag.ESCALATION_REQ):
        bonus += 25
    return bonus


def _revenue_bonus(record: Record, hours: float, t: Thresholds) -> float:
    tags = record.tags
    bonus = 0.0
    value = _finite(record.estimated_value)
    if value and value > 0:
        bonus += min(value / 100, 50)
    if record.revenue_tier is RevenueTier.REPLACEMENT:
        bonus += 30
    bonus += min(hours * 3, 30)
    if tags.has(RevenueTag.HOT_LEAD):
        bonus += 25
    if tags.has(RevenueTag.COMMERCIAL_LEAD, RevenueTag.MULTI_PROPERTY):
        bonus += 20
    if tags.has(RevenueTag.R22_RETROFIT):
        bonus += 15
    return bonus


def _logistics_bonus(record: Record, hours: float, t: Thresholds) -> float:
    bonus = min(hours * 2, 50)
    if hours > t.logistics_stale_hours:
        bonus += 30
    if record.tags.has(LogisticsTag.GATE_CODE, LogisticsTag.LOCKBOX):
        bonus += 5
    return bonus


ADJUSTMENTS = {
    Archetype.HAZARD:    _hazard_bonus,
    Archetype.RECOVERY:  _recovery_bonus,
    Archetype.REVENUE:   _revenue_bonus,
    Archetype.LOGISTICS: _logistics_bonus,
}


# ── SCORE ────────────────────────────────────────────────────

def score(
    record:     Record,
    now:        Optional[datetime] = None,
    archetype:  Optional[Archetype] = None,
    thresholds: Thresholds = DEFAULT_THRESHOLDS,
) -> float:
    """
    Rank score for one record at `now` (defaults to the current UTC time).
    Pass `archetype` when it is already known to skip reclassifying.
    """
    archetype = archetype or classify(record, thresholds)
    hours = hours_since_created(record, now)
    return BASE_SCORES[archetype] + ADJUSTMENTS[archetype](record, hours, thresholds)


def velocity_order(value: float, created_at: Optional[datetime]) -> Tuple[float, bool, float]:
    """
    Sort key for the board: higher score first, then the older record.
    Absent timestamps sort after every real one. Use with a stable sort so
    remaining ties keep input order.
    """
    created = as_utc(created_at)
    return (-value, created is None, created.timestamp() if created else 0.0)


def sort_by_velocity(
    records:    Iterable[Record],
    now:        Optional[datetime] = None,
    thresholds: Thresholds = DEFAULT_THRESHOLDS,
) -> List[Record]:
    """
    Stable sort, highest score first. Ties go to the older record, then to
    input order.
    """
    now = resolve_now(now)
    scored = [(score(r, now, thresholds=thresholds), r) for r in records]
    scored.sort(key=lambda item: velocity_order(item[0], item[1].created_at))
    return [r for _, r in scored]


def group_by_archetype(
    records:    Iterable[Record],
    thresholds: Thresholds = DEFAULT_THRESHOLDS,
) -> Dict[Archetype, List[Record]]:
    groups: Dict[Archetype, List[Record]] = {a: [] for a in Archetype}
    for r in records:
        groups[classify(r, thresholds)].append(r)
    return groups


def count_by_archetype(
    records:    Iterable[Record],
    thresholds: Thresholds = DEFAULT_THRESHOLDS,
) -> Dict[Archetype, int]:
    """Per-archetype counts. Every archetype key is present."""
    return {a: len(rs) for a, rs in group_by_archetype(records, thresholds).items()}


# ── DOLLAR ESTIMATE ──────────────────────────────────────────

TIER_FLOOR_ESTIMATES: Dict[RevenueTier, float] = {
    RevenueTier.REPLACEMENT:     5000,
    RevenueTier.MAJOR_REPAIR:    1500,
    RevenueTier.STANDARD_REPAIR: 300,
    RevenueTier.MINOR:           150,
    RevenueTier.DIAGNOSTIC:      89,
}

TIER_SYMBOLS: Dict[RevenueTier, str] = {
    RevenueTier.REPLACEMENT:     '$$$$',
    RevenueTier.MAJOR_REPAIR:    '$$$',
    RevenueTier.STANDARD_REPAIR: '$$',
    RevenueTier.MINOR:           '$',
    RevenueTier.DIAGNOSTIC:      '$',
}


class DollarEstimate(NamedTuple):
    display: str
    kind:    str        # exact / range / floor / tier


def format_currency(value: float) -> str:
    """$2K, $1.5K, $500."""
    if value >= 1000:
        k = value / 1000
        if k == int(k):
            return f'${int(k)}K'
        text = f'{k:.1f}'
        if text.endswith('.0'):
            text = text[:-2]
        return f'${text}K'
    if value == int(value):
        return f'${int(value):,}'
    return f'${value:,.2f}'


def format_dollar_estimate(
    value: Optional[float],
    tier:  Optional[RevenueTier],
    low:   Optional[float] = None,
    high:  Optional[float] = None,
) -> Optional[DollarEstimate]:
    """
    Card-sized money string. Preference: range, exact value, low floor,
    tier floor. Returns None when nothing is known.
    """
    value, low, high = _finite(value), _finite(low), _finite(high)
    if low and high and low != high:
        return DollarEstimate(f"{format_currency(low)}-{format_currency(high)[1:]}", 'range')
    if value and value > 0:
        return DollarEstimate(format_currency(value), 'exact')
    if low and low > 0:
        return DollarEstimate(f"{format_currency(low)}+", 'floor')
    if tier in TIER_FLOOR_ESTIMATES:
        return DollarEstimate(f"{format_currency(TIER_FLOOR_ESTIMATES[tier])}+", 'floor')
    return None


def estimate_for(record: Record) -> Optional[DollarEstimate]:
    return format_dollar_estimate(
        record.estimated_value,
        record.revenue_tier,
        record.estimated_value_low,
        record.estimated_value_high,
    )


def tier_symbol(tier: Optional[RevenueTier]) -> str:
    return TIER_SYMBOLS.get(tier, '') if tier else ''
