"""
velocity/narrative/smart_summary.py
Short archetype-aware card summary, capped at the short-summary length.
"""

from __future__ import annotations

from velocity.config import DEFAULT_THRESHOLDS, Thresholds
from velocity.models.record import Archetype, Record, RevenueTier
from velocity.narrative.synthesizer import clean_summary, is_garbage_value, truncate

# Only these tiers name the work; others fall back to the bare issue
TIER_WORK = {
    RevenueTier.REPLACEMENT:  'replacement',
    RevenueTier.MAJOR_REPAIR: 'major repair',
}


def _issue(record: Record) -> str:
    for value in (record.issue_description, record.service_type):
        if value and not is_garbage_value(value):
            return value.strip()
    return clean_summary(record.ai_summary) or 'Service request'


def smart_summary(
    record:     Record,
    archetype:  Archetype,
    thresholds: Thresholds = DEFAULT_THRESHOLDS,
) -> str:
    limit = thresholds.short_summary_length

    # upstream summary wins when present
    if record.smart_summary and record.smart_summary.strip():
        return truncate(record.smart_summary, limit)

    if archetype is Archetype.RECOVERY and record.priority_reason:
        return truncate(record.priority_reason, limit)

    issue = _issue(record)

    work = TIER_WORK.get(record.revenue_tier)
    if archetype is Archetype.REVENUE and record.equipment_type and work:
        return truncate(f"{record.equipment_type} {work} - {issue}", limit)

    if archetype is Archetype.LOGISTICS and record.time_preference:
        return truncate(f"{issue} · {record.time_preference}", limit)

    return truncate(issue, limit)
