"""
velocity/detectors/tag_classifier.py
Archetype classification and display-tag mapping.

Precedence is strict and exhaustive: HAZARD > RECOVERY > REVENUE > LOGISTICS.
RECOVERY must be checked before REVENUE: a red-flagged customer with a big
ticket is handled as a reputation problem, never as a sales lead.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from velocity.clock import days_since, resolve_now
from velocity.config import DEFAULT_THRESHOLDS, MAX_DISPLAY_TAGS, Thresholds
from velocity.detectors.revenue_signals import has_critical_signals
from velocity.detectors.signal_extractor import (
    equipment_age_years,
    extract_from_record,
    refrigerant_status,
)
from velocity.models.record import (
    Archetype,
    DisplayTag,
    HazardType,
    PriorityColor,
    Record,
    RevenueTier,
    SignalBag,
    TagVariant,
    Urgency,
)
from velocity.models.taxonomy import (
    HAZARD_TRIGGERS,
    RECOVERY_TRIGGERS,
    REVENUE_TRIGGERS,
    HazardTag,
    LogisticsTag,
    RecoveryTag,
    RevenueTag,
    ServiceTypeTag,
    TagBag,
    UrgencyTag,
)

logger = logging.getLogger(__name__)

CRITICAL = TagVariant.CRITICAL
WARNING  = TagVariant.WARNING
POSITIVE = TagVariant.POSITIVE
INFO     = TagVariant.INFO
NEUTRAL  = TagVariant.NEUTRAL
SPECIAL  = TagVariant.SPECIAL


# ── URGENCY ──────────────────────────────────────────────────

URGENCY_TAG_LEVELS: Tuple[Tuple[Tuple[UrgencyTag, ...], Urgency], ...] = (
    ((UrgencyTag.CRITICAL_EVACUATE, UrgencyTag.CRITICAL_DISPATCH), Urgency.EMERGENCY),
    ((UrgencyTag.EMERGENCY_SAMEDAY, UrgencyTag.URGENT_24HR),       Urgency.HIGH),
    ((UrgencyTag.PRIORITY_48HR,),                                  Urgency.MEDIUM),
    ((UrgencyTag.STANDARD, UrgencyTag.FLEXIBLE),                   Urgency.LOW),
)


def map_urgency_from_tags(tags: Optional[TagBag]) -> Optional[Urgency]:
    """Highest urgency implied by URGENCY tags, or None when there are none."""
    if not tags:
        return None
    for group, level in URGENCY_TAG_LEVELS:
        if tags.has(*group):
            return level
    return None


def effective_urgency(record: Record) -> Optional[Urgency]:
    """
    Urgency for display: the explicit field wins, otherwise URGENCY tags.
    Classification and scoring read record.urgency only.
    """
    return record.urgency or map_urgency_from_tags(record.tags)


# ── CLASSIFICATION ───────────────────────────────────────────

def _is_hazard(record: Record, thresholds: Thresholds) -> bool:
    return (
        record.urgency in (Urgency.EMERGENCY, Urgency.HIGH)
        or record.tags.has_any_in(HAZARD_TRIGGERS)
    )


def _is_recovery(record: Record, thresholds: Thresholds) -> bool:
    return (
        record.priority_color is PriorityColor.RED
        or record.tags.has_any_in(RECOVERY_TRIGGERS)
    )


def _is_revenue(record: Record, thresholds: Thresholds) -> bool:
    value = record.estimated_value
    return (
        record.revenue_tier in (RevenueTier.REPLACEMENT, RevenueTier.MAJOR_REPAIR)
        or (value is not None and value >= thresholds.revenue_value_threshold)
        or record.priority_color is PriorityColor.GREEN
        or record.tags.has_any_in(REVENUE_TRIGGERS)
    )


PRECEDENCE: Tuple[Tuple[Archetype, Callable[[Record, Thresholds], bool]], ...] = (
    (Archetype.HAZARD,   _is_hazard),
    (Archetype.RECOVERY, _is_recovery),
    (Archetype.REVENUE,  _is_revenue),
)


def classify(record: Record, thresholds: Thresholds = DEFAULT_THRESHOLDS) -> Archetype:
    """
    Return the single Archetype for a record. Total: a record matching
    no rule is LOGISTICS.
    """
    for archetype, matches in PRECEDENCE:
        if matches(record, thresholds):
            logger.debug(f"Classified | record={record.id} | archetype={archetype.value}")
            return archetype
    logger.debug(f"Classified | record={record.id} | archetype=LOGISTICS (default)")
    return Archetype.LOGISTICS


# ── TAXONOMY DISPLAY TABLES ──────────────────────────────────
# tag -> (label, variant, priority, icon)

HAZARD_DISPLAY: Dict[HazardTag, DisplayTag] = {
    HazardTag.GAS_LEAK:         DisplayTag('Gas Leak',    CRITICAL, 0, 'AlertTriangle'),
    HazardTag.CO_EVENT:         DisplayTag('CO Risk',     CRITICAL, 0, 'AlertTriangle'),
    HazardTag.HEALTH_RISK:      DisplayTag('Health Risk', CRITICAL, 1, 'Activity'),
    HazardTag.ELECTRICAL_FIRE:  DisplayTag('Electrical',  WARNING,  2),
    HazardTag.ACTIVE_FLOODING:  DisplayTag('Flooding',    INFO,     2, 'Droplets'),
    HazardTag.REFRIGERANT_LEAK: DisplayTag('Refrigerant', WARNING,  3),
}

RECOVERY_DISPLAY: Dict[RecoveryTag, DisplayTag] = {
    RecoveryTag.REVIEW_THREAT:     DisplayTag('Review Risk',    CRITICAL, 0, 'AlertTriangle'),
    RecoveryTag.LEGAL_MENTION:     DisplayTag('Legal Risk',     CRITICAL, 0, 'Scale'),
    RecoveryTag.ESCALATION_REQ:    DisplayTag('Manager Needed', CRITICAL, 0, 'UserCog'),
    RecoveryTag.CALLBACK_RISK:     DisplayTag('Callback Risk',  CRITICAL, 1, 'AlertCircle'),
    RecoveryTag.MISSED_APPT:       DisplayTag('Missed Appt',    CRITICAL, 1),
    RecoveryTag.COMPLAINT_NOFIX:   DisplayTag('Not Fixed',      CRITICAL, 1),
    RecoveryTag.LOST_CUSTOMER:     DisplayTag('Lost Customer',  CRITICAL, 1),
    RecoveryTag.COMPLAINT_SERVICE: DisplayTag('Service Issue',  CRITICAL, 2),
    RecoveryTag.COMPLAINT_TECH:    DisplayTag('Tech Complaint', CRITICAL, 2),
    RecoveryTag.REPEAT_ISSUE:      DisplayTag('Repeat Issue',   WARNING,  2),
    RecoveryTag.WARRANTY_DISPUTE:  DisplayTag('Warranty',       SPECIAL,  2),
    RecoveryTag.REFUND_REQ:        DisplayTag('Refund Request', WARNING,  3),
    RecoveryTag.COMPLAINT_PRICE:   DisplayTag('Price Issue',    WARNING,  3),
}

REVENUE_DISPLAY: Dict[RevenueTag, DisplayTag] = {
    RevenueTag.HOT_LEAD:        DisplayTag('Hot Lead',        CRITICAL, 0, 'Flame'),
    RevenueTag.COMMERCIAL_LEAD: DisplayTag('Commercial $$$',  POSITIVE, 1, 'Building2'),
    RevenueTag.R22_RETROFIT:    DisplayTag('R-22 System',     WARNING,  1),
    RevenueTag.REPLACE_OPP:     DisplayTag('Replacement',     WARNING,  2),
    RevenueTag.FINANCING_REQ:   DisplayTag('Financing',       POSITIVE, 2, 'CreditCard'),
    RevenueTag.MULTI_PROPERTY:  DisplayTag('Multi-Prop',      POSITIVE, 2),
    RevenueTag.QUOTE_REQUEST:   DisplayTag('Quote Request',   INFO,     3),
    RevenueTag.QUOTE_FOLLOWUP:  DisplayTag('Quote Follow-up', POSITIVE, 3),
}

LOGISTICS_DISPLAY: Dict[LogisticsTag, DisplayTag] = {
    LogisticsTag.PET_SECURE:       DisplayTag('Pet',           WARNING, 0, 'Dog'),
    LogisticsTag.SPANISH_PREF:     DisplayTag('Español',       SPECIAL, 0),
    LogisticsTag.GATE_CODE:        DisplayTag('Gate Code',     INFO,    1, 'Key'),
    LogisticsTag.GUARD_GATE:       DisplayTag('Guard Gate',    INFO,    1),
    LogisticsTag.LANDLORD_AUTH:    DisplayTag('Landlord Auth', SPECIAL, 1),
    LogisticsTag.NTE_LIMIT:        DisplayTag('Spending Cap',  INFO,    1),
    LogisticsTag.LOCKBOX:          DisplayTag('Lockbox',       NEUTRAL, 2),
    LogisticsTag.ALARM_CODE:       DisplayTag('Alarm',         INFO,    2),
    LogisticsTag.EQUIP_ROOF:       DisplayTag('Rooftop',       WARNING, 2),
    LogisticsTag.EQUIP_ATTIC:      DisplayTag('Attic',         WARNING, 2),
    LogisticsTag.EQUIP_CRAWLSPACE: DisplayTag('Crawlspace',    WARNING, 2),
}

SERVICE_TYPE_LABELS: Dict[ServiceTypeTag, Tuple[str, TagVariant]] = {
    ServiceTypeTag.REPAIR_AC:               ('AC Repair',        INFO),
    ServiceTypeTag.REPAIR_HEATING:          ('Heat Repair',      INFO),
    ServiceTypeTag.REPAIR_HEATPUMP:         ('Heat Pump',        INFO),
    ServiceTypeTag.REPAIR_THERMOSTAT:       ('Thermostat',       NEUTRAL),
    ServiceTypeTag.REPAIR_IAQ:              ('IAQ',              NEUTRAL),
    ServiceTypeTag.REPAIR_DUCTWORK:         ('Ductwork',         NEUTRAL),
    ServiceTypeTag.TUNEUP_AC:               ('AC Tune-up',       INFO),
    ServiceTypeTag.TUNEUP_HEATING:          ('Furnace Tune-up',  INFO),
    ServiceTypeTag.DUCT_CLEANING:           ('Duct Clean',       NEUTRAL),
    ServiceTypeTag.INSTALL_REPLACEMENT:     ('Replacement',      POSITIVE),
    ServiceTypeTag.INSTALL_NEWCONSTRUCTION: ('New Construction', POSITIVE),
    ServiceTypeTag.INSTALL_UPGRADE:         ('Upgrade',          POSITIVE),
    ServiceTypeTag.INSTALL_DUCTLESS:        ('Ductless',         INFO),
    ServiceTypeTag.INSTALL_THERMOSTAT:      ('Thermostat',       NEUTRAL),
    ServiceTypeTag.DIAG_NOISE:              ('Noise Issue',      WARNING),
    ServiceTypeTag.DIAG_SMELL:              ('Smell Issue',      WARNING),
    ServiceTypeTag.DIAG_PERFORMANCE:        ('Performance',      WARNING),
    ServiceTypeTag.DIAG_HIGHBILL:           ('High Bill',        WARNING),
}

SERVICE_TAG_PRIORITY  = 50
LOCATION_TAG_PRIORITY = 100

# archetype -> (TagBag attribute, display table)
CATEGORY_TABLES = {
    Archetype.HAZARD:    ('hazard',    HAZARD_DISPLAY),
    Archetype.RECOVERY:  ('recovery',  RECOVERY_DISPLAY),
    Archetype.REVENUE:   ('revenue',   REVENUE_DISPLAY),
    Archetype.LOGISTICS: ('logistics', LOGISTICS_DISPLAY),
}


# ── SIGNAL-DERIVED RULES ─────────────────────────────────────
# Used when the record carries no category tags for its archetype.

@dataclass(frozen=True)
class RuleContext:
    record:     Record
    signals:    SignalBag
    text:       str
    now:        datetime
    thresholds: Thresholds


Rule = Tuple[Callable[[RuleContext], bool], DisplayTag]

CHURN_WORDS      = frozenset({'angry', 'frustrated', 'furious', 'livid'})
WARRANTY_PATTERN = re.compile(r'warranty|guarantee|labor', re.IGNORECASE)
VIP_PATTERN      = re.compile(r'\b(?:member(?:ship)?|vip|gold|platinum)\b', re.IGNORECASE)
TUNEUP_PATTERN   = re.compile(r'tune[\s-]?up|maintenance|seasonal', re.IGNORECASE)


def _equipment_age(ctx: RuleContext) -> int:
    return equipment_age_years(ctx.record, ctx.signals) or 0


def _recent(ctx: RuleContext) -> bool:
    days = days_since(ctx.record.created_at, ctx.now)
    return days is not None and days <= ctx.thresholds.recall_window_days


def _value_at_least(ctx: RuleContext, floor: float) -> bool:
    return ctx.record.estimated_value is not None and ctx.record.estimated_value >= floor


HAZARD_RULES: Tuple[Rule, ...] = (
    (lambda c: c.signals.evacuation_needed,
        DisplayTag('Evacuate', CRITICAL, 0, 'AlertTriangle')),
    (lambda c: bool(c.signals.occupants),
        DisplayTag('Occupied', CRITICAL, 1, 'Home')),
    (lambda c: c.signals.hazard_type is HazardType.GAS,
        DisplayTag('Gas', CRITICAL, 2)),
    (lambda c: c.signals.hazard_type is HazardType.CARBON_MONOXIDE,
        DisplayTag('CO Risk', CRITICAL, 2)),
    (lambda c: c.signals.hazard_type is HazardType.ELECTRICAL,
        DisplayTag('Electrical', WARNING, 3)),
    (lambda c: c.signals.hazard_type is HazardType.WATER,
        DisplayTag('Water', INFO, 3)),
    (lambda c: effective_urgency(c.record) is Urgency.EMERGENCY,
        DisplayTag('Emergency', CRITICAL, 1)),
)

REVENUE_RULES: Tuple[Rule, ...] = (
    (lambda c: c.signals.financing_mentioned,
        DisplayTag('Financing Asked', POSITIVE, 0, 'CreditCard')),
    (lambda c: c.signals.replacement_mentioned
        or _equipment_age(c) >= c.thresholds.replacement_ready_years,
        DisplayTag('Replacement Ready', WARNING, 1)),
    (lambda c: refrigerant_status(c.signals.refrigerant_type) == 'obsolete'
        or has_critical_signals(c.record.revenue_tier_signals),
        DisplayTag('R-22 System', WARNING, 2)),
    (lambda c: _value_at_least(c, c.thresholds.high_value_tag)
        and not _value_at_least(c, c.thresholds.very_high_value_tag),
        DisplayTag('$5K+', POSITIVE, 1)),
    (lambda c: _value_at_least(c, c.thresholds.very_high_value_tag),
        DisplayTag('$10K+', POSITIVE, 0)),
    (lambda c: c.signals.replacement_mentioned and c.signals.financing_mentioned,
        DisplayTag('Hot Lead', CRITICAL, 0, 'Flame')),
    (lambda c: c.record.revenue_tier is RevenueTier.REPLACEMENT,
        DisplayTag('Replacement', WARNING, 2)),
)

RECOVERY_RULES: Tuple[Rule, ...] = (
    (lambda c: c.record.sentiment_score is not None and c.record.sentiment_score <= 2,
        DisplayTag('Review Risk', CRITICAL, 0, 'AlertCircle')),
    (_recent,
        DisplayTag('Recall Risk', WARNING, 1)),
    (lambda c: any(k.lower() in CHURN_WORDS for k in c.signals.sentiment_keywords),
        DisplayTag('High Churn', CRITICAL, 0)),
    (lambda c: bool(WARRANTY_PATTERN.search(c.text)),
        DisplayTag('Warranty', SPECIAL, 2)),
    (lambda c: c.record.priority_color is PriorityColor.RED,
        DisplayTag('Callback Risk', CRITICAL, 1)),
    (lambda c: c.record.sentiment_score == 3,
        DisplayTag('Concerned', WARNING, 2)),
)

LOGISTICS_RULES: Tuple[Rule, ...] = (
    (lambda c: bool(VIP_PATTERN.search(c.text)),
        DisplayTag('VIP', SPECIAL, 0, 'Crown')),
    (lambda c: c.signals.pet_warning is not None,
        DisplayTag('Pet', WARNING, 1, 'Dog')),
    (lambda c: c.signals.gate_code is not None,
        DisplayTag('Gate Code', INFO, 2, 'Key')),
    (lambda c: bool(c.signals.access_notes),
        DisplayTag('Access Note', NEUTRAL, 3)),
    (lambda c: bool(TUNEUP_PATTERN.search(c.record.issue_description or '')),
        DisplayTag('Tune-up', INFO, 2)),
    (lambda c: bool((c.record.time_preference or '').strip()),
        DisplayTag('Time Pref', NEUTRAL, 3)),
)

SIGNAL_RULES: Dict[Archetype, Tuple[Rule, ...]] = {
    Archetype.HAZARD:    HAZARD_RULES,
    Archetype.RECOVERY:  RECOVERY_RULES,
    Archetype.REVENUE:   REVENUE_RULES,
    Archetype.LOGISTICS: LOGISTICS_RULES,
}


# ── ADDRESS ──────────────────────────────────────────────────

PLACEHOLDER_VALUES = frozenset({'not provided', 'unknown', 'n/a', 'none', 'tbd', ''})


def city_from_address(address: Optional[str]) -> Optional[str]:
    """Second comma-delimited segment of the address, if it is real."""
    if not address or not isinstance(address, str):
        return None
    parts = address.split(',')
    if len(parts) < 2:
        return None
    city = parts[1].strip()
    if city.lower() in PLACEHOLDER_VALUES:
        return None
    return city


# ── DISPLAY TAGS ─────────────────────────────────────────────

def _rank(candidates: Sequence[DisplayTag], cap: int) -> List[DisplayTag]:
    """Stable sort by priority, dedupe by label, cap."""
    out: List[DisplayTag] = []
    seen = set()
    for tag in sorted(candidates, key=lambda t: t.priority):
        if tag.label in seen:
            continue
        seen.add(tag.label)
        out.append(tag)
        if len(out) >= cap:
            break
    return out


def _category_tags(record: Record, archetype: Archetype) -> List[DisplayTag]:
    attr, table = CATEGORY_TABLES[archetype]
    return [table[t] for t in getattr(record.tags, attr) if t in table]


def _signal_tags(ctx: RuleContext, archetype: Archetype) -> List[DisplayTag]:
    return [tag for condition, tag in SIGNAL_RULES[archetype] if condition(ctx)]


def _service_tag(record: Record) -> Optional[DisplayTag]:
    if not record.tags.service_type:
        return None
    first = record.tags.service_type[0]
    label, variant = SERVICE_TYPE_LABELS.get(first, (first.value.replace('_', ' '), INFO))
    return DisplayTag(label, variant, SERVICE_TAG_PRIORITY)


def display_tags(
    record:     Record,
    archetype:  Archetype,
    signals:    Optional[SignalBag] = None,
    now:        Optional[datetime] = None,
    thresholds: Thresholds = DEFAULT_THRESHOLDS,
) -> List[DisplayTag]:
    """
    Up to max_display_tags chips for one record, sorted by priority with
    no repeated labels. Category tags for the archetype are preferred;
    signal-derived rules fill in when the upstream sent none. A service-type
    chip and then a location chip are appended while room remains.
    """
    cap = min(thresholds.max_display_tags, MAX_DISPLAY_TAGS)
    primary = _category_tags(record, archetype)
    if not primary:
        if signals is None:
            signals = extract_from_record(record)
        ctx = RuleContext(
            record     = record,
            signals    = signals,
            text       = record.ai_summary or record.call_transcript or '',
            now        = resolve_now(now),
            thresholds = thresholds,
        )
        primary = _signal_tags(ctx, archetype)

    tags = _rank(primary, cap)
    labels = {t.label for t in tags}

    service = _service_tag(record)
    if service and len(tags) < cap and service.label not in labels:
        tags.append(service)
        labels.add(service.label)

    city = city_from_address(record.customer_address)
    if city and len(tags) < cap and city not in labels:
        tags.append(DisplayTag(city, NEUTRAL, LOCATION_TAG_PRIORITY, 'MapPin'))

    return tags
