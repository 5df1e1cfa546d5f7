"""
velocity/narrative/synthesizer.py
Headline, subtext and UI warnings for a triage card.

Each archetype has an ordered chain of candidate builders: a FULL template
that needs specific signals, then a FALLBACK built only from fields every
record may carry. The first builder that returns a result wins; a final
guard makes an empty headline impossible. Warnings are attached separately
so they appear whichever template is used.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

from velocity.clock import days_since, resolve_now
from velocity.config import DEFAULT_THRESHOLDS, Thresholds
from velocity.detectors.revenue_signals import has_critical_signals, ordered_signals
from velocity.detectors.signal_extractor import (
    equipment_age_years,
    extract_from_record,
    first_quote,
    hazard_label,
    is_equipment_old,
    refrigerant_status,
)
from velocity.detectors.tag_classifier import city_from_address
from velocity.models.record import (
    Archetype,
    InlineNarrative,
    NarrativeResult,
    NarrativeSegment,
    Record,
    RevenueTier,
    SignalBag,
    UIWarning,
)
from velocity.scorer.velocity_scorer import estimate_for

logger = logging.getLogger(__name__)


# ── TEXT HELPERS ─────────────────────────────────────────────

ELLIPSIS = '...'

SYSTEM_PREFIXES = (
    re.compile(r'^\[(?:EMERGENCY|HIGH VALUE|REPLACEMENT|RECOVERY|CALLBACK)\]\s*', re.IGNORECASE),
    re.compile(r'^Outcome:\s*', re.IGNORECASE),
    re.compile(r'^The user called\s+\w+[^.]*\.\s*', re.IGNORECASE),
    re.compile(r'^Customer\s+(?:called|contacted)\s+', re.IGNORECASE),
)

GARBAGE_VALUES = frozenset({'hvac', 'plumbing', 'electrical', 'service', 'n/a', 'none', 'unknown'})

SENTENCE_SPLIT = re.compile(r'(?<=[.!?])\s+')


def truncate(text: Optional[str], max_length: int) -> str:
    """
    Shorten to at most max_length characters including the ellipsis.

    Cuts at the last word boundary inside the budget, so a word is never
    split. Only a single unbroken token longer than the budget is hard-cut.
    """
    if not text:
        return ''
    text = text.strip()
    if len(text) <= max_length:
        return text
    budget = max(max_length - len(ELLIPSIS), 1)
    # one extra char so a space right at the cut point counts as a boundary
    cut = text[:budget + 1].rfind(' ')
    head = text[:cut] if cut > 0 else text[:budget]
    return head.rstrip(' ,;:-') + ELLIPSIS


def capitalize_first(text: Optional[str]) -> str:
    if not text:
        return ''
    return text[0].upper() + text[1:]


def is_garbage_value(value: Optional[str]) -> bool:
    """Placeholders and bare service words carry no narrative content."""
    if not value:
        return True
    v = value.strip().lower()
    return v in GARBAGE_VALUES or len(v) < 4


def clean_summary(text: Optional[str], max_length: int = DEFAULT_THRESHOLDS.summary_max_length) -> str:
    """
    Strip system prefixes from an AI summary and keep its first two
    sentences, truncated near max_length. Returns '' for garbage.
    """
    if not text:
        return ''
    clean = text.strip()
    for prefix in SYSTEM_PREFIXES:
        clean = prefix.sub('', clean).strip()
    if clean.lower() in GARBAGE_VALUES:
        return ''
    sentences = [s for s in SENTENCE_SPLIT.split(clean) if len(s.strip()) > 5]
    if not sentences:
        return clean if len(clean) > 10 else ''
    return capitalize_first(truncate(' '.join(sentences[:2]).strip(), max_length))


def ago(days: Optional[int]) -> Optional[str]:
    if days is None:
        return None
    if days == 0:
        return 'Today'
    if days == 1:
        return '1 day ago'
    return f'{days} days ago'


def _issue(record: Record) -> Optional[str]:
    if record.kind == 'job':
        return record.issue_description or record.service_type
    return record.issue_description


# ── CONTEXT ──────────────────────────────────────────────────

@dataclass(frozen=True)
class NarrativeContext:
    record:     Record
    signals:    SignalBag
    now:        datetime
    thresholds: Thresholds

    @property
    def name(self) -> str:
        return (self.record.customer_name or '').strip() or 'Customer'

    @property
    def city(self) -> Optional[str]:
        return city_from_address(self.record.customer_address)


Builder = Callable[[NarrativeContext], Optional[NarrativeResult]]


# ── HAZARD ───────────────────────────────────────────────────

def _hazard_full(ctx: NarrativeContext) -> Optional[NarrativeResult]:
    s = ctx.signals
    if s.hazard_type is None:
        return None
    issue = _issue(ctx.record)
    label = hazard_label(s.hazard_type)

    headline = f"{label} reported by {ctx.name}."
    symptom = s.problem_keywords[0] if s.problem_keywords else None
    if symptom and symptom != issue:
        headline += f" Symptom: {truncate(symptom, 40)}."
    if s.evacuation_needed:
        headline += " Evacuation advised."
    else:
        headline += f" {label} detected."
    if s.shut_off_info:
        headline += f" Status: {capitalize_first(s.shut_off_info)}."

    return NarrativeResult(
        headline = headline,
        subtext  = f"at {ctx.city}" if ctx.city else None,
    )


def _hazard_fallback(ctx: NarrativeContext) -> Optional[NarrativeResult]:
    s = ctx.signals
    address = (ctx.record.customer_address or '').strip()
    location = f"at {truncate(address, 40)}" if address else 'at unknown location'
    key_phrase = (
        (s.urgency_keywords[0] if s.urgency_keywords else None)
        or (s.problem_keywords[0] if s.problem_keywords else None)
        or _issue(ctx.record)
    )
    return NarrativeResult(
        headline = f"Urgent Safety Issue {location}. Hazard type not confirmed.",
        subtext  = f'Detected: "{truncate(key_phrase, 50)}"' if key_phrase else 'Details limited. Confirm on callback.',
    )


def _hazard_warnings(ctx: NarrativeContext) -> List[UIWarning]:
    warnings = []
    address = (ctx.record.customer_address or '').strip()
    if len(address) < ctx.thresholds.short_address_length:
        warnings.append(UIWarning('flash', 'address', 'Verify Address'))
    if ctx.signals.occupants:
        warnings.append(UIWarning(
            'icon', 'occupants', f"{', '.join(ctx.signals.occupants)} present", 'Home',
        ))
    return warnings


# ── REVENUE ──────────────────────────────────────────────────

def _opportunity_type(ctx: NarrativeContext) -> str:
    tier = ctx.record.revenue_tier
    if ctx.signals.replacement_mentioned:
        return 'Replacement opportunity'
    if tier is RevenueTier.REPLACEMENT:
        return 'Replacement quote'
    if tier is RevenueTier.MAJOR_REPAIR:
        return 'Major repair opportunity'
    return 'Sales opportunity'


def _estimate_subtext(ctx: NarrativeContext) -> Optional[str]:
    estimate = estimate_for(ctx.record)
    return f"Est. value: {estimate.display}" if estimate else None


def _revenue_full(ctx: NarrativeContext) -> Optional[NarrativeResult]:
    s = ctx.signals
    age = equipment_age_years(ctx.record, s)
    if not age or not (s.replacement_mentioned or ctx.record.revenue_tier):
        return None

    headline = f"{_opportunity_type(ctx)} for {age}-year-old {s.refrigerant_type or 'system'}."
    interests = []
    if s.financing_mentioned:
        interests.append('financing')
    if s.replacement_mentioned:
        interests.append('new system')
    if (refrigerant_status(s.refrigerant_type) == 'obsolete'
            or has_critical_signals(ctx.record.revenue_tier_signals)):
        interests.append('R-22 upgrade')
    if interests:
        headline += f" Customer interested in {', '.join(interests)}."

    return NarrativeResult(
        headline      = headline,
        subtext       = _estimate_subtext(ctx),
        highlight_age = is_equipment_old(age, ctx.thresholds.old_equipment_years),
    )


def _revenue_fallback(ctx: NarrativeContext) -> Optional[NarrativeResult]:
    topic = (
        ', '.join(ctx.signals.problem_keywords[:2])
        or ', '.join(ordered_signals(ctx.record.revenue_tier_signals)[:2])
        or _issue(ctx.record)
    )
    if topic and not is_garbage_value(topic):
        headline = f"{_opportunity_type(ctx)} detected. Topic: {truncate(topic, 40)}."
    else:
        headline = f"{_opportunity_type(ctx)} detected. Equipment details not captured."
    return NarrativeResult(headline=headline, subtext=_estimate_subtext(ctx))


def _revenue_warnings(ctx: NarrativeContext) -> List[UIWarning]:
    age = equipment_age_years(ctx.record, ctx.signals)
    if is_equipment_old(age, ctx.thresholds.old_equipment_years):
        return [UIWarning('bold', 'equipment_age', f"{age}-year-old system")]
    return []


# ── RECOVERY ─────────────────────────────────────────────────

def _sentiment_label(ctx: NarrativeContext, neutral: str = 'Customer inquiry') -> str:
    score = ctx.record.sentiment_score
    if score is not None:
        if score <= 2:
            return 'Upset customer'
        if score == 3:
            return 'Concerned customer'
        return neutral
    if ctx.signals.sentiment_keywords:
        return f"{capitalize_first(ctx.signals.sentiment_keywords[0])} customer"
    return 'At-risk customer'


def _recovery_full(ctx: NarrativeContext) -> Optional[NarrativeResult]:
    s = ctx.signals
    reason = ctx.record.priority_reason
    if not reason and not s.sentiment_keywords:
        return None
    topic = reason or ctx.record.issue_description or 'previous service'
    headline = f"{_sentiment_label(ctx)} regarding {truncate(topic, 60)}."
    quote = first_quote(s)
    if quote:
        headline += f' Quote: "{truncate(quote, 40)}"'
    return NarrativeResult(
        headline = headline,
        subtext  = ago(days_since(ctx.record.created_at, ctx.now)),
    )


def _recovery_fallback(ctx: NarrativeContext) -> Optional[NarrativeResult]:
    score = ctx.record.sentiment_score
    detail = f"Sentiment: {score}/5." if score is not None else 'Reason not captured.'
    reason = ctx.record.priority_reason
    return NarrativeResult(
        headline = f"At-Risk Customer detected. {detail}",
        subtext  = f"Reason: {truncate(reason, 40)}" if reason else ago(days_since(ctx.record.created_at, ctx.now)),
    )


def _recovery_warnings(ctx: NarrativeContext) -> List[UIWarning]:
    warnings = []
    days = days_since(ctx.record.created_at, ctx.now)
    if days is not None and days <= ctx.thresholds.recall_window_days:
        warnings.append(UIWarning('icon', 'recall', 'Recall Risk', 'AlertCircle'))
    score = ctx.record.sentiment_score
    if score is not None and score <= 2:
        warnings.append(UIWarning('flash', 'sentiment', 'High Churn Risk'))
    return warnings


# ── LOGISTICS ────────────────────────────────────────────────

def _access_info(s: SignalBag) -> Optional[str]:
    notes = []
    if s.gate_code:
        notes.append(f"Gate: {s.gate_code}")
    if s.pet_warning:
        notes.append(s.pet_warning)
    if s.key_location:
        notes.append(s.key_location)
    notes.extend(s.access_notes)
    return notes[0] if notes else None


def _service_requested(ctx: NarrativeContext) -> Optional[str]:
    for value in (ctx.record.issue_description, ctx.record.service_type):
        if value and not is_garbage_value(value):
            return value.strip()
    return None


def _logistics_full(ctx: NarrativeContext) -> Optional[NarrativeResult]:
    time_pref = (ctx.record.time_preference or '').strip()
    access = _access_info(ctx.signals)
    if not (time_pref or access):
        return None
    service = _service_requested(ctx) or 'Service'
    headline = f"{capitalize_first(truncate(service, 30))} requested"
    if time_pref:
        headline += f" for {time_pref}"
    headline += '.'
    if access:
        headline += f" Note: {truncate(capitalize_first(access), 35)}."
    return NarrativeResult(headline=headline, subtext=ctx.city)


def _logistics_fallback(ctx: NarrativeContext) -> Optional[NarrativeResult]:
    if ctx.record.kind == 'job':
        action = 'Scheduling needed'
    elif (ctx.record.status or '').lower() == 'callback_requested':
        action = 'Callback needed'
    else:
        action = 'Follow-up needed'
    service = _service_requested(ctx)
    return NarrativeResult(
        headline = f"General inquiry from {ctx.name}. Action: {action}.",
        subtext  = f"Topic: {truncate(service, 40)}" if service else 'Details limited. Confirm on callback.',
    )


def _logistics_warnings(ctx: NarrativeContext) -> List[UIWarning]:
    s = ctx.signals
    warnings = []
    if s.pet_warning:
        warnings.append(UIWarning('icon', 'pet', 'Pet on premises', 'Dog'))
    if s.gate_code:
        warnings.append(UIWarning('icon', 'gate', 'Gate code required', 'Key'))
    if s.key_location:
        warnings.append(UIWarning('icon', 'key', 'Key location noted', 'KeyRound'))
    return warnings


# ── CHAINS ───────────────────────────────────────────────────

BUILDERS: Dict[Archetype, Sequence[Builder]] = {
    Archetype.HAZARD:    (_hazard_full,    _hazard_fallback),
    Archetype.RECOVERY:  (_recovery_full,  _recovery_fallback),
    Archetype.REVENUE:   (_revenue_full,   _revenue_fallback),
    Archetype.LOGISTICS: (_logistics_full, _logistics_fallback),
}

WARNING_BUILDERS: Dict[Archetype, Callable[[NarrativeContext], List[UIWarning]]] = {
    Archetype.HAZARD:    _hazard_warnings,
    Archetype.RECOVERY:  _recovery_warnings,
    Archetype.REVENUE:   _revenue_warnings,
    Archetype.LOGISTICS: _logistics_warnings,
}

EXPANDED_LABELS: Dict[Archetype, str] = {
    Archetype.HAZARD:    'Safety Brief',
    Archetype.REVENUE:   'Equipment Profile',
    Archetype.RECOVERY:  'Timeline & Sentiment',
    Archetype.LOGISTICS: 'Site Access',
}


def _context(record, signals, now, thresholds) -> NarrativeContext:
    return NarrativeContext(
        record     = record,
        signals    = signals if signals is not None else extract_from_record(record),
        now        = resolve_now(now),
        thresholds = thresholds,
    )


def narrate(
    record:     Record,
    archetype:  Archetype,
    signals:    Optional[SignalBag] = None,
    now:        Optional[datetime] = None,
    thresholds: Thresholds = DEFAULT_THRESHOLDS,
) -> NarrativeResult:
    """Card narrative for one record. The headline is never empty."""
    ctx = _context(record, signals, now, thresholds)
    warnings = WARNING_BUILDERS[archetype](ctx)
    for builder in BUILDERS[archetype]:
        result = builder(ctx)
        if result is not None and result.headline.strip():
            result.warnings = warnings
            logger.debug(f"Narrative | record={record.id} | template={builder.__name__}")
            return result
    logger.debug(f"Narrative | record={record.id} | template=guard")
    return NarrativeResult(
        headline = f"{archetype.value.title()} item from {ctx.name}. Details limited.",
        warnings = warnings,
    )


def expanded_label(archetype: Archetype) -> str:
    return EXPANDED_LABELS.get(archetype, 'Details')


# ── INLINE ───────────────────────────────────────────────────

def _seg(text: str, emphasis: str = 'normal') -> NarrativeSegment:
    return NarrativeSegment(text=text, emphasis=emphasis)


def _hazard_inline(ctx: NarrativeContext) -> List[NarrativeSegment]:
    s = ctx.signals
    segments = []
    issue = ctx.record.issue_description or ctx.record.priority_reason
    if not is_garbage_value(issue):
        segments.append(_seg(capitalize_first(truncate(issue, 60)), 'bold'))
    if s.evacuation_needed:
        segments.append(_seg('Family evacuated.'))
    elif s.shut_off_info:
        segments.append(_seg(capitalize_first(s.shut_off_info) + '.'))
    if not segments:
        segments = [_seg('Safety emergency reported.', 'bold'), _seg('Immediate response needed.')]
    return segments


def _revenue_inline(ctx: NarrativeContext) -> List[NarrativeSegment]:
    s = ctx.signals
    segments = []
    age = equipment_age_years(ctx.record, s)
    system = s.equipment_make or s.refrigerant_type
    issue = ctx.record.issue_description
    if age:
        segments.append(_seg(f"{age}-year {system}" if system else f"{age}-year-old unit", 'bold'))
        if not is_garbage_value(issue):
            segments.append(_seg('-'))
            segments.append(_seg(truncate(issue, 40)))
    elif not is_garbage_value(issue):
        segments.append(_seg(capitalize_first(truncate(issue, 50)), 'bold'))
    elif ctx.record.revenue_tier_signals:
        top = ordered_signals(ctx.record.revenue_tier_signals)[0]
        segments.append(_seg(capitalize_first(truncate(top, 50)), 'bold'))
    else:
        segments.append(_seg('High-value service opportunity.', 'bold'))
    if s.financing_mentioned:
        segments.append(_seg('Interested in financing.'))
    elif s.replacement_mentioned:
        segments.append(_seg('Considering replacement.'))
    return segments


def _recovery_inline(ctx: NarrativeContext) -> List[NarrativeSegment]:
    s = ctx.signals
    issue = ctx.record.priority_reason or ctx.record.issue_description
    segments = [_seg(_sentiment_label(ctx, neutral='Customer following up'), 'bold')]
    if not is_garbage_value(issue):
        segments.append(_seg('-'))
        segments.append(_seg(truncate(issue, 45)))
    else:
        segments.append(_seg('regarding previous service.'))
    quote = first_quote(s)
    if quote:
        segments.append(_seg(f'"{truncate(quote, 30)}"'))
    return segments


def _logistics_inline(ctx: NarrativeContext) -> List[NarrativeSegment]:
    s = ctx.signals
    issue = ctx.record.issue_description
    segments = []
    if not is_garbage_value(issue):
        segments.append(_seg(capitalize_first(truncate(issue, 50)), 'bold'))
    else:
        segments.append(_seg('Service call requested.', 'bold'))
    time_pref = (ctx.record.time_preference or '').strip()
    if time_pref:
        segments.append(_seg('Preferred time:'))
        segments.append(_seg(time_pref, 'bold'))
    if s.gate_code:
        segments.append(_seg('Gate:'))
        segments.append(_seg(s.gate_code, 'bold'))
    if s.pet_warning:
        segments.append(_seg('Pet on site.'))
    return segments


INLINE_BUILDERS: Dict[Archetype, Callable[[NarrativeContext], List[NarrativeSegment]]] = {
    Archetype.HAZARD:    _hazard_inline,
    Archetype.RECOVERY:  _recovery_inline,
    Archetype.REVENUE:   _revenue_inline,
    Archetype.LOGISTICS: _logistics_inline,
}


def narrate_inline(
    record:     Record,
    archetype:  Archetype,
    signals:    Optional[SignalBag] = None,
    now:        Optional[datetime] = None,
    thresholds: Thresholds = DEFAULT_THRESHOLDS,
) -> InlineNarrative:
    """
    One-line card text with bold emphasis on the actionable part. A cleaned
    AI summary is used as-is when it says something; otherwise the line is
    assembled from fields and signals.
    """
    ctx = _context(record, signals, now, thresholds)
    summary = clean_summary(record.ai_summary, thresholds.summary_max_length)
    if len(summary) > thresholds.summary_min_length and not is_garbage_value(summary):
        segments = [_seg(summary, 'bold')]
    else:
        segments = INLINE_BUILDERS[archetype](ctx)
    return InlineNarrative(
        segments = segments,
        subtext  = f"at {ctx.city}" if ctx.city else '',
    )
