"""
velocity/models/record.py
Shared dataclass schema. The parser, extractor, classifier, scorer and
narrative all use these types. Do not add logic here — data only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple

from velocity.models.taxonomy import TagBag


# ── ENUMS ────────────────────────────────────────────────────

class Archetype(str, Enum):
    """Priority class. Declaration order is precedence order."""
    HAZARD    = 'HAZARD'
    RECOVERY  = 'RECOVERY'
    REVENUE   = 'REVENUE'
    LOGISTICS = 'LOGISTICS'


class Urgency(str, Enum):
    LOW       = 'low'
    MEDIUM    = 'medium'
    HIGH      = 'high'
    EMERGENCY = 'emergency'


class PriorityColor(str, Enum):
    RED   = 'red'       # alert, recovery hint
    GREEN = 'green'     # commercial, revenue hint
    BLUE  = 'blue'
    GRAY  = 'gray'


class RevenueTier(str, Enum):
    DIAGNOSTIC      = 'diagnostic'
    MINOR           = 'minor'
    STANDARD_REPAIR = 'standard_repair'
    MAJOR_REPAIR    = 'major_repair'
    REPLACEMENT     = 'replacement'


class HazardType(str, Enum):
    CARBON_MONOXIDE = 'carbon_monoxide'
    GAS             = 'gas'
    ELECTRICAL      = 'electrical'
    FIRE            = 'fire'
    WATER           = 'water'


class TagVariant(str, Enum):
    CRITICAL = 'critical'
    WARNING  = 'warning'
    POSITIVE = 'positive'
    INFO     = 'info'
    NEUTRAL  = 'neutral'
    SPECIAL  = 'special'


# Ordered enums compare by position in these tuples
URGENCY_ORDER: Tuple[Urgency, ...] = (
    Urgency.LOW, Urgency.MEDIUM, Urgency.HIGH, Urgency.EMERGENCY,
)
TIER_ORDER: Tuple[RevenueTier, ...] = (
    RevenueTier.DIAGNOSTIC, RevenueTier.MINOR, RevenueTier.STANDARD_REPAIR,
    RevenueTier.MAJOR_REPAIR, RevenueTier.REPLACEMENT,
)


# ── INPUT ────────────────────────────────────────────────────

@dataclass(frozen=True)
class Record:
    """One inbound lead or job, as delivered by the ingestion layer."""
    id:                   str
    kind:                 str                     = 'lead'     # lead / job
    created_at:           Optional[datetime]      = None       # tz-aware

    customer_name:        Optional[str]           = None
    customer_phone:       Optional[str]           = None
    customer_address:     Optional[str]           = None

    ai_summary:           Optional[str]           = None
    call_transcript:      Optional[str]           = None
    priority_reason:      Optional[str]           = None
    why_not_booked:       Optional[str]           = None
    issue_description:    Optional[str]           = None
    smart_summary:        Optional[str]           = None

    urgency:              Optional[Urgency]       = None
    priority_color:       Optional[PriorityColor] = None
    revenue_tier:         Optional[RevenueTier]   = None
    estimated_value:      Optional[float]         = None
    estimated_value_low:  Optional[float]         = None
    estimated_value_high: Optional[float]         = None
    sentiment_score:      Optional[int]           = None       # 1-5, lower is worse
    tags:                 TagBag                  = field(default_factory=TagBag)
    revenue_tier_signals: Tuple[str, ...]         = ()         # upstream reasons for the tier

    service_type:         Optional[str]           = None       # hvac / plumbing / ...
    status:               Optional[str]           = None
    time_preference:      Optional[str]           = None
    equipment_type:       Optional[str]           = None
    equipment_age:        Optional[str]           = None       # free text, e.g. "15"


# ── DERIVED ──────────────────────────────────────────────────

@dataclass(frozen=True)
class SignalBag:
    """Signals pulled from one text blob. Everything absent by default."""
    hazard_type:           Optional[HazardType] = None
    evacuation_needed:     bool                 = False
    shut_off_info:         Optional[str]        = None
    occupants:             Tuple[str, ...]      = ()
    equipment_make:        Optional[str]        = None
    equipment_age:         Optional[int]        = None

    refrigerant_type:      Optional[str]        = None
    unit_location:         Optional[str]        = None
    gate_code:             Optional[str]        = None
    pet_warning:           Optional[str]        = None
    key_location:          Optional[str]        = None
    access_notes:          Tuple[str, ...]      = ()
    customer_quotes:       Tuple[str, ...]      = ()
    sentiment_keywords:    Tuple[str, ...]      = ()
    urgency_keywords:      Tuple[str, ...]      = ()
    financing_mentioned:   bool                 = False
    replacement_mentioned: bool                 = False
    competitor_mentioned:  Optional[str]        = None
    problem_keywords:      Tuple[str, ...]      = ()
    previous_attempts:     Optional[str]        = None
    urgency_signals:       Tuple[str, ...]      = ()     # legacy badge labels


@dataclass(frozen=True)
class DisplayTag:
    """Compact UI chip. Lower priority sorts first."""
    label:    str
    variant:  TagVariant
    priority: int           = 10
    icon:     Optional[str] = None


@dataclass(frozen=True)
class UIWarning:
    """UI warning attached to a narrative."""
    kind:    str                 # flash / bold / icon
    field:   str
    message: str
    icon:    Optional[str] = None


@dataclass
class NarrativeResult:
    headline:      str
    subtext:       Optional[str] = None
    warnings:      List[UIWarning] = field(default_factory=list)
    highlight_age: bool          = False


@dataclass(frozen=True)
class NarrativeSegment:
    text:     str
    emphasis: str = 'normal'     # bold / normal


@dataclass
class InlineNarrative:
    segments: List[NarrativeSegment] = field(default_factory=list)
    subtext:  str                    = ''
