"""
velocity/models/taxonomy.py
Closed category-tag vocabulary. The classifier, the scorer and the display
mapper all read tag names from here; no tag string literals live elsewhere.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional, Tuple, Type

logger = logging.getLogger(__name__)


# ── CATEGORY ENUMS ───────────────────────────────────────────

class HazardTag(str, Enum):
    GAS_LEAK         = 'GAS_LEAK'
    CO_EVENT         = 'CO_EVENT'
    ELECTRICAL_FIRE  = 'ELECTRICAL_FIRE'
    ACTIVE_FLOODING  = 'ACTIVE_FLOODING'
    HEALTH_RISK      = 'HEALTH_RISK'
    REFRIGERANT_LEAK = 'REFRIGERANT_LEAK'


class UrgencyTag(str, Enum):
    CRITICAL_EVACUATE = 'CRITICAL_EVACUATE'
    CRITICAL_DISPATCH = 'CRITICAL_DISPATCH'
    EMERGENCY_SAMEDAY = 'EMERGENCY_SAMEDAY'
    URGENT_24HR       = 'URGENT_24HR'
    PRIORITY_48HR     = 'PRIORITY_48HR'
    STANDARD          = 'STANDARD'
    FLEXIBLE          = 'FLEXIBLE'


class ServiceTypeTag(str, Enum):
    REPAIR_AC               = 'REPAIR_AC'
    REPAIR_HEATING          = 'REPAIR_HEATING'
    REPAIR_HEATPUMP         = 'REPAIR_HEATPUMP'
    REPAIR_THERMOSTAT       = 'REPAIR_THERMOSTAT'
    REPAIR_IAQ              = 'REPAIR_IAQ'
    REPAIR_DUCTWORK         = 'REPAIR_DUCTWORK'
    TUNEUP_AC               = 'TUNEUP_AC'
    TUNEUP_HEATING          = 'TUNEUP_HEATING'
    DUCT_CLEANING           = 'DUCT_CLEANING'
    INSTALL_REPLACEMENT     = 'INSTALL_REPLACEMENT'
    INSTALL_NEWCONSTRUCTION = 'INSTALL_NEWCONSTRUCTION'
    INSTALL_UPGRADE         = 'INSTALL_UPGRADE'
    INSTALL_DUCTLESS        = 'INSTALL_DUCTLESS'
    INSTALL_THERMOSTAT      = 'INSTALL_THERMOSTAT'
    DIAG_NOISE              = 'DIAG_NOISE'
    DIAG_SMELL              = 'DIAG_SMELL'
    DIAG_PERFORMANCE        = 'DIAG_PERFORMANCE'
    DIAG_HIGHBILL           = 'DIAG_HIGHBILL'


class RevenueTag(str, Enum):
    HOT_LEAD        = 'HOT_LEAD'
    R22_RETROFIT    = 'R22_RETROFIT'
    REPLACE_OPP     = 'REPLACE_OPP'
    COMMERCIAL_LEAD = 'COMMERCIAL_LEAD'
    MULTI_PROPERTY  = 'MULTI_PROPERTY'
    FINANCING_REQ   = 'FINANCING_REQ'
    QUOTE_REQUEST   = 'QUOTE_REQUEST'
    QUOTE_FOLLOWUP  = 'QUOTE_FOLLOWUP'


class RecoveryTag(str, Enum):
    CALLBACK_RISK     = 'CALLBACK_RISK'
    REPEAT_ISSUE      = 'REPEAT_ISSUE'
    WARRANTY_DISPUTE  = 'WARRANTY_DISPUTE'
    COMPLAINT_SERVICE = 'COMPLAINT_SERVICE'
    COMPLAINT_TECH    = 'COMPLAINT_TECH'
    COMPLAINT_PRICE   = 'COMPLAINT_PRICE'
    COMPLAINT_NOFIX   = 'COMPLAINT_NOFIX'
    ESCALATION_REQ    = 'ESCALATION_REQ'
    REVIEW_THREAT     = 'REVIEW_THREAT'
    LEGAL_MENTION     = 'LEGAL_MENTION'
    MISSED_APPT       = 'MISSED_APPT'
    REFUND_REQ        = 'REFUND_REQ'
    LOST_CUSTOMER     = 'LOST_CUSTOMER'


class LogisticsTag(str, Enum):
    GATE_CODE        = 'GATE_CODE'
    GUARD_GATE       = 'GUARD_GATE'
    LOCKBOX          = 'LOCKBOX'
    ALARM_CODE       = 'ALARM_CODE'
    EQUIP_ROOF       = 'EQUIP_ROOF'
    EQUIP_ATTIC      = 'EQUIP_ATTIC'
    EQUIP_CRAWLSPACE = 'EQUIP_CRAWLSPACE'
    PET_SECURE       = 'PET_SECURE'
    LANDLORD_AUTH    = 'LANDLORD_AUTH'
    NTE_LIMIT        = 'NTE_LIMIT'
    SPANISH_PREF     = 'SPANISH_PREF'


class ContextTag(str, Enum):
    ELDERLY_OCCUPANT = 'ELDERLY_OCCUPANT'
    INFANT_NEWBORN   = 'INFANT_NEWBORN'


# Category name (as sent by the ingestion layer) -> enum
CATEGORIES: Dict[str, Type[Enum]] = {
    'HAZARD':       HazardTag,
    'URGENCY':      UrgencyTag,
    'SERVICE_TYPE': ServiceTypeTag,
    'REVENUE':      RevenueTag,
    'RECOVERY':     RecoveryTag,
    'LOGISTICS':    LogisticsTag,
    'CONTEXT':      ContextTag,
}


# ── TRIGGER SETS ─────────────────────────────────────────────
# Tags that promote a record into an archetype. Display-only tags
# (quote request/follow-up) are not REVENUE triggers.

HAZARD_TRIGGERS: FrozenSet[HazardTag] = frozenset(HazardTag)

RECOVERY_TRIGGERS: FrozenSet[RecoveryTag] = frozenset(RecoveryTag)

REVENUE_TRIGGERS: FrozenSet[RevenueTag] = frozenset({
    RevenueTag.HOT_LEAD,
    RevenueTag.R22_RETROFIT,
    RevenueTag.REPLACE_OPP,
    RevenueTag.COMMERCIAL_LEAD,
    RevenueTag.MULTI_PROPERTY,
    RevenueTag.FINANCING_REQ,
})


# ── TAG BAG ──────────────────────────────────────────────────

def _coerce(enum_cls: Type[Enum], values: Any) -> Tuple[Enum, ...]:
    if values is None:
        return ()
    if not isinstance(values, (list, tuple, set, frozenset)):
        values = [values]
    out = []
    for v in values:
        key = v.value if isinstance(v, Enum) else str(v).strip().upper()
        try:
            member = enum_cls(key)
        except ValueError:
            logger.debug(f"Dropping unknown {enum_cls.__name__} tag")
            continue
        if member not in out:
            out.append(member)
    return tuple(out)


@dataclass(frozen=True)
class TagBag:
    """
    Immutable per-category tag sets. Order of first appearance is kept
    because display tables walk tags in the order the upstream sent them.
    """
    hazard:       Tuple[HazardTag, ...]      = ()
    urgency:      Tuple[UrgencyTag, ...]     = ()
    service_type: Tuple[ServiceTypeTag, ...] = ()
    revenue:      Tuple[RevenueTag, ...]     = ()
    recovery:     Tuple[RecoveryTag, ...]    = ()
    logistics:    Tuple[LogisticsTag, ...]   = ()
    context:      Tuple[ContextTag, ...]     = ()

    @classmethod
    def from_mapping(cls, mapping: Optional[Mapping[str, Any]]) -> 'TagBag':
        """
        Build from {"HAZARD": ["GAS_LEAK"], ...}. Category keys are
        case-insensitive; unknown categories and unknown tags are dropped.
        """
        if not isinstance(mapping, Mapping):
            return cls()
        values: Dict[str, Tuple[Enum, ...]] = {}
        for raw_key, raw_tags in mapping.items():
            key = str(raw_key).strip().upper()
            enum_cls = CATEGORIES.get(key)
            if enum_cls is None:
                logger.debug(f"Dropping unknown tag category {key}")
                continue
            attr = key.lower()
            seen = values.get(attr, ())
            values[attr] = seen + tuple(
                t for t in _coerce(enum_cls, raw_tags) if t not in seen
            )
        return cls(**values)

    def to_mapping(self) -> Dict[str, list]:
        return {
            key: [t.value for t in getattr(self, key.lower())]
            for key in CATEGORIES
            if getattr(self, key.lower())
        }

    def has(self, *tags: Enum) -> bool:
        """True when any of the given tags is present in its category."""
        for tag in tags:
            for key, enum_cls in CATEGORIES.items():
                if isinstance(tag, enum_cls) and tag in getattr(self, key.lower()):
                    return True
        return False

    def has_any_in(self, triggers: Iterable[Enum]) -> bool:
        return self.has(*triggers)

    def is_empty(self) -> bool:
        return not any(getattr(self, key.lower()) for key in CATEGORIES)
