"""
velocity/detectors/signal_extractor.py
Signal extraction — pure Python, zero dependencies, fully offline.
Scans one block of free text against fixed pattern tables and returns a
SignalBag. Best-effort: it may miss or over-match, but it never raises.
Extend the tables freely; order matters where noted.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Pattern, Tuple

from velocity.config import DEFAULT_THRESHOLDS
from velocity.models.record import HazardType, Record, SignalBag

logger = logging.getLogger(__name__)

_I = re.IGNORECASE


# ── HAZARDS ──────────────────────────────────────────────────
# Evaluated top to bottom, first match wins.

HAZARD_PATTERNS: Tuple[Tuple[HazardType, Pattern], ...] = (
    (HazardType.CARBON_MONOXIDE, re.compile(
        r'carbon\s*monoxide|\bco\s*(?:detector|alarm)s?\b'
        r'|headache[^.]*dizz|dizz[^.]*headache', _I)),
    (HazardType.GAS, re.compile(
        r'\bgas\s*leak|\bsmell(?:s|ed|ing)?\s*(?:like\s*)?(?:gas|rotten\s*eggs?)'
        r'|\bnatural\s*gas\b', _I)),
    (HazardType.ELECTRICAL, re.compile(
        r'\belectric(?:al)?\s*(?:shock|sparks?|fire)|\bburning\s*smell'
        r'|\bshort(?:ed|ing)?\s*out\b|\bshorting\b|\barcing\b', _I)),
    (HazardType.FIRE, re.compile(r'\b(?:fire|smoke|smoking|burning|flames?)\b', _I)),
    (HazardType.WATER, re.compile(
        r'\bwater\s*leak|\bflood(?:ed|ing)?\b|\bburst\s*pipe|\bwater\s*damage|\bsewage\b', _I)),
)

HAZARD_LABELS: Dict[HazardType, str] = {
    HazardType.CARBON_MONOXIDE: 'CO Hazard',
    HazardType.GAS:             'Gas Leak',
    HazardType.ELECTRICAL:      'Electrical',
    HazardType.FIRE:            'Fire Risk',
    HazardType.WATER:           'Water Damage',
}

EVACUATION_PHRASE  = re.compile(
    r'\bevacuat(?:e|ed|ing|ion)\b|\bleave\s*(?:the\s*)?(?:house|home)\b'
    r'|\bget\s*out\b|\bleft\s*(?:the\s*)?(?:house|home)\b', _I)
GAS_SYMPTOM_PHRASE = re.compile(r'\bsmell|\bdizz|\bheadache', _I)
SHUT_OFF_PHRASE    = re.compile(
    r'\b(?:turned?\s*off|shut\s*off|disconnected)\s*(?:the\s*)?'
    r'(?:gas|water|power|breaker|main)\b', _I)


# ── PEOPLE / EQUIPMENT / SITE ────────────────────────────────

OCCUPANT_PATTERN = re.compile(
    r'\b(baby|infant|toddler|newborn|child|kid|elderly|senior|pregnant'
    r'|pet|dog|cat|disabled)\b', _I)

BRAND_NAMES: Dict[str, str] = {
    'carrier':           'Carrier',
    'trane':             'Trane',
    'lennox':            'Lennox',
    'rheem':             'Rheem',
    'goodman':           'Goodman',
    'york':              'York',
    'bryant':            'Bryant',
    'american standard': 'American Standard',
    'daikin':            'Daikin',
    'mitsubishi':        'Mitsubishi',
    'fujitsu':           'Fujitsu',
    'lg':                'LG',
    'samsung':           'Samsung',
    'bosch':             'Bosch',
}
BRAND_PATTERN = re.compile(
    r'\b(' + '|'.join(re.escape(b).replace(r'\ ', r'\s+') for b in BRAND_NAMES) + r')\b', _I)

AGE_PATTERN         = re.compile(r'\b(\d{1,2})\s*-?\s*(?:years?|yrs?)\s*-?\s*old\b', _I)
REFRIGERANT_PATTERN = re.compile(r'\b(r-?22|r-?410\s*a?|r-?32|puron|freon)\b', _I)
LOCATION_PATTERN    = re.compile(
    r'\b(attic|basement|garage|closet|crawl\s*space|utility\s+room|roof(?:top)?)\b', _I)

GATE_CODE_PATTERN   = re.compile(
    r'\bgate(?:\s*code)?\s*(?:is\s*)?[:#]?\s*([#*]?\d[\d#*-]{1,9})', _I)
PET_WARNING_PATTERN = re.compile(
    r'\blarge\s+dog|\baggressive\s+(?:dog|pet)|\bdog\s+in\s+(?:the\s+)?yard'
    r'|\bbeware\s+of\s+(?:the\s+)?dog|\bpet\s+warning|\bdogs?\s+will\s+bark', _I)
KEY_LOCATION_PATTERN = re.compile(
    r'\bkey\s+(?:is\s+)?(?:under|in|at)\s+[^.,;]+|\block\s*box\s*[#\d]*', _I)
ACCESS_NOTE_PATTERN  = re.compile(
    r'\b(steep\s+stairs|narrow\s+hall(?:way)?|tight\s+space|hard\s+to\s+reach'
    r'|difficult\s+access|ladder\s+needed)\b', _I)


# ── INTENT / SENTIMENT ───────────────────────────────────────

NEGATIVE_SENTIMENT = re.compile(
    r'\b(angry|frustrated|upset|furious|annoyed|disappointed|unhappy|mad|livid)\b', _I)
POSITIVE_SENTIMENT = re.compile(
    r'\b(happy|pleased|satisfied|thankful|grateful|appreciate)\b', _I)
URGENCY_PATTERN    = re.compile(
    r"\b(emergency|urgent|asap|immediately|right\s+away|can[’']?t\s+wait"
    r"|critical|desperate)\b", _I)
FINANCING_PATTERN  = re.compile(
    r'\b(?:monthly\s+payments?|financ(?:e|ing)|payment\s+plans?|afford|budget|credit)\b', _I)
REPLACEMENT_PATTERN = re.compile(
    r'\b(?:new\s+(?:system|unit)|replace(?:ment|d)?|upgrade|getting\s+old|need\s+(?:a\s+)?new)\b', _I)
COMPETITOR_PATTERN = re.compile(
    r'\b(?:quoted?|estimate|price)\s+(?:from|by)\s+([A-Za-z]+(?:\s+[A-Za-z]+)?)', _I)
PROBLEM_PATTERN    = re.compile(
    r"\b(not\s+(?:working|cooling|heating)|won[’']?t\s+(?:start|turn\s+on)"
    r"|making\s+(?:a\s+)?noises?|leaking|frozen|ice|weak\s+air(?:\s*flow)?|weak\s+flow"
    r"|short\s+cycling|running\s+constantly)\b", _I)
ATTEMPT_PATTERN    = re.compile(r'\b(?:tried|already)\s+([^.]+)', _I)

# Straight, curly, or single quotes; content 6-99 chars
QUOTE_PATTERN = re.compile(
    r'"([^"\n]{6,99})"|“([^”\n]{6,99})”|(?<!\w)\'([^\'\n]{6,99})\'(?!\w)')


# ── LEGACY BADGES ────────────────────────────────────────────

URGENCY_SIGNAL_PATTERNS: Tuple[Tuple[Pattern, str], ...] = (
    (re.compile(r'\b(?:gas\s*)?leak(?:ing)?\b', _I),                     'Possible leak'),
    (re.compile(r'\bno\s*(?:heat|cooling|air)\b', _I),                   'No heat/cooling'),
    (re.compile(r'\bemergency\b', _I),                                   'Emergency'),
    (re.compile(r'\bdangerous\b|\bunsafe\b', _I),                        'Safety concern'),
    (re.compile(r'\bsmoke\b|\bburning\s*smell\b', _I),                   'Smoke/burning'),
    (re.compile(r'\bwater\s*damage\b|\bflooding\b', _I),                 'Water damage'),
    (re.compile(r'\belectric(?:al)?\s*(?:shock|sparks?)\b', _I),         'Electrical hazard'),
    (re.compile(r'\bcarbon\s*monoxide\b|\bco\s*detector\b', _I),         'CO concern'),
    (re.compile(r'\bfreez(?:ing|e)\b', _I),                              'Freezing temps'),
    (re.compile(r'\belderly\b|\bsenior\b|\b(?:baby|infant|newborn)\b', _I), 'Vulnerable occupant'),
)


# ── HELPERS ──────────────────────────────────────────────────

def _squash(s: str) -> str:
    return re.sub(r'\s+', ' ', s).strip()


def _ordered_set(values) -> Tuple[str, ...]:
    """Dedupe case-insensitively, keep first spelling and first position."""
    seen = set()
    out: List[str] = []
    for v in values:
        v = _squash(v)
        if not v or v.lower() in seen:
            continue
        seen.add(v.lower())
        out.append(v)
    return tuple(out)


def _first(pattern: Pattern, text: str, group: int = 0) -> Optional[str]:
    m = pattern.search(text)
    if not m:
        return None
    value = _squash(m.group(group) or '')
    return value or None


def _all(pattern: Pattern, text: str) -> Tuple[str, ...]:
    return _ordered_set(m.group(0).lower() for m in pattern.finditer(text))


def _normalize_refrigerant(raw: str) -> str:
    token = re.sub(r'[\s-]', '', raw).upper()
    if token.startswith('R410'):
        return 'R-410A'
    if token.startswith('R'):
        return f'R-{token[1:]}'
    return token     # PURON / FREON


def _hazard(text: str) -> Optional[HazardType]:
    for hazard_type, pattern in HAZARD_PATTERNS:
        if pattern.search(text):
            return hazard_type
    return None


def _quotes(text: str) -> Tuple[str, ...]:
    found = []
    for m in QUOTE_PATTERN.finditer(text):
        body = next(g for g in m.groups() if g is not None).strip()
        if 5 < len(body) < 100:
            found.append(body)
    return _ordered_set(found)


# ── EXTRACTION ───────────────────────────────────────────────

def extract(text: Optional[str]) -> SignalBag:
    """
    Extract every known signal from one text blob.

    Absent or empty input returns an empty SignalBag. Anything that is
    not a string is treated as absent.
    """
    if not text or not isinstance(text, str) or not text.strip():
        return SignalBag()

    hazard_type = _hazard(text)
    evacuation  = bool(
        EVACUATION_PHRASE.search(text)
        or hazard_type is HazardType.CARBON_MONOXIDE
        or (hazard_type is HazardType.GAS and GAS_SYMPTOM_PHRASE.search(text))
    )

    brand = _first(BRAND_PATTERN, text, 1)
    age   = _first(AGE_PATTERN, text, 1)
    refrigerant = _first(REFRIGERANT_PATTERN, text, 1)
    location    = _first(LOCATION_PATTERN, text, 1)

    return SignalBag(
        hazard_type           = hazard_type,
        evacuation_needed     = evacuation,
        shut_off_info         = _first(SHUT_OFF_PHRASE, text),
        occupants             = _all(OCCUPANT_PATTERN, text),
        equipment_make        = BRAND_NAMES.get(brand.lower()) if brand else None,
        equipment_age         = int(age) if age else None,
        refrigerant_type      = _normalize_refrigerant(refrigerant) if refrigerant else None,
        unit_location         = location.lower() if location else None,
        gate_code             = _first(GATE_CODE_PATTERN, text, 1),
        pet_warning           = _first(PET_WARNING_PATTERN, text),
        key_location          = _first(KEY_LOCATION_PATTERN, text),
        access_notes          = _all(ACCESS_NOTE_PATTERN, text),
        customer_quotes       = _quotes(text),
        sentiment_keywords    = _ordered_set(
            list(_all(NEGATIVE_SENTIMENT, text)) + list(_all(POSITIVE_SENTIMENT, text))
        ),
        urgency_keywords      = _all(URGENCY_PATTERN, text),
        financing_mentioned   = bool(FINANCING_PATTERN.search(text)),
        replacement_mentioned = bool(REPLACEMENT_PATTERN.search(text)),
        competitor_mentioned  = _first(COMPETITOR_PATTERN, text, 1),
        problem_keywords      = _all(PROBLEM_PATTERN, text),
        previous_attempts     = _first(ATTEMPT_PATTERN, text, 1),
        urgency_signals       = extract_urgency_signals(text),
    )


def extract_urgency_signals(text: Optional[str]) -> Tuple[str, ...]:
    """Short badge labels for detail pages. Kept for older dashboards."""
    if not text or not isinstance(text, str):
        return ()
    return tuple(label for pattern, label in URGENCY_SIGNAL_PATTERNS if pattern.search(text))


# Free-text fields scanned per record, richest first
RECORD_TEXT_FIELDS: Tuple[str, ...] = (
    'ai_summary',
    'issue_description',
    'priority_reason',
    'why_not_booked',
    'call_transcript',
)


def record_text(record: Record) -> str:
    """Join a record's free-text fields into one blob for extraction."""
    parts = []
    for name in RECORD_TEXT_FIELDS:
        value = getattr(record, name, None)
        if isinstance(value, str) and value.strip():
            parts.append(value.strip())
    return '\n'.join(parts)


def extract_from_record(record: Record) -> SignalBag:
    bag = extract(record_text(record))
    logger.debug(f"Signals extracted | record={record.id} | hazard={bag.hazard_type}")
    return bag


# ── DISPLAY HELPERS ──────────────────────────────────────────

def hazard_label(hazard_type: Optional[HazardType]) -> str:
    return HAZARD_LABELS.get(hazard_type, 'Hazard') if hazard_type else 'Hazard'


def is_equipment_old(age: Optional[int], threshold: int = DEFAULT_THRESHOLDS.old_equipment_years) -> bool:
    """True when the unit is past the old-equipment cutoff (default 12 years)."""
    return age is not None and age > threshold


def refrigerant_status(refrigerant: Optional[str]) -> str:
    """obsolete / current / unknown"""
    if not refrigerant:
        return 'unknown'
    r = refrigerant.upper()
    if '22' in r or 'FREON' in r:
        return 'obsolete'
    if '410' in r or 'PURON' in r or '32' in r:
        return 'current'
    return 'unknown'


def first_quote(signals: SignalBag) -> Optional[str]:
    return signals.customer_quotes[0] if signals.customer_quotes else None


def equipment_age_years(record: Record, signals: SignalBag) -> Optional[int]:
    """Age from the text if stated there, else from the record's own field."""
    if signals.equipment_age is not None:
        return signals.equipment_age
    m = re.match(r'\s*(\d{1,3})', record.equipment_age or '')
    return int(m.group(1)) if m else None
