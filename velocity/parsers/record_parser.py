"""
velocity/parsers/record_parser.py
Converts lead and job rows (JSON-shaped dicts from the ingestion layer)
into Record objects.

Field validation belongs to the ingestion layer, so this parser is tolerant:
absent, null, wrongly-typed and unknown fields are coerced or dropped, never
raised. Unknown enum values become None. Drops are logged at DEBUG by field
name only; customer text and phone numbers never reach the log.

load_records() is the one raising surface: a missing file or a document that
is not JSON raises, the same way the CLI expects.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import replace
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional, Tuple, Type

from velocity.models.record import PriorityColor, Record, RevenueTier, Urgency
from velocity.models.taxonomy import TagBag

logger = logging.getLogger(__name__)

KINDS = ('lead', 'job')

TEXT_FIELDS = (
    'customer_name', 'customer_phone', 'customer_address',
    'ai_summary', 'call_transcript', 'priority_reason', 'why_not_booked',
    'issue_description', 'smart_summary',
    'service_type', 'status', 'time_preference', 'equipment_type',
)

# Alternate column names seen on job rows
ALIASES = {
    'customer_address': ('address',),
    'estimated_value':  ('revenue',),
    'customer_phone':   ('phone',),
}

MAX_TEXT = 20000


# ── FIELD COERCION ───────────────────────────────────────────

def _get(row: Mapping[str, Any], name: str) -> Any:
    value = row.get(name)
    if value is None:
        for alias in ALIASES.get(name, ()):
            value = row.get(alias)
            if value is not None:
                break
    return value


def _text(value: Any, name: str) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str):
        logger.debug(f"Dropping non-text field {name}")
        return None
    value = value.strip()
    return value[:MAX_TEXT] if value else None


def _number(value: Any, name: str) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    number = None
    try:
        if isinstance(value, (int, float)):
            number = float(value)
        elif isinstance(value, str):
            cleaned = value.replace('$', '').replace(',', '').strip()
            if not cleaned:
                return None
            number = float(cleaned)
    except (ValueError, OverflowError):
        number = None
    # NaN and infinities are dropped with the rest
    if number is None or not math.isfinite(number):
        logger.debug(f"Dropping non-numeric field {name}")
        return None
    return number


def _sentiment(value: Any) -> Optional[int]:
    number = _number(value, 'sentiment_score')
    if number is None:
        return None
    score = int(round(number))
    if not 1 <= score <= 5:
        logger.debug(f"Dropping out-of-range sentiment_score {score}")
        return None
    return score


def _enum(enum_cls: Type[Enum], value: Any, name: str) -> Optional[Enum]:
    if value is None:
        return None
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        logger.debug(f"Dropping unknown {name} value")
        return None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """ISO-8601 with Z or offset; naive values are read as UTC."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        raw = value.strip()
        if raw.endswith(('Z', 'z')):
            raw = raw[:-1] + '+00:00'
        try:
            dt = datetime.fromisoformat(raw)
        except ValueError:
            logger.debug("Dropping unparseable created_at")
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _text_list(value: Any, name: str) -> Tuple[str, ...]:
    """A list of strings. A single string is a one-item list; other items drop."""
    if value is None:
        return ()
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        logger.debug(f"Dropping non-list field {name}")
        return ()
    items = [_text(v, name) for v in value if isinstance(v, str)]
    if len(items) < len(value):
        logger.debug(f"Dropping non-text items in {name}")
    return tuple(i for i in items if i)


def _equipment_age(value: Any) -> Optional[str]:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        number = _number(value, 'equipment_age')
        return str(int(number)) if number is not None else None
    return _text(value, 'equipment_age')


def _kind(row: Mapping[str, Any], kind: Optional[str]) -> str:
    candidate = kind or row.get('kind') or row.get('type')
    candidate = str(candidate).strip().lower() if candidate else 'lead'
    return candidate if candidate in KINDS else 'lead'


# ── PUBLIC ───────────────────────────────────────────────────

def parse_record(row: Mapping[str, Any], kind: Optional[str] = None) -> Record:
    """
    One dict -> Record. `kind` overrides any kind/type key in the row.
    Raises ValueError only when `row` is not a mapping at all.
    """
    if not isinstance(row, Mapping):
        raise ValueError(f"Record must be an object, got {type(row).__name__}")

    record_id = row.get('id')
    record_id = str(record_id) if record_id not in (None, '') else ''

    text = {name: _text(_get(row, name), name) for name in TEXT_FIELDS}

    return Record(
        id                   = record_id,
        kind                 = _kind(row, kind),
        created_at           = parse_timestamp(row.get('created_at')),
        urgency              = _enum(Urgency, row.get('urgency'), 'urgency'),
        priority_color       = _enum(PriorityColor, row.get('priority_color'), 'priority_color'),
        revenue_tier         = _enum(RevenueTier, row.get('revenue_tier'), 'revenue_tier'),
        estimated_value      = _number(_get(row, 'estimated_value'), 'estimated_value'),
        estimated_value_low  = _number(row.get('estimated_value_low'), 'estimated_value_low'),
        estimated_value_high = _number(row.get('estimated_value_high'), 'estimated_value_high'),
        sentiment_score      = _sentiment(row.get('sentiment_score')),
        tags                 = TagBag.from_mapping(row.get('tags')),
        revenue_tier_signals = _text_list(row.get('revenue_tier_signals'), 'revenue_tier_signals'),
        equipment_age        = _equipment_age(row.get('equipment_age')),
        **text,
    )


def parse_records(rows: Iterable[Any], kind: Optional[str] = None) -> List[Record]:
    """Parse many rows, skipping entries that are not objects."""
    records: List[Record] = []
    skipped = 0
    for i, row in enumerate(rows):
        if not isinstance(row, Mapping):
            skipped += 1
            continue
        record = parse_record(row, kind)
        if not record.id:
            record = replace(record, id=f"{record.kind}-{i}")
        records.append(record)
    if skipped:
        logger.warning(f"Skipped {skipped} non-object entries")
    return records


def load_records(path: Path) -> List[Record]:
    """
    Read records from a JSON file: either an array of rows, or an object
    with "leads" and/or "jobs" arrays.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")
    try:
        document = json.loads(path.read_text(encoding='utf-8'))
    except json.JSONDecodeError as e:
        raise ValueError(f"Malformed JSON in {path.name}: {e}") from e

    if isinstance(document, list):
        records = parse_records(document)
    elif isinstance(document, Mapping) and ('leads' in document or 'jobs' in document):
        records = (
            parse_records(document.get('leads') or [], kind='lead')
            + parse_records(document.get('jobs') or [], kind='job')
        )
    else:
        raise ValueError(f"{path.name}: expected an array or an object with 'leads'/'jobs'")

    logger.info(f"Loaded {len(records)} records from {path.name}")
    return records
