"""
velocity/engine.py
Triage facade. Runs the four components for a record and bundles the result.

Signals are extracted once per record and handed to the classifier and the
narrative, so a record's text is scanned a single time per read. Nothing is
cached between calls: every read re-derives from the current record.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from velocity.clock import as_utc, resolve_now
from velocity.config import DEFAULT_THRESHOLDS, Thresholds
from velocity.detectors.signal_extractor import extract_from_record
from velocity.detectors.revenue_signals import ordered_signals
from velocity.detectors.tag_classifier import classify, display_tags
from velocity.models.record import (
    Archetype,
    DisplayTag,
    InlineNarrative,
    NarrativeResult,
    Record,
    SignalBag,
)
from velocity.narrative import narrate, narrate_inline, smart_summary
from velocity.narrative.synthesizer import expanded_label
from velocity.scorer.velocity_scorer import ARCHETYPE_CONFIG, estimate_for, score, velocity_order

logger = logging.getLogger(__name__)


@dataclass
class TriageResult:
    record_id:      str
    kind:           str
    archetype:      Archetype
    score:          float
    tags:           List[DisplayTag]
    narrative:      NarrativeResult
    inline:         InlineNarrative
    summary:        str
    expanded_label: str
    estimate:       Optional[str]      = None
    tier_signals:   List[str]          = field(default_factory=list)   # critical first
    signals:        SignalBag          = field(default_factory=SignalBag)
    created_at:     Optional[datetime] = None


def triage(
    record:     Record,
    now:        Optional[datetime] = None,
    thresholds: Thresholds = DEFAULT_THRESHOLDS,
) -> TriageResult:
    now = resolve_now(now)
    signals = extract_from_record(record)
    archetype = classify(record, thresholds)
    estimate = estimate_for(record)

    result = TriageResult(
        record_id      = record.id,
        kind           = record.kind,
        archetype      = archetype,
        score          = score(record, now, archetype, thresholds),
        tags           = display_tags(record, archetype, signals, now, thresholds),
        narrative      = narrate(record, archetype, signals, now, thresholds),
        inline         = narrate_inline(record, archetype, signals, now, thresholds),
        summary        = smart_summary(record, archetype, thresholds),
        expanded_label = expanded_label(archetype),
        estimate       = estimate.display if estimate else None,
        tier_signals   = ordered_signals(record.revenue_tier_signals),
        signals        = signals,
        created_at     = as_utc(record.created_at),
    )
    logger.debug(f"Triaged {record.id} -> {archetype.value} ({result.score:.1f})")
    return result


def triage_many(
    records:    Iterable[Record],
    now:        Optional[datetime] = None,
    thresholds: Thresholds = DEFAULT_THRESHOLDS,
) -> List[TriageResult]:
    """
    Triage every record against one `now` and return the board order:
    score descending, older first on ties, then input order.
    """
    now = resolve_now(now)
    results = [triage(r, now, thresholds) for r in records]
    results.sort(key=lambda r: velocity_order(r.score, r.created_at))
    logger.info(f"Triage board: {len(results)} records")
    return results


@dataclass
class Board:
    """One board read: the visible rows plus counts over the whole batch."""
    results: List[TriageResult]
    counts:  Dict[Archetype, int]


def triage_board(
    records:    Iterable[Record],
    now:        Optional[datetime] = None,
    archetype:  Optional[Archetype] = None,
    limit:      Optional[int] = None,
    thresholds: Thresholds = DEFAULT_THRESHOLDS,
) -> Board:
    """
    Rank the batch, count it per archetype, then narrow the rows to one
    column and `limit` entries. Counts are taken before either filter.
    """
    results = triage_many(records, now, thresholds)
    counts = board_counts(results)
    if archetype is not None:
        results = [r for r in results if r.archetype is archetype]
    if limit is not None:
        results = results[:max(int(limit), 0)]
    return Board(results=results, counts=counts)


def parse_archetype(value: Optional[str]) -> Optional[Archetype]:
    """Case-insensitive archetype name. Raises ValueError for unknown names."""
    if value is None or not str(value).strip():
        return None
    try:
        return Archetype(str(value).strip().upper())
    except ValueError:
        names = ', '.join(a.value for a in Archetype)
        raise ValueError(f"Unknown archetype '{value}'. Expected one of: {names}")


def board_counts(results: Iterable[TriageResult]) -> Dict[Archetype, int]:
    counts = {a: 0 for a in Archetype}
    for r in results:
        counts[r.archetype] += 1
    return counts


# ── SERIALISATION ────────────────────────────────────────────

def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


def result_to_dict(result: TriageResult, include_signals: bool = False) -> Dict[str, Any]:
    """JSON-ready dict for the API and the CLI --json output."""
    data = _plain(asdict(result))
    data['archetype_info'] = dict(ARCHETYPE_CONFIG[result.archetype])
    if not include_signals:
        data.pop('signals', None)
    return data


def counts_to_dict(counts: Dict[Archetype, int]) -> Dict[str, int]:
    return {a.value: n for a, n in counts.items()}


def board_to_dict(board: Board, include_signals: bool = False) -> Dict[str, Any]:
    """Response shape shared by POST /triage and `velocity --json`."""
    return {
        'count':   len(board.results),
        'counts':  counts_to_dict(board.counts),
        'results': [result_to_dict(r, include_signals) for r in board.results],
    }
