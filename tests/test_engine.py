"""
tests/test_engine.py
End-to-end triage through velocity.engine — dispatcher scenarios, board
order, column filter and JSON-ready serialisation.
"""

import json
from datetime import datetime, timedelta, timezone

import pytest

from velocity.engine import (
    board_counts,
    board_to_dict,
    counts_to_dict,
    parse_archetype,
    result_to_dict,
    triage,
    triage_board,
    triage_many,
)
from velocity.models.record import (
    Archetype,
    HazardType,
    PriorityColor,
    Record,
    RevenueTier,
    Urgency,
)
from velocity.models.taxonomy import TagBag
from velocity.parsers.record_parser import parse_record
from velocity.scorer import sort_by_velocity

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


# ── HELPERS ──────────────────────────────────────────────────

def _make_record(tags=None, **kw):
    kw.setdefault("created_at", NOW)
    return Record(
        id   = kw.pop("id", "rec-1"),
        tags = TagBag.from_mapping(tags or {}),
        **kw,
    )


def _board():
    return [
        _make_record(id="routine", customer_name="Sam"),
        _make_record(id="upsell", estimated_value=1800, urgency=Urgency.LOW),
        _make_record(id="gas", urgency=Urgency.EMERGENCY,
                     ai_summary="Customer smells gas near the furnace and evacuated the house"),
        _make_record(id="angry", priority_color=PriorityColor.RED, sentiment_score=1),
        _make_record(id="stale", created_at=NOW - timedelta(hours=30)),
    ]


# ── SCENARIOS ────────────────────────────────────────────────

class TestScenarios:

    def test_hazard(self):
        result = triage(_make_record(
            urgency    = Urgency.EMERGENCY,
            ai_summary = "Customer smells gas near the furnace and evacuated the house",
        ), NOW)
        assert result.signals.hazard_type is HazardType.GAS
        assert result.signals.evacuation_needed is True
        assert result.archetype is Archetype.HAZARD
        assert result.score >= 1030
        assert result.expanded_label == "Safety Brief"

    def test_recovery_beats_revenue(self):
        result = triage(_make_record(
            priority_color  = PriorityColor.RED,
            revenue_tier    = RevenueTier.REPLACEMENT,
            estimated_value = 12000,
        ), NOW)
        assert result.archetype is Archetype.RECOVERY

    def test_revenue_via_value_threshold(self):
        result = triage(_make_record(urgency=Urgency.LOW, estimated_value=1800), NOW)
        assert result.archetype is Archetype.REVENUE
        assert result.estimate == "$1.8K"

    def test_logistics_default(self):
        record = Record(
            id               = "min",
            customer_name    = "Dana Reyes",
            customer_phone   = "+15125550100",
            customer_address = "77 Lake Dr, Austin, TX",
        )
        result = triage(record, NOW)
        assert result.archetype is Archetype.LOGISTICS
        assert "Dana Reyes" in result.narrative.headline
        assert result.created_at is None

    def test_tier_signals_ordered_critical_first(self):
        result = triage(_make_record(
            revenue_tier         = RevenueTier.MAJOR_REPAIR,
            revenue_tier_signals = ("Unit is 18 years old", "R-22 system"),
        ), NOW)
        assert result.tier_signals == ["R-22 system", "Unit is 18 years old"]
        assert result_to_dict(result)["tier_signals"] == ["R-22 system", "Unit is 18 years old"]

    def test_empty_record_never_fails(self):
        result = triage(Record(id="empty"), NOW)
        assert result.archetype is Archetype.LOGISTICS
        assert result.narrative.headline
        assert result.summary == "Service request"
        assert result.estimate is None


# ── PROPERTIES ───────────────────────────────────────────────

def test_triage_is_deterministic_for_fixed_now():
    record = _make_record(
        priority_color = PriorityColor.RED,
        ai_summary     = 'Said "you people never fixed the leak" and is furious',
        created_at     = NOW - timedelta(days=2),
    )
    assert triage(record, NOW) == triage(record, NOW)


def test_triage_does_not_mutate_record():
    record = _make_record(urgency=Urgency.HIGH, ai_summary="Burning smell from the panel")
    before = record
    triage(record, NOW)
    assert record == before


def test_tag_cap_and_dedup_across_board():
    for result in triage_many(_board(), NOW):
        labels = [t.label for t in result.tags]
        assert len(labels) <= 4
        assert len(labels) == len(set(labels))


# ── BOARD ────────────────────────────────────────────────────

class TestTriageMany:

    def test_board_order(self):
        ids = [r.record_id for r in triage_many(_board(), NOW)]
        assert ids == ["gas", "angry", "upsell", "stale", "routine"]

    def test_empty_input(self):
        assert triage_many([], NOW) == []

    def test_board_counts(self):
        counts = board_counts(triage_many(_board(), NOW))
        assert counts_to_dict(counts) == {"HAZARD": 1, "RECOVERY": 1, "REVENUE": 1, "LOGISTICS": 2}

    def test_same_order_as_scorer(self):
        records = _board() + [
            _make_record(id="no-ts", created_at=None),
            _make_record(id="future", created_at=NOW + timedelta(hours=3)),
        ]
        ranked = [r.record_id for r in triage_many(records, NOW)]
        assert ranked == [r.id for r in sort_by_velocity(records, NOW)]


class TestTriageBoard:

    def test_archetype_filter(self):
        board = triage_board(_board(), NOW, archetype=Archetype.LOGISTICS)
        assert [r.record_id for r in board.results] == ["stale", "routine"]

    def test_counts_cover_whole_batch(self):
        board = triage_board(_board(), NOW, archetype=Archetype.HAZARD, limit=1)
        assert [r.record_id for r in board.results] == ["gas"]
        assert counts_to_dict(board.counts) == {"HAZARD": 1, "RECOVERY": 1, "REVENUE": 1, "LOGISTICS": 2}

    def test_limit_applies_after_filter(self):
        board = triage_board(_board(), NOW, archetype=Archetype.LOGISTICS, limit=1)
        assert [r.record_id for r in board.results] == ["stale"]

    def test_zero_and_negative_limit(self):
        assert triage_board(_board(), NOW, limit=0).results == []
        assert triage_board(_board(), NOW, limit=-3).results == []

    def test_board_to_dict(self):
        data = board_to_dict(triage_board(_board(), NOW, limit=2))
        json.dumps(data)
        assert data["count"] == 2
        assert [r["record_id"] for r in data["results"]] == ["gas", "angry"]
        assert data["counts"]["LOGISTICS"] == 2


@pytest.mark.parametrize("value,expected", [
    ("hazard",      Archetype.HAZARD),
    (" Revenue ",   Archetype.REVENUE),
    ("LOGISTICS",   Archetype.LOGISTICS),
    (None,          None),
    ("",            None),
])
def test_parse_archetype(value, expected):
    assert parse_archetype(value) is expected


def test_parse_archetype_rejects_unknown():
    with pytest.raises(ValueError, match="Unknown archetype"):
        parse_archetype("urgent")


# ── SERIALISATION ────────────────────────────────────────────

class TestResultToDict:

    def test_json_ready(self):
        result = triage(_make_record(
            urgency          = Urgency.EMERGENCY,
            customer_address = "12 Oak Ave, Denver, CO",
            ai_summary       = "Customer smells gas near the furnace and evacuated the house",
        ), NOW)
        data = result_to_dict(result)
        json.dumps(data)
        assert data["archetype"] == "HAZARD"
        assert data["created_at"] == "2026-10-19T12:00:00+00:00"
        assert data["archetype_info"]["label"]
        assert "signals" not in data
        assert all(isinstance(t["variant"], str) for t in data["tags"])
        assert data["narrative"]["subtext"] == "at Denver"

    def test_signals_included_on_request(self):
        result = triage(_make_record(ai_summary="Gas leak by the meter"), NOW)
        data = result_to_dict(result, include_signals=True)
        json.dumps(data)
        assert data["signals"]["hazard_type"] == "gas"
        assert isinstance(data["signals"]["occupants"], list)


# ── NON-FINITE INPUT ─────────────────────────────────────────

class TestNonFiniteInput:

    @pytest.mark.parametrize("value", [float("inf"), float("-inf"), float("nan"), "Infinity", "NaN"])
    def test_value_does_not_break_triage(self, value):
        result = triage(parse_record({"id": "x", "estimated_value": value}), NOW)
        assert result.archetype is Archetype.LOGISTICS
        assert result.estimate is None

    def test_infinite_record_value_still_scores(self):
        result = triage(_make_record(estimated_value=float("inf")), NOW)
        assert result.archetype is Archetype.REVENUE
        assert result.score == 400
        assert result.estimate is None
