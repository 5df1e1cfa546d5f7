"""
tests/test_velocity_scorer.py
Unit tests for velocity.scorer — base separation, per-archetype adjustments,
time decay, board ordering and dollar-estimate formatting.
"""

from datetime import datetime, timedelta, timezone

import pytest

from velocity.config import Thresholds
from velocity.models.record import (
    Archetype,
    PriorityColor,
    Record,
    RevenueTier,
    Urgency,
)
from velocity.models.taxonomy import TagBag
from velocity.scorer import (
    ARCHETYPE_CONFIG,
    count_by_archetype,
    format_dollar_estimate,
    group_by_archetype,
    score,
    sort_by_velocity,
    velocity_order,
)
from velocity.scorer.velocity_scorer import format_currency, hours_since_created, tier_symbol

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


# ── HELPERS ──────────────────────────────────────────────────

def _make_record(tags=None, hours_ago=0.0, **kw):
    if 'created_at' not in kw:
        kw['created_at'] = NOW - timedelta(hours=hours_ago)
    return Record(
        id   = kw.pop("id", "rec-1"),
        tags = TagBag.from_mapping(tags or {}),
        **kw,
    )


# ── BASES ────────────────────────────────────────────────────

class TestBaseSeparation:

    def test_bare_scores_at_zero_elapsed(self):
        assert score(_make_record(urgency=Urgency.HIGH), NOW) == 1000
        assert score(_make_record(priority_color=PriorityColor.RED), NOW) == 700
        assert score(_make_record(revenue_tier=RevenueTier.MAJOR_REPAIR), NOW) == 400
        assert score(_make_record(), NOW) == 100

    def test_max_bonuses_never_cross_bands(self):
        recovery_max = score(_make_record(
            priority_color  = PriorityColor.RED,
            estimated_value = 50000,
            revenue_tier    = RevenueTier.REPLACEMENT,
            sentiment_score = 1,
            tags            = {"RECOVERY": ["REVIEW_THREAT", "ESCALATION_REQ"]},
            hours_ago       = 500,
        ), NOW)
        revenue_max = score(_make_record(
            estimated_value = 50000,
            revenue_tier    = RevenueTier.REPLACEMENT,
            tags            = {"REVENUE": ["HOT_LEAD", "COMMERCIAL_LEAD", "R22_RETROFIT"]},
            hours_ago       = 500,
        ), NOW)
        logistics_max = score(_make_record(tags={"LOGISTICS": ["GATE_CODE"]}, hours_ago=500), NOW)

        assert recovery_max < 1000
        assert revenue_max < 700
        assert logistics_max < 400

    def test_archetype_override_skips_classification(self):
        record = _make_record(priority_color=PriorityColor.RED)
        assert score(record, NOW, archetype=Archetype.LOGISTICS) == 100


# ── ADJUSTMENTS ──────────────────────────────────────────────

class TestAdjustments:

    def test_hazard_scenario(self):
        record = _make_record(
            urgency    = Urgency.EMERGENCY,
            ai_summary = "Customer smells gas near the furnace and evacuated the house",
        )
        assert score(record, NOW) >= 1030

    def test_hazard_all_bonuses(self):
        record = _make_record(
            urgency = Urgency.EMERGENCY,
            tags    = {
                "HAZARD":  ["GAS_LEAK", "ELECTRICAL_FIRE"],
                "CONTEXT": ["ELDERLY_OCCUPANT"],
            },
        )
        assert score(record, NOW) == 1000 + 30 + 40 + 35 + 20

    def test_emergency_bonus_needs_explicit_urgency(self):
        record = _make_record(tags={"HAZARD": ["HEALTH_RISK"], "URGENCY": ["CRITICAL_EVACUATE"]})
        assert score(record, NOW) == 1000

    def test_hazard_time_bonus_capped(self):
        assert score(_make_record(urgency=Urgency.HIGH, hours_ago=2), NOW) == 1020
        assert score(_make_record(urgency=Urgency.HIGH, hours_ago=100), NOW) == 1050

    def test_recovery_all_bonuses(self):
        record = _make_record(
            priority_color  = PriorityColor.RED,
            estimated_value = 2000,
            revenue_tier    = RevenueTier.REPLACEMENT,
            sentiment_score = 2,
            tags            = {"RECOVERY": ["LEGAL_MENTION", "ESCALATION_REQ"]},
        )
        assert score(record, NOW) == 700 + 40 + 30 + 25 + 35 + 25

    @pytest.mark.parametrize("sentiment,bonus", [(1, 25), (2, 25), (3, 10), (4, 0), (None, 0)])
    def test_recovery_sentiment(self, sentiment, bonus):
        record = _make_record(priority_color=PriorityColor.RED, sentiment_score=sentiment)
        assert score(record, NOW) == 700 + bonus

    def test_revenue_all_bonuses(self):
        record = _make_record(
            estimated_value = 3000,
            revenue_tier    = RevenueTier.REPLACEMENT,
            tags            = {"REVENUE": ["HOT_LEAD", "MULTI_PROPERTY", "R22_RETROFIT"]},
        )
        assert score(record, NOW) == 400 + 30 + 30 + 25 + 20 + 15

    def test_revenue_value_bonus_capped(self):
        assert score(_make_record(estimated_value=10000), NOW) == 450

    def test_revenue_time_bonus(self):
        assert score(_make_record(estimated_value=1500, hours_ago=5), NOW) == 400 + 15 + 15
        assert score(_make_record(estimated_value=1500, hours_ago=50), NOW) == 400 + 15 + 30

    def test_logistics_access_bonus(self):
        assert score(_make_record(tags={"LOGISTICS": ["LOCKBOX"]}), NOW) == 105


# ── TIME ─────────────────────────────────────────────────────

class TestTimeDecay:

    def test_logistics_anti_starvation(self):
        record = _make_record()
        assert score(record, NOW) < score(record, NOW + timedelta(hours=30))

    def test_logistics_staleness_bonus(self):
        assert score(_make_record(hours_ago=10), NOW) == 120
        assert score(_make_record(hours_ago=30), NOW) == 100 + 50 + 30

    def test_staleness_threshold_is_configurable(self):
        record = _make_record(hours_ago=10)
        assert score(record, NOW, thresholds=Thresholds(logistics_stale_hours=8)) == 150

    def test_future_and_absent_timestamps_clamp_to_zero(self):
        assert hours_since_created(_make_record(created_at=None), NOW) == 0
        assert hours_since_created(_make_record(created_at=NOW + timedelta(hours=5)), NOW) == 0
        assert score(_make_record(created_at=None), NOW) == 100

    def test_naive_timestamp_read_as_utc(self):
        naive = datetime(2026, 10, 19, 6, 0)
        assert hours_since_created(_make_record(created_at=naive), NOW) == 6

    def test_deterministic_for_fixed_now(self):
        record = _make_record(priority_color=PriorityColor.RED, sentiment_score=3, hours_ago=7)
        assert score(record, NOW) == score(record, NOW)


# ── ORDERING ─────────────────────────────────────────────────

class TestOrdering:

    def test_archetype_order_at_zero_elapsed(self):
        records = [
            _make_record(id="logistics"),
            _make_record(id="revenue", estimated_value=1500),
            _make_record(id="hazard", urgency=Urgency.HIGH),
            _make_record(id="recovery", priority_color=PriorityColor.RED),
        ]
        ordered = sort_by_velocity(records, NOW)
        assert [r.id for r in ordered] == ["hazard", "recovery", "revenue", "logistics"]

    def test_ties_break_older_first_then_input_order(self):
        created = NOW + timedelta(hours=1)       # future -> no time bonus, equal scores
        records = [
            _make_record(id="no-ts",   created_at=None),
            _make_record(id="newer",   created_at=created + timedelta(hours=2)),
            _make_record(id="older",   created_at=created),
            _make_record(id="older-2", created_at=created),
        ]
        ordered = sort_by_velocity(records, NOW)
        assert [r.id for r in ordered] == ["older", "older-2", "newer", "no-ts"]

    def test_velocity_order_key(self):
        older = NOW - timedelta(hours=1)
        keys = [
            velocity_order(500, None),
            velocity_order(500, NOW),
            velocity_order(900, None),
            velocity_order(500, older),
        ]
        assert sorted(keys) == [keys[2], keys[3], keys[1], keys[0]]

    def test_grouping_and_counts_cover_every_archetype(self):
        records = [_make_record(id="a"), _make_record(id="b", urgency=Urgency.EMERGENCY)]
        counts = count_by_archetype(records)
        assert counts == {
            Archetype.HAZARD:    1,
            Archetype.RECOVERY:  0,
            Archetype.REVENUE:   0,
            Archetype.LOGISTICS: 1,
        }
        assert [r.id for r in group_by_archetype(records)[Archetype.HAZARD]] == ["b"]

    def test_archetype_config_complete(self):
        for archetype in Archetype:
            assert set(ARCHETYPE_CONFIG[archetype]) == {"label", "description", "icon"}


# ── DOLLAR ESTIMATE ──────────────────────────────────────────

class TestDollarEstimate:

    @pytest.mark.parametrize("value,text", [
        (2000,   "$2K"),
        (1500,   "$1.5K"),
        (12000,  "$12K"),
        (500,    "$500"),
        (100.5,  "$100.50"),
    ])
    def test_format_currency(self, value, text):
        assert format_currency(value) == text

    def test_nothing_known(self):
        assert format_dollar_estimate(None, None) is None

    def test_range_preferred(self):
        estimate = format_dollar_estimate(6000, None, low=5000, high=8000)
        assert estimate.display == "$5K-8K"
        assert estimate.kind == "range"

    def test_exact_value(self):
        assert format_dollar_estimate(2000, RevenueTier.REPLACEMENT).display == "$2K"

    def test_floor_from_low(self):
        assert format_dollar_estimate(None, None, low=1200).display == "$1.2K+"

    def test_tier_floor(self):
        estimate = format_dollar_estimate(None, RevenueTier.REPLACEMENT)
        assert estimate.display == "$5K+"
        assert estimate.kind == "floor"

    @pytest.mark.parametrize("bad", [float("inf"), float("-inf"), float("nan")])
    def test_non_finite_values_ignored(self, bad):
        assert format_dollar_estimate(bad, None) is None
        assert format_dollar_estimate(bad, None, low=bad, high=2000) is None
        assert format_dollar_estimate(bad, RevenueTier.MAJOR_REPAIR).display == "$1.5K+"

    def test_non_finite_value_adds_no_revenue_bonus(self):
        assert score(_make_record(estimated_value=float("inf")), NOW) == 400

    def test_tier_symbol(self):
        assert tier_symbol(RevenueTier.MAJOR_REPAIR) == "$$$"
        assert tier_symbol(None) == ""
