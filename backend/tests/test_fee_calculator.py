"""Tests for fee resolution against the fee schedule."""

from decimal import Decimal

import pytest

from permitflow.seed.fee_schedule import FEE_SCHEDULE, build_schedule_rows
from permitflow.seed.seed_data import seed_fee_schedule
from permitflow.services.fee_calculator import (
    ESTIMATE_WARNING,
    FeeCalculator,
    ScheduleEntry,
    calculate_fees,
    default_processing_days,
    normalize_level,
    prorated_administration_fee,
)


def schedule() -> list[ScheduleEntry]:
    fields = ScheduleEntry.__dataclass_fields__
    return [ScheduleEntry(**{k: row[k] for k in fields}) for row in build_schedule_rows()]


def entry(activity_type: str, category: str, admin: str = "100.00", level: str = "Level 1") -> ScheduleEntry:
    return ScheduleEntry(
        activity_type=activity_type,
        permit_level=level,
        category=category,
        administration_fee=Decimal(admin),
        technical_fee=Decimal("200.00"),
        administration_form="Form 2",
        technical_form="Form 9",
        processing_days=30,
    )


# ── Official fees ────────────────────────────────────────────────────────────

class TestOfficialFees:
    def test_mining_level_2(self):
        quote = calculate_fees(schedule(), "Mining", "Level 2")
        assert quote.calculable
        assert quote.source == "official"
        assert not quote.is_estimated
        assert quote.warning is None
        assert quote.administration_fee == Decimal("500.00")
        assert quote.technical_fee == Decimal("1500.00")
        assert quote.total_fee == Decimal("2000.00")
        assert quote.administration_form == "Form 2"
        assert quote.technical_form == "Form 9"
        assert quote.processing_days == 60

    @pytest.mark.parametrize("activity,level", [
        ("mining", "2"),
        ("  MINING ", "level 2"),
        ("Mining", 2),
        ("Mining", "Level2"),
    ])
    def test_inputs_are_normalized(self, activity, level):
        quote = calculate_fees(schedule(), activity, level)
        assert quote.source == "official"
        assert quote.permit_level == "Level 2"
        assert quote.matched_activity_type == "Mining"
        assert quote.total_fee == Decimal("2000.00")

    def test_prorated_schedule_row(self):
        quote = calculate_fees(schedule(), "Quarrying", "Level 2")
        # 3650 / 365 x 60 days
        assert quote.administration_fee == Decimal("600.00")
        assert quote.total_fee == Decimal("1800.00")

    def test_to_dict_uses_floats(self):
        data = calculate_fees(schedule(), "Mining", "Level 2").to_dict()
        assert data["total_fee"] == 2000.0
        assert isinstance(data["administration_fee"], float)
        assert data["source"] == "official"


# ── Estimates ────────────────────────────────────────────────────────────────

class TestEstimatedFees:
    def test_unknown_activity_same_level(self):
        quote = calculate_fees(schedule(), "Unknown Activity", "Level 1")
        assert quote.calculable
        assert quote.is_estimated
        assert quote.source == "estimated"
        assert quote.warning == ESTIMATE_WARNING
        assert quote.activity_type == "Unknown Activity"
        # No category and no shared words: alphabetical first at Level 1
        assert quote.matched_activity_type == "Aquaculture"
        assert quote.total_fee == Decimal("500.00")

    def test_category_from_other_levels(self):
        quote = calculate_fees(schedule(), "Mining", "Level 1")
        assert quote.is_estimated
        assert quote.matched_activity_type == "Small-scale Quarrying"

    def test_word_overlap_within_category(self):
        quote = calculate_fees(schedule(), "Large-scale Mining", "Level 2")
        assert quote.matched_activity_type == "Mining"

    def test_category_hint(self):
        quote = calculate_fees(schedule(), "Solar Farm", "Level 2", category="Energy")
        assert quote.matched_activity_type == "Petroleum Storage"

    def test_ties_resolve_alphabetically(self):
        entries = [
            entry("Sawmilling", "Forestry", admin="300.00"),
            entry("Logging", "Forestry", admin="100.00"),
            entry("Copra Drying", "Agriculture", admin="50.00"),
        ]
        first = calculate_fees(entries, "Charcoal Production", "Level 1", category="Forestry")
        second = calculate_fees(list(reversed(entries)), "Charcoal Production", "Level 1", category="Forestry")
        assert first.matched_activity_type == "Logging"
        assert second.matched_activity_type == "Logging"
        assert first.total_fee == Decimal("300.00")


# ── Not calculable ───────────────────────────────────────────────────────────

class TestNotCalculable:
    def test_level_without_entries(self):
        quote = calculate_fees(schedule(), "Mining", "Level 4")
        assert not quote.calculable
        assert quote.total_fee is None
        assert quote.source is None
        assert "Level 4" in quote.reason

    @pytest.mark.parametrize("activity,level,reason", [
        (None, "Level 1", "Activity type required to calculate fees"),
        ("   ", "Level 1", "Activity type required to calculate fees"),
        ("Mining", "", "Permit level required to calculate fees"),
        (None, None, "Activity type and permit level required to calculate fees"),
    ])
    def test_missing_input(self, activity, level, reason):
        quote = calculate_fees(schedule(), activity, level)
        assert not quote.calculable
        assert quote.reason == reason

    def test_empty_schedule(self):
        assert not calculate_fees([], "Mining", "Level 2").calculable


# ── Statutory helpers ────────────────────────────────────────────────────────

class TestHelpers:
    def test_normalize_level(self):
        assert normalize_level("3") == "Level 3"
        assert normalize_level(" level 1 ") == "Level 1"
        assert normalize_level("") is None
        assert normalize_level("Special") == "Special"

    def test_default_processing_days(self):
        assert default_processing_days("Level 1") == 30
        assert default_processing_days("Level 2", "2.1") == 30
        assert default_processing_days("2", "2.4") == 60
        assert default_processing_days("Level 3", "3.1") == 90

    def test_prorated_fee_rounds_to_cents(self):
        assert prorated_administration_fee(5000, 30) == Decimal("410.96")
        assert prorated_administration_fee("36500.00", 90) == Decimal("9000.00")

    def test_build_schedule_rows(self):
        rows = build_schedule_rows()
        assert len(rows) == len(FEE_SCHEDULE)
        assert {row["permit_level"] for row in rows} == {"Level 1", "Level 2", "Level 3"}
        for row in rows:
            assert row["administration_fee"] > 0
            assert row["administration_form"] == "Form 2"
            assert row["technical_form"] == "Form 9"

    def test_build_schedule_rows_honours_overrides(self):
        rows = build_schedule_rows([{
            "activity_type": "Cement Works",
            "permit_level": "Level 2",
            "category": "Manufacturing",
            "annual_recurrent_fee": Decimal("7300.00"),
            "technical_fee": Decimal("900"),
            "processing_days": 45,
        }])
        assert rows[0]["processing_days"] == 45
        assert rows[0]["administration_fee"] == Decimal("900.00")
        assert rows[0]["technical_fee"] == Decimal("900.00")


# ── Database-backed calculator ───────────────────────────────────────────────

@pytest.mark.asyncio
class TestFeeCalculator:
    async def test_quote_from_seeded_schedule(self, db_session, fee_schedule):
        assert fee_schedule == len(FEE_SCHEDULE)
        quote = await FeeCalculator(db_session).quote("Mining", "Level 2")
        assert quote.source == "official"
        assert quote.total_fee == Decimal("2000.00")

    async def test_estimate_from_seeded_schedule(self, db_session, fee_schedule):
        quote = await FeeCalculator(db_session).quote("Unknown Activity", "Level 1")
        assert quote.is_estimated

    async def test_seeding_twice_inserts_nothing(self, db_session, fee_schedule):
        assert await seed_fee_schedule(db_session) == 0

    async def test_load_schedule_returns_decimal_fees(self, db_session, fee_schedule):
        calculator = FeeCalculator(db_session)
        entries = await calculator.load_schedule()
        assert len(entries) == len(FEE_SCHEDULE)
        assert all(isinstance(e.administration_fee, Decimal) for e in entries)
