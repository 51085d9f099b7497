"""Seed data for the fee schedule: prescribed activities by permit level.

Administration fees are either fixed or prorated from the activity's annual
recurrent fee over its processing period (Environment Act 2018 formula,
see `prorated_administration_fee`). Processing days follow the level and
fee category unless a row overrides them.
"""

from decimal import Decimal

from permitflow.services.fee_calculator import (
    default_processing_days,
    money,
    prorated_administration_fee,
)

ADMINISTRATION_FORM = "Form 2"
TECHNICAL_FORM = "Form 9"

FEE_SCHEDULE = [
    # ── Level 1 ──
    {"activity_type": "Aquaculture", "permit_level": "Level 1", "category": "Agriculture", "fee_category": "1.1", "administration_fee": Decimal("150.00"), "technical_fee": Decimal("350.00")},
    {"activity_type": "Poultry Farming", "permit_level": "Level 1", "category": "Agriculture", "fee_category": "1.1", "administration_fee": Decimal("150.00"), "technical_fee": Decimal("300.00")},
    {"activity_type": "Small-scale Quarrying", "permit_level": "Level 1", "category": "Extractive Industries", "fee_category": "1.2", "administration_fee": Decimal("200.00"), "technical_fee": Decimal("500.00")},
    {"activity_type": "Waste Water Discharge", "permit_level": "Level 1", "category": "Waste Management", "fee_category": "1.3", "administration_fee": Decimal("150.00"), "technical_fee": Decimal("450.00")},
    # ── Level 2 ──
    {"activity_type": "Mining", "permit_level": "Level 2", "category": "Extractive Industries", "fee_category": "2.4", "administration_fee": Decimal("500.00"), "technical_fee": Decimal("1500.00")},
    {"activity_type": "Quarrying", "permit_level": "Level 2", "category": "Extractive Industries", "fee_category": "2.4", "annual_recurrent_fee": Decimal("3650.00"), "technical_fee": Decimal("1200.00")},
    {"activity_type": "Food Processing", "permit_level": "Level 2", "category": "Manufacturing", "fee_category": "2.1", "annual_recurrent_fee": Decimal("5000.00"), "technical_fee": Decimal("1000.00")},
    {"activity_type": "Fish Processing", "permit_level": "Level 2", "category": "Manufacturing", "fee_category": "2.1", "annual_recurrent_fee": Decimal("5000.00"), "technical_fee": Decimal("1100.00")},
    {"activity_type": "Forestry Operations", "permit_level": "Level 2", "category": "Forestry", "fee_category": "2.2", "annual_recurrent_fee": Decimal("7300.00"), "technical_fee": Decimal("2000.00")},
    {"activity_type": "Petroleum Storage", "permit_level": "Level 2", "category": "Energy", "fee_category": "2.3", "annual_recurrent_fee": Decimal("6000.00"), "technical_fee": Decimal("1800.00")},
    # ── Level 3 ──
    {"activity_type": "Large-scale Mining", "permit_level": "Level 3", "category": "Extractive Industries", "fee_category": "3.1", "annual_recurrent_fee": Decimal("36500.00"), "technical_fee": Decimal("25000.00")},
    {"activity_type": "Hydroelectric Power Generation", "permit_level": "Level 3", "category": "Energy", "fee_category": "3.2", "annual_recurrent_fee": Decimal("20000.00"), "technical_fee": Decimal("15000.00")},
    {"activity_type": "Oil and Gas Production", "permit_level": "Level 3", "category": "Energy", "fee_category": "3.2", "annual_recurrent_fee": Decimal("40000.00"), "technical_fee": Decimal("30000.00")},
    {"activity_type": "Palm Oil Plantation", "permit_level": "Level 3", "category": "Agriculture", "fee_category": "3.3", "annual_recurrent_fee": Decimal("18250.00"), "technical_fee": Decimal("12000.00")},
]


def build_schedule_rows(entries: list[dict] | None = None) -> list[dict]:
    """Resolve processing days and administration fees into FeeSchedule column dicts."""
    rows = []
    for entry in entries if entries is not None else FEE_SCHEDULE:
        days = entry.get("processing_days") or default_processing_days(
            entry["permit_level"], entry.get("fee_category"),
        )
        if "administration_fee" in entry:
            admin_fee = money(entry["administration_fee"])
        else:
            admin_fee = prorated_administration_fee(entry["annual_recurrent_fee"], days)
        rows.append({
            "activity_type": entry["activity_type"],
            "permit_level": entry["permit_level"],
            "category": entry["category"],
            "fee_category": entry.get("fee_category"),
            "administration_fee": admin_fee,
            "technical_fee": money(entry["technical_fee"]),
            "administration_form": entry.get("administration_form", ADMINISTRATION_FORM),
            "technical_form": entry.get("technical_form", TECHNICAL_FORM),
            "processing_days": days,
            "is_active": True,
        })
    return rows
