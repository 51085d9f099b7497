"""
Fee Calculator

Resolves the administration fee, technical fee, forms and processing days
for an (activity type, permit level) pair from the fee schedule.

    1. Exact match on the normalized pair  -> source="official"
    2. Same-level entry of the most similar activity -> source="estimated",
       is_estimated=True, with a warning the UI must show
    3. Nothing at that level, or missing input -> not calculable

Similarity for step 2 is ranked by:
    a. same category grouping (from the caller's hint, or from the activity's
       entries at other levels)
    b. word overlap between activity names (Jaccard)
    c. activity type, alphabetically
so ties always resolve the same way.
"""

import logging
import re
from dataclasses import dataclass, asdict
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from permitflow.middleware.metrics import fee_quotes_total
from permitflow.models import FeeSchedule

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")

ESTIMATE_WARNING = (
    "Estimated fees: no official fee is scheduled for this activity and level. "
    "These amounts are based on a similar activity and may change upon official processing."
)

_LEVEL_PATTERN = re.compile(r"^(?:level\s*)?(\d+)$", re.IGNORECASE)
_WORD_PATTERN = re.compile(r"[a-z0-9]+")
_STOPWORDS = frozenset({"and", "of", "the", "for", "in", "or", "a"})


# ── Normalization ────────────────────────────────────────────────────────────

def normalize_level(value: str | int | None) -> str | None:
    """'Level 2', 'level2', '2' and 2 all become 'Level 2'."""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    match = _LEVEL_PATTERN.match(text)
    if match:
        return f"Level {int(match.group(1))}"
    return text


def normalize_activity(value: str | None) -> str | None:
    if value is None:
        return None
    text = " ".join(value.split()).casefold()
    return text or None


def _words(activity: str) -> set[str]:
    return {w for w in _WORD_PATTERN.findall(activity.casefold()) if w not in _STOPWORDS}


def _word_overlap(a: str, b: str) -> float:
    wa, wb = _words(a), _words(b)
    if not wa or not wb:
        return 0.0
    return len(wa & wb) / len(wa | wb)


def money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


# ── Statutory helpers ────────────────────────────────────────────────────────

def prorated_administration_fee(annual_recurrent_fee, processing_days: int) -> Decimal:
    """Administration fee = (annual recurrent fee / 365) x processing days."""
    return money(Decimal(str(annual_recurrent_fee)) / Decimal(365) * Decimal(processing_days))


def default_processing_days(level: str | int, fee_category: str | None = None) -> int:
    """Level 2 category 2.1 and Level 1 take 30 days, other Level 2 60, Level 3 90."""
    normalized = normalize_level(level)
    if normalized == "Level 3":
        return 90
    if normalized == "Level 2":
        return 30 if fee_category == "2.1" else 60
    return 30


# ── Data types ───────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ScheduleEntry:
    activity_type: str
    permit_level: str
    category: str
    administration_fee: Decimal
    technical_fee: Decimal
    administration_form: str
    technical_form: str
    processing_days: int

    @classmethod
    def from_row(cls, row: FeeSchedule) -> "ScheduleEntry":
        return cls(
            activity_type=row.activity_type,
            permit_level=row.permit_level,
            category=row.category,
            administration_fee=money(row.administration_fee),
            technical_fee=money(row.technical_fee),
            administration_form=row.administration_form,
            technical_form=row.technical_form,
            processing_days=row.processing_days,
        )


@dataclass(frozen=True)
class FeeQuote:
    calculable: bool
    activity_type: str | None
    permit_level: str | None
    administration_fee: Decimal | None = None
    technical_fee: Decimal | None = None
    total_fee: Decimal | None = None
    administration_form: str | None = None
    technical_form: str | None = None
    processing_days: int | None = None
    source: str | None = None  # "official" | "estimated"
    is_estimated: bool = False
    matched_activity_type: str | None = None
    warning: str | None = None
    reason: str | None = None

    def to_dict(self) -> dict:
        data = asdict(self)
        for key in ("administration_fee", "technical_fee", "total_fee"):
            if data[key] is not None:
                data[key] = float(data[key])
        return data


def _quote_from(entry: ScheduleEntry, activity_type: str, permit_level: str, *, estimated: bool) -> FeeQuote:
    return FeeQuote(
        calculable=True,
        activity_type=activity_type,
        permit_level=permit_level,
        administration_fee=entry.administration_fee,
        technical_fee=entry.technical_fee,
        total_fee=money(entry.administration_fee + entry.technical_fee),
        administration_form=entry.administration_form,
        technical_form=entry.technical_form,
        processing_days=entry.processing_days,
        source="estimated" if estimated else "official",
        is_estimated=estimated,
        matched_activity_type=entry.activity_type,
        warning=ESTIMATE_WARNING if estimated else None,
    )


def not_calculable(activity_type: str | None, permit_level: str | None, reason: str) -> FeeQuote:
    return FeeQuote(
        calculable=False,
        activity_type=activity_type,
        permit_level=permit_level,
        reason=reason,
    )


# ── Core calculation (pure) ──────────────────────────────────────────────────

def calculate_fees(
    entries: list[ScheduleEntry],
    activity_type: str | None,
    permit_level: str | int | None,
    *,
    category: str | None = None,
) -> FeeQuote:
    """Resolve fees for one activity/level pair against a schedule snapshot."""
    activity_key = normalize_activity(activity_type)
    level = normalize_level(permit_level)
    display_activity = " ".join(activity_type.split()) if activity_key else None

    missing = [name for name, value in (("activity type", activity_key), ("permit level", level)) if not value]
    if missing:
        return not_calculable(
            display_activity, level,
            f"{' and '.join(missing).capitalize()} required to calculate fees",
        )

    same_level = [e for e in entries if normalize_level(e.permit_level) == level]

    for entry in same_level:
        if normalize_activity(entry.activity_type) == activity_key:
            return _quote_from(entry, display_activity, level, estimated=False)

    if not same_level:
        return not_calculable(
            display_activity, level,
            f"No fee schedule entries exist for {level}; adjust the permit level or activity",
        )

    wanted_category = normalize_activity(category)
    if wanted_category is None:
        for entry in entries:
            if normalize_activity(entry.activity_type) == activity_key:
                wanted_category = normalize_activity(entry.category)
                break

    def _rank(entry: ScheduleEntry):
        same_category = wanted_category is not None and normalize_activity(entry.category) == wanted_category
        return (
            0 if same_category else 1,
            -_word_overlap(activity_key, entry.activity_type),
            entry.activity_type.casefold(),
        )

    nearest = min(same_level, key=_rank)
    return _quote_from(nearest, display_activity, level, estimated=True)


# ── Service ──────────────────────────────────────────────────────────────────

class FeeCalculator:
    """Loads the active fee schedule and applies `calculate_fees`."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def load_schedule(self) -> list[ScheduleEntry]:
        result = await self.session.execute(
            select(FeeSchedule)
            .where(FeeSchedule.is_active == True)  # noqa: E712
            .order_by(FeeSchedule.activity_type, FeeSchedule.permit_level)
        )
        return [ScheduleEntry.from_row(row) for row in result.scalars()]

    async def quote(
        self,
        activity_type: str | None,
        permit_level: str | int | None,
        *,
        category: str | None = None,
    ) -> FeeQuote:
        entries = await self.load_schedule()
        quote = calculate_fees(entries, activity_type, permit_level, category=category)

        fee_quotes_total.labels(source=quote.source or "not_calculable").inc()
        if quote.is_estimated:
            logger.info(
                "Estimated fees for %r at %s using %r",
                activity_type, quote.permit_level, quote.matched_activity_type,
            )
        elif not quote.calculable:
            logger.info("Fees not calculable for %r / %r: %s", activity_type, permit_level, quote.reason)
        return quote
