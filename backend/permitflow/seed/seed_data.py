"""
Seed the fee schedule.

Usage:
    python -m permitflow.seed.seed_data          # Insert missing schedule rows
    python -m permitflow.seed.seed_data --clean  # Replace the whole schedule
    python -m permitflow.seed.seed_data --verify # Just verify existing data

Fee payments keep their own copy of the fees they were assessed with, so
replacing the schedule never changes an issued invoice.
"""

import asyncio
import sys
import time

from sqlalchemy import delete, select, func
from sqlalchemy.ext.asyncio import AsyncSession

from permitflow.database import async_session, engine
from permitflow.models import FeeSchedule
from permitflow.seed.fee_schedule import build_schedule_rows


async def seed_fee_schedule(session: AsyncSession, *, clean: bool = False) -> int:
    """Insert schedule rows that are not present yet. Returns the number inserted."""
    if clean:
        await session.execute(delete(FeeSchedule))

    result = await session.execute(select(FeeSchedule.activity_type, FeeSchedule.permit_level))
    existing = {(activity, level) for activity, level in result.all()}

    inserted = 0
    for row in build_schedule_rows():
        if (row["activity_type"], row["permit_level"]) in existing:
            continue
        session.add(FeeSchedule(**row))
        inserted += 1
    await session.flush()
    return inserted


async def verify_data(session: AsyncSession) -> bool:
    """Every level must have at least one active entry, or estimation has nothing to fall back on."""
    result = await session.execute(
        select(FeeSchedule.permit_level, func.count())
        .where(FeeSchedule.is_active == True)  # noqa: E712
        .group_by(FeeSchedule.permit_level)
    )
    counts = dict(result.all())
    ok = True
    for level in ("Level 1", "Level 2", "Level 3"):
        count = counts.get(level, 0)
        status = "OK" if count else "MISSING"
        print(f"  {level}: {count} activities [{status}]")
        ok = ok and count > 0
    return ok


async def run_seed() -> None:
    clean = "--clean" in sys.argv
    verify_only = "--verify" in sys.argv
    start = time.time()

    async with async_session() as session:
        if verify_only:
            ok = await verify_data(session)
            await engine.dispose()
            sys.exit(0 if ok else 1)

        print("Seeding fee schedule...", end=" ", flush=True)
        inserted = await seed_fee_schedule(session, clean=clean)
        await session.commit()
        print(f"{inserted} rows")

        ok = await verify_data(session)

    await engine.dispose()
    print(f"Seed completed in {time.time() - start:.1f}s")
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    asyncio.run(run_seed())
