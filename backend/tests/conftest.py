"""Shared test fixtures for backend tests."""

import json
import os

# Settings are read at import time; point them at an in-memory database and
# switch the Redis rate limiter off before anything from permitflow loads.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("RATE_LIMIT_PER_MINUTE", "0")
os.environ.setdefault("NOTIFICATION_WEBHOOK_URL", "")

from typing import AsyncGenerator  # noqa: E402

import httpx  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from permitflow.api.deps import get_db, get_notifier  # noqa: E402
from permitflow.auth.context import ActingUser  # noqa: E402
from permitflow.auth.jwt import create_access_token  # noqa: E402
from permitflow.database import Base  # noqa: E402
from permitflow.main import app  # noqa: E402
import permitflow.models  # noqa: E402,F401
from permitflow.seed.seed_data import seed_fee_schedule  # noqa: E402
from permitflow.services import records  # noqa: E402
from permitflow.services.fee_calculator import FeeCalculator  # noqa: E402
from permitflow.services.notifications import NotificationClient  # noqa: E402
from permitflow.services.payment_tracker import PaymentTracker  # noqa: E402
from permitflow.services.review_workflow import NewApplication, ReviewWorkflow, StageSubmission  # noqa: E402


# ── Acting users ─────────────────────────────────────────────────────────────

APPLICANT = ActingUser(user_id="applicant-1", user_type="public", email="owner@kumulminerals.pg")
OTHER_APPLICANT = ActingUser(user_id="applicant-2", user_type="public")
REGISTRY = ActingUser(user_id="reg-1", user_type="staff", staff_unit="registry", staff_position="officer")
COMPLIANCE = ActingUser(user_id="comp-1", user_type="staff", staff_unit="compliance", staff_position="officer")
MANAGING_DIRECTOR = ActingUser(user_id="md-1", user_type="staff", staff_position="managing_director")
REVENUE = ActingUser(user_id="rev-1", user_type="staff", staff_unit="revenue", staff_position="officer")
DIRECTORATE = ActingUser(user_id="dir-1", user_type="staff", staff_unit="directorate", staff_position="director")
ADMIN = ActingUser(user_id="admin-1", user_type="admin")


# ── Database ─────────────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(engine) -> AsyncGenerator[AsyncSession, None]:
    TestSession = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with TestSession() as session:
        yield session


@pytest_asyncio.fixture
async def fee_schedule(db_session: AsyncSession) -> int:
    inserted = await seed_fee_schedule(db_session)
    await db_session.commit()
    return inserted


# ── Workflow helpers ─────────────────────────────────────────────────────────

def review(target: str, **overrides) -> StageSubmission:
    data = {
        "assessment": "Application documents reviewed and complete",
        "proposed_action": "Proceed to next stage",
        "target_status": target,
    }
    data.update(overrides)
    return StageSubmission(**data)


async def submit_application(
    session: AsyncSession,
    activity_type: str = "Mining",
    permit_level: str = "Level 2",
    actor: ActingUser = APPLICANT,
):
    application = await ReviewWorkflow(session).submit_application(
        NewApplication(
            title="Wafi alluvial gold extraction",
            entity_name="Kumul Minerals Ltd",
            activity_type=activity_type,
            permit_level=permit_level,
        ),
        actor,
    )
    await session.commit()
    return application


async def registry_approve(session: AsyncSession, application_id: str):
    workflow = ReviewWorkflow(session)
    await workflow.submit_registry_review(application_id, review("under_review"), REGISTRY)
    application = await workflow.submit_registry_review(application_id, review("registry_approved"), REGISTRY)
    await session.commit()
    return application


async def settle_fees(session: AsyncSession, application_id: str):
    """Raise the invoice from the schedule and pay it in full."""
    application = await records.get_application(session, application_id)
    quote = await FeeCalculator(session).quote(application.activity_type, application.permit_level)
    tracker = PaymentTracker(session)
    payment = await tracker.assess_fees(application_id, quote, REVENUE)
    payment = await tracker.record_payment(application_id, payment.total_fee, "RCPT-0001", REVENUE)
    await session.commit()
    return payment


async def advance_to_md_review(session: AsyncSession):
    """Submitted application taken through registry, fees and compliance into MD review."""
    application = await submit_application(session)
    await registry_approve(session, application.application_id)
    await settle_fees(session, application.application_id)
    workflow = ReviewWorkflow(session)
    await workflow.submit_compliance_review(application.application_id, review("compliance_review"), COMPLIANCE)
    await workflow.submit_compliance_review(application.application_id, review("compliance_approved"), COMPLIANCE)
    application = await workflow.submit_md_review(application.application_id, review("md_review"), MANAGING_DIRECTOR)
    await session.commit()
    return application


# ── HTTP clients ─────────────────────────────────────────────────────────────

def auth_headers(actor: ActingUser) -> dict:
    token = create_access_token(
        actor.user_id,
        user_type=actor.user_type,
        staff_unit=actor.staff_unit,
        staff_position=actor.staff_position,
        email=actor.email,
    )
    return {"Authorization": f"Bearer {token}"}


def _override_db(session: AsyncSession):
    async def _get_db():
        yield session
    return _get_db


@pytest_asyncio.fixture
async def notifications() -> list[dict]:
    """Events the API posted to the notification webhook."""
    return []


@pytest_asyncio.fixture
async def client(db_session: AsyncSession, notifications: list[dict]) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated client; pass `headers=auth_headers(actor)` per request."""

    def _record(request: httpx.Request) -> httpx.Response:
        notifications.append(json.loads(request.content))
        return httpx.Response(202)

    app.dependency_overrides[get_db] = _override_db(db_session)
    app.dependency_overrides[get_notifier] = lambda: NotificationClient(
        "https://hooks.test/permits", transport=httpx.MockTransport(_record),
    )
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
