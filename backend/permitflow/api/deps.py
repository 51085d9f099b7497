"""
API Dependencies: DB session, acting user, commit helper, outbound clients.

The acting user is rebuilt from the Bearer token on every request:
  1. Extract the token from the Authorization header
  2. Decode and validate the JWT
  3. Copy user_type / staff_unit / staff_position into an ActingUser

Routers pass the ActingUser explicitly into the services; permission checks
happen there, so the same rules apply whatever the entry point.
"""

import logging
from typing import AsyncGenerator

from fastapi import Request, HTTPException
from jose import JWTError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from permitflow.auth.context import ActingUser
from permitflow.auth.jwt import decode_access_token
from permitflow.database import async_session
from permitflow.errors import ConflictError, UpstreamError
from permitflow.services.notifications import NotificationClient
from permitflow.services.payment_gateway import PaymentGateway

logger = logging.getLogger(__name__)


# ── Database session ─────────────────────────────────────────────────────────

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a DB session per request, commit on success, rollback on error."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def commit(db: AsyncSession) -> None:
    """Commit the unit of work now, so follow-up side effects only see durable state."""
    try:
        await db.commit()
    except StaleDataError as e:
        await db.rollback()
        raise ConflictError("The record was changed by someone else; reload and resubmit") from e
    except SQLAlchemyError as e:
        await db.rollback()
        logger.warning("Commit failed: %s", e)
        raise UpstreamError("Could not save changes; please resubmit") from e


# ── Acting user (JWT authentication) ─────────────────────────────────────────

async def get_acting_user(request: Request) -> ActingUser:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header")

    token = auth_header[7:]  # strip "Bearer "
    try:
        claims = decode_access_token(token)
    except JWTError as e:
        logger.debug("JWT decode failed: %s", e)
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    return ActingUser(
        user_id=str(claims.get("sub") or "anonymous"),
        user_type=claims.get("user_type") or "public",
        staff_unit=claims.get("staff_unit"),
        staff_position=claims.get("staff_position"),
        email=claims.get("email"),
    )


# ── Outbound clients ─────────────────────────────────────────────────────────

def get_notifier() -> NotificationClient:
    return NotificationClient()


def get_gateway() -> PaymentGateway:
    return PaymentGateway()
