"""Lookups shared by the workflow services. Missing rows raise NotFound."""

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from permitflow.errors import ConflictError, NotFound, UpstreamError
from permitflow.models import Application, DirectorateApproval, FeePayment


async def get_application(session: AsyncSession, application_id: str) -> Application:
    result = await session.execute(
        select(Application).where(Application.application_id == application_id)
    )
    application = result.scalar_one_or_none()
    if application is None:
        raise NotFound(f"Application {application_id} not found", details={"application_id": application_id})
    return application


async def find_fee_payment(session: AsyncSession, application: Application) -> FeePayment | None:
    result = await session.execute(
        select(FeePayment).where(FeePayment.application_id == application.id)
    )
    return result.scalar_one_or_none()


async def get_fee_payment(session: AsyncSession, application: Application) -> FeePayment:
    payment = await find_fee_payment(session, application)
    if payment is None:
        raise NotFound(
            f"No fees have been assessed for {application.application_id}",
            details={"application_id": application.application_id},
        )
    return payment


async def get_fee_payment_by_invoice(session: AsyncSession, invoice_number: str) -> FeePayment:
    result = await session.execute(
        select(FeePayment).where(FeePayment.invoice_number == invoice_number)
    )
    payment = result.scalar_one_or_none()
    if payment is None:
        raise NotFound(f"Invoice {invoice_number} not found", details={"invoice_number": invoice_number})
    return payment


async def get_approval(session: AsyncSession, approval_id: str) -> DirectorateApproval:
    result = await session.execute(
        select(DirectorateApproval).where(DirectorateApproval.approval_id == approval_id)
    )
    approval = result.scalar_one_or_none()
    if approval is None:
        raise NotFound(f"Directorate approval {approval_id} not found", details={"approval_id": approval_id})
    return approval


async def flush(session: AsyncSession) -> None:
    """Flush pending writes, translating store failures into workflow errors."""
    try:
        await session.flush()
    except StaleDataError as e:
        raise ConflictError(
            "The record was changed by someone else; reload and resubmit",
        ) from e
    except SQLAlchemyError as e:
        raise UpstreamError("Could not save changes; please resubmit") from e
