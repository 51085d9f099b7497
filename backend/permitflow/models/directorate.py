from datetime import datetime

from sqlalchemy import String, DateTime, Boolean, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column

from permitflow.database import Base, utcnow


class DirectorateApproval(Base):
    __tablename__ = "directorate_approvals"

    id: Mapped[int] = mapped_column(primary_key=True)
    approval_id: Mapped[str] = mapped_column(String(30), unique=True, index=True)
    application_id: Mapped[int] = mapped_column(ForeignKey("applications.id"), unique=True, index=True)
    approval_status: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    priority: Mapped[str] = mapped_column(String(10), default="normal")  # low | normal | high | urgent
    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    submitted_by: Mapped[str] = mapped_column(String(100))
    reviewed_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    letter_signed: Mapped[bool] = mapped_column(Boolean, default=False)
    letter_signed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    letter_signed_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    signature_envelope_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, onupdate=utcnow)
