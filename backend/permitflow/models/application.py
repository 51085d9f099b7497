from datetime import datetime

from sqlalchemy import String, DateTime, Integer, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from permitflow.database import Base, JSONType, utcnow


class Application(Base):
    """A permit application or intent-to-operate registration."""

    __tablename__ = "applications"

    id: Mapped[int] = mapped_column(primary_key=True)
    application_id: Mapped[str] = mapped_column(String(30), unique=True, index=True)
    kind: Mapped[str] = mapped_column(String(20), default="permit")  # "permit" | "intent"
    title: Mapped[str] = mapped_column(String(300))
    entity_name: Mapped[str] = mapped_column(String(300))
    applicant_id: Mapped[str] = mapped_column(String(100), index=True)
    activity_type: Mapped[str] = mapped_column(String(200))
    permit_level: Mapped[str] = mapped_column(String(20))
    status: Mapped[str] = mapped_column(String(30), default="submitted", index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # ── Registry stage ──
    registry_assessment: Mapped[str | None] = mapped_column(Text, nullable=True)
    registry_remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    registry_proposed_action: Mapped[str | None] = mapped_column(Text, nullable=True)
    registry_documents: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    registry_reviewed_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    registry_reviewed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # ── Compliance stage ──
    compliance_assessment: Mapped[str | None] = mapped_column(Text, nullable=True)
    compliance_remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    compliance_proposed_action: Mapped[str | None] = mapped_column(Text, nullable=True)
    compliance_documents: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    compliance_reviewed_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    compliance_reviewed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # ── Managing Director stage ──
    md_assessment: Mapped[str | None] = mapped_column(Text, nullable=True)
    md_remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    md_proposed_action: Mapped[str | None] = mapped_column(Text, nullable=True)
    md_documents: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    md_reviewed_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    md_reviewed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, onupdate=utcnow)

    # Concurrent flushes against a stale row raise StaleDataError
    __mapper_args__ = {"version_id_col": version}
