"""
Audit Service

Hash-chained audit trail for workflow actions. Each entry stores the hash of
the entry before it, so editing or deleting a row breaks every hash after it.
Entries are written in the same unit of work as the change they describe:
a rolled-back transition leaves no audit row behind.
"""

import hashlib
import json
from uuid import uuid4

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from permitflow.models import AuditLog

HASHED_FIELDS = ("event_type", "actor", "action", "resource_type", "resource_id", "details")

VERIFY_BATCH_SIZE = 500


def entry_hash(fields: dict, previous_hash: str | None) -> str:
    """SHA-256 over the hashed fields and the previous entry's hash."""
    payload = {
        "content": {name: fields.get(name) for name in HASHED_FIELDS},
        "previous_hash": previous_hash or "",
    }
    raw = json.dumps(payload, sort_keys=True, default=str)
    return hashlib.sha256(raw.encode()).hexdigest()


class AuditService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _chain_head(self) -> str | None:
        result = await self.session.execute(
            select(AuditLog.current_hash).order_by(AuditLog.id.desc()).limit(1)
        )
        return result.scalar()

    async def log_event(
        self,
        event_type: str,
        actor: str,
        action: str,
        resource_type: str | None = None,
        resource_id: str | None = None,
        details: dict | None = None,
    ) -> AuditLog:
        """
        Append an entry to the chain.

        Args:
            event_type: e.g. "application_submitted", "status_changed", "payment_recorded"
            actor: ActingUser.actor, e.g. "registry:42", "managing_director:7", or "gateway"
            action: Human-readable description
            resource_type: "application", "fee_payment" or "directorate_approval"
            resource_id: Public id of the affected record (APP-, INV-, DIR-)
            details: Structured event payload, hashed with the rest
        """
        fields = {
            "event_type": event_type,
            "actor": actor,
            "action": action,
            "resource_type": resource_type,
            "resource_id": resource_id,
            "details": details or {},
        }
        previous_hash = await self._chain_head()
        entry = AuditLog(
            event_id=str(uuid4()),
            previous_hash=previous_hash,
            current_hash=entry_hash(fields, previous_hash),
            **fields,
        )
        self.session.add(entry)
        await self.session.flush()
        return entry

    # ── Workflow events ──────────────────────────────────────────────────

    async def log_application_submitted(self, application_id: str, kind: str, actor: str) -> AuditLog:
        return await self.log_event(
            "application_submitted", actor,
            f"{kind.capitalize()} {application_id} submitted",
            "application", application_id,
            {"kind": kind},
        )

    async def log_status_changed(
        self,
        application_id: str,
        stage: str,
        old_status: str,
        new_status: str,
        actor: str,
    ) -> AuditLog:
        return await self.log_event(
            "status_changed", actor,
            f"Application {application_id} status: {old_status} → {new_status} ({stage})",
            "application", application_id,
            {"stage": stage, "old_status": old_status, "new_status": new_status},
        )

    async def log_fees_assessed(self, invoice_number: str, application_id: str, total_fee: str,
                                source: str, actor: str) -> AuditLog:
        return await self.log_event(
            "fees_assessed", actor,
            f"Invoice {invoice_number} raised for {application_id}: {total_fee} ({source})",
            "fee_payment", invoice_number,
            {"application_id": application_id, "total_fee": total_fee, "source": source},
        )

    async def log_payment_recorded(self, invoice_number: str, amount: str, amount_paid: str,
                                   payment_status: str, actor: str, reference: str | None) -> AuditLog:
        return await self.log_event(
            "payment_recorded", actor,
            f"Payment of {amount} recorded on {invoice_number} ({payment_status})",
            "fee_payment", invoice_number,
            {
                "amount": amount,
                "amount_paid": amount_paid,
                "payment_status": payment_status,
                "reference": reference,
            },
        )

    async def log_directorate_decision(self, approval_id: str, old_status: str, new_status: str,
                                       actor: str) -> AuditLog:
        return await self.log_event(
            "directorate_decision", actor,
            f"Directorate approval {approval_id}: {old_status} → {new_status}",
            "directorate_approval", approval_id,
            {"old_status": old_status, "new_status": new_status},
        )

    # ── Verification ─────────────────────────────────────────────────────

    async def verify_chain_integrity(self) -> dict:
        """Recompute every hash in id order, reading the chain in batches."""
        checked = 0
        expected_previous: str | None = None
        last_id = 0

        while True:
            result = await self.session.execute(
                select(AuditLog)
                .where(AuditLog.id > last_id)
                .order_by(AuditLog.id.asc())
                .limit(VERIFY_BATCH_SIZE)
            )
            batch = list(result.scalars())
            if not batch:
                break

            for entry in batch:
                checked += 1
                if entry.previous_hash != expected_previous:
                    return _broken(checked, entry, "previous_hash mismatch")
                fields = {name: getattr(entry, name) for name in HASHED_FIELDS}
                if entry.current_hash != entry_hash(fields, entry.previous_hash):
                    return _broken(checked, entry, "current_hash mismatch (data tampered)")
                expected_previous = entry.current_hash
            last_id = batch[-1].id

        return {"valid": True, "entries_checked": checked, "first_invalid": None}

    # ── Queries ──────────────────────────────────────────────────────────

    @staticmethod
    def _filtered(query, event_type: str | None, resource_type: str | None, resource_id: str | None):
        if event_type:
            query = query.where(AuditLog.event_type == event_type)
        if resource_type:
            query = query.where(AuditLog.resource_type == resource_type)
        if resource_id:
            query = query.where(AuditLog.resource_id == resource_id)
        return query

    async def get_entries(
        self,
        event_type: str | None = None,
        resource_type: str | None = None,
        resource_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[AuditLog]:
        """Newest first."""
        query = self._filtered(select(AuditLog), event_type, resource_type, resource_id)
        result = await self.session.execute(query.order_by(AuditLog.id.desc()).offset(offset).limit(limit))
        return list(result.scalars())

    async def get_entry_count(
        self,
        event_type: str | None = None,
        resource_type: str | None = None,
        resource_id: str | None = None,
    ) -> int:
        query = self._filtered(select(func.count()).select_from(AuditLog), event_type, resource_type, resource_id)
        return (await self.session.execute(query)).scalar() or 0


def _broken(checked: int, entry: AuditLog, reason: str) -> dict:
    return {
        "valid": False,
        "entries_checked": checked,
        "first_invalid": entry.event_id,
        "reason": reason,
    }
