"""
AuditorService -- tamper-evident audit trail and hash chain maintenance.

Responsibility:
    Writes one immutable, hash-chained audit event for every mutating
    supply-chain command, inside the same transaction as the change itself.
    Provides chain validation for tamper detection and per-entity traces.

Invariants enforced:
    - Sequence monotonicity via SequenceService (never max+1).
    - hash = H(entity_type | entity_id | action | payload_hash | prev_hash).
    - Append-only: audit events are never modified or deleted.

Failure modes:
    - AuditChainBrokenError: recomputed hash does not match stored hash,
      or prev_hash does not match the predecessor's hash.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from cropchain_kernel.domain.clock import Clock
from cropchain_kernel.exceptions import AuditChainBrokenError
from cropchain_kernel.logging_config import get_logger
from cropchain_kernel.models.audit_event import AuditAction, AuditEvent
from cropchain_kernel.services.base import BaseService
from cropchain_kernel.services.sequence_service import SequenceService
from cropchain_kernel.utils.hashing import hash_audit_event, hash_payload, to_json_safe

logger = get_logger("services.auditor")


@dataclass(frozen=True)
class AuditTraceEntry:
    """A single entry in an audit trace."""

    seq: int
    action: str
    occurred_at: datetime
    actor_id: UUID
    payload: dict[str, Any]
    hash: str


@dataclass(frozen=True)
class AuditTrace:
    """Audit history of one entity, in sequence order."""

    entity_type: str
    entity_id: UUID
    entries: tuple[AuditTraceEntry, ...]

    @property
    def actions(self) -> tuple[str, ...]:
        return tuple(e.action for e in self.entries)

    @property
    def last_action(self) -> str | None:
        return self.entries[-1].action if self.entries else None


class AuditorService(BaseService):
    """
    Service for creating and validating audit events.

    Non-goals:
        - Does NOT call ``session.commit()``; the caller controls boundaries.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)
        self._sequence_service = SequenceService(session)

    def _get_last_hash(self) -> str | None:
        last_event = self.session.execute(
            select(AuditEvent).order_by(AuditEvent.seq.desc()).limit(1)
        ).scalar_one_or_none()
        return last_event.hash if last_event else None

    def _create_audit_event(
        self,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        actor_id: UUID,
        payload: dict[str, Any] | None = None,
    ) -> AuditEvent:
        seq = self._sequence_service.next_value(SequenceService.AUDIT_EVENT)
        prev_hash = self._get_last_hash()

        payload_data = to_json_safe(payload or {})
        computed_payload_hash = hash_payload(payload_data)
        event_hash = hash_audit_event(
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action.value,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
        )

        audit_event = AuditEvent(
            seq=seq,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action.value,
            actor_id=actor_id,
            occurred_at=self.clock.now(),
            payload=payload_data,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
            hash=event_hash,
        )
        self.session.add(audit_event)
        self.session.flush()

        logger.info(
            "audit_event_created",
            extra={
                "seq": seq,
                "action": action.value,
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "hash": event_hash,
            },
        )
        return audit_event

    # -------------------------------------------------------------------------
    # Crop batch
    # -------------------------------------------------------------------------

    def record_crop_batch_created(
        self, batch_id: UUID, actor_id: UUID, batch_code: str, farm_id: UUID, crop_type: str
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="CropBatch",
            entity_id=batch_id,
            action=AuditAction.CROP_BATCH_CREATED,
            actor_id=actor_id,
            payload={"batch_code": batch_code, "farm_id": farm_id, "crop_type": crop_type},
        )

    def record_status_change(
        self,
        batch_id: UUID,
        actor_id: UUID,
        previous_status: str,
        new_status: str,
        action: AuditAction = AuditAction.CROP_STATUS_UPDATED,
        **details: Any,
    ) -> AuditEvent:
        """Every batch status change records its previous and new status."""
        payload = {"previous_status": previous_status, "new_status": new_status}
        payload.update({k: v for k, v in details.items() if v is not None})
        return self._create_audit_event(
            entity_type="CropBatch",
            entity_id=batch_id,
            action=action,
            actor_id=actor_id,
            payload=payload,
        )

    def record_transport_requested(
        self, batch_id: UUID, actor_id: UUID, warehouse_id: UUID, coordinator_id: UUID
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="CropBatch",
            entity_id=batch_id,
            action=AuditAction.TRANSPORT_REQUESTED,
            actor_id=actor_id,
            payload={"warehouse_id": warehouse_id, "coordinator_id": coordinator_id},
        )

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    def record_transport_scheduled(
        self,
        task_id: UUID,
        actor_id: UUID,
        batch_id: UUID,
        driver_id: UUID,
        vehicle_id: UUID,
        scheduled_date: Any,
        previous_batch_status: str,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="TransportTask",
            entity_id=task_id,
            action=AuditAction.TRANSPORT_SCHEDULED,
            actor_id=actor_id,
            payload={
                "batch_id": batch_id,
                "driver_id": driver_id,
                "vehicle_id": vehicle_id,
                "scheduled_date": scheduled_date,
                "previous_status": previous_batch_status,
                "new_status": "SHIPPED",
            },
        )

    def record_driver_assigned(
        self, task_id: UUID, actor_id: UUID, driver_id: UUID, vehicle_id: UUID, scheduled_date: Any
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="TransportTask",
            entity_id=task_id,
            action=AuditAction.DRIVER_ASSIGNED,
            actor_id=actor_id,
            payload={
                "driver_id": driver_id,
                "vehicle_id": vehicle_id,
                "scheduled_date": scheduled_date,
            },
        )

    def record_task_status_change(
        self,
        task_id: UUID,
        actor_id: UUID,
        previous_status: str,
        new_status: str,
        action: AuditAction = AuditAction.TRANSPORT_STATUS_UPDATED,
        **details: Any,
    ) -> AuditEvent:
        payload = {"previous_status": previous_status, "new_status": new_status}
        payload.update({k: v for k, v in details.items() if v is not None})
        return self._create_audit_event(
            entity_type="TransportTask",
            entity_id=task_id,
            action=action,
            actor_id=actor_id,
            payload=payload,
        )

    def record_issue_reported(
        self, issue_id: UUID, actor_id: UUID, task_id: UUID, issue_type: str, task_delayed: bool
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="TransportIssue",
            entity_id=issue_id,
            action=AuditAction.ISSUE_REPORTED,
            actor_id=actor_id,
            payload={"task_id": task_id, "issue_type": issue_type, "task_delayed": task_delayed},
        )

    def record_issue_updated(
        self, issue_id: UUID, actor_id: UUID, previous_status: str, new_status: str
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="TransportIssue",
            entity_id=issue_id,
            action=AuditAction.ISSUE_UPDATED,
            actor_id=actor_id,
            payload={"previous_status": previous_status, "new_status": new_status},
        )

    # -------------------------------------------------------------------------
    # Verification
    # -------------------------------------------------------------------------

    def validate_chain(self) -> bool:
        """
        Validate the entire audit chain.

        Raises:
            AuditChainBrokenError: If chain validation fails at any point.
        """
        events = self.session.execute(
            select(AuditEvent).order_by(AuditEvent.seq)
        ).scalars().all()

        if not events:
            return True

        if events[0].prev_hash is not None:
            logger.critical("audit_chain_broken", extra={"audit_event_id": str(events[0].id)})
            raise AuditChainBrokenError(str(events[0].id), "None", events[0].prev_hash)

        for i, event in enumerate(events):
            expected_hash = hash_audit_event(
                entity_type=event.entity_type,
                entity_id=str(event.entity_id),
                action=str(event.action),
                payload_hash=event.payload_hash,
                prev_hash=event.prev_hash,
            )
            if event.hash != expected_hash:
                logger.critical("audit_chain_broken", extra={"audit_event_id": str(event.id)})
                raise AuditChainBrokenError(str(event.id), expected_hash, event.hash)

            if i > 0 and event.prev_hash != events[i - 1].hash:
                logger.critical("audit_chain_broken", extra={"audit_event_id": str(event.id)})
                raise AuditChainBrokenError(
                    str(event.id), events[i - 1].hash, event.prev_hash or "None"
                )

        return True

    def get_trace(self, entity_type: str, entity_id: UUID) -> AuditTrace:
        events = self.session.execute(
            select(AuditEvent)
            .where(AuditEvent.entity_type == entity_type, AuditEvent.entity_id == entity_id)
            .order_by(AuditEvent.seq)
        ).scalars().all()
        return AuditTrace(
            entity_type=entity_type,
            entity_id=entity_id,
            entries=tuple(
                AuditTraceEntry(
                    seq=e.seq,
                    action=str(e.action),
                    occurred_at=e.occurred_at,
                    actor_id=e.actor_id,
                    payload=e.payload or {},
                    hash=e.hash,
                )
                for e in events
            ),
        )
