"""
cropchain_services.crop_workflow -- Crop batch state machine.

Responsibility:
    The only path by which a crop batch changes status.  Applies, in order:
    the Role Gate, the custody and reserved-status checks, the transition
    table, edge role restrictions, guards, and finally the compare-and-swap
    write.  Each successful transition is audited and leaves a
    BatchStatusChanged event for fan-out after commit.

Architecture position:
    Services layer.  Composes CropBatchService (persistence) and
    AuditorService over one caller-owned session.  Never commits.

Invariants enforced:
    - A batch only moves along an edge of CROP_BATCH_WORKFLOW; no skips.
    - SHIPPED needs a destination warehouse; RECEIVED needs a DELIVERED task.
    - Every transition writes exactly one audit record carrying the previous
      and new status.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy.orm import Session

from cropchain_kernel.domain.clock import Clock, SystemClock
from cropchain_kernel.domain.events import (
    BatchStatusChanged,
    DomainEventBuffer,
    TransportRequested,
)
from cropchain_kernel.domain.lifecycles import (
    CROP_BATCH_WORKFLOW,
    HAS_DELIVERED_TASK,
    HAS_DESTINATION_WAREHOUSE,
)
from cropchain_kernel.domain.roles import Actor, Role
from cropchain_kernel.domain.statuses import CropBatchStatus, status_value
from cropchain_kernel.domain.tracking_code import BATCH_CODE_PREFIX, matches_batch
from cropchain_kernel.domain.workflow import Transition
from cropchain_kernel.exceptions import (
    ActiveTaskExistsError,
    BatchNotEligibleError,
    CodeMismatchError,
    InvalidStateError,
    InvalidTransitionError,
    MissingPrerequisiteError,
    ProfileNotFoundError,
    UnauthorizedError,
    ValidationError,
    WarehouseNotFoundError,
)
from cropchain_kernel.logging_config import get_logger
from cropchain_kernel.models.audit_event import AuditAction
from cropchain_kernel.models.crop_batch import CropBatch
from cropchain_kernel.models.warehouse import Profile, Warehouse
from cropchain_kernel.services.auditor_service import AuditorService
from cropchain_kernel.services.crop_batch_service import CropBatchService
from cropchain_services import role_gate

logger = get_logger("services.crop_workflow")

DEFAULT_SCHEDULABLE_STATUSES: tuple[CropBatchStatus, ...] = (
    CropBatchStatus.PROCESSED,
    CropBatchStatus.PACKAGED,
)

REVIEW_DECISIONS: dict[str, CropBatchStatus] = {
    "APPROVE": CropBatchStatus.PROCESSED,
    "REJECT": CropBatchStatus.READY_FOR_HARVEST,
}

_PACKAGING_TARGETS = frozenset({CropBatchStatus.PACKAGING, CropBatchStatus.PACKAGED})


def _coerce_status(batch_id: UUID, current: str, requested: Any) -> CropBatchStatus:
    try:
        return CropBatchStatus(status_value(requested))
    except ValueError:
        raise InvalidTransitionError("CropBatch", batch_id, current, str(requested)) from None


class CropBatchStateMachine:
    """
    Guarded transitions over crop batches.

    Usage:
        machine = CropBatchStateMachine(session, clock, events)
        machine.transition(batch_id, CropBatchStatus.GROWING, actor)
        # caller commits, then dispatches events.drain()
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        events: DomainEventBuffer | None = None,
        schedulable_statuses: Iterable[CropBatchStatus] = DEFAULT_SCHEDULABLE_STATUSES,
        code_prefix: str = BATCH_CODE_PREFIX,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.events = events if events is not None else DomainEventBuffer()
        self.schedulable_statuses = tuple(
            CropBatchStatus(status_value(s)) for s in schedulable_statuses
        )
        self.code_prefix = code_prefix
        self.batches = CropBatchService(session, self.clock)
        self.auditor = AuditorService(session, self.clock)

    # -------------------------------------------------------------------------
    # Core transition
    # -------------------------------------------------------------------------

    def transition(
        self,
        batch_id: UUID,
        requested_status: CropBatchStatus | str,
        actor: Actor,
        notes: str | None = None,
        quantity: Decimal | str | None = None,
    ) -> CropBatch:
        """Generic status update for field agents and procurement."""
        role_gate.check_role(actor, role_gate.UPDATE_CROP_STATUS)
        batch = self.batches.get(batch_id, lock=True)
        coupled: dict[str, Any] = {}
        if quantity is not None:
            coupled["quantity"] = self._positive_quantity(quantity)
        return self.apply(
            batch,
            requested_status,
            actor,
            action=role_gate.UPDATE_CROP_STATUS,
            notes=notes,
            **coupled,
        )

    def apply(
        self,
        batch: CropBatch,
        requested_status: CropBatchStatus | str,
        actor: Actor,
        action: str,
        notes: str | None = None,
        audit_action: AuditAction = AuditAction.CROP_STATUS_UPDATED,
        audit_details: dict[str, Any] | None = None,
        **coupled: Any,
    ) -> CropBatch:
        """
        Move an already loaded (and locked) batch to requested_status.

        Raises:
            UnauthorizedError / CustodyHandoffError: role checks.
            RoleReservedStatusError: target belongs to another role.
            InvalidTransitionError: not a successor, or edge not open to role.
            MissingPrerequisiteError: guard not satisfied.
            StaleStatusError: batch changed status concurrently.
        """
        current = batch.current_status
        requested = _coerce_status(batch.id, current.value, requested_status)

        role_gate.check_transition(actor, action, batch.id, current, requested)

        transition = CROP_BATCH_WORKFLOW.find_transition(current.value, requested.value)
        if transition is None or not transition.permits(actor.role):
            logger.info(
                "batch_transition_rejected",
                extra={
                    "batch_id": str(batch.id),
                    "from_status": current.value,
                    "to_status": requested.value,
                },
            )
            raise InvalidTransitionError("CropBatch", batch.id, current.value, requested.value)

        self._check_guard(transition, batch)

        if requested == CropBatchStatus.HARVESTED and "actual_harvest" not in coupled:
            coupled["actual_harvest"] = self.clock.now()
        if notes:
            coupled["notes"] = notes

        self.batches.compare_and_set_status(batch, current, requested, actor.user_id, **coupled)

        details = dict(audit_details or {})
        details.setdefault("notes", notes)
        self.auditor.record_status_change(
            batch.id,
            actor.user_id,
            current.value,
            requested.value,
            action=audit_action,
            **details,
        )
        self.events.record(
            BatchStatusChanged(
                batch_id=batch.id,
                batch_code=batch.batch_code,
                previous_status=current.value,
                new_status=requested.value,
                notes=notes,
                warehouse_id=batch.warehouse_id,
                actor_id=actor.user_id,
            )
        )
        logger.info(
            "batch_status_changed",
            extra={
                "batch_id": str(batch.id),
                "batch_code": batch.batch_code,
                "transition_action": transition.action,
                "previous_status": current.value,
                "new_status": requested.value,
                "version": batch.version,
            },
        )
        return batch

    def _check_guard(self, transition: Transition, batch: CropBatch) -> None:
        if transition.guard is None:
            return
        if transition.guard == HAS_DESTINATION_WAREHOUSE and batch.warehouse_id is None:
            raise MissingPrerequisiteError(
                batch.id,
                transition.to_state,
                transition.guard.name,
                f"Crop batch {batch.batch_code} has no destination warehouse",
            )
        if transition.guard == HAS_DELIVERED_TASK and not self.batches.has_delivered_task(batch.id):
            raise MissingPrerequisiteError(
                batch.id,
                transition.to_state,
                transition.guard.name,
                f"Crop batch {batch.batch_code} has no delivered transport task",
            )

    @staticmethod
    def _positive_quantity(quantity: Decimal | str | float) -> Decimal:
        try:
            value = Decimal(str(quantity))
        except InvalidOperation:
            raise ValidationError(f"Invalid quantity: {quantity!r}") from None
        if not value.is_finite() or value <= 0:
            raise ValidationError(f"Quantity must be positive, got {quantity}")
        return value

    # -------------------------------------------------------------------------
    # Field stage
    # -------------------------------------------------------------------------

    def create_batch(
        self,
        actor: Actor,
        farm_id: UUID,
        crop_type: str,
        quantity: Decimal | str,
        unit: str = "kg",
        variety: str | None = None,
        planting_date: date | None = None,
        expected_harvest: date | None = None,
        notes: str | None = None,
    ) -> CropBatch:
        role_gate.check_role(actor, role_gate.CREATE_CROP_BATCH)
        if not crop_type or not crop_type.strip():
            raise ValidationError("crop_type is required")
        if planting_date and expected_harvest and expected_harvest < planting_date:
            raise ValidationError("expected_harvest cannot precede planting_date")

        batch = self.batches.create_batch(
            farm_id=farm_id,
            crop_type=crop_type.strip(),
            quantity=self._positive_quantity(quantity),
            created_by_id=actor.user_id,
            unit=unit,
            variety=variety,
            planting_date=planting_date,
            expected_harvest=expected_harvest,
            notes=notes,
            code_prefix=self.code_prefix,
        )
        self.auditor.record_crop_batch_created(
            batch.id, actor.user_id, batch.batch_code, batch.farm_id, batch.crop_type
        )
        return batch

    # -------------------------------------------------------------------------
    # Procurement
    # -------------------------------------------------------------------------

    def review_batch(
        self,
        actor: Actor,
        batch_id: UUID,
        decision: str,
        notes: str | None = None,
    ) -> CropBatch:
        """APPROVE moves a harvested batch to PROCESSED, REJECT back to READY_FOR_HARVEST."""
        role_gate.check_role(actor, role_gate.REVIEW_BATCH)
        target = REVIEW_DECISIONS.get((decision or "").strip().upper())
        if target is None:
            raise ValidationError(
                f"Unknown review decision {decision!r}; expected one of {sorted(REVIEW_DECISIONS)}"
            )
        batch = self.batches.get(batch_id, lock=True)
        return self.apply(
            batch,
            target,
            actor,
            action=role_gate.REVIEW_BATCH,
            notes=notes,
            audit_action=AuditAction.BATCH_REVIEWED,
            audit_details={"decision": decision.strip().upper()},
        )

    def request_transport(
        self,
        actor: Actor,
        batch_id: UUID,
        warehouse_id: UUID,
        coordinator_id: UUID,
        notes: str | None = None,
    ) -> CropBatch:
        """Assign destination warehouse and coordinator; status is unchanged."""
        role_gate.check_role(actor, role_gate.REQUEST_TRANSPORT)
        batch = self.batches.get(batch_id, lock=True)
        self.ensure_schedulable(batch)

        warehouse = self.session.get(Warehouse, warehouse_id)
        if warehouse is None or not warehouse.is_active:
            raise WarehouseNotFoundError(warehouse_id)

        coordinator = self.session.get(Profile, coordinator_id)
        if coordinator is None or not coordinator.is_active:
            raise ProfileNotFoundError(coordinator_id)
        if coordinator.role != Role.TRANSPORT_COORDINATOR.value:
            raise InvalidStateError(
                "Profile",
                coordinator_id,
                coordinator.role,
                f"Profile {coordinator_id} is not a transport coordinator",
            )

        fields: dict[str, Any] = {"warehouse_id": warehouse.id, "coordinator_id": coordinator.id}
        if notes:
            fields["notes"] = notes
        self.batches.update_fields(batch, actor.user_id, **fields)

        self.auditor.record_transport_requested(
            batch.id, actor.user_id, warehouse.id, coordinator.id
        )
        self.events.record(
            TransportRequested(
                batch_id=batch.id,
                batch_code=batch.batch_code,
                warehouse_id=warehouse.id,
                warehouse_name=warehouse.name,
                warehouse_code=warehouse.code,
                coordinator_id=coordinator.id,
                actor_id=actor.user_id,
            )
        )
        logger.info(
            "transport_requested",
            extra={
                "batch_id": str(batch.id),
                "warehouse_id": str(warehouse.id),
                "coordinator_id": str(coordinator.id),
            },
        )
        return batch

    def ensure_schedulable(self, batch: CropBatch) -> None:
        """
        Raises:
            BatchNotEligibleError: status outside the schedulable set.
            ActiveTaskExistsError: batch already has an active task.
        """
        if batch.current_status not in self.schedulable_statuses:
            raise BatchNotEligibleError(
                batch.id,
                batch.current_status.value,
                tuple(s.value for s in self.schedulable_statuses),
            )
        active = self.batches.active_task(batch.id)
        if active is not None:
            raise ActiveTaskExistsError(batch.id, active.id, status_value(active.status))

    # -------------------------------------------------------------------------
    # Warehouse
    # -------------------------------------------------------------------------

    def _check_warehouse_scope(
        self, actor: Actor, batch: CropBatch, action: str, strict: bool = True
    ) -> None:
        if batch.warehouse_id is None and not strict:
            return
        if batch.warehouse_id is None or actor.warehouse_id != batch.warehouse_id:
            raise UnauthorizedError(
                actor.role.value,
                action,
                f"batch {batch.batch_code} is not destined for your warehouse",
            )

    def update_packaging(
        self,
        actor: Actor,
        batch_id: UUID,
        new_status: CropBatchStatus | str,
        notes: str | None = None,
    ) -> CropBatch:
        role_gate.check_role(actor, role_gate.UPDATE_PACKAGING)
        batch = self.batches.get(batch_id, lock=True)
        requested = _coerce_status(batch.id, batch.current_status.value, new_status)
        if requested not in _PACKAGING_TARGETS:
            raise InvalidTransitionError(
                "CropBatch", batch.id, batch.current_status.value, requested.value
            )
        self._check_warehouse_scope(actor, batch, role_gate.UPDATE_PACKAGING, strict=False)
        return self.apply(batch, requested, actor, action=role_gate.UPDATE_PACKAGING, notes=notes)

    def confirm_receipt(
        self,
        actor: Actor,
        batch_id: UUID,
        scanned_code: str | None = None,
        notes: str | None = None,
    ) -> CropBatch:
        """SHIPPED -> RECEIVED at the destination warehouse, after delivery."""
        role_gate.check_role(actor, role_gate.CONFIRM_RECEIPT)
        batch = self.batches.get(batch_id, lock=True)
        self._check_warehouse_scope(actor, batch, role_gate.CONFIRM_RECEIPT)
        if scanned_code is not None and not matches_batch(
            scanned_code, batch.batch_code, batch.qr_code
        ):
            logger.warning("receipt_code_mismatch", extra={"batch_id": str(batch.id)})
            raise CodeMismatchError(batch.id)
        return self.apply(
            batch,
            CropBatchStatus.RECEIVED,
            actor,
            action=role_gate.CONFIRM_RECEIPT,
            notes=notes,
            audit_action=AuditAction.BATCH_RECEIVED,
        )

    def store_batch(self, actor: Actor, batch_id: UUID, notes: str | None = None) -> CropBatch:
        role_gate.check_role(actor, role_gate.STORE_BATCH)
        batch = self.batches.get(batch_id, lock=True)
        self._check_warehouse_scope(actor, batch, role_gate.STORE_BATCH)
        return self.apply(
            batch,
            CropBatchStatus.STORED,
            actor,
            action=role_gate.STORE_BATCH,
            notes=notes,
            audit_action=AuditAction.BATCH_STORED,
        )
