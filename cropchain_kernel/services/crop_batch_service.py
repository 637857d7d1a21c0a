"""
CropBatchService -- persistence primitives for crop batches.

Responsibility:
    Lookups, batch registration and the conditional status write.  Deciding
    whether a transition is legal is the state machine's job
    (``cropchain_services.crop_workflow``); this service only guarantees that
    the write lands on the status that was observed.

Invariants enforced:
    - Status writes are compare-and-swap: ``UPDATE ... WHERE id = :id AND
      status = :observed``.  A zero row count means another writer got there
      first and raises StaleStatusError; nothing is overwritten blindly.
    - version increments on every status write.
"""

from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select, update

from cropchain_kernel.domain.statuses import (
    ACTIVE_TASK_STATUSES,
    CropBatchStatus,
    TransportTaskStatus,
    status_value,
)
from cropchain_kernel.domain.tracking_code import (
    BATCH_CODE_PREFIX,
    format_batch_code,
    format_qr_code,
)
from cropchain_kernel.exceptions import (
    CropBatchNotFoundError,
    FarmNotFoundError,
    StaleStatusError,
)
from cropchain_kernel.logging_config import get_logger
from cropchain_kernel.models.crop_batch import CropBatch, Farm
from cropchain_kernel.models.transport import TransportTask
from cropchain_kernel.services.base import BaseService
from cropchain_kernel.services.sequence_service import SequenceService

logger = get_logger("services.crop_batch")


class CropBatchService(BaseService):

    def get(self, batch_id: UUID, lock: bool = False) -> CropBatch:
        stmt = select(CropBatch).where(CropBatch.id == batch_id)
        if lock:
            stmt = stmt.with_for_update(of=CropBatch)
        batch = self.session.execute(stmt).unique().scalar_one_or_none()
        if batch is None:
            raise CropBatchNotFoundError(batch_id)
        return batch

    def get_active_farm(self, farm_id: UUID) -> Farm:
        farm = self.session.get(Farm, farm_id)
        if farm is None or not farm.is_active:
            raise FarmNotFoundError(farm_id)
        return farm

    def create_batch(
        self,
        farm_id: UUID,
        crop_type: str,
        quantity: Decimal,
        created_by_id: UUID,
        unit: str = "kg",
        variety: str | None = None,
        planting_date: date | None = None,
        expected_harvest: date | None = None,
        notes: str | None = None,
        code_prefix: str = BATCH_CODE_PREFIX,
    ) -> CropBatch:
        """
        Register a new batch at PLANTED.

        batch_code is ``{prefix}-{year}-{n:03d}`` from a per-year counter;
        qr_code embeds the batch code, farm and creation instant.
        """
        farm = self.get_active_farm(farm_id)
        now = self.clock.now()
        number = SequenceService(self.session).next_value(
            SequenceService.crop_batch_sequence(now.year)
        )
        batch_code = format_batch_code(now.year, number, prefix=code_prefix)

        batch = CropBatch(
            batch_code=batch_code,
            qr_code=format_qr_code(batch_code, farm.id, now),
            crop_type=crop_type,
            variety=variety,
            quantity=Decimal(str(quantity)),
            unit=unit,
            planting_date=planting_date,
            expected_harvest=expected_harvest,
            status=CropBatchStatus.PLANTED.value,
            notes=notes,
            farm_id=farm.id,
            created_by_id=created_by_id,
        )
        self.session.add(batch)
        self.session.flush()

        logger.info(
            "crop_batch_created",
            extra={"batch_id": str(batch.id), "batch_code": batch_code, "farm_id": str(farm.id)},
        )
        return batch

    def compare_and_set_status(
        self,
        batch: CropBatch,
        expected: CropBatchStatus,
        new: CropBatchStatus,
        actor_id: UUID,
        **coupled: Any,
    ) -> CropBatch:
        """
        Move batch from expected to new in one conditional UPDATE.

        ``coupled`` carries status-coupled columns (actual_harvest, notes,
        warehouse_id, ...) written in the same statement.

        Raises:
            StaleStatusError: the row is no longer at ``expected``.
        """
        result = self.session.execute(
            update(CropBatch)
            .where(CropBatch.id == batch.id, CropBatch.status == expected.value)
            .values(
                status=new.value,
                version=CropBatch.version + 1,
                updated_by_id=actor_id,
                **coupled,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                "batch_status_cas_miss",
                extra={
                    "batch_id": str(batch.id),
                    "expected_status": expected.value,
                    "new_status": new.value,
                },
            )
            raise StaleStatusError("CropBatch", batch.id, expected.value, new.value)

        self.session.refresh(batch)
        return batch

    def update_fields(self, batch: CropBatch, actor_id: UUID, **fields: Any) -> CropBatch:
        """Write non-status fields, still keyed on the observed status."""
        result = self.session.execute(
            update(CropBatch)
            .where(CropBatch.id == batch.id, CropBatch.status == status_value(batch.status))
            .values(updated_by_id=actor_id, version=CropBatch.version + 1, **fields)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = status_value(batch.status)
            raise StaleStatusError("CropBatch", batch.id, current, current)
        self.session.refresh(batch)
        return batch

    def active_task(self, batch_id: UUID) -> TransportTask | None:
        return self.session.execute(
            select(TransportTask)
            .where(
                TransportTask.crop_batch_id == batch_id,
                TransportTask.status.in_([s.value for s in ACTIVE_TASK_STATUSES]),
            )
            .limit(1)
        ).unique().scalar_one_or_none()

    def has_delivered_task(self, batch_id: UUID) -> bool:
        return self.session.execute(
            select(TransportTask.id)
            .where(
                TransportTask.crop_batch_id == batch_id,
                TransportTask.status == TransportTaskStatus.DELIVERED.value,
            )
            .limit(1)
        ).first() is not None
