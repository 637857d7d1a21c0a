"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Provides strictly increasing numbers for audit events and for the per-year
crop batch codes (``CB-2025-001``).  A dedicated counter table with
row-level locking (``SELECT ... FOR UPDATE``) keeps allocation unique under
concurrent access; max-plus-one over the data tables is never used.

The increment is only visible after the caller's transaction commits, so a
rolled-back batch creation does not burn a batch number.
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.orm import Mapped, Session, mapped_column

from cropchain_kernel.db.base import Base
from cropchain_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """Each row is a named sequence with its current value."""

    __tablename__ = "sequence_counters"

    # e.g. "audit_event", "crop_batch:2025"
    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Non-goals:
        - Does NOT call ``session.commit()``; the caller controls boundaries.
    """

    AUDIT_EVENT = "audit_event"
    CROP_BATCH_PREFIX = "crop_batch"

    def __init__(self, session: Session):
        self._session = session

    @classmethod
    def crop_batch_sequence(cls, year: int) -> str:
        return f"{cls.CROP_BATCH_PREFIX}:{year}"

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """
        Lock the named counter (creating it on first use), increment it and
        return the new value.

        Postconditions:
            - Returns an integer > 0 strictly greater than any value
              previously returned for this sequence name.
            - The counter row stays locked until the transaction completes.
        """
        counter = self._locked_counter(sequence_name)

        if counter is None:
            # First use.  A concurrent first use fails the unique constraint
            # and rolls back the whole command.
            counter = SequenceCounter(name=sequence_name, current_value=0)
            self._session.add(counter)

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        counter = self._session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None
