"""
Domain events raised inside a transaction and dispatched after commit.

Services append events to a DomainEventBuffer while they mutate state.  The
command facade hands the buffer to the notification dispatcher only once the
primary transaction has committed, so a rolled-back transition never
notifies anyone.

Every event carries an ``event_id``; notification dedup keys are derived
from it, so redelivering the same buffer cannot notify a recipient twice.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Iterator
from uuid import UUID, uuid4


@dataclass(frozen=True)
class DomainEvent:
    event_id: UUID = field(default_factory=uuid4, kw_only=True)
    actor_id: UUID | None = field(default=None, kw_only=True)


@dataclass(frozen=True)
class BatchStatusChanged(DomainEvent):
    batch_id: UUID
    batch_code: str
    previous_status: str
    new_status: str
    notes: str | None = None
    warehouse_id: UUID | None = None


@dataclass(frozen=True)
class TransportRequested(DomainEvent):
    batch_id: UUID
    batch_code: str
    warehouse_id: UUID
    warehouse_name: str
    warehouse_code: str
    coordinator_id: UUID


@dataclass(frozen=True)
class TransportScheduled(DomainEvent):
    task_id: UUID
    batch_id: UUID
    batch_code: str
    warehouse_id: UUID
    coordinator_id: UUID
    driver_user_id: UUID | None
    scheduled_date: date
    pickup_location: str
    delivery_location: str


@dataclass(frozen=True)
class DriverAssigned(DomainEvent):
    task_id: UUID
    batch_id: UUID
    batch_code: str
    driver_user_id: UUID | None
    scheduled_date: date


@dataclass(frozen=True)
class PickupConfirmed(DomainEvent):
    task_id: UUID
    batch_id: UUID
    batch_code: str
    coordinator_id: UUID
    warehouse_id: UUID | None
    driver_name: str | None = None


@dataclass(frozen=True)
class DeliveryConfirmed(DomainEvent):
    task_id: UUID
    batch_id: UUID
    batch_code: str
    coordinator_id: UUID
    warehouse_id: UUID | None
    driver_name: str | None = None


@dataclass(frozen=True)
class IssueReported(DomainEvent):
    issue_id: UUID
    task_id: UUID
    batch_id: UUID
    batch_code: str
    coordinator_id: UUID
    issue_type: str
    description: str
    task_delayed: bool = False


@dataclass(frozen=True)
class HarvestDue(DomainEvent):
    batch_id: UUID
    batch_code: str
    recipient_id: UUID
    crop_type: str
    expected_harvest: date
    dedup_scope: str = ""


class DomainEventBuffer:
    """Ordered, per-transaction collection of domain events."""

    def __init__(self) -> None:
        self._events: list[DomainEvent] = []

    def record(self, event: DomainEvent) -> None:
        self._events.append(event)

    def drain(self) -> list[DomainEvent]:
        events, self._events = self._events, []
        return events

    def clear(self) -> None:
        self._events.clear()

    def __iter__(self) -> Iterator[DomainEvent]:
        return iter(list(self._events))

    def __len__(self) -> int:
        return len(self._events)
