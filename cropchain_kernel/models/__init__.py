"""ORM models. Importing this package registers every table on Base.metadata."""

from cropchain_kernel.models.audit_event import AuditAction, AuditEvent
from cropchain_kernel.models.crop_batch import CropBatch, Farm
from cropchain_kernel.models.notification import Notification
from cropchain_kernel.models.resources import Driver, Vehicle
from cropchain_kernel.models.transport import TransportIssue, TransportTask
from cropchain_kernel.models.warehouse import Profile, Warehouse
from cropchain_kernel.services.sequence_service import SequenceCounter

__all__ = [
    "AuditAction",
    "AuditEvent",
    "CropBatch",
    "Driver",
    "Farm",
    "Notification",
    "Profile",
    "SequenceCounter",
    "TransportIssue",
    "TransportTask",
    "Vehicle",
    "Warehouse",
]
