"""
cropchain_services -- Package init and public API.

Responsibility:
    Orchestration over the kernel: the Role Gate, the crop batch state
    machine, the resource scheduler, the transport lifecycle, notification
    fan-out, and the SupplyChainCommands facade that owns transaction
    boundaries.

Architecture position:
    Dependency direction:
        cropchain_services/ -> cropchain_kernel/  (allowed)
        cropchain_services/ -> cropchain_config/  (allowed)
        cropchain_kernel/   -> cropchain_services/ (FORBIDDEN)
"""

from cropchain_services.commands import CommandResult, SupplyChainCommands
from cropchain_services.crop_workflow import CropBatchStateMachine
from cropchain_services.harvest_reminders import HarvestReminderService
from cropchain_services.identity import (
    IdentityResolver,
    ProfileIdentityResolver,
    StaticIdentityResolver,
)
from cropchain_services.notification_dispatcher import NotificationDispatcher
from cropchain_services.resource_scheduler import ResourceScheduler
from cropchain_services.transport_lifecycle import TransportLifecycle

__all__ = [
    "CommandResult",
    "CropBatchStateMachine",
    "HarvestReminderService",
    "IdentityResolver",
    "NotificationDispatcher",
    "ProfileIdentityResolver",
    "ResourceScheduler",
    "StaticIdentityResolver",
    "SupplyChainCommands",
    "TransportLifecycle",
]
