"""
Crop batch and transport task lifecycles.

The transition tables here are the only source of truth for legal status
changes.  Services look transitions up before issuing any UPDATE.
"""

from cropchain_kernel.domain.roles import PROCUREMENT_ROLES, Role
from cropchain_kernel.domain.statuses import CropBatchStatus as B
from cropchain_kernel.domain.statuses import TransportTaskStatus as T
from cropchain_kernel.domain.workflow import Guard, Transition, Workflow
from cropchain_kernel.logging_config import get_logger

logger = get_logger("domain.lifecycles")

# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

HAS_DESTINATION_WAREHOUSE = Guard(
    name="has_destination_warehouse",
    description="Procurement has assigned a destination warehouse",
)

HAS_DELIVERED_TASK = Guard(
    name="has_delivered_task",
    description="A transport task for the batch has been confirmed delivered",
)

_PROCUREMENT = tuple(sorted(PROCUREMENT_ROLES, key=lambda r: r.value))
_COORDINATOR = (Role.TRANSPORT_COORDINATOR,)
_WAREHOUSE = (Role.WAREHOUSE_MANAGER,)

# -----------------------------------------------------------------------------
# Crop batch
# -----------------------------------------------------------------------------

CROP_BATCH_WORKFLOW = Workflow(
    name="crop_batch",
    description="Crop batch from planting to warehouse storage",
    initial_state=B.PLANTED.value,
    states=tuple(s.value for s in B),
    transitions=(
        Transition(B.PLANTED, B.GROWING, action="start_growing"),
        Transition(B.GROWING, B.READY_FOR_HARVEST, action="mark_ready_for_harvest"),
        Transition(B.READY_FOR_HARVEST, B.HARVESTED, action="harvest"),
        Transition(B.HARVESTED, B.PENDING_APPROVAL, action="submit_for_approval"),
        Transition(B.HARVESTED, B.PROCESSED, action="approve", roles=_PROCUREMENT),
        Transition(B.PENDING_APPROVAL, B.PROCESSED, action="approve", roles=_PROCUREMENT),
        Transition(B.HARVESTED, B.READY_FOR_HARVEST, action="reject", roles=_PROCUREMENT),
        Transition(B.PENDING_APPROVAL, B.READY_FOR_HARVEST, action="reject", roles=_PROCUREMENT),
        Transition(B.PROCESSED, B.READY_FOR_PACKAGING, action="queue_for_packaging"),
        Transition(B.READY_FOR_PACKAGING, B.PACKAGING, action="start_packaging"),
        Transition(B.PACKAGING, B.PACKAGED, action="finish_packaging"),
        Transition(
            B.PROCESSED, B.SHIPPED, action="ship",
            guard=HAS_DESTINATION_WAREHOUSE, roles=_COORDINATOR,
        ),
        Transition(
            B.PACKAGED, B.SHIPPED, action="ship",
            guard=HAS_DESTINATION_WAREHOUSE, roles=_COORDINATOR,
        ),
        Transition(
            B.SHIPPED, B.RECEIVED, action="receive",
            guard=HAS_DELIVERED_TASK, roles=_WAREHOUSE,
        ),
        Transition(B.SHIPPED, B.PROCESSED, action="return_from_transport", roles=_COORDINATOR),
        Transition(B.SHIPPED, B.PACKAGED, action="return_from_transport", roles=_COORDINATOR),
        Transition(B.RECEIVED, B.STORED, action="store", roles=_WAREHOUSE),
    ),
    terminal_states=(B.STORED.value,),
)

logger.info(
    "crop_batch_workflow_registered",
    extra={
        "workflow_name": CROP_BATCH_WORKFLOW.name,
        "state_count": len(CROP_BATCH_WORKFLOW.states),
        "transition_count": len(CROP_BATCH_WORKFLOW.transitions),
    },
)

# Once a batch reaches one of these, the field stage has handed it off.
FIELD_HANDOFF_STATUSES: frozenset[B] = frozenset(
    {B.PACKAGED, B.SHIPPED, B.RECEIVED, B.STORED}
)

# -----------------------------------------------------------------------------
# Transport task
# -----------------------------------------------------------------------------

TRANSPORT_TASK_WORKFLOW = Workflow(
    name="transport_task",
    description="One driver and vehicle moving one crop batch",
    initial_state=T.SCHEDULED.value,
    states=tuple(s.value for s in T),
    transitions=(
        Transition(T.SCHEDULED, T.IN_TRANSIT, action="pick_up"),
        Transition(T.SCHEDULED, T.DELAYED, action="delay"),
        Transition(T.SCHEDULED, T.CANCELLED, action="cancel"),
        Transition(T.IN_TRANSIT, T.DELIVERED, action="deliver"),
        Transition(T.IN_TRANSIT, T.DELAYED, action="delay"),
        Transition(T.IN_TRANSIT, T.CANCELLED, action="cancel"),
        Transition(T.DELAYED, T.IN_TRANSIT, action="resume"),
        Transition(T.DELAYED, T.CANCELLED, action="cancel"),
    ),
    terminal_states=(T.DELIVERED.value, T.CANCELLED.value),
)

logger.info(
    "transport_task_workflow_registered",
    extra={
        "workflow_name": TRANSPORT_TASK_WORKFLOW.name,
        "state_count": len(TRANSPORT_TASK_WORKFLOW.states),
        "transition_count": len(TRANSPORT_TASK_WORKFLOW.transitions),
    },
)
