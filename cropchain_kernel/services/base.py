"""
BaseService -- abstract base for all kernel services.

Every service receives a SQLAlchemy ``Session`` from its caller and persists
through ``session.flush()`` only.  The command facade owns commit and
rollback, which is what makes "create task + flip batch + mark resources
busy + audit" a single atomic unit.
"""

from abc import ABC

from sqlalchemy.orm import Session

from cropchain_kernel.domain.clock import Clock, SystemClock


class BaseService(ABC):
    """
    Abstract base class for all kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
