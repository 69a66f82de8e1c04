"""
BaseService -- abstract base for kernel services.

Responsibility:
    Common constructor and session-handling contract for every write service
    in the kernel.  Kernel services persist through ``session.flush()`` and
    never commit or roll back.

Architecture position:
    Kernel > Services.  Module services in ``coop_modules`` compose these and
    own the transaction boundary.

Failure modes:
    - A subclass calling ``session.commit()`` breaks the all-or-nothing
      guarantee of composite operations (share deposit + loan payment, a
      dividend run paying every member).
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from coop_kernel.db.base import Base
from coop_kernel.domain.clock import Clock, SystemClock

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for kernel services.

    Contract:
        Accepts a ``Session`` and an optional ``Clock`` from the caller and
        uses ``session.flush()`` to persist changes within the caller's
        transaction.

    Non-goals:
        - Does NOT manage commit/rollback.
        - Does NOT provide read-only query methods; those live in selectors.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
