"""
Module: coop_kernel.selectors.base
Responsibility: Abstract base class for read-only query selectors.  Selectors
    are the query half of the ledger: find-by-id, find-by-status-set,
    payments-in-range and aggregate sums, returned as DTOs or plain values.
Architecture position: Kernel > Selectors.  May import from db/, domain/ and
    models/.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only: selectors never add, delete, flush or commit.
    - Selectors return DTOs or computed values, never live ORM instances.
    - The caller owns the session and its transaction.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from coop_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Contract:
        Accepts a Session from the caller, performs read-only queries and
        returns DTOs or computed results.

    Non-goals:
        - Does NOT define any query methods itself.
    """

    def __init__(self, session: Session):
        self.session = session
