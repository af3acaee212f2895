"""
Module: settlement_kernel.selectors.base
Responsibility: Abstract base class for read-only query selectors.  Selectors
    form the query side of the kernel: dashboards, listings and reviewer
    work queues, returned as frozen DTOs.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    the pure domain math.  MUST NOT import from services/.

Invariants enforced:
    - Read-only access: selectors never add, delete, flush or commit.
    - DTO return convention: ORM instances never leave a selector.
    - Roll-up figures come from domain.ledger_math only.
"""

from abc import ABC

from sqlalchemy.orm import Session

from settlement_kernel.domain.policy import DEFAULT_LEDGER_POLICY, LedgerPolicy


class BaseSelector(ABC):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only
        queries and return DTOs.  The caller owns the session.
    """

    def __init__(self, session: Session, policy: LedgerPolicy | None = None):
        self.session = session
        self.policy = policy or DEFAULT_LEDGER_POLICY
