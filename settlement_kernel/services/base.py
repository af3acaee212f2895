"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every write-side service.  Concrete services receive a SQLAlchemy
    ``Session`` and use ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's
      transaction and never commit or roll back themselves.  The
      ``SettlementEngine`` wraps each public operation in a SAVEPOINT and
      the outermost caller (``session_scope()`` or a test fixture) owns
      commit/rollback.
"""

from abc import ABC

from sqlalchemy.orm import Session

from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.domain.policy import DEFAULT_LEDGER_POLICY, LedgerPolicy


class BaseService(ABC):
    """
    Abstract base class for kernel services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide query-only read models -- those belong in
          ``settlement_kernel/selectors/``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: LedgerPolicy | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.policy = policy or DEFAULT_LEDGER_POLICY
