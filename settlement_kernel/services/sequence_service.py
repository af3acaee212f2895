"""
Gap-free counters for audit event ordering.

Each named counter is one row in ``sequence_counters``.  Allocation locks
that row (``SELECT ... FOR UPDATE`` where the dialect supports it) and
bumps it inside the caller's transaction, so a rolled-back operation
hands its number back.  ``MAX(seq) + 1`` is never used.
"""

from sqlalchemy import String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from settlement_kernel.db.base import Base
from settlement_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), unique=True)
    current_value: Mapped[int] = mapped_column(default=0)


class SequenceService:
    """Allocates the next value of a named counter. Never commits."""

    AUDIT_EVENT = "audit_event"

    def __init__(self, session: Session):
        self._session = session

    def next_value(self, sequence_name: str) -> int:
        counter = self._lock(sequence_name) or self._create(sequence_name)
        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def _lock(self, sequence_name: str) -> SequenceCounter | None:
        # populate_existing: re-read a counter already in the identity map
        return self._session.scalars(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).one_or_none()

    def _create(self, sequence_name: str) -> SequenceCounter:
        """Insert the counter at zero; if another transaction won the race, lock theirs."""
        savepoint = self._session.begin_nested()
        try:
            counter = SequenceCounter(name=sequence_name, current_value=0)
            self._session.add(counter)
            self._session.flush()
        except IntegrityError:
            savepoint.rollback()
            logger.debug("sequence_counter_race_retry", extra={"sequence_name": sequence_name})
            counter = self._lock(sequence_name)
            if counter is None:
                raise
            return counter
        savepoint.commit()
        return counter
