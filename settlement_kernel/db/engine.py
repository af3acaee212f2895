"""
Engine construction and transaction scope.

``build_engine`` is pure: tests and tools call it directly.
``init_engine_from_url`` installs a process-wide engine for hosts that
prefer ``session_scope()``.

PostgreSQL runs at READ COMMITTED; correctness comes from row version
checks and ``FOR UPDATE`` on the audit counter, not from isolation level.
SQLite is supported for tests and local runs; its driver is switched to
explicit ``BEGIN`` so that the SAVEPOINT around every engine operation
really rolls back.
"""

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from settlement_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

POSTGRES_POOL_DEFAULTS = {
    "pool_size": 20,
    "max_overflow": 10,
    "pool_pre_ping": True,
    "pool_timeout": 30,
    "pool_recycle": 1800,
}

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def _sqlite_explicit_begin(engine: Engine) -> None:

    @event.listens_for(engine, "connect")
    def _autocommit_driver(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(database_url: str, echo: bool = False, **pool_options) -> Engine:
    """
    Engine for ``database_url``.

    An in-memory SQLite database lives on a single connection, so it gets
    a ``StaticPool`` that every session shares.
    """
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        options = {**POSTGRES_POOL_DEFAULTS, **pool_options}
        return create_engine(url, echo=echo, isolation_level="READ COMMITTED", **options)

    in_memory = url.database in (None, "", ":memory:")
    engine = create_engine(
        url,
        echo=echo,
        connect_args={"check_same_thread": False},
        **({"poolclass": StaticPool} if in_memory else {}),
    )
    _sqlite_explicit_begin(engine)
    return engine


def init_engine_from_url(database_url: str, echo: bool = False, **pool_options) -> Engine:
    """Build the process-wide engine, turn on logging and the immutability guards."""
    global _engine, _session_factory

    from settlement_kernel.db.immutability import register_immutability_listeners

    engine = _engine = build_engine(database_url, echo=echo, **pool_options)
    _session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    configure_logging()
    register_immutability_listeners()
    logger.info("engine_initialized", extra={"dialect": engine.dialect.name})
    return engine


def get_session() -> Session:
    if _session_factory is None:
        raise RuntimeError("no engine; call init_engine_from_url() first")
    return _session_factory()


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("no engine; call init_engine_from_url() first")
    return _engine


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    One outer transaction: commit on success, roll back and re-raise on error.

        with session_scope() as session:
            SettlementEngine(session, identity).finalize(director, pay_app_id)
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def _metadata():
    from settlement_kernel.db.base import Base
    import settlement_kernel.models  # noqa: F401  registers the tables
    import settlement_kernel.services.sequence_service  # noqa: F401

    return Base.metadata


def create_tables(engine: Engine | None = None) -> None:
    _metadata().create_all(engine or get_engine())


def drop_tables(engine: Engine | None = None) -> None:
    _metadata().drop_all(engine or get_engine())
