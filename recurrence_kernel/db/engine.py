"""
Process-wide engine and session factory, plus the unit-of-work scope.

``init_engine_from_url()`` is called once by the entrypoint (the CLI, an
application factory).  Services never open sessions themselves: they receive
one and only flush, and ``session_scope()`` decides commit or rollback.

Backends:
    - PostgreSQL (production) runs at READ COMMITTED; services take
      ``SELECT ... FOR UPDATE`` locks on the templates they mutate.
    - SQLite (tests, local tooling) ignores FOR UPDATE.  Its engines get
      ``enable_sqlite_savepoints`` so atomic batches can use SAVEPOINT.
"""

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from recurrence_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def enable_sqlite_savepoints(engine: Engine) -> None:
    """Let SQLAlchemy emit BEGIN itself on a pysqlite engine.

    pysqlite's implicit transaction handling breaks SAVEPOINT, which every
    atomic batch relies on.
    """

    @event.listens_for(engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")


def init_engine_from_url(database_url: str, echo: bool = False) -> Engine:
    """Create the module-level engine and session factory for ``database_url``."""
    global _engine, _session_factory

    options: dict = {"echo": echo, "pool_pre_ping": True}
    if database_url.startswith("postgresql"):
        options.update(pool_size=10, max_overflow=5, isolation_level="READ COMMITTED")

    engine = create_engine(database_url, **options)
    if engine.dialect.name == "sqlite":
        enable_sqlite_savepoints(engine)

    _engine = engine
    _session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    configure_logging()
    logger.info("engine_initialized", extra={"dialect": engine.dialect.name})
    return engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session() -> Session:
    if _session_factory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _session_factory()


@contextmanager
def session_scope() -> Iterator[Session]:
    """One unit of work: commit when the block exits cleanly, else roll back.

    Usage::

        with session_scope() as session:
            MaterializationService(session).generate_all(user_id)
    """
    session = get_session()
    try:
        yield session
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    else:
        session.commit()
        logger.debug("transaction_committed")
    finally:
        session.close()


def create_tables() -> None:
    """Create any missing kernel tables on the initialized engine."""
    import recurrence_kernel.models  # noqa: F401  (registers tables)
    from recurrence_kernel.db.base import Base

    Base.metadata.create_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None
