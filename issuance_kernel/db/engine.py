"""
Module: issuance_kernel.db.engine
Responsibility: Build a session factory for the persistent audit log.
Architecture position: Kernel > DB.  May import from db/base.py and models/.

Invariants enforced:
    - No module-level engine: each call returns a factory bound to its own
      engine, and callers hand that factory to ``SqlAuditStore``.
    - The audit tables exist before the factory is returned.
    - In-memory SQLite URLs share a single connection (StaticPool) so every
      session from one factory sees the same database.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from issuance_kernel.db.base import Base
from issuance_kernel.logging_config import get_logger

logger = get_logger("db.engine")


def _is_memory_sqlite(database_url: str) -> bool:
    return database_url.startswith("sqlite") and (
        database_url in ("sqlite://", "sqlite:///:memory:")
        or "mode=memory" in database_url
    )


def create_session_factory(database_url: str, echo: bool = False) -> sessionmaker[Session]:
    """
    Open ``database_url``, create the audit tables and return a session factory.

    Sessions do not expire on commit, so entries read inside a ``with``
    block stay usable after it.  Dispose of the engine with
    ``factory.kw["bind"].dispose()`` when done.
    """
    import issuance_kernel.models  # noqa: F401  (registers tables on Base.metadata)

    kwargs: dict = {"echo": echo}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if _is_memory_sqlite(database_url):
            kwargs["poolclass"] = StaticPool

    engine = create_engine(database_url, **kwargs)
    Base.metadata.create_all(engine)

    logger.info("audit_database_ready", extra={
        "dialect": engine.dialect.name,
        "tables": sorted(Base.metadata.tables),
    })
    return sessionmaker(bind=engine, expire_on_commit=False)
