from contextlib import contextmanager
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker, DeclarativeBase

from scorebook.config import settings

DATABASE_URL = settings.DATABASE_URL


def enable_sqlite_write_locking(sqlite_engine: Engine) -> Engine:
    """
    Open every SQLite transaction with BEGIN IMMEDIATE.

    SQLite ignores FOR UPDATE, so the write lock is taken up front instead and
    a check-then-write sequence runs alone. Other connections wait on the busy
    timeout.
    """
    @event.listens_for(sqlite_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(sqlite_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return sqlite_engine


_connect_args = {}
if DATABASE_URL.startswith("sqlite"):
    # Busy timeout, so concurrent scorers wait on the write lock instead of failing
    _connect_args = {"timeout": settings.BALL_TRANSACTION_TIMEOUT_SECONDS, "check_same_thread": False}

engine = create_engine(DATABASE_URL, echo=False, connect_args=_connect_args)
if engine.dialect.name == "sqlite":
    enable_sqlite_write_locking(engine)
SessionLocal = sessionmaker(bind=engine)


class Base(DeclarativeBase):
    pass


def init_db():
    """Create all tables"""
    from scorebook.models import user, team, match, approval, ball, audit, stats  # noqa
    Base.metadata.create_all(bind=engine)


def get_session():
    """Get a database session - for direct use (caller must close)"""
    return SessionLocal()


def get_db():
    """FastAPI dependency - yields session and closes after request"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(session: Session, timeout_seconds: float = None):
    """
    Scoped unit of work on an existing session.

    Everything done on the session inside the block commits together on exit,
    or rolls back if anything raises.
    """
    try:
        if timeout_seconds and session.get_bind().dialect.name == "postgresql":
            session.execute(text(f"SET LOCAL statement_timeout = {int(timeout_seconds * 1000)}"))
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
