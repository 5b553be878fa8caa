# coachdesk/db.py
from contextlib import contextmanager
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

# ── Credential database ──────────────────────────
def make_engine(url: str) -> Engine:
    connect_args = {}
    if url.startswith("sqlite"):
        # the store may be touched from a worker thread
        connect_args["check_same_thread"] = False
    return create_engine(
        url,
        connect_args=connect_args,
        pool_pre_ping=True,
        future=True,
    )


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
        future=True,
    )

# ── Unit of work ─────────────────────────────────
@contextmanager
def session_scope(factory: sessionmaker):
    """One credential read or write: committed on exit, rolled back on error."""
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
