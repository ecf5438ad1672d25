"""Engine and session handling.

The engine is created on first use. Request handlers get a session from
`get_db`; the weekly worker opens one `session_scope` per user.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .settings import settings


class Base(DeclarativeBase):
    pass


_engine = None
_session_factory: Optional[sessionmaker] = None


def init_engine(database_url: str | None = None):
    global _engine, _session_factory
    url = database_url or settings.database_url
    options = {"pool_pre_ping": True}
    if not url.startswith("sqlite"):
        options.update(pool_size=settings.db_pool_size, max_overflow=settings.db_max_overflow)
    _engine = create_engine(url, **options)
    _session_factory = sessionmaker(autocommit=False, autoflush=False, bind=_engine)
    return _engine


def SessionLocal() -> sessionmaker:
    if _session_factory is None:
        init_engine()
    return _session_factory


@contextmanager
def session_scope(factory: Optional[Callable[[], Session]] = None) -> Iterator[Session]:
    """Session that is rolled back on error and always closed."""
    db = (factory or SessionLocal())()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_db():
    with session_scope() as db:
        yield db
