"""Database helpers for ParlayLab Golf."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from parlaygolf.config import get_settings
from parlaygolf.db.models import Base

settings = get_settings()

__all__ = ["engine", "SessionLocal", "build_engine", "get_session", "init_db"]


def build_engine(url: str) -> Engine:
    """Create an engine; SQLite connections are shared across settlement workers."""

    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, future=True, echo=False, connect_args=connect_args)


engine = build_engine(str(settings.database_url))
SessionLocal = sessionmaker(bind=engine, class_=Session, expire_on_commit=False, autoflush=False)


@contextmanager
def get_session(factory: sessionmaker[Session] | None = None) -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""

    session = (factory or SessionLocal)()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(bind: Engine | None = None) -> None:
    """Create any missing tables."""

    Base.metadata.create_all(bind or engine)
