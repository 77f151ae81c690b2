from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from .config import Settings


def create_db_engine(database_url: str) -> Engine:
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, echo=False)
    kwargs = {"connect_args": {"check_same_thread": False}}
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        # one shared connection, otherwise every checkout sees an empty database
        kwargs["poolclass"] = StaticPool
    return create_engine(database_url, echo=False, **kwargs)


_settings = Settings()
engine = create_db_engine(_settings.database_url)


def init_db(bind: Optional[Engine] = None) -> None:
    """Create tables if they do not exist."""
    from . import models  # noqa: F401  (registers tables on SQLModel.metadata)

    SQLModel.metadata.create_all(bind or engine)


@contextmanager
def get_session(bind: Optional[Engine] = None) -> Iterator[Session]:
    with Session(bind or engine) as session:
        yield session
