"""Database utilities for the Streamlist storage substrate."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import Engine, MetaData, create_engine, inspect
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker


class Base(DeclarativeBase):
    """Declarative base with consistent naming conventions."""

    metadata = MetaData()


class Database:
    """Thin wrapper managing the SQLAlchemy engine and sessions."""

    def __init__(self, database_url: str):
        connect_args: dict[str, object] = {}
        if database_url.startswith("sqlite"):
            # Sync routes reach the pool from FastAPI's worker threads.
            connect_args["check_same_thread"] = False
        self._engine: Engine = create_engine(
            database_url, future=True, connect_args=connect_args
        )
        self.session_factory: sessionmaker[Session] = sessionmaker(
            self._engine, expire_on_commit=False
        )

    @property
    def engine(self) -> Engine:
        return self._engine

    def create_all(self) -> None:
        """Create database tables if they do not yet exist."""

        # Registers the mapped tables on ``Base.metadata``.
        from . import db_models  # noqa: F401

        with self._engine.begin() as connection:
            Base.metadata.create_all(connection)

    def table_names(self) -> list[str]:
        return inspect(self._engine).get_table_names()

    def dispose(self) -> None:
        """Dispose of the underlying database engine."""

        self._engine.dispose()

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Provide a transactional scope around a series of operations."""

        with self.session_factory() as session:
            yield session
