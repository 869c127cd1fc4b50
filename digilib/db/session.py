"""Engine/session helpers for the SQL backend."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool

from digilib.core.config import Settings

Base = declarative_base()
logger = logging.getLogger(__name__)


class Database:
    """
    Owns the engine (and therefore the connection pool) for one process.

    Built once at startup, handed to request handlers through dependencies and
    disposed on shutdown.
    """

    def __init__(self, url: str, *, pool_size: int = 10, timeout_seconds: int = 10, echo: bool = False) -> None:
        url = (url or "").strip()
        if not url:
            raise RuntimeError("DATABASE_URL must be configured to use the SQL backend.")
        self.url = url
        self.engine: Engine = create_engine(url, future=True, echo=echo, **self._engine_options(url, pool_size, timeout_seconds))
        self._sessionmaker = sessionmaker(
            bind=self.engine,
            autoflush=False,
            autocommit=False,
            expire_on_commit=False,
            future=True,
        )

    @staticmethod
    def _engine_options(url: str, pool_size: int, timeout_seconds: int) -> dict:
        if url.startswith("sqlite"):
            options: dict = {"connect_args": {"check_same_thread": False, "timeout": timeout_seconds}}
            if ":memory:" in url or url in ("sqlite://", "sqlite+pysqlite://"):
                options["poolclass"] = StaticPool
            return options
        return {
            "pool_pre_ping": True,
            "pool_size": max(1, pool_size),
            "pool_timeout": timeout_seconds,
            "connect_args": {"connect_timeout": timeout_seconds},
        }

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(
            settings.database_url,
            pool_size=settings.database_pool_size,
            timeout_seconds=settings.database_timeout_seconds,
        )

    @contextmanager
    def session(self) -> Iterator[Session]:
        session: Session = self._sessionmaker()
        try:
            yield session
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def create_all(self) -> None:
        from . import models  # noqa: F401  # register tables on Base.metadata

        Base.metadata.create_all(bind=self.engine)

    def drop_all(self) -> None:
        from . import models  # noqa: F401

        Base.metadata.drop_all(bind=self.engine)

    def dispose(self) -> None:
        logger.info("Disposing database pool")
        self.engine.dispose()
