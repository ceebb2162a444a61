from __future__ import annotations

import logging
from collections.abc import Generator

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

logger = logging.getLogger(__name__)

Base = declarative_base()


def _connect_args(database_url: str) -> dict[str, object]:
    if database_url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


class Database:
    """Owns the engine and session factory for one application instance."""

    def __init__(self, database_url: str) -> None:
        logger.info("Configuring database engine")
        logger.debug("Database URL: %s", database_url)
        self.engine: Engine = create_engine(database_url, connect_args=_connect_args(database_url), future=True)
        self.session_factory: sessionmaker[Session] = sessionmaker(
            bind=self.engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True
        )

    def init_schema(self) -> None:
        from vidtube.models import subscription, user, video, watch_history  # noqa: F401

        logger.info("Creating database tables if they do not exist")
        Base.metadata.create_all(bind=self.engine)
        logger.info("Database schema initialization complete")

    def session(self) -> Session:
        return self.session_factory()

    def dispose(self) -> None:
        logger.info("Disposing database engine")
        self.engine.dispose()


def get_db(request: Request) -> Generator[Session, None, None]:
    database: Database | None = getattr(request.app.state, "database", None)
    if database is None:
        raise RuntimeError("Database is not initialized")
    db = database.session()
    logger.debug("Database session opened")
    try:
        yield db
    finally:
        db.close()
        logger.debug("Database session closed")
