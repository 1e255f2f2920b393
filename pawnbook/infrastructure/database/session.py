"""Database session management and the unit-of-work boundary"""

import logging
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from pawnbook.config import settings
from pawnbook.domain.exceptions import ConflictError, DomainException, StoreUnavailable

logger = logging.getLogger(__name__)

# Connection pool: max 20 connections, recycle after 1 hour to avoid stale connections
engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,  # Verify connections before using
    pool_size=10,
    max_overflow=10,
    pool_recycle=3600,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Dependency injection for database sessions"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


class UnitOfWork:
    """
    Transaction boundary shared by every service working on one session.

    `with uow:` blocks nest; only the outermost block commits (on success) or
    rolls back (on any exception), so a composed operation such as a loan
    submission or a renewal lands atomically or not at all.

    Store errors are translated to domain errors on the way out:
    IntegrityError -> ConflictError, any other SQLAlchemyError -> StoreUnavailable.
    """

    def __init__(self, db: Session):
        self.db = db
        self._depth = 0

    def __enter__(self) -> Session:
        self._depth += 1
        return self.db

    def __exit__(self, exc_type, exc, tb) -> Optional[bool]:
        self._depth -= 1
        outermost = self._depth == 0

        if exc is None:
            if outermost:
                try:
                    self.db.commit()
                except SQLAlchemyError as commit_error:
                    self.db.rollback()
                    raise self._translate(commit_error) from commit_error
            return None

        if outermost:
            self.db.rollback()
        if isinstance(exc, SQLAlchemyError):
            raise self._translate(exc) from exc
        return None

    @property
    def active(self) -> bool:
        return self._depth > 0

    @staticmethod
    def _translate(error: SQLAlchemyError) -> DomainException:
        if isinstance(error, IntegrityError):
            logger.warning("Store rejected write", extra={"error": str(error.orig)})
            return ConflictError(f"Conflicting write: {error.orig}")
        logger.error("Store unavailable", extra={"error": str(error)})
        return StoreUnavailable(f"Data store error: {error.__class__.__name__}")
