"""Transaction coordinator wrapping one unit of work in a single transaction."""

import logging
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TypeVar

from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from catalog_sync_service.exceptions import TransactionError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# SQLSTATEs for serialization failure, deadlock and lock timeout
LOCK_CONFLICT_CODES = frozenset({"40001", "40P01", "55P03"})


def is_lock_conflict(error: BaseException | None) -> bool:
    """Whether ``error`` is a storage conflict that a fresh attempt can clear."""
    if not isinstance(error, DBAPIError):
        return False
    orig = error.orig
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    return code in LOCK_CONFLICT_CODES


class TransactionCoordinator:
    """Runs a unit of work in one storage transaction: commit all or roll back all.

    The whole batch shares a single session, so the transaction is both the
    atomicity boundary and the lock scope. Long batches hold their locks until
    commit.
    """

    def __init__(self, session_factory: sessionmaker[Session], retry_delay_seconds: float = 0.5) -> None:
        """Initialize the coordinator.

        Args:
            session_factory: Catalog session factory
            retry_delay_seconds: Seconds to wait before retrying a unit that
                lost a lock conflict
        """
        self.session_factory = session_factory
        self.retry_delay_seconds = retry_delay_seconds

    @contextmanager
    def unit_of_work(self) -> Iterator[Session]:
        """Yield a session whose work commits on exit and rolls back on any error.

        Raises:
            TransactionError: If the storage layer fails (wraps SQLAlchemyError)
        """
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Unit of work rolled back after storage error: {e}")
            raise TransactionError(
                "Catalog transaction aborted", details={"cause": type(e).__name__}
            ) from e
        except Exception as e:
            session.rollback()
            logger.warning(f"Unit of work rolled back: {type(e).__name__}: {e}")
            raise
        finally:
            session.close()

    def run(self, work: Callable[[Session], T]) -> T:
        """Execute ``work`` inside one unit of work and return its result.

        A unit that loses a deadlock, serialization or lock-timeout conflict
        is rolled back and run once more in a fresh session. ``work`` must
        therefore build all of its state from the session it is given.
        """
        try:
            with self.unit_of_work() as session:
                return work(session)
        except TransactionError as e:
            if not is_lock_conflict(e.__cause__):
                raise
            logger.warning(f"Unit of work lost a lock conflict, retrying: {e.__cause__}")

        time.sleep(self.retry_delay_seconds)
        with self.unit_of_work() as session:
            return work(session)
