"""Transaction boundary and per-pool single-writer locks"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from invoicefin_gateway.domain.exceptions import StorageUnavailableError


class PoolLocks:
    """Hands out one lock per pool name; every pool mutation runs inside it"""

    def __init__(self):
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def for_pool(self, pool_name: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(pool_name, threading.Lock())


# Shared by every request in this process
pool_locks = PoolLocks()


@contextmanager
def unit_of_work(db: Session) -> Iterator[Session]:
    """
    Commit everything done inside the block, or nothing.

    Raises:
        StorageUnavailableError: the database failed; the transaction was rolled
            back and the caller must re-read state before retrying
    """
    try:
        yield db
        db.commit()
    except OperationalError as e:
        db.rollback()
        raise StorageUnavailableError(f"Database unavailable: {e.orig}") from e
    except Exception:
        db.rollback()
        raise
