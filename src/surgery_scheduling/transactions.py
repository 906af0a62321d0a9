"""Atomic unit-of-work boundary around scheduling operations."""

import logging
from contextlib import contextmanager
from typing import Callable, Iterator, TypeVar

from sqlalchemy.orm import Session, sessionmaker

from .db import session_scope

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TransactionCoordinator:
    """Run units of work in their own session and transaction.

    Each call gets a fresh session, so no state read by an earlier transaction
    is reused. A normal return commits everything the unit of work staged; any
    exception rolls all of it back, including row locks, and is re-raised.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self.session_factory = session_factory

    @contextmanager
    def atomic(self) -> Iterator[Session]:
        with session_scope(self.session_factory) as session:
            yield session

    def run_atomic(self, fn: Callable[[Session], T]) -> T:
        try:
            with self.atomic() as session:
                result = fn(session)
        except Exception as exc:
            logger.debug("Transaction rolled back: %s", exc)
            raise
        logger.debug("Transaction committed")
        return result
