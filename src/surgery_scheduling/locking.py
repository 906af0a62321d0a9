"""Row-level exclusive locks scoped to the enclosing transaction."""

import logging
from typing import TypeVar

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from .db import Base
from .exceptions import ResourceNotFoundError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=Base)


def for_update(stmt: Select, skip_locked: bool = False) -> Select:
    """Mark ``stmt`` as a locking read that always repopulates loaded rows."""
    return stmt.with_for_update(skip_locked=skip_locked).execution_options(
        populate_existing=True
    )


def first_match(model: type[ModelT], *criteria, skip_locked: bool = False) -> Select:
    """Locking select for the lowest-id row of ``model`` matching ``criteria``."""
    stmt = select(model).where(*criteria).order_by(model.id).limit(1)
    return for_update(stmt, skip_locked=skip_locked)


class RowLockManager:
    """Acquire ``SELECT ... FOR UPDATE`` locks on behalf of one session.

    Locks are never released explicitly: they belong to the session's current
    transaction and go away when it commits or rolls back. Every lock re-reads
    the row so callers always act on the state the lock protects.
    """

    def __init__(self, session: Session):
        self.session = session

    def _require_transaction(self) -> None:
        if not self.session.in_transaction():
            raise RuntimeError("Row locks can only be taken inside an active transaction.")

    def lock_for_update(self, model: type[ModelT], ident, resource: str | None = None) -> ModelT:
        """Lock the row of ``model`` with primary key ``ident``."""
        self._require_transaction()
        stmt = for_update(select(model).where(model.id == ident))
        row = self.session.execute(stmt).scalar_one_or_none()
        if row is None:
            raise ResourceNotFoundError(resource or model.__tablename__, ident)
        logger.debug("Locked %s %s", model.__tablename__, ident)
        return row

    def lock_first(self, model: type[ModelT], *criteria, skip_locked: bool = False) -> ModelT | None:
        """Lock the lowest-id row of ``model`` matching ``criteria``, if any.

        With ``skip_locked`` rows another transaction holds are passed over
        instead of waited on, so a caller after any free row gets the next one.
        Databases without SKIP LOCKED (SQLite) serialize the whole transaction.
        """
        self._require_transaction()
        row = self.session.execute(first_match(model, *criteria, skip_locked=skip_locked))
        row = row.scalar_one_or_none()
        if row is not None:
            logger.debug("Locked %s %s", model.__tablename__, row.id)
        return row
