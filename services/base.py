"""Transaction scope shared by the inventory services."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from models import db, utcnow
from .activity import ActivityLogService
from .errors import InventoryServiceError, StoreUnavailable


class TransactionalService:
    """Runs each public operation as one unit of work against ``db.session``."""

    def __init__(
        self,
        *,
        activity: Optional[ActivityLogService] = None,
        clock: Callable = utcnow,
    ):
        self.activity = activity or ActivityLogService()
        self.clock = clock

    @contextmanager
    def _transaction(self):
        # the scoped_session proxy has no in_transaction(); use the bound Session
        session = db.session()
        if session.in_transaction():
            # the caller already auto-began; run the unit in a savepoint
            with session.begin_nested():
                yield session
            session.commit()
        else:
            with session.begin():
                yield session

    @contextmanager
    def _unit_of_work(self, description: str):
        try:
            with self._transaction() as session:
                yield session
        except InventoryServiceError:
            raise
        except SQLAlchemyError as exc:
            current_app.logger.exception('%s failed: %s', description, exc)
            db.session.rollback()
            raise StoreUnavailable(f'{description} failed, please try again later.') from exc
