"""Borrower records, upserted by national ID."""
from __future__ import annotations

from typing import Optional

from flask import current_app

from models import Borrower, db
from .base import TransactionalService
from .errors import InvalidRequest, NotFound


class BorrowerService(TransactionalService):
    def upsert(
        self,
        *,
        nik: str,
        name: str,
        phone: Optional[str] = None,
        position: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> Borrower:
        nik = (nik or '').strip()
        name = (name or '').strip()
        if not nik or not name:
            raise InvalidRequest('Borrower ID and name are required.')
        with self._unit_of_work('Borrower upsert'):
            borrower = Borrower.query.filter_by(nik=nik).first()
            if borrower is None:
                borrower = Borrower(nik=nik)
                db.session.add(borrower)
            borrower.name = name
            borrower.phone = phone
            borrower.position = position
            db.session.flush()
            self.activity.record(actor, 'UPSERT_BORROWER', 'BORROWER', nik, f'Saved borrower: {name}')
        return borrower

    def get(self, borrower_id: int) -> Borrower:
        borrower = db.session.get(Borrower, borrower_id)
        if borrower is None:
            raise NotFound(f'Borrower {borrower_id} not found.')
        return borrower

    def list(self):
        return Borrower.query.order_by(Borrower.name.asc()).all()

    def delete(self, borrower_id: int, actor: Optional[str] = None) -> None:
        """Delete a borrower; their loans keep the name snapshot."""
        with self._unit_of_work('Borrower deletion'):
            borrower = db.session.get(Borrower, borrower_id)
            if borrower is None:
                raise NotFound(f'Borrower {borrower_id} not found.')
            name = borrower.name
            db.session.delete(borrower)
            self.activity.record(actor, 'DELETE_BORROWER', 'BORROWER', borrower_id, f'Deleted borrower: {name}')
        current_app.logger.info('Deleted borrower %s', borrower_id)
