"""Per-day invoice numbering (``INV-YYYYMMDD-NNN``).

The number for a day comes from a counter row in ``invoice_counters``. The
row is advanced with a single ``UPDATE ... SET last_value = last_value + 1``,
which holds the row lock until the caller's transaction ends, so two loans
created concurrently on the same day are serialized on that row and can
never draw the same number. Counting existing loans and adding one is only
used to seed the row the first time a day is seen.
"""
from __future__ import annotations

import datetime

from flask import current_app
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from models import InvoiceCounter, Loan, db
from .errors import InvoiceAllocationConflict


class InvoiceAllocator:
    def __init__(self, prefix: str = 'INV'):
        self.prefix = prefix

    def format(self, day: str, sequence: int) -> str:
        return f'{self.prefix}-{day}-{sequence:03d}'

    def next_invoice(self, when: datetime.datetime) -> str:
        """Allocate the next invoice number for ``when``'s calendar day.

        Must run inside the transaction that inserts the Loan; a rollback
        hands the number back.
        """
        day = when.strftime('%Y%m%d')
        return self.format(day, self._next_value(day))

    def _increment(self, day: str) -> int:
        stmt = (
            update(InvoiceCounter)
            .where(InvoiceCounter.day == day)
            .values(last_value=InvoiceCounter.last_value + 1)
            .execution_options(synchronize_session=False)
        )
        return db.session.execute(stmt).rowcount

    def _current(self, day: str) -> int:
        return db.session.execute(
            select(InvoiceCounter.last_value).where(InvoiceCounter.day == day)
        ).scalar_one()

    def _seed(self, day: str) -> int:
        return Loan.query.filter(Loan.invoice_no.like(f'{self.prefix}-{day}-%')).count()

    def _next_value(self, day: str) -> int:
        if self._increment(day):
            return self._current(day)

        # first loan of the day; a lost insert race only rolls back the savepoint
        savepoint = db.session.begin_nested()
        try:
            value = self._seed(day) + 1
            db.session.add(InvoiceCounter(day=day, last_value=value))
            db.session.flush()
            savepoint.commit()
            return value
        except IntegrityError:
            savepoint.rollback()
            current_app.logger.warning('Invoice counter for %s created concurrently, retrying', day)

        if not self._increment(day):
            raise InvoiceAllocationConflict(f'Could not allocate an invoice number for {day}.')
        return self._current(day)

    def resync(self, when: datetime.datetime) -> int:
        """Move ``when``'s counter past the highest invoice already stored.

        Used after a collision, when the counter row has fallen behind the
        loans table (for example after loans were imported with numbers).
        """
        day = when.strftime('%Y%m%d')
        highest = 0
        invoices = db.session.execute(
            select(Loan.invoice_no).where(Loan.invoice_no.like(f'{self.prefix}-{day}-%'))
        ).scalars()
        for invoice_no in invoices:
            suffix = invoice_no.rsplit('-', 1)[-1]
            if suffix.isdigit():
                highest = max(highest, int(suffix))

        counter = db.session.get(InvoiceCounter, day, with_for_update=True, populate_existing=True)
        if counter is None:
            db.session.add(InvoiceCounter(day=day, last_value=highest))
        elif counter.last_value < highest:
            counter.last_value = highest
        db.session.flush()
        return highest
