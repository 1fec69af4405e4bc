"""Single and bulk returns."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from flask import current_app
from sqlalchemy import func, select, update

from models import Item, ItemStatus, Loan, LoanItem, LoanItemStatus, LoanStatus, db
from .base import TransactionalService
from .errors import InventoryServiceError, NotOnLoan, StoreUnavailable
from .scanning import clean_barcode
from .store import ItemStore


@dataclass(frozen=True)
class ReturnOutcome:
    line: LoanItem
    loan: Loan
    invoice_no: str
    completed: bool


@dataclass
class BulkReturnResult:
    returned_count: int = 0
    not_found: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    completed_invoices: List[str] = field(default_factory=list)

    def to_dict(self):
        return {
            'returned_count': self.returned_count,
            'not_found': list(self.not_found),
            'errors': list(self.errors),
            'completed_invoices': list(self.completed_invoices),
        }


class ReturnService(TransactionalService):
    """Releases on-loan items and keeps each Loan's status in step with its lines."""

    def __init__(self, store: Optional[ItemStore] = None, **kwargs):
        super().__init__(**kwargs)
        self.store = store or ItemStore()

    def return_one(self, barcode: str, actor: Optional[str] = None) -> LoanItem:
        barcode = clean_barcode(barcode)
        with self._unit_of_work('Return'):
            outcome = self._return_line(barcode)
            self.activity.record(
                actor,
                'RETURN',
                'ITEM',
                barcode,
                f'Returned: {outcome.line.item_name} (Inv: {outcome.invoice_no})',
            )
        current_app.logger.info('Returned %s on %s', barcode, outcome.invoice_no)
        return outcome.line

    def return_bulk(self, barcodes: Iterable[str], actor: Optional[str] = None) -> BulkReturnResult:
        """Return every barcode independently and report what happened to each.

        A failing barcode never stops the batch and never fails the call.
        """
        result = BulkReturnResult()
        for raw in barcodes or []:
            barcode = str(raw).strip() if raw is not None else ''
            if not barcode:
                result.errors.append('Item <blank>: barcode is required.')
                continue
            try:
                with self._unit_of_work('Return'):
                    outcome = self._return_line(barcode)
            except NotOnLoan:
                result.not_found.append(barcode)
            except InventoryServiceError as exc:
                result.errors.append(f'Item {barcode}: {exc}')
            else:
                result.returned_count += 1
                if outcome.completed:
                    result.completed_invoices.append(outcome.invoice_no)

        summary = (
            f'Bulk return: {result.returned_count} returned, '
            f'{len(result.not_found)} not found, {len(result.errors)} errors'
        )
        try:
            with self._unit_of_work('Bulk return log'):
                self.activity.record(actor, 'BULK_RETURN', 'ITEMS', 'BATCH', summary)
        except StoreUnavailable as exc:
            result.errors.append(f'Activity log: {exc}')
        current_app.logger.info(summary)
        return result

    def _return_line(self, barcode: str) -> ReturnOutcome:
        row = db.session.execute(
            select(LoanItem, Loan)
            .join(Loan, LoanItem.loan_id == Loan.id)
            .where(
                LoanItem.barcode == barcode,
                LoanItem.status == LoanItemStatus.ON_LOAN,
                Loan.status == LoanStatus.OPEN,
            )
            .order_by(LoanItem.id)
            .limit(1)
        ).first()
        if row is None:
            raise NotOnLoan(barcode)
        line, loan = row

        # lock the header so concurrent returns on one loan see each other's lines
        db.session.execute(select(Loan.id).where(Loan.id == loan.id).with_for_update())

        now = self.clock()
        closed = db.session.execute(
            update(LoanItem)
            .where(LoanItem.id == line.id, LoanItem.status == LoanItemStatus.ON_LOAN)
            .values(status=LoanItemStatus.RETURNED, returned_at=now)
        ).rowcount
        if closed == 0:
            raise NotOnLoan(barcode)

        released = self.store.conditional_update(
            barcode,
            Item.status != ItemStatus.AVAILABLE,
            {'status': ItemStatus.AVAILABLE, 'scan_timestamp': None, 'updated_at': now},
        )
        if released == 0:
            current_app.logger.warning('Item %s was already Available when its loan line closed', barcode)

        completed = self._refresh_loan_status(loan, now)
        return ReturnOutcome(line=line, loan=loan, invoice_no=loan.invoice_no, completed=completed)

    def _refresh_loan_status(self, loan: Loan, now) -> bool:
        """Recompute Loan.status from its lines; True when this call completed it."""
        remaining = db.session.execute(
            select(func.count(LoanItem.id)).where(
                LoanItem.loan_id == loan.id,
                LoanItem.status == LoanItemStatus.ON_LOAN,
            )
        ).scalar_one()
        if remaining:
            loan.status = LoanStatus.OPEN
            return False
        was_open = loan.status != LoanStatus.COMPLETED
        loan.status = LoanStatus.COMPLETED
        if was_open:
            loan.completed_at = now
        return was_open
