"""Loan creation and loan queries."""
from __future__ import annotations

import datetime
from typing import Iterable, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from models import Borrower, ItemStatus, Loan, LoanItem, LoanItemStatus, LoanStatus, db
from .base import TransactionalService
from .errors import InvalidRequest, InvoiceAllocationConflict, ItemUnavailable, NotFound
from .invoices import InvoiceAllocator
from .store import ItemStore


def _clean_items(items: Iterable[str]) -> list:
    barcodes = [str(barcode).strip() for barcode in (items or [])]
    if not barcodes:
        raise InvalidRequest('No items selected for loan.')
    if any(not barcode for barcode in barcodes):
        raise InvalidRequest('Item barcodes must not be empty.')
    seen = set()
    duplicates = []
    for barcode in barcodes:
        if barcode in seen and barcode not in duplicates:
            duplicates.append(barcode)
        seen.add(barcode)
    if duplicates:
        raise InvalidRequest(f"Duplicate items in loan: {', '.join(duplicates)}")
    return barcodes


class LoanService(TransactionalService):
    """Reserves items for a borrower under a freshly allocated invoice.

    Reservation is all-or-nothing: the invoice, the header, every line and
    every item status change commit together or not at all.
    """

    def __init__(
        self,
        store: Optional[ItemStore] = None,
        invoices: Optional[InvoiceAllocator] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.store = store or ItemStore()
        self.invoices = invoices

    def _allocator(self) -> InvoiceAllocator:
        if self.invoices is None:
            self.invoices = InvoiceAllocator(current_app.config.get('INVOICE_PREFIX', 'INV'))
        return self.invoices

    def create_loan(
        self,
        *,
        items: Iterable[str],
        borrower_id: Optional[int] = None,
        borrower_name: Optional[str] = None,
        inputter: Optional[str] = None,
        program: Optional[str] = None,
        reason: Optional[str] = None,
        loan_period_days: Optional[int] = None,
        signature: Optional[str] = None,
    ) -> Loan:
        barcodes = _clean_items(items)
        if loan_period_days is None:
            loan_period_days = current_app.config.get('DEFAULT_LOAN_PERIOD_DAYS', 7)
        if loan_period_days <= 0:
            raise InvalidRequest('Loan period must be at least one day.')
        borrower_name = (borrower_name or '').strip() or None
        if borrower_id is None and not borrower_name:
            raise InvalidRequest('A borrower is required.')

        attempts = max(1, current_app.config.get('INVOICE_ALLOCATION_ATTEMPTS', 1))
        for attempt in range(1, attempts + 1):
            try:
                loan = self._create_once(
                    barcodes=barcodes,
                    borrower_id=borrower_id,
                    borrower_name=borrower_name,
                    inputter=inputter,
                    program=program,
                    reason=reason,
                    loan_period_days=loan_period_days,
                    signature=signature,
                )
            except InvoiceAllocationConflict:
                current_app.logger.warning('Invoice allocation conflict (attempt %d/%d)', attempt, attempts)
                if attempt == attempts:
                    raise
                with self._unit_of_work('Invoice counter resync'):
                    self._allocator().resync(self.clock())
            except ItemUnavailable as exc:
                current_app.logger.warning('Loan rejected: %s', exc)
                raise
            else:
                current_app.logger.info('Loan %s created with %d item(s)', loan.invoice_no, len(barcodes))
                return loan

    def _create_once(
        self,
        *,
        barcodes,
        borrower_id,
        borrower_name,
        inputter,
        program,
        reason,
        loan_period_days,
        signature,
    ) -> Loan:
        with self._unit_of_work('Loan creation'):
            borrower = None
            if borrower_id is not None:
                borrower = db.session.get(Borrower, borrower_id)
                if borrower is None:
                    raise NotFound(f'Borrower {borrower_id} not found.')

            now = self.clock()
            invoice_no = self._allocator().next_invoice(now)
            loan = Loan(
                invoice_no=invoice_no,
                borrower=borrower,
                borrower_name=borrower_name or borrower.name,
                inputter_name=inputter,
                program_name=program,
                loan_reason=reason,
                due_date=now + datetime.timedelta(days=loan_period_days),
                signature_base64=signature,
                status=LoanStatus.OPEN,
                created_at=now,
            )
            db.session.add(loan)
            try:
                db.session.flush()
            except IntegrityError as exc:
                raise InvoiceAllocationConflict(f'Invoice {invoice_no} is already taken.') from exc

            total_value = 0.0
            for barcode in barcodes:
                item = self.store.get(barcode, for_update=True)
                if item is None or item.status != ItemStatus.AVAILABLE:
                    raise ItemUnavailable(barcode, item.status if item else None)
                if not self.store.compare_and_swap_status(barcode, ItemStatus.AVAILABLE, ItemStatus.ON_LOAN):
                    raise ItemUnavailable(barcode)
                price = item.price or 0.0
                loan.items.append(
                    LoanItem(
                        barcode=barcode,
                        item_name=item.item_name,
                        brand=item.brand,
                        price=price,
                        status=LoanItemStatus.ON_LOAN,
                        created_at=now,
                    )
                )
                total_value += price

            loan.total_items = len(barcodes)
            loan.total_value = total_value
            db.session.flush()
            self.activity.record(
                inputter, 'LOAN', 'TRANSACTION', invoice_no, f'Loan created with {len(barcodes)} items.'
            )
        return loan

    def get_loan(self, loan_id: int) -> Loan:
        loan = db.session.get(Loan, loan_id)
        if loan is None:
            raise NotFound(f'Loan {loan_id} not found.')
        return loan

    def get_by_invoice(self, invoice_no: str) -> Loan:
        loan = Loan.query.filter_by(invoice_no=invoice_no).first()
        if loan is None:
            raise NotFound(f'Loan {invoice_no} not found.')
        return loan

    def list_active(self):
        return (
            Loan.query.filter_by(status=LoanStatus.OPEN)
            .order_by(Loan.created_at.desc(), Loan.id.desc())
            .all()
        )

    def list_overdue(self, now: Optional[datetime.datetime] = None):
        now = now or self.clock()
        return (
            Loan.query.filter(Loan.status == LoanStatus.OPEN, Loan.due_date < now)
            .order_by(Loan.due_date.asc())
            .all()
        )

    def history(self, limit: int = 50):
        return Loan.query.order_by(Loan.created_at.desc(), Loan.id.desc()).limit(limit).all()
