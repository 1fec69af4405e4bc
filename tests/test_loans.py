import datetime
import re

import pytest

from conftest import item_status
from models import db, ActivityLog, InvoiceCounter, ItemStatus, Loan, LoanItemStatus, LoanStatus, utcnow
from services import (
    BorrowerService,
    ConflictError,
    InvalidRequest,
    ItemUnavailable,
    LoanService,
    NotFound,
)


def today():
    return utcnow().strftime('%Y%m%d')


def test_create_loan_reserves_items(add_items, loan_service):
    add_items('X1', 'X2', price=50.0)

    loan = loan_service.create_loan(
        items=['X1', 'X2'],
        borrower_name='Bob',
        inputter='alice',
        program='Photo shoot',
        reason='Campaign',
        loan_period_days=21,
        signature='data:image/png;base64,AAAA',
    )

    assert re.fullmatch(rf'INV-{today()}-001', loan.invoice_no)
    assert loan.status == LoanStatus.OPEN
    assert loan.borrower_name == 'Bob'
    assert loan.total_items == 2
    assert loan.total_value == 100.0
    assert loan.due_date.date() == (utcnow() + datetime.timedelta(days=21)).date()
    assert [line.barcode for line in loan.items] == ['X1', 'X2']
    assert {line.status for line in loan.items} == {LoanItemStatus.ON_LOAN}
    assert item_status('X1') == ItemStatus.ON_LOAN
    assert item_status('X2') == ItemStatus.ON_LOAN
    entry = ActivityLog.query.filter_by(action_type='LOAN').one()
    assert entry.entity_id == loan.invoice_no
    assert entry.user_name == 'alice'
    assert '2 items' in entry.details


def test_default_loan_period_comes_from_config(app, add_items, loan_service):
    app.config['DEFAULT_LOAN_PERIOD_DAYS'] = 3
    add_items('X1')

    loan = loan_service.create_loan(items=['X1'], borrower_name='Bob')

    assert loan.due_date.date() == (utcnow() + datetime.timedelta(days=3)).date()


def test_unavailable_item_rolls_back_whole_loan(add_items, loan_service):
    add_items('A', 'B', 'C')
    first = loan_service.create_loan(items=['C'], borrower_name='Bob')

    with pytest.raises(ItemUnavailable) as excinfo:
        loan_service.create_loan(items=['A', 'C', 'B'], borrower_name='Carol')

    assert excinfo.value.barcode == 'C'
    assert excinfo.value.status == ItemStatus.ON_LOAN
    assert isinstance(excinfo.value, ConflictError)
    assert item_status('A') == ItemStatus.AVAILABLE
    assert item_status('B') == ItemStatus.AVAILABLE
    assert item_status('C') == ItemStatus.ON_LOAN
    assert [loan.invoice_no for loan in Loan.query.all()] == [first.invoice_no]
    assert ActivityLog.query.filter_by(action_type='LOAN').count() == 1


def test_missing_item_is_unavailable(add_items, loan_service):
    add_items('A')
    with pytest.raises(ItemUnavailable) as excinfo:
        loan_service.create_loan(items=['A', 'ghost'], borrower_name='Bob')
    assert excinfo.value.barcode == 'ghost'
    assert excinfo.value.status is None
    assert item_status('A') == ItemStatus.AVAILABLE
    assert Loan.query.count() == 0


def test_scanned_item_cannot_be_loaned(add_items, loan_service):
    add_items('S1', status=ItemStatus.SCANNED)
    with pytest.raises(ItemUnavailable):
        loan_service.create_loan(items=['S1'], borrower_name='Bob')


@pytest.mark.parametrize('kwargs', [
    {'items': [], 'borrower_name': 'Bob'},
    {'items': ['A', 'A'], 'borrower_name': 'Bob'},
    {'items': ['A', ' '], 'borrower_name': 'Bob'},
    {'items': ['A'], 'borrower_name': '  '},
    {'items': ['A'], 'borrower_name': 'Bob', 'loan_period_days': 0},
])
def test_invalid_requests_touch_nothing(add_items, loan_service, kwargs):
    add_items('A')
    with pytest.raises(InvalidRequest):
        loan_service.create_loan(**kwargs)
    assert item_status('A') == ItemStatus.AVAILABLE
    assert Loan.query.count() == 0


def test_invoices_increase_within_a_day(add_items, loan_service):
    add_items('A', 'B', 'C')

    invoices = [loan_service.create_loan(items=[b], borrower_name='Bob').invoice_no for b in ('A', 'B', 'C')]

    assert invoices == [f'INV-{today()}-00{n}' for n in (1, 2, 3)]
    assert len(set(invoices)) == 3
    assert db.session.get(InvoiceCounter, today()).last_value == 3


def test_invoices_restart_on_a_new_day(add_items):
    add_items('A', 'B')
    yesterday = utcnow() - datetime.timedelta(days=1)

    first = LoanService(clock=lambda: yesterday).create_loan(items=['A'], borrower_name='Bob')
    second = LoanService().create_loan(items=['B'], borrower_name='Bob')

    assert first.invoice_no == f"INV-{yesterday.strftime('%Y%m%d')}-001"
    assert second.invoice_no == f'INV-{today()}-001'


def test_counter_is_seeded_from_existing_loans(add_items, loan_service):
    add_items('A')
    due = utcnow() + datetime.timedelta(days=7)
    db.session.add_all([
        Loan(invoice_no=f'INV-{today()}-001', borrower_name='Old', due_date=due),
        Loan(invoice_no=f'INV-{today()}-002', borrower_name='Old', due_date=due),
    ])
    db.session.commit()

    loan = loan_service.create_loan(items=['A'], borrower_name='Bob')

    assert loan.invoice_no == f'INV-{today()}-003'


def test_invoice_collision_is_retried(add_items, loan_service):
    add_items('A')
    due = utcnow() + datetime.timedelta(days=7)
    # counter row lagging behind a loan that already holds the next number
    db.session.add_all([
        InvoiceCounter(day=today(), last_value=0),
        Loan(invoice_no=f'INV-{today()}-001', borrower_name='Old', due_date=due),
    ])
    db.session.commit()

    loan = loan_service.create_loan(items=['A'], borrower_name='Bob')

    assert loan.invoice_no == f'INV-{today()}-002'
    assert item_status('A') == ItemStatus.ON_LOAN
    assert Loan.query.count() == 2


def test_invoice_prefix_is_configurable(app, add_items):
    app.config['INVOICE_PREFIX'] = 'WRD'
    add_items('A')
    loan = LoanService().create_loan(items=['A'], borrower_name='Bob')
    assert loan.invoice_no == f'WRD-{today()}-001'


def test_borrower_reference_and_snapshot(add_items, loan_service):
    add_items('A')
    borrower = BorrowerService().upsert(nik='3201', name='Dewi', phone='0812')

    loan = loan_service.create_loan(items=['A'], borrower_id=borrower.id)

    assert loan.borrower_id == borrower.id
    assert loan.borrower_name == 'Dewi'

    BorrowerService().upsert(nik='3201', name='Dewi Lestari')
    BorrowerService().delete(borrower.id)
    db.session.expire_all()
    loan = db.session.get(Loan, loan.id)
    assert loan.borrower_id is None
    assert loan.borrower_name == 'Dewi'


def test_unknown_borrower(add_items, loan_service):
    add_items('A')
    with pytest.raises(NotFound):
        loan_service.create_loan(items=['A'], borrower_id=999)
    assert item_status('A') == ItemStatus.AVAILABLE


def test_loan_queries(add_items, loan_service):
    add_items('A', 'B')
    past = utcnow() - datetime.timedelta(days=30)
    overdue = LoanService(clock=lambda: past).create_loan(items=['A'], borrower_name='Late', loan_period_days=7)
    current = loan_service.create_loan(items=['B'], borrower_name='OnTime', loan_period_days=7)

    assert {loan.id for loan in loan_service.list_active()} == {overdue.id, current.id}
    assert [loan.id for loan in loan_service.list_overdue()] == [overdue.id]
    assert loan_service.get_by_invoice(current.invoice_no).id == current.id
    assert [loan.id for loan in loan_service.history(limit=1)] == [current.id]
    with pytest.raises(NotFound):
        loan_service.get_loan(12345)
    with pytest.raises(NotFound):
        loan_service.get_by_invoice('INV-00000000-000')
