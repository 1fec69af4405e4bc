import pytest

from app import create_app
from models import db, Item, ItemStatus, utcnow
from services import ActivityLogService, LoanService, ReturnService, ScanService


@pytest.fixture
def app():
    app = create_app({'TESTING': True, 'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:'})
    with app.app_context():
        # create_app already initializes the db (db.init_app). Just create tables for the test DB.
        db.create_all()
        yield app
        db.session.remove()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def add_items(app):
    def _add(*barcodes, status=ItemStatus.AVAILABLE, price=100.0):
        items = [
            Item(
                barcode=barcode,
                item_name=f'Item {barcode}',
                brand='Acme',
                price=price,
                status=status,
                scan_timestamp=utcnow() if status == ItemStatus.SCANNED else None,
            )
            for barcode in barcodes
        ]
        db.session.add_all(items)
        db.session.commit()
        return items

    return _add


@pytest.fixture
def activity(app):
    return ActivityLogService()


@pytest.fixture
def scan_service(app):
    return ScanService()


@pytest.fixture
def loan_service(app):
    return LoanService()


@pytest.fixture
def return_service(app):
    return ReturnService()


def item_status(barcode):
    db.session.expire_all()
    return Item.query.filter_by(barcode=barcode).one().status


def assert_scan_invariant():
    db.session.expire_all()
    for item in Item.query.all():
        assert (item.status == ItemStatus.SCANNED) == (item.scan_timestamp is not None), item.barcode
