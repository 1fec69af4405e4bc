from app import create_app
from models import db, Item, ItemStatus, LoanStatus
from services import LoanService, ReturnService, ScanService

app = create_app({'TESTING': True, 'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:'})
with app.app_context():
    db.create_all()
    db.session.add(Item(barcode='X1', item_name='Denim Jacket', price=250000))
    db.session.commit()

    loan = LoanService().create_loan(items=['X1'], borrower_name='Test', inputter='smoke', loan_period_days=21)
    if db.session.get(Item, 1).status != ItemStatus.ON_LOAN:
        print('FAIL: item not on loan after', loan.invoice_no)
    ReturnService().return_one('X1', actor='smoke')
    item = Item.query.filter_by(barcode='X1').one()
    if item.status != ItemStatus.AVAILABLE or loan.status != LoanStatus.COMPLETED:
        print('FAIL: after return', item.status, loan.status)
    else:
        ScanService().scan('X1', actor='smoke')
        print('SMOKE PASS', loan.invoice_no)
