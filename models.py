import datetime
from datetime import timezone
from flask_sqlalchemy import SQLAlchemy

# SQLAlchemy instance (initialized by app)
db = SQLAlchemy()


def utcnow():
    return datetime.datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class ItemStatus:
    AVAILABLE = 'Available'
    ON_LOAN = 'On Loan'
    SCANNED = 'Scanned'

    ALL = (AVAILABLE, ON_LOAN, SCANNED)


class LoanStatus:
    OPEN = 'Open'
    COMPLETED = 'Completed'


class LoanItemStatus:
    ON_LOAN = 'On Loan'
    RETURNED = 'Returned'


class Item(db.Model):
    __tablename__ = 'items'
    id = db.Column(db.Integer, primary_key=True)
    barcode = db.Column(db.String(100), unique=True, nullable=False)
    item_name = db.Column(db.String(255), nullable=False)
    brand = db.Column(db.String(100), nullable=True)
    color = db.Column(db.String(50), nullable=True)
    size = db.Column(db.String(50), nullable=True)
    category = db.Column(db.String(100), nullable=True)
    price = db.Column(db.Float, nullable=False, default=0.0)
    receive_no = db.Column(db.String(100), nullable=True)
    # status only moves through the scan/loan/return services
    status = db.Column(db.String(20), nullable=False, default=ItemStatus.AVAILABLE, index=True)
    scan_timestamp = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'barcode': self.barcode,
            'item_name': self.item_name,
            'brand': self.brand,
            'color': self.color,
            'size': self.size,
            'category': self.category,
            'price': self.price,
            'receive_no': self.receive_no,
            'status': self.status,
            'scan_timestamp': _iso(self.scan_timestamp),
            'updated_at': _iso(self.updated_at),
        }


class Borrower(db.Model):
    __tablename__ = 'borrowers'
    id = db.Column(db.Integer, primary_key=True)
    nik = db.Column(db.String(50), unique=True, nullable=False)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(50), nullable=True)
    position = db.Column(db.String(100), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'nik': self.nik,
            'name': self.name,
            'phone': self.phone,
            'position': self.position,
        }


class Loan(db.Model):
    __tablename__ = 'loan_transactions'
    id = db.Column(db.Integer, primary_key=True)
    invoice_no = db.Column(db.String(100), unique=True, nullable=False)
    # soft reference: the name snapshot below outlives the borrower row
    borrower_id = db.Column(db.Integer, db.ForeignKey('borrowers.id', ondelete='SET NULL'), nullable=True)
    borrower = db.relationship('Borrower', backref=db.backref('loans', lazy=True))
    borrower_name = db.Column(db.String(255), nullable=False)
    inputter_name = db.Column(db.String(255), nullable=True)
    program_name = db.Column(db.String(255), nullable=True)
    loan_reason = db.Column(db.Text, nullable=True)
    due_date = db.Column(db.DateTime, nullable=False)
    signature_base64 = db.Column(db.Text, nullable=True)
    # derived from the lines; written only when a line is returned
    status = db.Column(db.String(20), nullable=False, default=LoanStatus.OPEN, index=True)
    total_items = db.Column(db.Integer, nullable=False, default=0)
    total_value = db.Column(db.Float, nullable=False, default=0.0)
    created_at = db.Column(db.DateTime, default=utcnow)
    completed_at = db.Column(db.DateTime, nullable=True)

    items = db.relationship(
        'LoanItem',
        back_populates='loan',
        order_by='LoanItem.id',
        cascade='all, delete-orphan',
    )

    @property
    def outstanding_items(self):
        return [line for line in self.items if line.status == LoanItemStatus.ON_LOAN]

    def to_dict(self, with_items=True):
        data = {
            'id': self.id,
            'invoice_no': self.invoice_no,
            'borrower_id': self.borrower_id,
            'borrower_name': self.borrower_name,
            'inputter_name': self.inputter_name,
            'program_name': self.program_name,
            'loan_reason': self.loan_reason,
            'due_date': _iso(self.due_date),
            'status': self.status,
            'total_items': self.total_items,
            'total_value': self.total_value,
            'created_at': _iso(self.created_at),
            'completed_at': _iso(self.completed_at),
        }
        if with_items:
            data['items'] = [line.to_dict() for line in self.items]
        return data


class LoanItem(db.Model):
    __tablename__ = 'loan_items'
    __table_args__ = (
        db.UniqueConstraint('loan_id', 'barcode', name='uq_loan_items_loan_barcode'),
        # one open line per barcode across all loans
        db.Index(
            'uq_loan_items_open_barcode',
            'barcode',
            unique=True,
            postgresql_where=db.text("status = 'On Loan'"),
            sqlite_where=db.text("status = 'On Loan'"),
        ),
    )
    id = db.Column(db.Integer, primary_key=True)
    loan_id = db.Column(db.Integer, db.ForeignKey('loan_transactions.id', ondelete='CASCADE'), nullable=False, index=True)
    loan = db.relationship('Loan', back_populates='items')
    barcode = db.Column(db.String(100), nullable=False, index=True)
    item_name = db.Column(db.String(255), nullable=True)
    brand = db.Column(db.String(100), nullable=True)
    price = db.Column(db.Float, nullable=False, default=0.0)
    status = db.Column(db.String(20), nullable=False, default=LoanItemStatus.ON_LOAN)
    returned_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'loan_id': self.loan_id,
            'barcode': self.barcode,
            'item_name': self.item_name,
            'brand': self.brand,
            'price': self.price,
            'status': self.status,
            'returned_at': _iso(self.returned_at),
        }


class InvoiceCounter(db.Model):
    __tablename__ = 'invoice_counters'
    day = db.Column(db.String(8), primary_key=True)
    last_value = db.Column(db.Integer, nullable=False, default=0)


class ActivityLog(db.Model):
    __tablename__ = 'activity_logs'
    id = db.Column(db.Integer, primary_key=True)
    user_name = db.Column(db.String(100), nullable=False, default='System')
    action_type = db.Column(db.String(50), nullable=False, index=True)
    entity = db.Column(db.String(50), nullable=True)
    entity_id = db.Column(db.String(100), nullable=True)
    details = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    def to_dict(self):
        return {
            'id': self.id,
            'user_name': self.user_name,
            'action_type': self.action_type,
            'entity': self.entity,
            'entity_id': self.entity_id,
            'details': self.details,
            'created_at': _iso(self.created_at),
        }
