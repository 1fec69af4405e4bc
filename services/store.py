"""Item store: reads and conditional writes against the items table."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Union

from sqlalchemy import case, func, or_, select, update

from models import Item, ItemStatus, LoanItem, LoanItemStatus, db, utcnow

UPSERT_FIELDS = ('item_name', 'brand', 'color', 'size', 'category', 'price', 'receive_no')


@dataclass(frozen=True)
class UpsertResult:
    added: int
    updated: int

    def to_dict(self):
        return {'added': self.added, 'updated': self.updated}


class ItemStore:
    """Owns the Item lifecycle.

    Every status change goes through :meth:`conditional_update`, which sends
    the guard predicate and the new values to the database as one UPDATE
    statement and reports how many rows it touched. A return value of 0 means
    the row was absent or no longer matched the predicate.
    """

    def __init__(self, chunk_size: int = 500):
        self.chunk_size = chunk_size

    def get(self, barcode: str, *, for_update: bool = False) -> Optional[Item]:
        stmt = (
            select(Item)
            .where(Item.barcode == barcode)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        return db.session.execute(stmt).scalar_one_or_none()

    def conditional_update(self, barcode: str, expected, values: dict) -> int:
        values = dict(values)
        values.setdefault('updated_at', utcnow())
        stmt = update(Item).where(Item.barcode == barcode, expected).values(**values)
        return db.session.execute(stmt).rowcount

    def compare_and_swap_status(
        self,
        barcode: str,
        expected: Union[str, Iterable[str]],
        new: str,
        **fields,
    ) -> bool:
        if isinstance(expected, str):
            predicate = Item.status == expected
        else:
            predicate = Item.status.in_(tuple(expected))
        values = dict(fields, status=new)
        # scan_timestamp is present exactly while the item is Scanned
        if new == ItemStatus.SCANNED:
            values.setdefault('scan_timestamp', utcnow())
        else:
            values['scan_timestamp'] = None
        return self.conditional_update(barcode, predicate, values) == 1

    def reset_scans(self, barcode: Optional[str] = None) -> int:
        """Clear Scanned items; items still held by an open loan line go back to On Loan."""
        on_open_loan = (
            select(LoanItem.id)
            .where(LoanItem.barcode == Item.barcode, LoanItem.status == LoanItemStatus.ON_LOAN)
            .exists()
        )
        stmt = update(Item).where(Item.status == ItemStatus.SCANNED)
        if barcode is not None:
            stmt = stmt.where(Item.barcode == barcode)
        stmt = stmt.values(
            status=case((on_open_loan, ItemStatus.ON_LOAN), else_=ItemStatus.AVAILABLE),
            scan_timestamp=None,
            updated_at=utcnow(),
        ).execution_options(synchronize_session=False)
        return db.session.execute(stmt).rowcount

    def _search(self, query, search: Optional[str]):
        if search:
            like_value = f"%{search.strip()}%"
            query = query.filter(
                or_(
                    Item.item_name.ilike(like_value),
                    Item.barcode.ilike(like_value),
                    Item.brand.ilike(like_value),
                )
            )
        return query

    def list_items(self, search: Optional[str] = None, limit: int = 200):
        query = self._search(Item.query, search)
        return query.order_by(Item.updated_at.desc(), Item.id.desc()).limit(limit).all()

    def list_available(self, search: Optional[str] = None, limit: int = 100):
        query = self._search(Item.query.filter_by(status=ItemStatus.AVAILABLE), search)
        return query.order_by(Item.item_name.asc(), Item.barcode.asc()).limit(limit).all()

    def count_by_status(self) -> dict:
        rows = db.session.execute(select(Item.status, func.count(Item.id)).group_by(Item.status)).all()
        counts = {status: count for status, count in rows}
        return {
            'total': sum(counts.values()),
            'available': counts.get(ItemStatus.AVAILABLE, 0),
            'on_loan': counts.get(ItemStatus.ON_LOAN, 0),
            'scanned': counts.get(ItemStatus.SCANNED, 0),
        }

    def is_on_open_loan(self, barcode: str) -> bool:
        return (
            LoanItem.query.filter_by(barcode=barcode, status=LoanItemStatus.ON_LOAN).first()
            is not None
        )

    def bulk_upsert(self, rows: Iterable[dict]) -> UpsertResult:
        """Insert or update items keyed by barcode.

        Rows are assumed already validated by the importer. The last row for
        a barcode wins; existing items keep their status.
        """
        latest = {}
        for row in rows:
            latest[str(row['barcode']).strip()] = row

        barcodes = list(latest)
        existing = {}
        for start in range(0, len(barcodes), self.chunk_size):
            chunk = barcodes[start:start + self.chunk_size]
            for item in Item.query.filter(Item.barcode.in_(chunk)):
                existing[item.barcode] = item

        added = updated = 0
        now = utcnow()
        for barcode, row in latest.items():
            fields = {name: row[name] for name in UPSERT_FIELDS if name in row}
            item = existing.get(barcode)
            if item is None:
                db.session.add(Item(barcode=barcode, status=ItemStatus.AVAILABLE, **fields))
                added += 1
            else:
                for name, value in fields.items():
                    setattr(item, name, value)
                item.updated_at = now
                updated += 1
        db.session.flush()
        return UpsertResult(added=added, updated=updated)

    def delete(self, item: Item) -> None:
        db.session.delete(item)
        db.session.flush()
