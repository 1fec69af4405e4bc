"""Item import, lookup and removal."""
from __future__ import annotations

from typing import Iterable, Optional

from flask import current_app

from models import Item
from .base import TransactionalService
from .errors import ItemOnLoan, NotFound
from .scanning import clean_barcode
from .store import ItemStore, UpsertResult


class InventoryService(TransactionalService):
    def __init__(self, store: Optional[ItemStore] = None, **kwargs):
        super().__init__(**kwargs)
        self.store = store or ItemStore()

    def get_item(self, barcode: str) -> Item:
        barcode = clean_barcode(barcode)
        item = self.store.get(barcode)
        if item is None:
            raise NotFound(f'Item {barcode} not found.')
        return item

    def import_items(self, rows: Iterable[dict], actor: Optional[str] = None) -> UpsertResult:
        rows = list(rows)
        with self._unit_of_work('Item import'):
            result = self.store.bulk_upsert(rows)
            self.activity.record(
                actor,
                'UPLOAD_STOCK',
                'ITEMS',
                'BATCH',
                f'Import: {result.added} New, {result.updated} Updated',
            )
        current_app.logger.info('Imported %d new and %d updated item(s)', result.added, result.updated)
        return result

    def delete_item(self, barcode: str, actor: Optional[str] = None) -> None:
        barcode = clean_barcode(barcode)
        with self._unit_of_work('Item deletion'):
            item = self.store.get(barcode, for_update=True)
            if item is None:
                raise NotFound(f'Item {barcode} not found.')
            if self.store.is_on_open_loan(barcode):
                raise ItemOnLoan(barcode)
            name = item.item_name
            self.store.delete(item)
            self.activity.record(actor, 'DELETE_ITEM', 'ITEM', barcode, f'Deleted item: {name}')
        current_app.logger.info('Deleted item %s', barcode)
