"""Stocktake scanning."""
from __future__ import annotations

from typing import Optional

from flask import current_app

from models import Item, ItemStatus
from .base import TransactionalService
from .errors import AlreadyScanned, ConcurrentScanConflict, InvalidRequest, NotFound
from .store import ItemStore


def clean_barcode(barcode) -> str:
    cleaned = str(barcode).strip() if barcode is not None else ''
    if not cleaned:
        raise InvalidRequest('Barcode is required.')
    return cleaned


class ScanService(TransactionalService):
    """Moves items to Scanned at most once.

    The status pre-check only short-circuits the common repeat scan. What
    actually prevents a double scan is the ``status != Scanned`` guard on the
    UPDATE: of any number of concurrent scans of one barcode, exactly one
    affects a row.
    """

    def __init__(self, store: Optional[ItemStore] = None, **kwargs):
        super().__init__(**kwargs)
        self.store = store or ItemStore()

    def scan(self, barcode: str, actor: Optional[str] = None) -> Item:
        barcode = clean_barcode(barcode)
        try:
            with self._unit_of_work('Scan'):
                item = self.store.get(barcode)
                if item is None:
                    raise NotFound(f'Item {barcode} not found.')
                if item.status == ItemStatus.SCANNED:
                    raise AlreadyScanned(barcode)

                now = self.clock()
                affected = self.store.conditional_update(
                    barcode,
                    Item.status != ItemStatus.SCANNED,
                    {'status': ItemStatus.SCANNED, 'scan_timestamp': now, 'updated_at': now},
                )
                if affected == 0:
                    raise ConcurrentScanConflict(barcode)

                item = self.store.get(barcode)
                self.activity.record(actor, 'SCAN', 'ITEM', barcode, f'Scanned: {item.item_name}')
        except ConcurrentScanConflict:
            current_app.logger.warning('Lost scan race for %s', barcode)
            raise
        current_app.logger.info('Scanned %s', barcode)
        return item

    def reset(self, barcode: Optional[str] = None, actor: Optional[str] = None) -> int:
        """Clear Scanned back to Available for one barcode, or for every item."""
        if barcode is not None:
            barcode = clean_barcode(barcode)
        with self._unit_of_work('Scan reset'):
            if barcode is not None and self.store.get(barcode) is None:
                raise NotFound(f'Item {barcode} not found.')
            cleared = self.store.reset_scans(barcode)
            self.activity.record(
                actor,
                'RESET_SCAN',
                'ITEM' if barcode else 'ITEMS',
                barcode or 'ALL',
                f'Scan reset: {cleared} item(s) back to Available',
            )
        current_app.logger.info('Reset %d scanned item(s)', cleared)
        return cleared
