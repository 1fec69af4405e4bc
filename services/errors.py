"""Failure taxonomy shared by the inventory services.

Every class carries the HTTP status the API layer answers with. Callers that
need to tell "nothing happened" apart from "someone else changed it first"
can test for :class:`ConflictError`, which means the caller's view is stale.
"""
from __future__ import annotations


class InventoryServiceError(RuntimeError):
    """Base class for scan/loan/return failures."""

    http_status = 400
    kind = 'error'

    def to_dict(self):
        return {'success': False, 'error': self.kind, 'message': str(self)}


class InvalidRequest(InventoryServiceError):
    kind = 'invalid_request'


class NotFound(InventoryServiceError):
    http_status = 404
    kind = 'not_found'


class NotOnLoan(InventoryServiceError):
    http_status = 404
    kind = 'not_on_loan'

    def __init__(self, barcode: str):
        super().__init__(f'Item {barcode} is not on an active loan.')
        self.barcode = barcode


class AlreadyScanned(InventoryServiceError):
    http_status = 409
    kind = 'already_scanned'

    def __init__(self, barcode: str):
        super().__init__(f'Item {barcode} has already been scanned.')
        self.barcode = barcode


class ConflictError(InventoryServiceError):
    """The stored state moved under the caller; refresh before retrying."""

    http_status = 409
    kind = 'conflict'


class ConcurrentScanConflict(ConflictError):
    kind = 'concurrent_scan_conflict'

    def __init__(self, barcode: str):
        super().__init__(f'Item {barcode} was scanned by another operator.')
        self.barcode = barcode


class ItemUnavailable(ConflictError):
    kind = 'item_unavailable'

    def __init__(self, barcode: str, status: str | None = None):
        if status is None:
            message = f'Item {barcode} is not available or not found.'
        else:
            message = f'Item {barcode} is not available (status: {status}).'
        super().__init__(message)
        self.barcode = barcode
        self.status = status


class InvoiceAllocationConflict(ConflictError):
    kind = 'invoice_allocation_conflict'


class ItemOnLoan(InventoryServiceError):
    http_status = 409
    kind = 'item_on_loan'

    def __init__(self, barcode: str):
        super().__init__(f'Item {barcode} is referenced by an open loan.')
        self.barcode = barcode


class StoreUnavailable(InventoryServiceError):
    http_status = 503
    kind = 'store_unavailable'
