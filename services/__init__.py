"""Service layer package for encapsulating inventory business logic."""

from .activity import ActivityLogService  # noqa: F401
from .borrowers import BorrowerService  # noqa: F401
from .errors import (  # noqa: F401
    AlreadyScanned,
    ConcurrentScanConflict,
    ConflictError,
    InvalidRequest,
    InventoryServiceError,
    InvoiceAllocationConflict,
    ItemOnLoan,
    ItemUnavailable,
    NotFound,
    NotOnLoan,
    StoreUnavailable,
)
from .inventory import InventoryService  # noqa: F401
from .invoices import InvoiceAllocator  # noqa: F401
from .loans import LoanService  # noqa: F401
from .returns import BulkReturnResult, ReturnService  # noqa: F401
from .scanning import ScanService  # noqa: F401
from .store import ItemStore, UpsertResult  # noqa: F401
