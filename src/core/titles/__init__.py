from src.core.titles.errors import (
    LedgerActionError,
    TitleTransferError,
    TransferNotFoundError,
    TransferReferenceError,
)
from src.core.titles.listener import LedgerUpdateListener
from src.core.titles.models import (
    LedgerEntityType,
    LedgerParty,
    TitleTransfer,
    TransferStatus,
    VersionedRecord,
)
from src.core.titles.service import TitleTransferService
from src.core.titles.status import derive_status
from src.core.titles.store import (
    LedgerContext,
    LedgerFeed,
    LedgerStateRecord,
    LedgerStore,
    LedgerStoreError,
    LedgerStoreTimeoutError,
    fetch_records,
    group_records,
)
from src.core.titles.views import build_transfer, build_transfers

__all__ = [
    "LedgerActionError",
    "LedgerContext",
    "LedgerEntityType",
    "LedgerFeed",
    "LedgerParty",
    "LedgerStateRecord",
    "LedgerStore",
    "LedgerStoreError",
    "LedgerStoreTimeoutError",
    "LedgerUpdateListener",
    "TitleTransfer",
    "TitleTransferError",
    "TitleTransferService",
    "TransferNotFoundError",
    "TransferReferenceError",
    "TransferStatus",
    "VersionedRecord",
    "build_transfer",
    "build_transfers",
    "derive_status",
    "fetch_records",
    "group_records",
]
