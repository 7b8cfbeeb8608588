class TitleTransferError(Exception):
    pass


class TransferNotFoundError(TitleTransferError):
    pass


class TransferReferenceError(TitleTransferError):
    pass


class LedgerActionError(TitleTransferError):
    pass
