from typing import NoReturn

from fastapi import HTTPException, status

from src.core.titles import (
    LedgerActionError,
    LedgerStoreError,
    LedgerStoreTimeoutError,
    TransferNotFoundError,
    TransferReferenceError,
)


def raise_title_http_exception(exc: Exception) -> NoReturn:
    if isinstance(exc, TransferNotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, LedgerStoreTimeoutError):
        raise HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail=str(exc)) from exc
    if isinstance(exc, LedgerStoreError):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)
        ) from exc
    if isinstance(exc, (TransferReferenceError, LedgerActionError)):
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)
        ) from exc
    raise exc
