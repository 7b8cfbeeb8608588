import pytest
from fastapi import HTTPException

from src.api.routers.title_http_errors import raise_title_http_exception
from src.core.titles import (
    LedgerActionError,
    LedgerStoreError,
    LedgerStoreTimeoutError,
    TransferNotFoundError,
    TransferReferenceError,
)


@pytest.mark.parametrize(
    ("exc", "expected_status"),
    [
        (TransferNotFoundError("PAYMENT_NOT_FOUND"), 404),
        (LedgerStoreTimeoutError("LEDGER_QUERY_TIMEOUT"), 504),
        (LedgerStoreError("LEDGER_STORE_UNAVAILABLE"), 503),
        (TransferReferenceError("TRANSFER_REFERENCE_INVALID:la-1"), 500),
        (LedgerActionError("LEDGER_ACTION_FAILED:CONFIRM_PAYMENT_RECEIVED_IN_ESCROW"), 500),
    ],
)
def test_raise_title_http_exception_maps_domain_errors(
    exc: Exception, expected_status: int
) -> None:
    with pytest.raises(HTTPException) as caught:
        raise_title_http_exception(exc)
    assert caught.value.status_code == expected_status
    assert caught.value.detail == str(exc)


def test_raise_title_http_exception_reraises_unknown_error() -> None:
    with pytest.raises(RuntimeError, match="boom"):
        raise_title_http_exception(RuntimeError("boom"))
