import logging
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, status

from src.api.routers import titles_config
from src.api.routers.runtime_utils import assert_feature_enabled, normalize_backend_init_error
from src.api.routers.title_http_errors import raise_title_http_exception
from src.core.titles import (
    LedgerStore,
    LedgerStoreError,
    TitleTransfer,
    TitleTransferError,
    TitleTransferService,
)
from src.core.titles.models import (
    ConfirmPaymentResponse,
    NetworkPeersResponse,
    NodeIdentityResponse,
)
from src.core.titles.views import x500_with_name_view

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Title Transfers"])

_STORE: Optional[LedgerStore] = None
_SERVICE: Optional[TitleTransferService] = None

_KNOWN_BACKEND_INIT_ERRORS = {
    "LEDGER_POSTGRES_DSN_REQUIRED",
    "LEDGER_POSTGRES_DRIVER_MISSING",
    "LEDGER_POSTGRES_CONNECTION_FAILED",
    "LEDGER_NODE_IDENTITY_INVALID",
}

TitleNumber = Annotated[
    str,
    Path(
        description="Title number shared by every ledger record of the transfer.",
        examples=["ABC123"],
    ),
]


def get_ledger_store() -> LedgerStore:
    global _STORE
    if _STORE is None:
        try:
            _STORE = titles_config.build_store()
        except RuntimeError as exc:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=normalize_backend_init_error(
                    detail=str(exc),
                    known_details=_KNOWN_BACKEND_INIT_ERRORS,
                    fallback_detail="LEDGER_POSTGRES_CONNECTION_FAILED",
                ),
            ) from exc
        except (ConnectionError, OSError, TimeoutError, ValueError) as exc:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="LEDGER_POSTGRES_CONNECTION_FAILED",
            ) from exc
    return _STORE


def get_title_transfer_service(
    store: Annotated[LedgerStore, Depends(get_ledger_store)],
) -> TitleTransferService:
    global _SERVICE
    if _SERVICE is None:
        _SERVICE = TitleTransferService(context=titles_config.build_context(store))
    return _SERVICE


def reset_title_transfer_service_for_tests(store: Optional[LedgerStore] = None) -> None:
    global _STORE
    global _SERVICE
    _STORE = store
    _SERVICE = None


@router.get(
    "/me",
    response_model=NodeIdentityResponse,
    summary="Get Node Identity",
    description="Returns the ledger identity this API queries and acts as.",
)
def me(
    service: Annotated[TitleTransferService, Depends(get_title_transfer_service)],
) -> NodeIdentityResponse:
    return NodeIdentityResponse(me=x500_with_name_view(service.node_identity()))


@router.get(
    "/peers",
    response_model=NetworkPeersResponse,
    summary="List Network Peers",
    description="Returns every identity on the ledger network map except this node.",
)
def peers(
    service: Annotated[TitleTransferService, Depends(get_title_transfer_service)],
) -> NetworkPeersResponse:
    try:
        parties = service.network_peers()
    except LedgerStoreError as exc:
        raise_title_http_exception(exc)
    return NetworkPeersResponse(peers=[x500_with_name_view(party) for party in parties])


@router.get(
    "/titles",
    response_model=List[TitleTransfer],
    summary="List Title Transfers",
    description=(
        "Builds one transfer view per title number known to any ledger record group. "
        "Order is not significant."
    ),
)
def get_titles(
    service: Annotated[TitleTransferService, Depends(get_title_transfer_service)],
) -> List[TitleTransfer]:
    logger.info("GET /api/titles")
    try:
        return service.list_transfers()
    except (TitleTransferError, LedgerStoreError) as exc:
        raise_title_http_exception(exc)


@router.get(
    "/titles/{title_number}",
    response_model=TitleTransfer,
    summary="Get Title Transfer",
    description="Returns the aggregated transfer view for one title number.",
)
def get_title(
    title_number: TitleNumber,
    service: Annotated[TitleTransferService, Depends(get_title_transfer_service)],
) -> TitleTransfer:
    logger.info("GET /api/titles/%s", title_number)
    try:
        transfer = service.get_transfer(title_number=title_number)
    except (TitleTransferError, LedgerStoreError) as exc:
        raise_title_http_exception(exc)
    if transfer is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="TITLE_TRANSFER_NOT_FOUND"
        )
    return transfer


@router.put(
    "/titles/{title_number}/confirm-payment",
    response_model=ConfirmPaymentResponse,
    summary="Confirm Payment Received In Escrow",
    description=(
        "Looks up the latest payment record for the title and submits the "
        "payment confirmation workflow action to the ledger."
    ),
)
def confirm_payment(
    title_number: TitleNumber,
    service: Annotated[TitleTransferService, Depends(get_title_transfer_service)],
) -> ConfirmPaymentResponse:
    assert_feature_enabled(
        name="TITLE_PAYMENT_ACTIONS_ENABLED",
        default=True,
        detail="TITLE_PAYMENT_ACTIONS_DISABLED",
    )
    logger.info("PUT /api/titles/%s/confirm-payment", title_number)
    try:
        service.confirm_payment(title_number=title_number)
    except (TitleTransferError, LedgerStoreError) as exc:
        raise_title_http_exception(exc)
    return ConfirmPaymentResponse()
