import pytest

from src.core.titles import (
    LedgerActionError,
    LedgerContext,
    LedgerStoreError,
    TitleTransferService,
    TransferNotFoundError,
)
from src.core.titles.service import CONFIRM_PAYMENT_ACTION, issuance_not_failed
from src.infrastructure.ledger import InMemoryLedgerStore
from tests.factories import (
    BUYER_CONVEYANCER,
    LAND_REGISTRY,
    ME,
    agreement_payload,
    at,
    charges_payload,
    land_title_payload,
    payment_payload,
    request_issuance,
    request_issuance_payload,
)


@pytest.fixture
def service(ledger_context: LedgerContext) -> TitleTransferService:
    return TitleTransferService(context=ledger_context)


def test_get_transfer_returns_none_for_unknown_title(service: TitleTransferService):
    assert service.get_transfer(title_number="NOPE") is None


def test_get_transfer_uses_latest_version_of_each_record(
    service: TitleTransferService, ledger_store: InMemoryLedgerStore
):
    ledger_store.record("LAND_TITLE", land_title_payload("A1", status="ISSUED"), recorded_at=at(1))
    ledger_store.record(
        "PROPOSED_CHARGES_AND_RESTRICTIONS",
        charges_payload("A1", status="ISSUED"),
        recorded_at=at(2),
    )
    ledger_store.record("LAND_TITLE", land_title_payload("B2", status="TRANSFERRED"))

    transfer = service.get_transfer(title_number="A1")

    assert transfer is not None
    assert transfer.title_number == "A1"
    assert transfer.status == "land_title_issued"
    assert transfer.states["proposed_charges_and_restrictions"].timestamp == at(2)


def test_get_transfer_found_by_agreement_alone(
    service: TitleTransferService, ledger_store: InMemoryLedgerStore
):
    ledger_store.record("LAND_AGREEMENT", agreement_payload("A1", status="APPROVED"))
    ledger_store.record("PAYMENT_CONFIRMATION", payment_payload("A1"))

    transfer = service.get_transfer(title_number="A1")

    assert transfer is not None
    assert transfer.status == "sales_agreement_approved"


def test_get_transfer_found_by_charges_alone(
    service: TitleTransferService, ledger_store: InMemoryLedgerStore
):
    ledger_store.record("PROPOSED_CHARGES_AND_RESTRICTIONS", charges_payload("T2"))

    transfer = service.get_transfer(title_number="T2")

    assert transfer is not None
    assert transfer.status == "land_title_not_yet_issued"


def test_get_transfer_ignores_malformed_records_of_other_titles(
    service: TitleTransferService, ledger_store: InMemoryLedgerStore
):
    truncated = land_title_payload("OTHER")
    del truncated["land_title_properties"]
    ledger_store.record("LAND_TITLE", land_title_payload("GOOD"), recorded_at=at(1))
    ledger_store.record("LAND_TITLE", truncated, recorded_at=at(2))

    transfer = service.get_transfer(title_number="GOOD")

    assert transfer is not None
    assert transfer.title is not None
    with pytest.raises(LedgerStoreError) as exc:
        service.get_transfer(title_number="OTHER")
    assert str(exc.value) == "LEDGER_STATE_MALFORMED:LAND_TITLE"


def test_failed_issuance_does_not_report_pending(
    service: TitleTransferService, ledger_store: InMemoryLedgerStore
):
    ledger_store.record("REQUEST_ISSUANCE", request_issuance_payload("A1", status="FAILED"))

    transfer = service.get_transfer(title_number="A1")

    assert transfer.status == "ERROR"
    assert transfer.states == {}


@pytest.mark.parametrize(
    ("status", "expected"),
    [
        ("PENDING", True),
        ("APPROVED", True),
        ("FAILED", False),
        ("failed", False),
        ("TITLE_ALREADY_ISSUED", False),
    ],
)
def test_issuance_not_failed(status, expected):
    assert issuance_not_failed(request_issuance(status=status)) is expected


def test_list_transfers_builds_one_view_per_title(
    service: TitleTransferService, ledger_store: InMemoryLedgerStore
):
    ledger_store.record("LAND_TITLE", land_title_payload("A1"))
    ledger_store.record("PAYMENT_CONFIRMATION", payment_payload("B2", status="ISSUED"))
    ledger_store.record("REQUEST_ISSUANCE", request_issuance_payload("C3", status="PENDING"))
    ledger_store.record(
        "REQUEST_ISSUANCE",
        request_issuance_payload("D4", status="TITLE_ALREADY_ISSUED"),
    )

    transfers = {transfer.title_number: transfer for transfer in service.list_transfers()}

    assert set(transfers) == {"A1", "B2", "C3", "D4"}
    assert transfers["B2"].status == "payment_issued"
    assert transfers["C3"].status == "request_issuance_pending"
    assert transfers["D4"].status == "ERROR"


def test_list_transfers_only_sees_records_shared_with_node(
    service: TitleTransferService, ledger_store: InMemoryLedgerStore
):
    ledger_store.record("LAND_TITLE", land_title_payload("A1"), participants=[LAND_REGISTRY])

    assert service.list_transfers() == []


def test_confirm_payment_submits_single_action_for_latest_payment(
    service: TitleTransferService, ledger_store: InMemoryLedgerStore
):
    ledger_store.record("PAYMENT_CONFIRMATION", payment_payload("A1", status="ISSUED"))
    ledger_store.record("PAYMENT_CONFIRMATION", payment_payload("B2"))

    service.confirm_payment(title_number="A1")

    assert ledger_store.submitted_actions() == [
        (
            CONFIRM_PAYMENT_ACTION,
            {
                "title_number": "A1",
                "payment_linear_id": "pc-A1",
                "land_agreement_id": "la-A1",
            },
        )
    ]


def test_confirm_payment_without_payment_is_not_found(
    service: TitleTransferService, ledger_store: InMemoryLedgerStore
):
    ledger_store.record("LAND_TITLE", land_title_payload("A1"))

    with pytest.raises(TransferNotFoundError) as exc:
        service.confirm_payment(title_number="A1")
    assert str(exc.value) == "PAYMENT_NOT_FOUND"
    assert ledger_store.submitted_actions() == []


class _FailingActionStore(InMemoryLedgerStore):
    def __init__(self, error: Exception) -> None:
        super().__init__(identity=ME)
        self._error = error

    def submit_workflow_action(self, *, action_type, arguments):
        raise self._error


def test_confirm_payment_wraps_unexpected_ledger_failures():
    store = _FailingActionStore(RuntimeError("flow rejected"))
    store.record("PAYMENT_CONFIRMATION", payment_payload("A1"))
    service = TitleTransferService(context=LedgerContext(store=store, participant=ME))

    with pytest.raises(LedgerActionError) as exc:
        service.confirm_payment(title_number="A1")
    assert str(exc.value) == f"LEDGER_ACTION_FAILED:{CONFIRM_PAYMENT_ACTION}"
    assert isinstance(exc.value.__cause__, RuntimeError)


def test_confirm_payment_propagates_store_errors():
    store = _FailingActionStore(LedgerStoreError("LEDGER_STORE_UNAVAILABLE"))
    store.record("PAYMENT_CONFIRMATION", payment_payload("A1"))
    service = TitleTransferService(context=LedgerContext(store=store, participant=ME))

    with pytest.raises(LedgerStoreError, match="LEDGER_STORE_UNAVAILABLE"):
        service.confirm_payment(title_number="A1")


def test_node_identity_and_network_peers(service: TitleTransferService):
    assert service.node_identity() == ME
    assert [party.organisation for party in service.network_peers()] == [
        BUYER_CONVEYANCER.organisation,
        LAND_REGISTRY.organisation,
    ]
