import logging
from typing import Optional

from src.core.titles.errors import LedgerActionError, TransferNotFoundError
from src.core.titles.models import (
    FAILED_ISSUANCE_STATUSES,
    LedgerParty,
    RequestIssuanceState,
    TitleTransfer,
    TransferRecordGroups,
    VersionedRecord,
)
from src.core.titles.store import LedgerContext, LedgerStoreError, fetch_records, group_records
from src.core.titles.views import build_transfer, build_transfers

logger = logging.getLogger(__name__)

CONFIRM_PAYMENT_ACTION = "CONFIRM_PAYMENT_RECEIVED_IN_ESCROW"


def issuance_not_failed(state: RequestIssuanceState) -> bool:
    return state.status.upper() not in FAILED_ISSUANCE_STATUSES


def _not_failed(
    records: list[VersionedRecord[RequestIssuanceState]],
) -> list[VersionedRecord[RequestIssuanceState]]:
    return [record for record in records if issuance_not_failed(record.state)]


class TitleTransferService:
    def __init__(self, *, context: LedgerContext) -> None:
        self._context = context

    @property
    def context(self) -> LedgerContext:
        return self._context

    def get_transfer(self, *, title_number: str) -> Optional[TitleTransfer]:
        def fetch(entity_type):
            return fetch_records(self._context, entity_type, title_number=title_number)

        land_titles = fetch("LAND_TITLE")
        request_issuances = fetch("REQUEST_ISSUANCE")
        payments = fetch("PAYMENT_CONFIRMATION")
        agreements = fetch("LAND_AGREEMENT")
        charges_and_restrictions = fetch("PROPOSED_CHARGES_AND_RESTRICTIONS")

        if not any(
            (land_titles, request_issuances, payments, agreements, charges_and_restrictions)
        ):
            logger.info(
                "title_transfer.not_found",
                extra={"extra_fields": {"title_number": title_number}},
            )
            return None

        return build_transfer(
            title_number,
            land_titles=land_titles,
            agreements=agreements,
            payments=payments,
            charges_and_restrictions=charges_and_restrictions,
            request_issuances=request_issuances,
            request_issuances_not_failed=_not_failed(request_issuances),
        )

    def list_transfers(self) -> list[TitleTransfer]:
        request_issuances = fetch_records(self._context, "REQUEST_ISSUANCE")
        groups = TransferRecordGroups(
            land_titles=group_records(fetch_records(self._context, "LAND_TITLE")),
            agreements=group_records(fetch_records(self._context, "LAND_AGREEMENT")),
            payments=group_records(fetch_records(self._context, "PAYMENT_CONFIRMATION")),
            charges_and_restrictions=group_records(
                fetch_records(self._context, "PROPOSED_CHARGES_AND_RESTRICTIONS")
            ),
            request_issuances=group_records(request_issuances),
            request_issuances_not_failed=group_records(_not_failed(request_issuances)),
        )
        transfers = build_transfers(groups)
        logger.info(
            "title_transfer.listed",
            extra={"extra_fields": {"transfer_count": len(transfers)}},
        )
        return transfers

    def confirm_payment(self, *, title_number: str) -> None:
        payments = fetch_records(
            self._context, "PAYMENT_CONFIRMATION", title_number=title_number
        )
        if not payments:
            raise TransferNotFoundError("PAYMENT_NOT_FOUND")
        payment = payments[0].state
        arguments = {
            "title_number": title_number,
            "payment_linear_id": payment.linear_id,
            "land_agreement_id": payment.land_agreement_id,
        }
        try:
            self._context.store.submit_workflow_action(
                action_type=CONFIRM_PAYMENT_ACTION, arguments=arguments
            )
        except LedgerStoreError:
            raise
        except Exception as exc:
            logger.exception(
                "title_transfer.workflow_action_failed",
                extra={"extra_fields": {"action_type": CONFIRM_PAYMENT_ACTION, **arguments}},
            )
            raise LedgerActionError(f"LEDGER_ACTION_FAILED:{CONFIRM_PAYMENT_ACTION}") from exc
        logger.info(
            "title_transfer.workflow_action_submitted",
            extra={"extra_fields": {"action_type": CONFIRM_PAYMENT_ACTION, **arguments}},
        )

    def node_identity(self) -> LedgerParty:
        return self._context.participant

    def network_peers(self) -> list[LedgerParty]:
        me = self._context.participant.x500_name
        return [party for party in self._context.store.network_map() if party.x500_name != me]
