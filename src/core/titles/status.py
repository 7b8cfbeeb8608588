from dataclasses import dataclass
from typing import Callable, Optional, Union

from src.core.titles.models import (
    LandAgreementState,
    LandTitleState,
    PaymentConfirmationState,
    ProposedChargesAndRestrictionsState,
    RequestIssuanceState,
    TransferStatus,
)

UNMATCHED_STATUS: TransferStatus = "ERROR"


@dataclass(frozen=True)
class LatestRecords:
    land_title: Optional[LandTitleState]
    request_issuance_not_failed: Optional[RequestIssuanceState]
    agreement: Optional[LandAgreementState]
    payment: Optional[PaymentConfirmationState]
    charges_and_restrictions: Optional[ProposedChargesAndRestrictionsState]


@dataclass(frozen=True)
class StatusRule:
    status: TransferStatus
    matches: Callable[[LatestRecords], bool]


TransferState = Union[
    LandTitleState,
    RequestIssuanceState,
    LandAgreementState,
    PaymentConfirmationState,
    ProposedChargesAndRestrictionsState,
]


def status_of(state: Optional[TransferState]) -> Optional[str]:
    if state is None:
        return None
    return str(state.status).lower()


def _title(latest: LatestRecords) -> Optional[str]:
    return status_of(latest.land_title)


def _issuance(latest: LatestRecords) -> Optional[str]:
    return status_of(latest.request_issuance_not_failed)


def _agreement(latest: LatestRecords) -> Optional[str]:
    return status_of(latest.agreement)


def _payment(latest: LatestRecords) -> Optional[str]:
    return status_of(latest.payment)


def _charges(latest: LatestRecords) -> Optional[str]:
    return status_of(latest.charges_and_restrictions)


# First match wins. Several rules can hold at once; their order is the contract.
STATUS_RULES: tuple[StatusRule, ...] = (
    StatusRule("request_issuance_pending", lambda r: _issuance(r) == "pending"),
    StatusRule(
        "land_title_issued",
        lambda r: _charges(r) == "issued" and _title(r) == "issued",
    ),
    StatusRule(
        "proposed_request_to_add_consent_for_discharge",
        lambda r: _charges(r) == "request_to_add_consent_for_discharge",
    ),
    StatusRule(
        "proposed_consent_for_discharge",
        lambda r: _charges(r) == "consent_for_discharge",
    ),
    StatusRule(
        "sales_agreement_created",
        lambda r: (
            _charges(r) == "assign_buyer_conveyancer"
            and _title(r) == "assign_buyer_conveyancer"
            and _agreement(r) == "created"
        ),
    ),
    StatusRule(
        "proposed_consent_for_new_charge",
        lambda r: _charges(r) == "consent_for_new_charge" and _agreement(r) == "created",
    ),
    StatusRule("sales_agreement_approved", lambda r: _agreement(r) == "approved"),
    StatusRule(
        "payment_received_in_escrow",
        lambda r: _payment(r) == "confirm_payment_received_in_escrow",
    ),
    StatusRule("sales_agreement_seller_party_signed", lambda r: _agreement(r) == "signed"),
    StatusRule("sales_agreement_completed", lambda r: _agreement(r) == "completed"),
    StatusRule("land_title_transferred", lambda r: _title(r) == "transferred"),
    StatusRule(
        "land_title_not_yet_issued",
        lambda r: _charges(r) == "issued" and r.land_title is None,
    ),
    StatusRule("payment_issued", lambda r: _payment(r) == "issued"),
    StatusRule("payment_request_for_payment", lambda r: _payment(r) == "request_for_payment"),
    StatusRule("payment_funds_released", lambda r: _payment(r) == "confirm_funds_released"),
)


def derive_status(
    *,
    land_title: Optional[LandTitleState],
    request_issuance_not_failed: Optional[RequestIssuanceState],
    agreement: Optional[LandAgreementState],
    payment: Optional[PaymentConfirmationState],
    charges_and_restrictions: Optional[ProposedChargesAndRestrictionsState],
) -> TransferStatus:
    latest = LatestRecords(
        land_title=land_title,
        request_issuance_not_failed=request_issuance_not_failed,
        agreement=agreement,
        payment=payment,
        charges_and_restrictions=charges_and_restrictions,
    )
    for rule in STATUS_RULES:
        if rule.matches(latest):
            return rule.status
    return UNMATCHED_STATUS
