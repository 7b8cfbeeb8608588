from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional, Sequence, Union

from src.core.titles.errors import TransferReferenceError
from src.core.titles.models import (
    Address,
    AddressView,
    Charge,
    ChargeRestriction,
    ChargeRestrictionView,
    ChargeView,
    CustomParty,
    LandAgreementState,
    LandTitleState,
    LedgerParty,
    PartyDetailsView,
    PaymentConfirmationState,
    ProposedChargesAndRestrictionsState,
    RequestIssuanceState,
    Restriction,
    RestrictionView,
    SalesAgreementView,
    StateSummary,
    SubStateName,
    TitleTransfer,
    TitleView,
    TransferRecordGroups,
    VersionedRecord,
    X500NameView,
    X500NameWithNameView,
)
from src.core.titles.status import derive_status

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
PLACEHOLDER_CURRENCY = "GBP"

_USER_TYPE_LABELS = {
    "INDIVIDUAL": "individual",
    "NGO": "non government organisation",
    "OVERSEAS_COMPANY": "overseas company",
    "COMPANY": "company",
}


def address_view(address: Address) -> AddressView:
    return AddressView(
        house_name_number=address.house_number,
        street=address.street_name,
        town_city=address.city,
        county=address.county,
        country=address.country,
        postcode=address.postal_code,
    )


def party_details_view(party: CustomParty) -> PartyDetailsView:
    return PartyDetailsView(
        identity=party.user_id,
        first_name=party.forename,
        last_name=party.surname,
        email_address=party.email,
        phone_number=party.phone,
        type=_USER_TYPE_LABELS[party.user_type],
        address=address_view(party.address),
    )


def x500_view(party: LedgerParty) -> X500NameView:
    return X500NameView(
        organisation=party.organisation,
        locality=party.locality,
        country=party.country,
        state=party.state,
        organisational_unit=party.organisational_unit,
        common_name=party.common_name,
    )


def x500_with_name_view(party: LedgerParty) -> X500NameWithNameView:
    return X500NameWithNameView(x500=x500_view(party), name=party.x500_name)


def charge_view(charge: Charge) -> ChargeView:
    return ChargeView(
        date=charge.date,
        lender=x500_view(charge.lender),
        amount=charge.amount.amount,
        amount_currency_code=charge.amount.currency,
    )


def _signed_actions(restriction: Union[Restriction, ChargeRestriction]) -> Optional[str]:
    if not restriction.consent_given:
        return None
    if restriction.action == "ADD_RESTRICTION":
        return "add"
    if restriction.action == "DISCHARGE":
        return "remove"
    return None


def restriction_view(
    restriction: Union[Restriction, ChargeRestriction],
) -> Union[RestrictionView, ChargeRestrictionView]:
    match restriction:
        case ChargeRestriction():
            return ChargeRestrictionView(
                restriction_id=restriction.restriction_id,
                restriction_text=restriction.restriction_text,
                consenting_party=x500_view(restriction.consenting_party),
                signed_actions=_signed_actions(restriction),
                date=EPOCH,
                charge=charge_view(restriction.charge),
            )
        case Restriction():
            return RestrictionView(
                restriction_id=restriction.restriction_id,
                restriction_text=restriction.restriction_text,
                consenting_party=x500_view(restriction.consenting_party),
                signed_actions=_signed_actions(restriction),
                date=EPOCH,
            )
    raise TypeError(f"Unsupported restriction variant: {type(restriction).__name__}")


def _first(records: Sequence[VersionedRecord]) -> Optional[VersionedRecord]:
    return records[0] if records else None


def _state_summary(record: Optional[VersionedRecord]) -> Optional[StateSummary]:
    if record is None or record.recorded_at is None:
        return None
    return StateSummary(state_status=str(record.state.status).lower(), timestamp=record.recorded_at)


def build_state_summaries(
    groups: Sequence[tuple[SubStateName, Sequence[VersionedRecord]]],
) -> dict[SubStateName, StateSummary]:
    summaries: dict[SubStateName, StateSummary] = {}
    for name, records in groups:
        summary = _state_summary(_first(records))
        if summary is not None:
            summaries[name] = summary
    return summaries


def current_title_view(land_title: LandTitleState) -> TitleView:
    properties = land_title.land_title_properties
    last_sold = land_title.last_sold_value
    return TitleView(
        address=address_view(properties.address),
        owner=party_details_view(properties.owner),
        owner_conveyancer=x500_view(properties.owner_conveyancer),
        title_type=land_title.title_type.lower(),
        last_sold_value=last_sold.amount if last_sold is not None else None,
        last_sold_value_currency_code=last_sold.currency if last_sold is not None else None,
        charges=[charge_view(charge) for charge in land_title.charges],
        restrictions=[restriction_view(item) for item in land_title.restrictions],
    )


def proposed_title_view(
    *,
    land_title: LandTitleState,
    charges_and_restrictions: ProposedChargesAndRestrictionsState,
    agreement: Optional[LandAgreementState],
) -> TitleView:
    """Title as it reads once the proposed charges and any agreed sale complete.

    Without an agreement the current owner stays on the proposed title: a
    charge can be proposed before any sale is agreed.
    """
    properties = land_title.land_title_properties
    if agreement is not None:
        owner = agreement.buyer
        owner_conveyancer = agreement.buyer_conveyancer
        value = agreement.purchase_price
    else:
        owner = properties.owner
        owner_conveyancer = properties.owner_conveyancer
        value = land_title.last_sold_value
    return TitleView(
        address=address_view(properties.address),
        owner=party_details_view(owner),
        owner_conveyancer=x500_view(owner_conveyancer),
        title_type=land_title.title_type.lower(),
        last_sold_value=value.amount if value is not None else None,
        last_sold_value_currency_code=value.currency if value is not None else None,
        charges=[charge_view(charge) for charge in charges_and_restrictions.charges],
        restrictions=[restriction_view(item) for item in charges_and_restrictions.restrictions],
    )


def sales_agreement_view(
    agreement: LandAgreementState,
    *,
    payment_settler: LedgerParty,
    latest_update_date: Optional[datetime],
) -> SalesAgreementView:
    contents = agreement.contents_price
    return SalesAgreementView(
        buyer=party_details_view(agreement.buyer),
        buyer_conveyancer=x500_view(agreement.buyer_conveyancer),
        creation_date=agreement.creation_date,
        completion_date=agreement.completion_date,
        contract_rate=agreement.contract_rate,
        purchase_price=agreement.purchase_price.amount,
        purchase_price_currency_code=agreement.purchase_price.currency,
        deposit=agreement.deposit.amount,
        deposit_currency_code=agreement.deposit.currency,
        contents_price=contents.amount if contents is not None else None,
        contents_price_currency_code=contents.currency if contents is not None else None,
        balance=agreement.balance.amount,
        balance_currency_code=agreement.balance.currency,
        guarantee=agreement.title_guarantee.lower(),
        payment_settler=x500_view(payment_settler),
        latest_update_date=latest_update_date,
    )


def payment_only_sales_agreement_view(
    payment: VersionedRecord[PaymentConfirmationState],
) -> SalesAgreementView:
    """Buyer details sourced from a payment record before any agreement is visible."""
    state = payment.state
    return SalesAgreementView(
        buyer=party_details_view(state.buyer),
        buyer_conveyancer=x500_view(state.buyer_conveyancer),
        creation_date=date(1970, 1, 1),
        completion_date=EPOCH,
        contract_rate=0.0,
        purchase_price=Decimal("0"),
        purchase_price_currency_code=PLACEHOLDER_CURRENCY,
        deposit=Decimal("0"),
        deposit_currency_code=PLACEHOLDER_CURRENCY,
        contents_price=None,
        contents_price_currency_code=None,
        balance=Decimal("0"),
        balance_currency_code=PLACEHOLDER_CURRENCY,
        guarantee="full",
        payment_settler=x500_view(state.settling_party),
        latest_update_date=payment.recorded_at,
    )


def referenced_payment(
    agreement: LandAgreementState,
    payments: Sequence[VersionedRecord[PaymentConfirmationState]],
) -> PaymentConfirmationState:
    for record in payments:
        if record.state.land_agreement_id == agreement.linear_id:
            return record.state
    raise TransferReferenceError(f"TRANSFER_REFERENCE_INVALID:{agreement.linear_id}")


def build_transfer(
    title_number: str,
    *,
    land_titles: Sequence[VersionedRecord[LandTitleState]],
    agreements: Sequence[VersionedRecord[LandAgreementState]],
    payments: Sequence[VersionedRecord[PaymentConfirmationState]],
    charges_and_restrictions: Sequence[VersionedRecord[ProposedChargesAndRestrictionsState]],
    request_issuances: Sequence[VersionedRecord[RequestIssuanceState]],
    request_issuances_not_failed: Sequence[VersionedRecord[RequestIssuanceState]],
) -> TitleTransfer:
    states = build_state_summaries(
        [
            ("land_title", land_titles),
            ("sales_agreement", agreements),
            ("payment", payments),
            ("proposed_charges_and_restrictions", charges_and_restrictions),
            ("request_issuance", request_issuances),
        ]
    )

    land_title = _first(land_titles)
    agreement = _first(agreements)
    payment = _first(payments)
    charges = _first(charges_and_restrictions)
    issuance_not_failed = _first(request_issuances_not_failed)

    status = derive_status(
        land_title=land_title.state if land_title else None,
        request_issuance_not_failed=issuance_not_failed.state if issuance_not_failed else None,
        agreement=agreement.state if agreement else None,
        payment=payment.state if payment else None,
        charges_and_restrictions=charges.state if charges else None,
    )

    sales_agreement: Optional[SalesAgreementView] = None
    if agreement is not None and agreement.state.status.lower() != "transferred":
        settler = referenced_payment(agreement.state, payments).settling_party
        sales_agreement = sales_agreement_view(
            agreement.state,
            payment_settler=settler,
            latest_update_date=agreement.recorded_at,
        )
    if sales_agreement is None and payment is not None:
        sales_agreement = payment_only_sales_agreement_view(payment)

    proposed_title: Optional[TitleView] = None
    if (
        charges is not None
        and land_title is not None
        and land_title.state.status.lower() != "transferred"
    ):
        proposed_title = proposed_title_view(
            land_title=land_title.state,
            charges_and_restrictions=charges.state,
            agreement=agreement.state if agreement else None,
        )

    return TitleTransfer(
        title_number=title_number,
        title=current_title_view(land_title.state) if land_title is not None else None,
        proposed_title=proposed_title,
        sales_agreement=sales_agreement,
        states=states,
        status=status,
    )


def build_transfers(groups: TransferRecordGroups) -> list[TitleTransfer]:
    title_numbers = (
        set(groups.land_titles)
        | set(groups.agreements)
        | set(groups.payments)
        | set(groups.charges_and_restrictions)
        | set(groups.request_issuances)
        | set(groups.request_issuances_not_failed)
    )
    return [
        build_transfer(
            title_number,
            land_titles=groups.land_titles.get(title_number, []),
            agreements=groups.agreements.get(title_number, []),
            payments=groups.payments.get(title_number, []),
            charges_and_restrictions=groups.charges_and_restrictions.get(title_number, []),
            request_issuances=groups.request_issuances.get(title_number, []),
            request_issuances_not_failed=groups.request_issuances_not_failed.get(title_number, []),
        )
        for title_number in title_numbers
    ]
