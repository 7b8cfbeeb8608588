from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Dict, Generic, List, Literal, Optional, TypeVar, Union

from pydantic import BaseModel, Field, field_validator

LedgerEntityType = Literal[
    "LAND_TITLE",
    "REQUEST_ISSUANCE",
    "LAND_AGREEMENT",
    "PAYMENT_CONFIRMATION",
    "PROPOSED_CHARGES_AND_RESTRICTIONS",
    "INSTRUCT_CONVEYANCER",
]

TransferStatus = Literal[
    "request_issuance_pending",
    "land_title_issued",
    "proposed_request_to_add_consent_for_discharge",
    "proposed_consent_for_discharge",
    "sales_agreement_created",
    "proposed_consent_for_new_charge",
    "sales_agreement_approved",
    "payment_received_in_escrow",
    "sales_agreement_seller_party_signed",
    "sales_agreement_completed",
    "land_title_transferred",
    "land_title_not_yet_issued",
    "payment_issued",
    "payment_request_for_payment",
    "payment_funds_released",
    "ERROR",
]

SubStateName = Literal[
    "land_title",
    "sales_agreement",
    "payment",
    "proposed_charges_and_restrictions",
    "request_issuance",
]

UserType = Literal["INDIVIDUAL", "NGO", "OVERSEAS_COMPANY", "COMPANY"]
ActionOnRestriction = Literal["ADD_RESTRICTION", "DISCHARGE", "NO_ACTION"]
TitleType = Literal["WHOLE", "PART"]
TitleGuarantee = Literal["FULL", "LIMITED"]

FAILED_ISSUANCE_STATUSES = {"FAILED", "TITLE_ALREADY_ISSUED"}

E = TypeVar("E", bound=BaseModel)


class Address(BaseModel):
    house_number: str
    street_name: str
    city: str
    county: str
    country: str
    postal_code: str


class CustomParty(BaseModel):
    forename: str
    surname: str
    user_id: str
    address: Address
    user_type: UserType
    email: str
    phone: str


class LedgerParty(BaseModel):
    organisation: str
    locality: str
    country: str
    state: Optional[str] = None
    organisational_unit: Optional[str] = None
    common_name: Optional[str] = None

    @field_validator(
        "organisation", "locality", "country", "state", "organisational_unit", "common_name"
    )
    @classmethod
    def validate_x500_attribute(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and "," in v:
            raise ValueError("X.500 attribute values must not contain ','")
        return v

    @property
    def x500_name(self) -> str:
        parts = [
            ("CN", self.common_name),
            ("OU", self.organisational_unit),
            ("O", self.organisation),
            ("L", self.locality),
            ("ST", self.state),
            ("C", self.country),
        ]
        return ", ".join(f"{key}={value}" for key, value in parts if value)

    @classmethod
    def parse(cls, name: str) -> "LedgerParty":
        attributes: dict[str, str] = {}
        for part in name.split(","):
            key, sep, value = part.partition("=")
            if not sep:
                raise ValueError(f"INVALID_X500_NAME:{name}")
            attributes[key.strip().upper()] = value.strip()
        missing = [key for key in ("O", "L", "C") if not attributes.get(key)]
        if missing:
            raise ValueError(f"INVALID_X500_NAME:{name}")
        return cls(
            organisation=attributes["O"],
            locality=attributes["L"],
            country=attributes["C"],
            state=attributes.get("ST"),
            organisational_unit=attributes.get("OU"),
            common_name=attributes.get("CN"),
        )


class Money(BaseModel):
    amount: Decimal
    currency: str


class Charge(BaseModel):
    date: datetime
    lender: LedgerParty
    amount: Money


class Restriction(BaseModel):
    restriction_type: Literal["ORES"] = "ORES"
    restriction_id: str
    restriction_text: str
    consenting_party: LedgerParty
    action: ActionOnRestriction = "ADD_RESTRICTION"
    consent_given: bool = False


class ChargeRestriction(BaseModel):
    restriction_type: Literal["CBCR"] = "CBCR"
    restriction_id: str
    restriction_text: str
    consenting_party: LedgerParty
    action: ActionOnRestriction = "ADD_RESTRICTION"
    consent_given: bool = False
    charge: Charge


AnyRestriction = Annotated[
    Union[Restriction, ChargeRestriction], Field(discriminator="restriction_type")
]


class LandTitleProperties(BaseModel):
    address: Address
    owner: CustomParty
    owner_conveyancer: LedgerParty


class LandTitleState(BaseModel):
    linear_id: str
    title_id: str
    land_title_properties: LandTitleProperties
    title_type: TitleType = "WHOLE"
    last_sold_value: Optional[Money] = None
    status: str
    charges: List[Charge] = Field(default_factory=list)
    restrictions: List[AnyRestriction] = Field(default_factory=list)


class RequestIssuanceState(BaseModel):
    linear_id: str
    title_id: str
    seller: Optional[CustomParty] = None
    seller_conveyancer: Optional[LedgerParty] = None
    status: str


class LandAgreementState(BaseModel):
    linear_id: str
    title_id: str
    buyer: CustomParty
    buyer_conveyancer: LedgerParty
    seller: Optional[CustomParty] = None
    seller_conveyancer: Optional[LedgerParty] = None
    creation_date: date
    completion_date: datetime
    contract_rate: float
    purchase_price: Money
    deposit: Money
    contents_price: Optional[Money] = None
    balance: Money
    title_guarantee: TitleGuarantee = "FULL"
    status: str


class PaymentConfirmationState(BaseModel):
    linear_id: str
    title_id: str
    land_agreement_id: str
    buyer: CustomParty
    buyer_conveyancer: LedgerParty
    seller_conveyancer: Optional[LedgerParty] = None
    settling_party: LedgerParty
    status: str


class ProposedChargesAndRestrictionsState(BaseModel):
    linear_id: str
    title_id: str
    charges: List[Charge] = Field(default_factory=list)
    restrictions: List[AnyRestriction] = Field(default_factory=list)
    status: str


ENTITY_MODELS: dict[LedgerEntityType, type[BaseModel]] = {
    "LAND_TITLE": LandTitleState,
    "REQUEST_ISSUANCE": RequestIssuanceState,
    "LAND_AGREEMENT": LandAgreementState,
    "PAYMENT_CONFIRMATION": PaymentConfirmationState,
    "PROPOSED_CHARGES_AND_RESTRICTIONS": ProposedChargesAndRestrictionsState,
}


@dataclass(frozen=True)
class VersionedRecord(Generic[E]):
    state: E
    recorded_at: Optional[datetime]


@dataclass(frozen=True)
class TransferRecordGroups:
    land_titles: Dict[str, List[VersionedRecord[LandTitleState]]]
    agreements: Dict[str, List[VersionedRecord[LandAgreementState]]]
    payments: Dict[str, List[VersionedRecord[PaymentConfirmationState]]]
    charges_and_restrictions: Dict[
        str, List[VersionedRecord[ProposedChargesAndRestrictionsState]]
    ]
    request_issuances: Dict[str, List[VersionedRecord[RequestIssuanceState]]]
    request_issuances_not_failed: Dict[str, List[VersionedRecord[RequestIssuanceState]]]


class AddressView(BaseModel):
    house_name_number: str = Field(description="House name or number.", examples=["12"])
    street: str = Field(description="Street name.", examples=["Mulberry Lane"])
    town_city: str = Field(description="Town or city.", examples=["Plymouth"])
    county: str = Field(description="County.", examples=["Devon"])
    country: str = Field(description="Country.", examples=["GB"])
    postcode: str = Field(description="Postal code.", examples=["PL6 5WS"])


class PartyDetailsView(BaseModel):
    identity: str = Field(description="Party user identifier.", examples=["user_001"])
    first_name: str = Field(description="Party forename.", examples=["Lisa"])
    last_name: str = Field(description="Party surname.", examples=["White"])
    email_address: str = Field(description="Contact email.", examples=["lisa@example.com"])
    phone_number: str = Field(description="Contact phone.", examples=["07700900354"])
    type: Literal["individual", "non government organisation", "overseas company", "company"] = (
        Field(description="Party type.", examples=["individual"])
    )
    address: AddressView = Field(description="Party postal address.")


class X500NameView(BaseModel):
    organisation: str = Field(description="X.500 organisation.", examples=["Conveyancer1"])
    locality: str = Field(description="X.500 locality.", examples=["Plymouth"])
    country: str = Field(description="X.500 country code.", examples=["GB"])
    state: Optional[str] = Field(default=None, description="X.500 state.")
    organisational_unit: Optional[str] = Field(default=None, description="X.500 org unit.")
    common_name: Optional[str] = Field(default=None, description="X.500 common name.")


class X500NameWithNameView(BaseModel):
    x500: X500NameView = Field(description="Structured X.500 name.")
    name: str = Field(
        description="Canonical X.500 name string.",
        examples=["O=Conveyancer1, L=Plymouth, C=GB"],
    )


class ChargeView(BaseModel):
    date: datetime = Field(description="Charge registration timestamp.")
    lender: X500NameView = Field(description="Lender ledger identity.")
    amount: Decimal = Field(description="Charge amount.", examples=["250000.00"])
    amount_currency_code: str = Field(description="Charge currency.", examples=["GBP"])


class RestrictionView(BaseModel):
    restriction_type: Literal["ORES"] = Field(default="ORES", description="Restriction kind.")
    restriction_id: str = Field(description="Restriction identifier.", examples=["ABC123"])
    restriction_text: str = Field(description="Restriction wording.")
    consenting_party: X500NameView = Field(description="Party whose consent is required.")
    signed_actions: Optional[Literal["add", "remove"]] = Field(
        default=None, description="Action consented to by the consenting party."
    )
    date: datetime = Field(description="Restriction timestamp.")


class ChargeRestrictionView(BaseModel):
    restriction_type: Literal["CBCR"] = Field(default="CBCR", description="Restriction kind.")
    restriction_id: str = Field(description="Restriction identifier.", examples=["CBCR123"])
    restriction_text: str = Field(description="Restriction wording.")
    consenting_party: X500NameView = Field(description="Party whose consent is required.")
    signed_actions: Optional[Literal["add", "remove"]] = Field(
        default=None, description="Action consented to by the consenting party."
    )
    date: datetime = Field(description="Restriction timestamp.")
    charge: ChargeView = Field(description="Charge protected by this restriction.")


AnyRestrictionView = Annotated[
    Union[RestrictionView, ChargeRestrictionView], Field(discriminator="restriction_type")
]


class TitleView(BaseModel):
    address: AddressView = Field(description="Property address.")
    owner: PartyDetailsView = Field(description="Registered or proposed owner.")
    owner_conveyancer: X500NameView = Field(description="Owner's conveyancer.")
    title_type: str = Field(description="Title type in lower case.", examples=["whole"])
    last_sold_value: Optional[Decimal] = Field(
        default=None, description="Last sold or proposed purchase value.", examples=["100000"]
    )
    last_sold_value_currency_code: Optional[str] = Field(
        default=None, description="Currency of last sold value.", examples=["GBP"]
    )
    charges: List[ChargeView] = Field(default_factory=list, description="Charges on the title.")
    restrictions: List[AnyRestrictionView] = Field(
        default_factory=list, description="Restrictions on the title."
    )


class SalesAgreementView(BaseModel):
    buyer: PartyDetailsView = Field(description="Buyer party details.")
    buyer_conveyancer: X500NameView = Field(description="Buyer's conveyancer.")
    creation_date: date = Field(description="Agreement creation date.")
    completion_date: datetime = Field(description="Agreed completion timestamp.")
    contract_rate: float = Field(description="Contract interest rate.", examples=[5.0])
    purchase_price: Decimal = Field(description="Purchase price.")
    purchase_price_currency_code: str = Field(description="Purchase price currency.")
    deposit: Decimal = Field(description="Deposit amount.")
    deposit_currency_code: str = Field(description="Deposit currency.")
    contents_price: Optional[Decimal] = Field(default=None, description="Contents price.")
    contents_price_currency_code: Optional[str] = Field(
        default=None, description="Contents price currency."
    )
    balance: Decimal = Field(description="Balance outstanding.")
    balance_currency_code: str = Field(description="Balance currency.")
    guarantee: str = Field(description="Title guarantee in lower case.", examples=["full"])
    payment_settler: X500NameView = Field(description="Party settling the payment.")
    latest_update_date: Optional[datetime] = Field(
        default=None, description="Recorded instant of the backing ledger record."
    )


class StateSummary(BaseModel):
    state_status: str = Field(
        description="Latest record status in lower case.", examples=["issued"]
    )
    timestamp: datetime = Field(description="Recorded instant of the latest record.")


class TitleTransfer(BaseModel):
    title_number: str = Field(description="Title number joining all records.", examples=["ABC123"])
    title: Optional[TitleView] = Field(default=None, description="Current registered title.")
    proposed_title: Optional[TitleView] = Field(
        default=None, description="Title as it would read once in-flight changes complete."
    )
    sales_agreement: Optional[SalesAgreementView] = Field(
        default=None, description="Sales agreement facts, or buyer facts from payment."
    )
    states: Dict[SubStateName, StateSummary] = Field(
        default_factory=dict, description="Latest status and timestamp per record group."
    )
    status: TransferStatus = Field(
        description="Aggregate lifecycle status.", examples=["sales_agreement_approved"]
    )


class NodeIdentityResponse(BaseModel):
    me: X500NameWithNameView = Field(description="Ledger identity of this node.")


class NetworkPeersResponse(BaseModel):
    peers: List[X500NameWithNameView] = Field(
        default_factory=list, description="Other identities on the network map."
    )


class ConfirmPaymentResponse(BaseModel):
    status: Literal["ok"] = Field(default="ok", description="Submission outcome.")
