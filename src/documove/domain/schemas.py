"""Pydantic v2 schemas: validated records at the persistence boundary and API request/response shapes."""

from datetime import datetime
from decimal import Decimal
from typing import Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from documove.domain.enums import (
    InviteDecision,
    InviteStatus,
    MilestoneOwner,
    MilestoneStatus,
    Party,
    PartyInviteState,
    Role,
    TransactionType,
)
from documove.domain.errors import MalformedRecordError

RecordT = TypeVar("RecordT", bound=BaseModel)


def load_record(model: type[RecordT], row) -> RecordT:
    """Validate an ORM row into ``model``; malformed rows raise MalformedRecordError."""
    try:
        return model.model_validate(row, from_attributes=True)
    except ValidationError as e:
        row_id = getattr(row, "id", None)
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise MalformedRecordError(
            f"{model.__name__} {row_id} failed validation on: {fields}"
        ) from e


# ---------------------------------------------------------------------------
# Boundary records
# ---------------------------------------------------------------------------


class ProfileRecord(BaseModel):
    """Stored actor profile."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    email: str
    full_name: str
    phone: str | None = None
    role: Role


class TransactionRecord(BaseModel):
    """A transaction as the workflow engine sees it.

    ``current_stage`` is deliberately a free string here: whether it names a
    milestone is decided by the state machine's unknown-stage policy.
    """

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    reference_number: str
    agent_id: str | None = None
    transaction_type: TransactionType

    address_line1: str
    address_line2: str | None = None
    city: str | None = None
    postcode: str | None = None
    price: Decimal | None = Field(default=None, ge=0)
    property_type: str | None = None
    bedrooms: int | None = Field(default=None, ge=0)

    current_stage: str | None = None
    progress_percentage: int = Field(ge=0, le=100)

    seller_name: str | None = None
    seller_email: str | None = None
    seller_phone: str | None = None
    seller_invited_at: datetime | None = None
    seller_account_id: str | None = None

    buyer_name: str | None = None
    buyer_email: str | None = None
    buyer_phone: str | None = None
    buyer_invited_at: datetime | None = None
    buyer_account_id: str | None = None

    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("current_stage")
    @classmethod
    def _blank_stage_is_none(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            return None
        return v


class ConveyancerRecord(BaseModel):
    """Directory entry for a conveyancing firm."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    firm_name: str
    contact_name: str
    email: str
    phone: str | None = None
    address_line1: str | None = None
    town: str | None = None
    county: str | None = None
    postcode: str | None = None
    rating: float = Field(default=0.0, ge=0, le=5)
    review_count: int = Field(default=0, ge=0)
    transactions_completed: int = Field(default=0, ge=0)
    fixed_fee: Decimal | None = Field(default=None, ge=0)
    accreditations: list[str] = Field(default_factory=list)
    is_active: bool = True

    @field_validator("accreditations", mode="before")
    @classmethod
    def _null_accreditations(cls, v):
        return [] if v is None else v


class ConveyancerInviteRecord(BaseModel):
    """A transaction's invitation to a conveyancer."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    transaction_id: str
    conveyancer_id: str | None = None
    firm_name: str
    contact_name: str | None = None
    email: str
    phone: str | None = None
    status: InviteStatus
    invited_at: datetime
    invited_by: str | None = None
    responded_at: datetime | None = None
    superseded_at: datetime | None = None

    @property
    def is_current(self) -> bool:
        return self.superseded_at is None


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class TransactionCreate(BaseModel):
    """Schema for an agent creating a property transaction."""

    transaction_type: TransactionType = TransactionType.ACTING_FOR_SELLER
    address_line1: str = Field(min_length=1)
    address_line2: str | None = None
    city: str | None = None
    postcode: str | None = None
    price: Decimal | None = Field(default=None, ge=0)
    property_type: str | None = None
    bedrooms: int | None = Field(default=None, ge=0)
    seller_name: str | None = None
    seller_email: str | None = None
    seller_phone: str | None = None
    buyer_name: str | None = None
    buyer_email: str | None = None
    buyer_phone: str | None = None


class ConveyancerInviteCreate(BaseModel):
    """Invite either a directory conveyancer (by id) or an external firm (by details)."""

    conveyancer_id: str | None = None
    firm_name: str | None = None
    contact_name: str | None = None
    email: str | None = None
    phone: str | None = None

    @model_validator(mode="after")
    def _directory_or_external(self):
        if self.conveyancer_id is None and not (self.firm_name and self.email):
            raise ValueError("Provide conveyancer_id, or firm_name and email for an external firm")
        return self


class InviteResponse(BaseModel):
    decision: InviteDecision


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class MilestoneView(BaseModel):
    """A catalog milestone with its status for one transaction and one viewer."""

    position: int
    name: str
    description: str
    owner: MilestoneOwner
    action_label: str
    status: MilestoneStatus
    can_complete: bool = False


class PartyView(BaseModel):
    party: Party
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    state: PartyInviteState
    invited_at: Optional[datetime] = None


class ConveyancerView(BaseModel):
    """Directory entry as shown in search results."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    firm_name: str
    contact_name: str
    email: str
    phone: str | None = None
    town: str | None = None
    county: str | None = None
    postcode: str | None = None
    rating: float
    review_count: int
    transactions_completed: int
    fixed_fee: Decimal | None = None
    accreditations: list[str] = []
    is_active: bool


class ConveyancerInviteView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    transaction_id: str
    conveyancer_id: str | None = None
    firm_name: str
    contact_name: str | None = None
    email: str
    phone: str | None = None
    status: InviteStatus
    invited_at: datetime
    invited_by: str | None = None
    responded_at: datetime | None = None
    is_current: bool


class TransactionView(BaseModel):
    """Transaction detail for the dashboard, computed for the requesting role."""

    id: str
    reference_number: str
    transaction_type: TransactionType
    address_line1: str
    address_line2: str | None = None
    city: str | None = None
    postcode: str | None = None
    price: Decimal | None = None
    property_type: str | None = None
    bedrooms: int | None = None
    current_stage: str | None = None
    progress_percentage: int
    current_milestone: str | None = None
    milestones: list[MilestoneView]
    allowed_actions: list[str] = []
    parties: list[PartyView] = []
    conveyancer_invite: ConveyancerInviteView | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class TransactionEventView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    transaction_id: str
    event_type: str
    actor_role: str | None = None
    actor_id: str | None = None
    from_stage: str | None = None
    to_stage: str | None = None
    data: dict | None = None
    created_at: datetime | None = None
