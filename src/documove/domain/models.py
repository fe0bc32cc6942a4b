"""SQLAlchemy ORM models for Documove.

All models use SQLite-compatible types:
- String(36) for UUID primary keys
- JSON for structured data (no JSONB)
- DateTime for timestamps (no TIMESTAMPTZ)
"""

import uuid

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from documove.infra.database import Base


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


class Profile(Base):
    """Stored profile of an authenticated actor. The id is the identity provider's user id."""

    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    role = Column(String(20), nullable=False, default="agent")  # agent, conveyancer, solicitor, buyer, seller
    created_at = Column(DateTime, default=func.now())


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


class Transaction(Base):
    """One property under management and its progression through the milestone catalog."""

    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    reference_number = Column(String(20), unique=True, nullable=False)
    # Identity-provider user id; the actor need not have a stored profile
    agent_id = Column(String(36), nullable=True, index=True)
    transaction_type = Column(String(30), nullable=False, default="acting_for_seller")

    # Property
    address_line1 = Column(String(255), nullable=False)
    address_line2 = Column(String(255))
    city = Column(String(100))
    postcode = Column(String(10))
    price = Column(Numeric(12, 2))
    property_type = Column(String(50))  # detached, semi-detached, terraced, flat, bungalow
    bedrooms = Column(Integer)

    # Workflow state: name of the last completed milestone, NULL until the first
    current_stage = Column(String(100), nullable=True)
    progress_percentage = Column(Integer, nullable=False, default=0)

    # Seller
    seller_name = Column(String(255))
    seller_email = Column(String(255))
    seller_phone = Column(String(50))
    seller_invited_at = Column(DateTime, nullable=True)
    seller_account_id = Column(String(36), nullable=True)

    # Buyer
    buyer_name = Column(String(255))
    buyer_email = Column(String(255))
    buyer_phone = Column(String(50))
    buyer_invited_at = Column(DateTime, nullable=True)
    buyer_account_id = Column(String(36), nullable=True)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    # Relationships
    conveyancer_invites = relationship("ConveyancerInvite", back_populates="transaction")
    party_invites = relationship("PartyInvite", back_populates="transaction")
    events = relationship("TransactionEvent", back_populates="transaction")


class TransactionEvent(Base):
    """Audit record for every mutation of a transaction."""

    __tablename__ = "transaction_events"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    transaction_id = Column(String(36), ForeignKey("transactions.id"), nullable=False, index=True)
    event_type = Column(String(50), nullable=False)
    actor_role = Column(String(20))
    actor_id = Column(String(36))
    from_stage = Column(String(100))
    to_stage = Column(String(100))
    data = Column(JSON)
    created_at = Column(DateTime, default=func.now())

    transaction = relationship("Transaction", back_populates="events")


# ---------------------------------------------------------------------------
# Conveyancers
# ---------------------------------------------------------------------------


class Conveyancer(Base):
    """Directory entry for a conveyancing firm. Ratings are directory-wide aggregates."""

    __tablename__ = "conveyancers"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    firm_name = Column(String(255), nullable=False)
    contact_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(50))
    address_line1 = Column(String(255))
    town = Column(String(100), index=True)
    county = Column(String(100))
    postcode = Column(String(10))
    rating = Column(Float, nullable=False, default=0.0)
    review_count = Column(Integer, nullable=False, default=0)
    transactions_completed = Column(Integer, nullable=False, default=0)
    fixed_fee = Column(Numeric(10, 2), nullable=True)
    accreditations = Column(JSON, default=[])  # e.g. ["CQS", "SRA"]
    is_active = Column(Boolean, default=True, index=True)
    created_at = Column(DateTime, default=func.now())

    invites = relationship("ConveyancerInvite", back_populates="conveyancer")


class ConveyancerInvite(Base):
    """A transaction's invitation to a conveyancer.

    The firm and contact details are snapshotted at invite time so later
    directory edits do not rewrite history. Only the invite with
    superseded_at IS NULL is current for its transaction.
    """

    __tablename__ = "conveyancer_invites"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    transaction_id = Column(String(36), ForeignKey("transactions.id"), nullable=False, index=True)
    conveyancer_id = Column(String(36), ForeignKey("conveyancers.id"), nullable=True)
    firm_name = Column(String(255), nullable=False)
    contact_name = Column(String(255))
    email = Column(String(255), nullable=False)
    phone = Column(String(50))
    status = Column(String(20), nullable=False, default="pending")  # pending, accepted, declined
    invited_at = Column(DateTime, nullable=False, default=func.now())
    invited_by = Column(String(36))
    responded_at = Column(DateTime, nullable=True)
    superseded_at = Column(DateTime, nullable=True)

    transaction = relationship("Transaction", back_populates="conveyancer_invites")
    conveyancer = relationship("Conveyancer", back_populates="invites")


# ---------------------------------------------------------------------------
# Party invites
# ---------------------------------------------------------------------------


class PartyInvite(Base):
    """Account-creation link sent to a seller or buyer."""

    __tablename__ = "party_invites"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    transaction_id = Column(String(36), ForeignKey("transactions.id"), nullable=False, index=True)
    party = Column(String(10), nullable=False)  # seller, buyer
    email = Column(String(255), nullable=False)
    name = Column(String(255))
    token = Column(String(100), unique=True, nullable=False, index=True)
    status = Column(String(20), nullable=False, default="pending")  # pending, accepted
    invited_by = Column(String(36))
    created_at = Column(DateTime, default=func.now())
    accepted_at = Column(DateTime, nullable=True)
    account_id = Column(String(36), nullable=True)

    transaction = relationship("Transaction", back_populates="party_invites")
