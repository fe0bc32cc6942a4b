"""Domain enumerations for the Documove transaction engine.

All enums use the (str, Enum) pattern to ensure JSON serialization compatibility.
"""

from enum import Enum


class Role(str, Enum):
    """Role of an authenticated actor, read from their stored profile."""

    AGENT = "agent"
    CONVEYANCER = "conveyancer"
    SOLICITOR = "solicitor"  # treated as a conveyancer for milestone ownership
    BUYER = "buyer"
    SELLER = "seller"


class TransactionType(str, Enum):
    """Which side of the sale the agent is acting for. Drives labelling only."""

    ACTING_FOR_BUYER = "acting_for_buyer"
    ACTING_FOR_SELLER = "acting_for_seller"


class MilestoneOwner(str, Enum):
    """Who may complete a milestone."""

    AGENT = "agent"
    CONVEYANCER = "conveyancer"
    BOTH = "both"


class MilestoneStatus(str, Enum):
    """Display status of a milestone relative to a transaction's current stage."""

    COMPLETED = "completed"
    CURRENT = "current"
    LOCKED = "locked"


class InviteStatus(str, Enum):
    """Lifecycle of a conveyancer invite. Party invites use pending and accepted."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class InviteDecision(str, Enum):
    """A conveyancer's answer to an invite."""

    ACCEPT = "accept"
    DECLINE = "decline"


class Party(str, Enum):
    """Lay party to a transaction who can be invited to create an account."""

    SELLER = "seller"
    BUYER = "buyer"


class PartyInviteState(str, Enum):
    """Derived invitation state of a seller or buyer."""

    NOT_INVITED = "not_invited"
    INVITED = "invited"
    ACCEPTED = "accepted"


class TransactionEventType(str, Enum):
    """Types of audit events recorded against a transaction."""

    CREATED = "created"
    MILESTONE_COMPLETED = "milestone_completed"
    PARTY_INVITED = "party_invited"
    PARTY_ACCEPTED = "party_accepted"
    CONVEYANCER_INVITED = "conveyancer_invited"
    CONVEYANCER_INVITE_SUPERSEDED = "conveyancer_invite_superseded"
    CONVEYANCER_ACCEPTED = "conveyancer_accepted"
    CONVEYANCER_DECLINED = "conveyancer_declined"
