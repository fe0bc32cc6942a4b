"""Serialization: validated transaction records -> role-aware dashboard views."""

from typing import Optional

from documove.domain.enums import MilestoneStatus, Party, Role
from documove.domain.schemas import (
    ConveyancerInviteRecord,
    ConveyancerInviteView,
    MilestoneView,
    TransactionRecord,
    TransactionView,
)
from documove.services.milestone_state_machine import MilestoneStateMachine
from documove.services.party_invitation import party_view


def serialize_invite(invite: ConveyancerInviteRecord) -> ConveyancerInviteView:
    return ConveyancerInviteView.model_validate(invite, from_attributes=True)


def serialize_milestones(
    transaction: TransactionRecord,
    role: Role,
    state_machine: MilestoneStateMachine,
    invite: Optional[ConveyancerInviteRecord] = None,
) -> list[MilestoneView]:
    """Milestone timeline with status, plus whether ``role`` can complete each one now."""
    return [
        MilestoneView(
            position=p.milestone.position,
            name=p.milestone.name,
            description=p.milestone.description,
            owner=p.milestone.owner,
            action_label=p.milestone.action_label,
            status=p.status,
            can_complete=(
                p.status == MilestoneStatus.CURRENT
                and state_machine.can_advance(p.milestone, role, invite)
            ),
        )
        for p in state_machine.derive_status(transaction.current_stage)
    ]


def serialize_transaction(
    transaction: TransactionRecord,
    role: Role,
    state_machine: MilestoneStateMachine,
    invite: Optional[ConveyancerInviteRecord] = None,
) -> TransactionView:
    """Produce the transaction detail view for a viewer with ``role``."""
    current = state_machine.current_index(transaction.current_stage)
    return TransactionView(
        id=transaction.id,
        reference_number=transaction.reference_number,
        transaction_type=transaction.transaction_type,
        address_line1=transaction.address_line1,
        address_line2=transaction.address_line2,
        city=transaction.city,
        postcode=transaction.postcode,
        price=transaction.price,
        property_type=transaction.property_type,
        bedrooms=transaction.bedrooms,
        current_stage=transaction.current_stage,
        progress_percentage=state_machine.progress_for(transaction.current_stage),
        current_milestone=state_machine.catalog[current].name if current is not None else None,
        milestones=serialize_milestones(transaction, role, state_machine, invite),
        allowed_actions=state_machine.allowed_actions(transaction.current_stage, role, invite),
        parties=[party_view(transaction, Party.SELLER), party_view(transaction, Party.BUYER)],
        conveyancer_invite=serialize_invite(invite) if invite else None,
        created_at=transaction.created_at,
        updated_at=transaction.updated_at,
    )
