"""Transaction API endpoints.

Creation, role-aware detail views, milestone completion, the audit timeline,
seller/buyer invites and their acceptance. Every milestone change goes
through the MilestoneStateMachine and produces a TransactionEvent audit record.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from documove.app.routes.auth import (
    Actor,
    get_current_actor_dep,
    get_state_machine,
    http_error,
    require_role,
)
from documove.domain.enums import Party, Role, TransactionType
from documove.domain.errors import WorkflowError
from documove.domain.schemas import TransactionCreate, TransactionEventView, TransactionRecord
from documove.infra.database import get_db
from documove.services.invite_queries import get_current_invite
from documove.services.milestone_state_machine import MilestoneStateMachine
from documove.services.party_invitation import PartyInvitationService
from documove.services.transaction_serializer import serialize_transaction
from documove.services.transaction_service import TransactionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/transactions", tags=["transactions"])
party_invites_router = APIRouter(prefix="/api/invites", tags=["invites"])


async def _view(
    db: AsyncSession,
    state_machine: MilestoneStateMachine,
    transaction: TransactionRecord,
    role: Role,
) -> dict:
    invite = await get_current_invite(db, transaction.id)
    return serialize_transaction(transaction, role, state_machine, invite).model_dump(mode="json")


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("", status_code=201)
async def create_transaction(
    body: TransactionCreate,
    actor: Actor = Depends(require_role(Role.AGENT)),
    db: AsyncSession = Depends(get_db),
    state_machine: MilestoneStateMachine = Depends(get_state_machine),
):
    """Agent creates a transaction for a property."""
    svc = TransactionService(db, state_machine)
    transaction = await svc.create_transaction(actor.id, body)
    await db.commit()
    return await _view(db, state_machine, transaction, actor.role)


@router.get("")
async def list_transactions(
    transaction_type: Optional[TransactionType] = Query(None),
    mine: bool = Query(False, description="Only transactions created by the calling agent"),
    actor: Actor = Depends(get_current_actor_dep),
    db: AsyncSession = Depends(get_db),
    state_machine: MilestoneStateMachine = Depends(get_state_machine),
):
    """List transactions, newest first."""
    svc = TransactionService(db, state_machine)
    agent_id = actor.id if mine else None
    try:
        transactions = await svc.list_transactions(agent_id=agent_id, transaction_type=transaction_type)
        return [await _view(db, state_machine, t, actor.role) for t in transactions]
    except WorkflowError as e:
        raise http_error(e)


@router.get("/{transaction_id}")
async def get_transaction(
    transaction_id: str,
    actor: Actor = Depends(get_current_actor_dep),
    db: AsyncSession = Depends(get_db),
    state_machine: MilestoneStateMachine = Depends(get_state_machine),
):
    """Transaction detail with milestone timeline and the caller's allowed actions."""
    svc = TransactionService(db, state_machine)
    try:
        transaction = await svc.get_transaction(transaction_id)
        return await _view(db, state_machine, transaction, actor.role)
    except WorkflowError as e:
        raise http_error(e)


@router.post("/{transaction_id}/milestones/{milestone_index}/complete")
async def complete_milestone(
    transaction_id: str,
    milestone_index: int,
    actor: Actor = Depends(get_current_actor_dep),
    db: AsyncSession = Depends(get_db),
    state_machine: MilestoneStateMachine = Depends(get_state_machine),
):
    """Complete the transaction's current milestone."""
    svc = TransactionService(db, state_machine)
    try:
        transaction = await svc.advance_milestone(
            transaction_id, milestone_index, actor.role, actor_id=actor.id
        )
        await db.commit()
    except WorkflowError as e:
        logger.info(
            "Rejected milestone %s on transaction %s for %s: %s",
            milestone_index, transaction_id, actor.role.value, e.code,
        )
        raise http_error(e)

    return await _view(db, state_machine, transaction, actor.role)


@router.get("/{transaction_id}/timeline")
async def get_timeline(
    transaction_id: str,
    actor: Actor = Depends(get_current_actor_dep),
    db: AsyncSession = Depends(get_db),
):
    """Audit timeline for a transaction."""
    svc = TransactionService(db)
    try:
        events = await svc.list_events(transaction_id)
    except WorkflowError as e:
        raise http_error(e)
    return [TransactionEventView.model_validate(e).model_dump(mode="json") for e in events]


@router.post("/{transaction_id}/parties/{party}/invite")
async def invite_party(
    transaction_id: str,
    party: Party,
    actor: Actor = Depends(require_role(Role.AGENT)),
    db: AsyncSession = Depends(get_db),
    state_machine: MilestoneStateMachine = Depends(get_state_machine),
):
    """Send the seller or buyer an account invite."""
    try:
        await PartyInvitationService(db).invite(transaction_id, party, invited_by=actor.id)
        await db.commit()
        transaction = await TransactionService(db, state_machine).get_transaction(transaction_id)
    except WorkflowError as e:
        raise http_error(e)

    return await _view(db, state_machine, transaction, actor.role)


def _party_invite_payload(invite, transaction: TransactionRecord) -> dict:
    return {
        "party": invite.party,
        "name": invite.name,
        "email": invite.email,
        "status": invite.status,
        "address": transaction.address_line1,
        "postcode": transaction.postcode,
        "reference_number": transaction.reference_number,
    }


@party_invites_router.get("/{token}")
async def get_party_invite(token: str, db: AsyncSession = Depends(get_db)):
    """Public lookup used by the invite acceptance page. Used tokens are 404."""
    invite = await PartyInvitationService(db, notify=False).get_by_token(token)
    if invite is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "This invite link is invalid or has expired."},
        )
    try:
        transaction = await TransactionService(db).get_transaction(invite.transaction_id)
    except WorkflowError as e:
        raise http_error(e)

    return _party_invite_payload(invite, transaction)


@party_invites_router.post("/{token}/accept")
async def accept_party_invite(
    token: str,
    actor: Actor = Depends(get_current_actor_dep),
    db: AsyncSession = Depends(get_db),
):
    """Redeem an invite for the newly signed-up account and link it to the transaction."""
    try:
        invite = await PartyInvitationService(db, notify=False).accept(token, account_id=actor.id)
        await db.commit()
        transaction = await TransactionService(db).get_transaction(invite.transaction_id)
    except WorkflowError as e:
        raise http_error(e)

    payload = _party_invite_payload(invite, transaction)
    payload["transaction_id"] = transaction.id
    return payload
