"""Conveyancer directory and conveyancer invite endpoints."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from documove.app.routes.auth import Actor, get_current_actor_dep, http_error, require_role
from documove.domain.enums import Role
from documove.domain.errors import WorkflowError
from documove.domain.schemas import ConveyancerInviteCreate, ConveyancerView, InviteResponse
from documove.infra.database import get_db
from documove.services.conveyancer_assignment import ConveyancerAssignmentService
from documove.services.conveyancer_directory import ConveyancerDirectory
from documove.services.transaction_serializer import serialize_invite
from documove.services.transaction_service import TransactionService

router = APIRouter(prefix="/api/conveyancers", tags=["conveyancers"])
invites_router = APIRouter(prefix="/api", tags=["conveyancer-invites"])


# ---------------------------------------------------------------------------
# Directory
# ---------------------------------------------------------------------------


@router.get("")
async def search_conveyancers(
    q: str = Query("", description="Matches contact name, firm name or town"),
    active_only: bool = Query(True),
    actor: Actor = Depends(get_current_actor_dep),
    db: AsyncSession = Depends(get_db),
):
    """Search the directory, best-rated first."""
    try:
        entries = await ConveyancerDirectory(db).search(q, active_only=active_only).all()
    except WorkflowError as e:
        raise http_error(e)
    return [ConveyancerView.model_validate(c).model_dump(mode="json") for c in entries]


@router.get("/{conveyancer_id}")
async def get_conveyancer(
    conveyancer_id: str,
    actor: Actor = Depends(get_current_actor_dep),
    db: AsyncSession = Depends(get_db),
):
    try:
        entry = await ConveyancerDirectory(db).get(conveyancer_id)
    except WorkflowError as e:
        raise http_error(e)
    return ConveyancerView.model_validate(entry).model_dump(mode="json")


# ---------------------------------------------------------------------------
# Invites
# ---------------------------------------------------------------------------


@invites_router.post("/transactions/{transaction_id}/conveyancer-invites", status_code=201)
async def invite_conveyancer(
    transaction_id: str,
    body: ConveyancerInviteCreate,
    actor: Actor = Depends(require_role(Role.AGENT)),
    db: AsyncSession = Depends(get_db),
):
    """Invite a directory conveyancer (by id) or an external firm onto a transaction."""
    svc = ConveyancerAssignmentService(db)
    try:
        if body.conveyancer_id:
            invite = await svc.invite(transaction_id, body.conveyancer_id, invited_by=actor.id)
        else:
            invite = await svc.invite_external(
                transaction_id,
                firm_name=body.firm_name,
                email=body.email,
                contact_name=body.contact_name,
                phone=body.phone,
                invited_by=actor.id,
            )
        await db.commit()
    except WorkflowError as e:
        raise http_error(e)
    return serialize_invite(invite).model_dump(mode="json")


@invites_router.get("/transactions/{transaction_id}/conveyancer-invites")
async def list_conveyancer_invites(
    transaction_id: str,
    actor: Actor = Depends(get_current_actor_dep),
    db: AsyncSession = Depends(get_db),
):
    """Invite history for a transaction, newest first."""
    try:
        await TransactionService(db).get_transaction(transaction_id)
        invites = await ConveyancerAssignmentService(db).list_invites(transaction_id)
    except WorkflowError as e:
        raise http_error(e)
    return [serialize_invite(i).model_dump(mode="json") for i in invites]


@invites_router.get("/transactions/{transaction_id}/conveyancer-invites/current")
async def get_current_conveyancer_invite(
    transaction_id: str,
    actor: Actor = Depends(get_current_actor_dep),
    db: AsyncSession = Depends(get_db),
):
    """The transaction's current conveyancer invite, or null if none was sent."""
    try:
        await TransactionService(db).get_transaction(transaction_id)
        invite = await ConveyancerAssignmentService(db).current_invite(transaction_id)
    except WorkflowError as e:
        raise http_error(e)
    return serialize_invite(invite).model_dump(mode="json") if invite else None


@invites_router.post("/conveyancer-invites/{invite_id}/respond")
async def respond_to_invite(
    invite_id: str,
    body: InviteResponse,
    actor: Actor = Depends(require_role(Role.CONVEYANCER, Role.SOLICITOR)),
    db: AsyncSession = Depends(get_db),
):
    """Conveyancer accepts or declines an instruction."""
    try:
        invite = await ConveyancerAssignmentService(db).respond(invite_id, body.decision, actor_id=actor.id)
        await db.commit()
    except WorkflowError as e:
        raise http_error(e)
    return serialize_invite(invite).model_dump(mode="json")
