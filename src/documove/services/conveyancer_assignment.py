"""Conveyancer assignment — invites a conveyancer onto a transaction and tracks the answer.

An invite moves pending → accepted or pending → declined, once. A newer invite
for the same transaction supersedes older ones (they are kept, stamped with
superseded_at); the non-superseded invite is the transaction's current one.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from documove.domain.enums import InviteDecision, InviteStatus, Role, TransactionEventType
from documove.domain.errors import EntityNotFoundError, InvalidTransitionError
from documove.domain.models import ConveyancerInvite
from documove.domain.schemas import ConveyancerInviteRecord, TransactionRecord, load_record
from documove.services.conveyancer_directory import ConveyancerDirectory
from documove.services.email_service import notify_after_commit, send_conveyancer_invite
from documove.services.invite_queries import get_current_invite
from documove.services.transaction_service import TransactionService, record_event

logger = logging.getLogger(__name__)

DECISION_STATUS: dict[InviteDecision, InviteStatus] = {
    InviteDecision.ACCEPT: InviteStatus.ACCEPTED,
    InviteDecision.DECLINE: InviteStatus.DECLINED,
}

DECISION_EVENT: dict[InviteDecision, TransactionEventType] = {
    InviteDecision.ACCEPT: TransactionEventType.CONVEYANCER_ACCEPTED,
    InviteDecision.DECLINE: TransactionEventType.CONVEYANCER_DECLINED,
}


class ConveyancerAssignmentService:
    """Creates conveyancer invites and records responses."""

    def __init__(self, db: AsyncSession, notify: bool = True):
        self.db = db
        self.notify = notify

    async def invite(
        self,
        transaction_id: str,
        conveyancer_id: str,
        invited_by: Optional[str] = None,
    ) -> ConveyancerInviteRecord:
        """Invite a directory conveyancer; any earlier invite stops being current."""
        transaction = await TransactionService(self.db).get_transaction(transaction_id)
        conveyancer = await ConveyancerDirectory(self.db).get(conveyancer_id)
        if not conveyancer.is_active:
            raise EntityNotFoundError(f"Conveyancer {conveyancer_id} is not active in the directory")

        return await self._create_invite(
            transaction,
            conveyancer_id=conveyancer.id,
            firm_name=conveyancer.firm_name,
            contact_name=conveyancer.contact_name,
            email=conveyancer.email,
            phone=conveyancer.phone,
            invited_by=invited_by,
        )

    async def invite_external(
        self,
        transaction_id: str,
        firm_name: str,
        email: str,
        contact_name: Optional[str] = None,
        phone: Optional[str] = None,
        invited_by: Optional[str] = None,
    ) -> ConveyancerInviteRecord:
        """Invite a firm that is not in the directory."""
        transaction = await TransactionService(self.db).get_transaction(transaction_id)
        return await self._create_invite(
            transaction,
            conveyancer_id=None,
            firm_name=firm_name,
            contact_name=contact_name,
            email=email,
            phone=phone,
            invited_by=invited_by,
        )

    async def _create_invite(
        self,
        transaction: TransactionRecord,
        conveyancer_id: Optional[str],
        firm_name: str,
        contact_name: Optional[str],
        email: str,
        phone: Optional[str],
        invited_by: Optional[str],
    ) -> ConveyancerInviteRecord:
        now = datetime.now(timezone.utc)

        superseded = await self.db.execute(
            update(ConveyancerInvite)
            .where(
                ConveyancerInvite.transaction_id == transaction.id,
                ConveyancerInvite.superseded_at.is_(None),
            )
            .values(superseded_at=now)
            .execution_options(synchronize_session=False)
        )
        if superseded.rowcount:
            await record_event(
                self.db,
                transaction.id,
                TransactionEventType.CONVEYANCER_INVITE_SUPERSEDED,
                actor_role=Role.AGENT,
                actor_id=invited_by,
                data={"superseded": superseded.rowcount},
            )

        invite = ConveyancerInvite(
            id=str(uuid.uuid4()),
            transaction_id=transaction.id,
            conveyancer_id=conveyancer_id,
            firm_name=firm_name,
            contact_name=contact_name,
            email=email,
            phone=phone,
            status=InviteStatus.PENDING.value,
            invited_at=now,
            invited_by=invited_by,
        )
        self.db.add(invite)
        await self.db.flush()

        await record_event(
            self.db,
            transaction.id,
            TransactionEventType.CONVEYANCER_INVITED,
            actor_role=Role.AGENT,
            actor_id=invited_by,
            data={"invite_id": invite.id, "conveyancer_id": conveyancer_id, "firm_name": firm_name},
        )
        logger.info(
            "Transaction %s: invited conveyancer %s (%s), invite %s",
            transaction.id,
            firm_name,
            conveyancer_id or "external",
            invite.id,
        )

        if self.notify:
            notify_after_commit(
                self.db,
                send_conveyancer_invite,
                email,
                {
                    "invite_id": invite.id,
                    "firm_name": firm_name,
                    "contact_name": contact_name,
                    "address": transaction.address_line1,
                    "reference_number": transaction.reference_number,
                },
            )

        return load_record(ConveyancerInviteRecord, invite)

    async def get_invite(self, invite_id: str) -> ConveyancerInviteRecord:
        result = await self.db.execute(
            select(ConveyancerInvite)
            .where(ConveyancerInvite.id == invite_id)
            .execution_options(populate_existing=True)
        )
        invite = result.scalar_one_or_none()
        if invite is None:
            raise EntityNotFoundError(f"Conveyancer invite {invite_id} not found")
        return load_record(ConveyancerInviteRecord, invite)

    async def current_invite(self, transaction_id: str) -> Optional[ConveyancerInviteRecord]:
        return await get_current_invite(self.db, transaction_id)

    async def list_invites(self, transaction_id: str) -> list[ConveyancerInviteRecord]:
        """Every invite for a transaction, newest first."""
        result = await self.db.execute(
            select(ConveyancerInvite)
            .where(ConveyancerInvite.transaction_id == transaction_id)
            .order_by(ConveyancerInvite.invited_at.desc())
            .execution_options(populate_existing=True)
        )
        return [load_record(ConveyancerInviteRecord, i) for i in result.scalars().all()]

    async def respond(
        self,
        invite_id: str,
        decision: InviteDecision,
        actor_id: Optional[str] = None,
    ) -> ConveyancerInviteRecord:
        """Accept or decline a pending invite.

        The update only matches while the invite is still pending, so a second
        answer (or a concurrent one) raises InvalidTransitionError and leaves the
        stored status untouched.
        """
        invite = await self.get_invite(invite_id)
        new_status = DECISION_STATUS[decision]

        result = await self.db.execute(
            update(ConveyancerInvite)
            .where(
                ConveyancerInvite.id == invite_id,
                ConveyancerInvite.status == InviteStatus.PENDING.value,
            )
            .values(status=new_status.value, responded_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            current = await self.get_invite(invite_id)
            raise InvalidTransitionError(
                f"Invite {invite_id} is already {current.status.value}",
                current_status=current.status.value,
            )

        await record_event(
            self.db,
            invite.transaction_id,
            DECISION_EVENT[decision],
            actor_role=Role.CONVEYANCER,
            actor_id=actor_id,
            data={"invite_id": invite_id, "current": invite.is_current},
        )
        logger.info(
            "Conveyancer invite %s: %s → %s (actor=%s)",
            invite_id,
            invite.status.value,
            new_status.value,
            actor_id,
        )
        return await self.get_invite(invite_id)
