"""Party invitation — account invites for a transaction's seller and buyer.

not_invited → invited is a one-shot transition stored as ``<party>_invited_at``.
Accepting the invite links the new account as ``<party>_account_id``; the
party's state is always derived from those two columns.
"""

import logging
import secrets
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from documove.domain.enums import (
    InviteStatus,
    Party,
    PartyInviteState,
    Role,
    TransactionEventType,
)
from documove.domain.errors import (
    AlreadyInvitedError,
    EntityNotFoundError,
    InvalidTransitionError,
    MissingContactError,
)
from documove.domain.models import PartyInvite, Transaction
from documove.domain.schemas import PartyView, TransactionRecord
from documove.services.email_service import notify_after_commit, send_party_invite
from documove.services.transaction_service import TransactionService, record_event

logger = logging.getLogger(__name__)

INVITED_AT_COLUMNS = {
    Party.SELLER: Transaction.seller_invited_at,
    Party.BUYER: Transaction.buyer_invited_at,
}

ACCOUNT_ID_COLUMNS = {
    Party.SELLER: Transaction.seller_account_id,
    Party.BUYER: Transaction.buyer_account_id,
}


def _field(transaction: TransactionRecord, party: Party, name: str):
    return getattr(transaction, f"{party.value}_{name}")


def party_state(transaction: TransactionRecord, party: Party) -> PartyInviteState:
    """Derive the invitation state of ``party`` on ``transaction``."""
    if _field(transaction, party, "invited_at") is None:
        return PartyInviteState.NOT_INVITED
    if _field(transaction, party, "account_id"):
        return PartyInviteState.ACCEPTED
    return PartyInviteState.INVITED


def party_view(transaction: TransactionRecord, party: Party) -> PartyView:
    return PartyView(
        party=party,
        name=_field(transaction, party, "name"),
        email=_field(transaction, party, "email"),
        phone=_field(transaction, party, "phone"),
        state=party_state(transaction, party),
        invited_at=_field(transaction, party, "invited_at"),
    )


class PartyInvitationService:
    """Sends one-shot account invites to a transaction's seller and buyer."""

    def __init__(self, db: AsyncSession, notify: bool = True):
        self.db = db
        self.notify = notify

    async def invite(
        self,
        transaction_id: str,
        party: Party,
        invited_by: Optional[str] = None,
    ) -> PartyInvite:
        """Re-read the transaction and invite ``party``."""
        transaction = await TransactionService(self.db).get_transaction(transaction_id)
        return await self.apply_invite(transaction, party, invited_by)

    async def apply_invite(
        self,
        transaction: TransactionRecord,
        party: Party,
        invited_by: Optional[str] = None,
    ) -> PartyInvite:
        """Stamp ``<party>_invited_at`` and issue an invite token.

        Raises MissingContactError when the party has no email and
        AlreadyInvitedError when they were invited before, including after
        ``transaction`` was read (a concurrent request won the race).
        The email is queued and only goes out once the session commits.
        """
        email = _field(transaction, party, "email")
        if not email or not email.strip():
            raise MissingContactError(f"The {party.value} has no email address to invite")
        if _field(transaction, party, "invited_at") is not None:
            raise AlreadyInvitedError(f"The {party.value} has already been invited")

        now = datetime.now(timezone.utc)
        invited_at = INVITED_AT_COLUMNS[party]
        result = await self.db.execute(
            update(Transaction)
            .where(Transaction.id == transaction.id, invited_at.is_(None))
            .values({invited_at: now, Transaction.updated_at: now})
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise AlreadyInvitedError(f"The {party.value} has already been invited")

        invite = PartyInvite(
            id=str(uuid.uuid4()),
            transaction_id=transaction.id,
            party=party.value,
            email=email.strip(),
            name=_field(transaction, party, "name"),
            token=secrets.token_urlsafe(32),
            status=InviteStatus.PENDING.value,
            invited_by=invited_by,
            created_at=now,
        )
        self.db.add(invite)
        await self.db.flush()

        await record_event(
            self.db,
            transaction.id,
            TransactionEventType.PARTY_INVITED,
            actor_role=Role.AGENT,
            actor_id=invited_by,
            data={"party": party.value, "email": invite.email},
        )
        logger.info("Transaction %s: invited %s %s", transaction.id, party.value, invite.email)

        if self.notify:
            notify_after_commit(
                self.db,
                send_party_invite,
                invite.email,
                invite.token,
                {
                    "name": invite.name,
                    "party": party.value,
                    "address": transaction.address_line1,
                },
            )
        return invite

    async def _find(self, token: str) -> Optional[PartyInvite]:
        result = await self.db.execute(
            select(PartyInvite)
            .where(PartyInvite.token == token)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_token(self, token: str) -> Optional[PartyInvite]:
        """Look up a still-pending invite by its token; used invites resolve to None."""
        invite = await self._find(token)
        if invite is None or invite.status != InviteStatus.PENDING.value:
            return None
        return invite

    async def accept(self, token: str, account_id: str) -> PartyInvite:
        """Mark the invite accepted and link ``account_id`` to the invited party.

        The update only matches a pending invite, so a token can be redeemed
        once; a second (or concurrent) redemption raises InvalidTransitionError.
        """
        invite = await self._find(token)
        if invite is None:
            raise EntityNotFoundError("This invite link is invalid or has expired.")

        now = datetime.now(timezone.utc)
        result = await self.db.execute(
            update(PartyInvite)
            .where(PartyInvite.id == invite.id, PartyInvite.status == InviteStatus.PENDING.value)
            .values(status=InviteStatus.ACCEPTED.value, accepted_at=now, account_id=account_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise InvalidTransitionError(
                "This invite has already been used",
                current_status=InviteStatus.ACCEPTED.value,
            )

        party = Party(invite.party)
        await self.db.execute(
            update(Transaction)
            .where(Transaction.id == invite.transaction_id)
            .values({ACCOUNT_ID_COLUMNS[party]: account_id, Transaction.updated_at: now})
            .execution_options(synchronize_session=False)
        )
        await record_event(
            self.db,
            invite.transaction_id,
            TransactionEventType.PARTY_ACCEPTED,
            actor_role=Role(party.value),
            actor_id=account_id,
            data={"party": party.value, "invite_id": invite.id},
        )
        logger.info(
            "Transaction %s: %s accepted invite %s (account=%s)",
            invite.transaction_id, party.value, invite.id, account_id,
        )
        return await self._find(token)
