"""Read-side queries over conveyancer invites shared by the workflow services."""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from documove.domain.models import ConveyancerInvite
from documove.domain.schemas import ConveyancerInviteRecord, load_record


async def get_current_invite(db: AsyncSession, transaction_id: str) -> Optional[ConveyancerInviteRecord]:
    """The transaction's current invite, or None if no conveyancer was ever invited.

    Prefers the non-superseded invite; falls back to the most recent by invited_at.
    """
    result = await db.execute(
        select(ConveyancerInvite)
        .where(ConveyancerInvite.transaction_id == transaction_id)
        .order_by(
            ConveyancerInvite.superseded_at.is_(None).desc(),
            ConveyancerInvite.invited_at.desc(),
        )
        .limit(1)
        .execution_options(populate_existing=True)
    )
    invite = result.scalar_one_or_none()
    if invite is None:
        return None
    return load_record(ConveyancerInviteRecord, invite)
