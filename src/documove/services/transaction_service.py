"""Transaction service — persistence for transactions and their milestone progression.

Every mutation is a single compare-and-set UPDATE against the transaction row,
so two actors racing on the same milestone produce one success and one
OutOfOrderTransitionError instead of a lost update.
"""

import logging
import secrets
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from documove.domain.enums import Role, TransactionEventType, TransactionType
from documove.domain.errors import EntityNotFoundError, OutOfOrderTransitionError
from documove.domain.models import Transaction, TransactionEvent
from documove.domain.schemas import TransactionCreate, TransactionRecord, load_record
from documove.services.invite_queries import get_current_invite
from documove.services.milestone_state_machine import MilestoneStateMachine

logger = logging.getLogger(__name__)


def generate_reference_number() -> str:
    """Human-friendly case reference, e.g. DM-3F9A1C2B."""
    return f"DM-{secrets.token_hex(4).upper()}"


async def record_event(
    db: AsyncSession,
    transaction_id: str,
    event_type: TransactionEventType,
    actor_role: Optional[Role] = None,
    actor_id: Optional[str] = None,
    from_stage: Optional[str] = None,
    to_stage: Optional[str] = None,
    data: Optional[dict] = None,
) -> TransactionEvent:
    """Append an audit event to a transaction's timeline."""
    event = TransactionEvent(
        id=str(uuid.uuid4()),
        transaction_id=transaction_id,
        event_type=event_type.value,
        actor_role=actor_role.value if actor_role else None,
        actor_id=actor_id,
        from_stage=from_stage,
        to_stage=to_stage,
        data=data,
        created_at=datetime.now(timezone.utc),
    )
    db.add(event)
    await db.flush()
    return event


class TransactionService:
    """Reads transactions and applies milestone advances."""

    def __init__(self, db: AsyncSession, state_machine: Optional[MilestoneStateMachine] = None):
        self.db = db
        self.state_machine = state_machine or MilestoneStateMachine()

    async def create_transaction(self, agent_id: Optional[str], data: TransactionCreate) -> TransactionRecord:
        """Create a transaction with no milestones completed."""
        now = datetime.now(timezone.utc)
        transaction = Transaction(
            created_at=now,
            updated_at=now,
            id=str(uuid.uuid4()),
            reference_number=generate_reference_number(),
            agent_id=agent_id,
            transaction_type=data.transaction_type.value,
            current_stage=None,
            progress_percentage=0,
            **data.model_dump(exclude={"transaction_type"}),
        )
        self.db.add(transaction)
        await self.db.flush()

        await record_event(
            self.db,
            transaction.id,
            TransactionEventType.CREATED,
            actor_role=Role.AGENT,
            actor_id=agent_id,
            data={"reference_number": transaction.reference_number},
        )
        logger.info("Transaction %s created by agent %s", transaction.id, agent_id)
        return load_record(TransactionRecord, transaction)

    async def get_transaction(self, transaction_id: str) -> TransactionRecord:
        """Fetch and validate a transaction, or raise EntityNotFoundError."""
        result = await self.db.execute(
            select(Transaction)
            .where(Transaction.id == transaction_id)
            .execution_options(populate_existing=True)
        )
        transaction = result.scalar_one_or_none()
        if transaction is None:
            raise EntityNotFoundError(f"Transaction {transaction_id} not found")
        return load_record(TransactionRecord, transaction)

    async def list_transactions(
        self,
        agent_id: Optional[str] = None,
        transaction_type: Optional[TransactionType] = None,
    ) -> list[TransactionRecord]:
        """List transactions, newest first."""
        query = select(Transaction)
        if agent_id is not None:
            query = query.where(Transaction.agent_id == agent_id)
        if transaction_type is not None:
            query = query.where(Transaction.transaction_type == transaction_type.value)
        query = query.order_by(Transaction.created_at.desc())

        result = await self.db.execute(query)
        return [load_record(TransactionRecord, t) for t in result.scalars().all()]

    async def list_events(self, transaction_id: str) -> list[TransactionEvent]:
        """Audit timeline for a transaction, oldest first."""
        await self.get_transaction(transaction_id)
        result = await self.db.execute(
            select(TransactionEvent)
            .where(TransactionEvent.transaction_id == transaction_id)
            .order_by(TransactionEvent.created_at.asc())
        )
        return list(result.scalars().all())

    async def advance_milestone(
        self,
        transaction_id: str,
        milestone_index: int,
        role: Role,
        actor_id: Optional[str] = None,
    ) -> TransactionRecord:
        """Re-read the transaction and complete the milestone at ``milestone_index``."""
        transaction = await self.get_transaction(transaction_id)
        return await self.apply_advance(transaction, milestone_index, role, actor_id)

    async def apply_advance(
        self,
        transaction: TransactionRecord,
        milestone_index: int,
        role: Role,
        actor_id: Optional[str] = None,
    ) -> TransactionRecord:
        """Validate an advance against ``transaction`` as read, then compare-and-set it.

        If the row's stage changed since ``transaction`` was read the update
        matches nothing and OutOfOrderTransitionError is raised.
        """
        assignment = None
        if self.state_machine.needs_assignment:
            assignment = await get_current_invite(self.db, transaction.id)

        advanced = self.state_machine.advance(transaction, milestone_index, role, assignment)

        if transaction.current_stage is None:
            stage_matches = or_(Transaction.current_stage.is_(None), Transaction.current_stage == "")
        else:
            stage_matches = Transaction.current_stage == transaction.current_stage

        result = await self.db.execute(
            update(Transaction)
            .where(Transaction.id == transaction.id, stage_matches)
            .values(
                current_stage=advanced.current_stage,
                progress_percentage=advanced.progress_percentage,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise OutOfOrderTransitionError(
                f"Transaction {transaction.id} moved on before milestone {milestone_index} "
                "could be completed",
                attempted_index=milestone_index,
            )

        await record_event(
            self.db,
            transaction.id,
            TransactionEventType.MILESTONE_COMPLETED,
            actor_role=role,
            actor_id=actor_id,
            from_stage=transaction.current_stage,
            to_stage=advanced.current_stage,
            data={
                "milestone_index": milestone_index,
                "progress_percentage": advanced.progress_percentage,
            },
        )

        logger.info(
            "Transaction %s: %s → %s (role=%s, actor=%s)",
            transaction.id,
            transaction.current_stage,
            advanced.current_stage,
            role.value,
            actor_id,
        )
        return advanced
