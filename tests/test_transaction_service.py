"""Tests for TransactionService: creation, milestone advancement and the audit timeline."""

import pytest
from sqlalchemy.exc import IntegrityError

from documove.domain.enums import Role, TransactionEventType, TransactionType
from documove.domain.errors import (
    EntityNotFoundError,
    OutOfOrderTransitionError,
    PermissionDeniedError,
)
from documove.domain.schemas import TransactionCreate
from documove.services.milestone_state_machine import AcceptedAssignmentPolicy, MilestoneStateMachine
from documove.services.role_resolver import RoleResolver
from documove.services.transaction_service import (
    TransactionService,
    generate_reference_number,
    record_event,
)


def test_reference_number_format():
    ref = generate_reference_number()
    assert ref.startswith("DM-")
    assert len(ref) == 11
    assert ref[3:] == ref[3:].upper()


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_starts_not_started(self, db_session, make_profile):
        agent = await make_profile(role="agent")
        svc = TransactionService(db_session)
        txn = await svc.create_transaction(
            agent.id,
            TransactionCreate(
                transaction_type=TransactionType.ACTING_FOR_BUYER,
                address_line1="7 Harbour View",
                postcode="PL1 2AB",
                price="325000",
                bedrooms=3,
                seller_email="s@example.co.uk",
            ),
        )
        assert txn.current_stage is None
        assert txn.progress_percentage == 0
        assert txn.transaction_type == TransactionType.ACTING_FOR_BUYER
        assert txn.agent_id == agent.id

        events = await svc.list_events(txn.id)
        assert [e.event_type for e in events] == [TransactionEventType.CREATED.value]

    @pytest.mark.asyncio
    async def test_fallback_agent_without_profile_creates_under_foreign_keys(self, fk_db_session):
        """An actor the role fallback treats as agent has no profile row to reference."""
        role = await RoleResolver(fk_db_session).resolve_role("ghost")
        assert role == Role.AGENT

        svc = TransactionService(fk_db_session)
        txn = await svc.create_transaction("ghost", TransactionCreate(address_line1="1 High St"))
        await fk_db_session.commit()

        stored = await svc.get_transaction(txn.id)
        assert stored.agent_id == "ghost"

    @pytest.mark.asyncio
    async def test_foreign_keys_are_enforced(self, fk_db_session):
        with pytest.raises(IntegrityError):
            await record_event(fk_db_session, "missing", TransactionEventType.CREATED)

    @pytest.mark.asyncio
    async def test_list_filters(self, db_session, make_profile, make_transaction):
        agent = await make_profile(role="agent")
        mine = await make_transaction(agent_id=agent.id, transaction_type="acting_for_buyer")
        await make_transaction(agent_id=None, created_offset_minutes=5)

        svc = TransactionService(db_session)
        assert [t.id for t in await svc.list_transactions(agent_id=agent.id)] == [mine.id]
        buyers = await svc.list_transactions(transaction_type=TransactionType.ACTING_FOR_BUYER)
        assert [t.id for t in buyers] == [mine.id]
        assert len(await svc.list_transactions()) == 2

    @pytest.mark.asyncio
    async def test_get_missing(self, db_session):
        with pytest.raises(EntityNotFoundError):
            await TransactionService(db_session).get_transaction("nope")


class TestAdvance:
    @pytest.mark.asyncio
    async def test_advance_persists_stage_and_progress(self, db_session, make_transaction):
        txn = await make_transaction(current_stage="Offer Accepted", progress_percentage=20)
        svc = TransactionService(db_session)

        result = await svc.advance_milestone(txn.id, 2, Role.CONVEYANCER, actor_id="conv-1")
        assert result.current_stage == "ID Verification"
        assert result.progress_percentage == 30

        stored = await svc.get_transaction(txn.id)
        assert stored.current_stage == "ID Verification"
        assert stored.progress_percentage == 30

    @pytest.mark.asyncio
    async def test_advance_records_event(self, db_session, make_transaction):
        txn = await make_transaction()
        svc = TransactionService(db_session)
        await svc.advance_milestone(txn.id, 0, Role.AGENT, actor_id="agent-1")

        events = await svc.list_events(txn.id)
        assert len(events) == 1
        event = events[0]
        assert event.event_type == TransactionEventType.MILESTONE_COMPLETED.value
        assert event.from_stage is None
        assert event.to_stage == "Instruction Received"
        assert event.actor_role == "agent"
        assert event.data == {"milestone_index": 0, "progress_percentage": 10}

    @pytest.mark.asyncio
    async def test_blank_stage_counts_as_not_started(self, db_session, make_transaction):
        txn = await make_transaction(current_stage="")
        result = await TransactionService(db_session).advance_milestone(txn.id, 0, Role.AGENT)
        assert result.current_stage == "Instruction Received"

    @pytest.mark.asyncio
    async def test_rejected_advance_leaves_row_untouched(self, db_session, make_transaction):
        txn = await make_transaction(current_stage="Instruction Received", progress_percentage=10)
        svc = TransactionService(db_session)

        with pytest.raises(PermissionDeniedError):
            await svc.advance_milestone(txn.id, 1, Role.CONVEYANCER)

        stored = await svc.get_transaction(txn.id)
        assert stored.current_stage == "Instruction Received"
        assert await svc.list_events(txn.id) == []

    @pytest.mark.asyncio
    async def test_stale_read_loses_the_race(self, db_session, make_transaction):
        """Two actors read the same stage; only the first write lands."""
        txn = await make_transaction(current_stage="Enquiries Raised", progress_percentage=70)
        svc = TransactionService(db_session)

        first_read = await svc.get_transaction(txn.id)
        second_read = await svc.get_transaction(txn.id)

        await svc.apply_advance(first_read, 7, Role.AGENT, actor_id="agent-1")
        with pytest.raises(OutOfOrderTransitionError):
            await svc.apply_advance(second_read, 7, Role.CONVEYANCER, actor_id="conv-1")

        stored = await svc.get_transaction(txn.id)
        assert stored.current_stage == "Mortgage Offer"
        events = await svc.list_events(txn.id)
        assert [e.actor_id for e in events] == ["agent-1"]

    @pytest.mark.asyncio
    async def test_repeat_advance_is_a_conflict(self, db_session, make_transaction):
        txn = await make_transaction()
        svc = TransactionService(db_session)
        await svc.advance_milestone(txn.id, 0, Role.AGENT)
        with pytest.raises(OutOfOrderTransitionError):
            await svc.advance_milestone(txn.id, 0, Role.AGENT)

    @pytest.mark.asyncio
    async def test_gated_advance_reads_current_invite(self, db_session, make_transaction):
        txn = await make_transaction(current_stage="Offer Accepted", progress_percentage=20)
        svc = TransactionService(
            db_session, MilestoneStateMachine(gating_policy=AcceptedAssignmentPolicy())
        )
        with pytest.raises(PermissionDeniedError):
            await svc.advance_milestone(txn.id, 2, Role.CONVEYANCER)
