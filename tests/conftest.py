"""Shared test infrastructure for the Documove test suite.

Provides:
- db_session: async SQLite in-memory session with all tables created
- fk_db_session: the same with foreign-key enforcement on
- make_profile / make_transaction / make_conveyancer: row factories
- auth_headers: Bearer header for an actor id
- api_client: httpx client against the FastAPI app, bound to db_session
"""

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Import Base first, then models to register all tables
from documove.infra.database import Base, get_db

import documove.domain.models  # noqa: F401

from documove.domain.models import Conveyancer, Profile, Transaction
from documove.services.auth_service import create_access_token


# ---------------------------------------------------------------------------
# Database session fixtures
# ---------------------------------------------------------------------------

def _enable_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@asynccontextmanager
async def _in_memory_session(enforce_foreign_keys: bool = False):
    """Fresh in-memory engine + tables; yields a session, then rolls back and tears down."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
    )
    if enforce_foreign_keys:
        event.listen(engine.sync_engine, "connect", _enable_foreign_keys)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def db_session():
    """Async SQLite in-memory session with all tables created."""
    async with _in_memory_session() as session:
        yield session


@pytest.fixture
async def fk_db_session():
    """Like db_session, but SQLite enforces foreign keys as a server database would."""
    async with _in_memory_session(enforce_foreign_keys=True) as session:
        yield session


# ---------------------------------------------------------------------------
# Profile factory
# ---------------------------------------------------------------------------

@pytest.fixture
def make_profile(db_session):
    """Factory that creates a Profile row.

    Usage:
        agent = await make_profile(role="agent")
    """
    async def _factory(
        role: str = "agent",
        full_name: str = "Test User",
        email: str | None = None,
    ) -> Profile:
        profile_id = str(uuid.uuid4())
        profile = Profile(
            id=profile_id,
            email=email or f"{profile_id[:8]}@example.co.uk",
            full_name=full_name,
            role=role,
            created_at=datetime.now(timezone.utc),
        )
        db_session.add(profile)
        await db_session.flush()
        return profile

    return _factory


# ---------------------------------------------------------------------------
# Transaction factory
# ---------------------------------------------------------------------------

@pytest.fixture
def make_transaction(db_session):
    """Factory that creates a Transaction row.

    Usage:
        txn = await make_transaction(current_stage="Offer Accepted")
    """
    async def _factory(
        current_stage: str | None = None,
        progress_percentage: int = 0,
        agent_id: str | None = None,
        transaction_type: str = "acting_for_seller",
        address_line1: str = "14 Mill Lane",
        postcode: str = "BS1 4DJ",
        seller_name: str | None = "Sarah Seller",
        seller_email: str | None = "sarah@example.co.uk",
        buyer_name: str | None = "Ben Buyer",
        buyer_email: str | None = "ben@example.co.uk",
        created_offset_minutes: int = 0,
        **overrides,
    ) -> Transaction:
        now = datetime.now(timezone.utc) + timedelta(minutes=created_offset_minutes)
        transaction = Transaction(
            id=str(uuid.uuid4()),
            reference_number=f"DM-{uuid.uuid4().hex[:8].upper()}",
            agent_id=agent_id,
            transaction_type=transaction_type,
            address_line1=address_line1,
            city="Bristol",
            postcode=postcode,
            current_stage=current_stage,
            progress_percentage=progress_percentage,
            seller_name=seller_name,
            seller_email=seller_email,
            buyer_name=buyer_name,
            buyer_email=buyer_email,
            created_at=now,
            updated_at=now,
            **overrides,
        )
        db_session.add(transaction)
        await db_session.flush()
        return transaction

    return _factory


# ---------------------------------------------------------------------------
# Conveyancer factory
# ---------------------------------------------------------------------------

@pytest.fixture
def make_conveyancer(db_session):
    """Factory that creates a Conveyancer directory row.

    Usage:
        firm = await make_conveyancer(firm_name="Harbour Law", rating=4.8)
    """
    async def _factory(
        firm_name: str = "Harbour Law",
        contact_name: str = "Priya Shah",
        email: str = "priya@harbourlaw.co.uk",
        town: str | None = "Bristol",
        rating: float = 4.5,
        is_active: bool = True,
        **overrides,
    ) -> Conveyancer:
        conveyancer = Conveyancer(
            id=str(uuid.uuid4()),
            firm_name=firm_name,
            contact_name=contact_name,
            email=email,
            town=town,
            rating=rating,
            review_count=overrides.pop("review_count", 12),
            transactions_completed=overrides.pop("transactions_completed", 40),
            accreditations=overrides.pop("accreditations", ["CQS"]),
            is_active=is_active,
            created_at=datetime.now(timezone.utc),
            **overrides,
        )
        db_session.add(conveyancer)
        await db_session.flush()
        return conveyancer

    return _factory


# ---------------------------------------------------------------------------
# API helpers
# ---------------------------------------------------------------------------

@pytest.fixture
def auth_headers():
    """Factory for an Authorization header carrying a token for ``actor_id``."""
    def _factory(actor_id: str) -> dict:
        return {"Authorization": f"Bearer {create_access_token(actor_id)}"}

    return _factory


@pytest.fixture
async def api_client(db_session):
    """httpx client against the app with every request sharing db_session."""
    from documove.app.main import app

    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
