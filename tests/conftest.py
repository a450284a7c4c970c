"""Shared test infrastructure for the MatchIndeed test suite.

Provides:
- db_session: async SQLite in-memory session with all tables created
- make_account: factory for Account rows with a credit account and wallet
- make_profile / make_preferences: factories for matching data
- make_activity / make_block: factories for interactions between members
- meeting_parties: a host and a funded requester
- confirmed_meeting: factory that requests and confirms a meeting
"""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Import Base first, then models to register all tables
from matchindeed.infra.database import Base

import matchindeed.domain.models  # noqa: F401

from matchindeed.domain.models import (
    Account,
    BlockedUser,
    UserActivity,
    UserPreferences,
    UserProfile,
)
from matchindeed.services import ledger_service
from matchindeed.services.settlement_service import MeetingSettlementService

# Fixed clock for lifecycle tests
NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Database session fixture
# ---------------------------------------------------------------------------

@pytest.fixture
async def db_session():
    """Async SQLite in-memory session with all tables created.

    Creates a fresh engine + tables for each test, yields a session,
    then rolls back and tears down.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
    )

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


# ---------------------------------------------------------------------------
# Member factories
# ---------------------------------------------------------------------------

@pytest.fixture
def make_account(db_session):
    """Factory for an Account plus its credit account and wallet.

    Usage:
        guest = await make_account(credits=1000)
    """
    async def _factory(
        role: str = "user",
        account_status: str = "active",
        display_name: str | None = None,
        credits: int = 0,
        wallet_cents: int = 0,
        last_active_at: datetime | None = None,
    ) -> Account:
        account_id = str(uuid.uuid4())
        account = Account(
            id=account_id,
            email=f"{account_id[:8]}@example.com",
            display_name=display_name or f"Member {account_id[:4]}",
            role=role,
            account_status=account_status,
            last_active_at=last_active_at,
        )
        db_session.add(account)
        await db_session.flush()
        await ledger_service.open_account(db_session, account_id, credits, wallet_cents)
        await db_session.commit()
        return account

    return _factory


@pytest.fixture
def make_profile(db_session):
    async def _factory(user_id: str, **fields) -> UserProfile:
        profile = UserProfile(user_id=user_id, **fields)
        db_session.add(profile)
        await db_session.commit()
        return profile

    return _factory


@pytest.fixture
def make_preferences(db_session):
    async def _factory(user_id: str, **fields) -> UserPreferences:
        prefs = UserPreferences(user_id=user_id, **fields)
        db_session.add(prefs)
        await db_session.commit()
        return prefs

    return _factory


@pytest.fixture
def make_activity(db_session):
    async def _factory(user_id: str, target_user_id: str, activity_type: str) -> UserActivity:
        activity = UserActivity(
            user_id=user_id, target_user_id=target_user_id, activity_type=activity_type
        )
        db_session.add(activity)
        await db_session.commit()
        return activity

    return _factory


@pytest.fixture
def make_block(db_session):
    async def _factory(blocker_id: str, blocked_id: str) -> BlockedUser:
        block = BlockedUser(blocker_id=blocker_id, blocked_id=blocked_id)
        db_session.add(block)
        await db_session.commit()
        return block

    return _factory


# ---------------------------------------------------------------------------
# Meeting factories
# ---------------------------------------------------------------------------

@pytest.fixture
async def meeting_parties(make_account):
    """A host with no credits and a requester holding 1000 credits."""
    host = await make_account(role="host", display_name="Hannah")
    guest = await make_account(display_name="Gabriel", credits=1000, wallet_cents=5000)
    return host, guest


@pytest.fixture
def confirmed_meeting(db_session, meeting_parties):
    """Factory: request a meeting at NOW + 1 day and have the host accept it.

    Returns (meeting, host, guest).
    """
    async def _factory(fee_credits: int = 500, fee_cents: int = 0, cancellation_fee_cents=None):
        host, guest = meeting_parties
        service = MeetingSettlementService()
        meeting = await service.request_meeting(
            db_session,
            host_id=host.id,
            guest_id=guest.id,
            scheduled_at=NOW + timedelta(days=1),
            fee_credits=fee_credits,
            fee_cents=fee_cents,
            cancellation_fee_cents=cancellation_fee_cents,
            now=NOW,
        )
        meeting = await service.respond(db_session, meeting.id, host.id, accept=True, now=NOW)
        return meeting, host, guest

    return _factory
