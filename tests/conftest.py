"""Shared test infrastructure for the Sahem Invest test suite.

Provides:
- db_session: async SQLite in-memory session with all tables created
- two_sessions: two sessions on one file-backed database, for interleaved writes
- notifier: AsyncMock standing in for NotificationDispatcher
- make_user: factory for User rows (any role, optional wallet balance)
- make_deal: factory for Project rows owned by a partner
- client / auth_headers: httpx client against the FastAPI app, sharing db_session
"""

from decimal import Decimal
from unittest.mock import AsyncMock

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Import Base first, then models to register all tables
from sahem_invest.infra.database import Base, get_db

import sahem_invest.domain.models  # noqa: F401

from sahem_invest.domain.enums import DealStatus, UserRole
from sahem_invest.domain.models import Project, User
from sahem_invest.services import email_service
from sahem_invest.services.auth_service import create_access_token, hash_password
from sahem_invest.services.email_service import EmailResult
from sahem_invest.services.notification_service import NotificationDispatcher

TEST_PASSWORD = "Password123!"

_password_hash = None


def _test_password_hash() -> str:
    # bcrypt is slow; hash the shared test password once per run
    global _password_hash
    if _password_hash is None:
        _password_hash = hash_password(TEST_PASSWORD)
    return _password_hash


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


@pytest.fixture
async def two_sessions(tmp_path):
    """Two independent sessions on one file-backed database.

    Used to commit through one session while the other holds stale rows.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'shared.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False,
    )

    async with session_factory() as first, session_factory() as second:
        yield first, second

    await engine.dispose()


# ---------------------------------------------------------------------------
# Notification mocks
# ---------------------------------------------------------------------------

@pytest.fixture
def notifier():
    """Mock NotificationDispatcher; inspect ``notifier.notify.await_args_list``."""
    mock = AsyncMock(spec=NotificationDispatcher)
    mock.notify = AsyncMock(return_value=EmailResult(True))
    return mock


@pytest.fixture
def sent_emails(monkeypatch):
    """Replace SendGrid delivery with a recorder of (template, recipients, params)."""
    sent = []

    async def _capture(template_name, recipients, params):
        sent.append((template_name, recipients, params))
        return EmailResult(True)

    monkeypatch.setattr(email_service, "send_template", _capture)
    return sent


# ---------------------------------------------------------------------------
# User factory
# ---------------------------------------------------------------------------

@pytest.fixture
def make_user(db_session):
    """Factory that creates a User.

    Usage:
        investor = await make_user(wallet_balance="5000")
        admin = await make_user(role=UserRole.ADMIN)
    """
    counter = {"n": 0}

    async def _factory(
        role: UserRole = UserRole.INVESTOR,
        email: str | None = None,
        name: str = "Test User",
        wallet_balance="0",
        **kwargs,
    ) -> User:
        counter["n"] += 1
        user = User(
            email=email or f"{role.value.lower()}{counter['n']}@test.sahem",
            name=name,
            role=role.value,
            password_hash=_test_password_hash(),
            wallet_balance=Decimal(str(wallet_balance)),
            is_active=True,
            email_verified=True,
            **kwargs,
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _factory


# ---------------------------------------------------------------------------
# Deal factory
# ---------------------------------------------------------------------------

@pytest.fixture
def make_deal(db_session, make_user):
    """Factory that creates a Project (deal), with a partner owner if none is given.

    Usage:
        deal = await make_deal(funding_goal="10000", current_funding="8000")
    """
    async def _factory(
        owner: User | None = None,
        title: str = "Olive Grove Expansion",
        status: DealStatus = DealStatus.ACTIVE,
        funding_goal="10000",
        current_funding="0",
        min_investment="1000",
        expected_return="12",
        **kwargs,
    ) -> Project:
        if owner is None:
            owner = await make_user(role=UserRole.PARTNER, name="Deal Owner")
        deal = Project(
            title=title,
            slug=title.lower().replace(" ", "-"),
            funding_goal=Decimal(str(funding_goal)),
            current_funding=Decimal(str(current_funding)),
            min_investment=Decimal(str(min_investment)),
            expected_return=Decimal(str(expected_return)),
            duration=365,
            status=status.value,
            owner_id=owner.id,
            highlights=[],
            timeline=[],
            **kwargs,
        )
        db_session.add(deal)
        await db_session.commit()
        return deal

    return _factory


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------

@pytest.fixture
async def client(db_session, sent_emails):
    """httpx client bound to the app with ``get_db`` pointed at ``db_session``."""
    from sahem_invest.app.main import app

    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Build a Bearer header for ``user``."""
    def _headers(user: User) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}

    return _headers


@pytest.fixture
def password():
    """Plaintext password of every user built by ``make_user``."""
    return TEST_PASSWORD
