"""
Shared pytest configuration for courtside tests.

Uses in-memory SQLite (aiosqlite) so the suite runs without a database server.
Environment is set before any courtside module is imported.
"""

import os

os.environ.setdefault("ENV", "test")
os.environ.setdefault("JWT_SECRET", "test-secret-key-that-is-long-enough-for-hs256")
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"

import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from courtside.database.db import Base  # noqa: E402
from courtside.database.models import Group, GroupMembership, GroupRole, Player, SystemRole  # noqa: E402
from courtside.services import recompute_queue, stats_service  # noqa: E402


@pytest_asyncio.fixture(scope="function")
async def test_engine(monkeypatch):
    """Fresh in-memory database per test, wired into db.AsyncSessionLocal."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # Code that opens its own session (the recompute critical section) must
    # see the same database as the test fixtures
    from courtside.database import db

    test_session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )
    monkeypatch.setattr(db, "AsyncSessionLocal", test_session_maker)

    # Locks are bound to the running loop, so each test gets its own queue
    queue = recompute_queue.GroupRecomputeQueue(lock_timeout=5)
    monkeypatch.setattr(recompute_queue, "_recompute_queue", queue)
    stats_service.register_recompute_callback()

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine):
    """Session on the test database."""
    async_session_maker = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with async_session_maker() as session:
        yield session


async def make_player(session, name, email=None, system_role=SystemRole.USER, memberships=None):
    """Insert a player with the given group roles and return it."""
    player = Player(
        name=name,
        email=email,
        system_role=system_role.value,
        group_memberships=[
            GroupMembership(group_id=group_id, role=role.value)
            for group_id, role in (memberships or {}).items()
        ],
    )
    session.add(player)
    await session.commit()
    await session.refresh(player)
    return player


async def make_group(session, name):
    group = Group(name=name)
    session.add(group)
    await session.commit()
    await session.refresh(group)
    return group


@pytest_asyncio.fixture
async def league(db_session):
    """
    One group with an admin, a viewer and four playing members, plus an
    outsider and a system admin.
    """
    group = await make_group(db_session, "Tuesday Doubles")
    other = await make_group(db_session, "Weekend Club")
    members = {group.id: GroupRole.VIEWER}
    return {
        "group": group,
        "other_group": other,
        "admin": await make_player(db_session, "Root", "root@example.com", SystemRole.ADMIN),
        "group_admin": await make_player(
            db_session, "Gina", "gina@example.com", memberships={group.id: GroupRole.GROUP_ADMIN}
        ),
        "viewer": await make_player(db_session, "Vic", "vic@example.com", memberships=members),
        "outsider": await make_player(
            db_session, "Olga", "olga@example.com", memberships={other.id: GroupRole.GROUP_ADMIN}
        ),
        "a": await make_player(db_session, "Alice", "alice@example.com", memberships=members),
        "b": await make_player(db_session, "Bob", "bob@example.com", memberships=members),
        "c": await make_player(db_session, "Carol", "carol@example.com", memberships=members),
        "d": await make_player(db_session, "Dan", "dan@example.com", memberships=members),
    }
