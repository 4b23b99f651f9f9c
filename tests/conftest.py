"""
Pytest configuration and shared fixtures for identity store tests.

Provides:
- AnyIO backend selection for async tests
- A throwaway SQLite database per test (aiosqlite), schema created from the ORM
- `db`: a fresh AsyncSession for the code under test
- `seed_session`: a separate session for arranging data
- `identity_data`: a small, fully related identity dataset

Async Helper Functions:
- acreate_user(): Create an IdentityUser with normalized fields filled in
- acreate_role(): Create an IdentityRole
- acreate_organization_unit(): Create an OrganizationUnit
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator
from dataclasses import dataclass, field
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from identity_store.core.db import create_schema
from identity_store.db.models import (
    IdentityRole,
    IdentityRoleClaim,
    IdentityUser,
    IdentityUserClaim,
    IdentityUserLogin,
    IdentityUserOrganizationUnit,
    IdentityUserRole,
    OrganizationUnit,
    OrganizationUnitRole,
)

# =============================================================================
# AnyIO Backend Configuration
# =============================================================================
# Per AnyIO testing docs: https://anyio.readthedocs.io/en/stable/testing.html
# This fixture ensures async fixtures work with AnyIO's pytest plugin.


@pytest.fixture
def anyio_backend():
    return "asyncio"


# ============================================================================
# Test Database Setup
# ============================================================================


@pytest.fixture
async def async_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine]:
    """SQLite engine on a per-test database file with the identity schema created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'identity.db'}")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def seed_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Session used only to arrange data; commit before querying through `db`."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def db(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession]:
    """Fresh session for the code under test, with an empty identity map."""
    async with session_factory() as session:
        yield session


# ============================================================================
# Async Helper Functions
# ============================================================================


async def acreate_user(
    session: AsyncSession, user_name: str, email: str | None = None, **kwargs
) -> IdentityUser:
    """Create a user; normalized fields are upper-cased display values."""
    email = email or f"{user_name}@example.com"
    user = IdentityUser(
        id=kwargs.pop("id", uuid.uuid4()),
        user_name=user_name,
        normalized_user_name=user_name.upper(),
        email=email,
        normalized_email=email.upper(),
        **kwargs,
    )
    session.add(user)
    await session.flush()
    return user


async def acreate_role(session: AsyncSession, name: str) -> IdentityRole:
    role = IdentityRole(id=uuid.uuid4(), name=name, normalized_name=name.upper())
    session.add(role)
    await session.flush()
    return role


async def acreate_organization_unit(
    session: AsyncSession,
    code: str,
    display_name: str,
    parent: OrganizationUnit | None = None,
) -> OrganizationUnit:
    unit = OrganizationUnit(
        id=uuid.uuid4(),
        parent_id=parent.id if parent else None,
        code=code,
        display_name=display_name,
    )
    session.add(unit)
    await session.flush()
    return unit


# ============================================================================
# Shared Dataset
# ============================================================================


@dataclass
class IdentityData:
    """Ids of the seeded identity graph, keyed by readable names."""

    users: dict[str, uuid.UUID] = field(default_factory=dict)
    roles: dict[str, uuid.UUID] = field(default_factory=dict)
    units: dict[str, uuid.UUID] = field(default_factory=dict)


@pytest.fixture
async def identity_data(seed_session: AsyncSession) -> IdentityData:
    """
    Seed a small identity graph.

    Users:   alice, bob, Annabel, carl (carl@annex.io), dana
    Roles:   admin (alice, bob), editor (Annabel), viewer
    Claims:  department=finance (alice, carl), department=hr (bob)
    Logins:  github/gh-1001 (alice), google/g-2002 (bob)
    Units:   sales grants viewer+editor, sales.emea grants viewer,
             support grants admin
    Members: alice in sales and sales.emea, dana in support
    """
    data = IdentityData()
    s = seed_session

    alice = await acreate_user(s, "alice", "alice@example.com", name="Alice", surname="Zeller")
    bob = await acreate_user(s, "bob", "bob@corp.test", name="Bob", surname="Young")
    annabel = await acreate_user(s, "Annabel", "annabel@example.com", name="Annabel")
    carl = await acreate_user(s, "carl", "carl@annex.io", name="Carl")
    dana = await acreate_user(s, "dana", "dana@corp.test", name="Dana")
    for user in (alice, bob, annabel, carl, dana):
        data.users[user.user_name.lower()] = user.id

    admin = await acreate_role(s, "admin")
    editor = await acreate_role(s, "editor")
    viewer = await acreate_role(s, "viewer")
    for role in (admin, editor, viewer):
        data.roles[role.name] = role.id

    s.add_all(
        [
            IdentityUserRole(user_id=alice.id, role_id=admin.id),
            IdentityUserRole(user_id=bob.id, role_id=admin.id),
            IdentityUserRole(user_id=annabel.id, role_id=editor.id),
            IdentityRoleClaim(
                id=uuid.uuid4(), role_id=admin.id, claim_type="permission", claim_value="all"
            ),
            IdentityUserClaim(
                id=uuid.uuid4(), user_id=alice.id, claim_type="department", claim_value="finance"
            ),
            IdentityUserClaim(
                id=uuid.uuid4(), user_id=carl.id, claim_type="department", claim_value="finance"
            ),
            IdentityUserClaim(
                id=uuid.uuid4(), user_id=bob.id, claim_type="department", claim_value="hr"
            ),
            IdentityUserLogin(
                user_id=alice.id,
                login_provider="github",
                provider_key="gh-1001",
                provider_display_name="GitHub",
            ),
            IdentityUserLogin(
                user_id=bob.id,
                login_provider="google",
                provider_key="g-2002",
                provider_display_name="Google",
            ),
        ]
    )

    sales = await acreate_organization_unit(s, "00001", "Sales")
    emea = await acreate_organization_unit(s, "00001.00001", "Sales EMEA", parent=sales)
    support = await acreate_organization_unit(s, "00002", "Support")
    for unit in (sales, emea, support):
        data.units[unit.display_name] = unit.id

    s.add_all(
        [
            OrganizationUnitRole(organization_unit_id=sales.id, role_id=viewer.id),
            OrganizationUnitRole(organization_unit_id=sales.id, role_id=editor.id),
            OrganizationUnitRole(organization_unit_id=emea.id, role_id=viewer.id),
            OrganizationUnitRole(organization_unit_id=support.id, role_id=admin.id),
            IdentityUserOrganizationUnit(user_id=alice.id, organization_unit_id=sales.id),
            IdentityUserOrganizationUnit(user_id=alice.id, organization_unit_id=emea.id),
            IdentityUserOrganizationUnit(user_id=dana.id, organization_unit_id=support.id),
        ]
    )
    await s.commit()
    return data
