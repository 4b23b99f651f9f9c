"""
Repository functions for querying identity users.

Lookups, relation-spanning role/organization-unit queries, and filtered,
sorted, paged listings over the identity schema. All functions are reads.

Conventions:
- Single-entity lookups hydrate details by default (include_details=True);
  listings and joins default to lean results (include_details=False).
- Lookups return None when nothing matches; absence is never an error.
- Every coroutine accepts a keyword-only ``cancel_scope`` (see
  ``identity_store.repos.operations``).

Filter matching is case-insensitive: the filter text is upper-cased and
matched as a literal substring of normalized_user_name or normalized_email.
"""

import logging
import uuid
from typing import Any

from sqlalchemy import Select, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from identity_store.core.config import settings
from identity_store.core.errors import NotFoundError, ValidationError
from identity_store.db.models import (
    IdentityRole,
    IdentityUser,
    IdentityUserClaim,
    IdentityUserLogin,
    IdentityUserOrganizationUnit,
    IdentityUserRole,
    OrganizationUnit,
    OrganizationUnitRole,
)
from identity_store.domain.claims import Claim
from identity_store.repos.operations import store_operation
from identity_store.repos.sorting import apply_sorting, parse_sorting

logger = logging.getLogger(__name__)


# ============================================================================
# Query Composition
# ============================================================================


def _user_details() -> list[Any]:
    return [
        selectinload(IdentityUser.claims),
        selectinload(IdentityUser.logins),
        selectinload(IdentityUser.roles),
        selectinload(IdentityUser.organization_units),
    ]


def user_query(include_details: bool = False) -> Select[tuple[IdentityUser]]:
    """
    Base user query, eager-loading details when requested.

    Detailed queries refresh instances already in the session so their
    collections reflect the store rather than an earlier lean load.
    """
    stmt = select(IdentityUser)
    if include_details:
        stmt = stmt.options(*_user_details()).execution_options(
            populate_existing=True
        )
    return stmt


def with_details() -> Select[tuple[IdentityUser]]:
    """
    User query pre-configured to hydrate claims, logins, roles and
    organization units.

    Callers compose further predicates and execute it themselves:

        stmt = with_details().where(IdentityUser.is_active.is_(True))
        users = (await db.execute(stmt)).scalars().all()
    """
    return user_query(include_details=True)


def _role_query(include_details: bool) -> Select[tuple[IdentityRole]]:
    stmt = select(IdentityRole)
    if include_details:
        stmt = stmt.options(selectinload(IdentityRole.claims)).execution_options(
            populate_existing=True
        )
    return stmt


def _organization_unit_query(include_details: bool) -> Select[tuple[OrganizationUnit]]:
    stmt = select(OrganizationUnit)
    if include_details:
        stmt = stmt.options(selectinload(OrganizationUnit.roles)).execution_options(
            populate_existing=True
        )
    return stmt


def _check_filter(filter_text: str | None) -> None:
    if filter_text is not None and len(filter_text) > settings.max_filter_length:
        raise ValidationError(
            f"filter must be at most {settings.max_filter_length} characters",
            details={"filter_length": len(filter_text)},
        )


def _apply_filter(stmt: Select, filter_text: str | None) -> Select:
    """Keep users whose username or email contains filter_text, ignoring case."""
    if filter_text is None or not filter_text.strip():
        return stmt

    needle = filter_text.upper()
    return stmt.where(
        or_(
            IdentityUser.normalized_user_name.contains(needle, autoescape=True),
            IdentityUser.normalized_email.contains(needle, autoescape=True),
        )
    )


async def _first(db: AsyncSession, stmt: Select) -> Any:
    result = await db.execute(stmt.limit(1))
    return result.scalars().first()


async def _all(db: AsyncSession, stmt: Select) -> list[Any]:
    result = await db.execute(stmt)
    return list(result.scalars().all())


# ============================================================================
# Single-User Lookups
# ============================================================================


@store_operation
async def find_by_id(
    db: AsyncSession, user_id: uuid.UUID, *, include_details: bool = True
) -> IdentityUser | None:
    """Return the user with the given id, or None."""
    stmt = user_query(include_details).where(IdentityUser.id == user_id)
    return await _first(db, stmt)


@store_operation
async def get_by_id(
    db: AsyncSession, user_id: uuid.UUID, *, include_details: bool = True
) -> IdentityUser:
    """
    Return the user with the given id.

    Raises:
        NotFoundError: If no user has that id
    """
    stmt = user_query(include_details).where(IdentityUser.id == user_id)
    user = await _first(db, stmt)
    if user is None:
        logger.warning(f"Identity user not found: {user_id}")
        raise NotFoundError("User not found", details={"user_id": str(user_id)})
    return user


@store_operation
async def find_by_normalized_user_name(
    db: AsyncSession, normalized_user_name: str, *, include_details: bool = True
) -> IdentityUser | None:
    """
    Find a user by normalized user name.

    Args:
        db: Database session
        normalized_user_name: Upper-cased user name
        include_details: Hydrate claims, logins, roles and organization units

    Returns:
        The first matching user, or None
    """
    stmt = user_query(include_details).where(
        IdentityUser.normalized_user_name == normalized_user_name
    )
    user = await _first(db, stmt)

    logger.debug(
        "Lookup by normalized user name",
        extra={"normalized_user_name": normalized_user_name, "found": user is not None},
    )
    return user


@store_operation
async def find_by_normalized_email(
    db: AsyncSession, normalized_email: str, *, include_details: bool = True
) -> IdentityUser | None:
    """Find a user by normalized email; first match or None."""
    stmt = user_query(include_details).where(IdentityUser.normalized_email == normalized_email)
    return await _first(db, stmt)


@store_operation
async def find_by_login(
    db: AsyncSession,
    login_provider: str,
    provider_key: str,
    *,
    include_details: bool = True,
) -> IdentityUser | None:
    """
    Find the user owning an external login.

    Args:
        db: Database session
        login_provider: Provider name (e.g. "github")
        provider_key: Key issued by the provider for the user
        include_details: Hydrate claims, logins, roles and organization units

    Returns:
        The first user owning a matching login, or None
    """
    stmt = user_query(include_details).where(
        IdentityUser.logins.any(
            (IdentityUserLogin.login_provider == login_provider)
            & (IdentityUserLogin.provider_key == provider_key)
        )
    )
    user = await _first(db, stmt)

    logger.debug(
        "Lookup by external login",
        extra={"login_provider": login_provider, "found": user is not None},
    )
    return user


# ============================================================================
# User Lists by Relation
# ============================================================================


@store_operation
async def get_list_by_claim(
    db: AsyncSession, claim: Claim, *, include_details: bool = False
) -> list[IdentityUser]:
    """Return every user owning a claim with the same type and value."""
    stmt = user_query(include_details).where(
        IdentityUser.claims.any(
            (IdentityUserClaim.claim_type == claim.type)
            & (IdentityUserClaim.claim_value == claim.value)
        )
    )
    return await _all(db, stmt)


@store_operation
async def get_list_by_normalized_role_name(
    db: AsyncSession, normalized_role_name: str, *, include_details: bool = False
) -> list[IdentityUser]:
    """
    Return every user holding the role with the given normalized name.

    Args:
        db: Database session
        normalized_role_name: Upper-cased role name
        include_details: Hydrate each user's details

    Returns:
        Users with a direct role assignment; empty if the role does not exist
    """
    role_stmt = select(IdentityRole.id).where(
        IdentityRole.normalized_name == normalized_role_name
    )
    role_id = (await db.execute(role_stmt.limit(1))).scalar_one_or_none()

    if role_id is None:
        logger.debug(
            "Role not found, no members",
            extra={"normalized_role_name": normalized_role_name},
        )
        return []

    stmt = user_query(include_details).where(
        IdentityUser.roles.any(IdentityUserRole.role_id == role_id)
    )
    return await _all(db, stmt)


@store_operation
async def get_list_by_organization_unit(
    db: AsyncSession, organization_unit_id: uuid.UUID, *, include_details: bool = False
) -> list[IdentityUser]:
    """Return the direct members of an organization unit."""
    stmt = user_query(include_details).where(
        IdentityUser.organization_units.any(
            IdentityUserOrganizationUnit.organization_unit_id == organization_unit_id
        )
    )
    return await _all(db, stmt)


# ============================================================================
# Roles and Organization Units of a User
# ============================================================================


@store_operation
async def get_role_names(db: AsyncSession, user_id: uuid.UUID) -> list[str]:
    """Return the names of roles assigned directly to the user."""
    stmt = (
        select(IdentityRole.name)
        .select_from(IdentityUserRole)
        .join(IdentityRole, IdentityUserRole.role_id == IdentityRole.id)
        .where(IdentityUserRole.user_id == user_id)
    )
    return await _all(db, stmt)


@store_operation
async def get_role_names_in_organization_unit(
    db: AsyncSession, user_id: uuid.UUID
) -> list[str]:
    """
    Return the names of roles the user holds through organization units.

    One name is returned per (unit, role) grant reachable from the user's
    memberships, so a role granted by two of the user's units appears twice.
    """
    stmt = (
        select(IdentityRole.name)
        .select_from(IdentityUserOrganizationUnit)
        .join(
            OrganizationUnitRole,
            OrganizationUnitRole.organization_unit_id
            == IdentityUserOrganizationUnit.organization_unit_id,
        )
        .join(IdentityRole, OrganizationUnitRole.role_id == IdentityRole.id)
        .where(IdentityUserOrganizationUnit.user_id == user_id)
    )
    return await _all(db, stmt)


@store_operation
async def get_roles(
    db: AsyncSession, user_id: uuid.UUID, *, include_details: bool = False
) -> list[IdentityRole]:
    """Return the roles assigned directly to the user."""
    stmt = (
        _role_query(include_details)
        .join(IdentityUserRole, IdentityUserRole.role_id == IdentityRole.id)
        .where(IdentityUserRole.user_id == user_id)
    )
    return await _all(db, stmt)


@store_operation
async def get_organization_units(
    db: AsyncSession, user_id: uuid.UUID, *, include_details: bool = False
) -> list[OrganizationUnit]:
    """Return the organization units the user is a direct member of."""
    stmt = (
        _organization_unit_query(include_details)
        .join(
            IdentityUserOrganizationUnit,
            IdentityUserOrganizationUnit.organization_unit_id == OrganizationUnit.id,
        )
        .where(IdentityUserOrganizationUnit.user_id == user_id)
    )
    return await _all(db, stmt)


# ============================================================================
# Listing and Counting
# ============================================================================


@store_operation
async def get_list(
    db: AsyncSession,
    *,
    sorting: str | None = None,
    max_result_count: int | None = None,
    skip_count: int = 0,
    filter_text: str | None = None,
    include_details: bool = False,
) -> list[IdentityUser]:
    """
    List users: filter, then sort, then skip/take.

    Args:
        db: Database session
        sorting: Sort expression such as "email desc"; defaults to "user_name asc"
        max_result_count: Maximum users to return; None for no limit
        skip_count: Number of users to skip after sorting
        filter_text: Case-insensitive substring of user name or email
        include_details: Hydrate each user's details

    Returns:
        Users for the requested page; empty when nothing matches

    Raises:
        ValidationError: If paging values are negative or filter is too long
        InvalidSortFieldError: If sorting names an unsortable field
    """
    if skip_count < 0:
        raise ValidationError(
            "skip_count must not be negative", details={"skip_count": skip_count}
        )
    if max_result_count is not None and max_result_count < 0:
        raise ValidationError(
            "max_result_count must not be negative",
            details={"max_result_count": max_result_count},
        )
    _check_filter(filter_text)
    terms = parse_sorting(sorting)

    stmt = _apply_filter(user_query(include_details), filter_text)
    stmt = apply_sorting(stmt, terms)
    if skip_count:
        stmt = stmt.offset(skip_count)
    if max_result_count is not None:
        stmt = stmt.limit(max_result_count)

    users = await _all(db, stmt)

    logger.debug(
        f"Listed {len(users)} users",
        extra={
            "sorting": sorting,
            "skip_count": skip_count,
            "max_result_count": max_result_count,
            "filtered": bool(filter_text and filter_text.strip()),
        },
    )
    return users


@store_operation
async def get_count(db: AsyncSession, *, filter_text: str | None = None) -> int:
    """Count users matching the same filter as get_list."""
    _check_filter(filter_text)

    stmt = _apply_filter(select(func.count()).select_from(IdentityUser), filter_text)
    result = await db.execute(stmt)
    return result.scalar_one()
