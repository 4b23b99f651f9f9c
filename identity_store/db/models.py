"""
SQLAlchemy 2.x ORM models for the identity schema.

Models use the Mapped[] type annotation syntax and mapped_column.

Relationship collections default to ``lazy="noload"``: unless a query asks
for them with a loader option they come back empty and never trigger I/O,
which keeps lean listings lean under AsyncSession.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    MetaData,
    String,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from identity_store.core.config import settings


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    metadata = MetaData(schema=settings.database_schema)


def _fk(target: str) -> str:
    """Qualify a foreign key target with the configured schema."""
    if settings.database_schema:
        return f"{settings.database_schema}.{target}"
    return target


class IdentityUser(Base):
    """
    A user of the identity store.

    normalized_user_name and normalized_email are the upper-cased comparison
    keys; user_name and email keep the display form.
    """

    __tablename__ = "identity_users"
    __table_args__ = (
        Index("ix_identity_users_normalized_user_name", "normalized_user_name"),
        Index("ix_identity_users_normalized_email", "normalized_email"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_name: Mapped[str] = mapped_column(String(256), nullable=False)
    normalized_user_name: Mapped[str] = mapped_column(String(256), nullable=False)
    name: Mapped[str | None] = mapped_column(String(64), nullable=True)
    surname: Mapped[str | None] = mapped_column(String(64), nullable=True)
    email: Mapped[str] = mapped_column(String(256), nullable=False)
    normalized_email: Mapped[str] = mapped_column(String(256), nullable=False)
    email_confirmed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    phone_number: Mapped[str | None] = mapped_column(String(16), nullable=True)
    phone_number_confirmed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    lockout_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    creation_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    # Details
    claims: Mapped[list[IdentityUserClaim]] = relationship(
        back_populates="user", cascade="all, delete-orphan", lazy="noload"
    )
    logins: Mapped[list[IdentityUserLogin]] = relationship(
        back_populates="user", cascade="all, delete-orphan", lazy="noload"
    )
    roles: Mapped[list[IdentityUserRole]] = relationship(
        back_populates="user", cascade="all, delete-orphan", lazy="noload"
    )
    organization_units: Mapped[list[IdentityUserOrganizationUnit]] = relationship(
        back_populates="user", cascade="all, delete-orphan", lazy="noload"
    )

    def __repr__(self) -> str:
        return f"<IdentityUser(id={self.id}, user_name={self.user_name})>"


class IdentityUserClaim(Base):
    """A (type, value) claim owned by a user."""

    __tablename__ = "identity_user_claims"
    __table_args__ = (Index("ix_identity_user_claims_user_id", "user_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey(_fk("identity_users.id"), ondelete="CASCADE"), nullable=False
    )
    claim_type: Mapped[str] = mapped_column(String(256), nullable=False)
    claim_value: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    user: Mapped[IdentityUser] = relationship(back_populates="claims", lazy="noload")

    def __repr__(self) -> str:
        return f"<IdentityUserClaim(user_id={self.user_id}, claim_type={self.claim_type})>"


class IdentityUserLogin(Base):
    """External provider login owned by a user."""

    __tablename__ = "identity_user_logins"
    __table_args__ = (
        Index("ix_identity_user_logins_provider_key", "login_provider", "provider_key"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey(_fk("identity_users.id"), ondelete="CASCADE"), primary_key=True
    )
    login_provider: Mapped[str] = mapped_column(String(64), primary_key=True)
    provider_key: Mapped[str] = mapped_column(String(196), nullable=False)
    provider_display_name: Mapped[str | None] = mapped_column(String(128), nullable=True)

    user: Mapped[IdentityUser] = relationship(back_populates="logins", lazy="noload")

    def __repr__(self) -> str:
        return f"<IdentityUserLogin(user_id={self.user_id}, login_provider={self.login_provider})>"


class IdentityRole(Base):
    """A named role. normalized_name is the upper-cased comparison key."""

    __tablename__ = "identity_roles"
    __table_args__ = (Index("ix_identity_roles_normalized_name", "normalized_name"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    normalized_name: Mapped[str] = mapped_column(String(256), nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_static: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Details
    claims: Mapped[list[IdentityRoleClaim]] = relationship(
        back_populates="role", cascade="all, delete-orphan", lazy="noload"
    )

    def __repr__(self) -> str:
        return f"<IdentityRole(id={self.id}, name={self.name})>"


class IdentityRoleClaim(Base):
    """A (type, value) claim owned by a role."""

    __tablename__ = "identity_role_claims"
    __table_args__ = (Index("ix_identity_role_claims_role_id", "role_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    role_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey(_fk("identity_roles.id"), ondelete="CASCADE"), nullable=False
    )
    claim_type: Mapped[str] = mapped_column(String(256), nullable=False)
    claim_value: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    role: Mapped[IdentityRole] = relationship(back_populates="claims", lazy="noload")


class IdentityUserRole(Base):
    """Join record relating one user to one role."""

    __tablename__ = "identity_user_roles"
    __table_args__ = (Index("ix_identity_user_roles_role_id", "role_id"),)

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey(_fk("identity_users.id"), ondelete="CASCADE"), primary_key=True
    )
    role_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey(_fk("identity_roles.id"), ondelete="CASCADE"), primary_key=True
    )

    user: Mapped[IdentityUser] = relationship(back_populates="roles", lazy="noload")

    def __repr__(self) -> str:
        return f"<IdentityUserRole(user_id={self.user_id}, role_id={self.role_id})>"


class OrganizationUnit(Base):
    """
    Hierarchical grouping of users.

    code is the dotted path from the root (e.g. "00001.00002"); roles granted
    to the unit apply to all of its members.
    """

    __tablename__ = "organization_units"
    __table_args__ = (Index("ix_organization_units_code", "code"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    parent_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey(_fk("organization_units.id")), nullable=True
    )
    code: Mapped[str] = mapped_column(String(95), nullable=False)
    display_name: Mapped[str] = mapped_column(String(128), nullable=False)
    creation_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    # Details
    roles: Mapped[list[OrganizationUnitRole]] = relationship(
        back_populates="organization_unit", cascade="all, delete-orphan", lazy="noload"
    )

    def __repr__(self) -> str:
        return f"<OrganizationUnit(id={self.id}, code={self.code})>"


class IdentityUserOrganizationUnit(Base):
    """Join record relating one user to one organization unit."""

    __tablename__ = "identity_user_organization_units"
    __table_args__ = (
        Index("ix_identity_user_organization_units_ou_id", "organization_unit_id"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey(_fk("identity_users.id"), ondelete="CASCADE"), primary_key=True
    )
    organization_unit_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey(_fk("organization_units.id"), ondelete="CASCADE"), primary_key=True
    )
    creation_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    user: Mapped[IdentityUser] = relationship(back_populates="organization_units", lazy="noload")


class OrganizationUnitRole(Base):
    """Join record granting a role to every member of an organization unit."""

    __tablename__ = "organization_unit_roles"
    __table_args__ = (Index("ix_organization_unit_roles_role_id", "role_id"),)

    organization_unit_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey(_fk("organization_units.id"), ondelete="CASCADE"), primary_key=True
    )
    role_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey(_fk("identity_roles.id"), ondelete="CASCADE"), primary_key=True
    )
    creation_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    organization_unit: Mapped[OrganizationUnit] = relationship(
        back_populates="roles", lazy="noload"
    )

    def __repr__(self) -> str:
        return f"<OrganizationUnitRole(organization_unit_id={self.organization_unit_id}, role_id={self.role_id})>"
