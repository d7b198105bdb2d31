"""SQLAlchemy ORM models — single source of truth for the database schema.

Learn: Declarative ORM mapping with SQLAlchemy 2.0 style (Mapped[] + mapped_column).
Each class = one table. Relationships, constraints, and indexes defined here.
Alembic migrations mirror these models (plus the PostgreSQL-only RLS policies).

Key concepts:
- UUID primary keys via the dialect-neutral Uuid type (native uuid on
  PostgreSQL, CHAR(32) on SQLite — tests run on SQLite)
- Credentials live in their own 1:1 table, apart from the public profile
- Refresh and reset tokens are stored as SHA-256 digests, never raw
- trips is row-secured: PostgreSQL filters it by the session-bound account
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    LargeBinary,
    String,
    Table,
    Uuid,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_uuid() -> uuid.UUID:
    return uuid.uuid4()


# ══════════════════════════════════════════════════════════════
# Accounts, roles, credentials
# ══════════════════════════════════════════════════════════════


account_roles = Table(
    "account_roles",
    Base.metadata,
    Column("account_id", Uuid, ForeignKey("accounts.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)


class Role(Base):
    """A named role ("User", "Admin"). Seeded by the initial migration."""

    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)


class Account(Base):
    """A traveller's account — the tenant boundary.

    Learn: Every row-secured table carries an owner id pointing here.
    The account id is what the session binder writes onto each database
    connection, and what the RLS policies compare against.
    """

    __tablename__ = "accounts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    user_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    roles: Mapped[list["Role"]] = relationship(
        secondary=account_roles, lazy="selectin"
    )
    credential: Mapped["Credential"] = relationship(
        back_populates="account",
        uselist=False,
        cascade="all, delete-orphan",
    )

    @property
    def role_names(self) -> tuple[str, ...]:
        return tuple(sorted(r.name for r in self.roles))


class Credential(Base):
    """Secrets for one account (1:1).

    Learn: At most one live refresh token and one live reset token per
    account — issuing a new one overwrites the column, which invalidates
    the previous value. The refresh-token swap is a conditional UPDATE
    (compare old digest, write new) so two racing refreshes can't both win.
    """

    __tablename__ = "credentials"

    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("accounts.id", ondelete="CASCADE"), primary_key=True
    )
    password_hash: Mapped[bytes] = mapped_column(LargeBinary(64), nullable=False)
    password_salt: Mapped[bytes] = mapped_column(LargeBinary(32), nullable=False)
    refresh_token_hash: Mapped[Optional[str]] = mapped_column(
        String(64), nullable=True, index=True
    )
    refresh_token_expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    reset_token_hash: Mapped[Optional[str]] = mapped_column(
        String(64), nullable=True, unique=True
    )
    reset_token_expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    account: Mapped["Account"] = relationship(back_populates="credential")


# ══════════════════════════════════════════════════════════════
# Row-secured data
# ══════════════════════════════════════════════════════════════


class Trip(Base):
    """A planned trip. Row-secured by owner_id.

    Learn: Trip CRUD lives elsewhere; this model exists so the identity
    core has a real row-secured table to isolate. On PostgreSQL the
    policy only exposes rows whose owner_id equals the account bound to
    the connection — a connection with nothing bound sees no rows at all.
    """

    __tablename__ = "trips"
    __table_args__ = (Index("idx_trips_owner", "owner_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    destination: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


# ══════════════════════════════════════════════════════════════
# Audit trail
# ══════════════════════════════════════════════════════════════


class Event(Base):
    """Immutable audit event log.

    Learn: Every auth state change is recorded as an event. Events are
    append-only (never updated/deleted).

    stream_id examples: "account:<uuid>"
    type examples: "account.registered", "auth.token_refreshed"
    """

    __tablename__ = "events"
    __table_args__ = (
        Index("idx_events_stream", "stream_id", "id"),
        Index("idx_events_type", "type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    stream_id: Mapped[str] = mapped_column(String(200), nullable=False)
    type: Mapped[str] = mapped_column(String(100), nullable=False)
    data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    meta: Mapped[dict] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )
    # Note: Python attr is "meta" because "metadata" is reserved by SQLAlchemy.
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
