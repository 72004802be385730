"""SQLModel database table models."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlmodel import Field, SQLModel


def _utc_now() -> datetime:
    """Return current UTC time as naive datetime for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: int | None = Field(default=None, primary_key=True)
    username: str = Field(unique=True, max_length=255)
    email: str = Field(unique=True, index=True, max_length=255)
    created_at: datetime = Field(default_factory=_utc_now)


class Credential(SQLModel, table=True):
    """A passkey public key registered to a user."""

    __tablename__ = "credentials"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", ondelete="CASCADE", index=True)
    credential_id: bytes = Field(unique=True, index=True)
    public_key: bytes
    sign_count: int = Field(default=0, ge=0)
    transports: str = Field(default="[]")  # JSON list of AuthenticatorTransport values
    user_handle: bytes | None = None  # WebAuthn user.id sent at registration
    created_at: datetime = Field(default_factory=_utc_now)
    last_used_at: datetime | None = None


class Roastery(SQLModel, table=True):
    __tablename__ = "roasteries"

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(max_length=255)
    location: str = Field(index=True, max_length=255)
    description: str | None = None
    owner_id: int | None = Field(
        default=None, foreign_key="users.id", ondelete="SET NULL", index=True
    )
    created_at: datetime = Field(default_factory=_utc_now)


class SessionRecord(SQLModel, table=True):
    """Server-side browser session, keyed by the cookie's session id."""

    __tablename__ = "sessions"

    sid: str = Field(primary_key=True)
    data: str  # JSON-encoded SessionData
    expires_at: datetime = Field(index=True)
