"""Per-browser session state: ceremony challenge plus authenticated identity."""

from __future__ import annotations

from pydantic import BaseModel
from webauthn.helpers import base64url_to_bytes, bytes_to_base64url


class PendingUser(BaseModel):
    """Identity chosen at registration start, persisted only after verify."""

    temp_id: str  # base64url WebAuthn user handle
    username: str
    email: str


class SessionData(BaseModel):
    """Everything stored server-side for one browser session.

    The challenge fields are transient and belong to at most one ceremony
    at a time. The ``user_id``/``username`` fields are set once a ceremony
    succeeds and live until logout or expiry.
    """

    current_challenge: str | None = None
    registration_user: PendingUser | None = None
    user_id: int | None = None
    username: str | None = None

    def set_challenge(self, challenge: bytes, pending: PendingUser | None = None) -> None:
        """Record a new outstanding challenge, replacing any earlier one."""
        self.current_challenge = bytes_to_base64url(challenge)
        self.registration_user = pending

    def pop_challenge(self) -> tuple[bytes | None, PendingUser | None]:
        """Return the outstanding challenge and pending user, clearing both."""
        raw, pending = self.current_challenge, self.registration_user
        self.clear_challenge()
        return (base64url_to_bytes(raw) if raw else None), pending

    def clear_challenge(self) -> None:
        self.current_challenge = None
        self.registration_user = None

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    def is_empty(self) -> bool:
        return self.current_challenge is None and not self.is_authenticated
