"""Request and response models for the HTTP API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from webauthn.helpers.structs import AuthenticatorAttachment

# ---------------------------------------------------------------------------
# WebAuthn credential payloads (PublicKeyCredential as JSON)
# ---------------------------------------------------------------------------


class _CredentialBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class AttestationResponse(_CredentialBody):
    client_data_json: str = Field(alias="clientDataJSON", min_length=1)
    attestation_object: str = Field(alias="attestationObject", min_length=1)
    transports: list[str] = Field(default_factory=list)


class AssertionResponse(_CredentialBody):
    client_data_json: str = Field(alias="clientDataJSON", min_length=1)
    authenticator_data: str = Field(alias="authenticatorData", min_length=1)
    signature: str = Field(min_length=1)
    user_handle: str | None = Field(default=None, alias="userHandle")


class _PublicKeyCredential(_CredentialBody):
    id: str = Field(min_length=1)
    raw_id: str = Field(alias="rawId", min_length=1)
    type: Literal["public-key"]
    authenticator_attachment: str | None = Field(default=None, alias="authenticatorAttachment")
    client_extension_results: dict[str, Any] = Field(
        default_factory=dict, alias="clientExtensionResults"
    )

    def to_webauthn_json(self) -> dict[str, Any]:
        """Return the camelCase dict shape py_webauthn parses.

        An attachment value py_webauthn does not know is dropped; it is a hint
        and plays no part in verification.
        """
        data = self.model_dump(by_alias=True, exclude_none=True)
        known = {a.value for a in AuthenticatorAttachment}
        if data.get("authenticatorAttachment") not in known:
            data.pop("authenticatorAttachment", None)
        return data


class RegistrationCredentialPayload(_PublicKeyCredential):
    """Result of ``navigator.credentials.create()``."""

    response: AttestationResponse


class AuthenticationCredentialPayload(_PublicKeyCredential):
    """Result of ``navigator.credentials.get()``."""

    response: AssertionResponse


# ---------------------------------------------------------------------------
# Ceremony requests
# ---------------------------------------------------------------------------


class RegisterStartRequest(BaseModel):
    username: str = ""
    email: str = ""


class LoginStartRequest(BaseModel):
    username: str | None = None


class CredentialRequest(BaseModel):
    # Shape is checked by the passkey service so that a missing ceremony is
    # reported before a malformed credential.
    credential: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class UserPublic(BaseModel):
    id: int
    username: str
    email: str


class CeremonyResult(BaseModel):
    verified: bool
    user: UserPublic


class SessionUser(BaseModel):
    id: int
    username: str


class SessionStatus(BaseModel):
    authenticated: bool
    user: SessionUser | None = None


class LogoutResult(BaseModel):
    success: bool
    message: str = ""


# ---------------------------------------------------------------------------
# Directory API
# ---------------------------------------------------------------------------


class CreateUserRequest(BaseModel):
    username: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=1, max_length=255)


class UserResponse(UserPublic):
    created_at: datetime


class CreateRoasteryRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    location: str = Field(min_length=1, max_length=255)
    description: str | None = None
    owner_id: int | None = None


class RoasteryResponse(BaseModel):
    id: int
    name: str
    location: str
    description: str | None = None
    owner_id: int | None = None
    owner_username: str | None = None
    owner_email: str | None = None
    created_at: datetime
