"""WebAuthn passkey service: registration and authentication ceremonies."""

from __future__ import annotations

import json
import secrets
from typing import TYPE_CHECKING, Any, TypeVar

import pydantic
import structlog
from webauthn import (
    generate_authentication_options,
    generate_registration_options,
    options_to_json,
    verify_authentication_response,
    verify_registration_response,
)
from webauthn.helpers import base64url_to_bytes, bytes_to_base64url
from webauthn.helpers.exceptions import WebAuthnException
from webauthn.helpers.structs import (
    AttestationConveyancePreference,
    AuthenticatorSelectionCriteria,
    AuthenticatorTransport,
    PublicKeyCredentialDescriptor,
    ResidentKeyRequirement,
    UserVerificationRequirement,
)

from coffelist.exceptions import (
    ConflictError,
    NotFoundError,
    StateError,
    ValidationError,
    VerificationError,
)
from coffelist.models.api import AuthenticationCredentialPayload, RegistrationCredentialPayload
from coffelist.models.session import PendingUser

if TYPE_CHECKING:
    from coffelist.models.database import User
    from coffelist.models.session import SessionData
    from coffelist.storage.repositories.credentials import DatabaseCredentialRepository
    from coffelist.storage.repositories.users import DatabaseUserRepository

logger = structlog.get_logger(__name__)

T = TypeVar("T", bound=pydantic.BaseModel)

# One message for every verification failure so responses do not reveal
# which check rejected the credential.
_VERIFICATION_FAILED = "Verification failed"


class PasskeyService:
    """Orchestrates WebAuthn registration and authentication ceremonies.

    The service holds no per-request state: every call receives the
    browser's ``SessionData`` and reads or writes its challenge fields.
    """

    def __init__(
        self,
        credential_repo: DatabaseCredentialRepository,
        user_repo: DatabaseUserRepository,
        rp_id: str,
        rp_name: str,
        origin: str,
    ) -> None:
        self._credential_repo = credential_repo
        self._user_repo = user_repo
        self._rp_id = rp_id
        self._rp_name = rp_name
        self._origin = origin

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    async def begin_registration(
        self, session: SessionData, username: str, email: str
    ) -> dict[str, Any]:
        """Generate creation options for a not-yet-existing user.

        The challenge and the pending identity go into ``session``; nothing
        is written to the store until ``complete_registration`` succeeds.
        """
        username = (username or "").strip()
        email = (email or "").strip()
        if not username or not email:
            msg = "Username and email are required"
            raise ValidationError(msg)

        if await self._user_repo.exists(username, email):
            msg = "Username or email already exists"
            raise ConflictError(msg)

        user_handle = secrets.token_bytes(32)
        options = generate_registration_options(
            rp_id=self._rp_id,
            rp_name=self._rp_name,
            user_id=user_handle,
            user_name=username,
            user_display_name=username,
            attestation=AttestationConveyancePreference.NONE,
            authenticator_selection=AuthenticatorSelectionCriteria(
                resident_key=ResidentKeyRequirement.PREFERRED,
                user_verification=UserVerificationRequirement.PREFERRED,
            ),
        )

        session.set_challenge(
            options.challenge,
            PendingUser(
                temp_id=bytes_to_base64url(user_handle),
                username=username,
                email=email,
            ),
        )
        logger.info("registration_started", username=username)
        return json.loads(options_to_json(options))

    async def complete_registration(
        self, session: SessionData, credential: dict[str, Any]
    ) -> User:
        """Verify the attestation, then create the user and credential together."""
        expected_challenge, pending = session.pop_challenge()
        if expected_challenge is None or pending is None:
            msg = "No registration in progress"
            raise StateError(msg)

        payload = _parse(RegistrationCredentialPayload, credential)

        try:
            verified = verify_registration_response(
                credential=payload.to_webauthn_json(),
                expected_challenge=expected_challenge,
                expected_rp_id=self._rp_id,
                expected_origin=self._origin,
            )
        except (WebAuthnException, ValueError) as exc:
            logger.warning("registration_verification_failed", error=str(exc))
            raise VerificationError(_VERIFICATION_FAILED) from exc

        user = await self._user_repo.create_with_credential(
            username=pending.username,
            email=pending.email,
            credential_fields={
                "credential_id": verified.credential_id,
                "public_key": verified.credential_public_key,
                "sign_count": verified.sign_count,
                "transports": json.dumps(
                    [t.value for t in _parse_transports(payload.response.transports)]
                ),
                "user_handle": base64url_to_bytes(pending.temp_id),
            },
        )
        logger.info("passkey_registered", user_id=user.id, sign_count=verified.sign_count)
        return user

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    async def begin_authentication(
        self, session: SessionData, username: str | None = None
    ) -> dict[str, Any]:
        """Generate request options.

        With a username, only that user's credentials are allowed. Without
        one, the allow-list is omitted so any discoverable credential works.
        """
        allow_credentials: list[PublicKeyCredentialDescriptor] | None = None

        if username:
            creds = await self._credential_repo.list_for_username(username)
            if not creds:
                msg = "User not found"
                raise NotFoundError(msg)
            allow_credentials = [
                PublicKeyCredentialDescriptor(
                    id=c.credential_id,
                    transports=_parse_transports(json.loads(c.transports or "[]")),
                )
                for c in creds
            ]

        options = generate_authentication_options(
            rp_id=self._rp_id,
            allow_credentials=allow_credentials,
            user_verification=UserVerificationRequirement.PREFERRED,
        )

        session.set_challenge(options.challenge)
        logger.info("authentication_started", username=username)
        return json.loads(options_to_json(options))

    async def complete_authentication(
        self, session: SessionData, credential: dict[str, Any]
    ) -> User:
        """Verify the assertion and advance the signature counter."""
        expected_challenge, _ = session.pop_challenge()
        if expected_challenge is None:
            msg = "No authentication in progress"
            raise StateError(msg)

        payload = _parse(AuthenticationCredentialPayload, credential)
        try:
            credential_id = base64url_to_bytes(payload.raw_id)
        except ValueError as exc:
            logger.warning("credential_id_malformed")
            raise VerificationError(_VERIFICATION_FAILED) from exc

        stored = await self._credential_repo.get_by_credential_id(credential_id)
        if stored is None:
            msg = "Credential not found"
            raise NotFoundError(msg)

        if payload.response.user_handle and stored.user_handle is not None:
            try:
                returned_handle = base64url_to_bytes(payload.response.user_handle)
            except ValueError as exc:
                raise VerificationError(_VERIFICATION_FAILED) from exc
            if not secrets.compare_digest(returned_handle, stored.user_handle):
                logger.warning("user_handle_mismatch", user_id=stored.user_id)
                raise VerificationError(_VERIFICATION_FAILED)

        try:
            verified = verify_authentication_response(
                credential=payload.to_webauthn_json(),
                expected_challenge=expected_challenge,
                expected_rp_id=self._rp_id,
                expected_origin=self._origin,
                credential_public_key=stored.public_key,
                credential_current_sign_count=stored.sign_count,
            )
        except (WebAuthnException, ValueError) as exc:
            logger.warning(
                "authentication_verification_failed", user_id=stored.user_id, error=str(exc)
            )
            raise VerificationError(_VERIFICATION_FAILED) from exc

        # A counter that does not move forward means a replayed or cloned
        # authenticator; the check and the write happen in one statement.
        if verified.new_sign_count <= stored.sign_count or not (
            await self._credential_repo.compare_and_set_sign_count(
                credential_id=stored.credential_id,
                expected=stored.sign_count,
                new_count=verified.new_sign_count,
            )
        ):
            logger.warning(
                "sign_count_rejected",
                user_id=stored.user_id,
                stored=stored.sign_count,
                reported=verified.new_sign_count,
            )
            raise VerificationError(_VERIFICATION_FAILED)

        user = await self._user_repo.get_by_id(stored.user_id)
        if user is None:
            msg = "User not found"
            raise NotFoundError(msg)

        logger.info("passkey_authenticated", user_id=user.id, sign_count=verified.new_sign_count)
        return user


def _parse(model: type[T], credential: dict[str, Any]) -> T:
    """Check a credential's shape before any cryptographic work."""
    try:
        return model.model_validate(credential)
    except pydantic.ValidationError as exc:
        logger.warning("credential_malformed", errors=exc.error_count())
        raise VerificationError(_VERIFICATION_FAILED) from exc


def _parse_transports(raw: list[str]) -> list[AuthenticatorTransport]:
    """Map transport strings onto AuthenticatorTransport, dropping unknown values."""
    result: list[AuthenticatorTransport] = []
    for t in raw:
        try:
            result.append(AuthenticatorTransport(t))
        except ValueError:
            continue
    return result
