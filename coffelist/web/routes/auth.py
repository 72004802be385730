"""Authentication routes: passkey registration, passkey login, session, logout."""

from __future__ import annotations

from typing import Any, cast

import structlog
from fastapi import APIRouter, Depends, Response

from coffelist.models.api import (
    CeremonyResult,
    CredentialRequest,
    LoginStartRequest,
    LogoutResult,
    RegisterStartRequest,
    SessionStatus,
    UserPublic,
)
from coffelist.web.auth.passkey_service import PasskeyService
from coffelist.web.auth.session import (
    BrowserSession,
    SessionAuth,
    get_browser_session,
    get_session_auth,
)
from coffelist.web.dependencies import get_passkey_service

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["auth"])


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


@router.post("/register/start")
async def register_start(
    body: RegisterStartRequest,
    response: Response,
    session: BrowserSession = Depends(get_browser_session),
    auth: SessionAuth = Depends(get_session_auth),
    passkeys: PasskeyService = Depends(get_passkey_service),
) -> dict[str, Any]:
    """Begin passkey registration; returns PublicKeyCredentialCreationOptions."""
    options = await passkeys.begin_registration(session.data, body.username, body.email)
    await auth.commit(session, response)
    return options


@router.post("/register/verify", response_model=CeremonyResult)
async def register_verify(
    body: CredentialRequest,
    response: Response,
    session: BrowserSession = Depends(get_browser_session),
    auth: SessionAuth = Depends(get_session_auth),
    passkeys: PasskeyService = Depends(get_passkey_service),
) -> CeremonyResult:
    """Verify the attestation, create the account and sign the browser in."""
    try:
        user = await passkeys.complete_registration(session.data, body.credential)
        await auth.establish(session, user_id=cast(int, user.id), username=user.username)
    finally:
        # The challenge is spent whether or not verification succeeded
        await auth.commit(session, response)

    return CeremonyResult(verified=True, user=UserPublic.model_validate(user.model_dump()))


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


@router.post("/login/start")
async def login_start(
    response: Response,
    body: LoginStartRequest | None = None,
    session: BrowserSession = Depends(get_browser_session),
    auth: SessionAuth = Depends(get_session_auth),
    passkeys: PasskeyService = Depends(get_passkey_service),
) -> dict[str, Any]:
    """Begin passkey authentication; returns PublicKeyCredentialRequestOptions."""
    username = body.username if body else None
    options = await passkeys.begin_authentication(session.data, username=username)
    await auth.commit(session, response)
    return options


@router.post("/login/verify", response_model=CeremonyResult)
async def login_verify(
    body: CredentialRequest,
    response: Response,
    session: BrowserSession = Depends(get_browser_session),
    auth: SessionAuth = Depends(get_session_auth),
    passkeys: PasskeyService = Depends(get_passkey_service),
) -> CeremonyResult:
    """Verify the assertion and sign the browser in."""
    try:
        user = await passkeys.complete_authentication(session.data, body.credential)
        await auth.establish(session, user_id=cast(int, user.id), username=user.username)
    finally:
        await auth.commit(session, response)

    return CeremonyResult(verified=True, user=UserPublic.model_validate(user.model_dump()))


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


@router.get("/session", response_model=SessionStatus, response_model_exclude_none=True)
async def get_session(
    session: BrowserSession = Depends(get_browser_session),
    auth: SessionAuth = Depends(get_session_auth),
) -> SessionStatus:
    """Report whether the browser is signed in, and as whom."""
    user = auth.current_user(session.data)
    if user is None:
        return SessionStatus(authenticated=False)
    return SessionStatus.model_validate({"authenticated": True, "user": user})


@router.post("/logout", response_model=LogoutResult)
async def logout(
    response: Response,
    session: BrowserSession = Depends(get_browser_session),
    auth: SessionAuth = Depends(get_session_auth),
) -> LogoutResult:
    """Destroy the current session."""
    await auth.destroy(session, response)
    return LogoutResult(success=True, message="Logged out successfully")
