"""Cookie-based server-side sessions and the session issuer."""

from __future__ import annotations

import hashlib
import hmac
import secrets
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

import structlog
from fastapi import Request

from coffelist.models.session import SessionData

if TYPE_CHECKING:
    from fastapi import Response

logger = structlog.get_logger(__name__)


class SessionStore(Protocol):
    async def load(self, sid: str) -> SessionData | None: ...

    async def save(self, sid: str, data: SessionData, max_age: int) -> None: ...

    async def destroy(self, sid: str) -> None: ...


class InMemorySessionStore:
    """Process-local session store with TTL expiry.

    Expired entries are lazily cleaned on ``save``.
    """

    def __init__(self) -> None:
        self._store: dict[str, tuple[str, float]] = {}  # sid -> (json, expires_at)

    async def load(self, sid: str) -> SessionData | None:
        entry = self._store.get(sid)
        if entry is None:
            return None
        raw, expires_at = entry
        if time.time() > expires_at:
            del self._store[sid]
            return None
        return SessionData.model_validate_json(raw)

    async def save(self, sid: str, data: SessionData, max_age: int) -> None:
        self._cleanup()
        self._store[sid] = (data.model_dump_json(), time.time() + max_age)

    async def destroy(self, sid: str) -> None:
        self._store.pop(sid, None)

    def _cleanup(self) -> None:
        now = time.time()
        expired = [k for k, (_, exp) in self._store.items() if now > exp]
        for k in expired:
            del self._store[k]


@dataclass
class BrowserSession:
    """A loaded session and the signed cookie token that names it."""

    token: str
    data: SessionData
    is_new: bool = False


class SessionAuth:
    """Signs session cookies and reads/writes session records."""

    def __init__(
        self,
        store: SessionStore,
        secret_key: str,
        max_age: int = 30 * 24 * 60 * 60,
        cookie_name: str = "coffelist_session",
        secure_cookie: bool = True,
    ) -> None:
        self._store = store
        self._secret = secret_key.encode()
        self._max_age = max_age
        self.cookie_name = cookie_name
        self._secure_cookie = secure_cookie

    async def load(self, token: str | None) -> BrowserSession:
        """Resolve a cookie token; unknown or tampered tokens get a fresh session."""
        sid = self._unsign(token) if token else None
        if sid is not None:
            data = await self._store.load(sid)
            if data is not None:
                return BrowserSession(token=token or "", data=data)
        return BrowserSession(token=self._new_token(), data=SessionData(), is_new=True)

    async def commit(self, session: BrowserSession, response: Response) -> None:
        """Persist the session and (re)send its cookie.

        A brand-new session with nothing in it is not stored.
        """
        if session.is_new and session.data.is_empty():
            return
        await self._store.save(self._sid(session.token), session.data, self._max_age)
        response.set_cookie(
            key=self.cookie_name,
            value=session.token,
            httponly=True,
            secure=self._secure_cookie,
            samesite="lax",
            max_age=self._max_age,
        )

    async def establish(self, session: BrowserSession, user_id: int, username: str) -> None:
        """Bind an authenticated identity to the session.

        The challenge fields are cleared in the same write, and the session
        id is rotated so a pre-login cookie cannot ride the new identity.
        """
        if not session.is_new:
            await self._store.destroy(self._sid(session.token))
        session.token = self._new_token()
        session.is_new = True
        session.data.clear_challenge()
        session.data.user_id = user_id
        session.data.username = username
        logger.info("session_established", user_id=user_id, username=username)

    async def destroy(self, session: BrowserSession, response: Response) -> None:
        """Remove the whole session: identity and any stray ceremony state."""
        if not session.is_new:
            await self._store.destroy(self._sid(session.token))
        response.delete_cookie(self.cookie_name)
        logger.info("session_destroyed", user_id=session.data.user_id)

    @staticmethod
    def current_user(data: SessionData) -> dict[str, Any] | None:
        if not data.is_authenticated:
            return None
        return {"id": data.user_id, "username": data.username}

    def _new_token(self) -> str:
        sid = secrets.token_urlsafe(32)
        return f"{sid}.{self._sign(sid)}"

    def _unsign(self, token: str) -> str | None:
        if "." not in token:
            return None
        sid, signature = token.rsplit(".", 1)
        if not hmac.compare_digest(signature, self._sign(sid)):
            return None
        return sid

    @staticmethod
    def _sid(token: str) -> str:
        return token.rsplit(".", 1)[0]

    def _sign(self, data: str) -> str:
        """Create HMAC signature for a session id."""
        return hmac.new(self._secret, data.encode(), hashlib.sha256).hexdigest()[:32]


def get_session_auth(request: Request) -> SessionAuth:
    return request.app.state.session_auth


async def get_browser_session(request: Request) -> BrowserSession:
    auth = get_session_auth(request)
    return await auth.load(request.cookies.get(auth.cookie_name))
