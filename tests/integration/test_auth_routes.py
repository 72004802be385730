"""End-to-end passkey ceremonies over HTTP."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest
from webauthn.helpers import base64url_to_bytes, bytes_to_base64url

from coffelist.storage.repositories.credentials import DatabaseCredentialRepository

if TYPE_CHECKING:
    from helpers.software_authenticator import SoftwareAuthenticator
    from httpx import AsyncClient
    from sqlalchemy.ext.asyncio import AsyncEngine

COOKIE = "coffelist_session"


async def _register(
    client: AsyncClient,
    authenticator: SoftwareAuthenticator,
    username: str = "nikhil",
    email: str = "nikhil@example.com",
) -> dict[str, Any]:
    start = await client.post("/register/start", json={"username": username, "email": email})
    assert start.status_code == 200
    verify = await client.post(
        "/register/verify", json={"credential": authenticator.create(start.json())}
    )
    assert verify.status_code == 200
    return verify.json()


@pytest.mark.integration
class TestRegistrationRoutes:
    @pytest.mark.asyncio
    async def test_full_registration_signs_in(
        self, client: AsyncClient, authenticator: SoftwareAuthenticator
    ) -> None:
        start = await client.post(
            "/register/start", json={"username": "nikhil", "email": "nikhil@example.com"}
        )
        assert start.status_code == 200
        options = start.json()
        assert options["rp"]["id"] == "localhost"
        assert options["user"]["name"] == "nikhil"
        pre_login_cookie = client.cookies.get(COOKIE)
        assert pre_login_cookie

        verify = await client.post(
            "/register/verify", json={"credential": authenticator.create(options)}
        )
        assert verify.status_code == 200
        body = verify.json()
        assert body["verified"] is True
        assert body["user"]["username"] == "nikhil"
        assert body["user"]["email"] == "nikhil@example.com"
        assert client.cookies.get(COOKIE) != pre_login_cookie

        session = await client.get("/session")
        assert session.json() == {
            "authenticated": True,
            "user": {"id": body["user"]["id"], "username": "nikhil"},
        }

    @pytest.mark.asyncio
    async def test_cookie_flags(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/register/start", json={"username": "nikhil", "email": "nikhil@example.com"}
        )
        cookie = resp.headers["set-cookie"].lower()
        assert "httponly" in cookie
        assert "samesite=lax" in cookie

    @pytest.mark.asyncio
    async def test_missing_fields(self, client: AsyncClient) -> None:
        resp = await client.post("/register/start", json={"username": "nikhil"})
        assert resp.status_code == 400
        assert resp.json()["error"] == {
            "kind": "validation_error",
            "message": "Username and email are required",
        }
        assert COOKIE not in client.cookies

    @pytest.mark.asyncio
    async def test_duplicate_username_is_conflict(
        self, client: AsyncClient, authenticator: SoftwareAuthenticator
    ) -> None:
        await _register(client, authenticator)
        resp = await client.post(
            "/register/start", json={"username": "nikhil", "email": "new@example.com"}
        )
        assert resp.status_code == 409
        assert resp.json()["error"]["kind"] == "conflict_error"

    @pytest.mark.asyncio
    async def test_verify_without_start(
        self, client: AsyncClient, authenticator: SoftwareAuthenticator
    ) -> None:
        resp = await client.post("/register/verify", json={"credential": {}})
        assert resp.status_code == 400
        assert resp.json()["error"]["kind"] == "state_error"

    @pytest.mark.asyncio
    async def test_failed_verify_consumes_challenge(
        self, client: AsyncClient, authenticator: SoftwareAuthenticator
    ) -> None:
        start = await client.post(
            "/register/start", json={"username": "nikhil", "email": "nikhil@example.com"}
        )
        options = start.json()

        bad = await client.post(
            "/register/verify",
            json={"credential": authenticator.create(options, origin="https://evil.test")},
        )
        assert bad.status_code == 400
        assert bad.json()["error"] == {
            "kind": "verification_error",
            "message": "Verification failed",
        }

        retry = await client.post(
            "/register/verify", json={"credential": authenticator.create(options)}
        )
        assert retry.status_code == 400
        assert retry.json()["error"]["kind"] == "state_error"

        users = await client.get("/users")
        assert users.json() == []

    @pytest.mark.asyncio
    async def test_malformed_credential(self, client: AsyncClient) -> None:
        await client.post(
            "/register/start", json={"username": "nikhil", "email": "nikhil@example.com"}
        )
        resp = await client.post(
            "/register/verify", json={"credential": {"id": "abc", "type": "public-key"}}
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == {
            "kind": "verification_error",
            "message": "Verification failed",
        }


@pytest.mark.integration
class TestLoginRoutes:
    @pytest.mark.asyncio
    async def test_login_with_username(
        self,
        client: AsyncClient,
        authenticator: SoftwareAuthenticator,
        async_engine: AsyncEngine,
    ) -> None:
        registered = await _register(client, authenticator)
        await client.post("/logout")

        start = await client.post("/login/start", json={"username": "nikhil"})
        assert start.status_code == 200
        options = start.json()
        assert [base64url_to_bytes(c["id"]) for c in options["allowCredentials"]] == (
            authenticator.credential_ids
        )

        verify = await client.post(
            "/login/verify", json={"credential": authenticator.get(options, sign_count=3)}
        )
        assert verify.status_code == 200
        assert verify.json()["user"]["id"] == registered["user"]["id"]

        session = await client.get("/session")
        assert session.json()["authenticated"] is True

        stored = await DatabaseCredentialRepository(async_engine).get_by_credential_id(
            authenticator.credential_ids[0]
        )
        assert stored is not None
        assert stored.sign_count == 3

    @pytest.mark.asyncio
    async def test_login_without_body(
        self, client: AsyncClient, authenticator: SoftwareAuthenticator
    ) -> None:
        await _register(client, authenticator)
        await client.post("/logout")

        start = await client.post("/login/start")
        assert start.status_code == 200
        options = start.json()
        assert not options.get("allowCredentials")

        verify = await client.post("/login/verify", json={"credential": authenticator.get(options)})
        assert verify.status_code == 200
        assert verify.json()["user"]["username"] == "nikhil"

    @pytest.mark.asyncio
    async def test_unknown_username(self, client: AsyncClient) -> None:
        resp = await client.post("/login/start", json={"username": "ghost"})
        assert resp.status_code == 404
        assert resp.json()["error"]["kind"] == "not_found_error"

    @pytest.mark.asyncio
    async def test_verify_without_start(self, client: AsyncClient) -> None:
        resp = await client.post("/login/verify", json={"credential": {}})
        assert resp.status_code == 400
        assert resp.json()["error"]["kind"] == "state_error"

    @pytest.mark.asyncio
    async def test_malformed_credential(self, client: AsyncClient) -> None:
        await client.post("/login/start")
        resp = await client.post(
            "/login/verify", json={"credential": {"id": "abc", "type": "public-key"}}
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == {
            "kind": "verification_error",
            "message": "Verification failed",
        }

    @pytest.mark.asyncio
    async def test_bad_signature_consumes_challenge(
        self, client: AsyncClient, authenticator: SoftwareAuthenticator
    ) -> None:
        await _register(client, authenticator)
        await client.post("/logout")

        options = (await client.post("/login/start")).json()
        assertion = authenticator.get(options)
        forged = {**assertion, "response": dict(assertion["response"])}
        forged["response"]["signature"] = bytes_to_base64url(b"\x30\x06\x02\x01\x01\x02\x01\x01")

        bad = await client.post("/login/verify", json={"credential": forged})
        assert bad.status_code == 400
        assert bad.json()["error"]["kind"] == "verification_error"

        retry = await client.post("/login/verify", json={"credential": assertion})
        assert retry.status_code == 400
        assert retry.json()["error"]["kind"] == "state_error"
        assert (await client.get("/session")).json() == {"authenticated": False}

    @pytest.mark.asyncio
    async def test_replayed_assertion_is_rejected(
        self, client: AsyncClient, authenticator: SoftwareAuthenticator
    ) -> None:
        await _register(client, authenticator)
        await client.post("/logout")

        options = (await client.post("/login/start")).json()
        assertion = authenticator.get(options)
        first = await client.post("/login/verify", json={"credential": assertion})
        assert first.status_code == 200

        # A fresh ceremony cannot be satisfied by the captured assertion either
        await client.post("/logout")
        await client.post("/login/start")
        replay = await client.post("/login/verify", json={"credential": assertion})
        assert replay.status_code == 400
        assert replay.json()["error"]["kind"] == "verification_error"


@pytest.mark.integration
class TestSessionRoutes:
    @pytest.mark.asyncio
    async def test_anonymous_session(self, client: AsyncClient) -> None:
        resp = await client.get("/session")
        assert resp.status_code == 200
        assert resp.json() == {"authenticated": False}
        assert "set-cookie" not in resp.headers

    @pytest.mark.asyncio
    async def test_logout(self, client: AsyncClient, authenticator: SoftwareAuthenticator) -> None:
        await _register(client, authenticator)
        old_cookie = client.cookies.get(COOKIE)

        resp = await client.post("/logout")
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "message": "Logged out successfully"}
        assert (await client.get("/session")).json() == {"authenticated": False}

        # The old cookie no longer names a session
        client.cookies.set(COOKIE, old_cookie)
        assert (await client.get("/session")).json() == {"authenticated": False}

    @pytest.mark.asyncio
    async def test_logout_when_anonymous(self, client: AsyncClient) -> None:
        resp = await client.post("/logout")
        assert resp.status_code == 200
        assert resp.json()["success"] is True

    @pytest.mark.asyncio
    async def test_forged_cookie_is_ignored(self, client: AsyncClient) -> None:
        client.cookies.set(COOKIE, "made-up-session.0123456789abcdef0123456789abcdef")
        resp = await client.get("/session")
        assert resp.json() == {"authenticated": False}
