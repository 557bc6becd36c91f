"""Tests for identity verification and the auth endpoints."""
import asyncio
import time

import httpx
import jwt
import pytest

from zerolink.auth.verifier import (
    JWTIdentityVerifier,
    RemoteIdentityVerifier,
    build_verifier,
    verify_with_timeout,
)
from zerolink.config import AppSettings, AuthSettings
from zerolink.errors import AuthFailure

SECRET = "zerolink-test-secret-0123456789abcdef"


def make_token(secret=SECRET, **claims):
    claims.setdefault("exp", int(time.time()) + 60)
    return jwt.encode(claims, secret, algorithm="HS256")


# =============================================================================
# JWT verifier
# =============================================================================


class TestJWTIdentityVerifier:

    @pytest.mark.asyncio
    async def test_valid_token(self):
        verifier = JWTIdentityVerifier(secret_key=SECRET)
        identity = await verifier.verify_token(
            make_token(sub="u-1", email="alice@example.com", name="Alice")
        )
        assert identity.uid == "u-1"
        assert identity.email == "alice@example.com"
        assert identity.name == "Alice"

    @pytest.mark.asyncio
    async def test_uid_claim_preferred_and_name_falls_back_to_email(self):
        verifier = JWTIdentityVerifier(secret_key=SECRET)
        identity = await verifier.verify_token(
            make_token(uid="firebase-uid", sub="other", email="bob@example.com")
        )
        assert identity.uid == "firebase-uid"
        assert identity.name == "bob@example.com"

    @pytest.mark.asyncio
    async def test_expired_token(self):
        verifier = JWTIdentityVerifier(secret_key=SECRET)
        with pytest.raises(AuthFailure, match="expired"):
            await verifier.verify_token(make_token(sub="u-1", exp=int(time.time()) - 10))

    @pytest.mark.asyncio
    async def test_bad_signature(self):
        verifier = JWTIdentityVerifier(secret_key=SECRET)
        with pytest.raises(AuthFailure):
            await verifier.verify_token(make_token(secret="some-other-secret-0123456789abcdef", sub="u-1"))

    @pytest.mark.asyncio
    async def test_garbage_token(self):
        with pytest.raises(AuthFailure):
            await JWTIdentityVerifier(secret_key=SECRET).verify_token("not-a-jwt")

    @pytest.mark.asyncio
    async def test_empty_token(self):
        with pytest.raises(AuthFailure):
            await JWTIdentityVerifier(secret_key=SECRET).verify_token("")

    @pytest.mark.asyncio
    async def test_token_without_subject(self):
        with pytest.raises(AuthFailure, match="subject"):
            await JWTIdentityVerifier(secret_key=SECRET).verify_token(
                make_token(email="nobody@example.com")
            )

    @pytest.mark.asyncio
    async def test_audience_checked_when_configured(self):
        verifier = JWTIdentityVerifier(secret_key=SECRET, audience="zerolink")
        ok = await verifier.verify_token(make_token(sub="u-1", aud="zerolink"))
        assert ok.uid == "u-1"
        with pytest.raises(AuthFailure):
            await verifier.verify_token(make_token(sub="u-1", aud="someone-else"))


# =============================================================================
# Remote verifier
# =============================================================================


def _remote(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RemoteIdentityVerifier("http://idp.test/verify", client=client)


class TestRemoteIdentityVerifier:

    @pytest.mark.asyncio
    async def test_valid_token(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(200, json={"uid": "u-9", "email": "carol@example.com"})

        verifier = _remote(handler)
        identity = await verifier.verify_token("opaque")
        await verifier.aclose()

        assert seen["auth"] == "Bearer opaque"
        assert identity.uid == "u-9"
        assert identity.name == "carol@example.com"

    @pytest.mark.asyncio
    async def test_rejected_token(self):
        verifier = _remote(lambda request: httpx.Response(401, json={"error": "Unauthorized"}))
        with pytest.raises(AuthFailure, match="401"):
            await verifier.verify_token("opaque")

    @pytest.mark.asyncio
    async def test_missing_uid(self):
        verifier = _remote(lambda request: httpx.Response(200, json={"email": "x@example.com"}))
        with pytest.raises(AuthFailure):
            await verifier.verify_token("opaque")

    @pytest.mark.asyncio
    async def test_unreachable_provider(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(AuthFailure, match="unreachable"):
            await _remote(handler).verify_token("opaque")

    def test_url_required(self):
        with pytest.raises(ValueError):
            RemoteIdentityVerifier("")


# =============================================================================
# Timeout and factory
# =============================================================================


class _Sleepy(JWTIdentityVerifier):
    async def verify_token(self, token):
        await asyncio.sleep(5)


class TestVerifyWithTimeout:

    @pytest.mark.asyncio
    async def test_timeout_is_auth_failure(self):
        with pytest.raises(AuthFailure, match="timed out"):
            await verify_with_timeout(_Sleepy(secret_key=SECRET), "t", timeout=0.01)

    @pytest.mark.asyncio
    async def test_passes_result_through(self):
        identity = await verify_with_timeout(
            JWTIdentityVerifier(secret_key=SECRET), make_token(sub="u-1"), timeout=1.0
        )
        assert identity.uid == "u-1"


class TestBuildVerifier:

    def test_jwt_with_configured_secret(self):
        config = AppSettings(secrets={"jwt": {"secret_key": SECRET}})
        verifier = build_verifier(config)
        assert isinstance(verifier, JWTIdentityVerifier)
        assert verifier.secret_key == SECRET
        assert verifier.algorithm == "HS256"

    def test_placeholder_secret_refused(self):
        with pytest.raises(ValueError, match="secret_key"):
            build_verifier(AppSettings())

    def test_empty_secret_refused(self):
        with pytest.raises(ValueError):
            build_verifier(AppSettings(secrets={"jwt": {"secret_key": ""}}))

    @pytest.mark.asyncio
    async def test_remote_does_not_need_jwt_secret(self):
        config = AppSettings(
            auth=AuthSettings(verifier="remote", verify_url="http://idp.test/verify")
        )
        verifier = build_verifier(config)
        assert isinstance(verifier, RemoteIdentityVerifier)
        assert verifier.verify_url == "http://idp.test/verify"
        await verifier.aclose()


# =============================================================================
# Endpoints
# =============================================================================


class TestAuthEndpoints:

    def test_verify(self, api_client):
        response = api_client.post(
            "/api/auth/verify", headers={"Authorization": "Bearer valid-alice"}
        )
        assert response.status_code == 200
        assert response.json() == {"uid": "alice", "email": "alice@example.com"}

    def test_verify_without_header(self, api_client):
        response = api_client.post("/api/auth/verify")
        assert response.status_code == 401
        assert response.json()["detail"] == "No token provided"

    def test_verify_bad_token(self, api_client):
        response = api_client.post(
            "/api/auth/verify", headers={"Authorization": "Bearer forged"}
        )
        assert response.status_code == 401
        assert response.json()["detail"] == "Unauthorized"

    def test_protected(self, api_client):
        response = api_client.get(
            "/api/protected", headers={"Authorization": "Bearer valid-bob"}
        )
        assert response.status_code == 200
        assert response.json() == {"message": "Hello, bob@example.com"}

    def test_protected_wrong_scheme(self, api_client):
        response = api_client.get(
            "/api/protected", headers={"Authorization": "Basic dXNlcjpwYXNz"}
        )
        assert response.status_code == 401
