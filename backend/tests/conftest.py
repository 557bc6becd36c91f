"""Shared test fixtures and configuration for backend tests."""
import asyncio
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from zerolink.auth.verifier import IdentityVerifier, VerifiedIdentity
from zerolink.chat.relay import ChatRelay, set_relay
from zerolink.errors import AuthFailure, PersistenceFailure
from zerolink.files.service import BlobStorageService
from zerolink.main import app
from zerolink.store.duckdb_store import DuckDBStore


class StaticVerifier(IdentityVerifier):
    """Accepts tokens shaped ``valid-<uid>``; everything else is rejected."""

    async def verify_token(self, token: str) -> VerifiedIdentity:
        if not token.startswith("valid-"):
            raise AuthFailure("Invalid token")
        uid = token[len("valid-"):]
        return VerifiedIdentity(uid=uid, email=f"{uid}@example.com", name=uid)


class SlowVerifier(IdentityVerifier):
    """Never answers within any sane timeout."""

    async def verify_token(self, token: str) -> VerifiedIdentity:
        await asyncio.sleep(10)
        return VerifiedIdentity(uid="late")


class FakeWebSocket:
    """Records JSON payloads; optionally fails every send."""

    def __init__(self, fail: bool = False) -> None:
        self.sent = []
        self.fail = fail

    async def send_json(self, payload: dict) -> None:
        if self.fail:
            raise RuntimeError("connection closed")
        self.sent.append(payload)

    def types(self):
        return [p["type"] for p in self.sent]


@pytest.fixture
def store():
    """In-memory DuckDB store, closed after the test."""
    s = DuckDBStore(db_path=":memory:")
    yield s
    s.close()


@pytest.fixture
def relay(store):
    """Relay over the in-memory store, installed as the app's relay."""
    r = ChatRelay(store=store, verifier=StaticVerifier(), verify_timeout=1.0)
    set_relay(r)
    yield r
    set_relay(None)


@pytest.fixture
def slow_relay(store):
    r = ChatRelay(store=store, verifier=SlowVerifier(), verify_timeout=0.05)
    set_relay(r)
    yield r
    set_relay(None)


@pytest.fixture
def blob_service(tmp_path):
    service = BlobStorageService(
        upload_dir=str(tmp_path / "uploads"),
        max_file_size_bytes=1024,
        allowed_mime_types=["image/png", "image/jpeg", "video/mp4"],
    )
    BlobStorageService.set_instance(service)
    yield service
    BlobStorageService.set_instance(None)


@pytest.fixture
def api_client(relay, blob_service):
    """TestClient for the main FastAPI app with the test relay installed.

    Not used as a context manager so the lifespan (which builds a relay from
    config) does not run.
    """
    return TestClient(app)


@pytest.fixture
def fake_ws():
    """Factory for FakeWebSocket instances."""
    return FakeWebSocket


@pytest.fixture
def failing_relay():
    """Relay whose store fails every user lookup."""
    broken = MagicMock()
    broken.find_user.side_effect = PersistenceFailure("find_user failed")
    r = ChatRelay(store=broken, verifier=StaticVerifier())
    set_relay(r)
    yield r
    set_relay(None)
