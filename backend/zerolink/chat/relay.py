"""ChatRelay: wires store, verifier, registry, resolver and dispatcher.

A process-wide instance is created lazily from config, or installed with
``set_relay`` (``zerolink/main.py`` lifespan, tests).
"""
import logging
from typing import Optional

from zerolink.auth.verifier import IdentityVerifier, build_verifier
from zerolink.config import AppSettings, get_config
from zerolink.store.base import PersistenceStore
from zerolink.store.duckdb_store import DuckDBStore

from .dispatcher import MessageDispatcher
from .lifecycle import ConnectionLifecycle
from .manager import SessionRegistry
from .rooms import RoomResolver

logger = logging.getLogger(__name__)


class ChatRelay:
    """One relay instance: all live sessions share its registry and store.

    Args:
        store: Persistence store.
        verifier: Identity verifier for handshake tokens.
        verify_timeout: Seconds allowed for one verification.
        registry: Session registry (a fresh one by default).
    """

    def __init__(
        self,
        store: PersistenceStore,
        verifier: IdentityVerifier,
        verify_timeout: float = 5.0,
        registry: Optional[SessionRegistry] = None,
    ) -> None:
        self.store = store
        self.verifier = verifier
        self.verify_timeout = verify_timeout
        self.registry = registry or SessionRegistry()
        self.resolver = RoomResolver(store)
        self.dispatcher = MessageDispatcher(self.registry, store, self.resolver)
        self.lifecycle = ConnectionLifecycle(
            registry=self.registry,
            store=store,
            resolver=self.resolver,
            dispatcher=self.dispatcher,
            verifier=verifier,
            verify_timeout=verify_timeout,
        )

    @classmethod
    def from_config(cls, config: AppSettings) -> "ChatRelay":
        store = DuckDBStore(db_path=config.storage.db_path)
        logger.info(f"[Relay] Store ready at {config.storage.db_path}")
        return cls(
            store=store,
            verifier=build_verifier(config),
            verify_timeout=config.auth.verify_timeout_seconds,
        )

    async def aclose(self) -> None:
        await self.verifier.aclose()
        self.store.close()


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_relay: Optional[ChatRelay] = None


def get_relay() -> ChatRelay:
    """Return the global ChatRelay, creating it from config on first use."""
    global _relay
    if _relay is None:
        _relay = ChatRelay.from_config(get_config())
    return _relay


def set_relay(relay: Optional[ChatRelay]) -> None:
    """Set, replace or clear (None) the global ChatRelay instance."""
    global _relay
    _relay = relay
