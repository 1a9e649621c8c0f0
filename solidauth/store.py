"""Durable key-value storage for the login sequence.

The login sequence is interrupted by a full navigation to the identity
provider and back, so everything that must survive (the selected
provider, registered clients, pending correlation tokens and the
current session) is written through a synchronous string store before
the redirect.

Provides the ``KeyValueStore`` ABC, in-memory and JSON-file backends,
and ``AuthStore``, which owns the key naming conventions.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
import time

from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .exceptions import MissingState, StoreError
from .types import Session


if TYPE_CHECKING:
    from collections.abc import Iterator

    from .config import StoreSettings


logger = logging.getLogger("solidauth.store")

# Fixed keys
CURRENT_PROVIDER = "solid.current-provider"
CURRENT_CREDENTIALS = "solid.current-user"
PROVIDER_BY_STATE_INDEX = "oidc.provider.by-state-index"

# Key prefixes
RP_BY_PROVIDER = "oidc.rp.by-provider."
PROVIDER_BY_STATE = "oidc.provider.by-state."


class KeyValueStore(ABC):
    """Synchronous string-keyed, string-valued store.

    Mirrors the browser ``localStorage`` contract: no expiry, last write
    wins, no locking across processes.
    """

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the value stored under ``key``, or None."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, overwriting any previous value."""

    @abstractmethod
    def remove(self, key: str) -> None:
        """Remove ``key``; missing keys are ignored."""

    @abstractmethod
    def keys(self) -> Iterator[str]:
        """Iterate over all stored keys."""

    def clear(self) -> None:
        """Remove every key."""
        for key in list(self.keys()):
            self.remove(key)


class MemoryStore(KeyValueStore):
    """In-memory store for tests and single-process use.

    Parameters
    ----------
    initial : dict[str, str], optional
        Records to seed the store with.
    """

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        """Initialize the memory store."""
        self._data: dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        """Return the value stored under ``key``."""
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``."""
        with self._lock:
            self._data[key] = value

    def remove(self, key: str) -> None:
        """Remove ``key``."""
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> Iterator[str]:
        """Iterate over a snapshot of the stored keys."""
        with self._lock:
            return iter(list(self._data))

    def __len__(self) -> int:
        return len(self._data)


class JsonFileStore(KeyValueStore):
    """Store persisted as a single JSON object on disk.

    Each write replaces the file atomically, so a crash between the
    correlation write and the redirect never leaves a truncated file.

    Parameters
    ----------
    path : str or Path
        File to read and write. Parent directories are created on first
        write.
    """

    def __init__(self, path: str | Path) -> None:
        """Initialize the file store."""
        self.path = Path(path).expanduser()
        self._lock = threading.Lock()

    def _read(self) -> dict[str, str]:
        try:
            content = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            data = json.loads(content) if content.strip() else {}
        except json.JSONDecodeError as exc:
            msg = f"Store file is not valid JSON: {exc}"
            raise StoreError(msg, path=str(self.path)) from exc
        if not isinstance(data, dict) or not all(isinstance(v, str) for v in data.values()):
            msg = "Store file must contain a JSON object of string values"
            raise StoreError(msg, path=str(self.path))
        return data

    def _write(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".store-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2, sort_keys=True)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def get(self, key: str) -> str | None:
        """Return the value stored under ``key``."""
        with self._lock:
            return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key`` and flush to disk."""
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    def remove(self, key: str) -> None:
        """Remove ``key`` and flush to disk."""
        with self._lock:
            data = self._read()
            if key in data:
                del data[key]
                self._write(data)

    def keys(self) -> Iterator[str]:
        """Iterate over the stored keys."""
        with self._lock:
            return iter(list(self._read()))


def create_store(settings: StoreSettings) -> KeyValueStore:
    """Build the store backend named by ``settings.backend``.

    Parameters
    ----------
    settings : StoreSettings
        Store configuration section.

    Returns
    -------
    KeyValueStore
        A new store instance.
    """
    if settings.backend == "memory":
        return MemoryStore()
    if settings.backend == "file":
        return JsonFileStore(settings.path)
    msg = f"Unknown store backend: {settings.backend}"
    raise ValueError(msg)


def key_by_state(state: str | None) -> str:
    """Compose the correlation record key for ``state``.

    Raises
    ------
    MissingState
        If ``state`` is empty.
    """
    if not state:
        msg = "No state provided"
        raise MissingState(msg)
    return PROVIDER_BY_STATE + state


def key_by_provider(provider_uri: str) -> str:
    """Compose the client registration key for ``provider_uri``."""
    return RP_BY_PROVIDER + provider_uri


class AuthStore:
    """Record-level view over a ``KeyValueStore``.

    Parameters
    ----------
    store : KeyValueStore
        The underlying durable store (usually shared with the relying
        party, which stashes its own request records there).
    correlation_ttl_seconds : int
        Age after which correlation records are pruned when a new one is
        written. ``0`` keeps them forever.
    """

    def __init__(self, store: KeyValueStore, correlation_ttl_seconds: int = 86400) -> None:
        """Initialize the auth store adapter."""
        self.store = store
        self.correlation_ttl_seconds = correlation_ttl_seconds

    # ── Current provider ────────────────────────────────────────────

    def load_current_provider(self) -> str | None:
        """Return the persisted current provider URI."""
        return self.store.get(CURRENT_PROVIDER)

    def save_current_provider(self, provider_uri: str) -> None:
        """Persist ``provider_uri`` as the current provider."""
        self.store.set(CURRENT_PROVIDER, provider_uri)

    # ── Session ─────────────────────────────────────────────────────

    def load_session(self) -> Session:
        """Return the persisted session, or an empty one."""
        raw = self.store.get(CURRENT_CREDENTIALS)
        if not raw:
            return Session()
        try:
            return Session.from_json(raw)
        except (ValueError, TypeError) as exc:
            logger.warning("Discarding unreadable session record: %s", exc)
            return Session()

    def save_session(self, session: Session) -> None:
        """Persist ``session`` under the current-session key."""
        self.store.set(CURRENT_CREDENTIALS, session.to_json())

    def clear_session(self) -> None:
        """Remove the persisted session."""
        self.store.remove(CURRENT_CREDENTIALS)

    # ── Client registrations ────────────────────────────────────────

    def load_client_config(self, provider_uri: str) -> str | None:
        """Return the serialized client registration for ``provider_uri``."""
        return self.store.get(key_by_provider(provider_uri))

    def save_client_config(self, provider_uri: str, serialized: str) -> None:
        """Persist a serialized client registration for ``provider_uri``."""
        self.store.set(key_by_provider(provider_uri), serialized)

    # ── Correlation records ─────────────────────────────────────────

    def load_provider_by_state(self, state: str | None) -> str | None:
        """Return the provider URI recorded for ``state``, if any."""
        if not state:
            return None
        return self.store.get(key_by_state(state))

    def save_provider_by_state(self, state: str | None, provider_uri: str) -> None:
        """Record which provider an outgoing request with ``state`` went to.

        Raises
        ------
        MissingState
            If ``state`` is empty. Nothing is written.
        """
        if not state:
            msg = "Cannot save providerUri - state not provided"
            raise MissingState(msg, provider=provider_uri)

        self.store.set(key_by_state(state), provider_uri)

        index = self._load_index()
        index[state] = time.time()
        if self.correlation_ttl_seconds:
            self._prune(index, time.time())
        self._save_index(index)

    def prune_correlation_records(self, now: float | None = None) -> list[str]:
        """Remove correlation records older than the configured TTL.

        Parameters
        ----------
        now : float, optional
            Reference timestamp (default: current time).

        Returns
        -------
        list[str]
            The states whose records were removed.
        """
        if not self.correlation_ttl_seconds:
            return []
        index = self._load_index()
        removed = self._prune(index, time.time() if now is None else now)
        self._save_index(index)
        return removed

    def _prune(self, index: dict[str, float], now: float) -> list[str]:
        cutoff = now - self.correlation_ttl_seconds
        expired = [state for state, issued_at in index.items() if issued_at < cutoff]
        for state in expired:
            self.store.remove(key_by_state(state))
            del index[state]
        if expired:
            logger.debug("Pruned %d expired correlation record(s)", len(expired))
        return expired

    def _load_index(self) -> dict[str, float]:
        raw = self.store.get(PROVIDER_BY_STATE_INDEX)
        if not raw:
            return {}
        try:
            data: Any = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Resetting unreadable correlation index")
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): float(v) for k, v in data.items() if isinstance(v, (int, float))}

    def _save_index(self, index: dict[str, float]) -> None:
        if index:
            self.store.set(PROVIDER_BY_STATE_INDEX, json.dumps(index))
        else:
            self.store.remove(PROVIDER_BY_STATE_INDEX)
