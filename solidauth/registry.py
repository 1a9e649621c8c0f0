"""Relying party client registry.

Clients are cached at two levels keyed by provider URI: the current
client in memory (``ClientCache``, capacity one) and serialized
registrations in the durable store. Registration with the provider only
happens when both miss.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import logging

from typing import TYPE_CHECKING, Any

from .exceptions import MissingProviderUri


if TYPE_CHECKING:
    from collections.abc import Callable

    from .config import ClientSettings
    from .relying_party import RelyingPartyClient, RelyingPartyFactory
    from .store import AuthStore


logger = logging.getLogger("solidauth.registry")


class ClientCache:
    """Single-entry client cache keyed by provider URI.

    A lookup only hits when the requested provider URI is exactly equal to
    the one the cached client was stored under.
    """

    def __init__(self) -> None:
        """Initialize an empty cache."""
        self._provider_uri: str | None = None
        self._client: RelyingPartyClient | None = None

    @property
    def client(self) -> RelyingPartyClient | None:
        """The cached client, regardless of provider."""
        return self._client

    @property
    def provider_uri(self) -> str | None:
        """The provider URI the cached client is keyed under."""
        return self._provider_uri

    def get(self, provider_uri: str) -> RelyingPartyClient | None:
        """Return the cached client if it belongs to ``provider_uri``."""
        if self._client is not None and self._provider_uri == provider_uri:
            return self._client
        return None

    def put(self, provider_uri: str, client: RelyingPartyClient) -> None:
        """Cache ``client`` for ``provider_uri``, evicting any other entry."""
        self._provider_uri = provider_uri
        self._client = client

    def evict_other(self, provider_uri: str) -> None:
        """Drop the cached client if it belongs to a different provider."""
        if self._provider_uri != provider_uri:
            self.clear()

    def clear(self) -> None:
        """Drop the cached client."""
        self._provider_uri = None
        self._client = None

    def __contains__(self, provider_uri: object) -> bool:
        return self._client is not None and self._provider_uri == provider_uri


class ClientRegistry:
    """Loads, registers and persists relying party clients.

    Parameters
    ----------
    auth_store : AuthStore
        Record-level store adapter.
    rp : RelyingPartyFactory
        Registers and reconstitutes clients.
    settings : ClientSettings
        Registration defaults (scope, response type, grant types).
    default_redirect_uri : callable, optional
        Returns the redirect URI to register when none is configured,
        normally the host's current location.
    cache : ClientCache, optional
        The in-memory cache (a new one by default).
    rp_options : dict[str, Any], optional
        Extra options passed to ``rp.register()`` (e.g. HTTP timeout).
    """

    def __init__(
        self,
        auth_store: AuthStore,
        rp: RelyingPartyFactory,
        settings: ClientSettings,
        default_redirect_uri: Callable[[], str | None] | None = None,
        cache: ClientCache | None = None,
        rp_options: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the registry."""
        self.auth_store = auth_store
        self.rp = rp
        self.settings = settings
        self.default_redirect_uri = default_redirect_uri or (lambda: None)
        self.cache = cache or ClientCache()
        self.rp_options = rp_options or {}

    async def load_or_register_client(self, provider_uri: str | None) -> RelyingPartyClient:
        """Return a client for ``provider_uri``, registering one if needed.

        Raises
        ------
        MissingProviderUri
            If ``provider_uri`` is empty; raised before any I/O.
        """
        if not provider_uri:
            msg = "Cannot load or register client, providerUri missing"
            raise MissingProviderUri(msg)

        self.cache.evict_other(provider_uri)

        client = await self.load_client(provider_uri)
        if client is not None:
            self.cache.put(provider_uri, client)
            return client

        return await self.register_client(provider_uri)

    async def load_client(self, provider_uri: str | None) -> RelyingPartyClient | None:
        """Return the cached or persisted client for ``provider_uri``, if any.

        Raises
        ------
        MissingProviderUri
            If ``provider_uri`` is empty.
        """
        if not provider_uri:
            msg = "Cannot load client, providerUri missing"
            raise MissingProviderUri(msg)

        cached = self.cache.get(provider_uri)
        if cached is not None:
            logger.debug("Using cached client for %s", provider_uri)
            return cached

        serialized = self.auth_store.load_client_config(provider_uri)
        if not serialized:
            return None

        logger.debug("Loading stored client registration for %s", provider_uri)
        return await self.rp.from_serialized(serialized, self.rp_options)

    def save_client(self, client: RelyingPartyClient, provider_uri: str) -> None:
        """Persist ``client`` under ``provider_uri`` and make it current."""
        self.auth_store.save_client_config(provider_uri, client.serialize())
        self.cache.put(provider_uri, client)

    async def register_client(
        self,
        provider_uri: str,
        redirect_uri: str | None = None,
        scope: str | None = None,
    ) -> RelyingPartyClient:
        """Register a public client with ``provider_uri`` and persist it."""
        client = await self.register_public_client(provider_uri, redirect_uri, scope)
        self.save_client(client, provider_uri)
        return client

    async def register_public_client(
        self,
        provider_uri: str | None,
        redirect_uri: str | None = None,
        scope: str | None = None,
    ) -> RelyingPartyClient:
        """Register a public client (one that cannot keep a client secret).

        Parameters
        ----------
        provider_uri : str
            The provider to register with.
        redirect_uri : str, optional
            Callback URI; defaults to the configured redirect URI, then to
            the host's current location.
        scope : str, optional
            Requested scope (default from settings, ``"openid profile"``).

        Raises
        ------
        MissingProviderUri
            If ``provider_uri`` is empty.
        """
        if not provider_uri:
            msg = "Cannot register client, missing providerUri"
            raise MissingProviderUri(msg)

        logger.debug("Registering public client with %s", provider_uri)
        redirect_uri = redirect_uri or self.settings.redirect_uri or self.default_redirect_uri()

        registration: dict[str, Any] = {
            "issuer": provider_uri,
            "grant_types": list(self.settings.grant_types),
            "redirect_uris": [redirect_uri],
            "response_types": [self.settings.response_type],
            "scope": scope or self.settings.scope,
        }
        options: dict[str, Any] = {
            "defaults": {
                "authenticate": {
                    "redirect_uri": redirect_uri,
                    "response_type": self.settings.response_type,
                },
            },
            "store": self.auth_store.store,
            **self.rp_options,
        }
        return await self.rp.register(provider_uri, registration, options)
