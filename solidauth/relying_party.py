"""Relying party capability.

``SolidAuth`` only depends on the ``RelyingPartyFactory`` /
``RelyingPartyClient`` protocols below, so any OIDC client library can be
injected. ``RelyingParty`` is the bundled implementation: provider
discovery, dynamic client registration, implicit-flow request
construction and ID token verification.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import base64
import binascii
import json
import logging
import secrets
import time

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable
from urllib.parse import urlencode

import httpx

from authlib.jose import JsonWebKey, JsonWebToken
from authlib.jose.errors import JoseError

from .exceptions import (
    AuthResponseInvalid,
    DiscoveryError,
    RegistrationError,
    SigningKeyUnresolvable,
)
from .types import AuthResponse
from .uri import fragment_params


if TYPE_CHECKING:
    from .store import KeyValueStore


logger = logging.getLogger("solidauth.rp")

REQUEST_KEY_PREFIX = "oidc.rp.request."

ID_TOKEN_ALGORITHMS = ["RS256", "RS384", "RS512", "ES256", "ES384", "ES512", "PS256"]


# ── Protocols ───────────────────────────────────────────────────────


@runtime_checkable
class RelyingPartyClient(Protocol):
    """A client registered with one identity provider.

    ``provider.url`` is the provider URI the client was registered with and
    ``provider.configuration`` its discovered OIDC configuration (which may
    advertise an ``end_session_endpoint``).
    """

    provider: Any

    async def create_request(self, options: dict[str, Any], store: KeyValueStore) -> str:
        """Build an authorization request URI carrying a ``state`` query parameter."""
        ...

    async def validate_response(self, uri: str, store: KeyValueStore) -> AuthResponse:
        """Validate the authentication response carried by ``uri``."""
        ...

    def serialize(self) -> str:
        """Serialize the registration for the durable store."""
        ...


@runtime_checkable
class RelyingPartyFactory(Protocol):
    """Registers new clients and reconstitutes persisted ones."""

    async def register(
        self,
        provider_uri: str,
        registration: dict[str, Any],
        options: dict[str, Any],
    ) -> RelyingPartyClient:
        """Register a new client with ``provider_uri``."""
        ...

    async def from_serialized(
        self,
        serialized: str,
        options: dict[str, Any] | None = None,
    ) -> RelyingPartyClient:
        """Rebuild a client from ``RelyingPartyClient.serialize()`` output.

        ``options`` carries the same HTTP options ``register()`` receives.
        """
        ...


# ── Bundled implementation ──────────────────────────────────────────


@dataclass
class ProviderInfo:
    """An identity provider as seen by a registered client.

    Attributes
    ----------
    url : str
        The provider URI (issuer) the client was registered with.
    configuration : dict[str, Any]
        The provider's ``/.well-known/openid-configuration`` document.
    jwks : dict[str, Any]
        The provider's JSON Web Key Set.
    """

    url: str
    configuration: dict[str, Any] = field(default_factory=dict)
    jwks: dict[str, Any] = field(default_factory=dict)


def _request_key(state: str) -> str:
    return REQUEST_KEY_PREFIX + state


def _jwt_header(token: str) -> dict[str, Any]:
    """Decode the (unverified) JOSE header of a compact JWT."""
    segment = token.split(".", 1)[0]
    padded = segment + "=" * (-len(segment) % 4)
    try:
        header = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
    except (ValueError, binascii.Error, UnicodeEncodeError) as exc:
        msg = f"Malformed ID token header: {exc}"
        raise AuthResponseInvalid(msg) from exc
    if not isinstance(header, dict):
        msg = "Malformed ID token header"
        raise AuthResponseInvalid(msg)
    return header


class RelyingParty:
    """OIDC relying party for the implicit flow.

    Instances are normally created through ``RelyingParty.register()`` or
    ``RelyingParty.from_serialized()``; the class itself satisfies
    ``RelyingPartyFactory``.

    Parameters
    ----------
    provider : ProviderInfo
        The provider this client is registered with.
    registration : dict[str, Any]
        The provider's dynamic registration response (``client_id`` etc.).
    defaults : dict[str, Any], optional
        Default request options, e.g.
        ``{"authenticate": {"redirect_uri": ..., "response_type": ...}}``.
    http_client : httpx.AsyncClient, optional
        Shared HTTP client; one is created on demand otherwise.
    timeout : float
        HTTP timeout in seconds (default ``10``).
    verify : bool
        Verify TLS certificates (default ``True``).
    """

    def __init__(
        self,
        provider: ProviderInfo,
        registration: dict[str, Any],
        defaults: dict[str, Any] | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
        verify: bool = True,
    ) -> None:
        """Initialize the relying party."""
        self.provider = provider
        self.registration = registration
        self.defaults = defaults or {}
        self.timeout = timeout
        self.verify = verify
        self._http_client = http_client

    @property
    def client_id(self) -> str:
        """The registered client identifier."""
        return str(self.registration.get("client_id", ""))

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the shared HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=self.timeout, verify=self.verify)
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client is not None and not self._http_client.is_closed:
            await self._http_client.aclose()
            self._http_client = None

    # ── Factory ─────────────────────────────────────────────────────

    @classmethod
    async def register(
        cls,
        provider_uri: str,
        registration: dict[str, Any],
        options: dict[str, Any] | None = None,
    ) -> RelyingParty:
        """Discover ``provider_uri`` and dynamically register a client with it.

        Parameters
        ----------
        provider_uri : str
            The provider (issuer) URI.
        registration : dict[str, Any]
            Client metadata to register (``redirect_uris``,
            ``response_types``, ``grant_types``, ``scope``). An ``issuer``
            entry is used locally and not sent.
        options : dict[str, Any], optional
            ``defaults`` for requests, plus ``http_client``, ``timeout``
            and ``verify`` for HTTP.

        Returns
        -------
        RelyingParty
            The registered client.

        Raises
        ------
        DiscoveryError
            If the provider configuration or key set cannot be fetched.
        RegistrationError
            If the provider rejects the registration.
        """
        options = options or {}
        rp = cls(
            ProviderInfo(url=provider_uri),
            registration={},
            defaults=options.get("defaults"),
            http_client=options.get("http_client"),
            timeout=options.get("timeout", 10.0),
            verify=options.get("verify", True),
        )
        await rp.discover()
        await rp.fetch_jwks()
        await rp._register(registration)
        logger.info("Registered client %s with %s", rp.client_id, provider_uri)
        return rp

    @classmethod
    async def from_serialized(
        cls,
        serialized: str,
        options: dict[str, Any] | None = None,
    ) -> RelyingParty:
        """Rebuild a client from ``serialize()`` output; no network I/O.

        Parameters
        ----------
        serialized : str
            Output of ``serialize()``.
        options : dict[str, Any], optional
            ``http_client``, ``timeout`` and ``verify`` for later HTTP
            requests (key set refreshes).

        Raises
        ------
        ValueError
            If ``serialized`` is not a serialized client.
        """
        options = options or {}
        data = json.loads(serialized)
        if not isinstance(data, dict) or "provider" not in data:
            msg = "Not a serialized relying party client"
            raise ValueError(msg)
        provider = data["provider"]
        return cls(
            ProviderInfo(
                url=provider["url"],
                configuration=provider.get("configuration", {}),
                jwks=provider.get("jwks", {}),
            ),
            registration=data.get("registration", {}),
            defaults=data.get("defaults", {}),
            http_client=options.get("http_client"),
            timeout=options.get("timeout", 10.0),
            verify=options.get("verify", True),
        )

    def serialize(self) -> str:
        """Serialize provider configuration, key set and registration."""
        return json.dumps(
            {
                "provider": {
                    "url": self.provider.url,
                    "configuration": self.provider.configuration,
                    "jwks": self.provider.jwks,
                },
                "registration": self.registration,
                "defaults": self.defaults,
            }
        )

    # ── Provider metadata ───────────────────────────────────────────

    async def discover(self) -> dict[str, Any]:
        """Fetch the provider's OpenID configuration.

        Raises
        ------
        DiscoveryError
            On HTTP failure or when the advertised issuer does not match.
        """
        url = f"{self.provider.url.rstrip('/')}/.well-known/openid-configuration"
        try:
            client = await self._get_client()
            resp = await client.get(url, timeout=self.timeout)
            resp.raise_for_status()
            config = resp.json()
        except httpx.HTTPError as exc:
            msg = f"OIDC discovery failed: {exc}"
            raise DiscoveryError(msg, provider=self.provider.url) from exc
        except ValueError as exc:
            msg = "OIDC discovery returned invalid JSON"
            raise DiscoveryError(msg, provider=self.provider.url) from exc

        discovered_issuer = str(config.get("issuer", "")).rstrip("/")
        expected = self.provider.url.rstrip("/")
        if discovered_issuer != expected:
            msg = f"OIDC issuer mismatch: expected '{expected}', got '{discovered_issuer}'"
            raise DiscoveryError(msg, provider=self.provider.url)

        self.provider.configuration = config
        return config

    async def fetch_jwks(self) -> dict[str, Any]:
        """Fetch (or re-fetch) the provider's JSON Web Key Set.

        Raises
        ------
        DiscoveryError
            If no ``jwks_uri`` is advertised or the request fails.
        """
        jwks_uri = self.provider.configuration.get("jwks_uri")
        if not jwks_uri:
            msg = "Provider does not advertise a jwks_uri"
            raise DiscoveryError(msg, provider=self.provider.url)
        try:
            client = await self._get_client()
            resp = await client.get(jwks_uri, timeout=self.timeout)
            resp.raise_for_status()
            self.provider.jwks = resp.json()
        except httpx.HTTPError as exc:
            msg = f"Fetching provider keys failed: {exc}"
            raise DiscoveryError(msg, provider=self.provider.url) from exc
        return self.provider.jwks

    async def _register(self, registration: dict[str, Any]) -> None:
        endpoint = self.provider.configuration.get("registration_endpoint")
        if not endpoint:
            msg = "Provider does not support dynamic client registration"
            raise RegistrationError(msg, provider=self.provider.url)

        body = {k: v for k, v in registration.items() if k != "issuer"}
        try:
            client = await self._get_client()
            resp = await client.post(endpoint, json=body, timeout=self.timeout)
            resp.raise_for_status()
            result = resp.json()
        except httpx.HTTPStatusError as exc:
            msg = f"Client registration failed: {exc.response.status_code}"
            raise RegistrationError(msg, provider=self.provider.url) from exc
        except httpx.HTTPError as exc:
            msg = f"Client registration request failed: {exc}"
            raise RegistrationError(msg, provider=self.provider.url) from exc

        if not isinstance(result, dict) or not result.get("client_id"):
            msg = "Registration response has no client_id"
            raise RegistrationError(msg, provider=self.provider.url)
        self.registration = result

    # ── Authentication ──────────────────────────────────────────────

    async def create_request(self, options: dict[str, Any], store: KeyValueStore) -> str:
        """Build an implicit-flow authorization URI.

        A fresh ``state`` and ``nonce`` are generated; the nonce is kept in
        ``store`` under the state so ``validate_response()`` can check it
        after the redirect back.

        Parameters
        ----------
        options : dict[str, Any]
            Overrides for the ``authenticate`` defaults (``redirect_uri``,
            ``response_type``, ``scope``, extra parameters).
        store : KeyValueStore
            Durable store shared with the caller.

        Returns
        -------
        str
            The authorization URI.
        """
        endpoint = self.provider.configuration.get("authorization_endpoint")
        if not endpoint:
            msg = "Provider does not advertise an authorization_endpoint"
            raise DiscoveryError(msg, provider=self.provider.url)

        params: dict[str, Any] = {
            "response_type": "id_token token",
            "scope": self.registration.get("scope") or "openid",
            **self.defaults.get("authenticate", {}),
            **options,
        }
        state = secrets.token_urlsafe(16)
        nonce = secrets.token_urlsafe(16)
        params.update(client_id=self.client_id, state=state, nonce=nonce)

        store.set(
            _request_key(state),
            json.dumps(
                {
                    "provider": self.provider.url,
                    "nonce": nonce,
                    "redirect_uri": params.get("redirect_uri"),
                    "issued_at": time.time(),
                }
            ),
        )

        separator = "&" if "?" in endpoint else "?"
        return f"{endpoint}{separator}{urlencode(params)}"

    async def validate_response(self, uri: str, store: KeyValueStore) -> AuthResponse:
        """Validate the implicit-flow response in the fragment of ``uri``.

        Raises
        ------
        AuthResponseInvalid
            If the provider returned an error, the state is unknown, the
            ID token is missing, or verification fails.
        SigningKeyUnresolvable
            If the ID token was signed with a key the provider no longer
            (or not yet) publishes.
        """
        params = fragment_params(uri)

        if params.get("error"):
            desc = params.get("error_description") or params["error"]
            msg = f"Provider returned error: {desc}"
            raise AuthResponseInvalid(msg, provider=self.provider.url)

        state = params.get("state")
        raw_request = store.get(_request_key(state)) if state else None
        if raw_request is None:
            msg = "Mismatching state parameter (no matching authentication request)"
            raise AuthResponseInvalid(msg, provider=self.provider.url)
        request = json.loads(raw_request)

        id_token = params.get("id_token")
        if not id_token:
            msg = "Authentication response has no id_token"
            raise AuthResponseInvalid(msg, provider=self.provider.url)

        claims = await self.verify_id_token(id_token, nonce=request.get("nonce"))
        store.remove(_request_key(state))  # type: ignore[arg-type]

        return AuthResponse(
            id_token=id_token,
            access_token=params.get("access_token"),
            claims=claims,
            params=params,
        )

    def _find_key(self, kid: str | None) -> dict[str, Any] | None:
        keys = self.provider.jwks.get("keys", [])
        if kid:
            return next((k for k in keys if k.get("kid") == kid), None)
        if len(keys) == 1:
            return keys[0]
        return None

    async def verify_id_token(self, id_token: str, nonce: str | None = None) -> dict[str, Any]:
        """Verify an ID token's signature and standard claims.

        The key set is re-fetched once when the token's ``kid`` is unknown.

        Returns
        -------
        dict[str, Any]
            The verified claims.
        """
        header = _jwt_header(id_token)
        kid = header.get("kid")

        jwk = self._find_key(kid)
        if jwk is None:
            logger.debug("Signing key %s not cached, refreshing provider keys", kid)
            try:
                await self.fetch_jwks()
            except DiscoveryError as exc:
                raise SigningKeyUnresolvable(provider=self.provider.url, kid=kid) from exc
            jwk = self._find_key(kid)
        if jwk is None:
            raise SigningKeyUnresolvable(provider=self.provider.url, kid=kid)

        claims_options: dict[str, Any] = {
            "iss": {"essential": True, "value": self.provider.configuration.get("issuer")},
            "aud": {"essential": True, "value": self.client_id},
            "exp": {"essential": True},
            "sub": {"essential": True},
        }
        if nonce:
            claims_options["nonce"] = {"essential": True, "value": nonce}

        try:
            key = JsonWebKey.import_key(jwk)
            claims = JsonWebToken(ID_TOKEN_ALGORITHMS).decode(
                id_token, key, claims_options=claims_options
            )
            claims.validate()
        except (JoseError, ValueError) as exc:
            msg = f"ID token validation failed: {exc}"
            raise AuthResponseInvalid(msg, provider=self.provider.url) from exc

        return dict(claims)
