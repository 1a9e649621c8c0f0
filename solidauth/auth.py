"""Login session orchestration.

``SolidAuth`` drives the implicit-flow login sequence across the two
executions separated by the redirect to the identity provider:

1. Before the redirect: resolve a provider, load or register a client,
   persist ``state -> provider`` and navigate to the authorization URI.
2. After the redirect (a fresh instance): recover the provider from the
   ``state`` in the callback fragment, validate the response, persist
   the session and strip the tokens from the visible URI.

Everything that crosses the redirect goes through the durable store
first; an instance holds nothing that must survive it.
"""

# pylint: disable=logging-too-many-args,too-many-public-methods

from __future__ import annotations

import logging

from typing import TYPE_CHECKING, Any

from .config import get_settings
from .exceptions import (
    AuthenticationError,
    AuthResponseInvalid,
    InvalidAuthRequest,
    MissingClient,
    SolidAuthException,
    is_signing_key_error,
)
from .log import redact_sensitive_data
from .messages import parse_message
from .popup import ProviderSelectionChannel
from .registry import ClientRegistry
from .relying_party import RelyingParty
from .store import AuthStore, create_store, key_by_state
from .types import AuthResponse, AuthState, Session
from .uri import UriLocation, extract_state, strip_fragment, with_query_param
from .utils import fire_and_forget


if TYPE_CHECKING:
    from collections.abc import Callable

    import httpx

    from .config import SolidAuthSettings
    from .host import HostWindow, MessageEvent, WindowHandle
    from .messages import WindowMessage
    from .relying_party import RelyingPartyClient, RelyingPartyFactory
    from .store import KeyValueStore


logger = logging.getLogger("solidauth.auth")


class SolidAuth:
    """Client-side OIDC login session for a browser-like host.

    Parameters
    ----------
    window : HostWindow, optional
        Host providing the current location, history, popups and
        messages. Without one, redirects and the selection popup are
        unavailable.
    store : KeyValueStore, optional
        Durable store (default: built from ``settings.store``).
    rp : RelyingPartyFactory
        Registers and reconstitutes relying party clients (default: the
        bundled ``RelyingParty``).
    provider_uri : str, optional
        Previously selected provider.
    redirect_uri : str, optional
        Callback URI to register (default: ``settings.client.redirect_uri``,
        then the current location).
    session : Session, optional
        Initial credentials.
    settings : SolidAuthSettings, optional
        Configuration (default: ``get_settings()``).
    debug : callable, optional
        Debug log function (default: module logger).
    http_client : httpx.AsyncClient, optional
        HTTP client handed to the relying party on registration.
    """

    def __init__(
        self,
        window: HostWindow | None = None,
        store: KeyValueStore | None = None,
        rp: RelyingPartyFactory = RelyingParty,  # type: ignore[assignment]
        provider_uri: str | None = None,
        redirect_uri: str | None = None,
        session: Session | None = None,
        settings: SolidAuthSettings | None = None,
        debug: Callable[..., Any] | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the login session."""
        self.settings = settings or get_settings()
        self.window = window
        self.store = store if store is not None else create_store(self.settings.store)
        self.auth_store = AuthStore(self.store, self.settings.store.correlation_ttl_seconds)
        self.debug = debug or logger.debug

        self.provider_uri = provider_uri
        self.redirect_uri = redirect_uri or self.settings.client.redirect_uri
        self.session = session or Session()
        self._state = AuthState.IDLE

        client_settings = self.settings.client
        if self.redirect_uri != client_settings.redirect_uri:
            client_settings = client_settings.model_copy(update={"redirect_uri": self.redirect_uri})

        rp_options: dict[str, Any] = {
            "timeout": self.settings.http.timeout,
            "verify": self.settings.http.verify,
        }
        if http_client is not None:
            rp_options["http_client"] = http_client

        self.registry = ClientRegistry(
            self.auth_store,
            rp,
            client_settings,
            default_redirect_uri=self.current_location,
            rp_options=rp_options,
        )
        self.channel = (
            ProviderSelectionChannel(
                window,
                self.provider_selected,
                self.settings.popup,
                debug=self.debug,
            )
            if window is not None
            else None
        )

    @classmethod
    def from_store(
        cls,
        store: KeyValueStore | None = None,
        provider_uri: str | None = None,
        settings: SolidAuthSettings | None = None,
        **kwargs: Any,
    ) -> SolidAuth:
        """Create an instance hydrated from the durable store.

        The current provider and the current session are read from
        ``store``; an explicit ``provider_uri`` wins over the stored one.
        """
        settings = settings or get_settings()
        store = store if store is not None else create_store(settings.store)
        auth_store = AuthStore(store)
        return cls(
            store=store,
            provider_uri=provider_uri or auth_store.load_current_provider(),
            session=auth_store.load_session(),
            settings=settings,
            **kwargs,
        )

    # ── Session properties ──────────────────────────────────────────

    @property
    def web_id(self) -> str | None:
        """The current user's WebID."""
        return self.session.web_id

    @property
    def id_token(self) -> str | None:
        """The current user's raw ID token."""
        return self.session.id_token

    @property
    def access_token(self) -> str | None:
        """The current user's raw access token."""
        return self.session.access_token

    @property
    def current_client(self) -> RelyingPartyClient | None:
        """The in-memory relying party client, if any."""
        return self.registry.cache.client

    @current_client.setter
    def current_client(self, client: RelyingPartyClient | None) -> None:
        if client is None:
            self.registry.cache.clear()
        else:
            self.registry.cache.put(client.provider.url, client)

    @property
    def state(self) -> AuthState:
        """Position in the login sequence."""
        return self._state

    # ── Host location ───────────────────────────────────────────────

    def current_location(self) -> str | None:
        """Return the host's current URI, or None without a host location."""
        if self.window is None or self.window.location is None:
            return None
        return self.window.location.href

    def current_location_no_hash(self) -> str | None:
        """Return the current URI without its fragment."""
        location = self.current_location()
        if not location:
            return None
        return strip_fragment(location)

    def replace_current_url(self, new_url: str) -> None:
        """Replace the visible URI without navigating.

        Does nothing if the host exposes no history.
        """
        history = self.window.history if self.window is not None else None
        if history is None:
            return
        history.replace_state(history.state, history.title, new_url)

    def clear_auth_response_from_url(self) -> None:
        """Remove tokens and other response parameters from the visible URI."""
        cleared = self.current_location_no_hash()
        if cleared is None:
            return
        self.replace_current_url(cleared)

    def redirect_to(self, uri: str) -> None:
        """Navigate the host to ``uri`` (a full page load).

        Raises
        ------
        AuthenticationError
            If there is no host location to navigate.
        """
        if self.window is None or self.window.location is None:
            msg = "Cannot redirect, no host window location available"
            raise AuthenticationError(msg)
        self.window.location.href = uri

    # ── Provider selection ──────────────────────────────────────────

    def current_provider(self) -> str | None:
        """Return the selected provider.

        Checked in order: this instance, the store, and the correlation
        record for the ``state`` in the current URI.
        """
        return (
            self.provider_uri
            or self.auth_store.load_current_provider()
            or self.provider_from_current_uri()
        )

    def save_current_provider(self, provider_uri: str) -> None:
        """Make ``provider_uri`` the current provider and persist it."""
        self.provider_uri = provider_uri
        self.auth_store.save_current_provider(provider_uri)

    def provider_from_current_uri(self) -> str | None:
        """Recover the provider from the callback ``state`` in the current URI.

        A provider found this way is promoted to current provider.
        """
        state = extract_state(self.current_location(), UriLocation.FRAGMENT)
        if not state:
            return None

        provider_uri = self.auth_store.load_provider_by_state(state)
        if provider_uri:
            self.save_current_provider(provider_uri)
        return provider_uri

    def select_provider(self, provider_uri: str | None = None) -> str | None:
        """Resolve the provider to log in with.

        Returns ``provider_uri`` if given, else the current provider. If
        neither is known, the selection popup is opened and None is
        returned right away; the popup restarts ``login()`` once the
        user picks a provider.
        """
        provider_uri = provider_uri or self.current_provider()
        if provider_uri:
            return provider_uri

        self.select_provider_ui()
        return None

    def select_provider_ui(self) -> WindowHandle | None:
        """Open (or refocus) the provider selection popup."""
        self.debug("Getting provider from default popup UI")
        self._state = AuthState.AWAITING_SELECTION
        if self.channel is None:
            logger.warning("No host window, cannot open the provider selection popup")
            return None
        return self.channel.open()

    def provider_selected(self, provider_uri: str) -> None:
        """Persist the picked provider and restart the login sequence."""
        self.debug("Provider selected: %s", provider_uri)
        self.save_current_provider(provider_uri)
        fire_and_forget(self.login(provider_uri), name="solidauth-login")

    def on_message(self, event: MessageEvent) -> WindowMessage:
        """Dispatch a message delivered to the host window."""
        if self.channel is not None:
            return self.channel.handle_event(event)
        message = parse_message(event.data)
        self.debug("Ignoring message without a selection channel: %r", message)
        return message

    # ── Clients and correlation records ─────────────────────────────

    async def load_or_register_client(self, provider_uri: str | None) -> RelyingPartyClient:
        """Return a client for ``provider_uri``, registering one if needed."""
        return await self.registry.load_or_register_client(provider_uri)

    async def load_client(self, provider_uri: str | None) -> RelyingPartyClient | None:
        """Return the cached or persisted client for ``provider_uri``."""
        return await self.registry.load_client(provider_uri)

    def save_client(self, client: RelyingPartyClient, provider_uri: str) -> None:
        """Persist ``client`` for ``provider_uri`` and make it current."""
        self.registry.save_client(client, provider_uri)

    async def register_client(
        self,
        provider_uri: str,
        redirect_uri: str | None = None,
        scope: str | None = None,
    ) -> RelyingPartyClient:
        """Register, persist and cache a public client for ``provider_uri``."""
        return await self.registry.register_client(provider_uri, redirect_uri, scope)

    async def register_public_client(
        self,
        provider_uri: str,
        redirect_uri: str | None = None,
        scope: str | None = None,
    ) -> RelyingPartyClient:
        """Register a public client without persisting it."""
        return await self.registry.register_public_client(provider_uri, redirect_uri, scope)

    key_by_state = staticmethod(key_by_state)

    def save_provider_by_state(self, state: str | None, provider_uri: str) -> None:
        """Record that the request carrying ``state`` went to ``provider_uri``."""
        self.auth_store.save_provider_by_state(state, provider_uri)

    def load_provider_by_state(self, state: str | None) -> str | None:
        """Return the provider recorded for ``state``."""
        return self.auth_store.load_provider_by_state(state)

    def current_uri_has_auth_response(self) -> bool:
        """True if the current URI's fragment carries a ``state`` parameter."""
        return bool(extract_state(self.current_location(), UriLocation.FRAGMENT))

    # ── Login sequence ──────────────────────────────────────────────

    async def login(self, provider_uri: str | None = None) -> str | None:
        """Log in, or finish logging in on the callback page load.

        Parameters
        ----------
        provider_uri : str, optional
            Provider chosen by the application. Without one, the current
            provider is used, or the selection popup is opened.

        Returns
        -------
        str or None
            The WebID once the callback has been validated. None when a
            redirect to the provider was issued, when the selection
            popup is pending, or when the provider's signing keys could
            not be resolved (retry the login).

        Raises
        ------
        MissingProviderUri, MissingClient, InvalidAuthRequest, AuthResponseInvalid
            The login cannot proceed.
        """
        if self.web_id:
            self._state = AuthState.RESPONSE_VALIDATED
            return self.web_id

        self.clear_current_credentials()

        try:
            selected = self.select_provider(provider_uri)
            if not selected:
                return None

            client = await self.load_or_register_client(selected)
            self._state = AuthState.CLIENT_READY
            return await self.validate_or_send_auth_request(client)
        except Exception:
            self._state = AuthState.REQUEST_FAILED
            raise

    async def validate_or_send_auth_request(self, client: RelyingPartyClient | None) -> str | None:
        """Validate the callback if this page load is one, else send a request.

        Raises
        ------
        MissingClient
            If ``client`` is None.
        """
        if client is None:
            msg = "Could not load or register a RelyingParty client"
            raise MissingClient(msg)

        if self.current_uri_has_auth_response():
            return await self.init_user_from_response(client)

        await self.send_auth_request(client)
        return None

    async def send_auth_request(self, client: RelyingPartyClient) -> None:
        """Persist the correlation record and redirect to the provider.

        Raises
        ------
        InvalidAuthRequest
            If the authorization URI has no ``state`` query parameter.
        """
        provider_uri = client.provider.url
        auth_uri = await client.create_request({}, self.store)

        state = extract_state(auth_uri, UriLocation.QUERY)
        if not state:
            msg = "Authorization request has no state parameter"
            raise InvalidAuthRequest(msg, auth_uri=auth_uri, provider=provider_uri)

        self.save_provider_by_state(state, provider_uri)
        self._state = AuthState.REQUEST_SENT
        self.debug("Redirecting to authorization endpoint of %s", provider_uri)
        self.redirect_to(auth_uri)

    async def init_user_from_response(self, client: RelyingPartyClient) -> str | None:
        """Validate the callback in the current URI and record the session.

        The response is stripped from the visible URI whether validation
        succeeds or fails.

        Returns
        -------
        str or None
            The WebID, or None if the ID token's signing key could not be
            resolved.

        Raises
        ------
        AuthResponseInvalid
            If validation fails for any other reason.
        """
        try:
            result = await client.validate_response(self.current_location(), self.store)
        except Exception as exc:
            self.clear_auth_response_from_url()
            if is_signing_key_error(exc):
                self.debug(
                    "ID Token found, but could not validate. Provider likely has "
                    "changed their public keys. Please retry login."
                )
                self._state = AuthState.IDLE
                return None
            if isinstance(exc, SolidAuthException):
                raise
            msg = f"Authentication response validation failed: {exc}"
            raise AuthResponseInvalid(msg, provider=client.provider.url) from exc

        self.clear_auth_response_from_url()

        response = result if isinstance(result, AuthResponse) else AuthResponse.from_mapping(result)
        logger.debug("Validated auth response: %s", redact_sensitive_data(response.params))

        web_id = self.extract_and_validate_web_id(response.claims)
        self.save_current_credentials(
            Session(
                web_id=web_id,
                id_token=response.id_token,
                access_token=response.access_token,
            )
        )
        self._state = AuthState.RESPONSE_VALIDATED
        logger.info("Logged in as %s", web_id)
        return web_id

    def extract_and_validate_web_id(self, claims: dict[str, Any]) -> str:
        """Return the WebID (``sub`` claim) of validated ID token claims.

        Raises
        ------
        AuthResponseInvalid
            If the claims have no subject.
        """
        sub = claims.get("sub")
        if not sub:
            msg = "ID token has no subject claim"
            raise AuthResponseInvalid(msg)
        self.session.web_id = str(sub)
        return self.session.web_id

    # ── Credentials ─────────────────────────────────────────────────

    def load_current_credentials(self) -> Session:
        """Replace the in-memory credentials with the persisted ones."""
        self.set_current_credentials(self.auth_store.load_session())
        return self.session

    def save_current_credentials(self, session: Session) -> None:
        """Set and persist ``session``."""
        self.set_current_credentials(session)
        self.auth_store.save_session(session)

    def set_current_credentials(self, session: Session) -> None:
        """Set the in-memory credentials."""
        self.session = Session(
            web_id=session.web_id,
            id_token=session.id_token,
            access_token=session.access_token,
        )

    def clear_current_credentials(self) -> None:
        """Clear credentials from memory and from the store."""
        self.auth_store.clear_session()
        self.session = Session()

    # ── Session lifecycle ───────────────────────────────────────────

    async def current_user(self) -> str | None:
        """Resume the session on page load.

        Returns the cached or persisted WebID if there is one. Otherwise,
        if a provider is known (including from a callback ``state``), the
        login sequence is continued; if none is known, returns None
        without opening the selection popup.
        """
        if self.web_id:
            return self.web_id

        self.load_current_credentials()
        if self.web_id:
            return self.web_id

        provider_uri = self.current_provider()
        if provider_uri:
            return await self.login(provider_uri)
        return None

    def provider_end_session_endpoint(self) -> str | None:
        """Return the current client's provider logout endpoint, if advertised."""
        provider = getattr(self.current_client, "provider", None)
        configuration = getattr(provider, "configuration", None)
        if not configuration:
            return None
        return configuration.get("end_session_endpoint") or None

    def logout(self) -> None:
        """Clear the session and log out at the provider.

        When the provider advertises an end-session endpoint, the host is
        redirected there with ``returnToUrl`` set to the current location
        so the provider can clear its own session cookies.
        """
        endpoint = self.provider_end_session_endpoint()

        self.clear_current_credentials()
        self._state = AuthState.IDLE

        if not endpoint:
            return

        logout_url = with_query_param(endpoint, "returnToUrl", self.current_location() or "")
        self.debug("Redirecting to end session endpoint %s", endpoint)
        self.redirect_to(logout_url)

    async def close(self) -> None:
        """Release the current client's HTTP resources.

        Call from the application's shutdown lifecycle. Clients without a
        ``close()`` coroutine are left alone.
        """
        close = getattr(self.current_client, "close", None)
        if close is None:
            return
        await close()
