"""solidauth - client-side OIDC implicit-flow login sessions.

Orchestrates the redirect-based login sequence of a Solid / OpenID
Connect application: provider selection, relying party client
registration, correlation of the outgoing request with its callback,
and persistence of the session across the redirect.
"""

from .auth import SolidAuth
from .config import (
    ClientSettings,
    HttpSettings,
    LogSettings,
    PopupSettings,
    SolidAuthSettings,
    StoreSettings,
    clear_settings,
    get_settings,
    reload_settings,
)
from .exceptions import (
    AuthenticationError,
    AuthResponseInvalid,
    DiscoveryError,
    InvalidArgument,
    InvalidAuthRequest,
    MissingClient,
    MissingProviderUri,
    MissingState,
    RegistrationError,
    SigningKeyUnresolvable,
    SolidAuthException,
    StoreError,
)
from .host import HostWindow, MemoryWindow, MessageEvent
from .log import configure_logging, enable_debug, get_logger, set_level
from .messages import ProviderSelected, UnknownMessage, parse_message
from .registry import ClientCache, ClientRegistry
from .relying_party import RelyingParty, RelyingPartyClient, RelyingPartyFactory
from .store import AuthStore, JsonFileStore, KeyValueStore, MemoryStore
from .types import AuthResponse, AuthState, Session
from .uri import UriLocation, extract_state


__version__ = "0.1.0"

__all__ = [
    "AuthResponse",
    "AuthResponseInvalid",
    "AuthState",
    "AuthStore",
    "AuthenticationError",
    "ClientCache",
    "ClientRegistry",
    "ClientSettings",
    "DiscoveryError",
    "HostWindow",
    "HttpSettings",
    "InvalidArgument",
    "InvalidAuthRequest",
    "JsonFileStore",
    "KeyValueStore",
    "LogSettings",
    "MemoryStore",
    "MemoryWindow",
    "MessageEvent",
    "MissingClient",
    "MissingProviderUri",
    "MissingState",
    "PopupSettings",
    "ProviderSelected",
    "RegistrationError",
    "RelyingParty",
    "RelyingPartyClient",
    "RelyingPartyFactory",
    "Session",
    "SigningKeyUnresolvable",
    "SolidAuth",
    "SolidAuthException",
    "SolidAuthSettings",
    "StoreError",
    "StoreSettings",
    "UnknownMessage",
    "UriLocation",
    "__version__",
    "clear_settings",
    "configure_logging",
    "enable_debug",
    "extract_state",
    "get_logger",
    "get_settings",
    "parse_message",
    "reload_settings",
    "set_level",
]
