"""Type definitions shared across solidauth modules."""

from __future__ import annotations

import json

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


WebId = str
ProviderUri = str


class AuthState(str, Enum):
    """Position of a ``SolidAuth`` instance in the login sequence."""

    IDLE = "idle"
    AWAITING_SELECTION = "awaiting_selection"
    CLIENT_READY = "client_ready"
    REQUEST_SENT = "request_sent"
    RESPONSE_VALIDATED = "response_validated"
    REQUEST_FAILED = "request_failed"


@dataclass
class Session:
    """The authenticated identity and its tokens.

    Serialized as a single JSON record using the camelCase keys shared
    with browser clients: ``{"webId", "idToken", "accessToken"}``.

    Attributes
    ----------
    web_id : str or None
        The WebID (ID token ``sub`` claim).
    id_token : str or None
        The raw OIDC ID token.
    access_token : str or None
        The raw access token.
    """

    web_id: WebId | None = None
    id_token: str | None = None
    access_token: str | None = None

    @property
    def is_authenticated(self) -> bool:
        """True if a WebID is present."""
        return bool(self.web_id)

    def to_dict(self) -> dict[str, str | None]:
        """Return the wire representation."""
        return {
            "webId": self.web_id,
            "idToken": self.id_token,
            "accessToken": self.access_token,
        }

    def to_json(self) -> str:
        """Serialize to the stored JSON record."""
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, data: str) -> Session:
        """Deserialize a stored JSON record.

        Raises
        ------
        ValueError
            If ``data`` is not a JSON object.
        """
        obj = json.loads(data)
        if not isinstance(obj, dict):
            msg = "Session record must be a JSON object"
            raise ValueError(msg)
        return cls(
            web_id=obj.get("webId"),
            id_token=obj.get("idToken"),
            access_token=obj.get("accessToken"),
        )


@dataclass
class AuthResponse:
    """A validated implicit-flow authentication response.

    Attributes
    ----------
    id_token : str
        The raw ID token from the callback fragment.
    access_token : str or None
        The raw access token from the callback fragment.
    claims : dict[str, Any]
        Decoded (and verified) ID token claims.
    params : dict[str, str]
        All fragment parameters of the callback URI.
    """

    id_token: str
    access_token: str | None = None
    claims: dict[str, Any] = field(default_factory=dict)
    params: dict[str, str] = field(default_factory=dict)

    @property
    def subject(self) -> str | None:
        """The ``sub`` claim."""
        sub = self.claims.get("sub")
        return str(sub) if sub is not None else None

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> AuthResponse:
        """Build a response from a plain mapping.

        Accepts snake_case or camelCase token keys, ``claims`` or
        ``decoded`` for the claims (a ``decoded`` token may nest them
        under ``payload``), and falls back to ``params`` for the tokens.
        """
        params = dict(data.get("params") or {})
        claims = data.get("claims")
        if claims is None:
            decoded = data.get("decoded") or {}
            claims = decoded.get("payload", decoded) if isinstance(decoded, dict) else {}
        return cls(
            id_token=data.get("id_token") or data.get("idToken") or params.get("id_token", ""),
            access_token=(
                data.get("access_token") or data.get("accessToken") or params.get("access_token")
            ),
            claims=dict(claims),
            params=params,
        )
