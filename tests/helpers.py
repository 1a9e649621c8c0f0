"""Shared test helpers: mock relying party clients and factories."""

from __future__ import annotations

import json

from typing import Any
from unittest.mock import AsyncMock, MagicMock

from solidauth.relying_party import ProviderInfo


PROVIDER = "https://p.example"
APP = "https://app.example/"


def make_client(
    provider_uri: str = PROVIDER,
    configuration: dict[str, Any] | None = None,
    auth_uri: str | None = None,
) -> MagicMock:
    """Create a mock relying party client for ``provider_uri``.

    ``create_request`` returns ``auth_uri`` (default: an authorize URL
    with ``state=xyz``) and ``serialize`` returns a small JSON blob.
    """
    client = MagicMock()
    client.provider = ProviderInfo(url=provider_uri, configuration=configuration or {})
    client.create_request = AsyncMock(
        return_value=auth_uri or f"{provider_uri}/authorize?client_id=c1&state=xyz"
    )
    client.validate_response = AsyncMock()
    client.serialize = MagicMock(
        return_value=json.dumps({"provider": {"url": provider_uri}, "client_id": "c1"})
    )
    return client


def make_rp(client: MagicMock | None = None) -> MagicMock:
    """Create a mock relying party factory that registers and restores ``client``."""
    client = client or make_client()
    rp = MagicMock()
    rp.register = AsyncMock(return_value=client)
    rp.from_serialized = AsyncMock(return_value=client)
    return rp
