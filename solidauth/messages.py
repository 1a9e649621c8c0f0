"""Typed messages exchanged with the provider selection popup.

The popup posts ``{"event_type": ..., "value": ...}`` to its opener. The
same window may receive unrelated messages from other sources, so
anything that is not a well-formed selection parses to
``UnknownMessage`` instead of raising.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Union


class MessageType(str, Enum):
    """Event types understood by the selection channel."""

    PROVIDER_SELECTED = "providerSelected"


@dataclass(frozen=True)
class ProviderSelected:
    """The user picked an identity provider in the popup."""

    provider_uri: str


@dataclass(frozen=True)
class UnknownMessage:
    """Any message the selection channel does not handle.

    Attributes
    ----------
    event_type : str or None
        The ``event_type`` field, if the payload had one.
    data : Any
        The raw payload.
    """

    event_type: str | None
    data: Any


WindowMessage = Union[ProviderSelected, UnknownMessage]


def parse_message(data: Any) -> WindowMessage:
    """Parse a posted payload into a typed message.

    Parameters
    ----------
    data : Any
        ``MessageEvent.data`` as delivered by the host.

    Returns
    -------
    WindowMessage
        ``ProviderSelected`` for a selection carrying a non-empty string
        URI; ``UnknownMessage`` otherwise.

    Examples
    --------
    >>> parse_message({"event_type": "providerSelected", "value": "https://p.example"})
    ProviderSelected(provider_uri='https://p.example')
    >>> parse_message("hello")
    UnknownMessage(event_type=None, data='hello')
    """
    if not isinstance(data, dict):
        return UnknownMessage(event_type=None, data=data)

    event_type = data.get("event_type")
    value = data.get("value")
    if event_type == MessageType.PROVIDER_SELECTED.value and isinstance(value, str) and value:
        return ProviderSelected(provider_uri=value)

    return UnknownMessage(
        event_type=event_type if isinstance(event_type, str) else None,
        data=data,
    )


def provider_selected_message(provider_uri: str) -> dict[str, str]:
    """Build the payload the picker page posts for a selection."""
    return {"event_type": MessageType.PROVIDER_SELECTED.value, "value": provider_uri}
