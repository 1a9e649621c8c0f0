"""Tests for typed cross-window messages."""

from __future__ import annotations

import pytest

from solidauth.messages import (
    MessageType,
    ProviderSelected,
    UnknownMessage,
    parse_message,
    provider_selected_message,
)


class TestParseMessage:
    """Tests for parse_message()."""

    def test_provider_selected(self) -> None:
        """A selection with a URI parses to ProviderSelected."""
        message = parse_message({"event_type": "providerSelected", "value": "https://p.example"})
        assert message == ProviderSelected(provider_uri="https://p.example")

    def test_unknown_event_type(self) -> None:
        """Other event types are kept as UnknownMessage."""
        data = {"event_type": "somethingElse", "value": 1}
        assert parse_message(data) == UnknownMessage(event_type="somethingElse", data=data)

    @pytest.mark.parametrize("value", [None, "", 42, ["https://p.example"]])
    def test_selection_without_uri(self, value) -> None:
        """A selection without a usable URI is not acted upon."""
        message = parse_message({"event_type": "providerSelected", "value": value})
        assert isinstance(message, UnknownMessage)
        assert message.event_type == "providerSelected"

    @pytest.mark.parametrize("data", [None, "providerSelected", 7, ["event_type"]])
    def test_non_dict_payload(self, data) -> None:
        """Payloads that are not objects are unknown."""
        assert parse_message(data) == UnknownMessage(event_type=None, data=data)

    def test_missing_event_type(self) -> None:
        """An object without event_type is unknown."""
        assert parse_message({"value": "x"}).event_type is None


def test_provider_selected_message_round_trip() -> None:
    """The picker payload parses back to the selection."""
    payload = provider_selected_message("https://p.example")
    assert payload == {
        "event_type": MessageType.PROVIDER_SELECTED.value,
        "value": "https://p.example",
    }
    assert parse_message(payload) == ProviderSelected("https://p.example")
