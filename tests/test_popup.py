"""Tests for the provider selection popup channel."""

# pylint: disable=redefined-outer-name

from __future__ import annotations

from unittest.mock import MagicMock
from urllib.parse import unquote

import pytest

from solidauth.config import PopupSettings
from solidauth.host import MessageEvent
from solidauth.messages import ProviderSelected, UnknownMessage
from solidauth.popup import ProviderSelectionChannel, render_provider_select_page


# ── Fixtures ────────────────────────────────────────────────────────


@pytest.fixture()
def on_selected() -> MagicMock:
    """Selection callback."""
    return MagicMock()


@pytest.fixture()
def channel(window, on_selected) -> ProviderSelectionChannel:
    """Create a channel on the headless window."""
    return ProviderSelectionChannel(window, on_selected)


# ── Tests ────────────────────────────────────────────────────────────


class TestOpen:
    """Tests for opening the popup."""

    def test_opens_with_defaults(self, channel, window) -> None:
        """The popup opens with the default name and features."""
        handle = channel.open()
        assert window.opened == [handle]
        assert handle.name == "selectProviderWindow"
        assert handle.features == "menubar=no,resizable=yes,width=300,height=300"
        assert handle.url.startswith("data:text/html")
        assert channel.is_open

    def test_second_open_refocuses(self, channel, window) -> None:
        """A second request refocuses instead of opening another popup."""
        first = channel.open()
        second = channel.open()
        assert second is first
        assert len(window.opened) == 1
        assert first.focus_count == 1

    def test_listener_registered_once(self, channel, window) -> None:
        """The message listener is registered on first open only."""
        channel.open()
        channel.open()
        assert window.listeners("message") == [channel.handle_event]

    def test_reopens_after_user_closed(self, channel, window) -> None:
        """A popup closed by the user is replaced by a new one."""
        first = channel.open()
        first.close()
        second = channel.open()
        assert second is not first
        assert len(window.opened) == 2

    def test_host_refuses(self, on_selected, caplog) -> None:
        """A blocked popup is logged and not tracked."""
        window = MagicMock()
        window.open.return_value = None
        channel = ProviderSelectionChannel(window, on_selected)
        with caplog.at_level("WARNING", logger="solidauth.popup"):
            assert channel.open() is None
        assert not channel.is_open
        assert "refused" in caplog.text

    def test_configured_page(self, window, on_selected) -> None:
        """A configured picker URL and size are used."""
        settings = PopupSettings(url="https://app.example/pick.html", width=400, height=500)
        handle = ProviderSelectionChannel(window, on_selected, settings).open()
        assert handle.url == "https://app.example/pick.html"
        assert handle.features == "menubar=no,resizable=yes,width=400,height=500"


class TestHandleEvent:
    """Tests for message dispatch."""

    def test_selection(self, channel, window, on_selected) -> None:
        """A selection invokes the callback and closes the popup."""
        handle = channel.open()
        window.post_message({"event_type": "providerSelected", "value": "https://p.example"})
        on_selected.assert_called_once_with("https://p.example")
        assert handle.closed
        assert channel.handle is None

    def test_selection_via_popup(self, channel, on_selected) -> None:
        """The popup posts to its opener."""
        handle = channel.open()
        handle.post_to_opener({"event_type": "providerSelected", "value": "https://p.example"})
        on_selected.assert_called_once_with("https://p.example")

    def test_unknown_ignored(self, channel, on_selected) -> None:
        """Unknown messages are ignored and the popup stays open."""
        handle = channel.open()
        message = channel.handle_event(MessageEvent(data={"event_type": "resize"}))
        assert isinstance(message, UnknownMessage)
        on_selected.assert_not_called()
        assert not handle.closed

    def test_closes_even_if_callback_fails(self, channel, on_selected) -> None:
        """The popup is closed when the callback raises."""
        handle = channel.open()
        on_selected.side_effect = RuntimeError("boom")
        with pytest.raises(RuntimeError):
            channel.handle_event(
                MessageEvent(data={"event_type": "providerSelected", "value": "https://p.example"})
            )
        assert handle.closed

    def test_returns_parsed_message(self, channel) -> None:
        """The parsed message is returned."""
        event = MessageEvent(data={"event_type": "providerSelected", "value": "https://p.example"})
        assert channel.handle_event(event) == ProviderSelected("https://p.example")


class TestPickerPage:
    """Tests for the built-in picker page."""

    def test_posts_selection_to_opener(self) -> None:
        """The page posts the providerSelected event to its opener."""
        page = render_provider_select_page()
        assert "window.opener.postMessage" in page
        assert 'event_type: "providerSelected"' in page

    def test_provider_suggestions_escaped(self) -> None:
        """Suggested providers are listed and escaped."""
        page = render_provider_select_page(['https://p.example/?a="1"&b=2'])
        assert '<option value="https://p.example/?a=&quot;1&quot;&amp;b=2">' in page

    def test_data_url_contains_page(self, window, on_selected) -> None:
        """The default popup URL embeds the page."""
        settings = PopupSettings(providers=["https://p.example"])
        url = ProviderSelectionChannel(window, on_selected, settings).page_url()
        assert "https://p.example" in unquote(url)
