"""Provider selection popup.

When no provider is known, ``SolidAuth`` opens a small picker window.
The picker posts a ``providerSelected`` message back to its opener and
``ProviderSelectionChannel`` turns that into a callback, then closes the
popup. At most one popup is tracked; asking again refocuses it.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import html
import json
import logging

from typing import TYPE_CHECKING, Any
from urllib.parse import quote

from .config import PopupSettings
from .messages import MessageType, ProviderSelected, WindowMessage, parse_message


if TYPE_CHECKING:
    from collections.abc import Callable

    from .host import HostWindow, MessageEvent, WindowHandle


logger = logging.getLogger("solidauth.popup")


PROVIDER_SELECT_PAGE = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>Select your identity provider</title>
<style>
body {{ font-family: sans-serif; margin: 1em; }}
input, button {{ width: 100%; box-sizing: border-box; margin-top: 0.5em; }}
</style>
</head>
<body>
<form id="select-provider">
<label for="provider-uri">Identity provider</label>
<input id="provider-uri" type="url" list="providers" required
       placeholder="https://provider.example">
<datalist id="providers">
{options}
</datalist>
<button type="submit">Log in</button>
</form>
<script>
document.getElementById("select-provider").addEventListener("submit", function (e) {{
  e.preventDefault();
  var value = document.getElementById("provider-uri").value;
  window.opener.postMessage({{ event_type: {event_type}, value: value }}, "*");
}});
</script>
</body>
</html>
"""


def render_provider_select_page(providers: list[str] | None = None) -> str:
    """Render the built-in provider picker page.

    Parameters
    ----------
    providers : list[str], optional
        Provider URIs offered as suggestions.

    Returns
    -------
    str
        A standalone HTML document.
    """
    options = "\n".join(
        f'<option value="{html.escape(uri, quote=True)}"></option>' for uri in providers or []
    )
    return PROVIDER_SELECT_PAGE.format(
        options=options,
        event_type=json.dumps(MessageType.PROVIDER_SELECTED.value),
    )


class ProviderSelectionChannel:
    """Opens the picker popup and dispatches its messages.

    Parameters
    ----------
    window : HostWindow
        The host window that opens the popup and receives its messages.
    on_selected : callable
        Called with the provider URI when the user makes a selection.
    settings : PopupSettings, optional
        Popup name, size and page (defaults apply when omitted).
    debug : callable, optional
        Debug log function (default: module logger).
    """

    def __init__(
        self,
        window: HostWindow,
        on_selected: Callable[[str], Any],
        settings: PopupSettings | None = None,
        debug: Callable[..., Any] | None = None,
    ) -> None:
        """Initialize the channel."""
        self.window = window
        self.on_selected = on_selected
        self.settings = settings or PopupSettings()
        self.debug = debug or logger.debug
        self._handle: WindowHandle | None = None
        self._listening = False

    @property
    def handle(self) -> WindowHandle | None:
        """The tracked popup window, if one is open."""
        return self._handle

    @property
    def is_open(self) -> bool:
        """True while a popup is tracked and not closed."""
        return self._handle is not None and not self._handle.closed

    def page_url(self) -> str:
        """Return the URL loaded into the popup."""
        if self.settings.url:
            return self.settings.url
        page = render_provider_select_page(self.settings.providers)
        return "data:text/html;charset=utf-8," + quote(page)

    def open(self) -> WindowHandle | None:
        """Show the picker, refocusing it if it is already open.

        The message listener is registered on the first call only.

        Returns
        -------
        WindowHandle or None
            The popup handle, or None if the host refused to open one.
        """
        if not self._listening:
            self.window.add_event_listener("message", self.handle_event)
            self._listening = True

        if self.is_open:
            self.debug("Provider selection popup already open, refocusing")
            self._handle.focus()  # type: ignore[union-attr]
            return self._handle

        self._handle = self.window.open(
            self.page_url(),
            self.settings.name,
            self.settings.features(),
        )
        if self._handle is None:
            logger.warning("Host refused to open the provider selection popup")
        return self._handle

    def close(self) -> None:
        """Close the tracked popup, if any."""
        if self._handle is not None:
            self._handle.close()
            self._handle = None

    def handle_event(self, event: MessageEvent) -> WindowMessage:
        """Dispatch a message delivered to the host window.

        Parameters
        ----------
        event : MessageEvent
            The delivered event.

        Returns
        -------
        WindowMessage
            The parsed message (useful for tests and embedders).
        """
        message = parse_message(event.data)
        if isinstance(message, ProviderSelected):
            self.debug("Provider selected: %s", message.provider_uri)
            try:
                self.on_selected(message.provider_uri)
            finally:
                self.close()
        else:
            self.debug("Ignoring message with unknown event type: %r", message.event_type)
        return message
