"""Host window contract.

``SolidAuth`` drives navigation through a browser-like host: it reads and
assigns the current location, replaces history entries, opens a child
window for provider selection and listens for messages posted to it.
``HostWindow`` describes that surface; ``MemoryWindow`` is a complete
headless implementation used by tests and by embedders that perform
navigation themselves (inspect ``navigations`` after each call).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    from collections.abc import Callable


@dataclass
class MessageEvent:
    """A message delivered to a window.

    Attributes
    ----------
    data : Any
        The posted payload, typically ``{"event_type": ..., "value": ...}``.
    origin : str
        Origin of the sending window.
    """

    data: Any
    origin: str = ""


class Location(ABC):
    """The host's current URI."""

    @property
    @abstractmethod
    def href(self) -> str | None:
        """The current URI."""

    @href.setter
    @abstractmethod
    def href(self, value: str) -> None:
        """Navigate to ``value`` (a full page load)."""


class History(ABC):
    """Session history of the host."""

    state: Any = None
    title: str = ""

    @abstractmethod
    def replace_state(self, state: Any, title: str, url: str | None) -> None:
        """Replace the current entry's URI without navigating."""


class WindowHandle(ABC):
    """A child window opened by the host."""

    closed: bool = False

    @abstractmethod
    def focus(self) -> None:
        """Bring the window to the front."""

    @abstractmethod
    def close(self) -> None:
        """Close the window."""


class HostWindow(ABC):
    """Navigation and messaging primitives of a browser-like host."""

    @property
    @abstractmethod
    def location(self) -> Location | None:
        """The current location, or None if the host has none."""

    @property
    def history(self) -> History | None:
        """Session history, or None if the host cannot replace entries."""
        return None

    @abstractmethod
    def open(self, url: str, name: str, features: str) -> WindowHandle | None:
        """Open a child window; returns None if the host refused."""

    @abstractmethod
    def add_event_listener(self, event_type: str, handler: Callable[[MessageEvent], Any]) -> None:
        """Register ``handler`` for events of ``event_type``."""


# ── Headless implementation ─────────────────────────────────────────


class MemoryLocation(Location):
    """Location that records navigations on its window."""

    def __init__(self, window: MemoryWindow, href: str | None = None) -> None:
        self._window = window
        self._href = href

    @property
    def href(self) -> str | None:
        return self._href

    @href.setter
    def href(self, value: str) -> None:
        self._href = value
        self._window.navigations.append(value)

    def replace(self, value: str | None) -> None:
        """Set the URI without recording a navigation."""
        self._href = value


class MemoryHistory(History):
    """History that rewrites its window's location in place."""

    def __init__(self, window: MemoryWindow) -> None:
        self._window = window
        self.entries: list[str | None] = []

    def replace_state(self, state: Any, title: str, url: str | None) -> None:
        self.state = state
        self.title = title
        self.entries.append(url)
        self._window.location.replace(url)


class MemoryWindowHandle(WindowHandle):
    """Child window opened by a ``MemoryWindow``.

    Attributes
    ----------
    url, name, features : str
        The arguments the window was opened with.
    opener : MemoryWindow
        The window that opened this one.
    focus_count : int
        Number of ``focus()`` calls.
    """

    def __init__(self, opener: MemoryWindow, url: str, name: str, features: str) -> None:
        self.opener = opener
        self.url = url
        self.name = name
        self.features = features
        self.focus_count = 0
        self.closed = False

    def focus(self) -> None:
        self.focus_count += 1

    def close(self) -> None:
        self.closed = True

    def post_to_opener(self, data: Any, origin: str = "") -> None:
        """Deliver ``data`` to the opener, as the picker page does."""
        self.opener.post_message(data, origin)


class MemoryWindow(HostWindow):
    """Headless host window.

    Parameters
    ----------
    href : str, optional
        Initial URI.
    with_history : bool
        Expose a ``history`` capable of ``replace_state`` (default True).

    Attributes
    ----------
    navigations : list[str]
        Every URI assigned to ``location.href``, in order.
    opened : list[MemoryWindowHandle]
        Every child window opened.
    """

    def __init__(self, href: str | None = None, with_history: bool = True) -> None:
        """Initialize the window."""
        self.navigations: list[str] = []
        self.opened: list[MemoryWindowHandle] = []
        self._location = MemoryLocation(self, href)
        self._history = MemoryHistory(self) if with_history else None
        self._listeners: dict[str, list[Callable[[MessageEvent], Any]]] = {}

    @property
    def location(self) -> MemoryLocation:
        return self._location

    @property
    def history(self) -> MemoryHistory | None:
        return self._history

    def open(self, url: str, name: str, features: str) -> MemoryWindowHandle:
        handle = MemoryWindowHandle(self, url, name, features)
        self.opened.append(handle)
        return handle

    def add_event_listener(self, event_type: str, handler: Callable[[MessageEvent], Any]) -> None:
        self._listeners.setdefault(event_type, []).append(handler)

    def listeners(self, event_type: str) -> list[Callable[[MessageEvent], Any]]:
        """Return the handlers registered for ``event_type``."""
        return list(self._listeners.get(event_type, []))

    def post_message(self, data: Any, origin: str = "") -> None:
        """Dispatch a ``message`` event to every registered handler."""
        event = MessageEvent(data=data, origin=origin)
        for handler in self.listeners("message"):
            handler(event)
