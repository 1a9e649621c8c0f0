"""Pytest configuration and fixtures."""

# pylint: disable=redefined-outer-name

from __future__ import annotations

import os

from typing import TYPE_CHECKING

import pytest

from solidauth.config import SolidAuthSettings, clear_settings
from solidauth.host import MemoryWindow
from solidauth.store import MemoryStore
from tests.helpers import APP, make_client, make_rp


if TYPE_CHECKING:
    from collections.abc import Generator
    from unittest.mock import MagicMock


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch) -> Generator[None, None, None]:
    """Keep local config files and SOLIDAUTH_* variables out of tests."""
    for key in list(os.environ):
        if key.startswith("SOLIDAUTH_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    clear_settings()
    yield
    clear_settings()


@pytest.fixture()
def settings() -> SolidAuthSettings:
    """Default settings."""
    return SolidAuthSettings()


@pytest.fixture()
def store() -> MemoryStore:
    """Create an empty memory store."""
    return MemoryStore()


@pytest.fixture()
def window() -> MemoryWindow:
    """Create a headless window at the app's start page."""
    return MemoryWindow(href=APP)


@pytest.fixture()
def client() -> MagicMock:
    """Create a mock relying party client."""
    return make_client()


@pytest.fixture()
def rp(client) -> MagicMock:
    """Create a mock relying party factory returning ``client``."""
    return make_rp(client)
