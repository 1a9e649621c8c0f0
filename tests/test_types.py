"""Tests for shared types, the headless host window and async helpers."""

import asyncio
import json

import pytest

from solidauth.host import MemoryWindow
from solidauth.types import AuthResponse, AuthState, Session
from solidauth.utils import fire_and_forget


class TestSession:
    """Tests for the Session record."""

    def test_camel_case_json(self):
        """The stored record uses camelCase keys."""
        session = Session(web_id="https://alice.example/#me", id_token="i", access_token="a")
        assert json.loads(session.to_json()) == {
            "webId": "https://alice.example/#me",
            "idToken": "i",
            "accessToken": "a",
        }

    def test_from_json(self):
        """Missing keys become None."""
        session = Session.from_json('{"webId": "https://alice.example/#me"}')
        assert session.web_id == "https://alice.example/#me"
        assert session.id_token is None
        assert session.is_authenticated

    def test_from_json_rejects_non_object(self):
        """Only objects are accepted."""
        with pytest.raises(ValueError, match="JSON object"):
            Session.from_json("[]")

    def test_empty_not_authenticated(self):
        """An empty session has no WebID."""
        assert not Session().is_authenticated


class TestAuthResponse:
    """Tests for AuthResponse.from_mapping()."""

    def test_camel_case_keys(self):
        """camelCase token keys and a claims dict are accepted."""
        response = AuthResponse.from_mapping(
            {"idToken": "i", "accessToken": "a", "claims": {"sub": "https://alice.example/#me"}}
        )
        assert response.id_token == "i"
        assert response.access_token == "a"
        assert response.subject == "https://alice.example/#me"

    def test_decoded_payload(self):
        """Claims may come from a decoded token's payload."""
        response = AuthResponse.from_mapping(
            {"id_token": "i", "decoded": {"header": {}, "payload": {"sub": "s"}}}
        )
        assert response.subject == "s"

    def test_params_fallback(self):
        """Tokens fall back to the fragment parameters."""
        response = AuthResponse.from_mapping(
            {"params": {"id_token": "i", "access_token": "a", "state": "xyz"}}
        )
        assert response.id_token == "i"
        assert response.access_token == "a"
        assert response.subject is None

    def test_auth_state_values(self):
        """States serialize as lowercase strings."""
        assert AuthState.REQUEST_SENT == "request_sent"


class TestMemoryWindow:
    """Tests for the headless host window."""

    def test_navigation_recorded(self):
        """Assigning href records a navigation."""
        window = MemoryWindow(href="https://app.example/")
        window.location.href = "https://p.example/authorize"
        assert window.navigations == ["https://p.example/authorize"]

    def test_replace_state_does_not_navigate(self):
        """History replacement rewrites the URI in place."""
        window = MemoryWindow(href="https://app.example/#id_token=x")
        window.history.replace_state({}, "", "https://app.example/")
        assert window.location.href == "https://app.example/"
        assert window.navigations == []

    def test_without_history(self):
        """History can be disabled."""
        assert MemoryWindow(with_history=False).history is None

    def test_messages_reach_listeners(self):
        """A child window can post back to its opener."""
        window = MemoryWindow()
        received = []
        window.add_event_listener("message", received.append)
        child = window.open("about:blank", "picker", "")
        child.post_to_opener({"event_type": "providerSelected", "value": "x"}, "https://app")
        assert received[0].data["value"] == "x"
        assert received[0].origin == "https://app"


class TestFireAndForget:
    """Tests for fire_and_forget()."""

    def test_runs_without_loop(self):
        """Without a running loop the coroutine completes immediately."""

        async def answer():
            return 42

        assert fire_and_forget(answer()) == 42

    @pytest.mark.asyncio
    async def test_schedules_task_in_loop(self):
        """Inside a loop a named task is returned."""

        async def answer():
            return 42

        task = fire_and_forget(answer(), name="answer")
        assert isinstance(task, asyncio.Task)
        assert task.get_name() == "answer"
        assert await task == 42

    @pytest.mark.asyncio
    async def test_failure_is_logged(self, caplog):
        """Task exceptions are logged."""

        async def boom():
            msg = "boom"
            raise RuntimeError(msg)

        with caplog.at_level("ERROR", logger="solidauth.utils"):
            task = fire_and_forget(boom(), name="boom")
            with pytest.raises(RuntimeError):
                await task
            await asyncio.sleep(0)
        assert "Background task boom failed" in caplog.text

    def test_failure_without_loop_logged_and_raised(self, caplog):
        """Without a loop the failure is logged and reaches the caller."""

        async def boom():
            msg = "network down"
            raise RuntimeError(msg)

        with caplog.at_level("ERROR", logger="solidauth.utils"):
            with pytest.raises(RuntimeError, match="network down"):
                fire_and_forget(boom(), name="boom")
        assert "Task boom failed: network down" in caplog.text
