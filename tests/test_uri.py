"""Tests for state token URI helpers."""

from __future__ import annotations

import pytest

from solidauth.uri import (
    UriLocation,
    extract_param,
    extract_state,
    fragment_params,
    strip_fragment,
    with_query_param,
)


class TestExtractState:
    """Tests for extract_state()."""

    def test_fragment_state(self) -> None:
        """State is read from the fragment by default."""
        uri = "https://app.example/#state=abcd&access_token=x&id_token=y"
        assert extract_state(uri) == "abcd"

    def test_query_state(self) -> None:
        """State is read from the query string when asked."""
        uri = "https://p.example/authorize?client_id=c1&state=abcd"
        assert extract_state(uri, UriLocation.QUERY) == "abcd"

    def test_location_accepts_plain_string(self) -> None:
        """Location may be given as its string value."""
        assert extract_state("https://p.example/?state=s1", "query") == "s1"

    def test_fragment_mode_ignores_query(self) -> None:
        """A query-string state is not a fragment state."""
        assert extract_state("https://app.example/?state=abcd") is None

    def test_query_mode_ignores_fragment(self) -> None:
        """A fragment state is not a query-string state."""
        assert extract_state("https://app.example/#state=abcd", UriLocation.QUERY) is None

    @pytest.mark.parametrize(
        "uri",
        [
            None,
            "",
            "https://app.example/",
            "https://app.example/#",
            "https://app.example/?",
            "https://app.example/#access_token=x",
            "not a uri",
        ],
    )
    def test_absent(self, uri) -> None:
        """Missing, malformed or state-less URIs yield None in both modes."""
        assert extract_state(uri, UriLocation.FRAGMENT) is None
        assert extract_state(uri, UriLocation.QUERY) is None

    def test_pure(self) -> None:
        """Repeated calls return the same value."""
        uri = "https://app.example/#state=abcd"
        assert extract_state(uri) == extract_state(uri) == "abcd"

    def test_url_encoded_value(self) -> None:
        """Values are percent-decoded."""
        assert extract_state("https://app.example/#state=a%2Bb%3D") == "a+b="


class TestFragmentHelpers:
    """Tests for fragment parsing and stripping."""

    def test_fragment_params(self) -> None:
        """All fragment parameters are returned flat."""
        params = fragment_params("https://app.example/#state=s&id_token=i&access_token=a")
        assert params == {"state": "s", "id_token": "i", "access_token": "a"}

    def test_fragment_params_empty(self) -> None:
        """No fragment gives an empty dict."""
        assert fragment_params("https://app.example/") == {}
        assert fragment_params(None) == {}

    def test_extract_param(self) -> None:
        """Arbitrary parameters can be extracted."""
        assert extract_param("https://app.example/#id_token=i", "id_token") == "i"
        assert extract_param("https://app.example/?a=1", "a", UriLocation.QUERY) == "1"

    def test_strip_fragment(self) -> None:
        """The fragment is removed, path and query are kept."""
        assert strip_fragment("https://example.com/#whatever") == "https://example.com/"
        assert strip_fragment("https://example.com/a?b=1#state=s") == "https://example.com/a?b=1"

    def test_strip_fragment_without_fragment(self) -> None:
        """A URI without fragment is unchanged."""
        assert strip_fragment("https://example.com/page") == "https://example.com/page"


class TestWithQueryParam:
    """Tests for with_query_param()."""

    def test_adds_encoded_param(self) -> None:
        """The value is URL-encoded."""
        result = with_query_param("https://p.example/logout", "returnToUrl", "https://rp.com")
        assert result == "https://p.example/logout?returnToUrl=https%3A%2F%2Frp.com"

    def test_keeps_existing_params(self) -> None:
        """Other parameters survive."""
        result = with_query_param("https://p.example/logout?a=1", "returnToUrl", "x")
        assert result == "https://p.example/logout?a=1&returnToUrl=x"

    def test_replaces_same_name(self) -> None:
        """A parameter with the same name is replaced."""
        result = with_query_param("https://p.example/logout?returnToUrl=old", "returnToUrl", "new")
        assert result == "https://p.example/logout?returnToUrl=new"
