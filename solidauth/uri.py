"""URI helpers for the ``state`` correlation token.

The identity provider echoes ``state`` back in the redirect URI fragment
(implicit flow), while the outgoing authorization request carries it in
the query string. These helpers are pure; reading and replacing the
host's current location lives on ``SolidAuth``.
"""

from __future__ import annotations

from enum import Enum
from urllib.parse import parse_qs, urlencode, urlsplit, urlunsplit


class UriLocation(str, Enum):
    """Where in a URI a parameter is carried."""

    QUERY = "query"
    FRAGMENT = "fragment"


def _params(uri: str, location: UriLocation) -> dict[str, list[str]] | None:
    try:
        parts = urlsplit(uri)
    except ValueError:
        return None
    if not parts.scheme:
        return None
    raw = parts.fragment if location is UriLocation.FRAGMENT else parts.query
    return parse_qs(raw)


def extract_param(
    uri: str | None,
    name: str,
    location: UriLocation = UriLocation.FRAGMENT,
) -> str | None:
    """Return the first value of parameter ``name`` from a URI.

    Parameters
    ----------
    uri : str or None
        Absolute URI to inspect.
    name : str
        Parameter name.
    location : UriLocation
        Read the fragment (default) or the query string.

    Returns
    -------
    str or None
        The parameter value, or None if the URI is absent, malformed,
        or does not carry the parameter.
    """
    if not uri:
        return None
    params = _params(uri, UriLocation(location))
    if not params:
        return None
    values = params.get(name)
    return values[0] if values else None


def extract_state(
    uri: str | None,
    location: UriLocation = UriLocation.FRAGMENT,
) -> str | None:
    """Return the ``state`` parameter of a URI's fragment or query string.

    Examples
    --------
    >>> extract_state("https://app.example/#state=abcd&access_token=x")
    'abcd'
    >>> extract_state("https://p.example/authorize?state=abcd", UriLocation.QUERY)
    'abcd'
    >>> extract_state("https://app.example/#") is None
    True
    """
    return extract_param(uri, "state", location)


def fragment_params(uri: str | None) -> dict[str, str]:
    """Return all fragment parameters of ``uri`` as a flat dict."""
    if not uri:
        return {}
    params = _params(uri, UriLocation.FRAGMENT) or {}
    return {key: values[0] for key, values in params.items()}


def strip_fragment(uri: str) -> str:
    """Return ``uri`` with its fragment removed.

    Examples
    --------
    >>> strip_fragment("https://example.com/#whatever")
    'https://example.com/'
    """
    parts = urlsplit(uri)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, parts.query, ""))


def with_query_param(uri: str, name: str, value: str) -> str:
    """Return ``uri`` with query parameter ``name`` set to ``value``.

    An existing parameter of the same name is replaced; others are kept.
    """
    parts = urlsplit(uri)
    params = [(k, v) for k, v in _query_pairs(parts.query) if k != name]
    params.append((name, value))
    return urlunsplit(
        (parts.scheme, parts.netloc, parts.path, urlencode(params), parts.fragment)
    )


def _query_pairs(query: str) -> list[tuple[str, str]]:
    return [(k, v) for k, values in parse_qs(query, keep_blank_values=True).items() for v in values]
