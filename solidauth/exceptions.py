"""solidauth exception hierarchy.

All solidauth-specific exceptions inherit from SolidAuthException, enabling
catch-all handling while supporting specific error types.
"""

from __future__ import annotations

from typing import Any


SIGNING_KEY_UNRESOLVABLE_MESSAGE = "Cannot resolve signing key for ID Token."


class SolidAuthException(Exception):
    """Base exception for all solidauth errors."""

    def __init__(self, message: str, **context: Any) -> None:
        """Initialize solidauth exception.

        Parameters
        ----------
        message : str
            Human-readable error message.
        **context : Any
            Additional context (provider, state, key, etc.).
        """
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        """Format exception with context."""
        context = {k: v for k, v in self.context.items() if v is not None}
        if context:
            ctx = ", ".join(f"{k}={v!r}" for k, v in context.items())
            return f"{self.message} ({ctx})"
        return self.message


class StoreError(SolidAuthException):
    """Durable store could not be read or written.

    Raised when a file-backed store holds content that is not a JSON
    object of string values.
    """

    def __init__(self, message: str, path: str | None = None, **context: Any) -> None:
        """Initialize store error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        path : str, optional
            The store file involved.
        **context : Any
            Additional context.
        """
        super().__init__(message, path=path, **context)
        self.path = path


class AuthenticationError(SolidAuthException):
    """Base exception for all authentication failures.

    Raised when a step of the login sequence fails: provider
    resolution, client registration, request construction or
    response validation.
    """

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize authentication error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        provider : str, optional
            The identity provider URI involved.
        **context : Any
            Additional context.
        """
        super().__init__(message, provider=provider, **context)
        self.provider = provider


class InvalidArgument(AuthenticationError, ValueError):
    """A required argument was missing.

    Raised synchronously, before any store or network I/O.
    """


class MissingProviderUri(InvalidArgument):
    """No provider URI was available to load or register a client."""


class MissingState(InvalidArgument):
    """No ``state`` correlation token was given for a store operation."""


class MissingClient(AuthenticationError):
    """Auth validation was attempted without a resolved client."""


class InvalidAuthRequest(AuthenticationError):
    """The constructed authorization URI carries no ``state`` parameter.

    Indicates a misbehaving provider or relying party implementation;
    the request cannot be correlated with its callback.
    """

    def __init__(
        self,
        message: str,
        auth_uri: str | None = None,
        provider: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize invalid auth request error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        auth_uri : str, optional
            The authorization URI that was rejected.
        provider : str, optional
            The identity provider URI.
        **context : Any
            Additional context.
        """
        super().__init__(message, provider=provider, auth_uri=auth_uri, **context)
        self.auth_uri = auth_uri


class AuthResponseInvalid(AuthenticationError):
    """Callback validation failed.

    Propagated to the caller of ``login()``; never recovered.
    """


class SigningKeyUnresolvable(AuthResponseInvalid):
    """The ID token's signing key is unknown to the provider's key set.

    Usually means the provider rotated its keys since the client was
    registered. The login sequence treats this as "not logged in" rather
    than as a failure.
    """

    def __init__(
        self,
        message: str = SIGNING_KEY_UNRESOLVABLE_MESSAGE,
        provider: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize signing key error."""
        super().__init__(message, provider=provider, **context)


class DiscoveryError(AuthenticationError):
    """Provider configuration or key set could not be fetched."""


class RegistrationError(AuthenticationError):
    """Dynamic client registration with the provider failed."""


def is_signing_key_error(exc: BaseException) -> bool:
    """Return True if ``exc`` reports an unresolvable ID token signing key.

    Relying party implementations other than the bundled one only report
    this condition through the error message.
    """
    if isinstance(exc, SigningKeyUnresolvable):
        return True
    message = getattr(exc, "message", None) or str(exc)
    return message == SIGNING_KEY_UNRESOLVABLE_MESSAGE
