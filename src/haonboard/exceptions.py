"""Exception hierarchy for haonboard.

All exceptions inherit from :class:`HAOnboardError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`haonboard.exit_codes`.
The top-level error handler in :func:`haonboard.app.main` catches
``HAOnboardError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Subclass hierarchy::

    HAOnboardError (exit 1)
    +-- InvalidUsageError     (exit 2)
    +-- ConfigError           (exit 1)
    +-- RelayError            (exit 6)
    +-- AuthorizationError    (exit 2 / 3 / 130, by kind)
    +-- ConnectionTestResult  (exit 4 / 5 / 6 / 7, by kind)

The two domain errors carry a stable, machine-readable ``kind`` whose value
doubles as the anchor of the public troubleshooting page, so a UI can link
each failure to its documentation.
"""

from __future__ import annotations

import enum
from typing import Optional

from haonboard.exit_codes import (
    EXIT_AUTH_CHALLENGE,
    EXIT_AUTH_FAILURE,
    EXIT_CANCELLED,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INCOMPATIBLE,
    EXIT_INVALID_USAGE,
    EXIT_SERVER_ERROR,
)

DOCUMENTATION_BASE_URL = "https://companion.home-assistant.io/en/misc/errors"


class HAOnboardError(Exception):
    """Base exception for all haonboard errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`haonboard.exit_codes`. The entry point catches
    this exception type and calls ``sys.exit(exc.exit_code)``.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(HAOnboardError):
    """Raised for invalid CLI arguments or missing required parameters."""

    exit_code = EXIT_INVALID_USAGE


class ConfigError(HAOnboardError):
    """Raised for configuration problems (invalid JSON, unknown keys, bad values)."""

    exit_code = EXIT_GENERIC_FAILURE


class RelayError(HAOnboardError):
    """Raised when a deep link cannot be handed to the running relay (not listening, refused)."""

    exit_code = EXIT_CONNECTION_ERROR


# --- Authorization ---


class AuthorizationErrorKind(str, enum.Enum):
    """Why a browser authorization did not produce a code."""

    INVALID_URL = "invalid_url"
    USER_CANCELLED = "user_cancelled"
    SESSION_FAILED = "session_failed"
    ALREADY_AUTHORIZING = "already_authorizing"


_AUTHORIZATION_DESCRIPTIONS: dict[AuthorizationErrorKind, str] = {
    AuthorizationErrorKind.INVALID_URL: (
        "The authorization URL could not be built from the instance address."
    ),
    AuthorizationErrorKind.USER_CANCELLED: "Authorization was cancelled.",
    AuthorizationErrorKind.SESSION_FAILED: "The browser authorization session failed.",
    AuthorizationErrorKind.ALREADY_AUTHORIZING: (
        "An authorization is already in progress; finish or cancel it first."
    ),
}

_AUTHORIZATION_EXIT_CODES: dict[AuthorizationErrorKind, int] = {
    AuthorizationErrorKind.INVALID_URL: EXIT_INVALID_USAGE,
    AuthorizationErrorKind.USER_CANCELLED: EXIT_CANCELLED,
    AuthorizationErrorKind.SESSION_FAILED: EXIT_AUTH_FAILURE,
    AuthorizationErrorKind.ALREADY_AUTHORIZING: EXIT_AUTH_FAILURE,
}


class AuthorizationError(HAOnboardError):
    """Raised when :meth:`AuthorizationController.authorize` cannot return a code.

    Args:
        kind: The failure category.
        cause: The platform or transport error behind a ``SESSION_FAILED``
            outcome, if any.
    """

    def __init__(
        self,
        kind: AuthorizationErrorKind,
        cause: Optional[BaseException] = None,
    ) -> None:
        self.kind = kind
        self.cause = cause
        super().__init__(self.description, exit_code=_AUTHORIZATION_EXIT_CODES[kind])

    @property
    def description(self) -> str:
        """Human-readable description, including the cause when known."""
        text = _AUTHORIZATION_DESCRIPTIONS[self.kind]
        if self.cause is not None:
            text = f"{text} {self.cause}"
        return text

    def __repr__(self) -> str:
        return f"AuthorizationError(kind={self.kind.value!r}, cause={self.cause!r})"


# --- Connection test ---


class ConnectionTestKind(str, enum.Enum):
    """Outcome categories of the discovery probe.

    Values are the anchors of the public troubleshooting page; see
    :attr:`ConnectionTestResult.documentation_url`.
    """

    BAD_BASE_URL = "no_base_url_discovered"
    BASIC_AUTH = "basic_auth"
    AUTHENTICATION_UNSUPPORTED = "authentication_unsupported"
    SSL_UNTRUSTED = "ssl_untrusted"
    SSL_EXPIRED = "ssl_expired"
    CLIENT_CERTIFICATE = "client_certificate"
    SERVER_ERROR = "server_error"
    CONNECTION_ERROR = "connection_error"
    TOO_OLD = "too_old"
    UNKNOWN_ERROR = "unknown_error"


_CONNECTION_TEST_EXIT_CODES: dict[ConnectionTestKind, int] = {
    ConnectionTestKind.BAD_BASE_URL: EXIT_INVALID_USAGE,
    ConnectionTestKind.BASIC_AUTH: EXIT_AUTH_CHALLENGE,
    ConnectionTestKind.AUTHENTICATION_UNSUPPORTED: EXIT_AUTH_CHALLENGE,
    ConnectionTestKind.CLIENT_CERTIFICATE: EXIT_AUTH_CHALLENGE,
    ConnectionTestKind.SSL_UNTRUSTED: EXIT_CONNECTION_ERROR,
    ConnectionTestKind.SSL_EXPIRED: EXIT_CONNECTION_ERROR,
    ConnectionTestKind.CONNECTION_ERROR: EXIT_CONNECTION_ERROR,
    ConnectionTestKind.SERVER_ERROR: EXIT_SERVER_ERROR,
    ConnectionTestKind.TOO_OLD: EXIT_INCOMPATIBLE,
    ConnectionTestKind.UNKNOWN_ERROR: EXIT_GENERIC_FAILURE,
}


class ConnectionTestResult(HAOnboardError):
    """Raised by :class:`~haonboard.probe.prober.ConnectionProber` on any failed probe.

    Carries a stable :class:`ConnectionTestKind` plus the underlying cause for
    diagnostics. Transport exceptions never escape the prober unwrapped.

    Args:
        kind: The failure category.
        underlying: The exception that triggered this result, if any.
        status_code: HTTP status for ``SERVER_ERROR`` results.

    Example::

        try:
            instance = await prober.probe("https://ha.local:8123")
        except ConnectionTestResult as result:
            print(result.kind.value, result.documentation_url)
    """

    def __init__(
        self,
        kind: ConnectionTestKind,
        underlying: Optional[BaseException] = None,
        status_code: Optional[int] = None,
    ) -> None:
        self.kind = kind
        self.underlying = underlying
        self.status_code = status_code
        super().__init__(self.description, exit_code=_CONNECTION_TEST_EXIT_CODES[kind])

    @property
    def description(self) -> str:
        """Human-readable description of the failure, one per kind."""
        detail = str(self.underlying) if self.underlying is not None else ""
        kind = self.kind
        if kind is ConnectionTestKind.BAD_BASE_URL:
            return "No usable base URL was found for this instance. Enter the address manually."
        if kind is ConnectionTestKind.BASIC_AUTH:
            return "HTTP Basic Authentication is not supported."
        if kind is ConnectionTestKind.AUTHENTICATION_UNSUPPORTED:
            return _join("The server requested an unsupported authentication method.", detail)
        if kind is ConnectionTestKind.SSL_UNTRUSTED:
            return _join("The server's TLS certificate is not trusted.", detail)
        if kind is ConnectionTestKind.SSL_EXPIRED:
            return "The server's TLS certificate has expired or is not yet valid."
        if kind is ConnectionTestKind.CLIENT_CERTIFICATE:
            return "The server requires a TLS client certificate, which is not supported."
        if kind is ConnectionTestKind.CONNECTION_ERROR:
            return _join("Unable to connect to Home Assistant.", detail)
        if kind is ConnectionTestKind.SERVER_ERROR:
            status = f"HTTP {self.status_code}" if self.status_code else "an error"
            return _join(f"Home Assistant responded with {status}.", detail)
        if kind is ConnectionTestKind.TOO_OLD:
            return _join("This Home Assistant release is too old; please update it.", detail)
        return _join("An unknown error occurred.", detail)

    @property
    def documentation_url(self) -> str:
        """Link to the troubleshooting entry for this kind."""
        return f"{DOCUMENTATION_BASE_URL}#{self.kind.value}"

    def __repr__(self) -> str:
        return (
            f"ConnectionTestResult(kind={self.kind.value!r}, "
            f"status_code={self.status_code!r}, underlying={self.underlying!r})"
        )


def _join(summary: str, detail: str) -> str:
    return f"{summary} {detail}" if detail else summary
