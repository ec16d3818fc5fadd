"""Tests for the exception hierarchy and domain error kinds."""

from __future__ import annotations

import pytest

from haonboard.exceptions import (
    AuthorizationError,
    AuthorizationErrorKind,
    ConfigError,
    ConnectionTestKind,
    ConnectionTestResult,
    HAOnboardError,
    InvalidUsageError,
    RelayError,
)
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


class TestHierarchy:
    @pytest.mark.parametrize(
        ("exc", "code"),
        [
            (HAOnboardError("x"), EXIT_GENERIC_FAILURE),
            (InvalidUsageError("x"), EXIT_INVALID_USAGE),
            (ConfigError("x"), EXIT_GENERIC_FAILURE),
            (RelayError("x"), EXIT_CONNECTION_ERROR),
        ],
    )
    def test_exit_codes(self, exc: HAOnboardError, code: int) -> None:
        assert exc.exit_code == code

    def test_exit_code_override(self) -> None:
        assert HAOnboardError("x", exit_code=42).exit_code == 42

    def test_domain_errors_are_haonboard_errors(self) -> None:
        assert issubclass(AuthorizationError, HAOnboardError)
        assert issubclass(ConnectionTestResult, HAOnboardError)


class TestAuthorizationError:
    @pytest.mark.parametrize(
        ("kind", "code"),
        [
            (AuthorizationErrorKind.INVALID_URL, EXIT_INVALID_USAGE),
            (AuthorizationErrorKind.USER_CANCELLED, EXIT_CANCELLED),
            (AuthorizationErrorKind.SESSION_FAILED, EXIT_AUTH_FAILURE),
            (AuthorizationErrorKind.ALREADY_AUTHORIZING, EXIT_AUTH_FAILURE),
        ],
    )
    def test_exit_code_by_kind(self, kind: AuthorizationErrorKind, code: int) -> None:
        assert AuthorizationError(kind).exit_code == code

    def test_description_includes_cause(self) -> None:
        error = AuthorizationError(AuthorizationErrorKind.SESSION_FAILED, RuntimeError("no browser"))
        assert str(error) == "The browser authorization session failed. no browser"
        assert error.cause.args == ("no browser",)

    def test_repr(self) -> None:
        error = AuthorizationError(AuthorizationErrorKind.USER_CANCELLED)
        assert repr(error) == "AuthorizationError(kind='user_cancelled', cause=None)"


class TestConnectionTestResult:
    @pytest.mark.parametrize(
        ("kind", "code"),
        [
            (ConnectionTestKind.BAD_BASE_URL, EXIT_INVALID_USAGE),
            (ConnectionTestKind.BASIC_AUTH, EXIT_AUTH_CHALLENGE),
            (ConnectionTestKind.AUTHENTICATION_UNSUPPORTED, EXIT_AUTH_CHALLENGE),
            (ConnectionTestKind.CLIENT_CERTIFICATE, EXIT_AUTH_CHALLENGE),
            (ConnectionTestKind.SSL_UNTRUSTED, EXIT_CONNECTION_ERROR),
            (ConnectionTestKind.SSL_EXPIRED, EXIT_CONNECTION_ERROR),
            (ConnectionTestKind.CONNECTION_ERROR, EXIT_CONNECTION_ERROR),
            (ConnectionTestKind.SERVER_ERROR, EXIT_SERVER_ERROR),
            (ConnectionTestKind.TOO_OLD, EXIT_INCOMPATIBLE),
            (ConnectionTestKind.UNKNOWN_ERROR, EXIT_GENERIC_FAILURE),
        ],
    )
    def test_exit_code_by_kind(self, kind: ConnectionTestKind, code: int) -> None:
        assert ConnectionTestResult(kind).exit_code == code

    @pytest.mark.parametrize("kind", list(ConnectionTestKind))
    def test_every_kind_has_description_and_link(self, kind: ConnectionTestKind) -> None:
        result = ConnectionTestResult(kind)
        assert result.description
        assert result.documentation_url.endswith(f"#{kind.value}")

    def test_documentation_anchor(self) -> None:
        result = ConnectionTestResult(ConnectionTestKind.BAD_BASE_URL)
        assert result.documentation_url == (
            "https://companion.home-assistant.io/en/misc/errors#no_base_url_discovered"
        )

    def test_server_error_description(self) -> None:
        result = ConnectionTestResult(ConnectionTestKind.SERVER_ERROR, status_code=502)
        assert result.description == "Home Assistant responded with HTTP 502."

    def test_underlying_detail_is_appended(self) -> None:
        result = ConnectionTestResult(
            ConnectionTestKind.CONNECTION_ERROR, OSError("Network is unreachable")
        )
        assert str(result) == "Unable to connect to Home Assistant. Network is unreachable"

    def test_basic_auth_description_is_fixed(self) -> None:
        result = ConnectionTestResult(ConnectionTestKind.BASIC_AUTH, RuntimeError("ignored"))
        assert result.description == "HTTP Basic Authentication is not supported."
