"""Authorization URL construction and completion URL parsing.

The authorization URL is the instance's ``/auth/authorize`` endpoint with
the three OAuth2 parameters of an :class:`~haonboard.models.AuthorizationRequest`
appended in a fixed order. The completion URL is the redirect URI the
instance sends the browser back to, carrying ``code`` (or ``error``).
"""

from __future__ import annotations

from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from haonboard.exceptions import AuthorizationError, AuthorizationErrorKind
from haonboard.models import AuthorizationRequest

AUTHORIZE_PATH = "/auth/authorize"


def build_authorization_url(base_url: str, request: AuthorizationRequest) -> str:
    """Return the ``/auth/authorize`` URL for *base_url*.

    The base URL's path, query and fragment are replaced; scheme, host and
    port are kept. Query parameters are ``response_type``, ``client_id``,
    ``redirect_uri`` in that order.

    Raises:
        AuthorizationError: ``invalid_url`` when *base_url* is not an
            absolute http(s) URL with a host.

    Example::

        request = AuthorizationRequest.for_variant(BuildVariant.PRODUCTION)
        url = build_authorization_url("http://10.0.0.5:8123", request)
        # http://10.0.0.5:8123/auth/authorize?response_type=code&client_id=...
    """
    try:
        parts = urlsplit(base_url.strip())
        host = parts.hostname
    except ValueError as exc:
        raise AuthorizationError(AuthorizationErrorKind.INVALID_URL, exc) from exc
    if parts.scheme.lower() not in ("http", "https") or not host:
        raise AuthorizationError(AuthorizationErrorKind.INVALID_URL)

    query = urlencode(
        [
            ("response_type", request.response_type),
            ("client_id", request.client_id),
            ("redirect_uri", request.redirect_uri),
        ]
    )
    return urlunsplit((parts.scheme, parts.netloc, AUTHORIZE_PATH, query, ""))


def _query(url: str) -> dict[str, str]:
    try:
        query = urlsplit(url).query
    except ValueError:
        return {}
    # First occurrence wins.
    params: dict[str, str] = {}
    for key, value in parse_qsl(query, keep_blank_values=True):
        params.setdefault(key, value)
    return params


def extract_code(url: str) -> Optional[str]:
    """Return the ``code`` query parameter of *url*, or ``None``.

    An empty ``code=`` counts as absent.
    """
    return _query(url).get("code") or None


def extract_error(url: str) -> Optional[str]:
    """Return the OAuth2 ``error`` of a completion URL, with its description if any."""
    params = _query(url)
    error = params.get("error")
    if not error:
        return None
    description = params.get("error_description")
    return f"{error}: {description}" if description else error
