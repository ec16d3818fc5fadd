"""Browser-delegated OAuth2 authorization.

- :class:`AuthorizationController` -- resolves an authorization ``code``.
- :mod:`haonboard.auth.sessions` -- the browser session backends.
- :mod:`haonboard.auth.request` -- URL construction and parsing.
"""

from haonboard.auth.controller import AuthorizationController
from haonboard.auth.request import build_authorization_url, extract_code
from haonboard.auth.sessions import CapabilityTier, detect_capability_tier, select_backend

__all__ = [
    "AuthorizationController",
    "CapabilityTier",
    "build_authorization_url",
    "detect_capability_tier",
    "extract_code",
    "select_backend",
]
