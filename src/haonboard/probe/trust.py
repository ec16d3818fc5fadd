"""Pre-authentication gate for TLS and HTTP authentication challenges.

The discovery probe must never hand credentials to an instance it has not
yet vetted. Every challenge the connection meets -- the server's TLS
certificate, an HTTP ``WWW-Authenticate`` demand, a TLS request for a client
certificate -- is reduced to a :class:`ChallengeMethod` and passed to
:func:`classify`, which either lets default handling continue or rejects the
challenge with the :class:`~haonboard.exceptions.ConnectionTestKind` the
probe should fail with.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional

from haonboard.exceptions import ConnectionTestKind


class ChallengeMethod(str, enum.Enum):
    """Authentication method a challenge asks for."""

    SERVER_TRUST = "server_trust"
    HTTP_BASIC = "http_basic"
    HTTP_DIGEST = "http_digest"
    NEGOTIATE = "negotiate"
    NTLM = "ntlm"
    CLIENT_CERTIFICATE = "client_certificate"
    OTHER = "other"


@dataclass(frozen=True)
class ChallengeDecision:
    """Result of :func:`classify`.

    Attributes:
        allowed: ``True`` to continue with default handling.
        kind: For rejections, the probe failure to report.
    """

    allowed: bool
    kind: Optional[ConnectionTestKind] = None

    @classmethod
    def allow(cls) -> ChallengeDecision:
        return cls(allowed=True)

    @classmethod
    def reject(cls, kind: ConnectionTestKind) -> ChallengeDecision:
        return cls(allowed=False, kind=kind)


def classify(method: ChallengeMethod) -> ChallengeDecision:
    """Decide whether the probe may proceed past a challenge.

    Server trust is allowed, deferring to the default certificate
    validation; its failures surface separately as ``ssl_untrusted`` /
    ``ssl_expired``. Everything that would require us to present
    credentials is rejected.
    """
    if method is ChallengeMethod.SERVER_TRUST:
        return ChallengeDecision.allow()
    if method is ChallengeMethod.HTTP_BASIC:
        return ChallengeDecision.reject(ConnectionTestKind.BASIC_AUTH)
    if method is ChallengeMethod.CLIENT_CERTIFICATE:
        return ChallengeDecision.reject(ConnectionTestKind.CLIENT_CERTIFICATE)
    return ChallengeDecision.reject(ConnectionTestKind.AUTHENTICATION_UNSUPPORTED)


_SCHEMES: dict[str, ChallengeMethod] = {
    "basic": ChallengeMethod.HTTP_BASIC,
    "digest": ChallengeMethod.HTTP_DIGEST,
    "negotiate": ChallengeMethod.NEGOTIATE,
    "ntlm": ChallengeMethod.NTLM,
}


def challenge_method_from_header(www_authenticate: str) -> ChallengeMethod:
    """Map a ``WWW-Authenticate`` / ``Proxy-Authenticate`` value to a method.

    Only the first challenge's scheme token is considered.

    Example::

        >>> challenge_method_from_header('Basic realm="Home"')
        <ChallengeMethod.HTTP_BASIC: 'http_basic'>
    """
    token = www_authenticate.strip().split(None, 1)[0] if www_authenticate.strip() else ""
    token = token.rstrip(",").lower()
    return _SCHEMES.get(token, ChallengeMethod.OTHER)
