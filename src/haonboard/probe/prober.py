"""Discovery probe -- confirm an instance is reachable and compatible before authorizing.

:class:`ConnectionProber` issues a single unauthenticated
``GET <base>/api/discovery_info`` and turns every way that can go wrong into
a :class:`~haonboard.exceptions.ConnectionTestResult`. Authentication
challenges met on the way are vetted by
:func:`~haonboard.probe.trust.classify` before any response is read; a
rejected challenge aborts the request and is never retried.

Failure mapping, in priority order:

1. TLS certificate not trusted            -> ``ssl_untrusted``
2. TLS certificate expired / not yet valid -> ``ssl_expired``
3. any other transport failure            -> ``connection_error``
4. HTTP status >= 400                     -> ``server_error``
5. body does not decode                   -> ``connection_error``

See Also:
    :mod:`haonboard.probe.internality` for the follow-up locality check.
"""

from __future__ import annotations

import logging
import re
import ssl
from typing import Callable, Iterable, Iterator, Optional
from urllib.parse import urlsplit, urlunsplit

import httpx

from haonboard.exceptions import ConnectionTestKind, ConnectionTestResult
from haonboard.models import DiscoveredInstance
from haonboard.probe.trust import (
    ChallengeDecision,
    ChallengeMethod,
    challenge_method_from_header,
    classify,
)

logger = logging.getLogger(__name__)

DISCOVERY_PATH = "api/discovery_info"

# OpenSSL X509_V_ERR_CERT_NOT_YET_VALID / X509_V_ERR_CERT_HAS_EXPIRED
_CERT_DATE_CODES = frozenset({9, 10})
_CERT_DATE_MESSAGES = ("certificate has expired", "certificate is not yet valid")
_CLIENT_CERT_REASONS = frozenset(
    {"TLSV13_ALERT_CERTIFICATE_REQUIRED", "TLSV1_ALERT_CERTIFICATE_REQUIRED"}
)

Classifier = Callable[[ChallengeMethod], ChallengeDecision]


class ChallengeRejected(Exception):
    """Raised inside the HTTP exchange when the classifier refuses a challenge."""

    def __init__(self, method: ChallengeMethod, kind: ConnectionTestKind) -> None:
        super().__init__(f"Refused {method.value} challenge")
        self.method = method
        self.kind = kind


def discovery_url(base_url: str) -> str:
    """Return the discovery endpoint for *base_url*.

    Raises:
        ConnectionTestResult: ``no_base_url_discovered`` when *base_url* is
            not an absolute http(s) URL with a host.
    """
    try:
        parts = urlsplit(base_url.strip())
        host = parts.hostname
    except ValueError as exc:
        raise ConnectionTestResult(ConnectionTestKind.BAD_BASE_URL, exc) from exc
    if parts.scheme not in ("http", "https") or not host:
        raise ConnectionTestResult(ConnectionTestKind.BAD_BASE_URL)
    path = parts.path.rstrip("/") + "/" + DISCOVERY_PATH
    return urlunsplit((parts.scheme, parts.netloc, path, "", ""))


class ConnectionProber:
    """Run the discovery probe against a candidate base URL.

    Each :meth:`probe` call makes at most one request; failures are always
    surfaced to the caller, which decides whether to let the user retry.

    Args:
        timeout: Request timeout in seconds.
        verify: Verify TLS certificates. Disabling this also disables the
            ``ssl_untrusted`` / ``ssl_expired`` outcomes.
        minimum_version: Oldest release accepted; older instances fail with
            ``too_old``. ``None`` skips the check.
        classifier: Challenge gate, :func:`~haonboard.probe.trust.classify`
            by default.
        transport: Optional httpx transport (tests pass an
            :class:`httpx.MockTransport`).

    Example::

        prober = ConnectionProber(timeout=5)
        instance = await prober.probe("https://ha.example.com")
    """

    def __init__(
        self,
        timeout: float = 10.0,
        verify: bool = True,
        minimum_version: Optional[str] = "0.77.0",
        classifier: Classifier = classify,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeout = timeout
        self._verify = verify
        self._minimum_version = minimum_version
        self._classifier = classifier
        self._transport = transport

    async def probe(
        self,
        base_url: str,
        announced_from: Iterable[str] = (),
    ) -> DiscoveredInstance:
        """Probe *base_url* and decode the discovery response.

        Args:
            base_url: Candidate instance address, e.g. ``http://10.0.0.5:8123``.
            announced_from: Addresses the instance was announced from during
                local discovery; stored on the returned instance.

        Returns:
            The :class:`~haonboard.models.DiscoveredInstance`.

        Raises:
            ConnectionTestResult: For every failure; raw transport errors
                never escape.
        """
        url = discovery_url(base_url)
        logger.debug("Probing %s", url)
        try:
            if url.startswith("https:"):
                self._gate(ChallengeMethod.SERVER_TRUST)
            async with httpx.AsyncClient(
                timeout=self._timeout,
                verify=self._verify,
                follow_redirects=True,
                transport=self._transport,
                event_hooks={"response": [self._gate_response]},
            ) as client:
                response = await client.get(url, headers={"Accept": "application/json"})
        except ChallengeRejected as exc:
            logger.warning("Probe of %s stopped at %s challenge", url, exc.method.value)
            raise ConnectionTestResult(exc.kind) from exc
        except httpx.InvalidURL as exc:
            raise ConnectionTestResult(ConnectionTestKind.BAD_BASE_URL, exc) from exc
        except httpx.TransportError as exc:
            raise self._transport_failure(exc) from exc
        except httpx.HTTPError as exc:
            raise ConnectionTestResult(ConnectionTestKind.UNKNOWN_ERROR, exc) from exc

        logger.debug("Probe of %s answered HTTP %s", url, response.status_code)
        if response.status_code >= 400:
            raise ConnectionTestResult(
                ConnectionTestKind.SERVER_ERROR,
                _StatusError(response),
                status_code=response.status_code,
            )

        try:
            instance = DiscoveredInstance.from_discovery(
                response.json(), fallback_base_url=base_url, announced_from=announced_from
            )
        except ValueError as exc:
            raise ConnectionTestResult(ConnectionTestKind.CONNECTION_ERROR, exc) from exc

        self._check_version(instance)
        return instance

    # ------------------------------------------------------------------ #
    # Challenge gate
    # ------------------------------------------------------------------ #

    def _gate(self, method: ChallengeMethod) -> None:
        """Consult the classifier; raise :class:`ChallengeRejected` on refusal."""
        decision = self._classifier(method)
        if decision.allowed:
            logger.debug("Allowing %s challenge", method.value)
            return
        assert decision.kind is not None
        raise ChallengeRejected(method, decision.kind)

    async def _gate_response(self, response: httpx.Response) -> None:
        """httpx response hook: vet HTTP authentication challenges."""
        if response.status_code == 401:
            header = response.headers.get("www-authenticate")
        elif response.status_code == 407:
            header = response.headers.get("proxy-authenticate")
        else:
            return
        if header:
            self._gate(challenge_method_from_header(header))

    # ------------------------------------------------------------------ #
    # Error mapping
    # ------------------------------------------------------------------ #

    def _transport_failure(self, exc: httpx.TransportError) -> ConnectionTestResult:
        """Map a transport failure to its result kind."""
        for cause in _exception_chain(exc):
            if isinstance(cause, ssl.SSLCertVerificationError):
                if getattr(cause, "verify_code", None) in _CERT_DATE_CODES:
                    return ConnectionTestResult(ConnectionTestKind.SSL_EXPIRED, exc)
                return ConnectionTestResult(ConnectionTestKind.SSL_UNTRUSTED, exc)
            if isinstance(cause, ssl.SSLError) and _requests_client_certificate(cause):
                try:
                    self._gate(ChallengeMethod.CLIENT_CERTIFICATE)
                except ChallengeRejected as rejected:
                    return ConnectionTestResult(rejected.kind, exc)

        message = str(exc)
        if "CERTIFICATE_VERIFY_FAILED" in message:
            if any(text in message for text in _CERT_DATE_MESSAGES):
                return ConnectionTestResult(ConnectionTestKind.SSL_EXPIRED, exc)
            return ConnectionTestResult(ConnectionTestKind.SSL_UNTRUSTED, exc)
        return ConnectionTestResult(ConnectionTestKind.CONNECTION_ERROR, exc)

    def _check_version(self, instance: DiscoveredInstance) -> None:
        if not self._minimum_version:
            return
        found = parse_version(instance.version)
        minimum = parse_version(self._minimum_version)
        if found is None or minimum is None:
            logger.debug("Skipping version check for %r", instance.version)
            return
        if found < minimum:
            raise ConnectionTestResult(
                ConnectionTestKind.TOO_OLD,
                _VersionError(instance.version, self._minimum_version),
            )


class _StatusError(Exception):
    """Underlying cause attached to ``server_error`` results."""

    def __init__(self, response: httpx.Response) -> None:
        reason = response.reason_phrase or ""
        super().__init__(f"Response status code was unacceptable: {response.status_code} {reason}".rstrip())
        self.status_code = response.status_code


class _VersionError(Exception):
    """Underlying cause attached to ``too_old`` results."""

    def __init__(self, found: str, minimum: str) -> None:
        super().__init__(f"Found version {found}, need {minimum} or newer.")
        self.found = found
        self.minimum = minimum


def parse_version(version: str) -> Optional[tuple[int, ...]]:
    """Parse the leading numeric part of a release string.

    ``"2023.10.1"`` -> ``(2023, 10, 1)``; ``"0.92.0b1"`` -> ``(0, 92, 0)``;
    ``"2024.1"`` -> ``(2024, 1, 0)``.
    Returns ``None`` when *version* does not start with a number.
    """
    match = re.match(r"\s*(\d+(?:\.\d+)*)", version or "")
    if match is None:
        return None
    parts = [int(part) for part in match.group(1).split(".")]
    parts.extend([0] * (3 - len(parts)))
    return tuple(parts)


def _exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield *exc* and its causes/contexts, each once."""
    seen: set[int] = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def _requests_client_certificate(error: ssl.SSLError) -> bool:
    reason = getattr(error, "reason", None)
    if reason in _CLIENT_CERT_REASONS:
        return True
    return "CERTIFICATE_REQUIRED" in str(error)
