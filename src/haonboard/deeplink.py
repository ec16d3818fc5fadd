"""Loopback relay that brings deep links into the running process.

The OS hands ``homeassistant://auth-callback?code=...`` links to the
registered scheme handler, a fresh ``haonboard open-url`` process. That
process forwards the link with :func:`forward_deep_link` to the
:class:`DeepLinkRelay` of the process waiting on the authorization, which
then either

- passes it to the browser session that claimed its scheme, or
- posts it as an :data:`~haonboard.notifications.AUTH_CALLBACK` notification.

Protocol: ``POST /open`` with JSON ``{"url": "<link>"}`` (or
``GET /open?url=<link>``); ``202`` when accepted, ``400`` for a malformed
request, ``404`` for other paths.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Callable, Optional
from urllib.parse import parse_qs, urlsplit

import httpx

from haonboard.exceptions import InvalidUsageError, RelayError
from haonboard.notifications import AUTH_CALLBACK, NotificationCenter, default_center

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 47862
OPEN_PATH = "/open"
MAX_BODY_BYTES = 64 * 1024

LinkHandler = Callable[[str], None]


class _Claim:
    def __init__(self, prefix: str, handler: LinkHandler) -> None:
        self.prefix = prefix.lower()
        self.handler = handler

    def matches(self, url: str) -> bool:
        return url.lower().startswith(self.prefix)


class DeepLinkRelay:
    """HTTP listener on the loopback interface that dispatches deep links.

    Requests are served on a daemon thread; dispatch always runs on the
    event loop given to :meth:`start`.

    Args:
        center: Where unclaimed links are posted; the process-wide center
            by default.
        host: Address to bind.
        port: Port to bind; ``0`` picks a free one (see :attr:`address`).

    Example::

        relay = DeepLinkRelay()
        relay.start()
        try:
            ...
        finally:
            relay.stop()
    """

    def __init__(
        self,
        center: Optional[NotificationCenter] = None,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
    ) -> None:
        self._center = center or default_center()
        self._host = host
        self._port = port
        self._claims: list[_Claim] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._server: Optional[HTTPServer] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._server is not None

    @property
    def address(self) -> tuple[str, int]:
        """Bound ``(host, port)``; the configured values before :meth:`start`."""
        if self._server is not None:
            host, port = self._server.server_address[:2]
            return str(host), int(port)
        return self._host, self._port

    def start(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """Bind and start serving.

        Args:
            loop: Loop to dispatch on; the running loop by default.

        Raises:
            RelayError: If the address cannot be bound.
        """
        if self._server is not None:
            return
        self._loop = loop or asyncio.get_running_loop()
        handler = type("RelayRequestHandler", (_RelayRequestHandler,), {"relay": self})
        try:
            server = HTTPServer((self._host, self._port), handler)
        except OSError as exc:
            raise RelayError(f"Cannot listen on {self._host}:{self._port}: {exc}") from exc
        self._server = server
        self._thread = threading.Thread(
            target=server.serve_forever,
            kwargs={"poll_interval": 0.1},
            name="haonboard-relay",
            daemon=True,
        )
        self._thread.start()
        logger.debug("Deep-link relay listening on %s:%s", *self.address)

    def stop(self) -> None:
        """Stop serving and drop all claims."""
        server, self._server = self._server, None
        if server is None:
            return
        server.shutdown()
        server.server_close()
        if self._thread is not None:
            self._thread.join(timeout=1.0)
            self._thread = None
        self._claims.clear()
        logger.debug("Deep-link relay stopped")

    def claim(self, prefix: str, handler: LinkHandler) -> Callable[[], None]:
        """Route links starting with *prefix* (case-insensitive) to *handler*.

        The newest claim wins when several match.

        Returns:
            A callable that releases the claim; calling it again is harmless.
        """
        claim = _Claim(prefix, handler)
        self._claims.insert(0, claim)

        def release() -> None:
            if claim in self._claims:
                self._claims.remove(claim)

        return release

    def submit(self, url: str) -> None:
        """Queue *url* for dispatch on the loop. Safe from any thread."""
        if self._loop is None or self._loop.is_closed():
            logger.warning("Dropping deep link received while the relay is stopped")
            return
        self._loop.call_soon_threadsafe(self.dispatch, url)

    def dispatch(self, url: str) -> bool:
        """Deliver *url* now. Must run on the loop thread.

        Returns:
            ``True`` if a claim took it, ``False`` if it was posted.
        """
        scheme = url.split(":", 1)[0]
        for claim in self._claims:
            if claim.matches(url):
                logger.debug("Deep link with scheme %s went to a claiming session", scheme)
                claim.handler(url)
                return True
        delivered = self._center.post(AUTH_CALLBACK, url=url)
        logger.debug("Posted deep link with scheme %s to %d observer(s)", scheme, delivered)
        return False


class _RelayRequestHandler(BaseHTTPRequestHandler):
    relay: DeepLinkRelay

    def do_POST(self) -> None:
        if urlsplit(self.path).path != OPEN_PATH:
            self._respond(404, {"error": "not found"})
            return
        try:
            length = int(self.headers.get("Content-Length") or 0)
        except ValueError:
            length = -1
        if not 0 <= length <= MAX_BODY_BYTES:
            # Never read an unbounded body; the server handles one request at a time.
            self._respond(400, {"error": "invalid Content-Length"})
            return
        try:
            payload = json.loads(self.rfile.read(length) or b"null")
        except ValueError:
            self._respond(400, {"error": "body must be JSON"})
            return
        url = payload.get("url") if isinstance(payload, dict) else None
        self._accept(url)

    def do_GET(self) -> None:
        parts = urlsplit(self.path)
        if parts.path != OPEN_PATH:
            self._respond(404, {"error": "not found"})
            return
        values = parse_qs(parts.query).get("url")
        self._accept(values[0] if values else None)

    def _accept(self, url: Any) -> None:
        if not isinstance(url, str) or not _has_scheme(url):
            self._respond(400, {"error": "expected an absolute 'url'"})
            return
        self.relay.submit(url)
        self._respond(202, {"status": "accepted"})

    def _respond(self, status: int, payload: dict[str, str]) -> None:
        body = json.dumps(payload).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("relay: " + format, *args)


def _has_scheme(url: str) -> bool:
    try:
        return bool(urlsplit(url).scheme)
    except ValueError:
        return False


def forward_deep_link(
    url: str,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
    timeout: float = 5.0,
) -> None:
    """Hand *url* to the relay listening on *host*:*port*.

    Raises:
        InvalidUsageError: If *url* has no scheme.
        RelayError: If nothing is listening or the relay refuses the link.
    """
    if not _has_scheme(url):
        raise InvalidUsageError(f"Not a deep link: {url!r}")
    endpoint = f"http://{host}:{port}{OPEN_PATH}"
    try:
        response = httpx.post(endpoint, json={"url": url}, timeout=timeout, trust_env=False)
    except httpx.HTTPError as exc:
        raise RelayError(f"No haonboard relay is reachable at {host}:{port}: {exc}") from exc
    if response.status_code != 202:
        raise RelayError(f"The relay refused the link (HTTP {response.status_code})")
