"""Desktop browser surfaces for the session backends.

- :class:`BrowserAuthSession` opens the system browser and claims the
  redirect scheme on the :class:`~haonboard.deeplink.DeepLinkRelay`, so the
  callback URL forwarded by the OS scheme handler comes back to it.
- :class:`LegacyBrowserAuthSession` opens a new browser window and only
  claims the exact redirect URI.
- :class:`TerminalAuthView` prints the URL for the user to open by hand.

The browser is launched on a daemon thread; its outcome is marshalled back
onto the event loop so completions always run on the loop thread.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import webbrowser
from typing import TYPE_CHECKING, Callable, Optional
from urllib.parse import parse_qsl, urlsplit

from haonboard.output import OutputManager, get_output

if TYPE_CHECKING:
    from haonboard.deeplink import DeepLinkRelay

logger = logging.getLogger(__name__)

Opener = Callable[..., bool]


class BrowserLaunchError(RuntimeError):
    """The system browser could not be opened."""


class BrowserAuthSession:
    """Authorization session in the system browser.

    Args:
        url: The authorization URL.
        callback_scheme: Redirect scheme that ends the session.
        completion: Called once with ``(url, error)`` on the loop thread.
        relay: Running relay to claim the callback on.
        opener: ``webbrowser.open``-compatible launcher.
    """

    new_window = 0

    def __init__(
        self,
        url: str,
        callback_scheme: str,
        completion: Callable[[Optional[str], Optional[BaseException]], None],
        relay: Optional[DeepLinkRelay] = None,
        opener: Opener = webbrowser.open,
    ) -> None:
        self.url = url
        self.callback_scheme = callback_scheme
        self._completion = completion
        self._relay = relay
        self._opener = opener
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._release: Optional[Callable[[], None]] = None
        self._done = False

    @property
    def claim_prefix(self) -> str:
        """URL prefix this session claims on the relay."""
        return f"{self.callback_scheme}:"

    def start(self) -> None:
        """Claim the callback and launch the browser.

        Raises:
            BrowserLaunchError: If no relay is running to receive the callback.
        """
        if self._relay is None or not self._relay.running:
            raise BrowserLaunchError("The deep-link relay is not running")
        self._loop = asyncio.get_running_loop()
        self._release = self._relay.claim(self.claim_prefix, self._on_callback)

        thread = threading.Thread(target=self._open_browser, daemon=True)
        thread.start()

    def cancel(self) -> None:
        self._done = True
        self._release_claim()

    def _open_browser(self) -> None:
        error: Optional[BaseException] = None
        try:
            opened = self._opener(self.url, new=self.new_window)
        except webbrowser.Error as exc:
            opened, error = False, exc
        if opened:
            logger.debug("Opened browser at %s", self.url)
            return
        assert self._loop is not None
        failure = BrowserLaunchError(f"Could not open a browser: {error or 'no browser found'}")
        self._loop.call_soon_threadsafe(self._finish, None, failure)

    def _on_callback(self, url: str) -> None:
        self._finish(url, None)

    def _finish(self, url: Optional[str], error: Optional[BaseException]) -> None:
        if self._done:
            return
        self._done = True
        self._release_claim()
        self._completion(url, error)

    def _release_claim(self) -> None:
        if self._release is not None:
            release, self._release = self._release, None
            release()


class LegacyBrowserAuthSession(BrowserAuthSession):
    """Older surface: a new browser window, claiming only the redirect URI."""

    new_window = 1

    @property
    def claim_prefix(self) -> str:
        try:
            params = dict(parse_qsl(urlsplit(self.url).query))
        except ValueError:
            params = {}
        redirect_uri = params.get("redirect_uri")
        if redirect_uri and redirect_uri.startswith(f"{self.callback_scheme}:"):
            return redirect_uri
        return super().claim_prefix


class TerminalAuthView:
    """Embedded-tier view: the URL printed on the terminal.

    The user opens it in any browser; the redirect reaches the application
    through ``haonboard open-url`` and the ``AuthCallback`` notification.

    Args:
        url: The authorization URL.
        on_dismiss: Part of the view interface. A terminal has nothing to
            close, so the CLI treats Ctrl-C as the dismissal and cancels
            the controller instead.
        output: Output manager; the global one by default.
    """

    def __init__(
        self,
        url: str,
        on_dismiss: Callable[[], None],
        output: Optional[OutputManager] = None,
    ) -> None:
        self.url = url
        self._output = output
        self.presented = False

    def present(self) -> None:
        output = self._output or get_output()
        output.info("Sign in to Home Assistant in your browser:")
        output.link("Open", self.url)
        self.presented = True

    def dismiss(self) -> None:
        if self.presented:
            self.presented = False
            (self._output or get_output()).debug("Authorization view closed")
