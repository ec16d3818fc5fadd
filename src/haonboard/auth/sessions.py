"""Browser session backends used by the authorization controller.

A backend runs the authorization URL in some browser surface and reports
how it ended through a completion callback ``(url, error)``:

- ``(url, None)`` -- the session was redirected to the callback URL.
- ``(None, error)`` -- the surface failed.
- ``(None, None)`` -- the user dismissed it.

The callback fires at most once, and never after :meth:`SessionBackend.cancel`.

There are three variants, ordered by :class:`CapabilityTier`:

- :class:`ModernSessionBackend` -- a platform session that captures the
  redirect scheme itself (default: :class:`~haonboard.auth.browser.BrowserAuthSession`).
- :class:`LegacySessionBackend` -- the same contract on an older surface
  (default: :class:`~haonboard.auth.browser.LegacyBrowserAuthSession`).
- :class:`EmbeddedViewBackend` -- a presented view with no native
  completion; the code only arrives through the ``AuthCallback``
  notification (default: :class:`~haonboard.auth.browser.TerminalAuthView`).

See Also:
    :mod:`haonboard.auth.controller` for how completions are resolved.
"""

from __future__ import annotations

import enum
import functools
import logging
import webbrowser
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Callable, Optional, Protocol

from haonboard.auth.browser import BrowserAuthSession, LegacyBrowserAuthSession, TerminalAuthView

if TYPE_CHECKING:
    from haonboard.deeplink import DeepLinkRelay

logger = logging.getLogger(__name__)

Completion = Callable[[Optional[str], Optional[BaseException]], None]


class CapabilityTier(enum.IntEnum):
    """Browser surfaces available on this host, best last."""

    EMBEDDED = 0
    LEGACY = 1
    MODERN = 2


class PlatformSession(Protocol):
    """A started-once browser session that reports through its completion."""

    def start(self) -> None: ...

    def cancel(self) -> None: ...


class AuthView(Protocol):
    """A view showing the authorization URL to the user."""

    def present(self) -> None: ...

    def dismiss(self) -> None: ...


SessionFactory = Callable[[str, str, Completion], PlatformSession]
ViewFactory = Callable[[str, Callable[[], None]], AuthView]
Presenter = Callable[[AuthView], None]


class SessionBackend(ABC):
    """Abstract base class for session backends.

    Args:
        completion: Called at most once with ``(url, error)``.
    """

    tier: CapabilityTier

    def __init__(self, completion: Completion) -> None:
        self._completion = completion
        self._finished = False

    @property
    def finished(self) -> bool:
        """Whether the backend completed or was cancelled."""
        return self._finished

    @abstractmethod
    def start(self, auth_url: str, redirect_scheme: str) -> None:
        """Show *auth_url*; redirects to *redirect_scheme* end the session.

        Raises:
            Exception: Whatever the platform raises if the surface cannot
                be started. The controller reports it as ``session_failed``.
        """
        ...

    @abstractmethod
    def cancel(self) -> None:
        """Tear the surface down. Safe to call more than once."""
        ...

    def _complete(self, url: Optional[str], error: Optional[BaseException]) -> None:
        if self._finished:
            logger.debug("Ignoring late completion from %s", type(self).__name__)
            return
        self._finished = True
        self._completion(url, error)


class _PlatformSessionBackend(SessionBackend):
    """Shared behaviour of the modern and legacy tiers."""

    def __init__(self, completion: Completion, session_factory: SessionFactory) -> None:
        super().__init__(completion)
        self._session_factory = session_factory
        self._session: Optional[PlatformSession] = None

    def start(self, auth_url: str, redirect_scheme: str) -> None:
        logger.debug("Starting %s for scheme %s", type(self).__name__, redirect_scheme)
        self._session = self._session_factory(auth_url, redirect_scheme, self._complete)
        self._session.start()

    def cancel(self) -> None:
        self._finished = True
        if self._session is not None:
            session, self._session = self._session, None
            session.cancel()


class ModernSessionBackend(_PlatformSessionBackend):
    """Backend on the current platform authentication session."""

    tier = CapabilityTier.MODERN


class LegacySessionBackend(_PlatformSessionBackend):
    """Backend on the previous generation of the platform session."""

    tier = CapabilityTier.LEGACY


def present_view(view: AuthView) -> None:
    """Default presenter: show *view*."""
    view.present()


class EmbeddedViewBackend(SessionBackend):
    """Backend that only presents a view.

    The view has no way of seeing the redirect, so the only completion it
    reports is the user's dismissal, ``(None, None)``.
    """

    tier = CapabilityTier.EMBEDDED

    def __init__(
        self,
        completion: Completion,
        view_factory: ViewFactory,
        presenter: Presenter = present_view,
    ) -> None:
        super().__init__(completion)
        self._view_factory = view_factory
        self._presenter = presenter
        self._view: Optional[AuthView] = None

    def start(self, auth_url: str, redirect_scheme: str) -> None:
        self._view = self._view_factory(auth_url, self._on_dismissed)
        self._presenter(self._view)

    def cancel(self) -> None:
        self._finished = True
        if self._view is not None:
            view, self._view = self._view, None
            view.dismiss()

    def _on_dismissed(self) -> None:
        self._view = None
        self._complete(None, None)


def select_backend(
    tier: CapabilityTier,
    completion: Completion,
    relay: Optional[DeepLinkRelay] = None,
    session_factory: Optional[SessionFactory] = None,
    legacy_session_factory: Optional[SessionFactory] = None,
    view_factory: Optional[ViewFactory] = None,
    presenter: Presenter = present_view,
) -> SessionBackend:
    """Build the backend for *tier*.

    Args:
        tier: Highest tier available.
        completion: Completion callback handed to the backend.
        relay: Deep-link relay the default browser sessions claim their
            callback on.
        session_factory: Overrides the modern-tier session.
        legacy_session_factory: Overrides the legacy-tier session.
        view_factory: Overrides the embedded-tier view.
        presenter: Shows the embedded view.
    """
    if tier >= CapabilityTier.MODERN:
        factory = session_factory or functools.partial(BrowserAuthSession, relay=relay)
        return ModernSessionBackend(completion, factory)
    if tier == CapabilityTier.LEGACY:
        factory = legacy_session_factory or functools.partial(
            LegacyBrowserAuthSession, relay=relay
        )
        return LegacySessionBackend(completion, factory)
    return EmbeddedViewBackend(completion, view_factory or TerminalAuthView, presenter)


_FORCED_TIERS = {
    "modern": CapabilityTier.MODERN,
    "legacy": CapabilityTier.LEGACY,
    "embedded": CapabilityTier.EMBEDDED,
}


def detect_capability_tier(
    relay: Optional[DeepLinkRelay] = None,
    forced: str = "auto",
) -> CapabilityTier:
    """Report the best tier this host supports.

    Browser sessions need a running relay to receive the redirect and a
    browser :mod:`webbrowser` can launch; without both only the embedded
    tier works.

    Args:
        relay: The deep-link relay, if one was started.
        forced: ``session_tier`` from configuration; anything but ``"auto"``
            is returned as is.
    """
    if forced != "auto":
        return _FORCED_TIERS[forced]
    if relay is None or not relay.running:
        return CapabilityTier.EMBEDDED
    try:
        webbrowser.get()
    except webbrowser.Error:
        logger.debug("No browser available; using the embedded view")
        return CapabilityTier.EMBEDDED
    return CapabilityTier.MODERN
