"""Browser-delegated OAuth2 authorization -- turns a base URL into a ``code``.

:class:`AuthorizationController` builds the ``/auth/authorize`` URL, starts
a :class:`~haonboard.auth.sessions.SessionBackend` and listens for the
``AuthCallback`` notification at the same time. Whichever reports first
resolves the authorization; everything after that is ignored.

Each resolution, whatever its source, runs the same teardown in order:

1. resolve the pending future;
2. cancel the backend;
3. cancel the notification subscription;
4. clear the pending authorization.

All of it happens on the event loop thread. Signals from other threads are
marshalled with :meth:`asyncio.AbstractEventLoop.call_soon_threadsafe`.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Callable, Optional, Union

from haonboard.auth.request import build_authorization_url, extract_code, extract_error
from haonboard.auth.sessions import (
    CapabilityTier,
    Completion,
    SessionBackend,
    select_backend,
)
from haonboard.exceptions import AuthorizationError, AuthorizationErrorKind
from haonboard.models import AuthorizationRequest, BuildVariant
from haonboard.notifications import (
    AUTH_CALLBACK,
    Notification,
    NotificationCenter,
    Subscription,
    default_center,
)

logger = logging.getLogger(__name__)

CapabilityProbe = Callable[[], CapabilityTier]
BackendFactory = Callable[[CapabilityTier, Completion], SessionBackend]


class CallbackError(Exception):
    """The completion URL did not carry a usable code."""


class PendingAuthorization:
    """State of the one authorization a controller may have in flight."""

    def __init__(self, future: asyncio.Future[str], loop: asyncio.AbstractEventLoop) -> None:
        self.future = future
        self.loop = loop
        self.backend: Optional[SessionBackend] = None
        self.subscription: Optional[Subscription] = None
        self.resolved = False


class AuthorizationController:
    """Run the authorization-code flow in a browser session.

    Args:
        request: Client identity, or the build variant to derive it from.
        notifications: Center to watch for ``AuthCallback``; the
            process-wide one by default.
        capability_probe: Reports the best available
            :class:`~haonboard.auth.sessions.CapabilityTier`. Consulted once,
            here. Defaults to the embedded tier.
        backend_factory: Builds a backend for a tier and completion callback;
            :func:`~haonboard.auth.sessions.select_backend` by default.

    Example::

        controller = AuthorizationController(BuildVariant.PRODUCTION)
        code = await controller.authorize("http://homeassistant.local:8123")
    """

    def __init__(
        self,
        request: Union[AuthorizationRequest, BuildVariant, str],
        notifications: Optional[NotificationCenter] = None,
        capability_probe: Optional[CapabilityProbe] = None,
        backend_factory: Optional[BackendFactory] = None,
    ) -> None:
        if not isinstance(request, AuthorizationRequest):
            request = AuthorizationRequest.for_variant(BuildVariant(request))
        self.request = request
        self._center = notifications or default_center()
        self.tier = CapabilityTier(capability_probe()) if capability_probe else CapabilityTier.EMBEDDED
        self._backend_factory = backend_factory or select_backend
        self._pending: Optional[PendingAuthorization] = None
        logger.debug("Authorization controller using the %s tier", self.tier.name.lower())

    @property
    def is_authorizing(self) -> bool:
        """Whether an authorization is pending."""
        return self._pending is not None

    async def authorize(self, base_url: str) -> str:
        """Authorize against the instance at *base_url* and return the code.

        Raises:
            AuthorizationError: ``invalid_url``, ``user_cancelled``,
                ``session_failed`` or ``already_authorizing``.
            asyncio.CancelledError: If the awaiting task is cancelled; the
                pending authorization is torn down first.
        """
        if self._pending is not None:
            raise AuthorizationError(AuthorizationErrorKind.ALREADY_AUTHORIZING)
        auth_url = build_authorization_url(base_url, self.request)

        loop = asyncio.get_running_loop()
        pending = PendingAuthorization(loop.create_future(), loop)
        self._pending = pending
        pending.backend = self._backend_factory(
            self.tier, functools.partial(self._backend_completed, pending)
        )
        pending.subscription = self._center.subscribe(
            AUTH_CALLBACK, functools.partial(self._notified, pending)
        )

        logger.debug("Authorizing at %s", auth_url)
        try:
            pending.backend.start(auth_url, self.request.redirect_scheme)
        except Exception as exc:
            logger.warning("Could not start the %s: %s", type(pending.backend).__name__, exc)
            self._fail(pending, AuthorizationError(AuthorizationErrorKind.SESSION_FAILED, exc))

        try:
            return await pending.future
        except asyncio.CancelledError:
            self._fail(pending, AuthorizationError(AuthorizationErrorKind.USER_CANCELLED))
            raise

    def cancel(self) -> None:
        """Fail the pending authorization with ``user_cancelled``. No-op when idle."""
        pending = self._pending
        if pending is not None:
            self._fail(pending, AuthorizationError(AuthorizationErrorKind.USER_CANCELLED))

    # ------------------------------------------------------------------ #
    # Completion channels
    # ------------------------------------------------------------------ #

    def _backend_completed(
        self,
        pending: PendingAuthorization,
        url: Optional[str],
        error: Optional[BaseException],
    ) -> None:
        self._on_loop(pending, self._resolve_backend, pending, url, error)

    def _resolve_backend(
        self,
        pending: PendingAuthorization,
        url: Optional[str],
        error: Optional[BaseException],
    ) -> None:
        if error is not None:
            self._fail(pending, AuthorizationError(AuthorizationErrorKind.SESSION_FAILED, error))
            return
        if url is None:
            self._fail(pending, AuthorizationError(AuthorizationErrorKind.USER_CANCELLED))
            return

        oauth_error = extract_error(url)
        if oauth_error is not None:
            cause = CallbackError(f"Authorization was refused: {oauth_error}")
            self._fail(pending, AuthorizationError(AuthorizationErrorKind.SESSION_FAILED, cause))
            return
        code = extract_code(url)
        if code is None:
            cause = CallbackError("The callback URL did not include a code")
            self._fail(pending, AuthorizationError(AuthorizationErrorKind.SESSION_FAILED, cause))
            return
        self._succeed(pending, code, source="session")

    def _notified(self, pending: PendingAuthorization, notification: Notification) -> None:
        self._on_loop(pending, self._resolve_notification, pending, notification)

    def _resolve_notification(
        self, pending: PendingAuthorization, notification: Notification
    ) -> None:
        if pending.resolved:
            return
        url = notification.user_info.get("url")
        code = extract_code(url) if isinstance(url, str) else None
        if code is None:
            # Left pending; the session may still finish.
            logger.warning("Ignoring %s without a code: %r", notification.name, url)
            return
        self._succeed(pending, code, source="notification")

    # ------------------------------------------------------------------ #
    # Resolution
    # ------------------------------------------------------------------ #

    @staticmethod
    def _on_loop(pending: PendingAuthorization, callback: Callable[..., None], *args: object) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is pending.loop:
            callback(*args)
        elif not pending.loop.is_closed():
            pending.loop.call_soon_threadsafe(callback, *args)

    def _succeed(self, pending: PendingAuthorization, code: str, source: str) -> None:
        if pending.resolved:
            return
        logger.debug("Authorization resolved by %s", source)
        pending.resolved = True
        if not pending.future.done():
            pending.future.set_result(code)
        self._teardown(pending)

    def _fail(self, pending: PendingAuthorization, error: AuthorizationError) -> None:
        if pending.resolved:
            return
        logger.debug("Authorization failed: %s", error.kind.value)
        pending.resolved = True
        if not pending.future.done():
            pending.future.set_exception(error)
        self._teardown(pending)

    def _teardown(self, pending: PendingAuthorization) -> None:
        try:
            if pending.backend is not None:
                pending.backend.cancel()
        except Exception as exc:
            logger.warning("Could not cancel the %s: %s", type(pending.backend).__name__, exc)
        finally:
            if pending.subscription is not None:
                pending.subscription.cancel()
            if self._pending is pending:
                self._pending = None
