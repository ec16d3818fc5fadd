"""Onboarding commands -- probe an instance, authorize, or both.

Typical workflow::

    haonboard probe http://homeassistant.local:8123
    haonboard authorize http://homeassistant.local:8123
    haonboard connect http://homeassistant.local:8123 --ssid HomeWiFi

``authorize`` and ``connect`` start the deep-link relay for the duration
of the command, so ``haonboard open-url`` (the registered handler for the
``homeassistant://`` scheme) can deliver the callback.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import signal
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, TypeVar

import typer

from haonboard.exceptions import ConnectionTestResult, HAOnboardError
from haonboard.models import GlobalConfig
from haonboard.output import error, format_response, info, print_data, success, suggest

if TYPE_CHECKING:
    from haonboard.auth import AuthorizationController
    from haonboard.probe import ConnectionProber

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _resolve(ctx: typer.Context) -> GlobalConfig:
    from haonboard.config import resolve_config

    variant = ctx.obj.get("variant") if ctx.obj else None
    return resolve_config(cli_variant=variant)


def _exit_with(exc: HAOnboardError) -> typer.Exit:
    """Report *exc* on stderr and return the matching :class:`typer.Exit`."""
    error(str(exc))
    if isinstance(exc, ConnectionTestResult):
        suggest(f"Troubleshooting: {exc.documentation_url}")
    return typer.Exit(code=exc.exit_code)


def _build_prober(config: GlobalConfig) -> ConnectionProber:
    from haonboard.probe import ConnectionProber

    return ConnectionProber(
        timeout=config.request.timeout,
        verify=config.request.verify_ssl,
        minimum_version=config.minimum_version or None,
    )


async def _with_controller(
    config: GlobalConfig,
    run: Callable[[AuthorizationController], Awaitable[T]],
) -> T:
    """Start the relay, build a controller for it, and await ``run(controller)``."""
    from haonboard.auth import AuthorizationController, detect_capability_tier, select_backend
    from haonboard.deeplink import DeepLinkRelay
    from haonboard.notifications import default_center

    center = default_center()
    relay = DeepLinkRelay(center, host=config.relay.host, port=config.relay.port)
    relay.start()
    try:
        controller = AuthorizationController(
            config.variant,
            notifications=center,
            capability_probe=lambda: detect_capability_tier(relay, config.session_tier),
            backend_factory=functools.partial(select_backend, relay=relay),
        )
        restore = _cancel_on_interrupt(controller)
        try:
            return await run(controller)
        finally:
            restore()
    finally:
        relay.stop()


def _cancel_on_interrupt(controller: AuthorizationController) -> Callable[[], None]:
    """Make Ctrl-C dismiss the pending authorization; return the undo.

    While an authorization is pending, SIGINT resolves it as
    ``user_cancelled``. At any other point it raises ``KeyboardInterrupt``
    as usual. Where the loop cannot take signal handlers, the process-wide
    handler from :mod:`haonboard.app` stays in charge.
    """
    loop = asyncio.get_running_loop()
    previous = signal.getsignal(signal.SIGINT)

    def _interrupt() -> None:
        if controller.is_authorizing:
            logger.debug("Interrupted; cancelling the pending authorization")
            controller.cancel()
        elif callable(previous):
            previous(signal.SIGINT, None)
        elif previous != signal.SIG_IGN:
            raise KeyboardInterrupt

    try:
        loop.add_signal_handler(signal.SIGINT, _interrupt)
    except (NotImplementedError, RuntimeError, ValueError) as exc:
        logger.debug("Ctrl-C stays with the process handler: %s", exc)
        return lambda: None

    def restore() -> None:
        loop.remove_signal_handler(signal.SIGINT)
        if previous is not None:
            signal.signal(signal.SIGINT, previous)

    return restore


def probe_command(
    ctx: typer.Context,
    url: str = typer.Argument(help="Base URL of the instance, e.g. http://10.0.0.5:8123."),
    announced_from: Optional[list[str]] = typer.Option(
        None, "--announced-from", help="Address the instance was announced from (repeatable)."
    ),
) -> None:
    """Check that an instance is reachable and new enough.

    Runs the discovery probe and the internal-network check, then prints
    the discovered instance.

    Example::

        haonboard probe https://ha.example.com
        haonboard --json probe http://10.0.0.5:8123 --announced-from 10.0.0.5
    """
    from haonboard.probe import is_internal

    config = _resolve(ctx)
    prober = _build_prober(config)

    async def _run() -> dict[str, Any]:
        instance = await prober.probe(url, announced_from=announced_from or ())
        internal = await is_internal(instance)
        data = instance.model_dump(mode="json", exclude={"announced_from"})
        data["announced_from"] = sorted(instance.announced_from)
        data["internal"] = internal
        return data

    try:
        data = asyncio.run(_run())
    except HAOnboardError as exc:
        raise _exit_with(exc) from None

    success(f"Found Home Assistant {data['version']}")
    format_response(data)


def authorize_command(
    ctx: typer.Context,
    url: str = typer.Argument(help="Base URL of the instance to authorize against."),
) -> None:
    """Authorize in the browser and print the authorization code.

    The code is the only thing written to stdout, so it can be captured::

        CODE=$(haonboard authorize http://homeassistant.local:8123)
    """
    config = _resolve(ctx)

    async def _run(controller: AuthorizationController) -> str:
        info("Waiting for Home Assistant to send you back (Ctrl-C to cancel)...")
        return await controller.authorize(url)

    try:
        code = asyncio.run(_with_controller(config, _run))
    except HAOnboardError as exc:
        raise _exit_with(exc) from None

    success("Authorized.")
    print_data(code)


def connect_command(
    ctx: typer.Context,
    url: str = typer.Argument(help="Base URL of the instance."),
    ssid: Optional[list[str]] = typer.Option(
        None, "--ssid", help="Wi-Fi network on which the instance is internal (repeatable)."
    ),
    announced_from: Optional[list[str]] = typer.Option(
        None, "--announced-from", help="Address the instance was announced from (repeatable)."
    ),
) -> None:
    """Probe, pick connection settings, and authorize.

    Prints the discovered instance, the connection settings and the
    authorization code. Exchanging the code for tokens is left to the
    caller.

    Example::

        haonboard --json connect http://homeassistant.local:8123 --ssid HomeWiFi
    """
    from haonboard.models import OnboardingResult
    from haonboard.onboarding import OnboardingFlow

    config = _resolve(ctx)
    prober = _build_prober(config)

    async def _run(controller: AuthorizationController) -> OnboardingResult:
        info(f"Connecting to {url}...")
        flow = OnboardingFlow(prober, controller)
        return await flow.connect(url, announced_from=announced_from or (), internal_ssids=ssid or ())

    try:
        result = asyncio.run(_with_controller(config, _run))
    except HAOnboardError as exc:
        raise _exit_with(exc) from None

    success(f"Connected to {result.settings.active_url}")
    format_response(result.model_dump(mode="json", exclude={"token"}))
