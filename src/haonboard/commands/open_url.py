"""``haonboard open-url`` -- hand a deep link to the waiting process.

Register this command as the handler for the ``homeassistant``,
``homeassistant-beta`` and ``homeassistant-dev`` URL schemes. When the
browser is sent to ``homeassistant://auth-callback?code=...``, the OS runs::

    haonboard open-url 'homeassistant://auth-callback?code=...'

which forwards the link to the relay of the ``authorize`` / ``connect``
command that is waiting for it.
"""

from __future__ import annotations

import typer

from haonboard.exceptions import HAOnboardError, RelayError
from haonboard.output import debug, error, suggest


def open_url_command(
    ctx: typer.Context,
    url: str = typer.Argument(help="The deep link the OS received."),
) -> None:
    """Forward a deep link to the running ``authorize`` or ``connect`` command.

    Example::

        haonboard open-url 'homeassistant://auth-callback?code=abc123'
    """
    from haonboard.config import resolve_config
    from haonboard.deeplink import forward_deep_link

    variant = ctx.obj.get("variant") if ctx.obj else None
    config = resolve_config(cli_variant=variant)
    host, port = config.relay.host, config.relay.port

    try:
        forward_deep_link(url, host=host, port=port, timeout=config.request.timeout)
    except HAOnboardError as exc:
        error(str(exc))
        if isinstance(exc, RelayError):
            suggest("Start 'haonboard authorize' or 'haonboard connect' first.")
        raise typer.Exit(code=exc.exit_code) from None
    debug(f"Forwarded deep link to {host}:{port}")
