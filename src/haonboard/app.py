"""Typer application and CLI entry point for haonboard.

This module builds the top-level Typer application and registers the
sub-commands:

- ``probe`` / ``authorize`` / ``connect`` -- :mod:`haonboard.commands.onboard`
- ``open-url`` -- :mod:`haonboard.commands.open_url`
- ``errors`` -- :mod:`haonboard.commands.errors`
- ``config`` -- :mod:`haonboard.commands.config`

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. It installs signal handlers and invokes the Typer app.
:class:`~haonboard.exceptions.HAOnboardError` exits with the error's
``exit_code``; anything else is written to a crash log under the data
directory.

See Also:
    :mod:`haonboard.config`: Configuration resolution.
    :mod:`haonboard.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import signal
import sys
import traceback
from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

import typer

from haonboard import __version__
from haonboard.exit_codes import EXIT_CANCELLED, EXIT_GENERIC_FAILURE

if TYPE_CHECKING:
    from haonboard.output import OutputFormat


app = typer.Typer(
    name="haonboard",
    help="Connect to a Home Assistant instance and authorize in the browser.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

# ------------------------------------------------------------------ #
# Commands
# ------------------------------------------------------------------ #

from haonboard.commands.config import config_app  # noqa: E402
from haonboard.commands.errors import errors_command  # noqa: E402
from haonboard.commands.onboard import (  # noqa: E402
    authorize_command,
    connect_command,
    probe_command,
)
from haonboard.commands.open_url import open_url_command  # noqa: E402

app.command("probe")(probe_command)
app.command("authorize")(authorize_command)
app.command("connect")(connect_command)
app.command("open-url")(open_url_command)
app.command("errors")(errors_command)
app.add_typer(config_app, name="config", help="Configuration management.")


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"haonboard {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    variant: Optional[str] = typer.Option(
        None, "--variant", help="Build variant: production, beta or development."
    ),
    json_output: bool = typer.Option(
        False, "--json", help="JSON output format."
    ),
    plain_output: bool = typer.Option(
        False, "--plain", help="Plain text output."
    ),
    no_color: bool = typer.Option(
        False, "--no-color", help="Disable color output."
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug output."
    ),
) -> None:
    """Root callback executed before every sub-command.

    Initialises the global :class:`~haonboard.output.OutputManager` and
    the ``haonboard`` log handler from CLI flags (falling back to the
    ``output.format`` config key), and stores shared options
    in the Typer context so that sub-commands can read them via ``ctx.obj``.

    Args:
        ctx: Typer invocation context.
        version: If ``True``, print the version string and exit.
        variant: Build variant override (highest precedence).
        json_output: Force JSON output format.
        plain_output: Force plain-text output format.
        no_color: Disable all colour and Rich markup.
        quiet: Suppress non-essential diagnostic output.
        verbose: Enable debug-level diagnostic output.
    """
    from haonboard.output import OutputFormat, OutputManager, configure_logging, set_output

    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN
    else:
        fmt = _configured_format()

    output = OutputManager(
        format=fmt,
        no_color=no_color,
        quiet=quiet,
        verbose=verbose,
    )
    set_output(output)
    configure_logging(output)

    ctx.ensure_object(dict)
    ctx.obj["variant"] = variant
    ctx.obj["verbose"] = verbose


def _configured_format() -> OutputFormat:
    """Output format from the ``output.format`` config key."""
    from haonboard.config import resolve_config
    from haonboard.exceptions import ConfigError
    from haonboard.output import OutputFormat

    try:
        return OutputFormat(resolve_config().output.format)
    except ConfigError:
        # The command that resolves the config reports it; `config reset` must still run.
        return OutputFormat.AUTO


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_CANCELLED)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path.

    Args:
        exc: The unhandled exception to log.

    Returns:
        Absolute path to the written crash log file.
    """
    from haonboard.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(
        "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    )
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``haonboard`` console script.

    Unhandled :class:`~haonboard.exceptions.HAOnboardError` instances
    cause a clean exit with the error's ``exit_code``. All other exceptions
    produce a crash log and a generic failure exit.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_CANCELLED)
    except Exception as exc:
        from haonboard.exceptions import HAOnboardError
        from haonboard.output import error

        if isinstance(exc, HAOnboardError):
            error(str(exc))
            sys.exit(exc.exit_code)
        else:
            log_path = _write_crash_log(exc)
            error(f"Unexpected error. Debug log: {log_path}")
            sys.exit(EXIT_GENERIC_FAILURE)
