"""Config commands -- view and modify global configuration.

Provides the ``haonboard config`` sub-command group for reading,
updating, and resetting the user's global configuration file
(:class:`~haonboard.models.GlobalConfig`). Settings control the build
variant, the browser session tier, probe timeouts and the relay address.
"""

from __future__ import annotations

import typer

from haonboard.output import error, format_response, info, success


config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show(
    effective: bool = typer.Option(
        False, "--effective", help="Show the merged config, including env and project overrides."
    ),
) -> None:
    """Show current configuration.

    Prints the config directory path followed by the configuration as
    formatted output (table or JSON, depending on the active output mode).

    Example::

        haonboard config show
        haonboard --json config show --effective
    """
    from haonboard.config import get_config_dir, load_global_config, resolve_config

    config = resolve_config() if effective else load_global_config()
    info(f"Config directory: {get_config_dir()}")
    format_response(config.model_dump(mode="json"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(
        help="Config key (dot notation, e.g., 'relay.port')."
    ),
    value: str = typer.Argument(help="Value to set."),
) -> None:
    """Set a configuration value.

    Uses dot notation for nested keys. The value is coerced to the
    existing field's type (bool, int, float or str) and the result is
    validated against :class:`~haonboard.models.GlobalConfig` before saving.

    Raises:
        typer.Exit: With code 2 if the key path is invalid, the value
            cannot be coerced, or Pydantic validation fails.

    Example::

        haonboard config set variant beta
        haonboard config set session_tier embedded
        haonboard config set request.timeout 5
    """
    from pydantic import ValidationError

    from haonboard.config import load_global_config, save_global_config
    from haonboard.models import GlobalConfig

    config = load_global_config()
    data = config.model_dump(mode="json")

    keys = key.split(".")
    target = data
    for k in keys[:-1]:
        if k not in target or not isinstance(target[k], dict):
            error(f"Invalid config key: {key}")
            raise typer.Exit(code=2)
        target = target[k]

    final_key = keys[-1]
    if final_key not in target or isinstance(target[final_key], dict):
        error(f"Unknown config key: {key}")
        raise typer.Exit(code=2)

    current = target[final_key]
    coerced: object
    if isinstance(current, bool):
        coerced = value.lower() in ("true", "1", "yes")
    elif isinstance(current, (int, float)):
        number_type = type(current)
        try:
            coerced = number_type(value)
        except ValueError:
            error(f"Expected {number_type.__name__} for {key}, got: {value}")
            raise typer.Exit(code=2) from None
    else:
        coerced = value

    target[final_key] = coerced

    try:
        new_config = GlobalConfig.model_validate(data)
    except ValidationError as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=2) from None

    save_global_config(new_config)
    success(f"Set {key} = {coerced}")


@config_app.command("reset")
def config_reset(
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation."),
) -> None:
    """Reset configuration to defaults.

    Replaces the persisted global config with a fresh
    :class:`~haonboard.models.GlobalConfig`. Asks for confirmation unless
    ``--force`` is given.

    Raises:
        typer.Exit: If the user declines confirmation.

    Example::

        haonboard config reset
        haonboard config reset --force
    """
    from haonboard.config import save_global_config
    from haonboard.models import GlobalConfig

    if not force:
        confirmed = typer.confirm("Reset all config to defaults?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()

    save_global_config(GlobalConfig())
    success("Configuration reset to defaults.")
