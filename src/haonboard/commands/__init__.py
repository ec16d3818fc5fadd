"""Built-in CLI sub-commands for haonboard.

This package groups all Typer sub-command modules that form the CLI's
top-level command tree:

* :mod:`~haonboard.commands.onboard` -- ``probe``, ``authorize`` and
  ``connect``.
* :mod:`~haonboard.commands.open_url` -- forward a deep link to the
  waiting process.
* :mod:`~haonboard.commands.errors` -- list the probe's failure kinds.
* :mod:`~haonboard.commands.config` -- view and modify global settings.

Each module either exports a :class:`typer.Typer` sub-application (for
multi-command groups like ``config``) or a plain callback function
registered directly on the root app.
"""
