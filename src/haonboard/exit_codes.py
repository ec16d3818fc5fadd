"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~haonboard.exceptions.HAOnboardError` subclass.
Shell wrappers can inspect the exit code to tell a rejected certificate from
a cancelled browser session without parsing stderr.

Example::

    $ haonboard probe https://ha.local:8123
    $ echo $?
    6   # EXIT_CONNECTION_ERROR -- the instance could not be reached
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments (e.g. an unparseable URL)."""

EXIT_AUTH_FAILURE = 3
"""The browser authorization session failed."""

EXIT_AUTH_CHALLENGE = 4
"""The instance demanded credentials the probe refuses to supply (basic auth, client certificate)."""

EXIT_SERVER_ERROR = 5
"""The instance answered the discovery probe with an HTTP error status."""

EXIT_CONNECTION_ERROR = 6
"""A network-level or TLS error occurred (timeout, DNS failure, untrusted certificate)."""

EXIT_INCOMPATIBLE = 7
"""The instance runs a Home Assistant release that is too old to onboard."""

EXIT_CANCELLED = 130
"""The user dismissed the browser session or pressed Ctrl-C."""
