"""``haonboard errors`` -- list what a failed probe can report."""

from __future__ import annotations

from haonboard.exceptions import ConnectionTestKind, ConnectionTestResult
from haonboard.output import print_table


def errors_command() -> None:
    """List the probe's failure kinds with their exit codes and help links.

    Example::

        haonboard errors
        haonboard --json errors
    """
    rows = []
    for kind in ConnectionTestKind:
        result = ConnectionTestResult(kind)
        rows.append([kind.value, str(result.exit_code), result.description, result.documentation_url])
    print_table(
        ["kind", "exit_code", "description", "documentation"],
        rows,
        title="Connection test results",
    )
