"""haonboard -- Probe and authorize a Home Assistant instance from the desktop.

This package implements the onboarding core of a Home Assistant companion
client: it probes a candidate base URL, classifies whether the instance is on
the local network, and runs the browser-delegated OAuth2 authorization-code
flow that yields a bare authorization ``code``.

Typical workflow::

    haonboard probe https://ha.example.com      # reachability + trust check
    haonboard connect https://ha.example.com    # probe, then authorize

Modules:
    app: Typer application factory and CLI entry point.
    models: Pydantic models shared across the entire package.
    config: XDG-aware configuration and precedence resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
    notifications: In-process publish/subscribe for deep-link callbacks.
    deeplink: Loopback relay that receives forwarded deep links.
    onboarding: Probe, classify, and authorize in one sequence.
"""

__version__ = "0.3.0"
