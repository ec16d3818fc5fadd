"""CLI tests: drive the Typer app through CliRunner.

Network access is replaced by an ``httpx.MockTransport`` prober, and the
browser step by a view that posts the callback the moment it is shown.
"""

from __future__ import annotations

import json
import os
import signal
from pathlib import Path
from typing import Any, Callable
from unittest.mock import patch

import httpx
import pytest

from haonboard import __version__
from haonboard.app import app
from haonboard.auth.browser import TerminalAuthView
from haonboard.config import get_config_dir, load_global_config
from haonboard.exceptions import ConnectionTestKind
from haonboard.notifications import AUTH_CALLBACK, default_center
from haonboard.probe.prober import ConnectionProber

CALLBACK = "homeassistant://auth-callback"


def _prober_for(handler: Callable[[httpx.Request], httpx.Response]) -> Callable[..., ConnectionProber]:
    return lambda config: ConnectionProber(transport=httpx.MockTransport(handler))


def _deliver(url: str) -> Callable[[TerminalAuthView], None]:
    """A ``present`` that posts *url* as if the user finished in the browser."""

    def present(view: TerminalAuthView) -> None:
        default_center().post(AUTH_CALLBACK, url=url)

    return present


@pytest.fixture
def embedded_project(isolated_config: Path) -> Path:
    """Project config forcing the embedded tier and a free relay port."""
    (isolated_config / "haonboard.json").write_text(
        json.dumps({"session_tier": "embedded", "relay": {"port": 0}}), encoding="utf-8"
    )
    return isolated_config


class TestRoot:
    def test_version(self, cli_runner) -> None:
        result = cli_runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"haonboard {__version__}" in result.output

    def test_no_args_shows_help(self, cli_runner) -> None:
        result = cli_runner.invoke(app, [])
        assert "probe" in result.output
        assert "authorize" in result.output


class TestErrorsCommand:
    def test_json_lists_every_kind(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["--json", "errors"])

        assert result.exit_code == 0
        rows = json.loads(result.stdout)
        assert [row["kind"] for row in rows] == [kind.value for kind in ConnectionTestKind]
        too_old = next(row for row in rows if row["kind"] == "too_old")
        assert too_old["exit_code"] == "7"
        assert too_old["documentation"].endswith("#too_old")


class TestProbeCommand:
    def test_success(self, cli_runner, isolated_config: Path, discovery_payload: dict[str, Any]) -> None:
        prober = _prober_for(lambda request: httpx.Response(200, json=discovery_payload))

        with patch("haonboard.commands.onboard._build_prober", prober):
            result = cli_runner.invoke(
                app,
                ["--json", "--quiet", "probe", "http://10.0.0.5:8123", "--announced-from", "10.0.0.5"],
            )

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["version"] == "2023.10.1"
        assert data["announced_from"] == ["10.0.0.5"]
        assert data["internal"] is True

    def test_basic_auth_exit_code(self, cli_runner, isolated_config: Path) -> None:
        prober = _prober_for(
            lambda request: httpx.Response(401, headers={"WWW-Authenticate": 'Basic realm="HA"'})
        )

        with patch("haonboard.commands.onboard._build_prober", prober):
            result = cli_runner.invoke(app, ["probe", "http://10.0.0.5:8123"])

        assert result.exit_code == 4
        assert "HTTP Basic Authentication is not supported." in result.output
        assert "#basic_auth" in result.output

    def test_bad_url_exit_code(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["probe", "homeassistant.local"])
        assert result.exit_code == 2
        assert "No usable base URL" in result.output

    def test_too_old_exit_code(
        self, cli_runner, isolated_config: Path, discovery_payload: dict[str, Any]
    ) -> None:
        discovery_payload["version"] = "0.60.0"
        prober = _prober_for(lambda request: httpx.Response(200, json=discovery_payload))

        with patch("haonboard.commands.onboard._build_prober", prober):
            result = cli_runner.invoke(app, ["probe", "http://10.0.0.5:8123"])
        assert result.exit_code == 7


class TestAuthorizeCommand:
    def test_prints_code(self, cli_runner, embedded_project: Path) -> None:
        with patch.object(TerminalAuthView, "present", _deliver(f"{CALLBACK}?code=abc123")):
            result = cli_runner.invoke(app, ["--quiet", "authorize", "http://10.0.0.5:8123"])

        assert result.exit_code == 0, result.output
        assert result.stdout.splitlines()[-1] == "abc123"
        assert default_center().observer_count(AUTH_CALLBACK) == 0

    def test_ctrl_c_cancels_authorization(self, cli_runner, embedded_project: Path) -> None:
        dismissed: list[str] = []
        previous = signal.getsignal(signal.SIGINT)

        def interrupt(view: TerminalAuthView) -> None:
            os.kill(os.getpid(), signal.SIGINT)

        with patch.object(TerminalAuthView, "present", interrupt), patch.object(
            TerminalAuthView, "dismiss", lambda view: dismissed.append(view.url)
        ):
            result = cli_runner.invoke(app, ["authorize", "http://10.0.0.5:8123"])

        assert result.exit_code == 130
        assert "Authorization was cancelled." in result.output
        assert len(dismissed) == 1
        assert default_center().observer_count(AUTH_CALLBACK) == 0
        assert signal.getsignal(signal.SIGINT) is previous

    def test_invalid_url_exit_code(self, cli_runner, embedded_project: Path) -> None:
        result = cli_runner.invoke(app, ["authorize", "ftp://ha.local"])
        assert result.exit_code == 2

    def test_oauth_error_exit_code(self, cli_runner, embedded_project: Path) -> None:
        # OAuth errors come back through a browser session, not the embedded view.
        (embedded_project / "haonboard.json").write_text(
            json.dumps({"session_tier": "modern", "relay": {"port": 0}}), encoding="utf-8"
        )

        class ErrorSession:
            def __init__(self, url: str, scheme: str, completion: Callable, relay: Any = None) -> None:
                self.completion = completion

            def start(self) -> None:
                self.completion(f"{CALLBACK}?error=access_denied", None)

            def cancel(self) -> None:
                pass

        with patch("haonboard.auth.sessions.BrowserAuthSession", ErrorSession):
            result = cli_runner.invoke(app, ["authorize", "http://10.0.0.5:8123"])

        assert result.exit_code == 3
        assert "access_denied" in result.output


class TestConnectCommand:
    def test_json_result(
        self, cli_runner, embedded_project: Path, discovery_payload: dict[str, Any]
    ) -> None:
        prober = _prober_for(lambda request: httpx.Response(200, json=discovery_payload))

        with patch("haonboard.commands.onboard._build_prober", prober), patch.object(
            TerminalAuthView, "present", _deliver(f"{CALLBACK}?code=c0de")
        ):
            result = cli_runner.invoke(
                app,
                ["--json", "--quiet", "connect", "http://10.0.0.5:8123", "--ssid", "HomeWiFi"],
            )

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["code"] == "c0de"
        assert data["settings"]["internal_url"] == "http://10.0.0.5:8123"
        assert data["settings"]["internal_ssids"] == ["HomeWiFi"]
        assert data["instance"]["location_name"] == "Home"
        assert "token" not in data

    def test_probe_failure_skips_authorization(self, cli_runner, embedded_project: Path) -> None:
        prober = _prober_for(lambda request: httpx.Response(503))
        presented: list[str] = []

        with patch("haonboard.commands.onboard._build_prober", prober), patch.object(
            TerminalAuthView, "present", lambda view: presented.append(view.url)
        ):
            result = cli_runner.invoke(app, ["connect", "http://10.0.0.5:8123"])

        assert result.exit_code == 5
        assert presented == []


class TestOpenUrlCommand:
    def test_no_relay_exit_code(self, cli_runner, isolated_config: Path) -> None:
        request = httpx.Request("POST", "http://127.0.0.1:47862/open")
        with patch(
            "haonboard.deeplink.httpx.post",
            side_effect=httpx.ConnectError("Connection refused", request=request),
        ):
            result = cli_runner.invoke(app, ["open-url", f"{CALLBACK}?code=abc"])

        assert result.exit_code == 6
        assert "Start 'haonboard authorize'" in result.output

    def test_malformed_link_exit_code(self, cli_runner, isolated_config: Path) -> None:
        with patch("haonboard.deeplink.httpx.post") as post:
            result = cli_runner.invoke(app, ["open-url", "auth-callback?code=abc"])

        assert result.exit_code == 2
        assert "Not a deep link" in result.output
        post.assert_not_called()

    def test_forwards_to_configured_port(self, cli_runner, isolated_config: Path, monkeypatch) -> None:
        monkeypatch.setenv("HAONBOARD_RELAY_PORT", "50123")
        with patch("haonboard.deeplink.httpx.post", return_value=httpx.Response(202)) as post:
            result = cli_runner.invoke(app, ["open-url", f"{CALLBACK}?code=abc"])

        assert result.exit_code == 0, result.output
        assert post.call_args.args[0] == "http://127.0.0.1:50123/open"
        assert post.call_args.kwargs["json"] == {"url": f"{CALLBACK}?code=abc"}


class TestConfigCommand:
    def test_set_and_show(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["config", "set", "relay.port", "5000"])
        assert result.exit_code == 0, result.output
        assert load_global_config().relay.port == 5000

        result = cli_runner.invoke(app, ["--json", "--quiet", "config", "show"])
        assert json.loads(result.stdout)["relay"]["port"] == 5000

    def test_set_bool_and_float(self, cli_runner, isolated_config: Path) -> None:
        cli_runner.invoke(app, ["config", "set", "request.verify_ssl", "false"])
        cli_runner.invoke(app, ["config", "set", "request.timeout", "2.5"])

        config = load_global_config()
        assert config.request.verify_ssl is False
        assert config.request.timeout == 2.5

    def test_set_unknown_key(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["config", "set", "nope", "1"])
        assert result.exit_code == 2
        assert "Unknown config key" in result.output

    def test_set_invalid_value(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["config", "set", "session_tier", "teleport"])
        assert result.exit_code == 2
        assert "Validation error" in result.output

    def test_show_effective(self, cli_runner, isolated_config: Path, monkeypatch) -> None:
        monkeypatch.setenv("HAONBOARD_VARIANT", "beta")
        result = cli_runner.invoke(app, ["--json", "--quiet", "config", "show", "--effective"])
        assert json.loads(result.stdout)["variant"] == "beta"

    def test_reset(self, cli_runner, isolated_config: Path) -> None:
        cli_runner.invoke(app, ["config", "set", "variant", "beta"])

        result = cli_runner.invoke(app, ["config", "reset", "--force"])

        assert result.exit_code == 0
        assert load_global_config().variant.value == "production"

    def test_reset_declined(self, cli_runner, isolated_config: Path) -> None:
        cli_runner.invoke(app, ["config", "set", "variant", "beta"])

        result = cli_runner.invoke(app, ["config", "reset"], input="n\n")

        assert result.exit_code == 0
        assert load_global_config().variant.value == "beta"

    def test_configured_output_format(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["config", "set", "output.format", "json"])
        assert result.exit_code == 0, result.output

        result = cli_runner.invoke(app, ["--quiet", "errors"])

        assert result.exit_code == 0
        rows = json.loads(result.stdout)
        assert rows[0]["kind"] == ConnectionTestKind.BAD_BASE_URL.value

    def test_unknown_output_format_rejected(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["config", "set", "output.format", "xml"])
        assert result.exit_code == 2
        assert "Validation error" in result.output

    def test_reset_repairs_broken_config(self, cli_runner, isolated_config: Path) -> None:
        path = get_config_dir() / "config.json"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("{broken", encoding="utf-8")

        result = cli_runner.invoke(app, ["config", "reset", "--force"])

        assert result.exit_code == 0, result.output
        assert load_global_config().variant.value == "production"


class TestMain:
    def test_haonboard_error_exit_code(self, isolated_config: Path) -> None:
        from haonboard import app as app_module
        from haonboard.exceptions import RelayError

        with patch.object(app_module, "app", side_effect=RelayError("relay down")), patch.object(
            app_module, "_setup_signal_handlers"
        ):
            with pytest.raises(SystemExit) as exc_info:
                app_module.main()
        assert exc_info.value.code == 6

    def test_unexpected_error_writes_crash_log(self, isolated_config: Path) -> None:
        from haonboard import app as app_module

        with patch.object(app_module, "app", side_effect=ZeroDivisionError("boom")), patch.object(
            app_module, "_setup_signal_handlers"
        ):
            with pytest.raises(SystemExit) as exc_info:
                app_module.main()

        assert exc_info.value.code == 1
        logs = list((isolated_config / "data" / "haonboard" / "logs").glob("crash-*.log"))
        assert len(logs) == 1
        assert "ZeroDivisionError: boom" in logs[0].read_text()
