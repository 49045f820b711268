"""Tests for the maillib CLI application."""

from __future__ import annotations

import runpy
import sys
from collections.abc import Callable
from pathlib import Path

import pytest
from typer.testing import CliRunner

from maillib import __version__
from maillib.cli import app
from maillib.exceptions import AuthenticationError
from maillib.sender import MailSender

# Mark all tests in this module as CLI tests
# Run with: pytest -m cli
pytestmark = pytest.mark.cli

runner = CliRunner()

CONFIG_YAML = """\
mail:
  smtp:
    host: smtp.example.com
    port: 587
    security: starttls
    username: mailer
    password: hunter2-secret
    tls:
      protocols: [TLSv1.2, TLSv1.3]
  defaults:
    from: "Reports <reports@example.com>"
"""


@pytest.fixture(autouse=True)
def _workdir(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Run every command from an empty directory."""
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def use_transport(monkeypatch: pytest.MonkeyPatch, make_transport) -> Callable[..., object]:
    """Make the CLI build its sender around a fake transport."""

    def _install(**kwargs: object):
        transport = make_transport(**kwargs)
        monkeypatch.setattr("maillib.cli.MailSender", lambda: MailSender(transport=transport))
        return transport

    return _install


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "mail.yml"
    path.write_text(CONFIG_YAML, encoding="utf-8")
    return path


def test_app_help() -> None:
    """--help lists both commands."""
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    assert "send" in result.output
    assert "check-config" in result.output


def test_app_version() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_send_requires_recipients() -> None:
    result = runner.invoke(app, ["send", "--host", "smtp.example.com", "--text", "hi"])
    assert result.exit_code == 2
    assert "At least one of --to, --cc or --bcc is required" in result.output


def test_send_success(use_transport, config_file: Path) -> None:
    """A delivered message exits 0 and reports the recipient count."""
    transport = use_transport()

    result = runner.invoke(
        app,
        [
            "send",
            "-c",
            str(config_file),
            "--to",
            "alice@example.com, Bob <bob@example.com>",
            "--bcc",
            "audit@example.com",
            "-s",
            "Weekly report",
            "--text",
            "See attached.",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "Message sent to 3 recipient(s) via smtp.example.com" in result.output
    assert transport.call_names == ["connect", "starttls", "login", "send", "close"]
    assert transport.calls[0][1:3] == ("smtp.example.com", 587)
    assert transport.calls[2] == ("login", "mailer", "hunter2-secret")
    _, envelope_from, recipients = transport.calls[3]
    assert envelope_from == "reports@example.com"
    assert recipients == ["alice@example.com", "bob@example.com", "audit@example.com"]
    message = transport.sent[0]
    assert message["Subject"] == "Weekly report"


def test_send_options_override_config(use_transport, config_file: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Command-line settings win over the config file."""
    transport = use_transport()
    monkeypatch.setenv("MAILLIB_PASSWORD", "from-env")

    result = runner.invoke(
        app,
        [
            "send",
            "-c",
            str(config_file),
            "--host",
            "relay.example.org",
            "--port",
            "25",
            "--security",
            "none",
            "--from",
            "ops@example.org",
            "--to",
            "alice@example.com",
        ],
    )

    assert result.exit_code == 0, result.output
    assert transport.call_names == ["connect", "login", "send", "close"]
    assert transport.calls[0][1:] == ("relay.example.org", 25, False)
    assert transport.calls[1] == ("login", "mailer", "from-env")
    assert transport.calls[2][1] == "ops@example.org"


def test_send_with_body_files_and_attachment(use_transport, text_file, png_file: Path) -> None:
    transport = use_transport()
    body = text_file("body.html", "<p>Hello</p>")
    report = text_file("report.csv", "a,b\n1,2\n")

    result = runner.invoke(
        app,
        [
            "send",
            "--host",
            "smtp.example.com",
            "--security",
            "none",
            "--to",
            "alice@example.com",
            "--html-file",
            str(body),
            "--image",
            str(png_file),
            "-a",
            str(report),
        ],
    )

    assert result.exit_code == 0, result.output
    message = transport.sent[0]
    filenames = [part.get_filename() for part in message.iter_attachments()]
    assert "report.csv" in filenames
    assert "<p>Hello</p>" in message.as_string()


def test_send_delivery_failure_exits_one(use_transport) -> None:
    use_transport(fail_at="login", error=AuthenticationError("Authentication failed for 'mailer': 535 nope"))

    result = runner.invoke(
        app,
        [
            "send",
            "--host",
            "smtp.example.com",
            "--security",
            "none",
            "-u",
            "mailer",
            "--password",
            "x",
            "--to",
            "alice@example.com",
        ],
    )

    assert result.exit_code == 1
    assert "Delivery failed" in result.output
    assert "Authentication failed for 'mailer'" in result.output


def test_send_invalid_address_exits_two(use_transport) -> None:
    transport = use_transport()

    result = runner.invoke(app, ["send", "--host", "smtp.example.com", "--to", "not an address"])

    assert result.exit_code == 2
    assert "Error:" in result.output
    assert transport.calls == []


def test_send_missing_host_exits_two(use_transport) -> None:
    use_transport()
    result = runner.invoke(app, ["send", "--to", "alice@example.com"])
    assert result.exit_code == 2
    assert "SMTP host is not set" in result.output


def test_send_unreadable_attachment_fails_delivery(use_transport, tmp_path: Path) -> None:
    use_transport()
    result = runner.invoke(
        app,
        ["send", "--host", "smtp.example.com", "--to", "a@example.com", "-a", str(tmp_path / "missing.pdf")],
    )
    assert result.exit_code == 1
    assert "missing.pdf" in result.output


def test_send_unknown_security_exits_two(use_transport) -> None:
    use_transport()
    result = runner.invoke(app, ["send", "--host", "h", "--to", "a@example.com", "--security", "quantum"])
    assert result.exit_code == 2
    assert "Unknown security mode" in result.output


def test_send_missing_config_file_exits_two(tmp_path: Path) -> None:
    result = runner.invoke(app, ["send", "-c", str(tmp_path / "nope.yml"), "--to", "a@example.com"])
    assert result.exit_code == 2
    assert "Config file not found" in result.output


def test_check_config_masks_password(config_file: Path) -> None:
    result = runner.invoke(app, ["check-config", "-c", str(config_file)])

    assert result.exit_code == 0, result.output
    assert "smtp.example.com" in result.output
    assert "587" in result.output
    assert "starttls" in result.output
    assert "mailer" in result.output
    assert "********" in result.output
    assert "hunter2-secret" not in result.output
    assert "TLSv1_2, TLSv1_3" in result.output
    assert "reports@example.com" in result.output


def test_check_config_without_host(tmp_path: Path) -> None:
    path = tmp_path / "empty.yml"
    path.write_text("mail:\n  smtp:\n    port: 2525\n", encoding="utf-8")

    result = runner.invoke(app, ["check-config", "-c", str(path)])

    assert result.exit_code == 2
    assert "2525" in result.output
    assert "mail.smtp.host is not configured" in result.output


def test_module_entry_point(monkeypatch: pytest.MonkeyPatch) -> None:
    """python -m maillib runs the Typer app."""
    monkeypatch.setattr(sys, "argv", ["maillib", "--version"])
    with pytest.raises(SystemExit) as excinfo:
        runpy.run_module("maillib", run_name="__main__")
    assert excinfo.value.code == 0
