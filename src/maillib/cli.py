"""Command-line interface: ``maillib send`` and ``maillib check-config``.

Exit codes for ``send``: 0 when the server accepted the message, 1 when
delivery failed, 2 for usage, configuration or address errors.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, NoReturn

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from maillib import __version__
from maillib.addresses import parse_address_list
from maillib.builder import RecipientRole
from maillib.config.loader import load_config
from maillib.exceptions import AddressParseError, ConfigurationError, InvalidStateError, MailIOError
from maillib.logging import init_logging
from maillib.sender import MailSender
from maillib.ssl import protocol_names

app = typer.Typer(
    name="maillib",
    help="Compose and send mail over SMTP.",
    no_args_is_help=True,
    add_completion=False,
)

console = Console()
err_console = Console(stderr=True)

EXIT_DELIVERY_FAILED = 1
EXIT_USAGE = 2


def exit_error(message: str, code: int = EXIT_USAGE) -> NoReturn:
    """Print *message* on stderr and exit with *code*."""
    err_console.print(f"[red]Error:[/] {escape(message)}")
    raise typer.Exit(code=code)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"maillib {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option("--version", callback=_version_callback, is_eager=True, help="Show the version and exit."),
    ] = False,
) -> None:
    """Compose and send mail over SMTP."""


def _add_addresses(sender: MailSender, role: RecipientRole, values: list[str] | None) -> None:
    """Add every address of every comma-separated *values* entry."""
    for value in values or []:
        for address in parse_address_list(value):
            sender.add_recipient(role, address.address, address.name)


def _mask(secret: str | None) -> str:
    if not secret:
        return "-"
    return "*" * 8


@app.command()
def send(  # pylint: disable=too-many-arguments,too-many-locals,too-many-branches
    to: Annotated[list[str] | None, typer.Option("--to", help="Recipient list (repeatable, comma-separated).")] = None,
    cc: Annotated[list[str] | None, typer.Option("--cc", help="Cc recipients.")] = None,
    bcc: Annotated[list[str] | None, typer.Option("--bcc", help="Bcc recipients.")] = None,
    from_: Annotated[str | None, typer.Option("--from", help="From address.")] = None,
    reply_to: Annotated[str | None, typer.Option("--reply-to", help="Reply-To address.")] = None,
    subject: Annotated[str, typer.Option("--subject", "-s", help="Message subject.")] = "",
    text: Annotated[str | None, typer.Option("--text", help="Plain-text body.")] = None,
    text_file: Annotated[Path | None, typer.Option("--text-file", help="Read the plain-text body from a file.")] = None,
    html: Annotated[str | None, typer.Option("--html", help="HTML body.")] = None,
    html_file: Annotated[Path | None, typer.Option("--html-file", help="Read the HTML body from a file.")] = None,
    attach: Annotated[list[Path] | None, typer.Option("--attach", "-a", help="Attach a file (repeatable).")] = None,
    image: Annotated[
        list[Path] | None, typer.Option("--image", help="Embed an image after the HTML body (repeatable).")
    ] = None,
    config: Annotated[Path | None, typer.Option("--config", "-c", help="YAML config file.")] = None,
    host: Annotated[str | None, typer.Option("--host", help="SMTP server.")] = None,
    port: Annotated[int | None, typer.Option("--port", help="SMTP port.")] = None,
    security: Annotated[
        str | None,
        typer.Option("--security", help="none, auto, implicit-tls, starttls or starttls-if-available."),
    ] = None,
    username: Annotated[str | None, typer.Option("--username", "-u", help="SMTP login.")] = None,
    password: Annotated[
        str | None, typer.Option("--password", envvar="MAILLIB_PASSWORD", help="SMTP password.")
    ] = None,
    trace: Annotated[Path | None, typer.Option("--trace", help="Append the SMTP dialogue to this file.")] = None,
    insecure: Annotated[bool, typer.Option("--insecure", help="Do not verify the server certificate.")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log the SMTP session (TRACE).")] = False,
) -> None:
    """Compose a message and send it."""
    if not (to or cc or bcc):
        exit_error("At least one of --to, --cc or --bcc is required")

    try:
        settings = load_config(config)
        init_logging(config=settings.get("logging"), preset="debug" if verbose else "prod")

        sender = MailSender().from_config(settings)
        if host is not None:
            sender.host = host
        if port is not None:
            sender.port = port
        if security is not None:
            sender.security = security
        if username is not None:
            sender.username = username
        if password is not None:
            sender.password = password
        if trace is not None:
            sender.trace_path = str(trace)
        if insecure:
            sender.verify_certificates = False

        _add_addresses(sender, RecipientRole.TO, to)
        _add_addresses(sender, RecipientRole.CC, cc)
        _add_addresses(sender, RecipientRole.BCC, bcc)
        if from_ is not None:
            sender.set_from(from_)
        if reply_to is not None:
            sender.set_reply_to(reply_to)

        sender.subject = subject
        if text is not None:
            sender.append_text(text)
        if text_file is not None:
            sender.append_text_from_file(text_file)
        if html is not None:
            sender.append_html(html)
        if html_file is not None:
            sender.append_html_from_file(html_file)
        for path in attach or []:
            sender.add_attachment(path)
        for path in image or []:
            sender.add_embedded_image(path)

        result = sender.send()
    except (ConfigurationError, AddressParseError, InvalidStateError, MailIOError) as e:
        exit_error(str(e))
    except ValueError as e:
        exit_error(f"Invalid logging configuration: {e}")

    if not result:
        err_console.print(f"[red]✗ Delivery failed[/] ({result.stage}): {escape(result.error or '')}")
        raise typer.Exit(code=EXIT_DELIVERY_FAILED)

    recipients = sender.envelope_recipients()
    console.print(f"[green]✓[/] Message sent to {len(recipients)} recipient(s) via {sender.host}")


@app.command("check-config")
def check_config(
    config: Annotated[Path | None, typer.Option("--config", "-c", help="YAML config file.")] = None,
) -> None:
    """Show the transport settings that ``send`` would use."""
    try:
        sender = MailSender().from_config(load_config(config))
        settings = sender.transport_config()
    except ConfigurationError as e:
        exit_error(str(e))

    table = Table(title="SMTP transport", show_header=True, header_style="bold cyan")
    table.add_column("Setting", style="bold")
    table.add_column("Value")
    table.add_row("Host", settings.host or "[red]<not set>[/]")
    table.add_row("Port", str(settings.effective_port))
    table.add_row("Security", f"{settings.security.value} -> {settings.resolved_security.value}")
    table.add_row("Username", settings.username or "-")
    table.add_row("Password", _mask(settings.password))
    table.add_row("TLS protocols", ", ".join(protocol_names(settings.protocols)))
    table.add_row("Verify certificates", "yes" if settings.verify_certificates else "[yellow]no[/]")
    table.add_row("CA bundle", settings.ca_bundle or "system")
    table.add_row("Timeout", f"{settings.timeout:g}s")
    table.add_row("Trace file", settings.trace_path or "-")
    table.add_row("From", ", ".join(a.formatted for a in sender.from_addresses) or "-")
    table.add_row("Reply-To", ", ".join(a.formatted for a in sender.reply_to) or "-")
    console.print(table)

    if not settings.host:
        exit_error("mail.smtp.host is not configured")


__all__ = ["app", "main"]
