"""CLI commands for mail dispatch."""

import json
import sys
import time
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.text import Text
from tabulate import tabulate

from . import __version__
from .catalog import ExtractionReport, build_catalog, cleanup_extracted, extract_archive
from .config import Settings, SmtpConfig, load_settings
from .exceptions import DispatchError, format_exception_chain
from .grouping import group_recipients
from .logging import get_logger, setup_logging
from .models import Job, MessageTemplate, TemplateCategory, TransportConfig, format_file_size
from .recipients import load_recipients
from .service import DispatchService
from .settings_store import SettingsStore
from .templates import build_template, load_template, preview_template
from .transports import MockTransport, SmtpTransport

logger = get_logger(__name__)
console = Console()

CATEGORY_CHOICE = click.Choice([c.value for c in TemplateCategory], case_sensitive=False)


def _fail(error: Exception) -> None:
    click.echo(f"Error: {format_exception_chain(error)}", err=True)
    sys.exit(1)


def _settings(ctx: click.Context) -> Settings:
    return ctx.obj["settings"]


def _store(settings: Settings) -> SettingsStore:
    return SettingsStore(settings.storage.settings_file)


def _transport_config(settings: Settings) -> TransportConfig:
    """Saved settings win over the configured defaults."""
    saved = _store(settings).load()
    return saved if saved is not None else settings.smtp.to_transport_config()


def _resolve_template(category: Optional[str], period: Optional[str], template_file: Optional[str]) -> MessageTemplate:
    if template_file:
        return load_template(template_file)
    if not category:
        raise click.UsageError("Provide --category or --template-file")
    return build_template(category, period)


def _load_catalog(attachments: str, settings: Settings) -> ExtractionReport:
    path = Path(attachments)
    if path.is_dir():
        return build_catalog(path)
    return extract_archive(path, settings.storage.extraction_dir)


def _progress_line(job: Job) -> str:
    line = (
        f"[{job.status.value}] {job.processed_count}/{job.total_groups} groups "
        f"(sent {job.sent_count}, failed {job.failed_count}, skipped {job.skipped_count})"
    )
    if job.current_group:
        line += f" - current: {job.current_group}"
    return line


def _results_table(job: Job) -> str:
    rows = []
    for outcome, results in (("sent", job.results.sent), ("failed", job.results.failed), ("skipped", job.results.skipped)):
        for result in results:
            rows.append([
                result.group_key,
                outcome,
                ", ".join(result.recipients),
                result.attempts,
                result.message,
            ])
    rows.sort(key=lambda row: row[0])
    return tabulate(rows, headers=["Group", "Outcome", "To", "Attempts", "Message"], tablefmt="grid")


@click.group()
@click.option("--config", "config_file", type=click.Path(), help="YAML or JSON config file")
@click.option("--env-file", type=click.Path(), help=".env file path")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx, config_file, env_file, debug):
    """Send grouped bulk mail with per-group attachments."""
    ctx.ensure_object(dict)
    try:
        settings = load_settings(env_file=env_file, config_file=config_file)
    except DispatchError as e:
        _fail(e)
    if debug:
        settings.debug = True
        settings.logging.level = "DEBUG"
    setup_logging(settings=settings)
    ctx.obj["settings"] = settings


@main.command()
@click.option("--recipients", "-r", required=True, type=click.Path(exists=True), help="Recipient CSV file")
@click.option("--attachments", "-a", required=True, type=click.Path(exists=True), help="ZIP archive or directory of attachments")
@click.option("--category", "-c", type=CATEGORY_CHOICE, help="Stock template category")
@click.option("--period", "-p", help="Billing period shown in the subject")
@click.option("--template-file", "-t", type=click.Path(exists=True), help="YAML template file")
@click.option("--dry-run", is_flag=True, help="Compose messages without sending them")
@click.option("--poll", default=1.0, show_default=True, help="Seconds between progress checks")
@click.option("--json", "as_json", is_flag=True, help="Print the final job as JSON")
@click.pass_context
def send(ctx, recipients, attachments, category, period, template_file, dry_run, poll, as_json):
    """Queue a send job and follow its progress until it finishes."""
    settings = _settings(ctx)
    extracted = not Path(attachments).is_dir()
    try:
        template = _resolve_template(category, period, template_file)
        records = load_recipients(recipients)
        report = _load_catalog(attachments, settings)
        for error in report.errors:
            click.echo(f"Warning: {error}", err=True)
        click.echo(report.message)

        transport = MockTransport() if dry_run else SmtpTransport()
        if dry_run:
            console.print("[yellow]Running in dry-run mode - no emails will be sent[/yellow]")

        job = Job(
            recipients=records,
            catalog=report.catalog,
            template=template,
            transport=_transport_config(settings),
        )

        with DispatchService(transport, settings.worker) as service:
            job_id = service.submit_job(job)
            click.echo(f"Job {job_id} queued ({job.total_groups} groups)")
            final = _follow(service, job_id, poll)
    except DispatchError as e:
        _fail(e)
    finally:
        if extracted:
            cleanup_extracted(settings.storage.extraction_dir)

    if as_json:
        click.echo(json.dumps(final.to_dict(), indent=2))
    else:
        click.echo(_results_table(final))
        click.echo(_progress_line(final))
    if final.error_message:
        click.echo(f"Job failed: {final.error_message}", err=True)
        sys.exit(1)


def _follow(service: DispatchService, job_id: str, poll: float) -> Job:
    last_line = None
    while True:
        try:
            job = service.get_job(job_id)
            line = _progress_line(job)
            if line != last_line:
                click.echo(line)
                last_line = line
            if job.is_terminal:
                return job
            time.sleep(poll)
        except KeyboardInterrupt:
            logger.warning("Cancellation requested for job %s", job_id)
            click.echo("Cancelling job...", err=True)
            service.cancel_job(job_id)


@main.command()
@click.option("--recipients", "-r", required=True, type=click.Path(exists=True), help="Recipient CSV file")
@click.option("--category", "-c", type=CATEGORY_CHOICE, help="Stock template category")
@click.option("--period", "-p", help="Billing period shown in the subject")
@click.option("--template-file", "-t", type=click.Path(exists=True), help="YAML template file")
@click.option("--limit", default=3, show_default=True, help="Number of groups to preview")
def preview(recipients, category, period, template_file, limit):
    """Show the subject and body each group would receive."""
    try:
        template = _resolve_template(category, period, template_file)
        groups = group_recipients(load_recipients(recipients))
    except DispatchError as e:
        _fail(e)

    console.print(f"[green]{len(groups)} groups, template: {template.category.value}[/green]")
    for group in groups[:limit]:
        rendered = preview_template(template, group)
        console.print(Panel(
            Text(f"Subject: {rendered['subject']}\n\n{rendered['body']}"),
            title=f"{group.key} ({len(group.members)} recipients)",
        ))


@main.command()
@click.argument("attachments", type=click.Path(exists=True))
@click.option("--files", "show_files", is_flag=True, help="List every categorized file")
@click.pass_context
def catalog(ctx, attachments, show_files):
    """Categorize an archive or directory of attachments."""
    settings = _settings(ctx)
    extracted = not Path(attachments).is_dir()
    try:
        report = _load_catalog(attachments, settings)
    except DispatchError as e:
        _fail(e)
    finally:
        if extracted:
            cleanup_extracted(settings.storage.extraction_dir)

    if show_files:
        rows = [
            [entry.group_key, f.file_name, f.category.value, f.custom_code, f.size_formatted]
            for entry in report.catalog
            for f in entry.files
        ]
        headers = ["Group", "File", "Type", "Code", "Size"]
    else:
        rows = []
        for entry in report.catalog:
            counts = entry.counts()
            rows.append([
                entry.group_key, counts["INV"], counts["SOA"], counts["OD"], counts["OTHER"],
                len(entry.files), format_file_size(entry.total_size),
            ])
        headers = ["Group", "INV", "SOA", "OD", "OTHER", "Total", "Size"]
    click.echo(tabulate(rows, headers=headers, tablefmt="grid"))
    click.echo(report.message)
    for error in report.errors:
        click.echo(f"  - {error}")


@main.group()
def settings():
    """Manage saved SMTP settings."""
    pass


@settings.command("show")
@click.pass_context
def show_settings(ctx):
    """Show the SMTP settings that send will use."""
    app_settings = _settings(ctx)
    store = _store(app_settings)
    data = _transport_config(app_settings).to_dict()
    if data.get("password"):
        data["password"] = "********"
    source = f"saved ({store.path})" if store.exists() else "configuration defaults"
    click.echo(f"Source: {source}")
    click.echo(tabulate(sorted(data.items()), headers=["Setting", "Value"], tablefmt="simple"))


@settings.command("save")
@click.option("--host", help="SMTP host")
@click.option("--port", type=int, help="SMTP port")
@click.option("--username", help="SMTP username")
@click.option("--password", help="SMTP password")
@click.option("--ssl/--no-ssl", "use_ssl", default=None, help="Use TLS")
@click.option("--timeout", "timeout_seconds", type=int, help="Connection timeout in seconds")
@click.option("--from-email", help="Sender address")
@click.option("--from-name", help="Sender display name")
@click.option("--always-cc", help="Addresses copied on every message, separated by ';'")
@click.pass_context
def save_settings(ctx, **options):
    """Save SMTP settings, starting from the current ones."""
    app_settings = _settings(ctx)
    current = SmtpConfig.from_transport_config(_transport_config(app_settings))
    updates = {key: value for key, value in options.items() if value is not None}
    try:
        merged = SmtpConfig(**{**current.model_dump(), **updates})
    except ValueError as e:
        _fail(e)
    if _store(app_settings).save(merged.to_transport_config()):
        click.echo("Settings saved.")
    else:
        click.echo("Error: settings could not be saved", err=True)
        sys.exit(1)


@settings.command("clear")
@click.pass_context
def clear_settings(ctx):
    """Delete saved settings and fall back to configuration defaults."""
    if _store(_settings(ctx)).delete():
        click.echo("Saved settings cleared.")
    else:
        click.echo("No saved settings to clear.")


@settings.command("test")
@click.pass_context
def test_settings(ctx):
    """Send a test email to the sender address."""
    config = _transport_config(_settings(ctx))
    result = SmtpTransport().send_test_message(config)
    if result.ok:
        click.echo(f"SUCCESS: test email sent to {config.from_email or config.username}")
    else:
        click.echo(f"FAILED: {result.error}", err=True)
        sys.exit(1)


@main.command()
@click.pass_context
def version(ctx):
    """Show version and effective configuration."""
    settings = _settings(ctx)
    console.print(Panel.fit(
        f"[bold green]Mail Dispatch[/bold green]\n"
        f"Version: {__version__}\n"
        f"Debug Mode: {settings.debug}\n"
        f"Logging Level: {settings.logging.level}\n"
        f"SMTP Host: {settings.smtp.host}:{settings.smtp.port}\n"
        f"Attempts per group: {settings.worker.max_attempts}\n"
        f"Saved settings: {settings.storage.settings_file}",
        title="Application Status",
    ))


if __name__ == "__main__":
    main()
