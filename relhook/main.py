"""relhook entry point: wires everything together and runs the listener."""

from __future__ import annotations

import asyncio
import signal
import sys
from pathlib import Path

import click

from relhook import __version__
from relhook.config import Settings, load_settings
from relhook.deploy.pipeline import build_pipeline, validate_release_tag
from relhook.deploy.runner import DeployRunner
from relhook.utils.audit import AuditLog
from relhook.utils.logging import get_logger, setup_logging
from relhook.webhooks.handlers import compute_signature
from relhook.webhooks.server import WebhookServer

log = get_logger(__name__)


class RelHook:
    """Main application orchestrator."""

    def __init__(self, settings: Settings, dry_run: bool = False) -> None:
        self.settings = settings
        self.audit = AuditLog(settings.audit_log)
        self.runner = DeployRunner(settings.deploy, self.audit, dry_run=dry_run)
        self.server = WebhookServer(
            settings.server, settings.webhook, self.runner, self.audit
        )

    async def start(self) -> None:
        log.info(
            "relhook_starting",
            version=__version__,
            mode=self.settings.deploy.mode,
            base_dir=self.settings.deploy.base_dir or None,
        )
        await self.server.start()
        log.info("relhook_ready")

    async def stop(self) -> None:
        log.info("relhook_stopping")
        await self.server.stop()
        log.info("relhook_stopped")


async def run(settings: Settings, dry_run: bool = False) -> int:
    app = RelHook(settings, dry_run=dry_run)

    try:
        await app.start()
    except OSError as e:
        log.exception("webhook_server_start_failed", port=settings.server.port)
        app.audit.write(str(e))
        return 1

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        log.info("shutdown_signal")
        stop_event.set()

    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _signal_handler)

    try:
        if sys.platform == "win32":
            while not stop_event.is_set():
                await asyncio.sleep(1)
        else:
            await stop_event.wait()
    except KeyboardInterrupt:
        pass
    finally:
        await app.stop()
    return 0


@click.group()
@click.version_option(__version__, prog_name="relhook")
def cli() -> None:
    """Redeploy an application when a signed release webhook arrives."""


@cli.command()
@click.option("--config", "config_path", default=None, help="Path to config YAML file")
@click.option("--log-level", default=None, help="Log level (DEBUG, INFO, WARNING, ERROR)")
@click.option("--dry-run", is_flag=True, help="Log the commands instead of running them")
def serve(config_path: str | None, log_level: str | None, dry_run: bool) -> None:
    """Listen for release webhooks."""
    settings = load_settings(config_path)
    if log_level:
        settings = settings.model_copy(update={"log_level": log_level})
    setup_logging(level=settings.log_level, json_output=settings.log_json)
    sys.exit(asyncio.run(run(settings, dry_run=dry_run)))


@cli.command()
@click.argument("tag")
@click.option("--config", "config_path", default=None, help="Path to config YAML file")
def plan(tag: str, config_path: str | None) -> None:
    """Print the shell invocations a release of TAG would run."""
    settings = load_settings(config_path)
    if not validate_release_tag(tag):
        raise click.BadParameter(f"{tag!r} is not an acceptable release tag", param_hint="TAG")
    pipeline = build_pipeline(tag, settings.deploy)
    for command in pipeline.invocations(settings.deploy.mode):
        click.echo(command)


@cli.command()
@click.argument("body", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--secret", envvar="RELHOOK_WEBHOOK__SECRET", default="", help="Shared secret")
@click.option("--config", "config_path", default=None, help="Path to config YAML file")
def sign(body: Path, secret: str, config_path: str | None) -> None:
    """Print the signature header value for the payload in BODY."""
    settings = load_settings(config_path)
    secret = secret or settings.webhook.secret
    if not secret:
        raise click.UsageError("No secret given; pass --secret or set RELHOOK_WEBHOOK__SECRET")
    click.echo(compute_signature(body.read_bytes(), secret, settings.webhook.algorithm))


if __name__ == "__main__":
    cli()
