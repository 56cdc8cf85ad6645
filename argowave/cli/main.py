"""argowave command-line interface.

Commands::

    argowave login
    argowave app list [--project P]
    argowave app get NAME
    argowave app sync NAME [--prune] [--dry-run] [--wait SECONDS]
    argowave app down NAME [--project P] [--no-grace] [--grace-period N] [--timeout SECONDS]

Connection flags fall back to ``ARGOCD_SERVER``, ``ARGOCD_USERNAME``,
``ARGOCD_PASSWORD`` and ``ARGOCD_AUTH_TOKEN``; the rest of the settings come
from ``ARGOWAVE_*`` (see ``argowave.config``).
"""

from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import click

from argowave import __version__
from argowave.argocd.client import ArgoCDClient
from argowave.config import ConfigError, load_config
from argowave.errors import ArgoWaveError
from argowave.models.config import ArgoWaveConfig
from argowave.observability.logging import get_logger, setup_logging
from argowave.scaler.orchestrator import ScaleDownOrchestrator

_T = TypeVar("_T")

# Commands run under a fixed deadline except `app down`, whose deadline is
# ScaleDownConfig.timeout_seconds.
_SHORT_TIMEOUT = 20.0
_LOGIN_TIMEOUT = 15.0
_SYNC_TIMEOUT = 60.0


def _run(ctx: click.Context, fn: Callable[[ArgoCDClient], Awaitable[_T]], timeout: float | None) -> _T:
    """Open a logged-in client, run *fn* under *timeout*, map errors to exit code 1."""
    config: ArgoWaveConfig = ctx.obj
    log = get_logger("cli")

    async def _main() -> _T:
        async with ArgoCDClient(config.argocd) as client:
            async with asyncio.timeout(timeout):
                await client.login()
                return await fn(client)

    try:
        return asyncio.run(_main())
    except ArgoWaveError as exc:
        log.error("command_failed", command=ctx.command_path, error=str(exc))
        raise SystemExit(1) from exc
    except TimeoutError as exc:
        log.error("command_timed_out", command=ctx.command_path, timeout=timeout)
        raise SystemExit(1) from exc


@click.group()
@click.version_option(__version__, prog_name="argowave")
@click.option("--server", default=None, help="Argo CD API server address (host:port or URL). [env: ARGOCD_SERVER]")
@click.option("--plaintext", is_flag=True, help="Use plain HTTP instead of TLS.")
@click.option("--tls-no-verify", is_flag=True, help="Skip TLS certificate verification.")
@click.option("--username", default=None, help="Username for session login. [env: ARGOCD_USERNAME]")
@click.option("--password", default=None, help="Password for session login. [env: ARGOCD_PASSWORD]")
@click.option("--auth-token", default=None, help="Bearer token, preferred over username/password. [env: ARGOCD_AUTH_TOKEN]")
@click.option("--root-path", default=None, help="API root path when Argo CD is served behind a prefix, e.g. /argocd.")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Log level.",
)
@click.option("--log-json", is_flag=True, help="Emit JSON log lines.")
@click.pass_context
def cli(ctx: click.Context, **flags: Any) -> None:
    """Argo CD helper for ordered, sync-wave aware application shutdown."""
    try:
        config = load_config()
    except ConfigError as exc:
        raise click.UsageError(str(exc)) from exc

    argocd_overrides = {
        key: value
        for key, value in flags.items()
        if value not in (None, False) and key in {f.name for f in dataclasses.fields(config.argocd)}
    }
    config.argocd = dataclasses.replace(config.argocd, **argocd_overrides)
    if flags["log_level"] is not None:
        config.log.level = flags["log_level"].lower()
    if flags["log_json"]:
        config.log.json = True

    setup_logging(config.log.level, json=config.log.json)
    ctx.obj = config


def _require_server(ctx: click.Context) -> None:
    config: ArgoWaveConfig = ctx.obj
    if not config.argocd.server:
        raise click.UsageError("--server or ARGOCD_SERVER is required")


@cli.command()
@click.pass_context
def login(ctx: click.Context) -> None:
    """Log in and verify the connection to Argo CD."""
    _require_server(ctx)

    async def _login(client: ArgoCDClient) -> str:
        await client.list_applications()
        return await client.version()

    version = _run(ctx, _login, _LOGIN_TIMEOUT)
    click.echo(f"connected: {version or 'ok'}")


@cli.group()
def app() -> None:
    """Application operations."""


@app.command("list")
@click.option("--project", default="", help="Only list applications of this project.")
@click.pass_context
def app_list(ctx: click.Context, project: str) -> None:
    """List applications."""
    _require_server(ctx)
    apps = _run(ctx, lambda client: client.list_applications(project=project), _SHORT_TIMEOUT)
    for item in apps:
        click.echo(f"{item.name}\t{item.sync_status}\t{item.health_status}")


@app.command("get")
@click.argument("name")
@click.pass_context
def app_get(ctx: click.Context, name: str) -> None:
    """Show an application's sync and health status."""
    _require_server(ctx)
    item = _run(ctx, lambda client: client.get_application(name), _SHORT_TIMEOUT)
    click.echo(f"{item.name}\nSync: {item.sync_status}\nHealth: {item.health_status}")


@app.command("sync")
@click.argument("name")
@click.option("--prune", is_flag=True, help="Allow deleting resources no longer in the desired state.")
@click.option("--dry-run", is_flag=True, help="Preview the sync only.")
@click.option("--wait", type=float, default=0.0, help="Seconds to wait for the application to become healthy.")
@click.pass_context
def app_sync(ctx: click.Context, name: str, prune: bool, dry_run: bool, wait: float) -> None:
    """Sync an application."""
    _require_server(ctx)

    async def _sync(client: ArgoCDClient) -> None:
        await client.sync_application(name, prune=prune, dry_run=dry_run)
        if wait > 0:
            await client.wait_for_healthy(name, timeout=wait)

    _run(ctx, _sync, _SYNC_TIMEOUT + wait)
    click.echo("sync requested")


@app.command("down")
@click.argument("name")
@click.option("--project", default="", help="Project the application belongs to.")
@click.option("--no-grace", is_flag=True, help="Force-delete pods still present after scaling to zero.")
@click.option("--grace-period", type=click.IntRange(min=0), default=None, help="Grace period in seconds for forced pod deletes.")
@click.option("--timeout", type=click.IntRange(min=1), default=None, help="Deadline for the whole run in seconds.")
@click.pass_context
def app_down(
    ctx: click.Context,
    name: str,
    project: str,
    no_grace: bool,
    grace_period: int | None,
    timeout: int | None,
) -> None:
    """Scale an application's workloads to zero in reverse sync-wave order."""
    _require_server(ctx)
    config: ArgoWaveConfig = ctx.obj
    scale_config = config.scale_down
    if timeout is not None:
        scale_config = dataclasses.replace(scale_config, timeout_seconds=timeout)

    async def _down(client: ArgoCDClient) -> None:
        orchestrator = ScaleDownOrchestrator(client, scale_config)
        report = await orchestrator.scale_down_by_sync_wave(
            project,
            name,
            force_delete=True if no_grace else None,
            grace_period_seconds=grace_period,
        )
        click.echo(
            f"scaled down {len(report.scaled)} workloads in {len(report.waves)} waves "
            f"({report.elapsed_seconds:.1f}s)"
        )

    # the orchestrator enforces its own deadline
    _run(ctx, _down, None)
