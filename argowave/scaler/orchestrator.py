"""Wave scheduler: scale an application's workloads down in sync-wave order.

Waves run strictly from the highest sync wave to the lowest.  Inside a wave
every workload is patched to zero replicas and drained concurrently in one
``asyncio.TaskGroup``; the next wave starts only after every task of the
current one succeeded.  The first failure cancels the rest of its wave and
aborts the run.  Waves already completed stay scaled down.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from argowave.errors import ArgoCDAPIError, DrainTimeoutError, ScaleDownError
from argowave.models.config import ScaleDownConfig
from argowave.observability.logging import get_logger
from argowave.scaler.discovery import WaveGroup, discover_workloads
from argowave.scaler.drain import PodDrainPoller
from argowave.scaler.evictor import PodEvictor
from argowave.scaler.patch import patch_replicas_zero

if TYPE_CHECKING:
    from argowave.argocd.client import ArgoCDClient
    from argowave.models.resources import ResourceKey, ResourceStatus

_logger = get_logger("scaler.orchestrator")

EvictorFactory = Callable[[Callable[[], Awaitable[str]], str], PodEvictor]


@dataclass
class ScaleDownReport:
    """Outcome of a successful scale-down run."""

    application: str
    project: str
    waves: list[int] = field(default_factory=list)
    scaled: list[ResourceStatus] = field(default_factory=list)
    pods_force_deleted: int = 0
    elapsed_seconds: float = 0.0


@dataclass
class _Run:
    """State of one scale-down invocation."""

    project: str
    app_name: str
    force_delete: bool
    grace_period_seconds: int
    report: ScaleDownReport
    evictor: PodEvictor | None = None
    current_wave: WaveGroup | None = None
    in_flight: dict[ResourceKey, ResourceStatus] = field(default_factory=dict)
    pollers: dict[ResourceKey, PodDrainPoller] = field(default_factory=dict)


class ScaleDownOrchestrator:
    """Scales Argo CD applications down wave by wave.

    Args:
        client:          Logged-in Argo CD client.
        config:          Poll interval, deadline and force-delete defaults.
        evictor_factory: Builds the per-run pod evictor; defaults to PodEvictor.
    """

    def __init__(
        self,
        client: ArgoCDClient,
        config: ScaleDownConfig | None = None,
        evictor_factory: EvictorFactory | None = None,
    ) -> None:
        self._client = client
        self._config = config or ScaleDownConfig()
        self._evictor_factory: EvictorFactory = evictor_factory or PodEvictor

    async def scale_down_by_sync_wave(
        self,
        project: str,
        app_name: str,
        force_delete: bool | None = None,
        grace_period_seconds: int | None = None,
    ) -> ScaleDownReport:
        """Scale every scalable workload of *app_name* to zero, highest wave first.

        Args:
            project:              Argo CD project the application belongs to.
            app_name:             Application name.
            force_delete:         Force-delete pods still present after the
                                  first poll.  Defaults to the config value.
            grace_period_seconds: Grace period for forced deletes.  Defaults
                                  to the config value.

        Raises:
            DiscoveryError, PatchError, TreeFetchError, ForceDeleteError:
                first fatal failure of the run.
            DrainTimeoutError: the run deadline passed.
        """
        if force_delete is None:
            force_delete = self._config.force_delete
        if grace_period_seconds is None:
            grace_period_seconds = self._config.grace_period_seconds
        if grace_period_seconds and not force_delete:
            _logger.warning(
                "grace_period_ignored",
                grace_period=grace_period_seconds,
                reason="only applies to force-deleted pods",
            )

        run = _Run(
            project=project,
            app_name=app_name,
            force_delete=force_delete,
            grace_period_seconds=grace_period_seconds,
            report=ScaleDownReport(application=app_name, project=project),
        )
        if force_delete:
            run.evictor = self._evictor_factory(self._destination_resolver(run), self._client.auth_token)

        _logger.info(
            "scale_down_started",
            app=app_name,
            project=project,
            force_delete=force_delete,
            grace_period=grace_period_seconds,
            timeout=self._config.timeout_seconds,
        )
        started = time.monotonic()
        try:
            async with asyncio.timeout(self._config.timeout_seconds):
                await self._run(run)
        except TimeoutError as exc:
            pending = list(run.in_flight.values())
            for workload in pending:
                if workload.key in run.pollers:
                    run.pollers[workload.key].mark_timed_out()
            wave = run.current_wave.wave if run.current_wave is not None else None
            _logger.error(
                "scale_down_timed_out",
                app=app_name,
                wave=wave,
                pending=[str(w) for w in pending],
            )
            raise DrainTimeoutError(
                f"timed out after {self._config.timeout_seconds}s waiting for pods to drain",
                pending=pending,
                wave=wave,
            ) from exc
        finally:
            if run.evictor is not None:
                await run.evictor.close()

        run.report.elapsed_seconds = time.monotonic() - started
        _logger.info(
            "scale_down_finished",
            app=app_name,
            waves=len(run.report.waves),
            workloads=len(run.report.scaled),
            elapsed=round(run.report.elapsed_seconds, 2),
        )
        return run.report

    async def _run(self, run: _Run) -> None:
        groups = await discover_workloads(self._client, run.project, run.app_name)
        for group in groups:
            if not group.workloads:
                continue
            run.current_wave = group
            _logger.info("wave_started", wave=group.wave, workloads=len(group))
            try:
                async with asyncio.TaskGroup() as tg:
                    for workload in group.workloads:
                        tg.create_task(
                            self._scale_down_workload(run, workload),
                            name=f"scale-down:{workload.kind}/{workload.namespace}/{workload.name}",
                        )
            except BaseExceptionGroup as eg:
                exc = _first_error(eg)
                if isinstance(exc, ScaleDownError) and exc.wave is None:
                    exc.wave = group.wave
                _logger.error("wave_failed", wave=group.wave, error=str(exc))
                raise exc from None
            run.report.waves.append(group.wave)
            _logger.info("wave_completed", wave=group.wave)
        run.current_wave = None

    async def _scale_down_workload(self, run: _Run, workload: ResourceStatus) -> None:
        run.in_flight[workload.key] = workload
        await patch_replicas_zero(self._client, run.project, run.app_name, workload)
        poller = PodDrainPoller(
            self._client,
            run.project,
            run.app_name,
            workload,
            evictor=run.evictor,
            force_delete=run.force_delete,
            grace_period_seconds=run.grace_period_seconds,
            poll_interval=self._config.poll_interval,
        )
        run.pollers[workload.key] = poller
        await poller.run()
        del run.in_flight[workload.key]
        run.report.scaled.append(workload)
        run.report.pods_force_deleted += poller.pods_force_deleted
        _logger.info("workload_scaled_down", kind=workload.kind, resource=f"{workload.namespace}/{workload.name}")

    def _destination_resolver(self, run: _Run) -> Callable[[], Awaitable[str]]:
        async def resolve() -> str:
            try:
                app = await self._client.get_application(run.app_name, project=run.project)
            except ArgoCDAPIError as exc:
                raise ScaleDownError(f"resolve destination of {run.app_name}: {exc}") from exc
            if not app.destination.server:
                raise ScaleDownError(
                    f"application {run.app_name} has no destination server "
                    f"(destination name {app.destination.name!r} is not supported for force-delete)"
                )
            return app.destination.server

        return resolve


def _first_error(eg: BaseExceptionGroup) -> BaseException:
    """Return the first leaf exception of a (possibly nested) exception group."""
    exc: BaseException = eg
    while isinstance(exc, BaseExceptionGroup):
        exc = exc.exceptions[0]
    return exc
