"""Scalable workload discovery and sync-wave grouping."""

from __future__ import annotations

import itertools
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from argowave.errors import ArgoCDAPIError, DiscoveryError
from argowave.models.resources import ResourceStatus
from argowave.observability.logging import get_logger

if TYPE_CHECKING:
    from argowave.argocd.client import ArgoCDClient

_logger = get_logger("scaler.discovery")


@dataclass(frozen=True)
class WaveGroup:
    """Workloads sharing one sync wave, scaled down together."""

    wave: int
    workloads: tuple[ResourceStatus, ...]

    def __len__(self) -> int:
        return len(self.workloads)


def group_by_wave(workloads: Iterable[ResourceStatus]) -> list[WaveGroup]:
    """Sort *workloads* by sync wave, highest first, and split at wave boundaries.

    The sort is stable, so workloads within a wave keep their input order.
    Returned groups are never empty and their waves strictly decrease.
    """
    ordered = sorted(workloads, key=lambda w: w.sync_wave, reverse=True)
    return [
        WaveGroup(wave=wave, workloads=tuple(members))
        for wave, members in itertools.groupby(ordered, key=lambda w: w.sync_wave)
    ]


async def discover_workloads(client: ArgoCDClient, project: str, app_name: str) -> list[WaveGroup]:
    """Fetch *app_name* and return its scalable workloads grouped by wave.

    Raises:
        DiscoveryError: if the application cannot be fetched.
    """
    try:
        app = await client.get_application(app_name, project=project)
    except ArgoCDAPIError as exc:
        raise DiscoveryError(f"get application {app_name}: {exc}") from exc

    groups = group_by_wave(r for r in app.resources if r.is_scalable)
    _logger.info(
        "workloads_discovered",
        app=app_name,
        project=project,
        workloads=sum(len(g) for g in groups),
        waves=[g.wave for g in groups],
    )
    for group in groups:
        for workload in group.workloads:
            _logger.debug(
                "workload",
                wave=group.wave,
                kind=workload.kind,
                resource=f"{workload.namespace}/{workload.name}",
            )
    return groups
