"""Pod-drain poller: wait for a scaled-down workload's pods to disappear.

State machine per workload::

    polling -> draining -> drained
                  |  ^
                  v  |
        force_delete_issued          (at most once per workload)

    any non-terminal state -> cancelled   (task cancelled by a failed sibling)
    any non-terminal state -> timed_out   (run deadline hit)

Each tick fetches the application's resource tree.  A workload that is no
longer in the tree counts as drained.  Otherwise its remaining pods are the
non-DaemonSet pods that descend from it; none left means drained.
"""

from __future__ import annotations

import asyncio
from enum import StrEnum
from typing import TYPE_CHECKING

from argowave.errors import ArgoCDAPIError, ForceDeleteError, TreeFetchError
from argowave.observability.logging import get_logger
from argowave.scaler.tree import remaining_pods

if TYPE_CHECKING:
    from argowave.argocd.client import ArgoCDClient
    from argowave.models.resources import ResourceNode, ResourceStatus
    from argowave.scaler.evictor import PodEvictor

_logger = get_logger("scaler.drain")

DEFAULT_POLL_INTERVAL = 1.0


class DrainState(StrEnum):
    """Lifecycle of a single workload drain."""

    POLLING = "polling"
    DRAINING = "draining"
    FORCE_DELETE_ISSUED = "force_delete_issued"
    DRAINED = "drained"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"


class PodDrainPoller:
    """Polls the resource tree until *workload* has no pods left.

    Args:
        client:               Argo CD client used for resource tree fetches.
        project:              Application project.
        app_name:             Application name.
        workload:             The workload being drained.
        evictor:              Shared pod evictor; required when *force_delete*.
        force_delete:         Delete lingering pods directly, once.
        grace_period_seconds: Grace period passed to each forced delete.
        poll_interval:        Seconds between ticks.
    """

    def __init__(
        self,
        client: ArgoCDClient,
        project: str,
        app_name: str,
        workload: ResourceStatus,
        *,
        evictor: PodEvictor | None = None,
        force_delete: bool = False,
        grace_period_seconds: int = 0,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        if force_delete and evictor is None:
            raise ValueError("force_delete requires an evictor")
        self._client = client
        self._project = project
        self._app_name = app_name
        self._workload = workload
        self._evictor = evictor
        self._force_delete = force_delete
        self._grace_period_seconds = grace_period_seconds
        self._poll_interval = poll_interval
        self._log = _logger.bind(kind=workload.kind, resource=f"{workload.namespace}/{workload.name}")

        self.state = DrainState.POLLING
        self.force_delete_issued = False
        self.pods_force_deleted = 0
        self.ticks = 0

    @property
    def workload(self) -> ResourceStatus:
        return self._workload

    async def run(self) -> None:
        """Tick until drained.

        The wait between ticks is the cancellation point: cancelling the
        task (run deadline, failed sibling) stops the poller promptly.
        """
        try:
            while True:
                await asyncio.sleep(self._poll_interval)
                if await self.tick():
                    return
        except asyncio.CancelledError:
            self.state = DrainState.CANCELLED
            self._log.info("drain_cancelled", ticks=self.ticks)
            raise

    def mark_timed_out(self) -> None:
        """Record that the run deadline, not a sibling failure, stopped this poller."""
        if self.state is not DrainState.DRAINED:
            self.state = DrainState.TIMED_OUT
            self._log.warning("drain_timed_out", ticks=self.ticks)

    async def tick(self) -> bool:
        """Run one poll.  Returns True once the workload is drained."""
        self.ticks += 1
        try:
            tree = await self._client.resource_tree(self._app_name, project=self._project)
        except ArgoCDAPIError as exc:
            raise TreeFetchError(f"fetch resource tree: {exc}", workload=self._workload) from exc

        target = tree.find_node(self._workload.key)
        if target is None:
            self.state = DrainState.DRAINED
            self._log.info("workload_gone")
            return True

        pods = remaining_pods(tree, target.key)
        if not pods:
            self.state = DrainState.DRAINED
            self._log.info("all_pods_deleted")
            return True

        self.state = DrainState.DRAINING
        self._log.info("pods_remaining", pods=len(pods))

        if self._evictor is not None and self._force_delete and not self.force_delete_issued:
            await self._force_delete_pods(self._evictor, pods)
        return False

    async def _force_delete_pods(self, evictor: PodEvictor, pods: list[ResourceNode]) -> None:
        self.state = DrainState.FORCE_DELETE_ISSUED
        self.force_delete_issued = True
        self._log.warning("force_deleting_pods", pods=len(pods), grace_period=self._grace_period_seconds)
        for pod in pods:
            try:
                deleted = await evictor.delete_pod(pod.namespace, pod.name, self._grace_period_seconds)
            except Exception as exc:
                raise ForceDeleteError(
                    f"force delete pod {pod.namespace}/{pod.name} failed: {exc}",
                    workload=self._workload,
                ) from exc
            if deleted:
                self.pods_force_deleted += 1
            else:
                self._log.debug("pod_already_gone", pod=f"{pod.namespace}/{pod.name}")
        self.state = DrainState.DRAINING
