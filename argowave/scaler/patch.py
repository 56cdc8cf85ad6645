"""Replica patch: set a workload's live replica count to zero."""

from __future__ import annotations

from typing import TYPE_CHECKING

from argowave.errors import ArgoCDAPIError, PatchError
from argowave.observability.logging import get_logger

if TYPE_CHECKING:
    from argowave.argocd.client import ArgoCDClient
    from argowave.models.resources import ResourceStatus

_logger = get_logger("scaler.patch")

MERGE_PATCH_TYPE = "application/merge-patch+json"
REPLICAS_ZERO_PATCH = '{"spec": {"replicas": 0}}'


async def patch_replicas_zero(
    client: ArgoCDClient,
    project: str,
    app_name: str,
    workload: ResourceStatus,
) -> bool:
    """Merge-patch ``spec.replicas`` of *workload* to 0 through Argo CD.

    Only the live object changes; the application's source manifests are
    untouched.  Returns False when the workload no longer exists, which
    counts as success.

    Argo CD answers a patch for a resource that has left the application's
    tree with InvalidArgument rather than NotFound, so an InvalidArgument
    reply is checked against a fresh resource tree before it is treated as
    a failure.

    Raises:
        PatchError: on any failure other than the workload being gone.
    """
    _logger.info("patch_replicas_zero", kind=workload.kind, resource=f"{workload.namespace}/{workload.name}")
    try:
        await client.patch_resource(
            app_name,
            workload,
            patch=REPLICAS_ZERO_PATCH,
            patch_type=MERGE_PATCH_TYPE,
            project=project,
        )
    except ArgoCDAPIError as exc:
        if exc.is_not_found or (exc.is_invalid_argument and await _is_gone(client, project, app_name, workload)):
            _logger.info(
                "patch_target_not_found",
                kind=workload.kind,
                resource=f"{workload.namespace}/{workload.name}",
            )
            return False
        raise PatchError(f"patch replicas=0: {exc}", workload=workload) from exc
    _logger.debug("patch_sent", kind=workload.kind, resource=f"{workload.namespace}/{workload.name}")
    return True


async def _is_gone(client: ArgoCDClient, project: str, app_name: str, workload: ResourceStatus) -> bool:
    try:
        tree = await client.resource_tree(app_name, project=project)
    except ArgoCDAPIError as exc:
        raise PatchError(f"confirm {workload} is gone: {exc}", workload=workload) from exc
    return tree.find_node(workload.key) is None
