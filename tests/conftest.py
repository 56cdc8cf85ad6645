"""Shared fixtures for argowave tests.

``FakeArgoCD`` stands in for both the Argo CD API and the destination
cluster: it serves an application whose workloads own pods, applies
replicas=0 patches, and lets pods disappear a configurable number of
resource-tree fetches after the patch.  ``fake_k8s`` swaps the
kubernetes-asyncio client module used by ``PodEvictor`` for one that deletes
pods from the FakeArgoCD.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Any

import pytest

from argowave.errors import ArgoCDAPIError
from argowave.models.resources import (
    Application,
    Destination,
    ResourceKey,
    ResourceNode,
    ResourceRef,
    ResourceStatus,
    ResourceTree,
)

DESTINATION_SERVER = "https://game-cluster.example:6443"

_GROUPS = {
    "Deployment": "apps",
    "StatefulSet": "apps",
    "DaemonSet": "apps",
    "ReplicaSet": "apps",
    "GameDeployment": "game.kruise.io",
    "GameStatefulSet": "game.kruise.io",
}


def make_workload(
    name: str,
    wave: int = 0,
    kind: str = "Deployment",
    namespace: str = "games",
) -> ResourceStatus:
    """Create a ResourceStatus with sensible defaults for testing."""
    return ResourceStatus(
        kind=kind,
        namespace=namespace,
        name=name,
        group=_GROUPS.get(kind, ""),
        version="v1" if _GROUPS.get(kind) == "apps" else "v1alpha1",
        sync_wave=wave,
    )


def ref(kind: str, name: str, namespace: str = "games") -> ResourceRef:
    return ResourceRef(kind=kind, namespace=namespace, name=name, group=_GROUPS.get(kind, ""))


def node(kind: str, name: str, *parents: ResourceRef, namespace: str = "games") -> ResourceNode:
    return ResourceNode(
        kind=kind,
        namespace=namespace,
        name=name,
        group=_GROUPS.get(kind, ""),
        parent_refs=tuple(parents),
    )


@dataclass
class _WorkloadState:
    workload: ResourceStatus
    pods: list[str]
    drain_after: int | None
    daemonset_pods: list[str] = field(default_factory=list)
    patched: bool = False
    ticks_since_patch: int = 0
    exists: bool = True


class FakeArgoCD:
    """In-memory Argo CD application plus the pods of its destination cluster.

    Args:
        app_name:    Application name served by get_application.
        destination: Destination server reported by the application.
    """

    def __init__(self, app_name: str = "game", destination: str = DESTINATION_SERVER) -> None:
        self.app_name = app_name
        self.destination = destination
        self.auth_token = "session-token"
        self.extra_resources: list[ResourceStatus] = []
        self.events: list[tuple[str, str]] = []
        self.patch_errors: dict[str, ArgoCDAPIError] = {}
        self.tree_error: ArgoCDAPIError | None = None
        self.app_error: ArgoCDAPIError | None = None
        self.deleted_pods: list[tuple[str, str, int | None]] = []
        self.delete_lag = 1
        self.tree_fetches = 0
        self.app_fetches = 0
        self._workloads: dict[ResourceKey, _WorkloadState] = {}
        self._pending_deletes: dict[tuple[str, str], int] = {}

    def add_workload(
        self,
        workload: ResourceStatus,
        pods: int = 2,
        drain_after: int | None = 1,
        daemonset_pods: int = 0,
    ) -> ResourceStatus:
        """Register *workload* with *pods* pods that vanish *drain_after* fetches after patching.

        ``drain_after=None`` means the pods never go away by themselves.
        """
        self._workloads[workload.key] = _WorkloadState(
            workload=workload,
            pods=[f"{workload.name}-{i}" for i in range(pods)],
            drain_after=drain_after,
            daemonset_pods=[f"{workload.name}-agent-{i}" for i in range(daemonset_pods)],
        )
        return workload

    def remove_workload(self, workload: ResourceStatus) -> None:
        self._workloads[workload.key].exists = False

    def pods_of(self, workload: ResourceStatus) -> list[str]:
        return list(self._workloads[workload.key].pods)

    def index(self, event: str, name: str) -> int:
        return self.events.index((event, name))

    # Argo CD API -------------------------------------------------------

    async def get_application(self, name: str, project: str = "") -> Application:
        await asyncio.sleep(0)
        self.app_fetches += 1
        if self.app_error is not None:
            raise self.app_error
        resources = [s.workload for s in self._workloads.values()] + self.extra_resources
        return Application(
            name=name,
            project=project,
            destination=Destination(server=self.destination, namespace="games"),
            resources=tuple(resources),
        )

    async def patch_resource(
        self,
        app_name: str,
        resource: ResourceStatus,
        patch: str,
        patch_type: str,
        project: str = "",
    ) -> None:
        await asyncio.sleep(0)
        self.events.append(("patch", resource.name))
        if resource.name in self.patch_errors:
            raise self.patch_errors[resource.name]
        state = self._workloads.get(resource.key)
        if state is None or not state.exists:
            raise ArgoCDAPIError(
                f"{resource.kind} {resource.group} {resource.name} not found as part of application {app_name}",
                status_code=400,
                code=3,
            )
        assert patch == '{"spec": {"replicas": 0}}'
        assert patch_type == "application/merge-patch+json"
        state.patched = True

    async def resource_tree(self, app_name: str, project: str = "") -> ResourceTree:
        await asyncio.sleep(0)
        self.tree_fetches += 1
        if self.tree_error is not None:
            raise self.tree_error
        self._advance()
        return self._build_tree()

    # Cluster -----------------------------------------------------------

    def delete_pod(self, namespace: str, name: str, grace_period_seconds: int | None) -> bool:
        self.deleted_pods.append((namespace, name, grace_period_seconds))
        for state in self._workloads.values():
            if name in state.pods:
                self._pending_deletes[(namespace, name)] = self.delete_lag
                return True
        return False

    # internals ---------------------------------------------------------

    def _advance(self) -> None:
        for state in self._workloads.values():
            if not state.patched or not state.pods:
                continue
            state.ticks_since_patch += 1
            if state.drain_after is not None and state.ticks_since_patch >= state.drain_after:
                state.pods.clear()
                self.events.append(("drained", state.workload.name))
        for key in list(self._pending_deletes):
            self._pending_deletes[key] -= 1
            if self._pending_deletes[key] <= 0:
                del self._pending_deletes[key]
                for state in self._workloads.values():
                    if key[1] in state.pods:
                        state.pods.remove(key[1])
                        if not state.pods:
                            self.events.append(("drained", state.workload.name))

    def _build_tree(self) -> ResourceTree:
        nodes: list[ResourceNode] = []
        for state in self._workloads.values():
            if not state.exists:
                continue
            w = state.workload
            owner = ResourceRef(kind=w.kind, namespace=w.namespace, name=w.name, group=w.group)
            nodes.append(ResourceNode(kind=w.kind, namespace=w.namespace, name=w.name, group=w.group))
            pod_parent = owner
            if w.kind == "Deployment":
                nodes.append(node("ReplicaSet", f"{w.name}-rs", owner, namespace=w.namespace))
                pod_parent = ref("ReplicaSet", f"{w.name}-rs", namespace=w.namespace)
            for pod in state.pods:
                nodes.append(node("Pod", pod, pod_parent, namespace=w.namespace))
            for pod in state.daemonset_pods:
                nodes.append(
                    node("Pod", pod, ref("DaemonSet", f"{w.name}-agent", namespace=w.namespace), owner, namespace=w.namespace)
                )
        return ResourceTree(nodes=tuple(nodes))


@pytest.fixture
def fake_argocd() -> FakeArgoCD:
    return FakeArgoCD()


@pytest.fixture
def fake_k8s(monkeypatch: pytest.MonkeyPatch, fake_argocd: FakeArgoCD) -> SimpleNamespace:
    """Replace the kubernetes-asyncio client module used by PodEvictor.

    The returned namespace records every ApiClient built and the hosts and
    tokens they were configured with.
    """
    from kubernetes_asyncio.client.rest import ApiException

    record = SimpleNamespace(api_clients=[], configurations=[], fail_with=None)

    class Configuration:
        def __init__(self, host: str) -> None:
            self.host = host
            self.api_key: dict[str, str] = {}
            self.verify_ssl = True
            record.configurations.append(self)

    class ApiClient:
        def __init__(self, configuration: Configuration) -> None:
            self.configuration = configuration
            self.closed = False
            record.api_clients.append(self)

        async def close(self) -> None:
            self.closed = True

    class CoreV1Api:
        def __init__(self, api_client: ApiClient) -> None:
            self.api_client = api_client

        async def delete_namespaced_pod(self, name: str, namespace: str, **kwargs: Any) -> None:
            await asyncio.sleep(0)
            if record.fail_with is not None:
                raise ApiException(status=record.fail_with, reason="boom")
            if not fake_argocd.delete_pod(namespace, name, kwargs.get("grace_period_seconds")):
                raise ApiException(status=404, reason="Not Found")

    fake_module = SimpleNamespace(Configuration=Configuration, ApiClient=ApiClient, CoreV1Api=CoreV1Api)
    monkeypatch.setattr("argowave.scaler.evictor.k8s_client", fake_module)
    return record
