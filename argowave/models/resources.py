"""Snapshots of Argo CD application resources and the live resource tree.

Every type here is built fresh from an Argo CD API payload and never mutated.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any, NamedTuple

SCALABLE_KINDS = frozenset({"Deployment", "StatefulSet", "GameDeployment", "GameStatefulSet"})

POD_KIND = "Pod"
DAEMONSET_KIND = "DaemonSet"


class ResourceKey(NamedTuple):
    """Identity used to match tree nodes and parent references."""

    group: str
    kind: str
    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.kind} {self.namespace}/{self.name}"


@dataclass(frozen=True)
class ResourceStatus:
    """One managed resource as listed in ``Application.status.resources``."""

    kind: str
    namespace: str
    name: str
    group: str = ""
    version: str = ""
    sync_wave: int = 0
    status: str = ""
    health: str = ""

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> ResourceStatus:
        health = raw.get("health") or {}
        return cls(
            kind=str(raw.get("kind", "")),
            namespace=str(raw.get("namespace", "")),
            name=str(raw.get("name", "")),
            group=str(raw.get("group", "")),
            version=str(raw.get("version", "")),
            sync_wave=int(raw.get("syncWave", 0) or 0),
            status=str(raw.get("status", "")),
            health=str(health.get("status", "")),
        )

    @property
    def key(self) -> ResourceKey:
        return ResourceKey(self.group, self.kind, self.namespace, self.name)

    @property
    def is_scalable(self) -> bool:
        return self.kind in SCALABLE_KINDS

    def __str__(self) -> str:
        return str(self.key)


@dataclass(frozen=True)
class ResourceRef:
    """Parent reference carried by a tree node."""

    kind: str
    namespace: str
    name: str
    group: str = ""
    uid: str = ""

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> ResourceRef:
        return cls(
            kind=str(raw.get("kind", "")),
            namespace=str(raw.get("namespace", "")),
            name=str(raw.get("name", "")),
            group=str(raw.get("group", "")),
            uid=str(raw.get("uid", "")),
        )

    @property
    def key(self) -> ResourceKey:
        return ResourceKey(self.group, self.kind, self.namespace, self.name)


@dataclass(frozen=True)
class ResourceNode:
    """A node of the live resource tree."""

    kind: str
    namespace: str
    name: str
    group: str = ""
    version: str = ""
    uid: str = ""
    parent_refs: tuple[ResourceRef, ...] = ()

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> ResourceNode:
        return cls(
            kind=str(raw.get("kind", "")),
            namespace=str(raw.get("namespace", "")),
            name=str(raw.get("name", "")),
            group=str(raw.get("group", "")),
            version=str(raw.get("version", "")),
            uid=str(raw.get("uid", "")),
            parent_refs=tuple(ResourceRef.from_dict(p) for p in raw.get("parentRefs") or []),
        )

    @property
    def key(self) -> ResourceKey:
        return ResourceKey(self.group, self.kind, self.namespace, self.name)


@dataclass(frozen=True)
class ResourceTree:
    """Live ownership graph of an application, indexed by identity."""

    nodes: tuple[ResourceNode, ...] = ()
    _index: dict[ResourceKey, ResourceNode] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_index", {node.key: node for node in self.nodes})

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> ResourceTree:
        return cls(nodes=tuple(ResourceNode.from_dict(n) for n in raw.get("nodes") or []))

    def find_node(self, key: ResourceKey) -> ResourceNode | None:
        return self._index.get(key)

    def pods(self) -> Iterator[ResourceNode]:
        return (node for node in self.nodes if node.kind == POD_KIND)


@dataclass(frozen=True)
class Destination:
    """Cluster and namespace an application deploys into."""

    server: str = ""
    namespace: str = ""
    name: str = ""

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Destination:
        return cls(
            server=str(raw.get("server", "")),
            namespace=str(raw.get("namespace", "")),
            name=str(raw.get("name", "")),
        )


@dataclass(frozen=True)
class Application:
    """Read-only snapshot of an Argo CD Application."""

    name: str
    project: str = ""
    destination: Destination = field(default_factory=Destination)
    resources: tuple[ResourceStatus, ...] = ()
    sync_status: str = ""
    health_status: str = ""

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Application:
        metadata = raw.get("metadata") or {}
        spec = raw.get("spec") or {}
        status = raw.get("status") or {}
        return cls(
            name=str(metadata.get("name", "")),
            project=str(spec.get("project", "")),
            destination=Destination.from_dict(spec.get("destination") or {}),
            resources=tuple(ResourceStatus.from_dict(r) for r in status.get("resources") or []),
            sync_status=str((status.get("sync") or {}).get("status", "")),
            health_status=str((status.get("health") or {}).get("status", "")),
        )

    @property
    def is_synced_and_healthy(self) -> bool:
        return self.sync_status == "Synced" and self.health_status == "Healthy"
