"""Core data structures for argowave."""

from argowave.models.config import ArgoCDConfig, ArgoWaveConfig, LogConfig, ScaleDownConfig
from argowave.models.resources import (
    DAEMONSET_KIND,
    POD_KIND,
    SCALABLE_KINDS,
    Application,
    Destination,
    ResourceKey,
    ResourceNode,
    ResourceRef,
    ResourceStatus,
    ResourceTree,
)

__all__ = [
    "DAEMONSET_KIND",
    "POD_KIND",
    "SCALABLE_KINDS",
    "Application",
    "ArgoCDConfig",
    "ArgoWaveConfig",
    "Destination",
    "LogConfig",
    "ResourceKey",
    "ResourceNode",
    "ResourceRef",
    "ResourceStatus",
    "ResourceTree",
    "ScaleDownConfig",
]
