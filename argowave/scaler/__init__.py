"""Sync-wave ordered scale-down of an Argo CD application's workloads.

Submodules
----------
discovery    -- scalable workload discovery and wave grouping.
patch        -- replicas=0 merge patch through Argo CD.
tree         -- descendant tests over the live resource tree.
drain        -- PodDrainPoller: per-workload pod-drain state machine.
evictor      -- PodEvictor: lazily connected direct pod deletion.
orchestrator -- ScaleDownOrchestrator: wave-by-wave fan-out and fan-in.
"""

from argowave.scaler.discovery import WaveGroup, discover_workloads, group_by_wave
from argowave.scaler.drain import DrainState, PodDrainPoller
from argowave.scaler.evictor import PodEvictor
from argowave.scaler.orchestrator import ScaleDownOrchestrator, ScaleDownReport
from argowave.scaler.patch import patch_replicas_zero
from argowave.scaler.tree import is_descendant, remaining_pods

__all__ = [
    "DrainState",
    "PodDrainPoller",
    "PodEvictor",
    "ScaleDownOrchestrator",
    "ScaleDownReport",
    "WaveGroup",
    "discover_workloads",
    "group_by_wave",
    "is_descendant",
    "patch_replicas_zero",
    "remaining_pods",
]
