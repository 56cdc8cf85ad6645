"""Parent/child membership tests over the live resource tree.

The tree is a graph: a node may list several parents, ownership chains are
several levels deep (Pod -> ReplicaSet -> Deployment), and malformed input may
contain cycles.  Walks go through ``ResourceTree.find_node`` and track visited
identities.
"""

from __future__ import annotations

from argowave.models.resources import DAEMONSET_KIND, ResourceKey, ResourceNode, ResourceTree


def is_descendant(
    tree: ResourceTree,
    node: ResourceNode | None,
    target: ResourceKey,
    _visited: set[ResourceKey] | None = None,
) -> bool:
    """Return True if *node* is *target* or is owned by it, directly or transitively."""
    if node is None:
        return False
    if node.key == target:
        return True
    visited = _visited if _visited is not None else set()
    if node.key in visited:
        return False
    visited.add(node.key)
    for ref in node.parent_refs:
        if ref.key == target:
            return True
        if is_descendant(tree, tree.find_node(ref.key), target, visited):
            return True
    return False


def is_daemonset_pod(node: ResourceNode) -> bool:
    return any(ref.kind == DAEMONSET_KIND for ref in node.parent_refs)


def remaining_pods(tree: ResourceTree, target: ResourceKey) -> list[ResourceNode]:
    """Pods in *tree* that still belong to *target*, DaemonSet pods excluded."""
    return [
        pod
        for pod in tree.pods()
        if not is_daemonset_pod(pod) and is_descendant(tree, pod, target)
    ]
