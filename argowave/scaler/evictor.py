"""Direct pod deletion against the application's destination cluster.

Argo CD has no API for deleting a child pod with a chosen grace period, so
force-deletes go straight to the Kubernetes API server the application
deploys into, authenticated with the Argo CD bearer token.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]
from kubernetes_asyncio.client.rest import ApiException  # type: ignore[import-untyped]

from argowave.observability.logging import get_logger

_logger = get_logger("scaler.evictor")


class PodEvictor:
    """Deletes pods through a CoreV1 client built on first use.

    One evictor serves one scale-down run.  The underlying API client is
    created at most once, under a lock, and shared by every workload task of
    the run.

    Args:
        resolve_server: Coroutine function returning the cluster API URL.
        token:          Bearer token presented to the cluster.
    """

    def __init__(self, resolve_server: Callable[[], Awaitable[str]], token: str) -> None:
        self._resolve_server = resolve_server
        self._token = token
        self._lock = asyncio.Lock()
        self._api_client: k8s_client.ApiClient | None = None
        self._core_v1: k8s_client.CoreV1Api | None = None

    @property
    def connected(self) -> bool:
        return self._core_v1 is not None

    async def _core(self) -> k8s_client.CoreV1Api:
        async with self._lock:
            if self._core_v1 is None:
                server = await self._resolve_server()
                configuration = k8s_client.Configuration(host=server)
                configuration.api_key = {"authorization": f"Bearer {self._token}"}
                configuration.verify_ssl = False
                self._api_client = k8s_client.ApiClient(configuration)
                self._core_v1 = k8s_client.CoreV1Api(self._api_client)
                _logger.info("cluster_client_created", server=server)
            return self._core_v1

    async def delete_pod(self, namespace: str, name: str, grace_period_seconds: int) -> bool:
        """Delete one pod.  Returns False if it was already gone."""
        core = await self._core()
        try:
            await core.delete_namespaced_pod(
                name=name,
                namespace=namespace,
                grace_period_seconds=grace_period_seconds,
            )
        except ApiException as exc:
            if exc.status == 404:
                return False
            raise
        return True

    async def close(self) -> None:
        if self._api_client is not None:
            await self._api_client.close()
            self._api_client = None
            self._core_v1 = None
