"""Async Argo CD REST client.

Wraps the subset of the Argo CD API server's HTTP/JSON gateway that argowave
needs: session login, application reads, resource tree, resource patch and
sync.  Every call returns a model from ``argowave.models.resources`` or raises
``ArgoCDAPIError``.

Usage::

    async with ArgoCDClient(config.argocd) as client:
        await client.login()
        app = await client.get_application("game", project="default")
"""

from __future__ import annotations

import asyncio
import json
import ssl
from typing import Any

import httpx
import structlog

from argowave.errors import ArgoCDAPIError, AuthenticationError, WaitTimeoutError
from argowave.models.config import ArgoCDConfig
from argowave.models.resources import Application, ResourceStatus, ResourceTree

_log = structlog.get_logger(component="argocd.client")

_HEALTH_POLL_INTERVAL = 2.0


class ArgoCDClient:
    """Client for a single Argo CD API server.

    Args:
        config:    Connection settings (server, TLS, credentials).
        transport: Optional httpx transport, used by tests to stub the server.
    """

    def __init__(self, config: ArgoCDConfig, transport: httpx.AsyncBaseTransport | None = None) -> None:
        if not config.server:
            raise ValueError("Argo CD server address must not be empty")
        self._config = config
        self._transport = transport
        self._token = config.auth_token
        self._tls_no_verify = config.tls_no_verify
        self._http = self._build_http()

    @property
    def base_url(self) -> str:
        server = self._config.server.rstrip("/")
        if "://" not in server:
            scheme = "http" if self._config.plaintext else "https"
            server = f"{scheme}://{server}"
        root = self._config.root_path.strip().strip("/")
        return f"{server}/{root}" if root else server

    @property
    def auth_token(self) -> str:
        """Bearer token used for API calls, empty until login when using a password."""
        return self._token

    @property
    def tls_no_verify(self) -> bool:
        return self._tls_no_verify

    def _build_http(self) -> httpx.AsyncClient:
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            verify=not self._tls_no_verify,
            timeout=self._config.request_timeout,
            transport=self._transport,
        )

    async def _rebuild_http(self) -> None:
        await self._http.aclose()
        self._http = self._build_http()

    async def close(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> ArgoCDClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    async def login(self) -> None:
        """Obtain a session token from username/password when no token is set.

        A login that fails on certificate verification is retried once with
        verification disabled.
        """
        _log.debug(
            "client_init",
            server=self._config.server,
            plaintext=self._config.plaintext,
            tls_no_verify=self._tls_no_verify,
            has_token=bool(self._token),
            user=self._config.username,
        )
        if self._token or not self._config.username:
            return

        _log.info("session_login", username=self._config.username)
        try:
            token = await self._create_session()
        except httpx.ConnectError as exc:
            if not _is_certificate_error(exc) or self._tls_no_verify:
                raise ArgoCDAPIError(f"cannot reach {self.base_url}: {exc}") from exc
            _log.warning("session_login_tls_verify_failed", retry_with="tls_no_verify")
            self._tls_no_verify = True
            await self._rebuild_http()
            try:
                token = await self._create_session()
            except httpx.HTTPError as retry_exc:
                raise ArgoCDAPIError(f"cannot reach {self.base_url}: {retry_exc}") from retry_exc

        if not token:
            raise AuthenticationError("session login returned no token")
        self._token = token
        await self._rebuild_http()
        _log.info("session_login_succeeded")

    async def _create_session(self) -> str:
        response = await self._http.post(
            "/api/v1/session",
            json={"username": self._config.username, "password": self._config.password},
        )
        if response.status_code in (401, 403):
            raise AuthenticationError(
                _error_message(response, "session login rejected"),
                status_code=response.status_code,
                code=_error_code(response),
            )
        _raise_for_status(response)
        return str(_json_object(response).get("token", ""))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def version(self) -> str:
        data = await self._request("GET", "/api/version")
        return str(data.get("Version", ""))

    async def list_applications(self, project: str = "") -> list[Application]:
        params = {"projects": project} if project else None
        data = await self._request("GET", "/api/v1/applications", params=params)
        return [Application.from_dict(item) for item in data.get("items") or []]

    async def get_application(self, name: str, project: str = "") -> Application:
        params = {"projects": project} if project else None
        data = await self._request("GET", f"/api/v1/applications/{name}", params=params)
        return Application.from_dict(data)

    async def resource_tree(self, app_name: str, project: str = "") -> ResourceTree:
        params = {"project": project} if project else None
        data = await self._request("GET", f"/api/v1/applications/{app_name}/resource-tree", params=params)
        return ResourceTree.from_dict(data)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def patch_resource(
        self,
        app_name: str,
        resource: ResourceStatus,
        patch: str,
        patch_type: str,
        project: str = "",
    ) -> None:
        """Patch one live resource managed by *app_name*.

        The gateway takes the patch document itself as the request body,
        encoded as a JSON string.
        """
        params = {
            "namespace": resource.namespace,
            "resourceName": resource.name,
            "version": resource.version,
            "group": resource.group,
            "kind": resource.kind,
            "patchType": patch_type,
        }
        if project:
            params["project"] = project
        await self._request(
            "POST",
            f"/api/v1/applications/{app_name}/resource",
            params=params,
            content=json.dumps(patch),
            headers={"Content-Type": "application/json"},
        )

    async def sync_application(self, name: str, prune: bool = False, dry_run: bool = False) -> Application:
        data = await self._request(
            "POST",
            f"/api/v1/applications/{name}/sync",
            json={"name": name, "prune": prune, "dryRun": dry_run},
        )
        return Application.from_dict(data)

    async def wait_for_healthy(
        self,
        name: str,
        timeout: float,
        interval: float = _HEALTH_POLL_INTERVAL,
    ) -> Application:
        """Poll *name* until it is Synced and Healthy.

        Raises:
            WaitTimeoutError: if *timeout* seconds pass first.
        """
        try:
            async with asyncio.timeout(timeout):
                while True:
                    app = await self.get_application(name)
                    if app.is_synced_and_healthy:
                        return app
                    _log.debug("waiting_for_healthy", app=name, sync=app.sync_status, health=app.health_status)
                    await asyncio.sleep(interval)
        except TimeoutError as exc:
            raise WaitTimeoutError(f"wait healthy timeout: {name}") from exc

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = await self._http.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            raise ArgoCDAPIError(f"{method} {path} timed out") from exc
        except httpx.HTTPError as exc:
            raise ArgoCDAPIError(f"{method} {path} failed: {exc}") from exc
        _raise_for_status(response)
        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as exc:
            raise ArgoCDAPIError(f"{method} {path}: invalid JSON response", status_code=response.status_code) from exc
        if not isinstance(data, dict):
            raise ArgoCDAPIError(f"{method} {path}: unexpected response body", status_code=response.status_code)
        return data


def _raise_for_status(response: httpx.Response) -> None:
    if response.is_success:
        return
    error = ArgoCDAPIError(
        _error_message(response, response.reason_phrase),
        status_code=response.status_code,
        code=_error_code(response),
    )
    if error.is_unauthenticated:
        raise AuthenticationError(error.message, status_code=error.status_code, code=error.code)
    raise error


def _json_object(response: httpx.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _error_message(response: httpx.Response, default: str) -> str:
    body = _json_object(response)
    return str(body.get("message") or body.get("error") or response.text[:200] or default)


def _error_code(response: httpx.Response) -> int | None:
    code = _json_object(response).get("code")
    return code if isinstance(code, int) else None


def _is_certificate_error(exc: BaseException) -> bool:
    """Return True if *exc* or anything in its cause chain is a TLS verify failure."""
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, ssl.SSLCertVerificationError):
            return True
        text = str(current).lower()
        if "certificate verify failed" in text or "certificate_verify_failed" in text:
            return True
        current = current.__cause__ or current.__context__
    return False
