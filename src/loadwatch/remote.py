from __future__ import annotations

from collections.abc import Mapping
from typing import Any
from urllib.parse import quote

import httpx

from .config import ServiceConfig
from .errors import ConnectivityError, ServiceError
from .models import JobRequest, JobResult, JobStatusSnapshot, JobSummary, StartJobResponse

OFFLINE_STATUS = "offline"


class LoadTesterClient:
    """Async client for the load tester service REST API."""

    def __init__(
        self,
        service_config: ServiceConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.service_config = service_config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.service_config.base_url,
                timeout=httpx.Timeout(self.service_config.timeout_seconds),
                headers={"Content-Type": "application/json"},
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        client = self._get_client()
        try:
            return await client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            raise ConnectivityError(
                f"{method} {path} timed out after {self.service_config.timeout_seconds}s"
            ) from exc
        except httpx.RequestError as exc:
            raise ConnectivityError(f"{method} {path} failed: {exc}") from exc

    def _require_ok(self, response: httpx.Response, context: str) -> None:
        if response.status_code >= 400:
            body = response.text.strip()[:200]
            raise ServiceError(
                f"{context} failed: HTTP {response.status_code}" + (f" {body}" if body else ""),
                status_code=response.status_code,
            )

    def _json(self, response: httpx.Response, context: str) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise ServiceError(f"{context} returned invalid JSON", status_code=response.status_code) from exc

    async def _get_json(self, path: str, context: str) -> Any:
        response = await self._send("GET", path)
        self._require_ok(response, context)
        return self._json(response, context)

    def _object(self, data: Any, context: str) -> Mapping[str, Any]:
        if not isinstance(data, Mapping):
            raise ServiceError(f"{context} returned a non-object body")
        return data

    async def probe_health(self) -> str:
        """Return the reported status string; non-2xx answers map to ``offline``."""
        response = await self._send("GET", "/health", headers={"Cache-Control": "no-store"})
        if response.status_code >= 400:
            return OFFLINE_STATUS
        data = self._json(response, "health probe")
        if not isinstance(data, Mapping):
            return OFFLINE_STATUS
        return str(data.get("status") or data.get("Status") or "UP")

    async def list_jobs(self) -> list[JobSummary]:
        data = await self._get_json("/list", "list jobs")
        if not isinstance(data, list):
            raise ServiceError("list jobs returned a non-list body")
        try:
            return [JobSummary.from_dict(self._object(item, "list jobs")) for item in data]
        except (KeyError, TypeError, ValueError) as exc:
            raise ServiceError(f"list jobs returned a malformed entry: {exc}") from exc

    async def start_job(self, request: JobRequest) -> StartJobResponse:
        response = await self._send("POST", "/start", json=request.to_dict())
        self._require_ok(response, "start job")
        data = self._object(self._json(response, "start job"), "start job")
        try:
            return StartJobResponse.from_dict(data)
        except (KeyError, TypeError, ValueError) as exc:
            raise ServiceError(f"start job returned a malformed body: {exc}") from exc

    async def get_status(self, job_id: str) -> JobStatusSnapshot:
        context = f"status of {job_id}"
        data = self._object(await self._get_json(f"/status/{quote(job_id, safe='')}", context), context)
        try:
            return JobStatusSnapshot.from_dict(data)
        except (KeyError, TypeError, ValueError) as exc:
            raise ServiceError(f"status of {job_id} is malformed: {exc}") from exc

    async def get_result(self, job_id: str) -> JobResult:
        context = f"result of {job_id}"
        data = self._object(await self._get_json(f"/result/{quote(job_id, safe='')}", context), context)
        try:
            return JobResult.from_dict(data)
        except (KeyError, TypeError, ValueError) as exc:
            raise ServiceError(f"result of {job_id} is malformed: {exc}") from exc

    async def stop_job(self, job_id: str) -> None:
        response = await self._send("DELETE", f"/stop/{quote(job_id, safe='')}")
        self._require_ok(response, f"stop {job_id}")
