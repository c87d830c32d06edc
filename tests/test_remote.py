from __future__ import annotations

import json
import unittest

import httpx

from loadwatch.config import ServiceConfig
from loadwatch.errors import ConnectivityError, ServiceError
from loadwatch.models import JobRequest, JobResult, JobStatus
from loadwatch.remote import LoadTesterClient

BASE_URL = "http://load-tester.test/api/load-test"

STATUS_BODY = {
    "testId": "t-1",
    "status": "RUNNING",
    "totalRequests": 55,
    "successfulRequests": 50,
    "rateLimitedRequests": 5,
    "errorRequests": None,
    "averageLatencyMs": 42.5,
    "p95LatencyMs": None,
    "requestsPerSecond": 18.3,
    "targetEndpoint": "http://localhost:8081/api/users",
    "configuredRequestRate": 20,
    "concurrencyLevel": 4,
}

RESULT_BODY = {
    **STATUS_BODY,
    "status": "COMPLETED",
    "errorRate": 0.0,
    "testDurationSeconds": 30,
    "targetKey": "nx_test_key_12345",
    "requestPattern": "BURST",
    "httpMethod": "POST",
    "statusCodeDistribution": {"200": 50, "429": 5},
    "startTime": "2026-10-18T10:00:00",
    "endTime": "2026-10-18T10:00:30",
}


class LoadTesterClientTest(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.requests: list[httpx.Request] = []
        self.routes: dict[tuple[str, str], httpx.Response] = {}
        self.transport_error: Exception | None = None

        def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            if self.transport_error is not None:
                raise self.transport_error
            path = request.url.path.removeprefix("/api/load-test")
            response = self.routes.get((request.method, path))
            if response is None:
                return httpx.Response(404, json={"error": "Test not found"})
            return response

        self.client = LoadTesterClient(
            ServiceConfig(base_url=BASE_URL, timeout_seconds=1.0),
            transport=httpx.MockTransport(handler),
        )

    async def asyncTearDown(self) -> None:
        await self.client.aclose()

    async def test_probe_health_reports_status(self) -> None:
        self.routes[("GET", "/health")] = httpx.Response(200, json={"status": "UP", "service": "load-tester-service"})
        self.assertEqual(await self.client.probe_health(), "UP")

    async def test_probe_health_maps_error_status_to_offline(self) -> None:
        self.routes[("GET", "/health")] = httpx.Response(503, text="unavailable")
        self.assertEqual(await self.client.probe_health(), "offline")

    async def test_probe_health_without_status_field_counts_as_up(self) -> None:
        self.routes[("GET", "/health")] = httpx.Response(200, json={"service": "load-tester-service"})
        self.assertEqual(await self.client.probe_health(), "UP")

    async def test_transport_failure_is_connectivity_error(self) -> None:
        self.transport_error = httpx.ConnectError("connection refused")
        with self.assertRaises(ConnectivityError):
            await self.client.get_status("t-1")

    async def test_list_jobs(self) -> None:
        self.routes[("GET", "/list")] = httpx.Response(
            200,
            json=[
                {
                    "testId": "t-1",
                    "status": "RUNNING",
                    "targetEndpoint": "http://localhost:8081/api/users",
                    "requestRate": 20,
                    "startTime": "2026-10-18T10:00:00",
                    "totalRequests": 55,
                },
                {"testId": "t-0", "status": "completed", "targetEndpoint": "http://x", "requestRate": None},
            ],
        )
        jobs = await self.client.list_jobs()
        self.assertEqual([job.job_id for job in jobs], ["t-1", "t-0"])
        self.assertIs(jobs[1].status, JobStatus.COMPLETED)
        self.assertEqual(jobs[0].configured_rate, 20)
        self.assertEqual(jobs[1].configured_rate, 0)
        self.assertIsNone(jobs[1].start_time)

    async def test_list_jobs_rejects_unknown_status(self) -> None:
        self.routes[("GET", "/list")] = httpx.Response(200, json=[{"testId": "t-1", "status": "PAUSED"}])
        with self.assertRaises(ServiceError):
            await self.client.list_jobs()

    async def test_start_job_sends_wire_body(self) -> None:
        self.routes[("POST", "/start")] = httpx.Response(
            202,
            json={"testId": "t-9", "status": "RUNNING", "message": "Load test started successfully"},
        )
        request = JobRequest(
            target_endpoint="http://localhost:8081/api/users",
            target_key="nx_test_key_12345",
            request_rate=20,
            duration_seconds=30,
            concurrency_level=4,
            pattern="ramp_up",
            method="post",
        )
        request.validate()
        response = await self.client.start_job(request)

        self.assertEqual(response.job_id, "t-9")
        self.assertIs(response.status, JobStatus.RUNNING)
        body = json.loads(self.requests[-1].content)
        self.assertEqual(
            body,
            {
                "targetKey": "nx_test_key_12345",
                "targetEndpoint": "http://localhost:8081/api/users",
                "requestRate": 20,
                "durationSeconds": 30,
                "concurrencyLevel": 4,
                "requestPattern": "RAMP_UP",
                "httpMethod": "POST",
            },
        )

    async def test_get_status_keeps_missing_numbers_absent(self) -> None:
        self.routes[("GET", "/status/t-1")] = httpx.Response(200, json=STATUS_BODY)
        status = await self.client.get_status("t-1")
        self.assertEqual(status.total_requests, 55)
        self.assertIsNone(status.error_requests)
        self.assertIsNone(status.p95_latency_ms)
        self.assertNotIsInstance(status, JobResult)

    async def test_get_result_parses_histogram(self) -> None:
        self.routes[("GET", "/result/t-1")] = httpx.Response(200, json=RESULT_BODY)
        full = await self.client.get_result("t-1")
        self.assertIs(full.status, JobStatus.COMPLETED)
        self.assertEqual(full.status_code_distribution, {200: 50, 429: 5})
        self.assertEqual(full.request_pattern, "BURST")
        self.assertEqual(full.to_dict()["statusCodeDistribution"], {"200": 50, "429": 5})

    async def test_stop_unknown_job_is_service_error(self) -> None:
        with self.assertRaises(ServiceError) as ctx:
            await self.client.stop_job("missing")
        self.assertEqual(ctx.exception.status_code, 404)
        self.assertEqual(self.requests[-1].method, "DELETE")

    async def test_invalid_json_is_service_error(self) -> None:
        self.routes[("GET", "/status/t-1")] = httpx.Response(200, text="<html>")
        with self.assertRaises(ServiceError):
            await self.client.get_status("t-1")

    async def test_non_object_body_is_service_error(self) -> None:
        self.routes[("GET", "/status/t-1")] = httpx.Response(200, content=b"null")
        self.routes[("GET", "/result/t-1")] = httpx.Response(200, json=[1, 2])
        self.routes[("POST", "/start")] = httpx.Response(200, content=b"null")
        self.routes[("GET", "/list")] = httpx.Response(200, json=[None])
        with self.assertRaises(ServiceError):
            await self.client.get_status("t-1")
        with self.assertRaises(ServiceError):
            await self.client.get_result("t-1")
        with self.assertRaises(ServiceError):
            await self.client.start_job(
                JobRequest(target_endpoint="http://localhost:8081/api/users", target_key="nx_test_key_12345")
            )
        with self.assertRaises(ServiceError):
            await self.client.list_jobs()


if __name__ == "__main__":
    unittest.main()
