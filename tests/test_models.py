import unittest

from loadwatch.errors import ValidationError
from loadwatch.models import (
    HttpMethod,
    JobRequest,
    JobStatus,
    RequestPattern,
)


def valid_request(**overrides: object) -> JobRequest:
    values: dict[str, object] = {
        "target_endpoint": "http://localhost:8081/api/users",
        "target_key": "nx_test_key_12345",
        "request_rate": 100,
        "duration_seconds": 30,
        "concurrency_level": 10,
    }
    values.update(overrides)
    return JobRequest(**values)  # type: ignore[arg-type]


class JobRequestValidationTest(unittest.TestCase):
    def test_valid_request_normalises_enums(self) -> None:
        request = valid_request(pattern="burst", method="put")
        request.validate()
        self.assertIs(request.pattern, RequestPattern.BURST)
        self.assertIs(request.method, HttpMethod.PUT)

    def test_rate_out_of_range_cites_bounds(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            valid_request(request_rate=20000).validate()
        self.assertIn("[1, 10000]", ctx.exception.errors["requestRate"])
        self.assertIn("[1, 10000]", str(ctx.exception))

    def test_all_violations_reported_together(self) -> None:
        request = valid_request(
            target_endpoint="ftp://example.com",
            target_key="  ",
            duration_seconds=0,
            concurrency_level=501,
            pattern="SPIKE",
            method="PATCH",
        )
        with self.assertRaises(ValidationError) as ctx:
            request.validate()
        self.assertEqual(
            set(ctx.exception.errors),
            {"targetEndpoint", "targetKey", "durationSeconds", "concurrencyLevel", "requestPattern", "httpMethod"},
        )
        self.assertIn("[1, 3600]", ctx.exception.errors["durationSeconds"])
        self.assertIn("[1, 500]", ctx.exception.errors["concurrencyLevel"])

    def test_bounds_are_inclusive(self) -> None:
        valid_request(request_rate=1, duration_seconds=3600, concurrency_level=500).validate()
        valid_request(request_rate=10000, duration_seconds=1, concurrency_level=1).validate()


class PayloadTest(unittest.TestCase):
    def test_terminal_statuses(self) -> None:
        self.assertFalse(JobStatus.RUNNING.is_terminal)
        self.assertTrue(all(status.is_terminal for status in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.STOPPED)))


if __name__ == "__main__":
    unittest.main()
