import unittest

from fakes import result
from loadwatch.aggregator import merge
from loadwatch.cli import build_parser, format_view


class CliTest(unittest.TestCase):
    def test_watch_once_flag(self) -> None:
        parser = build_parser()
        args = parser.parse_args(["--config", "loadwatch.yaml", "watch", "--once"])
        self.assertEqual(args.command, "watch")
        self.assertTrue(args.once)

    def test_start_defaults(self) -> None:
        parser = build_parser()
        args = parser.parse_args(
            ["--config", "loadwatch.yaml", "start", "--endpoint", "http://localhost:8081/api/users", "--key", "k"]
        )
        self.assertEqual((args.rate, args.duration, args.concurrency), (50, 30, 5))
        self.assertEqual((args.pattern, args.method), ("CONSTANT_RATE", "GET"))

    def test_format_view(self) -> None:
        line = format_view(merge(result("t-1", total_requests=100, successful_requests=90)))
        self.assertIn("COMPLETED", line)
        self.assertIn("ok=90.0%", line)
        self.assertIn("progress=100%", line)


if __name__ == "__main__":
    unittest.main()
