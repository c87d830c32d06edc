import unittest

from loadwatch.lifecycle import LifecycleRegistry
from loadwatch.streams import Observable


class LifecycleRegistryTest(unittest.TestCase):
    def test_add_remove_contains(self) -> None:
        registry = LifecycleRegistry()
        self.assertTrue(registry.add("t-1"))
        self.assertFalse(registry.add("t-1"))
        self.assertTrue(registry.contains("t-1"))
        self.assertTrue(registry.remove("t-1"))
        self.assertFalse(registry.remove("t-1"))
        self.assertEqual(registry.snapshot(), frozenset())

    def test_snapshot_is_detached(self) -> None:
        registry = LifecycleRegistry()
        registry.add("t-1")
        before = registry.snapshot()
        registry.add("t-2")
        self.assertEqual(before, frozenset({"t-1"}))

    def test_stream_emits_only_on_change(self) -> None:
        registry = LifecycleRegistry()
        seen: list[frozenset[str]] = []
        registry.stream.subscribe(seen.append, replay=False)
        registry.replace(["a", "b"])
        registry.replace(["b", "a"])
        registry.add("b")
        registry.remove("a")
        self.assertEqual(seen, [frozenset({"a", "b"}), frozenset({"b"})])

    def test_retired_id_never_comes_back(self) -> None:
        registry = LifecycleRegistry()
        registry.replace(["a", "b"])
        registry.retire("a")
        self.assertEqual(registry.snapshot(), frozenset({"b"}))

        registry.replace(["a", "b"])
        self.assertFalse(registry.add("a"))
        self.assertEqual(registry.snapshot(), frozenset({"b"}))


class ObservableTest(unittest.TestCase):
    def test_replay_and_unsubscribe(self) -> None:
        stream: Observable[int] = Observable(1)
        seen: list[int] = []
        unsubscribe = stream.subscribe(seen.append)
        stream.publish(2)
        unsubscribe()
        unsubscribe()
        stream.publish(3)
        self.assertEqual(seen, [1, 2])
        self.assertEqual(stream.value, 3)
        self.assertEqual(stream.subscriber_count, 0)


if __name__ == "__main__":
    unittest.main()
