"""Unit tests for CallbackRegistry."""

from riotplan.mcp.callbacks import CallbackRegistry


class TestCallbackRegistry:
    """Tests for ordered registration and identity-based removal."""

    def test_preserves_registration_order(self):
        registry: CallbackRegistry = CallbackRegistry()
        first, second = (lambda: 1), (lambda: 2)
        registry.add(first)
        registry.add(second)
        assert registry.snapshot() == [first, second]
        assert list(registry) == [first, second]

    def test_same_function_twice_removed_independently(self):
        registry: CallbackRegistry = CallbackRegistry()

        def callback() -> None:
            pass

        remove_first = registry.add(callback)
        registry.add(callback)
        assert len(registry) == 2

        remove_first()
        assert len(registry) == 1
        assert registry.snapshot() == [callback]

    def test_remove_is_idempotent(self):
        registry: CallbackRegistry = CallbackRegistry()
        remove = registry.add(print)
        remove()
        remove()
        assert len(registry) == 0

    def test_snapshot_safe_during_mutation(self):
        registry: CallbackRegistry = CallbackRegistry()
        removers = [registry.add(print), registry.add(repr)]
        for _ in registry:
            for remove in removers:
                remove()
        assert len(registry) == 0

    def test_clear(self):
        registry: CallbackRegistry = CallbackRegistry()
        registry.add(print)
        registry.clear()
        assert registry.snapshot() == []
