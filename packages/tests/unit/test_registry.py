"""Tests for pmclock._registry — observer bindings and registry.

Test Techniques Used:
    - State-based Testing: register / unregister / replace semantics
    - Specification-based Testing: ObserverBinding immutability
"""

from __future__ import annotations

from dataclasses import FrozenInstanceError

import pytest

from pmclock._registry import ObserverBinding, ObserverRegistry


def _endpoint(start_time: int) -> None:
    """No-op endpoint."""


@pytest.fixture
def registry() -> ObserverRegistry:
    return ObserverRegistry()


class TestObserverBinding:
    """Technique: Specification-based Testing."""

    def test_all_endpoints_optional(self) -> None:
        binding = ObserverBinding()
        assert binding.current_window is None
        assert binding.historical_window is None
        assert binding.current_day is None

    def test_is_frozen(self) -> None:
        binding = ObserverBinding(current_day=_endpoint)
        with pytest.raises(FrozenInstanceError):
            binding.current_day = None  # type: ignore[misc]


class TestObserverRegistry:
    """Technique: State-based Testing."""

    def test_register_adds_entry(self, registry: ObserverRegistry) -> None:
        binding = ObserverBinding(current_window=_endpoint)
        registry.register("port-1", binding)
        assert "port-1" in registry
        assert registry.get("port-1") is binding
        assert len(registry) == 1

    def test_reregister_replaces_binding(self, registry: ObserverRegistry) -> None:
        """Same name twice leaves one entry equal to the second binding."""
        first = ObserverBinding(current_window=_endpoint, current_day=_endpoint)
        second = ObserverBinding(historical_window=_endpoint)

        registry.register("port-1", first)
        registry.register("port-1", second)

        assert registry.names() == ["port-1"]
        assert registry.get("port-1") == second
        # Replace, not merge.
        assert registry.get("port-1").current_day is None  # type: ignore[union-attr]

    def test_unregister_removes_entry(self, registry: ObserverRegistry) -> None:
        registry.register("port-1", ObserverBinding())
        registry.unregister("port-1")
        assert "port-1" not in registry
        assert registry.get("port-1") is None

    def test_unregister_unknown_is_noop(self, registry: ObserverRegistry) -> None:
        registry.register("port-1", ObserverBinding())
        registry.unregister("never-registered")
        assert registry.names() == ["port-1"]

    def test_items_is_snapshot(self, registry: ObserverRegistry) -> None:
        """Mutating the registry does not disturb a taken snapshot."""
        registry.register("a", ObserverBinding())
        snapshot = registry.items()
        registry.register("b", ObserverBinding())
        registry.unregister("a")
        assert [name for name, _ in snapshot] == ["a"]

    def test_iteration_yields_names(self, registry: ObserverRegistry) -> None:
        registry.register("a", ObserverBinding())
        registry.register("b", ObserverBinding())
        assert set(registry) == {"a", "b"}
