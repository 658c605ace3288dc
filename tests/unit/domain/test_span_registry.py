from unittest.mock import Mock

from storefront_telemetry.domain.entities import SpanRegistry


def test_new_handle_uses_name_and_timestamp():
    registry = SpanRegistry(clock=lambda: 1234)
    assert registry.new_handle("checkout") == "checkout_1234"


def test_new_handle_disambiguates_live_collisions():
    registry = SpanRegistry(clock=lambda: 1234)
    first = registry.new_handle("checkout")
    registry.add(first, Mock())
    second = registry.new_handle("checkout")
    registry.add(second, Mock())
    third = registry.new_handle("checkout")

    assert first == "checkout_1234"
    assert second != first
    assert third not in (first, second)
    assert second.startswith("checkout_1234_")


def test_handle_can_be_reused_once_ended():
    registry = SpanRegistry(clock=lambda: 1234)
    handle = registry.new_handle("checkout")
    registry.add(handle, Mock())
    registry.pop(handle)
    assert registry.new_handle("checkout") == handle


def test_pop_unknown_handle_returns_none():
    registry = SpanRegistry(clock=lambda: 1234)
    assert registry.pop("missing") is None
    assert registry.get("missing") is None
    assert len(registry) == 0


def test_registry_tracks_membership():
    registry = SpanRegistry(clock=lambda: 1)
    span = Mock()
    registry.add("a_1", span)
    assert "a_1" in registry
    assert registry.get("a_1") is span
    assert len(registry) == 1
    assert registry.pop("a_1") is span
    assert "a_1" not in registry
