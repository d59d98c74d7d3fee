"""Tests for AdapterRegistry."""
import pytest
from unittest.mock import Mock

from chatstream.config import EngineConfig
from chatstream.engine import ChatEngine
from chatstream.errors import AdapterCapabilityError
from chatstream.providers.google import GoogleAdapter
from chatstream.providers.registry import AdapterRegistry, default_registry

pytestmark = pytest.mark.unit


class TestAdapterRegistry:
    """Test AdapterRegistry functionality."""

    def test_register_and_create_adapter(self, fake_adapter):
        """Test registering a factory and building its adapter."""
        registry = AdapterRegistry()
        registry.register("fake", lambda config: fake_adapter)

        assert registry.create("fake") is fake_adapter

    def test_factory_receives_config(self, fake_adapter):
        """Test that the factory is called with the given config."""
        registry = AdapterRegistry()
        factory = Mock(return_value=fake_adapter)
        registry.register("fake", factory)
        config = EngineConfig(service="fake", model="m1")

        registry.create("fake", config)

        factory.assert_called_once_with(config)

    def test_factory_gets_default_config(self, fake_adapter):
        registry = AdapterRegistry()
        factory = Mock(return_value=fake_adapter)
        registry.register("fake", factory)

        registry.create("fake")

        assert factory.call_args.args[0].service == "fake"

    def test_create_unknown_service_raises_error(self):
        """Test that creating an unregistered service raises ValueError."""
        registry = AdapterRegistry()

        with pytest.raises(ValueError, match="No adapter registered for service 'nonexistent'"):
            registry.create("nonexistent")

    def test_error_message_includes_available_services(self, fake_adapter):
        """Test that error message lists available services."""
        registry = AdapterRegistry()
        registry.register("service-b", lambda config: fake_adapter)
        registry.register("service-a", lambda config: fake_adapter)

        with pytest.raises(ValueError, match="Available services: service-a, service-b"):
            registry.create("missing")

    def test_empty_registry_error_message(self):
        """Test error message when no adapters are registered."""
        registry = AdapterRegistry()

        with pytest.raises(ValueError, match="Available services: \\(none\\)"):
            registry.create("any")

    def test_register_replaces_factory(self, fake_adapter, minimal_adapter):
        registry = AdapterRegistry()
        registry.register("svc", lambda config: fake_adapter)
        registry.register("svc", lambda config: minimal_adapter)

        assert registry.create("svc") is minimal_adapter
        assert registry.services() == ["svc"]

    def test_contains(self, fake_adapter):
        registry = AdapterRegistry()
        registry.register("fake", lambda config: fake_adapter)

        assert "fake" in registry
        assert "other" not in registry

    def test_create_rejects_incomplete_adapter(self):
        """Test that adapters missing a required capability are rejected."""

        class NoContent:
            service_id = "broken"
            is_local = False

            def build_wire_request(self, options):
                return {}

        registry = AdapterRegistry()
        registry.register("broken", lambda config: NoContent())

        with pytest.raises(AdapterCapabilityError, match="missing required capability 'parse_content'"):
            registry.create("broken")

    async def test_create_engine(self, fake_adapter):
        """Test building an engine for the configured service."""
        registry = AdapterRegistry()
        registry.register("fake", lambda config: fake_adapter)
        config = EngineConfig(service="fake", model="m1")

        engine = registry.create_engine(config)

        assert isinstance(engine, ChatEngine)
        assert engine.adapter is fake_adapter
        assert engine.config is config
        await engine.aclose()


class TestDefaultRegistry:
    """Test the built-in registry."""

    def test_google_registered(self):
        registry = default_registry()

        assert registry.services() == ["google"]
        assert isinstance(registry.create("google"), GoogleAdapter)

    def test_google_factory_applies_config(self):
        """Test that base_url and max_tokens flow from config to the adapter."""
        config = EngineConfig(service="google", base_url="http://localhost:9000/v1", max_tokens=512)

        adapter = default_registry().create("google", config)

        assert adapter.base_url == "http://localhost:9000/v1"
        assert adapter.default_max_tokens == 512
