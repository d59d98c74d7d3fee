"""Adapter registry for building engines by service name."""
import logging
from typing import Any, Callable, Dict, List, Optional

from chatstream.config import EngineConfig
from chatstream.engine import ChatEngine
from chatstream.providers.base import require_capabilities
from chatstream.providers.google import GoogleAdapter

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[EngineConfig], Any]


def _google_factory(config: EngineConfig) -> GoogleAdapter:
    if config.base_url:
        return GoogleAdapter(base_url=config.base_url, default_max_tokens=config.max_tokens)
    return GoogleAdapter(default_max_tokens=config.max_tokens)


class AdapterRegistry:
    """Maps service names to adapter factories.

    Usage:
        registry = AdapterRegistry()
        registry.register("google", lambda config: GoogleAdapter())
        adapter = registry.create("google", config)

    Build one registry per process and pass it to whatever creates engines.
    """

    def __init__(self):
        self._factories: Dict[str, AdapterFactory] = {}

    def register(self, service: str, factory: AdapterFactory) -> None:
        """Register an adapter factory for a service name."""
        self._factories[service] = factory

    def services(self) -> List[str]:
        return sorted(self._factories)

    def __contains__(self, service: str) -> bool:
        return service in self._factories

    def create(self, service: str, config: Optional[EngineConfig] = None) -> Any:
        """Build the adapter for a service name.

        Raises:
            ValueError: If no adapter is registered for the service.
        """
        factory = self._factories.get(service)
        if factory is None:
            available = ", ".join(self.services()) or "(none)"
            raise ValueError(
                f"No adapter registered for service '{service}'. "
                f"Available services: {available}"
            )
        adapter = factory(config or EngineConfig(service=service))
        require_capabilities(adapter)
        return adapter

    def create_engine(self, config: EngineConfig, **kwargs: Any) -> ChatEngine:
        """Build a ChatEngine for ``config.service``; kwargs go to ChatEngine."""
        adapter = self.create(config.service, config)
        logger.info("Created engine for service %s", config.service)
        return ChatEngine(adapter, config=config, **kwargs)


def default_registry() -> AdapterRegistry:
    """Registry with the built-in adapters."""
    registry = AdapterRegistry()
    registry.register(GoogleAdapter.service_id, _google_factory)
    return registry
