"""Registry of extraction adapters keyed by platform name."""

from typing import Dict, List, Optional, Tuple, Type

import structlog

from catalog_sync.core.exceptions import AdapterNotFoundError
from catalog_sync.scrapers.base import ExtractionAdapter
from catalog_sync.scrapers.schemas import PlatformConfig


logger = structlog.get_logger(__name__)


class AdapterRegistry:
    """Lookup from platform name to adapter class and its configuration.

    The orchestrator is written once against ExtractionAdapter; adding a
    platform is a registration, not a code change in the engine.
    """

    def __init__(self):
        self._adapters: Dict[str, Tuple[Type[ExtractionAdapter], PlatformConfig]] = {}

    def register(
        self,
        adapter_class: Type[ExtractionAdapter],
        config: Optional[PlatformConfig] = None,
    ) -> None:
        """Register an adapter class under its ``platform`` name.

        Args:
            adapter_class: Adapter class (must inherit from ExtractionAdapter)
            config: Configuration block; the adapter's default when omitted
        """
        if not (isinstance(adapter_class, type) and issubclass(adapter_class, ExtractionAdapter)):
            raise ValueError(f"Adapter class must inherit from ExtractionAdapter: {adapter_class}")

        config = config or adapter_class.default_config()
        platform = config.platform_name
        if adapter_class.platform and adapter_class.platform != platform:
            raise ValueError(
                f"Config for '{platform}' does not match adapter platform '{adapter_class.platform}'"
            )

        self._adapters[platform] = (adapter_class, config)
        logger.info(
            "adapter_registered",
            platform=platform,
            adapter_class=adapter_class.__name__,
            fetch_mode=config.fetch_mode.value,
            pagination=config.pagination.type.value,
        )

    def create(self, platform: str) -> ExtractionAdapter:
        """Create an adapter instance for ``platform``.

        Raises:
            AdapterNotFoundError: If no adapter is registered for the platform
        """
        adapter_class, config = self._lookup(platform)
        return adapter_class(config)

    def config_for(self, platform: str) -> PlatformConfig:
        return self._lookup(platform)[1]

    def platforms(self) -> List[str]:
        return list(self._adapters.keys())

    def has_adapter(self, platform: str) -> bool:
        return platform in self._adapters

    def _lookup(self, platform: str) -> Tuple[Type[ExtractionAdapter], PlatformConfig]:
        try:
            return self._adapters[platform]
        except KeyError:
            logger.warning("adapter_not_found", platform=platform)
            raise AdapterNotFoundError(platform) from None


# Global registry instance
adapter_registry = AdapterRegistry()


def get_adapter_registry() -> AdapterRegistry:
    """Get the global adapter registry instance."""
    return adapter_registry


def register_default_adapters(registry: Optional[AdapterRegistry] = None) -> AdapterRegistry:
    """Register the bundled platform adapters.

    Args:
        registry: Registry to fill; the global one when omitted

    Returns:
        The filled registry
    """
    from catalog_sync.scrapers.adapters import BigBasketAdapter, BlinkitAdapter, FlipkartAdapter

    registry = registry or get_adapter_registry()
    for adapter_class in (FlipkartAdapter, BigBasketAdapter, BlinkitAdapter):
        registry.register(adapter_class)

    logger.info("all_adapters_registered", count=len(registry.platforms()), platforms=registry.platforms())
    return registry
