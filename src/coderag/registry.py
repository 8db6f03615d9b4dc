"""Provider registry for coderag.

Maps config strings to factory functions that create provider instances.
Example: ``registry.create("embedding", "ollama", config)`` → ``OllamaEmbedder``.
"""

from __future__ import annotations

import importlib
import logging
from typing import TYPE_CHECKING, Any

from coderag.exceptions import PluginError

if TYPE_CHECKING:
    from collections.abc import Callable

    from coderag.config import CoderagConfig

__all__ = ["ProviderRegistry", "default_registry"]

logger = logging.getLogger(__name__)

_BUILTIN_MODULES = ("coderag.embed", "coderag.store", "coderag.generate")


class ProviderRegistry:
    """Config-driven factory that maps (category, name) → provider instance.

    Categories: ``"embedding"``, ``"store"``, ``"generation"``.

    When ``auto_discover`` is ``True``, the first lookup triggers a lazy
    import of the built-in provider packages so their providers register
    themselves without an explicit import.

    Usage::

        registry = ProviderRegistry()
        registry.register("embedding", "ollama", lambda cfg: OllamaEmbedder(cfg))
        embedder = registry.create("embedding", "ollama", config)
    """

    def __init__(self, *, auto_discover: bool = False) -> None:
        self._factories: dict[str, dict[str, Callable[..., Any]]] = {}
        self._auto_discover = auto_discover
        self._discovered = False

    def register(
        self,
        category: str,
        name: str,
        factory: Callable[..., Any],
    ) -> None:
        """Register a provider factory.

        Args:
            category: Provider category (e.g. "embedding", "store").
            name: Provider name (e.g. "ollama", "json").
            factory: Callable that accepts ``CoderagConfig`` (plus any keyword
                arguments given to :meth:`create`) and returns a provider.

        Raises:
            PluginError: If a provider with the same category+name already exists.
        """
        if category not in self._factories:
            self._factories[category] = {}

        if name in self._factories[category]:
            raise PluginError(f"Provider '{name}' already registered in category '{category}'")

        self._factories[category][name] = factory
        logger.debug("Registered provider %s/%s", category, name)

    def _ensure_discovered(self) -> None:
        """Lazily import built-in provider modules on first use."""
        if self._discovered or not self._auto_discover:
            return
        self._discovered = True
        for module in _BUILTIN_MODULES:
            try:
                importlib.import_module(module)
            except ImportError as e:
                logger.warning("%s not available for auto-discovery: %s", module, e)

    def create(self, category: str, name: str, config: CoderagConfig, **kwargs: Any) -> Any:
        """Create a provider instance from the registry.

        Args:
            category: Provider category.
            name: Provider name.
            config: Project configuration passed to the factory.
            **kwargs: Extra runtime arguments (e.g. ``persist_path`` for stores).

        Returns:
            Provider instance.

        Raises:
            PluginError: If the category or name is not registered.
        """
        self._ensure_discovered()

        if category not in self._factories:
            raise PluginError(
                f"Unknown provider category '{category}'. Available: {sorted(self._factories)}"
            )

        if name not in self._factories[category]:
            raise PluginError(
                f"Unknown provider '{name}' in category '{category}'. "
                f"Available: {sorted(self._factories[category])}"
            )

        factory = self._factories[category][name]
        logger.info("Creating provider %s/%s", category, name)
        return factory(config, **kwargs)

    def list_providers(self, category: str) -> list[str]:
        """List registered provider names for a category."""
        self._ensure_discovered()
        if category not in self._factories:
            return []
        return sorted(self._factories[category])

    def has_provider(self, category: str, name: str) -> bool:
        """Check whether a provider is registered."""
        self._ensure_discovered()
        return category in self._factories and name in self._factories[category]


default_registry = ProviderRegistry(auto_discover=True)
