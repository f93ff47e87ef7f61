"""Service container wiring the client core together."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from typing import Any

LOGGER = logging.getLogger(__name__)

Factory = Callable[["ServiceContainer"], Any]


class ServiceContainer:
    """Dependency container resolving each service once, on first use."""

    def __init__(self) -> None:
        """Initialise container storage."""
        self._factories: dict[str, Factory] = {}
        self._instances: dict[str, Any] = {}
        self._resolution_order: list[str] = []

    def register(self, key: str, factory: Factory) -> None:
        """Register a lazily invoked factory under ``key``."""
        self._factories[key] = factory

    def register_instance(self, key: str, instance: Any) -> None:
        """Register an already constructed service under ``key``."""
        self._instances[key] = instance

    def resolve(self, key: str) -> Any:
        """Resolve a service by key, invoking its factory once."""
        if key in self._instances:
            return self._instances[key]
        if key not in self._factories:
            msg = f"Service '{key}' is not registered"
            raise KeyError(msg)
        instance = self._factories[key](self)
        self._instances[key] = instance
        self._resolution_order.append(key)
        return instance

    def is_resolved(self, key: str) -> bool:
        return key in self._instances

    async def aclose(self) -> None:
        """Close factory-built services in reverse resolution order."""
        for key in reversed(self._resolution_order):
            instance = self._instances.pop(key, None)
            closer = getattr(instance, "aclose", None) or getattr(
                instance, "close", None
            )
            if closer is None:
                continue
            LOGGER.debug("Closing service %s", key)
            result = closer()
            if inspect.isawaitable(result):
                await result
        self._resolution_order.clear()


__all__ = ["ServiceContainer"]
