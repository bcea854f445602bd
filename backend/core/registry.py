# core/registry.py — Module Registry for dependency injection
#
# Collaborator modules register the interfaces they implement (PmTaskStore,
# UsageSource, AssetResolver, WorkItemEmitter); the PM module looks them up
# when it builds a scheduler.

import logging
from typing import Any

log = logging.getLogger("pm.registry")


class ModuleRegistry:
    """
    Lightweight dependency injection registry.

    register_provider() advertises an implementation, get_provider() /
    require_provider() retrieve one, and validate_dependencies() checks every
    recorded REQUIRES declaration against the registered providers.
    """

    def __init__(self):
        self._providers: dict[str, Any] = {}
        self._declared_requires: list[tuple[str, str]] = []  # (module_id, interface)

    def register_provider(self, interface_name: str, impl: Any) -> None:
        """Register an implementation for the named interface (last writer wins)."""
        existing = self._providers.get(interface_name)
        if existing is not None and existing is not impl:
            log.warning(
                f"Interface '{interface_name}' already registered by "
                f"{type(existing).__name__!r}; overwriting with "
                f"{type(impl).__name__!r}"
            )
        self._providers[interface_name] = impl
        log.debug(f"Registered provider for '{interface_name}': {type(impl).__name__}")

    def get_provider(self, interface_name: str) -> Any:
        """Return the registered provider, or None (with a warning) when missing."""
        provider = self._providers.get(interface_name)
        if provider is None:
            log.warning(
                f"No provider registered for interface '{interface_name}'. "
                "Check that the implementing module is loaded."
            )
        return provider

    def require_provider(self, interface_name: str) -> Any:
        """Return the registered provider or raise LookupError."""
        provider = self._providers.get(interface_name)
        if provider is None:
            raise LookupError(f"No provider registered for interface '{interface_name}'")
        return provider

    def record_requires(self, module_id: str, requires: list[str]) -> None:
        """Record a module's REQUIRES list for validate_dependencies()."""
        for iface in requires:
            self._declared_requires.append((module_id, iface))

    def validate_dependencies(self) -> bool:
        """Return True when every recorded requirement has a provider.

        Logs each unsatisfied requirement; the caller decides whether to abort.
        """
        missing = [
            (module_id, iface)
            for module_id, iface in self._declared_requires
            if iface not in self._providers
        ]
        for module_id, iface in missing:
            log.error(
                f"Unsatisfied dependency: module '{module_id}' requires "
                f"'{iface}' but no provider is registered."
            )
        if missing:
            return False

        log.info(
            f"All module dependencies satisfied "
            f"({len(self._declared_requires)} declarations checked)."
        )
        return True

    @property
    def providers(self) -> dict[str, Any]:
        """Read-only view of all registered providers."""
        return dict(self._providers)
