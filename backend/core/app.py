# core/app.py — App factory with dynamic module discovery
#
# Discovers all modules under backend/modules/, resolves load order from
# REQUIRES/IMPLEMENTS declarations, registers each module's providers on a
# ModuleRegistry, and mounts module routes on the FastAPI app.
#
# main.py: from core.app import create_app; app = create_app()

import importlib
import logging
import pathlib
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from core.registry import ModuleRegistry

log = logging.getLogger("pm.api")

__version__ = "1.0.0"


# ---------------------------------------------------------------------------
# Module discovery helpers
# ---------------------------------------------------------------------------

def _discover_modules() -> list[str]:
    """Return the module package names found under backend/modules/.

    A valid module directory contains an __init__.py with a MODULE_ID attribute.
    """
    modules_dir = pathlib.Path(__file__).parent.parent / "modules"
    found = []
    for entry in sorted(modules_dir.iterdir()):
        if not entry.is_dir() or not (entry / "__init__.py").exists():
            continue
        pkg_name = f"modules.{entry.name}"
        try:
            mod = importlib.import_module(pkg_name)
        except Exception as exc:
            log.warning(f"Module discovery: skipping {pkg_name!r}: {exc}")
            continue
        if hasattr(mod, "MODULE_ID"):
            found.append(pkg_name)
    return found


def _resolve_load_order(pkg_names: list[str]) -> list[str]:
    """Topologically sort modules so that providers load before their consumers.

    Kahn's algorithm over REQUIRES -> IMPLEMENTS edges. Modules caught in a
    cycle are appended in discovery order with a warning.
    """
    mods: dict[str, dict] = {}
    for pkg in pkg_names:
        m = importlib.import_module(pkg)
        mods[pkg] = {
            "implements": getattr(m, "IMPLEMENTS", []),
            "requires": getattr(m, "REQUIRES", []),
        }

    # interface -> providing pkg
    providers: dict[str, str] = {}
    for pkg, info in mods.items():
        for iface in info["implements"]:
            providers[iface] = pkg

    edges: dict[str, set[str]] = {pkg: set() for pkg in pkg_names}
    for pkg, info in mods.items():
        for iface in info["requires"]:
            provider_pkg = providers.get(iface)
            if provider_pkg and provider_pkg != pkg:
                edges[pkg].add(provider_pkg)

    in_degree: dict[str, int] = {pkg: len(deps) for pkg, deps in edges.items()}
    queue = sorted(pkg for pkg in pkg_names if in_degree[pkg] == 0)
    ordered: list[str] = []

    while queue:
        pkg = queue.pop(0)
        ordered.append(pkg)
        for other_pkg, deps in edges.items():
            if pkg in deps:
                in_degree[other_pkg] -= 1
                if in_degree[other_pkg] == 0:
                    queue.append(other_pkg)
                    queue.sort()

    remaining = [pkg for pkg in pkg_names if pkg not in ordered]
    if remaining:
        log.warning(
            f"Module load order: circular or unresolvable dependencies for "
            f"{remaining}; appending in discovery order."
        )
        ordered.extend(remaining)

    return ordered


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

def build_registry(session_factory=None, bus=None) -> ModuleRegistry:
    """Discover modules and register every provider they implement.

    session_factory defaults to core.db.SessionLocal inside each provider;
    bus defaults to the application event bus.
    """
    from core.event_bus import get_event_bus

    bus = bus if bus is not None else get_event_bus()
    registry = ModuleRegistry()
    registry.register_provider("EventBus", bus)

    for pkg in _resolve_load_order(_discover_modules()):
        mod = importlib.import_module(pkg)
        registry.record_requires(getattr(mod, "MODULE_ID", pkg), getattr(mod, "REQUIRES", []))
        if hasattr(mod, "register_providers"):
            mod.register_providers(registry, session_factory=session_factory, bus=bus)
            log.debug(f"Registered providers for module: {pkg}")

    return registry


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

def create_app(registry: Optional[ModuleRegistry] = None, session_factory=None) -> FastAPI:
    """Create and configure the PM Engine FastAPI application.

    1. Discover modules and resolve load order by REQUIRES/IMPLEMENTS.
    2. Build the ModuleRegistry (unless one is passed in).
    3. Call each module's register(app, registry) so routes exist before the
       first request arrives.
    4. Lifespan creates missing tables and validates declared dependencies.
    """
    from core.config import settings

    if registry is None:
        registry = build_registry(session_factory=session_factory)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        from core.db import init_db

        if session_factory is not None:
            init_db(bind=session_factory.kw.get("bind"))
        else:
            init_db()
        registry.validate_dependencies()
        yield

    app = FastAPI(
        title="PM Engine",
        description="Preventive maintenance scheduling engine",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
        docs_url="/api/v1/docs",
        redoc_url="/api/v1/redoc",
    )
    app.state.registry = registry

    @app.get("/health", tags=["System"], include_in_schema=False)
    def health_root():
        return {"status": "ok", "version": __version__}

    ordered_pkgs = _resolve_load_order(_discover_modules())
    log.info(f"Module load order: {[p.split('.')[-1] for p in ordered_pkgs]}")

    for pkg in ordered_pkgs:
        mod = importlib.import_module(pkg)
        if hasattr(mod, "register"):
            try:
                mod.register(app, registry)
                log.debug(f"Registered module: {pkg}")
            except Exception as exc:
                log.error(f"Failed to register module {pkg!r}: {exc}", exc_info=True)

    return app
