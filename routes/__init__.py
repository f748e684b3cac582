"""
Route Dependencies - Centralized dependency injection for route modules

This module provides a dependency injection pattern to avoid circular imports
and make route modules testable. All instances are injected at startup.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    # Type hints only - avoid runtime circular imports
    from capture_config import AppDefaults, CaptureConfig
    from capture_models import CaptureResult
    from capture_orchestrator import CaptureOrchestrator


@dataclass
class RouteDependencies:
    """
    Container for all dependencies needed by route modules

    Usage in route modules:
        from routes import get_deps

        @router.get("/endpoint")
        async def handler():
            deps = get_deps()
            return deps.orchestrator.last_progress
    """

    # =========================================================================
    # CAPTURE ENGINE
    # =========================================================================
    orchestrator_factory: Callable[[Optional["CaptureConfig"]], "CaptureOrchestrator"]
    defaults: "AppDefaults"

    # =========================================================================
    # BROWSER (None when the page is driven externally, e.g. in tests)
    # =========================================================================
    page: Optional[Any] = None
    browser: Optional[Any] = None

    # =========================================================================
    # SESSION STATE
    # =========================================================================
    orchestrator: Optional["CaptureOrchestrator"] = None
    last_result: Optional["CaptureResult"] = None
    capture_lock: asyncio.Lock = field(default_factory=asyncio.Lock)


# Global dependencies instance (set once at startup)
_deps: Optional[RouteDependencies] = None


def set_dependencies(deps: RouteDependencies) -> None:
    """
    Set global dependencies (called once at server startup)

    Args:
        deps: RouteDependencies instance with the capture engine wired up
    """
    global _deps
    _deps = deps


def get_deps() -> RouteDependencies:
    """
    Get dependencies for route handlers

    Raises:
        RuntimeError: If dependencies not initialized (call set_dependencies first)
    """
    if _deps is None:
        raise RuntimeError(
            "Dependencies not initialized. "
            "Call set_dependencies() in server startup before registering routes."
        )
    return _deps


# Export public API
__all__ = [
    "RouteDependencies",
    "set_dependencies",
    "get_deps",
]
