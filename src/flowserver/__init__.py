"""
Flowserver - minimal application container.

Coordinates the lifecycle of pluggable engines, provides a name-based
service registry, and ships an HTTP engine with routing and middleware.
"""

__version__ = "1.0.0"
__version_tuple__ = (1, 0, 0)

from typing import Any

from flowserver.core.config import Config
from flowserver.errors import (
    AliasCycleError,
    BindError,
    DuplicateAliasError,
    DuplicateEngineError,
    DuplicateNameError,
    DuplicateRouteError,
    EngineError,
    FlowError,
    NotFoundError,
    NotRegisteredError,
    PayloadTooLargeError,
    ServiceError,
)
from flowserver.http import STOP, HttpEngine, Response
from flowserver.runtime import (
    Engine,
    EventBus,
    Flow,
    Lifecycle,
    LifecycleState,
    RequestContext,
    ServiceManager,
)


def create_flow(
    config: dict[str, Any] | Config | None = None,
    *,
    services: ServiceManager | None = None,
) -> Flow:
    """
    Create a Flow wired to a fresh service registry and configuration.

    The registry is registered as "service_manager", the container as
    "flow" and the configuration as "config".
    """
    services = services if services is not None else ServiceManager()
    if not services.exists("service_manager"):
        services.register("service_manager", services)

    if not isinstance(config, Config):
        config = Config(config or {})

    flow = Flow(config=config, services=services)
    services.register("flow", flow)
    services.register("config", config)
    return flow


__all__ = [
    "__version__",
    "__version_tuple__",
    "create_flow",
    # Runtime
    "Config",
    "Engine",
    "EventBus",
    "Flow",
    "HttpEngine",
    "Lifecycle",
    "LifecycleState",
    "RequestContext",
    "Response",
    "ServiceManager",
    "STOP",
    # Errors
    "AliasCycleError",
    "BindError",
    "DuplicateAliasError",
    "DuplicateEngineError",
    "DuplicateNameError",
    "DuplicateRouteError",
    "EngineError",
    "FlowError",
    "NotFoundError",
    "NotRegisteredError",
    "PayloadTooLargeError",
    "ServiceError",
]
