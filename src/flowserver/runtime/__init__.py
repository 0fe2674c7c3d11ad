"""
Flowserver runtime - lifecycle, engines, container and services.

Usage:
    from flowserver.runtime import Engine, Flow

    class MyEngine(Engine):
        async def _do_init(self) -> None:
            ...

Architecture:
    - Lifecycle / EventBus: shared init/start/stop state machine
    - Engine: abstract pluggable subsystem
    - Flow: container that drives engine lifecycles
    - ServiceManager: name-based dependency injection
    - RequestContext: per-request bundle
"""

from flowserver.runtime.context import RequestContext
from flowserver.runtime.engine import Engine, EngineInfo
from flowserver.runtime.flow import Flow
from flowserver.runtime.lifecycle import (
    EventBus,
    EventListener,
    Lifecycle,
    LifecycleOwner,
    LifecycleState,
)
from flowserver.runtime.services import ServiceFactory, ServiceManager

__all__ = [
    # Lifecycle
    "EventBus",
    "EventListener",
    "Lifecycle",
    "LifecycleOwner",
    "LifecycleState",
    # Engine
    "Engine",
    "EngineInfo",
    # Container
    "Flow",
    # Services
    "ServiceFactory",
    "ServiceManager",
    # Context
    "RequestContext",
]
