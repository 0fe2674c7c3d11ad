"""
Abstract Engine base class.

An engine is a pluggable subsystem with its own lifecycle, composed into a
Flow container. Concrete engines (HTTP, ...) supply the three lifecycle
hooks; the shared Lifecycle decides when they run.

Every event an engine emits is delivered to its own listeners first and
then re-emitted, prefixed with "engine.", on the owning container's bus.
Both payloads carry the engine and the name it was registered under.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from flowserver.runtime.lifecycle import EventBus, EventListener, Lifecycle, LifecycleState

if TYPE_CHECKING:
    from flowserver.runtime.flow import Flow


@dataclass
class EngineInfo:
    """Runtime information about an engine."""

    name: str | None
    type: str
    state: LifecycleState
    started_at: datetime | None = None
    uptime_seconds: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)


class Engine(ABC):
    """
    Abstract base class for engines.

    Example:
        class TickEngine(Engine):
            async def _do_init(self) -> None:
                ...

            async def _do_start(self) -> None:
                ...

            async def _do_stop(self) -> None:
                ...

        flow.register_engine("ticks", TickEngine())
    """

    event_prefix = "engine"

    def __init__(self, options: dict[str, Any] | None = None):
        self.options: dict[str, Any] = dict(options or {})
        self._flow: Flow | None = None
        self._name: str | None = None
        self._started_at: datetime | None = None
        self._events = EventBus()
        self._lifecycle = Lifecycle(self, prefix=self.event_prefix, payload={"engine": self})

    @property
    def flow(self) -> Flow | None:
        """Get the container this engine is registered with (if any)."""
        return self._flow

    @property
    def name(self) -> str | None:
        """Get the name this engine was registered under (if any)."""
        return self._name

    def set_flow(self, flow: Flow, name: str | None = None) -> Engine:
        """Attach the engine to its owning container."""
        self._flow = flow
        self._name = name
        return self

    @property
    def state(self) -> LifecycleState:
        return self._lifecycle.state

    @property
    def is_initialized(self) -> bool:
        return self._lifecycle.is_initialized

    @property
    def is_started(self) -> bool:
        return self._lifecycle.is_started

    def get_info(self) -> EngineInfo:
        """Get runtime information about the engine."""
        uptime = 0.0
        if self._started_at and self.is_started:
            uptime = (datetime.now(timezone.utc) - self._started_at).total_seconds()

        return EngineInfo(
            name=self._name,
            type=type(self).__name__,
            state=self.state,
            started_at=self._started_at,
            uptime_seconds=uptime,
            metadata=self._get_info_metadata(),
        )

    def _get_info_metadata(self) -> dict[str, Any]:
        """Override in subclass to add engine-specific info."""
        return {}

    async def init(self) -> Engine:
        """Initialize the engine."""
        await self._lifecycle.init()
        return self

    async def start(self) -> Engine:
        """Start the engine, initializing first if needed."""
        was_started = self.is_started
        await self._lifecycle.start()
        if self.is_started and not was_started:
            self._started_at = datetime.now(timezone.utc)
        return self

    async def stop(self) -> Engine:
        """Stop the engine. No-op unless started."""
        await self._lifecycle.stop()
        return self

    def on(self, event: str, listener: EventListener) -> Engine:
        """Add an event listener on this engine's bus."""
        self._events.on(event, listener)
        return self

    async def emit(self, event: str, data: dict[str, Any] | None = None) -> Engine:
        """
        Emit an event locally, then propagate it to the container.

        The container receives the event under the engine prefix, so
        "engine.after_start" arrives there as "engine.engine.after_start"
        and "http.request" as "engine.http.request".
        """
        payload = {**(data or {}), "engine": self, "engine_name": self._name}
        await self._events.emit(event, payload)

        if self._flow is not None:
            await self._flow.emit(self.container_event(event), dict(payload))

        return self

    def container_event(self, event: str) -> str:
        """Name under which an engine event reaches the container bus."""
        return f"{self.event_prefix}.{event}"

    @abstractmethod
    async def _do_init(self) -> None:
        """Set up engine resources. Override in subclass."""
        ...

    @abstractmethod
    async def _do_start(self) -> None:
        """Start serving. Override in subclass."""
        ...

    @abstractmethod
    async def _do_stop(self) -> None:
        """Release engine resources. Override in subclass."""
        ...

    async def __aenter__(self) -> Engine:
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> bool:
        await self.stop()
        return False
