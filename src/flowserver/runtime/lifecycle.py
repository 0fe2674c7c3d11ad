"""
Lifecycle state machine and event bus.

Both the Flow container and every Engine embed a Lifecycle and an EventBus
by composition. The owner supplies the three lifecycle hooks and the emit
function through the LifecycleOwner protocol; the Lifecycle only decides
when those hooks run and which events surround them.

Lifecycle:
    UNINITIALIZED -> INITIALIZED -> STARTED -> STOPPED

STOPPED is terminal: a stopped unit ignores init() and start().
"""

import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


class LifecycleState(Enum):
    """Lifecycle states shared by the container and engines."""

    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    STARTED = "started"
    STOPPED = "stopped"

    @property
    def rank(self) -> int:
        return _STATE_RANK[self]


_STATE_RANK = {state: index for index, state in enumerate(LifecycleState)}


# Listeners receive the event payload and may return an awaitable
EventListener = Callable[[dict[str, Any]], Any]


async def maybe_await(result: Any) -> Any:
    """Await result if it is awaitable, otherwise return it unchanged."""
    if hasattr(result, "__await__"):
        return await result
    return result


class EventBus:
    """
    Per-scope event bus.

    Listeners are append-only and never de-duplicated: a listener registered
    twice fires twice. Listener exceptions are not caught here.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[EventListener]] = {}

    def on(self, event: str, listener: EventListener) -> None:
        """Register a listener for an event."""
        self._listeners.setdefault(event, []).append(listener)

    def listeners(self, event: str) -> list[EventListener]:
        """Get the listeners registered for an event, in order."""
        return list(self._listeners.get(event, []))

    async def emit(self, event: str, data: dict[str, Any] | None = None) -> None:
        """Invoke every listener for event, in registration order."""
        payload = data if data is not None else {}
        for listener in self.listeners(event):
            await maybe_await(listener(payload))


@runtime_checkable
class LifecycleOwner(Protocol):
    """
    Capability an entity implements to embed a Lifecycle.

    The hooks may suspend and may raise; a raised error aborts the
    lifecycle call without changing state.
    """

    async def _do_init(self) -> None: ...

    async def _do_start(self) -> None: ...

    async def _do_stop(self) -> None: ...

    def emit(self, event: str, data: dict[str, Any] | None = None) -> Awaitable[Any]: ...


class Lifecycle:
    """
    The init/start/stop state machine.

    Example:
        class Worker:
            def __init__(self):
                self._events = EventBus()
                self._lifecycle = Lifecycle(self, prefix="worker")

            async def emit(self, event, data=None):
                await self._events.emit(event, data)

            async def _do_init(self): ...
            async def _do_start(self): ...
            async def _do_stop(self): ...
    """

    def __init__(
        self,
        owner: LifecycleOwner,
        prefix: str,
        payload: dict[str, Any] | None = None,
    ) -> None:
        self._owner = owner
        self._prefix = prefix
        self._payload = payload or {}
        self._state = LifecycleState.UNINITIALIZED

    @property
    def state(self) -> LifecycleState:
        """Get the current lifecycle state."""
        return self._state

    @property
    def prefix(self) -> str:
        return self._prefix

    def reached(self, state: LifecycleState) -> bool:
        """Check whether the unit is in or past the given state."""
        return self._state.rank >= state.rank

    @property
    def is_initialized(self) -> bool:
        return self.reached(LifecycleState.INITIALIZED)

    @property
    def is_started(self) -> bool:
        return self._state == LifecycleState.STARTED

    @property
    def is_stopped(self) -> bool:
        return self._state == LifecycleState.STOPPED

    def event_name(self, phase: str) -> str:
        """Build the scoped event name for a phase, e.g. 'flow.before_init'."""
        return f"{self._prefix}.{phase}"

    async def _emit(self, phase: str) -> None:
        await self._owner.emit(self.event_name(phase), dict(self._payload))

    async def init(self) -> None:
        """Run the init hook once, surrounded by before/after events."""
        if self.reached(LifecycleState.INITIALIZED):
            return

        await self._emit("before_init")
        await self._owner._do_init()
        self._state = LifecycleState.INITIALIZED
        logger.debug("%s initialized", self._prefix)
        await self._emit("after_init")

    async def start(self) -> None:
        """Start the unit, initializing it first if needed."""
        if self._state == LifecycleState.UNINITIALIZED:
            await self.init()

        if self.reached(LifecycleState.STARTED):
            return

        await self._emit("before_start")
        await self._owner._do_start()
        self._state = LifecycleState.STARTED
        logger.debug("%s started", self._prefix)
        await self._emit("after_start")

    async def stop(self) -> None:
        """Stop the unit. No-op unless started."""
        if self._state != LifecycleState.STARTED:
            return

        await self._emit("before_stop")
        await self._owner._do_stop()
        self._state = LifecycleState.STOPPED
        logger.debug("%s stopped", self._prefix)
        await self._emit("after_stop")
