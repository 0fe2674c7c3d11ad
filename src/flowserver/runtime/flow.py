"""
Flow application container.

Owns the configuration handle, the service registry and an ordered set of
named engines. Lifecycle transitions on the container fan out to its
engines: init and start in registration order, stop in reverse order.
The first engine that fails aborts the loop; engines already transitioned
are left as they are.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Iterator

from flowserver.errors import DuplicateEngineError, NotRegisteredError
from flowserver.runtime.engine import Engine
from flowserver.runtime.lifecycle import EventBus, EventListener, Lifecycle, LifecycleState

if TYPE_CHECKING:
    from flowserver.core.config import Config
    from flowserver.runtime.services import ServiceManager

logger = logging.getLogger(__name__)


class Flow:
    """
    Top-level application container.

    Example:
        flow = Flow(config=Config({"http": {"port": 3000}}))
        flow.register_engine("http", HttpEngine(port=3000))
        flow.on("flow.after_start", lambda data: print("ready"))
        await flow.start()
    """

    event_prefix = "flow"

    def __init__(
        self,
        config: Config | None = None,
        services: ServiceManager | None = None,
        options: dict[str, Any] | None = None,
    ) -> None:
        self.options: dict[str, Any] = dict(options or {})
        self.config = config
        self.services = services
        self._engines: dict[str, Engine] = {}
        self._events = EventBus()
        self._lifecycle = Lifecycle(self, prefix=self.event_prefix, payload={"flow": self})

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> LifecycleState:
        return self._lifecycle.state

    @property
    def is_initialized(self) -> bool:
        return self._lifecycle.is_initialized

    @property
    def is_started(self) -> bool:
        return self._lifecycle.is_started

    # ------------------------------------------------------------------
    # Engines
    # ------------------------------------------------------------------

    def register_engine(self, name: str, engine: Engine) -> Flow:
        """
        Register an engine under a unique name.

        Raises:
            DuplicateEngineError: If the name is already taken.
        """
        if name in self._engines:
            raise DuplicateEngineError(f'Engine with name "{name}" is already registered')

        engine.set_flow(self, name)
        self._engines[name] = engine
        logger.debug("Registered engine %s (%s)", name, type(engine).__name__)
        return self

    def get_engine(self, name: str) -> Engine:
        """
        Get a registered engine by name.

        Raises:
            NotRegisteredError: If no engine has that name.
        """
        if name not in self._engines:
            raise NotRegisteredError(f'Engine with name "{name}" is not registered')
        return self._engines[name]

    def has_engine(self, name: str) -> bool:
        return name in self._engines

    @property
    def engine_names(self) -> list[str]:
        """Engine names in registration order."""
        return list(self._engines)

    def engines(self) -> Iterator[tuple[str, Engine]]:
        """Iterate (name, engine) pairs in registration order."""
        return iter(list(self._engines.items()))

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on(self, event: str, listener: EventListener) -> Flow:
        """Add an event listener on the container bus."""
        self._events.on(event, listener)
        return self

    async def emit(self, event: str, data: dict[str, Any] | None = None) -> Flow:
        """Emit an event on the container bus."""
        await self._events.emit(event, data)
        return self

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def init(self) -> Flow:
        """Initialize the container and every registered engine."""
        await self._lifecycle.init()
        return self

    async def start(self) -> Flow:
        """Start every registered engine, initializing first if needed."""
        await self._lifecycle.start()
        return self

    async def stop(self) -> Flow:
        """Stop every registered engine in reverse registration order."""
        await self._lifecycle.stop()
        return self

    async def _do_init(self) -> None:
        for name, engine in self.engines():
            logger.debug("Initializing engine %s", name)
            await engine.init()

    async def _do_start(self) -> None:
        for name, engine in self.engines():
            logger.debug("Starting engine %s", name)
            await engine.start()
        logger.info("Flow started with %d engine(s)", len(self._engines))

    async def _do_stop(self) -> None:
        for name, engine in reversed(list(self._engines.items())):
            logger.debug("Stopping engine %s", name)
            await engine.stop()
        logger.info("Flow stopped")

    async def __aenter__(self) -> Flow:
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> bool:
        await self.stop()
        return False
