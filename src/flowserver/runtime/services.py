"""
Service registry for dependency injection.

Stores services by name as concrete instances, lazy factories or aliases,
and indexes them by tag.

Example:
    services = ServiceManager()
    services.register("clock", SystemClock(), tags=["infra"])
    services.register_factory("db", lambda s: Database(s.resolve("config")))
    services.register_alias("database", "db")

    db = services.resolve("database")  # factory runs once, result cached
"""

import logging
from typing import Any, Callable, Iterable

from flowserver.errors import (
    AliasCycleError,
    DuplicateAliasError,
    DuplicateNameError,
    NotFoundError,
)

logger = logging.getLogger(__name__)

ServiceFactory = Callable[["ServiceManager"], Any]


class ServiceManager:
    """
    Name-based service registry.

    A name may hold either an instance or a factory, never both, and may
    only be registered once. Aliases live in their own namespace and are
    resolved at lookup time, so an alias may point at a name registered
    later.
    """

    def __init__(self) -> None:
        self._services: dict[str, Any] = {}
        self._factories: dict[str, ServiceFactory] = {}
        self._aliases: dict[str, str] = {}
        self._tags: dict[str, list[str]] = {}

    def register(self, name: str, service: Any, tags: Iterable[str] = ()) -> "ServiceManager":
        """
        Register a service instance.

        Raises:
            DuplicateNameError: If name already holds an instance or factory.
        """
        self._check_name(name)
        self._services[name] = service
        self._register_tags(name, tags)
        return self

    def register_factory(
        self,
        name: str,
        factory: ServiceFactory,
        tags: Iterable[str] = (),
    ) -> "ServiceManager":
        """
        Register a factory, called with the registry on first resolution.

        Raises:
            DuplicateNameError: If name already holds an instance or factory.
        """
        self._check_name(name)
        self._factories[name] = factory
        self._register_tags(name, tags)
        return self

    def register_alias(self, alias: str, target: str) -> "ServiceManager":
        """
        Register alias as another name for target.

        The target is not required to exist yet.

        Raises:
            DuplicateAliasError: If alias is already registered.
        """
        if alias in self._aliases:
            raise DuplicateAliasError(f'Alias "{alias}" is already registered', alias)

        self._aliases[alias] = target
        return self

    def resolve(self, name: str) -> Any:
        """
        Resolve a service by name or alias.

        Raises:
            NotFoundError: If the name does not resolve.
            AliasCycleError: If an alias chain loops back on itself.
        """
        name = self._follow_aliases(name)

        if name in self._services:
            return self._services[name]

        if name in self._factories:
            service = self._factories[name](self)
            self._services[name] = service
            logger.debug("Created service %s from factory", name)
            return service

        raise NotFoundError(f'Service "{name}" not found', name)

    def exists(self, name: str) -> bool:
        """Check if name is registered as an instance, factory or alias."""
        return name in self._services or name in self._factories or name in self._aliases

    def by_tag(self, tag: str) -> list[Any]:
        """Resolve every service registered under tag, in registration order."""
        return [self.resolve(name) for name in self._tags.get(tag, [])]

    def names(self) -> list[str]:
        """Names registered as instances or factories."""
        return list(dict.fromkeys([*self._services, *self._factories]))

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.exists(name)

    def _check_name(self, name: str) -> None:
        if name in self._services or name in self._factories:
            raise DuplicateNameError(f'Service "{name}" is already registered', name)

    def _follow_aliases(self, name: str) -> str:
        chain = [name]
        while name in self._aliases:
            name = self._aliases[name]
            if name in chain:
                chain.append(name)
                raise AliasCycleError(
                    f"Alias cycle detected: {' -> '.join(chain)}",
                    chain,
                )
            chain.append(name)
        return name

    def _register_tags(self, name: str, tags: Iterable[str]) -> None:
        for tag in tags:
            self._tags.setdefault(tag, []).append(name)
