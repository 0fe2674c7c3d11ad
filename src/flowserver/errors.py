"""
Flowserver exception hierarchy.

All errors raised by the container, the service registry and the engines
derive from FlowError. Per-request handler errors are never raised out of
the HTTP engine; they are converted to 500 responses.
"""


class FlowError(Exception):
    """Base exception for flowserver errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# Service registry


class ServiceError(FlowError):
    """Base exception for service registry errors."""

    def __init__(self, message: str, name: str | None = None):
        super().__init__(message)
        self.name = name


class DuplicateNameError(ServiceError):
    """Raised when a name already holds an instance or factory."""

    pass


class DuplicateAliasError(ServiceError):
    """Raised when an alias is registered twice."""

    pass


class NotFoundError(ServiceError):
    """Raised when a service name cannot be resolved."""

    pass


class AliasCycleError(ServiceError):
    """Raised when alias resolution loops back on itself."""

    def __init__(self, message: str, chain: list[str]):
        super().__init__(message, chain[0] if chain else None)
        self.chain = chain


# Engines


class EngineError(FlowError):
    """Base exception for engine errors."""

    pass


class BindError(EngineError):
    """Raised when the HTTP engine cannot bind or listen."""

    def __init__(self, message: str, host: str, port: int):
        super().__init__(message)
        self.host = host
        self.port = port


class DuplicateRouteError(EngineError):
    """Raised when a (method, path) pair is registered twice."""

    pass


class PayloadTooLargeError(EngineError):
    """Raised while reading a request body that exceeds the size limit."""

    def __init__(self, message: str, limit: int):
        super().__init__(message)
        self.limit = limit


# Container


class NotRegisteredError(FlowError):
    """Raised when looking up an engine name that was never registered."""

    pass


class DuplicateEngineError(FlowError):
    """Raised when an engine name is registered twice."""

    pass
