"""Exceptions raised while registering, resolving and building providers."""

from typing import Optional, Sequence

__all__ = [
    "DependencyError",
    "CyclicDependencyError",
    "BuildError",
    "MissingProviderError",
    "AmbiguousReturnError",
    "AnnotationError",
    "DiscoveryError",
]


class DependencyError(Exception):
    """Raised when a provider's dependency cannot be resolved or is misdeclared."""

    pass


class CyclicDependencyError(DependencyError):
    """Raised when the dependency graph contains a cycle.

    Attributes:
        name: A provider name implicated in the cycle.
        cycle: The offending chain of names, when known. The last name repeats
            an earlier one.
    """

    def __init__(self, name: str, cycle: Optional[Sequence[str]] = None):
        self.name = name
        self.cycle = list(cycle) if cycle else []
        if self.cycle:
            message = f"Cyclic dependency: {' -> '.join(self.cycle)}"
        else:
            message = f"Unresolvable dependencies involving '{name}'"
        super().__init__(message)


class BuildError(DependencyError):
    """Raised when a provider's factory fails to produce an instance.

    Attributes:
        provider_name: The name of the provider whose factory failed.
        cause: The underlying exception.
    """

    def __init__(self, provider_name: str, cause: BaseException):
        self.provider_name = provider_name
        self.cause = cause
        super().__init__(f"Failed to build '{provider_name}': {cause!r}")


class MissingProviderError(DependencyError):
    """Reported when an instance is requested for a name nobody provides.

    This is a soft failure: by default it goes to the diagnostics sink and the
    lookup yields ``None``.
    """

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"No provider registered for '{name}'")


class AmbiguousReturnError(DependencyError):
    """Raised when a callback-style factory reports both an error and a value, or neither."""

    pass


class AnnotationError(DependencyError):
    """Raised when a ``@Provides`` or ``@Requires`` annotation cannot be parsed."""

    pass


class DiscoveryError(DependencyError):
    """Raised when a source file cannot be scanned, or a discovered target cannot be loaded from it.

    Attributes:
        source: The file concerned.
        function_name: The target being loaded, or None if the file itself could not be read.
    """

    def __init__(self, source: str, function_name: Optional[str], reason: str):
        self.source = source
        self.function_name = function_name
        if function_name is None:
            message = f"Could not scan {source}: {reason}"
        else:
            message = f"Could not resolve the target {function_name} for {source}: {reason}"
        super().__init__(message)
