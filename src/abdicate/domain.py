"""Domain models used throughout the framework."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from abdicate.errors import DependencyError

__all__ = ["Scope", "CallingConvention", "ProviderRecord"]


class Scope(str, Enum):
    """Lifetime policy of the instances a provider produces."""

    SINGLETON = "singleton"
    PROTOTYPE = "prototype"

    @classmethod
    def parse(cls, value: Union["Scope", str, None]) -> "Scope":
        if value is None:
            return cls.SINGLETON
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise DependencyError(f"Unknown scope {value!r}") from None


class CallingConvention(str, Enum):
    """How a factory is invoked and how it signals completion.

    DIRECT factories return the instance. FUTURE factories return something
    awaitable which yields the instance. CALLBACK factories take a trailing
    ``callback(error, value)`` parameter and call it once when done.
    """

    DIRECT = "direct"
    FUTURE = "future"
    CALLBACK = "callback"

    @classmethod
    def parse(cls, value: Union["CallingConvention", str, bool, None]) -> "CallingConvention":
        """Read a calling convention from an enum member or its annotation spelling.

        ``None``, ``False`` and ``'false'`` mean DIRECT, and ``'promise'`` is
        accepted as an alias for FUTURE.

        Example:
            >>> CallingConvention.parse("promise")
            <CallingConvention.FUTURE: 'future'>
        """
        if value is None or value is False:
            return cls.DIRECT
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            spelling = value.strip().lower()
            if spelling in ("", "false", "sync"):
                return cls.DIRECT
            if spelling == "promise":
                return cls.FUTURE
            try:
                return cls(spelling)
            except ValueError:
                pass
        raise DependencyError(f"Unknown calling convention {value!r}")


@dataclass(frozen=True)
class ProviderRecord:
    """Describes one named provider.

    Attributes:
        name: Logical name of the provider, unique within a registry.
        factory: The callable producing instances, or the instance itself when
            ``is_literal_instance`` is set.
        is_literal_instance: Whether ``factory`` is a pre-built instance which is
            returned unchanged on every build.
        scope: Whether one instance is shared (singleton) or a fresh one is built
            per request (prototype).
        calling_convention: How ``factory`` is invoked. Always DIRECT for literal
            instances.
        dependencies: Names of the instances passed positionally to ``factory``.
            Duplicates are passed once per occurrence.
    """

    name: str
    factory: Any
    is_literal_instance: bool = False
    scope: Scope = Scope.SINGLETON
    calling_convention: CallingConvention = CallingConvention.DIRECT
    dependencies: tuple[str, ...] = ()

    def __post_init__(self):
        if not isinstance(self.name, str) or not self.name:
            raise DependencyError(f"Provider name must be a non-empty string, got {self.name!r}")
        if self.is_literal_instance and self.calling_convention is not CallingConvention.DIRECT:
            object.__setattr__(self, "calling_convention", CallingConvention.DIRECT)
        object.__setattr__(self, "dependencies", tuple(self.dependencies))
