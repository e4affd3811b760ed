"""Registration and lookup of providers by logical name."""

import inspect
from typing import Any, Callable, Iterable, Optional, Union

from abdicate.domain import CallingConvention, ProviderRecord, Scope
from abdicate.errors import DependencyError

__all__ = [
    "ProviderRecord",
    "ProviderRegistry",
    "inferred_name",
    "make_record",
]


def inferred_name(target: Any) -> str:
    """Name a decorated provider that was given no explicit name.

    Classes keep their own name. Functions lose a leading ``make_``, so
    ``make_connection`` provides ``connection`` while ``connect`` provides ``connect``.
    """
    name = target.__name__
    if inspect.isclass(target) or not name.startswith("make_"):
        return name
    return name[len("make_"):]


def make_record(
    name: str,
    factory_or_instance: Any,
    is_literal_instance: bool = False,
    scope: Union[Scope, str, None] = Scope.SINGLETON,
    calling_convention: Union[CallingConvention, str, bool, None] = None,
    dependencies: Iterable[str] = (),
) -> ProviderRecord:
    """Create a :class:`ProviderRecord`, normalising the loosely-typed registration arguments.

    Values that are not callable are always treated as literal instances. A
    coroutine function registered without an explicit calling convention is
    awaited, i.e. treated as FUTURE.

    Raises:
        DependencyError: If the name, scope or calling convention is invalid.
    """
    is_literal_instance = is_literal_instance or not callable(factory_or_instance)
    if calling_convention is None and not is_literal_instance and (
        inspect.iscoroutinefunction(factory_or_instance)
    ):
        calling_convention = CallingConvention.FUTURE

    if isinstance(dependencies, str):
        dependencies = [dependencies]

    return ProviderRecord(
        name,
        factory_or_instance,
        is_literal_instance,
        Scope.parse(scope),
        CallingConvention.parse(calling_convention),
        tuple(dependencies),
    )


class ProviderRegistry:
    """Registry of providers keyed by logical name.

    Registering a name twice replaces the earlier record; records are never
    merged. The registry must not be changed once resolution has started.
    """

    def __init__(self):
        self._providers: dict[str, ProviderRecord] = {}
        self.revision = 0
        """Incremented on every registration, so cached views of the graph can tell they are stale."""

    def register(
        self,
        name: str,
        factory_or_instance: Any,
        is_literal_instance: bool = False,
        scope: Union[Scope, str, None] = Scope.SINGLETON,
        calling_convention: Union[CallingConvention, str, bool, None] = None,
        dependencies: Iterable[str] = (),
    ) -> ProviderRecord:
        """Register a provider explicitly.

        Args:
            name: The logical name of the provided instance.
            factory_or_instance: The factory producing instances, or a literal instance.
            is_literal_instance: Treat ``factory_or_instance`` as an instance even if
                it is callable.
            scope: ``'singleton'`` (default) or ``'prototype'``.
            calling_convention: ``None`` for synchronous factories, ``'promise'`` or
                ``'future'`` for factories returning an awaitable, ``'callback'``
                for factories taking a trailing callback.
            dependencies: Logical names of the instances the factory is called with,
                in positional order.

        Returns:
            The stored record.
        """
        record = make_record(
            name,
            factory_or_instance,
            is_literal_instance,
            scope,
            calling_convention,
            dependencies,
        )
        self.add(record)
        return record

    def add(self, record: ProviderRecord):
        """Store an already constructed record, replacing any record of the same name."""
        self._providers[record.name] = record
        self.revision += 1

    def lookup(self, name: str) -> Optional[ProviderRecord]:
        return self._providers.get(name)

    def registered_providers(self) -> list[ProviderRecord]:
        return list(self._providers.values())

    def names(self) -> list[str]:
        return list(self._providers)

    def __contains__(self, name: str) -> bool:
        return name in self._providers

    def __len__(self) -> int:
        return len(self._providers)

    def provides(
        self,
        name: Optional[str] = None,
        scope: Union[Scope, str] = Scope.SINGLETON,
        calling_convention: Union[CallingConvention, str, None] = None,
        requires: Iterable[str] = (),
    ) -> Callable:
        """Decorator to register a function or class as a provider.

        Args:
            name: Optional logical name to assign; defaults to function name with 'make_'
                prefix removed, or the class name.
            scope: Lifetime of the produced instances.
            calling_convention: How the factory signals completion.
            requires: Logical names passed positionally to the factory.

        Returns:
            A decorator that registers its target and returns it unchanged.

        Example:
            @registry.provides("db.connection", calling_convention="callback", requires=["db.uri"])
            def connect(options, callback):
                callback(None, Connection(options["uri"]))
        """
        def decorator(obj):
            if not (inspect.isclass(obj) or inspect.isfunction(obj)):
                raise DependencyError(f"{obj} is not a class or function")

            self.register(
                name or inferred_name(obj),
                obj,
                False,
                scope,
                calling_convention,
                requires,
            )
            return obj

        return decorator
