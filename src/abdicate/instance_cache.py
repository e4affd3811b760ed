"""Cache of built singleton instances and the on-demand build path.

The InstanceCache is where instances come from: a lookup returns a cached
singleton, joins a build of the same singleton that is already in flight, or
starts a new build, first fetching the provider's own dependencies through the
cache. Prototype providers are rebuilt on every lookup and never cached.

Only one build per singleton name is ever in flight. Concurrent lookups share
the same task, so they all receive the same instance or the same failure. A
failed build is forgotten, and the next lookup tries again.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any, Callable, Iterable, Iterator, Union

from abdicate.domain import ProviderRecord, Scope
from abdicate.errors import DependencyError, MissingProviderError
from abdicate.instance_builder import InstanceBuilder
from abdicate.registry import ProviderRegistry

__all__ = ["InstanceCache", "DiagnosticsSink", "log_diagnostic"]

logger = logging.getLogger(__name__)

DiagnosticsSink = Callable[[DependencyError], None]
"""Receives soft failures, such as lookups of names nobody provides."""


def log_diagnostic(error: DependencyError):
    logger.warning("%s", error)


class InstanceCache:
    """Singleton instances keyed by provider name, built on first demand.

    ``get`` assumes the requested name's dependencies are acyclic; callers check
    that first (see :meth:`abdicate.resolver.Resolver.ensure_acyclic`), since a
    cycle would leave builds waiting on each other.

    Example:
        >>> cache = InstanceCache(registry, InstanceBuilder())
        >>> service = await cache.get("my.service")
        >>> "my.service" in cache
        True
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        builder: InstanceBuilder,
        diagnostics: DiagnosticsSink = log_diagnostic,
        strict: bool = False,
    ):
        self._registry = registry
        self._builder = builder
        self._diagnostics = diagnostics
        self._strict = strict
        self._instances: dict[str, Any] = {}
        self._in_flight: dict[str, asyncio.Future] = {}

    async def get(self, name: str) -> Any:
        """Return the instance for ``name``, building it if necessary.

        Returns:
            The instance, or ``None`` when no provider is registered for ``name``.

        Raises:
            BuildError: If the provider, or one of its dependencies, fails to build.
            MissingProviderError: If ``name`` is not registered and the cache is strict.
        """
        record = self._registry.lookup(name)
        if record is None:
            return self._missing(name)

        if record.scope is Scope.PROTOTYPE:
            return await self._build(record)

        if name in self._instances:
            return self._instances[name]

        pending = self._in_flight.get(name)
        if pending is None:
            pending = asyncio.ensure_future(self._build_singleton(record))
            self._in_flight[name] = pending
        return await asyncio.shield(pending)

    async def get_many(self, names: Iterable[str]) -> dict[str, Union[Any, list[Any]]]:
        """Look up several names concurrently.

        A name requested once maps to its instance. A name requested more than
        once maps to a list holding one result per request, in request order;
        prototype requests each get a fresh instance.
        """
        names = list(names)
        instances = await asyncio.gather(*(self.get(name) for name in names))

        grouped: dict[str, list[Any]] = defaultdict(list)
        for name, instance in zip(names, instances):
            grouped[name].append(instance)

        return {
            name: named_instances[0] if len(named_instances) == 1 else named_instances
            for name, named_instances in grouped.items()
        }

    async def _build(self, record: ProviderRecord) -> Any:
        if record.is_literal_instance:
            return await self._builder.build(record, ())
        args = await asyncio.gather(*(self.get(dependency) for dependency in record.dependencies))
        return await self._builder.build(record, args)

    async def _build_singleton(self, record: ProviderRecord) -> Any:
        try:
            instance = await self._build(record)
            self._instances[record.name] = instance
            return instance
        finally:
            self._in_flight.pop(record.name, None)

    def _missing(self, name: str) -> None:
        error = MissingProviderError(name)
        if self._strict:
            raise error
        self._diagnostics(error)
        return None

    def __contains__(self, name: str) -> bool:
        return name in self._instances

    def __getitem__(self, name: str) -> Any:
        return self._instances[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._instances)

    def __len__(self) -> int:
        return len(self._instances)
