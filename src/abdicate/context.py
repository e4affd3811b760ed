"""
The dependency-injection context: the public face of abdicate.

A Context owns a registry of providers, fed by explicit registration and by
scanning its root paths for annotated providers, and a cache of the instances
built from them. Bootstrapping scans the root paths and, when eager, builds every
provider in dependency order; lookups build whatever they need on demand.

Every asynchronous operation returns an :class:`asyncio.Future` which can be
awaited, and also accepts an optional ``callback(error, result)`` which is
called when the operation completes. Either style may be used, or both.
"""

import asyncio
import logging
from collections.abc import Mapping
from typing import Any, Awaitable, Callable, Iterable, Iterator, Optional, Sequence, Union

from abdicate.config import ContextSettings
from abdicate.discovery import DiscoveredProvider, ModuleLoader, PathLike, default_name, normalise_root, scan
from abdicate.domain import CallingConvention, Scope
from abdicate.errors import DiscoveryError
from abdicate.instance_builder import InstanceBuilder
from abdicate.instance_cache import DiagnosticsSink, InstanceCache, log_diagnostic
from abdicate.registry import ProviderRegistry
from abdicate.resolver import Resolver, Scheduler

__all__ = ["Context", "Callback"]

logger = logging.getLogger(__name__)

Callback = Callable[[Optional[BaseException], Any], None]
"""Completion callback receiving ``(error, result)``; ``error`` is None on success."""


class _InstancesView(Mapping):
    """Read-only view of the singleton instances built so far."""

    def __init__(self, cache: InstanceCache):
        self._cache = cache

    def __getitem__(self, name: str) -> Any:
        return self._cache[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._cache)

    def __len__(self) -> int:
        return len(self._cache)


class Context:
    """
    A container of providers and the instances they produce.

    Singleton-scoped providers are built once and shared; prototype-scoped
    providers are built afresh on every request. Requesting a name nobody
    provides yields ``None`` and is reported to the diagnostics sink, so
    dependencies may be optional.

    Example:
        >>> context = Context(["./services"])
        >>> context.register("db.uri", {"uri": "mongodb://foo"})
        >>> await context.bootstrap(eager=True)
        >>> service = await context.get_instance("my.service")
    """

    def __init__(
        self,
        rootpaths: Iterable[PathLike] = (),
        settings: Optional[ContextSettings] = None,
        diagnostics: DiagnosticsSink = log_diagnostic,
        registry: Optional[ProviderRegistry] = None,
    ):
        self.rootpaths = [normalise_root(path) for path in rootpaths]
        self.settings = settings or ContextSettings()
        self.registry = registry if registry is not None else ProviderRegistry()
        self._diagnostics = diagnostics
        self._loader = ModuleLoader()
        self._resolver = Resolver(self.registry)
        self._cache = InstanceCache(
            self.registry, InstanceBuilder(), diagnostics, self.settings.strict
        )
        self.instances: Mapping[str, Any] = _InstancesView(self._cache)

    def register(
        self,
        name: str,
        factory_or_instance: Any,
        is_literal_instance: bool = False,
        scope: Union[Scope, str, None] = Scope.SINGLETON,
        calling_convention: Union[CallingConvention, str, bool, None] = None,
        dependencies: Iterable[str] = (),
    ):
        """Explicitly register an instance, or a factory producing one.

        See :meth:`abdicate.registry.ProviderRegistry.register` for the arguments.
        """
        self.registry.register(
            name, factory_or_instance, is_literal_instance, scope, calling_convention, dependencies
        )

    def bootstrap(self, eager: bool = False, callback: Optional[Callback] = None) -> asyncio.Future:
        """Scan the root paths and register the annotated providers found there.

        When ``eager`` is set, every provider is then built in dependency order,
        populating :attr:`instances` with the singletons.

        Returns:
            A future resolving to the context itself.

        Raises:
            CyclicDependencyError: Through the future, if an eager bootstrap
                meets a cycle. Nothing is built in that case.
            BuildError: Through the future, if a provider fails to build.
        """
        return _complete_with(self._bootstrap(eager), callback)

    def get_instance(self, name: str, callback: Optional[Callback] = None) -> asyncio.Future:
        """Get the instance for a logical name.

        Prototype-scoped providers produce a new instance each time; singleton
        ones return the same instance each time.

        Returns:
            A future resolving to the instance, or to ``None`` if nothing provides ``name``.
        """
        return _complete_with(self._resolver.resolve_one(name, self._cache), callback)

    def get_instances(self, names: Sequence[str], callback: Optional[Callback] = None) -> asyncio.Future:
        """Get several instances at once.

        Returns:
            A future resolving to a dict mapping each name to its instance, or to
            a list of instances if the name was requested more than once.
        """
        return _complete_with(self._get_instances(list(names)), callback)

    async def _bootstrap(self, eager: bool) -> "Context":
        discovered = 0
        for provider in scan(self.rootpaths, self.settings.file_pattern, self._diagnostics):
            discovered += self._register_discovered(provider)

        if eager:
            plan = self._resolver.resolve_all()
            await Scheduler(self.settings.concurrency).run(plan, self._cache.get)

        logger.info(
            "Bootstrapped context with %d providers (%d discovered), %d instances built",
            len(self.registry),
            discovered,
            len(self._cache),
        )
        return self

    async def _get_instances(self, names: list[str]) -> dict[str, Any]:
        for name in names:
            self._resolver.ensure_acyclic(name)
        return await self._cache.get_many(names)

    def _register_discovered(self, provider: DiscoveredProvider) -> int:
        try:
            factory = self._loader.resolve(provider.source, provider.function_name)
        except DiscoveryError as e:
            self._diagnostics(e)
            return 0

        provides = provider.provides
        name = (provides and provides.name) or default_name(
            provider.source, self.rootpaths, provider.function_name
        )
        self.registry.register(
            name,
            factory,
            False,
            provides.scope if provides else Scope.SINGLETON,
            provides.calling_convention if provides else None,
            provider.requires,
        )
        return 1


def _complete_with(awaitable: Awaitable[Any], callback: Optional[Callback]) -> asyncio.Future:
    """Schedule ``awaitable`` and report its outcome to ``callback``, if given."""
    future = asyncio.ensure_future(awaitable)
    if callback is None:
        return future

    def on_done(done: asyncio.Future):
        if done.cancelled():
            callback(asyncio.CancelledError(), None)
        elif done.exception() is not None:
            callback(done.exception(), None)
        else:
            callback(None, done.result())

    future.add_done_callback(on_done)
    return future
