"""High level entry points for constructing contexts."""

from typing import Iterable, Optional

from abdicate.config import ContextSettings
from abdicate.context import Context
from abdicate.discovery import PathLike
from abdicate.instance_cache import DiagnosticsSink, log_diagnostic
from abdicate.registry import ProviderRegistry
from abdicate.resolver import BuildPlan, Resolver

__all__ = ["make_plan", "make_context"]


def make_plan(registry: ProviderRegistry) -> BuildPlan:
    """Create a :class:`BuildPlan` for the given registry.

    Args:
        registry: The registry containing the declared providers.

    Returns:
        The plan describing the dependency graph and a valid build order.

    Raises:
        CyclicDependencyError: If the declared dependencies contain a cycle.

    Example:
        >>> registry = ProviderRegistry()
        >>> registry.register("config", {"uri": "mongodb://foo"})
        >>> make_plan(registry).build_order
        ['config']
    """
    return Resolver(registry).resolve_all()


async def make_context(
    rootpaths: Iterable[PathLike] = (),
    registry: Optional[ProviderRegistry] = None,
    settings: Optional[ContextSettings] = None,
    diagnostics: DiagnosticsSink = log_diagnostic,
    eager: bool = True,
) -> Context:
    """Construct and bootstrap a :class:`Context`.

    Args:
        rootpaths: Directories scanned for annotated providers.
        registry: Optional registry of providers registered up front.
        settings: Optional settings; defaults are used otherwise.
        diagnostics: Sink for soft failures such as missing providers.
        eager: Whether to build every provider straight away.

    Returns:
        The bootstrapped context.

    Raises:
        CyclicDependencyError: If an eager bootstrap meets a cycle.
        BuildError: If a provider fails to build during an eager bootstrap.
    """
    context = Context(rootpaths, settings, diagnostics, registry)
    return await context.bootstrap(eager)
