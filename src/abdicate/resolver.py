"""Dependency resolution and build scheduling.

This module provides the core ordering logic for abdicate. It derives a
dependency graph from the providers in a registry, checks that the graph is
acyclic, and drives traversals that only visit a provider once everything it
depends on has been visited.

The BuildPlan serves as a blueprint for an eager bootstrap. The Scheduler walks
a plan with bounded concurrency; the Resolver's lazy path instead builds a
single name depth-first on demand.
"""

import asyncio
import logging
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Iterable, Optional

from abdicate.errors import CyclicDependencyError
from abdicate.registry import ProviderRegistry

if TYPE_CHECKING:
    from abdicate.instance_cache import InstanceCache

__all__ = ["TERMINAL", "BuildPlan", "Resolver", "Scheduler", "build_edges"]

logger = logging.getLogger(__name__)

TERMINAL = "<terminal>"
"""Synthetic node that providers without dependencies point at, so they are still visited."""


def build_edges(registry: ProviderRegistry) -> list[tuple[str, str]]:
    """Transform the declared dependencies in a registry into graph edges.

    Returns:
        Pairs of ``(dependency, dependent)`` names. A provider with no
        dependencies contributes ``(name, TERMINAL)``.
    """
    edges = []
    for record in registry.registered_providers():
        if not record.dependencies:
            edges.append((record.name, TERMINAL))
        else:
            edges.extend((dependency, record.name) for dependency in record.dependencies)
    return edges


@dataclass(frozen=True)
class BuildPlan:
    """Description of how to build every provider in a registry."""

    edges: list[tuple[str, str]]
    """Edges of the dependency graph, from dependency to dependent."""

    prerequisites: dict[str, frozenset[str]]
    """Names each node must wait for, keyed by node."""

    build_order: list[str]
    """A valid topological order of all nodes."""

    def dependents(self) -> dict[str, set[str]]:
        dependents: dict[str, set[str]] = defaultdict(set)
        for node, prerequisites in self.prerequisites.items():
            for prerequisite in prerequisites:
                dependents[prerequisite].add(node)
        return dependents


class _DependencyGraph:
    """Provider names mapped to the names each of them waits for.

    Names that are only ever depended upon still get a node, with nothing to wait for.
    """

    def __init__(self):
        self._dependencies: dict[str, set[str]] = {}

    @staticmethod
    def from_edges(edges: Iterable[tuple[str, str]]) -> "_DependencyGraph":
        graph = _DependencyGraph()
        for dependency, dependent in edges:
            graph.add_node(dependency)
            if dependent != TERMINAL:
                graph.add_prerequisite(dependent, dependency)
        return graph

    def add_node(self, node: str):
        self._dependencies.setdefault(node, set())

    def add_prerequisite(self, node: str, prerequisite: str):
        self.add_node(node)
        self._dependencies[node].add(prerequisite)

    def prerequisites(self) -> dict[str, frozenset[str]]:
        return {node: frozenset(dependencies) for node, dependencies in self._dependencies.items()}

    def traverse(self):
        """
        Perform a topological traversal of the dependency graph.

        Yields:
            Provider names in an order where all dependencies of each node
            are yielded before the node itself.

        Raises:
            CyclicDependencyError: If a cycle prevents some nodes from being reached.
        """
        remaining = {node: set(dependencies) for node, dependencies in self._dependencies.items()}
        dependents: dict[str, set[str]] = defaultdict(set)
        for node, dependencies in remaining.items():
            for dependency in dependencies:
                dependents[dependency].add(node)

        ready_to_build = deque(node for node, dependencies in remaining.items() if not dependencies)

        while ready_to_build:
            next_item = ready_to_build.popleft()
            yield next_item

            del remaining[next_item]
            for dependent in dependents[next_item]:
                dependencies = remaining[dependent]
                dependencies.discard(next_item)
                if not dependencies:
                    ready_to_build.append(dependent)

        if remaining:
            raise CyclicDependencyError(sorted(remaining)[0])


class Resolver:
    """Resolve the providers of a registry into build plans and lazily built instances."""

    def __init__(self, registry: ProviderRegistry):
        self._registry = registry
        self._verified: set[str] = set()
        self._verified_revision = registry.revision

    def resolve_all(self) -> BuildPlan:
        """Build a plan covering every registered provider.

        Dependency names that nothing provides still appear as nodes without
        prerequisites; building them yields ``None``.

        Raises:
            CyclicDependencyError: If the registry's dependencies contain a cycle.
                No plan is returned, so nothing gets built.
        """
        self._forget_stale_checks()
        edges = build_edges(self._registry)
        graph = _DependencyGraph.from_edges(edges)
        build_order = list(graph.traverse())
        self._verified.update(build_order)
        return BuildPlan(edges, graph.prerequisites(), build_order)

    def ensure_acyclic(self, name: str):
        """Check that nothing in the transitive dependencies of ``name`` depends on itself.

        Raises:
            CyclicDependencyError: Naming the chain of dependencies that leads
                back to a name still being visited.
        """
        self._forget_stale_checks()
        if name in self._verified:
            return

        visiting: list[str] = []
        visited: set[str] = set()

        def visit(node: str):
            if node in self._verified or node in visited:
                return
            if node in visiting:
                cycle = visiting[visiting.index(node):] + [node]
                raise CyclicDependencyError(node, cycle)

            record = self._registry.lookup(node)
            visiting.append(node)
            for dependency in record.dependencies if record else ():
                visit(dependency)
            visiting.pop()
            visited.add(node)

        visit(name)
        self._verified.update(visited)

    def _forget_stale_checks(self):
        if self._verified_revision != self._registry.revision:
            self._verified.clear()
            self._verified_revision = self._registry.revision

    async def resolve_one(self, name: str, cache: "InstanceCache") -> Any:
        """Build (or fetch) a single instance, depth-first on demand."""
        self.ensure_acyclic(name)
        return await cache.get(name)


class Scheduler:
    """Walk a :class:`BuildPlan`, visiting at most ``concurrency`` nodes at once."""

    def __init__(self, concurrency: int = 1):
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")
        self._concurrency = concurrency

    async def run(self, plan: BuildPlan, visit: Callable[[str], Awaitable[Any]]):
        """Visit every node of the plan after all of its prerequisites.

        On the first failed visit no further nodes are started. Visits already
        running are allowed to finish before the failure is raised.

        Raises:
            CyclicDependencyError: If some nodes could never become eligible.
            Exception: The first exception raised by ``visit``.
        """
        remaining = {node: set(prerequisites) for node, prerequisites in plan.prerequisites.items()}
        dependents = plan.dependents()
        ready = deque(node for node in plan.build_order if not remaining[node])
        running: dict[asyncio.Future, str] = {}
        failure: Optional[BaseException] = None

        while ready or running:
            while ready and failure is None and len(running) < self._concurrency:
                node = ready.popleft()
                running[asyncio.ensure_future(visit(node))] = node

            if not running:
                break

            done, _ = await asyncio.wait(running, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                node = running.pop(task)
                if task.cancelled():
                    failure = failure or asyncio.CancelledError(f"Visit of '{node}' was cancelled")
                    continue
                if task.exception() is not None:
                    logger.debug("Visit of '%s' failed: %r", node, task.exception())
                    failure = failure or task.exception()
                    continue

                del remaining[node]
                for dependent in dependents.get(node, ()):
                    prerequisites = remaining[dependent]
                    prerequisites.discard(node)
                    if not prerequisites:
                        ready.append(dependent)

            if failure is not None:
                ready.clear()

        if failure is not None:
            raise failure
        if remaining:
            raise CyclicDependencyError(sorted(remaining)[0])
