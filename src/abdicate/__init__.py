"""Abdicate dependency injection framework.

Abdicate discovers provider functions and classes scattered across source
files, works out the order their declared dependencies impose, and builds them,
sharing singleton instances and producing fresh prototype instances per request.
Providers may be synchronous, return an awaitable, or report through a trailing
callback; the context hides the difference.

Key Features:
    - Discovery of providers from ``@Provides`` / ``@Requires`` docstring annotations
    - Explicit registration of factories and literal instances
    - Singleton and prototype scopes
    - Eager bootstrap in dependency order with bounded concurrency, or lazy builds
    - At most one build in flight per singleton, however many concurrent requests
    - Cycle detection before anything is built
    - Every operation usable as an awaitable or with an ``(error, result)`` callback

Basic Usage:
    >>> from abdicate.context import Context
    >>>
    >>> context = Context(["./services"])
    >>> context.register("db.uri", {"uri": "mongodb://foo"})
    >>> await context.bootstrap(eager=True)
    >>> service = await context.get_instance("my.service")

The framework consists of several core modules:
    - context: The public request surface
    - builders: High-level context construction functions
    - registry: Provider registration and lookup
    - resolver: Dependency graph, cycle detection and build scheduling
    - instance_cache: Singleton caching and on-demand building
    - instance_builder: Factory invocation per calling convention
    - discovery / annotations: Finding annotated providers in source trees
    - domain: Core domain models (ProviderRecord, Scope, CallingConvention)
    - config: Context settings
    - errors: Framework-specific exceptions
"""
