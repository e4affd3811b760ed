"""Discovery of annotated providers in source trees.

Root paths are scanned recursively for source files. Each file is read as
text and its top-level functions and classes are inspected for ``@Provides``
and ``@Requires`` docstring annotations, without importing anything. Targets
are only loaded, by :class:`ModuleLoader`, once they are about to be
registered.
"""

import ast
import hashlib
import importlib.util
import inspect
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from types import ModuleType
from typing import Any, Callable, Iterable, Iterator, Optional, Union

from abdicate.annotations import (
    PROVIDES,
    REQUIRES,
    ProvidesAnnotation,
    parse_provides,
    parse_requires,
    read_annotations,
)
from abdicate.errors import DiscoveryError

__all__ = [
    "DiscoveredProvider",
    "ModuleLoader",
    "default_name",
    "find_files",
    "normalise_root",
    "package_module_name",
    "scan",
    "scan_file",
]

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]

_DEFINITIONS = (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)


@dataclass(frozen=True)
class DiscoveredProvider:
    """An annotated function or class found in a source file.

    Attributes:
        source: Absolute path of the file declaring the provider.
        function_name: Name of the function or class within the file.
        provides: The parsed ``@Provides`` annotation, if present.
        requires: Names from the ``@Requires`` annotation, in order.
    """

    source: str
    function_name: str
    provides: Optional[ProvidesAnnotation]
    requires: tuple[str, ...]


def normalise_root(path: PathLike) -> str:
    """Return the absolute form of a root path, ending in exactly one separator."""
    return os.path.join(os.path.abspath(os.fspath(path)), "")


def find_files(rootpaths: Iterable[PathLike], pattern: str = "*.py") -> list[str]:
    """Recursively list files matching ``pattern`` under each root, sorted per root."""
    files = []
    for root in rootpaths:
        matches = sorted(str(p) for p in Path(normalise_root(root)).rglob(pattern) if p.is_file())
        logger.debug("Found %d files under %s", len(matches), root)
        files.extend(matches)
    return files


def default_name(source: PathLike, rootpaths: Iterable[PathLike], function_name: str) -> str:
    """Name a provider after its location when it does not declare a name.

    The path relative to the first matching root has its separators replaced by
    dots and its suffix dropped, then the function name is appended, e.g.
    ``services/db.py`` and ``connect`` give ``services.db.connect``. A path
    outside every root is returned unchanged.
    """
    source = os.fspath(source)
    for root in rootpaths:
        root = normalise_root(root)
        if source.startswith(root):
            relative = os.path.splitext(source[len(root):])[0]
            return ".".join(relative.split(os.sep) + [function_name])
    return source


def scan_file(source: PathLike) -> list[DiscoveredProvider]:
    """Find annotated top-level functions and classes in one source file.

    Raises:
        AnnotationError: If an annotation in the file is malformed.
        DiscoveryError: If the file cannot be read as UTF-8 text or parsed.
    """
    source = os.path.abspath(os.fspath(source))
    try:
        with open(source, encoding="utf-8") as f:
            tree = ast.parse(f.read(), filename=source)
    except (OSError, UnicodeDecodeError, SyntaxError) as e:
        raise DiscoveryError(source, None, f"reading failed with {e!r}") from e

    discovered = []
    for node in tree.body:
        if not isinstance(node, _DEFINITIONS):
            continue
        annotations = read_annotations(ast.get_docstring(node))
        if not annotations:
            continue
        discovered.append(
            DiscoveredProvider(
                source,
                node.name,
                parse_provides(annotations[PROVIDES]) if PROVIDES in annotations else None,
                tuple(parse_requires(annotations[REQUIRES])) if REQUIRES in annotations else (),
            )
        )
    return discovered


def scan(
    rootpaths: Iterable[PathLike],
    pattern: str = "*.py",
    on_error: Optional[Callable[[DiscoveryError], None]] = None,
) -> Iterator[DiscoveredProvider]:
    """Yield every annotated provider found under the root paths.

    Files that cannot be read or parsed are passed to ``on_error`` and skipped;
    without ``on_error`` the :class:`DiscoveryError` is raised.
    """
    for source in find_files(rootpaths, pattern):
        try:
            discovered = scan_file(source)
        except DiscoveryError as e:
            if on_error is None:
                raise
            on_error(e)
            continue
        yield from discovered


def package_module_name(source: PathLike) -> Optional[str]:
    """Dotted module name of a file lying inside a package, or None for a loose file.

    Enclosing directories are climbed for as long as they hold an ``__init__.py``,
    so ``app/services/db.py`` under a package ``app.services`` gives ``app.services.db``.
    """
    directory, filename = os.path.split(os.path.abspath(os.fspath(source)))
    parts = [os.path.splitext(filename)[0]]
    while os.path.isfile(os.path.join(directory, "__init__.py")):
        directory, package = os.path.split(directory)
        parts.insert(0, package)
    if len(parts) == 1:
        return None
    if parts[-1] == "__init__":
        parts.pop()
    return ".".join(parts)


class ModuleLoader:
    """Load source files as modules and look up provider targets in them.

    Each file is executed at most once per loader. A file inside a package is
    imported under its dotted package name, so relative imports work and a
    module already imported by the application is reused. A loose file is
    entered in ``sys.modules`` under a private name derived from its path.
    """

    def __init__(self):
        self._modules: dict[str, ModuleType] = {}

    def resolve(self, source: str, function_name: str) -> Any:
        """Return the function or class called ``function_name`` defined in ``source``.

        Raises:
            DiscoveryError: If the file cannot be loaded or does not define the target.
        """
        module = self._load(source, function_name)
        target = getattr(module, function_name, None)
        if target is None or not (inspect.isfunction(target) or inspect.isclass(target)):
            raise DiscoveryError(source, function_name, "no such function or class in module")
        return target

    def _load(self, source: str, function_name: str) -> ModuleType:
        if source in self._modules:
            return self._modules[source]

        module_name = package_module_name(source)
        if module_name is not None and self._owns_package(source, module_name):
            module = self._import_packaged(source, function_name, module_name)
        else:
            module_name = "_abdicate_" + hashlib.sha1(source.encode("utf-8")).hexdigest()
            module = self._exec_file(source, function_name, module_name)

        logger.debug("Loaded %s as %s", source, module_name)
        self._modules[source] = module
        return module

    @staticmethod
    def _package_dir(source: str, module_name: str) -> str:
        depth = module_name.count(".")
        if os.path.basename(source) == "__init__.py":
            depth += 1
        directory = os.path.dirname(source)
        for _ in range(depth - 1):
            directory = os.path.dirname(directory)
        return directory

    def _owns_package(self, source: str, module_name: str) -> bool:
        # A different package of the same name already imported wins the name.
        top = sys.modules.get(module_name.split(".")[0])
        if top is None:
            return True
        return self._package_dir(source, module_name) in list(getattr(top, "__path__", ()))

    def _import_packaged(self, source: str, function_name: str, module_name: str) -> ModuleType:
        top = module_name.split(".")[0]
        if top not in sys.modules:
            package_dir = self._package_dir(source, module_name)
            spec = importlib.util.spec_from_file_location(
                top,
                os.path.join(package_dir, "__init__.py"),
                submodule_search_locations=[package_dir],
            )
            self._exec_spec(spec, source, function_name)

        try:
            return importlib.import_module(module_name)
        except Exception as e:
            raise DiscoveryError(source, function_name, f"loading failed with {e!r}") from e

    def _exec_file(self, source: str, function_name: str, module_name: str) -> ModuleType:
        spec = importlib.util.spec_from_file_location(module_name, source)
        return self._exec_spec(spec, source, function_name)

    @staticmethod
    def _exec_spec(spec, source: str, function_name: str) -> ModuleType:
        if spec is None or spec.loader is None:
            raise DiscoveryError(source, function_name, "not a loadable module")

        module = importlib.util.module_from_spec(spec)
        sys.modules[spec.name] = module
        try:
            spec.loader.exec_module(module)
        except Exception as e:
            del sys.modules[spec.name]
            raise DiscoveryError(source, function_name, f"loading failed with {e!r}") from e
        return module
