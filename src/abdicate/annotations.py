"""Parsing of ``@Provides`` and ``@Requires`` annotations in docstrings.

Providers found by discovery declare themselves with annotation lines in their
docstrings::

    def connect(options, callback):
        \"\"\"Open a database connection.

        @Requires ['db.uri']
        @Provides name='db.connection' async='callback'
        \"\"\"

``@Provides`` takes ``name``, ``scope`` and ``async`` settings separated by
commas and/or whitespace, or just a quoted name (``@Provides 'db.connection'``).
``@Requires`` takes a quoted name or a list of quoted names.
"""

import ast
import re
from dataclasses import dataclass
from typing import Optional

from abdicate.domain import CallingConvention, Scope
from abdicate.errors import AnnotationError, DependencyError

__all__ = [
    "PROVIDES",
    "REQUIRES",
    "ProvidesAnnotation",
    "read_annotations",
    "parse_provides",
    "parse_requires",
]

PROVIDES = "Provides"
REQUIRES = "Requires"

_ANNOTATION_LINE = re.compile(r"^\s*\*?\s*@(Provides|Requires)\b(.*)$")
_SEPARATOR = re.compile(r"[\s,]*")
_SETTING = re.compile(r"""(\w+)\s*=\s*(?:'([^']*)'|"([^"]*)"|([\w.]+))""")
_QUOTED = re.compile(r"""'([^']*)'|"([^"]*)\"""")
_KNOWN_SETTINGS = {"name", "scope", "async"}


@dataclass(frozen=True)
class ProvidesAnnotation:
    """Structured content of a ``@Provides`` annotation.

    Attributes:
        name: The declared logical name, or None to use the default name.
        scope: Declared lifetime, singleton unless stated.
        calling_convention: Declared by the ``async`` setting, or None when unstated.
    """

    name: Optional[str] = None
    scope: Scope = Scope.SINGLETON
    calling_convention: Optional[CallingConvention] = None


def read_annotations(docstring: Optional[str]) -> dict[str, str]:
    """Collect the annotation lines of a docstring.

    Returns:
        The raw text following each annotation, keyed by ``'Provides'`` or
        ``'Requires'``. When an annotation appears more than once the last wins.
    """
    annotations = {}
    for line in (docstring or "").splitlines():
        match = _ANNOTATION_LINE.match(line)
        if match:
            annotations[match.group(1)] = match.group(2).strip()
    return annotations


def parse_provides(text: str) -> ProvidesAnnotation:
    """Parse the text of a ``@Provides`` annotation.

    Example:
        >>> parse_provides("name='db.connection' async='callback'")
        ProvidesAnnotation(name='db.connection', scope=<Scope.SINGLETON: 'singleton'>, calling_convention=<CallingConvention.CALLBACK: 'callback'>)
        >>> parse_provides("'abbreviated'").name
        'abbreviated'

    Raises:
        AnnotationError: If the text is not a quoted name or a list of settings.
    """
    text = text.strip()
    bare = _QUOTED.fullmatch(text)
    if bare:
        return ProvidesAnnotation(_quoted_value(bare, 1))

    settings = _parse_settings(text)
    unknown = settings.keys() - _KNOWN_SETTINGS
    if unknown:
        raise AnnotationError(f"Unknown @Provides settings {sorted(unknown)} in {text!r}")

    try:
        return ProvidesAnnotation(
            settings.get("name") or None,
            Scope.parse(settings.get("scope")),
            CallingConvention.parse(settings["async"]) if "async" in settings else None,
        )
    except DependencyError as e:
        raise AnnotationError(f"Invalid @Provides annotation {text!r}: {e}") from e


def parse_requires(text: str) -> list[str]:
    """Parse the text of a ``@Requires`` annotation into an ordered list of names.

    Raises:
        AnnotationError: If the text is not a string literal or a list of string literals.
    """
    try:
        value = ast.literal_eval(text.strip())
    except (ValueError, SyntaxError) as e:
        raise AnnotationError(f"Invalid @Requires annotation {text!r}") from e

    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
        return list(value)
    raise AnnotationError(f"@Requires expects a name or a list of names, got {text!r}")


def _parse_settings(text: str) -> dict[str, str]:
    settings = {}
    position = _SEPARATOR.match(text).end()
    while position < len(text):
        match = _SETTING.match(text, position)
        if match is None:
            raise AnnotationError(f"Cannot parse @Provides annotation {text!r} at {text[position:]!r}")
        key = match.group(1)
        if key in settings:
            raise AnnotationError(f"Setting '{key}' given twice in {text!r}")
        settings[key] = _quoted_value(match, 2)
        position = _SEPARATOR.match(text, match.end()).end()
    return settings


def _quoted_value(match: re.Match, first_group: int) -> str:
    return next(
        value
        for value in match.groups()[first_group - 1:]
        if value is not None
    )
