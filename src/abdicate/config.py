"""Context configuration."""

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

__all__ = ["ContextSettings", "default_concurrency"]

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


def default_concurrency() -> int:
    return max(os.cpu_count() or 1, 1)


@dataclass(frozen=True)
class ContextSettings:
    """Tunable parameters for a :class:`~abdicate.context.Context`.

    All fields have sane defaults. Override only what you need.

    Example:
        >>> settings = ContextSettings(concurrency=1, strict=True)
        >>> context = Context(["./services"], settings=settings)
    """

    concurrency: int = field(default_factory=default_concurrency)
    """Maximum number of providers built at once during an eager bootstrap."""

    strict: bool = False
    """Raise MissingProviderError for unregistered names instead of returning None."""

    file_pattern: str = "*.py"
    """Glob matched against file names when scanning root paths."""

    def __post_init__(self):
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {self.concurrency}")
        if not self.file_pattern:
            raise ValueError("file_pattern must not be empty")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ContextSettings":
        """Read settings from ``ABDICATE_*`` environment variables.

        Recognised variables are ``ABDICATE_CONCURRENCY``, ``ABDICATE_STRICT`` and
        ``ABDICATE_FILE_PATTERN``. Unset variables keep their defaults.

        Raises:
            ValueError: If a variable holds an invalid value.
        """
        environ = os.environ if environ is None else environ
        overrides = {}

        if "ABDICATE_CONCURRENCY" in environ:
            overrides["concurrency"] = int(environ["ABDICATE_CONCURRENCY"])

        if "ABDICATE_STRICT" in environ:
            overrides["strict"] = _parse_flag("ABDICATE_STRICT", environ["ABDICATE_STRICT"])

        if "ABDICATE_FILE_PATTERN" in environ:
            overrides["file_pattern"] = environ["ABDICATE_FILE_PATTERN"]

        return cls(**overrides)


def _parse_flag(variable: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    raise ValueError(f"{variable} must be a boolean flag, got {value!r}")
