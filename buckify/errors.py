"""Error types raised by buckify.

Every error carries the file it concerns when there is one. Errors from the
Starlark and metadata parsers also carry the line and column of the offending
input, so ``format()`` can point at it directly.
"""

from __future__ import annotations

from typing import Optional


class BuckifyError(Exception):
    """Base class for all errors surfaced to users."""

    code: Optional[str] = None

    def __init__(
        self,
        message: str,
        *,
        path: Optional[str] = None,
        line: Optional[int] = None,
        column: Optional[int] = None,
        hint: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.path = path
        self.line = line
        self.column = column
        self.hint = hint

    def where(self) -> Optional[str]:
        """``path[:line[:column]]`` of the input that failed, if known."""

        if not self.path:
            return None
        parts = [self.path]
        if self.line is not None:
            parts.append(str(self.line))
            if self.column is not None:
                parts.append(str(self.column))
        return ":".join(parts)

    def format(self) -> str:
        details = [part for part in (self.where(), self.code) if part]
        text = self.message
        if details:
            text = f"{text} ({'; '.join(details)})"
        if self.hint:
            text = f"{text} Hint: {self.hint}"
        return text


class MetadataError(BuckifyError):
    """Raised when cargo metadata or the lockfile is missing or malformed."""

    code = "METADATA"


class ManifestError(BuckifyError):
    """Raised when a package manifest cannot be mapped onto the build tree."""

    code = "MANIFEST"


class DependencyConflictError(BuckifyError):
    """Raised when a platform-scoped alias resolves to two different targets."""

    code = "DEP_CONFLICT"


class StarlarkSyntaxError(BuckifyError):
    """Raised when the Starlark lexer or parser encounters invalid syntax."""

    code = "STARLARK_SYNTAX"


class CfgParseError(BuckifyError):
    """Raised when a platform predicate cannot be parsed."""

    code = "CFG_PARSE"


class SnapshotError(BuckifyError):
    """Raised when a persisted snapshot cannot be read or has an unknown format."""

    code = "SNAPSHOT"


class ConfigError(BuckifyError):
    """Raised when the repository configuration holds invalid values."""

    code = "CONFIG"


__all__ = [
    "BuckifyError",
    "MetadataError",
    "ManifestError",
    "DependencyConflictError",
    "StarlarkSyntaxError",
    "CfgParseError",
    "SnapshotError",
    "ConfigError",
]
