# =============================================================================
# Path Patterns & Tracking Directives
# =============================================================================
#
# Two small value types shared by configuration and the classifier:
#
#   PathPattern        → one exclusion / module-mapping predicate on a path
#   TrackingDirective  → a parsed "module[.submodule][|label]" mapping string
#
# PATTERN KINDS (all case-insensitive, path trimmed of leading/trailing "/"):
#   "parent/look-up"      literal   → path ends with the pattern, on a
#                                    segment boundary
#   "admin/*/audit"       glob      → shell-style match on the whole path
#   "regex:^health"       regex     → re.search against the path
#
# Patterns are parsed once when configuration is loaded, so matching at
# request time never compiles anything.
# =============================================================================

from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from fnmatch import fnmatchcase

REGEX_PREFIX = "regex:"


def normalize_path(path: str | None) -> str:
    """Trim whitespace and leading/trailing separators from a request path."""
    return (path or "").strip().strip("/")


class PatternKind(str, enum.Enum):
    LITERAL = "literal"
    GLOB = "glob"
    REGEX = "regex"


@dataclass(frozen=True)
class PathPattern:
    """A single path predicate parsed from configuration."""

    raw: str
    kind: PatternKind
    value: str
    compiled: re.Pattern | None = None

    @classmethod
    def parse(cls, raw: str) -> PathPattern:
        """
        Parse a configured pattern string.

        Raises:
            ValueError: empty pattern, or an invalid regular expression.
        """
        text = raw.strip()
        if text.lower().startswith(REGEX_PREFIX):
            expression = text[len(REGEX_PREFIX):].strip()
            if not expression:
                raise ValueError(f"Empty regex pattern: {raw!r}")
            try:
                compiled = re.compile(expression, re.IGNORECASE)
            except re.error as exc:
                raise ValueError(f"Invalid regex pattern {raw!r}: {exc}") from exc
            return cls(raw=raw, kind=PatternKind.REGEX, value=expression, compiled=compiled)

        value = normalize_path(text).lower()
        if not value:
            raise ValueError(f"Empty path pattern: {raw!r}")
        kind = PatternKind.GLOB if "*" in value else PatternKind.LITERAL
        return cls(raw=raw, kind=kind, value=value)

    def matches(self, path: str | None) -> bool:
        target = normalize_path(path)
        if self.kind is PatternKind.REGEX:
            return self.compiled.search(target) is not None
        if self.kind is PatternKind.GLOB:
            return fnmatchcase(target.lower(), self.value)
        target = target.lower()
        return target == self.value or target.endswith("/" + self.value)


@dataclass(frozen=True)
class TrackingDirective:
    """Module / submodule / label declared for a handler or a path rule."""

    module: str
    submodule: str | None = None
    label: str | None = None

    @classmethod
    def parse(cls, mapping: str) -> TrackingDirective:
        """
        Parse "module", "module.submodule" or "module.submodule|Label".

        Only the first "|" and the first "." are significant, so labels may
        contain dots and submodules may not be split further.
        """
        label = None
        if "|" in mapping:
            mapping, label = mapping.split("|", 1)
            label = label.strip() or None

        if "." in mapping:
            module, submodule = mapping.split(".", 1)
        else:
            module, submodule = mapping, None

        module = module.strip()
        submodule = submodule.strip() if submodule else None
        if not module:
            raise ValueError(f"Tracking directive has no module: {mapping!r}")
        return cls(module=module, submodule=submodule or None, label=label)


@dataclass(frozen=True)
class ModuleRule:
    """One ordered path-pattern → directive mapping."""

    pattern: PathPattern
    directive: TrackingDirective

    @classmethod
    def parse(cls, pattern: str, mapping: str) -> ModuleRule:
        return cls(PathPattern.parse(pattern), TrackingDirective.parse(mapping))
