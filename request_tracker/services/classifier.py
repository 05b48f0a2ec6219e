# =============================================================================
# Endpoint Classifier — module / submodule / label for a request
# =============================================================================
#
# classify() is a pure function: same inputs and config, same result. It
# reads no clock, no database and no global state.
#
# RESOLUTION ORDER (first match wins):
#   1. declared directive        @track_request / @track_module
#   2. configured path patterns  TRACKER_MODULE_PATTERNS, in order
#   3. route name convention     "students.grades.list"
#   4. path segments             "api/v1/<module>/<id?>/<submodule>"
#   5. controller name           "UserController@show" / "UserController.show"
#   6. fallback                  module="unknown", humanised path as label
#
# Example (auto_extract_segment=2):
#   "api/v1/users/42/profile"  → users / profile / "Profile in Users"
#   route "students.grades.list" → students / grades / "List Grades"
# =============================================================================

from __future__ import annotations

import re
from dataclasses import dataclass

from request_tracker.config import TrackerConfig
from request_tracker.db.models import UNKNOWN_MODULE
from request_tracker.services.patterns import TrackingDirective, normalize_path

# Path segments that carry routing, not business meaning
NOISE_SEGMENTS = frozenset({"api", "v1", "v2"})

FALLBACK_LABEL = "Resource Access"

_CONTROLLER_RE = re.compile(r"(\w+)Controller[@.](\w+)")


@dataclass(frozen=True)
class EndpointClassification:
    """Result of classify(). `source` names the step that produced it."""

    module: str
    submodule: str | None
    label: str | None
    source: str


def _ucfirst(value: str) -> str:
    return value[:1].upper() + value[1:]


def _segments(path: str) -> list[str]:
    return [s for s in normalize_path(path).split("/") if s]


def _from_directive(directive: TrackingDirective, source: str) -> EndpointClassification:
    return EndpointClassification(
        module=directive.module,
        submodule=directive.submodule,
        label=directive.label,
        source=source,
    )


def _from_route_name(route_name: str | None) -> EndpointClassification | None:
    if not route_name or "." not in route_name:
        return None

    parts = route_name.split(".", 2)
    module = parts[0].strip()
    if not module:
        return None
    submodule = parts[1].strip() or None
    action = parts[2].strip() if len(parts) > 2 else ""

    label = f"{_ucfirst(action)} {_ucfirst(submodule or module)}" if action else None
    return EndpointClassification(module, submodule, label, "route_name")


def _from_path(path: str, index: int) -> EndpointClassification | None:
    segments = _segments(path)
    if index >= len(segments):
        return None

    def at(i: int) -> str | None:
        return segments[i] if i < len(segments) else None

    module = segments[index]
    if module.isdigit():
        # The configured segment is an ID: the module is the next segment
        module = at(index + 1)
        if module is None:
            return None
        submodule = at(index + 2)
    else:
        # Resource IDs are skipped ("users/42/profile")
        submodule = next((s for s in segments[index + 1:] if not s.isdigit()), None)

    if submodule is not None and submodule.isdigit():
        submodule = None

    label = (
        f"{_ucfirst(submodule)} in {_ucfirst(module)}"
        if submodule
        else _ucfirst(module)
    )
    return EndpointClassification(module, submodule, label, "path")


def _from_controller(controller_id: str | None) -> EndpointClassification | None:
    if not controller_id:
        return None
    match = _CONTROLLER_RE.search(controller_id)
    if match is None:
        return None
    name, method = match.group(1), match.group(2)
    return EndpointClassification(
        module=name.lower(),
        submodule=None,
        label=f"{_ucfirst(method)} {_ucfirst(name)}",
        source="controller",
    )


def humanize_path(path: str) -> str:
    """
    Human-readable label for a path: routing noise and numeric IDs removed,
    remaining segments title-cased.

    >>> humanize_path("api/v1/users/42/profile")
    'Users Profile'
    """
    meaningful = [
        s for s in _segments(path)
        if s.lower() not in NOISE_SEGMENTS and not s.isdigit()
    ]
    if not meaningful:
        return FALLBACK_LABEL
    return " ".join(_ucfirst(s) for s in meaningful)


def classify(
    path: str,
    route_name: str | None,
    controller_id: str | None,
    declared: TrackingDirective | None,
    config: TrackerConfig,
) -> EndpointClassification:
    """
    Derive module / submodule / label for an endpoint.

    Args:
        path: Request path (leading/trailing "/" are ignored).
        route_name: Framework route name, if any.
        controller_id: Handler identifier, e.g. "app.views.UserController.show".
        declared: Directive registered for the handler, if any.
        config: Tracker configuration (pattern rules, segment index).

    Never raises for unmatched input; step 6 always produces a result.
    """
    if declared is not None and declared.module:
        return _from_directive(declared, "declared")

    for rule in config.module_rules:
        if rule.pattern.matches(path):
            return _from_directive(rule.directive, "pattern")

    result = (
        _from_route_name(route_name)
        or _from_path(path, config.auto_extract_segment)
        or _from_controller(controller_id)
    )
    if result is not None:
        return result

    return EndpointClassification(
        module=UNKNOWN_MODULE,
        submodule=None,
        label=humanize_path(path),
        source="fallback",
    )
