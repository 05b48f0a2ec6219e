# =============================================================================
# Handler Tracking Registry
# =============================================================================
#
# Handlers declare their business module with decorators that run at import
# time and populate a static registry keyed by handler identifier:
#
#   @router.get("/students/{id}/grades")
#   @track_request("students.grades|List Grades")
#   async def list_grades(...): ...
#
#   @track_module("reports", "exports")
#   class ExportController: ...
#
# track_request is handler level and is also the explicit opt-in marker for
# per-endpoint detail rows (DetailTracking.OPT_IN). track_module is group
# level (a class of handlers) and only supplies the module.
#
# Lookups are plain dict reads; nothing is resolved through reflection at
# request time. Handler-level declarations win over group-level ones.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from request_tracker.services.patterns import TrackingDirective

logger = logging.getLogger(__name__)


def handler_identifier(handler: Any) -> str | None:
    """
    Stable identifier for a handler: "<module>.<qualname>".

    Bound methods resolve to their function; objects without a module or
    qualname (e.g. functools.partial) yield None.
    """
    target = getattr(handler, "__func__", handler)
    module = getattr(target, "__module__", None)
    qualname = getattr(target, "__qualname__", None)
    if not module or not qualname:
        return None
    return f"{module}.{qualname}"


@dataclass(frozen=True)
class RegisteredHandler:
    """A registry entry: the directive plus whether detail tracking opted in."""

    directive: TrackingDirective
    opt_in: bool


class TrackingRegistry:
    """Handler identifier → declared tracking directive."""

    def __init__(self) -> None:
        self._handlers: dict[str, RegisteredHandler] = {}
        self._groups: dict[str, TrackingDirective] = {}

    def register_handler(self, identifier: str, directive: TrackingDirective) -> None:
        if identifier in self._handlers:
            logger.warning("Tracking directive for %s registered twice", identifier)
        self._handlers[identifier] = RegisteredHandler(directive=directive, opt_in=True)

    def register_group(self, prefix: str, directive: TrackingDirective) -> None:
        self._groups[prefix] = directive

    def lookup(self, identifier: str | None) -> RegisteredHandler | None:
        """
        Find the directive for a handler identifier.

        Handler-level entries match exactly. Group-level entries match the
        longest registered prefix ending at a "." boundary, so a class
        registered as "app.views.ExportController" covers
        "app.views.ExportController.download".
        """
        if not identifier:
            return None

        entry = self._handlers.get(identifier)
        if entry is not None:
            return entry

        best: str | None = None
        for prefix in self._groups:
            if identifier.startswith(prefix + ".") and (best is None or len(prefix) > len(best)):
                best = prefix
        if best is None:
            return None
        return RegisteredHandler(directive=self._groups[best], opt_in=False)

    def clear(self) -> None:
        self._handlers.clear()
        self._groups.clear()


# Process-wide registry populated by the decorators below
registry = TrackingRegistry()


def track_request(mapping: str, *, target: TrackingRegistry | None = None):
    """
    Declare "module[.submodule][|Label]" for a handler and opt it in to
    per-endpoint detail tracking.
    """
    directive = TrackingDirective.parse(mapping)
    reg = target or registry

    def decorator(handler):
        identifier = handler_identifier(handler)
        if identifier is None:
            raise TypeError(f"Cannot derive a handler identifier for {handler!r}")
        reg.register_handler(identifier, directive)
        return handler

    return decorator


def track_module(module: str, submodule: str | None = None, *, target: TrackingRegistry | None = None):
    """Declare the module for every handler defined inside a class."""
    if not module or not module.strip():
        raise ValueError("track_module requires a module name")
    directive = TrackingDirective(module=module.strip(), submodule=submodule)
    reg = target or registry

    def decorator(group):
        identifier = handler_identifier(group)
        if identifier is None:
            raise TypeError(f"Cannot derive a handler identifier for {group!r}")
        reg.register_group(identifier, directive)
        return group

    return decorator
