# =============================================================================
# Unit Tests — Handler Tracking Registry
# =============================================================================

from __future__ import annotations

import pytest

from request_tracker.services.patterns import TrackingDirective
from request_tracker.services.registry import (
    handler_identifier,
    track_module,
    track_request,
)


class TestHandlerIdentifier:
    def test_function(self):
        def list_grades():
            pass

        assert handler_identifier(list_grades) == (
            f"{__name__}.TestHandlerIdentifier.test_function.<locals>.list_grades"
        )

    def test_bound_method_resolves_to_function(self):
        class Controller:
            def show(self):
                pass

        assert handler_identifier(Controller().show) == handler_identifier(Controller.show)

    def test_none(self):
        assert handler_identifier(None) is None


class TestDecorators:
    """Tests for @track_request / @track_module registration."""

    def test_track_request_registers_and_opts_in(self, isolated_registry):
        @track_request("students.grades|List Grades", target=isolated_registry)
        def list_grades():
            return "ok"

        entry = isolated_registry.lookup(handler_identifier(list_grades))
        assert entry.directive == TrackingDirective("students", "grades", "List Grades")
        assert entry.opt_in is True
        # The handler itself is returned unchanged
        assert list_grades() == "ok"

    def test_track_module_covers_methods(self, isolated_registry):
        @track_module("reports", "exports", target=isolated_registry)
        class ExportController:
            def download(self):
                pass

        entry = isolated_registry.lookup(handler_identifier(ExportController.download))
        assert entry.directive == TrackingDirective("reports", "exports")
        assert entry.opt_in is False

    def test_handler_declaration_wins_over_group(self, isolated_registry):
        @track_module("reports", target=isolated_registry)
        class ReportController:
            @track_request("reports.monthly|Monthly Report", target=isolated_registry)
            def monthly(self):
                pass

            def weekly(self):
                pass

        monthly = isolated_registry.lookup(handler_identifier(ReportController.monthly))
        weekly = isolated_registry.lookup(handler_identifier(ReportController.weekly))
        assert monthly.directive.submodule == "monthly"
        assert monthly.opt_in is True
        assert weekly.directive == TrackingDirective("reports")

    def test_group_prefix_requires_dot_boundary(self, isolated_registry):
        isolated_registry.register_group("app.views.Report", TrackingDirective("reports"))
        assert isolated_registry.lookup("app.views.ReportAdmin.show") is None
        assert isolated_registry.lookup("app.views.Report.show") is not None

    def test_longest_group_prefix_wins(self, isolated_registry):
        isolated_registry.register_group("app.views", TrackingDirective("general"))
        isolated_registry.register_group("app.views.Billing", TrackingDirective("billing"))
        entry = isolated_registry.lookup("app.views.Billing.invoice")
        assert entry.directive.module == "billing"

    def test_unregistered_handler(self, isolated_registry):
        assert isolated_registry.lookup("app.views.nothing") is None
        assert isolated_registry.lookup(None) is None

    def test_track_module_requires_name(self):
        with pytest.raises(ValueError):
            track_module("  ")

    def test_invalid_mapping_fails_at_decoration(self):
        with pytest.raises(ValueError):
            track_request("|Label only")
