# =============================================================================
# Unit Tests — Path Patterns, Directives & Endpoint Classifier
# =============================================================================
#
# Pure functions only: no database, no settings.
#
# Test groups:
#   1. PathPattern parsing & matching (literal, glob, regex)
#   2. TrackingDirective parsing
#   3. classify() resolution order
#   4. humanize_path()
# =============================================================================

from __future__ import annotations

import pytest

from request_tracker.config import TrackerConfig
from request_tracker.services.classifier import (
    FALLBACK_LABEL,
    classify,
    humanize_path,
)
from request_tracker.services.patterns import (
    PathPattern,
    PatternKind,
    TrackingDirective,
    normalize_path,
)


# ---------------------------------------------------------------------------
# 1. PathPattern
# ---------------------------------------------------------------------------


class TestPathPattern:
    """Tests for configured exclusion / mapping patterns."""

    def test_normalize_path_strips_slashes(self):
        assert normalize_path("/api/v1/users/") == "api/v1/users"
        assert normalize_path(None) == ""

    def test_literal_matches_suffix(self):
        pattern = PathPattern.parse("parent/look-up")
        assert pattern.kind is PatternKind.LITERAL
        assert pattern.matches("/api/parent/look-up")
        assert not pattern.matches("api/parent/look-up/extra")

    def test_literal_respects_segment_boundaries(self):
        docs = PathPattern.parse("docs")
        assert docs.matches("docs")
        assert docs.matches("api/v1/docs")
        assert not docs.matches("api/v1/kudocs")
        assert not docs.matches("api/v1/contracts/signed-docs")
        assert not PathPattern.parse("look-up").matches("parent/student-look-up")

    def test_literal_is_case_insensitive(self):
        assert PathPattern.parse("Docs").matches("/DOCS")

    def test_glob_matches_whole_path(self):
        pattern = PathPattern.parse("admin/*/audit")
        assert pattern.kind is PatternKind.GLOB
        assert pattern.matches("admin/users/audit")
        assert not pattern.matches("api/admin/users/audit")

    def test_regex_prefix(self):
        pattern = PathPattern.parse("regex:^health")
        assert pattern.kind is PatternKind.REGEX
        assert pattern.matches("/health/ping")
        assert pattern.matches("HEALTH")
        assert not pattern.matches("api/health")

    def test_empty_pattern_rejected(self):
        with pytest.raises(ValueError):
            PathPattern.parse("  /  ")

    def test_invalid_regex_rejected(self):
        with pytest.raises(ValueError, match="Invalid regex"):
            PathPattern.parse("regex:([unclosed")


# ---------------------------------------------------------------------------
# 2. TrackingDirective
# ---------------------------------------------------------------------------


class TestTrackingDirective:
    """Tests for "module.submodule|Label" parsing."""

    def test_module_only(self):
        assert TrackingDirective.parse("reports") == TrackingDirective("reports")

    def test_module_submodule_label(self):
        directive = TrackingDirective.parse("students.grades|List Grades")
        assert directive.module == "students"
        assert directive.submodule == "grades"
        assert directive.label == "List Grades"

    def test_label_may_contain_dots(self):
        directive = TrackingDirective.parse("docs.files|v1.2 Export")
        assert directive.label == "v1.2 Export"

    def test_empty_module_rejected(self):
        with pytest.raises(ValueError):
            TrackingDirective.parse("|Label")


# ---------------------------------------------------------------------------
# 3. classify()
# ---------------------------------------------------------------------------


class TestClassify:
    """Tests for the resolution order of the endpoint classifier."""

    def test_declared_directive_wins(self):
        config = TrackerConfig.build(module_patterns={"users/*": "people"})
        result = classify(
            "api/v1/users/42",
            "users.show",
            None,
            TrackingDirective("accounts", "profile", "View Profile"),
            config,
        )
        assert (result.module, result.submodule, result.label) == (
            "accounts", "profile", "View Profile",
        )
        assert result.source == "declared"

    def test_configured_pattern_before_route_name(self):
        config = TrackerConfig.build(
            module_patterns={"students/*/grades": "students.grades|Grades"},
        )
        result = classify("students/7/grades", "other.thing.list", None, None, config)
        assert result.source == "pattern"
        assert (result.module, result.submodule, result.label) == (
            "students", "grades", "Grades",
        )

    def test_patterns_evaluated_in_order(self):
        config = TrackerConfig.build(module_patterns={
            "regex:^reports": "reports",
            "reports/monthly": "finance.monthly",
        })
        result = classify("reports/monthly", None, None, None, config)
        assert result.module == "reports"

    def test_route_name_convention(self):
        result = classify("x/y", "students.grades.list", None, None, TrackerConfig())
        assert result.source == "route_name"
        assert (result.module, result.submodule, result.label) == (
            "students", "grades", "List Grades",
        )

    def test_route_name_without_dot_is_ignored(self):
        result = classify("api/v1/users", "list_users", None, None, TrackerConfig())
        assert result.source == "path"
        assert result.module == "users"

    def test_path_segments_skip_numeric_id(self):
        result = classify("/api/v1/users/42/profile", None, None, None, TrackerConfig())
        assert result.source == "path"
        assert (result.module, result.submodule, result.label) == (
            "users", "profile", "Profile in Users",
        )

    def test_path_segment_without_submodule(self):
        result = classify("api/v1/invoices", None, None, None, TrackerConfig())
        assert (result.module, result.submodule, result.label) == (
            "invoices", None, "Invoices",
        )

    def test_every_numeric_segment_skipped(self):
        result = classify("api/v1/users/42/43/settings", None, None, None, TrackerConfig())
        assert (result.module, result.submodule) == ("users", "settings")

    def test_numeric_module_segment_shifts_right(self):
        config = TrackerConfig(auto_extract_segment=0)
        result = classify("17/courses/5", None, None, None, config)
        assert (result.module, result.submodule, result.label) == ("courses", None, "Courses")

    def test_custom_segment_index(self):
        config = TrackerConfig(auto_extract_segment=0)
        result = classify("billing/plans", None, None, None, config)
        assert (result.module, result.submodule) == ("billing", "plans")

    def test_controller_name(self):
        result = classify(
            "x",
            None,
            "app.http.UserController@show",
            None,
            TrackerConfig(auto_extract_segment=3),
        )
        assert result.source == "controller"
        assert result.module == "user"
        assert result.label == "Show User"

    def test_controller_qualname_with_dot(self):
        result = classify(
            "",
            None,
            "app.views.ReportController.download",
            None,
            TrackerConfig(),
        )
        assert result.module == "report"
        assert result.label == "Download Report"

    def test_fallback_is_unknown(self):
        result = classify("health", None, None, None, TrackerConfig())
        assert result.source == "fallback"
        assert result.module == "unknown"
        assert result.label == "Health"

    def test_classify_is_deterministic(self):
        config = TrackerConfig.build(module_patterns={"docs/*": "docs"})
        first = classify("api/v1/users/42/profile", None, None, None, config)
        second = classify("api/v1/users/42/profile", None, None, None, config)
        assert first == second


# ---------------------------------------------------------------------------
# 4. humanize_path()
# ---------------------------------------------------------------------------


class TestHumanizePath:
    """Tests for the fallback label."""

    def test_drops_noise_and_ids(self):
        assert humanize_path("api/v1/users/42/profile") == "Users Profile"

    def test_only_noise_gives_default_label(self):
        assert humanize_path("/api/v2/17/") == FALLBACK_LABEL
        assert humanize_path("") == FALLBACK_LABEL
