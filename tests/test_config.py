# =============================================================================
# Unit Tests — Settings → TrackerConfig
# =============================================================================

from __future__ import annotations

from zoneinfo import ZoneInfoNotFoundError

import pytest

from request_tracker.config import (
    DetailMode,
    DetailTracking,
    DispatchMode,
    Settings,
    TrackerConfig,
)
from request_tracker.services.patterns import PatternKind


class TestTrackerConfigFromSettings:
    def test_defaults(self):
        config = TrackerConfig.from_settings(Settings(_env_file=None))
        assert config.enabled is True
        assert config.detail_tracking is DetailTracking.OPT_IN
        assert config.detail_mode is DetailMode.DEDUP
        assert config.dispatch is DispatchMode.SYNC
        assert config.is_excluded("/health")
        assert config.is_excluded("docs")
        assert not config.is_excluded("api/v1/users")
        assert not config.is_excluded("api/v1/kudocs")

    def test_broker_urls_are_the_only_redis_settings(self):
        redis_fields = {name for name in Settings.model_fields if "redis" in name or "celery" in name}
        assert redis_fields == {"celery_broker_url", "celery_result_backend"}

    def test_patterns_parsed_in_order(self):
        settings = Settings(
            _env_file=None,
            tracker_module_patterns={
                "students/*/grades": "students.grades|Grades",
                "regex:^reports": "reports",
            },
        )
        config = TrackerConfig.from_settings(settings)
        kinds = [rule.pattern.kind for rule in config.module_rules]
        assert kinds == [PatternKind.GLOB, PatternKind.REGEX]
        assert config.module_rules[0].directive.label == "Grades"

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("TRACKER_DETAIL_MODE", "append")
        monkeypatch.setenv("TRACKER_DISPATCH", "async")
        monkeypatch.setenv("TRACKER_EXCLUDE", '["regex:^internal"]')
        config = TrackerConfig.from_settings(Settings(_env_file=None))
        assert config.detail_mode is DetailMode.APPEND
        assert config.dispatch is DispatchMode.ASYNC
        assert config.is_excluded("internal/metrics")
        assert not config.is_excluded("health")

    def test_unknown_timezone_rejected(self):
        with pytest.raises(ZoneInfoNotFoundError):
            TrackerConfig(timezone="Mars/Olympus_Mons")
