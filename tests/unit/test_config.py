"""Tests for settings."""

import pytest

from orderflow.config import Settings


class TestSettings:
    """Tests for environment-driven settings."""

    def test_env_aliases(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("QUEUE_BACKEND", "memory")
        monkeypatch.setenv("QUEUE_MAX_DELIVERIES", "5")

        settings = Settings()

        assert settings.queue_backend == "memory"
        assert settings.queue_max_deliveries == 5

    def test_field_names_accepted(self) -> None:
        assert Settings(mv_refresh_schedule="@daily").mv_refresh_schedule == "@daily"

    def test_only_pipeline_settings(self) -> None:
        """Every setting configures a component; there are no unused knobs."""
        assert "app_name" not in Settings.model_fields
        assert "instance_id" not in Settings.model_fields
