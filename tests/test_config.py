"""Tests for environment-driven settings."""

from unified_workflow.config import Settings


class TestSettings:
    """Tests for Settings.from_env."""

    def test_defaults(self, monkeypatch):
        for name in (
            "DATABASE_PATH",
            "LOG_LEVEL",
            "ELEMENT_BATCH_SIZE",
            "ELEMENT_BATCH_THRESHOLD",
            "TOUCH_MAX_ATTEMPTS",
            "ADMIN_ROLES",
        ):
            monkeypatch.delenv(name, raising=False)

        settings = Settings.from_env()

        assert settings.database_path == "./data/workflow.db"
        assert settings.log_level == "INFO"
        assert settings.element_batch_size == 10
        assert settings.element_batch_threshold == 20
        assert settings.touch_max_attempts == 3
        assert settings.admin_roles == ["SUPER_ADMIN", "ADMIN"]

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("DATABASE_PATH", "/tmp/wf.db")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        monkeypatch.setenv("ELEMENT_BATCH_SIZE", "5")
        monkeypatch.setenv("ELEMENT_BATCH_THRESHOLD", "8")
        monkeypatch.setenv("TOUCH_MAX_ATTEMPTS", "1")
        monkeypatch.setenv("ADMIN_ROLES", "OWNER, OPS ,")

        settings = Settings.from_env()

        assert settings.database_path == "/tmp/wf.db"
        assert settings.log_level == "DEBUG"
        assert settings.element_batch_size == 5
        assert settings.element_batch_threshold == 8
        assert settings.touch_max_attempts == 1
        assert settings.admin_roles == ["OWNER", "OPS"]
