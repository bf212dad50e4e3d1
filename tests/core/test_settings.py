"""
Tests for jobdeck settings: defaults, environment, YAML files and precedence.
"""

from __future__ import annotations

import pydantic
import pytest

from _support import write_yaml
from jobdeck.core.errors import MissingConfigError
from jobdeck.core.settings import (
    AuthSettings,
    JobdeckSettings,
    clear_settings_cache,
    get_settings,
    load_settings,
)


class TestDefaults:
    def test_defaults(self):
        settings = JobdeckSettings()
        assert settings.port == 8080
        assert settings.api_prefix == "/api"
        assert settings.auth.issuer == "jobdeck"
        assert settings.auth.audience == "jobdeck-users"
        assert settings.auth.token_expiry_minutes == 60
        assert settings.scheduler.history_capacity == 100
        assert settings.scheduler.timezone == "UTC"
        assert settings.jobs == []

    def test_token_expiry_must_be_positive(self):
        with pytest.raises(pydantic.ValidationError):
            AuthSettings(token_expiry_minutes=0)


class TestEnvironment:
    def test_nested_variables(self, monkeypatch):
        monkeypatch.setenv("JOBDECK_AUTH__USERNAME", "ops")
        monkeypatch.setenv("JOBDECK_SCHEDULER__THREAD_POOL_SIZE", "4")
        monkeypatch.setenv("JOBDECK_PORT", "9000")

        settings = JobdeckSettings()
        assert settings.auth.username == "ops"
        assert settings.scheduler.thread_pool_size == 4
        assert settings.port == 9000

    def test_dotenv_file(self, tmp_path):
        (tmp_path / ".env").write_text("JOBDECK_LOG_LEVEL=DEBUG\n", encoding="utf-8")
        assert JobdeckSettings().log_level == "DEBUG"

    def test_keyword_arguments_win(self, monkeypatch):
        monkeypatch.setenv("JOBDECK_PORT", "9000")
        assert JobdeckSettings(port=7000).port == 7000


class TestYamlFile:
    def test_load(self, tmp_path):
        path = write_yaml(
            tmp_path / "jobdeck.yaml",
            {
                "port": 8181,
                "auth": {"username": "admin", "password": "s3cret"},
                "jobs": [
                    {
                        "type": "myapp.jobs.SampleJob",
                        "group": "reports",
                        "triggers": [{"name": "every-minute", "cron_expression": "0 * * * * ?"}],
                    }
                ],
            },
        )
        settings = load_settings(path)
        assert settings.port == 8181
        assert settings.auth.username == "admin"
        (job,) = settings.jobs
        assert job.group == "reports"
        assert job.triggers[0].cron_expression == "0 * * * * ?"

    def test_environment_overrides_file(self, tmp_path, monkeypatch):
        path = write_yaml(tmp_path / "jobdeck.yaml", {"port": 8181})
        monkeypatch.setenv("JOBDECK_PORT", "9000")
        assert load_settings(path).port == 9000

    def test_overrides_win(self, tmp_path):
        path = write_yaml(tmp_path / "jobdeck.yaml", {"port": 8181})
        assert load_settings(path, port=7000).port == 7000

    def test_missing_file(self, tmp_path):
        with pytest.raises(MissingConfigError):
            load_settings(tmp_path / "missing.yaml")

    def test_without_file(self):
        assert load_settings().port == 8080


class TestCache:
    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()

    def test_clear_cache(self):
        first = get_settings()
        clear_settings_cache()
        assert get_settings() is not first
