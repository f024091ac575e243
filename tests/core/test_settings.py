"""Tests for OperatorSettings and the settings cache."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from operator_plane.core.config import OperatorSettings, clear_settings_cache, get_settings


class TestDefaults:
    """Defaults without any environment."""

    def test_retry_defaults(self):
        settings = OperatorSettings(_env_file=None)
        assert settings.retry_max_attempts == 5
        assert settings.retry_base_delay_ms == 500
        assert settings.retry_max_delay_ms == 30_000
        assert settings.retry_jitter_ms == 250

    def test_direct_mode_by_default(self):
        settings = OperatorSettings(_env_file=None)
        assert settings.runner_binary is None
        assert settings.runner_offline is True

    def test_derived_dirs(self, tmp_path):
        settings = OperatorSettings(_env_file=None, bundle_root=tmp_path)
        assert settings.resolved_state_dir == tmp_path / "state"
        assert settings.resolved_subscription_dir == tmp_path / "state" / "subscriptions"

    def test_explicit_dirs_win(self, tmp_path):
        settings = OperatorSettings(
            _env_file=None,
            bundle_root=tmp_path,
            state_dir=tmp_path / "s",
            subscription_store_dir=tmp_path / "subs",
        )
        assert settings.resolved_state_dir == tmp_path / "s"
        assert settings.resolved_subscription_dir == tmp_path / "subs"


class TestEnvironment:
    """OPERATOR_* variables."""

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("OPERATOR_RETRY_MAX_ATTEMPTS", "3")
        monkeypatch.setenv("OPERATOR_BUNDLE_ROOT", "/srv/bundle")
        settings = OperatorSettings(_env_file=None)
        assert settings.retry_max_attempts == 3
        assert settings.bundle_root == Path("/srv/bundle")

    def test_invalid_log_format(self):
        with pytest.raises(ValidationError):
            OperatorSettings(_env_file=None, log_format="xml")

    def test_log_format_maps_to_json_flag(self):
        assert OperatorSettings(_env_file=None, log_format="auto").json_logs is None
        assert OperatorSettings(_env_file=None, log_format="JSON").json_logs is True
        assert OperatorSettings(_env_file=None, log_format="console").json_logs is False

    def test_max_attempts_must_be_positive(self):
        with pytest.raises(ValidationError):
            OperatorSettings(_env_file=None, retry_max_attempts=0)


class TestCache:
    """get_settings caching."""

    def test_cached_instance(self):
        assert get_settings() is get_settings()

    def test_force_reload(self, monkeypatch):
        first = get_settings()
        monkeypatch.setenv("OPERATOR_PLAN_PARALLEL", "4")
        assert get_settings() is first
        reloaded = get_settings(_force_reload=True)
        assert reloaded.plan_parallel == 4

    def test_clear_cache(self):
        first = get_settings()
        clear_settings_cache()
        assert get_settings() is not first

    def test_env_file(self, tmp_path):
        env_file = tmp_path / "operator.env"
        env_file.write_text("OPERATOR_EGRESS_DRY_RUN=true\n")
        assert get_settings(env_file=env_file).egress_dry_run is True
