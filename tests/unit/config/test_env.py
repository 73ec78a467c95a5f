"""環境変数レイヤーのテスト。"""

from __future__ import annotations

from shinsa.config import load_env_config


class TestLoadEnvConfig:
    """load_env_config を検証。"""

    def test_no_variables(self) -> None:
        assert load_env_config({"PATH": "/usr/bin"}) is None

    def test_top_level_keys(self) -> None:
        layer = load_env_config(
            {
                "SHINSA_MODEL": "test",
                "SHINSA_ENDPOINT": "http://localhost:8080/v1",
                "SHINSA_PROVIDER": "deterministic",
                "SHINSA_WORKERS": "8",
                "SHINSA_JOURNAL_DIR": "/var/lib/shinsa",
            }
        )
        assert layer == {
            "model": "test",
            "endpoint": "http://localhost:8080/v1",
            "provider": "deterministic",
            "workers": "8",
            "journal_dir": "/var/lib/shinsa",
        }

    def test_retry_keys_nested(self) -> None:
        layer = load_env_config(
            {"SHINSA_MAX_ATTEMPTS": "3", "SHINSA_INITIAL_BACKOFF": "0.5"}
        )
        assert layer == {"retry": {"max_attempts": "3", "initial_backoff": "0.5"}}

    def test_unbounded_values(self) -> None:
        layer = load_env_config(
            {"SHINSA_MAX_ATTEMPTS": "unbounded", "SHINSA_MAX_BACKOFF": "None"}
        )
        assert layer == {"retry": {"max_attempts": None, "max_backoff": None}}

    def test_empty_values_skipped(self) -> None:
        assert load_env_config({"SHINSA_MODEL": "", "SHINSA_MAX_ATTEMPTS": ""}) is None

    def test_unrelated_prefix_ignored(self) -> None:
        assert load_env_config({"SHINSA_UNKNOWN": "x", "HACHI_MODEL": "y"}) is None
