"""Tests for configuration loading and validation."""

from __future__ import annotations

import pytest

from crowdplay.exceptions import ConfigurationError
from crowdplay.models.config import ClientConfig
from crowdplay.storage.config_manager import ConfigManager, env_overrides


def test_save_and_load_round_trip(tmp_path) -> None:
    manager = ConfigManager(tmp_path / "config.ini")
    manager.save_new_config({"store_url": "https://abc.supabase.co", "api_key": "anon"})

    config = ConfigManager(tmp_path / "config.ini").load_config()

    assert config.store_url == "https://abc.supabase.co"
    assert config.api_key == "anon"
    assert config.table == "song_upvotes"
    assert config.request_timeout is None
    assert config.config_path == str(tmp_path)
    assert config.rest_url == "https://abc.supabase.co/rest/v1/song_upvotes"


def test_missing_file_raises(tmp_path) -> None:
    with pytest.raises(ConfigurationError):
        ConfigManager(tmp_path / "absent.ini").load_config()


def test_invalid_values_raise_configuration_error(tmp_path) -> None:
    manager = ConfigManager(tmp_path / "config.ini")
    manager.save_new_config({"store_url": "ftp://nope", "api_key": "anon"})

    with pytest.raises(ConfigurationError):
        manager.load_config()


def test_overrides_take_precedence(tmp_path) -> None:
    manager = ConfigManager(tmp_path / "config.ini")
    manager.save_new_config({"store_url": "https://a.test", "api_key": "file-key"})

    config = manager.load_config({"api_key": "env-key", "default_volume": 10})

    assert config.api_key == "env-key"
    assert config.default_volume == 10


def test_missing_keys_are_migrated(tmp_path) -> None:
    path = tmp_path / "config.ini"
    path.write_text(
        "[DEFAULT]\nstore_url = https://a.test/\napi_key = k\n", encoding="utf-8"
    )

    config = ConfigManager(path).load_config()

    assert config.store_url == "https://a.test"
    assert "bulk_chunk_size" in path.read_text(encoding="utf-8")


def test_env_overrides_ignore_blank_values() -> None:
    environ = {"CROWDPLAY_STORE_URL": "https://env.test", "CROWDPLAY_API_KEY": "  "}

    assert env_overrides(environ) == {"store_url": "https://env.test"}


@pytest.mark.parametrize(
    "field, value",
    [("default_volume", 101), ("bulk_chunk_size", 0), ("circuit_failure_threshold", 0)],
)
def test_out_of_range_values_are_rejected(field, value) -> None:
    with pytest.raises(ValueError):
        ClientConfig(store_url="https://a.test", api_key="k", config_path="/tmp", **{field: value})
