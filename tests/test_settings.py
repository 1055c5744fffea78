import pytest

from alice_oracle.config_schema import validate_config
from alice_oracle.settings import (
    ScanSettings,
    SettingsError,
    load_config_file,
    refresh_settings,
    settings,
)


def test_defaults():
    cfg = ScanSettings.from_env({})
    assert cfg.fdv_limit == 500_000
    assert cfg.min_liquidity == 2_000
    assert cfg.max_age_minutes == 720
    assert cfg.limit_results == 50
    assert cfg.require_pumpfun is False
    assert cfg.cache_ttl == 15
    assert cfg.recall_capacity == 500
    assert cfg.stream_url.startswith("wss://")


def test_environment_overrides():
    cfg = ScanSettings.from_env(
        {
            "FDV_LIMIT": "250000",
            "MIN_LIQ_USD": "5000",
            "LIMIT_RESULTS": "10",
            "REQUIRE_PUMPFUN": "true",
            "HTTP_RETRIES": "not-a-number",
        }
    )
    assert cfg.fdv_limit == 250_000.0
    assert cfg.min_liquidity == 5_000.0
    assert cfg.limit_results == 10
    assert cfg.require_pumpfun is True
    assert cfg.http_retries == 3


def test_public_config_echoes_filters():
    cfg = ScanSettings.from_env({"MAX_AGE_MIN": "60"})
    assert cfg.public_config() == {
        "FDV_LIMIT": 500_000.0,
        "MIN_LIQ_USD": 2_000.0,
        "MAX_AGE_MIN": 60.0,
        "LIMIT_RESULTS": 50,
        "REQUIRE_PUMPFUN": False,
    }


def test_yaml_file_then_env(tmp_path):
    path = tmp_path / "oracle.yaml"
    path.write_text("oracle:\n  fdv_limit: 100000\n  limit_results: 5\n", encoding="utf-8")
    cfg = ScanSettings.from_env({"LIMIT_RESULTS": "7"}, config_path=path)
    assert cfg.fdv_limit == 100_000
    assert cfg.limit_results == 7


def test_toml_file(tmp_path):
    path = tmp_path / "oracle.toml"
    path.write_text('[oracle]\nmin_liquidity = 9000\nstream_url = "wss://example/feed"\n', encoding="utf-8")
    assert load_config_file(path) == {"min_liquidity": 9000, "stream_url": "wss://example/feed"}


def test_config_path_from_environment(tmp_path):
    path = tmp_path / "oracle.yml"
    path.write_text("cache_ttl: 30\n", encoding="utf-8")
    cfg = ScanSettings.from_env({"ALICE_ORACLE_CONFIG": str(path)})
    assert cfg.cache_ttl == 30


@pytest.mark.parametrize(
    "body",
    [
        "unknown_key: 1\n",
        "stream_url: https://not-a-socket\n",
        "listing_url: wss://feed.example/ws\n",
        "kp_index_url: not a url\n",
        "recall_capacity: 900\n",
        "- just\n- a list\n",
        "fdv_limit: [unclosed\n",
    ],
)
def test_invalid_files_raise(tmp_path, body):
    path = tmp_path / "bad.yaml"
    path.write_text(body, encoding="utf-8")
    with pytest.raises(SettingsError):
        load_config_file(path)


def test_missing_file_raises(tmp_path):
    with pytest.raises(SettingsError):
        load_config_file(tmp_path / "absent.toml")


def test_validate_config_drops_unset_keys():
    assert validate_config({"limit_results": 3}) == {"limit_results": 3}
    with pytest.raises(ValueError):
        validate_config({"limit_results": 0})


def test_settings_cache_refresh(monkeypatch):
    first = settings()
    assert settings() is first
    monkeypatch.setenv("FDV_LIMIT", "1234")
    assert settings().fdv_limit == 500_000
    assert refresh_settings().fdv_limit == 1234


def test_endpoint_urls_come_back_as_strings():
    cleaned = validate_config(
        {
            "stream_url": "wss://pumpportal.example/api/data",
            "market_data_url": "https://api.example.com/latest/dex/tokens",
        }
    )
    assert cleaned == {
        "stream_url": "wss://pumpportal.example/api/data",
        "market_data_url": "https://api.example.com/latest/dex/tokens",
    }
    assert all(isinstance(value, str) for value in cleaned.values())
    cfg = ScanSettings(**cleaned)
    assert cfg.market_data_url.endswith("/tokens")
