import pytest

from bybit_trader.config.settings import load_settings
from bybit_trader.core.exceptions import ConfigurationError


def test_settings_build_credential(monkeypatch):
    monkeypatch.setenv("BYBIT_API_KEY", "key")
    monkeypatch.setenv("BYBIT_API_SECRET", "secret")
    monkeypatch.setenv("BYBIT_TESTNET", "false")

    credential = load_settings(_env_file=None).credential()

    assert credential.api_key == "key"
    assert credential.is_testnet is False
    assert credential.is_configured()
    assert "secret" not in repr(credential)


def test_settings_are_frozen():
    settings = load_settings(_env_file=None, BYBIT_API_KEY="k")

    with pytest.raises(Exception):
        settings.BYBIT_API_KEY = "other"


def test_invalid_value_is_configuration_error():
    with pytest.raises(ConfigurationError):
        load_settings(_env_file=None, BYBIT_MAX_RETRIES="many")


def test_require_supabase():
    settings = load_settings(_env_file=None, SUPABASE_URL=None, SUPABASE_ANON_KEY=None)

    with pytest.raises(ConfigurationError):
        settings.require_supabase()


def test_settings_repr_hides_secrets():
    settings = load_settings(_env_file=None, BYBIT_API_SECRET="s3cr3t", SUPABASE_PASSWORD="pw-123")

    assert "s3cr3t" not in repr(settings)
    assert "pw-123" not in repr(settings)
