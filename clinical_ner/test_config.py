import os

import pytest

from clinical_ner.config import DEFAULT_SERVICE_URL, Settings, load_settings


def test_defaults_from_environment(monkeypatch, no_dotenv):
    monkeypatch.setenv("METAMAPLITE_API_KEY", "abc")
    for name in ("METAMAPLITE_URL", "METAMAPLITE_API_KEY_PLACEMENT", "METAMAPLITE_TIMEOUT_SECONDS"):
        monkeypatch.delenv(name, raising=False)

    settings = load_settings()

    assert settings.api_key == "abc"
    assert settings.service_url == DEFAULT_SERVICE_URL
    assert settings.key_placement == "body"
    assert settings.timeout_seconds == 30.0


def test_overrides_from_environment(monkeypatch, no_dotenv):
    monkeypatch.setenv("METAMAPLITE_API_KEY", "abc")
    monkeypatch.setenv("METAMAPLITE_URL", "http://localhost:8080/annotate")
    monkeypatch.setenv("METAMAPLITE_API_KEY_PLACEMENT", " Query ")
    monkeypatch.setenv("METAMAPLITE_TIMEOUT_SECONDS", "5")

    settings = load_settings()

    assert settings.service_url == "http://localhost:8080/annotate"
    assert settings.key_placement == "query"
    assert settings.timeout_seconds == 5.0


def test_missing_key(monkeypatch, no_dotenv):
    monkeypatch.delenv("METAMAPLITE_API_KEY", raising=False)
    with pytest.raises(RuntimeError):
        load_settings()


def test_env_file_is_read(monkeypatch, tmp_path):
    monkeypatch.delenv("METAMAPLITE_API_KEY", raising=False)
    env_file = tmp_path / ".env"
    env_file.write_text("METAMAPLITE_API_KEY=from-file\n")

    assert load_settings(str(env_file)).api_key == "from-file"
    os.environ.pop("METAMAPLITE_API_KEY", None)


@pytest.mark.parametrize("kwargs", [{"key_placement": "header"}, {"timeout_seconds": 0}])
def test_invalid_settings(kwargs):
    with pytest.raises(ValueError):
        Settings(api_key="k", **kwargs)


def test_public_summary_has_no_key():
    assert "api_key" not in Settings(api_key="secret").public_summary()
