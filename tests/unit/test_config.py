"""
Unit Tests for HubConfig
"""
import json

import pytest

from studenthub.config import BUNDLED_FIXTURES_DIR, HubConfig
from studenthub.exceptions import ConfigurationError

ENV_VARS = (
    "STUDENTHUB_BACKEND",
    "STUDENTHUB_API_URL",
    "STUDENTHUB_TIMEOUT",
    "STUDENTHUB_DATA_DIR",
    "STUDENTHUB_FIXTURES_DIR",
    "STUDENTHUB_LOG_LEVEL",
    "STUDENTHUB_JSON_LOGS",
    "STUDENTHUB_LOG_FILE",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    # Keep load_dotenv away from any .env in the working directory
    monkeypatch.chdir(tmp_path)


class TestDefaults:

    def test_defaults(self, tmp_path):
        config = HubConfig(config_dir=str(tmp_path))

        assert config.backend == "fixture"
        assert config.api_base_url == "http://localhost:5000/api"
        assert config.fixtures_dir == BUNDLED_FIXTURES_DIR
        assert config.storage_dir == str(tmp_path / "storage")

    def test_unknown_backend(self, tmp_path):
        with pytest.raises(ConfigurationError):
            HubConfig(backend="mongo", config_dir=str(tmp_path))

    def test_non_positive_timeout(self, tmp_path):
        with pytest.raises(ConfigurationError):
            HubConfig(timeout=0, config_dir=str(tmp_path))


class TestLoadDefault:

    def test_reads_config_file(self, tmp_path):
        (tmp_path / "config.json").write_text(json.dumps({"backend": "api", "timeout": 5}))

        config = HubConfig.load_default(str(tmp_path))

        assert config.backend == "api"
        assert config.timeout == 5

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        (tmp_path / "config.json").write_text(json.dumps({"backend": "api"}))
        monkeypatch.setenv("STUDENTHUB_BACKEND", "fixture")
        monkeypatch.setenv("STUDENTHUB_API_URL", "https://hub.example.edu/api")
        monkeypatch.setenv("STUDENTHUB_TIMEOUT", "12.5")
        monkeypatch.setenv("STUDENTHUB_JSON_LOGS", "true")

        config = HubConfig.load_default(str(tmp_path))

        assert config.backend == "fixture"
        assert config.api_base_url == "https://hub.example.edu/api"
        assert config.timeout == 12.5
        assert config.json_logs is True

    def test_invalid_env_value(self, tmp_path, monkeypatch):
        monkeypatch.setenv("STUDENTHUB_TIMEOUT", "soon")
        with pytest.raises(ConfigurationError):
            HubConfig.load_default(str(tmp_path))

    def test_invalid_env_backend(self, tmp_path, monkeypatch):
        monkeypatch.setenv("STUDENTHUB_BACKEND", "sqlite")
        with pytest.raises(ConfigurationError):
            HubConfig.load_default(str(tmp_path))


class TestSave:

    def test_save_and_reload(self, tmp_path):
        config = HubConfig(backend="api", config_dir=str(tmp_path), log_level="DEBUG")
        config.save_to_file()

        reloaded = HubConfig(config_dir=str(tmp_path))
        reloaded.load_from_file(str(tmp_path / "config.json"))

        assert reloaded.to_dict() == config.to_dict()
