"""
Student Hub Configuration Management
"""

import os
import json
from pathlib import Path
from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, Any

from dotenv import load_dotenv

from studenthub.exceptions import ConfigurationError

BACKENDS = ("fixture", "api")

BUNDLED_FIXTURES_DIR = str(Path(__file__).parent / "data")


@dataclass
class HubConfig:
    """Configuration for the Student Hub data layer"""

    # Backend selection
    backend: str = "fixture"  # fixture, api

    # API settings
    api_base_url: str = "http://localhost:5000/api"
    timeout: float = 30.0

    # Paths
    config_dir: str = field(default_factory=lambda: str(Path.home() / ".studenthub"))
    storage_dir: Optional[str] = None
    fixtures_dir: str = BUNDLED_FIXTURES_DIR

    # Logging
    log_level: str = "INFO"
    json_logs: bool = False
    log_file: Optional[str] = None

    def __post_init__(self):
        """Resolve storage path and check the backend name"""
        if self.storage_dir is None:
            self.storage_dir = str(Path(self.config_dir) / "storage")
        self.validate()

    def validate(self) -> None:
        if self.backend not in BACKENDS:
            raise ConfigurationError(
                f"Unknown backend '{self.backend}'. Expected one of: {', '.join(BACKENDS)}",
                setting="backend"
            )
        if self.timeout <= 0:
            raise ConfigurationError("Timeout must be positive", setting="timeout")

    def load_from_file(self, config_path: str) -> None:
        """Load configuration from JSON file"""
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                data = json.load(f)
                for key, value in data.items():
                    if hasattr(self, key):
                        setattr(self, key, value)
            self.validate()

    def save_to_file(self, config_path: Optional[str] = None) -> None:
        """Save configuration to JSON file"""
        path = Path(config_path or (Path(self.config_dir) / "config.json"))
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            json.dump(asdict(self), f, indent=2)

    @classmethod
    def load_default(cls, config_dir: Optional[str] = None) -> "HubConfig":
        """Load config.json from the config directory, then apply environment overrides"""
        load_dotenv()

        config = cls(config_dir=config_dir) if config_dir else cls()
        default_config_path = Path(config.config_dir) / "config.json"
        if default_config_path.exists():
            config.load_from_file(str(default_config_path))

        config._load_from_env()
        config.validate()

        return config

    def _load_from_env(self) -> None:
        """Load configuration from environment variables"""
        env_mappings = {
            "STUDENTHUB_BACKEND": "backend",
            "STUDENTHUB_API_URL": "api_base_url",
            "STUDENTHUB_TIMEOUT": ("timeout", float),
            "STUDENTHUB_DATA_DIR": "storage_dir",
            "STUDENTHUB_FIXTURES_DIR": "fixtures_dir",
            "STUDENTHUB_LOG_LEVEL": "log_level",
            "STUDENTHUB_JSON_LOGS": ("json_logs", lambda x: x.lower() == "true"),
            "STUDENTHUB_LOG_FILE": "log_file",
        }

        for env_var, mapping in env_mappings.items():
            value = os.environ.get(env_var)
            if value:
                if isinstance(mapping, tuple):
                    attr, converter = mapping
                    try:
                        setattr(self, attr, converter(value))
                    except ValueError:
                        raise ConfigurationError(
                            f"Invalid value for {env_var}: {value!r}", setting=attr
                        )
                else:
                    setattr(self, mapping, value)

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary"""
        return asdict(self)
