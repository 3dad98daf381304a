"""Pytest fixtures and configuration for mailfiler tests.

Provides common fixtures for configuration, database, rule store and
sample messages.
"""

import os
from pathlib import Path
from typing import Any, Generator

import pytest

from mailfiler.config import reset_config
from mailfiler.config_schema import AppConfig
from mailfiler.db.store import DatabaseStore
from mailfiler.rules.matcher import DEFAULT_REGEX_TIMEOUT, configure_timeout
from mailfiler.rules.store import RuleStore


@pytest.fixture(autouse=True)
def reset_config_singleton() -> Generator[None, None, None]:
    """Reset the config singleton before each test."""
    reset_config()
    yield
    reset_config()


@pytest.fixture(autouse=True)
def reset_match_timeout() -> Generator[None, None, None]:
    """Restore the default pattern match timeout after each test."""
    yield
    configure_timeout(DEFAULT_REGEX_TIMEOUT)


@pytest.fixture
def temp_config_dir(tmp_path: Path) -> Path:
    """Create a temporary config directory."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Create a temporary data directory."""
    data = tmp_path / "data"
    data.mkdir()
    return data


@pytest.fixture
def sample_config_dict(data_dir: Path) -> dict[str, Any]:
    """Return a minimal valid config as a dictionary."""
    return {
        "schema_version": 1,
        "storage": {
            "db_path": str(data_dir / "mailfiler.db"),
            "rules_key": "rules",
        },
        "filing": {
            "auto_create_rules": True,
            "protected_folder_types": ["inbox", "trash"],
        },
        "matching": {"regex_timeout_seconds": 1.0},
        "logging": {"level": "INFO", "json_output": False},
    }


@pytest.fixture
def sample_config(sample_config_dict: dict[str, Any]) -> AppConfig:
    """Return a minimal valid AppConfig instance."""
    return AppConfig(**sample_config_dict)


@pytest.fixture
def config_file(temp_config_dir: Path, sample_config_dict: dict[str, Any]) -> Path:
    """Create a temporary config file with valid content."""
    import yaml

    config_path = temp_config_dir / "config.yaml"
    config_path.write_text(yaml.dump(sample_config_dict, default_flow_style=False))
    return config_path


@pytest.fixture
def set_config_env(config_file: Path) -> Generator[None, None, None]:
    """Set the MAILFILER_CONFIG_PATH environment variable."""
    old_value = os.environ.get("MAILFILER_CONFIG_PATH")
    os.environ["MAILFILER_CONFIG_PATH"] = str(config_file)
    yield
    if old_value is None:
        del os.environ["MAILFILER_CONFIG_PATH"]
    else:
        os.environ["MAILFILER_CONFIG_PATH"] = old_value


@pytest.fixture
async def db(data_dir: Path) -> DatabaseStore:
    """Return an initialized DatabaseStore."""
    store = DatabaseStore(data_dir / "test_rules.db")
    await store.initialize()
    return store


@pytest.fixture
async def rule_store(db: DatabaseStore) -> RuleStore:
    """Return a RuleStore over a fresh database."""
    return RuleStore(db)
