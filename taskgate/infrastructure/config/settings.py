"""Provides functions for loading and accessing configuration settings.

Supports loading from a YAML file (``~/.taskgate/config.yaml``), a ``.env``
file and environment variables, on top of an environment profile
(``mock``, ``development`` or ``production``) selected by ``TASKGATE_ENV``.
Loading is explicit: call ``load_configuration()`` from the composition root.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# --- Configuration Constants ---
DEFAULT_CONFIG_DIR = Path.home() / ".taskgate"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"
ENV_FILE_NAME = ".env"
ENV_PREFIX = "TASKGATE_"
ENVIRONMENT_VARIABLE = "TASKGATE_ENV"
DEFAULT_ENVIRONMENT = "mock"

# Per-environment API presets (timeouts and delays in seconds)
ENVIRONMENT_PROFILES: Dict[str, Dict[str, Any]] = {
    "mock": {
        "api.base_url": "https://api.todoapp.com/v1",
        "api.mock_mode": True,
        "api.timeout": 5.0,
        "api.retry_attempts": 1,
        "api.retry_delay": 0.5,
    },
    "development": {
        "api.base_url": "https://dev-api.todoapp.com/v1",
        "api.mock_mode": False,
        "api.timeout": 10.0,
        "api.retry_attempts": 3,
        "api.retry_delay": 1.0,
    },
    "production": {
        "api.base_url": "https://api.todoapp.com/v1",
        "api.mock_mode": False,
        "api.timeout": 15.0,
        "api.retry_attempts": 3,
        "api.retry_delay": 2.0,
    },
}

# --- Global Configuration Store ---
_config: Dict[str, Any] = {}
_test_config: Dict[str, Any] = {}  # For testing purposes
_loaded = False


@dataclass(frozen=True)
class ApiSettings:
    """Backend connection and retry defaults."""
    base_url: str
    mock_mode: bool
    timeout: float
    retry_attempts: int
    retry_delay: float
    max_delay: float = 10.0


@dataclass(frozen=True)
class MockSettings:
    """Simulated backend behaviour."""
    fault_rate: float = 0.05
    latency_scale: float = 1.0
    storage_dir: str = str(DEFAULT_CONFIG_DIR / "store")


def _flatten(data: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    """Flattens nested YAML mappings into dotted keys ('api.timeout')."""
    flat: Dict[str, Any] = {}
    for key, value in data.items():
        dotted = f"{prefix}{key}"
        if isinstance(value, dict):
            flat.update(_flatten(value, f"{dotted}."))
        else:
            flat[dotted] = value
    return flat


def load_configuration(config_file: Path = DEFAULT_CONFIG_FILE, env_file: Optional[Path] = None) -> None:
    """Loads configuration from environment, .env file, and YAML file.

    Priority order (highest to lowest):
    1. Testing overlay (``set_config_for_testing``)
    2. Environment Variables (``TASKGATE_API_TIMEOUT`` for ``api.timeout``)
    3. .env file
    4. YAML configuration file
    5. Environment profile defaults

    Args:
        config_file: Path to the YAML configuration file.
        env_file: Path to the .env file (searches upwards from cwd if None).
    """
    global _config, _loaded
    if _loaded:
        logger.debug("Configuration already loaded.")
        return

    _config = {}

    # 1. Load from YAML file (Lowest priority)
    if config_file.exists():
        try:
            with open(config_file, "r") as f:
                yaml_config = yaml.safe_load(f)
            if isinstance(yaml_config, dict):
                _config.update(_flatten(yaml_config))
                logger.info(f"Loaded configuration from YAML: {config_file}")
            elif yaml_config is not None:
                logger.warning(f"YAML config file {config_file} did not contain a dictionary.")
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load or parse YAML config {config_file}: {e}")
    else:
        logger.debug(f"YAML config file not found: {config_file}")

    # 2. Load from .env file (Medium priority)
    dotenv_path = env_file or find_dotenv_path()
    if dotenv_path:
        # override=False: real environment variables take precedence
        if load_dotenv(dotenv_path=dotenv_path, override=False):
            logger.info(f"Loaded environment variables from: {dotenv_path}")
    else:
        logger.debug("Skipping .env file loading (no .env found).")

    # 3. Environment Variables (Highest priority) are handled in get_config

    _loaded = True
    logger.info("Configuration loading process completed.")


def reset_configuration() -> None:
    """Forgets loaded configuration so the next load starts fresh."""
    global _config, _loaded
    _config = {}
    _loaded = False


def _coerce(value: str) -> Any:
    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False
    try:
        if "." in value:
            return float(value)
        return int(value)
    except (ValueError, TypeError):
        return value


def env_var_name(key: str) -> str:
    return f"{ENV_PREFIX}{key.upper().replace('.', '_')}"


def get_environment() -> str:
    """Returns the active environment profile name."""
    env = _test_config.get("environment") or os.environ.get(ENVIRONMENT_VARIABLE) or _config.get("environment")
    if env and env in ENVIRONMENT_PROFILES:
        return env
    if env:
        logger.warning(f"Unknown environment '{env}', falling back to '{DEFAULT_ENVIRONMENT}'.")
    return DEFAULT_ENVIRONMENT


def get_config(key: str, default: Any = None) -> Any:
    """
    Get a configuration value by dotted key.

    Priority:
    1. Test configuration (if in testing mode)
    2. Environment variable
    3. YAML config
    4. Environment profile
    5. Default value

    Args:
        key: The configuration key (e.g. 'api.timeout')
        default: Default value if the key is not found

    Returns:
        The configuration value
    """
    if key in _test_config:
        return _test_config[key]

    env_key = env_var_name(key)
    if env_key in os.environ:
        return _coerce(os.environ[env_key])

    if key in _config:
        return _config[key]

    profile = ENVIRONMENT_PROFILES[get_environment()]
    if key in profile:
        return profile[key]

    logger.debug(f"Config key '{key}' not found in environment or loaded config. Returning default: {default}")
    return default


def find_dotenv_path() -> Optional[Path]:
    """Searches for the .env file upwards from the current directory."""
    cwd = Path.cwd()
    for path in [cwd] + list(cwd.parents):
        env_path = path / ENV_FILE_NAME
        if env_path.is_file():
            return env_path
    return None


# --- Convenience Functions ---

def get_api_settings() -> ApiSettings:
    """Typed view of the ``api.*`` settings."""
    return ApiSettings(
        base_url=str(get_config("api.base_url")),
        mock_mode=bool(get_config("api.mock_mode", True)),
        timeout=float(get_config("api.timeout", 10.0)),
        retry_attempts=int(get_config("api.retry_attempts", 3)),
        retry_delay=float(get_config("api.retry_delay", 1.0)),
        max_delay=float(get_config("api.max_delay", 10.0)),
    )


def get_mock_settings() -> MockSettings:
    """Typed view of the ``mock.*`` settings."""
    defaults = MockSettings()
    return MockSettings(
        fault_rate=float(get_config("mock.fault_rate", defaults.fault_rate)),
        latency_scale=float(get_config("mock.latency_scale", defaults.latency_scale)),
        storage_dir=str(get_config("mock.storage_dir", defaults.storage_dir)),
    )


def set_config(key: str, value: Any) -> None:
    """Sets a configuration value for the rest of this process."""
    logger.debug(f"Setting config: {key} = {value}")
    _config[key] = value


def set_config_for_testing(config_dict: Dict[str, Any]) -> None:
    """
    Set configuration values for testing purposes.
    These values will override any existing configuration.

    Args:
        config_dict: Dictionary of configuration values to set
    """
    _test_config.update(config_dict)
    logger.debug(f"Set testing configuration: {config_dict}")


def clear_test_config() -> None:
    """Clear all testing configuration values."""
    _test_config.clear()
    logger.debug("Cleared testing configuration")
