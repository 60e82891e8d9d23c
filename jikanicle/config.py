"""Configuration loading for jikanicle.

Settings come from, lowest precedence first: built-in defaults, the first
config file found in the search directory, and JIKANICLE_* environment
variables. A config file looks like:

    {
      "repository": {"dataDirectory": "./data", "fileExtension": ".json", "storage": "file"},
      "logLevel": "INFO"
    }
"""

import json
import logging
import os
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, Optional

from jikanicle.result import Err, Ok, Result

logger = logging.getLogger(__name__)

CONFIG_FILE_NAMES = ("jikanicle.config.json", ".jikaniclerc", ".jikaniclerc.json")
STORAGE_KINDS = ("file", "array")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

ENV_DATA_DIR = "JIKANICLE_DATA_DIR"
ENV_STORAGE = "JIKANICLE_STORAGE"
ENV_LOG_LEVEL = "JIKANICLE_LOG_LEVEL"


class ConfigErrorType(Enum):
    INVALID_FORMAT = "INVALID_FORMAT"
    IO_ERROR = "IO_ERROR"


@dataclass(frozen=True)
class ConfigError:
    type: ConfigErrorType
    message: str
    cause: Optional[Any] = None


@dataclass(frozen=True)
class AppConfig:
    """Application settings.

    Attributes:
        data_dir: Directory holding task data
        file_extension: Extension of per-task files
        storage: "file" for one file per task, "array" for a single JSON array
        log_level: Name of the logging level
        source: Config file the values came from, if any
    """

    data_dir: str = "./data"
    file_extension: str = ".json"
    storage: str = "file"
    log_level: str = "WARNING"
    source: Optional[str] = None


DEFAULT_CONFIG = AppConfig()


def find_config_file(search_dir: Path) -> Optional[Path]:
    """Return the first known config file in search_dir, or None."""
    for name in CONFIG_FILE_NAMES:
        candidate = search_dir / name
        if candidate.is_file():
            return candidate
    return None


def _validate(config: AppConfig) -> Optional[str]:
    if not config.data_dir:
        return "dataDirectory must be a non-empty string"
    if not config.file_extension.startswith("."):
        return "fileExtension must start with '.'"
    if config.storage not in STORAGE_KINDS:
        return f"storage must be one of: {', '.join(STORAGE_KINDS)}"
    if config.log_level not in LOG_LEVELS:
        return f"logLevel must be one of: {', '.join(LOG_LEVELS)}"
    return None


def _from_mapping(data: Mapping[str, Any], source: str) -> Result[AppConfig, ConfigError]:
    repository = data.get("repository", {})
    if not isinstance(repository, dict):
        return Err(ConfigError(ConfigErrorType.INVALID_FORMAT, f"{source}: 'repository' must be an object"))

    values = {
        "data_dir": repository.get("dataDirectory", DEFAULT_CONFIG.data_dir),
        "file_extension": repository.get("fileExtension", DEFAULT_CONFIG.file_extension),
        "storage": repository.get("storage", DEFAULT_CONFIG.storage),
        "log_level": data.get("logLevel", DEFAULT_CONFIG.log_level),
    }
    for key, value in values.items():
        if not isinstance(value, str):
            return Err(ConfigError(ConfigErrorType.INVALID_FORMAT, f"{source}: {key} must be a string"))
    values["log_level"] = values["log_level"].upper()
    return Ok(AppConfig(source=source, **values))


def load_config(
    search_dir: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Result[AppConfig, ConfigError]:
    """Load the application configuration.

    Args:
        search_dir: Directory searched for a config file (default: cwd)
        environ: Environment mapping (default: os.environ)

    Returns:
        Ok with the AppConfig, or Err(ConfigError)
    """
    search_dir = Path(search_dir) if search_dir is not None else Path.cwd()
    environ = os.environ if environ is None else environ

    config = DEFAULT_CONFIG
    config_path = find_config_file(search_dir)
    if config_path is not None:
        try:
            data = json.loads(config_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            return Err(ConfigError(ConfigErrorType.INVALID_FORMAT, f"{config_path}: invalid JSON: {e}", cause=e))
        except OSError as e:
            return Err(ConfigError(ConfigErrorType.IO_ERROR, f"{config_path}: {e}", cause=e))

        if not isinstance(data, dict):
            return Err(ConfigError(ConfigErrorType.INVALID_FORMAT, f"{config_path}: expected a JSON object"))

        file_result = _from_mapping(data, str(config_path))
        if file_result.is_err():
            return file_result
        config = file_result.value
        logger.debug("Loaded config from %s", config_path)

    overrides = {}
    if environ.get(ENV_DATA_DIR):
        overrides["data_dir"] = environ[ENV_DATA_DIR]
    if environ.get(ENV_STORAGE):
        overrides["storage"] = environ[ENV_STORAGE]
    if environ.get(ENV_LOG_LEVEL):
        overrides["log_level"] = environ[ENV_LOG_LEVEL].upper()
    if overrides:
        config = replace(config, **overrides)

    problem = _validate(config)
    if problem is not None:
        return Err(ConfigError(ConfigErrorType.INVALID_FORMAT, problem))
    return Ok(config)
