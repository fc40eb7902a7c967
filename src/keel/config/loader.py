"""
Configuration file loading.

Loads keel.yaml, merges keel.{env}.yaml over it and resolves placeholders.
"""

from collections.abc import Iterator
from pathlib import Path
from typing import Any

import yaml

from keel.config.resolver import resolve_config
from keel.exceptions import ConfigurationError

CONFIG_FILE_NAME = "keel.yaml"


class Config:
    """keel configuration container with dict-like access."""

    def __init__(self, data: dict[str, Any]):
        self.data = data
        # Convenience properties for common config sections
        self.connections = data.get("connections") or {}
        self.migrations = data.get("migrations") or {}
        self.sandbox = data.get("sandbox") or {}

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation."""
        value: Any = self.data
        for k in key.split("."):
            if isinstance(value, dict):
                value = value.get(k)
                if value is None:
                    return default
            else:
                return default
        return value

    def __getitem__(self, key: str) -> Any:
        """Dict-like access: config['key'] or config['nested.key']."""
        if "." in key:
            if key not in self:
                raise KeyError(f"Config key '{key}' not found")
            return self.get(key)
        if key in self.data:
            value = self.data[key]
            # Return nested dicts as Config objects for chaining
            if isinstance(value, dict):
                return Config(value)
            return value
        raise KeyError(f"Config key '{key}' not found")

    def __contains__(self, key: str) -> bool:
        """Check if key exists in config."""
        value: Any = self.data
        for k in key.split("."):
            if not isinstance(value, dict) or k not in value:
                return False
            value = value[k]
        return True

    def __iter__(self) -> Iterator[str]:
        """Iterate over top-level keys."""
        return iter(self.data)

    def validate(self) -> None:
        """Validate configuration structure."""
        errors = []

        for section in ("connections", "migrations", "sandbox", "logging"):
            value = self.data.get(section)
            if value is not None and not isinstance(value, dict):
                errors.append(f"Configuration '{section}' must be a dictionary, got {type(value).__name__}")

        connections = self.connections if isinstance(self.connections, dict) else {}
        for name, conn_config in connections.items():
            if not isinstance(conn_config, dict) or not conn_config.get("type"):
                errors.append(f"Connection '{name}' must be a dictionary with a 'type' key")

        if errors:
            raise ConfigurationError("\n".join(errors))


def load_config(project_path: Path | None = None, env: str | None = None) -> Config:
    """
    Load keel configuration.

    Args:
        project_path: Path to project root (default: current directory)
        env: Environment name (dev, staging, prod)

    Returns:
        Config instance with merged configuration

    Raises:
        ConfigurationError: If the config file is missing or not valid YAML
    """
    if project_path is None:
        project_path = Path.cwd()

    base_config_path = project_path / CONFIG_FILE_NAME
    if not base_config_path.is_file():
        raise ConfigurationError(
            f"Configuration file not found: {base_config_path}\n"
            f"  Suggestion: Create a {CONFIG_FILE_NAME} file in your project root",
            details={"path": str(base_config_path)},
        )

    config_data = _read_yaml(base_config_path)

    if env:
        env_config_path = project_path / f"keel.{env}.yaml"
        if env_config_path.exists():
            # env overrides base
            _merge_dict(config_data, _read_yaml(env_config_path))

    config = Config(resolve_config(config_data, env or "dev"))
    config.validate()
    return config


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        where = f" at line {mark.line + 1}, column {mark.column + 1}" if mark is not None else ""
        raise ConfigurationError(
            f"Error parsing {path.name}{where}:\n"
            f"  {e}\n"
            f"  Suggestion: Check YAML syntax, ensure proper indentation and quotes",
            details={"path": str(path)},
        ) from e
    except PermissionError as e:
        raise ConfigurationError(f"Permission denied reading {path}: {e}", details={"path": str(path)}) from e

    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Configuration must be a dictionary/mapping, got {type(data).__name__}",
            details={"path": str(path)},
        )
    return data


def _merge_dict(base: dict, override: dict):
    """Recursively merge override into base."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _merge_dict(base[key], value)
        else:
            base[key] = value
