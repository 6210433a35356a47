"""
Config system - Layered typed configuration with validation.

Sources merge with precedence (later overrides earlier):
defaults < config files (YAML/JSON) < .env file < MODCOMM_* env vars < overrides
"""

from typing import Any, Dict, List, Optional, Type, get_type_hints, get_origin, get_args
from dataclasses import dataclass, fields, is_dataclass, MISSING
from pathlib import Path
import json
import logging
import os
import types

from .errors import CommunicationError

logger = logging.getLogger("modcomm.config")


class ConfigError(CommunicationError):
    """Raised when configuration validation fails."""

    code = "CONFIG_INVALID"


@dataclass
class CommunicationConfig:
    """Tunables for the container, discovery and the hook/event layers."""

    # Container / registry
    max_resolution_depth: int = 10

    # Discovery ceilings
    modules_path: str = "modules"
    discovery_max_depth: int = 5
    discovery_max_files: int = 5000
    discovery_max_memory_mb: float = 30.0
    discovery_memory_check_interval: int = 500

    # Descriptor convention: <modules_path>/<Name>/<location>/<filename>
    descriptor_filename: str = "module_communication.py"
    descriptor_location: str = "infrastructure/communication"
    descriptor_class: str = "ModuleCommunication"

    default_listener_priority: int = 0
    default_hook_priority: int = 10
    async_dispatch: bool = False

    log_level: Optional[str] = None


class ConfigLoader:
    """
    Loads and merges configuration from multiple sources with precedence:
    overrides > Environment variables > .env files > config files > defaults
    """

    def __init__(self, env_prefix: str = "MODCOMM_"):
        self.env_prefix = env_prefix
        self.config_data: Dict[str, Any] = {}

    @classmethod
    def load(
        cls,
        paths: Optional[List[str]] = None,
        env_prefix: str = "MODCOMM_",
        env_file: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> "ConfigLoader":
        """
        Load configuration from multiple sources with proper merge strategy.

        Args:
            paths: List of config file paths (glob patterns supported)
            env_prefix: Prefix for environment variables
            env_file: Path to .env file
            overrides: Manual overrides (highest precedence)

        Returns:
            Configured ConfigLoader instance
        """
        loader = cls(env_prefix=env_prefix)

        for pattern in paths or []:
            loader._load_from_files(pattern)

        if env_file:
            loader._load_env_file(env_file)

        loader._load_from_env()

        if overrides:
            loader._merge_dict(loader.config_data, overrides)

        return loader

    def _load_from_files(self, pattern: str):
        """Load config from JSON or YAML files."""
        from glob import glob

        matches = sorted(glob(pattern))
        if not matches:
            logger.debug(f"No config files matched {pattern!r}")

        for path_str in matches:
            path = Path(path_str)

            if path.suffix == ".json":
                self._load_json_file(path)
            elif path.suffix in (".yaml", ".yml"):
                self._load_yaml_file(path)
            else:
                logger.warning(f"Ignoring config file with unsupported suffix: {path}")

    def _load_json_file(self, path: Path):
        """Load config from JSON file."""
        with open(path) as f:
            data = json.load(f)
            self._merge_dict(self.config_data, data)

    def _load_yaml_file(self, path: Path):
        """Load config from YAML file."""
        import yaml
        with open(path) as f:
            data = yaml.safe_load(f)
            if data:
                self._merge_dict(self.config_data, data)

    def _load_env_file(self, path: str):
        """Load prefixed keys from a .env file."""
        from dotenv import dotenv_values

        env_path = Path(path)
        if not env_path.exists():
            return

        for key, value in dotenv_values(env_path).items():
            if value is not None and key.startswith(self.env_prefix):
                self._set_nested(key, value)

    def _load_from_env(self):
        """Load config from environment variables."""
        for key, value in os.environ.items():
            if key.startswith(self.env_prefix):
                self._set_nested(key, value)

    def _set_nested(self, key: str, value: str):
        """Convert MODCOMM_DISCOVERY__LIMITS to nested dict."""
        key = key[len(self.env_prefix):]

        # Double underscore separates nesting levels
        parts = key.lower().split("__")

        current = self.config_data
        for part in parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]

        current[parts[-1]] = self._parse_value(value)

    def _parse_value(self, value: str) -> Any:
        """Parse string value to appropriate type."""
        if value.lower() in ("true", "yes"):
            return True
        if value.lower() in ("false", "no"):
            return False

        try:
            if "." in value:
                return float(value)
            return int(value)
        except ValueError:
            pass

        if value.startswith(("{", "[")):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                pass

        return value

    def _merge_dict(self, target: dict, source: dict):
        """Deep merge source into target."""
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._merge_dict(target[key], value)
            else:
                target[key] = value

    def get(self, path: str, default: Any = None) -> Any:
        """Get config value by dot-separated path."""
        current = self.config_data

        for part in path.split("."):
            if isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return default

        return current

    def build(self, config_class: Type = CommunicationConfig, section: Optional[str] = None):
        """
        Instantiate and validate a config dataclass.

        Args:
            config_class: Dataclass to build
            section: Optional dotted path whose mapping is used instead of the root

        Returns:
            Validated config instance
        """
        if not is_dataclass(config_class):
            raise ConfigError(f"{config_class!r} is not a dataclass")

        data = self.get(section, {}) if section else self.config_data
        if not isinstance(data, dict):
            raise ConfigError(f"Config section '{section}' must be a mapping")

        return self._instantiate_dataclass(config_class, data)

    def _instantiate_dataclass(self, config_class: Type, data: dict):
        """Instantiate dataclass config with validation."""
        kwargs = {}
        hints = get_type_hints(config_class)

        for field_info in fields(config_class):
            field_name = field_info.name
            field_type = hints.get(field_name, field_info.type)

            if field_name in data:
                value = data[field_name]

                # Whole numbers are valid floats
                if field_type is float and isinstance(value, int) and not isinstance(value, bool):
                    value = float(value)

                if not self._check_type(value, field_type):
                    raise ConfigError(
                        f"Config field '{field_name}' expected {field_type}, "
                        f"got {type(value).__name__}",
                        details={"field": field_name, "value": value},
                    )

                kwargs[field_name] = value
            elif field_info.default is not MISSING:
                kwargs[field_name] = field_info.default
            elif field_info.default_factory is not MISSING:
                kwargs[field_name] = field_info.default_factory()
            else:
                raise ConfigError(
                    f"Required config field '{field_name}' not provided"
                )

        return config_class(**kwargs)

    def _check_type(self, value: Any, expected_type: Type) -> bool:
        """Basic type checking."""
        # Optional[X] is Union[X, None]
        origin = get_origin(expected_type)
        if origin is types.UnionType or str(origin) == "typing.Union":
            args = get_args(expected_type)
            if value is None:
                return True
            if args:
                return self._check_type(value, args[0])

        if origin:
            return isinstance(value, origin)

        # bool is an int subclass; keep the two apart
        if expected_type is int and isinstance(value, bool):
            return False

        try:
            return isinstance(value, expected_type)
        except TypeError:
            return True

    def to_dict(self) -> dict:
        """Export all config as dictionary."""
        return self.config_data.copy()


def load_config(
    paths: Optional[List[str]] = None,
    env_file: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> CommunicationConfig:
    """Shortcut: layer all sources and build a CommunicationConfig."""
    return ConfigLoader.load(paths=paths, env_file=env_file, overrides=overrides).build()


__all__ = [
    "CommunicationConfig",
    "ConfigLoader",
    "ConfigError",
    "load_config",
]
