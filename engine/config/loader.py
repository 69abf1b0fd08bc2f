"""
Config Loader

Loads and merges stack configurations from YAML files.
Exposes configuration values to stack programs before graph construction.
"""

import yaml
from pathlib import Path
from types import MappingProxyType
from typing import Annotated, Any, Dict, Iterator, Mapping, Optional, Type
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError
import logging

from ..errors import ConfigValidationError, ConstructionError, MissingConfigError

logger = logging.getLogger(__name__)

_MERGED_SECTIONS = ("config", "engine", "reporting")


class EngineSettings(BaseModel):
    """Resolution engine settings"""
    model_config = ConfigDict(extra="forbid")

    parallel: int = Field(default=8, ge=1)
    timeout_seconds: Optional[float] = Field(default=None, gt=0)


class ReportingSettings(BaseModel):
    """Where resolved state is reported"""
    model_config = ConfigDict(extra="forbid")

    nats_enabled: bool = False


class StackConfig(BaseModel):
    """Complete configuration for a stack"""
    model_config = ConfigDict(extra="forbid")

    stack: str
    program: str
    config: Dict[str, Any] = Field(default_factory=dict)
    engine: EngineSettings = Field(default_factory=EngineSettings)
    reporting: ReportingSettings = Field(default_factory=ReportingSettings)


class Configuration:
    """
    Read-only configuration values for one stack.

    Values are resolved once at startup and never change afterwards. When a
    program supplies a settings schema, values are validated against it on
    construction, so unknown keys are rejected before any node is declared.

    Example usage:
        config = Configuration({"isMinikube": "true", "replicas": 3})

        config.require_boolean("isMinikube")   # True
        config.get_int("replicas")             # 3
        config.get("missing", "fallback")      # "fallback"
    """

    def __init__(self, values: Mapping[str, Any], schema: Optional[Type[BaseModel]] = None):
        """
        Args:
            values: Raw configuration values
            schema: Optional pydantic model the values must satisfy

        Raises:
            ConfigValidationError: If values do not satisfy the schema
        """
        self._values = MappingProxyType(dict(values))
        self.settings: Optional[BaseModel] = None

        if schema is not None:
            try:
                self.settings = schema.model_validate(dict(values))
            except ValidationError as e:
                raise ConfigValidationError(f"Invalid configuration values: {e}")

    def __contains__(self, key: str) -> bool:
        return key in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def get(self, key: str, default: Any = None) -> Any:
        """Value for key, or default if absent."""
        return self._values.get(key, default)

    def require(self, key: str) -> Any:
        """
        Raises:
            MissingConfigError: If key is absent
        """
        if key not in self._values:
            raise MissingConfigError(key)
        return self._values[key]

    def get_boolean(self, key: str, default: Optional[bool] = None) -> Optional[bool]:
        if key not in self._values:
            return default
        return _as_bool(key, self._values[key])

    def require_boolean(self, key: str) -> bool:
        """
        Boolean value for key. Accepts booleans and the strings "true"/"false".

        Raises:
            MissingConfigError: If key is absent
            ConfigValidationError: If the value is not a boolean
        """
        return _as_bool(key, self.require(key))

    def get_int(self, key: str, default: Optional[int] = None) -> Optional[int]:
        if key not in self._values:
            return default
        value = self._values[key]
        if isinstance(value, bool):
            raise ConfigValidationError(f"Configuration value '{key}' is not an integer: {value!r}")
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ConfigValidationError(f"Configuration value '{key}' is not an integer: {value!r}")

    def get_object(self, key: str, default: Optional[Mapping] = None) -> Optional[Mapping]:
        if key not in self._values:
            return default
        value = self._values[key]
        if not isinstance(value, Mapping):
            raise ConfigValidationError(f"Configuration value '{key}' is not an object: {value!r}")
        return MappingProxyType(dict(value))


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false"):
        return value.lower() == "true"
    raise ValueError(f"expected a boolean or 'true'/'false', got {value!r}")


# Boolean accepted the same way by settings models and require_boolean()
ConfigBool = Annotated[bool, BeforeValidator(_parse_bool)]


def _as_bool(key: str, value: Any) -> bool:
    try:
        return _parse_bool(value)
    except ValueError:
        raise ConfigValidationError(f"Configuration value '{key}' is not a boolean: {value!r}")


class ConfigLoader:
    """
    Loads and merges stack configs from YAML.

    The loader:
    1. Finds all YAML files in a stack's directory
    2. Merges them, rejecting conflicting values for the same key
    3. Validates the result against StackConfig (unknown keys rejected)

    Example usage:
        loader = ConfigLoader(Path("config"))
        stack_config = loader.load_stack("guestbook-local")

        # config/stacks/guestbook-local/*.yaml merged into one StackConfig
    """

    def __init__(self, config_dir: Path):
        """
        Initialize loader with config directory.

        Args:
            config_dir: Root config directory (contains stacks/ subdirectory)
        """
        self.config_dir = Path(config_dir)
        logger.info(f"Initialized ConfigLoader with config_dir: {config_dir}")

    def load_stack(self, stack: str) -> StackConfig:
        """
        Load all YAML files for a stack and merge into a StackConfig.

        Args:
            stack: Stack name (e.g., "guestbook-local", "eks-dev")

        Returns:
            Validated StackConfig

        Raises:
            ConstructionError: If no config is found
            ConfigValidationError: If a file is malformed, values conflict,
                or validation fails
        """
        stack_dir = self.config_dir / "stacks" / stack

        if not stack_dir.exists():
            raise ConstructionError(
                f"No config directory for stack: {stack}. "
                f"Expected: {stack_dir}"
            )

        yaml_files = sorted(stack_dir.glob("*.yaml"))
        if not yaml_files:
            raise ConstructionError(f"No YAML files found in {stack_dir}")

        logger.info(f"Loading {len(yaml_files)} YAML files for {stack}")

        merged: Dict[str, Any] = {}
        for yaml_file in yaml_files:
            try:
                with open(yaml_file) as f:
                    raw = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                logger.error(f"Failed to load {yaml_file}: {e}")
                raise ConfigValidationError(f"Failed to load {yaml_file}: {e}")

            if not isinstance(raw, dict):
                raise ConfigValidationError(f"{yaml_file} must contain a mapping at top level")

            self._merge(merged, raw, yaml_file.name)
            logger.debug(f"Loaded {yaml_file.name}: keys {sorted(raw)}")

        try:
            config = StackConfig(**merged)
        except ValidationError as e:
            raise ConfigValidationError(f"Invalid configuration for stack {stack}: {e}")

        if config.stack != stack:
            logger.warning(
                f"Stack name mismatch in {stack_dir}: "
                f"expected {stack}, got {config.stack}"
            )

        logger.info(
            f"Loaded stack {stack}: program={config.program}, "
            f"{len(config.config)} config values"
        )
        return config

    def _merge(self, merged: Dict[str, Any], raw: Dict[str, Any], source: str) -> None:
        """
        Merge one file into the accumulated config.

        Sections are merged key by key; any key defined twice must carry an
        identical value.

        Raises:
            ConfigValidationError: On conflicting definitions
        """
        for key, value in raw.items():
            if key in _MERGED_SECTIONS and isinstance(value, dict):
                section = merged.setdefault(key, {})
                if not isinstance(section, dict):
                    raise ConfigValidationError(f"Section '{key}' in {source} conflicts with a scalar")
                for sub_key, sub_value in value.items():
                    if sub_key in section and section[sub_key] != sub_value:
                        raise ConfigValidationError(
                            f"Conflicting definitions for {key}.{sub_key} in {source}: "
                            f"{section[sub_key]!r} != {sub_value!r}"
                        )
                    section[sub_key] = sub_value
            elif key in merged and merged[key] != value:
                raise ConfigValidationError(
                    f"Conflicting definitions for {key} in {source}: "
                    f"{merged[key]!r} != {value!r}"
                )
            else:
                merged[key] = value
