"""
Configuration loading with precedence support.
"""
import logging
import os
import tomllib
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import tomli_w
from pydantic import ValidationError

from ..core.aggregator import DEDUP_POLICIES
from ..core.grammar import get_profile
from ..core.util.hash import compute_config_hash as hash_config
from .schema import RunConfig

logger = logging.getLogger(__name__)

VALID_SEVERITIES = ("CRITICAL", "HIGH", "MEDIUM", "LOW")
VALID_FORMATS = ("table", "json")


class ConfigLoader:
    """Handles configuration loading with proper precedence."""

    ENV_PREFIX = "CROSSFLOW_"
    DEFAULT_CONFIG_FILES = [
        "crossflow.toml",
        ".crossflow.toml",
        "pyproject.toml",  # Look for [tool.crossflow] section
    ]

    def __init__(self, search_dir: Optional[Path] = None):
        self.search_dir = Path(search_dir) if search_dir else Path.cwd()
        self.warnings: List[str] = []

    def load_config(self, explicit_path: Optional[Path] = None) -> Tuple[RunConfig, List[str]]:
        """
        Load configuration with precedence: defaults < TOML < environment.

        CLI flags are applied on top by the caller.

        Returns:
            Tuple of (config, warnings)
        """
        self.warnings = []
        config = RunConfig()

        toml_config, source = self._load_toml_config(explicit_path)
        if toml_config:
            config = self._merge_configs(config, toml_config, str(source))
            config.config_file = str(source)

        env_config = self._load_env_config()
        if env_config:
            config = self._merge_configs(config, env_config, "environment")

        config, validation_warnings = self.validate_config(config)
        self.warnings.extend(validation_warnings)
        for warning in self.warnings:
            logger.debug(f"Config warning: {warning}")
        return config, self.warnings

    def _load_toml_config(self, explicit_path: Optional[Path] = None) -> Tuple[Optional[Dict[str, Any]], Optional[Path]]:
        if explicit_path:
            explicit_path = Path(explicit_path)
            if not explicit_path.exists():
                self.warnings.append(f"Config file not found: {explicit_path}")
                return None, None
            config_files = [explicit_path]
        else:
            config_files = [self.search_dir / name for name in self.DEFAULT_CONFIG_FILES]

        for config_file in config_files:
            if not config_file.exists():
                continue
            try:
                with open(config_file, "rb") as f:
                    data = tomllib.load(f)
            except (OSError, tomllib.TOMLDecodeError) as e:
                self.warnings.append(f"Failed to load config from {config_file}: {e}")
                continue

            if config_file.name == "pyproject.toml":
                data = data.get("tool", {}).get("crossflow", {})
            if data:
                logger.debug(f"Loaded configuration from {config_file}")
                return data, config_file

        return None, None

    def _load_env_config(self) -> Optional[Dict[str, Any]]:
        """Load configuration from ``CROSSFLOW_*`` environment variables."""
        env_config: Dict[str, Any] = {}
        env_mappings = {
            f"{self.ENV_PREFIX}DETECTORS_ENABLED": ("detectors.enabled", self._parse_list),
            f"{self.ENV_PREFIX}DETECTORS_DISABLED": ("detectors.disabled", self._parse_list),
            f"{self.ENV_PREFIX}DETECTORS_CATEGORIES": ("detectors.categories", self._parse_list),
            f"{self.ENV_PREFIX}GRAMMAR": ("analysis.grammar", str),
            f"{self.ENV_PREFIX}CRITICAL_DEGREE_THRESHOLD": ("analysis.critical_degree_threshold", int),
            f"{self.ENV_PREFIX}DEDUP_POLICY": ("analysis.dedup_policy", str),
            f"{self.ENV_PREFIX}INCLUDE_CRITICAL_PATHS": ("analysis.include_critical_paths", self._parse_bool),
            f"{self.ENV_PREFIX}INCLUDE_INVARIANTS": ("analysis.include_invariants", self._parse_bool),
            f"{self.ENV_PREFIX}OUTPUT_FORMAT": ("output.format", str),
            f"{self.ENV_PREFIX}OUTPUT_JSON_FILE": ("output.json_file", str),
            f"{self.ENV_PREFIX}OUTPUT_MIN_SEVERITY": ("output.min_severity", str),
            f"{self.ENV_PREFIX}FAIL_ON_FINDINGS": ("reporting.fail_on_findings", self._parse_bool),
            f"{self.ENV_PREFIX}FAIL_ON_SEVERITY": ("reporting.fail_on_severity", str),
            f"{self.ENV_PREFIX}IGNORE_PATTERNS": ("ignore.patterns", self._parse_list),
        }

        for env_var, (config_path, parser) in env_mappings.items():
            value = os.getenv(env_var)
            if value is None:
                continue
            try:
                self._set_nested_value(env_config, config_path, parser(value))
            except (ValueError, TypeError) as e:
                self.warnings.append(f"Invalid environment variable {env_var}={value}: {e}")

        return env_config or None

    @staticmethod
    def _parse_bool(value: str) -> bool:
        return value.strip().lower() in ("true", "1", "yes", "on", "enabled")

    @staticmethod
    def _parse_list(value: str) -> List[str]:
        return [item.strip() for item in value.split(",") if item.strip()]

    @staticmethod
    def _set_nested_value(config: Dict[str, Any], path: str, value: Any) -> None:
        """Set a nested configuration value using dot notation."""
        keys = path.split(".")
        current = config
        for key in keys[:-1]:
            current = current.setdefault(key, {})
        current[keys[-1]] = value

    def _merge_configs(self, base: RunConfig, override: Dict[str, Any], source: str) -> RunConfig:
        """Deep-merge ``override`` into ``base``; an invalid layer is reported and skipped."""
        merged = self._deep_merge(base.to_dict(), override)
        try:
            return RunConfig.from_dict(merged)
        except ValidationError as e:
            for error in e.errors():
                location = ".".join(str(part) for part in error["loc"])
                self.warnings.append(f"Invalid value for '{location}' from {source}: {error['msg']}")
            return base

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result

    def validate_config(self, config: RunConfig) -> Tuple[RunConfig, List[str]]:
        """
        Replace out-of-range values with defaults.

        Returns:
            Tuple of (validated_config, warnings)
        """
        warnings = []

        min_severity = config.output.min_severity.upper()
        if min_severity not in VALID_SEVERITIES:
            warnings.append(f"Invalid min_severity '{config.output.min_severity}', using 'LOW'")
            min_severity = "LOW"
        config.output.min_severity = min_severity

        if config.reporting.fail_on_severity:
            fail_on = config.reporting.fail_on_severity.upper()
            if fail_on not in VALID_SEVERITIES:
                warnings.append(f"Invalid fail_on_severity '{config.reporting.fail_on_severity}'")
                fail_on = None
            config.reporting.fail_on_severity = fail_on

        try:
            config.analysis.grammar = get_profile(config.analysis.grammar).name
        except KeyError:
            warnings.append(f"Unknown grammar '{config.analysis.grammar}', using 'solidity'")
            config.analysis.grammar = "solidity"

        if config.analysis.dedup_policy not in DEDUP_POLICIES:
            warnings.append(f"Invalid dedup_policy '{config.analysis.dedup_policy}', using 'per-detector'")
            config.analysis.dedup_policy = "per-detector"

        if config.analysis.critical_degree_threshold < 0:
            warnings.append(
                f"Invalid critical_degree_threshold {config.analysis.critical_degree_threshold}, using 3"
            )
            config.analysis.critical_degree_threshold = 3

        if config.output.format not in VALID_FORMATS:
            warnings.append(f"Invalid output format '{config.output.format}', using 'table'")
            config.output.format = "table"

        return config, warnings

    def write_config(self, config: RunConfig, path: Path) -> None:
        """Write configuration to a TOML file; unset (None) values are omitted."""

        def drop_none(obj):
            if isinstance(obj, dict):
                return {k: drop_none(v) for k, v in obj.items() if v is not None}
            if isinstance(obj, list):
                return [drop_none(item) for item in obj]
            return obj

        with open(path, "wb") as f:
            tomli_w.dump(drop_none(config.to_dict()), f)

    def compute_config_hash(self, config: RunConfig) -> str:
        """Compute stable hash of configuration."""
        return hash_config(config)


# Convenience functions
def load_config(explicit_path: Optional[Path] = None) -> Tuple[RunConfig, List[str]]:
    """Load configuration with default loader."""
    return ConfigLoader().load_config(explicit_path)


def write_config(config: RunConfig, path: Path) -> None:
    """Write configuration to file."""
    ConfigLoader().write_config(config, path)


def compute_config_hash(config: RunConfig) -> str:
    """Compute config hash."""
    return ConfigLoader().compute_config_hash(config)
