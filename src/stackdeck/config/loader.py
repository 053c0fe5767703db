"""Configuration loader for StackDeck stacks.

This module provides the StackLoader class for loading, parsing, and validating
stack configuration from YAML files.
"""

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from stackdeck.config.env_loader import load_env_file, substitute_env_vars
from stackdeck.config.validator import flatten_pydantic_errors
from stackdeck.lib.errors import ConfigError, FileNotFoundError
from stackdeck.models.stack import StackConfig

logger = logging.getLogger(__name__)

# Environment variable to rollout settings field mapping
ENV_VAR_MAP = {
    "probe_interval": "STACKDECK_PROBE_INTERVAL",
    "probe_timeout": "STACKDECK_PROBE_TIMEOUT",
    "apply_timeout": "STACKDECK_APPLY_TIMEOUT",
    "call_timeout": "STACKDECK_CALL_TIMEOUT",
    "max_retries": "STACKDECK_MAX_RETRIES",
}


def _parse_env_value(field_name: str, value: str) -> Any:
    """Parse environment variable value to appropriate type.

    Args:
        field_name: Name of the field (used to determine type)
        value: String value from environment variable

    Returns:
        Parsed value in correct type (int or float)

    Raises:
        ValueError: If value cannot be parsed
    """
    if field_name == "max_retries":
        return int(value)
    return float(value)


def _get_env_value(
    field_name: str, env_vars: os._Environ[str] | dict[str, str]
) -> Any | None:
    """Get environment variable value for a field.

    Args:
        field_name: Name of field to get
        env_vars: Environment variables mapping

    Returns:
        Parsed value or None if not found or invalid
    """
    env_var_name = ENV_VAR_MAP.get(field_name)
    if not env_var_name or env_var_name not in env_vars:
        return None

    try:
        return _parse_env_value(field_name, env_vars[env_var_name])
    except (ValueError, KeyError):
        logger.warning(
            f"Ignoring invalid value for {env_var_name}: {env_vars[env_var_name]!r}"
        )
        return None


def _read_yaml_with_env_substitution(path: Path) -> list[Any]:
    """Read a (possibly multi-document) YAML file with env var substitution.

    Reads raw text, substitutes env vars, then parses YAML once.

    Args:
        path: Path to YAML file

    Returns:
        Non-empty documents in file order

    Raises:
        OSError: If file cannot be read
        yaml.YAMLError: If YAML parsing fails
        ConfigError: If env var substitution fails
    """
    raw_text = path.read_text(encoding="utf-8")
    substituted = substitute_env_vars(raw_text)
    return [doc for doc in yaml.safe_load_all(substituted) if doc]


class StackLoader:
    """Loads and validates stack configuration from YAML files.

    This class handles:
    - Loading a sibling .env file
    - Environment variable substitution in stack and manifest files
    - Resolving ``manifest_files`` references relative to the stack file
    - Applying environment overrides to rollout settings
    - Converting validation errors into human-readable messages
    """

    def __init__(self, env: dict[str, str] | None = None) -> None:
        """Initialize the loader.

        Args:
            env: Environment mapping used for settings overrides (defaults to
                ``os.environ``)
        """
        self._env = env

    def parse_yaml(self, file_path: str) -> dict[str, Any]:
        """Parse a YAML file and return its contents as a dictionary.

        Args:
            file_path: Path to the YAML file to parse

        Returns:
            Dictionary containing parsed YAML content ({} if empty)

        Raises:
            FileNotFoundError: If the file does not exist
            ConfigError: If YAML parsing fails or the root is not a mapping
        """
        path = Path(file_path)
        try:
            documents = _read_yaml_with_env_substitution(path)
        except OSError as e:
            raise FileNotFoundError(
                file_path,
                f"Stack file not found at {file_path}. "
                f"Please ensure the file exists at this path.",
            ) from e
        except yaml.YAMLError as e:
            raise ConfigError(
                "yaml_parse",
                f"Failed to parse YAML file {file_path}: {str(e)}",
            ) from e

        if not documents:
            return {}
        if len(documents) > 1 or not isinstance(documents[0], dict):
            raise ConfigError(
                "yaml_parse",
                f"Stack file {file_path} must contain a single YAML mapping",
            )
        return documents[0]

    def load_stack_yaml(self, file_path: str) -> StackConfig:
        """Load and validate a stack configuration from YAML.

        Configuration precedence (highest to lowest):
        1. stack.yaml explicit settings
        2. Environment variables (STACKDECK_*)
        3. Built-in defaults

        Args:
            file_path: Path to stack.yaml file

        Returns:
            Validated StackConfig instance

        Raises:
            FileNotFoundError: If the stack file or a manifest file is missing
            ConfigError: If YAML parsing or validation fails
        """
        path = Path(file_path)
        stack_dir = path.resolve().parent
        load_env_file(stack_dir)

        stack_config = self.parse_yaml(file_path)
        self._resolve_manifest_files(stack_config, stack_dir)
        self._apply_env_overrides(stack_config)

        try:
            return StackConfig(**stack_config)
        except PydanticValidationError as e:
            error_messages = flatten_pydantic_errors(e, stack_config)
            error_text = "\n".join(error_messages)
            raise ConfigError(
                "stack_validation",
                f"Invalid stack configuration in {file_path}:\n{error_text}",
            ) from e

    def _resolve_manifest_files(
        self, stack_config: dict[str, Any], stack_dir: Path
    ) -> None:
        """Inline ``manifest_files`` entries of every tier (in-place).

        Args:
            stack_config: Raw stack configuration
            stack_dir: Directory that relative paths are resolved against

        Raises:
            FileNotFoundError: If a manifest file does not exist
            ConfigError: If a manifest file cannot be parsed
        """
        tiers = stack_config.get("tiers")
        if not isinstance(tiers, list):
            return

        for tier in tiers:
            if not isinstance(tier, dict) or "manifest_files" not in tier:
                continue

            manifest_files = tier.pop("manifest_files") or []
            manifests = list(tier.get("manifests") or [])
            for manifest_file in manifest_files:
                manifest_path = stack_dir / manifest_file
                try:
                    documents = _read_yaml_with_env_substitution(manifest_path)
                except OSError as e:
                    raise FileNotFoundError(
                        str(manifest_path),
                        f"Manifest file for tier '{tier.get('name')}' not found.",
                    ) from e
                except yaml.YAMLError as e:
                    raise ConfigError(
                        "manifest_parse",
                        f"Failed to parse manifest file {manifest_path}: {str(e)}",
                    ) from e
                logger.debug(
                    f"Loaded {len(documents)} manifest(s) from {manifest_path}"
                )
                manifests.extend(documents)
            tier["manifests"] = manifests

    def _apply_env_overrides(self, stack_config: dict[str, Any]) -> None:
        """Fill rollout settings from STACKDECK_* variables (in-place).

        Values set explicitly in stack.yaml are never overridden.
        """
        env_vars = self._env if self._env is not None else os.environ
        settings = stack_config.get("settings")
        if settings is None:
            settings = {}
        if not isinstance(settings, dict):
            return

        for field_name in ENV_VAR_MAP:
            value = _get_env_value(field_name, env_vars)
            if value is None:
                continue
            if field_name == "max_retries":
                retry = settings.setdefault("retry", {})
                if isinstance(retry, dict) and "max_retries" not in retry:
                    retry["max_retries"] = value
            elif field_name not in settings:
                settings[field_name] = value

        if settings:
            stack_config["settings"] = settings


def load_stack(file_path: str) -> StackConfig:
    """Load a stack configuration in one call (CLI helper)."""
    return StackLoader().load_stack_yaml(file_path)
