"""Environment variable handling for stack configuration.

Supports ``${VAR_NAME}`` and ``${VAR_NAME:-default}`` substitution in raw
stack.yaml text and loading of a ``.env`` file next to the stack file.
"""

import logging
import os
import re
from pathlib import Path

from dotenv import load_dotenv

from stackdeck.lib.errors import ConfigError

logger = logging.getLogger(__name__)

ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


def get_env_var(name: str, default: str | None = None) -> str | None:
    """Return an environment variable value, or a default when unset."""
    return os.environ.get(name, default)


def substitute_env_vars(text: str) -> str:
    """Replace ``${VAR}`` references in text with environment values.

    Args:
        text: Raw text (usually YAML) containing references

    Returns:
        Text with every reference resolved

    Raises:
        ConfigError: If a referenced variable is unset and has no default
    """

    def _replace(match: re.Match[str]) -> str:
        name, default = match.group(1), match.group(2)
        value = os.environ.get(name)
        if value is not None:
            return value
        if default is not None:
            return default
        raise ConfigError(
            name,
            f"Environment variable '{name}' is not set. "
            f"Set it or provide a default with ${{{name}:-value}}.",
        )

    return ENV_VAR_PATTERN.sub(_replace, text)


def load_env_file(directory: Path, filename: str = ".env") -> bool:
    """Load a dotenv file from a directory without overriding the environment.

    Args:
        directory: Directory that may contain the file
        filename: Dotenv file name

    Returns:
        True if a file was found and loaded
    """
    env_path = directory / filename
    if not env_path.is_file():
        return False
    logger.debug(f"Loading environment from {env_path}")
    return bool(load_dotenv(env_path, override=False))
