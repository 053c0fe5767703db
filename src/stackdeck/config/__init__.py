"""Configuration loading and validation for StackDeck stacks.

Main components:
- stackdeck.config.loader.StackLoader: Load and validate stack.yaml files
- Environment variable substitution (${VAR_NAME} pattern) and .env loading
- Default rollout settings (stackdeck.config.defaults)

The loader is not re-exported here because the stack models import the
defaults module from this package.
"""

from stackdeck.config.env_loader import get_env_var, load_env_file, substitute_env_vars

__all__ = [
    "substitute_env_vars",
    "get_env_var",
    "load_env_file",
]
