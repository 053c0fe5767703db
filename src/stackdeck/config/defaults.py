"""Default configuration values for StackDeck."""

import logging

logger = logging.getLogger(__name__)


# Rollout timing defaults (seconds)
DEFAULT_ROLLOUT_SETTINGS: dict[str, float] = {
    "probe_interval": 5.0,
    "probe_timeout": 300.0,
    "apply_timeout": 60.0,
    "call_timeout": 30.0,
}

# Ingress retry defaults
DEFAULT_RETRY_CONFIG: dict[str, int | float] = {
    "max_retries": 5,
    "base_delay": 1.0,
    "exponential_base": 2.0,
    "max_delay": 30.0,
}

DEFAULT_NAMESPACE = "default"
DEFAULT_FIELD_MANAGER = "stackdeck"
DEFAULT_STACK_FILE = "stack.yaml"
STATE_DIR_NAME = ".stackdeck"

# Workload kinds whose replica status drives the "replicas" readiness check
WORKLOAD_KINDS: tuple[str, ...] = ("Deployment", "StatefulSet", "DaemonSet")


def get_retry_delay(
    attempt: int,
    base_delay: float = DEFAULT_RETRY_CONFIG["base_delay"],
    exponential_base: float = DEFAULT_RETRY_CONFIG["exponential_base"],
    max_delay: float = DEFAULT_RETRY_CONFIG["max_delay"],
) -> float:
    """Calculate an exponential backoff delay.

    Args:
        attempt: Retry number (0-indexed)
        base_delay: Delay before the first retry
        exponential_base: Growth factor between retries
        max_delay: Upper bound for any single delay

    Returns:
        Delay in seconds before the next attempt

    Example:
        With defaults, delays are: 1s, 2s, 4s, 8s, 16s, 30s (capped).
    """
    if attempt < 0:
        logger.warning(f"Negative retry attempt {attempt}, using 0")
        attempt = 0
    delay = base_delay * (exponential_base**attempt)
    return float(min(delay, max_delay))
