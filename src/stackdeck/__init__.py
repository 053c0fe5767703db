"""StackDeck - Dependency-ordered, health-gated rollouts of multi-tier stacks.

StackDeck deploys an application made of several tiers (for example a
database, a backend and a frontend) to a container orchestration cluster.

Main features:
- Define tiers, dependencies and readiness checks in YAML
- Deterministic rollout order with cycle detection
- Each tier gated on readiness before the next one starts
- Resume after failure without re-applying ready tiers
- Ingress binding with retries for eventually consistent load balancers
"""

from stackdeck.config.loader import StackLoader
from stackdeck.lib.errors import ConfigError, DeploymentError, StackDeckError

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "StackLoader",
    "ConfigError",
    "DeploymentError",
    "StackDeckError",
]
