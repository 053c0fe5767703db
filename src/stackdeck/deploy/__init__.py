"""Rollout orchestration for StackDeck stacks."""

from stackdeck.deploy.cancel import CancelToken
from stackdeck.deploy.engine import RolloutEngine
from stackdeck.deploy.ingress import IngressReconciler
from stackdeck.deploy.orchestrator import Orchestrator, build_plan
from stackdeck.deploy.prober import HealthProber
from stackdeck.deploy.store import DescriptorStore, RolloutPlan

__all__ = [
    "CancelToken",
    "DescriptorStore",
    "HealthProber",
    "IngressReconciler",
    "Orchestrator",
    "RolloutEngine",
    "RolloutPlan",
    "build_plan",
]
