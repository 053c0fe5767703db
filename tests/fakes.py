"""In-memory collaborators and builders shared by StackDeck tests."""

from collections import defaultdict
from collections.abc import Callable, Iterable, Sequence
from typing import Any

from stackdeck.deploy.clients.base import BaseClusterClient, BaseIngressProvider
from stackdeck.models.rollout import (
    IngressBinding,
    ProviderPhase,
    ProviderState,
    ReadinessSignal,
)
from stackdeck.models.stack import TierConfig


def make_tier(name: str, depends_on: Sequence[str] = (), **kwargs: Any) -> TierConfig:
    """Build a tier with a single Deployment manifest."""
    manifest = {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": name},
        "spec": {"replicas": 1},
    }
    return TierConfig(
        name=name,
        manifests=kwargs.pop("manifests", [manifest]),
        depends_on=list(depends_on),
        **kwargs,
    )


class FakeCluster(BaseClusterClient):
    """In-memory cluster client.

    Each tier becomes ready on its ``ready_after``-th status call (default 1).
    Tiers in ``never_ready`` never report ready replicas.
    """

    def __init__(
        self,
        ready_after: dict[str, int] | None = None,
        never_ready: Iterable[str] = (),
        apply_errors: dict[str, Exception] | None = None,
        status_errors: dict[str, Exception] | None = None,
        on_apply: Callable[[str], None] | None = None,
    ) -> None:
        self.ready_after = ready_after or {}
        self.never_ready = set(never_ready)
        self.apply_errors = apply_errors or {}
        self.status_errors = status_errors or {}
        self.on_apply = on_apply
        self.applied: list[str] = []
        self.status_calls: dict[str, int] = defaultdict(int)

    async def apply(self, tier: TierConfig) -> None:
        self.applied.append(tier.name)
        if self.on_apply is not None:
            self.on_apply(tier.name)
        if tier.name in self.apply_errors:
            raise self.apply_errors[tier.name]

    async def get_status(self, tier: TierConfig) -> ReadinessSignal:
        self.status_calls[tier.name] += 1
        if tier.name in self.status_errors:
            raise self.status_errors[tier.name]
        if tier.name in self.never_ready:
            return ReadinessSignal(ready_replicas=0, desired_replicas=1)
        ready = self.status_calls[tier.name] >= self.ready_after.get(tier.name, 1)
        return ReadinessSignal(ready_replicas=1 if ready else 0, desired_replicas=1)


class FakeIngressProvider(BaseIngressProvider):
    """Ingress provider that replays a script of states and errors.

    Call ``n`` returns (or raises) ``script[n]``; the last entry repeats.
    """

    def __init__(self, script: Sequence[ProviderState | Exception] | None = None):
        self.script = list(
            script or [ProviderState(phase=ProviderPhase.BOUND, address="lb.example.com")]
        )
        self.calls = 0
        self.deleted: list[str] = []
        self.delete_error: Exception | None = None

    async def create_or_update(self, binding: IngressBinding) -> ProviderState:
        outcome = self.script[min(self.calls, len(self.script) - 1)]
        self.calls += 1
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def delete(self, binding: IngressBinding) -> None:
        if self.delete_error is not None:
            raise self.delete_error
        self.deleted.append(binding.name)
