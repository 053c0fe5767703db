"""Rollout state models.

These models describe what happened during a rollout: the lifecycle of each
tier, the ordered transition history, the ingress binding, and the final
immutable result record. They also define the structured values returned by
external collaborators (cluster readiness signals and ingress provider state).
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from stackdeck.models.stack import IngressRule


def utc_now() -> datetime:
    """Return the current UTC time."""
    return datetime.now(timezone.utc)


class TierStatus(str, Enum):
    """Lifecycle status of a tier within one rollout."""

    PENDING = "pending"
    APPLYING = "applying"
    PROBING = "probing"
    READY = "ready"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Whether the status ends the tier's lifecycle."""
        return self in (TierStatus.READY, TierStatus.FAILED)


class RolloutStatus(str, Enum):
    """Overall outcome of a rollout."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    INGRESS_FAILED = "ingress_failed"


class FailureReason(BaseModel):
    """Structured description of a failure.

    Attributes:
        kind: Error kind (ApplyFailed, ProbeTimeout, ProbeError, Cancelled,
            IngressProvisionFailed)
        message: Human-readable message
        tier: Tier the failure belongs to, if any
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: str = Field(..., description="Error kind")
    message: str = Field(..., description="Human-readable message")
    tier: str | None = Field(default=None, description="Tier that failed")


class TierState(BaseModel):
    """Lifecycle state of one tier within a rollout.

    Instances are immutable; the rollout engine replaces a tier's state on every
    transition.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(..., description="Tier name")
    status: TierStatus = Field(default=TierStatus.PENDING, description="Status")
    error: FailureReason | None = Field(default=None, description="Failure reason")
    spec_hash: str | None = Field(default=None, description="Applied spec hash")
    skipped: bool = Field(
        default=False, description="Ready from a prior rollout, not re-applied"
    )
    probe_attempts: int = Field(default=0, ge=0, description="Readiness checks made")
    started_at: datetime | None = Field(default=None, description="Start timestamp")
    finished_at: datetime | None = Field(default=None, description="End timestamp")


class TierTransition(BaseModel):
    """One status change of a tier, in rollout order."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    tier: str
    from_status: TierStatus
    to_status: TierStatus
    at: datetime = Field(default_factory=utc_now)


class IngressBinding(BaseModel):
    """External ingress / load-balancer resource bound to a ready stack.

    Mutated only by the ingress reconciler.

    Attributes:
        name: Ingress resource name
        rules: Desired routing rules
        class_name: Ingress class handled by the controller
        annotations: Controller annotations
        address: Provider-assigned address, None until provisioned
        last_error: Last reconciliation error, None when healthy
        attempts: Provider calls made by the last reconciliation
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., description="Ingress resource name")
    rules: list[IngressRule] = Field(..., description="Routing rules")
    class_name: str | None = Field(default=None, description="Ingress class name")
    annotations: dict[str, str] = Field(default_factory=dict)
    address: str | None = Field(default=None, description="Provider address")
    last_error: str | None = Field(default=None, description="Last error")
    attempts: int = Field(default=0, ge=0, description="Provider calls made")

    @property
    def retries(self) -> int:
        """Retries made by the last reconciliation (attempts after the first)."""
        return max(self.attempts - 1, 0)

    def snapshot(self) -> IngressSnapshot:
        """Return a read-only copy of the binding's current state."""
        return IngressSnapshot.model_validate(self.model_dump())


class IngressSnapshot(BaseModel):
    """Read-only copy of an ingress binding, as recorded in a RolloutResult.

    Attributes mirror IngressBinding. Use ``to_binding`` to get a live binding
    for a later reconciliation.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(..., description="Ingress resource name")
    rules: tuple[IngressRule, ...] = Field(..., description="Routing rules")
    class_name: str | None = Field(default=None, description="Ingress class name")
    annotations: dict[str, str] = Field(default_factory=dict)
    address: str | None = Field(default=None, description="Provider address")
    last_error: str | None = Field(default=None, description="Last error")
    attempts: int = Field(default=0, ge=0, description="Provider calls made")

    @property
    def retries(self) -> int:
        """Retries made by the recorded reconciliation."""
        return max(self.attempts - 1, 0)

    def to_binding(self) -> IngressBinding:
        """Return a mutable binding initialized from this snapshot."""
        return IngressBinding.model_validate(self.model_dump())


class RolloutResult(BaseModel):
    """Immutable record of one orchestration run.

    Sequences are tuples and the ingress is a frozen snapshot, so a result
    cannot be changed once created.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    rollout_id: str = Field(..., description="Unique rollout identifier")
    stack: str = Field(..., description="Stack name")
    plan: tuple[str, ...] = Field(..., description="Tier names in rollout order")
    status: RolloutStatus = Field(..., description="Overall outcome")
    tiers: tuple[TierState, ...] = Field(
        ..., description="Terminal state per plan tier"
    )
    transitions: tuple[TierTransition, ...] = Field(
        default=(), description="Ordered tier state history"
    )
    ingress: IngressSnapshot | None = Field(
        default=None, description="Ingress binding snapshot"
    )
    error: FailureReason | None = Field(default=None, description="First fatal error")
    started_at: datetime = Field(..., description="Rollout start")
    finished_at: datetime = Field(..., description="Rollout end")

    @field_validator("ingress", mode="before")
    @classmethod
    def snapshot_ingress(cls, v: object) -> object:
        """Accept a live binding and store a snapshot of it."""
        if isinstance(v, IngressBinding):
            return v.snapshot()
        return v

    def tier(self, name: str) -> TierState:
        """Return the state recorded for a tier.

        Raises:
            KeyError: If the tier is not part of the plan
        """
        for state in self.tiers:
            if state.name == name:
                return state
        raise KeyError(name)

    @property
    def all_ready(self) -> bool:
        """Whether every planned tier reached Ready."""
        return all(state.status == TierStatus.READY for state in self.tiers)

    @property
    def duration_seconds(self) -> float:
        """Wall-clock duration of the rollout."""
        return (self.finished_at - self.started_at).total_seconds()


class ReadinessSignal(BaseModel):
    """Readiness information reported by the orchestration API for a tier.

    Attributes:
        exists: Whether the tier's workload exists
        ready_replicas: Replicas reporting ready
        desired_replicas: Replicas requested by the spec
        message: Provider status message
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    exists: bool = True
    ready_replicas: int = 0
    desired_replicas: int = 0
    message: str | None = None


class ProviderPhase(str, Enum):
    """Provisioning phase of an ingress binding at the provider."""

    PENDING = "pending"
    BOUND = "bound"


class ProviderState(BaseModel):
    """State returned by an ingress provider after create-or-update."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    phase: ProviderPhase = Field(..., description="Provisioning phase")
    address: str | None = Field(default=None, description="Assigned address")
