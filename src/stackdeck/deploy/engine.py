"""Rollout engine: ordered, health-gated application of tiers.

The engine walks a RolloutPlan strictly in order. A tier is applied only after
every tier before it is Ready, and the first failure stops the rollout: later
tiers depend (directly or not) on what came before and are left Pending.
External errors never escape ``run``; they end up in the tier's state and in
the result's ``error``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping

from ulid import ULID

from stackdeck.deploy.cancel import CancelToken
from stackdeck.deploy.clients.base import BaseClusterClient
from stackdeck.deploy.prober import HealthProber
from stackdeck.deploy.state import compute_spec_hash
from stackdeck.deploy.store import RolloutPlan
from stackdeck.lib.errors import (
    ApplyFailedError,
    ProbeError,
    ProbeTimeoutError,
    RolloutCancelledError,
)
from stackdeck.models.rollout import (
    FailureReason,
    RolloutResult,
    RolloutStatus,
    TierState,
    TierStatus,
    TierTransition,
    utc_now,
)
from stackdeck.models.stack import RolloutSettings, TierConfig

logger = logging.getLogger(__name__)


class _RolloutRun:
    """Mutable bookkeeping for one ``RolloutEngine.run`` call."""

    def __init__(self, plan: RolloutPlan) -> None:
        self.states: dict[str, TierState] = {
            tier.name: TierState(name=tier.name) for tier in plan
        }
        self.transitions: list[TierTransition] = []
        self.error: FailureReason | None = None
        self.status = RolloutStatus.SUCCEEDED

    def transition(self, name: str, to_status: TierStatus, **updates: object) -> None:
        current = self.states[name]
        self.transitions.append(
            TierTransition(tier=name, from_status=current.status, to_status=to_status)
        )
        self.states[name] = current.model_copy(update={"status": to_status, **updates})
        logger.info(f"Tier {name}: {current.status.value} -> {to_status.value}")

    def update(self, name: str, **updates: object) -> None:
        self.states[name] = self.states[name].model_copy(update=updates)

    def fail(self, name: str, reason: FailureReason, status: RolloutStatus) -> None:
        self.transition(name, TierStatus.FAILED, error=reason, finished_at=utc_now())
        if self.error is None:
            self.error = reason
        self.status = status
        logger.error(f"Tier {name} failed ({reason.kind}): {reason.message}")


class RolloutEngine:
    """Apply and probe the tiers of a plan in dependency order.

    Example:
        >>> engine = RolloutEngine(cluster, HealthProber(cluster))
        >>> result = await engine.run(store.plan(), stack="shop")
        >>> result.tier("database").status
        <TierStatus.READY: 'ready'>
    """

    def __init__(
        self,
        cluster: BaseClusterClient,
        prober: HealthProber,
        settings: RolloutSettings | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            cluster: Orchestration API client
            prober: Health prober used to gate progression
            settings: Rollout timing settings
        """
        self._cluster = cluster
        self._prober = prober
        self._settings = settings or RolloutSettings()

    async def run(
        self,
        plan: RolloutPlan,
        stack: str = "default",
        previous: Mapping[str, TierState] | None = None,
        cancel_token: CancelToken | None = None,
    ) -> RolloutResult:
        """Run one rollout attempt.

        Args:
            plan: Tiers in rollout order
            stack: Stack name recorded in the result
            previous: Terminal tier states from an earlier attempt. A tier that
                was Ready with the same spec hash is skipped, not re-applied.
            cancel_token: Cooperative cancellation, checked at every tier
                boundary and every probe iteration

        Returns:
            RolloutResult without ingress information
        """
        started_at = utc_now()
        run = _RolloutRun(plan)
        previous = previous or {}

        logger.info(f"Starting rollout of {stack}: {' -> '.join(plan.names)}")

        for tier in plan:
            if cancel_token is not None and cancel_token.cancelled:
                run.status = RolloutStatus.CANCELLED
                run.error = FailureReason(
                    kind=RolloutCancelledError.kind,
                    message=cancel_token.reason or "Rollout cancelled",
                    tier=None,
                )
                logger.warning(f"Rollout of {stack} cancelled before tier {tier.name}")
                break

            spec_hash = compute_spec_hash(tier)
            prior = previous.get(tier.name)
            if (
                prior is not None
                and prior.status == TierStatus.READY
                and prior.spec_hash == spec_hash
            ):
                run.transition(
                    tier.name,
                    TierStatus.READY,
                    skipped=True,
                    spec_hash=spec_hash,
                    started_at=prior.started_at,
                    finished_at=prior.finished_at,
                    probe_attempts=prior.probe_attempts,
                )
                logger.info(f"Tier {tier.name} already ready, skipping apply")
                continue

            if not await self._roll_tier(tier, spec_hash, run, cancel_token):
                break

        return RolloutResult(
            rollout_id=str(ULID()),
            stack=stack,
            plan=plan.names,
            status=run.status,
            tiers=[run.states[name] for name in plan.names],
            transitions=run.transitions,
            error=run.error,
            started_at=started_at,
            finished_at=utc_now(),
        )

    async def _roll_tier(
        self,
        tier: TierConfig,
        spec_hash: str,
        run: _RolloutRun,
        cancel_token: CancelToken | None,
    ) -> bool:
        """Apply and probe one tier. Returns False if the rollout must stop."""
        run.transition(
            tier.name, TierStatus.APPLYING, spec_hash=spec_hash, started_at=utc_now()
        )

        try:
            await asyncio.wait_for(
                self._cluster.apply(tier), timeout=self._settings.apply_timeout
            )
        except asyncio.TimeoutError:
            error = ApplyFailedError(
                tier.name, f"apply timed out after {self._settings.apply_timeout:g}s"
            )
            run.fail(tier.name, _failure(error, tier.name), RolloutStatus.FAILED)
            return False
        except Exception as exc:
            error = ApplyFailedError(tier.name, str(exc))
            run.fail(tier.name, _failure(error, tier.name), RolloutStatus.FAILED)
            return False

        run.transition(tier.name, TierStatus.PROBING)

        def record_attempt(attempt: int) -> None:
            run.update(tier.name, probe_attempts=attempt)

        try:
            await self._prober.probe(
                tier,
                timeout=tier.probe_timeout or self._settings.probe_timeout,
                cancel_token=cancel_token,
                on_attempt=record_attempt,
            )
        except RolloutCancelledError as exc:
            run.fail(tier.name, _failure(exc, tier.name), RolloutStatus.CANCELLED)
            return False
        except (ProbeTimeoutError, ProbeError) as exc:
            run.fail(tier.name, _failure(exc, tier.name), RolloutStatus.FAILED)
            return False

        run.transition(tier.name, TierStatus.READY, finished_at=utc_now())
        return True


def _failure(
    exc: ApplyFailedError | ProbeTimeoutError | ProbeError | RolloutCancelledError,
    tier: str,
) -> FailureReason:
    """Convert a tier-level exception into a FailureReason."""
    return FailureReason(kind=exc.kind, message=exc.message, tier=tier)
