"""Orchestrator façade: the caller-facing rollout API.

The orchestrator ties the descriptor store, the rollout engine and the
ingress reconciler together. One instance serializes its own rollouts and
keeps the results of this process; separate instances share no state.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from stackdeck.deploy.cancel import CancelToken
from stackdeck.deploy.clients import create_clients
from stackdeck.deploy.clients.base import BaseClusterClient, BaseIngressProvider
from stackdeck.deploy.engine import RolloutEngine
from stackdeck.deploy.ingress import IngressReconciler, binding_from_config
from stackdeck.deploy.prober import HealthProber
from stackdeck.deploy.readiness import ReadinessPredicate
from stackdeck.deploy.store import DescriptorStore, RolloutPlan
from stackdeck.lib.errors import (
    DeploymentError,
    IngressProvisionFailedError,
    RolloutCancelledError,
    RolloutInProgressError,
)
from stackdeck.models.rollout import (
    FailureReason,
    IngressBinding,
    IngressSnapshot,
    RolloutResult,
    RolloutStatus,
    TierState,
    utc_now,
)
from stackdeck.models.stack import (
    IngressConfig,
    RolloutSettings,
    StackConfig,
    TierConfig,
)

logger = logging.getLogger(__name__)


def build_plan(tiers: Iterable[TierConfig]) -> RolloutPlan:
    """Register tiers in a fresh store and return their rollout plan.

    Raises:
        PlanError: On duplicate names, cycles or unknown dependencies
    """
    store = DescriptorStore()
    store.register_all(tiers)
    return store.plan()


class Orchestrator:
    """Deploy a stack tier by tier and bind it to an ingress.

    Example:
        >>> orchestrator = Orchestrator(cluster, ingress_provider)
        >>> result = await orchestrator.deploy(tiers, ingress=ingress_config)
        >>> result.ingress.address
        'shop-1234.elb.amazonaws.com'
    """

    def __init__(
        self,
        cluster: BaseClusterClient,
        ingress_provider: BaseIngressProvider | None = None,
        settings: RolloutSettings | None = None,
        predicates: dict[str, ReadinessPredicate] | None = None,
        previous: RolloutResult | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            cluster: Orchestration API client
            ingress_provider: Ingress provider, required to bind an ingress
            settings: Rollout timing and retry settings
            predicates: Per-tier readiness predicates overriding configuration
            previous: Persisted result of an earlier process, used to resume
        """
        self.settings = settings or RolloutSettings()
        prober = HealthProber(
            cluster,
            interval=self.settings.probe_interval,
            call_timeout=self.settings.call_timeout,
            predicates=predicates,
        )
        self._engine = RolloutEngine(cluster, prober, self.settings)
        self._reconciler: IngressReconciler | None = None
        if ingress_provider is not None:
            self._reconciler = IngressReconciler(
                ingress_provider,
                retry=self.settings.retry,
                call_timeout=self.settings.call_timeout,
            )

        self._previous = (
            previous.model_copy(deep=True) if previous is not None else None
        )
        self._history: list[RolloutResult] = []
        self._binding: IngressBinding | None = None
        if previous is not None and previous.ingress is not None:
            self._binding = previous.ingress.to_binding()

        self._active: str | None = None
        self._cancel_token: CancelToken | None = None

    @classmethod
    def for_stack(
        cls, stack: StackConfig, previous: RolloutResult | None = None
    ) -> "Orchestrator":
        """Create an orchestrator wired to the stack's cluster target."""
        cluster, ingress_provider = create_clients(
            stack.target, request_timeout=stack.settings.call_timeout
        )
        return cls(
            cluster,
            ingress_provider,
            settings=stack.settings,
            previous=previous,
        )

    @property
    def history(self) -> tuple[RolloutResult, ...]:
        """All rollout results produced by this orchestrator, oldest first.

        Each entry is a copy; changing it does not affect the record.
        """
        return tuple(result.model_copy(deep=True) for result in self._history)

    @property
    def in_progress(self) -> bool:
        """Whether a rollout or ingress reconciliation is running."""
        return self._active is not None

    def status(self) -> RolloutResult | None:
        """Return a copy of the most recent rollout result, if any."""
        latest = self._latest()
        return latest.model_copy(deep=True) if latest is not None else None

    def _latest(self) -> RolloutResult | None:
        if self._history:
            return self._history[-1]
        return self._previous

    def cancel(self, reason: str = "Cancellation requested") -> bool:
        """Request cooperative cancellation of the running rollout.

        Ready tiers are left untouched and nothing is rolled back.

        Returns:
            True if a running rollout was signalled
        """
        if self._cancel_token is None:
            logger.debug("Cancel requested with no rollout in progress")
            return False
        logger.warning(f"Cancelling rollout of {self._active}: {reason}")
        self._cancel_token.cancel(reason)
        return True

    async def deploy(
        self,
        tiers: Iterable[TierConfig],
        ingress: IngressConfig | IngressBinding | None = None,
        stack: str = "default",
    ) -> RolloutResult:
        """Roll out tiers in dependency order and reconcile the ingress.

        Args:
            tiers: Tier descriptors to deploy
            ingress: Ingress to bind once every tier is ready
            stack: Stack name; resume state is looked up by this name

        Returns:
            RolloutResult for this attempt

        Raises:
            RolloutInProgressError: If this orchestrator is already busy
            PlanError: If the tiers do not form a valid plan
            DeploymentError: If an ingress is requested without a provider
        """
        if self._active is not None:
            raise RolloutInProgressError(self._active)

        plan = build_plan(tiers)
        binding = self._binding_for(ingress) if ingress is not None else None
        previous = self._previous_states(stack)

        token = self._begin(stack)
        try:
            result = await self._engine.run(
                plan, stack=stack, previous=previous, cancel_token=token
            )
            if binding is not None:
                if result.status == RolloutStatus.SUCCEEDED and result.all_ready:
                    result = await self._bind(result, binding, token)
                else:
                    logger.info(
                        f"Skipping ingress {binding.name}: rollout of {stack} "
                        f"ended {result.status.value}"
                    )
                    result = result.model_copy(
                        update={"ingress": binding.snapshot()}
                    )
        finally:
            self._end()

        return self._record(result)

    async def deploy_stack(self, stack: StackConfig) -> RolloutResult:
        """Deploy a loaded stack configuration."""
        return await self.deploy(stack.tiers, ingress=stack.ingress, stack=stack.name)

    async def reconcile_ingress(self) -> RolloutResult:
        """Re-run ingress reconciliation for the latest fully ready rollout.

        Returns:
            Copy of the latest result with the new ingress outcome

        Raises:
            RolloutInProgressError: If this orchestrator is already busy
            DeploymentError: If there is no ready rollout or no binding
        """
        if self._active is not None:
            raise RolloutInProgressError(self._active)

        latest = self._latest()
        if latest is None or not latest.all_ready:
            raise DeploymentError(
                operation="ingress",
                message="Ingress can only be reconciled after a fully ready rollout",
            )
        if latest.status == RolloutStatus.CANCELLED:
            raise DeploymentError(
                operation="ingress",
                message="Latest rollout was cancelled; run deploy again",
            )
        if self._binding is None:
            raise DeploymentError(
                operation="ingress",
                message=f"Stack '{latest.stack}' has no ingress binding",
            )
        self._require_reconciler()

        token = self._begin(latest.stack)
        try:
            result = await self._bind(latest, self._binding, token)
        finally:
            self._end()

        return self._record(result)

    async def teardown_ingress(self) -> IngressSnapshot:
        """Delete the external ingress binding.

        Returns:
            Snapshot of the binding after teardown (no address)

        Raises:
            DeploymentError: If there is no binding or deletion fails
        """
        if self._active is not None:
            raise RolloutInProgressError(self._active)
        if self._binding is None:
            raise DeploymentError(
                operation="destroy", message="No ingress binding to tear down"
            )
        reconciler = self._require_reconciler()

        self._active = self._binding.name
        try:
            await reconciler.teardown(self._binding)
        finally:
            self._active = None

        snapshot = self._binding.snapshot()
        latest = self._latest()
        if latest is not None and latest.ingress is not None:
            self._record(latest.model_copy(update={"ingress": snapshot}))
        return snapshot

    async def _bind(
        self, result: RolloutResult, binding: IngressBinding, token: CancelToken
    ) -> RolloutResult:
        """Reconcile the binding and fold the outcome into a result copy."""
        reconciler = self._require_reconciler()
        status = RolloutStatus.SUCCEEDED
        error: FailureReason | None = None
        try:
            await reconciler.reconcile(binding, cancel_token=token)
        except IngressProvisionFailedError as exc:
            status = RolloutStatus.INGRESS_FAILED
            error = FailureReason(kind=exc.kind, message=str(exc))
            logger.error(f"Ingress {binding.name} failed: {exc.message}")
        except RolloutCancelledError as exc:
            status = RolloutStatus.CANCELLED
            error = FailureReason(kind=exc.kind, message=exc.message)
            logger.warning(f"Ingress {binding.name} reconciliation cancelled")

        return result.model_copy(
            update={
                "status": status,
                "error": error,
                "ingress": binding.snapshot(),
                "finished_at": utc_now(),
            }
        )

    def _binding_for(self, ingress: IngressConfig | IngressBinding) -> IngressBinding:
        """Resolve the binding to reconcile, keeping a known address."""
        self._require_reconciler()
        if isinstance(ingress, IngressBinding):
            binding = ingress
        else:
            binding = binding_from_config(ingress)
            if self._binding is not None and self._binding.name == binding.name:
                binding.address = self._binding.address
        self._binding = binding
        return binding

    def _previous_states(self, stack: str) -> dict[str, TierState]:
        """Tier states of the most recent result of the same stack."""
        for result in reversed(self._history):
            if result.stack == stack:
                return {state.name: state for state in result.tiers}
        if self._previous is not None and self._previous.stack == stack:
            return {state.name: state for state in self._previous.tiers}
        return {}

    def _require_reconciler(self) -> IngressReconciler:
        if self._reconciler is None:
            raise DeploymentError(
                operation="ingress", message="No ingress provider configured"
            )
        return self._reconciler

    def _begin(self, name: str) -> CancelToken:
        self._active = name
        self._cancel_token = CancelToken()
        return self._cancel_token

    def _end(self) -> None:
        self._active = None
        self._cancel_token = None

    def _record(self, result: RolloutResult) -> RolloutResult:
        self._history.append(result)
        logger.info(
            f"Rollout {result.rollout_id} of {result.stack} finished: "
            f"{result.status.value}"
        )
        return result
