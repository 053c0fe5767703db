"""Health prober: bounded polling of tier readiness."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping

from stackdeck.config.defaults import DEFAULT_ROLLOUT_SETTINGS
from stackdeck.deploy.cancel import CancelToken
from stackdeck.deploy.clients.base import BaseClusterClient
from stackdeck.deploy.readiness import ReadinessPredicate, build_predicate
from stackdeck.lib.errors import ProbeError, ProbeTimeoutError, RolloutCancelledError
from stackdeck.models.rollout import TierStatus
from stackdeck.models.stack import TierConfig

logger = logging.getLogger(__name__)

# Shortest budget given to a check that starts at or after the deadline
MIN_CHECK_TIMEOUT = 1.0


class HealthProber:
    """Poll a tier's readiness predicate until it succeeds or time runs out.

    The prober is the only component that waits on external convergence. Every
    wait is bounded: each predicate evaluation by ``call_timeout`` and by the
    remaining probe budget, the whole probe by the caller's timeout. A check
    that starts near the deadline still gets ``MIN_CHECK_TIMEOUT`` seconds (or
    ``call_timeout`` if smaller), so every counted attempt reaches the cluster.
    Waiting between attempts is an ``asyncio`` sleep, so other rollouts keep
    running.

    Attributes:
        interval: Seconds between readiness checks
        call_timeout: Upper bound for a single readiness check
    """

    DEFAULT_INTERVAL = DEFAULT_ROLLOUT_SETTINGS["probe_interval"]
    DEFAULT_CALL_TIMEOUT = DEFAULT_ROLLOUT_SETTINGS["call_timeout"]

    def __init__(
        self,
        cluster: BaseClusterClient,
        interval: float = DEFAULT_INTERVAL,
        call_timeout: float = DEFAULT_CALL_TIMEOUT,
        predicates: Mapping[str, ReadinessPredicate] | None = None,
    ) -> None:
        """Initialize the prober.

        Args:
            cluster: Orchestration API client used by cluster-based predicates
            interval: Seconds between readiness checks
            call_timeout: Upper bound for a single readiness check
            predicates: Per-tier predicates that replace the configured ones
        """
        if interval < 0:
            raise ValueError(f"interval must be >= 0, got {interval}")
        if call_timeout <= 0:
            raise ValueError(f"call_timeout must be > 0, got {call_timeout}")
        self._cluster = cluster
        self.interval = interval
        self.call_timeout = call_timeout
        self._predicates = dict(predicates or {})

    def predicate_for(self, tier: TierConfig) -> ReadinessPredicate:
        """Return the readiness predicate used for a tier."""
        return self._predicates.get(tier.name) or build_predicate(tier.readiness)

    async def probe(
        self,
        tier: TierConfig,
        timeout: float,
        cancel_token: CancelToken | None = None,
        on_attempt: Callable[[int], None] | None = None,
    ) -> TierStatus:
        """Wait until a tier is ready.

        Args:
            tier: Tier to probe
            timeout: Seconds the tier may take to become ready
            cancel_token: Checked after every unsuccessful attempt
            on_attempt: Called with the attempt count after each check

        Returns:
            TierStatus.READY

        Raises:
            ProbeTimeoutError: If the tier is not ready within ``timeout``
            ProbeError: If the readiness check fails non-retriably
            RolloutCancelledError: If cancellation was requested
        """
        if timeout <= 0:
            raise ValueError(f"timeout must be > 0, got {timeout}")

        predicate = self.predicate_for(tier)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        attempt = 0

        logger.debug(f"Probing tier {tier.name}: {predicate.description}")

        while True:
            attempt += 1
            budget = min(
                self.call_timeout, max(deadline - loop.time(), MIN_CHECK_TIMEOUT)
            )
            ready = await self._check_once(tier, predicate, budget)
            if on_attempt is not None:
                on_attempt(attempt)

            if ready:
                logger.debug(f"Tier {tier.name} ready after {attempt} attempt(s)")
                return TierStatus.READY

            if cancel_token is not None:
                cancel_token.raise_if_cancelled()

            remaining = deadline - loop.time()
            if remaining <= 0:
                raise ProbeTimeoutError(
                    tier.name,
                    f"not ready after {timeout:g}s ({attempt} attempt(s)); "
                    f"waiting for {predicate.description}",
                )

            delay = min(self.interval, remaining)
            if cancel_token is not None:
                await cancel_token.sleep(delay)
                cancel_token.raise_if_cancelled()
            else:
                await asyncio.sleep(delay)

    async def _check_once(
        self, tier: TierConfig, predicate: ReadinessPredicate, budget: float
    ) -> bool:
        """Run one bounded predicate evaluation; a timed-out check is not ready."""
        try:
            return await asyncio.wait_for(
                predicate.check(tier, self._cluster), timeout=budget
            )
        except asyncio.TimeoutError:
            logger.debug(f"Readiness check for tier {tier.name} timed out")
            return False
        except (ProbeError, RolloutCancelledError):
            raise
        except Exception as exc:
            raise ProbeError(tier.name, f"readiness check failed: {exc}") from exc
