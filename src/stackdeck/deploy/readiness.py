"""Readiness predicates for tiers.

A predicate answers one question per call: is this tier ready right now? It
returns False while the tier is still converging and raises ProbeError when
probing can never succeed (for example, the workload does not exist). The
health prober owns retries, intervals and timeouts.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from abc import ABC, abstractmethod

import httpx

from stackdeck.deploy.clients.base import BaseClusterClient
from stackdeck.lib.errors import ProbeError, ProviderError, ResourceNotFoundError
from stackdeck.models.rollout import ReadinessSignal
from stackdeck.models.stack import ReadinessConfig, ReadinessType, TierConfig

logger = logging.getLogger(__name__)


class ReadinessPredicate(ABC):
    """Abstract readiness check evaluated by the health prober."""

    @abstractmethod
    async def check(self, tier: TierConfig, cluster: BaseClusterClient) -> bool:
        """Evaluate readiness once.

        Args:
            tier: Tier being probed
            cluster: Orchestration API client

        Returns:
            True if the tier is ready

        Raises:
            ProbeError: If readiness can never be reached
        """

    @property
    @abstractmethod
    def description(self) -> str:
        """Short human description used in logs."""


class _ClusterSignalPredicate(ReadinessPredicate):
    """Shared error mapping for predicates based on ``get_status``."""

    async def check(self, tier: TierConfig, cluster: BaseClusterClient) -> bool:
        try:
            signal = await cluster.get_status(tier)
        except ResourceNotFoundError as exc:
            raise ProbeError(tier.name, str(exc)) from exc
        except ProviderError as exc:
            if exc.transient:
                logger.debug(f"Transient status error for tier {tier.name}: {exc}")
                return False
            raise ProbeError(tier.name, exc.message) from exc
        return self._evaluate(tier, signal)

    @abstractmethod
    def _evaluate(self, tier: TierConfig, signal: ReadinessSignal) -> bool:
        """Decide readiness from a ReadinessSignal."""


class ReplicasReady(_ClusterSignalPredicate):
    """Ready when enough replicas of the tier's workload report ready.

    Without an explicit count the workload's desired replica count is used
    (at least one). Workloads scaled to zero should use ``exists`` instead.
    """

    def __init__(self, replicas: int | None = None) -> None:
        self.replicas = replicas

    @property
    def description(self) -> str:
        if self.replicas is None:
            return "all desired replicas ready"
        return f"{self.replicas} replica(s) ready"

    def _evaluate(self, tier: TierConfig, signal: ReadinessSignal) -> bool:
        required = self.replicas or max(signal.desired_replicas, 1)
        logger.debug(
            f"Tier {tier.name}: {signal.ready_replicas}/{required} replicas ready"
        )
        return bool(signal.ready_replicas >= required)


class ResourceExists(_ClusterSignalPredicate):
    """Ready as soon as the tier's primary resource exists."""

    @property
    def description(self) -> str:
        return "resource exists"

    def _evaluate(self, tier: TierConfig, signal: ReadinessSignal) -> bool:
        return bool(signal.exists)


class TcpPortOpen(ReadinessPredicate):
    """Ready when a TCP connection to host:port succeeds."""

    def __init__(self, host: str, port: int) -> None:
        self.host = host
        self.port = port

    @property
    def description(self) -> str:
        return f"tcp {self.host}:{self.port} accepting connections"

    async def check(self, tier: TierConfig, cluster: BaseClusterClient) -> bool:
        try:
            _reader, writer = await asyncio.open_connection(self.host, self.port)
        except OSError as exc:
            logger.debug(f"Tier {tier.name}: {self.host}:{self.port} refused ({exc})")
            return False
        writer.close()
        with contextlib.suppress(OSError):
            await writer.wait_closed()
        return True


class HttpStatus(ReadinessPredicate):
    """Ready when an HTTP GET returns the expected status code."""

    def __init__(
        self, url: str, expected_status: int = 200, timeout: float = 10.0
    ) -> None:
        self.url = url
        self.expected_status = expected_status
        self.timeout = timeout

    @property
    def description(self) -> str:
        return f"GET {self.url} returns {self.expected_status}"

    async def check(self, tier: TierConfig, cluster: BaseClusterClient) -> bool:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(self.url)
        except httpx.HTTPError as exc:
            logger.debug(f"Tier {tier.name}: GET {self.url} failed ({exc})")
            return False
        logger.debug(f"Tier {tier.name}: GET {self.url} -> {response.status_code}")
        return response.status_code == self.expected_status


def build_predicate(config: ReadinessConfig) -> ReadinessPredicate:
    """Create the readiness predicate described by a tier's configuration."""
    if config.type == ReadinessType.REPLICAS:
        return ReplicasReady(config.replicas)
    if config.type == ReadinessType.EXISTS:
        return ResourceExists()
    if config.type == ReadinessType.TCP:
        if config.host is None or config.port is None:
            raise ValueError("tcp readiness requires host and port")
        return TcpPortOpen(config.host, config.port)
    if config.type == ReadinessType.HTTP:
        if config.url is None:
            raise ValueError("http readiness requires url")
        return HttpStatus(config.url, config.expected_status)
    raise ValueError(f"Unsupported readiness type: {config.type}")
