"""Base interfaces for external collaborators.

Two collaborators are driven by a rollout: the orchestration API that applies
tier manifests and reports readiness, and the ingress / load-balancer provider
that binds the ready stack to an external address.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from stackdeck.models.rollout import IngressBinding, ProviderState, ReadinessSignal
from stackdeck.models.stack import TierConfig


class BaseClusterClient(ABC):
    """Abstract base class for orchestration API clients."""

    @abstractmethod
    async def apply(self, tier: TierConfig) -> None:
        """Apply a tier's desired specification.

        Applying a specification that is already in place must be a no-op or a
        safe update, never a duplicate-create error.

        Args:
            tier: Tier whose manifests should be applied

        Raises:
            ProviderError: If the API rejects the specification
        """

    @abstractmethod
    async def get_status(self, tier: TierConfig) -> ReadinessSignal:
        """Report readiness information for a tier.

        Args:
            tier: Tier to inspect

        Returns:
            ReadinessSignal for the tier's workload

        Raises:
            ResourceNotFoundError: If the tier's workload does not exist
            ProviderError: If the status call fails
        """


class BaseIngressProvider(ABC):
    """Abstract base class for ingress / load-balancer providers."""

    @abstractmethod
    async def create_or_update(self, binding: IngressBinding) -> ProviderState:
        """Create or update the external ingress resource.

        Args:
            binding: Desired ingress binding

        Returns:
            ProviderState, pending until an address is assigned

        Raises:
            ProviderError: With ``transient`` set when a retry may succeed
        """

    @abstractmethod
    async def delete(self, binding: IngressBinding) -> None:
        """Delete the external ingress resource.

        Deleting a binding that does not exist is not an error.

        Raises:
            ProviderError: If the delete call fails
        """
