"""External collaborators for StackDeck rollouts."""

from __future__ import annotations

from stackdeck.deploy.clients.base import BaseClusterClient, BaseIngressProvider
from stackdeck.lib.errors import DeploymentError
from stackdeck.models.stack import ClusterProvider, ClusterTargetConfig


def create_clients(
    target: ClusterTargetConfig, request_timeout: float = 30.0
) -> tuple[BaseClusterClient, BaseIngressProvider]:
    """Create the cluster client and ingress provider for a target."""
    if target.provider == ClusterProvider.KUBERNETES:
        from stackdeck.deploy.clients.kubernetes import (
            KubernetesClusterClient,
            KubernetesIngressProvider,
        )

        return (
            KubernetesClusterClient(target, request_timeout=request_timeout),
            KubernetesIngressProvider(target, request_timeout=request_timeout),
        )

    raise DeploymentError(
        operation="deploy",
        message=f"Unsupported cluster provider: {target.provider}",
    )


__all__ = ["BaseClusterClient", "BaseIngressProvider", "create_clients"]
