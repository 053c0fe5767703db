"""Kubernetes implementations of the cluster client and ingress provider.

Manifests are applied with server-side apply through the dynamic client, which
makes re-applying an unchanged tier a no-op. The ingress provider renders a
``networking.k8s.io/v1`` Ingress from the binding and reads the address the
load-balancer controller publishes in its status.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections import OrderedDict
from typing import TYPE_CHECKING, Any

from stackdeck.config.defaults import WORKLOAD_KINDS
from stackdeck.deploy.clients.base import BaseClusterClient, BaseIngressProvider
from stackdeck.lib.errors import (
    CloudSDKNotInstalledError,
    DeploymentError,
    ProviderError,
    ResourceNotFoundError,
)
from stackdeck.models.rollout import (
    IngressBinding,
    ProviderPhase,
    ProviderState,
    ReadinessSignal,
)
from stackdeck.models.stack import ClusterTargetConfig, TierConfig

if TYPE_CHECKING:
    from kubernetes.dynamic import DynamicClient

logger = logging.getLogger(__name__)

# Status codes worth retrying. 403 covers permissions that were granted but
# have not propagated to the controller yet.
TRANSIENT_STATUS_CODES = frozenset({403, 409, 429, 500, 502, 503, 504})

INGRESS_API_VERSION = "networking.k8s.io/v1"


def is_transient_status(status_code: int | None) -> bool:
    """Return True if an API status code is worth retrying."""
    return status_code in TRANSIENT_STATUS_CODES


def build_ingress_manifest(binding: IngressBinding, namespace: str) -> dict[str, Any]:
    """Render an Ingress manifest for a binding.

    Rules sharing a host are grouped into one Ingress rule with several paths.

    Args:
        binding: Desired ingress binding
        namespace: Namespace the Ingress is created in

    Returns:
        Ingress manifest as a dictionary
    """
    hosts: OrderedDict[str | None, list[dict[str, Any]]] = OrderedDict()
    for rule in binding.rules:
        hosts.setdefault(rule.host, []).append(
            {
                "path": rule.path,
                "pathType": "Prefix",
                "backend": {
                    "service": {
                        "name": rule.service_name or rule.tier,
                        "port": {"number": rule.service_port},
                    }
                },
            }
        )

    rules: list[dict[str, Any]] = []
    for host, paths in hosts.items():
        entry: dict[str, Any] = {"http": {"paths": paths}}
        if host:
            entry["host"] = host
        rules.append(entry)

    metadata: dict[str, Any] = {"name": binding.name, "namespace": namespace}
    if binding.annotations:
        metadata["annotations"] = dict(binding.annotations)

    spec: dict[str, Any] = {"rules": rules}
    if binding.class_name:
        spec["ingressClassName"] = binding.class_name

    return {
        "apiVersion": INGRESS_API_VERSION,
        "kind": "Ingress",
        "metadata": metadata,
        "spec": spec,
    }


def _nested(data: dict[str, Any] | None, *keys: str) -> Any:
    """Read a nested key path from a dictionary, returning None when absent."""
    current: Any = data
    for key in keys:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


class _KubernetesBase:
    """Shared SDK loading and dynamic client access."""

    def __init__(self, target: ClusterTargetConfig, request_timeout: float) -> None:
        """Load the Kubernetes SDK and build an API client.

        Args:
            target: Cluster target configuration
            request_timeout: Per-request timeout passed to the SDK

        Raises:
            CloudSDKNotInstalledError: If the kubernetes package is missing
            DeploymentError: If the kubeconfig cannot be loaded
        """
        try:
            from kubernetes import client as k8s_client
            from kubernetes import config as k8s_config
            from kubernetes.dynamic import DynamicClient
        except ImportError as exc:
            raise CloudSDKNotInstalledError(
                provider="kubernetes", sdk_name="kubernetes"
            ) from exc

        self._target = target
        self._request_timeout = request_timeout
        self._DynamicClient: type[DynamicClient] = DynamicClient
        self._dynamic: DynamicClient | None = None

        try:
            if target.kubeconfig is None and os.environ.get("KUBERNETES_SERVICE_HOST"):
                k8s_config.load_incluster_config()
                self._api_client = k8s_client.ApiClient()
            else:
                self._api_client = k8s_config.new_client_from_config(
                    config_file=target.kubeconfig, context=target.context
                )
        except Exception as exc:
            raise DeploymentError(
                operation="connect",
                message=f"Failed to load Kubernetes configuration: {exc}",
            ) from exc

    @property
    def dynamic(self) -> DynamicClient:
        """Dynamic client, created on first use (discovery hits the API)."""
        if self._dynamic is None:
            self._dynamic = self._DynamicClient(self._api_client)
        return self._dynamic

    def _resource_for(self, manifest: dict[str, Any]) -> tuple[Any, str | None]:
        """Resolve the API resource and namespace for a manifest."""
        resource = self.dynamic.resources.get(
            api_version=manifest["apiVersion"], kind=manifest["kind"]
        )
        namespace = None
        if resource.namespaced:
            namespace = (
                _nested(manifest, "metadata", "namespace") or self._target.namespace
            )
        return resource, namespace

    def _server_side_apply(self, manifest: dict[str, Any]) -> dict[str, Any]:
        resource, namespace = self._resource_for(manifest)
        name = manifest["metadata"]["name"]
        logger.debug(f"Applying {manifest['kind']}/{name} (namespace={namespace})")
        result = resource.server_side_apply(
            body=manifest,
            name=name,
            namespace=namespace,
            field_manager=self._target.field_manager,
            force_conflicts=True,
            _request_timeout=self._request_timeout,
        )
        return result.to_dict()

    def _read(self, manifest: dict[str, Any]) -> dict[str, Any]:
        resource, namespace = self._resource_for(manifest)
        name = manifest["metadata"]["name"]
        try:
            obj = resource.get(
                name=name,
                namespace=namespace,
                _request_timeout=self._request_timeout,
            )
        except Exception as exc:
            if getattr(exc, "status", None) == 404:
                raise ResourceNotFoundError(
                    f"{manifest['kind']}/{name} in namespace {namespace}"
                ) from exc
            raise
        return obj.to_dict()

    @staticmethod
    def _provider_error(action: str, exc: Exception) -> ProviderError:
        status_code = getattr(exc, "status", None)
        reason = getattr(exc, "reason", None) or str(exc)
        return ProviderError(
            message=f"Kubernetes {action} failed: {reason}",
            transient=is_transient_status(status_code),
            status_code=status_code,
        )


class KubernetesClusterClient(_KubernetesBase, BaseClusterClient):
    """Apply tier manifests and report workload readiness on Kubernetes."""

    def __init__(
        self, target: ClusterTargetConfig, request_timeout: float = 30.0
    ) -> None:
        """Initialize the cluster client (see ``_KubernetesBase``)."""
        super().__init__(target, request_timeout)

    async def apply(self, tier: TierConfig) -> None:
        """Server-side apply every manifest of the tier, in order."""
        await asyncio.to_thread(self._apply_sync, tier)

    def _apply_sync(self, tier: TierConfig) -> None:
        for manifest in tier.manifests:
            try:
                self._server_side_apply(manifest)
            except Exception as exc:
                raise self._provider_error(
                    f"apply of {manifest['kind']}/{manifest['metadata']['name']}",
                    exc,
                ) from exc

    async def get_status(self, tier: TierConfig) -> ReadinessSignal:
        """Read the tier's workload and report replica readiness."""
        return await asyncio.to_thread(self._get_status_sync, tier)

    def _get_status_sync(self, tier: TierConfig) -> ReadinessSignal:
        if not tier.manifests:
            raise ResourceNotFoundError(f"tier {tier.name} has no manifests")

        workload = next(
            (m for m in tier.manifests if m.get("kind") in WORKLOAD_KINDS),
            tier.manifests[0],
        )
        try:
            obj = self._read(workload)
        except ResourceNotFoundError:
            raise
        except Exception as exc:
            raise self._provider_error("status", exc) from exc

        return workload_signal(obj)


def workload_signal(obj: dict[str, Any]) -> ReadinessSignal:
    """Build a ReadinessSignal from a workload object read from the API."""
    kind = obj.get("kind")
    status = obj.get("status") or {}

    if kind == "DaemonSet":
        desired = int(status.get("desiredNumberScheduled") or 0)
        ready = int(status.get("numberReady") or 0)
    elif kind in WORKLOAD_KINDS:
        replicas = _nested(obj, "spec", "replicas")
        desired = 1 if replicas is None else int(replicas)
        ready = int(status.get("readyReplicas") or 0)
    else:
        return ReadinessSignal(exists=True, message=f"{kind} exists")

    return ReadinessSignal(
        exists=True,
        ready_replicas=ready,
        desired_replicas=desired,
        message=f"{ready}/{desired} replicas ready",
    )


class KubernetesIngressProvider(_KubernetesBase, BaseIngressProvider):
    """Provision an Ingress and read the load-balancer address it receives."""

    def __init__(
        self, target: ClusterTargetConfig, request_timeout: float = 30.0
    ) -> None:
        """Initialize the ingress provider (see ``_KubernetesBase``)."""
        super().__init__(target, request_timeout)

    async def create_or_update(self, binding: IngressBinding) -> ProviderState:
        """Apply the Ingress and report whether an address has been assigned."""
        return await asyncio.to_thread(self._create_or_update_sync, binding)

    def _create_or_update_sync(self, binding: IngressBinding) -> ProviderState:
        manifest = build_ingress_manifest(binding, self._target.namespace)
        try:
            obj = self._server_side_apply(manifest)
        except Exception as exc:
            raise self._provider_error(f"ingress apply of {binding.name}", exc) from exc

        address = ingress_address(obj)
        if address:
            return ProviderState(phase=ProviderPhase.BOUND, address=address)
        return ProviderState(phase=ProviderPhase.PENDING)

    async def delete(self, binding: IngressBinding) -> None:
        """Delete the Ingress; a missing Ingress is ignored."""
        await asyncio.to_thread(self._delete_sync, binding)

    def _delete_sync(self, binding: IngressBinding) -> None:
        manifest = build_ingress_manifest(binding, self._target.namespace)
        try:
            resource, namespace = self._resource_for(manifest)
            resource.delete(
                name=binding.name,
                namespace=namespace,
                _request_timeout=self._request_timeout,
            )
        except Exception as exc:
            if getattr(exc, "status", None) == 404:
                logger.info(f"Ingress {binding.name} already absent")
                return
            raise self._provider_error(f"ingress delete of {binding.name}", exc) from exc


def ingress_address(obj: dict[str, Any]) -> str | None:
    """Return the first hostname or IP published in an Ingress status."""
    entries = _nested(obj, "status", "loadBalancer", "ingress") or []
    for entry in entries:
        address = entry.get("hostname") or entry.get("ip")
        if address:
            return str(address)
    return None
