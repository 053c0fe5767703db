"""Pydantic models for stack configuration.

This module defines the configuration schema for a StackDeck stack: the
cluster target, the tiers that make up the application (each with its opaque
manifests, dependency edges and readiness predicate), the ingress binding, and
rollout timing settings.
"""

import re
from enum import Enum
from typing import Annotated, Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from stackdeck.config.defaults import (
    DEFAULT_FIELD_MANAGER,
    DEFAULT_NAMESPACE,
    DEFAULT_RETRY_CONFIG,
    DEFAULT_ROLLOUT_SETTINGS,
)


class ClusterProvider(str, Enum):
    """Supported orchestration API providers."""

    KUBERNETES = "kubernetes"


class ReadinessType(str, Enum):
    """Readiness predicate types for a tier."""

    REPLICAS = "replicas"
    TCP = "tcp"
    HTTP = "http"
    EXISTS = "exists"


# Regex patterns for validation
TIER_NAME_PATTERN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")

Port = Annotated[int, Field(ge=1, le=65535)]


class ClusterTargetConfig(BaseModel):
    """Orchestration API target configuration.

    Attributes:
        provider: Orchestration API provider
        kubeconfig: Path to a kubeconfig file (defaults to the client's lookup)
        context: Kubeconfig context to use
        namespace: Namespace for namespaced resources without one
        field_manager: Field manager name used for server-side apply
    """

    model_config = ConfigDict(extra="forbid")

    provider: ClusterProvider = Field(
        default=ClusterProvider.KUBERNETES, description="Orchestration API provider"
    )
    kubeconfig: str | None = Field(default=None, description="Path to kubeconfig")
    context: str | None = Field(default=None, description="Kubeconfig context")
    namespace: str = Field(
        default=DEFAULT_NAMESPACE, description="Default namespace for resources"
    )
    field_manager: str = Field(
        default=DEFAULT_FIELD_MANAGER,
        description="Field manager name for server-side apply",
    )


class ReadinessConfig(BaseModel):
    """Readiness predicate for a tier.

    Attributes:
        type: Predicate type (replicas, tcp, http, exists)
        replicas: Ready replicas required (replicas type; defaults to desired)
        host: Host to connect to (tcp type)
        port: Port to connect to (tcp type)
        url: URL to request (http type)
        expected_status: HTTP status treated as ready (http type)
    """

    model_config = ConfigDict(extra="forbid")

    type: ReadinessType = Field(
        default=ReadinessType.REPLICAS, description="Readiness predicate type"
    )
    replicas: int | None = Field(
        default=None, ge=1, description="Ready replicas required"
    )
    host: str | None = Field(default=None, description="Host for tcp checks")
    port: Port | None = Field(default=None, description="Port for tcp checks")
    url: str | None = Field(default=None, description="URL for http checks")
    expected_status: int = Field(
        default=200, ge=100, le=599, description="HTTP status treated as ready"
    )

    @model_validator(mode="after")
    def validate_type_fields(self) -> "ReadinessConfig":
        """Validate that the fields required by the predicate type are set."""
        if self.type == ReadinessType.TCP and (not self.host or self.port is None):
            raise ValueError("host and port are required when type is 'tcp'")
        if self.type == ReadinessType.HTTP:
            if not self.url:
                raise ValueError("url is required when type is 'http'")
            if not self.url.startswith(("http://", "https://")):
                raise ValueError(f"Invalid url: {self.url}. Must start with http(s)://")
        return self


class TierConfig(BaseModel):
    """One deployable unit of the stack.

    Attributes:
        name: Unique tier name
        manifests: Desired-state objects handed to the orchestration API as-is
        depends_on: Names of tiers that must be ready first
        readiness: Readiness predicate
        probe_timeout: Per-tier override of the rollout probe timeout
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., description="Unique tier name")
    manifests: list[dict[str, Any]] = Field(
        default_factory=list, description="Opaque desired-state manifests"
    )
    depends_on: list[str] = Field(
        default_factory=list, description="Tiers that must be ready first"
    )
    readiness: ReadinessConfig = Field(
        default_factory=ReadinessConfig, description="Readiness predicate"
    )
    probe_timeout: float | None = Field(
        default=None, gt=0, description="Probe timeout override in seconds"
    )

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate tier name pattern."""
        if not TIER_NAME_PATTERN.match(v):
            raise ValueError(
                f"Invalid tier name: {v}. "
                "Must contain only lowercase letters, numbers and '-'"
            )
        return v

    @field_validator("manifests")
    @classmethod
    def validate_manifests(cls, v: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Validate that every manifest carries apiVersion, kind and a name."""
        for index, manifest in enumerate(v):
            missing = [key for key in ("apiVersion", "kind") if not manifest.get(key)]
            if not (manifest.get("metadata") or {}).get("name"):
                missing.append("metadata.name")
            if missing:
                raise ValueError(
                    f"Manifest {index} is missing required keys: {', '.join(missing)}"
                )
        return v

    @field_validator("depends_on")
    @classmethod
    def validate_depends_on(cls, v: list[str]) -> list[str]:
        """Reject repeated dependency names."""
        seen: set[str] = set()
        for name in v:
            if name in seen:
                raise ValueError(f"Dependency '{name}' is listed more than once")
            seen.add(name)
        return v


class IngressRule(BaseModel):
    """Routing rule from the ingress to a tier's service.

    Attributes:
        host: Virtual host to match (any host when unset)
        path: Path prefix to match
        tier: Tier that serves the route
        service_name: Backing service name (defaults to the tier name)
        service_port: Backing service port
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    host: str | None = Field(default=None, description="Virtual host to match")
    path: str = Field(default="/", description="Path prefix to match")
    tier: str = Field(..., description="Tier that serves the route")
    service_name: str | None = Field(
        default=None, description="Backing service name (defaults to tier)"
    )
    service_port: Port = Field(default=80, description="Backing service port")

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        """Validate that the path is absolute."""
        if not v.startswith("/"):
            raise ValueError(f"Invalid path: {v}. Must start with '/'")
        return v


class IngressConfig(BaseModel):
    """Ingress / load-balancer binding configuration.

    Attributes:
        name: Ingress resource name
        class_name: Ingress class handled by the controller (e.g., alb, nginx)
        annotations: Controller annotations (scheme, target type, ...)
        rules: Routing rules
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., description="Ingress resource name")
    class_name: str | None = Field(default=None, description="Ingress class name")
    annotations: dict[str, str] = Field(
        default_factory=dict, description="Controller annotations"
    )
    rules: list[IngressRule] = Field(
        ..., min_length=1, description="Routing rules"
    )


class RetryConfig(BaseModel):
    """Exponential backoff configuration for provider retries.

    Attributes:
        max_retries: Retries allowed after the first attempt
        base_delay: Delay before the first retry, in seconds
        exponential_base: Growth factor between retries
        max_delay: Cap for a single delay, in seconds
    """

    model_config = ConfigDict(extra="forbid")

    max_retries: int = Field(
        default=int(DEFAULT_RETRY_CONFIG["max_retries"]), ge=0, le=50
    )
    base_delay: float = Field(default=DEFAULT_RETRY_CONFIG["base_delay"], ge=0)
    exponential_base: float = Field(
        default=DEFAULT_RETRY_CONFIG["exponential_base"], ge=1
    )
    max_delay: float = Field(default=DEFAULT_RETRY_CONFIG["max_delay"], ge=0)


class RolloutSettings(BaseModel):
    """Timing settings for a rollout.

    Attributes:
        probe_interval: Seconds between readiness checks
        probe_timeout: Seconds a tier may take to become ready
        apply_timeout: Seconds allowed for a single apply call
        call_timeout: Seconds allowed for any other single external call
        retry: Ingress provider retry policy
    """

    model_config = ConfigDict(extra="forbid")

    probe_interval: float = Field(
        default=DEFAULT_ROLLOUT_SETTINGS["probe_interval"], ge=0
    )
    probe_timeout: float = Field(
        default=DEFAULT_ROLLOUT_SETTINGS["probe_timeout"], gt=0
    )
    apply_timeout: float = Field(
        default=DEFAULT_ROLLOUT_SETTINGS["apply_timeout"], gt=0
    )
    call_timeout: float = Field(default=DEFAULT_ROLLOUT_SETTINGS["call_timeout"], gt=0)
    retry: RetryConfig = Field(default_factory=RetryConfig)


class StackConfig(BaseModel):
    """Top-level stack configuration loaded from stack.yaml.

    Attributes:
        name: Stack name (one rollout history per stack)
        description: Optional human description
        target: Orchestration API target
        tiers: Tiers in declaration order
        ingress: Optional ingress binding
        settings: Rollout timing settings
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., description="Stack name")
    description: str | None = Field(default=None, description="Stack description")
    target: ClusterTargetConfig = Field(default_factory=ClusterTargetConfig)
    tiers: list[TierConfig] = Field(..., min_length=1, description="Stack tiers")
    ingress: IngressConfig | None = Field(default=None, description="Ingress binding")
    settings: RolloutSettings = Field(default_factory=RolloutSettings)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate stack name pattern."""
        if not TIER_NAME_PATTERN.match(v):
            raise ValueError(
                f"Invalid stack name: {v}. "
                "Must contain only lowercase letters, numbers and '-'"
            )
        return v

    @model_validator(mode="after")
    def validate_tiers(self) -> "StackConfig":
        """Validate that tier names are unique and dependencies are declared."""
        tier_names: set[str] = set()
        for tier in self.tiers:
            if tier.name in tier_names:
                raise ValueError(f"Tier '{tier.name}' is declared more than once")
            tier_names.add(tier.name)
        for tier in self.tiers:
            for dependency in tier.depends_on:
                if dependency not in tier_names:
                    raise ValueError(
                        f"Tier '{tier.name}' depends on unknown tier '{dependency}'"
                    )
        return self

    @model_validator(mode="after")
    def validate_ingress_rules(self) -> "StackConfig":
        """Validate that ingress rules route to declared tiers."""
        if self.ingress is None:
            return self
        tier_names = {tier.name for tier in self.tiers}
        for rule in self.ingress.rules:
            if rule.tier not in tier_names:
                raise ValueError(
                    f"Ingress rule references unknown tier '{rule.tier}'"
                )
        return self
