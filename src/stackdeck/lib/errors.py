"""Custom exception hierarchy for StackDeck configuration and rollouts."""

from __future__ import annotations


class StackDeckError(Exception):
    """Base exception for all StackDeck errors.

    All StackDeck-specific exceptions inherit from this class, enabling
    centralized exception handling in the CLI and in automation callers.
    """

    pass


class ConfigError(StackDeckError):
    """Exception raised for configuration errors.

    This exception is raised when stack configuration loading or parsing fails.
    It includes field-specific information to help users identify and fix
    configuration issues.

    Attributes:
        field: The configuration field that caused the error
        message: Human-readable error message describing the issue
    """

    def __init__(self, field: str, message: str) -> None:
        """Initialize ConfigError with field and message.

        Args:
            field: Configuration field name where error occurred
            message: Descriptive error message
        """
        self.field = field
        self.message = message
        super().__init__(f"Configuration error in '{field}': {message}")


class FileNotFoundError(StackDeckError):
    """Exception raised when a stack file is not found.

    Attributes:
        path: Path to the file that was not found
        message: Human-readable error message
    """

    def __init__(self, path: str, message: str) -> None:
        """Initialize FileNotFoundError with path and message.

        Args:
            path: Path to the file that was not found
            message: Descriptive error message, optionally with suggestions
        """
        self.path = path
        self.message = message
        super().__init__(f"File not found: {path}\n{message}")


class DeploymentError(StackDeckError):
    """Exception raised when a deployment operation cannot proceed.

    Attributes:
        operation: The operation that failed (deploy, status, destroy, state)
        message: Human-readable error message
    """

    def __init__(self, operation: str, message: str) -> None:
        """Create a deployment error for an operation."""
        self.operation = operation
        self.message = message
        super().__init__(f"Deployment {operation} failed: {message}")


class CloudSDKNotInstalledError(DeploymentError):
    """Raised when the SDK for a cluster provider is not installed."""

    def __init__(self, provider: str, sdk_name: str) -> None:
        """Create an error pointing at the missing SDK distribution."""
        self.provider = provider
        self.sdk_name = sdk_name
        super().__init__(
            operation="deploy",
            message=(
                f"The {provider} provider requires the '{sdk_name}' package.\n"
                f"Install it with: pip install 'stackdeck[{provider}]'"
            ),
        )


class RolloutInProgressError(DeploymentError):
    """Raised when a rollout is requested while another one is running."""

    def __init__(self, stack: str) -> None:
        """Create an error naming the busy stack."""
        self.stack = stack
        super().__init__(
            operation="deploy",
            message=f"A rollout of stack '{stack}' is already in progress.",
        )


# Plan construction errors. Always raised before any external call is made.


class PlanError(StackDeckError):
    """Base class for errors raised while building a rollout plan."""

    kind = "PlanError"


class DuplicateTierError(PlanError):
    """Raised when a tier name is registered twice."""

    kind = "DuplicateTier"

    def __init__(self, tier: str) -> None:
        """Create an error for a duplicated tier name."""
        self.tier = tier
        super().__init__(f"Tier '{tier}' is already registered")


class CyclicDependencyError(PlanError):
    """Raised when registering tiers would introduce a dependency cycle.

    Attributes:
        cycle: Tier names along the cycle, first name repeated at the end
    """

    kind = "CyclicDependency"

    def __init__(self, cycle: list[str]) -> None:
        """Create an error describing the detected cycle."""
        self.cycle = cycle
        super().__init__(f"Dependency cycle detected: {' -> '.join(cycle)}")


class UnknownDependencyError(PlanError):
    """Raised when a tier depends on a tier that was never registered."""

    kind = "UnknownDependency"

    def __init__(self, tier: str, dependency: str) -> None:
        """Create an error for a dangling dependency edge."""
        self.tier = tier
        self.dependency = dependency
        super().__init__(f"Tier '{tier}' depends on unknown tier '{dependency}'")


# Tier-level errors. Captured into TierState by the rollout engine.


class TierError(StackDeckError):
    """Base class for failures of a single tier during a rollout.

    Attributes:
        tier: Name of the tier that failed
        message: Human-readable failure description
    """

    kind = "TierError"

    def __init__(self, tier: str, message: str) -> None:
        """Create a tier failure."""
        self.tier = tier
        self.message = message
        super().__init__(f"Tier '{tier}': {message}")


class ApplyFailedError(TierError):
    """Raised when the orchestration API rejects or times out an apply."""

    kind = "ApplyFailed"


class ProbeTimeoutError(TierError):
    """Raised when a tier does not become ready within its probe timeout."""

    kind = "ProbeTimeout"


class ProbeError(TierError):
    """Raised when readiness probing fails with a non-retriable error."""

    kind = "ProbeError"


class RolloutCancelledError(StackDeckError):
    """Raised inside wait loops once cancellation has been requested."""

    kind = "Cancelled"

    def __init__(self, message: str = "Rollout cancelled") -> None:
        """Create a cancellation signal."""
        self.message = message
        super().__init__(message)


class IngressProvisionFailedError(StackDeckError):
    """Raised when the ingress binding cannot be provisioned.

    Attributes:
        binding: Name of the ingress binding
        attempts: Number of provider calls made
        last_error: Last provider error observed, if any
    """

    kind = "IngressProvisionFailed"

    def __init__(
        self,
        binding: str,
        message: str,
        attempts: int = 0,
        last_error: Exception | None = None,
    ) -> None:
        """Create an ingress provisioning failure."""
        self.binding = binding
        self.message = message
        self.attempts = attempts
        self.last_error = last_error
        full_message = f"Ingress '{binding}' failed after {attempts} attempt(s): {message}"
        if last_error is not None:
            full_message += f"\nLast provider error: {last_error}"
        super().__init__(full_message)


# Errors raised by external collaborators.


class ResourceNotFoundError(StackDeckError):
    """Raised by a cluster client when a tier's resources do not exist."""

    def __init__(self, resource: str) -> None:
        """Create a not-found error for a resource reference."""
        self.resource = resource
        super().__init__(f"Resource not found: {resource}")


class ProviderError(StackDeckError):
    """Raised by an ingress provider or cluster client call.

    Attributes:
        message: Provider error message
        transient: Whether the call may succeed when retried
        status_code: Provider status code, when one is available
    """

    def __init__(
        self,
        message: str,
        transient: bool = False,
        status_code: int | None = None,
    ) -> None:
        """Create a provider error."""
        self.message = message
        self.transient = transient
        self.status_code = status_code
        super().__init__(message)
