"""Ingress reconciler: binds a converged stack to an external address.

Load-balancer provisioning is eventually consistent. Right after creation the
provider may throttle, report a conflict, or deny access because a freshly
granted permission has not propagated yet, and an address appears only after
the load balancer exists. The reconciler therefore retries transient errors
and still-pending states with exponential backoff, up to a bounded number of
retries.
"""

from __future__ import annotations

import asyncio
import logging

from stackdeck.config.defaults import get_retry_delay
from stackdeck.deploy.cancel import CancelToken
from stackdeck.deploy.clients.base import BaseIngressProvider
from stackdeck.lib.errors import (
    DeploymentError,
    IngressProvisionFailedError,
    ProviderError,
)
from stackdeck.models.rollout import IngressBinding, ProviderPhase
from stackdeck.models.stack import IngressConfig, RetryConfig

logger = logging.getLogger(__name__)


def binding_from_config(config: IngressConfig) -> IngressBinding:
    """Create an unprovisioned binding from ingress configuration."""
    return IngressBinding(
        name=config.name,
        rules=list(config.rules),
        class_name=config.class_name,
        annotations=dict(config.annotations),
    )


class IngressReconciler:
    """Create or update the ingress binding and wait for its address.

    Attributes:
        retry: Backoff policy for transient errors and pending states
        call_timeout: Upper bound for a single provider call
    """

    def __init__(
        self,
        provider: BaseIngressProvider,
        retry: RetryConfig | None = None,
        call_timeout: float = 30.0,
    ) -> None:
        """Initialize the reconciler.

        Args:
            provider: Ingress / load-balancer provider
            retry: Backoff policy (defaults to RetryConfig())
            call_timeout: Upper bound for a single provider call
        """
        self._provider = provider
        self.retry = retry or RetryConfig()
        self.call_timeout = call_timeout

    async def reconcile(
        self, binding: IngressBinding, cancel_token: CancelToken | None = None
    ) -> str:
        """Provision the binding and return its provider-assigned address.

        Updates ``binding.address``, ``binding.attempts`` and
        ``binding.last_error`` in place.

        Args:
            binding: Binding to provision
            cancel_token: Checked before every attempt and after every backoff

        Returns:
            Provider-assigned address

        Raises:
            IngressProvisionFailedError: On a non-transient provider error or
                once retries are exhausted
            RolloutCancelledError: If cancellation was requested
        """
        max_attempts = self.retry.max_retries + 1
        last_exc: Exception | None = None
        still_pending = False
        binding.attempts = 0

        for attempt in range(max_attempts):
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()

            binding.attempts = attempt + 1
            still_pending = False
            try:
                state = await asyncio.wait_for(
                    self._provider.create_or_update(binding),
                    timeout=self.call_timeout,
                )
            except asyncio.TimeoutError:
                last_exc = ProviderError(
                    f"create_or_update timed out after {self.call_timeout:g}s",
                    transient=True,
                )
                binding.last_error = last_exc.message
                logger.warning(f"Ingress {binding.name}: {last_exc.message}")
            except ProviderError as exc:
                last_exc = exc
                binding.last_error = exc.message
                if not exc.transient:
                    raise IngressProvisionFailedError(
                        binding.name,
                        "provider returned a non-retriable error",
                        attempts=binding.attempts,
                        last_error=exc,
                    ) from exc
                logger.warning(
                    f"Ingress {binding.name}: transient provider error "
                    f"(attempt {binding.attempts}/{max_attempts}): {exc.message}"
                )
            except Exception as exc:
                binding.last_error = str(exc)
                raise IngressProvisionFailedError(
                    binding.name,
                    "provider call failed",
                    attempts=binding.attempts,
                    last_error=exc,
                ) from exc
            else:
                if state.phase == ProviderPhase.BOUND and state.address:
                    binding.address = state.address
                    binding.last_error = None
                    logger.info(
                        f"Ingress {binding.name} bound to {state.address} "
                        f"after {binding.attempts} attempt(s)"
                    )
                    return state.address
                still_pending = True
                last_exc = None
                binding.last_error = None
                logger.info(
                    f"Ingress {binding.name}: address not assigned yet "
                    f"(attempt {binding.attempts}/{max_attempts})"
                )

            if attempt < max_attempts - 1:
                delay = get_retry_delay(
                    attempt,
                    base_delay=self.retry.base_delay,
                    exponential_base=self.retry.exponential_base,
                    max_delay=self.retry.max_delay,
                )
                logger.debug(f"Retrying ingress {binding.name} in {delay:.2f}s")
                if cancel_token is not None:
                    await cancel_token.sleep(delay)
                else:
                    await asyncio.sleep(delay)

        message = "retries exhausted"
        if still_pending:
            message = "no address assigned"
            binding.last_error = message
        raise IngressProvisionFailedError(
            binding.name, message, attempts=binding.attempts, last_error=last_exc
        )

    async def teardown(self, binding: IngressBinding) -> None:
        """Delete the external ingress resource and clear the address.

        Raises:
            DeploymentError: If the provider cannot delete the resource
        """
        try:
            await asyncio.wait_for(
                self._provider.delete(binding), timeout=self.call_timeout
            )
        except asyncio.TimeoutError as exc:
            raise DeploymentError(
                operation="destroy",
                message=f"Ingress delete timed out after {self.call_timeout:g}s",
            ) from exc
        except ProviderError as exc:
            binding.last_error = exc.message
            raise DeploymentError(operation="destroy", message=exc.message) from exc

        binding.address = None
        binding.last_error = None
        logger.info(f"Ingress {binding.name} torn down")
