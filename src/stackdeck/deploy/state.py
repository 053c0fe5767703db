"""Rollout state tracking helpers.

The latest RolloutResult of each stack is persisted next to the stack file so
that ``status`` works across CLI invocations and a new process can resume a
partially failed rollout without re-applying ready tiers.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from stackdeck.config.defaults import STATE_DIR_NAME
from stackdeck.lib.errors import DeploymentError
from stackdeck.models.rollout import RolloutResult
from stackdeck.models.stack import TierConfig

STATE_VERSION = "1.0"
STATE_FILE_NAME = "rollouts.json"


class RolloutState(BaseModel):
    """Top-level rollout state stored on disk."""

    model_config = ConfigDict(extra="forbid")

    version: str = Field(default=STATE_VERSION, description="State file version")
    rollouts: dict[str, RolloutResult] = Field(
        default_factory=dict, description="Latest rollout result keyed by stack name"
    )


def get_state_path(stack_path: Path) -> Path:
    """Return the rollout state file path for a stack file."""
    return stack_path.parent / STATE_DIR_NAME / STATE_FILE_NAME


def compute_spec_hash(tier: TierConfig) -> str:
    """Compute a deterministic hash of a tier's desired specification.

    Only the manifests and the readiness predicate contribute; dependency edges
    and timeouts do not change what is applied.
    """
    payload = json.dumps(
        {
            "manifests": tier.manifests,
            "readiness": tier.readiness.model_dump(mode="json"),
        },
        sort_keys=True,
    )
    digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()
    return f"sha256:{digest}"


def load_state(state_path: Path) -> RolloutState:
    """Load rollout state from disk."""
    if not state_path.exists():
        return RolloutState()

    try:
        content = state_path.read_text(encoding="utf-8")
        if not content.strip():
            return RolloutState()
    except OSError as exc:
        raise DeploymentError(
            operation="state",
            message=f"Failed to read rollout state at {state_path}: {exc}",
        ) from exc

    try:
        state = RolloutState.model_validate_json(content)
    except ValidationError as exc:
        raise DeploymentError(
            operation="state",
            message=f"Invalid rollout state format in {state_path}: {exc}",
        ) from exc

    if not state.version:
        state = state.model_copy(update={"version": STATE_VERSION})
    return state


def save_state(state_path: Path, state: RolloutState) -> None:
    """Persist rollout state to disk."""
    try:
        state_path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(state.model_dump(mode="json"), indent=2, sort_keys=True)
        state_path.write_text(payload, encoding="utf-8")
    except OSError as exc:
        raise DeploymentError(
            operation="state",
            message=f"Failed to write rollout state to {state_path}: {exc}",
        ) from exc


def get_rollout_result(state_path: Path, stack_name: str) -> RolloutResult | None:
    """Return the latest persisted rollout result for a stack."""
    state = load_state(state_path)
    return state.rollouts.get(stack_name)


def record_rollout_result(state_path: Path, result: RolloutResult) -> None:
    """Store a rollout result as the latest one for its stack."""
    state = load_state(state_path)
    state.rollouts[result.stack] = result
    save_state(state_path, state)
