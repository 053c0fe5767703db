"""Validation utilities for StackDeck configuration."""

from typing import Any

from pydantic import ValidationError as PydanticValidationError

MAX_INPUT_REPR = 80


def _field_path(loc: tuple[Any, ...], data: dict[str, Any] | None) -> str:
    """Render an error location, naming tiers instead of list indexes.

    ``("tiers", 1, "readiness")`` becomes ``tiers[backend].readiness`` when the
    raw configuration gives the second tier a name.
    """
    if not loc:
        return "unknown"

    parts: list[str] = []
    node: Any = data
    for item in loc:
        if isinstance(item, int):
            label = str(item)
            if isinstance(node, list) and 0 <= item < len(node):
                node = node[item]
                if isinstance(node, dict) and isinstance(node.get("name"), str):
                    label = node["name"]
            else:
                node = None
            if parts:
                parts[-1] = f"{parts[-1]}[{label}]"
            else:
                parts.append(f"[{label}]")
            continue
        parts.append(str(item))
        node = node.get(item) if isinstance(node, dict) else None
    return ".".join(parts)


def flatten_pydantic_errors(
    exc: PydanticValidationError, data: dict[str, Any] | None = None
) -> list[str]:
    """Flatten a Pydantic ValidationError into readable messages.

    Args:
        exc: Pydantic ValidationError exception
        data: Raw configuration that failed validation, used to name tiers

    Returns:
        List of human-readable error messages, one per field error

    Example:
        >>> flatten_pydantic_errors(exc, {"tiers": [{"name": "db", "readiness": {}}]})
        ["Field 'tiers[db].readiness': Value error, host and port are required ..."]
    """
    errors: list[str] = []

    for error in exc.errors():
        field_path = _field_path(tuple(error.get("loc", ())), data)
        msg = error.get("msg", "Unknown error")

        if error.get("type") == "value_error":
            received = repr(error.get("input"))
            if len(received) > MAX_INPUT_REPR:
                received = received[: MAX_INPUT_REPR - 3] + "..."
            errors.append(f"Field '{field_path}': {msg} (received: {received})")
        else:
            errors.append(f"Field '{field_path}': {msg}")

    return errors or ["Validation failed with unknown error"]
