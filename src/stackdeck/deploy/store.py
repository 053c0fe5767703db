"""Resource descriptor store and rollout planning.

The store holds the tier descriptors of one stack together with their
dependency edges, rejects duplicates and cycles at registration time, and
produces a deterministic topological rollout plan.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass

from stackdeck.lib.errors import (
    CyclicDependencyError,
    DuplicateTierError,
    UnknownDependencyError,
)
from stackdeck.models.stack import TierConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RolloutPlan:
    """Topologically sorted sequence of tiers for one rollout attempt.

    Attributes:
        tiers: Tiers in rollout order; every tier appears after its dependencies
    """

    tiers: tuple[TierConfig, ...]

    @property
    def names(self) -> list[str]:
        """Tier names in rollout order."""
        return [tier.name for tier in self.tiers]

    def __iter__(self) -> Iterator[TierConfig]:
        return iter(self.tiers)

    def __len__(self) -> int:
        return len(self.tiers)


def _find_cycle(graph: Mapping[str, list[str]]) -> list[str] | None:
    """Find a dependency cycle using depth-first search.

    Edges pointing at names that are not keys of ``graph`` are ignored; they
    cannot close a cycle.

    Args:
        graph: Tier name to dependency names, in insertion order

    Returns:
        Cycle path with the first name repeated at the end, or None
    """
    visited: set[str] = set()
    on_stack: set[str] = set()
    path: list[str] = []

    def visit(name: str) -> list[str] | None:
        visited.add(name)
        on_stack.add(name)
        path.append(name)
        for dependency in graph[name]:
            if dependency not in graph:
                continue
            if dependency in on_stack:
                return path[path.index(dependency) :] + [dependency]
            if dependency not in visited:
                cycle = visit(dependency)
                if cycle:
                    return cycle
        on_stack.discard(name)
        path.pop()
        return None

    for name in graph:
        if name not in visited:
            cycle = visit(name)
            if cycle:
                return cycle
    return None


class DescriptorStore:
    """Registry of tier descriptors and their dependency edges.

    Registration is all-or-nothing: a rejected tier (or batch of tiers) leaves
    the store exactly as it was.

    Example:
        >>> store = DescriptorStore()
        >>> store.register_all([database, backend, frontend])
        >>> store.plan().names
        ['database', 'backend', 'frontend']
    """

    def __init__(self) -> None:
        """Initialize an empty store."""
        self._tiers: dict[str, TierConfig] = {}

    def register(self, tier: TierConfig) -> None:
        """Register a single tier.

        Args:
            tier: Tier descriptor

        Raises:
            DuplicateTierError: If a tier with the same name exists
            CyclicDependencyError: If the tier's edges introduce a cycle
        """
        self.register_all([tier])

    def register_all(self, tiers: Iterable[TierConfig]) -> None:
        """Register a batch of tiers atomically.

        Args:
            tiers: Tier descriptors in declaration order

        Raises:
            DuplicateTierError: If any name repeats or is already registered
            CyclicDependencyError: If the combined edge set contains a cycle
        """
        staged = dict(self._tiers)
        for tier in tiers:
            if tier.name in staged:
                raise DuplicateTierError(tier.name)
            staged[tier.name] = tier

        graph = {name: list(tier.depends_on) for name, tier in staged.items()}
        cycle = _find_cycle(graph)
        if cycle:
            raise CyclicDependencyError(cycle)

        added = [name for name in staged if name not in self._tiers]
        self._tiers = staged
        logger.debug(f"Registered tiers: {', '.join(added)}")

    def get(self, name: str) -> TierConfig:
        """Return a registered tier.

        Raises:
            KeyError: If the tier is not registered
        """
        return self._tiers[name]

    @property
    def names(self) -> list[str]:
        """Registered tier names in insertion order."""
        return list(self._tiers)

    def __contains__(self, name: object) -> bool:
        return name in self._tiers

    def __len__(self) -> int:
        return len(self._tiers)

    def plan(self) -> RolloutPlan:
        """Compute the rollout plan.

        Tiers whose dependencies are all placed become eligible; among eligible
        tiers the earliest registered one is placed first, so the order is
        stable across runs.

        Returns:
            RolloutPlan in dependency order

        Raises:
            UnknownDependencyError: If a tier depends on an unregistered tier
        """
        for tier in self._tiers.values():
            for dependency in tier.depends_on:
                if dependency not in self._tiers:
                    raise UnknownDependencyError(tier.name, dependency)

        placed: set[str] = set()
        remaining = list(self._tiers.values())
        ordered: list[TierConfig] = []

        while remaining:
            for index, tier in enumerate(remaining):
                if all(dependency in placed for dependency in tier.depends_on):
                    ordered.append(tier)
                    placed.add(tier.name)
                    del remaining[index]
                    break
            else:
                # Unreachable while registration rejects cycles
                raise CyclicDependencyError([t.name for t in remaining])

        return RolloutPlan(tiers=tuple(ordered))
