"""
Shard dependency graph and readiness.

The graph is rebuilt from the shard list whenever it's needed and never
mutated. A shard is ready when it hasn't started and every dependency has
code on a branch (Ready for Review or later).
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Mapping

from orca.lib.errors import UnknownDependency
from orca.lib.types import Column, Shard

logger = logging.getLogger(__name__)

# A dependency counts as completed once its code exists on a branch.
COMPLETED_FROM = Column.READY_FOR_REVIEW


@dataclass(frozen=True)
class DependencyGraph:
    """Read-only adjacency (id -> dependencies) and its transpose."""
    order: tuple[str, ...]
    dependencies: Mapping[str, frozenset[str]]
    dependents: Mapping[str, frozenset[str]]

    def __contains__(self, shard_id: str) -> bool:
        return shard_id in self.dependencies

    def __len__(self) -> int:
        return len(self.order)

    def dependencies_of(self, shard_id: str) -> frozenset[str]:
        return self.dependencies[shard_id]

    def dependents_of(self, shard_id: str) -> frozenset[str]:
        return self.dependents[shard_id]


@dataclass(frozen=True)
class DependencyCycle:
    """A strongly connected group of shards. Reported, never raised."""
    members: tuple[str, ...]

    def __str__(self) -> str:
        return " -> ".join(self.members + self.members[:1])


def build_graph(shards: Iterable[Shard]) -> DependencyGraph:
    """Build the dependency graph.

    Raises:
        UnknownDependency: If any shard depends on an id not in the set
    """
    shards = list(shards)
    ids = [s.id for s in shards]
    known = set(ids)

    missing = sorted(
        (shard.id, dep) for shard in shards for dep in shard.depends_on if dep not in known
    )
    if missing:
        raise UnknownDependency(missing)

    dependents: dict[str, set[str]] = {shard_id: set() for shard_id in ids}
    for shard in shards:
        for dep in shard.depends_on:
            dependents[dep].add(shard.id)

    return DependencyGraph(
        order=tuple(ids),
        dependencies={s.id: frozenset(s.depends_on) for s in shards},
        dependents={k: frozenset(v) for k, v in dependents.items()},
    )


def ready(graph: DependencyGraph, completed: set[str], in_progress: set[str]) -> set[str]:
    """Shards that haven't started and whose dependencies are all completed."""
    return {
        shard_id for shard_id in graph.order
        if shard_id not in completed
        and shard_id not in in_progress
        and graph.dependencies[shard_id] <= completed
    }


def completed_ids(shards: Iterable[Shard]) -> set[str]:
    """Ids whose code exists: Ready for Review and everything after it."""
    return {s.id for s in shards if s.status >= COMPLETED_FROM}


def in_progress_ids(shards: Iterable[Shard]) -> set[str]:
    return {s.id for s in shards if s.status is Column.IN_PROGRESS}


def ready_shards(shards: list[Shard]) -> list[Shard]:
    """Convenience: ready shards from a shard list, sorted by id."""
    graph = build_graph(shards)
    ids = ready(graph, completed_ids(shards), in_progress_ids(shards))
    return sorted((s for s in shards if s.id in ids), key=lambda s: s.id)


def find_cycles(graph: DependencyGraph) -> list[DependencyCycle]:
    """Dependency cycles (including self-dependencies), via Tarjan's algorithm."""
    index: dict[str, int] = {}
    lowlink: dict[str, int] = {}
    on_stack: set[str] = set()
    stack: list[str] = []
    cycles: list[DependencyCycle] = []
    counter = 0

    def visit(node: str) -> None:
        nonlocal counter
        index[node] = lowlink[node] = counter
        counter += 1
        stack.append(node)
        on_stack.add(node)

        for dep in sorted(graph.dependencies[node]):
            if dep not in index:
                visit(dep)
                lowlink[node] = min(lowlink[node], lowlink[dep])
            elif dep in on_stack:
                lowlink[node] = min(lowlink[node], index[dep])

        if lowlink[node] == index[node]:
            component = []
            while True:
                member = stack.pop()
                on_stack.discard(member)
                component.append(member)
                if member == node:
                    break
            if len(component) > 1 or node in graph.dependencies[node]:
                cycles.append(DependencyCycle(tuple(sorted(component))))

    for shard_id in graph.order:
        if shard_id not in index:
            visit(shard_id)
    return cycles


def execution_order(graph: DependencyGraph) -> list[str]:
    """Topological order, ties broken by input order. Cycle members go last."""
    remaining = {k: set(v) for k, v in graph.dependencies.items()}
    order: list[str] = []
    placed: set[str] = set()

    while True:
        batch = [s for s in graph.order if s not in placed and remaining[s] <= placed]
        if not batch:
            break
        order.extend(batch)
        placed.update(batch)

    stuck = [s for s in graph.order if s not in placed]
    if stuck:
        logger.warning(f"Shards blocked by a dependency cycle: {', '.join(stuck)}")
    return order + stuck


def parallel_groups(graph: DependencyGraph) -> list[list[str]]:
    """Group shards by dependency depth. Shards in one group never depend on each other.

    Shards in or behind a cycle are left out.
    """
    groups: list[list[str]] = []
    placed: set[str] = set()

    while True:
        level = [s for s in graph.order if s not in placed and graph.dependencies[s] <= placed]
        if not level:
            break
        groups.append(level)
        placed.update(level)
    return groups


def transitive_dependencies(graph: DependencyGraph, shard_id: str) -> set[str]:
    seen: set[str] = set()
    pending = list(graph.dependencies[shard_id])
    while pending:
        dep = pending.pop()
        if dep not in seen:
            seen.add(dep)
            pending.extend(graph.dependencies[dep])
    return seen


def transitive_dependents(graph: DependencyGraph, shard_id: str) -> set[str]:
    """Every shard that directly or indirectly builds on shard_id."""
    seen: set[str] = set()
    pending = list(graph.dependents[shard_id])
    while pending:
        dep = pending.pop()
        if dep not in seen:
            seen.add(dep)
            pending.extend(graph.dependents[dep])
    return seen


def can_run_in_parallel(graph: DependencyGraph, a: str, b: str) -> bool:
    """True when neither shard depends on the other, directly or not."""
    if a == b:
        return False
    return b not in transitive_dependencies(graph, a) and a not in transitive_dependencies(graph, b)


def visualize(graph: DependencyGraph, status: Mapping[str, Column] | None = None) -> str:
    """Render the graph as an indented tree, roots first."""
    lines: list[str] = []

    def label(shard_id: str) -> str:
        if status and shard_id in status:
            return f"{shard_id} [{status[shard_id].label}]"
        return shard_id

    def walk(shard_id: str, depth: int, path: tuple[str, ...]) -> None:
        marker = " (cycle)" if shard_id in path else ""
        lines.append(f"{'  ' * depth}{'└─ ' if depth else ''}{label(shard_id)}{marker}")
        if marker:
            return
        for child in sorted(graph.dependents[shard_id]):
            walk(child, depth + 1, path + (shard_id,))

    roots = [s for s in graph.order if not graph.dependencies[s]]
    for root in roots:
        walk(root, 0, ())

    rooted = set(roots)
    for shard_id in roots:
        rooted |= transitive_dependents(graph, shard_id)
    for shard_id in graph.order:
        if shard_id not in rooted:
            lines.append(f"{label(shard_id)} (unreachable: dependency cycle)")
    return "\n".join(lines)
