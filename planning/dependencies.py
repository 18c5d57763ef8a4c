import heapq
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .models import PlanningWarning, WarningType


logger = logging.getLogger(__name__)

Edge = Tuple[int, int]  # (dependent handle, blocker handle)


@dataclass
class GraphNode:
    key: str
    auto_score: float = 0.0
    blocked_by: List[str] = field(default_factory=list)


@dataclass
class DependencyGraph:
    """Index-based "is blocked by" graph over one planning batch.

    ``blockers[i]`` holds the handles item ``i`` waits for. Handles are
    positions in ``keys``.
    """

    keys: List[str]
    scores: List[float]
    blockers: List[List[int]]
    warnings: List[PlanningWarning] = field(default_factory=list)
    dropped: List[Tuple[str, str]] = field(default_factory=list)

    def __post_init__(self):
        self.index = {key: handle for handle, key in enumerate(self.keys)}

    def __len__(self):
        return len(self.keys)

    def handle(self, key: str) -> Optional[int]:
        return self.index.get(key)

    def edges(self) -> List[Edge]:
        return [
            (source, target)
            for source, targets in enumerate(self.blockers)
            for target in targets
        ]

    def drop_edge(self, source: int, target: int):
        if target in self.blockers[source]:
            self.blockers[source].remove(target)
            self.dropped.append((self.keys[source], self.keys[target]))

    def blocker_keys(self, key: str) -> List[str]:
        handle = self.index.get(key)
        if handle is None:
            return []
        return [self.keys[target] for target in self.blockers[handle]]

    def can_start(self, handle: int, completed: Set[int]) -> bool:
        return all(target in completed for target in self.blockers[handle])


CycleBreakPolicy = Callable[[DependencyGraph, Sequence[Edge]], Edge]


def drop_lowest_score_edge(graph: DependencyGraph, cycle_edges: Sequence[Edge]) -> Edge:
    """Pick the cycle edge whose dependent item has the lowest auto score.

    Ties go to the edge whose dependent key sorts last.
    """
    by_key_desc = sorted(cycle_edges, key=lambda edge: graph.keys[edge[0]], reverse=True)
    return min(by_key_desc, key=lambda edge: graph.scores[edge[0]])


def build_dependency_graph(nodes: Iterable, done_keys: Iterable[str] = ()) -> DependencyGraph:
    """Build the graph from ``blocked_by`` links.

    Links to items outside the batch or to done items are not edges.
    """
    nodes = list(nodes)
    done = set(done_keys)
    keys = [node.key for node in nodes]
    index = {key: handle for handle, key in enumerate(keys)}

    blockers = []
    for node in nodes:
        targets = set()
        for blocker in node.blocked_by or []:
            if blocker == node.key or blocker in done:
                continue
            target = index.get(blocker)
            if target is not None:
                targets.add(target)
        blockers.append(sorted(targets))

    return DependencyGraph(
        keys=keys,
        scores=[float(node.auto_score or 0.0) for node in nodes],
        blockers=blockers,
    )


def find_cycle(graph: DependencyGraph) -> Optional[List[int]]:
    """Return one cycle as a list of handles (DFS with recursion-stack marking)."""
    visited = [False] * len(graph)
    on_stack = [False] * len(graph)

    for root in range(len(graph)):
        if visited[root]:
            continue
        path = [root]
        cursors = [0]
        visited[root] = True
        on_stack[root] = True
        while path:
            node = path[-1]
            targets = graph.blockers[node]
            if cursors[-1] < len(targets):
                target = targets[cursors[-1]]
                cursors[-1] += 1
                if on_stack[target]:
                    return path[path.index(target):]
                if not visited[target]:
                    visited[target] = True
                    on_stack[target] = True
                    path.append(target)
                    cursors.append(0)
            else:
                on_stack[node] = False
                path.pop()
                cursors.pop()
    return None


def break_cycles(
    graph: DependencyGraph,
    policy: CycleBreakPolicy = drop_lowest_score_edge,
) -> List[List[str]]:
    """Drop one edge per cycle until the graph is acyclic.

    Every item on a cycle gets a single CIRCULAR_DEPENDENCY warning.
    """
    cycles = []
    warned = set()
    while True:
        cycle = find_cycle(graph)
        if cycle is None:
            return cycles

        cycle_keys = [graph.keys[handle] for handle in cycle]
        cycles.append(cycle_keys)
        cycle_edges = [
            (cycle[i], cycle[(i + 1) % len(cycle)]) for i in range(len(cycle))
        ]
        source, target = policy(graph, cycle_edges)
        if (source, target) not in cycle_edges:
            raise ValueError(f'Cycle break policy chose an edge outside the cycle: {(source, target)}')
        graph.drop_edge(source, target)
        logger.warning(
            'Circular dependency %s; ignoring %s blocked by %s',
            ' -> '.join(cycle_keys), graph.keys[source], graph.keys[target],
        )

        for handle in cycle:
            key = graph.keys[handle]
            if key in warned:
                continue
            warned.add(key)
            graph.warnings.append(PlanningWarning(
                key,
                WarningType.CIRCULAR_DEPENDENCY,
                f'Circular dependency: {" -> ".join(cycle_keys)}',
            ))


def topological_order(
    graph: DependencyGraph,
    priority_key: Callable[[int], tuple],
) -> List[int]:
    """Kahn's algorithm; among ready items the smallest ``priority_key`` goes first."""
    indegree = [len(targets) for targets in graph.blockers]
    forward: Dict[int, List[int]] = {}
    for source, targets in enumerate(graph.blockers):
        for target in targets:
            forward.setdefault(target, []).append(source)

    queue = []
    for handle, count in enumerate(indegree):
        if count == 0:
            heapq.heappush(queue, (priority_key(handle), handle))

    order = []
    while queue:
        _, current = heapq.heappop(queue)
        order.append(current)
        for nxt in forward.get(current, []):
            indegree[nxt] -= 1
            if indegree[nxt] == 0:
                heapq.heappush(queue, (priority_key(nxt), nxt))

    if len(order) != len(graph):
        raise ValueError('Dependency graph still contains a cycle')
    return order


def by_score_then_key(graph: DependencyGraph) -> Callable[[int], tuple]:
    return lambda handle: (-graph.scores[handle], graph.keys[handle])


def resolve_epic_precedence(
    story_graph: DependencyGraph,
    epic_of: Dict[str, str],
    epic_scores: Dict[str, float],
    policy: CycleBreakPolicy = drop_lowest_score_edge,
) -> List[str]:
    """Order epics so that every blocker story's epic is planned first.

    Cross-epic story links induce epic links. Epic cycles are broken with
    ``policy``; the story links behind a dropped epic link are removed from
    ``story_graph`` and their stories get CIRCULAR_DEPENDENCY warnings.
    Returns epic keys in planning order.
    """
    epic_keys = sorted(epic_scores, key=lambda key: (-epic_scores[key], key))
    links: Dict[Tuple[str, str], List[Edge]] = {}
    for source, target in story_graph.edges():
        source_epic = epic_of[story_graph.keys[source]]
        target_epic = epic_of[story_graph.keys[target]]
        if source_epic != target_epic:
            links.setdefault((source_epic, target_epic), []).append((source, target))

    epic_nodes = [
        GraphNode(
            key=key,
            auto_score=epic_scores[key],
            blocked_by=sorted(target for source, target in links if source == key),
        )
        for key in epic_keys
    ]
    epic_graph = build_dependency_graph(epic_nodes)
    break_cycles(epic_graph, policy)
    story_graph.warnings.extend(epic_graph.warnings)

    warned = {warning.item_key for warning in story_graph.warnings}
    for source_epic, target_epic in epic_graph.dropped:
        for source, target in links[(source_epic, target_epic)]:
            story_graph.drop_edge(source, target)
            for handle in (source, target):
                key = story_graph.keys[handle]
                if key in warned:
                    continue
                warned.add(key)
                story_graph.warnings.append(PlanningWarning(
                    key,
                    WarningType.CIRCULAR_DEPENDENCY,
                    f'Circular dependency between epics {source_epic} and {target_epic}',
                ))

    order = topological_order(epic_graph, by_score_then_key(epic_graph))
    return [epic_graph.keys[handle] for handle in order]
