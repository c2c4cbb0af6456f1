"""
Cluster Reduction
=================
Reliability of one cluster of active blocks, tried as an ordered list of
strategies. The first strategy that returns a result wins:

    1. Series-parallel reduction   exact for any series-parallel network
    2. Parallel-path decomposition disjoint chains between an entry bus
                                   and an exit bus
    3. Legacy grouping             bus-paired groups multiplied in
                                   topological order; always answers

Each strategy takes a `Cluster` and returns a `ClusterReduction` or None,
so every one of them can be run and checked on its own.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .formula import block_label, block_value, parallel_expr, series_expr
from .model import Side
from .reliability_math import r_parallel, r_series, round_probability
from .settings import DEFAULT_SETTINGS, EngineSettings, resolve_settings
from .topology import Cluster

logger = logging.getLogger(__name__)


class ReductionMode:
    """Which strategy produced a cluster result."""

    SERIES_PARALLEL = "reduced-sp"
    PARALLEL_PATHS = "parallel-paths"
    LEGACY_GROUPS = "legacy-groups"
    UNRESOLVED = "unresolved"


@dataclass
class ClusterReduction:
    """Reliability of a cluster plus the matching symbolic derivation."""
    mode: str
    reliability: float
    general: str
    with_values: str
    block_ids: List[str] = field(default_factory=list)


# =============================================================================
# Terminal arena (union-find over block sides)
# =============================================================================


class TerminalArena:
    """Dense index for every (block, side) pair, backed by a flat union-find.

    Block i owns terminals 2*i (left) and 2*i + 1 (right). The smallest
    index of a class is its representative.
    """

    def __init__(self, block_ids: Sequence[str]):
        self.index: Dict[Tuple[str, str], int] = {}
        for i, bid in enumerate(block_ids):
            self.index[(bid, Side.LEFT)] = 2 * i
            self.index[(bid, Side.RIGHT)] = 2 * i + 1
        self.parent = list(range(2 * len(block_ids)))

    def find(self, i: int) -> int:
        parent = self.parent
        while parent[i] != i:
            parent[i] = parent[parent[i]]
            i = parent[i]
        return i

    def union(self, a: int, b: int):
        ra, rb = self.find(a), self.find(b)
        if ra == rb:
            return
        if ra < rb:
            self.parent[rb] = ra
        else:
            self.parent[ra] = rb

    def union_terminals(self, block_a: str, side_a: str, block_b: str, side_b: str):
        a = self.index.get((block_a, side_a))
        b = self.index.get((block_b, side_b))
        if a is not None and b is not None:
            self.union(a, b)

    def terminal(self, block_id: str, side: str) -> int:
        return self.find(self.index[(block_id, side)])


# =============================================================================
# 1. Series-parallel reduction
# =============================================================================


@dataclass
class ReducedEdge:
    source: int
    target: int
    reliability: float
    general: str
    values: str
    numbers: Tuple[int, ...]


def _merge_terminals(cluster: Cluster) -> TerminalArena:
    """Bus ties and signal edges both identify terminals as one circuit node."""
    arena = TerminalArena(cluster.block_ids)
    for conn in cluster.connections:
        if conn.is_bus_tie:
            arena.union_terminals(conn.from_block_id, conn.from_side, conn.to_block_id, conn.to_side)
            continue
        direction = conn.signal_direction()
        if direction is not None:
            src, dst = direction
            arena.union_terminals(src, Side.RIGHT, dst, Side.LEFT)
    return arena


def _parallel_merge(edges: List[ReducedEdge]) -> Tuple[List[ReducedEdge], bool]:
    buckets: Dict[Tuple[int, int], List[ReducedEdge]] = {}
    for e in edges:
        buckets.setdefault((e.source, e.target), []).append(e)

    merged = False
    result = []
    for (source, target), bucket in buckets.items():
        if len(bucket) == 1:
            result.append(bucket[0])
            continue
        merged = True
        bucket.sort(key=lambda e: e.numbers)
        result.append(ReducedEdge(
            source=source,
            target=target,
            reliability=r_parallel([e.reliability for e in bucket]),
            general=parallel_expr([e.general for e in bucket]),
            values=parallel_expr([e.values for e in bucket]),
            numbers=tuple(sorted(n for e in bucket for n in e.numbers)),
        ))
    return result, merged


def _series_merge(edges: List[ReducedEdge], protected: set) -> Tuple[List[ReducedEdge], bool]:
    incoming: Dict[int, List[int]] = {}
    outgoing: Dict[int, List[int]] = {}
    for i, e in enumerate(edges):
        outgoing.setdefault(e.source, []).append(i)
        incoming.setdefault(e.target, []).append(i)

    consumed = set()
    joined: List[ReducedEdge] = []
    terminals = sorted(set(incoming) & set(outgoing))
    for t in terminals:
        if t in protected or len(incoming[t]) != 1 or len(outgoing[t]) != 1:
            continue
        i, o = incoming[t][0], outgoing[t][0]
        if i == o or i in consumed or o in consumed:
            continue
        first, second = edges[i], edges[o]
        consumed.update((i, o))
        joined.append(ReducedEdge(
            source=first.source,
            target=second.target,
            reliability=first.reliability * second.reliability,
            general=series_expr([first.general, second.general]),
            values=series_expr([first.values, second.values]),
            numbers=tuple(sorted(first.numbers + second.numbers)),
        ))

    if not joined:
        return edges, False
    kept = [e for i, e in enumerate(edges) if i not in consumed]
    return kept + joined, True


def reduce_series_parallel(cluster: Cluster,
                           settings: EngineSettings = DEFAULT_SETTINGS) -> Optional[ClusterReduction]:
    """Collapse the cluster to a single equivalent edge, or decline."""
    if not cluster.block_ids:
        return None
    arena = _merge_terminals(cluster)

    edges = []
    for bid in cluster.ordered_ids():
        block = cluster.block(bid)
        edges.append(ReducedEdge(
            source=arena.terminal(bid, Side.LEFT),
            target=arena.terminal(bid, Side.RIGHT),
            reliability=block.reliability,
            general=block_label(block.number),
            values=block_value(block.reliability, settings.decimal_places),
            numbers=(block.number,),
        ))

    sources = {e.source for e in edges} - {e.target for e in edges}
    sinks = {e.target for e in edges} - {e.source for e in edges}
    protected = sources | sinks

    passes = 0
    changed = True
    while changed and len(edges) > 1:
        if passes >= settings.max_reduction_passes:
            logger.warning("Series-parallel reduction stopped after %d passes", passes)
            break
        passes += 1
        edges, merged_parallel = _parallel_merge(edges)
        edges, merged_series = _series_merge(edges, protected)
        changed = merged_parallel or merged_series

    if len(edges) != 1:
        logger.debug("Series-parallel reduction left %d edges", len(edges))
        return None

    edge = edges[0]
    return ClusterReduction(
        mode=ReductionMode.SERIES_PARALLEL,
        reliability=round_probability(edge.reliability, settings.decimal_places),
        general=edge.general,
        with_values=edge.values,
        block_ids=list(cluster.block_ids),
    )


# =============================================================================
# 2. Parallel-path decomposition
# =============================================================================


def _signal_in_degree(cluster: Cluster) -> Dict[str, int]:
    indegree = {bid: 0 for bid in cluster.block_ids}
    for targets in cluster.adjacency.values():
        for t in targets:
            indegree[t] += 1
    return indegree


def _share_bus(cluster: Cluster, block_ids: Sequence[str], side: str) -> bool:
    """All given blocks sit on one bus of `side` kind."""
    arena = TerminalArena(cluster.block_ids)
    for conn in cluster.connections:
        if conn.is_bus_tie and conn.from_side == side:
            arena.union_terminals(conn.from_block_id, side, conn.to_block_id, side)
    roots = {arena.terminal(bid, side) for bid in block_ids}
    return len(roots) == 1


def _enumerate_paths(cluster: Cluster, entries: Sequence[str], exits: set,
                     limit: int) -> Optional[List[Tuple[str, ...]]]:
    """All simple signal paths entry -> exit; None when the search blows up."""
    paths: List[Tuple[str, ...]] = []
    budget = limit * max(1, len(cluster.block_ids))
    for entry in entries:
        stack = [(entry, (entry,))]
        while stack:
            budget -= 1
            if budget < 0:
                return None
            node, path = stack.pop()
            if node in exits:
                paths.append(path)
                if len(paths) > limit:
                    return None
                continue
            for nxt in reversed(cluster.adjacency.get(node, [])):
                if nxt not in path:
                    stack.append((nxt, path + (nxt,)))
    return paths


def reduce_parallel_paths(cluster: Cluster,
                          settings: EngineSettings = DEFAULT_SETTINGS) -> Optional[ClusterReduction]:
    """Independent series chains strung between a shared entry and exit bus."""
    ordered = cluster.ordered_ids()
    indegree = _signal_in_degree(cluster)
    entries = [bid for bid in ordered if indegree[bid] == 0]
    exits = [bid for bid in ordered if not cluster.adjacency.get(bid)]
    if len(entries) < 2 or len(exits) < 2:
        return None
    if not _share_bus(cluster, entries, Side.LEFT) or not _share_bus(cluster, exits, Side.RIGHT):
        return None

    paths = _enumerate_paths(cluster, entries, set(exits), settings.max_enumerated_paths)
    if paths is None or len(paths) < 2:
        return None

    seen = set()
    for path in paths:
        if seen.intersection(path):
            logger.debug("Parallel paths overlap; declining")
            return None
        seen.update(path)
    if seen != set(cluster.block_ids):
        return None

    decimals = settings.decimal_places
    branch_r, branch_general, branch_values = [], [], []
    for path in paths:
        blocks = [cluster.block(bid) for bid in path]
        branch_r.append(r_series([b.reliability for b in blocks]))
        branch_general.append(series_expr([block_label(b.number) for b in blocks]))
        branch_values.append(series_expr([block_value(b.reliability, decimals) for b in blocks]))

    return ClusterReduction(
        mode=ReductionMode.PARALLEL_PATHS,
        reliability=round_probability(r_parallel(branch_r), decimals),
        general=parallel_expr(branch_general),
        with_values=parallel_expr(branch_values),
        block_ids=list(cluster.block_ids),
    )


# =============================================================================
# 3. Legacy grouping
# =============================================================================


def _tie_pairs(cluster: Cluster, side: str) -> set:
    return {
        frozenset((c.from_block_id, c.to_block_id))
        for c in cluster.connections
        if c.is_bus_tie and c.from_side == side
    }


def legacy_groups(cluster: Cluster) -> List[List[str]]:
    """Blocks sharing both a left-left and a right-right tie, transitively."""
    paired = _tie_pairs(cluster, Side.LEFT) & _tie_pairs(cluster, Side.RIGHT)
    partners: Dict[str, List[str]] = {bid: [] for bid in cluster.block_ids}
    for pair in paired:
        a, b = tuple(pair)
        partners[a].append(b)
        partners[b].append(a)

    visited = set()
    groups: List[List[str]] = []
    for bid in cluster.block_ids:
        if bid in visited:
            continue
        group = []
        stack = [bid]
        while stack:
            current = stack.pop()
            if current in visited:
                continue
            visited.add(current)
            group.append(current)
            stack.extend(p for p in partners[current] if p not in visited)
        group.sort(key=lambda x: cluster.block(x).number)
        groups.append(group)
    return groups


def order_groups(cluster: Cluster, groups: List[List[str]]) -> List[List[str]]:
    """Topological order over inter-group signal edges, else by block number."""
    group_of = {bid: idx for idx, group in enumerate(groups) for bid in group}
    edges: Dict[int, List[int]] = {i: [] for i in range(len(groups))}
    indegree = {i: 0 for i in range(len(groups))}

    for src in cluster.block_ids:
        for dst in cluster.adjacency.get(src, []):
            a, b = group_of[src], group_of.get(dst)
            if b is None or a == b or b in edges[a]:
                continue
            edges[a].append(b)
            indegree[b] += 1

    queue = deque(i for i in range(len(groups)) if indegree[i] == 0)
    order = []
    while queue:
        current = queue.popleft()
        order.append(current)
        for nxt in edges[current]:
            indegree[nxt] -= 1
            if indegree[nxt] == 0:
                queue.append(nxt)

    if len(order) == len(groups):
        return [groups[i] for i in order]
    return sorted(groups, key=lambda g: cluster.block(g[0]).number)


def reduce_legacy_groups(cluster: Cluster,
                         settings: EngineSettings = DEFAULT_SETTINGS) -> Optional[ClusterReduction]:
    """Product of group reliabilities; a multi-block group counts as parallel."""
    if not cluster.block_ids:
        return None
    decimals = settings.decimal_places
    ordered = order_groups(cluster, legacy_groups(cluster))

    reliability = 1.0
    general_parts, value_parts = [], []
    for group in ordered:
        blocks = [cluster.block(bid) for bid in group]
        labels = [block_label(b.number) for b in blocks]
        values = [block_value(b.reliability, decimals) for b in blocks]
        if len(blocks) == 1:
            reliability *= blocks[0].reliability
            general_parts.append(labels[0])
            value_parts.append(values[0])
        else:
            reliability *= r_parallel([b.reliability for b in blocks])
            general_parts.append(parallel_expr(labels))
            value_parts.append(parallel_expr(values))

    return ClusterReduction(
        mode=ReductionMode.LEGACY_GROUPS,
        reliability=round_probability(reliability, decimals),
        general=series_expr(general_parts),
        with_values=series_expr(value_parts),
        block_ids=list(cluster.block_ids),
    )


# =============================================================================
# Strategy chain
# =============================================================================

Strategy = Callable[[Cluster, EngineSettings], Optional[ClusterReduction]]

REDUCTION_STRATEGIES: Tuple[Tuple[str, Strategy], ...] = (
    (ReductionMode.SERIES_PARALLEL, reduce_series_parallel),
    (ReductionMode.PARALLEL_PATHS, reduce_parallel_paths),
    (ReductionMode.LEGACY_GROUPS, reduce_legacy_groups),
)


def reduce_cluster(cluster: Cluster, settings: Optional[EngineSettings] = None,
                   strategies: Optional[Sequence[Tuple[str, Strategy]]] = None) -> ClusterReduction:
    """First answer from the ordered strategy list."""
    settings = resolve_settings(settings)
    if strategies is None:
        strategies = REDUCTION_STRATEGIES
    for mode, strategy in strategies:
        result = strategy(cluster, settings)
        if result is not None:
            logger.debug("Cluster %s reduced by %s", cluster.ordered_ids(), mode)
            return result
        logger.debug("Strategy %s declined cluster %s", mode, cluster.ordered_ids())
    return ClusterReduction(
        mode=ReductionMode.UNRESOLVED,
        reliability=0.0,
        general="0",
        with_values="0",
        block_ids=list(cluster.block_ids),
    )


def applicable_reductions(cluster: Cluster,
                          settings: Optional[EngineSettings] = None) -> Dict[str, ClusterReduction]:
    """Every strategy that answers for this cluster, keyed by mode."""
    settings = resolve_settings(settings)
    results = {}
    for mode, strategy in REDUCTION_STRATEGIES:
        result = strategy(cluster, settings)
        if result is not None:
            results[mode] = result
    return results
