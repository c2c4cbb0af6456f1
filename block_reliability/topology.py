"""
Diagram Topology
================
Turns the editor's blocks and wires into the structures the reducers work on.

    - Graph builder:           directed adjacency over signal edges only
    - Connectivity classifier: which blocks take part in the working system
    - Component decomposer:    weakly-connected clusters of active main blocks

Bus ties (left-left, right-right) never appear in the adjacency; they only
matter for classification, clustering, and later as terminal merges.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .model import Block, Connection, Side


# =============================================================================
# Graph builder
# =============================================================================


@dataclass
class ConnectionGraph:
    """Blocks by id plus who each block signal-feeds."""
    blocks: Dict[str, Block]
    adjacency: Dict[str, List[str]]

    def successors(self, block_id: str) -> List[str]:
        return self.adjacency.get(block_id, [])


def build_graph(blocks: Sequence[Block], connections: Sequence[Connection]) -> ConnectionGraph:
    graph = ConnectionGraph(blocks={}, adjacency={})
    for block in blocks:
        graph.blocks[block.id] = block
        graph.adjacency.setdefault(block.id, [])

    for conn in connections:
        direction = conn.signal_direction()
        if direction is None or conn.is_self_loop:
            continue
        src, dst = direction
        if src not in graph.blocks or dst not in graph.blocks:
            continue
        out = graph.adjacency[src]
        if dst not in out:
            out.append(dst)
    return graph


# =============================================================================
# Connectivity classifier
# =============================================================================


def valid_inputs(block_id: str, connections: Sequence[Connection]) -> List[str]:
    """Blocks whose output is wired into this block's input."""
    inputs: List[str] = []
    for conn in connections:
        if conn.is_self_loop:
            continue
        direction = conn.signal_direction()
        if direction is not None and direction[1] == block_id and direction[0] not in inputs:
            inputs.append(direction[0])
    return inputs


def bus_ties(block_id: str, side: str, connections: Sequence[Connection]) -> List[Connection]:
    """Bus ties of `side` kind that touch this block."""
    return [
        c for c in connections
        if c.is_bus_tie and c.from_side == side and not c.is_self_loop
        and (c.from_block_id == block_id or c.to_block_id == block_id)
    ]


class ActivityClassifier:
    """Per-block activity rules, evaluated independently for each block.

    The parallel-branch rule only looks one tie away: a left-tied neighbour
    counts as active when it is the first block or has a signal input. It is
    not a fixed point over the whole diagram.
    """

    def __init__(self, blocks: Sequence[Block], connections: Sequence[Connection]):
        self.connections = connections
        self.by_id: Dict[str, Block] = {b.id: b for b in blocks}
        self.main = [b for b in blocks if not b.is_reserve]
        self.min_number: Optional[int] = min((b.number for b in self.main), default=None)
        self._inputs: Dict[str, List[str]] = {}

    def inputs(self, block_id: str) -> List[str]:
        if block_id not in self._inputs:
            self._inputs[block_id] = [
                src for src in valid_inputs(block_id, self.connections) if src in self.by_id
            ]
        return self._inputs[block_id]

    def is_anchor(self, block: Block) -> bool:
        return block.number == self.min_number

    def is_active(self, block_id: str, is_reserve: bool = False) -> bool:
        if is_reserve:
            return True

        if len(self.main) == 1:
            return self.main[0].id == block_id

        block = self.by_id.get(block_id)
        if block is None:
            return False

        if self.is_anchor(block):
            return True

        if self.inputs(block_id):
            return True

        left = bus_ties(block_id, Side.LEFT, self.connections)
        right = bus_ties(block_id, Side.RIGHT, self.connections)
        if not left or not right:
            return False

        for tie in left:
            neighbor = self.by_id.get(tie.other_end(block_id))
            if neighbor is None or neighbor.is_reserve:
                continue
            if self.is_anchor(neighbor) or self.inputs(neighbor.id):
                return True
        return False


def is_block_active(block_id: str, blocks: Sequence[Block], connections: Sequence[Connection],
                    is_reserve: bool = False) -> bool:
    return ActivityClassifier(blocks, connections).is_active(block_id, is_reserve)


def active_blocks(blocks: Sequence[Block], connections: Sequence[Connection]) -> List[Block]:
    """Blocks of the working configuration, in caller order."""
    classifier = ActivityClassifier(blocks, connections)
    return [b for b in blocks if classifier.is_active(b.id, b.is_reserve)]


# =============================================================================
# Component decomposer
# =============================================================================


@dataclass
class Cluster:
    """A weakly-connected set of active main blocks and the wires among them."""
    block_ids: List[str]
    blocks: Dict[str, Block]
    connections: List[Connection] = field(default_factory=list)
    adjacency: Dict[str, List[str]] = field(default_factory=dict)

    def block(self, block_id: str) -> Block:
        return self.blocks[block_id]

    def ordered_ids(self) -> List[str]:
        """Block ids sorted by display number."""
        return sorted(self.block_ids, key=lambda bid: self.blocks[bid].number)


def find_clusters(graph: ConnectionGraph, connections: Sequence[Connection],
                  members: Sequence[Block]) -> List[Cluster]:
    """Group `members` (active main blocks) into clusters over every wire kind."""
    allowed = {b.id for b in members if not b.is_reserve}

    neighbors: Dict[str, List[str]] = {bid: [] for bid in allowed}
    for conn in connections:
        if conn.is_self_loop:
            continue
        a, b = conn.from_block_id, conn.to_block_id
        if a in allowed and b in allowed:
            if b not in neighbors[a]:
                neighbors[a].append(b)
            if a not in neighbors[b]:
                neighbors[b].append(a)

    visited = set()
    clusters: List[Cluster] = []
    for block in members:
        if block.id not in allowed or block.id in visited:
            continue
        component: List[str] = []
        stack = [block.id]
        while stack:
            current = stack.pop()
            if current in visited:
                continue
            visited.add(current)
            component.append(current)
            for nxt in reversed(neighbors[current]):
                if nxt not in visited:
                    stack.append(nxt)
        clusters.append(_make_cluster(component, graph, connections))
    return clusters


def _make_cluster(component: List[str], graph: ConnectionGraph,
                  connections: Sequence[Connection]) -> Cluster:
    ids = set(component)
    inner = [
        c for c in connections
        if not c.is_self_loop and c.from_block_id in ids and c.to_block_id in ids
    ]
    adjacency = {bid: [t for t in graph.successors(bid) if t in ids] for bid in component}
    return Cluster(
        block_ids=list(component),
        blocks={bid: graph.blocks[bid] for bid in component},
        connections=inner,
        adjacency=adjacency,
    )
