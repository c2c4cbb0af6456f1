"""
Reliability Evaluation Engine
=============================
Public entry points called by the diagram editor on every edit.

    is_active(block_id, blocks, connections, is_reserve)
    evaluate_system(blocks, connections)  -> SystemEvaluation
    render_formula(blocks, connections)   -> FormulaResult

Each call is a pure evaluation of the diagram as given: nothing is cached,
nothing is mutated, and malformed diagrams degrade to a reliability of 0
instead of raising.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .formula import EMPTY_FORMULA, render_clusters, render_redundancy
from .model import Block, coerce_blocks, coerce_connections, hashable_id
from .reduction import ClusterReduction, legacy_groups, reduce_cluster
from .redundancy import RedundancyResult, evaluate_redundancy
from .reliability_math import r_parallel, r_series, round_probability
from .settings import EngineSettings, resolve_settings
from .topology import ActivityClassifier, Cluster, active_blocks, build_graph, find_clusters

logger = logging.getLogger(__name__)


# =============================================================================
# Result types
# =============================================================================


@dataclass
class ChainDetail:
    """One cluster of the working configuration."""
    blocks: List[str]
    reliability: float
    reserves: List[str] = field(default_factory=list)
    with_reserve_reliability: float = 0.0
    mode: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "blocks": list(self.blocks),
            "reliability": self.reliability,
            "reserves": list(self.reserves),
            "withReserveReliability": self.with_reserve_reliability,
            "mode": self.mode,
        }


@dataclass
class ParallelGroupDetail:
    """Blocks tied together on both rails."""
    blocks: List[str]
    reliability: float

    def to_dict(self) -> Dict[str, Any]:
        return {"blocks": list(self.blocks), "reliability": self.reliability}


@dataclass
class SystemEvaluation:
    system_reliability: float = 0.0
    chains: List[ChainDetail] = field(default_factory=list)
    parallel_groups: List[ParallelGroupDetail] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "systemReliability": self.system_reliability,
            "details": {
                "chains": [c.to_dict() for c in self.chains],
                "parallelGroups": [g.to_dict() for g in self.parallel_groups],
            },
        }


@dataclass
class FormulaResult:
    general: str = EMPTY_FORMULA
    with_values: str = EMPTY_FORMULA

    def to_dict(self) -> Dict[str, str]:
        return {"general": self.general, "withValues": self.with_values}


# =============================================================================
# Shared analysis
# =============================================================================


@dataclass
class _Analysis:
    blocks: Dict[str, Block]
    main: List[Block]
    reserves: List[Block]
    clusters: List[Cluster]
    reductions: List[ClusterReduction]
    redundancy: Optional[RedundancyResult]
    system_reliability: float


def _analyze(blocks, connections, settings: EngineSettings) -> Optional[_Analysis]:
    """Classify, decompose, and reduce; None when nothing is active."""
    blocks = coerce_blocks(blocks)
    connections = coerce_connections(connections)
    if not blocks:
        return None

    active = active_blocks(blocks, connections)
    main = [b for b in active if not b.is_reserve]
    reserves = [b for b in active if b.is_reserve]
    if not main:
        logger.debug("No active main blocks among %d blocks", len(blocks))
        return None

    graph = build_graph(blocks, connections)
    clusters = find_clusters(graph, connections, main)
    reductions = [reduce_cluster(c, settings) for c in clusters]

    decimals = settings.decimal_places
    redundancy = None
    if reserves:
        redundancy = evaluate_redundancy(
            [b.id for b in main], [b.id for b in reserves], graph.blocks, decimals
        )
        system = redundancy.reliability
    else:
        system = round_probability(r_series([r.reliability for r in reductions]), decimals)

    return _Analysis(
        blocks=graph.blocks,
        main=main,
        reserves=reserves,
        clusters=clusters,
        reductions=reductions,
        redundancy=redundancy,
        system_reliability=system,
    )


# =============================================================================
# Public API
# =============================================================================


def is_active(block_id, blocks, connections, is_reserve: bool = False) -> bool:
    """Whether the block takes part in the working configuration."""
    return ActivityClassifier(
        coerce_blocks(blocks), coerce_connections(connections)
    ).is_active(hashable_id(block_id), bool(is_reserve))


def evaluate_system(blocks, connections, settings: Optional[EngineSettings] = None) -> SystemEvaluation:
    """System reliability plus a per-cluster breakdown."""
    settings = resolve_settings(settings)
    analysis = _analyze(blocks, connections, settings)
    if analysis is None:
        return SystemEvaluation()

    decimals = settings.decimal_places
    reserve_ids = [b.id for b in analysis.reserves]

    chains = []
    for cluster, reduction in zip(analysis.clusters, analysis.reductions):
        if reserve_ids:
            with_reserve = evaluate_redundancy(
                cluster.block_ids, reserve_ids, analysis.blocks, decimals
            ).reliability
        else:
            with_reserve = reduction.reliability
        chains.append(ChainDetail(
            blocks=list(cluster.block_ids),
            reliability=round_probability(reduction.reliability, decimals),
            reserves=list(reserve_ids),
            with_reserve_reliability=round_probability(with_reserve, decimals),
            mode=reduction.mode,
        ))

    groups = []
    for cluster in analysis.clusters:
        for group in legacy_groups(cluster):
            if len(group) < 2:
                continue
            r = r_parallel([cluster.block(bid).reliability for bid in group])
            groups.append(ParallelGroupDetail(blocks=group, reliability=round_probability(r, decimals)))

    return SystemEvaluation(
        system_reliability=round_probability(analysis.system_reliability, decimals),
        chains=chains,
        parallel_groups=groups,
    )


def render_formula(blocks, connections, settings: Optional[EngineSettings] = None) -> FormulaResult:
    """General and with-values derivations matching `evaluate_system`."""
    settings = resolve_settings(settings)
    analysis = _analyze(blocks, connections, settings)
    if analysis is None:
        return FormulaResult()

    decimals = settings.decimal_places
    if analysis.redundancy is not None:
        general, with_values = render_redundancy(
            analysis.redundancy,
            analysis.redundancy.probabilities,
            decimals,
            settings.equal_probability_tolerance,
        )
    else:
        general, with_values = render_clusters(
            analysis.reductions, analysis.system_reliability, decimals
        )
    return FormulaResult(general=general, with_values=with_values)


# Names used by the editor
isActive = is_active
evaluateSystem = evaluate_system
renderFormula = render_formula
