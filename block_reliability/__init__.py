"""
Block Diagram Reliability Engine
================================
Live reliability estimate for diagrams of blocks wired by signal edges
and bus ties.

Version: 1.2.0

Features:
- Activity classification of blocks (anchor block, signal inputs, parallel branches)
- Weakly-connected cluster decomposition over signal edges and bus ties
- Exact series-parallel reduction over merged terminal nodes
- Disjoint parallel-path decomposition between entry and exit buses
- Bus-pair grouping fallback for shapes the reducers do not recognise
- K-out-of-N standby redundancy with pooled main and reserve blocks
- Symbolic and numeric formulas that mirror the computation path

License: MIT
"""

__version__ = "1.2.0"

from .reliability_math import (
    round_to,
    round_probability,
    format_to,
    normalize_reliability,
    r_series,
    r_parallel,
    binomial_coefficient,
    bernoulli_probability,
    exact_k_probabilities,
)

from .model import Side, Block, Connection, coerce_blocks, coerce_connections

from .settings import EngineSettings, DEFAULT_SETTINGS

from .topology import (
    ConnectionGraph,
    Cluster,
    build_graph,
    active_blocks,
    find_clusters,
)

from .reduction import (
    ReductionMode,
    ClusterReduction,
    REDUCTION_STRATEGIES,
    reduce_cluster,
    reduce_series_parallel,
    reduce_parallel_paths,
    reduce_legacy_groups,
)

from .redundancy import RedundancyResult, evaluate_redundancy

from .engine import (
    SystemEvaluation,
    ChainDetail,
    ParallelGroupDetail,
    FormulaResult,
    is_active,
    evaluate_system,
    render_formula,
    isActive,
    evaluateSystem,
    renderFormula,
)
