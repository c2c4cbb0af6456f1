"""
Standby Redundancy
==================
K-out-of-N evaluation over a pooled set of main and reserve blocks.

The system works when at least as many blocks succeed as there are main
blocks, whichever blocks those happen to be. Block reliabilities may all
differ, so the distribution of successes is Poisson-binomial.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from .model import Block
from .reliability_math import DECIMAL_PLACES, exact_k_probabilities, round_probability


@dataclass
class RedundancyResult:
    """Outcome of a k-out-of-n evaluation."""
    reliability: float
    min_required: int
    total: int
    exact_k: List[float] = field(default_factory=list)   # P(exactly k succeed), rounded
    probabilities: List[float] = field(default_factory=list)


def evaluate_redundancy(main_ids: Sequence[str], reserve_ids: Sequence[str],
                        blocks: Dict[str, Block],
                        decimals: int = DECIMAL_PLACES) -> RedundancyResult:
    """P(at least len(main_ids) of the pooled blocks succeed)."""
    pooled = [bid for bid in list(main_ids) + list(reserve_ids) if bid in blocks]
    probabilities = [blocks[bid].reliability for bid in pooled]
    n = len(probabilities)
    min_required = len(main_ids)

    dist = exact_k_probabilities(probabilities)
    total = sum(dist[k] for k in range(min_required, n + 1))

    return RedundancyResult(
        reliability=round_probability(total, decimals),
        min_required=min_required,
        total=n,
        exact_k=[round_probability(v, decimals) for v in dist],
        probabilities=probabilities,
    )
