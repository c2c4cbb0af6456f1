#!/usr/bin/env python3
"""
Engine Validation Script
========================
Checks the evaluation engine against by-hand reliability calculations for a
catalogue of reference diagrams, and checks that every reduction strategy
that answers for a cluster agrees with the others where their domains overlap.

Run with: python -m block_reliability.run_validation
"""

import math
import sys
from typing import Dict, List, Optional

import pandas as pd

from .engine import evaluate_system, render_formula
from .model import Side, coerce_blocks, coerce_connections
from .reduction import ReductionMode, applicable_reductions
from .topology import active_blocks, build_graph, find_clusters

TOLERANCE = 1e-6


# =============================================================================
# Diagram helpers
# =============================================================================


def block(block_id: str, number: int, reliability: float, reserve: bool = False) -> Dict:
    return {"id": block_id, "number": number, "reliability": reliability, "isReserve": reserve}


def wire(a: str, side_a: str, b: str, side_b: str) -> Dict:
    return {
        "id": f"{a}:{side_a}-{b}:{side_b}",
        "fromBlockId": a,
        "fromSide": side_a,
        "toBlockId": b,
        "toSide": side_b,
    }


def signal(a: str, b: str) -> Dict:
    """Output of `a` into input of `b`."""
    return wire(a, Side.RIGHT, b, Side.LEFT)


def bus(a: str, b: str, side: str) -> Dict:
    return wire(a, side, b, side)


# =============================================================================
# BY-HAND IMPLEMENTATIONS (Independent verification)
# =============================================================================


def manual_series(*rs: float) -> float:
    out = 1.0
    for r in rs:
        out *= r
    return out


def manual_parallel(*rs: float) -> float:
    fail = 1.0
    for r in rs:
        fail *= 1.0 - r
    return 1.0 - fail


def manual_k_of_n(p: float, n: int, k: int) -> float:
    return sum(math.comb(n, i) * p ** i * (1 - p) ** (n - i) for i in range(k, n + 1))


# =============================================================================
# Reference diagrams
# =============================================================================


def reference_scenarios() -> List[Dict]:
    """Diagrams with known reliability; `overlap` marks legacy-compatible shapes."""
    scenarios = []

    scenarios.append({
        "name": "Single block",
        "blocks": [block("a", 1, 0.9)],
        "connections": [],
        "expected": 0.9,
        "overlap": True,
    })

    scenarios.append({
        "name": "Two in series",
        "blocks": [block("a", 1, 0.9), block("b", 2, 0.8)],
        "connections": [signal("a", "b")],
        "expected": manual_series(0.9, 0.8),
        "overlap": True,
    })

    scenarios.append({
        "name": "Two on parallel buses",
        "blocks": [block("a", 1, 0.9), block("b", 2, 0.8)],
        "connections": [bus("a", "b", Side.LEFT), bus("a", "b", Side.RIGHT)],
        "expected": manual_parallel(0.9, 0.8),
        "overlap": True,
    })

    scenarios.append({
        "name": "Parallel pair then series block",
        "blocks": [block("a", 1, 0.9), block("b", 2, 0.8), block("c", 3, 0.95)],
        "connections": [
            bus("a", "b", Side.LEFT), bus("a", "b", Side.RIGHT),
            signal("a", "c"), signal("b", "c"),
        ],
        "expected": manual_parallel(0.9, 0.8) * 0.95,
        "overlap": True,
    })

    scenarios.append({
        "name": "Disjoint chains behind a perfect feeder",
        "blocks": [
            block("s", 1, 1.0),
            block("a", 2, 0.9), block("b", 3, 0.8),
            block("c", 4, 0.95), block("d", 5, 0.85), block("e", 6, 0.9),
        ],
        "connections": [
            signal("s", "a"), signal("s", "c"),
            signal("a", "b"), signal("c", "d"), signal("d", "e"),
            bus("b", "e", Side.RIGHT),
        ],
        "expected": manual_parallel(manual_series(0.9, 0.8), manual_series(0.95, 0.85, 0.9)),
        "overlap": False,
    })

    scenarios.append({
        "name": "Two main + one reserve",
        "blocks": [block("a", 1, 0.9), block("b", 2, 0.9), block("r", 3, 0.9, reserve=True)],
        "connections": [signal("a", "b")],
        "expected": manual_k_of_n(0.9, 3, 2),
        "overlap": True,
    })

    return scenarios


# =============================================================================
# Validation sections
# =============================================================================


def validate_scenarios() -> pd.DataFrame:
    """Engine result vs hand calculation for every reference diagram."""
    rows = []
    for sc in reference_scenarios():
        result = evaluate_system(sc["blocks"], sc["connections"])
        modes = sorted({c.mode for c in result.chains})
        delta = abs(result.system_reliability - sc["expected"])
        rows.append({
            "scenario": sc["name"],
            "expected": round(sc["expected"], 6),
            "engine": result.system_reliability,
            "mode": ", ".join(modes),
            "delta": delta,
            "status": "PASS" if delta < TOLERANCE else "FAIL",
        })
    return pd.DataFrame(rows)


def validate_strategy_agreement() -> pd.DataFrame:
    """Every answering strategy per cluster, for legacy-compatible diagrams."""
    rows = []
    for sc in reference_scenarios():
        if not sc["overlap"]:
            continue
        blocks = coerce_blocks(sc["blocks"])
        connections = coerce_connections(sc["connections"])
        main = [b for b in active_blocks(blocks, connections) if not b.is_reserve]
        graph = build_graph(blocks, connections)
        for cluster in find_clusters(graph, connections, main):
            results = applicable_reductions(cluster)
            values = [r.reliability for r in results.values()]
            spread = max(values) - min(values) if values else 0.0
            rows.append({
                "scenario": sc["name"],
                "cluster": ",".join(cluster.ordered_ids()),
                ReductionMode.SERIES_PARALLEL: _value(results, ReductionMode.SERIES_PARALLEL),
                ReductionMode.PARALLEL_PATHS: _value(results, ReductionMode.PARALLEL_PATHS),
                ReductionMode.LEGACY_GROUPS: _value(results, ReductionMode.LEGACY_GROUPS),
                "spread": spread,
                "status": "PASS" if spread < TOLERANCE else "FAIL",
            })
    return pd.DataFrame(rows)


def _value(results: Dict, mode: str) -> Optional[float]:
    r = results.get(mode)
    return r.reliability if r is not None else None


def validate_empty_system() -> bool:
    result = evaluate_system([], [])
    formula = render_formula([], [])
    return result.system_reliability == 0 and formula.to_dict() == {
        "general": "G = 0",
        "withValues": "G = 0",
    }


def run_full_validation() -> bool:
    """Run complete validation suite."""
    print("\n" + "=" * 70)
    print(" BLOCK DIAGRAM RELIABILITY ENGINE VALIDATION ".center(70))
    print("=" * 70)

    print("\n1. REFERENCE DIAGRAMS")
    print("-" * 70)
    scenarios = validate_scenarios()
    print(scenarios.to_string(index=False))

    print("\n2. STRATEGY AGREEMENT")
    print("-" * 70)
    agreement = validate_strategy_agreement()
    print(agreement.to_string(index=False))

    print("\n3. EMPTY SYSTEM")
    print("-" * 70)
    empty_ok = validate_empty_system()
    print(f"  G = 0 for an empty diagram: {'PASS' if empty_ok else 'FAIL'}")

    all_pass = (
        bool((scenarios["status"] == "PASS").all())
        and bool((agreement["status"] == "PASS").all())
        and empty_ok
    )

    print("\n" + "-" * 70)
    if all_pass:
        print("  OVERALL: ALL CHECKS PASSED")
    else:
        print("  OVERALL: SOME CHECKS FAILED - Review required")
    print("-" * 70)
    return all_pass


def main() -> int:
    return 0 if run_full_validation() else 1


if __name__ == "__main__":
    sys.exit(main())
