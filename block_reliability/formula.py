"""
Formula Renderer
================
Symbolic and numeric derivations of the system reliability.

Strings use a minimal inline markup the editor knows how to display:
<sub>, <sup>, <br/>, the multiplication glyph and the plus sign. Every
formula is assembled from the same reduction the number came from, so the
derivation always matches the computation path.
"""

from typing import List, Sequence

from .reliability_math import all_equal, bernoulli_probability, format_to

TIMES = " × "
PLUS = " + "
LINE_BREAK = "<br/>"
EMPTY_FORMULA = "G = 0"


def subscript(text) -> str:
    return f"<sub>{text}</sub>"


def superscript(text) -> str:
    return f"<sup>{text}</sup>"


# =============================================================================
# Expression building blocks
# =============================================================================


def block_label(number: int) -> str:
    """Symbolic reliability of block #n: p_n"""
    return f"p{subscript(number)}"


def block_value(reliability: float, decimals: int = 6) -> str:
    return format_to(reliability, decimals)


def series_expr(parts: Sequence[str]) -> str:
    """Independent AND: a × b × ..."""
    return TIMES.join(parts)


def parallel_expr(parts: Sequence[str]) -> str:
    """Independent OR: [1 - (1 - a) × (1 - b) × ...]"""
    return "[1 - " + TIMES.join(f"(1 - {p})" for p in parts) + "]"


# =============================================================================
# Whole-system formulas
# =============================================================================


def render_clusters(reductions: Sequence, system_reliability: float, decimals: int = 6):
    """G = cluster_1 × cluster_2 × ... for the non-redundant case."""
    if not reductions:
        return EMPTY_FORMULA, EMPTY_FORMULA
    general = "G = " + TIMES.join(r.general for r in reductions)
    with_values = (
        "G = " + TIMES.join(r.with_values for r in reductions)
        + " = " + format_to(system_reliability, decimals)
    )
    return general, with_values


def _probability_terms(min_required: int, total: int) -> List[str]:
    return [f"P{subscript(f'{k},{total}')}" for k in range(min_required, total + 1)]


def render_redundancy(result, probabilities: Sequence[float], decimals: int = 6,
                      tolerance: float = 1e-12):
    """G_np = P_m,n + ... + P_n,n, with one derivation line per term.

    When every pooled block has the same reliability each term is also
    expanded with the Bernoulli formula C(n,k) p^k q^(n-k).
    """
    n = result.total
    m = result.min_required
    terms = _probability_terms(m, n)
    general = f"G{subscript('np')} = " + PLUS.join(terms)

    term_values = [format_to(result.exact_k[k], decimals) for k in range(m, n + 1)]

    if all_equal(probabilities, tolerance):
        p = probabilities[0]
        q = 1.0 - p
        lines = [
            f"P{subscript(f'{k},{n}')} = C{subscript(n)}{superscript(k)}"
            f"{TIMES}{format_to(p, decimals)}{superscript(k)}"
            f"{TIMES}{format_to(q, decimals)}{superscript(n - k)}"
            f" = {format_to(bernoulli_probability(n, k, p), decimals)}"
            for k in range(m, n + 1)
        ]
    else:
        lines = [f"{term} = {value}" for term, value in zip(terms, term_values)]

    sum_line = (
        f"G{subscript('np')} = " + PLUS.join(terms)
        + " = " + PLUS.join(term_values)
        + " = " + format_to(result.reliability, decimals)
    )
    return general, LINE_BREAK.join(lines + [sum_line])
