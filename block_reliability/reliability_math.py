"""
Reliability Math Primitives
===========================
Probability arithmetic shared by every stage of the evaluation engine.

All probabilities that leave the engine are clamped to [0, 1] and rounded
to a fixed number of decimals so that floating-point accumulation never
produces out-of-range values or unstable trailing digits.

Combination rules for independent blocks:
    - Series (AND):     R = product(R_i)
    - Parallel (OR):    R = 1 - product(1 - R_i)
    - K-of-N standby:   R = sum_{k=m}^{n} P(exactly k of n succeed)
"""

import math
import re
import sys
from typing import List, Sequence

import numpy as np

DECIMAL_PLACES = 6
MAX_DECIMAL_PLACES = 15     # beyond this a double has no digits left to round
DEFAULT_BLOCK_RELIABILITY = 0.95


# =============================================================================
# Input validation -- fail-safe, clamp-safe
# =============================================================================


def _safe_float(val, default: float = 0.0) -> float:
    """Safely convert any value to float with a default fallback."""
    if val is None:
        return default
    try:
        v = float(val)
    except (TypeError, ValueError, OverflowError):
        return default
    if math.isnan(v):
        return default
    return v


def _safe_int(val, default: int = 0) -> int:
    """Safely convert any value to int with a default fallback."""
    if val is None:
        return default
    try:
        return int(float(val))
    except (TypeError, ValueError, OverflowError):
        return default


def validate_ratio(val, default: float = 0.0) -> float:
    """Ensure value is in [0, 1]. Clamps silently for robustness."""
    v = _safe_float(val, default)
    return max(0.0, min(1.0, v))


def normalize_reliability(value) -> float:
    """Turn a user-typed reliability into a probability.

    Strings may use a comma as decimal separator; anything that is not a
    digit or a dot is dropped. Unparseable input falls back to the default
    block reliability.
    """
    if isinstance(value, str):
        cleaned = re.sub(r"[^\d.]", "", value.replace(",", ".", 1))
        match = re.match(r"\d*\.?\d*", cleaned)
        text = match.group(0) if match else ""
        try:
            parsed = float(text)
        except ValueError:
            return DEFAULT_BLOCK_RELIABILITY
        return validate_ratio(parsed)
    return validate_ratio(value, DEFAULT_BLOCK_RELIABILITY)


# =============================================================================
# Rounding and display
# =============================================================================


def _clamp_decimals(decimals) -> int:
    return max(0, min(_safe_int(decimals, DECIMAL_PLACES), MAX_DECIMAL_PLACES))


def round_to(value: float, decimals: int = DECIMAL_PLACES) -> float:
    """Round half-up to `decimals` places, nudged by machine epsilon."""
    decimals = _clamp_decimals(decimals)
    v = _safe_float(value)
    if math.isinf(v):
        return v
    factor = 10 ** decimals
    scaled = (v + sys.float_info.epsilon) * factor + 0.5
    if math.isinf(scaled):
        return v
    return math.floor(scaled) / factor


def round_probability(value: float, decimals: int = DECIMAL_PLACES) -> float:
    """Clamp to [0, 1] then round. Idempotent."""
    return round_to(validate_ratio(value), decimals)


def format_to(value: float, decimals: int = DECIMAL_PLACES) -> str:
    """Rounded fixed-point text with trailing zeros stripped (0.950000 -> 0.95)."""
    decimals = _clamp_decimals(decimals)
    text = f"{round_to(value, decimals):.{decimals}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


# =============================================================================
# System combination rules
# =============================================================================


def r_series(r_list):
    """Series system: R_sys = product(R_i)"""
    if not r_list:
        return 1.0
    result = 1.0
    for r in r_list:
        result *= _safe_float(r, 1.0)
    return result


def r_parallel(r_list):
    """Parallel system: R_sys = 1 - product(1 - R_i)"""
    if not r_list:
        return 1.0
    p_fail = 1.0
    for r in r_list:
        p_fail *= 1.0 - _safe_float(r, 1.0)
    return 1.0 - p_fail


def binomial_coefficient(n: int, k: int) -> int:
    """C(n, k); zero outside 0 <= k <= n."""
    if k < 0 or k > n:
        return 0
    return math.comb(n, k)


def bernoulli_probability(n: int, k: int, p: float) -> float:
    """P(exactly k of n succeed) for identical blocks: C(n,k) p^k q^(n-k)"""
    q = 1.0 - p
    return binomial_coefficient(n, k) * (p ** k) * (q ** (n - k))


def exact_k_probabilities(probabilities: Sequence[float]) -> List[float]:
    """Poisson-binomial distribution of the number of successes.

    result[k] = P(exactly k of the n independent blocks succeed). Built by
    the usual dynamic programme, one block at a time, updating from the
    top count down so each block is counted once.
    """
    n = len(probabilities)
    dp = np.zeros(n + 1, dtype=float)
    dp[0] = 1.0
    for p in probabilities:
        p = validate_ratio(p)
        dp[1:] = dp[1:] * (1.0 - p) + dp[:-1] * p
        dp[0] = dp[0] * (1.0 - p)
    return [float(v) for v in dp]


def all_equal(values: Sequence[float], tolerance: float = 1e-12) -> bool:
    """True when every value is within `tolerance` of the first."""
    if not values:
        return False
    first = values[0]
    return all(abs(v - first) < tolerance for v in values)
