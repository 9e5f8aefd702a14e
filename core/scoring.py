from __future__ import annotations

from typing import Mapping, Optional

from core.comparison_config import DEFAULT_OVERALL_WEIGHTS


def aggregate_score(
    metrics: Mapping[str, float],
    weights: Optional[Mapping[str, float]] = None,
) -> float:
    """
    Weighted mean of `metrics` over the keys of `weights`.

    Weight keys missing from `metrics` are skipped (they add nothing to the
    numerator or the denominator); metrics without a weight are ignored.
    Returns 0.0 when the effective weight sum is 0.
    """
    weights = DEFAULT_OVERALL_WEIGHTS if weights is None else weights
    total = 0.0
    weight_sum = 0.0
    for name, w in weights.items():
        if name not in metrics:
            continue
        total += float(metrics[name]) * float(w)
        weight_sum += float(w)
    if weight_sum <= 0:
        return 0.0
    return max(0.0, min(1.0, total / weight_sum))
