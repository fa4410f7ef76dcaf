from __future__ import annotations

import math

from .distance import round_half_up
from .models import RouteCluster

MIN_HALF_SPREAD: int = 500
MIN_LOWER_PRICE: int = 500
# log10(count + 1) / 3 saturates at roughly 1000 samples.
COUNT_SATURATION_DECADES: float = 3.0


def normalize_variance(variance: float | None, median_price: float) -> float:
    """Variance scaled by the squared price level, clamped to [0, 1].

    Missing, non-finite and non-positive variance all mean "no discount".
    """
    if variance is None or not math.isfinite(variance) or variance <= 0:
        return 0.0
    denominator = max(1.0, float(median_price)) ** 2
    return min(1.0, float(variance) / denominator)


def compute_confidence_score(sample_count: int, variance: float | None, median_price: float) -> float:
    count_component = min(1.0, math.log10(max(int(sample_count), 0) + 1) / COUNT_SATURATION_DECADES)
    score = count_component * (1.0 - normalize_variance(variance, median_price))
    return round(max(0.0, min(1.0, score)), 4)


def suggested_price_range(median: int, iqr: int | float) -> tuple[int, int]:
    spread = max(MIN_HALF_SPREAD, round_half_up(max(float(iqr), 0.0) / 2))
    lower = max(MIN_LOWER_PRICE, int(median) - spread)
    upper = int(median) + spread
    return lower, upper


def recomputed_confidence(cluster: RouteCluster) -> float:
    return compute_confidence_score(cluster.sample_count, cluster.price_variance, cluster.median_price)


def is_confidence_stale(cluster: RouteCluster, *, tolerance: float = 0.01) -> bool:
    """True when the stored score drifted from the model, i.e. the cluster awaits a refresh."""
    return abs(float(cluster.confidence_score) - recomputed_confidence(cluster)) > tolerance
