from __future__ import annotations

from dataclasses import dataclass

from .cluster_store import CandidateFilter, ClusterStore
from .geo_buckets import neighboring_bucket_keys
from .models import RouteCluster, SuggestQuery
from .settings import settings
from .time_of_day import Clock, current_temporal_buckets, utc_now


@dataclass(frozen=True)
class RelaxationPass:
    name: str
    temporal: bool
    vehicle: bool


# Tried in order; the first pass with any candidate wins. Time-of-day pricing
# swings more than vehicle pricing, so temporal context is kept longer.
RELAXATION_PASSES: tuple[RelaxationPass, ...] = (
    RelaxationPass("temporal_vehicle", temporal=True, vehicle=True),
    RelaxationPass("temporal", temporal=True, vehicle=False),
    RelaxationPass("vehicle", temporal=False, vehicle=True),
    RelaxationPass("any", temporal=False, vehicle=False),
)


@dataclass(frozen=True)
class ClusterMatch:
    cluster: RouteCluster
    pass_name: str


def normalize_vehicle_type(vehicle_type: str | None) -> str | None:
    if not vehicle_type:
        return None
    cleaned = vehicle_type.strip().lower()
    return cleaned or None


def scoped_query(query: SuggestQuery, clock: Clock = utc_now) -> SuggestQuery:
    """Fill missing hour/weekday from the local clock so "now" is the implicit context."""
    if query.time_bucket is not None and query.day_of_week is not None:
        return query
    now = current_temporal_buckets(clock)
    return query.model_copy(
        update={
            "time_bucket": query.time_bucket if query.time_bucket is not None else now.time_bucket,
            "day_of_week": query.day_of_week if query.day_of_week is not None else now.day_of_week,
        }
    )


def find_best_route_cluster(
    store: ClusterStore,
    query: SuggestQuery,
    *,
    clock: Clock = utc_now,
    grid_size: float | None = None,
    limit: int | None = None,
) -> ClusterMatch | None:
    """Four-pass relaxed lookup over neighbouring buckets.

    Store failures (UpstreamQueryFailure) propagate; there is no retry here.
    """
    grid = grid_size or settings.grid_size_degrees
    row_limit = limit or settings.candidate_limit
    scoped = scoped_query(query, clock)
    start_buckets = neighboring_bucket_keys(scoped.start, grid)
    end_buckets = neighboring_bucket_keys(scoped.end, grid)
    vehicle_type = normalize_vehicle_type(scoped.vehicle_type)

    for relax in RELAXATION_PASSES:
        flt = CandidateFilter(
            start_buckets=start_buckets,
            end_buckets=end_buckets,
            time_bucket=scoped.time_bucket if relax.temporal else None,
            day_of_week=scoped.day_of_week if relax.temporal else None,
            vehicle_type=vehicle_type if relax.vehicle else None,
            limit=row_limit,
        )
        candidates = store.query_candidates(flt)
        if candidates:
            return ClusterMatch(cluster=candidates[0], pass_name=relax.name)

    return None
