from __future__ import annotations

import logging

from .candidate_search import find_best_route_cluster
from .cluster_store import ClusterStore
from .confidence_model import is_confidence_stale, suggested_price_range
from .distance import derive_preset_prices, haversine_distance_m
from .errors import UpstreamQueryFailure
from .logging_utils import log_event
from .metrics_store import record_suggestion_source
from .models import LatLng, RouteCluster, SuggestPriceResponse, SuggestQuery
from .settings import settings
from .time_of_day import Clock, utc_now


def fallback_suggest_response(start: LatLng, end: LatLng) -> SuggestPriceResponse:
    distance_m = haversine_distance_m(start, end)
    low, baseline, high = derive_preset_prices(distance_m)
    return SuggestPriceResponse(
        suggested_price=baseline,
        price_range=(low, high),
        median=baseline,
        count=0,
        confidence=0.0,
        last_updated=None,
        cluster_id=None,
        start=start,
        end=end,
    )


def cluster_to_suggest_response(cluster: RouteCluster, start: LatLng, end: LatLng) -> SuggestPriceResponse:
    return SuggestPriceResponse(
        suggested_price=cluster.median_price,
        price_range=suggested_price_range(cluster.median_price, cluster.iqr_price),
        median=cluster.median_price,
        count=cluster.sample_count,
        confidence=float(cluster.confidence_score or 0.0),
        last_updated=cluster.last_updated,
        cluster_id=cluster.cluster_id,
        start=start,
        end=end,
    )


def suggest_price(
    store: ClusterStore,
    query: SuggestQuery,
    *,
    clock: Clock = utc_now,
) -> SuggestPriceResponse:
    """Best available suggestion; never raises for store trouble.

    A failed cluster lookup degrades to the distance-only fallback.
    """
    try:
        match = find_best_route_cluster(store, query, clock=clock)
    except UpstreamQueryFailure as e:
        log_event(
            "suggest_fallback",
            level=logging.WARNING,
            cause="cluster_query_failed",
            reason_code=e.reason_code,
            error=e.message,
        )
        record_suggestion_source("fallback")
        return fallback_suggest_response(query.start, query.end)

    if match is None:
        log_event("suggest_fallback", cause="no_cluster")
        record_suggestion_source("fallback")
        return fallback_suggest_response(query.start, query.end)

    cluster = match.cluster
    if is_confidence_stale(cluster, tolerance=settings.confidence_staleness_tolerance):
        log_event(
            "cluster_confidence_stale",
            level=logging.WARNING,
            cluster_id=cluster.cluster_id,
            stored_confidence=cluster.confidence_score,
            sample_count=cluster.sample_count,
        )
    record_suggestion_source("cluster")
    log_event(
        "suggest_cluster_match",
        cluster_id=cluster.cluster_id,
        relaxation_pass=match.pass_name,
        sample_count=cluster.sample_count,
    )
    return cluster_to_suggest_response(cluster, query.start, query.end)
