from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import Engine, select
from sqlalchemy.exc import SQLAlchemyError

from .db import route_clusters
from .errors import UpstreamQueryFailure
from .models import RouteCluster


@dataclass(frozen=True)
class CandidateFilter:
    """One read against the cluster table.

    None on a temporal or vehicle field means that constraint is not applied.
    """

    start_buckets: Sequence[str]
    end_buckets: Sequence[str]
    time_bucket: int | None = None
    day_of_week: int | None = None
    vehicle_type: str | None = None
    limit: int = 100


class ClusterStore(Protocol):
    def query_candidates(self, flt: CandidateFilter) -> list[RouteCluster]:
        """Rows with sample_count >= 1, best confidence first, then most samples."""
        ...


def _row_to_cluster(row: Any) -> RouteCluster:
    return RouteCluster.model_validate(dict(row._mapping))


class SqlClusterStore:
    """Read-only view over the route_clusters table kept fresh by the aggregation job."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def query_candidates(self, flt: CandidateFilter) -> list[RouteCluster]:
        stmt = (
            select(route_clusters)
            .where(route_clusters.c.start_bucket.in_(list(flt.start_buckets)))
            .where(route_clusters.c.end_bucket.in_(list(flt.end_buckets)))
            .where(route_clusters.c.sample_count >= 1)
        )
        if flt.time_bucket is not None and flt.day_of_week is not None:
            stmt = stmt.where(route_clusters.c.time_bucket == flt.time_bucket).where(
                route_clusters.c.day_of_week == flt.day_of_week
            )
        if flt.vehicle_type:
            stmt = stmt.where(route_clusters.c.vehicle_type == flt.vehicle_type)
        stmt = stmt.order_by(
            route_clusters.c.confidence_score.desc(),
            route_clusters.c.sample_count.desc(),
        ).limit(max(1, int(flt.limit)))

        try:
            with self._engine.connect() as conn:
                rows = conn.execute(stmt).fetchall()
        except SQLAlchemyError as e:
            raise UpstreamQueryFailure(
                message=f"route cluster query failed: {type(e).__name__}",
                details={"error": str(e)[:240]},
            ) from e
        try:
            return [_row_to_cluster(row) for row in rows]
        except PydanticValidationError as e:
            raise UpstreamQueryFailure(
                message="route cluster row failed validation",
                details={"error": str(e)[:240]},
            ) from e
