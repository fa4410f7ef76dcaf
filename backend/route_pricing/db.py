from __future__ import annotations

from pathlib import Path
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Engine,
    Float,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    UniqueConstraint,
    create_engine,
    func,
)

from .settings import settings

METADATA = MetaData()

# Written only by the external aggregation job.
route_clusters = Table(
    "route_clusters",
    METADATA,
    Column("cluster_id", String(64), primary_key=True),
    Column("start_bucket", String(32), nullable=False),
    Column("end_bucket", String(32), nullable=False),
    Column("time_bucket", Integer, nullable=True),
    Column("day_of_week", Integer, nullable=True),
    Column("vehicle_type", String(30), nullable=True),
    Column("centroid_start_lat", Float, nullable=False),
    Column("centroid_start_lng", Float, nullable=False),
    Column("centroid_end_lat", Float, nullable=False),
    Column("centroid_end_lng", Float, nullable=False),
    Column("median_price", Integer, nullable=False),
    Column("iqr_price", Integer, nullable=False, default=0),
    Column("price_variance", Float, nullable=True),
    Column("sample_count", Integer, nullable=False, default=0),
    Column("confidence_score", Float, nullable=False, default=0.0),
    Column("first_sample_at", DateTime(timezone=True), nullable=True),
    Column("last_updated", DateTime(timezone=True), nullable=True),
    Index("ix_route_clusters_buckets", "start_bucket", "end_bucket"),
)

submissions = Table(
    "submissions",
    METADATA,
    Column("id", String(36), primary_key=True),
    Column("driver_id", String(64), nullable=False),
    Column("client_request_id", String(128), nullable=False),
    Column("start_lat", Float, nullable=False),
    Column("start_lng", Float, nullable=False),
    Column("end_lat", Float, nullable=False),
    Column("end_lng", Float, nullable=False),
    Column("start_label", String(200), nullable=True),
    Column("end_label", String(200), nullable=True),
    Column("price", Integer, nullable=False),
    Column("distance_m", Integer, nullable=False),
    Column("eta_s", Integer, nullable=True),
    Column("time_bucket", Integer, nullable=False),
    Column("day_of_week", Integer, nullable=False),
    Column("vehicle_type", String(30), nullable=True),
    Column("traffic_level", Integer, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.current_timestamp()),
    # Idempotency key, scoped per driver.
    UniqueConstraint("driver_id", "client_request_id", name="uq_submissions_driver_request"),
)

predictions_log = Table(
    "predictions_log",
    METADATA,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("driver_id", String(64), nullable=True),
    Column("start_lat", Float, nullable=False),
    Column("start_lng", Float, nullable=False),
    Column("end_lat", Float, nullable=False),
    Column("end_lng", Float, nullable=False),
    Column("suggested_price", Integer, nullable=False),
    Column("model_version", String(64), nullable=True),
    Column("is_stub", Boolean, nullable=False, default=True),
    Column("prediction_metadata", JSON, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.current_timestamp()),
)


def _connect_args(url: str, timeout_s: float) -> dict[str, Any]:
    if url.startswith("sqlite"):
        # sqlite3's busy timeout doubles as the caller-side store timeout.
        return {"timeout": timeout_s, "check_same_thread": False}
    if url.startswith("postgresql"):
        # statement_timeout bounds slow or lock-blocked queries, not just the connect.
        return {
            "connect_timeout": max(1, int(timeout_s)),
            "options": f"-c statement_timeout={max(1, int(timeout_s * 1000))}",
        }
    return {}


def create_store_engine(url: str | None = None, *, timeout_s: float | None = None) -> Engine:
    db_url = url or settings.database_url
    timeout = float(timeout_s if timeout_s is not None else settings.store_timeout_s)
    return create_engine(
        db_url,
        connect_args=_connect_args(db_url, timeout),
        pool_pre_ping=True,
    )


def init_schema(engine: Engine) -> None:
    database = engine.url.database
    if engine.url.get_backend_name() == "sqlite" and database and database != ":memory:":
        Path(database).parent.mkdir(parents=True, exist_ok=True)
    METADATA.create_all(engine)
