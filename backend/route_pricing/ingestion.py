"""Idempotent write path for driver trip reports.

A request moves through validate -> derive features -> identify actor ->
write-with-dedup. The last step relies on the store's unique key over
(driver_id, client_request_id): concurrent or retried deliveries of the same
request resolve to a single stored row, and every caller gets status "ok".
"""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError as PydanticValidationError

from .distance import estimate_eta_s, haversine_distance_m
from .errors import ValidationError
from .logging_utils import log_event
from .metrics_store import record_submission
from .models import SubmissionRecord, SubmitRouteRequest, SubmitRouteResponse
from .settings import settings
from .submission_store import SubmissionStore
from .time_of_day import Clock, current_temporal_buckets, time_bucket_for_time_of_day, utc_now


def _first_issue(exc: PydanticValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid payload"
    first = errors[0]
    loc = ".".join(str(part) for part in first.get("loc", ()) if part != "__root__")
    msg = str(first.get("msg", "invalid value"))
    return f"{loc}: {msg}" if loc else msg


def validate_submission(raw: Any) -> SubmitRouteRequest:
    if not isinstance(raw, dict):
        raise ValidationError(message="Invalid payload: expected a JSON object")
    try:
        payload = SubmitRouteRequest.model_validate(raw)
    except PydanticValidationError as e:
        raise ValidationError(message=_first_issue(e)) from e

    if not (settings.price_min <= payload.price <= settings.price_max):
        raise ValidationError(
            message=f"price must be between {settings.price_min} and {settings.price_max}",
            reason_code="price_out_of_bounds",
            details={"price": payload.price},
        )
    return payload


def build_submission_record(
    payload: SubmitRouteRequest,
    *,
    driver_id: str,
    clock: Clock = utc_now,
) -> SubmissionRecord:
    distance_m = haversine_distance_m(payload.start, payload.end)
    now = current_temporal_buckets(clock)
    time_bucket = (
        time_bucket_for_time_of_day(payload.time_of_day)
        if payload.time_of_day is not None
        else now.time_bucket
    )
    eta_s = payload.eta_s
    if eta_s is None:
        eta_s = estimate_eta_s(
            distance_m,
            time_of_day=payload.time_of_day,
            traffic_level=payload.traffic_level,
        )
    vehicle_type = payload.vehicle_type.lower() if payload.vehicle_type else None

    return SubmissionRecord(
        driver_id=driver_id,
        client_request_id=payload.client_request_id,
        start_lat=payload.start.lat,
        start_lng=payload.start.lng,
        end_lat=payload.end.lat,
        end_lng=payload.end.lng,
        start_label=payload.start_label,
        end_label=payload.end_label,
        price=payload.price,
        distance_m=distance_m,
        eta_s=eta_s,
        time_bucket=time_bucket,
        day_of_week=now.day_of_week,
        vehicle_type=vehicle_type,
        traffic_level=payload.traffic_level,
    )


def ingest_submission(
    store: SubmissionStore,
    payload: SubmitRouteRequest,
    *,
    driver_id: str,
    clock: Clock = utc_now,
) -> SubmitRouteResponse:
    """Record one logical submission; StorageError propagates to the caller."""
    record = build_submission_record(payload, driver_id=driver_id, clock=clock)
    write = store.insert_or_get(record)

    outcome = "recorded" if write.created else "deduplicated"
    record_submission(outcome)
    log_event(
        f"submission_{outcome}",
        submission_id=write.submission_id,
        driver_id=driver_id,
        client_request_id=payload.client_request_id,
        distance_m=record.distance_m,
        time_bucket=record.time_bucket,
    )
    return SubmitRouteResponse(status="ok", submission_id=write.submission_id)
