from __future__ import annotations

import time
import uuid
from contextlib import asynccontextmanager
from typing import Annotated, Any

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from .aggregation import AggregationJob, RemoteAggregationJob
from .auth import authorized_by_cron_secret, driver_id_for_request, require_admin
from .cluster_store import ClusterStore, SqlClusterStore
from .db import create_store_engine, init_schema
from .errors import AggregationError, AuthRequired, PricingError, ValidationError
from .geo_buckets import parse_lat_lng
from .ingestion import ingest_submission, validate_submission
from .logging_utils import log_event
from .metrics_store import metrics_snapshot, record_request
from .models import (
    AggregationRunResponse,
    PredictPriceResponse,
    SubmitRouteResponse,
    SuggestPriceResponse,
    SuggestQuery,
)
from .prediction_log import PredictionLog, SqlPredictionLog
from .submission_store import SqlSubmissionStore, SubmissionStore
from .suggest import suggest_price
from .time_of_day import Clock, utc_now


@asynccontextmanager
async def lifespan(app: FastAPI):
    engine = create_store_engine()
    init_schema(engine)
    app.state.engine = engine
    app.state.cluster_store = SqlClusterStore(engine)
    app.state.submission_store = SqlSubmissionStore(engine)
    app.state.prediction_log = SqlPredictionLog(engine)
    app.state.aggregation_job = RemoteAggregationJob.from_settings()
    yield
    await app.state.aggregation_job.aclose()
    engine.dispose()


app = FastAPI(title="Route Price Suggestion Service", version="0.3.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PricingError)
async def pricing_error_handler(_request: Request, exc: PricingError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.middleware("http")
async def request_metrics(request: Request, call_next):
    t0 = time.perf_counter()
    response = await call_next(request)
    record_request(
        request.url.path,
        duration_ms=(time.perf_counter() - t0) * 1000,
        error=response.status_code >= 500,
    )
    return response


def _state_dependency(name: str) -> Any:
    def _get(request: Request) -> Any:
        value = getattr(request.app.state, name, None)
        if value is None:
            raise PricingError(message=f"{name} not initialised", reason_code="storage_failure")
        return value

    _get.__name__ = f"get_{name}"
    return _get


cluster_store = _state_dependency("cluster_store")
submission_store = _state_dependency("submission_store")
prediction_log = _state_dependency("prediction_log")
aggregation_job = _state_dependency("aggregation_job")


def clock() -> Clock:
    return utc_now


ClusterStoreDep = Annotated[ClusterStore, Depends(cluster_store)]
SubmissionStoreDep = Annotated[SubmissionStore, Depends(submission_store)]
PredictionLogDep = Annotated[PredictionLog, Depends(prediction_log)]
AggregationJobDep = Annotated[AggregationJob, Depends(aggregation_job)]
ClockDep = Annotated[Clock, Depends(clock)]

MAX_VEHICLE_TYPE_LENGTH = 30


def _parse_bucket(raw: str | None, *, name: str, upper: int, reason_code: str) -> int | None:
    if raw is None:
        return None
    # "5" and "5.0" are the same hour.
    try:
        number = float(raw.strip())
    except ValueError:
        number = -1.0
    value = int(number) if number.is_integer() else -1
    if not (0 <= value <= upper):
        raise ValidationError(message=f"Invalid {name}. Expected integer 0..{upper}", reason_code=reason_code)
    return value


def parse_suggest_query(
    start: Annotated[str | None, Query()] = None,
    end: Annotated[str | None, Query()] = None,
    time_bucket: Annotated[str | None, Query()] = None,
    day_of_week: Annotated[str | None, Query()] = None,
    vehicle_type: Annotated[str | None, Query()] = None,
) -> SuggestQuery:
    start_pt = parse_lat_lng(start)
    end_pt = parse_lat_lng(end)
    if start_pt is None or end_pt is None:
        raise ValidationError(
            message="Query params 'start' and 'end' must be in lat,lng format",
            reason_code="invalid_coordinates",
        )
    if vehicle_type is not None and len(vehicle_type.strip()) > MAX_VEHICLE_TYPE_LENGTH:
        raise ValidationError(message=f"vehicle_type must be at most {MAX_VEHICLE_TYPE_LENGTH} characters")
    return SuggestQuery(
        start=start_pt,
        end=end_pt,
        time_bucket=_parse_bucket(time_bucket, name="time_bucket", upper=23, reason_code="invalid_time_bucket"),
        day_of_week=_parse_bucket(day_of_week, name="day_of_week", upper=6, reason_code="invalid_day_of_week"),
        vehicle_type=vehicle_type,
    )


SuggestQueryDep = Annotated[SuggestQuery, Depends(parse_suggest_query)]


def _log_suggestion(event: str, request_id: str, query: SuggestQuery, resp: SuggestPriceResponse, t0: float) -> None:
    log_event(
        event,
        request_id=request_id,
        start=query.start.model_dump(),
        end=query.end.model_dump(),
        time_bucket=query.time_bucket,
        day_of_week=query.day_of_week,
        vehicle_type=query.vehicle_type,
        cluster_id=resp.cluster_id,
        count=resp.count,
        confidence=resp.confidence,
        suggested_price=resp.suggested_price,
        duration_ms=round((time.perf_counter() - t0) * 1000, 2),
    )


@app.get("/")
async def root() -> dict[str, str]:
    return {"message": "Backend is running. Visit /docs for the API UI.", "docs": "/docs"}


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/metrics")
async def metrics() -> dict[str, object]:
    return metrics_snapshot()


@app.get("/suggest-price", response_model=SuggestPriceResponse)
def get_suggest_price(query: SuggestQueryDep, store: ClusterStoreDep, now: ClockDep) -> SuggestPriceResponse:
    request_id = str(uuid.uuid4())
    t0 = time.perf_counter()
    resp = suggest_price(store, query, clock=now)
    _log_suggestion("suggest_request", request_id, query, resp, t0)
    return resp


@app.get("/predict-price", response_model=PredictPriceResponse)
def get_predict_price(
    query: SuggestQueryDep,
    store: ClusterStoreDep,
    log: PredictionLogDep,
    now: ClockDep,
) -> PredictPriceResponse:
    request_id = str(uuid.uuid4())
    t0 = time.perf_counter()
    resp = suggest_price(store, query, clock=now)
    log.record(resp, source="predict-price")
    _log_suggestion("predict_request", request_id, query, resp, t0)
    return PredictPriceResponse(**resp.model_dump(), model_version=None, is_stub=True)


async def _read_json_body(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError as e:
        raise ValidationError(message="Invalid payload: body must be JSON") from e


@app.post("/submit-route", response_model=SubmitRouteResponse)
async def post_submit_route(
    request: Request,
    store: SubmissionStoreDep,
    now: ClockDep,
) -> SubmitRouteResponse:
    payload = validate_submission(await _read_json_body(request))
    driver_id = driver_id_for_request(request, supplied_driver_id=payload.driver_id)
    # Blocking store I/O stays off the event loop.
    return await run_in_threadpool(ingest_submission, store, payload, driver_id=driver_id, clock=now)


async def _run_aggregation(job: AggregationJob, *, trigger: str) -> AggregationRunResponse:
    t0 = time.perf_counter()
    try:
        result = await job.refresh()
    except AggregationError as e:
        log_event("aggregation_run", trigger=trigger, ok=False, reason_code=e.reason_code, error=e.message)
        raise
    log_event(
        "aggregation_run",
        trigger=trigger,
        ok=True,
        clusters_refreshed=result.clusters_refreshed,
        feature_rows_upserted=result.feature_rows_upserted,
        governorates_refreshed=result.governorates_refreshed,
        duration_ms=round((time.perf_counter() - t0) * 1000, 2),
    )
    return AggregationRunResponse(**result.model_dump())


@app.get("/cron/aggregate", response_model=AggregationRunResponse)
async def cron_aggregate(request: Request, job: AggregationJobDep) -> AggregationRunResponse:
    if not authorized_by_cron_secret(request):
        raise AuthRequired(message="Unauthorized cron request", reason_code="cron_unauthorized")
    return await _run_aggregation(job, trigger="cron")


@app.post("/admin/run-aggregation", response_model=AggregationRunResponse)
async def admin_run_aggregation(request: Request, job: AggregationJobDep) -> AggregationRunResponse:
    require_admin(request)
    return await _run_aggregation(job, trigger="admin")
