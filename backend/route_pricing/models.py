from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

TimeOfDay = Literal["day", "night"]
SuggestionSource = Literal["cluster", "fallback"]


class LatLng(BaseModel):
    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)

    @field_validator("lat", "lng")
    @classmethod
    def finite(cls, v: float) -> float:
        if v != v or v in (float("inf"), float("-inf")):
            raise ValueError("coordinate must be finite")
        return v


class RouteCluster(BaseModel):
    """Precomputed aggregate owned by the external aggregation job."""

    cluster_id: str
    start_bucket: str
    end_bucket: str
    time_bucket: int | None = None
    day_of_week: int | None = None
    vehicle_type: str | None = None
    centroid_start_lat: float
    centroid_start_lng: float
    centroid_end_lat: float
    centroid_end_lng: float
    median_price: int
    iqr_price: int = 0
    price_variance: float | None = None
    sample_count: int = Field(default=0, ge=0)
    confidence_score: float = Field(default=0.0, ge=0.0, le=1.0)
    first_sample_at: datetime | None = None
    last_updated: datetime | None = None


class SuggestQuery(BaseModel):
    start: LatLng
    end: LatLng
    time_bucket: int | None = Field(default=None, ge=0, le=23)
    day_of_week: int | None = Field(default=None, ge=0, le=6)
    vehicle_type: str | None = None


class SuggestPriceResponse(BaseModel):
    suggested_price: int
    price_range: tuple[int, int]
    median: int
    count: int
    confidence: float
    last_updated: datetime | None = None
    cluster_id: str | None = None
    start: LatLng
    end: LatLng


class PredictPriceResponse(SuggestPriceResponse):
    model_config = ConfigDict(protected_namespaces=())

    model_version: str | None = None
    is_stub: bool = True


class SubmitRouteRequest(BaseModel):
    client_request_id: str = Field(..., min_length=8, max_length=128)
    start: LatLng
    end: LatLng
    start_label: str | None = Field(default=None, min_length=1, max_length=200)
    end_label: str | None = Field(default=None, min_length=1, max_length=200)
    time_of_day: TimeOfDay | None = None
    traffic_level: int = Field(..., ge=1, le=3)
    eta_s: int | None = Field(default=None, ge=0, le=86_400)
    vehicle_type: str | None = Field(default=None, min_length=1, max_length=30)
    # Honoured only when the unauthenticated bypass mode is enabled.
    driver_id: str | None = Field(default=None, min_length=1, max_length=64)
    price: int

    @field_validator("client_request_id", "start_label", "end_label", "vehicle_type", "driver_id", mode="before")
    @classmethod
    def strip_text(cls, v: object) -> object:
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("price", mode="before")
    @classmethod
    def integer_price(cls, v: object) -> object:
        # Reject 4500.5 and "4500" alike; price is a whole number of currency units.
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise ValueError("price must be an integer")
        if isinstance(v, float) and not v.is_integer():
            raise ValueError("price must be an integer")
        return int(v)


class SubmitRouteResponse(BaseModel):
    status: Literal["ok"] = "ok"
    submission_id: str


class SubmissionRecord(BaseModel):
    """Feature-complete row as written to the submissions table."""

    driver_id: str
    client_request_id: str
    start_lat: float
    start_lng: float
    end_lat: float
    end_lng: float
    start_label: str | None = None
    end_label: str | None = None
    price: int
    distance_m: int
    eta_s: int | None = None
    time_bucket: int
    day_of_week: int
    vehicle_type: str | None = None
    traffic_level: int


class AggregationRunResult(BaseModel):
    clusters_refreshed: int = 0
    feature_rows_upserted: int = 0
    governorates_refreshed: int = 0
    started_at: datetime
    finished_at: datetime


class AggregationRunResponse(AggregationRunResult):
    status: Literal["ok"] = "ok"
