from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar

FROZEN_REASON_CODES: frozenset[str] = frozenset(
    {
        "invalid_coordinates",
        "invalid_time_bucket",
        "invalid_day_of_week",
        "invalid_payload",
        "price_out_of_bounds",
        "auth_required",
        "invalid_session",
        "admin_required",
        "cron_unauthorized",
        "storage_failure",
        "storage_timeout",
        "cluster_query_failed",
        "aggregation_failed",
        "aggregation_unavailable",
    }
)


def normalize_reason_code(reason_code: str, *, default: str = "invalid_payload") -> str:
    code = str(reason_code or "").strip()
    if code in FROZEN_REASON_CODES:
        return code
    return default


@dataclass
class PricingError(Exception):
    """Base error carrying a stable reason code alongside the human message."""

    message: str
    reason_code: str = "invalid_payload"
    details: dict[str, Any] | None = field(default=None)

    status_code: ClassVar[int] = 500
    default_reason: ClassVar[str] = "invalid_payload"

    def __post_init__(self) -> None:
        self.reason_code = normalize_reason_code(self.reason_code, default=self.default_reason)

    def __str__(self) -> str:
        return self.message

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"detail": self.message, "reason_code": self.reason_code}
        if self.details:
            payload["details"] = self.details
        return payload


@dataclass
class ValidationError(PricingError):
    reason_code: str = "invalid_payload"

    status_code: ClassVar[int] = 400
    default_reason: ClassVar[str] = "invalid_payload"


@dataclass
class AuthRequired(PricingError):
    reason_code: str = "auth_required"

    status_code: ClassVar[int] = 401
    default_reason: ClassVar[str] = "auth_required"


@dataclass
class Forbidden(PricingError):
    reason_code: str = "admin_required"

    status_code: ClassVar[int] = 403
    default_reason: ClassVar[str] = "admin_required"


@dataclass
class StorageError(PricingError):
    reason_code: str = "storage_failure"

    status_code: ClassVar[int] = 500
    default_reason: ClassVar[str] = "storage_failure"


@dataclass
class UpstreamQueryFailure(PricingError):
    """A candidate-search pass failed. Suggestion paths absorb this."""

    reason_code: str = "cluster_query_failed"

    status_code: ClassVar[int] = 502
    default_reason: ClassVar[str] = "cluster_query_failed"


@dataclass
class AggregationError(PricingError):
    reason_code: str = "aggregation_failed"

    status_code: ClassVar[int] = 502
    default_reason: ClassVar[str] = "aggregation_failed"
