from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import Any, Final, Protocol

import httpx

from .errors import AggregationError
from .models import AggregationRunResult
from .settings import settings

# Remote procedures, run in this order. Each returns the number of rows it touched.
REFRESH_PROCEDURES: Final[tuple[tuple[str, str], ...]] = (
    ("refresh_route_clusters", "clusters_refreshed"),
    ("refresh_feature_store", "feature_rows_upserted"),
    ("refresh_governorate_pricing", "governorates_refreshed"),
)

_RETRYABLE_STATUS: Final[set[int]] = {408, 425, 429, 500, 502, 503, 504}


class AggregationJob(Protocol):
    async def refresh(self) -> AggregationRunResult: ...


def _format_error(resp: httpx.Response) -> str:
    """Best-effort decode of a JSON error payload."""
    try:
        data = resp.json()
        if isinstance(data, dict):
            message = data.get("message") or data.get("error") or data.get("detail")
            if message:
                return f"HTTP {resp.status_code}: {message}"
    except ValueError:
        pass

    body = (resp.text or "").strip().replace("\n", " ")
    if len(body) > 240:
        body = body[:240] + "..."
    return f"HTTP {resp.status_code}: {body}" if body else f"HTTP {resp.status_code}"


def _coerce_count(data: Any) -> int:
    # PostgREST returns a bare scalar for scalar functions; tolerate [n] and {"count": n}.
    if isinstance(data, list) and data:
        data = data[0]
    if isinstance(data, dict):
        data = data.get("count", next(iter(data.values()), 0))
    try:
        return max(0, int(data or 0))
    except (TypeError, ValueError):
        return 0


class RemoteAggregationJob:
    """Triggers the external refresh procedures over HTTP and reports their counts."""

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str = "",
        timeout_s: float = 60.0,
        max_retries: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.max_retries = max(1, int(max_retries))
        headers = {"accept": "application/json", "content-type": "application/json"}
        if api_key:
            headers["apikey"] = api_key
            headers["authorization"] = f"Bearer {api_key}"
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_s, connect=5.0),
            headers=headers,
            transport=transport,
        )

    @classmethod
    def from_settings(cls) -> "RemoteAggregationJob":
        return cls(
            base_url=settings.aggregation_base_url,
            api_key=settings.aggregation_api_key,
            timeout_s=settings.aggregation_timeout_s,
            max_retries=settings.aggregation_max_retries,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _call(self, procedure: str) -> int:
        url = f"{self.base_url}/{procedure}"
        last_err: Exception | None = None

        for attempt in range(self.max_retries):
            try:
                resp = await self._client.post(url, json={})
                if resp.status_code in _RETRYABLE_STATUS:
                    last_err = AggregationError(message=f"{procedure} failed: {_format_error(resp)}")
                elif resp.status_code >= 400:
                    raise AggregationError(message=f"{procedure} failed: {_format_error(resp)}")
                else:
                    return _coerce_count(resp.json() if resp.content else 0)
            except (httpx.TimeoutException, httpx.TransportError) as e:
                last_err = e
            except ValueError as e:
                raise AggregationError(message=f"{procedure} returned invalid JSON") from e

            if attempt < self.max_retries - 1:
                await asyncio.sleep(min(0.25 * (2**attempt), 2.0))

        # httpx exceptions can stringify to "", so include the type.
        detail = "unknown error" if last_err is None else (str(last_err).strip() or type(last_err).__name__)
        raise AggregationError(
            message=f"{procedure} failed after {self.max_retries} attempts: {detail}",
            reason_code="aggregation_unavailable",
        )

    async def refresh(self) -> AggregationRunResult:
        started_at = datetime.now(UTC)
        counts: dict[str, int] = {}
        for procedure, field in REFRESH_PROCEDURES:
            counts[field] = await self._call(procedure)
        return AggregationRunResult(started_at=started_at, finished_at=datetime.now(UTC), **counts)
