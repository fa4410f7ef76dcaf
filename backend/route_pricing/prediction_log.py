from __future__ import annotations

import logging
from typing import Any, Protocol

from sqlalchemy import Engine
from sqlalchemy.exc import SQLAlchemyError

from .db import predictions_log
from .logging_utils import log_event
from .models import SuggestPriceResponse


class PredictionLog(Protocol):
    def record(self, suggestion: SuggestPriceResponse, *, source: str, driver_id: str | None = None) -> None: ...


class SqlPredictionLog:
    """Best-effort audit trail of served predictions; failures never reach the caller."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def record(self, suggestion: SuggestPriceResponse, *, source: str, driver_id: str | None = None) -> None:
        row: dict[str, Any] = {
            "driver_id": driver_id,
            "start_lat": suggestion.start.lat,
            "start_lng": suggestion.start.lng,
            "end_lat": suggestion.end.lat,
            "end_lng": suggestion.end.lng,
            "suggested_price": suggestion.suggested_price,
            "model_version": None,
            "is_stub": True,
            "prediction_metadata": {
                "source": source,
                "count": suggestion.count,
                "confidence": suggestion.confidence,
            },
        }
        try:
            with self._engine.begin() as conn:
                conn.execute(predictions_log.insert().values(**row))
        except SQLAlchemyError as e:
            log_event(
                "prediction_log_failed",
                level=logging.WARNING,
                error_type=type(e).__name__,
                error=str(e)[:240],
            )
