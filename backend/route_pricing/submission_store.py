from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import Engine, select
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from .db import submissions
from .errors import StorageError
from .models import SubmissionRecord

_UNIQUE_VIOLATION_SQLSTATE = "23505"
_UNIQUE_VIOLATION_MARKERS: tuple[str, ...] = (
    "unique constraint failed",
    "duplicate key value",
    "uq_submissions_driver_request",
)


@dataclass(frozen=True)
class SubmissionWrite:
    submission_id: str
    created: bool


class SubmissionStore(Protocol):
    def insert_or_get(self, record: SubmissionRecord) -> SubmissionWrite: ...


def is_unique_violation(exc: IntegrityError) -> bool:
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code == _UNIQUE_VIOLATION_SQLSTATE:
        return True
    text = str(orig).lower()
    return any(marker in text for marker in _UNIQUE_VIOLATION_MARKERS)


class SqlSubmissionStore:
    """Append-only submissions table; the unique key arbitrates duplicate deliveries."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def _find_existing_id(self, driver_id: str, client_request_id: str) -> str | None:
        stmt = (
            select(submissions.c.id)
            .where(submissions.c.driver_id == driver_id)
            .where(submissions.c.client_request_id == client_request_id)
            .limit(1)
        )
        with self._engine.connect() as conn:
            return conn.execute(stmt).scalar_one_or_none()

    def insert_or_get(self, record: SubmissionRecord) -> SubmissionWrite:
        submission_id = str(uuid.uuid4())
        try:
            with self._engine.begin() as conn:
                conn.execute(submissions.insert().values(id=submission_id, **record.model_dump()))
            return SubmissionWrite(submission_id=submission_id, created=True)
        except IntegrityError as e:
            if not is_unique_violation(e):
                raise StorageError(message="submission insert rejected", details={"error": str(e.orig)[:240]}) from e
            conflict = e
        except OperationalError as e:
            raise StorageError(
                message="submission store unavailable",
                reason_code="storage_timeout",
                details={"error": str(e.orig)[:240]},
            ) from e
        except SQLAlchemyError as e:
            raise StorageError(message="submission insert failed", details={"error": str(e)[:240]}) from e

        # Lost the race (or a client retry): hand back the winner's row.
        try:
            existing_id = self._find_existing_id(record.driver_id, record.client_request_id)
        except SQLAlchemyError as e:
            raise StorageError(message="submission lookup failed", details={"error": str(e)[:240]}) from e
        if existing_id is None:
            raise StorageError(
                message="submission conflict without a matching row",
                details={"error": str(conflict.orig)[:240]},
            )
        return SubmissionWrite(submission_id=str(existing_id), created=False)
