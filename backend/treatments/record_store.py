"""
Record Store
============
The only thing the lifecycle manager knows about persistence:

    fetch(national_id, columns)              -> dict of columns (+ "revision")
    write(national_id, columns, revision)    -> new revision

Absent / NULL JSON columns come back as an empty list or map.
"""
from abc import ABC, abstractmethod

import structlog
from django.db import DatabaseError
from django.db.models import F
from django.utils import timezone

from .exceptions import ConflictError, NotFoundError, PersistenceError
from .models import PatientRecord

logger = structlog.get_logger(__name__)


LIST_COLUMNS = (
    'ongoing_treatments',
    'ongoing_treatment_past',
    'past_treatments',
    'past_treatments_past',
)
MAP_COLUMNS = (
    'report_url_treatments',
    'report_url_treatments_past',
)
TREATMENT_COLUMNS = LIST_COLUMNS + MAP_COLUMNS


def normalize_column(column, value):
    """Read-side coercion: None -> empty, single legacy object -> one-item list."""
    if column in LIST_COLUMNS:
        if value is None:
            return []
        if isinstance(value, list):
            return list(value)
        return [value]
    if column in MAP_COLUMNS:
        return dict(value) if isinstance(value, dict) else {}
    return value


class BaseRecordStore(ABC):

    @abstractmethod
    def fetch(self, national_id: str, columns) -> dict:
        """Return the requested columns plus "revision"; NotFoundError if absent."""
        pass

    @abstractmethod
    def write(self, national_id: str, columns: dict, expected_revision=None) -> int:
        """Persist all given columns in one update and return the new revision."""
        pass


class DjangoRecordStore(BaseRecordStore):
    """PatientRecord table through the ORM."""

    def fetch(self, national_id, columns):
        columns = list(columns)
        unknown = [c for c in columns if c not in TREATMENT_COLUMNS]
        if unknown:
            raise ValueError(f"Unknown record columns: {unknown}")

        try:
            row = (
                PatientRecord.objects
                .filter(national_id=national_id)
                .values('revision', *columns)
                .first()
            )
        except DatabaseError as e:
            logger.error("record_fetch_failed", national_id=national_id, error=str(e))
            raise PersistenceError(
                message="Could not read the patient record",
                detail=str(e),
            ) from e

        if row is None:
            raise NotFoundError(
                message="Patient not found",
                detail=f"No patient record for national id {national_id}.",
                code="PATIENT_NOT_FOUND",
            )

        record = {column: normalize_column(column, row[column]) for column in columns}
        record['revision'] = row['revision']
        return record

    def write(self, national_id, columns, expected_revision=None):
        unknown = [c for c in columns if c not in TREATMENT_COLUMNS]
        if unknown:
            raise ValueError(f"Unknown record columns: {unknown}")

        queryset = PatientRecord.objects.filter(national_id=national_id)
        if expected_revision is not None:
            queryset = queryset.filter(revision=expected_revision)

        try:
            updated = queryset.update(
                revision=F('revision') + 1,
                updated_at=timezone.now(),
                **columns,
            )
        except DatabaseError as e:
            logger.error(
                "record_write_failed",
                national_id=national_id,
                columns=sorted(columns),
                error=str(e),
            )
            raise PersistenceError(detail=str(e)) from e

        if updated == 0:
            if PatientRecord.objects.filter(national_id=national_id).exists():
                logger.warning(
                    "record_revision_conflict",
                    national_id=national_id,
                    expected_revision=expected_revision,
                )
                raise ConflictError(
                    detail="The record was changed by someone else. Reload it and try again.",
                )
            raise NotFoundError(
                message="Patient not found",
                detail=f"No patient record for national id {national_id}.",
                code="PATIENT_NOT_FOUND",
            )

        new_revision = (expected_revision + 1) if expected_revision is not None else (
            PatientRecord.objects.values_list('revision', flat=True).get(national_id=national_id)
        )
        logger.debug(
            "record_written",
            national_id=national_id,
            columns=sorted(columns),
            revision=new_revision,
        )
        return new_revision


def get_record_store() -> BaseRecordStore:
    return DjangoRecordStore()
