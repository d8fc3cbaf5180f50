# backend/treatments/services.py
"""
Service layer
=============
Treatment lifecycle for one patient record, plus the entry points of the
prescription analysis flow. views.py only parses requests and renders
responses; everything here raises exceptions from .exceptions on failure.

Every mutating operation is one read-modify-write:
    fetch columns -> compute new collections in memory -> one write
If the write fails, nothing computed here survives; the caller re-fetches.
"""
import copy
import functools
from dataclasses import dataclass
from typing import Optional

import structlog
from django.db import IntegrityError
from django.utils import timezone
from prometheus_client import Counter

from .exceptions import (
    AppValidationError,
    BaseAppException,
    BlockError,
    NotFoundError,
    ReferenceAmbiguityWarning,
)
from .identity import (
    TreatmentRef,
    display_name,
    history_belongs_to,
    identity_of,
    new_treatment_id,
    report_belongs_to,
    resolve_treatment,
)
from .models import PatientRecord, PrescriptionAnalysis
from .record_store import get_record_store, normalize_column

logger = structlog.get_logger(__name__)

TREATMENT_OPERATIONS_TOTAL = Counter(
    "treatment_operations_total",
    "Treatment lifecycle operations",
    ["operation", "outcome"],  # outcome: success, error
)

FREQUENCY_TAGS = ("morning", "afternoon", "evening", "night")

TREATMENT_FIELDS = (
    "description",
    "startDate",
    "followUpDate",
    "notes",
    "prescriptions",
    "attachedReports",
)

SCOPE_COLUMNS = {
    "ongoing": "ongoing_treatment_past",
    "past": "past_treatments_past",
}
SCOPE_TREATMENT_COLUMNS = {
    "ongoing": "ongoing_treatments",
    "past": "past_treatments",
}


@dataclass
class LifecycleResult:
    """Columns as written, the new revision, and the treatment touched."""
    record: dict
    treatment: Optional[dict] = None


def _now_iso():
    return timezone.now().isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _track(operation):
    """Count success/error of a lifecycle operation."""
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                result = func(*args, **kwargs)
            except BaseAppException:
                TREATMENT_OPERATIONS_TOTAL.labels(operation=operation, outcome="error").inc()
                raise
            TREATMENT_OPERATIONS_TOTAL.labels(operation=operation, outcome="success").inc()
            return result
        return wrapper
    return decorator


# ============================================================
# Field validation
# ============================================================
def _clean_prescriptions(prescriptions):
    cleaned = []
    for index, prescription in enumerate(prescriptions or []):
        if not isinstance(prescription, dict):
            raise AppValidationError(detail=f"prescriptions[{index}] must be an object.")
        frequency = prescription.get("frequency") or []
        unknown = [tag for tag in frequency if tag not in FREQUENCY_TAGS]
        if unknown:
            raise AppValidationError(
                detail=f"prescriptions[{index}].frequency has unknown tags {unknown}; "
                       f"allowed: {list(FREQUENCY_TAGS)}.",
                code="INVALID_FREQUENCY",
            )
        cleaned.append({
            **prescription,
            "medicineName": prescription.get("medicineName", ""),
            "dose": prescription.get("dose", ""),
            "quantity": prescription.get("quantity", ""),
            "frequency": list(dict.fromkeys(frequency)),
        })
    return cleaned


def _clean_fields(fields):
    """Validate treatment input; the name is the only required field."""
    fields = fields or {}
    name = (fields.get("treatmentName") or fields.get("name") or "").strip()
    if not name:
        raise AppValidationError(
            message="Treatment name is required",
            detail="treatmentName must not be blank.",
            code="TREATMENT_NAME_REQUIRED",
        )

    cleaned = {"treatmentName": name}
    for key in TREATMENT_FIELDS:
        if key in ("prescriptions", "attachedReports"):
            cleaned[key] = list(fields.get(key) or [])
        else:
            cleaned[key] = fields.get(key) or ""
    cleaned["prescriptions"] = _clean_prescriptions(cleaned["prescriptions"])
    return cleaned


def _check_attached_reports(cleaned, reports):
    """Every report a treatment lists must exist in report_url_treatments."""
    unknown = [
        _report_name(report) or "<unnamed>"
        for report in cleaned["attachedReports"]
        if _report_name(report) not in reports
    ]
    if unknown:
        raise AppValidationError(
            message="Unknown attached report",
            detail=f"attachedReports lists {unknown}, which are not uploaded for this patient.",
            code="UNKNOWN_REPORT",
        )


def _require_reference(reference):
    ref = TreatmentRef.from_data(reference)
    if ref.is_empty():
        raise AppValidationError(
            message="Treatment reference is required",
            detail="Give the treatment id, its name, or both.",
            code="TREATMENT_REFERENCE_REQUIRED",
        )
    return ref


def _treatment_not_found(ref, where="ongoing"):
    return NotFoundError(
        message="Treatment not found",
        detail=f"No {where} treatment matches '{ref}'.",
        code="TREATMENT_NOT_FOUND",
    )


def _write(national_id, record, columns):
    store = get_record_store()
    new_revision = store.write(
        national_id,
        {column: record[column] for column in columns},
        expected_revision=record["revision"],
    )
    record["revision"] = new_revision
    return record


# ============================================================
# Patient records
# ============================================================
def create_patient_record(data):
    """Register a patient document; national ids are unique."""
    national_id = (data.get("national_id") or "").strip()
    if not national_id:
        raise AppValidationError(detail="national_id must not be blank.")

    if PatientRecord.objects.filter(national_id=national_id).exists():
        raise BlockError(
            message="Patient already registered",
            detail=f"National id {national_id} already has a record.",
            code="PATIENT_EXISTS",
        )

    try:
        patient = PatientRecord.objects.create(
            national_id=national_id,
            name=data.get("name", ""),
            age=data.get("age"),
            gender=data.get("gender", ""),
            blood_group=data.get("blood_group", ""),
            medical_history=list(data.get("medical_history") or []),
        )
    except IntegrityError:
        # lost a race with another registration of the same id
        raise BlockError(
            message="Patient already registered",
            detail=f"National id {national_id} already has a record.",
            code="PATIENT_EXISTS",
        )

    logger.info("patient_record_created", national_id=national_id)
    return patient


def get_patient_record(national_id):
    try:
        return PatientRecord.objects.get(national_id=national_id)
    except PatientRecord.DoesNotExist:
        raise NotFoundError(
            message="Patient not found",
            detail=f"No patient record for national id {national_id}.",
            code="PATIENT_NOT_FOUND",
        )


# ============================================================
# Treatment lifecycle
# ============================================================
@_track("create")
def create_treatment(national_id, fields):
    """Append a new ongoing treatment. A new treatment has no history."""
    cleaned = _clean_fields(fields)

    record = get_record_store().fetch(
        national_id, ["ongoing_treatments", "report_url_treatments"]
    )
    _check_attached_reports(cleaned, record["report_url_treatments"])

    now = _now_iso()
    treatment = {
        "id": new_treatment_id(),
        **cleaned,
        "createdAt": now,
        "updatedAt": now,
    }
    record["ongoing_treatments"].append(treatment)

    _write(national_id, record, ["ongoing_treatments"])

    logger.info(
        "treatment_created",
        national_id=national_id,
        treatment_id=treatment["id"],
    )
    return LifecycleResult(record=record, treatment=treatment)


@_track("update")
def update_treatment(national_id, reference, fields, confirm=False):
    """
    Replace an ongoing treatment with new fields.

    The pre-edit version goes to the front of ongoing_treatment_past.
    id and createdAt survive the edit, updatedAt is refreshed.
    If the reference matches nothing, ReferenceAmbiguityWarning is raised
    unless confirm=True, in which case the data is saved as a new treatment.
    """
    ref = _require_reference(reference)
    cleaned = _clean_fields(fields)

    record = get_record_store().fetch(
        national_id, ["ongoing_treatments", "ongoing_treatment_past", "report_url_treatments"]
    )
    ongoing = record["ongoing_treatments"]
    history = record["ongoing_treatment_past"]
    reports = record["report_url_treatments"]
    _check_attached_reports(cleaned, reports)

    columns = ["ongoing_treatments", "ongoing_treatment_past"]
    now = _now_iso()

    index = resolve_treatment(ongoing, ref, operation="update")

    if index is None:
        if not confirm:
            raise ReferenceAmbiguityWarning(
                detail=f"No ongoing treatment matches '{ref}'. "
                       f"Confirm to save it as a new treatment.",
            )
        treatment = {
            "id": new_treatment_id(),
            **cleaned,
            "createdAt": now,
            "updatedAt": now,
        }
        ongoing.append(treatment)
        logger.warning(
            "treatment_update_fallback_insert",
            national_id=national_id,
            reference=str(ref),
            treatment_id=treatment["id"],
        )
    else:
        current = ongoing[index]

        snapshot = copy.deepcopy(current)
        snapshot["treatmentId"] = identity_of(current)
        snapshot["movedToHistoryAt"] = now
        history.insert(0, snapshot)  # stack: newest first

        treatment_id = current.get("id")
        if not treatment_id:
            # legacy row gets its id now; move its name tags over to it
            treatment_id = new_treatment_id()
            name = display_name(current)
            idless_names = [display_name(t) for t in ongoing if not t.get("id")]
            if name and idless_names.count(name) == 1:
                if _retag_name(name, treatment_id, history, reports):
                    columns.append("report_url_treatments")

        treatment = {
            "id": treatment_id,
            **cleaned,
            "createdAt": current.get("createdAt") or now,
            "updatedAt": now,
        }
        ongoing[index] = treatment

        logger.info(
            "treatment_updated",
            national_id=national_id,
            treatment_id=treatment["id"],
            index=index,
            history_size=len(history),
        )

    _write(national_id, record, columns)
    return LifecycleResult(record=record, treatment=treatment)


@_track("complete")
def complete_treatment(national_id, reference):
    """
    Move an ongoing treatment to past_treatments.

    Its history entries move to past_treatments_past (stamped
    treatmentCompletedAt) and its reports to report_url_treatments_past
    (stamped movedToPastAt). All six columns go out in one write.
    """
    ref = _require_reference(reference)

    record = get_record_store().fetch(national_id, [
        "ongoing_treatments",
        "past_treatments",
        "ongoing_treatment_past",
        "past_treatments_past",
        "report_url_treatments",
        "report_url_treatments_past",
    ])
    now = _now_iso()

    index = resolve_treatment(record["ongoing_treatments"], ref, operation="complete")
    if index is None:
        raise _treatment_not_found(ref)

    treatment = record["ongoing_treatments"].pop(index)
    completed = {**treatment, "completedDate": now, "status": "completed"}
    record["past_treatments"].append(completed)

    moving, staying = [], []
    for entry in record["ongoing_treatment_past"]:
        (moving if history_belongs_to(entry, treatment) else staying).append(entry)
    record["ongoing_treatment_past"] = staying
    record["past_treatments_past"].extend(
        {**entry, "treatmentCompletedAt": now} for entry in moving
    )

    reports = record["report_url_treatments"]
    reports_past = record["report_url_treatments_past"]
    moved_reports = [key for key, report in reports.items() if report_belongs_to(report, treatment)]
    for key in moved_reports:
        reports_past[key] = {**reports.pop(key), "movedToPastAt": now}

    _write(national_id, record, [
        "ongoing_treatments",
        "past_treatments",
        "ongoing_treatment_past",
        "past_treatments_past",
        "report_url_treatments",
        "report_url_treatments_past",
    ])

    logger.info(
        "treatment_completed",
        national_id=national_id,
        treatment_id=identity_of(treatment),
        history_moved=len(moving),
        reports_moved=len(moved_reports),
    )
    return LifecycleResult(record=record, treatment=completed)


@_track("remove")
def remove_treatment(national_id, reference):
    """Delete an ongoing treatment with its ongoing history and reports."""
    ref = _require_reference(reference)

    record = get_record_store().fetch(national_id, [
        "ongoing_treatments",
        "ongoing_treatment_past",
        "report_url_treatments",
    ])

    index = resolve_treatment(record["ongoing_treatments"], ref, operation="remove")
    if index is None:
        raise _treatment_not_found(ref)

    treatment = record["ongoing_treatments"].pop(index)

    before = len(record["ongoing_treatment_past"])
    record["ongoing_treatment_past"] = [
        entry for entry in record["ongoing_treatment_past"]
        if not history_belongs_to(entry, treatment)
    ]
    removed_reports = [
        key for key, report in record["report_url_treatments"].items()
        if report_belongs_to(report, treatment)
    ]
    for key in removed_reports:
        del record["report_url_treatments"][key]

    _write(national_id, record, [
        "ongoing_treatments",
        "ongoing_treatment_past",
        "report_url_treatments",
    ])

    logger.info(
        "treatment_removed",
        national_id=national_id,
        treatment_id=identity_of(treatment),
        history_removed=before - len(record["ongoing_treatment_past"]),
        reports_removed=len(removed_reports),
    )
    return LifecycleResult(record=record, treatment=treatment)


def query_history(national_id, reference, scope="ongoing"):
    """History entries of one treatment, newest first. Read only."""
    if scope not in SCOPE_COLUMNS:
        raise AppValidationError(
            detail=f"scope must be one of {sorted(SCOPE_COLUMNS)}, got '{scope}'.",
        )
    ref = _require_reference(reference)
    column = SCOPE_COLUMNS[scope]
    treatments_column = SCOPE_TREATMENT_COLUMNS[scope]

    record = get_record_store().fetch(national_id, [treatments_column, column])

    # match on the stored treatment so both its id and its name count
    index = resolve_treatment(record[treatments_column], ref, operation="query_history")
    if index is not None:
        owner = record[treatments_column][index]
    else:
        owner = {"id": ref.id, "treatmentName": ref.name}
    return [entry for entry in record[column] if history_belongs_to(entry, owner)]


def list_treatments(national_id, scope="ongoing"):
    """
    Ongoing treatments newest first (by updatedAt, then createdAt);
    past treatments in completion order.
    """
    if scope == "ongoing":
        record = get_record_store().fetch(national_id, ["ongoing_treatments"])
        return sorted(
            record["ongoing_treatments"],
            key=lambda t: t.get("updatedAt") or t.get("createdAt") or "",
            reverse=True,
        )
    if scope == "past":
        record = get_record_store().fetch(national_id, ["past_treatments"])
        return record["past_treatments"]
    raise AppValidationError(detail=f"scope must be 'ongoing' or 'past', got '{scope}'.")


# ============================================================
# Reports
# ============================================================
def _report_name(report):
    if isinstance(report, str):
        return report
    return (report or {}).get("name") or (report or {}).get("title")


@_track("attach_report")
def attach_report(national_id, report_name, url, reference=None, uploaded_by="lab"):
    """
    Add a report to report_url_treatments.

    Without a reference the report is free for any treatment. With one, it is
    bound to that ongoing treatment and listed in its attachedReports.
    Attaching is not an edit, so no history entry is pushed.
    """
    report_name = (report_name or "").strip()
    url = (url or "").strip()
    if not report_name or not url:
        raise AppValidationError(detail="Report name and url are required.")

    record = get_record_store().fetch(
        national_id, ["ongoing_treatments", "report_url_treatments"]
    )
    ongoing = record["ongoing_treatments"]
    reports = record["report_url_treatments"]
    now = _now_iso()

    # replacing a report that was bound elsewhere: unlink it there first
    previous = reports.get(report_name)
    if previous and previous.get("treatmentId"):
        for index, other in enumerate(ongoing):
            if report_belongs_to(previous, other):
                ongoing[index] = {
                    **other,
                    "attachedReports": [
                        r for r in (other.get("attachedReports") or [])
                        if _report_name(r) != report_name
                    ],
                }

    report = {"url": url, "date": now, "uploadedBy": uploaded_by, "treatmentId": None}
    treatment = None

    if reference is not None:
        ref = _require_reference(reference)
        index = resolve_treatment(ongoing, ref, operation="attach_report")
        if index is None:
            raise _treatment_not_found(ref)
        treatment = ongoing[index]
        attached = [
            r for r in (treatment.get("attachedReports") or [])
            if _report_name(r) != report_name
        ]
        attached.append({"name": report_name, "url": url})
        treatment = {**treatment, "attachedReports": attached, "updatedAt": now}
        ongoing[index] = treatment
        report["treatmentId"] = identity_of(treatment)

    reports[report_name] = report

    _write(national_id, record, ["ongoing_treatments", "report_url_treatments"])

    logger.info(
        "report_attached",
        national_id=national_id,
        report_name=report_name,
        treatment_id=report["treatmentId"],
    )
    return LifecycleResult(record=record, treatment=treatment)


# ============================================================
# Legacy id backfill
# ============================================================
def _retag_name(name, new_id, history, reports):
    """Point name-tagged history entries and reports at `new_id`. Returns reports retagged."""
    for position, entry in enumerate(history):
        if entry.get("treatmentId") == name or (
            not entry.get("treatmentId") and display_name(entry) == name
        ):
            history[position] = {**entry, "treatmentId": new_id}

    retagged = [key for key, report in reports.items() if (report or {}).get("treatmentId") == name]
    for key in retagged:
        reports[key] = {**reports[key], "treatmentId": new_id}
    return len(retagged)


def _backfill_side(treatments, history, reports):
    assigned = 0
    idless_names = [display_name(t) for t in treatments if not t.get("id")]

    for index, treatment in enumerate(treatments):
        if treatment.get("id"):
            continue
        new_id = new_treatment_id()
        name = display_name(treatment)
        treatments[index] = {**treatment, "id": new_id}
        assigned += 1

        # two id-less treatments sharing a name: their history can't be told
        # apart, leave the name tags in place
        if not name or idless_names.count(name) > 1:
            continue
        _retag_name(name, new_id, history, reports)

    return assigned


def backfill_treatment_ids(national_id):
    """Give every id-less treatment an id and retag what pointed at its name."""
    columns = [
        "ongoing_treatments",
        "past_treatments",
        "ongoing_treatment_past",
        "past_treatments_past",
        "report_url_treatments",
        "report_url_treatments_past",
    ]
    record = get_record_store().fetch(national_id, columns)

    assigned = _backfill_side(
        record["ongoing_treatments"],
        record["ongoing_treatment_past"],
        record["report_url_treatments"],
    )
    assigned += _backfill_side(
        record["past_treatments"],
        record["past_treatments_past"],
        record["report_url_treatments_past"],
    )

    if assigned:
        _write(national_id, record, columns)
        logger.info("treatment_ids_backfilled", national_id=national_id, assigned=assigned)
    return assigned


# ============================================================
# Prescription analysis
# ============================================================
def request_prescription_analysis(national_id, transcript, treatment_context=None, previous_id=None):
    """Store a pending analysis and hand it to Celery."""
    from .tasks import analyze_prescription_task

    transcript = (transcript or "").strip()
    if not transcript:
        raise AppValidationError(
            message="No transcript available to analyze",
            code="TRANSCRIPT_REQUIRED",
        )

    patient = get_patient_record(national_id)

    previous = None
    if previous_id is not None:
        previous = PrescriptionAnalysis.objects.filter(pk=previous_id, patient=patient).first()
        if previous is None:
            raise NotFoundError(
                message="Analysis not found",
                detail=f"No analysis #{previous_id} for this patient.",
                code="ANALYSIS_NOT_FOUND",
            )

    analysis = PrescriptionAnalysis.objects.create(
        patient=patient,
        previous=previous,
        transcript=transcript,
        treatment_context=treatment_context or {},
    )
    logger.info(
        "prescription_analysis_requested",
        national_id=national_id,
        analysis_id=analysis.id,
        retry_of=previous_id,
    )
    analyze_prescription_task.delay(analysis.id)
    return analysis


def get_prescription_analysis(analysis_id):
    try:
        return PrescriptionAnalysis.objects.select_related("patient").get(pk=analysis_id)
    except PrescriptionAnalysis.DoesNotExist:
        raise NotFoundError(
            message="Analysis not found",
            detail=f"No analysis #{analysis_id}.",
            code="ANALYSIS_NOT_FOUND",
        )


def build_patient_context(patient):
    """Patient fields the analysis prompt needs."""
    return {
        "name": patient.name,
        "age": patient.age,
        "gender": patient.gender,
        "bloodGroup": patient.blood_group,
        "medicalHistory": list(patient.medical_history or []),
        "ongoing_treatments": normalize_column("ongoing_treatments", patient.ongoing_treatments),
        "past_treatments": normalize_column("past_treatments", patient.past_treatments),
    }
