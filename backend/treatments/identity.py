"""
Treatment identity resolution.

Older rows were written before treatments carried an `id`, so a reference is
resolved in two phases: by id where both sides have one, then by exact
display name. Every name-phase hit is logged and counted so those rows can
be backfilled.
"""
import random
import string
import time
from dataclasses import dataclass
from typing import Optional

import structlog
from prometheus_client import Counter

logger = structlog.get_logger(__name__)

TREATMENT_NAME_FALLBACK_TOTAL = Counter(
    "treatment_name_fallback_total",
    "Treatment references resolved by display name instead of id",
    ["operation"],
)

_ID_ALPHABET = string.ascii_lowercase + string.digits


def new_treatment_id() -> str:
    """treatment_<epoch millis>_<9 random base36 chars>"""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"treatment_{int(time.time() * 1000)}_{suffix}"


def display_name(treatment: dict) -> str:
    # `name` is the legacy key, `treatmentName` what the portal writes today
    return treatment.get("treatmentName") or treatment.get("name") or ""


def identity_of(treatment: dict) -> str:
    """Tag stored on history entries: the id, or the name when there is none."""
    return treatment.get("id") or display_name(treatment)


@dataclass
class TreatmentRef:
    id: Optional[str] = None
    name: Optional[str] = None

    @classmethod
    def from_data(cls, data) -> "TreatmentRef":
        if isinstance(data, TreatmentRef):
            return data
        data = data or {}
        return cls(
            id=data.get("id") or None,
            name=data.get("treatmentName") or data.get("name") or None,
        )

    def is_empty(self) -> bool:
        return not self.id and not self.name

    def __str__(self):
        return self.id or self.name or "<empty reference>"


def resolve_by_id(treatments, ref: TreatmentRef) -> Optional[int]:
    if not ref.id:
        return None
    for index, treatment in enumerate(treatments):
        if treatment.get("id") and treatment["id"] == ref.id:
            return index
    return None


def resolve_by_name(treatments, ref: TreatmentRef) -> Optional[int]:
    """
    Exact, case-sensitive name match; first positional match wins.
    When the reference has an id, rows that carry their own id were already
    judged by id and are skipped here.
    """
    if not ref.name:
        return None
    for index, treatment in enumerate(treatments):
        if ref.id and treatment.get("id"):
            continue
        if display_name(treatment) == ref.name:
            return index
    return None


def resolve_treatment(treatments, reference, operation: str) -> Optional[int]:
    """Index of the referenced treatment in `treatments`, or None."""
    ref = TreatmentRef.from_data(reference)

    index = resolve_by_id(treatments, ref)
    if index is not None:
        return index

    index = resolve_by_name(treatments, ref)
    if index is not None:
        TREATMENT_NAME_FALLBACK_TOTAL.labels(operation=operation).inc()
        logger.warning(
            "treatment_name_fallback_match",
            operation=operation,
            reference_id=ref.id,
            reference_name=ref.name,
            index=index,
        )
    return index


def _tag_matches(tag, treatment: dict) -> bool:
    if not tag:
        return False
    if treatment.get("id") and tag == treatment["id"]:
        return True
    name = display_name(treatment)
    return bool(name) and tag == name


def history_belongs_to(entry: dict, treatment: dict) -> bool:
    """
    True if a history entry was superseded from `treatment`.
    Entries tagged with a name predate ids; entries with no tag at all
    are matched on their own snapshot name.
    """
    tag = entry.get("treatmentId")
    if tag:
        return _tag_matches(tag, treatment)
    name = display_name(treatment)
    return bool(name) and display_name(entry) == name


def report_belongs_to(report: dict, treatment: dict) -> bool:
    # treatmentId None means the report is free for any treatment
    return _tag_matches((report or {}).get("treatmentId"), treatment)
