"""
conftest.py - shared fixtures
=============================
Fixtures are ready-made test data; pytest injects them by argument name.
"""
import itertools
from unittest.mock import patch

import pytest
from rest_framework.test import APIClient

from treatments.models import PatientRecord


NATIONAL_ID = '123456789012'


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def clock():
    """
    Deterministic, strictly increasing timestamps for everything the service
    stamps (createdAt, updatedAt, movedToHistoryAt, ...).
    """
    ticks = itertools.count(1)

    def _next():
        return f'2024-03-01T10:00:{next(ticks):02d}.000Z'

    with patch('treatments.services._now_iso', side_effect=_next) as mocked:
        yield mocked


# ============================================================
# Records already in the database
# ============================================================

@pytest.fixture
def patient(db):
    """An empty patient record: every treatment column NULL."""
    return PatientRecord.objects.create(
        national_id=NATIONAL_ID,
        name='Asha Verma',
        age=54,
        gender='Female',
        blood_group='B+',
        medical_history=['Hypertension'],
        ongoing_treatments=None,
        ongoing_treatment_past=None,
        past_treatments=None,
        past_treatments_past=None,
        report_url_treatments=None,
        report_url_treatments_past=None,
    )


@pytest.fixture
def legacy_patient(db):
    """
    A record written before treatments carried ids: name-only treatments,
    name-tagged history, and a single object stored where a list belongs.
    """
    return PatientRecord.objects.create(
        national_id='999900001111',
        name='Meera Iyer',
        age=68,
        ongoing_treatments=[
            {'treatmentName': 'Diabetes care', 'prescriptions': []},
            {'name': 'Thyroid', 'prescriptions': []},
        ],
        ongoing_treatment_past=[
            {'treatmentName': 'Diabetes care', 'notes': 'old dose', 'treatmentId': 'Diabetes care'},
        ],
        past_treatments={'treatmentName': 'Flu', 'status': 'completed'},
        report_url_treatments={
            'HbA1c': {'url': 'https://r.example/hba1c.pdf', 'treatmentId': 'Diabetes care'},
        },
    )


@pytest.fixture
def treatment_fields():
    return {
        'treatmentName': 'Hypertension Rx',
        'startDate': '2024-01-10',
        'prescriptions': [
            {'medicineName': 'Amlodipine', 'dose': '5mg', 'quantity': '30', 'frequency': ['morning']},
        ],
    }
