"""
test_api.py - Integration Tests
===============================
HTTP request in, JSON out. Every error must come back in the unified
{type, code, message, detail} shape.
"""
import pytest

from treatments.models import PatientRecord, PrescriptionAnalysis

from .conftest import NATIONAL_ID

BASE = f'/api/patients/{NATIONAL_ID}'


def _create(api_client, name='Hypertension Rx', **extra):
    response = api_client.post(f'{BASE}/treatments/', {'treatmentName': name, **extra}, format='json')
    assert response.status_code == 201
    return response.data['treatment']


# ============================================================
# Patients
# ============================================================

@pytest.mark.django_db
def test_register_patient(api_client):
    payload = {
        'national_id': '555566667777',
        'name': 'Rahul Nair',
        'age': 37,
        'gender': 'Male',
        'blood_group': 'O+',
        'medical_history': ['Asthma'],
    }
    response = api_client.post('/api/patients/', payload, format='json')

    assert response.status_code == 201
    assert response.data['national_id'] == '555566667777'
    assert response.data['revision'] == 0
    assert PatientRecord.objects.filter(national_id='555566667777').exists()


@pytest.mark.django_db
def test_register_duplicate_patient_returns_409(api_client, patient):
    response = api_client.post('/api/patients/', {'national_id': NATIONAL_ID, 'name': 'Someone'}, format='json')

    assert response.status_code == 409
    assert response.data['type'] == 'error'
    assert response.data['code'] == 'PATIENT_EXISTS'


@pytest.mark.django_db
def test_get_patient(api_client, patient):
    response = api_client.get(f'{BASE}/')
    assert response.status_code == 200
    assert response.data['name'] == 'Asha Verma'


@pytest.mark.django_db
def test_get_unknown_patient_returns_404(api_client):
    response = api_client.get('/api/patients/nobody/')
    assert response.status_code == 404
    assert response.data['code'] == 'PATIENT_NOT_FOUND'


# ============================================================
# Treatment lifecycle
# ============================================================

@pytest.mark.django_db
def test_create_treatment(api_client, patient, clock):
    response = api_client.post(f'{BASE}/treatments/', {
        'name': 'Hypertension Rx',
        'prescriptions': [{'medicineName': 'Amlodipine', 'dose': '5mg', 'frequency': ['morning']}],
    }, format='json')

    assert response.status_code == 201
    assert response.data['treatment']['treatmentName'] == 'Hypertension Rx'
    assert len(response.data['record']['ongoing_treatments']) == 1
    assert response.data['record']['revision'] == 1


@pytest.mark.django_db
def test_create_keeps_prescription_and_report_keys(api_client, patient, clock):
    api_client.post(f'{BASE}/reports/', {'name': 'ECG', 'url': 'https://r.example/ecg.pdf'}, format='json')

    response = api_client.post(f'{BASE}/treatments/', {
        'treatmentName': 'Hypertension Rx',
        'prescriptions': [{
            'id': 1717000000000, 'medicineName': 'Amlodipine', 'dose': '5mg',
            'quantity': '30', 'frequency': ['morning'],
        }],
        'attachedReports': [{
            'name': 'ECG', 'url': 'https://r.example/ecg.pdf',
            'date': '2024-03-01T10:00:00.000Z', 'treatmentId': None,
        }],
    }, format='json')

    assert response.status_code == 201
    stored = PatientRecord.objects.get(national_id=NATIONAL_ID).ongoing_treatments[0]
    assert stored['prescriptions'][0]['id'] == 1717000000000
    assert stored['attachedReports'][0]['date'] == '2024-03-01T10:00:00.000Z'
    assert stored['attachedReports'][0]['treatmentId'] is None


@pytest.mark.django_db
def test_create_with_unknown_report_returns_400(api_client, patient):
    response = api_client.post(f'{BASE}/treatments/', {
        'treatmentName': 'Rx',
        'attachedReports': [{'name': 'Ghost', 'url': 'https://r.example/ghost.pdf'}],
    }, format='json')

    assert response.status_code == 400
    assert response.data['code'] == 'UNKNOWN_REPORT'
    assert PatientRecord.objects.get(national_id=NATIONAL_ID).ongoing_treatments is None


@pytest.mark.django_db
def test_create_blank_name_returns_400(api_client, patient):
    response = api_client.post(f'{BASE}/treatments/', {'treatmentName': '  '}, format='json')

    assert response.status_code == 400
    assert response.data['code'] == 'TREATMENT_NAME_REQUIRED'


@pytest.mark.django_db
def test_create_bad_frequency_returns_400(api_client, patient):
    response = api_client.post(f'{BASE}/treatments/', {
        'treatmentName': 'Rx',
        'prescriptions': [{'medicineName': 'X', 'frequency': ['noon']}],
    }, format='json')

    assert response.status_code == 400
    assert response.data['code'] == 'VALIDATION_ERROR'
    assert any('prescriptions' in line for line in response.data['detail'])


@pytest.mark.django_db
def test_update_then_history(api_client, patient, clock):
    t = _create(api_client)

    response = api_client.post(f'{BASE}/treatments/update/', {
        'reference': {'id': t['id']},
        'treatment': {'treatmentName': 'Hypertension Rx', 'notes': 'dose increased'},
    }, format='json')
    assert response.status_code == 200
    assert response.data['treatment']['id'] == t['id']
    assert response.data['treatment']['notes'] == 'dose increased'

    response = api_client.get(f'{BASE}/treatments/history/', {'id': t['id']})
    assert response.status_code == 200
    assert response.data['scope'] == 'ongoing'
    assert len(response.data['history']) == 1
    assert response.data['history'][0]['treatmentId'] == t['id']


@pytest.mark.django_db
def test_update_unknown_reference_warns_then_confirm_inserts(api_client, patient, clock):
    body = {
        'reference': {'name': 'Vitamin D'},
        'treatment': {'treatmentName': 'Vitamin D'},
    }
    response = api_client.post(f'{BASE}/treatments/update/', body, format='json')

    assert response.status_code == 200
    assert response.data['type'] == 'warning'
    assert response.data['code'] == 'TREATMENT_REFERENCE_UNRESOLVED'
    assert PatientRecord.objects.get(national_id=NATIONAL_ID).revision == 0

    response = api_client.post(f'{BASE}/treatments/update/', {**body, 'confirm': True}, format='json')

    assert response.status_code == 200
    assert response.data['treatment']['treatmentName'] == 'Vitamin D'
    assert len(response.data['record']['ongoing_treatments']) == 1


@pytest.mark.django_db
def test_complete_and_list_past(api_client, patient, clock):
    t = _create(api_client)

    response = api_client.post(f'{BASE}/treatments/complete/', {'reference': {'id': t['id']}}, format='json')
    assert response.status_code == 200
    assert response.data['treatment']['status'] == 'completed'

    response = api_client.get(f'{BASE}/treatments/', {'scope': 'past'})
    assert [x['id'] for x in response.data['treatments']] == [t['id']]
    response = api_client.get(f'{BASE}/treatments/')
    assert response.data['treatments'] == []


@pytest.mark.django_db
def test_complete_unknown_returns_404(api_client, patient):
    response = api_client.post(f'{BASE}/treatments/complete/', {'reference': {'name': 'Nope'}}, format='json')
    assert response.status_code == 404
    assert response.data['code'] == 'TREATMENT_NOT_FOUND'


@pytest.mark.django_db
def test_remove(api_client, patient, clock):
    t = _create(api_client)
    response = api_client.post(f'{BASE}/treatments/remove/', {'reference': {'treatmentName': 'Hypertension Rx'}}, format='json')

    assert response.status_code == 200
    assert response.data['treatment']['id'] == t['id']
    assert response.data['record']['ongoing_treatments'] == []


@pytest.mark.django_db
def test_empty_reference_returns_400(api_client, patient):
    response = api_client.post(f'{BASE}/treatments/remove/', {'reference': {}}, format='json')
    assert response.status_code == 400
    assert response.data['code'] == 'TREATMENT_REFERENCE_REQUIRED'


@pytest.mark.django_db
def test_bad_scope_returns_400(api_client, patient):
    response = api_client.get(f'{BASE}/treatments/', {'scope': 'archived'})
    assert response.status_code == 400
    assert response.data['type'] == 'error'


# ============================================================
# Reports
# ============================================================

@pytest.mark.django_db
def test_attach_report(api_client, patient, clock):
    t = _create(api_client)
    response = api_client.post(f'{BASE}/reports/', {
        'name': 'ECG',
        'url': 'https://r.example/ecg.pdf',
        'reference': {'id': t['id']},
    }, format='json')

    assert response.status_code == 201
    report = response.data['record']['report_url_treatments']['ECG']
    assert report['treatmentId'] == t['id']
    assert report['uploadedBy'] == 'lab'


@pytest.mark.django_db
def test_attach_report_missing_url_returns_400(api_client, patient):
    response = api_client.post(f'{BASE}/reports/', {'name': 'ECG'}, format='json')
    assert response.status_code == 400
    assert response.data['code'] == 'VALIDATION_ERROR'


# ============================================================
# Prescription analysis
# ============================================================

@pytest.mark.django_db
def test_prescription_analysis_roundtrip(api_client, patient):
    response = api_client.post(f'{BASE}/prescription-analyses/', {
        'transcript': 'Amlodipine 5 mg every morning',
    }, format='json')

    assert response.status_code == 202
    analysis_id = response.data['analysis_id']
    assert response.data['national_id'] == NATIONAL_ID

    response = api_client.get(f'/api/prescription-analyses/{analysis_id}/')
    assert response.status_code == 200
    assert response.data['status'] == 'completed'
    assert response.data['result']['overallAssessment']['status'] == 'approved'


@pytest.mark.django_db
def test_prescription_analysis_blank_transcript(api_client, patient):
    response = api_client.post(f'{BASE}/prescription-analyses/', {'transcript': ''}, format='json')

    assert response.status_code == 400
    assert response.data['code'] == 'TRANSCRIPT_REQUIRED'
    assert PrescriptionAnalysis.objects.count() == 0


@pytest.mark.django_db
def test_unknown_analysis_returns_404(api_client):
    response = api_client.get('/api/prescription-analyses/999/')
    assert response.status_code == 404
    assert response.data['code'] == 'ANALYSIS_NOT_FOUND'
