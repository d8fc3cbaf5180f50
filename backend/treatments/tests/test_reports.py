# treatments/tests/test_reports.py
"""
Report attachment and how reports follow their treatment.
"""
import pytest

from treatments import services
from treatments.exceptions import AppValidationError, NotFoundError
from treatments.models import PatientRecord

from .conftest import NATIONAL_ID


def _reload():
    return PatientRecord.objects.get(national_id=NATIONAL_ID)


@pytest.mark.django_db
def test_attach_free_report(patient, clock):
    services.attach_report(NATIONAL_ID, 'Chest X-ray', 'https://r.example/cxr.png')

    report = _reload().report_url_treatments['Chest X-ray']
    assert report['url'] == 'https://r.example/cxr.png'
    assert report['uploadedBy'] == 'lab'
    assert report['treatmentId'] is None
    assert report['date']


@pytest.mark.django_db
def test_attach_bound_report_lists_it_on_treatment(patient, clock):
    t = services.create_treatment(NATIONAL_ID, {'treatmentName': 'Rx'}).treatment

    result = services.attach_report(
        NATIONAL_ID, 'ECG', 'https://r.example/ecg.pdf', reference={'id': t['id']}, uploaded_by='doctor',
    )

    record = _reload()
    assert record.report_url_treatments['ECG']['treatmentId'] == t['id']
    assert record.report_url_treatments['ECG']['uploadedBy'] == 'doctor'
    assert record.ongoing_treatments[0]['attachedReports'] == [{'name': 'ECG', 'url': 'https://r.example/ecg.pdf'}]
    assert result.treatment['updatedAt'] > t['updatedAt']
    # attaching is not an edit
    assert record.ongoing_treatment_past == []


@pytest.mark.django_db
def test_reattach_replaces_and_unlinks_previous_owner(patient, clock):
    a = services.create_treatment(NATIONAL_ID, {'treatmentName': 'A'}).treatment
    b = services.create_treatment(NATIONAL_ID, {'treatmentName': 'B'}).treatment
    services.attach_report(NATIONAL_ID, 'ECG', 'https://r.example/v1.pdf', reference={'id': a['id']})

    services.attach_report(NATIONAL_ID, 'ECG', 'https://r.example/v2.pdf', reference={'id': b['id']})

    record = _reload()
    by_id = {t['id']: t for t in record.ongoing_treatments}
    assert by_id[a['id']]['attachedReports'] == []
    assert by_id[b['id']]['attachedReports'] == [{'name': 'ECG', 'url': 'https://r.example/v2.pdf'}]
    assert record.report_url_treatments['ECG']['treatmentId'] == b['id']
    assert record.report_url_treatments['ECG']['url'] == 'https://r.example/v2.pdf'


@pytest.mark.django_db
def test_attach_to_unknown_treatment(patient, clock):
    with pytest.raises(NotFoundError):
        services.attach_report(NATIONAL_ID, 'ECG', 'https://r.example/ecg.pdf', reference={'name': 'Nope'})
    assert _reload().report_url_treatments is None


@pytest.mark.django_db
@pytest.mark.parametrize('name, url', [('', 'https://r.example/x'), ('ECG', ''), ('  ', '  ')])
def test_attach_requires_name_and_url(patient, name, url):
    with pytest.raises(AppValidationError):
        services.attach_report(NATIONAL_ID, name, url)


@pytest.mark.django_db
def test_complete_moves_only_its_reports(patient, clock):
    a = services.create_treatment(NATIONAL_ID, {'treatmentName': 'A'}).treatment
    b = services.create_treatment(NATIONAL_ID, {'treatmentName': 'B'}).treatment
    services.attach_report(NATIONAL_ID, 'ECG', 'https://r.example/ecg.pdf', reference={'id': a['id']})
    services.attach_report(NATIONAL_ID, 'CBC', 'https://r.example/cbc.pdf', reference={'id': b['id']})
    services.attach_report(NATIONAL_ID, 'X-ray', 'https://r.example/xr.png')

    services.complete_treatment(NATIONAL_ID, {'id': a['id']})

    record = _reload()
    assert sorted(record.report_url_treatments) == ['CBC', 'X-ray']
    assert list(record.report_url_treatments_past) == ['ECG']
    moved = record.report_url_treatments_past['ECG']
    assert moved['treatmentId'] == a['id']
    assert moved['movedToPastAt'] == record.past_treatments[0]['completedDate']
