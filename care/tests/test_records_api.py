import json
from datetime import timedelta

import pytest
from django.urls import reverse
from django.utils import timezone

from care.models import AccessLog, Consultation, MedicalRecord
from care.services.field_encryption import unseal

pytestmark = pytest.mark.django_db

RECORD_DATA = {'diagnosis': 'Seasonal allergies', 'prescription': ['cetirizine 10mg']}


def create_record(client, patient, **extra):
    payload = {'patientId': patient.pk, 'recordType': 'diagnosis', 'recordData': RECORD_DATA, **extra}
    return client.post(reverse('record-create'), payload, format='json')


def corrupt(stored):
    blob = json.loads(stored)
    blob['encrypted'] = ('1' if blob['encrypted'][0] == '0' else '0') + blob['encrypted'][1:]
    return json.dumps(blob)


def future(days=1):
    return (timezone.now() + timedelta(days=days)).isoformat()


# ---------------------------------------------------------------------
# Medical records
# ---------------------------------------------------------------------
def test_doctor_creates_encrypted_record(client_for, doctor, patient):
    r = create_record(client_for(doctor), patient)
    assert r.status_code == 201, r.data
    assert r.data['data']['recordData'] == RECORD_DATA
    assert r.data['data']['encryptionVersion'] == '1.0'

    stored = MedicalRecord.objects.get(pk=r.data['data']['id'])
    assert 'allergies' not in stored.record_data
    assert set(json.loads(stored.record_data)) == {'encrypted', 'authTag', 'iv'}
    assert unseal(stored.record_data) == RECORD_DATA
    assert AccessLog.objects.filter(user=doctor, action='create', resource_type='medical_record').exists()


def test_patient_cannot_create_records(client_for, patient):
    r = create_record(client_for(patient), patient)
    assert r.status_code == 403
    assert r.data['error']['code'] == 'FORBIDDEN'


def test_record_for_unknown_patient(client_for, doctor, other_doctor):
    r = create_record(client_for(doctor), other_doctor)
    assert r.status_code == 404
    assert r.data['error']['code'] == 'PATIENT_NOT_FOUND'


def test_record_visibility(client_for, doctor, other_doctor, patient, other_patient):
    private_id = create_record(client_for(doctor), patient).data['data']['id']
    shared_id = create_record(client_for(doctor), patient, accessLevel='shared').data['data']['id']

    assert client_for(patient).get(reverse('record-detail', args=[private_id])).status_code == 200
    assert client_for(other_doctor).get(reverse('record-detail', args=[shared_id])).status_code == 200

    denied = client_for(other_doctor).get(reverse('record-detail', args=[private_id]))
    assert denied.status_code == 403
    assert client_for(other_patient).get(reverse('record-detail', args=[private_id])).status_code == 403
    assert AccessLog.objects.filter(user=other_doctor, status='unauthorized',
                                    resource_id=str(private_id)).exists()


def test_only_author_updates_and_deletes(client_for, doctor, other_doctor, patient, admin_user):
    record_id = create_record(client_for(doctor), patient, accessLevel='doctor').data['data']['id']
    url = reverse('record-detail', args=[record_id])

    assert client_for(other_doctor).patch(url, {'status': 'archived'}, format='json').status_code == 403
    assert client_for(patient).patch(url, {'status': 'archived'}, format='json').status_code == 403

    r = client_for(doctor).patch(url, {'recordData': {'diagnosis': 'Resolved'}}, format='json')
    assert r.status_code == 200
    assert r.data['data']['recordData'] == {'diagnosis': 'Resolved'}
    assert unseal(MedicalRecord.objects.get(pk=record_id).record_data) == {'diagnosis': 'Resolved'}

    assert client_for(doctor).delete(url).status_code == 200
    assert MedicalRecord.objects.get(pk=record_id).status == MedicalRecord.STATUS_DELETED
    assert client_for(patient).get(url).status_code == 403
    assert client_for(admin_user).get(url).status_code == 200


def test_corrupted_record_is_an_opaque_server_error(client_for, doctor, patient):
    record_id = create_record(client_for(doctor), patient).data['data']['id']
    stored = MedicalRecord.objects.get(pk=record_id).record_data
    MedicalRecord.objects.filter(pk=record_id).update(record_data=corrupt(stored))

    r = client_for(doctor).get(reverse('record-detail', args=[record_id]))
    assert r.status_code == 500
    assert r.data['error']['code'] == 'INTERNAL_ERROR'
    assert r.data['error']['requestId'] == r['X-Request-ID']
    assert 'Seasonal' not in json.dumps(r.data)


def test_patient_record_listing(client_for, doctor, patient, other_patient):
    for _ in range(3):
        create_record(client_for(doctor), patient)
    create_record(client_for(doctor), patient, recordType='lab_result')
    create_record(client_for(doctor), other_patient)

    r = client_for(patient).get(reverse('patient-records', args=[patient.pk]), {'page': 1, 'limit': 2})
    assert r.status_code == 200
    assert r.data['pagination'] == {'total': 4, 'page': 1, 'limit': 2, 'pages': 2}
    assert all(item['patientId'] == patient.pk for item in r.data['data'])

    labs = client_for(doctor).get(reverse('patient-records', args=[patient.pk]), {'recordType': 'lab_result'})
    assert labs.data['pagination']['total'] == 1

    other = client_for(other_patient).get(reverse('patient-records', args=[patient.pk]))
    assert other.status_code == 403


def test_doctor_record_listing(client_for, doctor, other_doctor, patient, admin_user):
    create_record(client_for(doctor), patient)
    assert client_for(doctor).get(reverse('doctor-records', args=[doctor.pk])).data['pagination']['total'] == 1
    assert client_for(admin_user).get(reverse('doctor-records', args=[doctor.pk])).status_code == 200
    assert client_for(other_doctor).get(reverse('doctor-records', args=[doctor.pk])).status_code == 403
    assert client_for(patient).get(reverse('doctor-records', args=[doctor.pk])).status_code == 403


def test_listing_limit_is_bounded(client_for, patient):
    r = client_for(patient).get(reverse('patient-records', args=[patient.pk]), {'limit': 500})
    assert r.status_code == 400
    assert 'limit' in r.data['error']['details']


# ---------------------------------------------------------------------
# Consultations
# ---------------------------------------------------------------------
def create_consultation(client, patient, **extra):
    payload = {'patientId': patient.pk, 'scheduledAt': future(), 'consultationType': 'video', **extra}
    return client.post(reverse('consultation-create'), payload, format='json')


def test_consultation_lifecycle(client_for, doctor, patient):
    r = create_consultation(client_for(doctor), patient, notes='<b>Bring</b> previous results',
                            attachments=[{'name': 'xray.png', 'url': 'https://files.example.com/xray.png'}])
    assert r.status_code == 201, r.data
    data = r.data['data']
    assert data['status'] == 'scheduled' and data['doctorId'] == doctor.pk
    assert data['notes'] == 'Bring previous results'
    assert data['attachments'][0]['name'] == 'xray.png'
    stored = Consultation.objects.get(pk=data['id'])
    assert 'xray' not in stored.attachments and 'Bring' not in stored.notes

    status_url = reverse('consultation-status', args=[data['id']])
    bad = client_for(doctor).patch(status_url, {'status': 'completed'}, format='json')
    assert bad.status_code == 400
    assert bad.data['error']['code'] == 'INVALID_STATUS_TRANSITION'

    started = client_for(doctor).patch(status_url, {'status': 'in_progress'}, format='json')
    assert started.data['data']['startedAt'] is not None
    done = client_for(doctor).patch(status_url, {'status': 'completed'}, format='json')
    assert done.status_code == 200
    assert done.data['data']['completedAt'] is not None
    assert done.data['data']['duration'] == 0

    notes = client_for(doctor).post(reverse('consultation-notes', args=[data['id']]),
                                    {'notes': 'Follow up in two weeks'}, format='json')
    assert notes.data['data']['notes'] == 'Follow up in two weeks'

    seen = client_for(patient).get(reverse('consultation-detail', args=[data['id']]))
    assert seen.status_code == 200
    assert seen.data['data']['notes'] == 'Follow up in two weeks'


def test_consultation_scheduling_rules(client_for, doctor, patient, other_patient, admin_user):
    past = (timezone.now() - timedelta(hours=1)).isoformat()
    assert create_consultation(client_for(doctor), patient, scheduledAt=past).status_code == 400

    when = future(2)
    assert create_consultation(client_for(doctor), patient, scheduledAt=when).status_code == 201
    clash = create_consultation(client_for(doctor), other_patient, scheduledAt=when)
    assert clash.status_code == 409
    assert clash.data['error']['code'] == 'DOUBLE_BOOKING'

    missing = create_consultation(client_for(admin_user), patient)
    assert missing.status_code == 400
    assert missing.data['error']['code'] == 'DOCTOR_REQUIRED'
    booked = create_consultation(client_for(admin_user), patient, doctorId=doctor.pk, scheduledAt=future(3))
    assert booked.status_code == 201
    assert booked.data['data']['doctorId'] == doctor.pk


def test_consultation_access(client_for, doctor, other_doctor, patient, other_patient):
    consultation_id = create_consultation(client_for(doctor), patient).data['data']['id']
    assert client_for(other_patient).get(reverse('consultation-detail', args=[consultation_id])).status_code == 403
    assert client_for(other_doctor).get(reverse('consultation-detail', args=[consultation_id])).status_code == 403
    change = client_for(other_doctor).patch(reverse('consultation-status', args=[consultation_id]),
                                            {'status': 'cancelled'}, format='json')
    assert change.status_code == 403

    mine = client_for(patient).get(reverse('patient-consultations', args=[patient.pk]))
    assert mine.data['pagination']['total'] == 1
    assert client_for(other_patient).get(reverse('patient-consultations', args=[patient.pk])).status_code == 403
    assert client_for(doctor).get(reverse('doctor-consultations', args=[doctor.pk])).data['pagination']['total'] == 1
    assert client_for(other_doctor).get(reverse('doctor-consultations', args=[doctor.pk])).status_code == 403
    assert client_for(patient).get(reverse('consultation-detail', args=[999999])).status_code == 404
