"""
Medical record repository.

``record_data`` is sealed on every write and unsealed on every read
through :data:`RECORD_FIELDS`; an undecryptable record raises rather than
coming back empty.

Visibility:

* admins see everything;
* patients see their own records;
* doctors see records they authored plus any record whose access level
  is ``doctor`` or ``shared``.

Only the authoring doctor or an admin may change or delete a record.
"""
from typing import Any, Optional

from django.contrib.auth import get_user_model
from django.db.models import Q
from django.utils import timezone

from care.exceptions import AuthorizationError, NotFoundError
from care.models import AccessLog, MedicalRecord
from care.services.audit import RequestContext, record_access
from care.services.field_encryption import FieldEncryptionAdapter
from care.services.paging import paginate

User = get_user_model()

RECORD_FIELDS = FieldEncryptionAdapter(['record_data'])

OPEN_TO_DOCTORS = (MedicalRecord.ACCESS_DOCTOR, MedicalRecord.ACCESS_SHARED)

UNSET: Any = object()


def can_view(user, record: MedicalRecord) -> bool:
    if user.role == User.ROLE_ADMIN:
        return True
    if record.status == MedicalRecord.STATUS_DELETED:
        return False
    if user.role == User.ROLE_PATIENT:
        return record.patient_id == user.pk
    if user.role == User.ROLE_DOCTOR:
        return record.doctor_id == user.pk or record.access_level in OPEN_TO_DOCTORS
    return False


def can_modify(user, record: MedicalRecord) -> bool:
    return user.role == User.ROLE_ADMIN or (
        user.role == User.ROLE_DOCTOR and record.doctor_id == user.pk
    )


def visible_to(user) -> Q:
    if user.role == User.ROLE_ADMIN:
        return Q()
    if user.role == User.ROLE_PATIENT:
        return Q(patient_id=user.pk)
    if user.role == User.ROLE_DOCTOR:
        return Q(doctor_id=user.pk) | Q(access_level__in=OPEN_TO_DOCTORS)
    return Q(pk__in=[])


def read_data(record: MedicalRecord, *, fail_soft: bool = False):
    return RECORD_FIELDS.read(record, fail_soft=fail_soft)['record_data']


def _load(record_id: int) -> MedicalRecord:
    record = MedicalRecord.objects.select_related('patient', 'doctor').filter(pk=record_id).first()
    if record is None:
        raise NotFoundError('Medical record not found.', code='RECORD_NOT_FOUND')
    return record


def _deny(user, action: str, record: MedicalRecord, context: RequestContext):
    record_access(user=user, action=action, resource_type='medical_record', resource_id=record.pk,
                  status=AccessLog.STATUS_UNAUTHORIZED, context=context)
    raise AuthorizationError('Access denied to this medical record.')


def create_record(author, *, patient_id: int, record_type: str, record_data, context: RequestContext,
                  access_level: str = MedicalRecord.ACCESS_PRIVATE, record_date=None) -> MedicalRecord:
    patient = User.objects.filter(pk=patient_id, role=User.ROLE_PATIENT).first()
    if patient is None:
        raise NotFoundError('Patient not found.', code='PATIENT_NOT_FOUND')

    record = MedicalRecord(
        patient=patient,
        doctor=author,
        record_type=record_type,
        record_date=record_date or timezone.now(),
        access_level=access_level,
    )
    RECORD_FIELDS.write(record, record_data=record_data)
    record.save()
    record_access(user=author, action='create', resource_type='medical_record', resource_id=record.pk,
                  context=context, details={'patientId': patient.pk, 'recordType': record_type})
    return record


def get_record(user, record_id: int, context: RequestContext, *, fail_soft: bool = False):
    """Return ``(record, data)`` after checking access."""
    record = _load(record_id)
    if not can_view(user, record):
        _deny(user, 'view', record, context)
    data = read_data(record, fail_soft=fail_soft)
    record_access(user=user, action='view', resource_type='medical_record', resource_id=record.pk,
                  context=context)
    return record, data


def update_record(user, record_id: int, context: RequestContext, *, record_data=UNSET,
                  record_type: Optional[str] = None, access_level: Optional[str] = None,
                  status: Optional[str] = None, record_date=None):
    record = _load(record_id)
    if not can_modify(user, record) or record.status == MedicalRecord.STATUS_DELETED:
        _deny(user, 'update', record, context)

    changed = []
    if record_data is not UNSET:
        changed += RECORD_FIELDS.write(record, record_data=record_data)
    for name, value in (('record_type', record_type), ('access_level', access_level),
                        ('status', status), ('record_date', record_date)):
        if value is not None:
            setattr(record, name, value)
            changed.append(name)
    if changed:
        record.save(update_fields=[*changed, 'updated_at'])

    record_access(user=user, action='update', resource_type='medical_record', resource_id=record.pk,
                  context=context, details={'fields': sorted(set(changed))})
    return record, read_data(record)


def delete_record(user, record_id: int, context: RequestContext) -> MedicalRecord:
    record = _load(record_id)
    if not can_modify(user, record):
        _deny(user, 'delete', record, context)
    record.status = MedicalRecord.STATUS_DELETED
    record.save(update_fields=['status', 'updated_at'])
    record_access(user=user, action='delete', resource_type='medical_record', resource_id=record.pk,
                  context=context)
    return record


def _list(user, qs, context: RequestContext, *, scope: str, owner_id: int, page: int, limit: int,
          record_type: Optional[str] = None):
    qs = qs.exclude(status=MedicalRecord.STATUS_DELETED).filter(visible_to(user))
    if record_type:
        qs = qs.filter(record_type=record_type)
    items, total = paginate(qs.select_related('patient', 'doctor').order_by('-record_date', '-pk'), page, limit)
    record_access(user=user, action='view', resource_type='medical_record', context=context,
                  details={'scope': scope, 'ownerId': owner_id, 'count': len(items)})
    return [(record, read_data(record)) for record in items], total


def list_patient_records(user, patient_id: int, context: RequestContext, *, page: int = 1, limit: int = 20,
                         record_type: Optional[str] = None):
    if user.role == User.ROLE_PATIENT and user.pk != patient_id:
        record_access(user=user, action='view', resource_type='medical_record',
                      status=AccessLog.STATUS_UNAUTHORIZED, context=context, details={'patientId': patient_id})
        raise AuthorizationError('Patients can only view their own records.')
    qs = MedicalRecord.objects.filter(patient_id=patient_id)
    return _list(user, qs, context, scope='patient', owner_id=patient_id, page=page, limit=limit,
                 record_type=record_type)


def list_doctor_records(user, doctor_id: int, context: RequestContext, *, page: int = 1, limit: int = 20,
                        record_type: Optional[str] = None):
    if user.role != User.ROLE_ADMIN and user.pk != doctor_id:
        record_access(user=user, action='view', resource_type='medical_record',
                      status=AccessLog.STATUS_UNAUTHORIZED, context=context, details={'doctorId': doctor_id})
        raise AuthorizationError('Doctors can only list the records they authored.')
    qs = MedicalRecord.objects.filter(doctor_id=doctor_id)
    return _list(user, qs, context, scope='doctor', owner_id=doctor_id, page=page, limit=limit,
                 record_type=record_type)
