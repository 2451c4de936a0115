from datetime import datetime
from typing import Any, Optional

import bleach
from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone

from care.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationFailed
from care.models import AccessLog, Consultation
from care.services.audit import RequestContext, record_access
from care.services.field_encryption import FieldEncryptionAdapter
from care.services.paging import paginate

User = get_user_model()

CONSULTATION_FIELDS = FieldEncryptionAdapter(['consultation_data', 'notes', 'attachments'])

ACTIVE_STATUSES = (Consultation.STATUS_SCHEDULED, Consultation.STATUS_IN_PROGRESS)

# allowed status moves
TRANSITIONS = {
    Consultation.STATUS_SCHEDULED: {Consultation.STATUS_IN_PROGRESS, Consultation.STATUS_CANCELLED},
    Consultation.STATUS_IN_PROGRESS: {Consultation.STATUS_COMPLETED, Consultation.STATUS_CANCELLED},
    Consultation.STATUS_COMPLETED: set(),
    Consultation.STATUS_CANCELLED: set(),
}


def can_access(user, consultation: Consultation) -> bool:
    if user.role == User.ROLE_ADMIN:
        return True
    return user.pk in (consultation.patient_id, consultation.doctor_id)


def can_manage(user, consultation: Consultation) -> bool:
    return user.role == User.ROLE_ADMIN or consultation.doctor_id == user.pk


def read_fields(consultation: Consultation, *, fail_soft: bool = False) -> dict:
    return CONSULTATION_FIELDS.read(consultation, fail_soft=fail_soft)


def _clean_notes(notes: Optional[str]) -> Optional[str]:
    if notes is None:
        return None
    return bleach.clean(notes.strip(), tags=set(), strip=True)


def _load(consultation_id: int) -> Consultation:
    consultation = Consultation.objects.select_related('patient', 'doctor').filter(pk=consultation_id).first()
    if consultation is None:
        raise NotFoundError('Consultation not found.', code='CONSULTATION_NOT_FOUND')
    return consultation


def _deny(user, action: str, consultation: Consultation, context: RequestContext):
    record_access(user=user, action=action, resource_type='consultation', resource_id=consultation.pk,
                  status=AccessLog.STATUS_UNAUTHORIZED, context=context)
    raise AuthorizationError('Access denied to this consultation.')


@transaction.atomic
def create_consultation(author, *, patient_id: int, scheduled_at: datetime, consultation_type: str,
                        context: RequestContext, doctor_id: Optional[int] = None, notes: Optional[str] = None,
                        consultation_data: Any = None, attachments: Optional[list] = None) -> Consultation:
    patient = User.objects.filter(pk=patient_id, role=User.ROLE_PATIENT).first()
    if patient is None:
        raise NotFoundError('Patient not found.', code='PATIENT_NOT_FOUND')

    if author.role == User.ROLE_DOCTOR:
        doctor = author
    else:
        doctor = User.objects.filter(pk=doctor_id, role=User.ROLE_DOCTOR).first() if doctor_id else None
        if doctor is None:
            raise ValidationFailed('A valid doctorId is required.', code='DOCTOR_REQUIRED')

    if scheduled_at <= timezone.now():
        raise ValidationFailed('Consultation must be scheduled in the future.')

    clash = (Consultation.objects.select_for_update()
             .filter(doctor=doctor, scheduled_at=scheduled_at, status__in=ACTIVE_STATUSES)
             .exists())
    if clash:
        raise ConflictError('The doctor already has a consultation at this time.', code='DOUBLE_BOOKING')

    consultation = Consultation(
        patient=patient,
        doctor=doctor,
        scheduled_at=scheduled_at,
        consultation_type=consultation_type,
    )
    CONSULTATION_FIELDS.write(
        consultation,
        consultation_data=consultation_data,
        notes=_clean_notes(notes),
        attachments=attachments,
    )
    consultation.save()
    record_access(user=author, action='create', resource_type='consultation', resource_id=consultation.pk,
                  context=context, details={'patientId': patient.pk, 'doctorId': doctor.pk})
    return consultation


def get_consultation(user, consultation_id: int, context: RequestContext, *, fail_soft: bool = False):
    consultation = _load(consultation_id)
    if not can_access(user, consultation):
        _deny(user, 'view', consultation, context)
    fields = read_fields(consultation, fail_soft=fail_soft)
    record_access(user=user, action='view', resource_type='consultation', resource_id=consultation.pk,
                  context=context)
    return consultation, fields


def update_status(user, consultation_id: int, status: str, context: RequestContext):
    consultation = _load(consultation_id)
    if not can_manage(user, consultation):
        _deny(user, 'update', consultation, context)
    if status not in TRANSITIONS[consultation.status]:
        raise ValidationFailed(
            f'Cannot move a consultation from {consultation.status} to {status}.',
            code='INVALID_STATUS_TRANSITION',
        )

    now = timezone.now()
    consultation.status = status
    if status == Consultation.STATUS_IN_PROGRESS:
        consultation.started_at = now
    elif status == Consultation.STATUS_COMPLETED:
        consultation.completed_at = now
        started = consultation.started_at or consultation.scheduled_at
        consultation.duration = max(0, round((now - started).total_seconds() / 60))
    consultation.save()

    record_access(user=user, action='update', resource_type='consultation', resource_id=consultation.pk,
                  context=context, details={'status': status})
    return consultation, read_fields(consultation)


def add_notes(user, consultation_id: int, notes: str, context: RequestContext):
    consultation = _load(consultation_id)
    if not can_manage(user, consultation):
        _deny(user, 'update', consultation, context)
    changed = CONSULTATION_FIELDS.write(consultation, notes=_clean_notes(notes))
    consultation.save(update_fields=[*changed, 'updated_at'])
    record_access(user=user, action='update', resource_type='consultation', resource_id=consultation.pk,
                  context=context, details={'field': 'notes'})
    return consultation, read_fields(consultation)


def _list(user, qs, context: RequestContext, *, scope: str, owner_id: int, page: int, limit: int,
          status: Optional[str] = None):
    if status:
        qs = qs.filter(status=status)
    items, total = paginate(qs.select_related('patient', 'doctor').order_by('-scheduled_at', '-pk'), page, limit)
    record_access(user=user, action='view', resource_type='consultation', context=context,
                  details={'scope': scope, 'ownerId': owner_id, 'count': len(items)})
    return [(c, read_fields(c)) for c in items], total


def list_patient_consultations(user, patient_id: int, context: RequestContext, *, page: int = 1,
                               limit: int = 20, status: Optional[str] = None):
    qs = Consultation.objects.filter(patient_id=patient_id)
    if user.role == User.ROLE_PATIENT and user.pk != patient_id:
        record_access(user=user, action='view', resource_type='consultation',
                      status=AccessLog.STATUS_UNAUTHORIZED, context=context, details={'patientId': patient_id})
        raise AuthorizationError('Patients can only view their own consultations.')
    if user.role == User.ROLE_DOCTOR:
        qs = qs.filter(doctor_id=user.pk)
    return _list(user, qs, context, scope='patient', owner_id=patient_id, page=page, limit=limit, status=status)


def list_doctor_consultations(user, doctor_id: int, context: RequestContext, *, page: int = 1,
                              limit: int = 20, status: Optional[str] = None):
    if user.role != User.ROLE_ADMIN and user.pk != doctor_id:
        record_access(user=user, action='view', resource_type='consultation',
                      status=AccessLog.STATUS_UNAUTHORIZED, context=context, details={'doctorId': doctor_id})
        raise AuthorizationError('Doctors can only list their own consultations.')
    qs = Consultation.objects.filter(doctor_id=doctor_id)
    return _list(user, qs, context, scope='doctor', owner_id=doctor_id, page=page, limit=limit, status=status)
