from rest_framework import serializers

from care.models import Consultation, MedicalRecord
from care.serializers.users import PageQuerySerializer

RECORD_TYPES = [c[0] for c in MedicalRecord.TYPE_CHOICES]
ACCESS_LEVELS = [c[0] for c in MedicalRecord.ACCESS_CHOICES]
RECORD_STATUSES = [MedicalRecord.STATUS_ACTIVE, MedicalRecord.STATUS_ARCHIVED]


def serialize_record(record: MedicalRecord, data) -> dict:
    return {
        'id': record.id,
        'patientId': record.patient_id,
        'doctorId': record.doctor_id,
        'recordType': record.record_type,
        'recordDate': record.record_date.isoformat(),
        'recordData': data,
        'accessLevel': record.access_level,
        'status': record.status,
        'encryptionVersion': record.encryption_version,
        'createdAt': record.created_at.isoformat(),
        'updatedAt': record.updated_at.isoformat(),
    }


def serialize_consultation(consultation: Consultation, fields: dict) -> dict:
    def iso(value):
        return value.isoformat() if value else None

    return {
        'id': consultation.id,
        'patientId': consultation.patient_id,
        'doctorId': consultation.doctor_id,
        'consultationType': consultation.consultation_type,
        'status': consultation.status,
        'scheduledAt': iso(consultation.scheduled_at),
        'startedAt': iso(consultation.started_at),
        'completedAt': iso(consultation.completed_at),
        'duration': consultation.duration,
        'consultationData': fields.get('consultation_data'),
        'notes': fields.get('notes'),
        'attachments': fields.get('attachments') or [],
        'encryptionVersion': consultation.encryption_version,
        'createdAt': iso(consultation.created_at),
    }


class RecordCreateSerializer(serializers.Serializer):
    patientId = serializers.IntegerField(min_value=1)
    recordType = serializers.ChoiceField(choices=RECORD_TYPES)
    recordData = serializers.JSONField()
    accessLevel = serializers.ChoiceField(choices=ACCESS_LEVELS, default=MedicalRecord.ACCESS_PRIVATE)
    recordDate = serializers.DateTimeField(required=False)


class RecordUpdateSerializer(serializers.Serializer):
    recordType = serializers.ChoiceField(choices=RECORD_TYPES, required=False)
    recordData = serializers.JSONField(required=False)
    accessLevel = serializers.ChoiceField(choices=ACCESS_LEVELS, required=False)
    status = serializers.ChoiceField(choices=RECORD_STATUSES, required=False)
    recordDate = serializers.DateTimeField(required=False)


class RecordListQuerySerializer(PageQuerySerializer):
    recordType = serializers.ChoiceField(choices=RECORD_TYPES, required=False)


class AttachmentSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    url = serializers.URLField(max_length=2048)
    contentType = serializers.CharField(max_length=100, required=False)


class ConsultationCreateSerializer(serializers.Serializer):
    patientId = serializers.IntegerField(min_value=1)
    doctorId = serializers.IntegerField(min_value=1, required=False)
    scheduledAt = serializers.DateTimeField()
    consultationType = serializers.ChoiceField(choices=[c[0] for c in Consultation.TYPE_CHOICES])
    notes = serializers.CharField(max_length=10000, required=False, allow_blank=True)
    consultationData = serializers.JSONField(required=False)
    attachments = AttachmentSerializer(many=True, required=False)


class ConsultationStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[c[0] for c in Consultation.STATUS_CHOICES])


class ConsultationNotesSerializer(serializers.Serializer):
    notes = serializers.CharField(max_length=10000)


class ConsultationListQuerySerializer(PageQuerySerializer):
    status = serializers.ChoiceField(choices=[c[0] for c in Consultation.STATUS_CHOICES], required=False)
