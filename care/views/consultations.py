from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from care.permissions import IsClinicalStaff
from care.serializers.records import (
    ConsultationCreateSerializer,
    ConsultationListQuerySerializer,
    ConsultationNotesSerializer,
    ConsultationStatusSerializer,
    serialize_consultation,
)
from care.services import consultations
from care.services.audit import RequestContext
from care.services.paging import pagination_meta


@api_view(['POST'])
@permission_classes([IsClinicalStaff])
def create_consultation(request):
    s = ConsultationCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    consultation = consultations.create_consultation(
        request.user,
        patient_id=vd['patientId'],
        doctor_id=vd.get('doctorId'),
        scheduled_at=vd['scheduledAt'],
        consultation_type=vd['consultationType'],
        notes=vd.get('notes'),
        consultation_data=vd.get('consultationData'),
        attachments=[dict(a) for a in vd['attachments']] if 'attachments' in vd else None,
        context=RequestContext.from_request(request),
    )
    fields = consultations.read_fields(consultation)
    return Response({'ok': True, 'data': serialize_consultation(consultation, fields)}, status=201)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def consultation_detail(request, pk: int):
    consultation, fields = consultations.get_consultation(request.user, pk, RequestContext.from_request(request))
    return Response({'ok': True, 'data': serialize_consultation(consultation, fields)})


@api_view(['PUT', 'PATCH'])
@permission_classes([IsClinicalStaff])
def consultation_status(request, pk: int):
    s = ConsultationStatusSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    consultation, fields = consultations.update_status(
        request.user, pk, s.validated_data['status'], RequestContext.from_request(request),
    )
    return Response({'ok': True, 'data': serialize_consultation(consultation, fields)})


@api_view(['POST', 'PUT'])
@permission_classes([IsClinicalStaff])
def consultation_notes(request, pk: int):
    s = ConsultationNotesSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    consultation, fields = consultations.add_notes(
        request.user, pk, s.validated_data['notes'], RequestContext.from_request(request),
    )
    return Response({'ok': True, 'data': serialize_consultation(consultation, fields)})


def _list_response(items, total, q):
    return Response({
        'ok': True,
        'data': [serialize_consultation(c, fields) for c, fields in items],
        'pagination': pagination_meta(total, q.validated_data['page'], q.validated_data['limit']),
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def patient_consultations(request, patient_id: int):
    q = ConsultationListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    items, total = consultations.list_patient_consultations(
        request.user, patient_id, RequestContext.from_request(request),
        page=q.validated_data['page'], limit=q.validated_data['limit'], status=q.validated_data.get('status'),
    )
    return _list_response(items, total, q)


@api_view(['GET'])
@permission_classes([IsClinicalStaff])
def doctor_consultations(request, doctor_id: int):
    q = ConsultationListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    items, total = consultations.list_doctor_consultations(
        request.user, doctor_id, RequestContext.from_request(request),
        page=q.validated_data['page'], limit=q.validated_data['limit'], status=q.validated_data.get('status'),
    )
    return _list_response(items, total, q)
