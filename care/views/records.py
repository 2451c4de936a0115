from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from care.exceptions import AuthorizationError
from care.permissions import IsClinicalStaff
from care.serializers.records import (
    RecordCreateSerializer,
    RecordListQuerySerializer,
    RecordUpdateSerializer,
    serialize_record,
)
from care.services import records
from care.services.audit import RequestContext
from care.services.paging import pagination_meta


@api_view(['POST'])
@permission_classes([IsClinicalStaff])
def create_record(request):
    s = RecordCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    record = records.create_record(
        request.user,
        patient_id=vd['patientId'],
        record_type=vd['recordType'],
        record_data=vd['recordData'],
        access_level=vd['accessLevel'],
        record_date=vd.get('recordDate'),
        context=RequestContext.from_request(request),
    )
    return Response({'ok': True, 'data': serialize_record(record, vd['recordData'])}, status=201)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def record_detail(request, pk: int):
    ctx = RequestContext.from_request(request)
    if request.method == 'GET':
        record, data = records.get_record(request.user, pk, ctx)
        return Response({'ok': True, 'data': serialize_record(record, data)})

    if request.user.role not in ('doctor', 'admin'):
        raise AuthorizationError('Only clinical staff can modify medical records.')

    if request.method == 'DELETE':
        records.delete_record(request.user, pk, ctx)
        return Response({'ok': True, 'message': 'Medical record deleted'})

    s = RecordUpdateSerializer(data=request.data, partial=request.method == 'PATCH')
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    record, data = records.update_record(
        request.user, pk, ctx,
        record_data=vd.get('recordData', records.UNSET),
        record_type=vd.get('recordType'),
        access_level=vd.get('accessLevel'),
        status=vd.get('status'),
        record_date=vd.get('recordDate'),
    )
    return Response({'ok': True, 'data': serialize_record(record, data)})


def _list_response(items, total, q):
    page, limit = q.validated_data['page'], q.validated_data['limit']
    return Response({
        'ok': True,
        'data': [serialize_record(record, data) for record, data in items],
        'pagination': pagination_meta(total, page, limit),
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def patient_records(request, patient_id: int):
    q = RecordListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    items, total = records.list_patient_records(
        request.user, patient_id, RequestContext.from_request(request),
        page=q.validated_data['page'], limit=q.validated_data['limit'],
        record_type=q.validated_data.get('recordType'),
    )
    return _list_response(items, total, q)


@api_view(['GET'])
@permission_classes([IsClinicalStaff])
def doctor_records(request, doctor_id: int):
    q = RecordListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    items, total = records.list_doctor_records(
        request.user, doctor_id, RequestContext.from_request(request),
        page=q.validated_data['page'], limit=q.validated_data['limit'],
        record_type=q.validated_data.get('recordType'),
    )
    return _list_response(items, total, q)
