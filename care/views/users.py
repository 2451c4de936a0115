"""
Profile endpoints for the signed-in user and the administrator's user
and audit-log listings.
"""
from __future__ import annotations

from rest_framework import serializers
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from care.models import User
from care.permissions import IsAdminRole
from care.serializers.users import (
    AuditLogQuerySerializer,
    ProfileUpdateSerializer,
    UserListQuerySerializer,
    serialize_access_log,
    serialize_user,
)
from care.services import accounts
from care.services.audit import RequestContext
from care.services.paging import pagination_meta


class UserStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[c[0] for c in User.STATUS_CHOICES])


@api_view(['GET', 'PUT', 'PATCH'])
@permission_classes([IsAuthenticated])
def profile(request):
    """Return or update the current user's profile."""
    if request.method == 'GET':
        return Response({'ok': True, 'user': serialize_user(request.user)})
    s = ProfileUpdateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    user = accounts.update_profile(
        request.user, RequestContext.from_request(request),
        first_name=vd.get('firstName'),
        last_name=vd.get('lastName'),
        phone_number=vd.get('phoneNumber'),
    )
    return Response({'ok': True, 'user': serialize_user(user)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def admin_users(request):
    q = UserListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    users, total = accounts.list_users(
        page=vd['page'], limit=vd['limit'],
        role=vd.get('role'), status=vd.get('status'), q=vd.get('q'),
    )
    return Response({
        'ok': True,
        'data': [serialize_user(u) for u in users],
        'pagination': pagination_meta(total, vd['page'], vd['limit']),
    })


@api_view(['PUT', 'PATCH'])
@permission_classes([IsAuthenticated, IsAdminRole])
def admin_user_status(request, pk: int):
    s = UserStatusSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    user = accounts.set_status(request.user, pk, s.validated_data['status'], RequestContext.from_request(request))
    return Response({'ok': True, 'user': serialize_user(user)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def admin_audit_logs(request):
    """Paginated access log, newest first."""
    q = AuditLogQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    entries, total = accounts.list_access_logs(
        page=vd['page'], limit=vd['limit'],
        action=vd.get('action'), status=vd.get('status'), resource_type=vd.get('resourceType'),
        user_id=vd.get('userId'), start=vd.get('startDate'), end=vd.get('endDate'),
    )
    return Response({
        'ok': True,
        'data': [serialize_access_log(e) for e in entries],
        'pagination': pagination_meta(total, vd['page'], vd['limit']),
    })
