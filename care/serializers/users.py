import bleach
from rest_framework import serializers

from care.models import AccessLog, User
from care.serializers.auth import clean_name


def serialize_user(user: User) -> dict:
    return {
        'id': user.id,
        'email': user.email,
        'firstName': user.first_name,
        'lastName': user.last_name,
        'role': user.role,
        'status': user.status,
        'phoneNumber': user.phone_number,
        'twoFactorEnabled': user.two_factor_enabled,
        'lastLogin': user.last_login.isoformat() if user.last_login else None,
        'createdAt': user.created_at.isoformat() if user.created_at else None,
    }


def serialize_access_log(entry: AccessLog) -> dict:
    return {
        'id': entry.id,
        'userId': entry.user_id,
        'userEmail': entry.user.email if entry.user_id else None,
        'action': entry.action,
        'resourceType': entry.resource_type,
        'resourceId': entry.resource_id,
        'ipAddress': entry.ip_address,
        'userAgent': entry.user_agent,
        'status': entry.status,
        'details': entry.details,
        'timestamp': entry.timestamp.isoformat(),
    }


class ProfileUpdateSerializer(serializers.Serializer):
    firstName = serializers.CharField(max_length=50, required=False)
    lastName = serializers.CharField(max_length=50, required=False)
    phoneNumber = serializers.CharField(max_length=32, required=False, allow_blank=True)

    def validate_firstName(self, v):
        return clean_name(v)

    def validate_lastName(self, v):
        return clean_name(v)

    def validate_phoneNumber(self, v):
        return bleach.clean((v or '').strip(), tags=set(), strip=True)


class PageQuerySerializer(serializers.Serializer):
    page = serializers.IntegerField(min_value=1, required=False, default=1)
    limit = serializers.IntegerField(min_value=1, max_value=100, required=False, default=20)


class UserListQuerySerializer(PageQuerySerializer):
    role = serializers.ChoiceField(choices=[c[0] for c in User.ROLE_CHOICES], required=False)
    status = serializers.ChoiceField(choices=[c[0] for c in User.STATUS_CHOICES], required=False)
    q = serializers.CharField(max_length=64, required=False)


class AuditLogQuerySerializer(PageQuerySerializer):
    action = serializers.ChoiceField(choices=[c[0] for c in AccessLog.ACTION_CHOICES], required=False)
    status = serializers.ChoiceField(choices=[c[0] for c in AccessLog.STATUS_CHOICES], required=False)
    resourceType = serializers.ChoiceField(choices=[c[0] for c in AccessLog.RESOURCE_CHOICES], required=False)
    userId = serializers.IntegerField(min_value=1, required=False)
    startDate = serializers.DateTimeField(required=False)
    endDate = serializers.DateTimeField(required=False)

    def validate(self, attrs):
        start, end = attrs.get('startDate'), attrs.get('endDate')
        if start and end and start > end:
            raise serializers.ValidationError({'endDate': 'endDate must not be before startDate.'})
        return attrs
