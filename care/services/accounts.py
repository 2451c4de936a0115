from typing import Optional

from django.contrib.auth import get_user_model
from django.db.models import Q

from care.exceptions import NotFoundError, ValidationFailed
from care.models import AccessLog
from care.services import revocation
from care.services.audit import RequestContext, record_access
from care.services.paging import paginate

User = get_user_model()


def update_profile(user, context: RequestContext, *, first_name: Optional[str] = None,
                   last_name: Optional[str] = None, phone_number: Optional[str] = None):
    changed = []
    for field, value in (('first_name', first_name), ('last_name', last_name), ('phone_number', phone_number)):
        if value is not None:
            setattr(user, field, value)
            changed.append(field)
    if changed:
        user.save(update_fields=[*changed, 'updated_at'])
        record_access(user=user, action='update', resource_type='user', resource_id=user.pk,
                      context=context, details={'fields': changed})
    return user


def list_users(*, page: int, limit: int, role: Optional[str] = None, status: Optional[str] = None,
               q: Optional[str] = None):
    qs = User.objects.all().order_by('-created_at', '-pk')
    if role:
        qs = qs.filter(role=role)
    if status:
        qs = qs.filter(status=status)
    if q:
        qs = qs.filter(Q(email__icontains=q) | Q(first_name__icontains=q) | Q(last_name__icontains=q))
    return paginate(qs, page, limit)


def set_status(admin, user_id: int, status: str, context: RequestContext):
    """Change an account's status; leaving ``active`` revokes its sessions."""
    if admin.pk == user_id:
        raise ValidationFailed('Administrators cannot change their own status.', code='SELF_STATUS_CHANGE')
    user = User.objects.filter(pk=user_id).first()
    if user is None:
        raise NotFoundError('User not found.', code='USER_NOT_FOUND')
    user.status = status
    user.save(update_fields=['status', 'updated_at'])
    revoked = 0
    if status != User.STATUS_ACTIVE:
        revoked = revocation.revoke_user_tokens(user)
    record_access(user=admin, action='update', resource_type='user', resource_id=user.pk,
                  context=context, details={'status': status, 'revokedRefreshTokens': revoked})
    return user


def list_access_logs(*, page: int, limit: int, action: Optional[str] = None, status: Optional[str] = None,
                     resource_type: Optional[str] = None, user_id: Optional[int] = None,
                     start=None, end=None):
    qs = AccessLog.objects.select_related('user').order_by('-timestamp', '-pk')
    if action:
        qs = qs.filter(action=action)
    if status:
        qs = qs.filter(status=status)
    if resource_type:
        qs = qs.filter(resource_type=resource_type)
    if user_id:
        qs = qs.filter(user_id=user_id)
    if start:
        qs = qs.filter(timestamp__gte=start)
    if end:
        qs = qs.filter(timestamp__lte=end)
    return paginate(qs, page, limit)
