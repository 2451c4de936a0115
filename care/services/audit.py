import logging
from dataclasses import dataclass
from typing import Optional, Any, Dict

from django.contrib.auth import get_user_model
from django.db import transaction

from care.models import AccessLog

logger = logging.getLogger(__name__)

User = get_user_model()


@dataclass(frozen=True)
class RequestContext:
    """Who is calling and from where; attached to every audit entry."""
    ip_address: Optional[str] = None
    user_agent: str = ''

    @classmethod
    def from_request(cls, request) -> "RequestContext":
        meta = getattr(request, 'META', {})
        forwarded = meta.get('HTTP_X_FORWARDED_FOR', '')
        ip = forwarded.split(',')[0].strip() if forwarded else meta.get('REMOTE_ADDR')
        return cls(ip_address=ip or None, user_agent=(meta.get('HTTP_USER_AGENT') or '')[:500])


def log_action(*, user: Optional[User], action: str, resource_type: str, resource_id=None,
               status: str = AccessLog.STATUS_SUCCESS, context: Optional[RequestContext] = None,
               details: Optional[Dict[str, Any]] = None) -> AccessLog:
    context = context or RequestContext()
    return AccessLog.objects.create(
        user=user if getattr(user, 'pk', None) else None,
        action=action,
        resource_type=resource_type,
        resource_id=str(resource_id) if resource_id is not None else None,
        ip_address=context.ip_address,
        user_agent=context.user_agent,
        status=status,
        details=details or {},
    )


def record_access(**kwargs) -> Optional[AccessLog]:
    """Best-effort :func:`log_action`.

    Runs in its own savepoint: inside a caller's transaction the entry
    commits or rolls back with it, and a failed write never breaks the
    caller.
    """
    try:
        with transaction.atomic():
            return log_action(**kwargs)
    except Exception:
        logger.exception("Failed to write access log action=%s resource=%s",
                         kwargs.get('action'), kwargs.get('resource_type'))
        return None
