import logging
from urllib.parse import urlencode

from django.conf import settings
from django.core.mail import send_mail

logger = logging.getLogger(__name__)


def build_reset_link(token: str) -> str:
    return f"{settings.PASSWORD_RESET_URL}?{urlencode({'token': token})}"


def send_password_reset_email(user, token: str) -> bool:
    """Mail the reset link; returns False if the mail backend failed."""
    name = user.first_name or user.email
    ttl_minutes = int(settings.PASSWORD_RESET_TTL.total_seconds() // 60)
    body = (
        f"Hello {name},\n\n"
        "We received a request to reset the password for your HealthApp account.\n"
        f"Open the link below within {ttl_minutes} minutes to choose a new password:\n\n"
        f"{build_reset_link(token)}\n\n"
        "If you did not ask for this you can ignore this e-mail.\n"
    )
    try:
        send_mail(
            subject="Reset your HealthApp password",
            message=body,
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[user.email],
        )
    except Exception:
        logger.exception("Failed to send password reset e-mail user_id=%s", user.pk)
        return False
    return True
