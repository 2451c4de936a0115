"""
Role based permission classes.
"""
from rest_framework.permissions import BasePermission


def _role(request):
    user = getattr(request, "user", None)
    if not (user and user.is_authenticated):
        return None
    return getattr(user, "role", None)


class IsAdminRole(BasePermission):
    """Allow access only to administrators."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _role(request) == "admin"


class IsClinicalStaff(BasePermission):
    """Doctors or administrators."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _role(request) in {"doctor", "admin"}
