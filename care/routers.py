"""
URL mappings for the HealthApp API.

Trailing slashes are deliberately omitted (``APPEND_SLASH = False``) to
match the front-end client.
"""
from django.urls import path, include

from .auth_views import (
    change_password_view,
    forgot_password_view,
    login_view,
    logout_view,
    refresh_token_view,
    register_view,
    reset_password_view,
    two_factor_disable_view,
    two_factor_login_view,
    two_factor_setup_view,
    two_factor_verify_view,
    verify_token_view,
)
from .views import consultations, health, records, users


urlpatterns = [
    path('', include('django_prometheus.urls')),
    path('healthz', health.healthz, name='healthz'),

    # Authentication
    path('api/auth/register', register_view, name='register'),
    path('api/auth/login', login_view, name='login'),
    path('api/auth/2fa/setup', two_factor_setup_view, name='2fa-setup'),
    path('api/auth/2fa/verify', two_factor_verify_view, name='2fa-verify'),
    path('api/auth/2fa/verify-login', two_factor_login_view, name='2fa-verify-login'),
    path('api/auth/2fa/disable', two_factor_disable_view, name='2fa-disable'),
    path('api/auth/refresh-token', refresh_token_view, name='refresh-token'),
    path('api/auth/logout', logout_view, name='logout'),
    path('api/auth/forgot-password', forgot_password_view, name='forgot-password'),
    path('api/auth/reset-password', reset_password_view, name='reset-password'),
    path('api/auth/verify-token', verify_token_view, name='verify-token'),
    path('api/auth/profile', users.profile, name='profile'),
    path('api/auth/change-password', change_password_view, name='change-password'),

    # Medical records
    path('api/medical-records', records.create_record, name='record-create'),
    path('api/medical-records/<int:pk>', records.record_detail, name='record-detail'),
    path('api/medical-records/patient/<int:patient_id>', records.patient_records, name='patient-records'),
    path('api/medical-records/doctor/<int:doctor_id>', records.doctor_records, name='doctor-records'),

    # Consultations
    path('api/consultations', consultations.create_consultation, name='consultation-create'),
    path('api/consultations/<int:pk>', consultations.consultation_detail, name='consultation-detail'),
    path('api/consultations/<int:pk>/status', consultations.consultation_status, name='consultation-status'),
    path('api/consultations/<int:pk>/notes', consultations.consultation_notes, name='consultation-notes'),
    path('api/consultations/patient/<int:patient_id>', consultations.patient_consultations,
         name='patient-consultations'),
    path('api/consultations/doctor/<int:doctor_id>', consultations.doctor_consultations,
         name='doctor-consultations'),

    # Administration
    path('api/admin/users', users.admin_users, name='admin-users'),
    path('api/admin/users/<int:pk>/status', users.admin_user_status, name='admin-user-status'),
    path('api/admin/audit-logs', users.admin_audit_logs, name='admin-audit-logs'),
]
