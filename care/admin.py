"""
Django admin registrations for the care models.

Sealed columns are never shown; the admin only exposes metadata. Access
log entries are read-only.
"""

from django.contrib import admin

from .models import AccessLog, Consultation, MedicalRecord, User


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ('email', 'role', 'status', 'two_factor_enabled', 'is_staff', 'created_at')
    list_filter = ('role', 'status', 'two_factor_enabled')
    search_fields = ('email', 'first_name', 'last_name')
    exclude = ('password', 'private_key_encrypted', 'two_factor_secret')
    readonly_fields = ('public_key', 'last_login', 'two_factor_enabled')


@admin.register(MedicalRecord)
class MedicalRecordAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'doctor', 'record_type', 'access_level', 'status', 'record_date')
    list_filter = ('record_type', 'access_level', 'status')
    exclude = ('record_data',)
    readonly_fields = ('encryption_version',)


@admin.register(Consultation)
class ConsultationAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'doctor', 'consultation_type', 'status', 'scheduled_at')
    list_filter = ('consultation_type', 'status')
    exclude = ('consultation_data', 'notes', 'attachments')
    readonly_fields = ('encryption_version', 'started_at', 'completed_at', 'duration')


@admin.register(AccessLog)
class AccessLogAdmin(admin.ModelAdmin):
    list_display = ('timestamp', 'user', 'action', 'resource_type', 'resource_id', 'status', 'ip_address')
    list_filter = ('action', 'resource_type', 'status')
    search_fields = ('resource_id', 'user__email', 'ip_address')

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
