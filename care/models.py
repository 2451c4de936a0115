"""
Database models for the HealthApp backend.

Sensitive columns (medical record contents, consultation notes and
attachments, TOTP secrets, private keys) only ever hold sealed text
produced by :mod:`care.services.field_encryption`; the models themselves
never encrypt or decrypt anything.
"""
from __future__ import annotations

from django.contrib.auth.models import AbstractUser, BaseUserManager
from django.db import models
from django.db.models import Q


ENCRYPTION_VERSION = "1.0"


class UserManager(BaseUserManager):
    """Manager for an e-mail keyed user model."""

    use_in_migrations = True

    def _create_user(self, email, password, **extra_fields):
        if not email:
            raise ValueError("The email address must be set")
        email = self.normalize_email(email).lower()
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_user(self, email, password=None, **extra_fields):
        extra_fields.setdefault("is_staff", False)
        extra_fields.setdefault("is_superuser", False)
        return self._create_user(email, password, **extra_fields)

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault("is_staff", True)
        extra_fields.setdefault("is_superuser", True)
        extra_fields.setdefault("role", User.ROLE_ADMIN)
        if extra_fields.get("is_staff") is not True:
            raise ValueError("Superuser must have is_staff=True.")
        if extra_fields.get("is_superuser") is not True:
            raise ValueError("Superuser must have is_superuser=True.")
        return self._create_user(email, password, **extra_fields)


class User(AbstractUser):
    """Account identified by e-mail with a role and optional 2FA.

    ``password`` holds the self-describing bcrypt credential string.
    ``two_factor_secret`` is non-null exactly when 2FA is enabled; a
    database constraint keeps the two columns in step.
    """
    ROLE_PATIENT = 'patient'
    ROLE_DOCTOR = 'doctor'
    ROLE_ADMIN = 'admin'
    ROLE_CHOICES = [
        (ROLE_PATIENT, 'Patient'),
        (ROLE_DOCTOR, 'Doctor'),
        (ROLE_ADMIN, 'Administrator'),
    ]

    STATUS_ACTIVE = 'active'
    STATUS_INACTIVE = 'inactive'
    STATUS_SUSPENDED = 'suspended'
    STATUS_CHOICES = [
        (STATUS_ACTIVE, 'Active'),
        (STATUS_INACTIVE, 'Inactive'),
        (STATUS_SUSPENDED, 'Suspended'),
    ]

    username = None
    email = models.EmailField(unique=True)
    role = models.CharField(max_length=16, choices=ROLE_CHOICES, default=ROLE_PATIENT, db_index=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_ACTIVE)
    phone_number = models.CharField(max_length=32, blank=True)
    public_key = models.TextField(blank=True)
    private_key_encrypted = models.TextField(blank=True)
    two_factor_enabled = models.BooleanField(default=False)
    two_factor_secret = models.TextField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS: list[str] = []

    objects = UserManager()

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(two_factor_enabled=True, two_factor_secret__isnull=False)
                    | Q(two_factor_enabled=False, two_factor_secret__isnull=True)
                ),
                name='user_two_factor_secret_matches_flag',
            ),
        ]

    def __str__(self) -> str:
        return f"{self.email} ({self.role})"

    @property
    def is_account_active(self) -> bool:
        return self.is_active and self.status == self.STATUS_ACTIVE


class AccessLog(models.Model):
    """Append-only audit trail entry.

    ``user`` is null for anonymous failures such as a login attempt
    against an unknown e-mail address.
    """
    ACTION_CHOICES = [
        ('view', 'View'),
        ('create', 'Create'),
        ('update', 'Update'),
        ('delete', 'Delete'),
        ('login', 'Login'),
        ('logout', 'Logout'),
        ('failed_login', 'Failed login'),
        ('failed_2fa', 'Failed 2FA'),
        ('token_refresh', 'Token refresh'),
        ('password_reset_request', 'Password reset request'),
        ('password_reset', 'Password reset'),
        ('error', 'Error'),
    ]
    RESOURCE_CHOICES = [
        ('medical_record', 'Medical record'),
        ('consultation', 'Consultation'),
        ('user', 'User'),
        ('system', 'System'),
    ]
    STATUS_SUCCESS = 'success'
    STATUS_FAILURE = 'failure'
    STATUS_UNAUTHORIZED = 'unauthorized'
    STATUS_CHOICES = [
        (STATUS_SUCCESS, 'Success'),
        (STATUS_FAILURE, 'Failure'),
        (STATUS_UNAUTHORIZED, 'Unauthorized'),
    ]

    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='access_logs')
    action = models.CharField(max_length=32, choices=ACTION_CHOICES, db_index=True)
    resource_type = models.CharField(max_length=32, choices=RESOURCE_CHOICES)
    resource_id = models.CharField(max_length=64, blank=True, null=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.CharField(max_length=500, blank=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_SUCCESS, db_index=True)
    details = models.JSONField(default=dict, blank=True)
    timestamp = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ['-timestamp']
        indexes = [
            models.Index(fields=['user', 'timestamp']),
            models.Index(fields=['resource_type', 'resource_id']),
        ]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Access log entries are append-only")
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.action}:{self.resource_type}:{self.status}"


class MedicalRecord(models.Model):
    """A medical record whose clinical payload is sealed in ``record_data``."""
    TYPE_CHOICES = [
        ('consultation', 'Consultation'),
        ('diagnosis', 'Diagnosis'),
        ('prescription', 'Prescription'),
        ('lab_result', 'Lab result'),
        ('imaging', 'Imaging'),
        ('other', 'Other'),
    ]

    ACCESS_PRIVATE = 'private'
    ACCESS_DOCTOR = 'doctor'
    ACCESS_SHARED = 'shared'
    ACCESS_CHOICES = [
        (ACCESS_PRIVATE, 'Private'),
        (ACCESS_DOCTOR, 'Doctors'),
        (ACCESS_SHARED, 'Shared'),
    ]

    STATUS_ACTIVE = 'active'
    STATUS_ARCHIVED = 'archived'
    STATUS_DELETED = 'deleted'
    STATUS_CHOICES = [
        (STATUS_ACTIVE, 'Active'),
        (STATUS_ARCHIVED, 'Archived'),
        (STATUS_DELETED, 'Deleted'),
    ]

    patient = models.ForeignKey(User, on_delete=models.PROTECT, related_name='medical_records')
    doctor = models.ForeignKey(User, on_delete=models.PROTECT, related_name='authored_records')
    record_type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    record_date = models.DateTimeField()
    record_data = models.TextField()
    encryption_version = models.CharField(max_length=10, default=ENCRYPTION_VERSION)
    access_level = models.CharField(max_length=10, choices=ACCESS_CHOICES, default=ACCESS_PRIVATE)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_ACTIVE, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-record_date']
        indexes = [
            models.Index(fields=['patient', 'record_date']),
            models.Index(fields=['doctor', 'record_date']),
        ]

    def __str__(self) -> str:
        return f"MedicalRecord#{self.pk} {self.record_type}"


class Consultation(models.Model):
    """A consultation between a patient and a doctor.

    ``consultation_data``, ``notes`` and ``attachments`` are sealed; each
    may be null when nothing has been recorded yet.
    """
    TYPE_CHOICES = [
        ('video', 'Video'),
        ('audio', 'Audio'),
        ('chat', 'Chat'),
        ('in_person', 'In person'),
    ]

    STATUS_SCHEDULED = 'scheduled'
    STATUS_IN_PROGRESS = 'in_progress'
    STATUS_COMPLETED = 'completed'
    STATUS_CANCELLED = 'cancelled'
    STATUS_CHOICES = [
        (STATUS_SCHEDULED, 'Scheduled'),
        (STATUS_IN_PROGRESS, 'In progress'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    patient = models.ForeignKey(User, on_delete=models.PROTECT, related_name='patient_consultations')
    doctor = models.ForeignKey(User, on_delete=models.PROTECT, related_name='doctor_consultations')
    consultation_type = models.CharField(max_length=16, choices=TYPE_CHOICES)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_SCHEDULED, db_index=True)
    scheduled_at = models.DateTimeField()
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    duration = models.PositiveIntegerField(null=True, blank=True, help_text="Minutes")
    consultation_data = models.TextField(null=True, blank=True)
    notes = models.TextField(null=True, blank=True)
    attachments = models.TextField(null=True, blank=True)
    encryption_version = models.CharField(max_length=10, default=ENCRYPTION_VERSION)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-scheduled_at']
        indexes = [
            models.Index(fields=['patient', 'scheduled_at']),
            models.Index(fields=['doctor', 'scheduled_at']),
        ]

    def __str__(self) -> str:
        return f"Consultation#{self.pk} {self.status}"
