import re

import bleach
from django.contrib.auth import password_validation
from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import serializers

PASSWORD_RULES = [
    (re.compile(r'[a-z]'), 'Password must contain a lowercase letter.'),
    (re.compile(r'[A-Z]'), 'Password must contain an uppercase letter.'),
    (re.compile(r'\d'), 'Password must contain a digit.'),
    (re.compile(r'[^A-Za-z0-9]'), 'Password must contain a special character.'),
]

REGISTRATION_ROLES = ['patient', 'doctor']


def validate_strong_password(value: str) -> str:
    errors = [message for pattern, message in PASSWORD_RULES if not pattern.search(value)]
    try:
        password_validation.validate_password(value)
    except DjangoValidationError as exc:
        errors.extend(exc.messages)
    if errors:
        raise serializers.ValidationError(errors)
    return value


def clean_name(value: str) -> str:
    value = bleach.clean((value or '').strip(), tags=set(), strip=True)
    if not value:
        raise serializers.ValidationError('This field may not be blank.')
    return value


class RegisterSerializer(serializers.Serializer):
    email = serializers.EmailField(max_length=254)
    password = serializers.CharField(min_length=8, max_length=128, trim_whitespace=False, write_only=True)
    firstName = serializers.CharField(max_length=50)
    lastName = serializers.CharField(max_length=50)
    role = serializers.ChoiceField(choices=REGISTRATION_ROLES, default='patient')
    phoneNumber = serializers.CharField(max_length=32, required=False, allow_blank=True, default='')

    def validate_email(self, v):
        return v.strip().lower()

    def validate_password(self, v):
        return validate_strong_password(v)

    def validate_firstName(self, v):
        return clean_name(v)

    def validate_lastName(self, v):
        return clean_name(v)

    def validate_phoneNumber(self, v):
        return bleach.clean((v or '').strip(), tags=set(), strip=True)


class LoginSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(trim_whitespace=False)


class TwoFactorCodeSerializer(serializers.Serializer):
    token = serializers.CharField(max_length=16)


class TwoFactorSetupVerifySerializer(TwoFactorCodeSerializer):
    setupToken = serializers.CharField()


class TwoFactorLoginSerializer(TwoFactorCodeSerializer):
    tempToken = serializers.CharField()


class RefreshTokenSerializer(serializers.Serializer):
    refreshToken = serializers.CharField()


class LogoutSerializer(serializers.Serializer):
    refreshToken = serializers.CharField(required=False, allow_blank=True)


class ForgotPasswordSerializer(serializers.Serializer):
    email = serializers.EmailField()


class TokenSerializer(serializers.Serializer):
    token = serializers.CharField()


class ResetPasswordSerializer(TokenSerializer):
    password = serializers.CharField(max_length=128, trim_whitespace=False, write_only=True)

    def validate_password(self, v):
        return validate_strong_password(v)


class ChangePasswordSerializer(serializers.Serializer):
    currentPassword = serializers.CharField(trim_whitespace=False, write_only=True)
    newPassword = serializers.CharField(max_length=128, trim_whitespace=False, write_only=True)

    def validate_newPassword(self, v):
        return validate_strong_password(v)

    def validate(self, attrs):
        if attrs['currentPassword'] == attrs['newPassword']:
            raise serializers.ValidationError({'newPassword': 'New password must differ from the current one.'})
        return attrs
