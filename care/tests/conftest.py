import time

import pyotp
import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from care.models import User
from care.services import tokens
from care.services.field_encryption import seal

PASSWORD = 'C0rrect-Horse!'


@pytest.fixture(autouse=True)
def _test_settings(settings):
    # small keys keep registration fast; throttle counters live in the cache
    settings.USER_KEYPAIR_BITS = 1024
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def make_user(db):
    def _make(email, role='patient', password=PASSWORD, **extra):
        extra.setdefault('first_name', 'Test')
        extra.setdefault('last_name', role.title())
        return User.objects.create_user(email=email, password=password, role=role, **extra)
    return _make


@pytest.fixture
def patient(make_user):
    return make_user('patient@example.com', 'patient')


@pytest.fixture
def other_patient(make_user):
    return make_user('other.patient@example.com', 'patient')


@pytest.fixture
def doctor(make_user):
    return make_user('doctor@example.com', 'doctor')


@pytest.fixture
def other_doctor(make_user):
    return make_user('other.doctor@example.com', 'doctor')


@pytest.fixture
def admin_user(make_user):
    return make_user('admin@example.com', 'admin')


@pytest.fixture
def client_for():
    """Return an APIClient carrying a fresh access token for ``user``."""
    def _client(user):
        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION=f'Bearer {tokens.issue_access_token(user)}')
        return client
    return _client


@pytest.fixture
def enable_2fa():
    def _enable(user):
        secret = pyotp.random_base32()
        user.two_factor_secret = seal(secret)
        user.two_factor_enabled = True
        user.save(update_fields=['two_factor_secret', 'two_factor_enabled'])
        return secret
    return _enable


def wrong_code(secret):
    """A six digit code that no step around now accepts for ``secret``."""
    totp = pyotp.TOTP(secret)
    now = time.time()
    valid = {totp.at(now + offset) for offset in (-60, -30, 0, 30, 60)}
    for candidate in ('000000', '111111', '123456', '999999', '424242', '808080'):
        if candidate not in valid:
            return candidate
    raise AssertionError('no invalid code found')
