"""
Error taxonomy and the single API error boundary.

Every domain error carries an :class:`ErrorKind` (which fixes the HTTP
status) and a stable ``code`` string for clients. ``api_exception_handler``
turns those, DRF's own exceptions and anything unexpected into one body
shape::

    {"ok": false, "error": {"code": "...", "message": "...", "details": ...}}

Integrity failures (undecryptable data, corrupt credential strings) are
logged in full and answered with an opaque 500.
"""
from __future__ import annotations

import enum
import logging

from rest_framework import exceptions as drf_exceptions
from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.response import Response

logger = logging.getLogger(__name__)


class ErrorKind(enum.Enum):
    VALIDATION = status.HTTP_400_BAD_REQUEST
    AUTHENTICATION = status.HTTP_401_UNAUTHORIZED
    AUTHORIZATION = status.HTTP_403_FORBIDDEN
    NOT_FOUND = status.HTTP_404_NOT_FOUND
    CONFLICT = status.HTTP_409_CONFLICT
    INTEGRITY = status.HTTP_500_INTERNAL_SERVER_ERROR

    @property
    def status_code(self) -> int:
        return self.value


class ApiError(APIException):
    """Base class for client-facing domain errors."""
    kind = ErrorKind.VALIDATION
    default_code = 'VALIDATION_ERROR'
    default_detail = 'Invalid request.'

    def __init__(self, detail=None, code=None, details=None):
        super().__init__(detail or self.default_detail, code or self.default_code)
        self.code = code or self.default_code
        self.details = details
        self.status_code = self.kind.status_code

    @property
    def message(self) -> str:
        return str(self.detail)


class ValidationFailed(ApiError):
    kind = ErrorKind.VALIDATION
    default_code = 'VALIDATION_ERROR'
    default_detail = 'Validation failed.'


class InvalidTwoFactorCode(ValidationFailed):
    default_code = 'INVALID_2FA_CODE'
    default_detail = 'Invalid two-factor authentication code.'


class AuthenticationError(ApiError):
    kind = ErrorKind.AUTHENTICATION
    default_code = 'AUTHENTICATION_FAILED'
    default_detail = 'Authentication failed.'


class InvalidCredentials(AuthenticationError):
    default_code = 'INVALID_CREDENTIALS'
    default_detail = 'Invalid email or password.'


class AccountInactive(AuthenticationError):
    default_code = 'ACCOUNT_INACTIVE'
    default_detail = 'Account is not active.'


class TokenInvalid(AuthenticationError):
    default_code = 'INVALID_TOKEN'
    default_detail = 'Invalid token.'


class TokenExpired(AuthenticationError):
    default_code = 'TOKEN_EXPIRED'
    default_detail = 'Token expired.'


class TokenRevoked(TokenInvalid):
    default_code = 'TOKEN_REVOKED'
    default_detail = 'Token has been revoked.'


class AuthorizationError(ApiError):
    kind = ErrorKind.AUTHORIZATION
    default_code = 'FORBIDDEN'
    default_detail = 'You do not have permission to perform this action.'


class NotFoundError(ApiError):
    kind = ErrorKind.NOT_FOUND
    default_code = 'NOT_FOUND'
    default_detail = 'Resource not found.'


class ConflictError(ApiError):
    kind = ErrorKind.CONFLICT
    default_code = 'CONFLICT'
    default_detail = 'Resource conflict.'


class IdentityAlreadyExists(ConflictError):
    default_code = 'EMAIL_EXISTS'
    default_detail = 'An account with this email already exists.'


class IntegrityFailure(Exception):
    """Data or key corruption. Never shown to clients in detail."""
    kind = ErrorKind.INTEGRITY
    code = 'INTEGRITY_ERROR'


class DecryptionError(IntegrityFailure):
    code = 'DECRYPTION_ERROR'


class InvalidCredentialFormat(IntegrityFailure):
    code = 'INVALID_CREDENTIAL_FORMAT'


_DRF_CODES = {
    drf_exceptions.ValidationError: 'VALIDATION_ERROR',
    drf_exceptions.ParseError: 'VALIDATION_ERROR',
    drf_exceptions.NotAuthenticated: 'NOT_AUTHENTICATED',
    drf_exceptions.AuthenticationFailed: 'AUTHENTICATION_FAILED',
    drf_exceptions.PermissionDenied: 'FORBIDDEN',
    drf_exceptions.NotFound: 'NOT_FOUND',
    drf_exceptions.MethodNotAllowed: 'METHOD_NOT_ALLOWED',
    drf_exceptions.UnsupportedMediaType: 'UNSUPPORTED_MEDIA_TYPE',
    drf_exceptions.Throttled: 'RATE_LIMITED',
}


def _error_body(code: str, message: str, details=None) -> dict:
    error = {'code': code, 'message': message}
    if details is not None:
        error['details'] = details
    return {'ok': False, 'error': error}


def _drf_code(exc) -> str:
    for klass, code in _DRF_CODES.items():
        if isinstance(exc, klass):
            return code
    return 'API_ERROR'


def api_exception_handler(exc, context):
    # rest_framework.views loads the authentication classes, which import this module
    from rest_framework.views import exception_handler as drf_exception_handler

    request = context.get('request')
    request_id = getattr(request, 'request_id', None)

    if isinstance(exc, ApiError):
        headers = {"WWW-Authenticate": "Bearer"} if exc.kind is ErrorKind.AUTHENTICATION else None
        return Response(_error_body(exc.code, exc.message, exc.details), status=exc.status_code, headers=headers)

    resp = drf_exception_handler(exc, context)
    if resp is None:
        if isinstance(exc, IntegrityFailure):
            logger.error("Integrity failure (%s) request_id=%s", exc.code, request_id, exc_info=exc)
        else:
            logger.error("Unhandled error request_id=%s", request_id, exc_info=exc)
        body = _error_body('INTERNAL_ERROR', 'An internal error occurred.')
        body['error']['requestId'] = request_id
        return Response(body, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    # normalize DRF's own errors
    if isinstance(exc, drf_exceptions.ValidationError):
        body = _error_body('VALIDATION_ERROR', 'Validation failed.', resp.data)
    else:
        detail = resp.data.get('detail') if isinstance(resp.data, dict) else resp.data
        body = _error_body(_drf_code(exc), str(detail))
    resp.data = body
    return resp

