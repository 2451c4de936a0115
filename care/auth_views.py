"""
Authentication endpoints under ``/api/auth/``.

Each view validates input with a serializer, hands over to
:mod:`care.services.auth_flow` and shapes the JSON answer. Errors are
raised as :mod:`care.exceptions` types and rendered by the API exception
handler.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from care.serializers.auth import (
    ChangePasswordSerializer,
    ForgotPasswordSerializer,
    LoginSerializer,
    LogoutSerializer,
    RefreshTokenSerializer,
    RegisterSerializer,
    ResetPasswordSerializer,
    TokenSerializer,
    TwoFactorCodeSerializer,
    TwoFactorLoginSerializer,
    TwoFactorSetupVerifySerializer,
)
from care.serializers.users import serialize_user
from care.services import auth_flow
from care.services.audit import RequestContext

RESET_REQUESTED_MESSAGE = 'If the email exists, you will receive a password reset link'


def _session_payload(result: auth_flow.LoginResult) -> dict:
    return {
        'ok': True,
        'user': serialize_user(result.user),
        'accessToken': result.tokens.access,
        'refreshToken': result.tokens.refresh,
    }


@api_view(['POST'])
@permission_classes([AllowAny])
def register_view(request):
    s = RegisterSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    result = auth_flow.register(
        email=vd['email'],
        password=vd['password'],
        first_name=vd['firstName'],
        last_name=vd['lastName'],
        role=vd['role'],
        phone_number=vd.get('phoneNumber', ''),
        context=RequestContext.from_request(request),
    )
    return Response(_session_payload(result), status=201)

register_view.cls.throttle_scope = 'register'


@api_view(['POST'])
@permission_classes([AllowAny])
def login_view(request):
    """Password login; answers with a token pair or a 2FA challenge."""
    s = LoginSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    result = auth_flow.login(
        s.validated_data['email'],
        s.validated_data['password'],
        RequestContext.from_request(request),
    )
    if result.requires_two_factor:
        return Response({'ok': True, 'requires2FA': True, 'tempToken': result.temp_token})
    return Response(_session_payload(result))

# ScopedRateThrottle reads throttle_scope from the view class built by @api_view
login_view.cls.throttle_scope = 'login'


@api_view(['POST'])
@permission_classes([AllowAny])
def two_factor_login_view(request):
    s = TwoFactorLoginSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    result = auth_flow.complete_two_factor_login(
        s.validated_data['tempToken'],
        s.validated_data['token'],
        RequestContext.from_request(request),
    )
    return Response(_session_payload(result))

two_factor_login_view.cls.throttle_scope = 'two_factor'


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def two_factor_setup_view(request):
    challenge = auth_flow.setup_two_factor(request.user)
    return Response({
        'ok': True,
        'secret': challenge.secret,
        'otpauthUrl': challenge.provisioning_uri,
        'qrCode': challenge.qr_code,
        'setupToken': challenge.setup_token,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def two_factor_verify_view(request):
    s = TwoFactorSetupVerifySerializer(data=request.data)
    s.is_valid(raise_exception=True)
    auth_flow.confirm_two_factor(
        request.user,
        s.validated_data['setupToken'],
        s.validated_data['token'],
        RequestContext.from_request(request),
    )
    return Response({'ok': True, 'message': '2FA enabled successfully', 'twoFactorEnabled': True})

two_factor_verify_view.cls.throttle_scope = 'two_factor'


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def two_factor_disable_view(request):
    s = TwoFactorCodeSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    auth_flow.disable_two_factor(request.user, s.validated_data['token'], RequestContext.from_request(request))
    return Response({'ok': True, 'message': '2FA disabled', 'twoFactorEnabled': False})

two_factor_disable_view.cls.throttle_scope = 'two_factor'


@api_view(['POST'])
@permission_classes([AllowAny])
def refresh_token_view(request):
    """Rotate a refresh token into a new access/refresh pair."""
    s = RefreshTokenSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    pair = auth_flow.refresh(s.validated_data['refreshToken'], RequestContext.from_request(request))
    return Response({'ok': True, 'accessToken': pair.access, 'refreshToken': pair.refresh})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def logout_view(request):
    """Revoke the presented access token and the user's refresh tokens."""
    s = LogoutSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    count = auth_flow.logout(
        request.user,
        getattr(request, 'access_token', ''),
        request.auth,
        RequestContext.from_request(request),
        refresh_token=s.validated_data.get('refreshToken') or None,
    )
    return Response({'ok': True, 'message': 'Logged out successfully', 'revoked': count})


@api_view(['POST'])
@permission_classes([AllowAny])
def forgot_password_view(request):
    s = ForgotPasswordSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    auth_flow.request_password_reset(s.validated_data['email'], RequestContext.from_request(request))
    return Response({'ok': True, 'message': RESET_REQUESTED_MESSAGE})

forgot_password_view.cls.throttle_scope = 'password_reset'


@api_view(['POST'])
@permission_classes([AllowAny])
def reset_password_view(request):
    s = ResetPasswordSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    auth_flow.reset_password(
        s.validated_data['token'],
        s.validated_data['password'],
        RequestContext.from_request(request),
    )
    return Response({'ok': True, 'message': 'Password has been reset successfully'})

reset_password_view.cls.throttle_scope = 'password_reset'


@api_view(['POST'])
@permission_classes([AllowAny])
def verify_token_view(request):
    """Check a password reset token before showing the new-password form."""
    s = TokenSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    user = auth_flow.inspect_reset_token(s.validated_data['token'])
    return Response({'ok': True, 'valid': True, 'email': user.email})

verify_token_view.cls.throttle_scope = 'password_reset'


@api_view(['PUT', 'POST'])
@permission_classes([IsAuthenticated])
def change_password_view(request):
    s = ChangePasswordSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    auth_flow.change_password(
        request.user,
        s.validated_data['currentPassword'],
        s.validated_data['newPassword'],
        RequestContext.from_request(request),
    )
    return Response({'ok': True, 'message': 'Password changed successfully'})
