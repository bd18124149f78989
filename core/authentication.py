# core/authentication.py
import logging
from datetime import timedelta

import jwt
from django.conf import settings
from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework.authentication import BaseAuthentication
from rest_framework.exceptions import AuthenticationFailed

logger = logging.getLogger(__name__)

ACCESS = 'access'
REFRESH = 'refresh'


def generate_token(user, token_type=ACCESS):
    """Sign a JWT for ``user`` with the Django secret key"""
    now = timezone.now()
    if token_type == ACCESS:
        lifetime = settings.JWT_EXPIRATION_DELTA
    else:
        lifetime = settings.JWT_REFRESH_EXPIRATION_DELTA

    payload = {
        'user_id': user.pk,
        'email': user.email,
        'role': user.role,
        'type': token_type,
        'iat': now,
        'exp': now + timedelta(seconds=lifetime),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def generate_token_pair(user):
    return {
        'access': generate_token(user, ACCESS),
        'refresh': generate_token(user, REFRESH),
        'expires_in': settings.JWT_EXPIRATION_DELTA,
    }


def decode_token(token, expected_type=ACCESS):
    """Verify signature, expiry and token type; raise AuthenticationFailed otherwise"""
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            options={
                "require": ["exp", "iat"],
                "verify_exp": True,
                "verify_iat": True,
            }
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationFailed('Token has expired.', code='token_expired')
    except jwt.InvalidTokenError:
        raise AuthenticationFailed('Invalid token.', code='token_invalid')

    if payload.get('type') != expected_type:
        raise AuthenticationFailed('Invalid token type.', code='token_invalid')

    return payload


def get_user_from_payload(payload):
    User = get_user_model()
    user = User.objects.filter(pk=payload.get('user_id'), is_active=True).first()
    if not user:
        raise AuthenticationFailed('User not found or inactive.', code='user_inactive')
    return user


class JWTAuthentication(BaseAuthentication):
    """
    Bearer token authentication
    Authorization: Bearer <access token>
    """
    keyword = 'Bearer'

    def authenticate(self, request):
        auth_header = request.headers.get('Authorization', '')

        if not auth_header.startswith(f"{self.keyword} "):
            return None

        token = auth_header.split(" ", 1)[1].strip()
        if not token:
            return None

        payload = decode_token(token, ACCESS)
        user = get_user_from_payload(payload)
        logger.debug(f"Authenticated {user.email} via JWT")
        return user, payload

    def authenticate_header(self, request):
        return self.keyword
