"""
JWT authentication for Steel ERP API clients.

Tokens are HS256 signed with settings.JWT_SECRET and carry issuer
``steel-erp`` and audience ``steel-erp-users``. Each login creates a
UserSession row keyed by the token ``jti``; revoking the row (logout)
invalidates both the access and the refresh token.

Claims:
    sub          user id (string)
    jti          UserSession.jti
    type         'access' | 'refresh'
    roles        role names (access tokens only)
    role         primary role
    permissions  MODULE:ACTION:RESOURCE grants
    branch_ids   accessible branch ids, or null for every branch
"""
import logging
import uuid
from datetime import timedelta

import jwt
from django.conf import settings
from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework import authentication, exceptions

from erp_system.permissions import get_user_role_data

logger = logging.getLogger(__name__)
security_logger = logging.getLogger('security')


def _encode(claims):
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def _base_claims(user, jti, token_type, lifetime):
    now = timezone.now()
    return {
        'sub': str(user.pk),
        'jti': jti,
        'type': token_type,
        'iss': settings.JWT_ISSUER,
        'aud': settings.JWT_AUDIENCE,
        'iat': int(now.timestamp()),
        'exp': int((now + lifetime).timestamp()),
    }


def build_access_token(user, jti, role_data=None):
    role_data = role_data or get_user_role_data(user)
    claims = _base_claims(user, jti, 'access', timedelta(minutes=settings.JWT_ACCESS_TOKEN_MINUTES))
    claims.update({
        'username': user.username,
        'email': user.email,
        'roles': role_data['roles'],
        'role': role_data['role'],
        'permissions': role_data['permissions'],
        'branch_ids': role_data['branch_ids'],
    })
    return _encode(claims)


def issue_tokens(user, request=None, role_data=None):
    """
    Create a UserSession and return a new access/refresh token pair.

    Returns:
        dict with access_token, refresh_token, token_type, expires_in
    """
    from erp_system.models import UserSession

    jti = uuid.uuid4().hex
    refresh_lifetime = timedelta(days=settings.JWT_REFRESH_TOKEN_DAYS)
    meta = getattr(request, 'META', {}) if request is not None else {}
    UserSession.objects.create(
        user=user,
        jti=jti,
        expires_at=timezone.now() + refresh_lifetime,
        ip=(meta.get('HTTP_X_FORWARDED_FOR', '').split(',')[0].strip() or meta.get('REMOTE_ADDR', '') or '')[:45],
        user_agent=meta.get('HTTP_USER_AGENT', '')[:300],
    )
    return {
        'access_token': build_access_token(user, jti, role_data),
        'refresh_token': _encode(_base_claims(user, jti, 'refresh', refresh_lifetime)),
        'token_type': 'Bearer',
        'expires_in': settings.JWT_ACCESS_TOKEN_MINUTES * 60,
    }


def decode_token(token, expected_type='access'):
    """
    Verify signature, expiry, issuer and audience.

    Raises:
        jwt.InvalidTokenError subclasses on any verification failure
    """
    claims = jwt.decode(
        token,
        settings.JWT_SECRET,
        algorithms=[settings.JWT_ALGORITHM],
        audience=settings.JWT_AUDIENCE,
        issuer=settings.JWT_ISSUER,
        options={
            "verify_signature": True,
            "verify_aud": True,
            "verify_iss": True,
            "verify_exp": True,
            "require": ["exp", "iat", "sub", "jti"],
        }
    )
    if claims.get('type') != expected_type:
        raise jwt.InvalidTokenError(f"Expected {expected_type} token")
    return claims


def resolve_session(claims):
    """Return (user, UserSession) for verified claims, or raise AuthenticationFailed."""
    from erp_system.models import UserSession

    try:
        session = UserSession.objects.select_related('user').get(jti=claims['jti'])
    except UserSession.DoesNotExist:
        security_logger.warning(f"JWT with unknown session jti={claims.get('jti')}")
        raise exceptions.AuthenticationFailed('Session not found')

    if not session.is_active:
        security_logger.warning(f"JWT for revoked/expired session jti={session.jti} user={session.user}")
        raise exceptions.AuthenticationFailed('Session has been revoked or expired')

    user = session.user
    if str(user.pk) != str(claims.get('sub')) or not user.is_active:
        security_logger.warning(f"JWT subject mismatch or inactive user for jti={session.jti}")
        raise exceptions.AuthenticationFailed('User inactive or token subject mismatch')
    return user, session


def verify_or_fail(token, expected_type='access'):
    """decode_token with PyJWT failures mapped to AuthenticationFailed and logged."""
    try:
        return decode_token(token, expected_type)
    except jwt.ExpiredSignatureError as e:
        security_logger.warning(f"JWT token expired: {str(e)}")
        raise exceptions.AuthenticationFailed('Token has expired')
    except jwt.InvalidSignatureError as e:
        security_logger.error(f"JWT signature verification failed: {str(e)}")
        raise exceptions.AuthenticationFailed('Invalid token signature')
    except jwt.InvalidAudienceError as e:
        security_logger.error(f"JWT audience mismatch: {str(e)}")
        raise exceptions.AuthenticationFailed('Invalid token audience')
    except jwt.InvalidIssuerError as e:
        security_logger.error(f"JWT issuer mismatch: {str(e)}")
        raise exceptions.AuthenticationFailed('Invalid token issuer')
    except jwt.InvalidTokenError as e:
        security_logger.error(f"JWT decode failed: {str(e)}")
        raise exceptions.AuthenticationFailed('Invalid token')


class JWTAuthentication(authentication.BaseAuthentication):
    """
    DRF authentication for ``Authorization: Bearer <access token>``.

    Returns (user, claims) so views and permission helpers can read the
    role claims from request.auth.
    """
    keyword = 'Bearer'

    def authenticate(self, request):
        header = authentication.get_authorization_header(request).split()
        if not header or header[0].lower() != self.keyword.lower().encode():
            return None
        if len(header) != 2:
            raise exceptions.AuthenticationFailed('Invalid Authorization header')

        try:
            token = header[1].decode()
        except UnicodeError:
            raise exceptions.AuthenticationFailed('Invalid token encoding')

        claims = verify_or_fail(token, 'access')
        user, session = resolve_session(claims)
        session.last_used_at = timezone.now()
        session.save(update_fields=['last_used_at'])
        return user, claims

    def authenticate_header(self, request):
        return f'{self.keyword} realm="api"'


def get_user_by_login(login):
    """Look up a user by username, falling back to email."""
    User = get_user_model()
    user = User.objects.filter(username=login).first()
    if user is None and '@' in (login or ''):
        user = User.objects.filter(email__iexact=login).first()
    return user
