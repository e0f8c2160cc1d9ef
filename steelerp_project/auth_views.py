"""
Authentication endpoints: login, token refresh, logout, current user.

Login accepts username or email plus password, starts a Django session (for
the browsable admin and session clients), and returns a JWT access/refresh
pair for API clients. Role data travels in the token claims; session clients
have theirs read from the database on every request.
"""
import logging

from django.contrib.auth import authenticate, login, logout
from django.utils import timezone
from rest_framework import status
from rest_framework.exceptions import AuthenticationFailed
from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from erp_system.models import Branch, UserSession
from erp_system.permissions import get_role_info, get_user_role_data
from erp_system.utils import audit
from steelerp_project.authentication import (
    build_access_token,
    get_user_by_login,
    issue_tokens,
    resolve_session,
    verify_or_fail,
)

logger = logging.getLogger(__name__)
security_logger = logging.getLogger('security')


def _branches_payload(branch_ids):
    qs = Branch.objects.filter(is_active=True)
    if branch_ids is not None:
        qs = qs.filter(id__in=branch_ids)
    return [{'id': b.id, 'code': b.code, 'name': b.name} for b in qs.order_by('name')]


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def login_view(request):
    data = request.data if isinstance(request.data, dict) else {}
    login_name = (data.get('username') or data.get('email') or '').strip()
    password = data.get('password') or ''

    if not login_name or not password:
        return Response({'error': 'username (or email) and password are required', 'code': 'VALIDATION_FAILED'},
                        status=status.HTTP_400_BAD_REQUEST)

    candidate = get_user_by_login(login_name)
    username = candidate.username if candidate else login_name
    user = authenticate(request, username=username, password=password)
    if user is None:
        security_logger.warning(f"Failed login for '{login_name}' from {request.META.get('REMOTE_ADDR', '')}")
        return Response({'error': 'Invalid credentials', 'code': 'INVALID_CREDENTIALS'},
                        status=status.HTTP_401_UNAUTHORIZED)

    role_data = get_user_role_data(user)
    login(request, user)
    tokens = issue_tokens(user, request, role_data)

    audit(request, 'LOGIN', user, f"User logged in: {user.username}")
    logger.info(f"Login: {user.username} roles={role_data['roles']}")

    return Response({
        **tokens,
        'user': {
            'id': user.id,
            'username': user.username,
            'email': user.email,
            'first_name': user.first_name,
            'last_name': user.last_name,
        },
        'roles': role_data['roles'],
        'role': role_data['role'],
        'permissions': role_data['permissions'],
        'branches': _branches_payload(role_data['branch_ids']),
    })


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def refresh_view(request):
    data = request.data if isinstance(request.data, dict) else {}
    token = data.get('refresh_token') or ''
    if not token:
        return Response({'error': 'refresh_token is required', 'code': 'VALIDATION_FAILED'},
                        status=status.HTTP_400_BAD_REQUEST)

    try:
        claims = verify_or_fail(token, 'refresh')
        user, session = resolve_session(claims)
    except AuthenticationFailed as e:
        return Response({'error': str(e.detail), 'code': 'INVALID_TOKEN'}, status=status.HTTP_401_UNAUTHORIZED)
    session.last_used_at = timezone.now()
    session.save(update_fields=['last_used_at'])

    return Response({
        'access_token': build_access_token(user, session.jti),
        'token_type': 'Bearer',
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def logout_view(request):
    revoked = 0
    jti = request.auth.get('jti') if isinstance(request.auth, dict) else None
    if not jti:
        token = (request.data or {}).get('refresh_token') if isinstance(request.data, dict) else None
        if token:
            try:
                jti = verify_or_fail(token, 'refresh').get('jti')
            except AuthenticationFailed:
                jti = None
    if jti:
        revoked = UserSession.objects.filter(
            jti=jti, user=request.user, revoked_at__isnull=True
        ).update(revoked_at=timezone.now())

    audit(request, 'LOGOUT', request.user, f"User logged out: {request.user.username}")
    logout(request)
    return Response({'ok': True, 'sessions_revoked': revoked})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def me_view(request):
    """Return current user with roles, permissions and accessible branches."""
    info = get_role_info(request)
    user = request.user
    return Response({
        'user': {
            'id': user.id,
            'username': user.username,
            'email': user.email,
            'first_name': user.first_name,
            'last_name': user.last_name,
            'is_superuser': user.is_superuser,
        },
        'roles': info.get('roles') or [],
        'role': info.get('role'),
        'permissions': info.get('permissions') or [],
        'branches': _branches_payload(info.get('branch_ids')),
        'current_branch': getattr(request, 'branch_code', None),
    })
