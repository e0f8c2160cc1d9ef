from django.contrib.auth import get_user_model
from django.db import IntegrityError, connection
from django.db.models import Q
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
import logging

from steelerp_project.decorators import require_role, require_role_for_writes

from .exceptions import ActionNotAllowed, BranchAccessDenied, ERPError
from .models import AuditLog, Branch, Role, UserRole, UserSession
from .permissions import SUPER_ADMIN, get_role_info
from .security import get_branch_filter, validate_branch_access
from .serializers import AuditLogSerializer, BranchSerializer, RoleSerializer, UserRoleSerializer, UserSerializer
from .utils import audit, clamp_limit, duplicate_response, error_response, to_bool, username_of

logger = logging.getLogger(__name__)

BRANCH_FIELDS = ('name', 'address', 'city', 'state', 'phone', 'email')


@api_view(['GET'])
@permission_classes([AllowAny])
def health_check(request):
    """Health check endpoint for monitoring and deployment verification"""
    try:
        connection.ensure_connection()
        return Response({
            'status': 'healthy',
            'database': 'connected',
            'service': 'steel-erp'
        })
    except Exception as e:
        logger.error(f"Health check failed: {str(e)}")
        return Response({
            'status': 'unhealthy',
            'error': str(e)
        }, status=status.HTTP_503_SERVICE_UNAVAILABLE)


# Branches
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
@require_role_for_writes(SUPER_ADMIN)
def branch_list(request):
    """
    GET: branches the caller can access (all for global users).
    POST: create a branch. SUPER_ADMIN only.
    """
    try:
        if request.method == 'GET':
            branch_ids = get_role_info(request).get('branch_ids')
            branches = Branch.objects.all().order_by('code')
            if branch_ids is not None:
                branches = branches.filter(id__in=branch_ids)
            if request.GET.get('include_inactive') != 'true':
                branches = branches.filter(is_active=True)
            return Response(BranchSerializer(branches, many=True).data)

        data = request.data if isinstance(request.data, dict) else {}
        code = (data.get('code') or '').strip().upper()
        name = (data.get('name') or '').strip()
        if not code or not name:
            return Response({'error': 'code and name are required'}, status=status.HTTP_400_BAD_REQUEST)

        branch = Branch.objects.create(
            code=code,
            **{field: (data.get(field) or '').strip() for field in BRANCH_FIELDS if field != 'name'},
            name=name,
        )
        audit(request, 'BRANCH_CREATED', branch, f"Branch created: {branch.code}", branch=branch)
        return Response(BranchSerializer(branch).data, status=status.HTTP_201_CREATED)
    except IntegrityError as e:
        return duplicate_response(e)
    except Exception as e:
        logger.error(f"branch_list error: {e}", exc_info=True)
        return Response({'error': 'Failed to process branches', 'detail': str(e)},
                        status=status.HTTP_500_INTERNAL_SERVER_ERROR)


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
@require_role_for_writes(SUPER_ADMIN)
def branch_detail(request, branch_id: int):
    """DELETE deactivates; branches are never removed."""
    try:
        branch = validate_branch_access(request, branch_id) if request.method == 'GET' else Branch.objects.get(id=branch_id)

        if request.method == 'GET':
            return Response(BranchSerializer(branch).data)

        if request.method == 'DELETE':
            branch.is_active = False
            branch.save(update_fields=['is_active'])
            audit(request, 'BRANCH_DEACTIVATED', branch, f"Branch deactivated: {branch.code}", branch=branch)
            return Response({'ok': True, 'id': branch.id, 'is_active': False})

        data = request.data if isinstance(request.data, dict) else {}
        for field in BRANCH_FIELDS:
            if field in data:
                setattr(branch, field, (data.get(field) or '').strip())
        if 'is_active' in data:
            branch.is_active = to_bool(data.get('is_active'), 'is_active')
        if not branch.name:
            return Response({'error': 'name cannot be blank'}, status=status.HTTP_400_BAD_REQUEST)
        branch.save()
        audit(request, 'BRANCH_UPDATED', branch, f"Branch updated: {branch.code}", extra={'fields': sorted(data.keys())}, branch=branch)
        return Response(BranchSerializer(branch).data)
    except Branch.DoesNotExist:
        return Response({'error': 'Branch not found'}, status=status.HTTP_404_NOT_FOUND)
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"branch_detail error: {e}", exc_info=True)
        return Response({'error': 'Failed to process branch', 'detail': str(e)},
                        status=status.HTTP_500_INTERNAL_SERVER_ERROR)


# Roles
@api_view(['GET'])
@permission_classes([IsAuthenticated])
@require_role('GENERAL_MANAGER', 'BRANCH_MANAGER', 'HR_MANAGER')
def role_list(request):
    roles = Role.objects.all().order_by('name')
    return Response(RoleSerializer(roles, many=True).data)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
@require_role('GENERAL_MANAGER', 'BRANCH_MANAGER')
def role_assignments(request):
    """
    GET: active role assignments within the caller's branches.
    POST: {user_id, role, branch_id|null}. A null branch grants the role on
    every branch and needs global access; only SUPER_ADMIN may grant SUPER_ADMIN.
    """
    try:
        if request.method == 'GET':
            assignments = UserRole.objects.filter(is_active=True).select_related('user', 'role', 'branch')
            branch_filter = get_branch_filter(request)
            if branch_filter:
                assignments = assignments.filter(**branch_filter)
            user_id = request.GET.get('user_id')
            if user_id:
                assignments = assignments.filter(user_id=user_id)
            return Response(UserRoleSerializer(assignments.order_by('user__username', 'role__name'), many=True).data)

        data = request.data if isinstance(request.data, dict) else {}
        role_name = (data.get('role') or '').strip().upper()
        user_id = data.get('user_id')
        if not role_name or not user_id:
            return Response({'error': 'user_id and role are required'}, status=status.HTTP_400_BAD_REQUEST)

        caller = get_role_info(request)
        if role_name == SUPER_ADMIN and SUPER_ADMIN not in (caller.get('roles') or []):
            raise ActionNotAllowed('Only SUPER_ADMIN can grant SUPER_ADMIN')

        role = Role.objects.get(name=role_name)
        user = get_user_model().objects.get(id=user_id)

        branch_id = data.get('branch_id')
        if branch_id:
            branch = validate_branch_access(request, branch_id)
        else:
            if caller.get('branch_ids') is not None:
                raise BranchAccessDenied('Branch-less assignments need access to every branch')
            branch = None

        assignment, created = UserRole.objects.get_or_create(
            user=user, role=role, branch=branch,
            defaults={'updated_by': username_of(request)},
        )
        if not created and not assignment.is_active:
            assignment.is_active = True
            assignment.updated_by = username_of(request)
            assignment.save()

        audit(request, 'ROLE_ASSIGNED', assignment,
              f"{role.name} granted to {user.username} on {branch.code if branch else 'all branches'}",
              branch=branch)
        return Response(UserRoleSerializer(assignment).data,
                        status=status.HTTP_201_CREATED if created else status.HTTP_200_OK)
    except Role.DoesNotExist:
        return Response({'error': 'Role not found'}, status=status.HTTP_404_NOT_FOUND)
    except get_user_model().DoesNotExist:
        return Response({'error': 'User not found'}, status=status.HTTP_404_NOT_FOUND)
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"role_assignments error: {e}", exc_info=True)
        return Response({'error': 'Failed to process role assignment', 'detail': str(e)},
                        status=status.HTTP_500_INTERNAL_SERVER_ERROR)


@api_view(['DELETE'])
@permission_classes([IsAuthenticated])
@require_role('GENERAL_MANAGER', 'BRANCH_MANAGER')
def role_assignment_revoke(request, assignment_id: int):
    try:
        assignment = UserRole.objects.select_related('role', 'user', 'branch').get(id=assignment_id, is_active=True)
        caller = get_role_info(request)
        if assignment.branch_id is None:
            if caller.get('branch_ids') is not None:
                raise BranchAccessDenied('Branch-less assignments need access to every branch')
        else:
            validate_branch_access(request, assignment.branch_id)
        if assignment.role.name == SUPER_ADMIN and SUPER_ADMIN not in (caller.get('roles') or []):
            raise ActionNotAllowed('Only SUPER_ADMIN can revoke SUPER_ADMIN')

        assignment.is_active = False
        assignment.updated_by = username_of(request)
        assignment.save()
        # issued tokens carry the old role claims
        sessions_revoked = UserSession.objects.filter(
            user=assignment.user, revoked_at__isnull=True
        ).update(revoked_at=timezone.now())
        audit(request, 'ROLE_REVOKED', assignment,
              f"{assignment.role.name} revoked from {assignment.user.username}", branch=assignment.branch)
        return Response({'ok': True, 'id': assignment.id, 'sessions_revoked': sessions_revoked})
    except UserRole.DoesNotExist:
        return Response({'error': 'Role assignment not found'}, status=status.HTTP_404_NOT_FOUND)
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"role_assignment_revoke error: {e}", exc_info=True)
        return Response({'error': 'Failed to revoke role', 'detail': str(e)},
                        status=status.HTTP_500_INTERNAL_SERVER_ERROR)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
@require_role('GENERAL_MANAGER', 'BRANCH_MANAGER', 'HR_MANAGER')
def user_list(request):
    """Users holding a role in the caller's branches (all users for global callers)."""
    try:
        users = get_user_model().objects.filter(is_active=True).order_by('username')
        branch_filter = get_branch_filter(request, 'erp_roles__')
        if branch_filter:
            users = users.filter(Q(**branch_filter), erp_roles__is_active=True).distinct()
        search = (request.GET.get('search') or '').strip()
        if search:
            users = users.filter(Q(username__icontains=search) | Q(email__icontains=search))
        return Response(UserSerializer(users[:clamp_limit(request)], many=True).data)
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"user_list error: {e}", exc_info=True)
        return Response({'error': 'Failed to load users'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
@require_role('GENERAL_MANAGER', 'BRANCH_MANAGER')
def audit_logs(request):
    """Most recent audit rows for the caller's branches; ?limit= clamped to 1..1000."""
    try:
        rows = AuditLog.objects.filter(**get_branch_filter(request))
        action = request.GET.get('action')
        if action:
            rows = rows.filter(action=action.upper())
        rows = rows.order_by('-created_at')[:clamp_limit(request)]
        return Response(AuditLogSerializer(rows, many=True).data)
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"audit_logs error: {e}", exc_info=True)
        return Response({'error': 'Failed to load audit logs'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)