"""
Reusable RBAC decorators for the Steel ERP API.

Role data is carried in the JWT claims issued at login and read back through
erp_system.permissions.get_role_info, which falls back to the database for
session and other callers.

Role Definitions (see erp_system.permissions.PREDEFINED_ROLES):
- SUPER_ADMIN: everything, every branch (always passes these decorators)
- GENERAL_MANAGER / BRANCH_MANAGER: cross-module management
- *_MANAGER: module owners (SALES, INVENTORY, HR, SERVICE, FINANCE)
- SALES_EXECUTIVE, TEAM_LEADER, WAREHOUSE_OPERATOR, SERVICE_TECHNICIAN,
  EMPLOYEE: operational roles

Usage:
    from steelerp_project.decorators import require_role

    @api_view(['POST'])
    @permission_classes([IsAuthenticated])
    @require_role('SALES_MANAGER', 'SALES_EXECUTIVE')
    def lead_create(request):
        # Only sales roles (and SUPER_ADMIN) reach this
        pass
"""

from functools import wraps
from django.http import HttpResponseForbidden
import logging

from erp_system.permissions import SUPER_ADMIN, get_role_info

logger = logging.getLogger('steelerp.security')


def _deny(request, view_func, user_roles, allowed_roles, suffix=''):
    user_email = request.user.email if request.user.is_authenticated else 'unknown'
    current = ', '.join(user_roles) or 'none'
    logger.warning(
        f"Access denied: {user_email} (roles={current}) "
        f"attempted {view_func.__name__}{suffix}. "
        f"Required roles: {', '.join(allowed_roles)}"
    )
    return HttpResponseForbidden(
        f"Access denied. This action requires one of the following roles: "
        f"{', '.join(allowed_roles)}. Your current role: {current}. "
        f"Contact your administrator if you believe this is incorrect."
    )


def _role_allowed(user_roles, allowed_roles):
    return SUPER_ADMIN in user_roles or any(role in allowed_roles for role in user_roles)


def require_role(*allowed_roles):
    """
    Require specific role(s) for view access.

    Args:
        *allowed_roles: role names (e.g., 'SALES_MANAGER', 'BRANCH_MANAGER')

    Behavior:
        - Caller holds one of the allowed roles (or SUPER_ADMIN): view runs
        - Otherwise: 403 Forbidden with the required roles listed

    Security:
        - Logs all access denials for audit trail
    """
    def decorator(view_func):
        @wraps(view_func)
        def wrapped_view(request, *args, **kwargs):
            user_roles = get_role_info(request).get('roles') or []
            if _role_allowed(user_roles, allowed_roles):
                return view_func(request, *args, **kwargs)
            return _deny(request, view_func, user_roles, allowed_roles)

        return wrapped_view
    return decorator


def require_role_for_writes(*allowed_roles):
    """
    Require specific role(s) for write operations (POST, PUT, PATCH, DELETE).

    GET requests pass through without role check, so every authenticated
    user can read (branch filtering still applies inside the view).

    Example:
        @api_view(['GET', 'POST'])
        @permission_classes([IsAuthenticated])
        @require_role_for_writes('INVENTORY_MANAGER')
        def warehouse_list(request):
            # GET: anyone authenticated
            # POST: inventory managers only
            pass
    """
    def decorator(view_func):
        @wraps(view_func)
        def wrapped_view(request, *args, **kwargs):
            if request.method == 'GET':
                return view_func(request, *args, **kwargs)

            user_roles = get_role_info(request).get('roles') or []
            if _role_allowed(user_roles, allowed_roles):
                return view_func(request, *args, **kwargs)
            return _deny(request, view_func, user_roles, allowed_roles, f" {request.method}")

        return wrapped_view
    return decorator
