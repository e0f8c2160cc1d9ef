"""
Permission grid for the Steel ERP (RBAC).

Permissions are strings of the form ``MODULE:ACTION:RESOURCE``:

    SALES:CREATE:LEAD        create leads
    SALES:*:*                anything in sales
    *:*:*                    everything (SUPER_ADMIN)

Any segment may be ``*``. A grant without a resource segment covers every
resource of that module/action.

Modules:
    ADMIN, SALES, CUSTOMER, INVENTORY, MANUFACTURING, HR, EMPLOYEE,
    EMPLOYEE_PORTAL, SERVICE, FINANCE, ALERTS, BI

Actions:
    READ, CREATE, UPDATE, DELETE, APPROVE

Role data for the current caller is resolved in this order:
    1. JWT claims (request.auth) issued at login; revoking a role revokes
       the holder's token sessions
    2. UserRole rows in the database (cached on the request), so session
       clients see revocations on their next request

Usage:
    @api_view(['POST'])
    @permission_classes([IsAuthenticated])
    @permission_required('SALES', 'CREATE', 'LEAD')
    def lead_create(request):
        ...
"""

import logging
from functools import wraps

from django.http import JsonResponse

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("steelerp.security")

SUPER_ADMIN = "SUPER_ADMIN"

ACTIONS = ["READ", "CREATE", "UPDATE", "DELETE", "APPROVE"]

PREDEFINED_ROLES = {
    "SUPER_ADMIN": {
        "description": "Super Administrator with full system access",
        "permissions": ["*:*:*"],
    },
    "GENERAL_MANAGER": {
        "description": "General Manager across all branches",
        "permissions": [
            "SALES:*:*",
            "CUSTOMER:*:*",
            "INVENTORY:*:*",
            "PROCUREMENT:*:*",
            "MANUFACTURING:*:*",
            "SERVICE:*:*",
            "FINANCE:READ:*",
            "HR:READ:*",
            "BI:READ:*",
            "ALERTS:*:*",
        ],
    },
    "BRANCH_MANAGER": {
        "description": "Branch Manager with branch-level access",
        "permissions": [
            "MANUFACTURING:*:*",
            "SALES:*:*",
            "CUSTOMER:*:*",
            "INVENTORY:*:*",
            "PROCUREMENT:*:*",
            "SERVICE:*:*",
            "FINANCE:READ:*",
            "FINANCE:CREATE:INVOICE",
            "FINANCE:UPDATE:INVOICE",
            "HR:READ:*",
            "BI:READ:*",
            "ALERTS:*:*",
        ],
    },
    "SALES_MANAGER": {
        "description": "Sales Manager with sales and customer access",
        "permissions": [
            "SALES:*:*",
            "CUSTOMER:*:*",
            "INVENTORY:READ:*",
            "MANUFACTURING:READ:*",
            "SERVICE:READ:*",
            "BI:READ:SALES",
            "ALERTS:READ:*",
            "ALERTS:UPDATE:*",
        ],
    },
    "TEAM_LEADER": {
        "description": "Sales Team Leader, approves small discounts",
        "permissions": [
            "SALES:READ:*",
            "SALES:CREATE:*",
            "SALES:UPDATE:*",
            "SALES:APPROVE:DISCOUNT",
            "CUSTOMER:*:*",
            "INVENTORY:READ:*",
            "ALERTS:READ:*",
            "ALERTS:UPDATE:*",
        ],
    },
    "SALES_EXECUTIVE": {
        "description": "Sales Executive with lead and order access",
        "permissions": [
            "SALES:CREATE:LEAD",
            "SALES:UPDATE:LEAD",
            "SALES:READ:LEAD",
            "SALES:CREATE:ESTIMATE",
            "SALES:UPDATE:ESTIMATE",
            "SALES:READ:ESTIMATE",
            "SALES:CREATE:SALES_ORDER",
            "SALES:READ:SALES_ORDER",
            "CUSTOMER:CREATE:*",
            "CUSTOMER:UPDATE:*",
            "CUSTOMER:READ:*",
            "INVENTORY:READ:*",
            "ALERTS:READ:SALES",
        ],
    },
    "INVENTORY_MANAGER": {
        "description": "Inventory Manager with warehouse access",
        "permissions": [
            "INVENTORY:*:*",
            "PROCUREMENT:READ:*",
            "PROCUREMENT:CREATE:*",
            "PROCUREMENT:UPDATE:*",
            "MANUFACTURING:READ:*",
            "SALES:READ:*",
            "BI:READ:INVENTORY",
            "ALERTS:READ:*",
            "ALERTS:UPDATE:*",
        ],
    },
    "WAREHOUSE_OPERATOR": {
        "description": "Warehouse Operator with stock movement access",
        "permissions": [
            "INVENTORY:CREATE:STOCK_TRANSACTION",
            "INVENTORY:UPDATE:STOCK_TRANSACTION",
            "INVENTORY:READ:*",
            "PROCUREMENT:READ:PURCHASE_ORDER",
            "PROCUREMENT:READ:GOODS_RECEIPT",
            "PROCUREMENT:CREATE:GOODS_RECEIPT",
            "ALERTS:READ:INVENTORY",
        ],
    },
    "HR_MANAGER": {
        "description": "HR Manager with employee and payroll access",
        "permissions": [
            "HR:*:*",
            "EMPLOYEE:*:*",
            "BI:READ:HR",
            "ALERTS:READ:*",
        ],
    },
    "SERVICE_MANAGER": {
        "description": "Service Manager with service and installation access",
        "permissions": [
            "SERVICE:*:*",
            "CUSTOMER:READ:*",
            "CUSTOMER:UPDATE:SERVICE_HISTORY",
            "INVENTORY:READ:*",
            "INVENTORY:UPDATE:SERVICE_PARTS",
            "SALES:READ:*",
            "FINANCE:CREATE:INVOICE",
            "BI:READ:SERVICE",
            "ALERTS:READ:*",
            "ALERTS:UPDATE:*",
        ],
    },
    "SERVICE_TECHNICIAN": {
        "description": "Service Technician with field service access",
        "permissions": [
            "SERVICE:READ:SERVICE_REQUEST",
            "SERVICE:UPDATE:SERVICE_REQUEST",
            "SERVICE:CREATE:SERVICE_COMPLETION",
            "CUSTOMER:READ:*",
            "INVENTORY:READ:SERVICE_PARTS",
            "INVENTORY:UPDATE:SERVICE_PARTS",
            "ALERTS:READ:SERVICE",
        ],
    },
    "FINANCE_MANAGER": {
        "description": "Finance Manager with financial access",
        "permissions": [
            "FINANCE:*:*",
            "SALES:READ:*",
            "PROCUREMENT:READ:*",
            "MANUFACTURING:READ:COSTING",
            "HR:READ:PAYROLL",
            "BI:READ:FINANCE",
            "ALERTS:READ:*",
        ],
    },
    "EMPLOYEE": {
        "description": "Regular Employee with basic access",
        "permissions": [
            "EMPLOYEE_PORTAL:READ:PROFILE",
            "EMPLOYEE_PORTAL:UPDATE:PROFILE",
            "EMPLOYEE_PORTAL:READ:ATTENDANCE",
            "EMPLOYEE_PORTAL:CREATE:LEAVE_REQUEST",
            "EMPLOYEE_PORTAL:READ:PAYROLL",
        ],
    },
}

# Most senior first; the first role a user holds is their "primary" role
ROLE_PRECEDENCE = [
    "SUPER_ADMIN",
    "GENERAL_MANAGER",
    "BRANCH_MANAGER",
    "SALES_MANAGER",
    "FINANCE_MANAGER",
    "HR_MANAGER",
    "INVENTORY_MANAGER",
    "SERVICE_MANAGER",
    "TEAM_LEADER",
    "SALES_EXECUTIVE",
    "WAREHOUSE_OPERATOR",
    "SERVICE_TECHNICIAN",
    "EMPLOYEE",
]


def parse_permission(permission: str):
    """Split a permission string into (module, action, resource)."""
    parts = [p.strip() for p in (permission or "").split(":")]
    if len(parts) < 2 or not parts[0] or not parts[1]:
        raise ValueError(f"Invalid permission format: {permission}")
    resource = parts[2] if len(parts) > 2 and parts[2] else "*"
    return parts[0].upper(), parts[1].upper(), resource.upper()


def permission_matches(granted: str, module: str, action: str, resource: str = "*") -> bool:
    try:
        g_module, g_action, g_resource = parse_permission(granted)
    except ValueError:
        logger.warning(f"Ignoring malformed permission '{granted}'")
        return False
    if g_module not in ("*", module.upper()):
        return False
    if g_action not in ("*", action.upper()):
        return False
    return g_resource == "*" or g_resource == (resource or "*").upper()


def primary_role(roles) -> str | None:
    for name in ROLE_PRECEDENCE:
        if name in roles:
            return name
    return sorted(roles)[0] if roles else None


def get_user_role_data(user) -> dict:
    """
    Collect a user's active role assignments.

    Returns:
        {
            "roles": ["SALES_MANAGER", ...],
            "role": "SALES_MANAGER",          # primary role
            "permissions": ["SALES:*:*", ...],
            "branch_ids": [1, 2] or None,     # None = every branch
        }
    """
    from .models import UserRole

    if not user or not user.is_authenticated:
        return {"roles": [], "role": None, "permissions": [], "branch_ids": []}

    roles = set()
    permissions = set()
    branch_ids = set()
    global_access = bool(user.is_superuser)

    assignments = UserRole.objects.filter(user=user, is_active=True).select_related("role", "branch")
    for assignment in assignments:
        if assignment.branch_id and not assignment.branch.is_active:
            continue
        roles.add(assignment.role.name)
        permissions.update(assignment.role.permissions or [])
        if assignment.branch_id is None:
            global_access = True
        else:
            branch_ids.add(assignment.branch_id)

    if user.is_superuser:
        roles.add(SUPER_ADMIN)
        permissions.add("*:*:*")
    if SUPER_ADMIN in roles:
        global_access = True

    roles = sorted(roles)
    return {
        "roles": roles,
        "role": primary_role(roles),
        "permissions": sorted(permissions),
        "branch_ids": None if global_access else sorted(branch_ids),
    }


def get_role_info(request) -> dict:
    """Role data for the current caller (claims, then database)."""
    cached = getattr(request, "_erp_role_info", None)
    if cached is not None:
        return cached

    info = None
    auth = getattr(request, "auth", None)
    if isinstance(auth, dict) and "roles" in auth:
        info = {
            "roles": auth.get("roles") or [],
            "role": auth.get("role"),
            "permissions": auth.get("permissions") or [],
            "branch_ids": auth.get("branch_ids"),
        }

    if info is None:
        info = get_user_role_data(getattr(request, "user", None))

    try:
        request._erp_role_info = info
    except AttributeError:
        pass
    return info


def has_role(request, *roles) -> bool:
    user_roles = get_role_info(request).get("roles") or []
    return SUPER_ADMIN in user_roles or any(r in user_roles for r in roles)


def has_permission(request, module: str, action: str, resource: str = "*") -> bool:
    """
    Check if the caller holds a grant covering MODULE:ACTION:RESOURCE.

    Example:
        if has_permission(request, 'SALES', 'APPROVE', 'DISCOUNT'):
            ...
    """
    permissions = get_role_info(request).get("permissions") or []
    return any(permission_matches(p, module, action, resource) for p in permissions)


def has_module_permission(request, module: str, action: str) -> bool:
    """True when any grant covers MODULE:ACTION, whatever its resource."""
    for granted in get_role_info(request).get("permissions") or []:
        try:
            g_module, g_action, _ = parse_permission(granted)
        except ValueError:
            continue
        if g_module in ("*", module.upper()) and g_action in ("*", action.upper()):
            return True
    return False


def _permission_denied(request, module, action, resource):
    user = getattr(request, "user", None)
    user_email = getattr(user, "email", "") or getattr(user, "username", "unknown")
    security_logger.warning(
        f"Permission denied: user={user_email}, "
        f"permission={module}:{action}:{resource}, path={request.path}"
    )
    return JsonResponse(
        {
            "error": "Permission denied",
            "code": "INSUFFICIENT_PERMISSIONS",
            "message": f"Insufficient permissions for {module}:{action}:{resource}",
        },
        status=403,
    )


def permission_required(module: str, action: str, resource: str = "*"):
    """
    Decorator that restricts a view to callers holding the permission.

    Answers 403 JSON so API clients can show the missing grant.
    """

    def decorator(view_func):
        @wraps(view_func)
        def wrapper(request, *args, **kwargs):
            if not has_permission(request, module, action, resource):
                return _permission_denied(request, module, action, resource)
            return view_func(request, *args, **kwargs)

        return wrapper

    return decorator


WRITE_ACTIONS = {"POST": "CREATE", "PUT": "UPDATE", "PATCH": "UPDATE", "DELETE": "DELETE"}


def permission_required_for_writes(module: str, resource: str = "*"):
    """
    Read grant for safe methods, the matching write grant otherwise.

    GET/HEAD/OPTIONS need MODULE:READ:RESOURCE; POST needs CREATE,
    PUT/PATCH need UPDATE and DELETE needs DELETE.
    """

    def decorator(view_func):
        @wraps(view_func)
        def wrapper(request, *args, **kwargs):
            action = WRITE_ACTIONS.get(request.method, "READ")
            if not has_permission(request, module, action, resource):
                return _permission_denied(request, module, action, resource)
            return view_func(request, *args, **kwargs)

        return wrapper

    return decorator


def module_permission_required(module: str, action: str):
    """
    Decorator for views that narrow results per resource themselves
    (e.g. alerts filtered by module); any MODULE:ACTION grant gets in.
    """

    def decorator(view_func):
        @wraps(view_func)
        def wrapper(request, *args, **kwargs):
            if not has_module_permission(request, module, action):
                return _permission_denied(request, module, action, "*")
            return view_func(request, *args, **kwargs)

        return wrapper

    return decorator
