"""
Branch security utilities for the Steel ERP.

Branch is the data isolation boundary. The current branch comes from the
``X-Branch-Code`` header or the session (see BranchMiddleware); without one,
queries are restricted to every branch the caller may access.
"""

import logging

from .exceptions import BranchAccessDenied, ValidationFailed
from .permissions import get_role_info, get_user_role_data

security_logger = logging.getLogger('security')

_UNSET = object()


def get_accessible_branch_ids(user):
    """
    Branch ids the user may access.

    Returns:
        None for global users (superusers, SUPER_ADMIN, or any assignment
        without a branch); otherwise a set of branch ids (possibly empty).
    """
    branch_ids = get_user_role_data(user)['branch_ids']
    return None if branch_ids is None else set(branch_ids)


def _request_branch_ids(request):
    branch_ids = get_role_info(request).get('branch_ids')
    return None if branch_ids is None else set(branch_ids)


def _user_label(request):
    user = getattr(request, 'user', None)
    return getattr(user, 'email', '') or getattr(user, 'username', '') or 'anonymous'


def get_current_branch(request):
    """
    Resolve the branch selected for this request.

    Returns:
        Branch instance, or None when no branch was selected

    Raises:
        BranchAccessDenied: unknown branch code, or a branch the caller
        has no assignment for (logged to the security logger)
    """
    from .models import Branch

    cached = getattr(request, '_erp_branch', _UNSET)
    if cached is not _UNSET:
        return cached

    code = getattr(request, 'branch_code', None)
    branch = None
    if code:
        try:
            branch = Branch.objects.get(code=code, is_active=True)
        except Branch.DoesNotExist:
            security_logger.warning(
                f"Unknown branch code '{code}' requested by {_user_label(request)} path={request.path}"
            )
            raise BranchAccessDenied(f"Unknown branch '{code}'")

        allowed = _request_branch_ids(request)
        if allowed is not None and branch.id not in allowed:
            security_logger.warning(
                f"Cross-branch access attempt: user={_user_label(request)} "
                f"branch={branch.code} path={request.path}"
            )
            raise BranchAccessDenied('Access denied to this branch')

    request._erp_branch = branch
    return branch


def get_branch_filter(request, field_prefix=''):
    """
    Get a filter dict for queryset filtering by branch.

    Args:
        request: request carrying the authenticated user
        field_prefix: prefix for the branch field (e.g., 'employee__')

    Returns:
        Dict to use in .filter(); empty for global users with no branch selected

    Example:
        leads = Lead.objects.filter(**get_branch_filter(request))
        attendance = Attendance.objects.filter(**get_branch_filter(request, 'employee__'))
    """
    branch = get_current_branch(request)
    if branch:
        return {f'{field_prefix}branch': branch}
    allowed = _request_branch_ids(request)
    if allowed is None:
        return {}
    return {f'{field_prefix}branch__in': sorted(allowed)}


def validate_branch_access(request, branch_id):
    """
    Return the active Branch for branch_id if the caller may access it.

    Raises:
        ValidationFailed: branch does not exist or is inactive
        BranchAccessDenied: caller has no assignment for the branch
    """
    from .models import Branch

    try:
        branch = Branch.objects.get(id=branch_id, is_active=True)
    except (Branch.DoesNotExist, ValueError, TypeError):
        raise ValidationFailed(f'Branch {branch_id} not found')

    allowed = _request_branch_ids(request)
    if allowed is not None and branch.id not in allowed:
        security_logger.warning(
            f"Cross-branch write attempt: user={_user_label(request)} "
            f"branch_id={branch_id} path={request.path}"
        )
        raise BranchAccessDenied('Access denied to this branch')
    return branch


def resolve_write_branch(request, branch_id=None):
    """
    Branch a newly created record belongs to.

    Order: explicit branch_id (must be accessible), the current branch, the
    caller's single accessible branch.
    """
    from .models import Branch

    if branch_id:
        return validate_branch_access(request, branch_id)

    current = get_current_branch(request)
    if current:
        return current

    allowed = _request_branch_ids(request)
    if allowed is not None and len(allowed) == 1:
        return Branch.objects.get(id=next(iter(allowed)))

    raise ValidationFailed('branch_id is required')
