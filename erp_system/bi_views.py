"""
Business intelligence API: named dashboards and the caller's role dashboard.
"""
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
import logging

from .bi_analytics import DASHBOARDS, get_dashboard_for_role
from .exceptions import ERPError, RecordNotFound
from .permissions import get_role_info, has_permission, module_permission_required
from .security import get_branch_filter
from .utils import error_response

logger = logging.getLogger(__name__)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
@module_permission_required('BI', 'READ')
def dashboard(request, name: str):
    """
    GET /api/bi/<name>/ for sales, inventory, finance, hr, service, executive.

    Needs BI:READ:<NAME>; the executive view needs BI:READ:*.
    """
    builder = DASHBOARDS.get(name)
    if builder is None:
        return Response({'error': f'Unknown dashboard {name}', 'available': sorted(DASHBOARDS)},
                        status=status.HTTP_404_NOT_FOUND)
    resource = '*' if name == 'executive' else name.upper()
    if not has_permission(request, 'BI', 'READ', resource):
        return Response({'error': 'Permission denied', 'code': 'INSUFFICIENT_PERMISSIONS'},
                        status=status.HTTP_403_FORBIDDEN)
    try:
        return Response({'dashboard': name, 'data': builder(get_branch_filter(request))})
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"dashboard {name} error: {e}", exc_info=True)
        return Response({'error': 'Failed to build dashboard', 'detail': str(e)},
                        status=status.HTTP_500_INTERNAL_SERVER_ERROR)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def my_dashboard(request):
    """Dashboard matching the caller's primary role."""
    try:
        role = get_role_info(request).get('role')
        name, data = get_dashboard_for_role(role, get_branch_filter(request))
        if name is None:
            raise RecordNotFound(f"No dashboard for role {role}")
        return Response({'dashboard': name, 'role': role, 'data': data})
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"my_dashboard error: {e}", exc_info=True)
        return Response({'error': 'Failed to build dashboard', 'detail': str(e)},
                        status=status.HTTP_500_INTERNAL_SERVER_ERROR)
