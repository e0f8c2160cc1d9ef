"""
Tests for the MODULE:ACTION:RESOURCE permission grid and its decorators.
"""
import json

import pytest
from django.contrib.auth.models import AnonymousUser
from django.http import JsonResponse
from django.test import RequestFactory

from erp_system.models import Role
from erp_system.permissions import (
    PREDEFINED_ROLES,
    ROLE_PRECEDENCE,
    get_user_role_data,
    has_module_permission,
    parse_permission,
    permission_matches,
    permission_required,
    permission_required_for_writes,
    primary_role,
)
from steelerp_project.decorators import require_role, require_role_for_writes


@pytest.mark.parametrize('granted, wanted, expected', [
    ('SALES:CREATE:LEAD', ('SALES', 'CREATE', 'LEAD'), True),
    ('SALES:CREATE:LEAD', ('SALES', 'CREATE', 'ESTIMATE'), False),
    ('SALES:*:*', ('sales', 'approve', 'discount'), True),
    ('*:*:*', ('FINANCE', 'DELETE', 'INVOICE'), True),
    ('SALES:READ', ('SALES', 'READ', 'LEAD'), True),
    ('SALES:READ:LEAD', ('SALES', 'READ', '*'), False),
    ('INVENTORY:READ:*', ('SALES', 'READ', 'LEAD'), False),
    ('garbage', ('SALES', 'READ', 'LEAD'), False),
])
def test_permission_matches(granted, wanted, expected):
    assert permission_matches(granted, *wanted) is expected


def test_parse_permission_defaults_resource():
    assert parse_permission('hr:read') == ('HR', 'READ', '*')
    with pytest.raises(ValueError):
        parse_permission('HR')


def test_every_predefined_role_has_a_precedence():
    assert set(ROLE_PRECEDENCE) == set(PREDEFINED_ROLES)
    assert primary_role(['SALES_EXECUTIVE', 'BRANCH_MANAGER']) == 'BRANCH_MANAGER'
    assert primary_role([]) is None


def test_role_data_merges_assignments(make_user, pune, mumbai, roles):
    user = make_user('multi@steel.com', 'SALES_EXECUTIVE', pune)
    user.erp_roles.create(role=roles['WAREHOUSE_OPERATOR'], branch=mumbai)

    data = get_user_role_data(user)
    assert data['roles'] == ['SALES_EXECUTIVE', 'WAREHOUSE_OPERATOR']
    assert data['role'] == 'SALES_EXECUTIVE'
    assert 'INVENTORY:CREATE:STOCK_TRANSACTION' in data['permissions']
    assert data['branch_ids'] == sorted([pune.id, mumbai.id])


def test_revoked_assignment_ignored(make_user, pune):
    user = make_user('gone@steel.com', 'SALES_MANAGER', pune)
    user.erp_roles.update(is_active=False)
    assert get_user_role_data(user)['roles'] == []


def test_superuser_is_global_super_admin(django_user_model, db):
    admin = django_user_model.objects.create_superuser('root', 'root@steel.com', 'testpass123')
    data = get_user_role_data(admin)
    assert data['roles'] == ['SUPER_ADMIN']
    assert data['branch_ids'] is None


def test_init_roles_seeds_grid(roles):
    assert set(roles) == set(PREDEFINED_ROLES)
    assert Role.objects.get(name='SUPER_ADMIN').permissions == ['*:*:*']


# Decorators
def _view(request, *args, **kwargs):
    return JsonResponse({'ok': True})


def _request(method, role_info):
    request = getattr(RequestFactory(), method.lower())('/api/test/')
    request.user = AnonymousUser()
    request._erp_role_info = role_info
    return request


def _info(*permissions, roles=()):
    return {'roles': list(roles), 'role': None, 'permissions': list(permissions), 'branch_ids': None}


def test_permission_required_denies_with_json():
    view = permission_required('SALES', 'APPROVE', 'DISCOUNT')(_view)
    response = view(_request('POST', _info('SALES:READ:*')))
    assert response.status_code == 403
    body = json.loads(response.content)
    assert body['code'] == 'INSUFFICIENT_PERMISSIONS'
    assert 'SALES:APPROVE:DISCOUNT' in body['message']

    assert view(_request('POST', _info('SALES:APPROVE:DISCOUNT'))).status_code == 200


@pytest.mark.parametrize('method, granted, allowed', [
    ('GET', 'INVENTORY:READ:ITEM', True),
    ('POST', 'INVENTORY:READ:ITEM', False),
    ('POST', 'INVENTORY:CREATE:ITEM', True),
    ('PATCH', 'INVENTORY:CREATE:ITEM', False),
    ('PATCH', 'INVENTORY:UPDATE:ITEM', True),
    ('DELETE', 'INVENTORY:DELETE:*', True),
])
def test_permission_required_for_writes(method, granted, allowed):
    view = permission_required_for_writes('INVENTORY', 'ITEM')(_view)
    response = view(_request(method, _info(granted)))
    assert (response.status_code == 200) is allowed


def test_module_permission_ignores_resource():
    request = _request('GET', _info('ALERTS:READ:SALES'))
    assert has_module_permission(request, 'ALERTS', 'READ')
    assert not has_module_permission(request, 'ALERTS', 'UPDATE')


def test_require_role_decorators():
    view = require_role('HR_MANAGER')(_view)
    assert view(_request('GET', _info(roles=['EMPLOYEE']))).status_code == 403
    assert view(_request('GET', _info(roles=['SUPER_ADMIN']))).status_code == 200

    writes = require_role_for_writes('GENERAL_MANAGER')(_view)
    assert writes(_request('GET', _info(roles=['EMPLOYEE']))).status_code == 200
    assert writes(_request('DELETE', _info(roles=['EMPLOYEE']))).status_code == 403
