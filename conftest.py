"""
Shared pytest fixtures: two branches, the predefined roles, and a factory
for users holding a role in a branch.
"""
from io import StringIO

import pytest
from django.contrib.auth.models import User
from django.core.management import call_command
from rest_framework.test import APIClient

from erp_system.models import Branch, Role, UserRole


@pytest.fixture
def roles(db):
    """Seed the predefined roles."""
    call_command('init_roles', stdout=StringIO())
    return {role.name: role for role in Role.objects.all()}


@pytest.fixture
def pune(db):
    return Branch.objects.create(code='PUNE', name='Pune Works', city='Pune', state='Maharashtra')


@pytest.fixture
def mumbai(db):
    return Branch.objects.create(code='MUM', name='Mumbai Works', city='Mumbai', state='Maharashtra')


@pytest.fixture
def make_user(roles):
    """
    Create a user holding role_name in branch (None = every branch).

    Usage:
        manager = make_user('manager@pune.com', 'BRANCH_MANAGER', pune)
    """
    def _make(username, role_name=None, branch=None, **fields):
        user = User.objects.create_user(
            username=username,
            email=fields.pop('email', username if '@' in username else f'{username}@steel-erp.local'),
            password=fields.pop('password', 'testpass123'),
            **fields
        )
        if role_name:
            UserRole.objects.create(user=user, role=roles[role_name], branch=branch)
        return user
    return _make


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def client_for(api_client):
    """APIClient authenticated as the given user."""
    def _client(user):
        api_client.force_authenticate(user=user)
        return api_client
    return _client
