"""
Tests for multi-branch data isolation.

Each test creates data in two branches and verifies that a user assigned
to one branch cannot read or write the other branch's records, while a
global user (branch-less assignment) sees both.
"""
from io import StringIO

from django.contrib.auth.models import User
from django.core.management import call_command
from django.test import RequestFactory, TestCase
from rest_framework.test import APIClient

from erp_system.exceptions import BranchAccessDenied, ValidationFailed
from erp_system.models import Branch, Customer, Role, UserRole
from erp_system.security import (
    get_accessible_branch_ids,
    get_branch_filter,
    resolve_write_branch,
)
from erp_system.services.sales_service import SalesService


class BranchIsolationTestCase(TestCase):
    """Base test case with two branches and one user per scope."""

    def setUp(self):
        call_command('init_roles', stdout=StringIO())
        self.pune = Branch.objects.create(code='PUNE', name='Pune Works')
        self.mumbai = Branch.objects.create(code='MUM', name='Mumbai Works')

        self.pune_user = self._user('sm@pune.com', 'SALES_MANAGER', self.pune)
        self.mumbai_user = self._user('sm@mumbai.com', 'SALES_MANAGER', self.mumbai)
        self.global_user = self._user('gm@steel.com', 'GENERAL_MANAGER', None)

        self.customer_pune = SalesService.create_customer(self.pune, 'Customer Pune')
        self.customer_mumbai = SalesService.create_customer(self.mumbai, 'Customer Mumbai')

        self.factory = RequestFactory()

    def _user(self, email, role, branch):
        user = User.objects.create_user(username=email, email=email, password='testpass123')
        UserRole.objects.create(user=user, role=Role.objects.get(name=role), branch=branch)
        return user

    def _request(self, user, branch_code=None):
        request = self.factory.get('/')
        request.user = user
        request.branch_code = branch_code
        return request

    def _client(self, user):
        client = APIClient()
        client.force_authenticate(user=user)
        return client


class GetBranchFilterTests(BranchIsolationTestCase):
    """Test the get_branch_filter helper function."""

    def test_branch_user_without_selection_gets_own_branches(self):
        request = self._request(self.pune_user)
        self.assertEqual(get_branch_filter(request), {'branch__in': [self.pune.id]})

    def test_selected_branch_filters_to_it(self):
        request = self._request(self.pune_user, 'PUNE')
        self.assertEqual(get_branch_filter(request), {'branch': self.pune})

    def test_supports_field_prefix(self):
        request = self._request(self.pune_user, 'PUNE')
        self.assertEqual(get_branch_filter(request, 'employee__'), {'employee__branch': self.pune})

    def test_global_user_unfiltered(self):
        self.assertEqual(get_branch_filter(self._request(self.global_user)), {})
        self.assertIsNone(get_accessible_branch_ids(self.global_user))

    def test_selecting_foreign_branch_denied(self):
        with self.assertRaises(BranchAccessDenied):
            get_branch_filter(self._request(self.pune_user, 'MUM'))

    def test_unknown_branch_denied(self):
        with self.assertRaises(BranchAccessDenied):
            get_branch_filter(self._request(self.global_user, 'NOWHERE'))

    def test_inactive_branch_assignment_ignored(self):
        self.pune.is_active = False
        self.pune.save()
        self.assertEqual(get_accessible_branch_ids(self.pune_user), set())

    def test_customer_get_with_wrong_branch_raises(self):
        request = self._request(self.pune_user)
        with self.assertRaises(Customer.DoesNotExist):
            Customer.objects.get(id=self.customer_mumbai.id, **get_branch_filter(request))


class ResolveWriteBranchTests(BranchIsolationTestCase):

    def test_single_branch_user_defaults_to_it(self):
        self.assertEqual(resolve_write_branch(self._request(self.pune_user)), self.pune)

    def test_explicit_foreign_branch_denied(self):
        with self.assertRaises(BranchAccessDenied):
            resolve_write_branch(self._request(self.pune_user), self.mumbai.id)

    def test_global_user_must_choose(self):
        with self.assertRaises(ValidationFailed):
            resolve_write_branch(self._request(self.global_user))
        self.assertEqual(resolve_write_branch(self._request(self.global_user), self.mumbai.id), self.mumbai)


class CustomerEndpointIsolationTests(BranchIsolationTestCase):

    def test_list_shows_only_own_branch(self):
        response = self._client(self.pune_user).get('/api/customers/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual([c['id'] for c in response.json()], [self.customer_pune.id])

    def test_detail_of_other_branch_is_not_found(self):
        response = self._client(self.pune_user).get(f'/api/customers/{self.customer_mumbai.id}/')
        self.assertEqual(response.status_code, 404)

    def test_branch_header_for_foreign_branch_forbidden(self):
        response = self._client(self.pune_user).get('/api/customers/', HTTP_X_BRANCH_CODE='MUM')
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()['code'], 'BRANCH_ACCESS_DENIED')

    def test_global_user_sees_all_and_can_narrow(self):
        client = self._client(self.global_user)
        self.assertEqual(len(client.get('/api/customers/').json()), 2)
        narrowed = client.get('/api/customers/', HTTP_X_BRANCH_CODE='mum').json()
        self.assertEqual([c['id'] for c in narrowed], [self.customer_mumbai.id])

    def test_create_in_foreign_branch_forbidden(self):
        response = self._client(self.pune_user).post('/api/customers/', {
            'name': 'Sneaky Traders', 'branch_id': self.mumbai.id,
        }, format='json')
        self.assertEqual(response.status_code, 403)
        self.assertFalse(Customer.objects.filter(name='Sneaky Traders').exists())


class BranchEndpointTests(BranchIsolationTestCase):

    def test_branch_list_limited_to_assignments(self):
        response = self._client(self.pune_user).get('/api/branches/')
        self.assertEqual([b['code'] for b in response.json()], ['PUNE'])
        response = self._client(self.global_user).get('/api/branches/')
        self.assertEqual([b['code'] for b in response.json()], ['MUM', 'PUNE'])

    def test_only_super_admin_creates_branches(self):
        response = self._client(self.global_user).post('/api/branches/', {'code': 'NGP', 'name': 'Nagpur'},
                                                        format='json')
        self.assertEqual(response.status_code, 403)

        admin = User.objects.create_superuser(username='root', email='root@steel.com', password='testpass123')
        response = self._client(admin).post('/api/branches/', {'code': 'ngp', 'name': 'Nagpur'}, format='json')
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['code'], 'NGP')

    def test_branch_manager_cannot_grant_global_role(self):
        manager = self._user('bm@pune.com', 'BRANCH_MANAGER', self.pune)
        target = User.objects.create_user(username='new@pune.com', email='new@pune.com', password='testpass123')
        response = self._client(manager).post('/api/role-assignments/', {
            'user_id': target.id, 'role': 'SALES_EXECUTIVE',
        }, format='json')
        self.assertEqual(response.status_code, 403)
        response = self._client(manager).post('/api/role-assignments/', {
            'user_id': target.id, 'role': 'SALES_EXECUTIVE', 'branch_id': self.pune.id,
        }, format='json')
        self.assertEqual(response.status_code, 201)
