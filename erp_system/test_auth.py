from io import StringIO

import jwt
from django.conf import settings
from django.contrib.auth.models import User
from django.core.management import call_command
from django.test import TestCase
from rest_framework.test import APIClient

from erp_system.models import Branch, Role, UserRole, UserSession


class AuthenticationTests(TestCase):
    """Login, token refresh, logout and current-user endpoints."""

    def setUp(self):
        call_command('init_roles', stdout=StringIO())
        self.branch = Branch.objects.create(code='PUNE', name='Pune Works')
        self.user = User.objects.create_user(
            username='manager',
            email='manager@pune.com',
            password='testpass123'
        )
        UserRole.objects.create(user=self.user, role=Role.objects.get(name='SALES_MANAGER'), branch=self.branch)
        self.client = APIClient()

    def _login(self, **credentials):
        return self.client.post('/auth/login/', credentials or {
            'username': 'manager', 'password': 'testpass123'
        }, format='json')

    def _bearer(self, token):
        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')
        return client

    def test_login_returns_tokens_roles_and_branches(self):
        response = self._login()
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['token_type'], 'Bearer')
        self.assertEqual(data['roles'], ['SALES_MANAGER'])
        self.assertIn('SALES:*:*', data['permissions'])
        self.assertEqual([b['code'] for b in data['branches']], ['PUNE'])

        claims = jwt.decode(
            data['access_token'], settings.JWT_SECRET, algorithms=['HS256'],
            audience=settings.JWT_AUDIENCE, issuer=settings.JWT_ISSUER,
        )
        self.assertEqual(claims['sub'], str(self.user.id))
        self.assertEqual(claims['branch_ids'], [self.branch.id])
        self.assertEqual(UserSession.objects.filter(user=self.user).count(), 1)

    def test_login_by_email(self):
        response = self._login(email='MANAGER@pune.com', password='testpass123')
        self.assertEqual(response.status_code, 200)

    def test_wrong_password(self):
        response = self._login(username='manager', password='nope')
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()['code'], 'INVALID_CREDENTIALS')

    def test_missing_fields(self):
        response = self._login(username='manager')
        self.assertEqual(response.status_code, 400)

    def test_me_with_bearer_token(self):
        token = self._login().json()['access_token']
        response = self._bearer(token).get('/auth/me/')
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['user']['email'], 'manager@pune.com')
        self.assertEqual(data['role'], 'SALES_MANAGER')

    def test_unauthenticated_api_rejected(self):
        response = APIClient().get('/api/leads/')
        self.assertIn(response.status_code, [401, 403])

    def test_tampered_token_rejected(self):
        token = self._login().json()['access_token']
        forged = jwt.encode(
            {**jwt.decode(token, options={'verify_signature': False}), 'roles': ['SUPER_ADMIN']},
            'not-the-secret', algorithm='HS256',
        )
        response = self._bearer(forged).get('/auth/me/')
        self.assertEqual(response.status_code, 401)

    def test_refresh_issues_new_access_token(self):
        refresh = self._login().json()['refresh_token']
        response = APIClient().post('/auth/refresh/', {'refresh_token': refresh}, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self._bearer(response.json()['access_token']).get('/auth/me/').status_code, 200)

    def test_access_token_cannot_refresh(self):
        access = self._login().json()['access_token']
        response = APIClient().post('/auth/refresh/', {'refresh_token': access}, format='json')
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()['code'], 'INVALID_TOKEN')

    def test_logout_revokes_session(self):
        tokens = self._login().json()
        client = self._bearer(tokens['access_token'])
        response = client.post('/auth/logout/', {'refresh_token': tokens['refresh_token']}, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['sessions_revoked'], 1)

        response = APIClient().post('/auth/refresh/', {'refresh_token': tokens['refresh_token']}, format='json')
        self.assertEqual(response.status_code, 401)
        self.assertEqual(self._bearer(tokens['access_token']).get('/auth/me/').status_code, 401)

    def test_session_client_loses_revoked_role(self):
        self.assertEqual(self._login().status_code, 200)
        self.assertEqual(self.client.get('/api/customers/').status_code, 200)

        UserRole.objects.filter(user=self.user).update(is_active=False)
        self.assertEqual(self.client.get('/api/customers/').status_code, 403)

    def test_revoking_role_revokes_issued_tokens(self):
        token = self._login().json()['access_token']
        assignment = UserRole.objects.get(user=self.user)

        general_manager = User.objects.create_user(username='gm', email='gm@steel.com', password='testpass123')
        UserRole.objects.create(user=general_manager, role=Role.objects.get(name='GENERAL_MANAGER'), branch=None)
        admin_client = APIClient()
        admin_client.force_authenticate(user=general_manager)

        response = admin_client.delete(f'/api/role-assignments/{assignment.id}/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['sessions_revoked'], 1)
        self.assertEqual(self._bearer(token).get('/auth/me/').status_code, 401)
