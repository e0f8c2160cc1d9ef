"""
Setup or reset an ERP administrator account.

Usage:
    python manage.py setup_admin --email=admin@example.com --password=xxx

This command will:
1. Find existing user by email, or create new user
2. Set is_staff=True, is_superuser=True and the provided password
3. Grant the global SUPER_ADMIN role (creating the predefined roles if needed)
"""
from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.core.management.base import BaseCommand

from erp_system.models import Role, UserRole
from erp_system.permissions import SUPER_ADMIN


class Command(BaseCommand):
    help = 'Setup or reset an ERP administrator account'

    def add_arguments(self, parser):
        parser.add_argument('--email', required=True, help='Admin email address')
        parser.add_argument('--password', required=True, help='Admin password')

    def handle(self, *args, **options):
        User = get_user_model()
        email = options['email']
        password = options['password']

        user = User.objects.filter(email=email).first() or User.objects.filter(username=email).first()

        if user:
            self.stdout.write(f"Found existing user: {user.username} ({user.email})")
            user.is_staff = True
            user.is_superuser = True
            user.set_password(password)
            user.save()
            self.stdout.write(self.style.SUCCESS(f"Updated user {email} as superuser with new password"))
        else:
            user = User.objects.create_superuser(username=email, email=email, password=password)
            self.stdout.write(self.style.SUCCESS(f"Created new superuser: {email}"))

        if not Role.objects.filter(name=SUPER_ADMIN).exists():
            call_command('init_roles', stdout=self.stdout)
        role = Role.objects.get(name=SUPER_ADMIN)
        assignment, created = UserRole.objects.get_or_create(
            user=user, role=role, branch=None,
            defaults={'is_active': True, 'updated_by': 'setup_admin'},
        )
        if not created and not assignment.is_active:
            assignment.is_active = True
            assignment.updated_by = 'setup_admin'
            assignment.save()
        self.stdout.write(f"Role: {SUPER_ADMIN} (all branches)")
        self.stdout.write(f"Login with: {email}")
