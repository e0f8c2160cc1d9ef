"""
Create or refresh the predefined ERP roles.

Usage:
    python manage.py init_roles
    python manage.py init_roles --dry-run

Existing roles get their description and permission list reset to the
predefined grid; custom roles are left untouched.
"""
from django.core.management.base import BaseCommand
from django.db import transaction

from erp_system.models import Role
from erp_system.permissions import PREDEFINED_ROLES


class Command(BaseCommand):
    help = 'Create or refresh the predefined ERP roles'

    def add_arguments(self, parser):
        parser.add_argument('--dry-run', action='store_true', help='Show what would change without saving')

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        created_count = 0
        updated_count = 0

        with transaction.atomic():
            for name, definition in PREDEFINED_ROLES.items():
                role = Role.objects.filter(name=name).first()
                if role is None:
                    created_count += 1
                    self.stdout.write(f"  + {name} ({len(definition['permissions'])} permissions)")
                    if not dry_run:
                        Role.objects.create(
                            name=name,
                            description=definition['description'],
                            permissions=list(definition['permissions']),
                            is_system=True,
                            updated_by='init_roles',
                        )
                    continue

                if role.permissions != definition['permissions'] or role.description != definition['description']:
                    updated_count += 1
                    self.stdout.write(f"  ~ {name}")
                    if not dry_run:
                        role.description = definition['description']
                        role.permissions = list(definition['permissions'])
                        role.is_system = True
                        role.updated_by = 'init_roles'
                        role.save()

        prefix = '[dry run] ' if dry_run else ''
        self.stdout.write(self.style.SUCCESS(
            f"{prefix}Roles: {created_count} created, {updated_count} updated, "
            f"{len(PREDEFINED_ROLES) - created_count - updated_count} unchanged"
        ))
