"""
Health check for the Steel ERP
Usage: python manage.py health_check
"""
import django
from django.core.management.base import BaseCommand
from django.db import connection

from erp_system.models import Alert, Branch, Invoice, Role


class Command(BaseCommand):
    help = 'Report system health: database, branches, roles, open alerts, Django version'

    def handle(self, *args, **options):
        self.stdout.write("\n" + "=" * 60)
        self.stdout.write(self.style.SUCCESS("Steel ERP Health Check"))
        self.stdout.write("=" * 60 + "\n")

        self.stdout.write("Database Connection:")
        try:
            connection.ensure_connection()
            self.stdout.write(self.style.SUCCESS("  ✓ Connected"))
            self.stdout.write(f"  Engine: {connection.vendor}")
        except Exception as e:
            self.stdout.write(self.style.ERROR(f"  ✗ Failed: {e}"))
            return

        self.stdout.write("\nConfiguration:")
        try:
            self.stdout.write(f"  Active branches: {Branch.objects.filter(is_active=True).count()}")
            role_count = Role.objects.count()
            if role_count:
                self.stdout.write(f"  Roles: {role_count}")
            else:
                self.stdout.write(self.style.WARNING("  Roles: none (run init_roles)"))
        except Exception as e:
            self.stdout.write(self.style.ERROR(f"  ✗ Could not read configuration: {e}"))

        self.stdout.write("\nOperations:")
        try:
            open_alerts = Alert.objects.exclude(status='RESOLVED')
            self.stdout.write(f"  Open alerts: {open_alerts.count()}")
            self.stdout.write(f"  Critical alerts: {open_alerts.filter(priority='CRITICAL').count()}")
            last_invoice = Invoice.objects.order_by('-created_at').first()
            if last_invoice:
                self.stdout.write(f"  Last invoice: {last_invoice.invoice_number} ({last_invoice.created_at})")
            else:
                self.stdout.write("  Last invoice: No invoices in system")
        except Exception as e:
            self.stdout.write(self.style.ERROR(f"  ✗ Could not read operations: {e}"))

        self.stdout.write(f"\nDjango Version: {django.get_version()}")
        self.stdout.write("\n" + "=" * 60 + "\n")
