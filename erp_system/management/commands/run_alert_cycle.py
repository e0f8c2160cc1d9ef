"""
Run the periodic alert jobs.

Usage:
    python manage.py run_alert_cycle
    python manage.py run_alert_cycle --only escalations

Jobs:
    reorder      raise low-stock alerts for every active inventory item
    escalations  escalate overdue alerts along their SLA ladder
    reminders    remind assignees of alerts due within 24 hours
    amc          expire AMC contracts past their end date

Intended to be scheduled from cron every 15 minutes.
"""
import logging

from django.core.management.base import BaseCommand

from erp_system.models import AMCContract, InventoryItem
from erp_system.services.alert_service import AlertService
from erp_system.services.inventory_service import InventoryService
from erp_system.services.service_desk import ServiceDesk

logger = logging.getLogger(__name__)

JOBS = ('reorder', 'escalations', 'reminders', 'amc')


class Command(BaseCommand):
    help = 'Run reorder checks, SLA escalations, reminders and AMC expiry'

    def add_arguments(self, parser):
        parser.add_argument('--only', choices=JOBS, action='append',
                            help='Run only the named job (repeatable)')

    def handle(self, *args, **options):
        jobs = options.get('only') or JOBS
        results = {}

        if 'reorder' in jobs:
            results['reorder'] = len(InventoryService.check_all_reorder_alerts(InventoryItem.objects.all()))
        if 'escalations' in jobs:
            results['escalations'] = AlertService.process_escalations()
        if 'reminders' in jobs:
            results['reminders'] = AlertService.generate_reminders()
        if 'amc' in jobs:
            results['amc'] = ServiceDesk.expire_amc_contracts(AMCContract.objects.all())

        logger.info(f"Alert cycle complete: {results}")
        for job, count in results.items():
            self.stdout.write(f"  {job}: {count}")
        self.stdout.write(self.style.SUCCESS("Alert cycle complete"))
