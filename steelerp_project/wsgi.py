"""
WSGI config for the Steel ERP project.
"""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'steelerp_project.settings')

application = get_wsgi_application()
