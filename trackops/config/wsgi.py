"""
WSGI config for the trackops project.
"""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'trackops.config.settings')

application = get_wsgi_application()
