"""
WSGI config for talentmatch project.
"""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'talentmatch.settings')

application = get_wsgi_application()
