"""
WSGI config for the shopbooks project.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "shopbooks.settings")

application = get_wsgi_application()
