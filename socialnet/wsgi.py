"""
WSGI config for socialnet project.

HTTP only. Websockets need the ASGI application in socialnet/asgi.py.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'socialnet.settings')

application = get_wsgi_application()
