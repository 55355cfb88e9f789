"""
ASGI config for socialnet project.

HTTP goes to Django; websockets go through token authentication to the chat
consumer.
"""

import os

from django.core.asgi import get_asgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'socialnet.settings')

# Initialize Django before importing anything that touches models
django_asgi_app = get_asgi_application()

from channels.routing import ProtocolTypeRouter, URLRouter  # noqa: E402
from channels.security.websocket import AllowedHostsOriginValidator  # noqa: E402

from network.middleware import QueryTokenAuthMiddleware  # noqa: E402
from network.routing import websocket_urlpatterns  # noqa: E402

application = ProtocolTypeRouter({
    "http": django_asgi_app,
    "websocket": AllowedHostsOriginValidator(
        QueryTokenAuthMiddleware(URLRouter(websocket_urlpatterns))
    ),
})
