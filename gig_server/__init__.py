from .routes.message import message_bp
from .routes.notification import notification_bp
from .routes.engagement import engagement_bp
from .routes.presence import presence_bp

# Application factory is defined in server.py; the blueprints are re-exported
# here so that tests and alternative runners can build an app without
# importing server.py.

__all__ = [
    "message_bp",
    "notification_bp",
    "engagement_bp",
    "presence_bp",
]
