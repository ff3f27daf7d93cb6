from concierge.system.notification.connection_manager import ConnectionManager, connection_manager
from concierge.system.notification.email_channel import EmailChannel
from concierge.system.notification.in_app_channel import InAppChannel
from concierge.system.notification.webhook_channel import WebhookChannel

__all__ = ["ConnectionManager", "connection_manager", "EmailChannel", "InAppChannel", "WebhookChannel"]
