from .push_notification_service import PushNotificationService

__all__ = ['PushNotificationService']
