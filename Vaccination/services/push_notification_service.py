"""
FCM HTTP v1 sender for parent and agent devices.

Credentials come from the service account file named by FIREBASE_KEY_PATH and
are refreshed only when google-auth reports them stale.
"""
import logging
import os

import google.auth.transport.requests
import requests
from django.conf import settings
from google.oauth2 import service_account

logger = logging.getLogger(__name__)

FCM_SCOPES = ["https://www.googleapis.com/auth/firebase.messaging"]
FCM_SEND_URL = "https://fcm.googleapis.com/v1/projects/{project}/messages:send"
ANDROID_CHANNEL = "vaccination_notifications"


def _failure(error, **extra):
    return {"success": False, "error": error, **extra}


class PushNotificationService:
    # Cached service account credentials
    _credentials = None

    @classmethod
    def service_account_file(cls):
        return getattr(settings, 'FIREBASE_KEY_PATH', None)

    @classmethod
    def project_id(cls):
        return getattr(settings, 'FCM_PROJECT_ID', None)

    @classmethod
    def _load_credentials(cls):
        key_path = cls.service_account_file()
        if not key_path or not os.path.exists(key_path):
            logger.warning(f"FCM disabled: service account file not found ({key_path})")
            return None
        return service_account.Credentials.from_service_account_file(key_path, scopes=FCM_SCOPES)

    @classmethod
    def get_access_token(cls):
        """OAuth2 bearer token for FCM, or None when push is not configured."""
        try:
            if cls._credentials is None:
                cls._credentials = cls._load_credentials()
                if cls._credentials is None:
                    return None
            if not cls._credentials.valid:
                cls._credentials.refresh(google.auth.transport.requests.Request())
                logger.info("FCM access token refreshed")
            return cls._credentials.token
        except Exception as e:
            logger.error(f"Could not obtain an FCM access token: {e}")
            cls._credentials = None
            return None

    @staticmethod
    def build_message(token, title, body, data=None):
        message = {
            "token": token,
            "notification": {"title": title, "body": body},
            "android": {
                "priority": "high",
                "notification": {"sound": "default", "channel_id": ANDROID_CHANNEL},
            },
            "apns": {
                "headers": {"apns-priority": "10"},
                "payload": {"aps": {"sound": "default", "badge": 1}},
            },
        }
        if data:
            # FCM data values must be strings
            message["data"] = {str(key): str(value) for key, value in data.items()}
        return {"message": message}

    @classmethod
    def send_push_notification(cls, token: str, title: str, body: str, data: dict = None):
        """Send one push notification. Never raises; returns a result dict."""
        if not token:
            return _failure("Missing FCM device token")
        if not title or not body:
            return _failure("Missing title or body")

        access_token = cls.get_access_token()
        if not access_token:
            return _failure("Push notifications are not configured")

        try:
            response = requests.post(
                FCM_SEND_URL.format(project=cls.project_id()),
                headers={"Authorization": f"Bearer {access_token}"},
                json=cls.build_message(token, title, body, data),
                timeout=30,
            )
        except requests.RequestException as e:
            logger.error(f"FCM request failed for device {token[:12]}...: {e}")
            return _failure(str(e))

        if response.ok:
            logger.debug(f"FCM accepted '{title}' for device {token[:12]}...")
            return {"success": True, "response": response.json()}

        logger.error(f"FCM rejected '{title}' ({response.status_code}): {response.text[:300]}")
        return _failure(response.text, status_code=response.status_code)

    @classmethod
    def is_configured(cls):
        """``(ok, reason)`` for health checks."""
        if not cls.service_account_file() or not os.path.exists(cls.service_account_file()):
            return False, "Service account file missing"
        if cls.get_access_token() is None:
            return False, "Could not obtain an access token"
        return True, "Push notifications configured"
