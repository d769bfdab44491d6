"""
Push notifications about provisioning events.

Delivery is fire-and-forget: a notification that cannot be sent is logged and
dropped, it never fails an operation that already succeeded.
"""

import requests
from config.app_config import NotificationConfig
from core.logging_config import LoggerMixin

class GotifyNotifier(LoggerMixin):
    def __init__(self, config: NotificationConfig):
        self.config = config

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def send(self, title: str, message: str, priority: int = None) -> bool:
        """Send a message to the Gotify server. Returns True when it was accepted."""
        if not self.enabled:
            self.logger.debug("Notifications disabled, dropping message", title=title)
            return False

        payload = {
            "title": title,
            "message": message,
            "priority": self.config.priority if priority is None else priority,
        }
        headers = {
            "Content-Type": "application/json",
            "X-Gotify-Key": self.config.app_token,
        }
        try:
            response = requests.post(
                f"https://{self.config.server}/message",
                json=payload,
                headers=headers,
                timeout=self.config.timeout,
            )
        except requests.RequestException as e:
            self.logger.warning("Failed to send notification", title=title, error=str(e))
            return False

        if not response.ok:
            self.logger.warning(
                "Notification server returned non-2xx status",
                title=title,
                status_code=response.status_code,
            )
            return False
        return True
