# notification_service.py
import logging

import requests
from django.conf import settings

from ..exceptions import NotificationError

logger = logging.getLogger(__name__)


class NotificationService:
    """One-way client for the agency notification API."""

    def __init__(self, base_url=None, api_key=None, timeout=None):
        self.base_url = base_url if base_url is not None else getattr(settings, 'NOTIFICATION_API_BASE', None)
        self.api_key = api_key if api_key is not None else getattr(settings, 'NOTIFICATION_API_KEY', None)
        self.timeout = timeout or getattr(settings, 'NOTIFICATION_TIMEOUT_SECONDS', 10)

    def _get_headers(self):
        headers = {
            "Cache-Control": "no-cache",
            "Content-Type": "application/json",
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def notify(self, recipient, message, priority="low", related_shift_id=None, title=None):
        payload = {
            "recipient": recipient,
            "title": title or "Visit update",
            "message": message,
            "priority": priority,
            "related_shift_id": related_shift_id,
        }

        if not self.base_url:
            logger.info(f"Notification API not configured, skipping notice to {recipient}: {message}")
            return None

        url = f"{self.base_url.rstrip('/')}/notifications"
        logger.info(f"Notification request: POST {url} recipient={recipient} priority={priority}")

        try:
            response = requests.post(url, json=payload, headers=self._get_headers(), timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise NotificationError(f"Notification request failed: {e}") from e

        if response.status_code >= 400:
            raise NotificationError(
                f"Notification API returned {response.status_code}: {response.text[:500]}"
            )
        return self._safe_parse_response(response)

    def _safe_parse_response(self, response):
        if not response.content:
            return {"message": "Empty response received"}

        try:
            return response.json()
        except ValueError:
            return {
                "error": "Invalid JSON response",
                "status_code": response.status_code,
                "content_preview": response.text[:500],
            }
