"""Fallback notification shown when a share could not be handed off."""

from __future__ import annotations

import logging
from typing import Protocol

import requests

from .config import Settings

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify(self, title: str, message: str, action: str | None = None) -> None: ...


class LoggingNotifier:
    """Used when no notification endpoint is configured."""

    def notify(self, title: str, message: str, action: str | None = None) -> None:
        logger.warning("%s: %s (action=%s)", title, message, action)


class WebhookNotifier:
    """POST fallback notifications to an HTTP endpoint."""

    def __init__(self, url: str, token: str | None = None, timeout: float = 10) -> None:
        self.url = url
        self.token = token
        self.timeout = timeout
        self.session = requests.Session()

    def notify(self, title: str, message: str, action: str | None = None) -> None:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        body = {"title": title, "message": message, "action": action}
        try:
            response = self.session.post(self.url, json=body, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.error("Fallback notification could not be sent: %s", exc)
            return
        if response.status_code >= 400:
            logger.error(
                "Fallback notification rejected (%s): %s", response.status_code, response.text
            )


def build_notifier(settings: Settings) -> Notifier:
    if settings.notify_url is None:
        return LoggingNotifier()
    return WebhookNotifier(str(settings.notify_url), token=settings.notify_token)
