"""Outbound delivery: personal notifications and caregiver alerts.

Notifiers:
  - ConsoleNotifier:  logs notifications (default, always permitted)
  - WebhookNotifier:  POSTs {"title", "body"} to a configured URL

Caregiver alert channels:
  - LoggingAlertChannel: logs the alert (stub when nothing is wired)
  - WebhookAlertChannel: POSTs medication, dose and caregivers as JSON
"""

from typing import Iterable, Optional
import logging

import requests

logger = logging.getLogger("medsync.notify")


def _make_session() -> requests.Session:
    session = requests.Session()
    # Keep-alive + connection pooling
    adapter = requests.adapters.HTTPAdapter(pool_connections=2, pool_maxsize=4, max_retries=1)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


# ---------------------------------------------------------------------------
# Personal notifications
# ---------------------------------------------------------------------------

class Notifier:
    name: str = "base"

    def request_permission(self) -> bool:
        raise NotImplementedError

    def notify(self, title: str, body: str) -> None:
        raise NotImplementedError


class ConsoleNotifier(Notifier):
    name = "console"

    def request_permission(self) -> bool:
        return True

    def notify(self, title: str, body: str) -> None:
        logger.info(f"[NOTIFY] {title}: {body}")


class WebhookNotifier(Notifier):
    name = "webhook"

    def __init__(self, url: str, timeout: float = 5.0, session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self._session = session

    def _get_session(self) -> requests.Session:
        if self._session is None:
            self._session = _make_session()
        return self._session

    def request_permission(self) -> bool:
        return bool(self.url)

    def notify(self, title: str, body: str) -> None:
        resp = self._get_session().post(self.url, json={"title": title, "body": body}, timeout=self.timeout)
        resp.raise_for_status()


# ---------------------------------------------------------------------------
# Caregiver alerts
# ---------------------------------------------------------------------------

class AlertChannel:
    name: str = "base"

    def alert(self, medication, dose, caregivers: Iterable) -> None:
        raise NotImplementedError


class LoggingAlertChannel(AlertChannel):
    name = "log"

    def alert(self, medication, dose, caregivers: Iterable) -> None:
        contacts = ", ".join(f"{c.name} <{c.email}>" for c in caregivers) or "none configured"
        logger.warning(f"MISSED DOSE ALERT: {medication.name} at {dose.time}; caregivers: {contacts}")


class WebhookAlertChannel(AlertChannel):
    name = "webhook"

    def __init__(self, url: str, timeout: float = 5.0, session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self._session = session

    def _get_session(self) -> requests.Session:
        if self._session is None:
            self._session = _make_session()
        return self._session

    def alert(self, medication, dose, caregivers: Iterable) -> None:
        payload = {
            "medication": medication.to_dict(),
            "dose": dose.to_dict(),
            "caregivers": [c.to_dict() for c in caregivers],
        }
        resp = self._get_session().post(self.url, json=payload, timeout=self.timeout)
        resp.raise_for_status()


def build_notifier(config) -> Notifier:
    if config.webhook_url:
        return WebhookNotifier(config.webhook_url, timeout=config.timeout)
    return ConsoleNotifier()


def build_alert_channel(config) -> AlertChannel:
    if config.alert_webhook_url:
        return WebhookAlertChannel(config.alert_webhook_url, timeout=config.timeout)
    return LoggingAlertChannel()
