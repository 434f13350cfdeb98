"""Recording doubles for the notifier and caregiver alert channel."""
import os
import sys
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
from modules.notifier import AlertChannel, Notifier


class RecordingNotifier(Notifier):
    name = "recording"

    def __init__(self, granted=True, fail=False):
        self.granted = granted
        self.fail = fail
        self.sent = []

    def request_permission(self):
        return self.granted

    def notify(self, title, body):
        if self.fail:
            raise ConnectionError("notifier unavailable")
        self.sent.append((title, body))


class RecordingAlertChannel(AlertChannel):
    name = "recording"

    def __init__(self, fail=False):
        self.fail = fail
        self.alerts = []

    def alert(self, medication, dose, caregivers):
        if self.fail:
            raise ConnectionError("alert channel unavailable")
        self.alerts.append((medication, dose, list(caregivers)))
