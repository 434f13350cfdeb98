"""Turns dose transitions into notifications and caregiver alerts.

Stateless apart from the user's opt-in. Delivery is best-effort: a
notifier or alert channel that raises is logged and skipped, never
propagated back into the state update that produced the transition.
"""

from typing import Iterable, List, Optional, Tuple
import logging

from core.models import Caregiver, Medication
from core.state_machine import DoseTransition, Effect
from .notifier import AlertChannel, LoggingAlertChannel, Notifier, ConsoleNotifier

logger = logging.getLogger("medsync.notify")


class NotificationDispatcher:
    def __init__(self, notifier: Notifier = None, alert_channel: AlertChannel = None,
                 enabled: bool = False, snooze_minutes: int = 5):
        self.notifier = notifier or ConsoleNotifier()
        self.alert_channel = alert_channel or LoggingAlertChannel()
        self.snooze_minutes = snooze_minutes
        self._enabled = False
        if enabled:
            self.enable()

    @property
    def enabled(self) -> bool:
        return self._enabled

    def enable(self) -> bool:
        """Ask the notifier for permission; alerts stay off if it is denied."""
        try:
            self._enabled = bool(self.notifier.request_permission())
        except Exception as e:
            logger.warning(f"Notification permission request failed: {e}")
            self._enabled = False
        return self._enabled

    def disable(self) -> None:
        self._enabled = False

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def message_for(self, effect: Effect, medication: Medication) -> Optional[Tuple[str, str]]:
        if effect == Effect.NOTIFY_DUE:
            return f"💊 Medication Due: {medication.name}", f"Time to take your {medication.dosage} dose"
        if effect == Effect.NOTIFY_SNOOZE_END:
            return f"💊 Snooze Ended: {medication.name}", f"Reminder: Time to take your {medication.dosage} dose"
        if effect == Effect.NOTIFY_MISSED:
            return "🚨 MISSED DOSE ALERT", f"{medication.name} was not taken. Caregivers have been notified."
        if effect == Effect.NOTIFY_CONFIRMED:
            return "✅ Dose Confirmed", "Great job staying on track!"
        if effect == Effect.NOTIFY_SNOOZED:
            return "⏳ Dose Snoozed", f"Reminder in {self.snooze_minutes} minutes"
        return None

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def dispatch(self, transitions: Iterable[DoseTransition], medications: Iterable[Medication],
                 caregivers: List[Caregiver]) -> int:
        """Deliver every transition's notification. Returns how many were sent."""
        by_id = {m.id: m for m in medications}
        sent = 0
        for t in transitions:
            med = by_id.get(t.medication_id)
            if med is None:
                logger.warning(f"Transition for unknown medication {t.medication_id}; dropped")
                continue
            if t.effect == Effect.NOTIFY_MISSED:
                self._alert_caregivers(med, t.dose_index, caregivers)
            if self._send(t.effect, med):
                sent += 1
        return sent

    def _send(self, effect: Effect, medication: Medication) -> bool:
        if not self._enabled:
            return False
        message = self.message_for(effect, medication)
        if message is None:
            return False
        title, body = message
        try:
            self.notifier.notify(title, body)
            return True
        except Exception as e:
            logger.warning(f"{self.notifier.name} notifier failed, dropping '{title}': {e}")
            return False

    def _alert_caregivers(self, medication: Medication, dose_index: int, caregivers: List[Caregiver]) -> None:
        dose = medication.schedule[dose_index]
        try:
            self.alert_channel.alert(medication, dose, list(caregivers))
        except Exception as e:
            logger.error(f"Caregiver alert via {self.alert_channel.name} failed for {medication.name} at {dose.time}: {e}")
