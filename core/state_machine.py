"""Per-dose status state machine.

Transitions are registered in a table keyed by (from_state, condition).
Every rule is gated on the dose's current status, so evaluating the same
instant twice never fires the same transition twice.
"""

from enum import Enum
from typing import List, Optional, Tuple
from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from config import ScheduleConfig
from .dose_clock import elapsed_minutes
from .errors import InvalidDoseActionError
from .models import DoseSchedule, DoseStatus


class Effect(Enum):
    NOTIFY_DUE = "notify_due"
    NOTIFY_SNOOZE_END = "notify_snooze_end"
    NOTIFY_MISSED = "notify_missed"
    NOTIFY_CONFIRMED = "notify_confirmed"
    NOTIFY_SNOOZED = "notify_snoozed"


# Automatic conditions, checked every tick
DUE_WINDOW = "due_window"
SNOOZE_EXPIRED = "snooze_expired"
MISSED_WINDOW = "missed_window"

# Checked once, on the first tick of a new calendar day
DAY_ENDED = "day_ended"

# User actions
CONFIRM = "confirm"
SNOOZE = "snooze"
ACTIONS = (CONFIRM, SNOOZE)


@dataclass
class StateTransition:
    from_state: DoseStatus
    to_state: DoseStatus
    condition: str
    effect: Effect


@dataclass(frozen=True)
class DoseTransition:
    """A status change that happened to one dose."""
    medication_id: str
    dose_index: int
    from_state: DoseStatus
    to_state: DoseStatus
    effect: Effect
    at: datetime


class DoseStateMachine:
    # Missed beats snooze expiry: a long-expired snooze goes straight to missed
    AUTOMATIC_PRIORITY = (MISSED_WINDOW, SNOOZE_EXPIRED, DUE_WINDOW)

    def __init__(self, config: Optional[ScheduleConfig] = None):
        self.config = config or ScheduleConfig()
        self._transitions: List[StateTransition] = []
        self._register_defaults()

    def _register_defaults(self) -> None:
        S = DoseStatus
        self.register_transition(S.PENDING, S.DUE, DUE_WINDOW, Effect.NOTIFY_DUE)
        self.register_transition(S.SNOOZED, S.DUE, SNOOZE_EXPIRED, Effect.NOTIFY_SNOOZE_END)
        self.register_transition(S.DUE, S.MISSED, MISSED_WINDOW, Effect.NOTIFY_MISSED)
        self.register_transition(S.SNOOZED, S.MISSED, MISSED_WINDOW, Effect.NOTIFY_MISSED)
        self.register_transition(S.DUE, S.MISSED, DAY_ENDED, Effect.NOTIFY_MISSED)
        self.register_transition(S.SNOOZED, S.MISSED, DAY_ENDED, Effect.NOTIFY_MISSED)
        self.register_transition(S.DUE, S.TAKEN, CONFIRM, Effect.NOTIFY_CONFIRMED)
        self.register_transition(S.SNOOZED, S.TAKEN, CONFIRM, Effect.NOTIFY_CONFIRMED)
        self.register_transition(S.DUE, S.SNOOZED, SNOOZE, Effect.NOTIFY_SNOOZED)

    def register_transition(self, from_state: DoseStatus, to_state: DoseStatus, condition: str, effect: Effect) -> None:
        self._transitions.append(StateTransition(from_state, to_state, condition, effect))

    def find_transition(self, status: DoseStatus, condition: str) -> Optional[StateTransition]:
        for t in self._transitions:
            if t.from_state == status and t.condition == condition:
                return t
        return None

    # ------------------------------------------------------------------
    # Conditions
    # ------------------------------------------------------------------

    def holds(self, condition: str, dose: DoseSchedule, now: datetime) -> bool:
        if condition == SNOOZE_EXPIRED:
            return dose.snooze_until is not None and now >= dose.snooze_until
        elapsed = elapsed_minutes(dose.time, now)
        if condition == DUE_WINDOW:
            return 0 <= elapsed < self.config.due_window_minutes
        if condition == MISSED_WINDOW:
            return elapsed >= self.config.missed_after_minutes
        raise ValueError(f"Unknown condition: {condition}")

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def evaluate(self, dose: DoseSchedule, now: datetime,
                 medication_id: str = "", index: int = 0) -> Tuple[DoseSchedule, Optional[DoseTransition]]:
        """Run the automatic rules once. At most one transition fires."""
        for condition in self.AUTOMATIC_PRIORITY:
            t = self.find_transition(dose.status, condition)
            if t and self.holds(condition, dose, now):
                return self._fire(t, dose, now, medication_id, index)
        return dose, None

    def close_day(self, dose: DoseSchedule, now: datetime,
                  medication_id: str = "", index: int = 0) -> Tuple[DoseSchedule, Optional[DoseTransition]]:
        """Settle a dose left unconfirmed when its day ended."""
        t = self.find_transition(dose.status, DAY_ENDED)
        if t is None:
            return dose, None
        return self._fire(t, dose, now, medication_id, index)

    def apply_action(self, dose: DoseSchedule, action: str, now: datetime,
                     medication_id: str = "", index: int = 0) -> Tuple[DoseSchedule, DoseTransition]:
        if action not in ACTIONS:
            raise ValueError(f"Unknown action: {action}")
        t = self.find_transition(dose.status, action)
        if t is None:
            raise InvalidDoseActionError(action, dose.status.value)
        return self._fire(t, dose, now, medication_id, index)

    def _fire(self, t: StateTransition, dose: DoseSchedule, now: datetime,
              medication_id: str, index: int) -> Tuple[DoseSchedule, DoseTransition]:
        snooze_until = None
        confirmed_at = None
        if t.to_state == DoseStatus.SNOOZED:
            snooze_until = now + timedelta(minutes=self.config.snooze_minutes)
        elif t.to_state == DoseStatus.TAKEN:
            confirmed_at = now

        updated = replace(dose, status=t.to_state, snooze_until=snooze_until, confirmed_at=confirmed_at)
        return updated, DoseTransition(medication_id, index, t.from_state, t.to_state, t.effect, now)
