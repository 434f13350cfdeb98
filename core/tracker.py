"""Medication tracker: owner of the canonical medication and caregiver lists.

Architecture:
  Scheduler tick ─┐
                  ├─> MedicationTracker (lock) ─> DoseStateMachine
  User action ────┘            │
                               ├─> BackgroundWriter ─> Store
                               └─> NotificationDispatcher ─> Notifier / AlertChannel

Every update reads the current MedicationList, builds a new one and swaps
it in wholesale under a single lock, so neither a tick nor a user action
can observe a half-applied change. Persistence and notifications happen
strictly after the swap and can fail without undoing it.
"""

from datetime import datetime, date
from typing import Callable, Dict, List, Optional, Tuple
import json
import logging
import threading

from config import CAREGIVERS_KEY, DOSE_LOG_KEY, DOSE_LOG_LIMIT, MEDICATIONS_KEY, ScheduleConfig
from modules.notification_dispatcher import NotificationDispatcher
from modules.store import BackgroundWriter, MemoryStore, Store
from .errors import DoseNotFoundError
from .models import (
    Caregiver, DoseSchedule, DoseStatus, Medication, MedicationList,
    dumps_caregivers, dumps_medications, loads_caregivers, loads_medications,
    new_caregiver, new_medication,
)
from .scheduler import close_out_day, evaluate_medications, reset_for_new_day
from .state_machine import CONFIRM, SNOOZE, DoseStateMachine, DoseTransition

logger = logging.getLogger("medsync.tracker")

LAST_TICK_KEY = "last_tick_date"


class MedicationTracker:
    def __init__(
        self,
        store: Store = None,
        dispatcher: NotificationDispatcher = None,
        machine: DoseStateMachine = None,
        schedule_config: ScheduleConfig = None,
        clock: Callable[[], datetime] = None,
        background_writes: bool = True,
        dose_log_limit: int = DOSE_LOG_LIMIT,
    ):
        self.store = store or MemoryStore()
        self.machine = machine or DoseStateMachine(schedule_config)
        self.dispatcher = dispatcher or NotificationDispatcher(
            snooze_minutes=self.machine.config.snooze_minutes,
        )
        self.clock = clock or datetime.now
        self._writer: Optional[BackgroundWriter] = BackgroundWriter(self.store) if background_writes else None

        self._lock = threading.Lock()
        self._medications = MedicationList()
        self._caregivers: Tuple[Caregiver, ...] = ()
        self._dose_log: List[Dict] = []
        self.dose_log_limit = dose_log_limit
        self._last_tick_date: Optional[date] = None

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _read(self, key: str, loader, default):
        try:
            return loader(self.store.get(key))
        except Exception as e:
            logger.warning(f"Could not load {key!r}, starting empty: {e}")
            return default

    def load(self) -> None:
        """Read everything from the store; unreadable data means a fresh start."""
        meds = self._read(MEDICATIONS_KEY, loads_medications, [])
        caregivers = self._read(CAREGIVERS_KEY, loads_caregivers, [])
        dose_log = self._read(DOSE_LOG_KEY, lambda blob: json.loads(blob) if blob else [], [])
        last_tick = self._read(LAST_TICK_KEY, lambda blob: date.fromisoformat(blob) if blob else None, None)
        with self._lock:
            self._medications = MedicationList(medications=tuple(meds))
            self._caregivers = tuple(caregivers)
            self._dose_log = list(dose_log)[-self.dose_log_limit:]
            self._last_tick_date = last_tick
        logger.info(f"Loaded {len(meds)} medications, {len(caregivers)} caregivers")

    def _persist(self, key: str, value: str) -> None:
        if self._writer is not None:
            self._writer.submit(key, value)
            return
        try:
            if not self.store.set(key, value):
                logger.warning(f"Store rejected write for {key!r}")
        except Exception as e:
            logger.error(f"Failed to persist {key!r}: {e}")

    def flush(self) -> None:
        if self._writer is not None:
            self._writer.flush()

    def close(self) -> None:
        if self._writer is not None:
            self._writer.stop()

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    @property
    def medications(self) -> MedicationList:
        with self._lock:
            return self._medications

    @property
    def caregivers(self) -> Tuple[Caregiver, ...]:
        with self._lock:
            return self._caregivers

    def get_dose(self, medication_id: str, index: int) -> DoseSchedule:
        return self._locate(self.medications, medication_id, index)[1]

    @staticmethod
    def _locate(med_list: MedicationList, medication_id: str, index: int) -> Tuple[Medication, DoseSchedule]:
        med = med_list.find(medication_id)
        if med is None or not 0 <= index < len(med.schedule):
            raise DoseNotFoundError(medication_id, index)
        return med, med.schedule[index]

    # ------------------------------------------------------------------
    # Medications and caregivers
    # ------------------------------------------------------------------

    def add_medication(self, name: str, dosage: str, times: List[str], instructions: str = "") -> Medication:
        med = new_medication(name, dosage, times, instructions)
        with self._lock:
            self._medications = self._medications.replace_all(self._medications.medications + (med,))
            self._persist(MEDICATIONS_KEY, dumps_medications(self._medications))
        logger.info(f"Added {med.name} ({med.dosage}) at {', '.join(d.time for d in med.schedule)}")
        return med

    def delete_medication(self, medication_id: str) -> bool:
        with self._lock:
            remaining = [m for m in self._medications if m.id != medication_id]
            if len(remaining) == len(self._medications):
                return False
            self._medications = self._medications.replace_all(remaining)
            self._persist(MEDICATIONS_KEY, dumps_medications(self._medications))
        return True

    def add_caregiver(self, name: str, email: str) -> Caregiver:
        caregiver = new_caregiver(name, email)
        with self._lock:
            self._caregivers = self._caregivers + (caregiver,)
            self._persist(CAREGIVERS_KEY, dumps_caregivers(self._caregivers))
        return caregiver

    def delete_caregiver(self, caregiver_id: str) -> bool:
        with self._lock:
            remaining = tuple(c for c in self._caregivers if c.id != caregiver_id)
            if len(remaining) == len(self._caregivers):
                return False
            self._caregivers = remaining
            self._persist(CAREGIVERS_KEY, dumps_caregivers(self._caregivers))
        return True

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    @property
    def notifications_enabled(self) -> bool:
        return self.dispatcher.enabled

    def enable_notifications(self) -> bool:
        granted = self.dispatcher.enable()
        logger.info(f"Notifications {'enabled' if granted else 'denied'}")
        return granted

    def disable_notifications(self) -> None:
        self.dispatcher.disable()
        logger.info("Notifications disabled")

    # ------------------------------------------------------------------
    # Dose actions
    # ------------------------------------------------------------------

    def confirm_dose(self, medication_id: str, index: int, now: datetime = None) -> DoseSchedule:
        return self._apply_action(CONFIRM, medication_id, index, now)

    def snooze_dose(self, medication_id: str, index: int, now: datetime = None) -> DoseSchedule:
        return self._apply_action(SNOOZE, medication_id, index, now)

    def _apply_action(self, action: str, medication_id: str, index: int, now: Optional[datetime]) -> DoseSchedule:
        now = now or self.clock()
        with self._lock:
            med, dose = self._locate(self._medications, medication_id, index)
            new_dose, transition = self.machine.apply_action(dose, action, now, med.id, index)
            updated = med.with_dose(index, new_dose)
            self._commit(
                self._medications.replace_all(updated if m.id == med.id else m for m in self._medications),
                [transition],
            )
            meds, caregivers = self._medications, list(self._caregivers)
        logger.info(f"{med.name} at {dose.time}: {transition.from_state.value} -> {transition.to_state.value}")
        self.dispatcher.dispatch([transition], meds, caregivers)
        return new_dose

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def tick(self, now: datetime = None) -> List[DoseTransition]:
        """Run one evaluation pass and deliver whatever it produced."""
        now = now or self.clock()
        closed = None
        with self._lock:
            current = self._medications
            new_day = self._last_tick_date is not None and now.date() != self._last_tick_date
            if new_day:
                # Yesterday's unconfirmed doses count as missed before re-arming
                closed = close_out_day(current, now, self.machine)
                if closed.changed:
                    self._commit(closed.medications, closed.transitions)
                logger.info(f"New day {now.date().isoformat()}: re-arming all doses")
                current = reset_for_new_day(closed.medications)

            result = evaluate_medications(current, now, self.machine)
            if new_day or result.changed:
                self._commit(result.medications, result.transitions)

            if now.date() != self._last_tick_date:
                self._last_tick_date = now.date()
                self._persist(LAST_TICK_KEY, now.date().isoformat())
            meds, caregivers = self._medications, list(self._caregivers)

        transitions = list(closed.transitions) if closed else []
        transitions.extend(result.transitions)
        for t in transitions:
            logger.info(f"Dose {t.dose_index} of {t.medication_id}: {t.from_state.value} -> {t.to_state.value}")
        if closed and closed.changed:
            # Alerts carry the dose as it was closed, not the re-armed copy
            self.dispatcher.dispatch(closed.transitions, closed.medications, caregivers)
        if result.transitions:
            self.dispatcher.dispatch(result.transitions, meds, caregivers)
        return transitions

    # ------------------------------------------------------------------
    # Dose log
    # ------------------------------------------------------------------

    def _commit(self, med_list: MedicationList, transitions: List[DoseTransition]) -> None:
        """Swap in a new list and record outcomes. Caller holds the lock."""
        self._medications = med_list
        self._persist(MEDICATIONS_KEY, dumps_medications(med_list))

        logged = False
        for t in transitions:
            if t.to_state not in (DoseStatus.TAKEN, DoseStatus.MISSED):
                continue
            med = med_list.find(t.medication_id)
            self._dose_log.append({
                "medication_id": t.medication_id,
                "medication_name": med.name if med else "",
                "scheduled_time": med.schedule[t.dose_index].time if med else "",
                "status": t.to_state.value,
                "timestamp": t.at.isoformat(),
            })
            logged = True
        if logged:
            del self._dose_log[:-self.dose_log_limit]
            self._persist(DOSE_LOG_KEY, json.dumps(self._dose_log, indent=2))

    def dose_log(self) -> List[Dict]:
        with self._lock:
            return list(self._dose_log)

    def adherence_summary(self) -> Dict:
        log = self.dose_log()
        taken = sum(1 for e in log if e.get("status") == DoseStatus.TAKEN.value)
        missed = sum(1 for e in log if e.get("status") == DoseStatus.MISSED.value)
        total = taken + missed
        return {
            "taken": taken,
            "missed": missed,
            "adherence_rate": round(taken / total, 3) if total else None,
        }
