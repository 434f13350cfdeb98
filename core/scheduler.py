"""Evaluation loop for dose reminders.

``evaluate_medications`` is the pure per-tick pass over every dose.
``Scheduler`` runs a background thread that calls a tick callback with
the current time every ``poll_interval`` seconds.
"""
from threading import Thread, Event
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, List, Optional
import logging

from .models import DoseStatus, MedicationList
from .state_machine import DoseStateMachine, DoseTransition

logger = logging.getLogger("medsync.scheduler")


@dataclass
class EvaluationResult:
    medications: MedicationList
    transitions: List[DoseTransition] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.transitions)


def _apply_to_doses(med_list: MedicationList, step: Callable) -> EvaluationResult:
    transitions: List[DoseTransition] = []
    updated_meds = []
    for med in med_list:
        schedule = []
        for idx, dose in enumerate(med.schedule):
            try:
                new_dose, transition = step(dose, med.id, idx)
            except Exception:
                logger.exception(f"Failed to evaluate dose {idx} of {med.name} ({med.id})")
                new_dose, transition = dose, None
            if transition:
                transitions.append(transition)
            schedule.append(new_dose)
        updated_meds.append(replace(med, schedule=tuple(schedule)))

    if not transitions:
        return EvaluationResult(med_list)
    return EvaluationResult(med_list.replace_all(updated_meds), transitions)


def evaluate_medications(med_list: MedicationList, now: datetime,
                         machine: DoseStateMachine) -> EvaluationResult:
    """Apply the automatic rules to every dose of every medication.

    Returns a new list (version bumped) only when at least one dose
    changed. A dose whose evaluation raises is logged and left as it was.
    """
    return _apply_to_doses(med_list, lambda dose, med_id, idx: machine.evaluate(dose, now, med_id, idx))


def close_out_day(med_list: MedicationList, now: datetime,
                  machine: DoseStateMachine) -> EvaluationResult:
    """Mark every dose still due or snoozed from a finished day as missed."""
    return _apply_to_doses(med_list, lambda dose, med_id, idx: machine.close_day(dose, now, med_id, idx))


def reset_for_new_day(med_list: MedicationList) -> MedicationList:
    """Re-arm every dose as pending for a new calendar day."""
    fresh = []
    for med in med_list:
        schedule = tuple(replace(d, status=DoseStatus.PENDING, snooze_until=None, confirmed_at=None)
                         for d in med.schedule)
        fresh.append(replace(med, schedule=schedule))
    return med_list.replace_all(fresh)


class Scheduler:
    def __init__(self, tick: Callable[[datetime], object], poll_interval: float = 1.0,
                 clock: Optional[Callable[[], datetime]] = None):
        self.tick = tick
        self.poll_interval = poll_interval
        self.clock = clock or datetime.now
        self._stop = Event()
        self._thread = None

    @property
    def running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def start(self):
        if self.running:
            return
        self._stop.clear()
        self._thread = Thread(target=self._run, name="medsync-scheduler", daemon=True)
        self._thread.start()
        logger.info(f"Scheduler started (every {self.poll_interval}s)")

    def stop(self):
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=2.0)
        logger.info("Scheduler stopped")

    def _run(self):
        while not self._stop.is_set():
            try:
                self.tick(self.clock())
            except Exception:
                # A failed tick must not end the loop
                logger.exception("Tick failed")
            self._stop.wait(self.poll_interval)
