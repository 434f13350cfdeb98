from .models import DoseStatus, DoseSchedule, Medication, Caregiver, MedicationList
from .state_machine import DoseStateMachine, DoseTransition, StateTransition, Effect
from .scheduler import Scheduler, evaluate_medications, reset_for_new_day

__all__ = [
    "DoseStatus", "DoseSchedule", "Medication", "Caregiver", "MedicationList",
    "DoseStateMachine", "DoseTransition", "StateTransition", "Effect",
    "Scheduler", "evaluate_medications", "reset_for_new_day",
]
