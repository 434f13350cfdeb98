"""Domain errors raised by the tracker core."""


class MedSyncError(Exception):
    pass


class InvalidMedicationError(MedSyncError, ValueError):
    pass


class InvalidCaregiverError(MedSyncError, ValueError):
    pass


class DoseNotFoundError(MedSyncError, LookupError):
    def __init__(self, medication_id: str, index: int):
        super().__init__(f"No dose {index} for medication {medication_id!r}")
        self.medication_id = medication_id
        self.index = index


class InvalidDoseActionError(MedSyncError):
    """A user action that is not allowed from the dose's current status."""

    def __init__(self, action: str, status: str):
        super().__init__(f"Cannot {action} a dose that is {status}")
        self.action = action
        self.status = status
