"""Medication, dose and caregiver records.

Records are immutable; every change produces a new record via
``dataclasses.replace`` so a snapshot handed out to a caller can never be
modified underneath it.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple
import json
import uuid

from .dose_clock import parse_time
from .errors import InvalidCaregiverError, InvalidMedicationError


class DoseStatus(Enum):
    PENDING = "pending"
    DUE = "due"
    SNOOZED = "snoozed"
    TAKEN = "taken"
    MISSED = "missed"


def _parse_instant(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _format_instant(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class DoseSchedule:
    time: str
    status: DoseStatus = DoseStatus.PENDING
    snooze_until: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None

    def to_dict(self) -> Dict:
        return {
            "time": self.time,
            "status": self.status.value,
            "snooze_until": _format_instant(self.snooze_until),
            "confirmed_at": _format_instant(self.confirmed_at),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "DoseSchedule":
        return cls(
            time=data["time"],
            status=DoseStatus(data.get("status", "pending")),
            snooze_until=_parse_instant(data.get("snooze_until")),
            confirmed_at=_parse_instant(data.get("confirmed_at")),
        )


@dataclass(frozen=True)
class Medication:
    id: str
    name: str
    dosage: str
    schedule: Tuple[DoseSchedule, ...] = ()
    instructions: str = ""

    def with_dose(self, index: int, dose: DoseSchedule) -> "Medication":
        schedule = list(self.schedule)
        schedule[index] = dose
        return replace(self, schedule=tuple(schedule))

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "name": self.name,
            "dosage": self.dosage,
            "instructions": self.instructions,
            "schedule": [d.to_dict() for d in self.schedule],
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "Medication":
        return cls(
            id=str(data["id"]),
            name=data["name"],
            dosage=data.get("dosage", ""),
            instructions=data.get("instructions", ""),
            schedule=tuple(DoseSchedule.from_dict(d) for d in data.get("schedule", [])),
        )


@dataclass(frozen=True)
class Caregiver:
    id: str
    name: str
    email: str

    def to_dict(self) -> Dict:
        return {"id": self.id, "name": self.name, "email": self.email}

    @classmethod
    def from_dict(cls, data: Dict) -> "Caregiver":
        return cls(id=str(data["id"]), name=data["name"], email=data["email"])


@dataclass(frozen=True)
class MedicationList:
    """Versioned snapshot of every medication the tracker owns."""
    medications: Tuple[Medication, ...] = field(default_factory=tuple)
    version: int = 0

    def replace_all(self, medications: Iterable[Medication]) -> "MedicationList":
        return MedicationList(medications=tuple(medications), version=self.version + 1)

    def find(self, medication_id: str) -> Optional[Medication]:
        for med in self.medications:
            if med.id == medication_id:
                return med
        return None

    def __len__(self) -> int:
        return len(self.medications)

    def __iter__(self):
        return iter(self.medications)


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

def _text(value, error_cls, label: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise error_cls(f"{label} must be a string")
    return value.strip()


def new_medication(name: str, dosage: str, times: List[str], instructions: str = "") -> Medication:
    name = _text(name, InvalidMedicationError, "Medication name")
    dosage = _text(dosage, InvalidMedicationError, "Dosage")
    instructions = _text(instructions, InvalidMedicationError, "Instructions")
    if not name:
        raise InvalidMedicationError("Medication name is required")
    if not dosage:
        raise InvalidMedicationError("Dosage is required")
    if not isinstance(times, (list, tuple)):
        raise InvalidMedicationError("Dose times must be a list of HH:MM strings")
    if not times:
        raise InvalidMedicationError("At least one dose time is required")

    schedule = []
    for t in times:
        try:
            parsed = parse_time(t)
        except ValueError as e:
            raise InvalidMedicationError(str(e)) from e
        schedule.append(DoseSchedule(time=parsed.strftime("%H:%M")))

    return Medication(
        id=uuid.uuid4().hex,
        name=name,
        dosage=dosage,
        schedule=tuple(schedule),
        instructions=instructions,
    )


def new_caregiver(name: str, email: str) -> Caregiver:
    name = _text(name, InvalidCaregiverError, "Caregiver name")
    email = _text(email, InvalidCaregiverError, "Caregiver email")
    if not name or not email:
        raise InvalidCaregiverError("Caregiver name and email are required")
    return Caregiver(id=uuid.uuid4().hex, name=name, email=email)


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def dumps_medications(medications: Iterable[Medication]) -> str:
    return json.dumps([m.to_dict() for m in medications], indent=2)


def loads_medications(blob: Optional[str]) -> List[Medication]:
    if not blob:
        return []
    return [Medication.from_dict(d) for d in json.loads(blob)]


def dumps_caregivers(caregivers: Iterable[Caregiver]) -> str:
    return json.dumps([c.to_dict() for c in caregivers], indent=2)


def loads_caregivers(blob: Optional[str]) -> List[Caregiver]:
    if not blob:
        return []
    return [Caregiver.from_dict(d) for d in json.loads(blob)]
