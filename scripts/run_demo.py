"""Demo runner: replays a day of doses on a simulated clock with an in-memory store."""
import sys
import os
from datetime import datetime, timedelta

# ensure project modules importable
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from core.tracker import MedicationTracker
from modules.notification_dispatcher import NotificationDispatcher
from modules.store import MemoryStore


def demo_flow():
    today = datetime.now().replace(hour=8, minute=59, second=0, microsecond=0)
    clock = {"now": today}

    tracker = MedicationTracker(
        store=MemoryStore(),
        dispatcher=NotificationDispatcher(enabled=True),
        clock=lambda: clock["now"],
        background_writes=False,
    )
    tracker.add_caregiver("Sam", "sam@example.com")
    morning = tracker.add_medication("Lisinopril", "10mg", ["09:00"])
    metformin = tracker.add_medication("Metformin", "500mg", ["09:00", "21:00"])

    def advance(minutes, label):
        clock["now"] += timedelta(minutes=minutes)
        print(f"Demo: {clock['now']:%H:%M:%S} {label}")
        tracker.tick()

    advance(1.5, "doses come due")
    print("Demo: snoozing Lisinopril")
    tracker.snooze_dose(morning.id, 0)
    advance(6, "snooze ends")
    print("Demo: confirming Lisinopril")
    tracker.confirm_dose(morning.id, 0)
    advance(120, "Metformin 09:00 goes missed")

    print(f"Demo: Metformin doses are {[d.status.value for d in tracker.medications.find(metformin.id).schedule]}")
    print(f"Demo complete. Adherence: {tracker.adherence_summary()}")


if __name__ == '__main__':
    demo_flow()
