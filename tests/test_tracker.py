import unittest
import sys
import os
import json
import tempfile
from datetime import datetime, timedelta
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
from config import CAREGIVERS_KEY, DOSE_LOG_KEY, MEDICATIONS_KEY
from core.errors import DoseNotFoundError, InvalidDoseActionError, InvalidMedicationError
from core.models import DoseStatus, loads_medications
from core.state_machine import Effect
from core.tracker import MedicationTracker
from modules.notification_dispatcher import NotificationDispatcher
from modules.store import JsonFileStore, MemoryStore
from tests.helpers import RecordingAlertChannel, RecordingNotifier


def at(hour, minute, second=0, day=2):
    return datetime(2026, 3, day, hour, minute, second)


class TrackerTestCase(unittest.TestCase):
    def setUp(self):
        self.store = MemoryStore()
        self.notifier = RecordingNotifier()
        self.channel = RecordingAlertChannel()
        self.tracker = MedicationTracker(
            store=self.store,
            dispatcher=NotificationDispatcher(self.notifier, self.channel, enabled=True),
            background_writes=False,
        )
        self.caregiver = self.tracker.add_caregiver("Sam", "sam@example.com")
        self.med = self.tracker.add_medication("Aspirin", "81mg", ["09:00"])

    def status(self):
        return self.tracker.get_dose(self.med.id, 0)

    def titles(self):
        return [title for title, _ in self.notifier.sent]


class TestScenarios(TrackerTestCase):
    def test_a_dose_becomes_due(self):
        transitions = self.tracker.tick(at(9, 0, 30))
        self.assertEqual(self.status().status, DoseStatus.DUE)
        self.assertEqual([t.effect for t in transitions], [Effect.NOTIFY_DUE])
        self.assertEqual(self.titles(), ["💊 Medication Due: Aspirin"])

    def test_b_confirm_prevents_missed(self):
        self.tracker.tick(at(9, 0, 30))
        dose = self.tracker.confirm_dose(self.med.id, 0, now=at(9, 5))
        self.assertEqual(dose.status, DoseStatus.TAKEN)
        self.assertEqual(dose.confirmed_at, at(9, 5))
        for now in [at(11, 0, 1), at(12, 0), at(23, 59)]:
            self.assertEqual(self.tracker.tick(now), [])
        self.assertEqual(self.titles(), ["💊 Medication Due: Aspirin", "✅ Dose Confirmed"])
        self.assertEqual(self.channel.alerts, [])

    def test_c_snooze_then_expiry(self):
        self.tracker.tick(at(9, 0, 30))
        dose = self.tracker.snooze_dose(self.med.id, 0, now=at(9, 1))
        self.assertEqual(dose.status, DoseStatus.SNOOZED)
        self.assertEqual(dose.snooze_until, at(9, 6))
        self.assertEqual(self.tracker.tick(at(9, 5)), [])
        transitions = self.tracker.tick(at(9, 6, 5))
        self.assertEqual([t.effect for t in transitions], [Effect.NOTIFY_SNOOZE_END])
        self.assertEqual(self.status().status, DoseStatus.DUE)
        self.assertIsNone(self.status().snooze_until)
        self.assertEqual(self.titles().count("💊 Snooze Ended: Aspirin"), 1)

    def test_d_missed_after_two_hours(self):
        self.tracker.tick(at(9, 0, 30))
        self.tracker.tick(at(11, 0, 1))
        self.tracker.tick(at(11, 0, 2))
        self.assertEqual(self.status().status, DoseStatus.MISSED)
        self.assertEqual(len(self.channel.alerts), 1)
        med, dose, caregivers = self.channel.alerts[0]
        self.assertEqual(med.id, self.med.id)
        self.assertEqual(dose.status, DoseStatus.MISSED)
        self.assertEqual(caregivers, [self.caregiver])
        self.assertEqual(self.titles().count("🚨 MISSED DOSE ALERT"), 1)

    def test_e_snoozed_jumps_straight_to_missed(self):
        self.tracker.tick(at(9, 0, 30))
        self.tracker.snooze_dose(self.med.id, 0, now=at(9, 1))
        transitions = self.tracker.tick(at(11, 1))
        self.assertEqual([t.effect for t in transitions], [Effect.NOTIFY_MISSED])
        self.tracker.tick(at(11, 2))
        self.assertEqual(self.status().status, DoseStatus.MISSED)
        self.assertIsNone(self.status().snooze_until)
        self.assertEqual(len(self.channel.alerts), 1)
        self.assertNotIn("💊 Snooze Ended: Aspirin", self.titles())

    def test_idempotent_tick(self):
        now = at(9, 0, 30)
        self.tracker.tick(now)
        version = self.tracker.medications.version
        self.assertEqual(self.tracker.tick(now), [])
        self.assertEqual(self.tracker.medications.version, version)
        self.assertEqual(len(self.notifier.sent), 1)

    def test_status_sequence_never_regresses(self):
        seen = [self.status().status]
        events = [
            ("tick", at(9, 0, 30)), ("snooze", at(9, 1)), ("tick", at(9, 6, 1)),
            ("snooze", at(9, 7)), ("tick", at(9, 12, 1)), ("confirm", at(9, 13)), ("tick", at(11, 30)),
        ]
        for kind, now in events:
            if kind == "tick":
                self.tracker.tick(now)
            elif kind == "snooze":
                self.tracker.snooze_dose(self.med.id, 0, now=now)
            else:
                self.tracker.confirm_dose(self.med.id, 0, now=now)
            if self.status().status != seen[-1]:
                seen.append(self.status().status)
        S = DoseStatus
        self.assertEqual(seen, [S.PENDING, S.DUE, S.SNOOZED, S.DUE, S.SNOOZED, S.DUE, S.TAKEN])


class TestTrackerActions(TrackerTestCase):
    def test_unknown_dose(self):
        with self.assertRaises(DoseNotFoundError):
            self.tracker.confirm_dose("nope", 0, now=at(9, 1))
        with self.assertRaises(DoseNotFoundError):
            self.tracker.snooze_dose(self.med.id, 3, now=at(9, 1))

    def test_confirm_missed_is_rejected(self):
        self.tracker.tick(at(9, 0, 30))
        self.tracker.tick(at(11, 1))
        with self.assertRaises(InvalidDoseActionError):
            self.tracker.confirm_dose(self.med.id, 0, now=at(11, 2))
        self.assertEqual(self.status().status, DoseStatus.MISSED)

    def test_confirm_pending_is_rejected(self):
        with self.assertRaises(InvalidDoseActionError):
            self.tracker.confirm_dose(self.med.id, 0, now=at(8, 0))

    def test_add_medication_validation(self):
        with self.assertRaises(InvalidMedicationError):
            self.tracker.add_medication("", "81mg", ["09:00"])
        with self.assertRaises(InvalidMedicationError):
            self.tracker.add_medication("Aspirin", "81mg", [])
        with self.assertRaises(InvalidMedicationError):
            self.tracker.add_medication("Aspirin", "81mg", ["9am"])

    def test_delete_medication_and_caregiver(self):
        self.assertTrue(self.tracker.delete_medication(self.med.id))
        self.assertFalse(self.tracker.delete_medication(self.med.id))
        self.assertEqual(len(self.tracker.medications), 0)
        self.assertTrue(self.tracker.delete_caregiver(self.caregiver.id))
        self.assertEqual(self.tracker.caregivers, ())

    def test_snapshot_is_not_shared(self):
        before = self.tracker.medications
        self.tracker.tick(at(9, 0, 30))
        self.assertEqual(before.find(self.med.id).schedule[0].status, DoseStatus.PENDING)
        self.assertGreater(self.tracker.medications.version, before.version)

    def test_notifier_failure_does_not_block_transition(self):
        self.tracker.dispatcher.notifier = RecordingNotifier(fail=True)
        self.tracker.tick(at(9, 0, 30))
        self.assertEqual(self.status().status, DoseStatus.DUE)

    def test_notifications_disabled_until_enabled(self):
        tracker = MedicationTracker(
            dispatcher=NotificationDispatcher(self.notifier, self.channel),
            background_writes=False,
        )
        med = tracker.add_medication("Aspirin", "81mg", ["09:00"])
        tracker.tick(at(9, 0, 30))
        self.assertEqual(self.notifier.sent, [])
        self.assertTrue(tracker.enable_notifications())
        tracker.snooze_dose(med.id, 0, now=at(9, 1))
        self.assertEqual(self.titles(), ["⏳ Dose Snoozed"])
        tracker.disable_notifications()
        self.assertFalse(tracker.notifications_enabled)
        tracker.confirm_dose(med.id, 0, now=at(9, 2))
        self.assertEqual(self.titles(), ["⏳ Dose Snoozed"])


class TestDailyReset(TrackerTestCase):
    def test_next_day_rearms_doses(self):
        self.tracker.tick(at(9, 0, 30))
        self.tracker.confirm_dose(self.med.id, 0, now=at(9, 2))
        self.tracker.tick(at(0, 0, 1, day=3))
        dose = self.status()
        self.assertEqual(dose.status, DoseStatus.PENDING)
        self.assertIsNone(dose.confirmed_at)
        self.tracker.tick(at(9, 0, 10, day=3))
        self.assertEqual(self.status().status, DoseStatus.DUE)

    def test_unconfirmed_late_dose_is_missed_at_midnight(self):
        late = self.tracker.add_medication("Melatonin", "3mg", ["23:30"])
        self.tracker.tick(at(23, 30, 10))
        self.tracker.tick(at(23, 59))
        transitions = self.tracker.tick(at(0, 1, day=3))
        self.assertEqual([t.effect for t in transitions], [Effect.NOTIFY_MISSED])
        for now in [at(1, 30, day=3), at(2, 0, day=3)]:
            self.assertEqual(self.tracker.tick(now), [])

        self.assertEqual(self.tracker.get_dose(late.id, 0).status, DoseStatus.PENDING)
        self.assertEqual(len(self.channel.alerts), 1)
        med, dose, caregivers = self.channel.alerts[0]
        self.assertEqual((med.id, dose.time, dose.status), (late.id, "23:30", DoseStatus.MISSED))
        self.assertEqual(caregivers, [self.caregiver])
        self.assertEqual(self.titles().count("🚨 MISSED DOSE ALERT"), 1)
        log = self.tracker.dose_log()
        self.assertEqual([(e["scheduled_time"], e["status"]) for e in log], [("23:30", "missed")])

    def test_snoozed_dose_is_missed_at_midnight(self):
        late = self.tracker.add_medication("Melatonin", "3mg", ["23:30"])
        self.tracker.tick(at(23, 30, 10))
        self.tracker.snooze_dose(late.id, 0, now=at(23, 58))
        self.tracker.tick(at(0, 0, 5, day=3))
        self.assertEqual(len(self.channel.alerts), 1)
        self.assertNotIn("💊 Snooze Ended: Melatonin", self.titles())
        self.assertIsNone(self.tracker.get_dose(late.id, 0).snooze_until)

    def test_taken_and_pending_doses_are_not_alerted_at_midnight(self):
        self.tracker.tick(at(9, 0, 30))
        self.tracker.confirm_dose(self.med.id, 0, now=at(9, 2))
        self.tracker.add_medication("Melatonin", "3mg", ["23:30"])
        self.tracker.tick(at(0, 0, 1, day=3))
        self.assertEqual(self.channel.alerts, [])
        self.assertEqual([e["status"] for e in self.tracker.dose_log()], ["taken"])


class TestPersistence(TrackerTestCase):
    def test_state_is_persisted(self):
        self.tracker.tick(at(9, 0, 30))
        self.tracker.confirm_dose(self.med.id, 0, now=at(9, 3))
        meds = loads_medications(self.store.get(MEDICATIONS_KEY))
        self.assertEqual(meds[0].schedule[0].status, DoseStatus.TAKEN)
        self.assertEqual(meds[0].schedule[0].confirmed_at, at(9, 3))
        self.assertEqual(len(json.loads(self.store.get(CAREGIVERS_KEY))), 1)
        log = json.loads(self.store.get(DOSE_LOG_KEY))
        self.assertEqual(log[0]["status"], "taken")
        self.assertEqual(log[0]["scheduled_time"], "09:00")

    def test_reload_from_store(self):
        self.tracker.tick(at(9, 0, 30))
        tracker = MedicationTracker(store=self.store, background_writes=False)
        tracker.load()
        self.assertEqual(tracker.get_dose(self.med.id, 0).status, DoseStatus.DUE)
        self.assertEqual([c.email for c in tracker.caregivers], ["sam@example.com"])
        # restarted on a later day: yesterday's statuses are cleared on the first tick
        tracker.tick(at(8, 0, day=3))
        self.assertEqual(tracker.get_dose(self.med.id, 0).status, DoseStatus.PENDING)

    def test_corrupt_store_starts_empty(self):
        store = MemoryStore({MEDICATIONS_KEY: "{not json", CAREGIVERS_KEY: "[]"})
        tracker = MedicationTracker(store=store, background_writes=False)
        tracker.load()
        self.assertEqual(len(tracker.medications), 0)

    def test_background_writes_to_file_store(self):
        with tempfile.TemporaryDirectory() as tmp:
            store = JsonFileStore(data_dir=tmp)
            tracker = MedicationTracker(store=store)
            med = tracker.add_medication("Aspirin", "81mg", ["09:00", "21:00"])
            tracker.flush()
            self.assertEqual(loads_medications(store.get(MEDICATIONS_KEY))[0].id, med.id)
            tracker.close()

    def test_dose_log_is_capped(self):
        tracker = MedicationTracker(store=self.store, background_writes=False, dose_log_limit=2)
        meds = [tracker.add_medication(f"Med {i}", "1 pill", ["09:00"]) for i in range(3)]
        tracker.tick(at(9, 0, 30))
        for med in meds:
            tracker.confirm_dose(med.id, 0, now=at(9, 2))
        self.assertEqual([e["medication_name"] for e in tracker.dose_log()], ["Med 1", "Med 2"])
        self.assertEqual(len(json.loads(self.store.get(DOSE_LOG_KEY))), 2)

        reloaded = MedicationTracker(store=self.store, background_writes=False, dose_log_limit=1)
        reloaded.load()
        self.assertEqual([e["medication_name"] for e in reloaded.dose_log()], ["Med 2"])

    def test_adherence_summary(self):
        other = self.tracker.add_medication("Vitamin D", "1000 IU", ["09:00"])
        self.tracker.tick(at(9, 0, 30))
        self.tracker.confirm_dose(other.id, 0, now=at(9, 2))
        self.tracker.tick(at(11, 1))
        summary = self.tracker.adherence_summary()
        self.assertEqual(summary, {"taken": 1, "missed": 1, "adherence_rate": 0.5})
        self.assertEqual([e["status"] for e in self.tracker.dose_log()], ["taken", "missed"])


if __name__ == '__main__':
    unittest.main()
