"""Flask JSON API for the medication tracker.

Endpoints:
  GET    /api/status
  GET    /api/medications                      (each dose carries a "timing" label)
  POST   /api/medications                      {"name", "dosage", "times", "instructions"}
  DELETE /api/medications/<id>
  POST   /api/medications/<id>/doses/<idx>/confirm
  POST   /api/medications/<id>/doses/<idx>/snooze
  GET    /api/caregivers
  POST   /api/caregivers                       {"name", "email"}
  DELETE /api/caregivers/<id>
  POST   /api/notifications/enable
  POST   /api/notifications/disable
  GET    /api/history

Run:
  python website/server.py            # tracker + scheduler + API
"""

import os
import sys

from flask import Flask, request, jsonify

# Add parent directory so we can load .env and shared modules
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))
from dotenv import load_dotenv

load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))

from core.dose_clock import describe_timing
from core.errors import DoseNotFoundError, InvalidDoseActionError, MedSyncError


def _json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _medication_json(med, now):
    data = med.to_dict()
    for dose, entry in zip(med.schedule, data["schedule"]):
        entry["timing"] = describe_timing(dose, now)
    return data


def create_app(tracker):
    app = Flask(__name__)
    app.config["TRACKER"] = tracker

    # ── Errors ─────────────────────────────────────────────────
    @app.errorhandler(DoseNotFoundError)
    def _not_found(e):
        return jsonify({"error": str(e)}), 404

    @app.errorhandler(InvalidDoseActionError)
    def _conflict(e):
        return jsonify({"error": str(e)}), 409

    @app.errorhandler(MedSyncError)
    def _bad_request(e):
        return jsonify({"error": str(e)}), 400

    # ── Status ─────────────────────────────────────────────────
    @app.route("/api/status", methods=["GET"])
    def status():
        now = tracker.clock()
        return jsonify({
            "now": now.isoformat(),
            "version": tracker.medications.version,
            "notifications_enabled": tracker.notifications_enabled,
        })

    # ── Medications ────────────────────────────────────────────
    @app.route("/api/medications", methods=["GET"])
    def list_medications():
        now = tracker.clock()
        return jsonify([_medication_json(m, now) for m in tracker.medications])

    @app.route("/api/medications", methods=["POST"])
    def add_medication():
        data = _json_body()
        times = data.get("times") or []
        if isinstance(times, str):
            times = [times]
        med = tracker.add_medication(
            data.get("name", ""), data.get("dosage", ""), times, data.get("instructions", ""),
        )
        return jsonify(_medication_json(med, tracker.clock())), 201

    @app.route("/api/medications/<med_id>", methods=["DELETE"])
    def delete_medication(med_id):
        if not tracker.delete_medication(med_id):
            return jsonify({"error": f"No medication {med_id!r}"}), 404
        return "", 204

    @app.route("/api/medications/<med_id>/doses/<int:idx>/confirm", methods=["POST"])
    def confirm_dose(med_id, idx):
        dose = tracker.confirm_dose(med_id, idx)
        return jsonify(dose.to_dict())

    @app.route("/api/medications/<med_id>/doses/<int:idx>/snooze", methods=["POST"])
    def snooze_dose(med_id, idx):
        dose = tracker.snooze_dose(med_id, idx)
        return jsonify(dose.to_dict())

    # ── Caregivers ─────────────────────────────────────────────
    @app.route("/api/caregivers", methods=["GET"])
    def list_caregivers():
        return jsonify([c.to_dict() for c in tracker.caregivers])

    @app.route("/api/caregivers", methods=["POST"])
    def add_caregiver():
        data = _json_body()
        caregiver = tracker.add_caregiver(data.get("name", ""), data.get("email", ""))
        return jsonify(caregiver.to_dict()), 201

    @app.route("/api/caregivers/<caregiver_id>", methods=["DELETE"])
    def delete_caregiver(caregiver_id):
        if not tracker.delete_caregiver(caregiver_id):
            return jsonify({"error": f"No caregiver {caregiver_id!r}"}), 404
        return "", 204

    # ── Notifications / history ────────────────────────────────
    @app.route("/api/notifications/enable", methods=["POST"])
    def enable_notifications():
        return jsonify({"notifications_enabled": tracker.enable_notifications()})

    @app.route("/api/notifications/disable", methods=["POST"])
    def disable_notifications():
        tracker.disable_notifications()
        return jsonify({"notifications_enabled": tracker.notifications_enabled})

    @app.route("/api/history", methods=["GET"])
    def history():
        return jsonify({"log": tracker.dose_log(), "summary": tracker.adherence_summary()})

    return app


if __name__ == "__main__":
    from main import build_tracker, run

    run(build_tracker(), serve=True)
