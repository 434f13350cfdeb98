"""Entry point for the medication tracker.

  python main.py              # scheduler + HTTP API
  python main.py --headless   # scheduler only
"""

import logging
import sys
import time

from config import NotificationConfig, ScheduleConfig, ServerConfig, StorageConfig
from core.scheduler import Scheduler
from core.tracker import MedicationTracker
from modules.notification_dispatcher import NotificationDispatcher
from modules.notifier import build_alert_channel, build_notifier
from modules.store import JsonFileStore

logger = logging.getLogger("medsync.main")


def build_tracker() -> MedicationTracker:
    schedule_config = ScheduleConfig()
    notify_config = NotificationConfig()
    dispatcher = NotificationDispatcher(
        notifier=build_notifier(notify_config),
        alert_channel=build_alert_channel(notify_config),
        enabled=notify_config.enabled,
        snooze_minutes=schedule_config.snooze_minutes,
    )
    tracker = MedicationTracker(
        store=JsonFileStore(StorageConfig().data_dir),
        dispatcher=dispatcher,
        schedule_config=schedule_config,
    )
    tracker.load()
    return tracker


def run(tracker: MedicationTracker, serve: bool = True) -> None:
    scheduler = Scheduler(tracker.tick, poll_interval=tracker.machine.config.tick_interval)
    scheduler.start()
    try:
        if serve:
            from website.server import create_app

            server_config = ServerConfig()
            create_app(tracker).run(host=server_config.host, port=server_config.port)
        else:
            while True:
                time.sleep(1.0)
    except KeyboardInterrupt:
        pass
    finally:
        scheduler.stop()
        tracker.close()


def main():
    try:
        run(build_tracker(), serve="--headless" not in sys.argv)
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
