# modules/__init__.py
from .store import Store, JsonFileStore, MemoryStore, BackgroundWriter
from .notifier import Notifier, ConsoleNotifier, WebhookNotifier, AlertChannel, LoggingAlertChannel, WebhookAlertChannel
from .notification_dispatcher import NotificationDispatcher
