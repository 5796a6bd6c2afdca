"""Services package."""

from fincontrol.services.notifications import (
    LatestNotificationSink,
    LoggingNotificationSink,
    Notification,
    NotificationSeverity,
    NotificationSink,
)
from fincontrol.services.storage import (
    AuditStorageInterface,
    BatchCommitError,
    ConnectionError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRecordStore,
    InMemoryRecordStore,
    NotFoundError,
    RecordStoreInterface,
    RemoteOperation,
    StorageError,
)

__all__ = [
    # Notifications
    "LatestNotificationSink",
    "LoggingNotificationSink",
    "Notification",
    "NotificationSeverity",
    "NotificationSink",
    # Storage services
    "AuditStorageInterface",
    "BatchCommitError",
    "ConnectionError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsRecordStore",
    "InMemoryRecordStore",
    "NotFoundError",
    "RecordStoreInterface",
    "RemoteOperation",
    "StorageError",
]
