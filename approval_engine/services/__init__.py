"""Service modules - Collaborators and business services"""
from .directory_service import Directory, StaticDirectory, HttpDirectoryService
from .notification_service import NotificationPublisher, RecordingPublisher, OutboxNotificationPublisher

__all__ = [
    "Directory",
    "StaticDirectory",
    "HttpDirectoryService",
    "NotificationPublisher",
    "RecordingPublisher",
    "OutboxNotificationPublisher",
]
