"""Notification Service - Event publishing to the notification collaborator

Delivery itself (email, in-app, chat) belongs to the collaborator. The
engine hands over WorkflowEvents; the outbox publisher stores them for an
asynchronous delivery worker.
"""
from abc import ABC, abstractmethod
from threading import Lock
from typing import List, Optional, TYPE_CHECKING

from ..domain.enums import NotificationStatus, WorkflowEventType
from ..domain.models import NotificationOutbox, WorkflowEvent
from ..utils.idgen import generate_notification_id
from ..utils.time import utc_now
from ..utils.logger import get_logger

if TYPE_CHECKING:
    from ..repositories.notification_repo import NotificationRepository

logger = get_logger(__name__)


class NotificationPublisher(ABC):
    """Fire-and-forget event sink"""

    @abstractmethod
    def publish(self, event: WorkflowEvent) -> None:
        """Hand an event over for delivery"""


class RecordingPublisher(NotificationPublisher):
    """Keeps published events in memory (local runs and tests)"""

    def __init__(self):
        self._lock = Lock()
        self._events: List[WorkflowEvent] = []

    def publish(self, event: WorkflowEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> List[WorkflowEvent]:
        with self._lock:
            return list(self._events)

    def of_type(self, event_type: WorkflowEventType, instance_id: Optional[str] = None) -> List[WorkflowEvent]:
        return [
            e for e in self.events
            if e.type == event_type and (instance_id is None or e.instance_id == instance_id)
        ]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


class OutboxNotificationPublisher(NotificationPublisher):
    """
    Writes each event to the notification outbox

    Notifications are stored in outbox and sent asynchronously by the
    delivery worker.
    """

    def __init__(self, repo: Optional["NotificationRepository"] = None):
        if repo is None:
            from ..repositories.notification_repo import NotificationRepository
            repo = NotificationRepository()
        self.repo = repo

    def publish(self, event: WorkflowEvent) -> None:
        notification = NotificationOutbox(
            notification_id=generate_notification_id(),
            event=event,
            status=NotificationStatus.PENDING,
            created_at=utc_now()
        )
        self.repo.create_notification(notification)
