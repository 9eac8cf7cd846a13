"""
Notification Service Tool
Best-effort dispatch of engine notifications to caller-registered handlers
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional


logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    """Types of notifications"""
    WATER_REMINDER = "water_reminder"
    REFILL_REMINDER = "refill_reminder"


class NotificationPriority(str, Enum):
    """Notification priority levels"""
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


@dataclass
class NotificationRequest:
    """Notification request details"""
    title: str
    body: str
    fire_at: datetime
    notification_type: NotificationType = NotificationType.WATER_REMINDER
    priority: NotificationPriority = NotificationPriority.NORMAL
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "body": self.body,
            "fire_at": self.fire_at.isoformat(),
            "notification_type": self.notification_type.value,
            "priority": self.priority.value,
            "data": self.data,
        }


NotificationHandler = Callable[[NotificationRequest], Any]


class NotificationService:
    """
    Fans a notification out to every registered handler

    Delivery, platform fallback and sound selection belong to the handlers.
    A failing handler is logged and does not stop the others. Sent requests
    are kept in a bounded history for inspection.
    """

    def __init__(self, history_size: int = 100):
        self._handlers: List[NotificationHandler] = []
        self._history: List[NotificationRequest] = []
        self._history_size = history_size

    def register_handler(self, handler: NotificationHandler):
        self._handlers.append(handler)
        logger.info(f"Registered notification handler {getattr(handler, '__name__', handler)!r}")

    def unregister_handler(self, handler: NotificationHandler) -> bool:
        try:
            self._handlers.remove(handler)
            return True
        except ValueError:
            return False

    def notify(
        self,
        title: str,
        body: str,
        fire_at: datetime,
        notification_type: NotificationType = NotificationType.WATER_REMINDER,
        priority: NotificationPriority = NotificationPriority.NORMAL,
        data: Optional[Dict[str, Any]] = None
    ) -> NotificationRequest:
        request = NotificationRequest(
            title=title,
            body=body,
            fire_at=fire_at,
            notification_type=notification_type,
            priority=priority,
            data=data or {},
        )
        self.send(request)
        return request

    def send(self, request: NotificationRequest) -> int:
        """Dispatch to all handlers; returns how many accepted it"""
        self._history.append(request)
        del self._history[:-self._history_size]

        if not self._handlers:
            logger.info(f"Notification (no handlers): {request.title} - {request.body}")
            return 0

        delivered = 0
        for handler in list(self._handlers):
            try:
                handler(request)
                delivered += 1
            except Exception as e:
                logger.error(f"Notification handler failed for '{request.title}': {e}")
        return delivered

    @property
    def history(self) -> List[NotificationRequest]:
        return list(self._history)
