"""
Tools Package
Time arithmetic, schedule bookkeeping and notification dispatch for CareCadence
"""

from .time_of_day import (
    TimeOfDay,
    Window,
    ParseError,
    parse_time,
    format_time,
    minute_gap,
    to_local_naive,
    MINUTES_PER_DAY
)

from .schedule_registry import (
    ScheduleRegistry,
    IntervalSchedule,
    DoseSchedule,
    ScheduleCheck,
    ConflictReport,
    ConflictWarning,
    ValidationError,
    ScheduleNotFound
)

from .notification_service import (
    NotificationService,
    NotificationPriority,
    NotificationType,
    NotificationRequest
)

__all__ = [
    # Time of day
    "TimeOfDay",
    "Window",
    "ParseError",
    "parse_time",
    "format_time",
    "minute_gap",
    "to_local_naive",
    "MINUTES_PER_DAY",

    # Schedule Registry
    "ScheduleRegistry",
    "IntervalSchedule",
    "DoseSchedule",
    "ScheduleCheck",
    "ConflictReport",
    "ConflictWarning",
    "ValidationError",
    "ScheduleNotFound",

    # Notification Service
    "NotificationService",
    "NotificationPriority",
    "NotificationType",
    "NotificationRequest"
]
