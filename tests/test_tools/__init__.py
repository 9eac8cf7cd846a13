"""
Test Tools Package
Tests for the tools module (time of day, schedule registry, notifications)
"""

__all__ = [
    "test_time_of_day",
    "test_schedule_registry",
    "test_notification_service",
]
