"""
Actions Module
Reminder decisions and dose state derivation
"""

from .reminder_engine import (
    ReminderEvaluator,
    FireDecision,
    DecisionReason,
    ReminderState,
    DoseState,
    DoseSlot,
    evaluate_interval,
    reminder_state,
    dose_state,
    missed_deadline,
    format_message,
    REMINDER_TEMPLATES
)


__all__ = [
    # Reminder Engine
    "ReminderEvaluator",
    "FireDecision",
    "DecisionReason",
    "ReminderState",
    "DoseState",
    "DoseSlot",
    "evaluate_interval",
    "reminder_state",
    "dose_state",
    "missed_deadline",
    "format_message",
    "REMINDER_TEMPLATES",
]
