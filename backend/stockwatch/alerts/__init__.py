"""Alert subsystem.

Public API:
    AlertRule             - Immutable user-defined trigger rule
    TriggerEvent          - A matched rule, consumed once by the dispatcher
    AlertStore            - Persistence port for alert rules
    NotificationSender    - Outbound notification port
    AlertWorkingSet       - In-memory set of rules ready for checking
    AlertEvaluationEngine - Matches rules against cached prices
    DispatchQueue         - Rate-limited consumer of trigger events
"""

from .dispatch import DispatchQueue
from .engine import AlertEvaluationEngine
from .interface import AlertStore, NotificationSender
from .models import (
    AlertCondition,
    AlertOwner,
    AlertRule,
    AlertSettings,
    AlertType,
    Channel,
    Channels,
    Frequency,
    TriggerEvent,
)
from .notifications import ChannelRouter, EmailNotificationSender, LogNotificationSender
from .working_set import AlertWorkingSet

__all__ = [
    "AlertCondition",
    "AlertEvaluationEngine",
    "AlertOwner",
    "AlertRule",
    "AlertSettings",
    "AlertStore",
    "AlertType",
    "AlertWorkingSet",
    "Channel",
    "ChannelRouter",
    "Channels",
    "DispatchQueue",
    "EmailNotificationSender",
    "Frequency",
    "LogNotificationSender",
    "NotificationSender",
    "TriggerEvent",
]
