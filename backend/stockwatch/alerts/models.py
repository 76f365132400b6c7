"""Data models for alert rules and trigger events."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from ..market.models import PriceSnapshot


class AlertType(str, Enum):
    PRICE = "price"
    VOLUME = "volume"
    PERCENT_CHANGE = "percent-change"
    TECHNICAL = "technical"


class AlertCondition(str, Enum):
    ABOVE = "above"
    BELOW = "below"
    EQUALS = "equals"
    PERCENT_CHANGE_UP = "percent-change-up"
    PERCENT_CHANGE_DOWN = "percent-change-down"
    VOLUME_SPIKE = "volume-spike"
    VOLUME_DROP = "volume-drop"
    RSI_OVERBOUGHT = "rsi-overbought"
    RSI_OVERSOLD = "rsi-oversold"
    NEW_HIGH = "new-high"
    NEW_LOW = "new-low"


class Frequency(str, Enum):
    ONCE = "once"
    DAILY = "daily"
    ALWAYS = "always"


class Channel(str, Enum):
    EMAIL = "email"
    PUSH = "push"
    SMS = "sms"


@dataclass(frozen=True)
class Channels:
    email: bool = True
    push: bool = True
    sms: bool = False

    def enabled(self) -> list[Channel]:
        return [c for c in Channel if getattr(self, c.value)]


@dataclass(frozen=True)
class AlertSettings:
    frequency: Frequency = Frequency.ONCE
    cooldown_minutes: float | None = 60
    expires_at: datetime | None = None
    disable_after_trigger: bool = False
    channels: Channels = field(default_factory=Channels)


@dataclass(frozen=True)
class VolumeParams:
    multiplier: float | None = None  # e.g. 2.0 for 2x average volume
    period: int | None = None  # averaging window, days


@dataclass(frozen=True)
class TechnicalParams:
    indicator: str | None = None
    period: int | None = None
    threshold: float | None = None


@dataclass(frozen=True)
class AlertOwner:
    """The rule owner and their account-level notification preferences."""

    id: str
    email: str = ""
    first_name: str = ""
    email_alerts_enabled: bool = True
    push_alerts_enabled: bool = True


@dataclass(frozen=True)
class AlertRule:
    """A user-defined trigger rule.

    Rules are values: state changes (triggering, deactivation) produce a new
    rule via dataclasses.replace, and the working set swaps the new value in.
    `condition` is kept as a plain string so that rules carrying conditions
    this engine does not evaluate still load (and never match).
    """

    id: str
    symbol: str
    condition: str
    owner: AlertOwner
    type: AlertType = AlertType.PRICE
    value: float | None = None
    message: str | None = None
    is_active: bool = True
    triggered: bool = False
    triggered_at: datetime | None = None
    triggered_price: float | None = None
    trigger_count: int = 0
    last_triggered: datetime | None = None
    settings: AlertSettings = field(default_factory=AlertSettings)
    priority: str = "medium"
    volume_params: VolumeParams | None = None
    technical_params: TechnicalParams | None = None


@dataclass(frozen=True)
class TriggerEvent:
    """A ready rule matched the latest snapshot. Consumed once by the dispatcher."""

    rule_id: str
    symbol: str
    snapshot: PriceSnapshot
    observed_at: datetime
    rule: AlertRule
