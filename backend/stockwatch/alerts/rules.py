"""Readiness policy, condition semantics and message templates for alert rules.

Every function here is pure: no clock, no I/O. Callers pass `now` in the
engine's timezone; "same calendar day" is decided in that timezone.

Conditions fail closed. A rule whose condition needs an input the snapshot
does not carry (no average volume, no RSI, no 52-week bounds) simply does not
match, and an unknown condition never matches.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from ..market.models import PriceSnapshot
from .models import AlertCondition, AlertRule, Frequency

DEFAULT_COOLDOWN_MINUTES = 60
RSI_OVERBOUGHT_DEFAULT = 70.0
RSI_OVERSOLD_DEFAULT = 30.0
EQUALS_TOLERANCE = 0.01


def _local(moment: datetime, now: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=now.tzinfo)
    return moment.astimezone(now.tzinfo)


def is_expired(rule: AlertRule, now: datetime) -> bool:
    expires_at = rule.settings.expires_at
    return expires_at is not None and _local(expires_at, now) <= now


def is_ready(rule: AlertRule, now: datetime) -> bool:
    """Frequency and cooldown policy: may this rule fire at `now`?"""
    settings = rule.settings

    if settings.disable_after_trigger and rule.triggered:
        return False

    if settings.frequency == Frequency.ONCE and rule.triggered:
        return False

    if rule.last_triggered is not None:
        last = _local(rule.last_triggered, now)

        if settings.frequency == Frequency.DAILY and last.date() == now.date():
            return False

        cooldown = settings.cooldown_minutes
        if cooldown is None:
            cooldown = DEFAULT_COOLDOWN_MINUTES
        if now < last + timedelta(minutes=cooldown):
            return False

    return True


def is_eligible(rule: AlertRule, now: datetime) -> bool:
    """Active, unexpired and ready."""
    return rule.is_active and not is_expired(rule, now) and is_ready(rule, now)


def _number(value) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def matches(rule: AlertRule, snapshot: PriceSnapshot) -> bool:
    """Does `snapshot` satisfy the rule's condition?"""
    price = _number(snapshot.current_price)
    if price is None:
        return False
    value = _number(rule.value)
    previous_close = _number(snapshot.previous_close)
    condition = rule.condition

    if condition == AlertCondition.ABOVE:
        return value is not None and price > value

    if condition == AlertCondition.BELOW:
        return value is not None and price < value

    if condition == AlertCondition.EQUALS:
        return value is not None and abs(price - value) < value * EQUALS_TOLERANCE

    if condition == AlertCondition.PERCENT_CHANGE_UP:
        if value is None or not previous_close:
            return False
        return (price - previous_close) / previous_close * 100 >= value

    if condition == AlertCondition.PERCENT_CHANGE_DOWN:
        if value is None or not previous_close:
            return False
        return (previous_close - price) / previous_close * 100 >= value

    if condition in (AlertCondition.VOLUME_SPIKE, AlertCondition.VOLUME_DROP):
        multiplier = _number(rule.volume_params.multiplier) if rule.volume_params else None
        volume = _number(snapshot.volume)
        average = _number(snapshot.average_volume)
        if not multiplier or not average or volume is None:
            return False
        if condition == AlertCondition.VOLUME_SPIKE:
            return volume >= average * multiplier
        return volume <= average / multiplier

    if condition in (AlertCondition.RSI_OVERBOUGHT, AlertCondition.RSI_OVERSOLD):
        rsi = _number(snapshot.technical.rsi) if snapshot.technical else None
        if rsi is None:
            return False
        threshold = _number(rule.technical_params.threshold) if rule.technical_params else None
        if condition == AlertCondition.RSI_OVERBOUGHT:
            return rsi >= (threshold if threshold is not None else RSI_OVERBOUGHT_DEFAULT)
        return rsi <= (threshold if threshold is not None else RSI_OVERSOLD_DEFAULT)

    if condition == AlertCondition.NEW_HIGH:
        high = _number(snapshot.week52_high)
        return high is not None and price >= high

    if condition == AlertCondition.NEW_LOW:
        low = _number(snapshot.week52_low)
        return low is not None and price <= low

    return False


def _amount(value: float | None) -> str:
    return f"{value:,.0f}" if value is not None else "n/a"


def render_message(rule: AlertRule, snapshot: PriceSnapshot, currency: str = "VND") -> str:
    """Human-readable notification text. A custom rule message wins."""
    if rule.message:
        return rule.message

    symbol = rule.symbol
    snap = snapshot.with_derived_fields()
    price = _amount(snap.current_price)
    change = snap.day_change or 0.0
    change_percent = snap.day_change_percent or 0.0
    condition = rule.condition

    if condition == AlertCondition.ABOVE:
        return f"{symbol} has reached {price} {currency} (above your target of {_amount(rule.value)} {currency})"
    if condition == AlertCondition.BELOW:
        return f"{symbol} has dropped to {price} {currency} (below your target of {_amount(rule.value)} {currency})"
    if condition == AlertCondition.EQUALS:
        return f"{symbol} is trading at {price} {currency}, within 1% of your target of {_amount(rule.value)} {currency}"
    if condition == AlertCondition.PERCENT_CHANGE_UP:
        sign = "+" if change > 0 else ""
        return f"{symbol} is up {change_percent:.2f}% today ({sign}{change:,.0f} {currency})"
    if condition == AlertCondition.PERCENT_CHANGE_DOWN:
        return f"{symbol} is down {abs(change_percent):.2f}% today ({change:,.0f} {currency})"
    if condition in (AlertCondition.VOLUME_SPIKE, AlertCondition.VOLUME_DROP):
        multiplier = rule.volume_params.multiplier if rule.volume_params else None
        volume_m = (snap.volume or 0) / 1_000_000
        kind = "spike" if condition == AlertCondition.VOLUME_SPIKE else "drop"
        return f"{symbol} volume {kind} detected: {volume_m:.1f}M shares ({multiplier}x average)"
    if condition in (AlertCondition.RSI_OVERBOUGHT, AlertCondition.RSI_OVERSOLD):
        rsi = snap.technical.rsi if snap.technical else None
        state = "overbought" if condition == AlertCondition.RSI_OVERBOUGHT else "oversold"
        if rsi is None:
            return f"{symbol} RSI is {state} (price {price} {currency})"
        return f"{symbol} RSI is {state} at {rsi:.1f} (price {price} {currency})"
    if condition == AlertCondition.NEW_HIGH:
        return f"{symbol} has reached a new 52-week high: {price} {currency}"
    if condition == AlertCondition.NEW_LOW:
        return f"{symbol} has reached a new 52-week low: {price} {currency}"
    return f"Alert triggered for {symbol} at {price} {currency}"
