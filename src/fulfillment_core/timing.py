"""Clock and preparation-time helpers."""

from datetime import datetime, timedelta, timezone

from kitchen_base.settings import Settings, get_settings
from fulfillment_core.contracts.types import OrderType

DEFAULT_PREP_SECONDS = 10.0


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def prep_duration(order_type: OrderType | str, settings: Settings | None = None) -> timedelta:
    """Fixed preparation time for an order type."""
    settings = settings or get_settings()
    seconds = {
        OrderType.DINE_IN.value: settings.PREP_TIME_DINE_IN,
        OrderType.TAKEOUT.value: settings.PREP_TIME_TAKEOUT,
        OrderType.DELIVERY.value: settings.PREP_TIME_DELIVERY,
    }.get(str(order_type), DEFAULT_PREP_SECONDS)
    return timedelta(seconds=seconds)
