"""
Time Quantizer
Release-bucket and ENIntervalNumber arithmetic for exposure keys

All instants are timezone-aware UTC datetimes. Bucket boundaries are
multiples of the bucket width counted from the Unix epoch, so every process
using the same width agrees on them.
"""

from datetime import datetime, timedelta, timezone

#: Length of one ENInterval (rolling start number unit)
INTERVAL_LENGTH = timedelta(minutes=10)

#: Smallest time unit subtracted from a bucket boundary to get received_at
TIME_UNIT = timedelta(milliseconds=1)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_ONE_DAY = timedelta(days=1)


def ensure_utc(instant: datetime) -> datetime:
    """Return instant as an aware UTC datetime (naive values are read as UTC)."""
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


def _millis_since_epoch(instant: datetime) -> int:
    return (ensure_utc(instant) - EPOCH) // TIME_UNIT


def _width_millis(bucket_width: timedelta) -> int:
    width = bucket_width // TIME_UNIT
    if width <= 0:
        raise ValueError(f"Bucket width must be positive, got {bucket_width}")
    return width


def bucket_start(instant: datetime, bucket_width: timedelta) -> datetime:
    """
    Largest bucket boundary that is less than or equal to instant.

    Args:
        instant: Point in time
        bucket_width: Release bucket duration

    Returns:
        Start of the bucket containing instant
    """
    width = _width_millis(bucket_width)
    millis = _millis_since_epoch(instant)
    return EPOCH + (millis // width) * width * TIME_UNIT


def next_bucket_end(instant: datetime, bucket_width: timedelta) -> datetime:
    """
    Smallest bucket boundary strictly after instant, minus one TIME_UNIT.

    This is the canonical received_at of an upload: the true upload instant
    cannot be recovered to better than bucket_width resolution.
    """
    width = _width_millis(bucket_width)
    millis = _millis_since_epoch(instant)
    next_boundary = (millis // width + 1) * width
    return EPOCH + next_boundary * TIME_UNIT - TIME_UNIT


def to_interval_number(instant: datetime) -> int:
    """Number of 10-minute intervals since the Unix epoch (the wire rolling start number)."""
    return (ensure_utc(instant) - EPOCH) // INTERVAL_LENGTH


def interval_to_instant(interval_number: int) -> datetime:
    """Instant at which the given ENInterval starts."""
    return EPOCH + interval_number * INTERVAL_LENGTH


def expiry_of(key, time_skew: timedelta) -> datetime:
    """
    Instant after which a key is no longer accepted by any client.

    Args:
        key: Anything with rolling_start_number and rolling_period
        time_skew: Client/server clock drift tolerance

    Returns:
        End of the key's rolling period plus time_skew
    """
    return interval_to_instant(key.rolling_start_number + key.rolling_period) + time_skew


def day_start(instant: datetime) -> datetime:
    """UTC midnight of the day containing instant."""
    return bucket_start(instant, _ONE_DAY)


def is_day_start(instant: datetime) -> bool:
    return day_start(instant) == ensure_utc(instant)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
