import logging
from datetime import date
from typing import Optional

import pandas as pd

from config import TIME_WINDOWS


def _as_naive(ts: pd.Timestamp) -> pd.Timestamp:
    """Drops timezone info while keeping the wall-clock reading."""
    return ts.tz_localize(None) if ts.tzinfo is not None else ts


def get_now() -> pd.Timestamp:
    """
    Returns the current wall-clock time as a naive Timestamp.

    Timeline buckets are naive midnights, so "now" stays naive as well and
    both convert to epoch milliseconds the same way.
    """
    return _as_naive(pd.Timestamp.now())


def to_midnight(day) -> pd.Timestamp:
    """Normalizes a date, datetime or Timestamp to midnight of that day."""
    return _as_naive(pd.Timestamp(day)).normalize()


def to_epoch_ms(ts) -> int:
    """Converts a naive Timestamp to integer epoch milliseconds."""
    return int(_as_naive(pd.Timestamp(ts)).value // 1_000_000)


def get_window_cutoff(window: str, now: Optional[pd.Timestamp] = None) -> Optional[pd.Timestamp]:
    """
    Returns the earliest instant kept for a timeline window.

    - "7d": seven days before now
    - "1m" / "3m": one / three calendar months before now
    - "ytd": January 1st of the current year
    - "1y": one calendar year before now
    - "all": None (no cutoff)

    Raises:
        ValueError: if `window` is not one of config.TIME_WINDOWS.
    """
    if window not in TIME_WINDOWS:
        raise ValueError(f"Unknown time window '{window}'. Expected one of {TIME_WINDOWS}.")
    now = get_now() if now is None else _as_naive(pd.Timestamp(now))

    if window == "7d":
        cutoff = now - pd.Timedelta(days=7)
    elif window == "1m":
        cutoff = now - pd.DateOffset(months=1)
    elif window == "3m":
        cutoff = now - pd.DateOffset(months=3)
    elif window == "ytd":
        cutoff = pd.Timestamp(date(now.year, 1, 1))
    elif window == "1y":
        cutoff = now - pd.DateOffset(years=1)
    else:
        return None

    logging.debug(f"Window '{window}' cutoff: {cutoff}")
    return cutoff
