import os
import sys
from datetime import date

import pandas as pd
import pytest

src_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if src_dir not in sys.path:
    sys.path.insert(0, src_dir)

from utils_time import get_now, get_window_cutoff, to_epoch_ms, to_midnight

NOW = pd.Timestamp("2024-03-31 18:45:00")


@pytest.mark.parametrize(
    "window, expected",
    [
        ("7d", pd.Timestamp("2024-03-24 18:45:00")),
        ("1m", pd.Timestamp("2024-02-29 18:45:00")),
        ("3m", pd.Timestamp("2023-12-31 18:45:00")),
        ("ytd", pd.Timestamp("2024-01-01")),
        ("1y", pd.Timestamp("2023-03-31 18:45:00")),
        ("all", None),
    ],
)
def test_get_window_cutoff(window, expected):
    assert get_window_cutoff(window, NOW) == expected


def test_get_window_cutoff_unknown_window():
    with pytest.raises(ValueError):
        get_window_cutoff("forever", NOW)


def test_get_window_cutoff_drops_timezone():
    aware = pd.Timestamp("2024-03-31 18:45:00", tz="UTC")
    assert get_window_cutoff("7d", aware).tzinfo is None


def test_to_midnight_and_epoch_ms():
    assert to_midnight(date(1970, 1, 2)) == pd.Timestamp("1970-01-02")
    assert to_midnight(pd.Timestamp("2024-01-01 13:00")) == pd.Timestamp("2024-01-01")
    assert to_epoch_ms(pd.Timestamp("1970-01-02")) == 86_400_000


def test_get_now_is_naive():
    assert get_now().tzinfo is None
