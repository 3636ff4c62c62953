"""
Output periods and selection of the input timesteps inside each period.

A :class:`Timespan` defines ``count`` evenly spaced output periods. Input
timestamps need not be evenly spaced: each period simply takes the
timestamps ``t`` with ``start <= t < end``. A timestamp falling exactly on a
period boundary therefore belongs to the later period only.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import List, Tuple

import numpy as np
import pandas as pd

from growthmaps.core.errors import ConfigurationError


def in_window(start, end, timestamps) -> np.ndarray:
    """
    Boolean mask of ``timestamps`` inside the half-open ``[start, end)``.

    Parameters
    ----------
    start, end : datetime-like
        Window bounds; ``start`` is included, ``end`` is not.
    timestamps : sequence of datetime-like
        Candidate timestamps, in any order.

    Returns
    -------
    ndarray of bool
        One entry per timestamp.
    """
    ts = pd.DatetimeIndex(timestamps)
    return np.asarray((ts >= pd.Timestamp(start)) & (ts < pd.Timestamp(end)))


def select_window(start, end, timestamps) -> pd.DatetimeIndex:
    """
    Timestamps inside ``[start, end)``, in their original order.

    An empty index is returned when nothing falls inside the window.
    """
    ts = pd.DatetimeIndex(timestamps)
    return ts[in_window(start, end, ts)]


def _scale_period(period, n: int):
    # DateOffset kwds are scaled rather than applied n times, so that
    # month steps from the 31st land on month ends instead of drifting.
    if n == 0:
        return pd.Timedelta(0)
    if isinstance(period, pd.Timedelta):
        return period * n
    kwds = dict(period.kwds)
    if type(period) is pd.DateOffset and kwds:
        return pd.DateOffset(**{k: v * n * period.n for k, v in kwds.items()})
    return period * n


@dataclass(frozen=True)
class Timespan:
    """
    Evenly spaced output periods.

    Parameters
    ----------
    start : datetime-like
        Start of the first period.
    period : pandas.DateOffset, pandas.Timedelta, datetime.timedelta or str
        Length of each period. Calendar periods such as months must be
        given as a ``DateOffset`` (e.g. ``pd.DateOffset(months=1)``);
        strings are parsed as fixed ``Timedelta`` lengths (e.g. ``"10D"``).
    count : int
        Number of periods.

    Raises
    ------
    ConfigurationError
        If ``count < 1`` or ``period`` is not strictly positive.

    Examples
    --------
    >>> ts = Timespan("2016-01-03", pd.DateOffset(months=1), 4)
    >>> ts.period_bounds(1)
    (Timestamp('2016-02-03 00:00:00'), Timestamp('2016-03-03 00:00:00'))
    """

    start: pd.Timestamp
    period: pd.DateOffset | pd.Timedelta
    count: int

    def __post_init__(self):
        start = pd.Timestamp(self.start)
        period = self.period
        if isinstance(period, (str, timedelta)):
            period = pd.Timedelta(period)
        if not isinstance(period, (pd.DateOffset, pd.Timedelta)):
            raise ConfigurationError(
                f"period must be a DateOffset or Timedelta, "
                f"got {type(period).__name__}."
            )
        if isinstance(self.count, bool) or int(self.count) != self.count:
            raise ConfigurationError("count must be an integer.")
        if self.count < 1:
            raise ConfigurationError(
                f"count must be at least 1, got {self.count}."
            )
        if not start + period > start:
            raise ConfigurationError(
                f"period must be positive, got {period!r}."
            )
        object.__setattr__(self, "start", start)
        object.__setattr__(self, "period", period)
        object.__setattr__(self, "count", int(self.count))

    @classmethod
    def monthly(cls, start, count: int) -> "Timespan":
        """Periods of one calendar month."""
        return cls(start, pd.DateOffset(months=1), count)

    def __len__(self) -> int:
        return self.count

    def period_start(self, p: int) -> pd.Timestamp:
        """Start of period ``p`` (zero-based)."""
        if not 0 <= p < self.count:
            raise IndexError(f"Period {p} outside 0..{self.count - 1}.")
        return self.start + _scale_period(self.period, p)

    def period_bounds(self, p: int) -> Tuple[pd.Timestamp, pd.Timestamp]:
        """
        Half-open ``(start, end)`` of period ``p``.

        The end is the start of period ``p + 1``, so consecutive periods
        tile time without gaps even when month lengths differ.
        """
        start = self.period_start(p)
        return start, self.start + _scale_period(self.period, p + 1)

    def bounds(self) -> List[Tuple[pd.Timestamp, pd.Timestamp]]:
        return [self.period_bounds(p) for p in range(self.count)]

    @property
    def starts(self) -> pd.DatetimeIndex:
        """Period starts; the time index of the output."""
        return pd.DatetimeIndex(
            [self.period_start(p) for p in range(self.count)]
        )

    def describe_period(self) -> str:
        """Human readable period length, e.g. ``"1 month"``."""
        period = self.period
        if isinstance(period, pd.Timedelta):
            if period % pd.Timedelta(days=1) == pd.Timedelta(0):
                days = period.days
                return f"{days} day" + ("" if days == 1 else "s")
            return str(period)
        if type(period) is pd.DateOffset and period.kwds:
            parts = []
            for unit, value in period.kwds.items():
                value *= period.n
                name = unit[:-1] if unit.endswith("s") else unit
                parts.append(f"{value} {name}" + ("" if value == 1 else "s"))
            return " ".join(parts)
        return period.freqstr
