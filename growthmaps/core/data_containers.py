"""
Core containers for raster series, the working stack buffer, and outputs.

This module defines the data source interface consumed by the aggregation
engine, an in-memory implementation of it, the reusable buffer each run
copies timesteps into, and the container for growth-rate outputs.

Classes
-------
RasterSeries
    Abstract, time-ordered sequence of stacks (key -> 2-D array) that can be
    read one timestep at a time.
MemorySeries
    ``RasterSeries`` holding its stacks in memory.
StackBuffer
    Preallocated stack restricted to the keys a run needs, overwritten in
    place for every timestep.
GrowthArray
    Output container: mean growth rate per cell and period, ``(H, W, T)``.

Functions
---------
validity_mask
    Multiplicative mask with ``1`` at valid cells and ``NaN`` elsewhere.

Notes
-----
- Stacks are plain mappings of key to 2-D NumPy arrays of shape ``(H, W)``.
- Outputs keep time as the last spatial-adjacent axis, ``(H, W, T)``, the
  same layout used for every time-resolved field in this package.
- Series never hand out arrays for writing: the engine copies into a
  :class:`StackBuffer`, so source arrays are left untouched.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from growthmaps.core.errors import ConfigurationError, DataIntegrityError
from growthmaps.core.periods import in_window

Array = np.ndarray


def _float_dtype(dtype) -> np.dtype:
    dtype = np.dtype(dtype)
    return dtype if np.issubdtype(dtype, np.floating) else np.dtype(float)


# -------------------------
# Data sources
# -------------------------


class RasterSeries(ABC):
    """
    Time-ordered sequence of stacks, read lazily one timestep at a time.

    Subclasses provide :attr:`timestamps` (sorted), :meth:`keys` and
    :meth:`read`. Everything else is derived.

    Attributes
    ----------
    missingval : float
        Value marking missing cells in the raw data. ``NaN`` cells are always
        treated as missing.
    coords : dict of {str: ndarray}
        Optional spatial coordinates (e.g. ``lat``, ``lon``) copied onto
        outputs.
    """

    missingval: float = np.nan
    coords: Dict[str, Array] = {}

    @property
    @abstractmethod
    def timestamps(self) -> pd.DatetimeIndex:
        """Sorted timestamps, one per stack."""

    @abstractmethod
    def keys(self) -> Tuple[str, ...]:
        """Keys available in the series."""

    @abstractmethod
    def read(
        self, i: int, keys: Optional[Sequence[str]] = None
    ) -> Dict[str, Array]:
        """
        Load the stack at position ``i``.

        Parameters
        ----------
        i : int
            Position in :attr:`timestamps`.
        keys : sequence of str, optional
            Restrict loading to these keys. Keys absent from the stack are
            left out of the result rather than raising.

        Returns
        -------
        dict of {str: ndarray}
            2-D arrays keyed by layer key.
        """

    def __len__(self) -> int:
        return len(self.timestamps)

    def first(self, keys: Optional[Sequence[str]] = None) -> Dict[str, Array]:
        """The first stack in time."""
        if len(self) == 0:
            raise IndexError("Series has no timesteps.")
        return self.read(0, keys)

    def stacks_in_window(
        self, start, end, keys: Optional[Sequence[str]] = None
    ) -> Iterator[Tuple[pd.Timestamp, Dict[str, Array]]]:
        """
        Yield ``(timestamp, stack)`` for timestamps in ``[start, end)``.

        Stacks are read lazily, in time order.

        Raises
        ------
        DataIntegrityError
            If a stack cannot be read.
        """
        ts = self.timestamps
        for i in np.flatnonzero(in_window(start, end, ts)):
            try:
                stack = self.read(int(i), keys)
            except (OSError, KeyError, ValueError) as e:
                raise DataIntegrityError(
                    f"Failed to read stack at {ts[i]}: {e}"
                ) from e
            yield ts[i], stack


class MemorySeries(RasterSeries):
    """
    A raster series held in memory.

    Parameters
    ----------
    timestamps : sequence of datetime-like
        One timestamp per stack, in any order; stacks are sorted by time
        (stable for equal timestamps).
    stacks : sequence of mapping of {str: array-like}
        2-D arrays for each timestep. Arrays are referenced, not copied.
    missingval : float, default=NaN
        Raw value marking missing cells.
    coords : mapping of {str: array-like}, optional
        Spatial coordinates passed on to outputs.

    Raises
    ------
    ConfigurationError
        If the numbers of timestamps and stacks differ, or an array is not
        2-D.
    """

    def __init__(
        self,
        timestamps,
        stacks: Sequence[Mapping],
        missingval: float = np.nan,
        coords: Optional[Mapping] = None,
    ):
        ts = pd.DatetimeIndex(timestamps)
        stacks = list(stacks)
        if len(ts) != len(stacks):
            raise ConfigurationError(
                f"Got {len(ts)} timestamps for {len(stacks)} stacks."
            )
        prepared = []
        for stack in stacks:
            arrays = {k: np.asarray(v) for k, v in stack.items()}
            for k, a in arrays.items():
                if a.ndim != 2:
                    raise ConfigurationError(
                        f"Layer '{k}' must be 2D (H, W), got shape {a.shape}."
                    )
            prepared.append(arrays)
        order = np.argsort(ts.values, kind="stable")
        self._timestamps = ts[order]
        self._stacks = [prepared[i] for i in order]
        self.missingval = missingval
        self.coords = {k: np.asarray(v) for k, v in (coords or {}).items()}

    @classmethod
    def from_arrays(
        cls, timestamps, arrays: Mapping[str, Array | Sequence[Array]], **kw
    ) -> "MemorySeries":
        """
        Build a series from per-key data.

        Parameters
        ----------
        timestamps : sequence of datetime-like
            Length ``T``.
        arrays : mapping of {str: ndarray or sequence of ndarray}
            For each key, either a ``(H, W, T)`` array or ``T`` arrays of
            shape ``(H, W)``.
        **kw
            Passed to the constructor.
        """
        n = len(timestamps)
        per_key = {}
        for k, v in arrays.items():
            if isinstance(v, np.ndarray) and v.ndim == 3:
                per_key[k] = [v[:, :, t] for t in range(v.shape[2])]
            else:
                per_key[k] = [np.asarray(a) for a in v]
            if len(per_key[k]) != n:
                raise ConfigurationError(
                    f"Layer '{k}' has {len(per_key[k])} timesteps, "
                    f"expected {n}."
                )
        stacks = [{k: per_key[k][t] for k in per_key} for t in range(n)]
        return cls(timestamps, stacks, **kw)

    @property
    def timestamps(self) -> pd.DatetimeIndex:
        return self._timestamps

    def keys(self) -> Tuple[str, ...]:
        return tuple(dict.fromkeys(k for s in self._stacks for k in s))

    def read(
        self, i: int, keys: Optional[Sequence[str]] = None
    ) -> Dict[str, Array]:
        stack = self._stacks[i]
        if keys is None:
            return dict(stack)
        return {k: stack[k] for k in keys if k in stack}


# -------------------------
# Working buffer
# -------------------------


class StackBuffer(Mapping):
    """
    Reusable in-memory stack for the keys a run requires.

    Allocated once from a template stack and overwritten in place with
    :meth:`copy_from`; its arrays are never resized. Integer inputs are held
    as ``float``.

    Parameters
    ----------
    template : mapping of {str: ndarray}
        Stack whose arrays define shape and dtype (usually the first stack
        of the series). Values are copied.
    keys : sequence of str
        Keys to hold.

    Raises
    ------
    DataIntegrityError
        If the template lacks a key or its arrays differ in shape.
    """

    def __init__(self, template: Mapping, keys: Sequence[str]):
        arrays: Dict[str, Array] = {}
        for k in keys:
            if k not in template:
                raise DataIntegrityError(
                    f"First stack is missing required key '{k}'."
                )
            a = np.asarray(template[k])
            arrays[k] = np.array(a, dtype=_float_dtype(a.dtype), copy=True)
        shapes = {a.shape for a in arrays.values()}
        if len(shapes) > 1:
            raise DataIntegrityError(
                f"Required layers differ in shape: {sorted(shapes)}."
            )
        if arrays and next(iter(arrays.values())).ndim != 2:
            raise DataIntegrityError("Required layers must be 2D (H, W).")
        self._arrays = arrays

    def __getitem__(self, key: str) -> Array:
        return self._arrays[key]

    def __iter__(self):
        return iter(self._arrays)

    def __len__(self) -> int:
        return len(self._arrays)

    @property
    def shape(self) -> Tuple[int, ...]:
        return next(iter(self._arrays.values())).shape

    @property
    def dtype(self) -> np.dtype:
        return np.result_type(*self._arrays.values())

    def copy_from(self, stack: Mapping, timestamp=None) -> None:
        """
        Overwrite every held array with the same key from ``stack``.

        Raises
        ------
        DataIntegrityError
            If ``stack`` lacks a held key or has a mismatched shape. Stale
            data from a previous timestep is never silently kept.
        """
        for k, buf in self._arrays.items():
            if k not in stack:
                raise DataIntegrityError(
                    f"Stack at {timestamp} is missing required key '{k}'."
                )
            src = np.asarray(stack[k])
            if src.shape != buf.shape:
                raise DataIntegrityError(
                    f"Layer '{k}' at {timestamp} has shape {src.shape}, "
                    f"expected {buf.shape}."
                )
            np.copyto(buf, src)


def validity_mask(
    stack: Mapping, keys: Sequence[str], missingval: float = np.nan
) -> Array:
    """
    Multiplicative validity mask for a stack.

    A cell is valid when, for every key, its value is neither ``NaN`` nor
    ``missingval``.

    Returns
    -------
    ndarray
        ``1`` at valid cells and ``NaN`` at invalid cells, in the floating
        dtype of the data.
    """
    valid = None
    dtypes = []
    for k in keys:
        a = np.asarray(stack[k])
        ok = np.ones(a.shape, dtype=bool)
        if np.issubdtype(a.dtype, np.floating):
            ok &= ~np.isnan(a)
            dtypes.append(a.dtype)
        if missingval is not None and not np.isnan(missingval):
            ok &= a != missingval
        valid = ok if valid is None else valid & ok
    if valid is None:
        raise ConfigurationError("Cannot build a mask without keys.")
    dtype = np.result_type(*dtypes) if dtypes else np.dtype(float)
    return np.where(valid, 1.0, np.nan).astype(dtype)


# -------------------------
# Outputs
# -------------------------


@dataclass
class GrowthArray:
    """
    Mean growth rate per cell and output period.

    Attributes
    ----------
    data : ndarray, shape (H, W, T) or (H, W, T, ...)
        Growth rates. Missing cells hold ``missingval`` in every period.
    time : pandas.DatetimeIndex, shape (T,)
        Start of each period.
    period : pandas.DateOffset or pandas.Timedelta
        Length of each period.
    name : str
        Output name (the model's name in grouped runs).
    missingval : float
        Missing-value sentinel, ``NaN``.
    coords : dict of {str: ndarray}
        Spatial coordinates inherited from the source series.
    """

    data: Array
    time: pd.DatetimeIndex
    period: object
    name: str = "growthrate"
    missingval: float = np.nan
    coords: Dict[str, Array] = field(default_factory=dict)

    def __post_init__(self):
        self.time = pd.DatetimeIndex(self.time)
        if self.data.ndim < 3 or self.data.shape[2] != len(self.time):
            raise ValueError(
                f"data must be (H, W, T) with T={len(self.time)}, "
                f"got shape {self.data.shape}."
            )

    @property
    def shape(self) -> Tuple[int, ...]:
        return self.data.shape

    def __len__(self) -> int:
        return len(self.time)

    def __getitem__(self, p: int) -> Array:
        """Slice of period ``p`` (zero-based)."""
        return self.data[:, :, p]

    def at(self, timestamp) -> Array:
        """Slice of the period starting exactly at ``timestamp``."""
        return self.data[:, :, self.time.get_loc(pd.Timestamp(timestamp))]
