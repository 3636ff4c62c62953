"""Module to read raster series from, and save growth maps to, HDF5 files."""

from __future__ import annotations

import json
import platform
import subprocess
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

import h5py

import numpy as np
import pandas as pd

from growthmaps.core.data_containers import GrowthArray, RasterSeries

Array = np.ndarray

SERIES_SCHEMA = "growthmaps.series/1"
GROWTH_SCHEMA = "growthmaps.growth/1"


def _git_commit_or_none() -> Optional[str]:
    try:
        return subprocess.check_output(
            ["git", "rev-parse", "HEAD"], text=True, stderr=subprocess.DEVNULL
        ).strip()
    except (OSError, subprocess.CalledProcessError):
        return None


def _suggest_chunks(shape: tuple[int, ...]) -> Optional[tuple[int, ...]]:
    """
    Choose chunk sizes to enable efficient time slicing.

    For 3D (H, W, T): ``(min(H, 64), min(W, 64), min(T, 1))``.
    For 4D (H, W, T, K): ``(min(H, 64), min(W, 64), min(T, 1), K)``.
    For 1D/2D, return ``None`` (let HDF5 pick or store contiguous).

    Parameters
    ----------
    shape : tuple of int
        Dataset shape.

    Returns
    -------
    tuple of int or None
        Suggested chunk shape, or ``None`` if unchunked/automatic.
    """
    ndim = len(shape)
    if 0 in shape:
        return None
    if ndim == 3:
        H, W, T = shape
        return (min(H, 64), min(W, 64), min(T, 1))
    if ndim == 4:
        H, W, T, K = shape
        return (min(H, 64), min(W, 64), min(T, 1), K)
    return None


def _write_dataset(g: h5py.Group, name: str, arr: np.ndarray) -> None:
    arr = np.asarray(arr)
    # Handle datetime64: store epoch nanoseconds int64 (lossless for pandas)
    if np.issubdtype(arr.dtype, np.datetime64):
        arr = arr.astype("datetime64[ns]").astype(np.int64)
        dset = g.create_dataset(name, data=arr)
        dset.attrs["logical_dtype"] = "datetime64[ns]"
        return

    # Everything else stays as-is (float, int, bool)
    dset = g.create_dataset(
        name,
        data=arr,
        compression="gzip",
        compression_opts=4,
        shuffle=True,
        chunks=_suggest_chunks(arr.shape),
    )
    # Helpful shape metadata (humans/tools)
    dset.attrs["shape"] = arr.shape
    dset.attrs["dtype"] = str(arr.dtype)


def _read_times(dset: h5py.Dataset) -> pd.DatetimeIndex:
    arr = dset[...]
    logical = dset.attrs.get("logical_dtype", "")
    if logical.startswith("datetime64"):
        arr = arr.astype(logical)
    return pd.DatetimeIndex(arr)


def _file_meta(schema: str, extra_meta: Optional[Dict[str, Any]]) -> dict:
    meta = {
        "schema": schema,
        "python": platform.python_version(),
        "numpy": np.__version__,
        "git_commit": _git_commit_or_none(),
    }
    if extra_meta:
        meta.update(extra_meta)
    return meta


def _write_attrs(obj, meta: Mapping[str, Any]) -> None:
    for k, v in meta.items():
        obj.attrs[k] = (
            json.dumps(v)
            if isinstance(v, (dict, list))
            else ("" if v is None else v)
        )


def _encode_period(period) -> str:
    if isinstance(period, pd.Timedelta):
        return json.dumps({"timedelta_ns": int(period.value)})
    if type(period) is pd.DateOffset and period.kwds:
        return json.dumps(
            {"dateoffset": {k: v * period.n for k, v in period.kwds.items()}}
        )
    return json.dumps({"freq": period.freqstr})


def _decode_period(text: str):
    spec = json.loads(text)
    if "timedelta_ns" in spec:
        return pd.Timedelta(spec["timedelta_ns"], unit="ns")
    if "dateoffset" in spec:
        return pd.DateOffset(**spec["dateoffset"])
    return pd.tseries.frequencies.to_offset(spec["freq"])


# -------------------------
# Raster series
# -------------------------


def save_series_hdf5(
    path: Path,
    series: RasterSeries,
    keys: Optional[Sequence[str]] = None,
    extra_meta: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Persist a raster series to one HDF5 file.

    Layout::

        /timestamps          int64 epoch nanoseconds, shape (T,)
        /layers/<key>        shape (H, W, T), chunked one timestep deep
        /coords/<name>       optional spatial coordinates

    Stacks are read and written one timestep at a time, so a lazy series
    (e.g. a directory of SMAP files) can be packed without holding it in
    memory.

    Parameters
    ----------
    path : pathlib.Path
        Output file; parent directories are created.
    series : RasterSeries
        Series to write.
    keys : sequence of str, optional
        Keys to keep; defaults to all keys of the series.
    extra_meta : dict, optional
        Extra file-level attributes.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    keys = tuple(series.keys() if keys is None else keys)
    T = len(series)

    with h5py.File(path, "w") as f:
        _write_attrs(f, _file_meta(SERIES_SCHEMA, extra_meta))
        f.attrs["missingval"] = series.missingval
        _write_dataset(f, "timestamps", series.timestamps.values)

        g = f.create_group("layers")
        if T > 0:
            first = series.first(keys)
            dsets = {}
            for k in keys:
                a = np.asarray(first[k])
                shape = a.shape + (T,)
                dsets[k] = g.create_dataset(
                    k,
                    shape=shape,
                    dtype=a.dtype,
                    compression="gzip",
                    compression_opts=4,
                    shuffle=True,
                    chunks=_suggest_chunks(shape),
                )
            for t in range(T):
                stack = first if t == 0 else series.read(t, keys)
                for k in keys:
                    dsets[k][:, :, t] = stack[k]

        if series.coords:
            c = f.create_group("coords")
            for name, arr in series.coords.items():
                _write_dataset(c, name, arr)

    print(f"[ok] Wrote HDF5 series: {path.resolve()}")


class HDF5Series(RasterSeries):
    """
    Lazy raster series backed by a file written with :func:`save_series_hdf5`.

    Only timestamps, keys and coordinates are loaded up front; each
    :meth:`read` opens the file and slices a single timestep of the
    requested layers.

    Parameters
    ----------
    path : pathlib.Path
        HDF5 file.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        with h5py.File(self.path, "r") as f:
            self._timestamps = _read_times(f["timestamps"])
            self._keys = tuple(f["layers"].keys())
            self.missingval = float(f.attrs.get("missingval", np.nan))
            self.coords = (
                {name: ds[...] for name, ds in f["coords"].items()}
                if "coords" in f
                else {}
            )
        if not self._timestamps.is_monotonic_increasing:
            raise ValueError(f"Timestamps in {self.path} are not sorted.")

    @property
    def timestamps(self) -> pd.DatetimeIndex:
        return self._timestamps

    def keys(self) -> Tuple[str, ...]:
        return self._keys

    def read(
        self, i: int, keys: Optional[Sequence[str]] = None
    ) -> Dict[str, Array]:
        keys = self._keys if keys is None else keys
        with h5py.File(self.path, "r") as f:
            g = f["layers"]
            # reads only this time slice of each layer
            return {k: g[k][:, :, i] for k in keys if k in g}


# -------------------------
# Growth maps
# -------------------------


def save_growth_hdf5(
    outputs: GrowthArray | Mapping[str, GrowthArray],
    path: Path,
    extra_meta: Optional[Dict[str, Any]] = None,
) -> None:
    """Persist one or more growth maps to HDF5 with run metadata."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(outputs, GrowthArray):
        outputs = {outputs.name: outputs}

    with h5py.File(path, "w") as f:
        _write_attrs(f, _file_meta(GROWTH_SCHEMA, extra_meta))

        # One group per output
        root = f.create_group("growth")
        for name, out in outputs.items():
            g = root.create_group(name)
            g.attrs["period"] = _encode_period(out.period)
            g.attrs["missingval"] = out.missingval
            _write_dataset(g, "data", out.data)
            _write_dataset(g, "time", out.time.values)
            if out.coords:
                c = g.create_group("coords")
                for cname, arr in out.coords.items():
                    _write_dataset(c, cname, arr)

    print(f"[ok] Wrote HDF5 growth maps: {path.resolve()}")


def load_growth_hdf5(path: Path) -> Dict[str, GrowthArray]:
    """
    Load all growth maps from a file written by :func:`save_growth_hdf5`.

    Returns
    -------
    dict
        Mapping of output name to :class:`GrowthArray`.
    """
    out: Dict[str, GrowthArray] = {}
    with h5py.File(path, "r") as f:
        for name, g in f["growth"].items():
            coords = (
                {cname: ds[...] for cname, ds in g["coords"].items()}
                if "coords" in g
                else {}
            )
            out[name] = GrowthArray(
                data=g["data"][...],
                time=_read_times(g["time"]),
                period=_decode_period(g.attrs["period"]),
                name=name,
                missingval=float(g.attrs["missingval"]),
                coords=coords,
            )
    return out
