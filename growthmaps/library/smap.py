"""
Lazy reader for SMAP L4 soil moisture HDF5 granules.

SMAP Level-4 geophysical files are named like
``SMAP_L4_SM_gph_20160101T013000_Vv4011_001.h5`` and hold one 2-D raster per
variable in the ``Geophysical_Data`` group (e.g. ``surface_temp`` in Kelvin,
``land_fraction_wilting`` as a fraction). Missing cells are ``-9999.0``.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import h5py

import numpy as np
import pandas as pd

from growthmaps.core.data_containers import RasterSeries

Array = np.ndarray

SMAP_PATTERN = re.compile(r"^SMAP_L4_SM_gph_(\d{8}T\d{6})_Vv401[01]_001\.h5$")
SMAP_DATEFORMAT = "%Y%m%dT%H%M%S"
SMAP_MISSINGVAL = -9999.0
SMAP_GROUP = "Geophysical_Data"
SMAP_COORDS = ("cell_lat", "cell_lon")


def smap_filenames(
    data_path: Path, start=None, end=None
) -> Tuple[List[Path], pd.DatetimeIndex]:
    """
    Find SMAP granules in a directory and parse their timestamps.

    Parameters
    ----------
    data_path : pathlib.Path
        Directory holding the ``.h5`` files. Other files are ignored.
    start, end : datetime-like, optional
        Keep only granules with ``start <= t <= end`` (both inclusive).

    Returns
    -------
    paths : list of pathlib.Path
        Matching files, sorted by time.
    dates : pandas.DatetimeIndex
        Their timestamps.
    """
    found = []
    for p in Path(data_path).iterdir():
        m = SMAP_PATTERN.match(p.name)
        if m:
            found.append((pd.to_datetime(m.group(1), format=SMAP_DATEFORMAT), p))
    found.sort(key=lambda item: item[0])
    dates = pd.DatetimeIndex([d for d, _ in found])
    keep = np.ones(len(found), dtype=bool)
    if start is not None:
        keep &= np.asarray(dates >= pd.Timestamp(start))
    if end is not None:
        keep &= np.asarray(dates <= pd.Timestamp(end))
    paths = [p for (_, p), k in zip(found, keep) if k]
    return paths, dates[keep]


class SMAPSeries(RasterSeries):
    """
    A directory of SMAP L4 granules as a lazy raster series.

    Parameters
    ----------
    data_path : pathlib.Path
        Directory of granules.
    start, end : datetime-like, optional
        Inclusive date filter, see :func:`smap_filenames`.
    group : str, default="Geophysical_Data"
        HDF5 group holding the rasters.
    missingval : float, default=-9999.0
        Fill value of the product.

    Raises
    ------
    FileNotFoundError
        If no granule matches.
    """

    def __init__(
        self,
        data_path: Path,
        start=None,
        end=None,
        group: str = SMAP_GROUP,
        missingval: float = SMAP_MISSINGVAL,
    ):
        self.data_path = Path(data_path)
        self.paths, self._timestamps = smap_filenames(
            self.data_path, start, end
        )
        if not self.paths:
            raise FileNotFoundError(
                f"No SMAP granules found in {self.data_path}"
            )
        self.group = group
        self.missingval = missingval
        with h5py.File(self.paths[0], "r") as f:
            self._keys = tuple(f[group].keys())
            self.coords = {c: f[c][...] for c in SMAP_COORDS if c in f}

    @property
    def timestamps(self) -> pd.DatetimeIndex:
        return self._timestamps

    def keys(self) -> Tuple[str, ...]:
        return self._keys

    def read(
        self, i: int, keys: Optional[Sequence[str]] = None
    ) -> Dict[str, Array]:
        keys = self._keys if keys is None else keys
        with h5py.File(self.paths[i], "r") as f:
            g = f[self.group]
            return {k: g[k][...] for k in keys if k in g}
