from __future__ import annotations

import numpy as np
import numpy.testing as npt
import pandas as pd
import pytest

from growthmaps.core.data_containers import MemorySeries
from growthmaps.core.framework import mapgrowth
from growthmaps.core.periods import Timespan
from growthmaps.core.presets import SpeciesParams
from growthmaps.library.io_hdf5 import (
    HDF5Series,
    load_growth_hdf5,
    save_growth_hdf5,
    save_series_hdf5,
)

# Tolerances reasonably robust to BLAS / platform differences
ATOL = 1e-12
RTOL = 1e-10

SHAPE = (6, 7)
MISSING = -9999.0
TSPAN = Timespan.monthly("2016-01-01", 12)


def _make_inputs():
    rng = np.random.default_rng(42)
    times = pd.date_range("2016-01-01", "2017-01-01", freq="12h", inclusive="left")
    T = len(times)
    doy = times.dayofyear.to_numpy()
    season = -14.0 * np.cos(2 * np.pi * (doy - 15) / 365.25)
    temp = 288.15 + season[None, None, :] + rng.normal(0, 4.0, SHAPE + (T,))
    wilt = rng.uniform(0.0, 1.0, SHAPE + (T,))
    temp[0, 0, 0] = MISSING  # masked in the first stack
    wilt[1, 3, 0] = np.nan
    return times, temp, wilt


def _reference(sp: SpeciesParams, times, temp, wilt):
    """Direct per-period mean of the summed conditional rates."""
    growth = sp.growth_layer().model
    rates = growth.rate(np.where(temp == MISSING, 300.0, temp))
    rates = rates + np.where(
        temp < sp.cold_threshold, (sp.cold_threshold - temp) * sp.cold_mortality, 0.0
    )
    rates = rates + np.where(
        temp > sp.heat_threshold, (temp - sp.heat_threshold) * sp.heat_mortality, 0.0
    )
    rates = rates + np.where(
        wilt > sp.wilt_threshold, (wilt - sp.wilt_threshold) * sp.wilt_mortality, 0.0
    )
    mask = np.where(
        (temp[:, :, 0] == MISSING) | np.isnan(wilt[:, :, 0]), np.nan, 1.0
    )
    out = np.empty(SHAPE + (TSPAN.count,))
    for p, (start, end) in enumerate(TSPAN.bounds()):
        sel = (times >= start) & (times < end)
        out[:, :, p] = rates[:, :, sel].mean(axis=2) * mask
    return out


@pytest.mark.slow
def test_swd_year_matches_direct_computation(tmp_path):
    times, temp, wilt = _make_inputs()
    series = MemorySeries.from_arrays(
        times,
        {"surface_temp": temp, "land_fraction_wilting": wilt},
        missingval=MISSING,
    )
    save_series_hdf5(tmp_path / "inputs.h5", series)

    sp = SpeciesParams.swd()
    cur = mapgrowth(sp.build(), series=HDF5Series(tmp_path / "inputs.h5"), tspan=TSPAN)
    base = _reference(sp, times, temp, wilt)

    # Quick grid/time sanity check
    assert cur.shape == base.shape, f"Grid/time mismatch: {cur.shape} vs {base.shape}"
    assert np.isnan(cur.data[0, 0]).all()
    assert np.isnan(cur.data[1, 3]).all()
    npt.assert_allclose(cur.data, base, rtol=RTOL, atol=ATOL, equal_nan=True)

    # Persisted output reloads unchanged
    save_growth_hdf5(cur, tmp_path / "growth.h5", extra_meta={"species": sp.species})
    loaded = load_growth_hdf5(tmp_path / "growth.h5")["growthrate"]
    npt.assert_array_equal(loaded.data, cur.data)
    assert list(loaded.time) == list(TSPAN.starts)


@pytest.mark.slow
def test_grouped_components_sum_to_full_model():
    times, temp, wilt = _make_inputs()
    series = MemorySeries.from_arrays(
        times,
        {"surface_temp": temp, "land_fraction_wilting": wilt},
        missingval=MISSING,
    )
    sp = SpeciesParams.swd()
    out = mapgrowth(
        {c: sp.build((c,)) for c in ("growth", "cold", "heat", "wilt")}
        | {"full": sp.build()},
        series=series,
        tspan=TSPAN,
    )
    # each component masks only on its own keys, so compare on the full mask
    mask = np.isnan(out["full"].data)
    parts = sum(out[c].data for c in ("growth", "cold", "heat", "wilt"))
    npt.assert_allclose(
        np.where(mask, np.nan, parts), out["full"].data, rtol=RTOL, atol=ATOL,
        equal_nan=True,
    )
