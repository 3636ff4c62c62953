"""
Physical units used by layers and models.

Rate models compute in one canonical unit system: temperatures in Kelvin,
molar energies in J/mol, everything else dimensionless. Layers declare the
unit of their raw data as a short string and values are converted to the
canonical unit before any model sees them.

Temperature scales are affine, so Celsius values are shifted rather than
scaled. Converting an absolute Celsius reading to Kelvin adds 273.15; this
module never treats a temperature as a difference.

Examples
--------
>>> convert(0.0, "degC", "K")
273.15
>>> convert(1.0, "kcal/mol", "J/mol")
4184.0
"""

from __future__ import annotations

from typing import Dict, Tuple

import numpy as np

from growthmaps.core.errors import ConfigurationError

Array = np.ndarray

# Universal gas constant [J / (mol K)]
GAS_CONSTANT = 8.314462618

DIMENSIONLESS = "1"

# unit -> (dimension, scale, offset); canonical = value * scale + offset
_UNITS: Dict[str, Tuple[str, float, float]] = {
    "1": ("dimensionless", 1.0, 0.0),
    "K": ("temperature", 1.0, 0.0),
    "degC": ("temperature", 1.0, 273.15),
    "J/mol": ("molar_energy", 1.0, 0.0),
    "kJ/mol": ("molar_energy", 1e3, 0.0),
    "cal/mol": ("molar_energy", 4.184, 0.0),
    "kcal/mol": ("molar_energy", 4184.0, 0.0),
}

_ALIASES = {
    "": "1",
    "dimensionless": "1",
    "kelvin": "K",
    "°C": "degC",
    "C": "degC",
    "celsius": "degC",
}


def normalize_unit(unit: str | None) -> str:
    """Return the canonical spelling of ``unit``.

    Raises
    ------
    ConfigurationError
        If the unit is not known.
    """
    if unit is None:
        return DIMENSIONLESS
    name = _ALIASES.get(unit, unit)
    if name not in _UNITS:
        raise ConfigurationError(
            f"Unknown unit '{unit}'. Known: {sorted(_UNITS)}"
        )
    return name


def dimension(unit: str | None) -> str:
    """Physical dimension of ``unit`` (e.g. ``"temperature"``)."""
    return _UNITS[normalize_unit(unit)][0]


def to_canonical(values, unit: str | None):
    """
    Convert raw values in ``unit`` to the canonical unit of its dimension.

    Parameters
    ----------
    values : ndarray or scalar
        Raw data values.
    unit : str or None
        Unit of ``values``; ``None`` means dimensionless.

    Returns
    -------
    ndarray or scalar
        Converted values. Dimensionless and canonical inputs are returned
        unchanged (no copy).
    """
    _, scale, offset = _UNITS[normalize_unit(unit)]
    if scale == 1.0 and offset == 0.0:
        return values
    return np.asarray(values, dtype=float) * scale + offset


def convert(values, from_unit: str | None, to_unit: str | None):
    """
    Convert ``values`` between two units of the same dimension.

    Raises
    ------
    ConfigurationError
        If the units are unknown or have different dimensions.
    """
    src, dst = normalize_unit(from_unit), normalize_unit(to_unit)
    dim_src, scale_src, offset_src = _UNITS[src]
    dim_dst, scale_dst, offset_dst = _UNITS[dst]
    if dim_src != dim_dst:
        raise ConfigurationError(
            f"Cannot convert {dim_src} ({src}) to {dim_dst} ({dst})."
        )
    canonical = np.asarray(values, dtype=float) * scale_src + offset_src
    out = (canonical - offset_dst) / scale_dst
    return float(out) if out.ndim == 0 else out
