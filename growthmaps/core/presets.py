"""
Species parameter presets and dataclass container.

This module provides a single, concrete dataclass :class:`SpeciesParams` that
encapsulates a complete growth-rate parameterisation for one species: an
intrinsic growth response to temperature plus cold, heat and wilting
stresses. The class is **frozen** (immutable) and uses **slots**. It defaults
to spotted wing drosophila (*Drosophila suzukii*, "swd") and can build the
corresponding :class:`~growthmaps.core.layers.Model`.

Classes
-------
SpeciesParams
    Immutable container for species parameters. Defaults to SWD. Provides
    :meth:`SpeciesParams.swd`, :meth:`SpeciesParams.from_preset` and
    :meth:`SpeciesParams.build`.

Notes
-----
- **Units**: temperatures in Kelvin, enthalpies in J/mol, the wilting
  threshold as a land fraction in [0, 1]. Mortality rates are per unit of
  stress per day and are non-positive.
- **Data keys**: defaults match the SMAP L4 variable names
  ``surface_temp`` and ``land_fraction_wilting``. If the temperature data
  is in Celsius set ``temp_unit="degC"``; thresholds stay in Kelvin.
- **Sources**: growth parameters were fitted to laboratory intrinsic growth
  rates of SWD; the heat threshold follows Kimura (2004), stress mortality
  rates are ``-log(1 + daily loss)``.
- **Validation**: the constructor checks ``p > 0``, positive absolute
  temperatures with ``T_halfL < T_halfH``, ``cold_threshold <
  heat_threshold``, non-positive mortalities and a wilting threshold in
  ``[0, 1]``.

Examples
--------
>>> from growthmaps.core.presets import SpeciesParams
>>> sp = SpeciesParams.swd()
>>> model = sp.build()                       # growth + cold + heat + wilt
>>> temp_only = sp.build(("growth", "cold", "heat"))
>>> temp_only.keys()
('surface_temp',)
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Mapping, Sequence

from growthmaps.core.errors import ConfigurationError
from growthmaps.core.layers import Layer, Model
from growthmaps.core.models import (
    LowerStress,
    SchoolfieldIntrinsicGrowth,
    UpperStress,
)
from growthmaps.library.units import convert

_CAL = convert(1.0, "cal/mol", "J/mol")

COMPONENTS = ("growth", "cold", "heat", "wilt")


@dataclass(frozen=True, slots=True)
class SpeciesParams:
    """
    Concrete species parameter set (defaults to SWD).

    Parameters
    ----------
    species : str, default="swd"
        Species identifier.
    temp_key, wilt_key : str
        Data keys of the temperature and wilting-fraction rasters.
    temp_unit : str, default="K"
        Unit of the raw temperature data.
    p : float
        Growth rate at ``T_ref`` [1/day].
    dH_A, dH_L, dH_H : float
        Activation, low- and high-temperature inactivation enthalpies
        [J/mol].
    T_halfL, T_halfH : float
        Half-inactivation temperatures [K].
    T_ref : float
        Reference temperature [K].
    cold_threshold, cold_mortality : float
        Lower temperature stress threshold [K] and mortality [1/K/day].
    heat_threshold, heat_mortality : float
        Upper temperature stress threshold [K] and mortality [1/K/day].
    wilt_threshold, wilt_mortality : float
        Wilting fraction threshold [-] and mortality [1/day].

    Raises
    ------
    ConfigurationError
        If any validation listed in the module notes fails.
    """

    # --- Species / data ---
    species: str = "swd"
    temp_key: str = "surface_temp"
    temp_unit: str = "K"
    wilt_key: str = "land_fraction_wilting"

    # --- Schoolfield growth ---
    p: float = 3.377850e-01
    dH_A: float = 3.574560e04 * _CAL
    dH_L: float = -1.108990e05 * _CAL
    dH_H: float = 3.276604e05 * _CAL
    T_halfL: float = 2.359187e02
    T_halfH: float = 2.991132e02
    T_ref: float = 298.15

    # --- Temperature stress (K) ---
    cold_threshold: float = 263.15  # -10 °C
    cold_mortality: float = -math.log(1.23)
    heat_threshold: float = 303.15  # 30 °C
    heat_mortality: float = -math.log(1.15)

    # --- Wilting stress ---
    wilt_threshold: float = 0.5
    wilt_mortality: float = -math.log(1.1)

    def __post_init__(self):
        if self.p <= 0.0:
            raise ConfigurationError("p must be positive.")
        if not (0.0 < self.T_halfL < self.T_halfH and self.T_ref > 0.0):
            raise ConfigurationError(
                "Temperatures must satisfy 0 < T_halfL < T_halfH and T_ref > 0."
            )
        if not (0.0 < self.cold_threshold < self.heat_threshold):
            raise ConfigurationError(
                "Thresholds must satisfy 0 < cold_threshold < heat_threshold."
            )
        for name in ("cold_mortality", "heat_mortality", "wilt_mortality"):
            if getattr(self, name) > 0.0:
                raise ConfigurationError(f"{name} must be ≤ 0.")
        if not (0.0 <= self.wilt_threshold <= 1.0):
            raise ConfigurationError("wilt_threshold must be in [0, 1].")

    # -------------------------
    # Layers
    # -------------------------
    def growth_layer(self) -> Layer:
        """Schoolfield growth on the temperature raster, with fit bounds."""
        model = SchoolfieldIntrinsicGrowth(
            p=self.p,
            dH_A=self.dH_A,
            dH_L=self.dH_L,
            dH_H=self.dH_H,
            T_halfL=self.T_halfL,
            T_halfH=self.T_halfH,
            T_ref=self.T_ref,
            bounds={
                "p": (3e-2, 3e0),
                "dH_A": (3e3 * _CAL, 3e5 * _CAL),
                "dH_L": (-1e6 * _CAL, -1e4 * _CAL),
                "dH_H": (3e4 * _CAL, 3e6 * _CAL),
                "T_halfL": (2e1, 2e3),
                "T_halfH": (3e1, 3e3),
            },
        )
        return Layer(self.temp_key, model, unit=self.temp_unit)

    def cold_layer(self) -> Layer:
        model = LowerStress(
            self.cold_threshold,
            self.cold_mortality,
            bounds={"threshold": (240.0, 290.0), "mortalityrate": (-0.4, 0.0)},
        )
        return Layer(self.temp_key, model, unit=self.temp_unit)

    def heat_layer(self) -> Layer:
        model = UpperStress(
            self.heat_threshold,
            self.heat_mortality,
            bounds={"threshold": (280.0, 330.0), "mortalityrate": (-0.4, 0.0)},
        )
        return Layer(self.temp_key, model, unit=self.temp_unit)

    def wilt_layer(self) -> Layer:
        model = UpperStress(
            self.wilt_threshold,
            self.wilt_mortality,
            bounds={"threshold": (0.0, 1.0), "mortalityrate": (-0.4, 0.0)},
        )
        return Layer(self.wilt_key, model)

    def build(self, components: Sequence[str] = COMPONENTS) -> Model:
        """
        Assemble a Model from the selected components.

        Parameters
        ----------
        components : sequence of {'growth', 'cold', 'heat', 'wilt'}
            Layers to include, in order.

        Raises
        ------
        ConfigurationError
            If a component name is unknown.
        """
        factories = {
            "growth": self.growth_layer,
            "cold": self.cold_layer,
            "heat": self.heat_layer,
            "wilt": self.wilt_layer,
        }
        unknown = [c for c in components if c not in factories]
        if unknown:
            raise ConfigurationError(
                f"Unknown components {unknown}. Known: {list(COMPONENTS)}"
            )
        return Model(tuple(factories[c]() for c in components))

    # -------------------------
    # Convenience constructors / presets
    # -------------------------
    @classmethod
    def swd(cls) -> "SpeciesParams":
        """Return a `SpeciesParams` instance with SWD defaults."""
        return cls(species="swd")

    @classmethod
    def from_preset(cls, name: str) -> "SpeciesParams":
        """
        Instantiate from a named preset.

        Parameters
        ----------
        name : {'swd', 'generic'}
            Preset identifier. ``'generic'`` holds round starting values
            meant as initial guesses for fitting a new species.

        Returns
        -------
        SpeciesParams
            Parameter set for the given preset.

        Raises
        ------
        KeyError
            If `name` is not a known preset.
        """
        presets: Mapping[str, dict] = {
            # class defaults
            "swd": dict(species="swd"),
            "generic": dict(
                species="generic",
                p=3e-1,
                dH_A=3e4 * _CAL,
                dH_L=-1e5 * _CAL,
                dH_H=3e5 * _CAL,
                T_halfL=2e2,
                T_halfH=3e2,
                T_ref=298.15,
            ),
        }
        try:
            return cls(**presets[name])
        except KeyError as e:
            raise KeyError(
                f"Unknown preset '{name}'. Known: {sorted(presets)}"
            ) from e
