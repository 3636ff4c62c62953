"""
growthmaps: gridded population growth rates from environmental rasters.

Rate models (growth and stress responses) are bound to raster variables with
layers, evaluated for every cell and timestep of a raster series, and
averaged into output periods by :func:`mapgrowth`.
"""

__version__ = "0.1.0"

from growthmaps.core.data_containers import (  # noqa: E402
    GrowthArray,
    MemorySeries,
    RasterSeries,
)
from growthmaps.core.errors import (  # noqa: E402
    ConfigurationError,
    DataCoverageWarning,
    DataIntegrityError,
    GrowthMapsError,
    NumericDomainError,
    RunCancelled,
)
from growthmaps.core.framework import mapgrowth  # noqa: E402
from growthmaps.core.layers import Layer, Model, combine_layers  # noqa: E402
from growthmaps.core.models import (  # noqa: E402
    GrowthModel,
    LowerStress,
    RateModel,
    SchoolfieldIntrinsicGrowth,
    StressModel,
    UpperStress,
    conditional_rate,
)
from growthmaps.core.periods import Timespan  # noqa: E402
from growthmaps.core.presets import SpeciesParams  # noqa: E402

__all__ = [
    "ConfigurationError",
    "DataCoverageWarning",
    "DataIntegrityError",
    "GrowthArray",
    "GrowthMapsError",
    "GrowthModel",
    "Layer",
    "LowerStress",
    "MemorySeries",
    "Model",
    "NumericDomainError",
    "RasterSeries",
    "RateModel",
    "RunCancelled",
    "SchoolfieldIntrinsicGrowth",
    "SpeciesParams",
    "StressModel",
    "Timespan",
    "UpperStress",
    "combine_layers",
    "conditional_rate",
    "mapgrowth",
]
