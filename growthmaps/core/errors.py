"""
Exceptions and warnings raised by growthmaps.

Configuration problems are detected before any raster data is read and are
raised as :class:`ConfigurationError`, which is also a ``ValueError`` so that
parameter validation reads like ordinary argument checking. Problems with the
data itself abort a run with :class:`DataIntegrityError`. Periods without any
input data are not errors: they are reported with a
:class:`DataCoverageWarning` and masked in the output.
"""

from __future__ import annotations


class GrowthMapsError(Exception):
    """Base class for all growthmaps errors."""


class ConfigurationError(GrowthMapsError, ValueError):
    """Malformed model, unit or timespan configuration."""


class DataIntegrityError(GrowthMapsError):
    """A timestep of the data source cannot be used as-is."""


class NumericDomainError(GrowthMapsError, ArithmeticError):
    """A rate model produced a non-finite value for a valid cell."""


class RunCancelled(GrowthMapsError):
    """A run was stopped by its ``should_stop`` callback."""


class DataCoverageWarning(UserWarning):
    """An output period had no contributing input timesteps."""
