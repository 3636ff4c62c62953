"""
Rate models: per-cell growth and stress contributions to growth rate.

A :class:`RateModel` holds the parameters of one biological process and
computes its contribution to the intrinsic population growth rate from the
value of a single environmental variable. Models are immutable, stateless and
vectorized: ``rate`` and ``condition`` accept scalars or NumPy arrays and are
evaluated elementwise.

Classes
-------
RateModel
    Abstract base defining ``rate`` and ``condition``.
GrowthModel
    Base for temperature-driven intrinsic growth models.
StressModel
    Base for threshold stress (mortality) models.
SchoolfieldIntrinsicGrowth
    Sharpe-Schoolfield enzyme kinetics growth model.
LowerStress, UpperStress
    Linear mortality below / above a threshold.
ParamSpec
    Named parameter descriptor used for fitting.

Functions
---------
conditional_rate
    ``rate`` gated by ``condition``, zero where the condition is false.

Notes
-----
- **Units.** Models compute in canonical units (Kelvin, J/mol). Conversion
  of raw data happens in :class:`~growthmaps.core.layers.Layer`.
- **Returns.** Rates have implicit units of ``N N^-1 T^-1`` where ``N`` is
  the number of individuals and ``T`` is time, usually one day.
- **Numeric domain.** Inputs at absolute zero or overflowing exponentials are
  not guarded: non-finite values propagate as ``inf``/``NaN``. Overflow of
  the Schoolfield denominator is silenced since it correctly drives the rate
  to zero.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import ClassVar, Mapping, NamedTuple, Sequence, Tuple

import numpy as np

from growthmaps.core.errors import ConfigurationError
from growthmaps.library.units import GAS_CONSTANT

Array = np.ndarray

_UNBOUNDED = (-np.inf, np.inf)


class ParamSpec(NamedTuple):
    """A fittable parameter: its name, current value and (low, high) bounds."""

    name: str
    value: float
    bounds: Tuple[float, float]


@dataclass(frozen=True)
class RateModel(ABC):
    """
    Parameters of one contribution to the overall population growth rate.

    Subclasses must define :meth:`rate` and may override :meth:`condition`
    to ignore cells, e.g. those below a threshold. ``param_names`` lists the
    fields exposed to fitting, in a fixed order.

    Parameters
    ----------
    bounds : mapping of str to (float, float), optional, keyword-only
        Fitting bounds per parameter name. Unlisted parameters fall back
        to the class's ``default_bounds``, else are unbounded. Bounds take
        no part in equality.
    """

    param_names: ClassVar[Tuple[str, ...]] = ()
    # Physical dimension the model expects its input in, or None for any.
    dimension: ClassVar[str | None] = None
    # Bounds implied by the model's domain, overridden by ``bounds``.
    default_bounds: ClassVar[Mapping[str, Tuple[float, float]]] = {}

    bounds: Mapping[str, Tuple[float, float]] = field(
        default_factory=dict, compare=False, repr=False, kw_only=True
    )

    def __post_init__(self):
        unknown = set(self.bounds) - set(self.param_names)
        if unknown:
            raise ConfigurationError(
                f"Bounds given for unknown parameters {sorted(unknown)} of "
                f"{type(self).__name__}. Known: {list(self.param_names)}"
            )

    @abstractmethod
    def rate(self, x):
        """
        Growth rate contribution for the environmental value ``x``.

        Parameters
        ----------
        x : ndarray or scalar
            Value(s) of the model's environmental variable, already in
            canonical units.

        Returns
        -------
        ndarray or scalar
            Rate contribution per cell.
        """

    def condition(self, x):
        """
        Whether :meth:`rate` applies at ``x``. Defaults to always.

        Returns
        -------
        ndarray of bool or bool
        """
        return np.full(np.shape(x), True)

    # -------------------------
    # Parameter descriptors
    # -------------------------
    def params(self) -> Tuple[ParamSpec, ...]:
        """Fittable parameters in ``param_names`` order."""
        return tuple(
            ParamSpec(
                name,
                getattr(self, name),
                tuple(
                    self.bounds.get(
                        name, self.default_bounds.get(name, _UNBOUNDED)
                    )
                ),
            )
            for name in self.param_names
        )

    def with_params(self, values: Sequence[float]) -> "RateModel":
        """
        Return a copy of the model with new parameter values.

        Parameters
        ----------
        values : sequence of float
            New values, in ``param_names`` order.

        Raises
        ------
        ConfigurationError
            If the number of values does not match ``param_names``.
        """
        values = list(values)
        if len(values) != len(self.param_names):
            raise ConfigurationError(
                f"{type(self).__name__} takes {len(self.param_names)} "
                f"parameters, got {len(values)}."
            )
        return replace(
            self, **{n: float(v) for n, v in zip(self.param_names, values)}
        )


def conditional_rate(model: RateModel, x):
    """
    Rate of ``model`` at ``x`` where its condition holds, zero elsewhere.

    Zero is the neutral element when contributions of several models are
    summed, so inactive stresses add nothing.

    Parameters
    ----------
    model : RateModel
        Model to evaluate.
    x : ndarray or scalar
        Environmental value(s) in canonical units.

    Returns
    -------
    ndarray or float
        Same shape as ``x``; a NumPy scalar for scalar input.
    """
    x = np.asarray(x)
    out = np.where(model.condition(x), model.rate(x), 0.0)
    return out[()] if out.ndim == 0 else out


# -------------------------
# Growth models
# -------------------------
@dataclass(frozen=True)
class GrowthModel(RateModel):
    r"""
    Intrinsic rate of population growth.

    The intrinsic growth rate is the exponential growth rate of a population
    when growth is not limited by density dependent factors: with
    :math:`dN/dt = rN`, :math:`r` is the per capita growth rate
    (individuals per day per individual). It depends strongly on temperature,
    with growth inhibited at low and high temperatures (Haghani et al. 2006).
    """


@dataclass(frozen=True)
class SchoolfieldIntrinsicGrowth(GrowthModel):
    r"""
    Temperature response of growth after Schoolfield et al. (1981).

    "Non-linear regression of biological temperature-dependent rate models
    based on absolute reaction-rate theory". The input variable must be an
    absolute temperature; layers holding this model must declare a
    temperature unit.

    .. math::

        r(T) = \frac{p \frac{T}{T_{ref}}
            \exp\left(\frac{\Delta H_A}{R}\left(\frac{1}{T_{ref}}
            - \frac{1}{T}\right)\right)}
            {1 + \exp\left(\frac{\Delta H_L}{R}\left(\frac{1}{T_{1/2L}}
            - \frac{1}{T}\right)\right)
            + \exp\left(\frac{\Delta H_H}{R}\left(\frac{1}{T_{1/2H}}
            - \frac{1}{T}\right)\right)}

    with :math:`R` the universal gas constant in J/(mol K).

    Parameters
    ----------
    p : float
        Growth rate at the reference temperature ``T_ref``.
    dH_A : float
        Enthalpy of activation of the enzyme-catalyzed reaction [J/mol].
    dH_L : float
        Enthalpy change of low temperature inactivation [J/mol].
    dH_H : float
        Enthalpy change of high temperature inactivation [J/mol].
    T_halfL : float
        Temperature at which the enzyme is half active and half low
        temperature inactive [K].
    T_halfH : float
        Temperature at which the enzyme is half active and half high
        temperature inactive [K].
    T_ref : float
        Reference temperature [K]. Not exposed to fitting.

    Raises
    ------
    ConfigurationError
        If any of the temperatures is not strictly positive.

    Notes
    -----
    Parameters can be estimated from empirical data by non-linear least
    squares (see Zhang et al. 2000; Haghani et al. 2006; Chien and Chang
    2007), e.g. with :func:`growthmaps.library.fit.fit`. Enthalpies given in
    cal/mol can be converted with
    ``growthmaps.library.units.convert(v, "cal/mol", "J/mol")``.
    """

    param_names: ClassVar[Tuple[str, ...]] = (
        "p",
        "dH_A",
        "dH_L",
        "dH_H",
        "T_halfL",
        "T_halfH",
    )
    dimension: ClassVar[str | None] = "temperature"
    default_bounds: ClassVar[Mapping[str, Tuple[float, float]]] = {
        "T_halfL": (0.0, np.inf),
        "T_halfH": (0.0, np.inf),
    }

    p: float
    dH_A: float
    dH_L: float
    dH_H: float
    T_halfL: float
    T_halfH: float
    T_ref: float

    def __post_init__(self):
        super().__post_init__()
        for name in ("T_halfL", "T_halfH", "T_ref"):
            if not getattr(self, name) > 0.0:
                raise ConfigurationError(
                    f"{name} must be an absolute temperature > 0 K."
                )

    def rate(self, x):
        x = np.asarray(x, dtype=float)
        R = GAS_CONSTANT
        inv_x = 1.0 / x
        with np.errstate(over="ignore"):
            activation = np.exp(self.dH_A / R * (1.0 / self.T_ref - inv_x))
            low = np.exp(self.dH_L / R * (1.0 / self.T_halfL - inv_x))
            high = np.exp(self.dH_H / R * (1.0 / self.T_halfH - inv_x))
        return self.p * x / self.T_ref * activation / (1.0 + low + high)


# -------------------------
# Stress models
# -------------------------
@dataclass(frozen=True)
class StressModel(RateModel):
    r"""
    Mortality once an environmental variable passes a threshold.

    Extreme stressor mortality is assumed to occur once an environmental
    variable :math:`s` crosses a threshold :math:`s_c` (e.g. a critical
    thermal maximum), beyond which the mortality rate scales approximately
    linearly with the depth of the stressor (Enriquez and Colinet 2017). The
    ``mortalityrate`` :math:`m_s` is the per capita mortality per stress
    unit per time, and is usually negative.

    Combined stressors enter growth as :math:`dN/dt = (r_p - r_n) N` with
    :math:`r_n = \sum_s f(s, s_c) m_s`. This assumes stressors contribute
    additively to mortality, which lets their responses be parameterised
    separately from the intrinsic growth rate.

    Parameters
    ----------
    threshold : float
        Stress threshold, in the canonical unit of the layer's variable.
    mortalityrate : float
        Mortality per unit of stress per time.
    """

    param_names: ClassVar[Tuple[str, ...]] = ("threshold", "mortalityrate")

    threshold: float
    mortalityrate: float


@dataclass(frozen=True)
class LowerStress(StressModel):
    """Stress below ``threshold``: ``(threshold - x) * mortalityrate``."""

    def rate(self, x):
        return (self.threshold - x) * self.mortalityrate

    def condition(self, x):
        return np.asarray(x) < self.threshold


@dataclass(frozen=True)
class UpperStress(StressModel):
    """Stress above ``threshold``: ``(x - threshold) * mortalityrate``."""

    def rate(self, x):
        return (x - self.threshold) * self.mortalityrate

    def condition(self, x):
        return np.asarray(x) > self.threshold
