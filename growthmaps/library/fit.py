"""
Least-squares fitting of rate model parameters to observations.

Parameters are handled as a flat vector built from each model's explicit
parameter descriptors (:meth:`~growthmaps.core.models.RateModel.params`), so
any least-squares routine can drive :func:`evaluate`. :func:`fit` uses
:func:`scipy.optimize.curve_fit` and returns a new model; nothing is
modified in place.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Callable, Tuple

import numpy as np
from scipy.optimize import curve_fit

from growthmaps.core.errors import ConfigurationError
from growthmaps.core.layers import Layer, Model, combine_layers
from growthmaps.core.models import RateModel, conditional_rate

Array = np.ndarray


def evaluate(model, parameters, xs):
    """
    Conditional rate of ``model`` rebuilt with ``parameters``, at ``xs``.

    Parameters
    ----------
    model : RateModel, Layer or Model
        Template providing structure, units and parameter order.
    parameters : sequence of float
        Flat parameter vector in ``model.params()`` order.
    xs : array-like or mapping of {str: array-like}
        Input values. For a :class:`Layer` or :class:`Model` they are raw
        values in the layer unit; for a bare :class:`RateModel` they are in
        canonical units. A model reading several keys needs a mapping.

    Returns
    -------
    ndarray
        Rates, elementwise.
    """
    rebuilt = model.with_params(parameters)
    if isinstance(rebuilt, RateModel):
        return conditional_rate(rebuilt, xs)
    if isinstance(rebuilt, Layer):
        return rebuilt.conditional_rate(xs)
    if isinstance(xs, Mapping):
        return combine_layers(rebuilt, xs)
    keys = rebuilt.keys()
    if len(keys) != 1:
        raise ConfigurationError(
            f"Model reads keys {list(keys)}; pass xs as a mapping."
        )
    return combine_layers(rebuilt, {keys[0]: xs})


def make_objective(model) -> Callable:
    """Return ``f(xs, *params)`` suitable for ``scipy.optimize.curve_fit``."""

    def objective(xs, *params):
        return np.asarray(evaluate(model, params, xs), dtype=float)

    return objective


def parse_observations(obs) -> Tuple[Array, Array]:
    """
    Split observations into ``(xs, ys)``.

    ``obs`` is either a sequence of ``(x, y)`` pairs or a pair of equal
    length sequences ``(xs, ys)``. A 2 x 2 input is read as pairs.
    """
    arr = np.asarray(obs, dtype=float)
    if arr.ndim == 2 and arr.shape[1] == 2:
        return arr[:, 0], arr[:, 1]
    if arr.ndim == 2 and arr.shape[0] == 2:
        return arr[0], arr[1]
    raise ConfigurationError(
        f"Observations must be (x, y) pairs, got shape {arr.shape}."
    )


def fit(model, obs, **kwargs):
    """
    Fit a model to data with least squares regression.

    The passed model should hold sensible starting values; they are used as
    the initial guess. Bounds come from the parameter descriptors.

    Parameters
    ----------
    model : RateModel, Layer or Model
        Model to fit. A Model must read a single key.
    obs : array-like
        Observations, see :func:`parse_observations`.
    **kwargs
        Passed to :func:`scipy.optimize.curve_fit`.

    Returns
    -------
    RateModel, Layer or Model
        A new object of the same kind with fitted parameters.

    Examples
    --------
    >>> obs = [(280.0, 0.03), (290.0, 0.11), (300.0, 0.19), (310.0, 0.0)]
    >>> fitted = fit(growth_layer, obs)
    """
    if isinstance(model, Model) and len(model.keys()) != 1:
        raise ConfigurationError("Only single-key models can be fitted.")
    xs, ys = parse_observations(obs)
    specs = model.params()
    if not specs:
        raise ConfigurationError("Model has no parameters to fit.")
    p0 = [s.value for s in specs]
    lower = [s.bounds[0] for s in specs]
    upper = [s.bounds[1] for s in specs]
    popt, _ = curve_fit(
        make_objective(model), xs, ys, p0=p0, bounds=(lower, upper), **kwargs
    )
    try:
        return model.with_params(popt)
    except ConfigurationError as e:
        raise ConfigurationError(
            f"Fit left the parameters outside the model's domain: {e} "
            "Tighten the bounds of the offending parameter."
        ) from e
