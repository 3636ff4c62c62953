"""
Layers bind rate models to data, and models combine layers.

A :class:`Layer` connects a :class:`~growthmaps.core.models.RateModel` to a
named variable of the data source and declares the unit its raw values are
stored in. A :class:`Model` is an ordered collection of layers whose
conditional rates are summed cell by cell.

Examples
--------
>>> from growthmaps.core.models import LowerStress, UpperStress
>>> cold = Layer("surface_temp", LowerStress(280.0, -0.1), unit="K")
>>> heat = Layer("surface_temp", UpperStress(303.15, -0.14), unit="K")
>>> model = Model((cold, heat))
>>> model.keys()
('surface_temp',)
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from typing import Iterator, Tuple

import numpy as np

from growthmaps.core.errors import ConfigurationError
from growthmaps.core.models import ParamSpec, RateModel, conditional_rate
from growthmaps.library.units import dimension, normalize_unit, to_canonical

Array = np.ndarray


@dataclass(frozen=True)
class Layer:
    """
    A rate model connected to one variable of the data source.

    Parameters
    ----------
    key : str
        Name of the raster in each stack that feeds this layer.
    model : RateModel
        Model evaluated on that raster.
    unit : str, default="1"
        Unit the raw raster values are stored in. Values are converted to
        the canonical unit of the same dimension before evaluation, so a
        temperature raster in ``"degC"`` reaches the model in Kelvin.

    Raises
    ------
    ConfigurationError
        If ``unit`` is unknown, or the model requires a dimension (e.g.
        temperature) that ``unit`` does not have.
    """

    key: str
    model: RateModel
    unit: str = "1"

    def __post_init__(self):
        if not isinstance(self.model, RateModel):
            raise ConfigurationError(
                f"Layer '{self.key}' needs a RateModel, "
                f"got {type(self.model).__name__}."
            )
        unit = normalize_unit(self.unit)
        object.__setattr__(self, "unit", unit)
        required = self.model.dimension
        if required is not None and dimension(unit) != required:
            raise ConfigurationError(
                f"Layer '{self.key}' holds a {type(self.model).__name__}, "
                f"which needs {required} data, but unit '{unit}' is "
                f"{dimension(unit)}."
            )

    def keys(self) -> Tuple[str, ...]:
        return (self.key,)

    def convert(self, raw):
        """Raw data values in the model's canonical unit."""
        return to_canonical(raw, self.unit)

    def rate(self, raw):
        return self.model.rate(self.convert(raw))

    def condition(self, raw):
        return self.model.condition(self.convert(raw))

    def conditional_rate(self, raw):
        return conditional_rate(self.model, self.convert(raw))

    def params(self) -> Tuple[ParamSpec, ...]:
        return self.model.params()

    def with_params(self, values) -> "Layer":
        return replace(self, model=self.model.with_params(values))


@dataclass(frozen=True)
class Model:
    """
    An ordered, fixed collection of layers forming one growth computation.

    Parameters
    ----------
    layers : Layer or sequence of Layer
        Layers whose conditional rates are summed, in order.

    Notes
    -----
    Several models can be run over one data load by passing a mapping of
    name to model to :func:`~growthmaps.core.framework.mapgrowth`.
    """

    layers: Tuple[Layer, ...] = ()

    def __post_init__(self):
        layers = self.layers
        if isinstance(layers, Layer):
            layers = (layers,)
        layers = tuple(layers)
        for layer in layers:
            if not isinstance(layer, Layer):
                raise ConfigurationError(
                    f"Model layers must be Layer objects, "
                    f"got {type(layer).__name__}."
                )
        object.__setattr__(self, "layers", layers)

    @classmethod
    def coerce(cls, obj) -> "Model":
        """Build a Model from a Model, a Layer or a sequence of Layers."""
        if isinstance(obj, Model):
            return obj
        if isinstance(obj, Layer):
            return cls((obj,))
        if isinstance(obj, Sequence) and not isinstance(obj, str):
            return cls(tuple(obj))
        raise ConfigurationError(
            f"Cannot build a Model from {type(obj).__name__}."
        )

    def __len__(self) -> int:
        return len(self.layers)

    def __iter__(self) -> Iterator[Layer]:
        return iter(self.layers)

    def keys(self) -> Tuple[str, ...]:
        """Data keys required by the layers, ordered and deduplicated."""
        return tuple(dict.fromkeys(layer.key for layer in self.layers))

    def combine_layers(self, stack: Mapping):
        return combine_layers(self, stack)

    def params(self) -> Tuple[ParamSpec, ...]:
        """Parameters of all layers, prefixed with layer index and model."""
        out = []
        for i, layer in enumerate(self.layers):
            prefix = f"{i}.{type(layer.model).__name__}"
            out.extend(
                spec._replace(name=f"{prefix}.{spec.name}")
                for spec in layer.params()
            )
        return tuple(out)

    def with_params(self, values) -> "Model":
        """Rebuild all layers from one flat vector, in :meth:`params` order."""
        values = list(values)
        expected = sum(len(layer.params()) for layer in self.layers)
        if len(values) != expected:
            raise ConfigurationError(
                f"Model takes {expected} parameters, got {len(values)}."
            )
        layers, start = [], 0
        for layer in self.layers:
            stop = start + len(layer.params())
            layers.append(layer.with_params(values[start:stop]))
            start = stop
        return Model(tuple(layers))


def keys(obj) -> Tuple[str, ...]:
    """
    Data keys required by a Layer, Model, sequence of layers or mapping of
    models, as an ordered deduplicated tuple.
    """
    if isinstance(obj, Mapping):
        return tuple(dict.fromkeys(k for m in obj.values() for k in keys(m)))
    return Model.coerce(obj).keys()


def combine_layers(model, stack: Mapping):
    """
    Sum the conditional rates of all layers of ``model`` over ``stack``.

    Parameters
    ----------
    model : Model, Layer or sequence of Layer
        Layers to evaluate.
    stack : mapping of str to ndarray or scalar
        Data for one timestep (whole rasters) or one cell (scalars), keyed
        by layer key.

    Returns
    -------
    ndarray or scalar
        Per-cell sum, in layer order. A model without layers yields zeros
        shaped like the stack's arrays.
    """
    model = Model.coerce(model)
    total = None
    for layer in model.layers:
        contribution = layer.conditional_rate(stack[layer.key])
        total = contribution if total is None else total + contribution
    if total is None:
        if len(stack) == 0:
            return 0.0
        return np.zeros(np.shape(next(iter(stack.values()))))
    return total
