"""
Aggregation of per-timestep growth rates into per-period maps.

:func:`mapgrowth` streams every input timestep of a
:class:`~growthmaps.core.data_containers.RasterSeries` through one or more
:class:`~growthmaps.core.layers.Model` objects and averages the resulting
rates over the output periods of a
:class:`~growthmaps.core.periods.Timespan`.

Design Principles
-----------------
- **Deterministic**: summation runs in timestamp order, then layer order;
  identical inputs give bit-identical outputs.
- **One data load**: several models share a single buffer per timestep, so
  each raster is read once per run regardless of how many models use it.
- **All or nothing**: configuration and data errors raise before any output
  is returned; there is no partial result.
- **Visible gaps**: periods without input are zero at valid cells, ``NaN``
  at missing cells, and reported with a
  :class:`~growthmaps.core.errors.DataCoverageWarning`.
- **No invented numbers**: cells missing in the first stack are ``NaN`` in
  every period. A cell missing (``NaN`` or ``missingval``) in a later
  timestep is ``NaN`` for that period of every model reading the key.
"""

from __future__ import annotations

import logging
import warnings
from collections.abc import Mapping, Sequence
from typing import Callable, Dict, Optional, Tuple

import numpy as np

from growthmaps.core.data_containers import (
    GrowthArray,
    RasterSeries,
    StackBuffer,
    validity_mask,
)
from growthmaps.core.errors import (
    ConfigurationError,
    DataCoverageWarning,
    DataIntegrityError,
    NumericDomainError,
    RunCancelled,
)
from growthmaps.core.layers import Model, keys
from growthmaps.core.periods import Timespan

Array = np.ndarray

logger = logging.getLogger(__name__)


def mapgrowth(
    model,
    *,
    series: RasterSeries,
    tspan: Timespan,
    initval=0.0,
    should_stop: Optional[Callable[[], bool]] = None,
    check_finite: bool = False,
):
    """
    Combine growth rates across layers and timesteps for every period.

    Parameters
    ----------
    model : Layer, sequence of Layer, Model, sequence of Model or mapping
        The computation to run. A mapping of name to model (or layers) runs
        every model over one shared data load.
    series : RasterSeries
        Time-ordered input stacks.
    tspan : Timespan
        Output periods. Its period starts become the output time index.
    initval : scalar or array-like, default=0.0
        Initial value of every output cell before accumulation. An array
        adds trailing dimensions to the output, for models whose rate per
        cell is a small vector of that shape.
    should_stop : callable, optional
        Polled after each timestep (e.g. ``threading.Event().is_set``); a
        true result cancels the run.
    check_finite : bool, default=False
        Raise instead of propagating ``inf``/``NaN`` when a model yields a
        non-finite rate at a valid cell.

    Returns
    -------
    GrowthArray, tuple of GrowthArray or dict of {str: GrowthArray}
        A single output for a single model, a tuple for a sequence of
        models, a dict for a mapping.

    Raises
    ------
    ConfigurationError
        Empty model, keys the series does not provide, or an empty series.
    DataIntegrityError
        A timestep lacks a required key, has the wrong shape, or cannot be
        read.
    NumericDomainError
        With ``check_finite``, a non-finite rate at a valid cell.
    RunCancelled
        ``should_stop`` returned true.

    Examples
    --------
    >>> out = mapgrowth(
    ...     Layer("stress", LowerStress(5.0, -1.0)),
    ...     series=series,
    ...     tspan=Timespan.monthly("2016-01-03", 4),
    ... )
    >>> out[0]  # mean growth rate over the first month
    """
    models, kind = _as_models(model)
    if isinstance(tspan, Mapping):
        tspan = Timespan(**tspan)
    if not isinstance(tspan, Timespan):
        raise ConfigurationError(
            f"tspan must be a Timespan, got {type(tspan).__name__}."
        )

    # ----- validate before any I/O
    for name, m in models.items():
        if len(m) == 0:
            raise ConfigurationError(f"Model '{name}' has no layers.")
    if len(series) == 0:
        raise ConfigurationError("Series has no timesteps.")
    required_keys = keys(models)
    available = set(series.keys())
    missing = [k for k in required_keys if k not in available]
    if missing:
        raise ConfigurationError(
            f"Series does not provide required keys {missing}. "
            f"Available: {sorted(available)}"
        )

    # Copy only the required keys to a memory-backed buffer
    first = series.first(required_keys)
    stackbuffer = StackBuffer(first, required_keys)
    mask = validity_mask(first, required_keys, series.missingval)

    # Allocate one (H, W, T, ...) output per model
    extra = np.shape(initval)
    dtype = np.result_type(stackbuffer.dtype, np.asarray(initval).dtype)
    outshape = stackbuffer.shape + (tspan.count,) + extra
    outputs = {
        name: np.full(outshape, initval, dtype=dtype) for name in models
    }
    mask = mask.reshape(mask.shape + (1,) * len(extra))

    _run_periods(
        outputs,
        stackbuffer,
        series,
        mask,
        models,
        tspan,
        required_keys,
        should_stop=should_stop,
        check_finite=check_finite,
    )

    arrays = {
        name: GrowthArray(
            data=data,
            time=tspan.starts,
            period=tspan.period,
            name=name,
            missingval=np.nan,
            coords=dict(series.coords),
        )
        for name, data in outputs.items()
    }
    if kind == "single":
        return arrays["growthrate"]
    if kind == "tuple":
        return tuple(arrays.values())
    return arrays


def _as_models(model) -> Tuple[Dict[str, Model], str]:
    """Normalize the ``model`` argument to named Models and a return kind."""
    if isinstance(model, Mapping):
        return {str(k): Model.coerce(m) for k, m in model.items()}, "mapping"
    if (
        isinstance(model, Sequence)
        and not isinstance(model, str)
        and len(model) > 0
        and all(isinstance(m, Model) for m in model)
    ):
        return {f"growthrate_{i}": m for i, m in enumerate(model)}, "tuple"
    return {"growthrate": Model.coerce(model)}, "single"


def _run_periods(
    outputs: Dict[str, Array],
    stackbuffer: StackBuffer,
    series: RasterSeries,
    mask: Array,
    models: Dict[str, Model],
    tspan: Timespan,
    required_keys,
    *,
    should_stop=None,
    check_finite=False,
) -> None:
    period_label = tspan.describe_period()
    model_keys = {name: model.keys() for name, model in models.items()}
    trailing = (1,) * (mask.ndim - 2)
    logger.info("Running for %d periods of %s", tspan.count, period_label)
    for p in range(tspan.count):
        n = 0
        periodstart, periodend = tspan.period_bounds(p)
        logger.info(
            "Processing period between: %s and %s", periodstart, periodend
        )
        try:
            for t, stack in series.stacks_in_window(
                periodstart, periodend, required_keys
            ):
                logger.debug("    %s", t)
                # Overwrite the buffer, never allocate per timestep
                stackbuffer.copy_from(stack, t)
                for name, model in models.items():
                    rates = model.combine_layers(stackbuffer)
                    # Cells missing at this timestep poison the period mean
                    step = validity_mask(
                        stackbuffer, model_keys[name], series.missingval
                    )
                    step = step.reshape(step.shape + trailing)
                    if check_finite:
                        _check_finite(rates, mask * step, name, p, t)
                    outputs[name][:, :, p] += rates * step
                n += 1
                if should_stop is not None and should_stop():
                    raise RunCancelled(
                        f"Run cancelled in period {p} after timestep {t}."
                    )
        except DataIntegrityError as e:
            raise DataIntegrityError(
                f"Period {p} ({periodstart} to {periodend}): {e}"
            ) from e

        if n > 0:
            for output in outputs.values():
                output[:, :, p] *= mask / n
        else:
            warnings.warn(
                f"No files found for the {period_label} period starting "
                f"{periodstart.isoformat()}",
                DataCoverageWarning,
                stacklevel=3,
            )
            for output in outputs.values():
                output[:, :, p] *= mask


def _check_finite(rates, mask: Array, name: str, p: int, t) -> None:
    valid = np.broadcast_to(~np.isnan(mask), np.shape(rates))
    bad = valid & ~np.isfinite(rates)
    if np.any(bad):
        cell = tuple(int(i) for i in np.argwhere(bad)[0])
        raise NumericDomainError(
            f"Model '{name}' gave a non-finite rate at cell {cell} "
            f"for {t} (period {p})."
        )
