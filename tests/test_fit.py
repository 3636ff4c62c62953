from __future__ import annotations

import numpy as np
import numpy.testing as npt
import pytest

from growthmaps.core.errors import ConfigurationError
from growthmaps.core.layers import Layer, Model
from growthmaps.core.models import (
    LowerStress,
    SchoolfieldIntrinsicGrowth,
    UpperStress,
)
from growthmaps.library.fit import evaluate, fit, parse_observations

XS = np.arange(5.0)
YS = XS - 5.0  # LowerStress(5, -1)


def test_evaluate_rebuilds_model():
    m = LowerStress(5.0, -1.0)
    npt.assert_array_equal(evaluate(m, [4.0, -2.0], [1.0, 2.0]), [-6.0, -4.0])
    # template untouched
    assert m == LowerStress(5.0, -1.0)


def test_evaluate_layer_converts_units():
    layer = Layer("t", LowerStress(278.15, -1.0), unit="degC")
    npt.assert_allclose(
        evaluate(layer, [278.15, -1.0], [0.0, 4.0]), [-5.0, -1.0]
    )


def test_evaluate_model_with_mapping():
    model = Model(
        (
            Layer("a", LowerStress(5.0, -1.0)),
            Layer("b", UpperStress(6.0, -2.0)),
        )
    )
    out = evaluate(
        model, [5.0, -1.0, 6.0, -2.0], {"a": np.array([1.0]), "b": np.array([9.0])}
    )
    npt.assert_array_equal(out, [-10.0])
    with pytest.raises(ConfigurationError, match="mapping"):
        evaluate(model, [5.0, -1.0, 6.0, -2.0], np.array([1.0]))


def test_fit_stress_model():
    fitted = fit(LowerStress(6.0, -0.5), list(zip(XS, YS)))
    assert isinstance(fitted, LowerStress)
    npt.assert_allclose(
        [fitted.threshold, fitted.mortalityrate], [5.0, -1.0], rtol=1e-4
    )


def test_fit_layer_in_celsius():
    layer = Layer("t", LowerStress(280.15, -0.5), unit="degC")
    fitted = fit(layer, (XS, YS))
    assert fitted.unit == "degC"
    npt.assert_allclose(
        [fitted.model.threshold, fitted.model.mortalityrate],
        [278.15, -1.0],
        rtol=1e-4,
    )


def test_fit_single_key_model_respects_bounds():
    model = Model(
        Layer(
            "a",
            LowerStress(
                6.0,
                -0.5,
                bounds={"threshold": (0.0, 10.0), "mortalityrate": (-3.0, 0.0)},
            ),
        )
    )
    fitted = fit(model, (XS, YS))
    assert isinstance(fitted, Model)
    m = fitted.layers[0].model
    npt.assert_allclose([m.threshold, m.mortalityrate], [5.0, -1.0], rtol=1e-4)
    assert m.bounds == {"threshold": (0.0, 10.0), "mortalityrate": (-3.0, 0.0)}


def test_fit_rejects_multi_key_model():
    model = Model(
        (
            Layer("a", LowerStress(5.0, -1.0)),
            Layer("b", UpperStress(6.0, -2.0)),
        )
    )
    with pytest.raises(ConfigurationError, match="single-key"):
        fit(model, (XS, YS))


def test_parse_observations():
    xs, ys = parse_observations([(1.0, 2.0), (3.0, 4.0), (5.0, 6.0)])
    npt.assert_array_equal(xs, [1.0, 3.0, 5.0])
    npt.assert_array_equal(ys, [2.0, 4.0, 6.0])

    xs, ys = parse_observations(([1.0, 3.0, 5.0], [2.0, 4.0, 6.0]))
    npt.assert_array_equal(xs, [1.0, 3.0, 5.0])

    with pytest.raises(ConfigurationError, match="pairs"):
        parse_observations([1.0, 2.0, 3.0])


def _schoolfield(**kw):
    return SchoolfieldIntrinsicGrowth(
        p=0.3,
        dH_A=8e4,
        dH_L=-4e5,
        dH_H=1.2e6,
        T_halfL=250.0,
        T_halfH=300.0,
        T_ref=298.15,
        **kw,
    )


def test_fit_schoolfield_keeps_half_temperatures_positive(monkeypatch):
    seen = {}

    def fake_curve_fit(f, xs, ys, p0, bounds, **kwargs):
        seen["bounds"] = bounds
        return np.asarray(p0), None

    monkeypatch.setattr("growthmaps.library.fit.curve_fit", fake_curve_fit)
    m = _schoolfield()
    fitted = fit(m, ([280.0, 290.0, 300.0], [0.1, 0.2, 0.1]))
    assert fitted == m

    lower, upper = seen["bounds"]
    # p, dH_A, dH_L, dH_H unbounded; T_halfL and T_halfH above 0 K
    assert lower == [-np.inf] * 4 + [0.0, 0.0]
    assert upper == [np.inf] * 6


def test_fit_outside_model_domain_raises_configuration_error(monkeypatch):
    def fake_curve_fit(f, xs, ys, p0, bounds, **kwargs):
        popt = np.asarray(p0, dtype=float)
        popt[4] = -5.0
        return popt, None

    monkeypatch.setattr("growthmaps.library.fit.curve_fit", fake_curve_fit)
    m = _schoolfield(bounds={"T_halfL": (-10.0, 400.0)})
    with pytest.raises(ConfigurationError, match="outside the model's domain"):
        fit(m, ([280.0, 290.0, 300.0], [0.1, 0.2, 0.1]))
