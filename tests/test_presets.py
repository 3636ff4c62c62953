import math

import numpy as np
import pytest

from growthmaps.core.errors import ConfigurationError
from growthmaps.core.layers import Model
from growthmaps.core.models import (
    LowerStress,
    SchoolfieldIntrinsicGrowth,
    UpperStress,
)
from growthmaps.core.presets import SpeciesParams


def test_swd_defaults():
    sp = SpeciesParams.swd()
    assert sp.species == "swd"
    assert sp.temp_key == "surface_temp"
    assert sp.dH_A == pytest.approx(3.574560e04 * 4.184)
    assert sp.cold_mortality == pytest.approx(-math.log(1.23))


def test_build_full_model():
    model = SpeciesParams.swd().build()
    assert isinstance(model, Model)
    assert [type(layer.model) for layer in model] == [
        SchoolfieldIntrinsicGrowth,
        LowerStress,
        UpperStress,
        UpperStress,
    ]
    assert model.keys() == ("surface_temp", "land_fraction_wilting")


def test_growth_peaks_at_moderate_temperatures():
    layer = SpeciesParams.swd().growth_layer()
    temps = np.array([273.15, 293.15, 313.15])
    rates = layer.conditional_rate(temps)
    assert rates[1] > rates[0] and rates[1] > rates[2]
    assert rates[1] > 0


def test_celsius_data():
    sp = SpeciesParams(temp_unit="degC")
    model = sp.build(("growth", "cold", "heat"))
    kelvin = SpeciesParams().build(("growth", "cold", "heat"))
    stack_c = {"surface_temp": np.array([[-20.0, 20.0, 35.0]])}
    stack_k = {"surface_temp": stack_c["surface_temp"] + 273.15}
    np.testing.assert_allclose(
        model.combine_layers(stack_c), kelvin.combine_layers(stack_k)
    )


def test_layers_carry_fit_bounds():
    specs = SpeciesParams.swd().cold_layer().params()
    assert specs[0].bounds == (240.0, 290.0)


def test_unknown_component():
    with pytest.raises(ConfigurationError, match="Unknown components"):
        SpeciesParams.swd().build(("growth", "drought"))


@pytest.mark.parametrize(
    "kw",
    [
        dict(p=0.0),
        dict(T_halfL=310.0),
        dict(cold_threshold=310.0),
        dict(heat_mortality=0.1),
        dict(wilt_threshold=1.5),
    ],
)
def test_validation(kw):
    with pytest.raises(ConfigurationError):
        SpeciesParams(**kw)


def test_from_preset():
    assert SpeciesParams.from_preset("swd") == SpeciesParams.swd()
    assert SpeciesParams.from_preset("generic").species == "generic"
    with pytest.raises(KeyError, match="Unknown preset"):
        SpeciesParams.from_preset("aphid")


def test_frozen():
    sp = SpeciesParams.swd()
    with pytest.raises(AttributeError):
        sp.p = 1.0
