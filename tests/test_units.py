import numpy as np
import numpy.testing as npt
import pytest

from growthmaps.core.errors import ConfigurationError
from growthmaps.library.units import (
    convert,
    dimension,
    normalize_unit,
    to_canonical,
)


def test_aliases():
    assert normalize_unit(None) == "1"
    assert normalize_unit("") == "1"
    assert normalize_unit("celsius") == "degC"
    assert normalize_unit("°C") == "degC"
    assert normalize_unit("K") == "K"


def test_unknown_unit():
    with pytest.raises(ConfigurationError, match="Unknown unit"):
        normalize_unit("furlong")


def test_dimensions():
    assert dimension("K") == "temperature"
    assert dimension("degC") == "temperature"
    assert dimension("kcal/mol") == "molar_energy"
    assert dimension(None) == "dimensionless"


def test_celsius_is_affine():
    npt.assert_allclose(to_canonical([0.0, 25.0], "degC"), [273.15, 298.15])
    assert convert(273.15, "K", "degC") == pytest.approx(0.0, abs=1e-12)


def test_energy_scaling():
    assert convert(1.0, "kcal/mol", "J/mol") == 4184.0
    assert convert(2.0, "kJ/mol", "cal/mol") == pytest.approx(2000.0 / 4.184)


def test_canonical_input_is_not_copied():
    a = np.array([1.0, 2.0])
    assert to_canonical(a, "K") is a
    assert to_canonical(a, None) is a


def test_cross_dimension_conversion_raises():
    with pytest.raises(ConfigurationError, match="Cannot convert"):
        convert(1.0, "K", "J/mol")
