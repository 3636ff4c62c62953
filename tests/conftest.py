from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from growthmaps.core.data_containers import MemorySeries

# Ten irregular timesteps over four months on a 1 x 2 grid
TIMESTAMPS = pd.to_datetime(
    [
        "2016-01-03 09:00",
        "2016-01-06 15:00",
        "2016-02-03 10:00",
        "2016-02-03 14:00",
        "2016-02-18 10:00",
        "2016-03-03 03:00",
        "2016-03-03 08:00",
        "2016-04-03 14:00",
        "2016-04-04 10:00",
        "2016-04-16 14:00",
    ]
)
STRESS = [
    [1.0, 2.0],
    [1.0, 2.0],
    [2.0, 3.0],
    [3.0, 4.0],
    [2.5, 3.5],
    [4.0, 5.0],
    [5.0, 6.0],
    [6.0, 7.0],
    [6.0, 7.0],
    [6.0, 7.0],
]
TEMP = [270.0, 280.0]


def make_stacks(stress=STRESS, temp=TEMP):
    return [
        {"stress": np.array([row], dtype=float), "temp": np.array([temp])}
        for row in stress
    ]


@pytest.fixture
def stress_series():
    return MemorySeries(TIMESTAMPS, make_stacks())
