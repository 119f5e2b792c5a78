import numpy as np
import pandas as pd
import pytest

import variables
from functions import build_hazard_table, prepare_cohort


class ScriptedRng:
    """Random source whose random() returns queued values, in order."""

    def __init__(self, *values):
        self.values = list(values)
        self.calls = 0

    def random(self):
        self.calls += 1
        return self.values.pop(0)


def make_cohort(n=300, seed=0):
    rng = np.random.default_rng(seed)
    diagnosed = rng.random(n) < 0.3
    time_at_diagnosis = np.where(diagnosed, rng.integers(300, 1000, n), 0)
    dies_of_OvC = diagnosed & (rng.random(n) < 0.5)
    time_at_OvarianDeath = np.where(dies_of_OvC, time_at_diagnosis + 24, 0)
    time_at_OCMdeath = rng.integers(300, 1081, n)
    return pd.DataFrame({'time_at_diagnosis': time_at_diagnosis,
                         'time_at_OvarianDeath': time_at_OvarianDeath,
                         'time_at_OCMdeath': time_at_OCMdeath})


@pytest.fixture
def cohort():
    return prepare_cohort(make_cohort())


@pytest.fixture(scope='session')
def hazard_table():
    return build_hazard_table(variables.procedure_counts, variables.population_counts,
                              variables.age_bands, variables.v_procedure, variables.n_months)


@pytest.fixture
def scripted_rng():
    return ScriptedRng
