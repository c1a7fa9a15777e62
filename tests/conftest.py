import os
import sys

import numpy as np
import pandas as pd
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.pipeline.imputation.config import get_default_config
from src.pipeline.imputation.models import ModelLibrary, parse_formula


class FakeModelLibrary(ModelLibrary):
    """Model library stand-in that records calls and fills targets with a constant."""

    def __init__(self, fail_fit=False, fail_complete=False):
        self.fail_fit = fail_fit
        self.fail_complete = fail_complete
        self.calls = []

    def _fit(self, family_name, formula, data, **mcmc):
        self.calls.append((family_name, formula, mcmc))
        if self.fail_fit:
            raise RuntimeError("chains did not converge")
        target, _, _ = parse_formula(formula)
        return {'family': family_name, 'formula': formula, 'target': target, 'data': data.copy()}

    def fit_linear(self, formula, data, **mcmc):
        return self._fit('linear', formula, data, **mcmc)

    def fit_binomial(self, formula, data, **mcmc):
        return self._fit('binomial', formula, data, **mcmc)

    def fit_ordinal(self, formula, data, **mcmc):
        return self._fit('ordinal', formula, data, **mcmc)

    def complete(self, model, m=5, rng=None):
        if self.fail_complete:
            raise RuntimeError("posterior draw failed")
        data = model['data']
        target = model['target']
        observed = data[target].dropna()
        fill = observed.mode().iloc[0] if len(observed) else 0
        completed_list = []
        for i in range(m):
            completed = data.copy()
            completed.loc[completed[target].isna(), target] = fill
            completed_list.append(completed)
        return completed_list


@pytest.fixture
def fake_library():
    return FakeModelLibrary()


@pytest.fixture
def config():
    config = get_default_config()
    config['parallel']['workers'] = 1
    return config


@pytest.fixture
def charls_frame():
    """Small longitudinal extract: 5 subjects x 2 waves with gaps in srh, cesd10 and nation."""
    rng = np.random.default_rng(7)
    n = 10
    return pd.DataFrame({
        'num': np.arange(1, n + 1),
        'ID': np.repeat([101, 102, 103, 104, 105], 2),
        'wave': np.tile([1, 2], 5),
        'age': rng.integers(50, 80, n).astype(float),
        'gender': np.tile([0, 1], 5),
        'srh': [1, 2, np.nan, 3, 4, 5, np.nan, 2, 3, 1],
        'nation': [0, 1, 1, 0, np.nan, 0, 1, 1, 0, 0],
        'cesd10': [5.0, 7.0, 8.0, np.nan, 12.0, 3.0, 4.0, np.nan, 9.0, 10.0],
        'hhcperc': [10.0, 20.0, 50.0, 80.0, 5.0, 0.0, 100.0, 40.0, 30.0, 60.0],
        'adyear': [2011] * n,
    })


@pytest.fixture
def charls_csv(tmp_path, charls_frame):
    path = tmp_path / "charlscm4.csv"
    charls_frame.to_csv(path, index=False)
    return str(path)
