"""PyMC implementation of the mixed-model library.

Each fit builds a random-intercept model for one target variable

    eta = X @ beta + u[subject],    u ~ Normal(0, sigma_subject)

with a Normal, Bernoulli-logit or ordered-logistic likelihood, and samples
it with NUTS. Completion picks one posterior draw per imputed dataset and
samples the missing target cells from the predictive distribution.
"""

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd
import pymc as pm
from numpy.random import default_rng
from scipy.special import expit
from sklearn.preprocessing import StandardScaler
from tqdm import tqdm

from src.pipeline.imputation.models import ModelFamily, ModelLibrary, parse_formula

logger = logging.getLogger(__name__)


@dataclass
class FittedModel:
    """Everything needed to draw completions for one target variable."""
    family: ModelFamily
    formula: str
    target: str
    fixed_effects: list
    group: str
    data: pd.DataFrame
    trace: object
    scaler: StandardScaler
    group_levels: list
    categories: list = None
    y_mean: float = 0.0
    y_sd: float = 1.0
    thin: int = 1


def _numeric(series):
    return pd.to_numeric(series.astype('object'), errors='coerce')


def _categories(series):
    if isinstance(series.dtype, pd.CategoricalDtype):
        return list(series.cat.categories)
    return sorted(series.dropna().unique())


class PyMCModelLibrary(ModelLibrary):
    def __init__(self, seed=123, thin=1, progressbar=False):
        self.seed = seed
        self.thin = max(1, int(thin))
        self.progressbar = progressbar

    def fit_linear(self, formula, data, chains=2, adapt_steps=300, draws=2000, workers=None):
        return self._fit(ModelFamily.LINEAR, formula, data, chains, adapt_steps, draws, workers)

    def fit_binomial(self, formula, data, chains=2, adapt_steps=300, draws=2000, workers=None):
        return self._fit(ModelFamily.BINOMIAL, formula, data, chains, adapt_steps, draws, workers)

    def fit_ordinal(self, formula, data, chains=2, adapt_steps=300, draws=2000, workers=None):
        return self._fit(ModelFamily.ORDINAL, formula, data, chains, adapt_steps, draws, workers)

    def _fit(self, family, formula, data, chains, adapt_steps, draws, workers):
        target, fixed_effects, group = parse_formula(formula)
        absent = [col for col in [target, group] + fixed_effects if col not in data.columns]
        if absent:
            raise ValueError(f"Columns not found in data: {absent}")

        X = data[fixed_effects].apply(_numeric)
        codes, group_levels = pd.factorize(data[group])
        response = data[target] if family is not ModelFamily.LINEAR else _numeric(data[target])
        rows = (response.notna() & X.notna().all(axis=1) & (codes >= 0)).to_numpy()
        if not rows.any():
            raise ValueError(f"No complete rows available to fit {target}")

        scaler = StandardScaler().fit(X[rows].to_numpy(dtype=float))
        X_obs = scaler.transform(X[rows].to_numpy(dtype=float))
        g_obs = codes[rows]

        categories = None
        y_mean, y_sd = 0.0, 1.0
        if family is ModelFamily.LINEAR:
            y_obs = response[rows].to_numpy(dtype=float)
            y_mean = float(y_obs.mean())
            y_sd = float(y_obs.std()) or 1.0
            y_obs = (y_obs - y_mean) / y_sd
        else:
            categories = _categories(data[target])
            if family is ModelFamily.BINOMIAL and len(categories) != 2:
                raise ValueError(f"Binomial model needs exactly 2 categories in {target}, found {len(categories)}")
            if family is ModelFamily.ORDINAL and len(categories) < 2:
                raise ValueError(f"Ordinal model needs at least 2 categories in {target}")
            lookup = {level: i for i, level in enumerate(categories)}
            y_obs = np.array([lookup[value] for value in response[rows]], dtype=int)

        coords = {'fixed': list(fixed_effects), 'subject': np.arange(len(group_levels))}
        logger.info(f"Sampling {target}: {len(y_obs)} observed rows, {len(group_levels)} subjects")

        with pm.Model(coords=coords):
            beta = pm.Normal('beta', mu=0, sigma=2.5, dims='fixed')
            sigma_subject = pm.HalfNormal('sigma_subject', sigma=1)
            z_subject = pm.Normal('z_subject', mu=0, sigma=1, dims='subject')
            u_subject = pm.Deterministic('u_subject', z_subject * sigma_subject, dims='subject')
            eta = pm.math.dot(X_obs, beta) + u_subject[g_obs]

            if family is ModelFamily.LINEAR:
                intercept = pm.Normal('intercept', mu=0, sigma=2.5)
                sigma = pm.HalfNormal('sigma', sigma=1)
                pm.Normal('y', mu=intercept + eta, sigma=sigma, observed=y_obs)
            elif family is ModelFamily.BINOMIAL:
                intercept = pm.Normal('intercept', mu=0, sigma=2.5)
                pm.Bernoulli('y', logit_p=intercept + eta, observed=y_obs)
            else:
                n_cuts = len(categories) - 1
                cutpoints = pm.Normal(
                    'cutpoints', mu=0, sigma=2.5, shape=n_cuts,
                    transform=pm.distributions.transforms.ordered,
                    initval=np.linspace(-1.5, 1.5, n_cuts)
                )
                pm.OrderedLogistic('y', eta=eta, cutpoints=cutpoints, observed=y_obs)

            trace = pm.sample(
                draws=draws,
                tune=adapt_steps,
                chains=chains,
                cores=workers or 1,
                random_seed=self.seed,
                progressbar=self.progressbar,
                return_inferencedata=True
            )

        return FittedModel(
            family=family,
            formula=formula,
            target=target,
            fixed_effects=list(fixed_effects),
            group=group,
            data=data.copy(),
            trace=trace,
            scaler=scaler,
            group_levels=list(group_levels),
            categories=categories,
            y_mean=y_mean,
            y_sd=y_sd,
            thin=self.thin,
        )

    def complete(self, model, m=5, rng=None):
        """Return ``m`` copies of the fitted data with the target filled in."""
        if rng is None:
            rng = default_rng(self.seed)

        data = model.data
        missing = data[model.target].isna().to_numpy()
        if not missing.any():
            logger.warning(f"No missing values in {model.target}; returning unchanged copies")
            return [data.copy() for _ in range(m)]

        X = data.loc[missing, model.fixed_effects].apply(_numeric)
        if X.isna().any().any():
            logger.warning(f"Missing predictors in rows to impute for {model.target}, using predictor means")
        X_mis = np.nan_to_num(model.scaler.transform(X.to_numpy(dtype=float)), nan=0.0)
        level_index = {level: i for i, level in enumerate(model.group_levels)}
        codes_mis = np.array([level_index.get(value, -1) for value in data.loc[missing, model.group]])

        posterior = model.trace.posterior.isel(draw=slice(None, None, model.thin))
        stacked = posterior.stack(sample=('chain', 'draw'))

        def draws_of(name):
            return stacked[name].transpose('sample', ...).values

        beta = draws_of('beta')
        u_subject = draws_of('u_subject')
        sigma_subject = draws_of('sigma_subject')
        if model.family is ModelFamily.ORDINAL:
            cutpoints = draws_of('cutpoints')
        else:
            intercept = draws_of('intercept')
        if model.family is ModelFamily.LINEAR:
            sigma = draws_of('sigma')
        n_samples = beta.shape[0]

        completed_list = []
        for _ in tqdm(range(m), desc=f"Imputing {model.target}", leave=False):
            s = rng.integers(n_samples)
            u = np.where(
                codes_mis >= 0,
                u_subject[s][np.clip(codes_mis, 0, None)],
                rng.normal(0, sigma_subject[s], size=len(codes_mis))
            )
            eta = X_mis @ beta[s] + u

            if model.family is ModelFamily.LINEAR:
                mu = intercept[s] + eta
                values = (mu + rng.normal(0, sigma[s], size=len(mu))) * model.y_sd + model.y_mean
            elif model.family is ModelFamily.BINOMIAL:
                p = expit(intercept[s] + eta)
                idx = (rng.uniform(size=len(p)) < p).astype(int)
                values = [model.categories[i] for i in idx]
            else:
                # P(y <= k) = expit(c_k - eta)
                cdf = expit(cutpoints[s][None, :] - eta[:, None])
                idx = (rng.uniform(size=len(eta))[:, None] > cdf).sum(axis=1)
                values = [model.categories[i] for i in idx]

            completed = data.copy()
            completed.loc[missing, model.target] = values
            completed_list.append(completed)
        return completed_list
