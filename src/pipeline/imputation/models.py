"""Model families and the model-library interface used for imputation."""

import re
import logging
from abc import ABC, abstractmethod
from enum import Enum

logger = logging.getLogger(__name__)

DEFAULT_FIXED_EFFECTS = ('age', 'wave')
DEFAULT_GROUP = 'ID'

_FORMULA_RE = re.compile(r'^\s*(?P<target>[^~\s]+)\s*~\s*(?P<rhs>.+?)\s*$')
_RANDOM_INTERCEPT_RE = re.compile(r'\(\s*1\s*\|\s*(?P<group>[^)\s]+)\s*\)')


class ModelFamily(Enum):
    LINEAR = 'lme'
    BINOMIAL = 'glme_binomial'
    ORDINAL = 'clmm'


def build_formula(target, fixed_effects=DEFAULT_FIXED_EFFECTS, group=DEFAULT_GROUP):
    """Return ``'target ~ x1 + x2 + (1 | group)'``."""
    terms = list(fixed_effects) + [f'(1 | {group})']
    return f"{target} ~ {' + '.join(terms)}"


def parse_formula(formula):
    """
    Split a random-intercept formula into its parts.

    Returns:
    - target: Response variable name
    - fixed_effects: List of fixed-effect column names
    - group: Grouping column of the random intercept
    """
    match = _FORMULA_RE.match(formula)
    if match is None:
        raise ValueError(f"Malformed formula: {formula!r}")
    rhs = match.group('rhs')
    groups = _RANDOM_INTERCEPT_RE.findall(rhs)
    if len(groups) != 1:
        raise ValueError(f"Formula needs exactly one random intercept term: {formula!r}")
    fixed_part = _RANDOM_INTERCEPT_RE.sub('', rhs)
    fixed_effects = [term.strip() for term in fixed_part.split('+') if term.strip()]
    return match.group('target'), fixed_effects, groups[0]


class ModelLibrary(ABC):
    """Abstract base class for Bayesian mixed-model backends.

    All backends must implement:
    - fit_linear / fit_binomial / fit_ordinal(formula, data, chains, adapt_steps, draws, workers):
      Return an opaque fitted-model handle
    - complete(model, m, rng=None): Return a list of m completed DataFrames
    """

    @abstractmethod
    def fit_linear(self, formula, data, chains=2, adapt_steps=300, draws=2000, workers=None):
        pass

    @abstractmethod
    def fit_binomial(self, formula, data, chains=2, adapt_steps=300, draws=2000, workers=None):
        pass

    @abstractmethod
    def fit_ordinal(self, formula, data, chains=2, adapt_steps=300, draws=2000, workers=None):
        pass

    @abstractmethod
    def complete(self, model, m=5, rng=None):
        pass

    def fit(self, family, formula, data, **mcmc):
        fitters = {
            ModelFamily.LINEAR: self.fit_linear,
            ModelFamily.BINOMIAL: self.fit_binomial,
            ModelFamily.ORDINAL: self.fit_ordinal,
        }
        logger.info(f"Fitting {family.value} model: {formula}")
        return fitters[family](formula, data, **mcmc)
