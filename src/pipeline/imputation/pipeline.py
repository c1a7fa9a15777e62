"""CHARLS longitudinal imputation pipeline.

The pipeline state is an immutable record. Each stage function takes a
state and returns a new one:

    load_data -> classify_data -> analyze_data -> fit_models
        -> generate_imputations -> persist_results

``fit_models`` and ``generate_imputations`` call the external model library
and return a ``StageResult`` so that a failed fit or generation is reported
together with its reason. ``ImputationPipeline`` keeps the latest state for
interactive use.
"""

import os
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum

import numpy as np
import pandas as pd
from numpy.random import default_rng

from src.pipeline.imputation.config import get_default_config, VariableVocabulary
from src.pipeline.imputation.classifier import classify_variables
from src.pipeline.imputation.missing_data import analyze_missing_data
from src.pipeline.imputation.models import build_formula
from src.pipeline.imputation.pymc_backend import PyMCModelLibrary
from src.pipeline.imputation.writer import write_imputed_datasets, save_models

logger = logging.getLogger(__name__)


class PipelineError(Exception):
    """Base class for pipeline errors."""


class PipelineStateError(PipelineError):
    """Raised when a stage is called before the stage it depends on."""


class TargetSelectionError(PipelineError):
    """Raised when no variable qualifies as an imputation target."""


class Stage(Enum):
    CREATED = 'created'
    LOADED = 'loaded'
    CLASSIFIED = 'classified'
    ANALYZED = 'analyzed'
    FITTED = 'fitted'
    GENERATED = 'generated'
    PERSISTED = 'persisted'


@dataclass(frozen=True, eq=False)
class GenerationResult:
    datasets: tuple
    n_imputations: int
    generated_at: str
    target: str


@dataclass(frozen=True, eq=False)
class PipelineState:
    config: dict
    data: pd.DataFrame = None
    classification: object = None
    missing: object = None
    models: dict = None
    results: GenerationResult = None
    artifacts: tuple = ()
    stage: Stage = Stage.CREATED


@dataclass(frozen=True, eq=False)
class StageResult:
    state: PipelineState
    ok: bool = True
    value: object = None
    reason: str = None


def new_state(config=None):
    return PipelineState(config=config or get_default_config())


def _require_data(state):
    if state.data is None:
        raise PipelineStateError("No data loaded")


def prepare_longitudinal_data(data, columns):
    """Apply the subject/wave types and drop the legacy row index column."""
    data = data.copy()
    subject_id = columns.get('subject_id')
    wave = columns.get('wave')
    row_index = columns.get('row_index')

    if subject_id in data.columns:
        data[subject_id] = data[subject_id].astype('category')
    if wave in data.columns:
        data[wave] = pd.to_numeric(data[wave], errors='coerce')
    if row_index and row_index in data.columns:
        data = data.drop(columns=[row_index])
        logger.info(f"Removed '{row_index}' column")

    logger.info("Longitudinal data structure prepared")
    return data


def load_data(state, file_path):
    logger.info(f"Loading data from: {file_path}")
    if not os.path.exists(file_path):
        raise FileNotFoundError(f"Data file not found: {file_path}")

    data = pd.read_csv(file_path, encoding='utf-8')
    data = prepare_longitudinal_data(data, state.config['columns'])
    logger.info(f"Data loaded: {len(data)} rows, {len(data.columns)} columns")
    return PipelineState(config=state.config, data=data, stage=Stage.LOADED)


def classify_data(state, vocabulary=None):
    _require_data(state)
    if vocabulary is None:
        vocabulary = VariableVocabulary.from_config(state.config)

    previous = state.classification
    data, classification = classify_variables(
        state.data, vocabulary, state.config.get('proportion_columns') or (),
        rescaled=previous.rescaled if previous is not None else ()
    )
    # Excluded columns are already gone on a second pass; keep the record of them
    if previous is not None and previous.excluded:
        excluded = tuple(dict.fromkeys(previous.excluded + classification.excluded))
        classification = replace(classification, excluded=excluded)

    # Everything derived from the earlier table is stale
    return replace(
        state, data=data, classification=classification,
        missing=None, models=None, results=None, artifacts=(), stage=Stage.CLASSIFIED
    )


def analyze_data(state):
    _require_data(state)
    logger.info("Analyzing missing data patterns...")
    return replace(state, missing=analyze_missing_data(state.data), stage=Stage.ANALYZED)


def _flatten_value(value):
    if isinstance(value, (list, tuple, np.ndarray)):
        if len(value) == 0:
            return np.nan
        if len(value) > 1:
            logger.warning(f"Nested value with {len(value)} elements, keeping the first")
        return value[0]
    return value


def flatten_list_columns(data):
    """Replace list-valued cells with plain scalars."""
    data = data.copy()
    for col in data.columns:
        if data[col].dtype != object:
            continue
        is_nested = data[col].map(lambda v: isinstance(v, (list, tuple, np.ndarray)))
        if is_nested.any():
            data[col] = data[col].map(_flatten_value).infer_objects()
            logger.info(f"Flattened list column {col}")
    return data


def select_target(data, preference=(), exclude=()):
    """
    Pick the variable to impute.

    The first name of ``preference`` that has missing values wins; otherwise
    the first column with missing values in table order. Columns in
    ``exclude`` are never chosen.
    """
    missing_cols = [col for col in data.columns if col not in exclude and data[col].isna().any()]
    if not missing_cols:
        raise TargetSelectionError("No variables with missing values found")
    for name in preference:
        if name in missing_cols:
            return name
    return missing_cols[0]


def fit_models(state, model_library, target=None, chains=None, adapt_steps=None, draws=None):
    """
    Fit the imputation model for one target variable.

    Returns:
    --------
    StageResult : ``ok`` is False when the model library failed; the state then
    has no fitted models and ``reason`` holds the error message.
    """
    _require_data(state)
    if state.classification is None:
        raise PipelineStateError("Variables not classified; run classification before fitting")

    config = state.config
    columns = config['columns']
    fixed_effects = (columns['age'], columns['wave'])
    group = columns['subject_id']

    data = flatten_list_columns(state.data)
    missing = state.missing
    if missing is not None and not data.isna().equals(state.data.isna()):
        # Empty lists became missing cells
        missing = analyze_missing_data(data)
    state = replace(state, data=data, missing=missing)

    if target is None:
        target = select_target(data, config.get('target_preference') or (), exclude=set(fixed_effects) | {group})
        logger.info(f"Selected target variable: {target}")
    elif target not in data.columns:
        raise ValueError(f"Target variable not found in data: {target}")
    elif not data[target].isna().any():
        logger.warning(f"Target variable {target} has no missing values")

    mcmc = config['mcmc']
    parallel = config.get('parallel', {})
    workers = parallel.get('workers') if parallel.get('enabled') else 1
    family = state.classification.model_family(target)
    formula = build_formula(target, fixed_effects, group)

    try:
        model = model_library.fit(
            family, formula, data,
            chains=chains if chains is not None else mcmc['chains'],
            adapt_steps=adapt_steps if adapt_steps is not None else mcmc['adapt_steps'],
            draws=draws if draws is not None else mcmc['draws'],
            workers=workers
        )
    except Exception as e:
        logger.error(f"Model fitting failed for {target}: {e}")
        return StageResult(state=replace(state, models=None, results=None), ok=False, reason=str(e))

    models = {target: model}
    logger.info(f"Fitted {family.value} model for {target}")
    return StageResult(state=replace(state, models=models, results=None, stage=Stage.FITTED), value=models)


def generate_imputations(state, model_library, m=None, rng=None):
    """Draw ``m`` completed datasets from the first fitted model."""
    if not state.models:
        raise PipelineStateError("No fitted models; run fitting before generating imputations")
    if m is None:
        m = state.config['output']['default_imputations']
    if m < 1:
        raise ValueError(f"Number of imputations must be positive, got {m}")
    if rng is None:
        rng = default_rng(state.config.get('seed'))

    target, model = next(iter(state.models.items()))
    logger.info(f"Generating {m} imputed datasets for {target}")
    try:
        datasets = list(model_library.complete(model, m=m, rng=rng))
        if len(datasets) != m:
            raise ValueError(f"Model library returned {len(datasets)} datasets, expected {m}")
    except Exception as e:
        logger.error(f"Imputation failed for {target}: {e}")
        return StageResult(state=replace(state, results=None), ok=False, reason=str(e))

    results = GenerationResult(
        datasets=tuple(datasets),
        n_imputations=m,
        generated_at=datetime.now().isoformat(timespec='seconds'),
        target=target,
    )
    logger.info(f"Imputation results: {m} datasets generated")
    return StageResult(state=replace(state, results=results, stage=Stage.GENERATED), value=results)


def persist_results(state, output_dir, save_fitted_models=None):
    if state.results is None:
        raise PipelineStateError("No imputation results; run generation before persisting")
    if save_fitted_models is None:
        save_fitted_models = state.config['output'].get('save_models', True)

    imputed_dir = os.path.join(output_dir, 'imputed')
    models_dir = os.path.join(output_dir, 'models')
    os.makedirs(imputed_dir, exist_ok=True)
    os.makedirs(models_dir, exist_ok=True)

    paths = write_imputed_datasets(state.results.datasets, imputed_dir)
    if save_fitted_models:
        paths.append(save_models(state.models, os.path.join(models_dir, 'fitted_models.joblib')))
    return replace(state, artifacts=tuple(paths), stage=Stage.PERSISTED)


def summarize(state):
    """Collect a report of the state, leaving out sections that have not been computed."""
    report = {'stage': state.stage.value}
    columns = state.config['columns']

    if state.data is not None:
        data = state.data
        section = {'n_rows': len(data), 'n_columns': len(data.columns)}
        if columns['subject_id'] in data.columns:
            section['n_subjects'] = int(data[columns['subject_id']].nunique())
        if columns['wave'] in data.columns:
            section['waves'] = sorted(data[columns['wave']].dropna().unique().tolist())
        report['data'] = section

    if state.classification is not None:
        report['classification'] = {
            category: len(names) for category, names in state.classification.as_dict().items()
        }

    if state.missing is not None:
        report['missing'] = {
            'total_missing': state.missing.total_missing,
            'n_variables': len(state.missing.summary),
            'complete_cases': state.missing.complete_cases,
        }

    if state.models is not None:
        report['n_models'] = len(state.models)

    if state.results is not None:
        report['n_imputations'] = state.results.n_imputations

    return report


def format_summary(report):
    rule = '=' * 50
    lines = [rule, 'CHARLS LONGITUDINAL IMPUTATION PIPELINE SUMMARY', rule]
    data = report.get('data')
    if data:
        lines.append(f"Data: {data['n_rows']} observations, {data['n_columns']} variables")
        if 'n_subjects' in data:
            lines.append(f"Longitudinal structure: {data['n_subjects']} subjects")
        if 'waves' in data:
            lines.append(f"Time waves: {', '.join(str(w) for w in data['waves'])}")
    if 'classification' in report:
        lines.append('Variable classification:')
        for category, count in report['classification'].items():
            lines.append(f"  {category}: {count} variables")
    if 'missing' in report:
        missing = report['missing']
        lines.append(f"Missing data: {missing['total_missing']} values across {missing['n_variables']} variables")
    if 'n_models' in report:
        lines.append(f"Fitted models: {report['n_models']}")
    if 'n_imputations' in report:
        lines.append(f"Imputation results: {report['n_imputations']} datasets generated")
    lines.append(rule)
    return '\n'.join(lines)


class ImputationPipeline:
    """Convenience wrapper that keeps the latest ``PipelineState``.

    Stage methods return ``self`` except ``fit`` and ``generate``, which
    return the ``StageResult`` of the call.
    """

    def __init__(self, config=None, model_library=None, vocabulary=None):
        self.config = config or get_default_config()
        self.vocabulary = vocabulary or VariableVocabulary.from_config(self.config)
        if model_library is None:
            model_library = PyMCModelLibrary(seed=self.config.get('seed'), thin=self.config['mcmc'].get('thin', 1))
        self.model_library = model_library
        self.state = new_state(self.config)
        logger.info("ImputationPipeline initialized")

    @property
    def data(self):
        return self.state.data

    @property
    def classification(self):
        return self.state.classification

    @property
    def missing(self):
        return self.state.missing

    @property
    def models(self):
        return self.state.models

    @property
    def results(self):
        return self.state.results

    def load(self, file_path):
        self.state = load_data(self.state, file_path)
        return self

    def classify(self):
        self.state = classify_data(self.state, self.vocabulary)
        return self

    def analyze(self):
        self.state = analyze_data(self.state)
        return self

    def fit(self, target=None, chains=None, adapt_steps=None, draws=None):
        result = fit_models(self.state, self.model_library, target=target,
                            chains=chains, adapt_steps=adapt_steps, draws=draws)
        self.state = result.state
        return result

    def generate(self, m=None, rng=None):
        result = generate_imputations(self.state, self.model_library, m=m, rng=rng)
        self.state = result.state
        return result

    def persist(self, output_dir):
        self.state = persist_results(self.state, output_dir)
        return list(self.state.artifacts)

    def summarize(self):
        return summarize(self.state)

    def print_summary(self):
        logger.info('\n' + format_summary(self.summarize()))
