"""Multiple imputation pipeline for longitudinal CHARLS survey data.

This package loads a CHARLS extract, tags its variables by statistical type,
summarizes missing data and fits Bayesian mixed-effects models (via PyMC)
to generate multiply imputed datasets.

Basic Usage
-----------
>>> from src.pipeline.imputation import ImputationPipeline, load_config
>>>
>>> pipeline = ImputationPipeline(load_config('config/charls.yaml'))
>>> pipeline.load('data/raw/charlscm4.csv').classify().analyze()
>>> result = pipeline.fit(target='cesd10')
>>> if result.ok:
...     pipeline.generate(m=5)
...     pipeline.persist('output')
>>> pipeline.print_summary()

Modules
-------
config : Default configuration, YAML loading, variable vocabulary
classifier : Variable classification and type coercion
missing_data : Missing data summaries and plots
models : Model families, formulas and the model library interface
pymc_backend : PyMC implementation of the model library
pipeline : Pipeline state, stage functions and the pipeline class
writer : Saving imputed datasets and fitted models
diagnostics : Environment checks
scaffold : Project directory setup
"""

from .config import get_default_config, load_config, VariableVocabulary, CHARLS_VOCABULARY
from .classifier import VariableClassification, classify_variables
from .missing_data import MissingDataSummary, analyze_missing_data, plot_missing_summary
from .models import ModelFamily, ModelLibrary, build_formula, parse_formula
from .pymc_backend import FittedModel, PyMCModelLibrary
from .pipeline import (
    ImputationPipeline,
    PipelineState,
    StageResult,
    GenerationResult,
    Stage,
    PipelineError,
    PipelineStateError,
    TargetSelectionError,
    load_data,
    classify_data,
    analyze_data,
    fit_models,
    generate_imputations,
    persist_results,
    summarize,
    format_summary,
)
from .writer import write_imputed_datasets, read_imputed_datasets, save_models, load_models
from .diagnostics import check_environment, quick_env_check
from .scaffold import create_project_structure

__version__ = '1.0.0'

__all__ = [
    # Configuration
    'get_default_config',
    'load_config',
    'VariableVocabulary',
    'CHARLS_VOCABULARY',

    # Classification and missing data
    'VariableClassification',
    'classify_variables',
    'MissingDataSummary',
    'analyze_missing_data',
    'plot_missing_summary',

    # Model library
    'ModelFamily',
    'ModelLibrary',
    'build_formula',
    'parse_formula',
    'FittedModel',
    'PyMCModelLibrary',

    # Pipeline
    'ImputationPipeline',
    'PipelineState',
    'StageResult',
    'GenerationResult',
    'Stage',
    'PipelineError',
    'PipelineStateError',
    'TargetSelectionError',
    'load_data',
    'classify_data',
    'analyze_data',
    'fit_models',
    'generate_imputations',
    'persist_results',
    'summarize',
    'format_summary',

    # Output
    'write_imputed_datasets',
    'read_imputed_datasets',
    'save_models',
    'load_models',

    # Setup
    'check_environment',
    'quick_env_check',
    'create_project_structure',
]
