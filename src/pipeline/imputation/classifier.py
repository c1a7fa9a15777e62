"""Variable classification for CHARLS data."""

import logging
from dataclasses import dataclass, field

import pandas as pd

from src.pipeline.imputation.config import VARIABLE_CATEGORIES
from src.pipeline.imputation.models import ModelFamily

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VariableClassification:
    """Columns of the current table grouped by statistical type.

    ``excluded`` lists the names that were present and have been dropped.
    ``rescaled`` lists the percentage columns already divided by 100.
    """
    binary: tuple = ()
    ordinal: tuple = ()
    continuous: tuple = ()
    required: tuple = ()
    excluded: tuple = ()
    families: dict = field(default_factory=dict)
    rescaled: tuple = ()

    def as_dict(self):
        return {category: list(getattr(self, category)) for category in VARIABLE_CATEGORIES}

    def model_family(self, name):
        return self.families.get(name, ModelFamily.LINEAR)


def _intersect(names, columns):
    present = set(columns)
    return tuple(name for name in names if name in present)


def _as_unordered(series):
    if isinstance(series.dtype, pd.CategoricalDtype):
        return series.cat.as_unordered()
    return series.astype(pd.CategoricalDtype(ordered=False))


def _as_ordered(series):
    # Levels come from the sorted distinct values present in the data
    if isinstance(series.dtype, pd.CategoricalDtype):
        return series.cat.as_ordered()
    levels = sorted(series.dropna().unique())
    return series.astype(pd.CategoricalDtype(categories=levels, ordered=True))


def rescale_proportions(data, columns):
    """
    Convert percentage columns to proportions when their maximum exceeds 1.

    Returns the rescaled copy and the names of the columns that were divided.
    """
    data = data.copy()
    rescaled = []
    for col in columns:
        if col not in data.columns:
            continue
        values = pd.to_numeric(data[col], errors='coerce')
        if values.max(skipna=True) > 1:
            data[col] = values / 100
            rescaled.append(col)
            logger.info(f"Scaled {col} to proportion")
    return data, rescaled


def classify_variables(data, vocabulary, proportion_columns=(), rescaled=()):
    """
    Tag the columns of ``data`` with the categories of ``vocabulary``.

    Excluded columns are dropped before anything else so that they never
    show up in another category. Binary columns become unordered
    categoricals and ordinal columns ordered categoricals.

    Parameters:
    - data: Input DataFrame (not modified)
    - vocabulary: VariableVocabulary
    - proportion_columns: Columns stored as percentages to rescale to [0, 1]
    - rescaled: Proportion columns rescaled by an earlier pass, left as they are

    Returns:
    - prepared: Copy of data with exclusions dropped and types applied
    - classification: VariableClassification
    """
    excluded = _intersect(vocabulary.excluded, data.columns)
    prepared = data.drop(columns=list(excluded))
    if excluded:
        logger.info(f"Removed excluded variables: {', '.join(excluded)}")

    binary = _intersect(vocabulary.binary, prepared.columns)
    ordinal = _intersect(vocabulary.ordinal, prepared.columns)
    continuous = _intersect(vocabulary.continuous, prepared.columns)
    required = _intersect(vocabulary.required, prepared.columns)

    for col in binary:
        prepared[col] = _as_unordered(prepared[col])
    for col in ordinal:
        prepared[col] = _as_ordered(prepared[col])

    pending = [col for col in proportion_columns if col not in rescaled]
    newly_rescaled = []
    if pending:
        prepared, newly_rescaled = rescale_proportions(prepared, pending)

    families = {col: ModelFamily.BINOMIAL for col in binary}
    # A name listed as both binary and ordinal is fitted as ordinal
    families.update({col: ModelFamily.ORDINAL for col in ordinal})

    missing_required = [name for name in vocabulary.required if name not in prepared.columns]
    if missing_required:
        logger.warning(f"Required variables not found in data: {missing_required}")

    classification = VariableClassification(
        binary=binary,
        ordinal=ordinal,
        continuous=continuous,
        required=required,
        excluded=excluded,
        families=families,
        rescaled=tuple(dict.fromkeys(tuple(rescaled) + tuple(newly_rescaled))),
    )
    logger.info("CHARLS variable types applied")
    return prepared, classification
