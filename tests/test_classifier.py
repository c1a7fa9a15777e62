import os
import sys

import numpy as np
import pandas as pd
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.pipeline.imputation.classifier import classify_variables, rescale_proportions
from src.pipeline.imputation.config import VariableVocabulary, CHARLS_VOCABULARY
from src.pipeline.imputation.models import ModelFamily


@pytest.fixture
def vocabulary():
    return VariableVocabulary(
        binary=('nation', 'marry'),
        ordinal=('srh', 'edu'),
        continuous=('age', 'cesd10'),
        required=('ID', 'wave'),
        excluded=('num',),
    )


@pytest.fixture
def frame():
    return pd.DataFrame({
        'ID': [1, 1, 2, 2],
        'wave': [1, 2, 1, 2],
        'num': [1, 2, 3, 4],
        'srh': [3, 1, np.nan, 2],
        'nation': [0, 1, 1, np.nan],
        'age': [60.0, 62.0, 55.0, 57.0],
    })


def test_ordinal_binary_and_excluded_scenario(frame, vocabulary):
    prepared, classification = classify_variables(frame, vocabulary)

    assert 'num' not in prepared.columns
    assert classification.excluded == ('num',)
    assert classification.ordinal == ('srh',)
    assert classification.binary == ('nation',)

    assert isinstance(prepared['srh'].dtype, pd.CategoricalDtype)
    assert prepared['srh'].cat.ordered
    assert list(prepared['srh'].cat.categories) == [1.0, 2.0, 3.0]
    assert isinstance(prepared['nation'].dtype, pd.CategoricalDtype)
    assert not prepared['nation'].cat.ordered

    # Input is left untouched
    assert 'num' in frame.columns
    assert frame['srh'].dtype == float


def test_categories_only_hold_present_vocabulary_names(frame, vocabulary):
    _, classification = classify_variables(frame, vocabulary)
    for category, names in classification.as_dict().items():
        for name in names:
            assert name in frame.columns
            assert name in vocabulary.names(category)
    assert 'marry' not in classification.binary
    assert 'edu' not in classification.ordinal


def test_excluded_name_never_lands_in_other_category(frame):
    vocabulary = VariableVocabulary(binary=('nation', 'num'), excluded=('num',))
    prepared, classification = classify_variables(frame, vocabulary)
    assert classification.binary == ('nation',)
    assert classification.excluded == ('num',)
    assert 'num' not in prepared.columns


def test_order_follows_vocabulary(frame):
    vocabulary = VariableVocabulary(continuous=('age', 'wave', 'ID'))
    _, classification = classify_variables(frame, vocabulary)
    assert classification.continuous == ('age', 'wave', 'ID')


def test_match_is_case_sensitive(frame):
    vocabulary = VariableVocabulary(ordinal=('SRH',))
    _, classification = classify_variables(frame, vocabulary)
    assert classification.ordinal == ()


def test_classification_is_idempotent(frame, vocabulary):
    once, first = classify_variables(frame, vocabulary)
    twice, second = classify_variables(frame, vocabulary)
    assert first == second

    # Re-classifying already coerced data keeps the same types and levels
    again, third = classify_variables(once, vocabulary)
    assert third.ordinal == first.ordinal and third.binary == first.binary
    pd.testing.assert_series_equal(again['srh'], once['srh'])
    pd.testing.assert_series_equal(again['nation'], once['nation'])


def test_model_family_tags(frame, vocabulary):
    _, classification = classify_variables(frame, vocabulary)
    assert classification.model_family('srh') is ModelFamily.ORDINAL
    assert classification.model_family('nation') is ModelFamily.BINOMIAL
    assert classification.model_family('age') is ModelFamily.LINEAR
    assert classification.model_family('not_a_column') is ModelFamily.LINEAR


def test_empty_vocabulary_yields_empty_categories(frame):
    prepared, classification = classify_variables(frame, VariableVocabulary())
    assert all(names == [] for names in classification.as_dict().values())
    pd.testing.assert_frame_equal(prepared, frame)


def test_rescale_proportions_only_when_percentages():
    data = pd.DataFrame({'hhcperc': [10.0, 50.0, np.nan], 'other': [1, 2, 3]})
    scaled, rescaled = rescale_proportions(data, ['hhcperc', 'absent'])
    assert scaled['hhcperc'].tolist()[:2] == [0.1, 0.5]
    assert rescaled == ['hhcperc']

    # Already proportions: unchanged
    again, rescaled = rescale_proportions(scaled, ['hhcperc'])
    pd.testing.assert_frame_equal(again, scaled)
    assert rescaled == []


def test_rescale_happens_once_above_one_hundred_percent():
    data = pd.DataFrame({'hhcperc': [50.0, 150.0]})
    once, first = classify_variables(data, VariableVocabulary(), ['hhcperc'])
    assert once['hhcperc'].tolist() == [0.5, 1.5]
    assert first.rescaled == ('hhcperc',)

    twice, second = classify_variables(once, VariableVocabulary(), ['hhcperc'], rescaled=first.rescaled)
    assert twice['hhcperc'].tolist() == [0.5, 1.5]
    assert second.rescaled == ('hhcperc',)


def test_charls_vocabulary_defaults():
    assert 'srh' in CHARLS_VOCABULARY.ordinal
    assert 'nation' in CHARLS_VOCABULARY.binary
    assert CHARLS_VOCABULARY.required == ('ID', 'wave', 'gender')
    assert 'num' in CHARLS_VOCABULARY.excluded
