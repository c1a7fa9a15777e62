"""Writing imputed datasets and fitted models to disk."""

import os
import logging

import joblib
import pandas as pd

logger = logging.getLogger(__name__)


def write_imputed_datasets(datasets, directory, prefix='imputed_dataset'):
    """Write each dataset as ``<prefix>_<i>.csv`` numbered from 1 and return the paths."""
    os.makedirs(directory, exist_ok=True)
    paths = []
    for i, dataset in enumerate(datasets, start=1):
        path = os.path.join(directory, f'{prefix}_{i}.csv')
        dataset.to_csv(path, index=False, encoding='utf-8')
        paths.append(path)
    logger.info(f"Saved {len(paths)} imputed datasets to {directory}")
    return paths


def write_processed_data(data, path):
    os.makedirs(os.path.dirname(path) or '.', exist_ok=True)
    data.to_csv(path, index=False, encoding='utf-8')
    logger.info(f"Saved processed data to {path}")
    return path


def save_models(models, path):
    """Serialize the fitted-model map as a single joblib file."""
    os.makedirs(os.path.dirname(path) or '.', exist_ok=True)
    joblib.dump(models, path)
    logger.info(f"Saved {len(models)} fitted models to {path}")
    return path


def load_models(path):
    if not os.path.exists(path):
        raise FileNotFoundError(f"Model file not found: {path}")
    return joblib.load(path)


def read_imputed_datasets(directory, prefix='imputed_dataset'):
    """Read back the datasets written by ``write_imputed_datasets`` in order."""
    datasets = []
    i = 1
    while os.path.exists(os.path.join(directory, f'{prefix}_{i}.csv')):
        datasets.append(pd.read_csv(os.path.join(directory, f'{prefix}_{i}.csv')))
        i += 1
    return datasets
