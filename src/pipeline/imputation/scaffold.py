"""Project layout setup for a new CHARLS imputation workspace."""

import logging
from pathlib import Path

import yaml

from src.pipeline.imputation.config import get_default_config

logger = logging.getLogger(__name__)

CONFIG_FILENAME = 'charls.yaml'

README_TEMPLATE = """# CHARLS Longitudinal Imputation

## Layout

- `{raw}/` - raw input data (place `charlscm4.csv` here)
- `{processed}/` - prepared data written by the pipeline
- `{imputed}/` - imputed datasets
- `{models}/` - fitted model files
- `{figures}/` - missing data plots
- `config/{config_file}` - variable lists and MCMC settings

## Usage

    python run_imputation.py check
    python run_imputation.py run {raw}/charlscm4.csv --config config/{config_file}
"""


def create_project_structure(root='.', config=None, overwrite=False):
    """
    Create the directory layout and write the default configuration and README.

    Existing files are left alone unless ``overwrite`` is set.

    Returns:
    --------
    list : Paths of the directories and files created
    """
    root = Path(root)
    config = config or get_default_config()
    created = []

    directories = [root / path for path in config['paths'].values()]
    directories += [root / 'config', root / 'logs']
    for directory in directories:
        if not directory.exists():
            directory.mkdir(parents=True)
            created.append(directory)

    files = {
        root / 'config' / CONFIG_FILENAME: yaml.safe_dump(config, sort_keys=False),
        root / 'README.md': README_TEMPLATE.format(config_file=CONFIG_FILENAME, **config['paths']),
    }
    for path, content in files.items():
        if path.exists() and not overwrite:
            logger.info(f"Keeping existing {path}")
            continue
        path.write_text(content, encoding='utf-8')
        created.append(path)

    logger.info(f"Project structure ready in {root.resolve()} ({len(created)} items created)")
    return created
