import os
import argparse
import logging

from src.pipeline.imputation.config import get_default_config, load_config
from src.pipeline.imputation.diagnostics import quick_env_check
from src.pipeline.imputation.missing_data import plot_missing_summary
from src.pipeline.imputation.pipeline import ImputationPipeline
from src.pipeline.imputation.scaffold import create_project_structure
from src.pipeline.imputation.writer import write_processed_data

logger = logging.getLogger()


def configure_logging(log_file='imputation.log.txt', level=logging.INFO):
    handlers = [logging.StreamHandler()]
    if log_file:
        os.makedirs(os.path.dirname(log_file) or '.', exist_ok=True)
        handlers.insert(0, logging.FileHandler(log_file))
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=handlers
    )


def run_imputation(
    data_path,
    config_file=None,
    output_dir='output',
    target=None,
    n_imputations=None,
    model_library=None
):
    """
    Run the full imputation workflow on one CHARLS extract.

    Parameters:
    -----------
    data_path : str or Path
        CSV file with the raw CHARLS data
    config_file : str or Path, optional
        YAML configuration file. Defaults are used when omitted.
    output_dir : str, default='output'
        Root directory for imputed datasets and fitted models
    target : str, optional
        Variable to impute. Chosen from the missing-valued columns when omitted.
    n_imputations : int, optional
        Number of imputed datasets (config ``output.default_imputations`` by default)
    model_library : ModelLibrary, optional
        Backend used for fitting; PyMC when omitted

    Returns:
    --------
    PipelineState : Final state of the pipeline. ``stage`` tells how far it got.

    Example:
    --------
    state = run_imputation('data/raw/charlscm4.csv', config_file='config/charls.yaml')
    """
    config = load_config(config_file) if config_file is not None else get_default_config()
    paths = config['paths']

    pipeline = ImputationPipeline(config, model_library=model_library)
    pipeline.load(data_path).classify().analyze()

    processed_name = os.path.splitext(os.path.basename(str(data_path)))[0] + '_processed.csv'
    write_processed_data(pipeline.data, os.path.join(paths['processed'], processed_name))
    plot_missing_summary(pipeline.missing, os.path.join(paths['figures'], 'missing_data.png'))

    fit_result = pipeline.fit(target=target)
    if not fit_result.ok:
        logger.error(f"Stopping after failed fit: {fit_result.reason}")
        pipeline.print_summary()
        return pipeline.state

    generate_result = pipeline.generate(m=n_imputations)
    if not generate_result.ok:
        logger.error(f"Stopping after failed imputation: {generate_result.reason}")
        pipeline.print_summary()
        return pipeline.state

    pipeline.persist(output_dir)
    pipeline.print_summary()
    logger.info(f"Imputation complete. Results saved in {output_dir}")
    return pipeline.state


def main(argv=None):
    parser = argparse.ArgumentParser(description="CHARLS longitudinal multiple imputation")
    subparsers = parser.add_subparsers(dest='command', required=True)

    run_parser = subparsers.add_parser('run', help="Run the full imputation workflow")
    run_parser.add_argument('data_path')
    run_parser.add_argument('--config', default=None)
    run_parser.add_argument('--output-dir', default='output')
    run_parser.add_argument('--target', default=None)
    run_parser.add_argument('--m', type=int, default=None, help="Number of imputed datasets")

    init_parser = subparsers.add_parser('init', help="Create the project directory layout")
    init_parser.add_argument('root', nargs='?', default='.')
    init_parser.add_argument('--overwrite', action='store_true')

    subparsers.add_parser('check', help="Check the Python environment")

    args = parser.parse_args(argv)

    if args.command == 'init':
        create_project_structure(args.root, overwrite=args.overwrite)
        return 0
    if args.command == 'check':
        return 0 if quick_env_check() else 1

    state = run_imputation(args.data_path, config_file=args.config, output_dir=args.output_dir,
                           target=args.target, n_imputations=args.m)
    return 0 if state.results is not None else 1


if __name__ == "__main__":
    configure_logging()
    raise SystemExit(main())
