"""Environment checks for running the imputation pipeline."""

import sys
import logging
import platform
from importlib import metadata

logger = logging.getLogger(__name__)

REQUIRED_PACKAGES = ['pandas', 'numpy', 'pymc', 'arviz', 'pyyaml', 'joblib']
MIN_PYTHON = (3, 9)


def package_versions(packages=REQUIRED_PACKAGES):
    """Return ``{package: version or None}`` for installed distributions."""
    versions = {}
    for pkg in packages:
        try:
            versions[pkg] = metadata.version(pkg)
        except metadata.PackageNotFoundError:
            versions[pkg] = None
    return versions


def sampler_available():
    """Check that PyMC imports and PyTensor has a C++ compiler to build samplers with."""
    try:
        import pymc  # noqa: F401
        import pytensor
    except ImportError as e:
        logger.warning(f"PyMC: NOT AVAILABLE - {e}")
        return False
    if not pytensor.config.cxx:
        logger.warning("PyTensor: no C++ compiler configured, sampling will be slow")
        return False
    return True


def check_environment(packages=REQUIRED_PACKAGES):
    logger.info("=== ENVIRONMENT DIAGNOSTICS ===")
    logger.info(f"Python Version: {platform.python_version()}")

    versions = package_versions(packages)
    for pkg, version in versions.items():
        if version is None:
            logger.warning(f"{pkg}: NOT INSTALLED")
        else:
            logger.info(f"{pkg} version: {version}")

    return {
        'python_version': platform.python_version(),
        'python_ok': sys.version_info[:2] >= MIN_PYTHON,
        'packages': versions,
        'packages_ok': all(version is not None for version in versions.values()),
        'sampler_ok': sampler_available(),
    }


def quick_env_check(packages=REQUIRED_PACKAGES):
    """Log a READY / NEEDS SETUP verdict and return whether the environment is usable."""
    status = check_environment(packages)
    overall_ok = status['python_ok'] and status['packages_ok'] and status['sampler_ok']
    logger.info(f"Overall status: {'READY' if overall_ok else 'NEEDS SETUP'}")

    if not overall_ok:
        logger.warning("Fix these issues first:")
        if not status['sampler_ok']:
            logger.warning("  - Install PyMC and a C++ compiler for PyTensor")
        if not status['packages_ok']:
            missing = [pkg for pkg, version in status['packages'].items() if version is None]
            logger.warning(f"  - Install missing packages: {', '.join(missing)}")
        if not status['python_ok']:
            logger.warning(f"  - Update Python to {'.'.join(map(str, MIN_PYTHON))}+")
    return overall_ok
