"""Missing data analysis."""

import os
import logging
from dataclasses import dataclass

import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class MissingDataSummary:
    """
    Missing-data statistics for one snapshot of a table.

    - summary: DataFrame with variable, n_missing, pct_missing for columns with
      at least one missing value, most-missing first
    - counts: Missing count of every column, in column order
    - total_missing: Missing cells across the whole table
    - complete_cases: Rows without any missing cell
    - n_rows: Row count at analysis time
    """
    summary: pd.DataFrame
    counts: pd.Series
    total_missing: int
    complete_cases: int
    n_rows: int

    @property
    def missing_columns(self):
        return list(self.summary['variable'])


def analyze_missing_data(data):
    counts = data.isna().sum()
    n_rows = len(data)

    summary = counts[counts > 0].rename_axis('variable').reset_index(name='n_missing')
    summary['pct_missing'] = summary['n_missing'] / n_rows * 100 if n_rows else 0.0
    # mergesort is stable, so ties keep column order
    summary = summary.sort_values('n_missing', ascending=False, kind='mergesort').reset_index(drop=True)

    result = MissingDataSummary(
        summary=summary,
        counts=counts,
        total_missing=int(counts.sum()),
        complete_cases=int((~data.isna().any(axis=1)).sum()),
        n_rows=n_rows,
    )
    logger.info("Missing data analysis complete")
    logger.info(f"  Total missing values: {result.total_missing}")
    logger.info(f"  Complete cases: {result.complete_cases}")
    return result


def plot_missing_summary(missing, output_path):
    """Save a bar chart of the percentage missing per variable."""
    if missing.summary.empty:
        logger.info("No missing values to plot")
        return None
    os.makedirs(os.path.dirname(output_path) or '.', exist_ok=True)

    fig, ax = plt.subplots(figsize=(8, max(2, 0.35 * len(missing.summary))))
    sns.barplot(data=missing.summary, x='pct_missing', y='variable', color='steelblue', ax=ax)
    ax.set_xlabel('% missing')
    ax.set_ylabel('')
    ax.set_title(f'Missing data ({missing.complete_cases}/{missing.n_rows} complete cases)')
    fig.tight_layout()
    fig.savefig(output_path, dpi=300)
    plt.close(fig)
    logger.info(f"Saved missing data plot to {output_path}")
    return output_path
