"""
Output management for batch cost results.

Provides structured directory output with:
- results.json: Full results (jobs, statistics, meta)
- config.json: Echoed rate configuration
- details.csv: One row per job
- statistics.csv: Quantile and summary rows per column
- summary.txt: The text tables as printed on the terminal
- plots/: Generated visualizations (if matplotlib available)
"""

import csv
from pathlib import Path
from typing import Dict, Any
import json

from .report import render_batch, statistics_rows
from .runner import BatchResult, save_result


class OutputWriter:
    """
    Write batch results to a structured directory.

    Output structure:
        output_dir/
            results.json
            config.json
            details.csv
            statistics.csv
            summary.txt
            plots/
                cost_distribution.png
                rate_breakdown.png
    """

    def __init__(self, output_dir: str | Path):
        """
        Initialize writer.

        Args:
            output_dir: Path to output directory (will be created if needed)
        """
        self.output_dir = Path(output_dir)

    def write(self, result: BatchResult, generate_plots: bool = True) -> None:
        """
        Write all output files.

        Args:
            result: BatchResult to write
            generate_plots: Whether to generate plots (requires matplotlib)
        """
        self.output_dir.mkdir(parents=True, exist_ok=True)

        save_result(result, self.output_dir / 'results.json')
        self._write_config(result)
        self._write_details_csv(result)
        self._write_statistics_csv(result)
        self._write_summary(result)

        if generate_plots:
            self._write_plots(result)

    def _write_config(self, result: BatchResult) -> None:
        with open(self.output_dir / 'config.json', 'w') as f:
            json.dump(result.config.to_dict(), f, indent=2)

    def _write_details_csv(self, result: BatchResult) -> None:
        """Raw (unformatted) values, empty cells for absent values."""
        header = ['job_id'] + [f"{c.name} [{c.unit}]" for c in result.columns]
        with open(self.output_dir / 'details.csv', 'w', newline='') as f:
            writer = csv.writer(f)
            writer.writerow(header)
            for row in result.rows:
                values = [c.getter(row) for c in result.columns]
                writer.writerow([row.job_id] + ['' if v is None else str(v) for v in values])

    def _write_statistics_csv(self, result: BatchResult) -> None:
        header = [''] + [f"{c.name} [{c.unit}]" for c in result.columns]
        with open(self.output_dir / 'statistics.csv', 'w', newline='') as f:
            writer = csv.writer(f)
            writer.writerow(header)
            writer.writerows(statistics_rows(result))

    def _write_summary(self, result: BatchResult) -> None:
        with open(self.output_dir / 'summary.txt', 'w') as f:
            f.write(render_batch(result))
            f.write("\n")

    def _write_plots(self, result: BatchResult) -> None:
        """Generate and save plots."""
        try:
            from .plot import HAS_MATPLOTLIB, plot_cost_distribution, plot_rate_breakdown
            if not HAS_MATPLOTLIB:
                return
        except ImportError:
            return
        if not result.rows:
            return

        plots_dir = self.output_dir / 'plots'
        plots_dir.mkdir(exist_ok=True)
        plot_cost_distribution(result, save_path=plots_dir / 'cost_distribution.png', show=False)
        plot_rate_breakdown(result, save_path=plots_dir / 'rate_breakdown.png', show=False)


def load_result(output_dir: str | Path) -> Dict[str, Any]:
    """
    Load results from an output directory.

    Args:
        output_dir: Output directory path

    Returns:
        Dict containing the results
    """
    results_path = Path(output_dir) / 'results.json'
    with open(results_path, 'r') as f:
        return json.load(f)
