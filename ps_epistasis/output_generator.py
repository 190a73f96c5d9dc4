# ps_epistasis/output_generator.py
"""
Writes analysis results: score tables as CSV and a JSON summary with run
metadata and per-method variant rankings.
"""

import json
import logging
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Dict, List

import pandas as pd

from .config import EpistasisConfig

logger = logging.getLogger(__name__)


class OutputGenerator:
    """Exports the results dictionary produced by EpistasisDetector.run."""

    def __init__(self, config: EpistasisConfig):
        self.config = config

    @staticmethod
    def rankings(scores: pd.DataFrame) -> Dict[str, List[Dict]]:
        """Variants ordered by decreasing score for every method."""
        ranked = {}
        for method in scores.columns:
            column = scores[method].sort_values(ascending=False, kind='mergesort')
            ranked[method] = [{'variant': str(v), 'score': float(s)} for v, s in column.items()]
        return ranked

    def write(self, results: Dict, target: str, output_dir: str) -> Dict[str, Path]:
        output_path = Path(output_dir)
        output_path.mkdir(parents=True, exist_ok=True)
        written = {}

        if 'csv' in self.config.output_formats:
            written['scores'] = output_path / "stability_scores.csv"
            results['scores'].to_csv(written['scores'], index_label='variant')
            written['propensity'] = output_path / "propensity_scores.csv"
            results['propensity'].to_csv(written['propensity'], index_label='sample')
            if 'boost' in results:
                written['boost'] = output_path / "boost_statistics.csv"
                results['boost'].to_csv(written['boost'], index_label='variant')

        if 'json' in self.config.output_formats:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            summary = {
                'target': target,
                'created': timestamp,
                'config': asdict(self.config),
                'n_samples': int(results['propensity'].shape[0]),
                'n_variants': int(results['scores'].shape[0]),
                'rankings': self.rankings(results['scores']),
            }
            if 'boost' in results:
                summary['boost'] = {str(k): (None if pd.isna(v) else float(v))
                                    for k, v in results['boost'].items()}
            written['json'] = output_path / f"epistasis_results_{timestamp}.json"
            with open(written['json'], 'w') as f:
                json.dump(summary, f, indent=2)

        for name, path in written.items():
            logger.info(f"Saved {name} to: {path}")
        return written
