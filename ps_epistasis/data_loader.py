# ps_epistasis/data_loader.py
import logging
import pandas as pd
from pathlib import Path
from typing import List, Optional, Tuple

from .validators import InputValidationError, check_genotypes, check_unique_columns

logger = logging.getLogger(__name__)


class DataLoader:
    """Handles loading and alignment of genotype, phenotype and propensity tables."""

    @staticmethod
    def _read_table(path: Path) -> pd.DataFrame:
        if path.suffix.lower() in {'.csv', '.tsv'}:
            sep = ',' if path.suffix.lower() == '.csv' else '\t'
            return pd.read_csv(path, sep=sep, index_col=0)
        raise ValueError(f"Unsupported format: {path.suffix}")

    @staticmethod
    def _deduplicate(df: pd.DataFrame) -> pd.DataFrame:
        duplicates = df.index.duplicated(keep=False)
        if duplicates.any():
            logger.warning(f"Found {duplicates.sum()} duplicate sample IDs. Keeping first occurrence.")
            df = df[~df.index.duplicated(keep='first')]
        return df

    def load_genotype_matrix(self, file_path: str, output_dir: Optional[str] = None) -> pd.DataFrame:
        """
        Load a samples x variants dosage matrix and deduplicate samples.
        Column names are the variant identifiers and must be unique.
        """
        path = Path(file_path)
        logger.info(f"Loading genotype matrix from: {path}")
        df = self._deduplicate(self._read_table(path))
        check_unique_columns(df.columns)

        if output_dir:
            output_path = Path(output_dir) / "deduplicated_genotype_matrix.csv"
            output_path.parent.mkdir(parents=True, exist_ok=True)
            df.to_csv(output_path)
            logger.info(f"Saved deduplicated genotype matrix to: {output_path}")

        return df

    def load_phenotype(self, file_path: str) -> pd.DataFrame:
        """Load phenotype or metadata table indexed by sample ID."""
        path = Path(file_path)
        logger.info(f"Loading phenotype from: {path}")
        return self._deduplicate(self._read_table(path))

    def load_propensity(self, file_path: str) -> pd.DataFrame:
        """Load a precomputed two-column propensity table indexed by sample ID."""
        path = Path(file_path)
        logger.info(f"Loading propensity scores from: {path}")
        df = self._deduplicate(self._read_table(path))
        if df.shape[1] != 2:
            raise InputValidationError(f"propensity table must have 2 columns, found {df.shape[1]}")
        return df

    def load_variant_list(self, file_path: str) -> List[str]:
        """Load variant identifiers, one per line."""
        path = Path(file_path)
        logger.info(f"Loading variant list from: {path}")
        return [line.strip() for line in path.read_text().splitlines() if line.strip()]

    def align_data(self, genotypes: pd.DataFrame, phenotype: Optional[pd.DataFrame], label_column: str,
                   propensity: Optional[pd.DataFrame] = None,
                   output_dir: Optional[str] = None) -> Tuple[pd.DataFrame, pd.Series, Optional[pd.DataFrame]]:
        """
        Align genotypes, phenotype and propensity scores on their common samples.
        If phenotype is None, the label column is taken from the genotype table.

        Returns:
            Tuple[pd.DataFrame, pd.Series, Optional[pd.DataFrame]]: Aligned genotypes, phenotype
            and propensity scores.

        Raises:
            ValueError: If no common samples or the label column is missing.
            InputValidationError: If genotypes are missing or outside {0, 1, 2}.
        """
        logger.info("Aligning genotype and phenotype data...")

        if phenotype is not None:
            if label_column not in phenotype.columns:
                raise ValueError(f"Label column '{label_column}' not found in phenotype table.")
            labels = phenotype[label_column]
        else:
            if label_column not in genotypes.columns:
                raise ValueError(f"Label column '{label_column}' not found in genotype data.")
            labels = genotypes[label_column]
            genotypes = genotypes.drop(columns=[label_column])

        common = genotypes.index.intersection(labels.index)
        if propensity is not None:
            common = common.intersection(propensity.index)
        if common.empty:
            raise ValueError("No common samples between the input tables.")

        labels = labels.loc[common]
        non_na_mask = ~labels.isna()
        if (~non_na_mask).any():
            logger.info(f"Dropping {(~non_na_mask).sum()} samples with missing phenotype.")
        common = common[non_na_mask.to_numpy()]

        aligned = genotypes.loc[common]
        check_genotypes(aligned.to_numpy())
        labels = labels.loc[common].infer_objects()
        if labels.dtype == bool:
            labels = labels.astype(int)
        aligned_propensity = propensity.loc[common] if propensity is not None else None

        if output_dir:
            output_path = Path(output_dir)
            output_path.mkdir(parents=True, exist_ok=True)
            aligned.to_csv(output_path / "aligned_genotype_matrix.csv")
            labels.to_csv(output_path / "aligned_phenotype.csv")
            logger.info(f"Saved aligned data to: {output_path}")

        logger.info(f"Aligned data: {len(labels)} samples, {aligned.shape[1]} variants retained.")
        return aligned, labels, aligned_propensity
