import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__
from .config import METHODS
from .core import run_epistasis_analysis
from .utils import create_config_from_args, load_config_file

logger = logging.getLogger(__name__)


def validate_file_path(file_path: str, file_type: str) -> Path:
    """Validate if file exists and has correct extension."""
    path = Path(file_path)
    if not path.is_file():
        logger.error(f"{file_type} file does not exist: {file_path}")
        sys.exit(1)

    valid_extensions = {
        'genomic': ('.csv', '.tsv'),
        'phenotype': ('.csv', '.tsv'),
        'propensity': ('.csv', '.tsv'),
        'hmm': ('.npz',),
        'exclude': ('.txt', '.csv', '.tsv'),
        'config': ('.json', '.yml', '.yaml'),
    }

    if file_type in valid_extensions and path.suffix.lower() not in valid_extensions[file_type]:
        logger.error(f"Invalid {file_type} file format: {file_path}. Expected extensions: {valid_extensions[file_type]}")
        sys.exit(1)

    return path


def setup_argument_parser() -> argparse.ArgumentParser:
    """Set up the argument parser with organized argument groups."""
    parser = argparse.ArgumentParser(
        prog="ps-epistasis",
        description=(
            "Pure epistasis detection with propensity scores.\n"
            "Corrects the interaction test between a target variant and every other variant "
            "for linkage disequilibrium, and ranks the variants by stability selection."
        ),
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
        epilog="Example: ps-epistasis --genomic geno.csv --phenotype pheno.csv --label status "
               "--target rs123 --hmm model.npz --output-dir results/"
    )

    input_group = parser.add_argument_group('Required Input Files')
    input_group.add_argument("--genomic", required=True, type=str,
                             help="Genotype matrix (CSV/TSV, samples x variants, coded 0/1/2).")
    input_group.add_argument("--label", required=True, type=str,
                             help="Phenotype column in the phenotype table (or in the genotype table).")
    input_group.add_argument("--target", required=True, type=str,
                             help="Identifier of the target variant.")

    propensity_group = parser.add_argument_group('Propensity Source (exactly one)')
    source = propensity_group.add_mutually_exclusive_group(required=True)
    source.add_argument("--propensity", type=str, default=None,
                        help="Precomputed propensity scores (CSV/TSV, two columns P(A=0|X), P(A=1|X)).")
    source.add_argument("--hmm", type=str, default=None,
                        help="Fitted propensity HMM saved as .npz (p_init, transitions, emissions).")
    source.add_argument("--fastphase", type=str, default=None,
                        help="Path to the fastPHASE executable used to fit the HMM.")

    optional_group = parser.add_argument_group('Optional Parameters')
    optional_group.add_argument("--phenotype", type=str, default=None,
                                help="Phenotype table (CSV/TSV indexed by sample ID).")
    optional_group.add_argument("--exclude", type=str, default=None,
                                help="File listing variants to drop from the covariates, one per line.")
    optional_group.add_argument("--output-dir", type=str, default="results",
                                help="Directory to save results.")
    optional_group.add_argument("--output-format", type=str, default=None,
                                help="Comma-separated output formats (csv,json).")
    optional_group.add_argument("--methods", type=str, default=None,
                                help=f"Comma-separated detection methods among {METHODS}.")
    optional_group.add_argument("--mechanism", type=str, choices=["dominant", "recessive"], default=None,
                                help="Binarization rule for the target variant.")
    optional_group.add_argument("--resamples", type=int, default=None,
                                help="Number of subsamples for stability selection.")
    optional_group.add_argument("--subsample-fraction", type=float, default=None,
                                help="Fraction of samples in each subsample.")
    optional_group.add_argument("--n-lambdas", type=int, default=None,
                                help="Number of regularization strengths on the path.")
    optional_group.add_argument("--aggregation", type=str, choices=["area", "max"], default=None,
                                help="Aggregation of selection frequencies along the path.")
    optional_group.add_argument("--shift", type=float, default=None,
                                help="Propensity shift of the shifted modified outcome.")
    optional_group.add_argument("--nuisance-model", type=str, choices=["ridge", "lasso", "linear"],
                                default=None, help="Main-effect model of the robust modified outcome.")
    optional_group.add_argument("--seed", type=int, default=None, help="Random seed.")
    optional_group.add_argument("--n-jobs", type=int, default=None,
                                help="Parallel workers (-1 uses all cores).")
    optional_group.add_argument("--baseline", action="store_true",
                                help="Also compute the BOOST interaction statistic (binary phenotype).")
    optional_group.add_argument("--verbose", action="store_true", help="Enable debug logging.")

    config_group = parser.add_argument_group('Configuration')
    config_group.add_argument("--config", type=str, default=None,
                              help="Optional JSON/YAML config file with advanced parameters.")
    config_group.add_argument("--version", action="version", version=f"ps-epistasis {__version__}",
                              help="Show program's version number and exit.")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main function to orchestrate the pipeline."""
    parser = setup_argument_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)]
    )
    try:
        genomic_path = validate_file_path(args.genomic, 'genomic')
        phenotype_path = validate_file_path(args.phenotype, 'phenotype') if args.phenotype else None
        propensity_path = validate_file_path(args.propensity, 'propensity') if args.propensity else None
        hmm_path = validate_file_path(args.hmm, 'hmm') if args.hmm else None
        exclude_path = validate_file_path(args.exclude, 'exclude') if args.exclude else None

        logger.info("Starting epistasis detection pipeline")
        logger.info(f"Genotype data: {genomic_path}")
        logger.info(f"Target variant: {args.target}")
        logger.info(f"Label column: {args.label}")

        base = load_config_file(str(validate_file_path(args.config, 'config'))) if args.config else None
        config = create_config_from_args(args, base)

        run_epistasis_analysis(
            genomic_path=str(genomic_path),
            target=args.target,
            label_column=args.label,
            phenotype_path=str(phenotype_path) if phenotype_path else None,
            propensity_path=str(propensity_path) if propensity_path else None,
            hmm_path=str(hmm_path) if hmm_path else None,
            fastphase_path=args.fastphase,
            exclude_path=str(exclude_path) if exclude_path else None,
            output_dir=args.output_dir,
            baseline=args.baseline,
            config=config,
        )
        logger.info("Epistasis detection pipeline completed successfully")
        return 0

    except KeyboardInterrupt:
        logger.error("Pipeline interrupted by user")
        return 1
    except Exception as e:
        logger.error(f"Pipeline failed: {str(e)}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
