# ps_epistasis/__init__.py
"""
ps_epistasis: Pure epistasis detection with propensity scores

Detects interactions between a target variant and a panel of other variants
while correcting for linkage disequilibrium. Propensity scores P(A|X) of the
target are estimated with the forward algorithm on a hidden Markov model of
local genotype dependency, turned into modified outcomes (or OWL weights) and
the interacting variants are ranked by stability selection.
"""

__version__ = "0.1.0"

from .config import EpistasisConfig
from .core import EpistasisDetector, detect_epistasis, run_epistasis_analysis
from .hmm import PropensityModel, forward, forward_sample
from .outcome import Method, RegressionInput
from .propensity import propensity_scores
from .simulation import gen_model, merge_cluster, sample_snp, sim_phenotype
from .stability import StabilitySelector
from .validators import InputValidationError
