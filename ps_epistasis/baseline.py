# ps_epistasis/baseline.py
"""
BOOST-style SNP-SNP interaction test, used as a baseline comparator.

For the target A, each variant X_j and a binary phenotype Y, the statistic is
the difference of deviances between the logistic model with factor main
effects (A, X_j) and the full model adding their interaction. The sure
screening stage of BOOST is not implemented, since only the pairs involving
the target are tested.

See http://bioinformatics.ust.hk/BOOST.html for details on BOOST.
"""

import logging
import warnings
from functools import partial

import numpy as np
import pandas as pd
import statsmodels.api as sm
import statsmodels.formula.api as smf
from statsmodels.tools.sm_exceptions import PerfectSeparationError

from .parallel import run_tasks
from .validators import InputValidationError, check_genotypes, check_n_samples

logger = logging.getLogger(__name__)


def _deviance_ratio(column: np.ndarray, a: np.ndarray, y: np.ndarray) -> float:
    frame = pd.DataFrame({'a': a, 'x': column, 'y': y})
    family = sm.families.Binomial()
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            main = smf.glm("y ~ C(a) + C(x)", data=frame, family=family).fit()
            full = smf.glm("y ~ C(a) * C(x)", data=frame, family=family).fit()
    except (PerfectSeparationError, np.linalg.LinAlgError, ValueError) as e:
        logger.warning(f"Logistic fit failed for one variant: {e}")
        return float('nan')
    return float(main.deviance - full.deviance)


def boost_statistics(A, X, Y, n_jobs: int = 1) -> pd.Series:
    """
    Interaction statistic between every column of `X` and the target `A`.

    Args:
        A: Target variant coded 0, 1, 2.
        X: Genotype matrix excluding A, coded 0, 1, 2.
        Y: Binary phenotype.
        n_jobs: Number of parallel workers.

    Returns:
        pd.Series: One deviance difference per column of X.
    """
    a = check_genotypes(np.ravel(A), "target variant")
    columns = X.columns if isinstance(X, pd.DataFrame) else pd.RangeIndex(np.shape(X)[1])
    genotypes = check_genotypes(X)
    check_n_samples(genotypes.shape[0], a.shape[0], "target variant")
    y = np.asarray(Y)
    check_n_samples(genotypes.shape[0], y.shape[0], "phenotype")
    if y.dtype == bool:
        y = y.astype(int)
    if not set(np.unique(y).tolist()) <= {0, 1}:
        raise InputValidationError("BOOST requires a binary phenotype coded 0/1 or boolean")

    logger.info(f"Computing BOOST statistics for {genotypes.shape[1]} variants")
    stats = run_tasks(partial(_deviance_ratio, a=a, y=y), list(genotypes.T), n_jobs=n_jobs)
    return pd.Series(stats, index=columns, name='boost')
