# ps_epistasis/parallel.py
"""
Task farm used by the forward evaluator and the stability selection engine.

Units of work are independent and return immutable results; callers
aggregate them in any order. When the requested joblib backend cannot be
used, or its worker pool breaks, the work runs sequentially and a
RuntimeWarning is emitted.
"""

import logging
import warnings
from concurrent.futures.process import BrokenProcessPool
from pickle import PicklingError
from typing import Callable, Iterable, List

from joblib import Parallel, delayed
from joblib.externals.loky.process_executor import TerminatedWorkerError
from joblib.parallel import BACKENDS

logger = logging.getLogger(__name__)


def _sequential(func: Callable, tasks: List) -> List:
    return [func(task) for task in tasks]


def run_tasks(func: Callable, tasks: Iterable, n_jobs: int = 1,
              backend: str = 'loky', max_nbytes: str = '1M') -> List:
    """
    Apply `func` to every task, in parallel when `n_jobs` != 1.

    Large numpy arguments are memory-mapped by joblib once they exceed
    `max_nbytes`, so workers share them read-only.
    """
    tasks = list(tasks)
    if n_jobs == 1 or len(tasks) <= 1:
        return _sequential(func, tasks)

    if backend not in BACKENDS:
        message = f"Parallel backend '{backend}' is not available; running sequentially"
        logger.warning(message)
        warnings.warn(message, RuntimeWarning)
        return _sequential(func, tasks)

    try:
        return Parallel(n_jobs=n_jobs, backend=backend, max_nbytes=max_nbytes)(
            delayed(func)(task) for task in tasks
        )
    except (ImportError, OSError, BrokenProcessPool, TerminatedWorkerError, PicklingError) as e:
        message = f"Parallel execution unavailable ({e}); running sequentially"
        logger.warning(message)
        warnings.warn(message, RuntimeWarning)
        return _sequential(func, tasks)
