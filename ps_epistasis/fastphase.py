# ps_epistasis/fastphase.py
"""
fastPHASE collaborator: fits the haplotype-cluster HMM with the external
fastPHASE executable and converts it into a genotype-level PropensityModel.

The fastPHASE executable can be downloaded from http://scheet.org/software.html.
Because the forward algorithm is quadratic in the number of latent states,
and the genotype model has K(K+1)/2 of them, K around 12 and 20 to 25 EM
iterations are sensible choices.

Reference: Scheet, P. & Stephens, M. (2006). A fast and flexible statistical
model for large-scale population genotype data. American Journal of Human
Genetics 78(4), 629-644.
"""

import logging
import subprocess
import tempfile
from pathlib import Path
from typing import List, Optional, Protocol, Union

import numpy as np

from .hmm import PropensityModel
from .validators import InputValidationError, check_genotypes

logger = logging.getLogger(__name__)


class HMMFitter(Protocol):
    """Anything able to turn a genotype matrix into fitted HMM parameters."""

    def fit(self, genotypes) -> PropensityModel:
        ...


def write_inp(genotypes, path: Union[str, Path]) -> Path:
    """Write a genotype matrix in the fastPHASE input format (two haplotype lines per sample)."""
    X = check_genotypes(genotypes)
    path = Path(path)
    lines = [str(X.shape[0]), str(X.shape[1])]
    for i, row in enumerate(X):
        lines.append(f"# id{i + 1}")
        lines.append(''.join('1' if g >= 1 else '0' for g in row))
        lines.append(''.join('1' if g == 2 else '0' for g in row))
    path.write_text('\n'.join(lines) + '\n')
    logger.info(f"Wrote fastPHASE input for {X.shape[0]} samples x {X.shape[1]} SNPs to: {path}")
    return path


def _read_numeric(path: Path) -> np.ndarray:
    """Numeric rows of a fastPHASE output file; header or comment lines are skipped."""
    rows = []
    for line in path.read_text().splitlines():
        tokens = line.split()
        if not tokens:
            continue
        try:
            rows.append([float(t) for t in tokens])
        except ValueError:
            continue
    if not rows:
        raise InputValidationError(f"No numeric values found in {path}")
    return np.array(rows, dtype=float)


def _read_flipped(path: Path, n_positions: int) -> np.ndarray:
    """Loci where fastPHASE's internal allele '0' is our allele 1."""
    flipped: List[bool] = []
    for line in path.read_text().splitlines():
        tokens = line.split()
        if len(tokens) >= 2 and all(t in ('0', '1') for t in tokens[:2]):
            flipped.append(tokens[0] == '1')
    if len(flipped) != n_positions:
        logger.warning(f"Allele orientation file {path} lists {len(flipped)} loci, expected "
                       f"{n_positions}; keeping fastPHASE orientation")
        return np.zeros(n_positions, dtype=bool)
    return np.array(flipped)


def genotype_hmm(r: np.ndarray, alpha: np.ndarray, theta: np.ndarray) -> PropensityModel:
    """
    Genotype HMM over unordered pairs of haplotype clusters.

    Args:
        r: (p,) jump rates; r[j] governs the move from position j - 1 to j.
        alpha: (p, K) cluster weights.
        theta: (p, K) frequency of allele 1 within each cluster.
    """
    r = np.ravel(r)
    alpha = alpha / alpha.sum(axis=1, keepdims=True)
    theta = np.clip(theta, 0.0, 1.0)
    p, k = alpha.shape
    if theta.shape != (p, k) or r.shape[0] != p:
        raise InputValidationError(
            f"Inconsistent fastPHASE parameters: r {r.shape}, alpha {alpha.shape}, theta {theta.shape}")

    first, second = np.triu_indices(k)
    distinct = (first != second)

    p_init = alpha[0, first] * alpha[0, second] * np.where(distinct, 2.0, 1.0)

    transitions = np.empty((p - 1, first.size, first.size))
    for j in range(1, p):
        stay = np.exp(-r[j])
        hap = stay * np.eye(k) + (1.0 - stay) * alpha[j][None, :]
        pair = hap[np.ix_(first, first)] * hap[np.ix_(second, second)]
        swapped = hap[np.ix_(first, second)] * hap[np.ix_(second, first)]
        transitions[j - 1] = pair + distinct[None, :] * swapped
    transitions /= transitions.sum(axis=2, keepdims=True)

    t1, t2 = theta[:, first], theta[:, second]
    emissions = np.stack([
        (1 - t1) * (1 - t2),
        t1 * (1 - t2) + t2 * (1 - t1),
        t1 * t2,
    ], axis=1)

    return PropensityModel(p_init=p_init / p_init.sum(), transitions=transitions, emissions=emissions)


def load_fastphase_model(prefix: Union[str, Path]) -> PropensityModel:
    """Load `<prefix>_rhat.txt`, `_alphahat.txt`, `_thetahat.txt` and optional `_origchars`."""
    prefix = str(prefix)
    r = _read_numeric(Path(prefix + "_rhat.txt")).ravel()
    alpha = _read_numeric(Path(prefix + "_alphahat.txt"))
    theta = _read_numeric(Path(prefix + "_thetahat.txt"))
    char_file = Path(prefix + "_origchars")
    if char_file.exists():
        flipped = _read_flipped(char_file, theta.shape[0])
        theta[flipped] = 1.0 - theta[flipped]
    model = genotype_hmm(r, alpha, theta)
    logger.info(f"Loaded fastPHASE model: {model.n_positions} positions, {alpha.shape[1]} clusters, "
                f"{model.n_states} genotype states")
    return model


class FastPhaseFitter:
    """Runs the fastPHASE EM algorithm and loads the fitted parameters."""

    def __init__(self, fp_path: Union[str, Path] = "bin/fastPHASE", n_state: int = 12,
                 n_iter: int = 25, out_dir: Optional[Union[str, Path]] = None,
                 seed: Optional[int] = None):
        self.fp_path = Path(fp_path)
        self.n_state = n_state
        self.n_iter = n_iter
        self.out_dir = Path(out_dir) if out_dir else None
        self.seed = seed

    def command(self, inp_file: Path, out_prefix: Path) -> List[str]:
        cmd = [str(self.fp_path), "-Pp", "-T1", f"-K{self.n_state}", "-g", "-H-4", f"-C{self.n_iter}"]
        if self.seed is not None:
            cmd.append(f"-S{self.seed}")
        cmd += [f"-o{out_prefix}", str(inp_file)]
        return cmd

    def fit(self, genotypes) -> PropensityModel:
        if not self.fp_path.is_file():
            raise FileNotFoundError(
                f"fastPHASE executable not found at {self.fp_path}; download it from "
                "http://scheet.org/software.html")
        with tempfile.TemporaryDirectory() as tmp:
            work = self.out_dir or Path(tmp)
            work.mkdir(parents=True, exist_ok=True)
            inp_file = write_inp(genotypes, work / "genotypes.inp")
            out_prefix = work / "fastphase"
            cmd = self.command(inp_file, out_prefix)
            logger.info(f"Running fastPHASE: {' '.join(cmd)}")
            completed = subprocess.run(cmd, capture_output=True, text=True)
            if completed.returncode != 0:
                raise RuntimeError(f"fastPHASE failed with exit code {completed.returncode}: "
                                   f"{completed.stderr.strip()}")
            return load_fastphase_model(out_prefix)
