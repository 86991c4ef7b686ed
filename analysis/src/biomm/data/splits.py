"""
Resampling plans for both BioMM stages.

A plan is generated once per stage from an explicit seed and is immutable
afterwards; every block worker of a stage reads the same plan so held-out
scores line up sample by sample.

Supported schemes:
- Repeated (stratified) k-fold cross-validation
- Repeated bootstrap with out-of-bag complements
"""

import logging
from dataclasses import dataclass

import numpy as np
from sklearn.model_selection import RepeatedKFold, RepeatedStratifiedKFold

from biomm.data.schema import BINARY, outcome_kind
from biomm.utils.random import derive_seed

logger = logging.getLogger(__name__)


class ResamplingError(Exception):
    """Raised when a valid resampling plan cannot be generated."""

    pass


def _frozen(indices: np.ndarray) -> np.ndarray:
    arr = np.asarray(indices, dtype=np.intp).copy()
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True)
class Split:
    """One train/held-out pair of a plan."""

    repeat: int
    inner: int
    train: np.ndarray
    test: np.ndarray


@dataclass(frozen=True)
class ResamplingPlan:
    """Immutable set of splits for one stage.

    For ``cv`` the test sets of each repeat partition ``0..n_samples-1``.
    For ``bootstrap`` each train set holds ``n_samples`` draws with
    replacement and the test set is the sorted out-of-bag complement.
    """

    method: str
    n_samples: int
    seed: int
    n_repeats: int
    n_inner: int
    splits: tuple[Split, ...]

    def __len__(self) -> int:
        return len(self.splits)

    def __iter__(self):
        return iter(self.splits)

    def coverage(self) -> np.ndarray:
        """Number of times each sample is held out across the plan."""
        counts = np.zeros(self.n_samples, dtype=int)
        for split in self.splits:
            counts[split.test] += 1
        return counts

    def uncovered(self) -> np.ndarray:
        """Indices never held out (possible for small bootstrap plans)."""
        return np.flatnonzero(self.coverage() == 0)


def _cv_splits(
    n_samples: int,
    n_folds: int,
    n_repeats: int,
    seed: int,
    y: np.ndarray | None,
    stratify: bool,
) -> list[Split]:
    if n_folds > n_samples:
        raise ResamplingError(f"Cannot make {n_folds} folds from {n_samples} samples")

    use_strata = stratify and y is not None and outcome_kind(y) == BINARY
    if use_strata:
        _, class_counts = np.unique(np.asarray(y), return_counts=True)
        if class_counts.min() < n_folds:
            logger.warning(
                f"Smallest class has {class_counts.min()} samples (< {n_folds} folds); "
                "falling back to unstratified folds"
            )
            use_strata = False

    placeholder = np.zeros((n_samples, 1))
    if use_strata:
        splitter = RepeatedStratifiedKFold(
            n_splits=n_folds, n_repeats=n_repeats, random_state=seed
        )
        iterator = splitter.split(placeholder, np.asarray(y))
    else:
        splitter = RepeatedKFold(n_splits=n_folds, n_repeats=n_repeats, random_state=seed)
        iterator = splitter.split(placeholder)

    splits = []
    for split_idx, (train_idx, test_idx) in enumerate(iterator):
        repeat, inner = divmod(split_idx, n_folds)
        splits.append(Split(repeat, inner, _frozen(train_idx), _frozen(np.sort(test_idx))))
    return splits


def _bootstrap_splits(
    n_samples: int,
    n_draws: int,
    n_repeats: int,
    seed: int,
    max_attempts: int,
    y: np.ndarray | None = None,
) -> list[Split]:
    """Draw bootstrap splits; with a binary ``y`` every training draw holds both classes."""
    splits = []
    all_idx = np.arange(n_samples)
    labels = np.asarray(y) if y is not None and outcome_kind(y) == BINARY else None
    for repeat in range(n_repeats):
        for inner in range(n_draws):
            for attempt in range(max_attempts):
                rng = np.random.default_rng(derive_seed(seed, repeat, inner, attempt))
                draw = rng.integers(0, n_samples, size=n_samples)
                oob = np.setdiff1d(all_idx, draw, assume_unique=False)
                if oob.size == 0:
                    problem = "no out-of-bag samples"
                elif labels is not None and np.unique(labels[draw]).size < 2:
                    problem = "a single outcome class in its training rows"
                else:
                    break
                logger.debug(
                    f"Bootstrap draw (repeat={repeat}, draw={inner}) has {problem}; "
                    f"retrying (attempt {attempt + 1}/{max_attempts})"
                )
            else:
                raise ResamplingError(
                    f"Bootstrap draw (repeat={repeat}, draw={inner}) still has {problem} "
                    f"after {max_attempts} attempts"
                )
            splits.append(Split(repeat, inner, _frozen(draw), _frozen(oob)))
    return splits


def make_plan(
    n_samples: int,
    method: str = "cv",
    n_inner: int = 10,
    n_repeats: int = 1,
    seed: int = 0,
    y: np.ndarray | None = None,
    stratify: bool = True,
    max_attempts: int = 10,
) -> ResamplingPlan:
    """
    Generate a deterministic resampling plan.

    Parameters
    ----------
    n_samples : int
        Number of samples to resample
    method : str, default="cv"
        "cv" (k-fold) or "bootstrap"
    n_inner : int, default=10
        Folds per repeat (cv) or bootstrap draws per repeat (bootstrap)
    n_repeats : int, default=1
        Outer repeat count
    seed : int, default=0
        Seed stored on the plan; identical arguments give identical plans
    y : np.ndarray, optional
        Binary outcome used to stratify cv folds and to reject bootstrap
        training draws that contain a single class
    stratify : bool, default=True
        Whether to stratify cv folds on a binary ``y``
    max_attempts : int, default=10
        Redraws allowed for a degenerate bootstrap draw (no out-of-bag samples,
        or a single class in the training rows of a binary ``y``)

    Returns
    -------
    ResamplingPlan

    Raises
    ------
    ResamplingError
        If the plan is degenerate (too few samples, too many folds, or a
        bootstrap draw still degenerate after ``max_attempts``)

    Examples
    --------
    >>> plan = make_plan(40, "cv", n_inner=10, seed=0)
    >>> len(plan), sorted({len(s.test) for s in plan})
    (10, [4])
    """
    n_samples = int(n_samples)
    if n_samples < 2:
        raise ResamplingError(f"Resampling needs at least 2 samples, got {n_samples}")
    if n_inner < 1 or n_repeats < 1:
        raise ResamplingError(
            f"n_inner and n_repeats must be >= 1, got n_inner={n_inner}, n_repeats={n_repeats}"
        )
    if y is not None and len(y) != n_samples:
        raise ResamplingError(f"y has {len(y)} values but n_samples={n_samples}")

    method = (method or "").strip().lower()
    if method == "cv":
        if n_inner < 2:
            raise ResamplingError(f"cv requires at least 2 folds, got {n_inner}")
        splits = _cv_splits(n_samples, n_inner, n_repeats, seed, y, stratify)
    elif method == "bootstrap":
        splits = _bootstrap_splits(n_samples, n_inner, n_repeats, seed, max_attempts, y)
    else:
        raise ResamplingError(f"Unknown resampling method='{method}'. Valid: 'cv', 'bootstrap'")

    plan = ResamplingPlan(
        method=method,
        n_samples=n_samples,
        seed=int(seed),
        n_repeats=int(n_repeats),
        n_inner=int(n_inner),
        splits=tuple(splits),
    )

    if method == "bootstrap":
        oob_frac = np.mean([s.test.size for s in plan.splits]) / n_samples
        n_uncovered = plan.uncovered().size
        logger.debug(
            f"Bootstrap plan: {len(plan)} draws, mean OOB fraction={oob_frac:.3f}, "
            f"never held out={n_uncovered}"
        )
        if n_uncovered:
            logger.warning(
                f"{n_uncovered}/{n_samples} samples are never out-of-bag; "
                "their latent scores will be missing"
            )
    return plan


def plan_from_config(resampling, n_samples: int, y: np.ndarray | None = None) -> ResamplingPlan:
    """Build a plan from a ``ResamplingConfig``."""
    return make_plan(
        n_samples,
        method=resampling.method,
        n_inner=resampling.n_inner,
        n_repeats=resampling.n_repeats,
        seed=resampling.seed,
        y=y,
        stratify=resampling.stratify,
        max_attempts=resampling.max_attempts,
    )
