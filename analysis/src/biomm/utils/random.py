"""
Deterministic seed derivation.

Every resampling plan owns an explicit base seed; per-draw seeds are derived
from it so no component reads or writes global RNG state.
"""

import numpy as np


def derive_seed(base_seed: int, *keys: int) -> int:
    """
    Derive a deterministic 32-bit seed from a base seed and integer keys.

    Args:
        base_seed: Base random seed (e.g. the plan seed)
        *keys: Additional non-negative integers (repeat, draw, attempt, ...)

    Returns:
        Seed in [0, 2**32 - 1]

    Examples:
        >>> derive_seed(0, 1, 2) == derive_seed(0, 1, 2)
        True
        >>> derive_seed(0, 1, 2) == derive_seed(0, 2, 1)
        False
    """
    seq = np.random.SeedSequence([int(base_seed), *[int(k) for k in keys]])
    return int(seq.generate_state(1)[0])
