"""Random seed utilities for reproducibility."""

import random

import numpy as np
import torch


def set_global_seeds(seed: int = 42) -> None:
    """Set global random seeds for reproducibility.

    Args:
        seed: Random seed value
    """
    random.seed(seed)
    np.random.seed(seed)
    torch.manual_seed(seed)

    if torch.cuda.is_available():
        torch.cuda.manual_seed_all(seed)

        # For deterministic behavior
        torch.backends.cudnn.deterministic = True
        torch.backends.cudnn.benchmark = False


def make_rng(seed: int | None = None) -> np.random.Generator:
    """Create an explicit generator for batch sampling and shuffling."""
    return np.random.default_rng(seed)
