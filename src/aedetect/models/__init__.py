"""Neural network models."""

from aedetect.models.autoencoder import (
    Autoencoder,
    BatchSampler,
    TrainingHistory,
    compute_threshold,
    fit_autoencoder,
    get_threshold,
)
from aedetect.models.vae import VAE, VAEModel

__all__ = [
    "Autoencoder",
    "BatchSampler",
    "TrainingHistory",
    "VAE",
    "VAEModel",
    "compute_threshold",
    "fit_autoencoder",
    "get_threshold",
]
