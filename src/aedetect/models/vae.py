"""Variational autoencoder used by the feature-search experiments."""

import logging
import math

import numpy as np
import torch
import torch.nn as nn
import torch.nn.functional as F

from aedetect.models.autoencoder import (
    TrainingHistory,
    as_batch,
    compute_threshold,
    fit_autoencoder,
    model_device,
    reconstruction_errors,
    validate_sizes,
)
from aedetect.models.layers import build_layer_stack, init_weights

logger = logging.getLogger(__name__)


class VAE(nn.Module):
    """Gaussian VAE whose encoder emits mean and log-variance side by side.

    The encoder's last width must be twice the decoder's first width.
    """

    def __init__(
        self,
        esize: list[int],
        dsize: list[int],
        activation: str = "relu",
        lambda_: float = 1.0,
        layer: type[nn.Module] = nn.Linear,
    ):
        validate_sizes(esize, dsize, latent_factor=2)
        super().__init__()
        self.esize = list(esize)
        self.dsize = list(dsize)
        self.latent_dim = dsize[0]
        self.lambda_ = lambda_

        self.encoder = build_layer_stack(self.esize, activation, layer)
        self.decoder = build_layer_stack(self.dsize, activation, layer)

        self.apply(init_weights)

    def encode(self, x):
        h = self.encoder(x)
        return h[:, : self.latent_dim], h[:, self.latent_dim :]

    def reparameterize(self, mu, logvar):
        """Reparameterization trick."""
        std = torch.exp(0.5 * logvar)
        eps = torch.randn_like(std)
        return mu + eps * std

    def forward(self, x):
        mu, logvar = self.encode(x)
        z = self.reparameterize(mu, logvar)
        return self.decoder(z)

    def loss(self, x: torch.Tensor) -> torch.Tensor:
        """Reconstruction error plus lambda-weighted KL divergence."""
        mu, logvar = self.encode(x)
        z = self.reparameterize(mu, logvar)
        recon_loss = F.mse_loss(self.decoder(z), x)
        kl_loss = -0.5 * torch.mean(torch.sum(1 + logvar - mu.pow(2) - logvar.exp(), dim=1))
        return recon_loss + self.lambda_ * kl_loss

    def anomaly_score(self, x, n_samples: int = 10):
        """Reconstruction error per instance averaged over n_samples latent draws."""
        if n_samples < 1:
            raise ValueError(f"n_samples must be positive, got {n_samples}")

        batch, single = as_batch(x, model_device(self))

        was_training = self.training
        self.eval()
        with torch.no_grad():
            mu, logvar = self.encode(batch)
            errors = torch.zeros(batch.shape[0], device=batch.device)
            for _ in range(n_samples):
                z = self.reparameterize(mu, logvar)
                errors += reconstruction_errors(self.decoder(z), batch)
            errors /= n_samples
        self.train(was_training)

        scores = errors.cpu().numpy()
        return float(scores[0]) if single else scores


class VAEModel:
    """Fit/score adapter around VAE trained on normal data only."""

    def __init__(
        self,
        esize: list[int],
        dsize: list[int],
        batch_size: int,
        iterations: int = 1000,
        cbit: int = 200,
        verbfit: bool = False,
        lambda_: float = 1.0,
        n_samples: int = 10,
        contamination: float = 0.1,
        activation: str = "relu",
        learning_rate: float = 1e-3,
        tracked: bool = False,
        seed: int | None = None,
    ):
        if seed is not None:
            torch.manual_seed(seed)
        self.vae = VAE(esize, dsize, activation=activation, lambda_=lambda_)
        self.batch_size = batch_size
        self.iterations = iterations
        self.cbit = cbit
        self.verbfit = verbfit
        self.n_samples = n_samples
        self.contamination = contamination
        self.learning_rate = learning_rate
        self.threshold = math.inf
        self.history = TrainingHistory() if tracked else None
        self.rng = np.random.default_rng(seed)

    def fit(self, x) -> dict:
        """Train on x, which is assumed to hold normal instances only."""
        logger.info(f"Training VAE {self.vae.esize} -> {self.vae.dsize}")
        result = fit_autoencoder(
            self.vae,
            x,
            self.batch_size,
            iterations=self.iterations,
            cbit=self.cbit,
            verbose=self.verbfit,
            history=self.history,
            learning_rate=self.learning_rate,
            rng=self.rng,
        )
        self.threshold = compute_threshold(
            np.atleast_1d(self.anomaly_score(x)), self.contamination
        )
        return result

    def anomaly_score(self, x):
        return self.vae.anomaly_score(x, n_samples=self.n_samples)

    def predict(self, x):
        scores = np.atleast_1d(self.anomaly_score(x))
        return (scores > self.threshold).astype(int)
