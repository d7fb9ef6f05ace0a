"""Scikit-learn style anomaly model built on the autoencoder."""

import logging
import math
from typing import TYPE_CHECKING

import numpy as np
import torch

from aedetect.models.autoencoder import (
    Autoencoder,
    TrainingHistory,
    classify_scores,
    fit_autoencoder,
    get_threshold,
)

if TYPE_CHECKING:
    from aedetect.config import AutoencoderConfig

logger = logging.getLogger(__name__)


class AEModel:
    """Autoencoder anomaly model with fit and predict.

    threshold and contamination start as the values given at construction
    and are overwritten by fit(); set_threshold() and direct assignment are
    the only other ways they change. predict() never mutates the model.

    Args:
        esize: Encoder widths, input first
        dsize: Decoder widths, latent first
        batch_size: Rows drawn per training iteration
        threshold: Initial anomaly score threshold
        contamination: Initial fraction of anomalous instances
        iterations: Number of training iterations
        cbit: Progress is logged every cbit iterations
        verbfit: Whether training progress is logged
        activation: Hidden layer activation name
        rdelta: Training stops once the batch loss drops below rdelta
        beta: Threshold tightness, interpolates between adjacent scores
        tracked: Whether the per-iteration training loss is recorded
        learning_rate: Optimizer learning rate
        optimizer: Optimizer name
        device: Torch device
        seed: Seeds weight initialisation and batch sampling
    """

    def __init__(
        self,
        esize: list[int],
        dsize: list[int],
        batch_size: int,
        threshold: float,
        contamination: float,
        iterations: int,
        cbit: int,
        verbfit: bool,
        activation: str = "relu",
        rdelta: float = math.inf,
        beta: float = 1.0,
        tracked: bool = False,
        learning_rate: float = 1e-3,
        optimizer: str = "adam",
        device: str = "cpu",
        seed: int | None = None,
    ):
        if seed is not None:
            torch.manual_seed(seed)

        self.device = torch.device(device)
        self.ae = Autoencoder(esize, dsize, activation=activation).to(self.device)
        self.batch_size = batch_size
        self.threshold = threshold
        self.contamination = contamination
        self.iterations = iterations
        self.cbit = cbit
        self.verbfit = verbfit
        self.rdelta = rdelta
        self.beta = beta
        self.learning_rate = learning_rate
        self.optimizer = optimizer
        self.rng = np.random.default_rng(seed)
        self._history = TrainingHistory() if tracked else None

    @classmethod
    def from_config(cls, config: "AutoencoderConfig") -> "AEModel":
        return cls(
            esize=config.esize,
            dsize=config.dsize,
            batch_size=config.batch_size,
            threshold=config.threshold,
            contamination=config.contamination,
            iterations=config.iterations,
            cbit=config.cbit,
            verbfit=config.verbose,
            activation=config.activation,
            rdelta=config.rdelta,
            beta=config.beta,
            tracked=config.tracked,
            learning_rate=config.learning_rate,
            optimizer=config.optimizer,
            device=config.device,
            seed=config.seed,
        )

    @property
    def history(self) -> TrainingHistory | None:
        """Losses recorded across all fit() calls, or None when not tracked."""
        return self._history

    def __call__(self, x):
        return self.reconstruct(x)

    def reconstruct(self, x) -> np.ndarray:
        tensor = torch.as_tensor(np.asarray(x, dtype=np.float32), device=self.device)
        self.ae.eval()
        with torch.no_grad():
            return self.ae(tensor).cpu().numpy()

    def loss(self, x) -> float:
        tensor = torch.as_tensor(np.asarray(x, dtype=np.float32), device=self.device)
        self.ae.eval()
        with torch.no_grad():
            return self.ae.loss(tensor).item()

    def anomaly_score(self, x):
        return self.ae.anomaly_score(x)

    def classify(self, x):
        return classify_scores(self.anomaly_score(x), self.threshold)

    def get_threshold(self, x) -> float:
        return get_threshold(self.ae, x, self.contamination, beta=self.beta)

    def set_threshold(self, x) -> float:
        """Recompute the threshold on x from the stored contamination."""
        self.threshold = self.get_threshold(x)
        return self.threshold

    def fit(self, x, y) -> dict:
        """Train on the normal rows of x, then derive contamination and threshold.

        The contamination is the ratio of anomalous to normal labels, and the
        threshold is computed on all rows of x.
        """
        x = np.asarray(x, dtype=np.float32)
        y = np.asarray(y).ravel()

        if x.ndim != 2:
            raise ValueError(f"Expected 2-D data, got shape {x.shape}")
        if len(x) != len(y):
            raise ValueError(f"Got {len(x)} instances but {len(y)} labels")

        normal = y == 0
        n_normal = int(np.sum(normal))
        n_anomalous = int(np.sum(y == 1))

        if n_normal == 0:
            raise ValueError("No normal instances (label 0) to train on")

        logger.info(f"Training autoencoder on {n_normal} normal instances")

        result = fit_autoencoder(
            self.ae,
            x[normal],
            self.batch_size,
            iterations=self.iterations,
            cbit=self.cbit,
            verbose=self.verbfit,
            rdelta=self.rdelta,
            history=self._history,
            optimizer=self.optimizer,
            learning_rate=self.learning_rate,
            rng=self.rng,
        )

        self.contamination = n_anomalous / n_normal
        self.set_threshold(x)

        logger.info(
            f"Contamination set to {self.contamination:.4f}, "
            f"threshold set to {self.threshold:.6f}"
        )

        result.update({"contamination": self.contamination, "threshold": self.threshold})
        return result

    def predict(self, x) -> np.ndarray:
        """Label every row of x against the stored threshold."""
        scores = np.atleast_1d(self.anomaly_score(x))
        return classify_scores(scores, self.threshold)
