"""Feed-forward autoencoder for reconstruction-based anomaly detection.

Instances are rows of a 2-D array. The anomaly score of an instance is its
mean squared reconstruction error; an instance is anomalous when its score is
strictly greater than a threshold derived from a contamination estimate.
"""

import logging
import math

import numpy as np
import torch
import torch.nn as nn
import torch.nn.functional as F
import torch.optim as optim

from aedetect.models.layers import build_layer_stack, init_weights

logger = logging.getLogger(__name__)

OPTIMIZERS = {
    "adam": optim.Adam,
    "adamw": optim.AdamW,
    "rmsprop": optim.RMSprop,
    "sgd": optim.SGD,
}


def model_device(model: nn.Module) -> torch.device:
    return next(model.parameters()).device


def as_batch(x, device: torch.device) -> tuple[torch.Tensor, bool]:
    """Convert array-like input to a 2-D float32 tensor.

    Returns the tensor and whether the input was a single 1-D instance.
    """
    if isinstance(x, torch.Tensor):
        tensor = x.detach().to(device=device, dtype=torch.float32)
    else:
        tensor = torch.as_tensor(np.asarray(x, dtype=np.float32), device=device)

    if tensor.ndim == 1:
        return tensor.unsqueeze(0), True
    if tensor.ndim != 2:
        raise ValueError(f"Expected a 1-D instance or 2-D batch, got shape {tuple(tensor.shape)}")

    return tensor, False


def reconstruction_errors(reconstruction: torch.Tensor, x: torch.Tensor) -> torch.Tensor:
    """Mean squared error per row."""
    return torch.mean((reconstruction - x) ** 2, dim=1)


def validate_sizes(esize: list[int], dsize: list[int], latent_factor: int = 1) -> None:
    """Check that encoder and decoder sizes compose into an autoencoder.

    latent_factor is the ratio between the encoder output width and the
    decoder input width (2 for a VAE, whose encoder emits mean and log-variance).
    """
    if len(esize) < 3:
        raise ValueError(f"Encoder needs at least 3 sizes, got {list(esize)}")
    if len(dsize) < 3:
        raise ValueError(f"Decoder needs at least 3 sizes, got {list(dsize)}")
    if esize[-1] != latent_factor * dsize[0]:
        raise ValueError(
            f"Encoder output width {esize[-1]} does not match decoder input "
            f"width {dsize[0]}" + (f" (x{latent_factor})" if latent_factor != 1 else "")
        )
    if esize[0] != dsize[-1]:
        raise ValueError(
            f"Encoder input width {esize[0]} does not match decoder output width {dsize[-1]}"
        )


class Autoencoder(nn.Module):
    """Encoder and decoder composed into a single reconstruction pass."""

    def __init__(
        self,
        esize: list[int],
        dsize: list[int],
        activation: str = "relu",
        layer: type[nn.Module] = nn.Linear,
    ):
        validate_sizes(esize, dsize)
        super().__init__()
        self.esize = list(esize)
        self.dsize = list(dsize)

        self.encoder = build_layer_stack(self.esize, activation, layer)
        self.decoder = build_layer_stack(self.dsize, activation, layer)

        self.apply(init_weights)

    def forward(self, x):
        return self.decoder(self.encoder(x))

    def encode(self, x):
        """Get latent representation."""
        return self.encoder(x)

    def loss(self, x: torch.Tensor) -> torch.Tensor:
        """Mean squared reconstruction error over the whole batch."""
        return F.mse_loss(self(x), x)

    def anomaly_score(self, x):
        """Reconstruction error per instance.

        Returns a float for a single 1-D instance and an array with one score
        per row for a 2-D batch.
        """
        batch, single = as_batch(x, model_device(self))

        was_training = self.training
        self.eval()
        with torch.no_grad():
            errors = reconstruction_errors(self(batch), batch)
        self.train(was_training)

        scores = errors.cpu().numpy()
        return float(scores[0]) if single else scores

    def classify(self, x, threshold: float):
        """Label instances whose score exceeds threshold as anomalous (1)."""
        return classify_scores(self.anomaly_score(x), threshold)


def classify_scores(scores, threshold: float):
    if np.ndim(scores) == 0:
        return int(scores > threshold)
    return (np.asarray(scores) > threshold).astype(int)


def compute_threshold(scores, contamination: float, beta: float = 1.0) -> float:
    """Score cutoff leaving the top `contamination` fraction above it.

    With the scores sorted ascending, a = max(1, floor(N * contamination))
    instances are presumed anomalous and the cutoff is the a-th largest score,
    interpolated towards the next larger one by (1 - beta).
    """
    scores = np.sort(np.asarray(scores, dtype=float).ravel())
    n = len(scores)

    if n == 0:
        raise ValueError("Cannot compute a threshold from an empty score set")
    if contamination < 0:
        raise ValueError(f"Contamination must be non-negative, got {contamination}")
    if not 0.0 <= beta <= 1.0:
        raise ValueError(f"Beta must lie in [0, 1], got {beta}")

    n_anomalous = max(int(math.floor(n * contamination)), 1)
    if n_anomalous > n:
        logger.warning(
            f"Contamination {contamination:.3f} implies {n_anomalous} anomalies "
            f"among {n} instances; clamping to the lowest score"
        )
        n_anomalous = n

    lower = scores[n - n_anomalous]
    upper = scores[min(n - n_anomalous + 1, n - 1)]

    return float(beta * lower + (1 - beta) * upper)


def get_threshold(model: nn.Module, x, contamination: float, beta: float = 1.0) -> float:
    """Score x with model and derive the classification threshold."""
    scores = np.atleast_1d(model.anomaly_score(x))
    return compute_threshold(scores, contamination, beta=beta)


class BatchSampler:
    """Draws minibatch indices uniformly without replacement.

    Each draw is independent of the previous ones, so instances can repeat
    across iterations.
    """

    def __init__(
        self,
        n_instances: int,
        batch_size: int,
        rng: np.random.Generator | None = None,
    ):
        if batch_size < 1:
            raise ValueError(f"Batch size must be positive, got {batch_size}")
        if batch_size > n_instances:
            raise ValueError(
                f"Batch size {batch_size} exceeds the number of instances {n_instances}"
            )
        self.n_instances = n_instances
        self.batch_size = batch_size
        self.rng = rng if rng is not None else np.random.default_rng()

    def sample(self) -> np.ndarray:
        return self.rng.choice(self.n_instances, size=self.batch_size, replace=False)


class TrainingHistory:
    """Append-only log of per-iteration training losses."""

    def __init__(self):
        self._losses: list[float] = []

    def append(self, loss: float) -> None:
        self._losses.append(float(loss))

    @property
    def losses(self) -> list[float]:
        return list(self._losses)

    @property
    def last(self) -> float | None:
        return self._losses[-1] if self._losses else None

    def __len__(self):
        return len(self._losses)

    def __iter__(self):
        return iter(list(self._losses))

    def __repr__(self):
        return f"TrainingHistory(n={len(self._losses)}, last={self.last})"


def make_optimizer(
    name: str, parameters, learning_rate: float = 1e-3
) -> optim.Optimizer:
    """Create an optimizer by name."""
    try:
        optimizer_cls = OPTIMIZERS[name.lower()]
    except KeyError:
        raise ValueError(
            f"Unknown optimizer '{name}', expected one of {sorted(OPTIMIZERS)}"
        ) from None
    return optimizer_cls(parameters, lr=learning_rate)


def fit_autoencoder(
    model: nn.Module,
    x,
    batch_size: int,
    iterations: int = 1000,
    cbit: int = 200,
    verbose: bool = True,
    rdelta: float = math.inf,
    history: TrainingHistory | None = None,
    optimizer: optim.Optimizer | str | None = None,
    learning_rate: float = 1e-3,
    rng: np.random.Generator | None = None,
) -> dict:
    """Train model on the rows of x by minibatch gradient descent.

    Args:
        model: Module exposing loss(batch) -> scalar tensor
        x: Training data, one instance per row
        batch_size: Number of rows drawn per iteration
        iterations: Number of optimizer steps
        cbit: Progress is logged every cbit iterations when verbose
        verbose: Whether progress is logged
        rdelta: Training stops once the batch loss drops below rdelta
        history: If given, the batch loss of every iteration is appended
        optimizer: Optimizer instance or name; ADAM when omitted
        learning_rate: Learning rate for a named or default optimizer
        rng: Random generator for batch sampling

    Returns:
        Summary with iterations_run, final_loss and stopped_early
    """
    if cbit < 1:
        raise ValueError(f"Callback interval must be positive, got {cbit}")

    data, _ = as_batch(x, model_device(model))
    sampler = BatchSampler(data.shape[0], batch_size, rng)

    if optimizer is None:
        optimizer = optim.Adam(model.parameters(), lr=learning_rate)
    elif isinstance(optimizer, str):
        optimizer = make_optimizer(optimizer, model.parameters(), learning_rate)

    model.train()
    batch_loss = float("nan")
    iterations_run = 0
    stopped_early = False

    for i in range(1, iterations + 1):
        indices = torch.as_tensor(sampler.sample(), device=data.device)
        batch = data[indices]

        optimizer.zero_grad()
        loss = model.loss(batch)
        loss.backward()
        optimizer.step()

        batch_loss = loss.item()
        iterations_run = i

        if verbose and i % cbit == 0:
            logger.info(f"Iteration {i}: loss={batch_loss:.6f}")

        if history is not None:
            history.append(batch_loss)

        # Evaluated on the training batch, not on held-out data
        if rdelta < math.inf and batch_loss < rdelta:
            if verbose:
                logger.info(
                    f"Training ended prematurely after {i} iterations, "
                    f"reconstruction error {batch_loss:.6f} < {rdelta}"
                )
            stopped_early = True
            break

    return {
        "iterations_run": iterations_run,
        "final_loss": batch_loss,
        "stopped_early": stopped_early,
    }
