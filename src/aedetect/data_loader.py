"""Labelled tabular datasets for anomaly detection experiments."""

import logging
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import pandas as pd
from sklearn.model_selection import train_test_split as sk_train_test_split

logger = logging.getLogger(__name__)


@dataclass
class Dataset:
    """Feature matrix with one instance per row and optional 0/1 labels."""

    data: np.ndarray
    labels: np.ndarray | None = None

    def __post_init__(self):
        self.data = np.asarray(self.data, dtype=np.float32)
        if self.data.ndim != 2:
            raise ValueError(f"Expected 2-D data, got shape {self.data.shape}")

        if self.labels is not None:
            self.labels = np.asarray(self.labels).astype(int).ravel()
            if len(self.labels) != len(self.data):
                raise ValueError(
                    f"Got {len(self.data)} instances but {len(self.labels)} labels"
                )

    @property
    def n_instances(self) -> int:
        return self.data.shape[0]

    @property
    def n_features(self) -> int:
        return self.data.shape[1]

    def normal(self) -> np.ndarray:
        """Rows labelled as normal (0)."""
        if self.labels is None:
            raise ValueError("Dataset has no labels")
        return self.data[self.labels == 0]

    def subfeatures(self, indices) -> "Dataset":
        """Dataset restricted to the given feature columns."""
        return Dataset(self.data[:, list(indices)], self.labels)


def load_dataset(path: Path, label_column: str | None = "label") -> Dataset:
    """Load a CSV or Parquet file into a Dataset."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Dataset not found: {path}")

    logger.info(f"Loading dataset: {path}")

    if path.suffix == ".parquet":
        df = pd.read_parquet(path)
    else:
        df = pd.read_csv(path)

    labels = None
    if label_column is not None:
        if label_column not in df.columns:
            raise ValueError(f"Label column '{label_column}' not found in {path}")
        labels = df.pop(label_column).values

    dataset = Dataset(df.astype(float).values, labels)

    n_anomalous = int(np.sum(dataset.labels == 1)) if labels is not None else 0
    logger.info(
        f"Loaded {dataset.n_instances} instances with {dataset.n_features} features "
        f"({n_anomalous} anomalous)"
    )

    return dataset


def train_test_split(
    dataset: Dataset,
    train_fraction: float = 0.8,
    seed: int | None = None,
) -> tuple[Dataset, Dataset]:
    """Stratified train/test split keeping the label ratio in both parts."""
    if not 0.0 < train_fraction < 1.0:
        raise ValueError(f"train_fraction must lie in (0, 1), got {train_fraction}")

    indices = np.arange(dataset.n_instances)
    train_idx, test_idx = sk_train_test_split(
        indices,
        train_size=train_fraction,
        random_state=seed,
        stratify=dataset.labels,
    )

    def take(idx):
        labels = dataset.labels[idx] if dataset.labels is not None else None
        return Dataset(dataset.data[idx], labels)

    logger.info(f"Split: {len(train_idx)} train, {len(test_idx)} test instances")

    return take(train_idx), take(test_idx)
