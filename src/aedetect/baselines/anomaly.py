"""Baseline anomaly detection models."""

import logging
from abc import ABC, abstractmethod

import numpy as np
from sklearn.neighbors import NearestNeighbors

from aedetect.models.autoencoder import compute_threshold

logger = logging.getLogger(__name__)


class BaseAnomalyDetector(ABC):
    """Base class for anomaly detectors."""

    def __init__(self, name: str):
        self.name = name
        self.is_fitted = False

    @abstractmethod
    def fit(self, data: np.ndarray) -> None:
        """Fit the detector on normal data."""
        pass

    @abstractmethod
    def predict_scores(self, data: np.ndarray) -> np.ndarray:
        """Generate anomaly scores."""
        pass

    def predict_labels(self, data: np.ndarray, threshold: float = 0.5) -> np.ndarray:
        """Generate binary anomaly labels."""
        scores = self.predict_scores(data)
        return (scores > threshold).astype(int)


class KNNAnomalyDetector(BaseAnomalyDetector):
    """Distance-to-neighbours anomaly detector.

    Scores an instance by its mean distance to the k nearest training
    instances ("mean") or by the distance to the k-th one ("kth").
    """

    def __init__(self, k: int = 5, contamination: float = 0.1, metric: str = "mean"):
        super().__init__(f"knn_{k}")
        if k < 1:
            raise ValueError(f"k must be positive, got {k}")
        if metric not in ("mean", "kth"):
            raise ValueError(f"Unknown kNN score '{metric}', expected 'mean' or 'kth'")
        self.k = k
        self.contamination = contamination
        self.metric = metric
        self.threshold = None
        self.neighbors = None

    def fit(self, data: np.ndarray) -> None:
        """Index the training data and set a contamination-based threshold."""
        data = np.asarray(data, dtype=float)
        if len(data) <= self.k:
            raise ValueError(
                f"Need more than k={self.k} training instances, got {len(data)}"
            )

        # One extra neighbour so training points can skip themselves
        self.neighbors = NearestNeighbors(n_neighbors=self.k + 1)
        self.neighbors.fit(data)
        self.is_fitted = True

        distances, _ = self.neighbors.kneighbors(data, n_neighbors=self.k + 1)
        self.threshold = compute_threshold(
            self._reduce(distances[:, 1:]), self.contamination
        )

    def _reduce(self, distances: np.ndarray) -> np.ndarray:
        if self.metric == "kth":
            return distances[:, -1]
        return distances.mean(axis=1)

    def predict_scores(self, data: np.ndarray) -> np.ndarray:
        """Distance-based anomaly scores for each row of data."""
        if not self.is_fitted:
            raise ValueError("Detector must be fitted first")

        distances, _ = self.neighbors.kneighbors(
            np.asarray(data, dtype=float), n_neighbors=self.k
        )
        return self._reduce(distances)

    def predict_labels(self, data: np.ndarray, threshold: float | None = None) -> np.ndarray:
        """Labels against the fitted threshold unless one is given."""
        if threshold is None:
            threshold = self.threshold
        return super().predict_labels(data, threshold)
