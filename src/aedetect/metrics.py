"""Metrics for anomaly detection."""

import logging

import numpy as np
from sklearn.metrics import roc_auc_score

logger = logging.getLogger(__name__)


def auc_score(scores: np.ndarray, labels: np.ndarray) -> float:
    """Area under the ROC curve of scores against 0/1 labels."""
    scores = np.asarray(scores, dtype=float)
    labels = np.asarray(labels).astype(int)

    if len(np.unique(labels)) < 2:
        logger.warning("ROC AUC is undefined when only one class is present")
        return float("nan")

    return float(roc_auc_score(labels, scores))


def precision_recall_f1(y_true: np.ndarray, y_pred: np.ndarray) -> dict[str, float]:
    """Calculate precision, recall, and F1 score from binary predictions."""
    y_true = np.asarray(y_true).astype(int)
    y_pred = np.asarray(y_pred).astype(int)

    true_positives = np.sum((y_true == 1) & (y_pred == 1))
    false_positives = np.sum((y_true == 0) & (y_pred == 1))
    false_negatives = np.sum((y_true == 1) & (y_pred == 0))

    precision = true_positives / (true_positives + false_positives) if (true_positives + false_positives) > 0 else 0.0
    recall = true_positives / (true_positives + false_negatives) if (true_positives + false_negatives) > 0 else 0.0
    f1 = 2 * precision * recall / (precision + recall) if (precision + recall) > 0 else 0.0

    return {
        "precision": float(precision),
        "recall": float(recall),
        "f1": float(f1),
    }


def anomaly_metrics(
    y_true: np.ndarray,
    y_scores: np.ndarray,
    threshold: float,
) -> dict[str, float]:
    """Calculate threshold and ranking metrics for anomaly scores."""
    y_true = np.asarray(y_true).astype(int)
    y_scores = np.asarray(y_scores, dtype=float)

    metrics = precision_recall_f1(y_true, (y_scores > threshold).astype(int))
    metrics["auc"] = auc_score(y_scores, y_true)

    metrics.update({
        "threshold": float(threshold),
        "avg_anomaly_score": float(np.mean(y_scores[y_true == 1])) if np.any(y_true == 1) else 0.0,
        "avg_normal_score": float(np.mean(y_scores[y_true == 0])) if np.any(y_true == 0) else 0.0,
        "n_instances": int(len(y_true)),
        "n_anomalies": int(np.sum(y_true)),
    })

    return metrics
