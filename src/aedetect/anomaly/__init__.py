"""Anomaly detection models with fit/predict interfaces."""

from aedetect.anomaly.autoencoder import AEModel

__all__ = ["AEModel"]
