"""
Synthetic demo: autoencoder anomaly detection on a low-rank dataset.

Normal instances lie close to a 2-D subspace of an 8-D feature space;
anomalies are drawn from a shifted, full-rank Gaussian. The autoencoder is
trained on the normal rows of the training split and evaluated on the rest.
"""
import logging

import numpy as np

from aedetect.anomaly import AEModel
from aedetect.data_loader import Dataset, train_test_split
from aedetect.metrics import anomaly_metrics

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


def make_dataset(n_normal: int = 1000, n_anomalous: int = 50, seed: int = 518) -> Dataset:
    rng = np.random.default_rng(seed)
    latent = rng.normal(0, 1, (n_normal, 2))
    mixing = rng.normal(0, 1, (2, 8))
    normal = latent @ mixing + rng.normal(0, 0.1, (n_normal, 8))
    anomalous = rng.normal(1.5, 1.5, (n_anomalous, 8))
    labels = np.concatenate([np.zeros(n_normal), np.ones(n_anomalous)])
    return Dataset(np.vstack([normal, anomalous]), labels)


def main():
    train, test = train_test_split(make_dataset(), 0.8, seed=518)

    model = AEModel(
        esize=[8, 16, 8, 2],
        dsize=[2, 8, 16, 8],
        batch_size=64,
        threshold=0.0,
        contamination=0.05,
        iterations=2000,
        cbit=500,
        verbfit=True,
        tracked=True,
        learning_rate=5e-3,
        seed=518,
    )
    model.fit(train.data, train.labels)

    scores = model.anomaly_score(test.data)
    metrics = anomaly_metrics(test.labels, scores, model.threshold)

    logger.info(f"Recorded {len(model.history)} training losses")
    for key, value in metrics.items():
        print(f"{key}: {value}")


if __name__ == "__main__":
    main()
