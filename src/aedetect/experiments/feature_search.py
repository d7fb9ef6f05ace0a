"""Feature-pair search comparing reconstruction models with a kNN baseline.

For randomly chosen pairs of features, models are trained on the normal rows
of the training split restricted to that pair and scored by ROC AUC on the
test split.
"""

import logging
from itertools import combinations

import numpy as np
import pandas as pd
import torch
from tqdm import tqdm

from aedetect.baselines.anomaly import KNNAnomalyDetector
from aedetect.config import FeatureSearchConfig, VAEConfig
from aedetect.data_loader import Dataset
from aedetect.metrics import auc_score
from aedetect.models.autoencoder import Autoencoder, fit_autoencoder
from aedetect.models.vae import VAEModel
from aedetect.utils.random import make_rng

logger = logging.getLogger(__name__)


def idx_pairs(n: int) -> list[tuple[int, int]]:
    """All unordered pairs of feature indices."""
    return list(combinations(range(n), 2))


def scramble(items: list, rng: np.random.Generator) -> list:
    """Random permutation of items."""
    order = rng.permutation(len(items))
    return [items[i] for i in order]


def knn_score(
    train: Dataset,
    test: Dataset,
    k_values: tuple[int, ...] | list[int] = (1, 3, 5, 11, 27),
    contamination: float = 0.1,
) -> tuple[float, int]:
    """Best test AUC over kNN detectors fitted on normal training rows.

    Returns the AUC and the k achieving it. k values that need more
    training instances than are available are skipped.
    """
    normal = train.normal()
    aucs = []
    ks = []

    for k in k_values:
        if k >= len(normal):
            logger.debug(f"Skipping k={k} with {len(normal)} training instances")
            continue
        detector = KNNAnomalyDetector(k, contamination)
        detector.fit(normal)
        aucs.append(auc_score(detector.predict_scores(test.data), test.labels))
        ks.append(k)

    if not aucs:
        raise ValueError(f"No k in {list(k_values)} fits {len(normal)} training instances")

    best = int(np.nanargmax(aucs)) if not np.all(np.isnan(aucs)) else 0
    return aucs[best], ks[best]


def vae_score(
    train: Dataset,
    test: Dataset,
    config: VAEConfig | None = None,
    seed: int | None = None,
) -> float:
    """Test AUC of a VAE trained on normal training rows."""
    config = config or VAEConfig()
    normal = train.normal()
    n, m = normal.shape

    model = VAEModel(
        esize=[m, *config.hidden_sizes, 2 * config.latent_dim],
        dsize=[config.latent_dim, *reversed(config.hidden_sizes), m],
        batch_size=min(n, config.max_batch_size),
        iterations=config.iterations,
        cbit=config.cbit,
        verbfit=False,
        lambda_=config.lambda_,
        n_samples=config.n_samples,
        learning_rate=config.learning_rate,
        seed=seed,
    )
    model.fit(normal)

    return auc_score(model.anomaly_score(test.data), test.labels)


def ae_score(
    train: Dataset,
    test: Dataset,
    config: VAEConfig | None = None,
    seed: int | None = None,
) -> float:
    """Test AUC of a plain autoencoder with the VAE's layer widths."""
    config = config or VAEConfig()
    normal = train.normal()
    n, m = normal.shape

    if seed is not None:
        torch.manual_seed(seed)
    ae = Autoencoder(
        [m, *config.hidden_sizes, config.latent_dim],
        [config.latent_dim, *reversed(config.hidden_sizes), m],
    )
    fit_autoencoder(
        ae,
        normal,
        min(n, config.max_batch_size),
        iterations=config.iterations,
        cbit=config.cbit,
        verbose=False,
        learning_rate=config.learning_rate,
        rng=make_rng(seed),
    )

    return auc_score(ae.anomaly_score(test.data), test.labels)


def score_features(
    train: Dataset,
    test: Dataset,
    config: FeatureSearchConfig | None = None,
    seed: int | None = 518,
) -> pd.DataFrame:
    """Score up to config.max_tries random feature pairs.

    Returns one row per pair with the AE, VAE and best kNN AUCs and the k
    that achieved the latter.
    """
    config = config or FeatureSearchConfig()
    rng = make_rng(seed)

    if train.labels is None or test.labels is None:
        raise ValueError("Feature search needs labelled train and test data")

    pairs = scramble(idx_pairs(train.n_features), rng)
    n_tries = min(len(pairs), config.max_tries)

    logger.info(f"Scoring {n_tries} of {len(pairs)} feature pairs")

    rows = []
    for pair in tqdm(pairs[:n_tries], desc="Feature pairs"):
        train_pair = train.subfeatures(pair)
        test_pair = test.subfeatures(pair)

        knn, k = knn_score(
            train_pair, test_pair, config.k_values, config.knn_contamination
        )
        pair_seed = int(rng.integers(2**31 - 1))
        vae = vae_score(train_pair, test_pair, config.vae, seed=pair_seed)
        ae = (
            ae_score(train_pair, test_pair, config.vae, seed=pair_seed)
            if config.include_ae
            else np.nan
        )

        logger.debug(f"Pair {pair}: ae={ae:.3f} vae={vae:.3f} knn={knn:.3f} (k={k})")
        rows.append({"f1": pair[0], "f2": pair[1], "ae": ae, "vae": vae, "knn": knn, "k": k})

    return pd.DataFrame(rows, columns=["f1", "f2", "ae", "vae", "knn", "k"])
