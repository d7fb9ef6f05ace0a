"""CLI runner for autoencoder anomaly detection experiments."""

import argparse
import json
import logging
import sys
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from aedetect.anomaly.autoencoder import AEModel
from aedetect.config import ExperimentConfig, get_config_from_env, load_config
from aedetect.data_loader import load_dataset, train_test_split
from aedetect.experiments.feature_search import score_features
from aedetect.metrics import anomaly_metrics
from aedetect.utils.random import set_global_seeds

logger = logging.getLogger(__name__)


def run_autoencoder(config: ExperimentConfig, data_path: Path, output_dir: Path) -> dict:
    """Fit an AEModel on the training split and evaluate on the test split."""
    logger.info(f"Running autoencoder on {data_path}")

    dataset = load_dataset(data_path, label_column=config.label_column)
    train, test = train_test_split(dataset, config.train_fraction, seed=config.seed)

    # Input and output widths follow the data
    ae_config = config.autoencoder
    esize = [dataset.n_features, *ae_config.esize[1:]]
    dsize = [*ae_config.dsize[:-1], dataset.n_features]
    seed = ae_config.seed if ae_config.seed is not None else config.seed
    # Batches are drawn from the normal training rows only
    batch_size = max(1, min(len(train.normal()), ae_config.batch_size))
    if batch_size < ae_config.batch_size:
        logger.info(f"Reducing batch size from {ae_config.batch_size} to {batch_size}")
    ae_config = ae_config.model_copy(
        update={"esize": esize, "dsize": dsize, "seed": seed, "batch_size": batch_size}
    )

    model = AEModel.from_config(ae_config)
    training_result = model.fit(train.data, train.labels)
    logger.info(f"Training complete: {training_result}")

    scores = model.anomaly_score(test.data)
    predictions = model.predict(test.data)
    metrics = anomaly_metrics(test.labels, scores, model.threshold)
    metrics.update({
        "contamination": model.contamination,
        "iterations_run": training_result["iterations_run"],
        "final_loss": training_result["final_loss"],
    })

    output_dir.mkdir(parents=True, exist_ok=True)

    pd.DataFrame({
        "label": test.labels,
        "score": scores,
        "prediction": predictions,
    }).to_csv(output_dir / "predictions.csv", index=False)

    with open(output_dir / "metrics.json", "w") as f:
        json.dump(metrics, f, indent=2, default=str)

    if model.history is not None:
        history_df = pd.DataFrame({
            "iteration": np.arange(1, len(model.history) + 1),
            "loss": model.history.losses,
        })
        history_df.to_csv(output_dir / "training_history.csv", index=False)

        if config.create_plots:
            create_training_plot(history_df, output_dir)

    if config.create_plots:
        create_score_plot(scores, test.labels, model.threshold, output_dir)

    logger.info(f"Autoencoder run complete. Results saved to {output_dir}")
    return metrics


def run_feature_search(config: ExperimentConfig, data_path: Path, output_dir: Path) -> pd.DataFrame:
    """Score random feature pairs and save the results table."""
    logger.info(f"Running feature search on {data_path}")

    dataset = load_dataset(data_path, label_column=config.label_column)
    train, test = train_test_split(
        dataset, config.feature_search.train_fraction, seed=config.seed
    )

    results = score_features(train, test, config.feature_search, seed=config.seed)

    output_dir.mkdir(parents=True, exist_ok=True)
    results.to_csv(output_dir / "feature_scores.csv", index=False)

    logger.info(f"Feature search complete. Results saved to {output_dir}")
    return results


def create_training_plot(history_df: pd.DataFrame, output_dir: Path) -> None:
    """Plot per-iteration training loss."""
    plt.figure(figsize=(10, 6))
    plt.plot(history_df["iteration"], history_df["loss"])
    plt.yscale("log")
    plt.title("Autoencoder Training Loss")
    plt.xlabel("Iteration")
    plt.ylabel("Batch reconstruction error")
    plt.grid(True, alpha=0.3)
    plt.tight_layout()
    plt.savefig(output_dir / "training_loss.png", dpi=150, bbox_inches="tight")
    plt.close()


def create_score_plot(
    scores: np.ndarray, labels: np.ndarray, threshold: float, output_dir: Path
) -> None:
    """Histogram of test scores per class with the threshold marked."""
    plt.figure(figsize=(10, 6))

    for label, name in [(0, "normal"), (1, "anomalous")]:
        class_scores = scores[labels == label]
        if len(class_scores) > 0:
            plt.hist(class_scores, bins=30, alpha=0.6, label=name)

    plt.axvline(threshold, color="black", linestyle="--", label="threshold")
    plt.xlabel("Anomaly score")
    plt.ylabel("Count")
    plt.title("Test Anomaly Scores")
    plt.legend()
    plt.tight_layout()
    plt.savefig(output_dir / "score_distribution.png", dpi=150, bbox_inches="tight")
    plt.close()


def main(argv: list[str] | None = None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Autoencoder anomaly detection and feature-pair search",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Fit an autoencoder and evaluate it on a held-out split
  python -m aedetect.runner fit --data data/wine.csv

  # Compare AE, VAE and kNN on random feature pairs
  python -m aedetect.runner feature-search --data data/wine.csv --max-tries 20
""",
    )

    parser.add_argument(
        "mode",
        choices=["fit", "feature-search"],
        help="Experiment to run",
    )
    parser.add_argument(
        "--data",
        type=Path,
        help="Labelled CSV or Parquet dataset (default: data_path from config)",
    )
    parser.add_argument(
        "--label-column",
        help="Name of the 0/1 label column (default: from config)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to YAML configuration file",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        help="Output directory for results (default: from config)",
    )
    parser.add_argument(
        "--max-tries",
        type=int,
        help="Number of feature pairs to score (feature-search only)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        help="Random seed (default: from config)",
    )

    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    # Load configuration
    if args.config and args.config.exists():
        config = load_config(args.config)
    else:
        config = get_config_from_env()

    if args.label_column:
        config.label_column = args.label_column
    if args.seed is not None:
        config.seed = args.seed
    if args.max_tries is not None:
        config.feature_search.max_tries = args.max_tries

    if args.data:
        config.data_path = str(args.data)
    if config.data_path is None:
        parser.error("no dataset given: pass --data or set data_path in the config")

    data_path = Path(config.data_path)
    output_dir = args.output_dir or Path(config.output_dir)

    set_global_seeds(config.seed)

    try:
        if args.mode == "fit":
            summary = run_autoencoder(config, data_path, output_dir)
        else:
            results = run_feature_search(config, data_path, output_dir)
            summary = results[["ae", "vae", "knn"]].mean().to_dict()

        print("\n=== Summary ===")
        for key, value in summary.items():
            print(f"{key}: {value}")

    except Exception as e:
        logger.error(f"Failed to run {args.mode}: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
