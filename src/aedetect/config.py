"""Configuration management for models and experiments."""

import math
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field


class AutoencoderConfig(BaseModel):
    """Configuration for the autoencoder anomaly model."""

    # Model architecture
    esize: list[int] = Field(default=[4, 8, 4, 2], description="Encoder widths")
    dsize: list[int] = Field(default=[2, 4, 8, 4], description="Decoder widths")
    activation: str = Field(default="relu", description="Activation function")

    # Anomaly detection settings
    threshold: float = Field(default=0.0, description="Initial score threshold")
    contamination: float = Field(
        default=0.05, description="Initial contamination estimate"
    )
    beta: float = Field(default=1.0, description="Threshold tightness in [0, 1]")

    # Training settings
    batch_size: int = Field(default=32, description="Batch size")
    iterations: int = Field(default=1000, description="Training iterations")
    cbit: int = Field(default=200, description="Progress logging interval")
    verbose: bool = Field(default=True, description="Log training progress")
    rdelta: float = Field(
        default=math.inf, description="Stop when batch loss drops below this"
    )
    tracked: bool = Field(default=False, description="Record training losses")
    learning_rate: float = Field(default=1e-3, description="Learning rate")
    optimizer: str = Field(default="adam", description="Optimizer name")

    # Hardware / reproducibility
    device: str = Field(default="cpu", description="Device to use (cpu/cuda)")
    seed: int | None = Field(default=None, description="Random seed")


class VAEConfig(BaseModel):
    """Configuration for the VAE used in feature search."""

    hidden_sizes: list[int] = Field(
        default=[4, 8, 4], description="Hidden widths between input and latent"
    )
    latent_dim: int = Field(default=1, description="Latent dimension")
    lambda_: float = Field(default=1e-4, description="KL divergence weight")
    iterations: int = Field(default=10000, description="Training iterations")
    cbit: int = Field(default=500, description="Progress logging interval")
    max_batch_size: int = Field(default=256, description="Upper bound on batch size")
    n_samples: int = Field(default=10, description="Latent draws per score")
    learning_rate: float = Field(default=1e-3, description="Learning rate")


class FeatureSearchConfig(BaseModel):
    """Configuration for the feature-pair search experiment."""

    max_tries: int = Field(default=10, description="Feature pairs to evaluate")
    k_values: list[int] = Field(
        default=[1, 3, 5, 11, 27], description="kNN neighbourhood sizes"
    )
    knn_contamination: float = Field(
        default=0.1, description="Contamination for the kNN detectors"
    )
    train_fraction: float = Field(default=0.8, description="Train split ratio")
    include_ae: bool = Field(default=True, description="Score pairs with a plain AE")
    vae: VAEConfig = Field(default_factory=VAEConfig)


class ExperimentConfig(BaseModel):
    """Overall experiment configuration."""

    # Data settings
    data_path: str | None = Field(default=None, description="Labelled dataset file")
    label_column: str = Field(default="label", description="Label column name")
    train_fraction: float = Field(default=0.8, description="Train split ratio")
    seed: int = Field(default=518, description="Random seed")

    # Model configurations
    autoencoder: AutoencoderConfig = Field(default_factory=AutoencoderConfig)
    feature_search: FeatureSearchConfig = Field(default_factory=FeatureSearchConfig)

    # Output settings
    output_dir: str = Field(default="results", description="Output directory")
    create_plots: bool = Field(default=True, description="Create evaluation plots")


def load_config(config_path: Path | None = None) -> ExperimentConfig:
    """Load configuration from file or create default."""
    if config_path and config_path.exists():
        with open(config_path) as f:
            config_dict = yaml.safe_load(f) or {}
        return ExperimentConfig(**config_dict)
    else:
        return ExperimentConfig()


def create_sample_config() -> ExperimentConfig:
    """Create fast configuration for samples/CI."""
    config = ExperimentConfig(seed=42)

    config.autoencoder.iterations = 50
    config.autoencoder.cbit = 10
    config.autoencoder.batch_size = 16
    config.autoencoder.learning_rate = 1e-2
    config.autoencoder.verbose = False
    config.autoencoder.tracked = True

    config.feature_search.max_tries = 2
    config.feature_search.k_values = [1, 3]
    config.feature_search.vae.iterations = 50
    config.feature_search.vae.cbit = 10
    config.feature_search.vae.max_batch_size = 32

    return config


def save_config(config: ExperimentConfig, config_path: Path) -> None:
    """Save configuration to YAML file."""
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, "w") as f:
        yaml.dump(config.model_dump(), f, default_flow_style=False, indent=2)


def get_config_from_env() -> ExperimentConfig:
    """Create configuration from environment variables."""
    config = ExperimentConfig()

    # Check for CI environment
    if os.getenv("CI") or os.getenv("GITHUB_ACTIONS"):
        config = create_sample_config()

    if os.getenv("AEDETECT_SEED"):
        config.seed = int(os.getenv("AEDETECT_SEED"))
        config.autoencoder.seed = config.seed

    if os.getenv("AEDETECT_DEVICE"):
        config.autoencoder.device = os.getenv("AEDETECT_DEVICE")

    return config
