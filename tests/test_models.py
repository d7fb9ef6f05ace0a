"""Tests for the autoencoder and VAE models."""

import logging
import math

import numpy as np
import pytest
import torch

from aedetect.models.autoencoder import (
    Autoencoder,
    BatchSampler,
    TrainingHistory,
    classify_scores,
    compute_threshold,
    fit_autoencoder,
    get_threshold,
    make_optimizer,
    validate_sizes,
)
from aedetect.models.layers import build_layer_stack, get_activation
from aedetect.models.vae import VAE, VAEModel


def create_normal_data(n_points: int = 128, n_features: int = 4, seed: int = 0) -> np.ndarray:
    """Create correlated Gaussian data lying near a 2-D subspace."""
    rng = np.random.default_rng(seed)
    latent = rng.normal(0, 1, (n_points, 2))
    mixing = rng.normal(0, 1, (2, n_features))
    noise = rng.normal(0, 0.05, (n_points, n_features))
    return (latent @ mixing + noise).astype(np.float32)


class TestConstruction:
    """Test architecture validation and layer building."""

    def test_valid_architecture(self):
        ae = Autoencoder([4, 3, 2], [2, 3, 4])

        x = torch.randn(5, 4)
        assert ae(x).shape == (5, 4)
        assert ae.encode(x).shape == (5, 2)

    @pytest.mark.parametrize(
        "esize,dsize",
        [
            ([4, 2], [2, 3, 4]),  # encoder too short
            ([4, 3, 2], [2, 4]),  # decoder too short
            ([4, 3, 2], [3, 3, 4]),  # latent widths differ
            ([4, 3, 2], [2, 3, 5]),  # input/output widths differ
        ],
    )
    def test_inconsistent_sizes_rejected(self, esize, dsize):
        """Construction fails before any training can happen."""
        with pytest.raises(ValueError):
            Autoencoder(esize, dsize)

    def test_final_layer_is_linear(self):
        stack = build_layer_stack([4, 3, 2], "tanh")

        assert isinstance(stack[0], torch.nn.Linear)
        assert isinstance(stack[1], torch.nn.Tanh)
        assert isinstance(stack[-1], torch.nn.Linear)
        assert len(stack) == 3

    def test_unknown_activation(self):
        with pytest.raises(ValueError, match="Unknown activation"):
            get_activation("swishy")

    def test_unknown_optimizer(self):
        ae = Autoencoder([4, 3, 2], [2, 3, 4])
        with pytest.raises(ValueError, match="Unknown optimizer"):
            make_optimizer("lbfgs-ish", ae.parameters())

    def test_vae_latent_factor(self):
        validate_sizes([4, 3, 2], [1, 3, 4], latent_factor=2)
        with pytest.raises(ValueError):
            VAE([4, 3, 2], [2, 3, 4])


class TestScoring:
    """Test per-instance scores and classification."""

    def test_scores_are_per_instance(self):
        ae = Autoencoder([4, 3, 2], [2, 3, 4])
        data = create_normal_data(10)

        scores = ae.anomaly_score(data)

        with torch.no_grad():
            x = torch.as_tensor(data)
            expected = ((ae(x) - x) ** 2).mean(dim=1).numpy()

        assert scores.shape == (10,)
        np.testing.assert_allclose(scores, expected, rtol=1e-5)

    def test_single_instance_score(self):
        ae = Autoencoder([4, 3, 2], [2, 3, 4])
        data = create_normal_data(10)

        single = ae.anomaly_score(data[3])

        assert isinstance(single, float)
        assert single == pytest.approx(ae.anomaly_score(data)[3], rel=1e-5)

    def test_batch_loss_is_mean_of_scores(self):
        ae = Autoencoder([4, 3, 2], [2, 3, 4])
        data = create_normal_data(10)

        with torch.no_grad():
            loss = ae.loss(torch.as_tensor(data)).item()

        assert loss == pytest.approx(ae.anomaly_score(data).mean(), rel=1e-5)

    def test_scoring_restores_training_mode(self):
        ae = Autoencoder([4, 3, 2], [2, 3, 4])
        data = create_normal_data(10)

        ae.train()
        ae.anomaly_score(data)
        assert ae.training

        ae.eval()
        ae.anomaly_score(data)
        assert not ae.training

    def test_vae_scoring_restores_training_mode(self):
        vae = VAE([4, 6, 2], [1, 6, 4])

        vae.train()
        vae.anomaly_score(create_normal_data(10), n_samples=2)

        assert vae.training

    def test_classify_strictly_greater(self):
        ae = Autoencoder([4, 3, 2], [2, 3, 4])
        x = create_normal_data(5)[0]
        score = ae.anomaly_score(x)

        assert ae.classify(x, score) == 0
        assert ae.classify(x, score - 1e-6) == 1
        assert ae.classify(x, score + 1e-6) == 0

    def test_classify_batch_independent(self):
        ae = Autoencoder([4, 3, 2], [2, 3, 4])
        data = create_normal_data(20)
        scores = ae.anomaly_score(data)
        threshold = float(np.median(scores))

        labels = ae.classify(data, threshold)

        assert labels.shape == (20,)
        np.testing.assert_array_equal(labels, (scores > threshold).astype(int))
        for i in range(5):
            assert ae.classify(data[i], threshold) == labels[i]

    def test_classify_scores(self):
        labels = classify_scores(np.array([1.0, 2.0, 3.0]), 2.0)
        np.testing.assert_array_equal(labels, [0, 0, 1])


class TestThreshold:
    """Test contamination-based threshold selection."""

    def test_largest_score_for_one_anomaly(self):
        scores = np.arange(1, 11, dtype=float)
        assert compute_threshold(scores, 0.1) == 10

    def test_third_largest_for_three_anomalies(self):
        scores = np.arange(1, 11, dtype=float)
        assert compute_threshold(scores, 0.3) == 8

    def test_unsorted_scores(self):
        scores = np.array([7, 3, 10, 1, 5, 9, 2, 8, 4, 6], dtype=float)
        assert compute_threshold(scores, 0.3) == 8

    def test_beta_interpolates_with_next_score(self):
        scores = np.arange(1, 11, dtype=float)
        assert compute_threshold(scores, 0.3, beta=0.5) == pytest.approx(8.5)
        assert compute_threshold(scores, 0.3, beta=0.0) == pytest.approx(9.0)

    def test_top_score_interpolation_stays_in_range(self):
        scores = np.arange(1, 11, dtype=float)
        assert compute_threshold(scores, 0.1, beta=0.5) == pytest.approx(10.0)

    def test_zero_contamination_keeps_one_anomaly(self):
        scores = np.arange(1, 11, dtype=float)
        assert compute_threshold(scores, 0.0) == 10

    def test_monotone_in_contamination(self):
        scores = np.random.default_rng(1).exponential(size=50)
        thresholds = [compute_threshold(scores, c) for c in np.linspace(0, 1, 21)]
        assert all(a >= b for a, b in zip(thresholds[:-1], thresholds[1:]))

    def test_excess_contamination_clamps_to_lowest(self):
        scores = np.arange(1, 11, dtype=float)
        assert compute_threshold(scores, 2.0) == 1
        assert compute_threshold(scores, 1.0) == 1

    def test_invalid_inputs(self):
        with pytest.raises(ValueError):
            compute_threshold([], 0.1)
        with pytest.raises(ValueError):
            compute_threshold([1.0, 2.0], -0.1)
        with pytest.raises(ValueError):
            compute_threshold([1.0, 2.0], 0.1, beta=1.5)

    def test_get_threshold_uses_model_scores(self):
        ae = Autoencoder([4, 3, 2], [2, 3, 4])
        data = create_normal_data(40)

        threshold = get_threshold(ae, data, 0.1)

        assert threshold == pytest.approx(compute_threshold(ae.anomaly_score(data), 0.1))
        assert np.sum(ae.anomaly_score(data) > threshold) == 3


class TestTraining:
    """Test the minibatch training loop."""

    def test_sampler_draws_without_replacement(self):
        sampler = BatchSampler(10, 10, np.random.default_rng(0))
        batch = sampler.sample()

        assert sorted(batch) == list(range(10))

    def test_sampler_is_seedable(self):
        a = BatchSampler(100, 8, np.random.default_rng(3))
        b = BatchSampler(100, 8, np.random.default_rng(3))

        for _ in range(5):
            np.testing.assert_array_equal(a.sample(), b.sample())

    def test_sampler_rejects_oversized_batch(self):
        with pytest.raises(ValueError):
            BatchSampler(5, 6)
        with pytest.raises(ValueError):
            BatchSampler(5, 0)

    def test_loss_decreases(self):
        torch.manual_seed(0)
        ae = Autoencoder([4, 8, 2], [2, 8, 4])
        data = create_normal_data(256)

        before = ae.anomaly_score(data).mean()
        fit_autoencoder(
            ae, data, 32, iterations=300, verbose=False,
            learning_rate=1e-2, rng=np.random.default_rng(0),
        )
        after = ae.anomaly_score(data).mean()

        assert after < before

    def test_history_has_one_entry_per_iteration(self):
        ae = Autoencoder([4, 3, 2], [2, 3, 4])
        history = TrainingHistory()

        result = fit_autoencoder(
            ae, create_normal_data(64), 16, iterations=5, cbit=1,
            verbose=False, history=history,
        )

        assert len(history) == 5
        assert result["iterations_run"] == 5
        assert history.last == pytest.approx(result["final_loss"])
        assert not result["stopped_early"]

    def test_early_stop_after_first_iteration(self):
        """Early stopping compares the training batch loss with rdelta."""
        ae = Autoencoder([4, 3, 2], [2, 3, 4])
        history = TrainingHistory()

        result = fit_autoencoder(
            ae, create_normal_data(64), 16, iterations=100,
            verbose=True, rdelta=1e6, history=history,
        )

        assert result["iterations_run"] == 1
        assert result["stopped_early"]
        assert len(history) == 1

    def test_progress_logged_every_cbit(self, caplog):
        ae = Autoencoder([4, 3, 2], [2, 3, 4])

        with caplog.at_level(logging.INFO, logger="aedetect.models.autoencoder"):
            fit_autoencoder(ae, create_normal_data(64), 16, iterations=10, cbit=5, verbose=True)

        progress = [r for r in caplog.records if r.getMessage().startswith("Iteration")]
        assert len(progress) == 2
        assert progress[0].getMessage().startswith("Iteration 5:")

    def test_quiet_training_logs_nothing(self, caplog):
        ae = Autoencoder([4, 3, 2], [2, 3, 4])

        with caplog.at_level(logging.INFO, logger="aedetect.models.autoencoder"):
            fit_autoencoder(
                ae, create_normal_data(64), 16, iterations=10, cbit=5,
                verbose=False, rdelta=1e6,
            )

        assert not [r for r in caplog.records if r.name == "aedetect.models.autoencoder"]

    def test_early_stop_is_logged(self, caplog):
        ae = Autoencoder([4, 3, 2], [2, 3, 4])

        with caplog.at_level(logging.INFO, logger="aedetect.models.autoencoder"):
            fit_autoencoder(
                ae, create_normal_data(64), 16, iterations=100, cbit=5,
                verbose=True, rdelta=1e6,
            )

        stops = [r for r in caplog.records if "Training ended prematurely" in r.getMessage()]
        assert len(stops) == 1

    def test_no_early_stop_by_default(self):
        ae = Autoencoder([4, 3, 2], [2, 3, 4])

        result = fit_autoencoder(ae, create_normal_data(64), 16, iterations=10, verbose=False)

        assert result["iterations_run"] == 10
        assert math.isfinite(result["final_loss"])

    def test_seeded_runs_are_identical(self):
        data = create_normal_data(64)
        params = []

        for _ in range(2):
            torch.manual_seed(42)
            ae = Autoencoder([4, 3, 2], [2, 3, 4])
            fit_autoencoder(
                ae, data, 16, iterations=20, verbose=False,
                rng=np.random.default_rng(7),
            )
            params.append(ae.state_dict())

        for key in params[0]:
            assert torch.equal(params[0][key], params[1][key])

    def test_history_is_append_only_view(self):
        history = TrainingHistory()
        history.append(1.0)

        losses = history.losses
        losses.append(2.0)

        assert len(history) == 1
        assert list(history) == [1.0]


class TestVAE:
    """Test the variational autoencoder."""

    def test_vae_shapes(self):
        vae = VAE([4, 6, 2], [1, 6, 4], lambda_=1e-3)
        x = torch.randn(8, 4)

        assert vae(x).shape == (8, 4)
        assert vae.loss(x).ndim == 0
        assert vae.anomaly_score(x.numpy(), n_samples=3).shape == (8,)

    def test_vae_scores_nonnegative(self):
        vae = VAE([4, 6, 2], [1, 6, 4])
        scores = vae.anomaly_score(create_normal_data(16))
        assert np.all(scores >= 0)

    def test_vae_model_fit_predict(self):
        data = create_normal_data(64)
        model = VAEModel(
            [4, 6, 2], [1, 6, 4], batch_size=16, iterations=20,
            lambda_=1e-4, contamination=0.1, tracked=True, seed=0,
        )

        model.fit(data)
        labels = model.predict(data)

        assert len(model.history) == 20
        assert labels.shape == (64,)
        assert set(np.unique(labels)) <= {0, 1}
