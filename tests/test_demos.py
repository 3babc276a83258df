import math

import numpy as np
import pytest

from nbml.demos import (
    Classifier,
    calculate_accuracy,
    generate_data,
    main,
    run_classification,
    run_two_class,
    run_xor,
)


def test_calculate_accuracy_counts_thresholded_matches():
    predictions = np.array([[0.9], [0.2], [0.6], [0.4]])
    targets = np.array([[1.0], [0.0], [0.0], [0.0]])
    assert calculate_accuracy(predictions, targets) == pytest.approx(0.75)


def test_calculate_accuracy_perfect_and_none():
    targets = np.array([[1.0], [0.0]])
    assert calculate_accuracy(np.array([[0.8], [0.1]]), targets) == 1.0
    assert calculate_accuracy(np.array([[0.1], [0.8]]), targets) == 0.0


def test_generate_data_shapes_and_labels():
    rng = np.random.default_rng(0)
    x, y = generate_data(10, 4, 6, rng)
    assert x.shape == (10, 4, 6)
    assert y.shape == (10, 1)
    assert np.all(y[:5] == 1.0)
    assert np.all(y[5:] == 0.0)


def test_generate_data_classes_are_separated_by_sign():
    x, _ = generate_data(8, 5, 3, np.random.default_rng(1))
    assert np.all(x[:4] > 0.0)
    assert np.all(x[4:] < 0.0)


def test_generate_data_class_one_rises_over_time():
    x, _ = generate_data(2, 10, 4, np.random.default_rng(2))
    assert x[0, -1].mean() > x[0, 0].mean()
    assert x[1, -1].mean() < x[1, 0].mean()


def test_classifier_forward_gives_probabilities():
    rng = np.random.default_rng(3)
    model = Classifier(8, 4, 2, rng=rng)
    x = rng.uniform(-1.0, 1.0, size=(3, 5, 8))
    out = model.forward(x)
    assert out.shape == (3, 1)
    assert np.all((out > 0.0) & (out < 1.0))


def test_classifier_backward_matches_input_shape():
    rng = np.random.default_rng(4)
    model = Classifier(8, 4, 2, rng=rng)
    x = rng.uniform(-1.0, 1.0, size=(2, 3, 8))
    out = model.forward(x)
    d_x = model.backward(out - 1.0)
    assert d_x.shape == x.shape
    assert np.all(np.isfinite(d_x))


def test_classifier_params_join_encoder_and_head():
    model = Classifier(8, 4, 2, rng=np.random.default_rng(5))
    params = model.params()
    assert len(params) == len(model.transformer.params()) + len(model.feed_forward.params())
    assert params[-2].value is model.feed_forward.params()[0].value


def test_run_xor_returns_losses_and_predictions():
    result = run_xor(epochs=5)
    assert len(result["losses"]) == 5
    assert all(math.isfinite(v) for v in result["losses"])
    preds = result["predictions"]
    assert preds.shape == (4, 1)
    assert np.all((preds > 0.0) & (preds < 1.0))


def test_run_two_class_records_each_epoch():
    losses = run_two_class(epochs=3)
    assert len(losses) == 3
    assert all(math.isfinite(v) and v > 0.0 for v in losses)


def test_run_classification_reports_consistently():
    result = run_classification(epochs=2)
    assert len(result["losses"]) == 2
    assert result["best_loss"] == min(result["losses"])
    assert 0.0 <= result["test_accuracy"] <= 1.0


def test_main_runs_xor(capsys):
    assert main(["xor", "--epochs", "3"]) == 0
    assert "XOR predictions" in capsys.readouterr().out


def test_main_rejects_unknown_demo():
    with pytest.raises(SystemExit):
        main(["nonsense"])