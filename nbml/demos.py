"""Small training runs: XOR with a feed-forward net and sequence classification."""

from __future__ import annotations

import argparse
from typing import Any, Sequence

import numpy as np

from nbml.f import Activation
from nbml.nn.ffn import FFN
from nbml.nn.pooling import SequencePooling
from nbml.nn.transformer_encoder import TransformerEncoder
from nbml.optim.adam import AdamW
from nbml.optim.param import Param, ToParams

_EPS = 1e-7


class Classifier(ToParams):
    """Transformer encoder, mean pooling and a sigmoid output unit."""

    def __init__(
        self,
        d_model: int,
        d_head: int,
        n_head: int,
        rng: np.random.Generator | None = None,
    ) -> None:
        self.transformer = TransformerEncoder(
            d_model, d_head, n_head, [(d_model, d_model, Activation.RELU)], rng=rng
        )
        self.pooling = SequencePooling()
        self.feed_forward = FFN([(d_model, 1, Activation.SIGMOID)], rng=rng)

    def forward(self, x: np.ndarray) -> np.ndarray:
        """Map ``(batch, seq, d_model)`` to probabilities of shape ``(batch, 1)``."""
        x = np.asarray(x, dtype=float)
        mask = np.ones(x.shape[:2])
        hidden = self.transformer.forward(x, mask, True)
        pooled = self.pooling.forward(hidden, mask, True)
        return self.feed_forward.forward(pooled, True)

    def backward(self, d_loss: np.ndarray) -> np.ndarray:
        d = self.feed_forward.backward(d_loss)
        d = self.pooling.backward(d)
        return self.transformer.backward(d)

    def params(self) -> list[Param]:
        return [*self.transformer.params(), *self.feed_forward.params()]


def generate_data(
    n_samples: int,
    seq_len: int,
    d_model: int,
    rng: np.random.Generator | None = None,
) -> tuple[np.ndarray, np.ndarray]:
    """Two separable classes: the first half rising positive sequences labelled 1,
    the rest falling negative sequences labelled 0, each with uniform noise."""
    rng = rng if rng is not None else np.random.default_rng()

    half = n_samples // 2
    labels = np.where(np.arange(n_samples) < half, 1.0, 0.0)

    t = np.arange(seq_len)[:, np.newaxis] / seq_len
    d = np.arange(d_model)[np.newaxis, :] / d_model
    pattern = 0.5 + 0.5 * t + 0.1 * d
    signs = np.where(labels == 1.0, 1.0, -1.0)[:, np.newaxis, np.newaxis]

    x = signs * pattern + rng.uniform(-0.1, 0.1, size=(n_samples, seq_len, d_model))
    return x, labels[:, np.newaxis]


def calculate_accuracy(predictions: np.ndarray, targets: np.ndarray) -> float:
    """Fraction of predictions whose class (threshold 0.5) matches the target."""
    predictions = np.asarray(predictions, dtype=float)
    targets = np.asarray(targets, dtype=float)
    classes = np.where(predictions > 0.5, 1.0, 0.0)
    correct = np.count_nonzero(np.abs(classes.ravel() - targets.ravel()) < 0.1)
    return correct / predictions.size


def _bce(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    clipped = np.clip(y_pred, _EPS, 1.0 - _EPS)
    return float(-np.mean(y_true * np.log(clipped) + (1.0 - y_true) * np.log(1.0 - clipped)))


def run_xor(epochs: int = 10000) -> dict[str, Any]:
    """Fit XOR with a 2-4-1 network under mean squared error."""
    x = np.array([[0.0, 0.0], [0.0, 1.0], [1.0, 0.0], [1.0, 1.0]])
    y = np.array([[0.0], [1.0], [1.0], [0.0]])

    net = FFN([(2, 4, Activation.RELU), (4, 1, Activation.SIGMOID)])
    opt = AdamW().bind(net)
    opt.learning_rate = 0.01

    losses: list[float] = []
    for epoch in range(epochs):
        y_pred = net.forward(x.copy(), True)
        loss = float(np.mean((y_pred - y) ** 2))
        losses.append(loss)

        net.backward(2.0 * (y_pred - y) / y.shape[0])
        opt.step(net)

        if epoch % 1000 == 0:
            print(f"epoch {epoch}, loss {loss}")

    predictions = net.forward(x.copy(), False)
    print(f"XOR predictions:\n{predictions}")
    return {"losses": losses, "predictions": predictions}


def run_two_class(epochs: int = 1000) -> list[float]:
    """Separate two random sequences with a transformer classifier; returns the losses."""
    rng = np.random.default_rng()
    model = Classifier(50, 10, 5)
    optim = AdamW().bind(model)
    optim.weight_decay = 0.001
    optim.learning_rate = 0.0001

    x = np.stack([rng.uniform(0.0, 1.0, size=(5, 50)), rng.uniform(0.0, 1.0, size=(5, 50))])
    y = np.array([[1.0], [0.0]])

    losses: list[float] = []
    for epoch in range(epochs):
        y_pred = model.forward(x.copy())

        print(f"x: {list(x.shape)}")
        print(f"y_pred: {y_pred}")

        loss = float(-np.mean(y * np.log(y_pred) + (1.0 - y) * np.log(1.0 - y_pred)))
        model.backward((y_pred - y) / x.shape[0])
        optim.step(model)

        losses.append(loss)
        print(f"epoch={epoch} loss={loss}")

    return losses


def run_classification(epochs: int = 500) -> dict[str, Any]:
    """Train the sequence classifier on synthetic data and report on a test set."""
    d_model, d_head, n_head = 32, 8, 4
    seq_len, n_train, n_test = 10, 100, 20
    learning_rate = 0.001

    print("=== Transformer Sequence Classification Test ===\n")
    print("Configuration:")
    print(f"  d_model: {d_model}")
    print(f"  d_head: {d_head}")
    print(f"  n_head: {n_head}")
    print(f"  seq_len: {seq_len}")
    print(f"  train samples: {n_train}")
    print(f"  test samples: {n_test}")
    print(f"  learning_rate: {learning_rate}\n")

    rng = np.random.default_rng()
    x_train, y_train = generate_data(n_train, seq_len, d_model, rng)
    x_test, y_test = generate_data(n_test, seq_len, d_model, rng)

    print("Data shapes:")
    print(f"  x_train: {list(x_train.shape)}")
    print(f"  y_train: {list(y_train.shape)}")
    print(f"  x_test: {list(x_test.shape)}")
    print(f"  y_test: {list(y_test.shape)}\n")

    model = Classifier(d_model, d_head, n_head)
    optim = AdamW().bind(model)
    optim.learning_rate = learning_rate
    optim.beta1 = 0.9
    optim.beta2 = 0.999
    optim.epsilon = 1e-8
    optim.weight_decay = 0.0

    print("Starting training...\n")

    best_loss = float("inf")
    losses: list[float] = []

    for epoch in range(epochs):
        y_pred = model.forward(x_train.copy())
        loss = _bce(y_train, y_pred)
        losses.append(loss)

        model.backward(y_pred - y_train)
        optim.step(model)

        best_loss = min(best_loss, loss)

        if epoch % 50 == 0 or epoch == epochs - 1:
            train_acc = calculate_accuracy(y_pred, y_train)
            y_test_pred = model.forward(x_test.copy())
            test_loss = float(
                -np.mean(
                    y_test * np.log(np.clip(y_test_pred, _EPS, 1.0 - _EPS))
                    + (1.0 - y_test) * np.log(1.0 - np.clip(1.0 - y_test_pred, _EPS, 1.0 - _EPS))
                )
            )
            test_acc = calculate_accuracy(y_test_pred, y_test)
            print(
                f"Epoch {epoch:3} | Train Loss: {loss:.6f} | Train Acc: {train_acc * 100:.2f}% "
                f"| Test Loss: {test_loss:.6f} | Test Acc: {test_acc * 100:.2f}%"
            )

    print("\n=== Final Evaluation ===")
    y_test_pred = model.forward(x_test.copy())
    test_acc = calculate_accuracy(y_test_pred, y_test)

    print(f"Best training loss: {best_loss:.6f}")
    print(f"Final test accuracy: {test_acc * 100:.2f}%\n")

    print("Sample predictions (first 10 test samples):")
    print(f"{'Predicted':<10} {'Actual':<10} {'Correct?':<10}")
    print("-" * 35)
    for pred, actual in zip(y_test_pred[:10, 0], y_test[:10, 0]):
        pred_class = 1.0 if pred > 0.5 else 0.0
        mark = "✓" if pred_class == actual else "✗"
        print(f"{pred:<10.4f} {actual:<10.0f} {mark:<10}")

    result: dict[str, Any] = {
        "losses": losses,
        "best_loss": best_loss,
        "test_accuracy": test_acc,
    }
    if not losses:
        return result

    print("\n=== Loss Analysis ===")
    initial_loss, final_loss = losses[0], losses[-1]
    loss_reduction = (initial_loss - final_loss) / initial_loss * 100.0
    print(f"Initial loss: {initial_loss:.6f}")
    print(f"Final loss: {final_loss:.6f}")
    print(f"Loss reduction: {loss_reduction:.2f}%")

    if loss_reduction < 5.0:
        print("\n⚠️  WARNING: Loss did not decrease significantly!")
        print("Possible issues:")
        print("  - Gradients not flowing properly")
        print("  - Learning rate too small")
        print("  - Model capacity insufficient")
        print("  - Bug in backward pass")
    elif test_acc < 0.6:
        print("\n⚠️  WARNING: Poor test accuracy despite loss reduction!")
        print("Possible issues:")
        print("  - Overfitting to training data")
        print("  - Data not separable enough")
        print("  - Model architecture issue")
    else:
        print("\n✓ Model appears to be learning correctly!")

    result["loss_reduction"] = loss_reduction
    return result


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="nbml-demo", description="Run a training demo.")
    sub = parser.add_subparsers(dest="demo", required=True)
    for name, default in (("xor", 10000), ("two-class", 1000), ("classification", 500)):
        demo = sub.add_parser(name)
        demo.add_argument("--epochs", type=int, default=default)

    args = parser.parse_args(argv)
    if args.demo == "xor":
        run_xor(args.epochs)
    elif args.demo == "two-class":
        run_two_class(args.epochs)
    else:
        run_classification(args.epochs)
    return 0