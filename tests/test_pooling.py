import numpy as np

from nbml.nn.pooling import SequencePooling, zero_mask_batch


def test_zero_mask_marks_empty_positions():
    x = np.ones((1, 3, 2))
    x[0, 1] = 0.0
    assert np.array_equal(zero_mask_batch(x), np.array([[1.0, 0.0, 1.0]]))


def test_zero_mask_is_one_for_nonzero_data():
    rng = np.random.default_rng(0)
    x = rng.uniform(0.1, 1.0, size=(2, 4, 3))
    mask = zero_mask_batch(x)
    assert mask.shape == (2, 4)
    assert np.all(mask == 1.0)


def test_pooling_constant_sequence_returns_constant():
    pool = SequencePooling()
    x = np.full((2, 3, 4), 2.5)
    out = pool.forward(x, np.ones((2, 3)), False)
    assert np.allclose(out, np.full((2, 4), 2.5))


def test_pooling_ignores_masked_positions():
    rng = np.random.default_rng(1)
    pool = SequencePooling()
    x = rng.normal(size=(2, 3, 4))
    mask = np.ones((2, 3))
    mask[:, 2] = 0.0

    out = pool.forward(x, mask, False)
    changed = x.copy()
    changed[:, 2] += 10.0

    assert np.allclose(out, x[:, :2].mean(axis=1))
    assert np.allclose(pool.forward(changed, mask, False), out)


def test_backward_zero_at_masked_and_sums_to_upstream():
    rng = np.random.default_rng(2)
    pool = SequencePooling()
    x = rng.normal(size=(2, 4, 3))
    mask = np.ones((2, 4))
    mask[0, 3] = 0.0
    mask[1, 1:] = 0.0

    pool.forward(x, mask, True)
    d_loss = rng.normal(size=(2, 3))
    d_x = pool.backward(d_loss)

    assert d_x.shape == x.shape
    assert np.all(d_x[mask == 0.0] == 0.0)
    assert np.allclose(d_x.sum(axis=1), d_loss)


def test_backward_matches_finite_differences():
    rng = np.random.default_rng(3)
    pool = SequencePooling()
    x = rng.normal(size=(2, 3, 2))
    mask = np.ones((2, 3))
    mask[1, 2] = 0.0
    d_loss = rng.normal(size=(2, 2))

    pool.forward(x, mask, True)
    analytical = pool.backward(d_loss)

    eps = 1e-6
    numerical = np.zeros_like(x)
    for idx in np.ndindex(x.shape):
        plus = x.copy()
        minus = x.copy()
        plus[idx] += eps
        minus[idx] -= eps
        numerical[idx] = (
            np.sum(d_loss * pool.forward(plus, mask, False))
            - np.sum(d_loss * pool.forward(minus, mask, False))
        ) / (2 * eps)

    assert np.allclose(analytical, numerical, atol=1e-6)