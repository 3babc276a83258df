import numpy as np
import pytest

from nbml.optim.param import Param
from nbml.optim.sgd import SGD


class Toy:
    def __init__(self):
        self.w = np.array([[1.0]])
        self.b = np.array([1.0, 2.0])
        self.s = 3.0
        self.d_w = np.array([[2.0]])
        self.d_b = np.array([0.5, -1.0])
        self.d_s = 2.0

    def params(self):
        return [Param(self, "w", "d_w"), Param(self, "b", "d_b"), Param(self, "s", "d_s")]


def test_bind_returns_self():
    opt = SGD()
    assert opt.bind(Toy()) is opt


def test_step_pins_simple_update():
    toy = Toy()
    SGD(learning_rate=0.5).step(toy)
    np.testing.assert_array_equal(toy.w, np.array([[0.0]]))


def test_two_steps_equal_one_double_step():
    twice, once = Toy(), Toy()
    opt = SGD(learning_rate=0.1)
    opt.step(twice)
    opt.step(twice)
    SGD(learning_rate=0.2).step(once)
    np.testing.assert_allclose(twice.w, once.w)
    np.testing.assert_allclose(twice.b, once.b)
    assert twice.s == pytest.approx(once.s)


def test_default_rate_moves_against_gradient():
    toy = Toy()
    opt = SGD()
    assert opt.learning_rate == 1e-3
    opt.step(toy)
    assert toy.w[0, 0] < 1.0
    assert toy.b[0] < 1.0 and toy.b[1] > 2.0
    assert toy.s < 3.0


def test_mismatched_kind_is_skipped():
    toy = Toy()
    toy.d_w = np.array([2.0])
    SGD(learning_rate=0.5).step(toy)
    np.testing.assert_array_equal(toy.w, np.array([[1.0]]))


def test_shape_mismatch_raises():
    toy = Toy()
    toy.d_b = np.zeros(0)
    with pytest.raises(ValueError):
        SGD().step(toy)