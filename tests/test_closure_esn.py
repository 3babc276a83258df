import numpy as np

from nbml.f import Activation
from nbml.nn.closure_esn import Closure, ClosureNet, Recurrent


def _rng():
    return np.random.default_rng(11)


def test_closure_forward_sets_target_and_shapes():
    closure = Closure(4, 2, Activation.TANH, Activation.IDENTITY, rng=_rng())
    out = closure.forward(np.ones((1, 4)), True)
    assert out.shape == (1, 2)
    assert closure.target.shape == (1, 4)
    assert np.all(np.abs(closure.target) <= 1.0)


def test_closure_backward_returns_state_gradient():
    closure = Closure(4, 2, Activation.TANH, Activation.IDENTITY, rng=_rng())
    closure.forward(np.ones((1, 4)), True)
    d_state = closure.backward(np.ones((1, 2)))
    assert d_state.shape == (1, 4)
    assert len(closure.params()) == 4


def test_recurrent_gradients_are_diagonal():
    rng = _rng()
    cell = Recurrent(5, rng=rng)
    cell.forward(rng.uniform(-1, 1, (1, 5)), True)
    cell.forward(rng.uniform(-1, 1, (1, 5)), True)
    cell.backward(rng.uniform(-1, 1, (1, 5)))
    assert np.array_equal(cell.d_wi, np.diag(np.diag(cell.d_wi)))
    assert np.array_equal(cell.d_wr, np.diag(np.diag(cell.d_wr)))
    assert cell.d_b.shape == (5,)


def test_recurrent_diagonal_matches_finite_differences():
    rng = _rng()
    cell = Recurrent(3, rng=rng)
    x = rng.uniform(-1, 1, (1, 3))
    d_loss = rng.uniform(-1, 1, (1, 3))
    cell.forward(x, True)
    cell.backward(d_loss)

    def loss():
        cell.states = np.zeros((1, 3))
        return float(np.sum(d_loss * cell.forward(x, False)))

    eps = 1e-6
    for j in range(3):
        orig = cell.w_i[j, j]
        cell.w_i[j, j] = orig + eps
        plus = loss()
        cell.w_i[j, j] = orig - eps
        minus = loss()
        cell.w_i[j, j] = orig
        assert abs(cell.d_wi[j, j] - (plus - minus) / (2 * eps)) < 1e-6


def test_closure_net_forward_backward_and_reset():
    net = ClosureNet(2, 6, 1, Activation.TANH, Activation.IDENTITY, rng=_rng())
    out = net.forward(np.ones((1, 2)), True)
    assert out.shape == (1, 1)
    net.backward(np.ones((1, 1)))
    assert net.recurrent.d_wr.shape == (6, 6)
    assert net.closure.r.layers[0].d_w.shape == (6, 1)
    assert net.projection.layers[0].d_w.shape == (0, 0)
    net.reset()
    assert np.array_equal(net.recurrent.states, np.zeros((1, 6)))


def test_closure_net_params_order():
    net = ClosureNet(2, 6, 1, Activation.TANH, Activation.IDENTITY, rng=_rng())
    params = net.params()
    assert len(params) == 9
    assert params[0].value is net.projection.layers[0].w
    assert params[2].value is net.recurrent.w_i
    assert params[-1].value is net.closure.r.layers[0].b