import math

import numpy as np
import pytest

from nbml import f
from nbml.f import Activation
from nbml.optim.adam import AdamW
from nbml.rl.sac import SAC, Experience

D_STATE = 3
D_ACTION = 1


def make_agent(seed=0):
    return SAC(
        D_STATE,
        D_ACTION,
        [(D_STATE + D_ACTION, 8, Activation.RELU), (8, 1, Activation.IDENTITY)],
        [(D_STATE, 8, Activation.TANH)],
        rng=np.random.default_rng(seed),
    )


def make_experience(rng, reward=0.5):
    return Experience(
        state=rng.uniform(-1, 1, size=(1, D_STATE)),
        action_mean=np.zeros((1, D_ACTION)),
        action_log_std=np.zeros((1, D_ACTION)),
        action_sample=rng.uniform(-1, 1, size=(1, D_ACTION)),
        reward=reward,
        state_next=rng.uniform(-1, 1, size=(1, D_STATE)),
    )


def filled_agent(n=6, seed=0):
    agent = make_agent(seed)
    rng = np.random.default_rng(seed + 100)
    for _ in range(n):
        agent.remember(make_experience(rng), 100)
    return agent


def test_rejects_wrong_q_input():
    with pytest.raises(ValueError):
        SAC(3, 1, [(3, 1, Activation.IDENTITY)], [(3, 4, Activation.TANH)])


def test_rejects_wrong_policy_input():
    with pytest.raises(ValueError):
        SAC(3, 1, [(4, 1, Activation.IDENTITY)], [(2, 4, Activation.TANH)])


def test_rejects_empty_layers():
    with pytest.raises(ValueError):
        SAC(3, 1, [], [(3, 4, Activation.TANH)])
    with pytest.raises(ValueError):
        SAC(3, 1, [(4, 1, Activation.IDENTITY)], [])


def test_inference_shapes_and_bounds():
    agent = make_agent()
    x = np.random.default_rng(1).uniform(-1, 1, size=(5, D_STATE))
    a, mean, a_raw, log_std = agent.inference(x, False)
    assert a.shape == (5, 1)
    assert mean.shape == (5, 1)
    assert a_raw.shape == (5, 1)
    assert np.all(np.abs(a) <= 1.0)
    assert np.all(log_std >= -20.0) and np.all(log_std <= 2.0)
    np.testing.assert_allclose(a, np.tanh(a_raw))


def test_gaussian_log_prob_matches_std_form():
    rng = np.random.default_rng(2)
    a_raw = rng.normal(size=(4, 3))
    u = rng.normal(size=(4, 3))
    log_std = rng.uniform(-1, 1, size=(4, 3))
    got = SAC.gaussian_log_prob(a_raw, u, log_std)
    np.testing.assert_allclose(got, f.gaussian_log_prob(a_raw, u, np.exp(log_std)))


def test_gaussian_log_prob_standard_normal_at_mean():
    zeros = np.zeros((1, 2))
    got = SAC.gaussian_log_prob(zeros, zeros, zeros)
    assert got[0] == pytest.approx(-math.log(2 * math.pi))


def test_tanh_correction_near_zero_at_origin():
    got = SAC.tanh_gaussian_correction(np.zeros((2, 3)))
    np.testing.assert_allclose(got, 0.0, atol=1e-5)
    far = SAC.tanh_gaussian_correction(np.full((1, 1), 30.0))
    assert np.isfinite(far[0]) and far[0] < -10


def test_remember_keeps_newest():
    agent = make_agent()
    rng = np.random.default_rng(3)
    for i in range(5):
        agent.remember(make_experience(rng, reward=float(i)), 3)
    assert [e.reward for e in agent.buffer] == [2.0, 3.0, 4.0]


def test_batch_sizes_and_distinctness():
    agent = filled_agent(n=5)
    batch = agent.batch(3)
    assert len(batch) == 3
    assert len({id(e) for e in batch}) == 3
    assert len(agent.batch(50)) == 5
    assert sorted(float(e.state.sum()) for e in agent.batch(50)) == sorted(
        float(e.state.sum()) for e in agent.buffer
    )


def test_backwards_sets_gradients():
    agent = filled_agent()
    agent.backwards(agent.batch(4), 0.99, 0.005)
    for param in agent.params()[:-1]:
        assert np.shape(param.grad) == np.shape(param.value)
        assert np.all(np.isfinite(param.grad))
    assert math.isfinite(agent.d_log_alpha)


def test_backwards_soft_update_full_and_none():
    agent = filled_agent()
    before = [layer.w.copy() for layer in agent.q2_target.layers]
    agent.backwards(agent.batch(4), 0.99, 1.0)
    for layer, layer_t in zip(agent.q1.layers, agent.q1_target.layers):
        np.testing.assert_allclose(layer_t.w, layer.w)

    agent = filled_agent(seed=5)
    before = [layer.w.copy() for layer in agent.q2_target.layers]
    agent.backwards(agent.batch(4), 0.99, 0.0)
    for w, layer_t in zip(before, agent.q2_target.layers):
        np.testing.assert_array_equal(layer_t.w, w)


def test_backwards_empty_batch_raises():
    agent = make_agent()
    with pytest.raises(ValueError):
        agent.backwards([], 0.99, 0.005)


def test_params_end_with_temperature_and_optimizer_updates_it():
    agent = filled_agent()
    params = agent.params()
    assert len(params) == 2 * 2 + 2 * 2 + 2 + 2 + 2 + 1
    assert params[-1].name == "log_alpha"

    optim = AdamW().bind(agent)
    agent.backwards(agent.batch(4), 0.99, 0.005)
    agent.d_log_alpha = 1.0
    optim.step(agent)
    assert agent.log_alpha < 0.0
    assert math.isfinite(agent.log_alpha)