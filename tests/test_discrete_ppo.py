import numpy as np
import pytest

from nbml.rl.discrete_ppo import DiscretePPO, Effect


def make_agent(seed=0, d_action=2):
    return DiscretePPO(
        [(3, 4, "relu")],
        [(3, 4, "relu")],
        d_action,
        3,
        rng=np.random.default_rng(seed),
    )


def obs(seed):
    return np.random.default_rng(seed).uniform(-1, 1, size=(1, 3))


def test_final_layers_are_appended():
    agent = make_agent(d_action=5)
    assert agent.policy.layers[-1].w.shape == (4, 5)
    assert agent.values.layers[-1].w.shape == (4, 1)
    assert len(agent.policy.layers) == 2


def test_empty_layers_rejected():
    with pytest.raises(ValueError):
        DiscretePPO([], [(3, 4, "relu")], 2, 3)


def test_forward_returns_normalised_log_probs():
    agent = make_agent(d_action=3)
    log_probs = agent.forward(obs(1))
    assert log_probs.shape == (3,)
    assert np.exp(log_probs).sum() == pytest.approx(1.0)
    assert len(agent.partial_trajectories) == 1
    pending = agent.partial_trajectories[0]
    assert pending.action_log_prob == pytest.approx(log_probs[pending.action_ix])


def test_forward_is_reproducible_with_seed():
    a = make_agent(seed=7).forward(obs(2))
    b = make_agent(seed=7).forward(obs(2))
    np.testing.assert_allclose(a, b)


def test_forward_rejects_batches():
    agent = make_agent()
    with pytest.raises(ValueError):
        agent.forward(np.zeros((2, 3)))


def test_backward_completes_pending_and_sets_grads():
    agent = make_agent()
    agent.forward(obs(1))
    agent.forward(obs(2))
    agent.backward([Effect(1.0, obs(3)), Effect(0.0, obs(4))], epochs=2, buffer=10, clip=0.2)
    assert len(agent.partial_trajectories) == 0
    assert len(agent.trajectories) == 2
    assert agent.policy.layers[0].d_w.shape == agent.policy.layers[0].w.shape
    assert agent.values.layers[-1].d_w.shape == agent.values.layers[-1].w.shape
    assert np.all(np.isfinite(agent.policy.layers[0].d_w))


def test_backward_trims_buffer():
    agent = make_agent()
    agent.forward(obs(1))
    agent.forward(obs(2))
    agent.backward([Effect(1.0, obs(3)), Effect(0.5, obs(4))], epochs=1, buffer=1, clip=0.2)
    assert len(agent.trajectories) == 1
    assert agent.trajectories[0].reward == 0.5


def test_extra_effects_are_ignored():
    agent = make_agent()
    agent.forward(obs(1))
    agent.backward(
        [Effect(1.0, obs(2)), Effect(2.0, obs(3)), Effect(3.0, obs(4))],
        epochs=0,
        buffer=10,
        clip=0.2,
    )
    assert len(agent.trajectories) == 1
    assert agent.trajectories[0].reward == 1.0