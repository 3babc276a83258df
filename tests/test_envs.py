import math

import numpy as np
import pytest

from nbml.envs import Narma10, PendulumEnv, lorenz_step


def test_lorenz_origin_is_fixed_point():
    assert np.array_equal(lorenz_step(np.zeros(3), 0.01), np.zeros(3))


def test_lorenz_zero_dt_keeps_state():
    state = np.array([1.5, -2.0, 3.0])
    assert np.allclose(lorenz_step(state, 0.0), state)


def test_lorenz_single_step_value():
    out = lorenz_step(np.array([1.0, 1.0, 1.0]), 0.01)
    assert out == pytest.approx([1.0, 1.26, 1.0 - 0.05 / 3.0])


def test_narma_first_step_from_zero_history():
    env = Narma10()
    assert env.step(0.7) == pytest.approx(0.1)
    assert env.ys[0] == pytest.approx(0.1)
    assert env.xs[0] == 0.7
    assert len(env.ys) == 10 and len(env.xs) == 10


def test_narma_history_shifts_fifo():
    env = Narma10()
    for i in range(12):
        env.step(float(i))
    assert env.xs == [float(i) for i in range(11, 1, -1)]
    assert len(env.ys) == 10


def test_narma_random_histories_in_unit_interval():
    env = Narma10.random(np.random.default_rng(3))
    assert all(0.0 <= v < 1.0 for v in env.ys + env.xs)
    assert len(set(env.ys)) == 1


def test_pendulum_reset_observation():
    env = PendulumEnv()
    obs = env.reset(np.random.default_rng(5))
    assert obs.shape == (1, 3)
    assert obs[0, 0] ** 2 + obs[0, 1] ** 2 == pytest.approx(1.0)
    assert -math.pi <= env.state[0] < math.pi
    assert -1.0 <= env.state[1] < 1.0


def test_pendulum_upright_at_rest_stays_put():
    env = PendulumEnv()
    obs, reward, done = env.step(0.0)
    assert env.state == pytest.approx([0.0, 0.0])
    assert reward == pytest.approx(0.0)
    assert done is False
    assert obs[0].tolist() == pytest.approx([1.0, 0.0, 0.0])


def test_pendulum_torque_is_clipped():
    a, b = PendulumEnv(state=[0.3, 0.1]), PendulumEnv(state=[0.3, 0.1])
    _, ra, _ = a.step(100.0)
    _, rb, _ = b.step(a.max_torque)
    assert a.state == pytest.approx(b.state)
    assert ra == pytest.approx(rb)


def test_pendulum_speed_is_clipped_and_reward_non_positive():
    env = PendulumEnv(state=[1.0, 50.0])
    _, reward, _ = env.step(2.0)
    assert abs(env.state[1]) <= env.max_speed
    assert reward <= 0.0