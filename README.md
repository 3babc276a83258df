# nbml

Small, readable machine-learning building blocks on top of NumPy. Every
layer keeps what it needs from its forward pass and computes gradients in an
explicit backward pass, so you can see and change exactly what happens.

## What is inside

- `nbml.f` – activations and their derivatives (`relu`, `leaky_relu`,
  `sigmoid`, `tanh`, `softplus`, `exp`, `ident`, `softmax`), the
  `Activation` enum that pairs each with its derivative and weight
  initialiser, the initialisers `he`, `xavier` and `xavier_normal`,
  `log_softmax`, `clip_grad`, `l2`/`l2_norm`, `sample_categorical`,
  `sample_gumbel_categorical` and `gaussian_log_prob`.
- `nbml.nn.ffn` – `Layer` (a dense layer) and `FFN` (a stack of them).
  Layers are described as `(d_in, d_out, activation)` tuples.
- `nbml.nn.layernorm` – `LayerNorm` over the feature axis of
  `(batch, seq, features)` arrays.
- `nbml.nn.attention` – multi-head self-attention, `AttentionHead`, with a
  `(batch, seq)` padding mask.
- `nbml.nn.pooling` – `SequencePooling` (masked mean over the sequence) and
  `zero_mask_batch`, which masks positions whose features sum to zero.
- `nbml.nn.transformer_encoder` – `TransformerEncoder`, with a pre-norm
  `forward`/`backward` and a post-norm `forward_post`/`backward_post`.
  `forward` raises `FloatingPointError` if a sublayer produces NaN.
- `nbml.nn.rnn` – `Recurrent`, a tanh cell trained by truncated
  back-propagation through time, and `RNN` (projection, cell, readout) with
  `backward_esn` (readout only) and `backward_bptt`.
- `nbml.nn.closure_esn` – the experimental `ClosureNet`, a reservoir whose
  recurrent weight gradients are kept diagonal and driven towards a closure
  readout.
- `nbml.optim` – the `AdamW` and `SGD` optimizers in `nbml.optim.adam` and
  `nbml.optim.sgd`; `Param`, `ToParams`, `Optimizer`, `zero_grads`,
  `save_weights` and `load_weights` in `nbml.optim.param`.
- `nbml.rl` – `DiscretePPO`, continuous-action `PPO`, `TD3` and `SAC`.
- `nbml.envs` – `lorenz_step`, the `Narma10` benchmark series and a
  `PendulumEnv` control task.
- `nbml.util` – `batch_with_mask` for padding variable-length sequences
  (`nbml.util.batch`), regression metrics `mse`, `nmse`, `r2`, `pearson_r`
  and `score` (`nbml.util.bench`), and line plots `plot` and `plot_pair`
  drawn with matplotlib (`nbml.util.graph`).
- `nbml.demos` – end-to-end training runs, also available as the
  `nbml-demo` command.

Most constructors that create weights take an optional
`rng: numpy.random.Generator` so runs can be made reproducible.

## Installing

```
pip install .
```

Add the `test` extra to run the test suite:

```
pip install ".[test]"
pytest
```

## Training a network

A model is anything with a `params()` method returning `Param` handles.
Bind an optimizer to it once, then alternate forward pass, backward pass and
`step`:

```python
import numpy as np

from nbml.f import Activation
from nbml.nn.ffn import FFN
from nbml.optim.adam import AdamW

x = np.array([[0.0, 0.0], [0.0, 1.0], [1.0, 0.0], [1.0, 1.0]])
y = np.array([[0.0], [1.0], [1.0], [0.0]])

net = FFN([(2, 4, Activation.RELU), (4, 1, Activation.SIGMOID)])
opt = AdamW(learning_rate=0.01).bind(net)

for epoch in range(10_000):
    y_pred = net.forward(x, True)
    net.backward(2.0 * (y_pred - y) / len(y))
    opt.step(net)

print(net.forward(x, False))
```

`AdamW` clips every vector and matrix gradient to a norm of `clip_grad`
(1.0 by default). Weight decay applies only to parameters created with
`weight_decay=True`.

Weights are written to disk with `save_weights(model, path)` (NumPy `.npz`
format) and read back into a model of the same shape with
`load_weights(model, path)`. `zero_grads(model)` empties every gradient.

## Reinforcement learning

The agents compute gradients in their `backward` (or, for `SAC`,
`backwards`) methods but do not change any weights themselves: bind an
optimizer to the agent and call `step` afterwards. `PPO`, `TD3` and `SAC`
provide `params()`; for `DiscretePPO`, bind optimizers to its `policy` and
`values` networks.

## Demos

```
nbml-demo xor
nbml-demo two-class
nbml-demo classification
```

`xor` fits the XOR problem with a 2-4-1 network, `two-class` separates two
random sequences with a transformer classifier, and `classification` trains
the same classifier on synthetic rising and falling sequences and reports
train and test accuracy. Each takes `--epochs N` to change the number of
epochs. The same runs are available as `run_xor`, `run_two_class` and
`run_classification` in `nbml.demos`.

## What it does not do

There is no automatic differentiation and no GPU support: every gradient
comes from a hand-written backward pass on NumPy arrays. Layers hold a
single forward pass's state, so a backward pass always refers to the most
recent forward pass made with `grad=True`. Environments are plain Python
objects with `reset`/`step`; there is no rendering.