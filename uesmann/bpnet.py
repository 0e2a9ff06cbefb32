"""
bpnet.py
~~~~~~~~

The plain back-propagation network using a logistic sigmoid, as
described by Rumelhart, Hinton and Williams (and many others). The
output blending and h-as-input networks are built from these, and the
UESMANN network shares its layout.
"""

import logging
import math
from typing import List, Optional, Sequence

import numpy as np

from .data import ExampleSet
from .network import Net, NetType, sigmoid

logger = logging.getLogger(__name__)


class BPNet(Net):
    """
    A multilayer perceptron trained by back-propagation.

    Layer 0 is the input layer and has no parameters. For every other
    layer l, weights[l] has shape (layer_sizes[l], layer_sizes[l-1]) so
    that weights[l][i, j] is the weight from node j in layer l-1 to node
    i in layer l, and biases[l] has one entry per node.
    """

    def __init__(self, layer_sizes: Sequence[int],
                 net_type: NetType = NetType.PLAIN):
        """
        Create a network with all parameters zero; train_sgd() (or
        init_weights()) sets random values.

        Args:
            layer_sizes: Number of nodes in each layer, input layer first
            net_type: Type tag, for subclasses sharing this layout

        Raises:
            ValueError: If there are fewer than two layers or a layer
                is empty
        """
        super().__init__(net_type)
        if len(layer_sizes) < 2 or min(layer_sizes) < 1:
            raise ValueError(f"Invalid layer sizes: {list(layer_sizes)}")

        self.layer_sizes: List[int] = [int(n) for n in layer_sizes]
        self.num_layers = len(self.layer_sizes)
        self.largest_layer_size = max(self.layer_sizes)

        sizes = self.layer_sizes
        self.outputs = [np.zeros(n) for n in sizes]
        self.errors = [np.zeros(n) for n in sizes]
        self.biases = [np.zeros(n) for n in sizes]
        self.weights = [np.zeros((sizes[0], 0))] + [
            np.zeros((n, prev)) for prev, n in zip(sizes[:-1], sizes[1:])
        ]
        # mean gradients, built up during a training batch
        self.grad_avgs_biases = [np.zeros_like(b) for b in self.biases]
        self.grad_avgs_weights = [np.zeros_like(w) for w in self.weights]

    def set_inputs(self, inputs) -> None:
        self.outputs[0][:] = inputs

    def get_outputs(self) -> np.ndarray:
        return self.outputs[-1]

    def get_layer_count(self) -> int:
        return self.num_layers

    def get_layer_size(self, n: int) -> int:
        return self.layer_sizes[n]

    def get_data_size(self) -> int:
        # each node in each non-input layer has a bias and a weight
        # for every node in the previous layer
        return sum(n * (1 + prev) for prev, n in
                   zip(self.layer_sizes[:-1], self.layer_sizes[1:]))

    def save(self) -> np.ndarray:
        # ordered by layer, then by node; each node is bias then weights
        return np.concatenate([
            np.hstack([self.biases[l][:, None], self.weights[l]]).ravel()
            for l in range(1, self.num_layers)
        ])

    def load(self, buf) -> None:
        buf = np.asarray(buf, dtype=np.float64)
        if buf.shape != (self.get_data_size(),):
            raise ValueError(
                f"Parameter buffer has {buf.size} values, "
                f"expected {self.get_data_size()}"
            )
        pos = 0
        for l in range(1, self.num_layers):
            n, prev = self.weights[l].shape
            block = buf[pos:pos + n * (prev + 1)].reshape(n, prev + 1)
            self.biases[l][:] = block[:, 0]
            self.weights[l][:] = block[:, 1:]
            pos += block.size

    def init_weights(self, init_range: Optional[float],
                     rng: Optional[np.random.Generator] = None) -> None:
        """
        Initialise weights and biases to random values.

        Args:
            init_range: Range of values, or None for 1/sqrt(fan-in)
            rng: Generator to draw from, if not this network's own
        """
        if rng is None:
            rng = self.rng
        for l in range(1, self.num_layers):
            if init_range is not None and init_range > 0:
                r = init_range
            else:
                r = 1.0 / math.sqrt(self.layer_sizes[l - 1])  # from Bishop
            self.biases[l][:] = rng.uniform(-r, r, self.biases[l].shape)
            self.weights[l][:] = rng.uniform(-r, r, self.weights[l].shape)

        # the input layer has no real parameters
        self.biases[0][:] = 0.0
        logger.debug(
            f"Initialised {self.net_type.name} weights for {self.layer_sizes}, "
            f"range={init_range}"
        )

    def update(self) -> None:
        for l in range(1, self.num_layers):
            self.outputs[l] = sigmoid(
                self.biases[l] + self.weights[l] @ self.outputs[l - 1]
            )

    def _hidden_error_factor(self) -> float:
        """Extra factor applied to back-propagated hidden-layer errors."""
        return 1.0

    def _weight_gradient_factor(self) -> float:
        """Extra factor applied to weight (not bias) updates."""
        return 1.0

    def calc_error(self, inputs, targets) -> None:
        """
        Run a single example and back-propagate the errors.

        Args:
            inputs: Example inputs
            targets: Required outputs

        The error term for each node ends up in self.errors.
        """
        self.set_inputs(inputs)
        self.update()

        o = self.outputs[-1]
        self.errors[-1] = o * (1.0 - o) * (o - targets)

        factor = self._hidden_error_factor()
        for l in range(self.num_layers - 2, 0, -1):
            o = self.outputs[l]
            e = self.weights[l + 1].T @ self.errors[l + 1]
            if factor != 1.0:
                e = e * factor
            self.errors[l] = e * o * (1.0 - o)

    def train_batch(self, examples: ExampleSet, start: int, num: int,
                    eta: float) -> float:
        for l in range(1, self.num_layers):
            self.grad_avgs_weights[l].fill(0.0)
            self.grad_avgs_biases[l].fill(0.0)

        total_error = 0.0
        for example_index in range(start, start + num):
            self.set_h(examples.get_h(example_index))
            targets = examples.get_outputs(example_index)
            self.calc_error(examples.get_inputs(example_index), targets)

            # depends on this example's h, so applied before summing
            weight_factor = self._weight_gradient_factor()
            for l in range(1, self.num_layers):
                self.grad_avgs_weights[l] += weight_factor * np.outer(
                    self.errors[l], self.outputs[l - 1]
                )
                self.grad_avgs_biases[l] += self.errors[l]

            diff = self.outputs[-1] - targets
            total_error += float(np.dot(diff, diff))

        factor = 1.0 / num
        scale = eta * factor
        for l in range(1, self.num_layers):
            self.weights[l] -= scale * self.grad_avgs_weights[l]
            self.biases[l] -= scale * self.grad_avgs_biases[l]

        return total_error * factor / self.layer_sizes[-1]
