"""
obnet.py
~~~~~~~~

Output blending network: two plain networks, one trained on h=0
examples and one on h=1 examples, whose outputs are interpolated by h.
"""

from typing import Optional, Sequence

import numpy as np

from .bpnet import BPNet
from .data import ExampleSet
from .network import Net, NetType


class OutputBlendingNet(Net):
    """
    Output blending network. Only meaningful for h in [0, 1]; examples
    with h<0.5 train net0 and the rest train net1.
    """

    def __init__(self, layer_sizes: Sequence[int]):
        super().__init__(NetType.OUTPUTBLENDING)
        self.net0 = BPNet(layer_sizes)
        self.net1 = BPNet(layer_sizes)
        self.modulator = 0.0
        self.interpolated_outputs = np.zeros(self.net0.get_output_count())
        # most recent training errors for h<0.5 and h>=0.5 examples
        self._last_errors = [None, None]
        self._mean_error: Optional[float] = None

    def get_layer_count(self) -> int:
        return self.net0.get_layer_count()

    def get_layer_size(self, n: int) -> int:
        return self.net0.get_layer_size(n)

    def set_h(self, h: float) -> None:
        self.modulator = h

    def get_h(self) -> float:
        return self.modulator

    def set_inputs(self, inputs) -> None:
        self.net0.set_inputs(inputs)
        self.net1.set_inputs(inputs)

    def get_outputs(self) -> np.ndarray:
        return self.interpolated_outputs

    def update(self) -> None:
        self.net0.update()
        self.net1.update()
        h = self.modulator
        self.interpolated_outputs = (h * self.net1.get_outputs()
                                     + (1.0 - h) * self.net0.get_outputs())

    def get_data_size(self) -> int:
        return self.net0.get_data_size() * 2

    def save(self) -> np.ndarray:
        return np.concatenate([self.net0.save(), self.net1.save()])

    def load(self, buf) -> None:
        buf = np.asarray(buf, dtype=np.float64)
        if buf.shape != (self.get_data_size(),):
            raise ValueError(
                f"Parameter buffer has {buf.size} values, "
                f"expected {self.get_data_size()}"
            )
        n = self.net0.get_data_size()
        self.net0.load(buf[:n])
        self.net1.load(buf[n:])

    def init_weights(self, init_range: Optional[float]) -> None:
        self.net0.init_weights(init_range, self.rng)
        self.net1.init_weights(init_range, self.rng)
        self._last_errors = [None, None]
        self._mean_error = None

    def train_batch(self, examples: ExampleSet, start: int, num: int,
                    eta: float) -> float:
        """
        Train one of the two networks on a single example.

        The error returned is the mean of the latest errors for each
        network. It changes when an h>=0.5 example is trained, so with
        alternating examples it is updated once every two iterations.

        Raises:
            NotImplementedError: If num is not 1
        """
        if num != 1:
            raise NotImplementedError(
                "Output blending networks can only train on single examples"
            )

        level = 0 if examples.get_h(start) < 0.5 else 1
        net = self.net1 if level else self.net0
        error = net.train_batch(examples, start, 1, eta)
        self._last_errors[level] = error

        if level == 1 or self._mean_error is None:
            known = [e for e in self._last_errors if e is not None]
            self._mean_error = sum(known) / len(known)
        return self._mean_error
