"""
hinet.py
~~~~~~~~

The h-as-input network: a plain network with one extra input which
carries the modulator.
"""

from typing import Optional, Sequence

import numpy as np

from .bpnet import BPNet
from .data import ExampleSet
from .network import Net, NetType


class _ModulatorInputExamples:
    """
    Presents an example set to the inner network with each example's h
    appended to its inputs.
    """

    def __init__(self, examples: ExampleSet):
        self.examples = examples

    def get_inputs(self, example: int) -> np.ndarray:
        return np.append(self.examples.get_inputs(example),
                         self.examples.get_h(example))

    def get_outputs(self, example: int) -> np.ndarray:
        return self.examples.get_outputs(example)

    def get_h(self, example: int) -> float:
        return self.examples.get_h(example)


class HInputNet(Net):
    """
    A modulatory network which feeds the modulator to a plain
    network as its final input. The extra input is hidden: the input
    layer size reported is the one the network was created with.
    """

    def __init__(self, layer_sizes: Sequence[int]):
        super().__init__(NetType.HINPUT)
        sizes = list(layer_sizes)
        if sizes and sizes[0] < 1:
            raise ValueError(f"Input layer must have nodes, got {sizes[0]}")
        if sizes:
            sizes[0] += 1
        self.net = BPNet(sizes)
        self.modulator = 0.0

    def get_layer_count(self) -> int:
        return self.net.get_layer_count()

    def get_layer_size(self, n: int) -> int:
        size = self.net.get_layer_size(n)
        return size - 1 if n == 0 else size

    def set_h(self, h: float) -> None:
        self.modulator = h

    def get_h(self) -> float:
        return self.modulator

    def set_inputs(self, inputs) -> None:
        self.net.set_inputs(np.append(inputs, self.modulator))

    def get_outputs(self) -> np.ndarray:
        return self.net.get_outputs()

    def update(self) -> None:
        self.net.update()

    def get_data_size(self) -> int:
        # the real size, including the weights from the modulator input
        return self.net.get_data_size()

    def save(self) -> np.ndarray:
        return self.net.save()

    def load(self, buf) -> None:
        self.net.load(buf)

    def init_weights(self, init_range: Optional[float]) -> None:
        self.net.init_weights(init_range, self.rng)

    def train_batch(self, examples: ExampleSet, start: int, num: int,
                    eta: float) -> float:
        return self.net.train_batch(_ModulatorInputExamples(examples),
                                    start, num, eta)
