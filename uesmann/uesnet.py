"""
uesnet.py
~~~~~~~~~

The UESMANN network: a plain MLP in which the modulator h scales every
weight by (h+1). Biases are not modulated, so at h=0 the network is
exactly a plain network and at h=1 all its weights are doubled.
"""

from typing import Sequence

from .bpnet import BPNet
from .network import NetType, sigmoid


class UESNet(BPNet):
    """
    UESMANN network, with the same architecture and parameter layout as
    BPNet. Only the forward pass, the hidden-layer error terms and the
    weight updates differ.
    """

    def __init__(self, layer_sizes: Sequence[int]):
        super().__init__(layer_sizes, NetType.UESMANN)
        self.modulator = 0.0

    def set_h(self, h: float) -> None:
        self.modulator = h

    def get_h(self) -> float:
        return self.modulator

    def update(self) -> None:
        hfactor = self.modulator + 1.0
        for l in range(1, self.num_layers):
            v = self.weights[l] @ self.outputs[l - 1]
            self.outputs[l] = sigmoid(v * hfactor + self.biases[l])

    def _hidden_error_factor(self) -> float:
        return self.modulator + 1.0

    def _weight_gradient_factor(self) -> float:
        # the (h+1) term of dC/dw
        return self.modulator + 1.0
