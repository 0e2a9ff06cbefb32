"""
uesmann package
~~~~~~~~~~~~~~~

Modulated feed-forward neural networks trained by stochastic gradient
descent. A modulator h, supplied with each example, lets a single
network perform different functions: UESMANN scales every weight by
(h+1), and the output blending and h-as-input networks provide the
baselines it is compared with. Also contains example storage, MNIST
loading, network persistence and the training API server.
"""

from .data import ExampleSet, ShuffleMode
from .network import Net, NetType, SGDParams
from .bpnet import BPNet
from .uesnet import UESNet
from .obnet import OutputBlendingNet
from .hinet import HInputNet
from .net_factory import (
    make_net, make_net_for_examples, dumps_net, loads_net, save_net, load_net
)
from .mnist_loader import MNIST

__version__ = "1.0.0"

__all__ = [
    'ExampleSet', 'ShuffleMode', 'Net', 'NetType', 'SGDParams', 'BPNet',
    'UESNet', 'OutputBlendingNet', 'HInputNet', 'make_net',
    'make_net_for_examples', 'dumps_net', 'loads_net', 'save_net',
    'load_net', 'MNIST',
]
