"""
net_factory.py
~~~~~~~~~~~~~~

Construction of networks by type, and saving/loading networks as
binary records.

A record is the type tag, the layer count and the layer sizes as 32-bit
unsigned integers, followed by the network's parameters (see
Net.save()) as doubles. Everything is in the host's byte order, so
records can only be moved between hosts of the same endianness.
"""

import logging
import struct
from typing import Sequence, Union

import numpy as np

from .bpnet import BPNet
from .data import ExampleSet
from .hinet import HInputNet
from .network import Net, NetType
from .obnet import OutputBlendingNet
from .uesnet import UESNet

logger = logging.getLogger(__name__)

_NET_CLASSES = {
    NetType.PLAIN: BPNet,
    NetType.OUTPUTBLENDING: OutputBlendingNet,
    NetType.HINPUT: HInputNet,
    NetType.UESMANN: UESNet,
}

_U32 = struct.Struct('=I')
_PARAM_DTYPE = np.dtype('=f8')


def make_net(net_type: Union[NetType, int], layer_sizes: Sequence[int]) -> Net:
    """
    Construct a network of a given type.

    Args:
        net_type: Network type, or its integer tag
        layer_sizes: Number of nodes in each layer, input layer first

    Returns:
        Net: The new network, with zero parameters

    Raises:
        ValueError: If the type is unknown or the layers are invalid
    """
    try:
        net_type = NetType(net_type)
    except ValueError:
        raise ValueError(f"Unknown network type: {net_type}") from None
    return _NET_CLASSES[net_type](layer_sizes)


def make_net_for_examples(net_type: Union[NetType, int],
                          examples: ExampleSet, hidden_nodes: int) -> Net:
    """
    Construct a single hidden layer network of a given type which
    conforms to an example set.
    """
    return make_net(net_type, [examples.get_input_count(), hidden_nodes,
                               examples.get_output_count()])


def dumps_net(net: Net) -> bytes:
    """Serialise a network to a binary record."""
    sizes = net.get_layer_sizes()
    header = struct.pack(f'=II{len(sizes)}I', int(net.net_type),
                         len(sizes), *sizes)
    params = np.ascontiguousarray(net.save(), dtype=_PARAM_DTYPE)
    return header + params.tobytes()


def loads_net(data: bytes) -> Net:
    """
    Reconstruct a network from a binary record.

    Raises:
        ValueError: If the record is truncated or has an unknown type
    """
    if len(data) < 2 * _U32.size:
        raise ValueError("Truncated network header")
    tag, nlayers = struct.unpack_from('=II', data, 0)
    pos = 2 * _U32.size

    sizes_len = nlayers * _U32.size
    if len(data) < pos + sizes_len:
        raise ValueError(
            f"Truncated network header: expected {nlayers} layer sizes"
        )
    sizes = list(struct.unpack_from(f'={nlayers}I', data, pos))
    pos += sizes_len

    net = make_net(tag, sizes)

    n = net.get_data_size()
    block = data[pos:pos + n * _PARAM_DTYPE.itemsize]
    if len(block) < n * _PARAM_DTYPE.itemsize:
        raise ValueError(
            f"Short parameter block: got {len(block)} bytes, "
            f"expected {n * _PARAM_DTYPE.itemsize}"
        )
    net.load(np.frombuffer(block, dtype=_PARAM_DTYPE))
    return net


def save_net(path: str, net: Net) -> None:
    """Save a network to a file."""
    with open(path, 'wb') as f:
        f.write(dumps_net(net))
    logger.info(
        f"Saved {net.net_type.name} network {net.get_layer_sizes()} to {path}"
    )


def load_net(path: str) -> Net:
    """
    Load a network saved with save_net().

    Raises:
        FileNotFoundError: If there is no such file
        ValueError: If the file is truncated or has an unknown type
    """
    with open(path, 'rb') as f:
        data = f.read()
    net = loads_net(data)
    logger.info(
        f"Loaded {net.net_type.name} network {net.get_layer_sizes()} "
        f"from {path}"
    )
    return net
