"""
test_net_factory.py
~~~~~~~~~~~~~~~~~~~

Tests for constructing networks by type and saving/loading them.
"""

import pytest
import os
import sys
import struct

import numpy as np

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from uesmann.data import ExampleSet
from uesmann.network import NetType
from uesmann.bpnet import BPNet
from uesmann.uesnet import UESNet
from uesmann.obnet import OutputBlendingNet
from uesmann.hinet import HInputNet
from uesmann.net_factory import (
    make_net,
    make_net_for_examples,
    dumps_net,
    loads_net,
    save_net,
    load_net
)


def _initialised(net_type, sizes=(3, 4, 2)):
    net = make_net(net_type, list(sizes))
    net.rng = np.random.default_rng(11)
    net.init_weights(None)
    return net


@pytest.mark.unit
class TestMakeNet:
    """Test network construction."""

    @pytest.mark.parametrize("net_type,cls", [
        (NetType.PLAIN, BPNet),
        (NetType.OUTPUTBLENDING, OutputBlendingNet),
        (NetType.HINPUT, HInputNet),
        (NetType.UESMANN, UESNet),
    ])
    def test_types(self, net_type, cls):
        net = make_net(net_type, [2, 3, 1])
        assert isinstance(net, cls)
        assert net.net_type == net_type
        assert net.get_layer_sizes() == [2, 3, 1]

    def test_integer_tag(self):
        assert isinstance(make_net(1003, [2, 2, 1]), UESNet)

    def test_unknown_type(self):
        with pytest.raises(ValueError) as exc_info:
            make_net(999, [2, 2, 1])
        assert "Unknown network type" in str(exc_info.value)

    def test_for_examples(self):
        examples = ExampleSet(4, 5, 3, 2)
        net = make_net_for_examples(NetType.HINPUT, examples, 7)
        assert net.get_layer_sizes() == [5, 7, 3]

    def test_new_networks_are_zero(self):
        for net_type in NetType:
            assert np.all(make_net(net_type, [2, 3, 1]).save() == 0.0)


@pytest.mark.unit
class TestSerialisation:
    """Test the binary network records."""

    @pytest.mark.parametrize("net_type", list(NetType))
    def test_round_trip(self, net_type):
        net = _initialised(net_type)
        loaded = loads_net(dumps_net(net))

        assert type(loaded) is type(net)
        assert loaded.get_layer_sizes() == net.get_layer_sizes()
        assert np.array_equal(loaded.save(), net.save())

        x = np.array([0.5, -0.5, 0.25])
        for h in (0.0, 1.0):
            net.set_h(h)
            loaded.set_h(h)
            assert np.array_equal(loaded.run(x), net.run(x))

    @pytest.mark.parametrize("net_type", list(NetType))
    def test_file_round_trip(self, net_type, tmp_path):
        net = _initialised(net_type)
        path = str(tmp_path / "net.bin")

        save_net(path, net)
        loaded = load_net(path)

        assert loaded.net_type == net_type
        assert np.array_equal(loaded.save(), net.save())

    def test_record_layout(self):
        net = _initialised(NetType.UESMANN, (2, 3, 1))
        data = dumps_net(net)

        header = struct.unpack_from('=5I', data, 0)
        assert header == (1003, 3, 2, 3, 1)
        params = np.frombuffer(data[20:], dtype='=f8')
        assert np.array_equal(params, net.save())
        assert len(data) == 20 + 8 * net.get_data_size()

    def test_hinput_saves_public_sizes(self):
        net = _initialised(NetType.HINPUT, (2, 3, 1))
        header = struct.unpack_from('=5I', dumps_net(net), 0)
        assert header == (1002, 3, 2, 3, 1)

    def test_truncated_header(self):
        with pytest.raises(ValueError):
            loads_net(b'\x01\x02\x03')

    def test_truncated_sizes(self):
        data = struct.pack('=III', 1000, 3, 2)
        with pytest.raises(ValueError):
            loads_net(data)

    def test_short_parameters(self):
        data = dumps_net(_initialised(NetType.PLAIN))
        with pytest.raises(ValueError):
            loads_net(data[:-8])

    def test_unknown_tag(self):
        data = struct.pack('=IIII', 1234, 2, 1, 1) + bytes(16)
        with pytest.raises(ValueError) as exc_info:
            loads_net(data)
        assert "Unknown network type" in str(exc_info.value)

    def test_invalid_layers(self):
        data = struct.pack('=III', 1000, 1, 4)
        with pytest.raises(ValueError):
            loads_net(data)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_net(str(tmp_path / "nonexistent.bin"))
