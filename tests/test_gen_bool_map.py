"""
test_gen_bool_map.py
~~~~~~~~~~~~~~~~~~~~

Tests for the boolean function pairing experiment script.
"""

import pytest
import os
import sys
import csv

# Add project root and scripts directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'scripts'))

import gen_bool_map
from gen_bool_map import (
    bool_func,
    make_pairing_examples,
    success,
    do_pairing,
    parse_args,
    SIMPLE_NAMES
)
from uesmann.network import NetType
from uesmann.net_factory import make_net

INPUTS = [(0, 0), (0, 1), (1, 0), (1, 1)]


def _truth_table(f):
    return [bool_func(f, a, b) for a, b in INPUTS]


@pytest.mark.unit
class TestBoolFunc:
    """Test the function indexing."""

    @pytest.mark.parametrize("name,table", [
        ("f", [False, False, False, False]),
        ("and", [False, False, False, True]),
        ("x", [False, False, True, True]),
        ("y", [False, True, False, True]),
        ("xor", [False, True, True, False]),
        ("or", [False, True, True, True]),
        ("nand", [True, True, True, False]),
        ("t", [True, True, True, True]),
    ])
    def test_named_functions(self, name, table):
        assert _truth_table(SIMPLE_NAMES.index(name)) == table

    def test_all_functions_distinct(self):
        tables = {tuple(_truth_table(f)) for f in range(16)}
        assert len(tables) == 16


@pytest.mark.unit
class TestPairing:
    """Test example generation and success checking."""

    def test_examples(self):
        xor, and_ = SIMPLE_NAMES.index("xor"), SIMPLE_NAMES.index("and")
        examples = make_pairing_examples(xor, and_)

        assert examples.get_count() == 8
        assert examples.get_num_h_levels() == 2
        for i in range(8):
            a, b = INPUTS[i // 2]
            h = examples.get_h(i)
            assert h == float(i % 2)
            assert list(examples.get_inputs(i)) == [a, b]
            expected = bool_func(and_ if h else xor, a, b)
            assert examples.get_outputs(i)[0] == (1.0 if expected else 0.0)

    def test_success_with_zero_network(self):
        # outputs of 0.5 count as false everywhere
        net = make_net(NetType.UESMANN, [2, 2, 1])
        assert success(0, 0, net) is True
        assert success(0, 15, net) is False
        assert success(1, 0, net) is False

    def test_do_pairing(self):
        result = do_pairing(0, 0, attempts=2, epochs=200, eta=0.1)
        assert result == 1.0

    def test_do_pairing_is_proportion(self):
        result = do_pairing(6, 1, attempts=3, epochs=5, eta=0.1)
        assert result in (0.0, 1 / 3, 2 / 3, 1.0)


@pytest.mark.unit
class TestCommandLine:
    """Test argument handling and output."""

    def test_defaults(self):
        args = parse_args([])
        assert args.attempts == 1000
        assert args.epochs == 75000
        assert args.eta == 0.1
        assert args.output is None
        assert args.plot is None

    @pytest.mark.parametrize("argv", [
        ['--attempts', '0'], ['--epochs', '-1'], ['--eta', '0']
    ])
    def test_invalid(self, argv):
        with pytest.raises(SystemExit):
            parse_args(argv)

    def test_main_writes_csv_and_plot(self, tmp_path, monkeypatch):
        monkeypatch.setattr(gen_bool_map, 'do_pairing',
                            lambda f1, f2, attempts, epochs, eta:
                            (f1 == f2) * 1.0)
        csv_path = str(tmp_path / "map.csv")
        plot_path = str(tmp_path / "map.png")

        gen_bool_map.main(['--output', csv_path, '--plot', plot_path])

        with open(csv_path, newline='') as f:
            rows = list(csv.reader(f))
        assert rows[0] == ['a', 'b', 'correct']
        assert len(rows) == 257
        values = {(int(r[0]), int(r[1])): float(r[2]) for r in rows[1:]}
        assert values[(3, 3)] == 1.0
        assert values[(3, 4)] == 0.0
        assert os.path.getsize(plot_path) > 0

    def test_main_to_stdout(self, monkeypatch, capsys):
        monkeypatch.setattr(gen_bool_map, 'do_pairing',
                            lambda *args: 0.5)
        gen_bool_map.main(['--attempts', '1'])
        out = capsys.readouterr().out.splitlines()
        assert out[0] == 'a,b,correct'
        assert out[1] == '0,0,0.500000'
        assert len(out) == 257
