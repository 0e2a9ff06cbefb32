#!/usr/bin/env python3
"""
Generate a map of how well UESMANN learns each pairing of boolean functions.

For every ordered pair (f1, f2) of the 16 binary boolean functions, many
UESMANN networks with 2 hidden nodes are trained to perform f1 at h=0 and
f2 at h=1, and the proportion which get every (input, h) combination
right is recorded. With the default settings this reproduces the
success-rate grid from the UESMANN thesis, but it takes a long time;
use --attempts and --epochs for a quicker, rougher map.

Usage:
    python scripts/gen_bool_map.py --output boolmap.csv --plot boolmap.png

The CSV has the columns a,b,correct: the two function indices and the
proportion of successful networks.
"""

import argparse
import csv
import sys
from typing import List, Optional, Tuple

import numpy as np

from uesmann.data import ExampleSet, ShuffleMode
from uesmann.net_factory import make_net_for_examples
from uesmann.network import Net, NetType, SGDParams

# Names of the functions, indexed by truth table
SIMPLE_NAMES = [
    "f", "and", "x and !y", "x", "!x and y", "y", "xor", "or",
    "nor", "xnor", "!y", "x or !y", "!x", "!x or y", "nand", "t"
]

NUM_FUNCTIONS = 16


def bool_func(f: int, a: bool, b: bool) -> bool:
    """
    Evaluate a binary boolean function.

    Parameters:
    -----------
    f : int
        Function index, which is its truth table: four bits for the
        inputs 00, 01, 10, 11, from the high bit down
    a, b : bool
        The inputs

    Returns:
    --------
    bool
        The function's value
    """
    bit = 1 << ((0 if a else 2) + (0 if b else 1))
    return (f & bit) != 0


def make_pairing_examples(f1: int, f2: int) -> ExampleSet:
    """
    Build the 8 examples for a pairing, alternating f1 (h=0) and f2 (h=1)
    for each of the four inputs.
    """
    examples = ExampleSet(8, 2, 1, 2)
    i = 0
    for x in (0, 1):
        for y in (0, 1):
            for f, h in ((f1, 0.0), (f2, 1.0)):
                examples.get_inputs(i)[:] = (x, y)
                examples.get_outputs(i)[0] = 1.0 if bool_func(f, x, y) else 0.0
                examples.set_h(i, h)
                i += 1
    return examples


def success(f1: int, f2: int, net: Net) -> bool:
    """Check whether a network performs f1 at h=0 and f2 at h=1."""
    for a in (0, 1):
        for b in (0, 1):
            for f, h in ((f1, 0.0), (f2, 1.0)):
                net.set_h(h)
                out = net.run(np.array([a, b], dtype=np.float64))[0]
                if (out > 0.5) != bool_func(f, a != 0, b != 0):
                    return False
    return True


def do_pairing(f1: int, f2: int, attempts: int, epochs: int,
               eta: float) -> float:
    """
    Train a number of networks on a pairing.

    Parameters:
    -----------
    f1, f2 : int
        Function indices for h=0 and h=1
    attempts : int
        Number of networks to train, each with its own seed
    epochs : int
        Passes through the 8 examples for each network
    eta : float
        Learning rate

    Returns:
    --------
    float
        The proportion of networks which perform the pairing
    """
    examples = make_pairing_examples(f1, f2)

    # Best by training error; STRIDE keeps each h=0/h=1 pair together
    params = SGDParams.for_epochs(eta, examples, epochs)
    params.store_best().set_shuffle(ShuffleMode.STRIDE)

    successful = 0
    for i in range(attempts):
        net = make_net_for_examples(NetType.UESMANN, examples, 2)
        params.set_seed(i)
        net.train_sgd(examples, params)
        if success(f1, f2, net):
            successful += 1
    return successful / attempts


def plot_map(results: List[Tuple[int, int, float]], filepath: str) -> None:
    """
    Save the results as a heatmap image.

    Parameters:
    -----------
    results : list
        (f1, f2, proportion) tuples
    filepath : str
        Output path for the image
    """
    # Use non-GUI backend so this works without a display
    import matplotlib
    matplotlib.use('Agg')
    import matplotlib.pyplot as plt

    grid = np.full((NUM_FUNCTIONS, NUM_FUNCTIONS), np.nan)
    for f1, f2, correct in results:
        grid[f1, f2] = correct

    fig, ax = plt.subplots(figsize=(8, 7))
    image = ax.imshow(grid, cmap='viridis', vmin=0.0, vmax=1.0,
                      origin='lower')
    ax.set_xticks(range(NUM_FUNCTIONS))
    ax.set_yticks(range(NUM_FUNCTIONS))
    ax.set_xticklabels(SIMPLE_NAMES, rotation=90)
    ax.set_yticklabels(SIMPLE_NAMES)
    ax.set_xlabel("function at h=1")
    ax.set_ylabel("function at h=0")
    fig.colorbar(image, ax=ax, label="proportion correct")
    fig.tight_layout()
    fig.savefig(filepath)
    plt.close(fig)
    print(f"✅ Saved plot to {filepath}", file=sys.stderr)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Map UESMANN success rates over boolean function pairs"
    )
    parser.add_argument('--attempts', type=int, default=1000,
                        help="networks trained per pairing (default: 1000)")
    parser.add_argument('--epochs', type=int, default=75000,
                        help="epochs per network (default: 75000)")
    parser.add_argument('--eta', type=float, default=0.1,
                        help="learning rate (default: 0.1)")
    parser.add_argument('--output', default=None,
                        help="CSV output path (default: standard output)")
    parser.add_argument('--plot', default=None,
                        help="also save a heatmap to this image file")
    args = parser.parse_args(argv)
    if args.attempts < 1:
        parser.error("--attempts must be positive")
    if args.epochs < 1:
        parser.error("--epochs must be positive")
    if args.eta <= 0:
        parser.error("--eta must be positive")
    return args


def main(argv: Optional[List[str]] = None) -> None:
    """Run all 256 pairings and write the results."""
    args = parse_args(argv)

    out = open(args.output, 'w', newline='') if args.output else sys.stdout
    try:
        writer = csv.writer(out)
        writer.writerow(['a', 'b', 'correct'])

        results = []
        for f1 in range(NUM_FUNCTIONS):
            for f2 in range(NUM_FUNCTIONS):
                correct = do_pairing(f1, f2, args.attempts, args.epochs,
                                     args.eta)
                writer.writerow([f1, f2, f"{correct:f}"])
                out.flush()
                results.append((f1, f2, correct))
                print(f"📊 {SIMPLE_NAMES[f1]} -> {SIMPLE_NAMES[f2]}: "
                      f"{correct:.3f}", file=sys.stderr)
    finally:
        if out is not sys.stdout:
            out.close()

    if args.plot:
        plot_map(results, args.plot)


if __name__ == '__main__':
    main()
