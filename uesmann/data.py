"""
data.py
~~~~~~~

Example storage for training and testing networks.

An example is a fixed-width record of inputs, required outputs and a
modulator value (h). All the examples in a set live in a single
contiguous numpy buffer; the set's ordering is a separate array of
handles (row numbers into that buffer), so shuffling never moves the
example data itself. A subset created with ExampleSet.subset() shares
its parent's buffer but has its own handles, so it can be reordered
independently of the parent.
"""

import logging
import math
from enum import Enum
from typing import Any, Callable, MutableSequence, Tuple

import numpy as np

logger = logging.getLogger(__name__)


class ShuffleMode(Enum):
    """How ExampleSet.shuffle() reorders the examples."""

    NONE = 'none'
    """Shuffle individual examples."""

    STRIDE = 'stride'
    """Shuffle blocks of num_h_levels examples, keeping each block intact."""

    ALTERNATE = 'alternate'
    """Shuffle, then rearrange so that h-buckets cycle 0,1,..,n-1,0,1.."""


def alternate(arr: MutableSequence, key: Callable[[Any], int],
              cycle: int) -> None:
    """
    Rearrange a sequence in place so that key() cycles 0,1,..,cycle-1.

    Each position is checked in turn. If the item there doesn't have the
    expected key, the rest of the sequence is scanned for the first item
    which does, and the two are swapped. If there is no such item the
    rearrangement stops, leaving the remainder as it was; with uneven
    numbers of each key the tail will not alternate.

    Args:
        arr: Sequence to rearrange
        key: Function mapping an item to its bucket number
        cycle: Number of buckets
    """
    n = len(arr)
    for i in range(n):
        expected = i % cycle
        if key(arr[i]) == expected:
            continue
        for j in range(i + 1, n):
            if key(arr[j]) == expected:
                arr[i], arr[j] = arr[j], arr[i]
                break
        else:
            return


class ExampleSet:
    """
    A set of examples, each of which is inputs, outputs and a modulator.

    The modulator level count is only used when shuffling: STRIDE
    treats each consecutive run of num_h_levels examples as a unit,
    and ALTERNATE arranges examples so their h-buckets cycle.
    """

    def __init__(self, count: int, ninputs: int, noutputs: int,
                 num_h_levels: int = 1):
        """
        Create a set with zeroed data.

        Args:
            count: Number of examples
            ninputs: Number of inputs in each example
            noutputs: Number of outputs in each example
            num_h_levels: Number of modulator levels in the data

        Raises:
            ValueError: If any of the dimensions is less than one
        """
        if count < 1 or ninputs < 1 or noutputs < 1 or num_h_levels < 1:
            raise ValueError(
                f"Invalid example set dimensions: count={count}, "
                f"ninputs={ninputs}, noutputs={noutputs}, "
                f"num_h_levels={num_h_levels}"
            )

        logger.debug(
            f"Allocating new set {count}*({ninputs},{noutputs}), "
            f"{num_h_levels} h-levels"
        )

        self.ninputs = ninputs
        self.noutputs = noutputs
        self.count = count
        self.num_h_levels = num_h_levels
        self.min_h = 0.0
        self.max_h = 1.0

        # each row is inputs, then outputs, then h
        self.data = np.zeros((count, ninputs + noutputs + 1))
        self.handles = np.arange(count)

    @classmethod
    def subset(cls, parent: 'ExampleSet', start: int,
               length: int) -> 'ExampleSet':
        """
        Create a view onto a contiguous range of another set.

        The new set shares the parent's data, so writing inputs, outputs
        or h through it changes the parent. Its ordering is a copy of the
        parent's handles for the range, so shuffling it leaves the parent
        alone.

        Args:
            parent: The set to take the examples from
            start: Index of the first example in the parent
            length: Number of examples

        Returns:
            ExampleSet: The sub-view

        Raises:
            IndexError: If the range is empty or outside the parent
        """
        if start < 0 or length < 1 or start + length > parent.count:
            raise IndexError(
                f"Subset [{start}, {start + length}) out of range "
                f"for set of {parent.count} examples"
            )

        view = cls.__new__(cls)
        view.ninputs = parent.ninputs
        view.noutputs = parent.noutputs
        view.count = length
        view.num_h_levels = parent.num_h_levels
        view.min_h = parent.min_h
        view.max_h = parent.max_h
        view.data = parent.data
        view.handles = parent.handles[start:start + length].copy()
        return view

    @classmethod
    def from_mnist(cls, mnist) -> 'ExampleSet':
        """
        Build a set from labelled image data.

        Inputs are the pixels scaled into [0, 1]; outputs are a one-hot
        encoding of the label, with as many outputs as the largest label
        plus one. All examples have h=0.

        Args:
            mnist: A labelled image source such as mnist_loader.MNIST

        Returns:
            ExampleSet: The new example set
        """
        npix = mnist.rows() * mnist.cols()
        examples = cls(mnist.get_count(), npix, mnist.get_max_label() + 1, 1)

        for i in range(examples.count):
            examples.get_inputs(i)[:] = mnist.get_img(i) / 255.0
            outs = examples.get_outputs(i)
            outs[:] = 0.0
            outs[mnist.get_label(i)] = 1.0
            examples.set_h(i, 0.0)

        logger.info(
            f"Built example set from {examples.count} images "
            f"of {mnist.rows()}x{mnist.cols()}"
        )
        return examples

    def get_count(self) -> int:
        return self.count

    def get_input_count(self) -> int:
        return self.ninputs

    def get_output_count(self) -> int:
        return self.noutputs

    def get_num_h_levels(self) -> int:
        return self.num_h_levels

    def get_inputs(self, example: int) -> np.ndarray:
        """Get the inputs of an example as a writable view."""
        return self.data[self.handles[example], :self.ninputs]

    def get_outputs(self, example: int) -> np.ndarray:
        """Get the required outputs of an example as a writable view."""
        return self.data[self.handles[example],
                         self.ninputs:self.ninputs + self.noutputs]

    def get_h(self, example: int) -> float:
        return float(self.data[self.handles[example], -1])

    def set_h(self, example: int, h: float) -> None:
        self.data[self.handles[example], -1] = h

    def set_h_range(self, min_h: float, max_h: float) -> None:
        """
        Set the modulator range used to bucket h for ALTERNATE shuffling.

        The stored h values are not changed.

        Raises:
            ValueError: If the range is empty
        """
        if max_h <= min_h:
            raise ValueError(f"Invalid h range [{min_h}, {max_h}]")
        self.min_h = min_h
        self.max_h = max_h

    def get_h_range(self) -> Tuple[float, float]:
        return self.min_h, self.max_h

    def get_h_bucket(self, h: float) -> int:
        """Get the modulator level an h value falls into."""
        v = (h - self.min_h) / (self.max_h - self.min_h)
        bucket = int(math.floor(v * (self.num_h_levels - 1)))
        return min(max(bucket, 0), self.num_h_levels - 1)

    def shuffle(self, rng: np.random.Generator,
                mode: ShuffleMode = ShuffleMode.NONE) -> None:
        """
        Shuffle the examples with a Fisher-Yates shuffle.

        Only the order of this set changes; the data buffer (which may
        belong to a parent set) is untouched.

        Args:
            rng: Random number generator to draw from
            mode: Shuffle mode

        Raises:
            ValueError: For STRIDE, if the example count is not a
                multiple of the number of h-levels
        """
        if mode == ShuffleMode.STRIDE:
            self._shuffle_blocks(rng, self.num_h_levels)
        else:
            self._shuffle_blocks(rng, 1)
            if mode == ShuffleMode.ALTERNATE:
                alternate(self.handles,
                          lambda row: self.get_h_bucket(self.data[row, -1]),
                          self.num_h_levels)

    def _shuffle_blocks(self, rng: np.random.Generator, size: int) -> None:
        if self.count % size:
            raise ValueError(
                f"Cannot stride-shuffle {self.count} examples "
                f"in blocks of {size}"
            )
        handles = self.handles
        for i in range(self.count // size - 1, 0, -1):
            j = int(rng.integers(0, i + 1))
            if i == j:
                continue
            a = slice(i * size, (i + 1) * size)
            b = slice(j * size, (j + 1) * size)
            tmp = handles[a].copy()
            handles[a] = handles[b]
            handles[b] = tmp
