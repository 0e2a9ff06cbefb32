"""
test_mnist_loader.py
~~~~~~~~~~~~~~~~~~~~

Tests for the IDX reader, using small generated files.
"""

import pytest
import os
import sys
import struct

import numpy as np

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from uesmann.data import ExampleSet
from uesmann.mnist_loader import MNIST, LABEL_MAGIC, IMAGE_MAGIC


def write_idx(directory, labels, images, rows, cols,
              label_magic=LABEL_MAGIC, image_magic=IMAGE_MAGIC,
              image_count=None):
    """Write a label file and an image file, returning their paths."""
    label_path = os.path.join(directory, "labels.idx1")
    image_path = os.path.join(directory, "images.idx3")
    if image_count is None:
        image_count = len(labels)

    with open(label_path, 'wb') as f:
        f.write(struct.pack('>II', label_magic, len(labels)))
        f.write(bytes(labels))
    with open(image_path, 'wb') as f:
        f.write(struct.pack('>IIII', image_magic, image_count, rows, cols))
        f.write(np.asarray(images, dtype=np.uint8).tobytes())
    return label_path, image_path


@pytest.fixture
def idx_files(tmp_path):
    """Five 2x3 images; image n has every pixel set to n * 10 + position."""
    labels = [3, 0, 7, 1, 3]
    images = [[n * 10 + p for p in range(6)] for n in range(5)]
    return write_idx(str(tmp_path), labels, images, 2, 3)


@pytest.mark.unit
class TestMNIST:
    """Test loading labelled images."""

    def test_loads_everything(self, idx_files):
        mnist = MNIST(*idx_files)
        assert mnist.get_count() == 5
        assert mnist.rows() == 2
        assert mnist.cols() == 3
        assert [mnist.get_label(i) for i in range(5)] == [3, 0, 7, 1, 3]
        assert mnist.get_max_label() == 7
        assert list(mnist.get_img(2)) == [20, 21, 22, 23, 24, 25]

    def test_pixel_access(self, idx_files):
        mnist = MNIST(*idx_files)
        # x across, y down
        assert mnist.get_pix(1, 2, 0) == 12
        assert mnist.get_pix(1, 0, 1) == 13

    def test_range(self, idx_files):
        mnist = MNIST(*idx_files, start=1, length=3)
        assert mnist.get_count() == 3
        assert [mnist.get_label(i) for i in range(3)] == [0, 7, 1]
        assert list(mnist.get_img(0)) == [10, 11, 12, 13, 14, 15]

    def test_start_without_length(self, idx_files):
        mnist = MNIST(*idx_files, start=3)
        assert mnist.get_count() == 2
        assert mnist.get_label(0) == 1

    @pytest.mark.parametrize("start,length", [(4, 2), (-1, 2), (5, 0)])
    def test_invalid_range(self, idx_files, start, length):
        with pytest.raises(ValueError):
            MNIST(*idx_files, start=start, length=length)

    def test_bad_label_magic(self, tmp_path):
        paths = write_idx(str(tmp_path), [1], [[0] * 4], 2, 2,
                          label_magic=1234)
        with pytest.raises(ValueError) as exc_info:
            MNIST(*paths)
        assert "magic" in str(exc_info.value)

    def test_bad_image_magic(self, tmp_path):
        paths = write_idx(str(tmp_path), [1], [[0] * 4], 2, 2,
                          image_magic=2049)
        with pytest.raises(ValueError):
            MNIST(*paths)

    def test_count_mismatch(self, tmp_path):
        paths = write_idx(str(tmp_path), [1, 2], [[0] * 4] * 2, 2, 2,
                          image_count=3)
        with pytest.raises(ValueError):
            MNIST(*paths)

    def test_oversized_images(self, tmp_path):
        paths = write_idx(str(tmp_path), [1], [], 200, 2)
        with pytest.raises(ValueError):
            MNIST(*paths)

    def test_truncated_images(self, tmp_path):
        paths = write_idx(str(tmp_path), [1, 2], [[0] * 4], 2, 2)
        with pytest.raises(ValueError):
            MNIST(*paths)

    def test_truncated_header(self, tmp_path):
        label_path = str(tmp_path / "labels")
        with open(label_path, 'wb') as f:
            f.write(b'\x00\x00')
        with pytest.raises(ValueError):
            MNIST(label_path, label_path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            MNIST(str(tmp_path / "nope1"), str(tmp_path / "nope2"))


@pytest.mark.integration
class TestExamplesFromMNIST:
    """Test building example sets from loaded images."""

    def test_from_mnist(self, idx_files):
        examples = ExampleSet.from_mnist(MNIST(*idx_files))

        assert examples.get_count() == 5
        assert examples.get_input_count() == 6
        assert examples.get_output_count() == 8
        assert examples.get_num_h_levels() == 1

        assert np.allclose(examples.get_inputs(4),
                           [(40 + p) / 255.0 for p in range(6)])
        expected = np.zeros(8)
        expected[3] = 1.0
        assert np.array_equal(examples.get_outputs(4), expected)
        assert examples.get_h(4) == 0.0
