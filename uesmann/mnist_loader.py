"""
mnist_loader.py
~~~~~~~~~~~~~~~

A reader for labelled image data in the IDX format used by MNIST. The
data is in two files, one of labels and one of images; ExampleSet.from_mnist()
turns it into examples.
"""

import logging
from typing import List

import numpy as np

logger = logging.getLogger(__name__)

LABEL_MAGIC = 2049
IMAGE_MAGIC = 2051
MAX_COUNT = 100000
MAX_DIMENSION = 128


def _read_header(f, nwords: int, filename: str) -> List[int]:
    raw = f.read(4 * nwords)
    if len(raw) < 4 * nwords:
        raise ValueError(f"Truncated header in {filename}")
    return [int(v) for v in np.frombuffer(raw, dtype='>u4')]


class MNIST:
    """
    Labelled images loaded from an IDX label file and image file.

    Attributes:
        labels: uint8 array of labels
        images: uint8 array of shape (count, rows * cols)
    """

    def __init__(self, label_file: str, image_file: str,
                 start: int = 0, length: int = 0):
        """
        Load all or part of a data set.

        Args:
            label_file: Path of the label file
            image_file: Path of the image file
            start: Index of the first image to load
            length: Number of images to load, 0 for all from start

        Raises:
            FileNotFoundError: If a file doesn't exist
            ValueError: If a file is malformed or the range is invalid
        """
        with open(label_file, 'rb') as f:
            magic, count = _read_header(f, 2, label_file)
            if magic != LABEL_MAGIC:
                raise ValueError(
                    f"Bad magic number in label file {label_file}: {magic:x}"
                )
            if count > MAX_COUNT:
                raise ValueError(
                    f"Unfeasibly large count in label file {label_file}: {count}"
                )
            if not length:
                length = count - start
            if start < 0 or length < 1 or start + length > count:
                raise ValueError(
                    f"Range [{start}-{start + length}] invalid, "
                    f"{count} in file {label_file}"
                )
            f.seek(start, 1)
            raw = f.read(length)
            if len(raw) != length:
                raise ValueError(
                    f"Not enough items in label file {label_file}: {len(raw)}"
                )
            self.labels = np.frombuffer(raw, dtype=np.uint8)

        with open(image_file, 'rb') as f:
            magic, count2, rows, cols = _read_header(f, 4, image_file)
            if magic != IMAGE_MAGIC:
                raise ValueError(
                    f"Bad magic number in image file {image_file}: {magic:x}"
                )
            if count2 != count:
                raise ValueError(
                    f"Image file count does not agree with label file "
                    f"count: {image_file}:{count2} != {label_file}:{count}"
                )
            if rows > MAX_DIMENSION or cols > MAX_DIMENSION:
                raise ValueError(
                    f"Bad dimensions in image file {image_file}: {rows}x{cols}"
                )
            npix = int(rows * cols)
            f.seek(start * npix, 1)
            raw = f.read(length * npix)
            if len(raw) != length * npix:
                raise ValueError(
                    f"Wrong amount of pixels in image file {image_file}: "
                    f"{len(raw)}"
                )
            self.images = np.frombuffer(raw, dtype=np.uint8).reshape(length, npix)

        self._rows = int(rows)
        self._cols = int(cols)
        self.count = int(length)
        self.max_label = int(self.labels.max())

        logger.info(
            f"Loaded {self.count} {self._rows}x{self._cols} images "
            f"from {image_file}"
        )

    def get_count(self) -> int:
        return self.count

    def rows(self) -> int:
        return self._rows

    def cols(self) -> int:
        return self._cols

    def get_label(self, n: int) -> int:
        return int(self.labels[n])

    def get_max_label(self) -> int:
        """Get the largest label (9 for the MNIST digits)."""
        return self.max_label

    def get_img(self, n: int) -> np.ndarray:
        """Get the pixels of an image, row by row."""
        return self.images[n]

    def get_pix(self, n: int, x: int, y: int) -> int:
        return int(self.images[n][x + y * self._cols])
