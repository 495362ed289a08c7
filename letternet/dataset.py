"""
dataset.py
~~~~~~~~~~

Training data for the letter network.

Each letter sample is a text file holding one line of comma-separated
pixel values (10000 values for a 100x100 image). The 52 samples are the
lowercase letters ``a.txt`` to ``z.txt`` followed by the uppercase
letters ``au.txt`` to ``zu.txt``.

Labels are binary codes: sample ``i`` (counting from 1) is trained
towards the bits of ``i``, most significant bit first.
"""

import os
import string
import logging
from collections import Counter
from typing import Optional, Sequence, Tuple

import numpy as np

from letternet.weight_io import SEPARATOR, parse_values

logger = logging.getLogger(__name__)

IMAGE_SIDE = 100
INPUT_SIZE = IMAGE_SIDE * IMAGE_SIDE
CLASS_COUNT = 52
LEGACY_LABEL_WIDTH = 5

LETTER_FILE_NAMES = (
    [f"{c}.txt" for c in string.ascii_lowercase] +
    [f"{c}u.txt" for c in string.ascii_lowercase]
)

LETTERS = string.ascii_lowercase + string.ascii_uppercase


def parse_vector(text: str, length: int, separator: str = SEPARATOR,
                 source: Optional[str] = None) -> np.ndarray:
    """Parse one line of ``length`` delimited real values."""
    return parse_values(text, length, separator, source)


def load_example(source: str, inputs: np.ndarray, slot: int) -> np.ndarray:
    """
    Read the sample file ``source`` into row ``slot`` of ``inputs``.

    The vector length is the number of columns of ``inputs``.

    Raises:
        IndexError: If ``slot`` is not a row of ``inputs``
        ParseError: If a value is not a real number
        FormatError: If the file has the wrong number of values
    """
    if not 0 <= slot < inputs.shape[0]:
        raise IndexError(
            f"slot {slot} out of range for {inputs.shape[0]} examples"
        )

    with open(source, 'r') as f:
        line = f.readline()

    inputs[slot] = parse_vector(line, inputs.shape[1], source=source)
    return inputs


def load_letter_set(
    directory: str,
    input_size: int = INPUT_SIZE,
    names: Sequence[str] = LETTER_FILE_NAMES
) -> np.ndarray:
    """
    Load every sample in ``names`` from ``directory``.

    Returns:
        np.ndarray: Matrix of shape (len(names), input_size)
    """
    inputs = np.zeros((len(names), input_size))
    for slot, name in enumerate(names):
        load_example(os.path.join(directory, name), inputs, slot)

    logger.info(f"Loaded {len(names)} letter samples from {directory}")
    return inputs


def label_width(class_count: int) -> int:
    """Number of bits needed to encode the indices 1..class_count."""
    if class_count < 1:
        raise ValueError(f"class_count must be positive, got {class_count}")
    return int(class_count).bit_length()


def binary_labels(
    class_count: int = CLASS_COUNT,
    width: Optional[int] = None,
    allow_truncation: bool = False
) -> np.ndarray:
    """
    Build the target matrix for ``class_count`` classes.

    Row ``i - 1`` holds the binary representation of ``i``, left padded
    with zeros to ``width`` bits, one 0.0/1.0 value per bit.

    With ``allow_truncation`` a width too narrow for the largest index
    keeps only the leading ``width`` bits of each code. That reproduces
    the 5-bit labels originally used for the 52 letters, where several
    letters share a code.

    Raises:
        ValueError: If ``width`` is too narrow and truncation is not allowed
    """
    needed = label_width(class_count)
    if width is None:
        width = needed
    if width < 1:
        raise ValueError(f"width must be positive, got {width}")

    if width < needed and not allow_truncation:
        raise ValueError(
            f"{width} bit(s) cannot encode {class_count} classes; "
            f"at least {needed} are needed"
        )

    labels = np.zeros((class_count, width))
    for i in range(1, class_count + 1):
        bits = format(i, 'b').zfill(width)[:width]
        labels[i - 1] = [int(b) for b in bits]

    if width < needed:
        codes = Counter(tuple(row) for row in labels)
        colliding = sum(n for n in codes.values() if n > 1)
        logger.warning(
            f"Label width {width} is too narrow for {class_count} classes: "
            f"{colliding} label(s) share a code with another label"
        )

    return labels


def decode_label(output, threshold: float = 0.5) -> int:
    """Return the index encoded by a network output vector."""
    bits = ''.join('1' if v >= threshold else '0' for v in np.ravel(output))
    return int(bits, 2)


def letter_for_index(index: int) -> str:
    """Letter of the 1-based sample index (1 -> 'a', 27 -> 'A')."""
    if not 1 <= index <= len(LETTERS):
        raise ValueError(f"index must be in 1..{len(LETTERS)}, got {index}")
    return LETTERS[index - 1]


def xor_training_set() -> Tuple[np.ndarray, np.ndarray]:
    """The four input/target pairs of the XOR gate."""
    inputs = np.array([[0.0, 0.0], [0.0, 1.0], [1.0, 0.0], [1.0, 1.0]])
    targets = np.array([[0.0], [1.0], [1.0], [0.0]])
    return inputs, targets
