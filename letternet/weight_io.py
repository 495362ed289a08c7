"""
weight_io.py
~~~~~~~~~~~~

Reading and writing network weights as one line of delimited text.

The line holds every ``weights_kj`` entry in row-major order (input-major,
hidden-minor) followed by every ``weights_ji`` entry in row-major order
(hidden-major, output-minor). Each value is followed by the separator, so
a line always ends with one; a trailing empty token is ignored on load.
"""

import os
import math
import logging
from typing import Optional, Tuple

import numpy as np

from letternet.errors import FormatError, ParseError
from letternet.network import Network

logger = logging.getLogger(__name__)

SEPARATOR = ','


def parse_values(
    text: str,
    expected: int,
    separator: str = SEPARATOR,
    source: Optional[str] = None
) -> np.ndarray:
    """
    Parse ``expected`` real numbers from delimited text.

    Raises:
        ParseError: If a token is not a finite real number
        FormatError: If the number of tokens is not ``expected``
    """
    tokens = text.strip().split(separator)
    if tokens and tokens[-1].strip() == '':
        tokens.pop()

    if len(tokens) != expected:
        raise FormatError(expected, len(tokens), source)

    values = np.empty(expected, dtype=float)
    for position, token in enumerate(tokens):
        try:
            value = float(token)
        except ValueError:
            raise ParseError(token, position, source) from None
        # nan, inf and overflowing literals are not usable weights
        if not math.isfinite(value):
            raise ParseError(token, position, source)
        values[position] = value
    return values


def serialize_weights(w_kj, w_ji, separator: str = SEPARATOR) -> str:
    """Return both weight matrices as one separator-terminated line."""
    values = np.concatenate([
        np.asarray(w_kj, dtype=float).ravel(),
        np.asarray(w_ji, dtype=float).ravel()
    ])
    # repr() keeps every digit so a load restores the exact value
    return ''.join(repr(float(v)) + separator for v in values)


def parse_weights(
    text: str,
    n_in: int,
    n_hid: int,
    n_out: int,
    separator: str = SEPARATOR,
    source: Optional[str] = None
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Parse a line written by :func:`serialize_weights`.

    Returns:
        tuple: (w_kj of shape (n_in, n_hid), w_ji of shape (n_hid, n_out))
    """
    kj_count = n_in * n_hid
    values = parse_values(text, kj_count + n_hid * n_out, separator, source)
    w_kj = values[:kj_count].reshape(n_in, n_hid)
    w_ji = values[kj_count:].reshape(n_hid, n_out)
    return w_kj, w_ji


def save_weights(network: Network, path: str) -> None:
    """Write the weights of ``network`` to ``path`` as a single line."""
    directory = os.path.dirname(path)
    if directory and not os.path.exists(directory):
        os.makedirs(directory)

    with open(path, 'w') as f:
        f.write(serialize_weights(network.weights_kj, network.weights_ji))

    logger.info(f"Saved weights of {network!r} to {path}")


def read_weights(path: str, n_in: int, n_hid: int, n_out: int) -> Tuple[np.ndarray, np.ndarray]:
    """Read weight matrices of the given dimensions from ``path``."""
    with open(path, 'r') as f:
        line = f.readline()
    return parse_weights(line, n_in, n_hid, n_out, source=path)


def load_weights(path: str, network: Network) -> Network:
    """
    Overwrite the weights of ``network`` with those stored in ``path``.

    Raises:
        OSError: If the file cannot be read
        ParseError: If a value is not a real number
        FormatError: If the file holds the wrong number of values
    """
    w_kj, w_ji = read_weights(path, *network.shape)
    network.set_weights(w_kj, w_ji)
    logger.info(f"Loaded weights of {network!r} from {path}")
    return network
