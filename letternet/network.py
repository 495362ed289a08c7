"""
network.py
~~~~~~~~~~

A three-layer feedforward network: activation (input) layer, one hidden
layer and an output layer, all using sigmoid units and no biases.

Weights are stored as two matrices:

- ``weights_kj`` of shape (n_in, n_hid), input to hidden
- ``weights_ji`` of shape (n_hid, n_out), hidden to output

The dimensions are fixed when the network is created. Training and
loading only ever replace the numeric contents of the matrices.
"""

import logging
from typing import NamedTuple, Tuple, Union

import numpy as np

from letternet.activation import sigmoid
from letternet.errors import ShapeMismatch

logger = logging.getLogger(__name__)

RandomSource = Union[None, int, np.random.Generator]


class ForwardPass(NamedTuple):
    """Every intermediate value of one forward propagation."""
    activation: np.ndarray
    hidden_sums: np.ndarray
    hidden: np.ndarray
    output_sums: np.ndarray
    output: np.ndarray


def _as_rng(rng: RandomSource) -> np.random.Generator:
    if isinstance(rng, np.random.Generator):
        return rng
    return np.random.default_rng(rng)


class Network:
    """
    Three-layer sigmoid network with randomly initialised weights.

    Args:
        n_in: Number of activation (input) nodes
        n_hid: Number of hidden nodes
        n_out: Number of output nodes
        weight_range: Width of the interval the initial weights are drawn
            from; each weight is uniform in [-range/2, range/2)
        rng: Seed or numpy Generator used for the initial weights

    Raises:
        ValueError: If a dimension or the weight range is not positive
    """

    def __init__(
        self,
        n_in: int,
        n_hid: int,
        n_out: int,
        weight_range: float = 0.5,
        rng: RandomSource = None
    ):
        self._check_dimensions(n_in, n_hid, n_out)
        if weight_range <= 0:
            raise ValueError(
                f"weight_range must be positive, got {weight_range}"
            )

        self.n_in = int(n_in)
        self.n_hid = int(n_hid)
        self.n_out = int(n_out)

        generator = _as_rng(rng)
        half = weight_range / 2.0
        self._weights_kj = generator.uniform(-half, half, size=(self.n_in, self.n_hid))
        self._weights_ji = generator.uniform(-half, half, size=(self.n_hid, self.n_out))

        logger.debug(
            f"Created network {self.shape} with weights in "
            f"[{-half}, {half})"
        )

    @classmethod
    def from_weights(cls, n_in: int, n_hid: int, w_kj, w_ji) -> 'Network':
        """
        Create a network that adopts the given weight matrices.

        The output count is taken from the number of columns of ``w_ji``.
        A one dimensional ``w_ji`` of length ``n_hid`` is read as a single
        output column.

        Raises:
            ShapeMismatch: If the matrices disagree with ``n_in``/``n_hid``
        """
        w_kj = np.array(w_kj, dtype=float)
        w_ji = np.array(w_ji, dtype=float)
        if w_ji.ndim == 1:
            w_ji = w_ji.reshape(-1, 1)
        if w_ji.ndim != 2:
            raise ShapeMismatch('weights_ji', f"({n_hid}, n_out)", w_ji.shape)

        n_out = w_ji.shape[1]
        cls._check_dimensions(n_in, n_hid, n_out)

        net = cls.__new__(cls)
        net.n_in = int(n_in)
        net.n_hid = int(n_hid)
        net.n_out = int(n_out)
        net._weights_kj = net._checked('weights_kj', w_kj, (net.n_in, net.n_hid))
        net._weights_ji = net._checked('weights_ji', w_ji, (net.n_hid, net.n_out))
        return net

    @staticmethod
    def _check_dimensions(n_in, n_hid, n_out) -> None:
        for name, value in (('n_in', n_in), ('n_hid', n_hid), ('n_out', n_out)):
            if int(value) != value or value < 1:
                raise ValueError(f"{name} must be a positive integer, got {value}")

    @staticmethod
    def _checked(name: str, matrix, expected: Tuple[int, int]) -> np.ndarray:
        matrix = np.array(matrix, dtype=float)
        if matrix.shape != expected:
            raise ShapeMismatch(name, expected, matrix.shape)
        return matrix

    @property
    def shape(self) -> Tuple[int, int, int]:
        return (self.n_in, self.n_hid, self.n_out)

    @property
    def weights_kj(self) -> np.ndarray:
        return self._weights_kj

    @weights_kj.setter
    def weights_kj(self, value) -> None:
        self._weights_kj = self._checked('weights_kj', value, (self.n_in, self.n_hid))

    @property
    def weights_ji(self) -> np.ndarray:
        return self._weights_ji

    @weights_ji.setter
    def weights_ji(self, value) -> None:
        self._weights_ji = self._checked('weights_ji', value, (self.n_hid, self.n_out))

    def set_weights(self, w_kj, w_ji) -> None:
        """Replace both weight matrices; neither changes if either is invalid."""
        checked_kj = self._checked('weights_kj', w_kj, (self.n_in, self.n_hid))
        checked_ji = self._checked('weights_ji', w_ji, (self.n_hid, self.n_out))
        self._weights_kj = checked_kj
        self._weights_ji = checked_ji

    def _input_vector(self, x) -> np.ndarray:
        a = np.asarray(x, dtype=float)
        # Column and row vectors are accepted as well as flat ones
        if a.ndim == 2 and 1 in a.shape:
            a = a.reshape(-1)
        if a.shape != (self.n_in,):
            raise ShapeMismatch('input', (self.n_in,), a.shape)
        return a

    def feedforward(self, x) -> ForwardPass:
        """
        Propagate ``x`` through the network.

        The hidden vector is computed once and shared by every output unit.

        Raises:
            ShapeMismatch: If ``x`` does not have ``n_in`` entries
        """
        a = self._input_vector(x)
        hidden_sums = a @ self._weights_kj
        hidden = sigmoid(hidden_sums)
        output_sums = hidden @ self._weights_ji
        output = sigmoid(output_sums)
        return ForwardPass(a, hidden_sums, hidden, output_sums, output)

    def predict(self, x) -> np.ndarray:
        """Return the output vector of the network for input ``x``."""
        return self.feedforward(x).output

    def __repr__(self) -> str:
        return f"Network(n_in={self.n_in}, n_hid={self.n_hid}, n_out={self.n_out})"
