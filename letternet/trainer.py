"""
trainer.py
~~~~~~~~~~

Backpropagation training for :class:`letternet.network.Network`.

Weights are updated online: after every training example the gradient of
that example's squared error is computed and both weight matrices take a
gradient descent step, so example ``x + 1`` already sees the update made
for example ``x``. An epoch is one pass over every example; training
repeats epochs until the aggregate error

    Et = sqrt(sum over examples and outputs of E[x][o] ** 2)

is at or below the target error.
"""

import time
import logging
from typing import Any, Callable, Dict, List, Optional

import numpy as np

from letternet.activation import sigmoid_prime
from letternet.errors import NonConvergence, ShapeMismatch, TrainingCancelled
from letternet.network import Network

logger = logging.getLogger(__name__)

EpochCallback = Callable[[Dict[str, Any]], None]


class Trainer:
    """
    Gradient descent trainer bound to one network.

    Args:
        network: The network whose weights are trained in place
        learning_rate: Step size (lambda) applied to the negative gradient
        max_epochs: Epoch cap; ``None`` trains until the target is met
        on_epoch_complete: Called with a progress dict after every epoch
        should_stop: Checked at the top of every epoch; returning True
            cancels training
        yield_func: Called after every example so cooperative schedulers
            can run other tasks during long epochs
    """

    def __init__(
        self,
        network: Network,
        learning_rate: float = 1.0,
        max_epochs: Optional[int] = None,
        on_epoch_complete: Optional[EpochCallback] = None,
        should_stop: Optional[Callable[[], bool]] = None,
        yield_func: Optional[Callable[[], None]] = None
    ):
        if learning_rate <= 0:
            raise ValueError(
                f"learning_rate must be positive, got {learning_rate}"
            )
        if max_epochs is not None and max_epochs < 1:
            raise ValueError(
                f"max_epochs must be a positive integer or None, got {max_epochs}"
            )

        self.network = network
        self.learning_rate = float(learning_rate)
        self.max_epochs = max_epochs
        self.on_epoch_complete = on_epoch_complete
        self.should_stop = should_stop
        self.yield_func = yield_func

        self.history: List[float] = []
        self.epochs = 0

    def prepare_training_set(self, inputs, targets):
        """Validate the training set against the network and freeze a copy."""
        n_in, _, n_out = self.network.shape

        inputs = np.array(inputs, dtype=float)
        targets = np.array(targets, dtype=float)
        if targets.ndim == 1 and n_out == 1:
            targets = targets.reshape(-1, 1)

        if inputs.ndim != 2 or inputs.shape[1] != n_in:
            raise ShapeMismatch('inputs', f"(m, {n_in})", inputs.shape)
        if targets.shape != (inputs.shape[0], n_out):
            raise ShapeMismatch('targets', (inputs.shape[0], n_out), targets.shape)
        if inputs.shape[0] == 0:
            raise ValueError("Training set must contain at least one example")

        # The training set is fixed for the duration of a run
        inputs.setflags(write=False)
        targets.setflags(write=False)
        return inputs, targets

    def _train_example(self, a: np.ndarray, target: np.ndarray, errors: np.ndarray) -> None:
        """Forward pass, gradients and weight update for one example."""
        net = self.network
        w_kj = net.weights_kj
        w_ji = net.weights_ji

        fp = net.feedforward(a)
        errors[:] = target - fp.output

        # E[o] * f'(output sum) for every output unit
        delta_out = errors * sigmoid_prime(fp.output_sums)

        partial_ji = -np.outer(fp.hidden, delta_out)
        # Uses w_ji before this example's update
        partial_kj = -np.outer(fp.activation, sigmoid_prime(fp.hidden_sums) * (w_ji @ delta_out))

        w_kj -= self.learning_rate * partial_kj
        w_ji -= self.learning_rate * partial_ji

    def run_epoch(self, inputs: np.ndarray, targets: np.ndarray, errors: np.ndarray) -> float:
        """Train on every example once and return the aggregate error."""
        for x in range(inputs.shape[0]):
            self._train_example(inputs[x], targets[x], errors[x])
            if self.yield_func is not None:
                self.yield_func()
        return float(np.sqrt(np.sum(errors * errors)))

    def train(self, inputs, targets, target_error: float) -> float:
        """
        Train until the aggregate error is at or below ``target_error``.

        Args:
            inputs: Matrix of shape (m, n_in), one example per row
            targets: Matrix of shape (m, n_out) of expected outputs
            target_error: Aggregate error at which training stops

        Returns:
            The aggregate error of the final epoch

        Raises:
            ShapeMismatch: If the training set disagrees with the network
            NonConvergence: If ``max_epochs`` is reached or the error
                becomes NaN or infinite
            TrainingCancelled: If ``should_stop`` requests a stop
        """
        if target_error < 0:
            raise ValueError(f"target_error must be non-negative, got {target_error}")

        inputs, targets = self.prepare_training_set(inputs, targets)
        errors = np.zeros(targets.shape)

        self.history = []
        self.epochs = 0
        error = float('inf')
        start_time = time.time()

        logger.info(
            f"Training {self.network!r} on {inputs.shape[0]} example(s): "
            f"target_error={target_error}, lr={self.learning_rate}, "
            f"max_epochs={self.max_epochs}"
        )

        while True:
            if self.should_stop is not None and self.should_stop():
                logger.warning(f"Training cancelled after {self.epochs} epoch(s)")
                raise TrainingCancelled(self.epochs, error)

            if self.max_epochs is not None and self.epochs >= self.max_epochs:
                logger.warning(
                    f"Training stopped at epoch limit {self.max_epochs} "
                    f"with error {error}"
                )
                raise NonConvergence(self.epochs, error)

            error = self.run_epoch(inputs, targets, errors)
            self.epochs += 1
            self.history.append(error)

            logger.debug(f"epoch {self.epochs}: error {error}")

            if self.on_epoch_complete is not None:
                self.on_epoch_complete({
                    'epoch': self.epochs,
                    'error': error,
                    'target_error': target_error,
                    'max_epochs': self.max_epochs,
                    'elapsed_time': time.time() - start_time
                })

            if not np.isfinite(error):
                logger.warning(f"Training diverged at epoch {self.epochs}")
                raise NonConvergence(self.epochs, error, reason='error is not finite')

            if error <= target_error:
                break

        logger.info(
            f"Training converged after {self.epochs} epoch(s): error {error}"
        )
        return error


def train(
    network: Network,
    inputs,
    targets,
    target_error: float,
    learning_rate: float = 1.0,
    max_epochs: Optional[int] = None,
    **kwargs
) -> float:
    """
    Train ``network`` in place and return the final aggregate error.

    Extra keyword arguments are passed on to :class:`Trainer`.
    """
    trainer = Trainer(
        network,
        learning_rate=learning_rate,
        max_epochs=max_epochs,
        **kwargs
    )
    return trainer.train(inputs, targets, target_error)
