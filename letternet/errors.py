"""
errors.py
~~~~~~~~~

Exception types raised by the network, trainer and file adapters.
"""

from typing import Optional


class LetterNetError(Exception):
    """Base class for all letternet errors."""


class ShapeMismatch(LetterNetError, ValueError):
    """A matrix or vector does not match the declared network dimensions."""

    def __init__(self, name: str, expected, actual):
        self.name = name
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{name} has shape {actual}, expected {expected}"
        )


class ParseError(LetterNetError, ValueError):
    """A token could not be parsed as a real number."""

    def __init__(self, token: str, position: int, source: Optional[str] = None):
        self.token = token
        self.position = position
        self.source = source
        where = f" in {source}" if source else ""
        super().__init__(
            f"Invalid number {token!r} at token {position}{where}"
        )


class FormatError(LetterNetError, ValueError):
    """The number of tokens does not match the expected shape."""

    def __init__(self, expected: int, actual: int, source: Optional[str] = None):
        self.expected = expected
        self.actual = actual
        self.source = source
        where = f" in {source}" if source else ""
        super().__init__(
            f"Expected {expected} values{where}, found {actual}"
        )


class NonConvergence(LetterNetError, RuntimeError):
    """
    Training stopped before the aggregate error reached the target.

    The network keeps the weights of the last completed epoch, so callers
    may still save or inspect it.
    """

    def __init__(self, epochs: int, error: float, reason: str = 'epoch limit reached'):
        self.epochs = epochs
        self.error = error
        self.reason = reason
        super().__init__(
            f"Training did not converge after {epochs} epoch(s): "
            f"{reason} (error={error})"
        )


class TrainingCancelled(NonConvergence):
    """Training was stopped by the caller's cancellation check."""

    def __init__(self, epochs: int, error: float):
        super().__init__(epochs, error, reason='cancelled')
