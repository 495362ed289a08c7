"""
letternet package
~~~~~~~~~~~~~~~~~

Three-layer sigmoid neural network for letter-image recognition.
Contains the network model, the backpropagation trainer, weight and
dataset file adapters, SQLite model storage, and the API server.
"""

from letternet.errors import (
    LetterNetError,
    ShapeMismatch,
    ParseError,
    FormatError,
    NonConvergence,
    TrainingCancelled
)
from letternet.activation import sigmoid, sigmoid_prime
from letternet.network import Network, ForwardPass
from letternet.trainer import Trainer, train

__version__ = "1.0.0"

__all__ = [
    'LetterNetError',
    'ShapeMismatch',
    'ParseError',
    'FormatError',
    'NonConvergence',
    'TrainingCancelled',
    'sigmoid',
    'sigmoid_prime',
    'Network',
    'ForwardPass',
    'Trainer',
    'train',
]
