"""
activation.py
~~~~~~~~~~~~~

Sigmoid activation used by the hidden and output layers.
"""

import numpy as np


def sigmoid(z):
    """The sigmoid function 1 / (1 + e^-z)."""
    # Large negative inputs overflow exp() and saturate to 0.0
    with np.errstate(over='ignore'):
        return 1.0 / (1.0 + np.exp(-z))


def sigmoid_prime(z):
    """Derivative of the sigmoid with respect to the pre-activation sum."""
    s = sigmoid(z)
    return s * (1.0 - s)
