"""
test_activation.py
~~~~~~~~~~~~~~~~~~

Unit tests for the sigmoid activation and its derivative.
"""

import math

import numpy as np
import pytest

from letternet.activation import sigmoid, sigmoid_prime


@pytest.mark.unit
class TestSigmoid:
    """Test the activation function."""

    def test_sigmoid_at_zero(self):
        """Test that f(0) is exactly one half."""
        assert sigmoid(0.0) == 0.5

    def test_sigmoid_matches_formula(self):
        """Test f(x) = 1 / (1 + e^-x) on scalars."""
        for x in (-3.0, -0.5, 0.25, 2.0, 7.5):
            assert sigmoid(x) == pytest.approx(1.0 / (1.0 + math.exp(-x)))

    def test_sigmoid_range(self):
        """Test that outputs lie strictly between 0 and 1."""
        x = np.linspace(-30, 30, 601)
        y = sigmoid(x)
        assert np.all(y > 0.0)
        assert np.all(y < 1.0)

    def test_sigmoid_saturates_without_error(self):
        """Test that extreme inputs saturate instead of raising."""
        y = sigmoid(np.array([-1000.0, 1000.0]))
        assert y[0] == pytest.approx(0.0)
        assert y[1] == pytest.approx(1.0)

    def test_sigmoid_elementwise(self):
        """Test that arrays keep their shape."""
        x = np.zeros((3, 2))
        assert sigmoid(x).shape == (3, 2)
        assert np.all(sigmoid(x) == 0.5)


@pytest.mark.unit
class TestSigmoidPrime:
    """Test the derivative of the activation function."""

    def test_derivative_identity(self):
        """Test df(x) = f(x) * (1 - f(x)) across the real line."""
        x = np.linspace(-20, 20, 401)
        assert np.allclose(sigmoid_prime(x), sigmoid(x) * (1.0 - sigmoid(x)))

    def test_derivative_at_zero(self):
        """Test that the slope at zero is one quarter."""
        assert sigmoid_prime(0.0) == 0.25

    def test_derivative_matches_finite_difference(self):
        """Test df against a central difference of f."""
        h = 1e-6
        for x in (-4.0, -1.0, 0.3, 2.5):
            numeric = (sigmoid(x + h) - sigmoid(x - h)) / (2 * h)
            assert sigmoid_prime(x) == pytest.approx(numeric, rel=1e-6)
