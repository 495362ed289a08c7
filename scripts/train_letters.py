#!/usr/bin/env python3
"""
Train the letter network from the command line.

Usage:
    python scripts/train_letters.py --data-dir data/letters
    python scripts/train_letters.py --xor

The script will:
1. Create a 10000-30-5 network with weights in [-0.25, 0.25)
2. Load the 52 letter samples (a.txt ... z.txt, au.txt ... zu.txt)
3. Build the binary labels of the sample indices
4. Train until the aggregate error reaches the target
5. Save the weights, load them back and run the first sample
"""

import os
import sys
import argparse
import logging

from letternet import dataset
from letternet.config import Settings, configure_logging
from letternet.errors import LetterNetError, NonConvergence
from letternet.network import Network
from letternet.trainer import Trainer
from letternet.weight_io import load_weights, save_weights

logger = logging.getLogger('letternet.scripts.train_letters')

# Weights of a 2-3-1 network that already computes XOR
XOR_WEIGHTS_KJ = [[67.14, 46.64, -56.08], [95.28, -4.05, 92.80]]
XOR_WEIGHTS_JI = [93.16, -64.53, -44.31]


def positive_int(text: str) -> int:
    value = int(text)
    if value < 1:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {value}")
    return value


def non_negative_int(text: str) -> int:
    value = int(text)
    if value < 0:
        raise argparse.ArgumentTypeError(f"must be 0 or more, got {value}")
    return value


def positive_float(text: str) -> float:
    value = float(text)
    if not value > 0:
        raise argparse.ArgumentTypeError(f"must be a positive number, got {value}")
    return value


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Train a three-layer network on the letter samples.'
    )
    parser.add_argument('--data-dir', default=settings.data_dir,
                        help='directory holding the 52 letter files')
    parser.add_argument('--weights', default='weights.txt',
                        help='file the trained weights are written to')
    parser.add_argument('--input-size', type=positive_int,
                        default=settings.input_size,
                        help='values per letter sample')
    parser.add_argument('--hidden', type=positive_int, default=settings.hidden_size,
                        help='number of hidden nodes')
    parser.add_argument('--range', dest='weight_range', type=positive_float,
                        default=settings.weight_range,
                        help='width of the initial weight interval')
    parser.add_argument('--label-width', type=positive_int,
                        default=dataset.LEGACY_LABEL_WIDTH,
                        help='bits per label; below 6 some letters share a code')
    parser.add_argument('--target-error', type=float,
                        default=settings.target_error)
    parser.add_argument('--learning-rate', type=positive_float,
                        default=settings.learning_rate)
    parser.add_argument('--max-epochs', type=non_negative_int,
                        default=settings.max_epochs,
                        help='epoch limit, 0 for none (default from LETTERNET_MAX_EPOCHS)')
    parser.add_argument('--seed', type=int, default=None)
    parser.add_argument('--xor', action='store_true',
                        help='check the XOR gate weights instead of training letters')
    return parser


def run_xor() -> None:
    """Show the outputs of the fixed XOR network."""
    net = Network.from_weights(2, 3, XOR_WEIGHTS_KJ, XOR_WEIGHTS_JI)
    inputs, targets = dataset.xor_training_set()
    for x, t in zip(inputs, targets):
        print(f"{x} -> {net.predict(x)[0]:.6f} (expected {t[0]:.0f})")


def run_letters(args: argparse.Namespace) -> None:
    inputs = dataset.load_letter_set(args.data_dir, args.input_size)
    labels = dataset.binary_labels(
        dataset.CLASS_COUNT,
        width=args.label_width,
        allow_truncation=True
    )

    net = Network(inputs.shape[1], args.hidden, labels.shape[1],
                  args.weight_range, rng=args.seed)

    trainer = Trainer(net, learning_rate=args.learning_rate,
                      max_epochs=args.max_epochs or None)
    try:
        error = trainer.train(inputs, labels, args.target_error)
        print(f"trained: error {error} after {trainer.epochs} epoch(s)")
    except NonConvergence as e:
        print(f"not converged: {e}")
        print("saving the weights of the last epoch")

    save_weights(net, args.weights)
    print(f"saved to {args.weights}")

    load_weights(args.weights, net)
    print(f"a: {net.predict(inputs[0])[0]}")


def main(argv=None) -> int:
    settings = Settings.from_env()
    configure_logging(settings)
    args = build_parser(settings).parse_args(argv)

    if args.xor:
        run_xor()
        return 0

    if not os.path.isdir(args.data_dir):
        print(f"Error: data directory not found: {args.data_dir}")
        return 1

    try:
        run_letters(args)
    except (LetterNetError, OSError, ValueError) as e:
        logger.error(f"Training run failed: {e}")
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
