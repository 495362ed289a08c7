"""
config.py
~~~~~~~~~

Settings read from environment variables, and logging setup.

- In production: third-party loggers are quieted, letternet logs stay at INFO
- In development: everything logs at ``LOG_LEVEL``
"""

import os
import logging
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def _get_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == '':
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}") from None


def _get_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == '':
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}") from None


def _get_max_epochs(default: Optional[int]) -> Optional[int]:
    value = os.getenv('LETTERNET_MAX_EPOCHS')
    if value is None or value == '':
        return default
    if value.lower() == 'none' or value == '0':
        return None
    try:
        return int(value)
    except ValueError:
        raise ValueError(
            f"LETTERNET_MAX_EPOCHS must be an integer or 'none', got {value!r}"
        ) from None


class Settings:
    """Runtime settings for the server and the training script."""

    def __init__(
        self,
        log_level: str = 'INFO',
        environment: str = 'development',
        port: int = 8000,
        model_dir: str = 'models',
        data_dir: str = os.path.join('data', 'letters'),
        input_size: int = 10000,
        hidden_size: int = 30,
        weight_range: float = 0.5,
        target_error: float = 0.1,
        learning_rate: float = 1.0,
        max_epochs: Optional[int] = 100000
    ):
        self.log_level = log_level
        self.environment = environment
        self.port = port
        self.model_dir = model_dir
        self.data_dir = data_dir
        self.input_size = input_size
        self.hidden_size = hidden_size
        self.weight_range = weight_range
        self.target_error = target_error
        self.learning_rate = learning_rate
        self.max_epochs = max_epochs

    @property
    def is_production(self) -> bool:
        return self.environment == 'production'

    @classmethod
    def from_env(cls) -> 'Settings':
        """Build settings from the environment, falling back to defaults."""
        defaults = cls()
        return cls(
            log_level=os.getenv('LOG_LEVEL', defaults.log_level).upper(),
            environment=os.getenv('LETTERNET_ENV', defaults.environment),
            port=_get_int('PORT', defaults.port),
            model_dir=os.getenv('LETTERNET_MODEL_DIR', defaults.model_dir),
            data_dir=os.getenv('LETTERNET_DATA_DIR', defaults.data_dir),
            input_size=_get_int('LETTERNET_INPUT_SIZE', defaults.input_size),
            hidden_size=_get_int('LETTERNET_HIDDEN_SIZE', defaults.hidden_size),
            weight_range=_get_float('LETTERNET_WEIGHT_RANGE', defaults.weight_range),
            target_error=_get_float('LETTERNET_TARGET_ERROR', defaults.target_error),
            learning_rate=_get_float('LETTERNET_LEARNING_RATE', defaults.learning_rate),
            max_epochs=_get_max_epochs(defaults.max_epochs)
        )

    def __repr__(self) -> str:
        return f"Settings({self.__dict__!r})"


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Set up logging for the given (or environment) settings."""
    if settings is None:
        settings = Settings.from_env()

    log_level = getattr(logging, settings.log_level, logging.INFO)

    logging.basicConfig(level=log_level, format=LOG_FORMAT)

    # In production, silence noisy third-party logs but keep our logs visible
    if settings.is_production:
        for logger_name in ['socketio', 'engineio', 'engineio.server',
                            'socketio.server', 'werkzeug', 'matplotlib']:
            logging.getLogger(logger_name).setLevel(logging.WARNING)
        logging.getLogger('letternet').setLevel(logging.INFO)
    else:
        logging.getLogger('socketio').setLevel(logging.INFO)
        logging.getLogger('engineio').setLevel(logging.INFO)
        logging.getLogger('matplotlib').setLevel(logging.WARNING)
