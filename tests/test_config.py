"""
test_config.py
~~~~~~~~~~~~~~

Unit tests for environment settings.
"""

import pytest

from letternet.config import Settings

ENV_VARS = [
    'LOG_LEVEL', 'LETTERNET_ENV', 'PORT', 'LETTERNET_MODEL_DIR',
    'LETTERNET_DATA_DIR', 'LETTERNET_INPUT_SIZE', 'LETTERNET_HIDDEN_SIZE',
    'LETTERNET_WEIGHT_RANGE', 'LETTERNET_TARGET_ERROR',
    'LETTERNET_LEARNING_RATE', 'LETTERNET_MAX_EPOCHS'
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.mark.unit
class TestSettings:

    def test_defaults(self, clean_env):
        settings = Settings.from_env()
        assert settings.log_level == 'INFO'
        assert settings.is_production is False
        assert settings.port == 8000
        assert settings.input_size == 10000
        assert settings.hidden_size == 30
        assert settings.weight_range == 0.5
        assert settings.target_error == 0.1
        assert settings.learning_rate == 1.0
        assert settings.max_epochs == 100000

    def test_overrides(self, clean_env):
        clean_env.setenv('LOG_LEVEL', 'debug')
        clean_env.setenv('LETTERNET_ENV', 'production')
        clean_env.setenv('PORT', '9000')
        clean_env.setenv('LETTERNET_MODEL_DIR', '/tmp/models')
        clean_env.setenv('LETTERNET_LEARNING_RATE', '0.25')
        clean_env.setenv('LETTERNET_MAX_EPOCHS', '500')

        settings = Settings.from_env()
        assert settings.log_level == 'DEBUG'
        assert settings.is_production is True
        assert settings.port == 9000
        assert settings.model_dir == '/tmp/models'
        assert settings.learning_rate == 0.25
        assert settings.max_epochs == 500

    @pytest.mark.parametrize('value', ['none', 'None', '0'])
    def test_uncapped_epochs(self, clean_env, value):
        clean_env.setenv('LETTERNET_MAX_EPOCHS', value)
        assert Settings.from_env().max_epochs is None

    @pytest.mark.parametrize('name,value', [
        ('PORT', 'eighty'),
        ('LETTERNET_TARGET_ERROR', 'low'),
        ('LETTERNET_MAX_EPOCHS', 'many')
    ])
    def test_invalid_values(self, clean_env, name, value):
        clean_env.setenv(name, value)
        with pytest.raises(ValueError) as exc_info:
            Settings.from_env()
        assert name in str(exc_info.value)
