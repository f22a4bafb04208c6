import os
import unittest
from unittest.mock import patch

import pytest

from cascade_be.config_validator import ConfigValidationError, ConfigValidator, validate_startup_config


class TestConfigValidator(unittest.TestCase):

    @patch.dict(os.environ, {}, clear=True)
    def test_development_defaults(self):
        config = ConfigValidator().validate_all()
        self.assertEqual(config['SLOT_SHORT_NAME'], 'sugar_rush')
        self.assertEqual(config['SLOT_STARTING_BALANCE'], 1000.0)
        self.assertIsNone(config['SLOT_RNG_SEED'])
        self.assertEqual(config['MAX_CASCADE_ITERATIONS'], 500)
        self.assertEqual(config['MAX_FREE_SPINS_PER_CHAIN'], 5000)
        self.assertEqual(config['MAX_SIMULATION_SPINS'], 1_000_000)
        self.assertEqual(config['CORS_ORIGINS'], [])
        self.assertEqual(config['LOG_LEVEL'], 'INFO')
        self.assertFalse(config['DEBUG'])

    @patch.dict(os.environ, {
        'SLOT_RNG_SEED': '42',
        'SLOT_STARTING_BALANCE': '250.5',
        'CORS_ORIGINS': 'http://localhost:8080, https://slots.example.com',
        'FLASK_DEBUG': 'true',
        'LOG_LEVEL': 'debug',
    }, clear=True)
    def test_values_from_environment(self):
        config = ConfigValidator().validate_all()
        self.assertEqual(config['SLOT_RNG_SEED'], 42)
        self.assertEqual(config['SLOT_STARTING_BALANCE'], 250.5)
        self.assertEqual(config['CORS_ORIGINS'], ['http://localhost:8080', 'https://slots.example.com'])
        self.assertTrue(config['DEBUG'])
        self.assertEqual(config['LOG_LEVEL'], 'DEBUG')

    @patch.dict(os.environ, {'MAX_CASCADE_ITERATIONS': 'lots'}, clear=True)
    def test_non_integer_limit(self):
        with self.assertRaises(ConfigValidationError):
            ConfigValidator().validate_all()

    @patch.dict(os.environ, {'MAX_FREE_SPINS_PER_CHAIN': '0'}, clear=True)
    def test_limit_below_minimum(self):
        with self.assertRaises(ConfigValidationError) as ctx:
            ConfigValidator().validate_all()
        self.assertIn('MAX_FREE_SPINS_PER_CHAIN', str(ctx.exception))

    @patch.dict(os.environ, {'SLOT_SHORT_NAME': '../etc'}, clear=True)
    def test_slot_name_must_be_a_directory_name(self):
        with self.assertRaises(ConfigValidationError):
            ConfigValidator().validate_all()

    @patch.dict(os.environ, {'MAX_CASCADE_ITERATIONS': '10'}, clear=True)
    def test_low_cascade_ceiling_warns(self):
        with pytest.warns(UserWarning, match='MAX_CASCADE_ITERATIONS'):
            config = ConfigValidator().validate_all()
        self.assertEqual(config['MAX_CASCADE_ITERATIONS'], 10)

    @patch.dict(os.environ, {}, clear=True)
    def test_production_requires_cors_origins(self):
        with self.assertRaises(ConfigValidationError) as ctx:
            ConfigValidator(is_production=True).validate_all()
        self.assertIn('CORS_ORIGINS', str(ctx.exception))

    @patch.dict(os.environ, {'CORS_ORIGINS': 'https://slots.example.com', 'FLASK_DEBUG': 'True'}, clear=True)
    def test_production_rejects_debug(self):
        with self.assertRaises(ConfigValidationError):
            ConfigValidator(is_production=True).validate_all()

    @patch.dict(os.environ, {'FLASK_ENV': 'production'}, clear=True)
    def test_startup_validation_exits(self):
        with self.assertRaises(SystemExit) as ctx:
            validate_startup_config()
        self.assertEqual(ctx.exception.code, 1)
