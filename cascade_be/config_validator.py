"""
Configuration validation and startup checks.

This module implements fail-fast validation so that the slot service never
starts with limits or balances that the engine cannot honour. Development
runs fall back to safe defaults and collect warnings instead.
"""

import os
import sys
import warnings
from typing import List, Optional


class ConfigValidationError(Exception):
    """Raised when critical configuration is missing or invalid."""
    pass


TRUE_VALUES = ('true', '1', 't', 'yes')


class ConfigValidator:
    """Validates slot service configuration read from the environment."""

    def __init__(self, is_production: bool = None):
        """
        Initialize the configuration validator.

        Args:
            is_production: If None, production is assumed only when FLASK_ENV=production
        """
        if is_production is None:
            is_production = os.getenv('FLASK_ENV', '').lower() == 'production'

        self.is_production = is_production
        self.is_testing = os.getenv('TESTING', 'False').lower() in TRUE_VALUES
        self.errors: List[str] = []
        self.warnings: List[str] = []

    def _read_int(self, var_name: str, default: int, minimum: int = 1) -> int:
        raw_value = os.getenv(var_name)
        if raw_value is None or raw_value.strip() == '':
            return default
        try:
            value = int(raw_value)
        except ValueError:
            raise ConfigValidationError(f"{var_name} must be an integer, got '{raw_value}'")
        if value < minimum:
            self.errors.append(f"CRITICAL: {var_name} must be >= {minimum}, got {value}")
        return value

    def _read_float(self, var_name: str, default: float) -> float:
        raw_value = os.getenv(var_name)
        if raw_value is None or raw_value.strip() == '':
            return default
        try:
            value = float(raw_value)
        except ValueError:
            raise ConfigValidationError(f"{var_name} must be a number, got '{raw_value}'")
        if value < 0:
            self.errors.append(f"CRITICAL: {var_name} must not be negative, got {value}")
        return value

    def validate_slot_config(self) -> dict:
        """Validate the slot game selection and starting balance."""
        slot_short_name = os.getenv('SLOT_SHORT_NAME', 'sugar_rush').strip()
        if not slot_short_name or '/' in slot_short_name or '..' in slot_short_name:
            self.errors.append(f"CRITICAL: SLOT_SHORT_NAME '{slot_short_name}' is not a valid slot directory name")

        starting_balance = self._read_float('SLOT_STARTING_BALANCE', 1000.0)

        seed = None
        raw_seed = os.getenv('SLOT_RNG_SEED')
        if raw_seed:
            try:
                seed = int(raw_seed)
            except ValueError:
                raise ConfigValidationError(f"SLOT_RNG_SEED must be an integer, got '{raw_seed}'")
            if self.is_production:
                self.warnings.append(
                    "SLOT_RNG_SEED is set in production - spin outcomes are reproducible. "
                    "Unset it unless you are replaying a session."
                )

        return {
            'SLOT_SHORT_NAME': slot_short_name,
            'SLOT_STARTING_BALANCE': starting_balance,
            'SLOT_RNG_SEED': seed,
        }

    def validate_engine_limits(self) -> dict:
        """Validate the safety ceilings of the cascade engine and simulator."""
        max_cascades = self._read_int('MAX_CASCADE_ITERATIONS', 500)
        max_free_spins = self._read_int('MAX_FREE_SPINS_PER_CHAIN', 5000)
        max_sim_spins = self._read_int('MAX_SIMULATION_SPINS', 1_000_000)

        if max_cascades < 50:
            self.warnings.append(
                f"MAX_CASCADE_ITERATIONS={max_cascades} is low; long but legitimate tumble chains may be reported as faults"
            )

        return {
            'MAX_CASCADE_ITERATIONS': max_cascades,
            'MAX_FREE_SPINS_PER_CHAIN': max_free_spins,
            'MAX_SIMULATION_SPINS': max_sim_spins,
        }

    def validate_cors_config(self) -> List[str]:
        """Validate CORS configuration for the browser renderer."""
        cors_origins = os.getenv('CORS_ORIGINS', '')

        if not cors_origins and self.is_production:
            self.errors.append(
                "CRITICAL: CORS_ORIGINS must be set in production to specify allowed frontend domains"
            )
            return []

        if cors_origins:
            origins = [origin.strip() for origin in cors_origins.split(',') if origin.strip()]
            for origin in origins:
                if not origin.startswith(('http://', 'https://')):
                    self.warnings.append(f"CORS origin '{origin}' should include protocol (http:// or https://)")
            return origins

        return []

    def validate_logging_config(self) -> str:
        log_level = os.getenv('LOG_LEVEL', 'INFO').upper()
        if log_level not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            self.warnings.append(f"Unknown LOG_LEVEL '{log_level}', using INFO")
            log_level = 'INFO'
        return log_level

    def validate_all(self) -> dict:
        """
        Validate all configuration settings.

        Returns:
            Dictionary containing validated configuration values

        Raises:
            ConfigValidationError: If critical configuration is missing or invalid
        """
        config = {}

        try:
            config.update(self.validate_slot_config())
            config.update(self.validate_engine_limits())
            config['CORS_ORIGINS'] = self.validate_cors_config()
            config['LOG_LEVEL'] = self.validate_logging_config()
            config['DEBUG'] = os.getenv('FLASK_DEBUG', 'False').lower() in TRUE_VALUES

            if self.is_production and config['DEBUG']:
                self.errors.append("CRITICAL: DEBUG mode must be disabled in production (set FLASK_DEBUG=False)")

            if self.errors:
                error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {error}" for error in self.errors)
                if self.warnings:
                    error_msg += "\n\nWarnings:\n" + "\n".join(f"  - {warning}" for warning in self.warnings)
                raise ConfigValidationError(error_msg)

            for warning in self.warnings:
                warnings.warn(warning, UserWarning)

            return config

        except Exception as e:
            if isinstance(e, ConfigValidationError):
                raise
            raise ConfigValidationError(f"Configuration validation error: {str(e)}") from e


def validate_startup_config(validator: Optional[ConfigValidator] = None) -> dict:
    """
    Validate configuration with fail-fast behavior.

    Raises:
        SystemExit: If validation fails during startup
    """
    try:
        validator = validator or ConfigValidator()
        return validator.validate_all()
    except ConfigValidationError as e:
        print("\nCONFIGURATION VALIDATION FAILED\n", file=sys.stderr)
        print(str(e), file=sys.stderr)
        print("\nHow to fix:", file=sys.stderr)
        print("1. Set or correct the environment variables listed above", file=sys.stderr)
        print("2. Review the .env file used for this deployment", file=sys.stderr)
        print("\nApplication startup ABORTED\n", file=sys.stderr)
        sys.exit(1)
