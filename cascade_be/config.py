"""
Slot service configuration with fail-fast validation.

Values come from the environment (optionally a .env file) and are checked by
config_validator before the class body is evaluated.
"""
from cascade_be.config_validator import validate_startup_config

class Config:
    """Runtime configuration for the slot service."""

    _validated_config = validate_startup_config()

    # Flask
    DEBUG = _validated_config['DEBUG']
    TESTING = False
    JSON_AS_ASCII = False # symbol ids are emoji
    LOG_LEVEL = _validated_config['LOG_LEVEL']

    # Slot selection and session
    SLOT_SHORT_NAME = _validated_config['SLOT_SHORT_NAME']
    SLOT_STARTING_BALANCE = _validated_config['SLOT_STARTING_BALANCE']
    SLOT_RNG_SEED = _validated_config['SLOT_RNG_SEED'] # None -> SystemRandom
    SLOT_CONFIG_BASE_PATH = None # None -> cascade_be/slots

    # Engine safety ceilings
    MAX_CASCADE_ITERATIONS = _validated_config['MAX_CASCADE_ITERATIONS']
    MAX_FREE_SPINS_PER_CHAIN = _validated_config['MAX_FREE_SPINS_PER_CHAIN']
    MAX_SIMULATION_SPINS = _validated_config['MAX_SIMULATION_SPINS']

    # CORS
    CORS_ORIGINS_LIST = _validated_config['CORS_ORIGINS']


class TestingConfig(Config):
    TESTING = True
    DEBUG = False
    SLOT_RNG_SEED = 1234
    SLOT_STARTING_BALANCE = 1000.0
    MAX_SIMULATION_SPINS = 5000
    CORS_ORIGINS_LIST = []
