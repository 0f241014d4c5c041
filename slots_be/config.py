"""
Application configuration with fail-fast validation.

Values come from the environment (loaded from `.env` by python-dotenv)
and are validated once at import time.
"""
from dotenv import load_dotenv
from decimal import Decimal
from sqlalchemy.pool import StaticPool

from .config_validator import validate_production_config

load_dotenv()


class Config:
    """Validated configuration."""

    _validated_config = validate_production_config()

    # Database Configuration
    SQLALCHEMY_DATABASE_URI = _validated_config['SQLALCHEMY_DATABASE_URI']
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    SECRET_KEY = _validated_config['SECRET_KEY']

    # Flask Debug Mode
    DEBUG = _validated_config['DEBUG']

    # CORS Configuration
    CORS_ORIGINS_LIST = _validated_config['CORS_ORIGINS']

    # Slot engine
    DEFAULT_SLOT = _validated_config['DEFAULT_SLOT']
    DEFAULT_BALANCE = _validated_config['DEFAULT_BALANCE']
    DEFAULT_BET = _validated_config['DEFAULT_BET']
    SLOT_CONFIG_DIR = None  # None -> bundled slots_be/public/slots
    SPIN_RATE_LIMIT_MS = _validated_config['SPIN_RATE_LIMIT_MS']
    ANIMATION_ACK_TIMEOUT_SECONDS = _validated_config['ANIMATION_ACK_TIMEOUT_SECONDS']
    AUTOPLAY_SPIN_DELAY_SECONDS = _validated_config['AUTOPLAY_SPIN_DELAY_SECONDS']
    TURBO_SPEED_MULTIPLIER = _validated_config['TURBO_SPEED_MULTIPLIER']
    MAX_CASCADE_ITERATIONS = _validated_config['MAX_CASCADE_ITERATIONS']
    AUTO_RUN_FREE_SPINS = _validated_config['AUTO_RUN_FREE_SPINS']
    SPIN_HISTORY_ENABLED = _validated_config['SPIN_HISTORY_ENABLED']

    # Seconds an HTTP request waits for a spin to resolve
    SPIN_REQUEST_TIMEOUT_SECONDS = 30


class TestingConfig(Config):
    TESTING = True
    DEBUG = False
    SECRET_KEY = 'test-secret-key-for-the-slots-backend-suite'
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    # One shared connection so the game loop thread sees the same in-memory database
    SQLALCHEMY_ENGINE_OPTIONS = {
        'connect_args': {'check_same_thread': False},
        'poolclass': StaticPool,
    }
    CORS_ORIGINS_LIST = []
    DEFAULT_BALANCE = Decimal('100')
    DEFAULT_BET = Decimal('1')
    SPIN_RATE_LIMIT_MS = 0
    AUTOPLAY_SPIN_DELAY_SECONDS = 0
    ANIMATION_ACK_TIMEOUT_SECONDS = 0.5
    SPIN_REQUEST_TIMEOUT_SECONDS = 10
