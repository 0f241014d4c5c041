"""
Configuration validation and startup checks.

Fail-fast validation of environment variables: production deployments
must provide the critical values, development falls back to local
defaults with a warning.
"""

import os
import sys
import warnings
import secrets
from decimal import Decimal, InvalidOperation
from typing import List, Optional


class ConfigValidationError(Exception):
    """Raised when critical configuration is missing or invalid."""
    pass


def _env_flag(name, default):
    return os.getenv(name, default).lower() in ('true', '1', 't')


class ConfigValidator:
    """Validates application configuration and enforces production settings."""

    def __init__(self, is_production: bool = None):
        """
        Args:
            is_production: If None, production is assumed only when FLASK_ENV=production
        """
        if is_production is None:
            is_production = os.getenv('FLASK_ENV', '').lower() == 'production'

        self.is_production = is_production
        self.is_testing = _env_flag('TESTING', 'False')
        self.errors: List[str] = []
        self.warnings: List[str] = []

    def validate_required_env_var(self, var_name: str, description: str = None) -> Optional[str]:
        value = os.getenv(var_name)
        if not value:
            desc = description or var_name
            if self.is_production:
                self.errors.append(f"CRITICAL: {desc} ({var_name}) must be set in production environment")
            else:
                self.warnings.append(f"WARNING: {desc} ({var_name}) not set - using development fallback")
        return value

    def validate_secret_key(self) -> Optional[str]:
        secret_key = self.validate_required_env_var('SECRET_KEY', 'Flask Secret Key')
        if not secret_key:
            if self.is_production:
                return None
            return secrets.token_urlsafe(32)
        if len(secret_key) < 32:
            error_msg = "SECRET_KEY must be at least 32 characters long"
            if self.is_production:
                self.errors.append(f"CRITICAL: {error_msg}")
            else:
                self.warnings.append(f"WARNING: {error_msg}")
        return secret_key

    def validate_database_config(self) -> Optional[str]:
        database_url = os.getenv('DATABASE_URL')
        if database_url:
            if not database_url.startswith(('postgresql://', 'postgresql+psycopg2://', 'sqlite://')):
                self.errors.append("CRITICAL: DATABASE_URL must use a supported database driver")
            return database_url

        if self.is_production:
            self.errors.append("CRITICAL: DATABASE_URL must be set in production environment")
            return None
        return 'sqlite:///slots_be.db'

    def validate_cors_config(self) -> List[str]:
        cors_origins = os.getenv('CORS_ORIGINS', '')

        if not cors_origins and self.is_production:
            self.errors.append(
                "CRITICAL: CORS_ORIGINS must be set in production to specify allowed frontend domains"
            )
            return []

        origins = [origin.strip() for origin in cors_origins.split(',') if origin.strip()]
        for origin in origins:
            if not origin.startswith(('http://', 'https://')):
                self.warnings.append(f"CORS origin '{origin}' should include protocol (http:// or https://)")
        return origins

    def _number(self, var_name, default, cast, minimum=0):
        raw = os.getenv(var_name)
        if raw is None:
            return default
        try:
            value = cast(raw)
        except (ValueError, InvalidOperation):
            self.errors.append(f"CRITICAL: {var_name} must be a number, got '{raw}'")
            return default
        if value < minimum:
            self.errors.append(f"CRITICAL: {var_name} must be >= {minimum}")
            return default
        return value

    def validate_game_config(self) -> dict:
        """Engine tuning values; all optional with safe defaults."""
        return {
            'DEFAULT_SLOT': os.getenv('DEFAULT_SLOT', 'cluster_tumble'),
            'DEFAULT_BALANCE': self._number('DEFAULT_BALANCE', Decimal('100'), Decimal),
            'DEFAULT_BET': self._number('DEFAULT_BET', Decimal('1'), Decimal, minimum=Decimal('0.01')),
            'SPIN_RATE_LIMIT_MS': self._number('SPIN_RATE_LIMIT_MS', 200, int),
            'ANIMATION_ACK_TIMEOUT_SECONDS': self._number('ANIMATION_ACK_TIMEOUT_SECONDS', 5.0, float, minimum=0.1),
            'AUTOPLAY_SPIN_DELAY_SECONDS': self._number('AUTOPLAY_SPIN_DELAY_SECONDS', 0.5, float),
            'TURBO_SPEED_MULTIPLIER': self._number('TURBO_SPEED_MULTIPLIER', 0.25, float),
            'MAX_CASCADE_ITERATIONS': self._number('MAX_CASCADE_ITERATIONS', 200, int, minimum=1),
            'AUTO_RUN_FREE_SPINS': _env_flag('AUTO_RUN_FREE_SPINS', 'True'),
            'SPIN_HISTORY_ENABLED': _env_flag('SPIN_HISTORY_ENABLED', 'True'),
        }

    def validate_all(self) -> dict:
        """
        Validate all configuration settings.

        Raises:
            ConfigValidationError: If critical configuration is missing in production
        """
        config = {
            'SECRET_KEY': self.validate_secret_key(),
            'SQLALCHEMY_DATABASE_URI': self.validate_database_config(),
            'CORS_ORIGINS': self.validate_cors_config(),
            'DEBUG': _env_flag('FLASK_DEBUG', 'False'),
        }
        config.update(self.validate_game_config())

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


def validate_production_config() -> dict:
    """
    Validate configuration with fail-fast behavior.

    Raises:
        SystemExit: If validation fails during startup
    """
    try:
        validator = ConfigValidator()
        return validator.validate_all()
    except ConfigValidationError as e:
        print("\nCONFIGURATION VALIDATION FAILED\n", file=sys.stderr)
        print(str(e), file=sys.stderr)
        print("\nSet the required environment variables (see .env.example) and restart.", file=sys.stderr)
        print("\nApplication startup ABORTED\n", file=sys.stderr)
        sys.exit(1)
