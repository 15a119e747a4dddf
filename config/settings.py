"""Application configuration settings.

This module centralizes all configuration values loaded from:
1. config.base.yaml (shared defaults)
2. config.{env}.yaml (environment-specific: dev, staging, prod)
3. config.local.yaml (local overrides, git-ignored)
4. Environment variables (highest priority)

Default environment is 'development' (DEV).

Usage:
    from config.settings import config

    secret = config.JWT_SECRET
    timeout = config.STORAGE_TIMEOUT_SECONDS
"""
import os
from pathlib import Path
from typing import Optional, Any, Dict
import yaml


# Environment name mappings
ENV_ALIASES = {
    'dev': 'development',
    'development': 'development',
    'test': 'testing',
    'testing': 'testing',
    'staging': 'staging',
    'stage': 'staging',
    'prod': 'production',
    'production': 'production',
}

DEFAULT_ENV = 'development'

ENV_FILES = {
    'development': 'config.dev.yaml',
    'testing': 'config.test.yaml',
    'staging': 'config.staging.yaml',
    'production': 'config.prod.yaml',
}


def _env_bool(name: str) -> Optional[bool]:
    env_val = os.getenv(name, '').lower()
    if env_val:
        return env_val in ('1', 'true', 'yes')
    return None


class Config:
    """Centralized application configuration.

    Priority (highest to lowest):
    1. Environment variables
    2. config.local.yaml (for local development overrides)
    3. config.{env}.yaml (environment-specific)
    4. config.base.yaml (shared defaults)

    Environment is determined by FLASK_ENV, then APP_ENV, then 'development'.
    """

    _config_data: Dict[str, Any] = {}
    _loaded: bool = False
    _current_env: str = DEFAULT_ENV

    def __init__(self):
        if not Config._loaded:
            self._load_config()

    @classmethod
    def _get_environment(cls) -> str:
        env = os.getenv('FLASK_ENV') or os.getenv('APP_ENV') or DEFAULT_ENV
        env = env.lower().strip()
        return ENV_ALIASES.get(env, DEFAULT_ENV)

    def _load_config(self):
        """Merge the YAML layers for the current environment, lowest priority first."""
        config_dir = Path(__file__).parent
        Config._current_env = self._get_environment()
        layers = ('config.base.yaml', ENV_FILES.get(Config._current_env, 'config.dev.yaml'), 'config.local.yaml')

        data: Dict[str, Any] = {}
        for name in layers:
            path = config_dir / name
            if not path.exists():
                continue
            with open(path, 'r') as f:
                data = self._deep_merge(data, yaml.safe_load(f) or {})
        Config._config_data = data
        Config._loaded = True

    def _deep_merge(self, base: dict, override: dict) -> dict:
        """Deep merge two dictionaries."""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result

    def _get_yaml_value(self, *keys, default=None) -> Any:
        """Get a nested value from YAML config."""
        value = Config._config_data
        for key in keys:
            if isinstance(value, dict):
                value = value.get(key)
            else:
                return default
            if value is None:
                return default
        return value

    @classmethod
    def reload(cls):
        """Reload configuration (useful for testing)."""
        cls._loaded = False
        cls._config_data = {}
        return cls()

    # ==========================================================================
    # Environment Info
    # ==========================================================================

    @property
    def CURRENT_ENV(self) -> str:
        return Config._current_env

    @property
    def IS_PROD(self) -> bool:
        return Config._current_env == 'production'

    @property
    def ENV(self) -> str:
        return Config._current_env

    # ==========================================================================
    # Application Settings
    # ==========================================================================

    @property
    def DEBUG(self) -> bool:
        """Flask debug mode."""
        env_val = _env_bool('FLASK_DEBUG')
        if env_val is not None:
            return env_val
        return self._get_yaml_value('app', 'debug', default=False)

    @property
    def PORT(self) -> int:
        env_val = os.getenv('PORT')
        if env_val:
            return int(env_val)
        return self._get_yaml_value('app', 'port', default=5000)

    @property
    def APP_NAME(self) -> str:
        return os.getenv('APP_NAME') or self._get_yaml_value('app', 'name', default='Gig Engine API')

    @property
    def APP_VERSION(self) -> str:
        return self._get_yaml_value('app', 'version', default='1.0.0')

    # ==========================================================================
    # Security Settings
    # ==========================================================================

    @property
    def JWT_SECRET(self) -> Optional[str]:
        """JWT secret key for token verification. Required in production."""
        return os.getenv('JWT_SECRET') or self._get_yaml_value('security', 'jwt', 'secret')

    @property
    def JWT_ALGORITHM(self) -> str:
        return os.getenv('JWT_ALGORITHM') or self._get_yaml_value('security', 'jwt', 'algorithm', default='HS256')

    @property
    def ACCESS_TOKEN_EXPIRE_MINUTES(self) -> int:
        env_val = os.getenv('ACCESS_TOKEN_MINUTES')
        if env_val:
            return int(env_val)
        return self._get_yaml_value('security', 'jwt', 'access_token_expire_minutes', default=10080)

    # ==========================================================================
    # Database Settings
    # ==========================================================================

    @property
    def MONGO_URI(self) -> str:
        return os.getenv('MONGO_URI') or self._get_yaml_value('database', 'mongo_uri', default='mongodb://localhost:27017')

    @property
    def MONGO_DB(self) -> str:
        return os.getenv('MONGO_DB') or self._get_yaml_value('database', 'name', default='gig_db')

    @property
    def MONGO_TRANSACTIONS(self) -> bool:
        """Use multi-document transactions (requires a replica set)."""
        env_val = _env_bool('MONGO_TRANSACTIONS')
        if env_val is not None:
            return env_val
        return self._get_yaml_value('database', 'transactions', default=False)

    @property
    def STORAGE_TIMEOUT_SECONDS(self) -> float:
        """Deadline applied to storage calls made by negotiation commands."""
        env_val = os.getenv('STORAGE_TIMEOUT_SECONDS')
        if env_val:
            return float(env_val)
        return float(self._get_yaml_value('storage', 'timeout_seconds', default=5))

    # ==========================================================================
    # CORS Settings
    # ==========================================================================

    @property
    def CORS_ORIGINS(self) -> str:
        return os.getenv('CORS_ORIGINS') or self._get_yaml_value('cors', 'origins', default='*')

    @property
    def CORS_ORIGINS_LIST(self) -> list:
        origins = self.CORS_ORIGINS
        if origins == '*':
            return ['*']
        return [o.strip() for o in origins.split(',') if o.strip()]

    # ==========================================================================
    # Logging Settings
    # ==========================================================================

    @property
    def LOG_LEVEL(self) -> str:
        env_val = os.getenv('LOG_LEVEL')
        if env_val:
            return env_val.upper()
        if self.LOG_DEBUG:
            return 'DEBUG'
        return self._get_yaml_value('logging', 'level', default='INFO')

    @property
    def LOG_DEBUG(self) -> bool:
        env_val = _env_bool('LOG_DEBUG')
        if env_val is not None:
            return env_val
        return self._get_yaml_value('logging', 'debug', default=False)

    @property
    def LOG_PATTERN(self) -> str:
        return os.getenv('LOG_PATTERN') or self._get_yaml_value('logging', 'pattern', default='%(message)s')

    @property
    def LOG_INCLUDE_DATETIME(self) -> bool:
        env_val = _env_bool('LOG_INCLUDE_DATETIME')
        if env_val is not None:
            return env_val
        return self._get_yaml_value('logging', 'include_datetime', default=True)

    @property
    def LOG_INCLUDE_NAME(self) -> bool:
        env_val = _env_bool('LOG_INCLUDE_NAME')
        if env_val is not None:
            return env_val
        return self._get_yaml_value('logging', 'include_name', default=True)

    @property
    def LOG_INCLUDE_LEVEL(self) -> bool:
        env_val = _env_bool('LOG_INCLUDE_LEVEL')
        if env_val is not None:
            return env_val
        return self._get_yaml_value('logging', 'include_level', default=True)

    @property
    def LOG_FORMAT(self) -> str:
        """Build log format string based on config options."""
        pattern = self.LOG_PATTERN
        if pattern and pattern != '%(message)s':
            return pattern

        parts = []
        if self.LOG_INCLUDE_DATETIME:
            parts.append('%(asctime)s')
        if self.LOG_INCLUDE_NAME:
            parts.append('%(name)s')
        if self.LOG_INCLUDE_LEVEL:
            parts.append('%(levelname)s')
        parts.append('%(message)s')

        return ' - '.join(parts) if len(parts) > 1 else parts[0]

    # ==========================================================================
    # Notification Settings
    # ==========================================================================

    @property
    def NOTIFICATION_ASYNC_DISPATCH(self) -> bool:
        """Dispatch notifications on the background pool instead of inline."""
        env_val = _env_bool('NOTIFICATION_ASYNC_DISPATCH')
        if env_val is not None:
            return env_val
        return self._get_yaml_value('notification', 'async_dispatch', default=True)

    @property
    def NOTIFICATION_WORKER_THREADS(self) -> int:
        env_val = os.getenv('NOTIFICATION_WORKER_THREADS')
        if env_val:
            return int(env_val)
        return self._get_yaml_value('notification', 'worker_threads', default=4)

    @property
    def NOTIFICATION_PUSH_ENABLED(self) -> bool:
        """Push created notifications to connected clients."""
        env_val = _env_bool('NOTIFICATION_PUSH_ENABLED')
        if env_val is not None:
            return env_val
        return self._get_yaml_value('notification', 'push_enabled', default=True)

    # ==========================================================================
    # Negotiation / Live channel
    # ==========================================================================

    @property
    def RESPONSE_MESSAGES_ENABLED(self) -> bool:
        """Post an automatic reply message when a request is accepted or rejected."""
        env_val = _env_bool('RESPONSE_MESSAGES_ENABLED')
        if env_val is not None:
            return env_val
        return self._get_yaml_value('negotiation', 'response_messages', default=True)

    @property
    def SOCKETIO_ASYNC_MODE(self) -> str:
        return os.getenv('SOCKETIO_ASYNC_MODE') or self._get_yaml_value('socketio', 'async_mode', default='threading')

    # ==========================================================================
    # Validation Methods
    # ==========================================================================

    def validate_required(self) -> None:
        """Validate that required configuration values are set.

        Raises RuntimeError if required values are missing in production.
        """
        errors = []

        if self.IS_PROD:
            if not self.JWT_SECRET:
                errors.append('JWT_SECRET environment variable is required in production')
            if not self.MONGO_URI or self.MONGO_URI == 'mongodb://localhost:27017':
                errors.append('MONGO_URI should be set to production database in production')
            if self.CORS_ORIGINS == '*':
                errors.append('CORS_ORIGINS should not be "*" in production')

        if errors:
            raise RuntimeError('Configuration errors:\n' + '\n'.join(f'  - {e}' for e in errors))

    def to_dict(self) -> Dict[str, Any]:
        """Export current configuration as dictionary (for debugging)."""
        return {
            'environment': self.CURRENT_ENV,
            'app': {
                'debug': self.DEBUG,
                'port': self.PORT,
                'name': self.APP_NAME,
                'version': self.APP_VERSION,
            },
            'security': {
                'jwt_algorithm': self.JWT_ALGORITHM,
                'jwt_secret_set': bool(self.JWT_SECRET),
            },
            'database': {
                'mongo_uri': '***' if self.MONGO_URI else None,
                'name': self.MONGO_DB,
                'transactions': self.MONGO_TRANSACTIONS,
                'timeout_seconds': self.STORAGE_TIMEOUT_SECONDS,
            },
            'cors': {'origins': self.CORS_ORIGINS},
            'logging': {'level': self.LOG_LEVEL},
            'notification': {
                'async_dispatch': self.NOTIFICATION_ASYNC_DISPATCH,
                'worker_threads': self.NOTIFICATION_WORKER_THREADS,
                'push_enabled': self.NOTIFICATION_PUSH_ENABLED,
            },
        }


# Singleton config instance
config = Config()
