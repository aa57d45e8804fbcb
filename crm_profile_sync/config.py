"""
Configuration loading and management for CRM Profile Sync.

This module handles loading configuration from YAML files and environment variables,
with validation and defaults.
"""

import os
import yaml
import logging
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing required fields."""
    pass


class ConfigLoader:
    """Handles loading and validation of application configuration."""

    # Environment variable mappings for sensitive fields
    ENV_OVERRIDES = {
        'crm.access_token': 'CRM_ACCESS_TOKEN',
        'forum.api_key': 'FORUM_API_KEY',
    }

    # Options that must be whole numbers >= 1
    POSITIVE_INT_FIELDS = ['page_size', 'burst_size', 'timeout_seconds']

    # Options that may be zero (no delay, no caching) but never negative
    NON_NEGATIVE_FIELDS = ['burst_delay_seconds', 'caching_timeout_minutes']

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize config loader.

        Args:
            config_path: Path to config file. If None, uses CONFIG_PATH env var or 'config.yaml'
        """
        self.config_path = config_path or os.getenv('CONFIG_PATH', 'config.yaml')
        self.config = {}

    def load(self) -> Dict[str, Any]:
        """
        Load configuration from file and apply environment overrides.

        Returns:
            Parsed and validated configuration dictionary

        Raises:
            ConfigurationError: If config file not found or validation fails
        """
        try:
            with open(self.config_path, 'r') as f:
                self.config = yaml.safe_load(f) or {}
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {self.config_path}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}")

        if not isinstance(self.config, dict):
            raise ConfigurationError(f"Configuration root must be a mapping: {self.config_path}")

        return self.load_dict(self.config)

    def load_dict(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate an already parsed configuration dictionary and apply defaults.

        Args:
            config: Raw configuration dictionary

        Returns:
            The same dictionary with overrides and defaults applied
        """
        self.config = config

        # Apply environment variable overrides
        self._apply_env_overrides()

        # Validate configuration
        self._validate()

        # Apply defaults
        self._apply_defaults()

        logger.info(f"Configuration loaded successfully from {self.config_path}")
        return self.config

    def _apply_env_overrides(self):
        """Apply environment variable overrides for sensitive fields."""
        for config_key, env_var in self.ENV_OVERRIDES.items():
            env_value = os.getenv(env_var)
            if env_value:
                self._set_nested_value(self.config, config_key, env_value)
                logger.debug(f"Applied environment override for {config_key}")

    def _set_nested_value(self, config: Dict, key_path: str, value: Any):
        """Set a nested configuration value using dot notation."""
        keys = key_path.split('.')
        current = config
        for key in keys[:-1]:
            if current.get(key) is None:
                current[key] = {}
            current = current[key]
        current[keys[-1]] = value

    def _validate(self):
        """Validate required configuration fields."""
        errors = []

        # Validate CRM configuration
        crm_config = self.config.get('crm') or {}
        for field in ['api_uri', 'access_token']:
            if not crm_config.get(field):
                errors.append(f"Missing required CRM field: {field}")

        for field in self.POSITIVE_INT_FIELDS:
            if field in crm_config:
                value = crm_config[field]
                if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                    errors.append(f"crm.{field} must be a positive integer, got {value!r}")

        for field in self.NON_NEGATIVE_FIELDS:
            if field in crm_config:
                value = crm_config[field]
                if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
                    errors.append(f"crm.{field} must be a non-negative number, got {value!r}")

        # Validate forum configuration
        forum_config = self.config.get('forum') or {}
        if not forum_config.get('base_uri'):
            errors.append("Missing required forum field: base_uri")

        # Validate error handling configuration
        error_config = self.config.get('error_handling') or {}
        max_retries = error_config.get('max_retries', 0)
        if isinstance(max_retries, bool) or not isinstance(max_retries, int) or max_retries < 0:
            errors.append(f"error_handling.max_retries must be a non-negative integer, got {max_retries!r}")

        if errors:
            raise ConfigurationError("Configuration validation failed:\n" + "\n".join(f"  - {error}" for error in errors))

    def _apply_defaults(self):
        """Apply default values for optional configuration fields."""
        # CRM defaults
        crm_defaults = {
            'profile_url_property_name': 'forums_member',
            'caching_timeout_minutes': 30,
            'page_size': 60,
            'burst_size': 50,
            'burst_delay_seconds': 10,
            'verify_ssl': True,
            'timeout_seconds': 30
        }
        crm_config = self.config.setdefault('crm', {})
        for key, value in crm_defaults.items():
            crm_config.setdefault(key, value)
        crm_config['api_uri'] = _with_trailing_slash(crm_config['api_uri'])

        # Forum defaults
        forum_defaults = {
            'user_lookup_path': 'api/v2/users',
            'verify_ssl': True,
            'timeout_seconds': 10
        }
        forum_config = self.config.setdefault('forum', {})
        for key, value in forum_defaults.items():
            forum_config.setdefault(key, value)
        forum_config['base_uri'] = _with_trailing_slash(forum_config['base_uri'])

        # Avatar defaults
        avatar_config = self.config.get('avatar') or {}
        avatar_config.setdefault('timeout_seconds', 5)
        self.config['avatar'] = avatar_config

        # Logging defaults
        logging_defaults = {
            'level': 'INFO',
            'log_dir': 'logs',
            'rotation': 'daily',
            'retention_days': 7
        }
        logging_config = self.config.get('logging') or {}
        for key, value in logging_defaults.items():
            logging_config.setdefault(key, value)
        self.config['logging'] = logging_config

        # Error handling defaults
        error_defaults = {
            'max_retries': 3,
            'retry_wait_seconds': 5
        }
        error_config = self.config.get('error_handling') or {}
        for key, value in error_defaults.items():
            error_config.setdefault(key, value)
        self.config['error_handling'] = error_config


def _with_trailing_slash(uri: str) -> str:
    return uri if uri.endswith('/') else uri + '/'


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Convenience function to load configuration.

    Args:
        config_path: Path to config file

    Returns:
        Loaded configuration dictionary
    """
    loader = ConfigLoader(config_path)
    return loader.load()
