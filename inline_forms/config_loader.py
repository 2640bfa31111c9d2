"""
Configuration loading utilities for inline record forms.

This module provides functionality to load and validate application
configuration including record kind definitions with fallback to defaults.
"""

import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging
from copy import deepcopy

logger = logging.getLogger(__name__)

VALID_MATCH_OPERATORS = ('STARTS_WITH', 'CONTAINS')

DEFAULT_LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s: %(message)s'


def deep_merge(base_dict: Dict[str, Any], update_dict: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep merge two dictionaries, with update_dict taking precedence.

    Args:
        base_dict: Base dictionary (defaults)
        update_dict: Dictionary to merge in (user config)

    Returns:
        Merged dictionary
    """
    result = deepcopy(base_dict)

    for key, value in update_dict.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = deepcopy(value)

    return result


def get_default_config() -> Dict[str, Any]:
    """
    Get default configuration.

    Returns:
        Dictionary with default configuration
    """
    return {
        'app': {
            'name': 'Inline Record Forms',
            'version': '1.0.0',
            'debug': False
        },
        'logging': {
            'level': 'INFO',
            'format': DEFAULT_LOG_FORMAT
        },
        'identity': {
            'detect_collisions': True
        },
        'widget': {
            'weight_delta_min': 50,
            'match_operator': 'CONTAINS'
        },
        'record_kinds': {}
    }


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load application configuration.

    Args:
        config_path: Optional path to config file (defaults to config.yaml)

    Returns:
        Complete configuration dictionary
    """
    if config_path is None:
        config_path = Path("config.yaml")
    config_path = Path(config_path)

    default_config = get_default_config()

    if not config_path.exists():
        logger.warning(f"Configuration file not found: {config_path}")
        logger.info("Using default configuration")
        return default_config

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            user_config = yaml.safe_load(f)

        if user_config is None:
            logger.warning(f"Configuration file is empty: {config_path}")
            return default_config

        if not isinstance(user_config, dict):
            logger.error(f"Configuration file is not a valid dictionary: {config_path}")
            logger.info("Using default configuration")
            return default_config

        config = deep_merge(default_config, user_config)

        logger.info(f"Successfully loaded configuration from {config_path}")
        return config

    except yaml.YAMLError as e:
        logger.error(f"YAML parsing error in {config_path}: {e}")
        logger.info("Using default configuration")
        return default_config

    except (IOError, OSError) as e:
        logger.error(f"Failed to read configuration file {config_path}: {e}")
        logger.info("Using default configuration")
        return default_config


def validate_config(config: Dict[str, Any]) -> bool:
    """
    Validate configuration structure and required fields.

    Args:
        config: Configuration dictionary to validate

    Returns:
        True if configuration is valid, False otherwise
    """
    required_sections = ['app', 'logging', 'identity', 'widget', 'record_kinds']

    for section in required_sections:
        if section not in config:
            logger.warning(f"Missing required configuration section: {section}")
            return False

    app = config.get('app', {})
    if 'name' not in app or 'version' not in app:
        logger.warning("Missing required app configuration (name or version)")
        return False

    widget = config.get('widget', {})
    if 'weight_delta_min' in widget:
        try:
            delta = int(widget['weight_delta_min'])
            if delta <= 0:
                logger.warning("weight_delta_min must be positive")
                return False
        except (ValueError, TypeError):
            logger.warning("weight_delta_min must be a valid integer")
            return False

    if widget.get('match_operator', 'CONTAINS') not in VALID_MATCH_OPERATORS:
        logger.warning(f"match_operator must be one of {VALID_MATCH_OPERATORS}")
        return False

    record_kinds = config.get('record_kinds') or {}
    if not isinstance(record_kinds, dict):
        logger.warning("record_kinds must be a mapping")
        return False

    for kind, definition in record_kinds.items():
        if not isinstance(definition, dict):
            logger.warning(f"Record kind '{kind}' must be a mapping")
            return False
        bundles = definition.get('bundles') or {}
        if not isinstance(bundles, dict) or not bundles:
            logger.warning(f"Record kind '{kind}' must define at least one bundle")
            return False
        for bundle, schema in bundles.items():
            if not isinstance(schema, dict) or 'fields' not in schema:
                logger.warning(f"Bundle '{kind}.{bundle}' must contain 'fields'")
                return False

    return True


def get_config_value(config: Dict[str, Any], section: str, key: str, default: Any = None) -> Any:
    """
    Get a specific configuration value.

    Args:
        config: Configuration dictionary
        section: Configuration section (e.g., 'widget', 'logging')
        key: Configuration key within section
        default: Default value if not found

    Returns:
        Configuration value or default
    """
    return (config.get(section) or {}).get(key, default)


def get_config_summary(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Get a summary of the current configuration.

    Args:
        config: Configuration dictionary

    Returns:
        Dictionary with configuration summary
    """
    record_kinds = config.get('record_kinds') or {}
    return {
        'app_name': config.get('app', {}).get('name', 'Unknown'),
        'app_version': config.get('app', {}).get('version', 'Unknown'),
        'logging_level': get_config_value(config, 'logging', 'level', 'INFO'),
        'detect_collisions': get_config_value(config, 'identity', 'detect_collisions', True),
        'record_kinds': sorted(record_kinds),
        'bundle_count': sum(len((kind or {}).get('bundles') or {}) for kind in record_kinds.values())
    }


def get_logging_level(level_str: str) -> int:
    """Map string logging level to logging constant."""
    level_map = {
        'DEBUG': logging.DEBUG,
        'INFO': logging.INFO,
        'WARNING': logging.WARNING,
        'ERROR': logging.ERROR,
        'CRITICAL': logging.CRITICAL
    }
    return level_map.get(str(level_str).upper(), logging.INFO)


def configure_logging(config: Dict[str, Any]) -> int:
    """
    Configure root logging from the logging section.

    Returns:
        The numeric level that was applied
    """
    level_str = get_config_value(config, 'logging', 'level', 'INFO')
    log_format = get_config_value(config, 'logging', 'format', DEFAULT_LOG_FORMAT)
    level = get_logging_level(level_str)
    logging.basicConfig(level=level, format=log_format)
    logger.info(f"Logging configured to level: {level_str}")
    return level
