"""Configuration loader for ldapauth."""

import json
import os
import logging
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from .models import Config
from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "LDAPAUTH_CONFIG"


def load_config(config_path: Optional[str] = None) -> Config:
    """
    Load configuration from JSON file.
    
    Args:
        config_path: Path to configuration file. If None, uses LDAPAUTH_CONFIG
                    environment variable, falling back to built-in defaults.
    
    Returns:
        Config: Loaded and validated configuration
        
    Raises:
        ConfigurationError: If the file is missing, is not valid JSON or
                            fails validation
    """
    # Determine config file path
    if config_path is None:
        config_path = os.getenv(CONFIG_ENV_VAR)
        if not config_path:
            logger.debug("No configuration file specified, using defaults")
            return Config()
    
    config_file = Path(config_path)
    if not config_file.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")
    
    logger.info(f"Loading configuration from: {config_path}")
    
    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            config_data = json.load(f)
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON in configuration file: {e}")
        raise ConfigurationError(f"Invalid JSON in configuration file: {e}") from e
    
    try:
        config = Config(**config_data)
    except (TypeError, ValidationError) as e:
        logger.error(f"Error loading configuration: {e}")
        raise ConfigurationError(f"Invalid configuration: {e}") from e
    
    logger.info("Configuration loaded successfully")
    logger.debug(f"SSL Enabled: {config.directory.use_ssl}")
    logger.debug(f"Workers: {config.dispatcher.max_workers}, max pending: {config.dispatcher.max_pending}")
    
    return config


def validate_config(config: Config) -> None:
    """
    Perform additional validation on configuration.
    
    Only logs warnings; nothing here is fatal.
    
    Args:
        config: Configuration to validate
    """
    if config.dispatcher.max_pending < config.dispatcher.max_workers:
        logger.warning(
            f"max_pending ({config.dispatcher.max_pending}) is below max_workers "
            f"({config.dispatcher.max_workers}); some workers will never be used"
        )
    
    if config.directory.ca_cert_file and not config.directory.use_ssl:
        logger.warning("CA certificate file configured but SSL is disabled")
    
    if config.directory.use_ssl and not config.directory.validate_certificate:
        logger.warning("SSL certificate validation disabled")
    
    if config.search.abort_on_bind_failure:
        logger.info("Searches will be aborted when the bind fails")
    
    logger.info("Configuration validation completed")
