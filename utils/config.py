"""
Configuration Management

Simple utility for loading and validating environment configuration.
"""

import logging
import os
from typing import Optional
from dotenv import load_dotenv

from config import Config

logger = logging.getLogger(__name__)


def load_config(env_path: Optional[str] = None) -> bool:
    """
    Load environment configuration from .env file.

    Config is re-read afterwards so LOG_LEVEL and the analytics settings
    from the file take effect.

    Args:
        env_path: Optional path to .env file. If None, searches in current directory.

    Returns:
        bool: True if .env file was found and loaded, False otherwise
    """
    loaded = load_dotenv(env_path) if env_path else load_dotenv()
    try:
        Config.reload()
    except ValueError as e:
        # reported by validate_config()
        logger.warning(f"Invalid analytics setting in environment: {e}")
    return loaded


def get_database_config() -> dict:
    """
    Get the PCP database configuration.

    Returns:
        dict: psycopg2 connection keyword arguments

    Raises:
        ValueError: If required configuration is missing
    """
    config = {
        "host": os.getenv("PCPDB_HOST"),
        "port": os.getenv("PCPDB_PORT", "5432"),
        "database": os.getenv("PCPDB_NAME"),
        "user": os.getenv("PCPDB_USER"),
        "password": os.getenv("PCPDB_PASS"),
    }

    # Validate
    missing = [k for k, v in config.items() if not v]
    if missing:
        raise ValueError(
            f"Missing PCP database configuration: {missing}. "
            f"Please check your .env file."
        )

    return config


def get_app_config() -> dict:
    """
    Get the analytics settings.

    Read at call time so that a .env loaded after import still applies.

    Returns:
        dict: timezone, snapshot_seed_fraction, fallback_capacity

    Raises:
        ValueError: If a numeric setting is not a number
    """
    return {
        "timezone": os.getenv("TIMEZONE", Config.TIMEZONE),
        "snapshot_seed_fraction": float(os.getenv("SNAPSHOT_SEED_FRACTION", Config.SNAPSHOT_SEED_FRACTION)),
        "fallback_capacity": float(os.getenv("FALLBACK_CAPACITY_PER_SHIFT", Config.FALLBACK_CAPACITY_PER_SHIFT)),
    }


def validate_config() -> list:
    """
    Validate all required configuration is present.

    The analytics settings checked are the ones get_app_config() hands to
    the engine.

    Returns:
        list: List of missing configuration items (empty if all valid)
    """
    missing = []

    try:
        get_database_config()
    except ValueError as e:
        missing.append(f"PCP: {str(e)}")

    # Check analytics settings
    try:
        app_config = get_app_config()
        Config.validate(
            seed_fraction=app_config["snapshot_seed_fraction"],
            fallback_capacity=app_config["fallback_capacity"],
        )
    except ValueError as e:
        missing.append(f"APP: {str(e)}")

    return missing
