"""
Configuration Management
Loads application and analytics settings from environment variables.
Database credentials are read by utils.config.get_database_config().
"""
import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    """Application configuration"""

    # Application Settings
    TIMEZONE = os.getenv("TIMEZONE", "America/Sao_Paulo")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Analytics Settings
    SNAPSHOT_SEED_FRACTION = float(os.getenv("SNAPSHOT_SEED_FRACTION", 0.15))
    FALLBACK_CAPACITY_PER_SHIFT = float(os.getenv("FALLBACK_CAPACITY_PER_SHIFT", 7200))

    @classmethod
    def reload(cls):
        """Re-read settings after another .env file has been loaded"""
        cls.TIMEZONE = os.getenv("TIMEZONE", cls.TIMEZONE)
        cls.LOG_LEVEL = os.getenv("LOG_LEVEL", cls.LOG_LEVEL)
        cls.SNAPSHOT_SEED_FRACTION = float(os.getenv("SNAPSHOT_SEED_FRACTION", cls.SNAPSHOT_SEED_FRACTION))
        cls.FALLBACK_CAPACITY_PER_SHIFT = float(
            os.getenv("FALLBACK_CAPACITY_PER_SHIFT", cls.FALLBACK_CAPACITY_PER_SHIFT)
        )

    @classmethod
    def validate(cls, seed_fraction=None, fallback_capacity=None):
        """Validate analytics settings (class attributes unless values are given)"""
        seed_fraction = cls.SNAPSHOT_SEED_FRACTION if seed_fraction is None else seed_fraction
        fallback_capacity = cls.FALLBACK_CAPACITY_PER_SHIFT if fallback_capacity is None else fallback_capacity

        if not 0 <= seed_fraction <= 1:
            raise ValueError(
                f"SNAPSHOT_SEED_FRACTION must be between 0 and 1, got {seed_fraction}"
            )

        if fallback_capacity <= 0:
            raise ValueError(
                f"FALLBACK_CAPACITY_PER_SHIFT must be positive, got {fallback_capacity}"
            )

        return True
