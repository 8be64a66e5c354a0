"""
Configuration Management Module

Engine settings read from ``CREDIT_ENGINE_*`` environment variables or a
``.env`` file through pydantic-settings.
"""

from pydantic import Field
from pydantic_settings import BaseSettings
from typing import Optional


class CreditEngineConfig(BaseSettings):
    """Credit engine configuration"""

    # Calendar days tried when moving a due date past holidays before giving up
    max_date_resolution_iterations: int = Field(default=366, gt=0)

    # Percent of the total amount paid for a credit to qualify for a new loan.
    # Kept as text and parsed where used.
    reloan_paid_threshold_percent: str = "75"

    log_level: str = "INFO"
    log_format: str = Field(default="json", pattern="^(json|text)$")
    log_file: Optional[str] = None  # stderr when unset

    class Config:
        env_prefix = "CREDIT_ENGINE_"
        env_file = ".env"
        case_sensitive = False


config = CreditEngineConfig()


def get_config() -> CreditEngineConfig:
    """Current engine configuration"""
    return config


def reload_config() -> CreditEngineConfig:
    """Re-read configuration from the environment, e.g. after changing variables in tests"""
    global config
    config = CreditEngineConfig()
    return config
