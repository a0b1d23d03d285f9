"""Configuration loading and settings management."""

from .settings import REQUIRED_ENV_VARS, SECOND_FACTOR_MODES, SINGLE_SESSION_POLICIES, Settings, load_settings

__all__ = ["REQUIRED_ENV_VARS", "SECOND_FACTOR_MODES", "SINGLE_SESSION_POLICIES", "Settings", "load_settings"]
