"""Configuration package: settings, constants and database wiring."""

from unifarm.config.settings import ReferralMode, Settings, settings


__all__ = ["ReferralMode", "Settings", "settings"]
