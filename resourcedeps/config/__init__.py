"""Configuration for resourcedeps"""

from resourcedeps.config.settings import Settings, SettingsManager, load_settings, resourcedeps_home

__all__ = ["Settings", "SettingsManager", "load_settings", "resourcedeps_home"]
