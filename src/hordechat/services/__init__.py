"""Service layer helpers (settings)."""

from .settings import Settings, SettingsStore, load_settings, redact_secret

__all__ = ["Settings", "SettingsStore", "load_settings", "redact_secret"]
