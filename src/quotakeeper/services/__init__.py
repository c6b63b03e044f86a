"""Service layer helpers (settings)."""

from .settings import AgentSettings, QuotaSettings, Settings, load_settings

__all__ = ["AgentSettings", "QuotaSettings", "Settings", "load_settings"]
