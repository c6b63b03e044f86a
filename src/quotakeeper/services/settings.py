"""Settings dataclasses and loading helpers."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping

from ..ai.client import ClientSettings
from ..ai.language_model import LanguageModelExOptions

__all__ = [
    "AgentSettings",
    "QuotaSettings",
    "Settings",
    "default_settings_path",
    "load_settings",
    "redact_secret",
]

LOGGER = logging.getLogger(__name__)
_SETTINGS_DIR = Path.home() / ".quotakeeper"
_DEFAULT_SETTINGS_PATH = _SETTINGS_DIR / "settings.json"
_PATH_ENV = "QUOTAKEEPER_SETTINGS"
_ENV_OVERRIDES: Mapping[str, str] = {
    "QUOTAKEEPER_API_KEY": "api_key",
    "QUOTAKEEPER_BASE_URL": "base_url",
    "QUOTAKEEPER_MODEL": "model",
    "QUOTAKEEPER_ORGANIZATION": "organization",
}
_BOOL_ENV_OVERRIDES: Mapping[str, str] = {
    "QUOTAKEEPER_DEBUG_LOGGING": "debug_logging",
}
_FLOAT_ENV_OVERRIDES: Mapping[str, str] = {
    "QUOTAKEEPER_REQUEST_TIMEOUT": "request_timeout",
    "QUOTAKEEPER_TEMPERATURE": "temperature",
}
_INT_ENV_OVERRIDES: Mapping[str, str] = {
    "QUOTAKEEPER_MAX_RETRIES": "max_retries",
    "QUOTAKEEPER_MAX_CONTEXT_TOKENS": "max_context_tokens",
    "QUOTAKEEPER_RESPONSE_TOKEN_RESERVE": "response_token_reserve",
}
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}


@dataclass(slots=True)
class QuotaSettings:
    """Defaults for quota-bounded conversations."""

    max_quota_usage: float = 0.75
    context_handler: str = "summarize"
    history_handler: str = "preserve"

    def to_options(self) -> LanguageModelExOptions:
        return LanguageModelExOptions(
            max_quota_usage=self.max_quota_usage,
            context_handler=self.context_handler,
            history_handler=self.history_handler,
        ).normalized()


@dataclass(slots=True)
class AgentSettings:
    """Defaults applied to agent runs."""

    max_iterations: int = 5
    tools_format: str = "snippet"
    max_quota_usage: float = 0.70
    context_handler: str = "summarize"
    history_handler: str = "clear"

    def to_options(self) -> LanguageModelExOptions:
        return LanguageModelExOptions(
            max_quota_usage=self.max_quota_usage,
            context_handler=self.context_handler,
            history_handler=self.history_handler,
        ).normalized()


@dataclass(slots=True)
class Settings:
    """User-configurable settings."""

    base_url: str = "https://api.openai.com/v1"
    api_key: str = ""
    model: str = "gpt-4o-mini"
    temperature: float = 0.2
    organization: str | None = None
    request_timeout: float = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    max_context_tokens: int = 128_000
    response_token_reserve: int = 16_000
    default_headers: dict[str, str] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)
    debug_logging: bool = False
    quota: QuotaSettings = field(default_factory=QuotaSettings)
    agent: AgentSettings = field(default_factory=AgentSettings)

    @property
    def input_quota(self) -> int:
        """Tokens available for prompts once the response reserve is set aside."""

        return max(1, self.max_context_tokens - max(0, self.response_token_reserve))

    def client_settings(self) -> ClientSettings:
        return ClientSettings(
            base_url=self.base_url,
            api_key=self.api_key,
            model=self.model,
            organization=self.organization,
            request_timeout=self.request_timeout,
            max_retries=self.max_retries,
            retry_min_seconds=self.retry_min_seconds,
            retry_max_seconds=self.retry_max_seconds,
            default_headers=dict(self.default_headers) or None,
            metadata={str(key): str(value) for key, value in self.metadata.items()} or None,
            debug_logging=self.debug_logging,
        )


def default_settings_path() -> Path:
    override = os.environ.get(_PATH_ENV)
    return Path(override).expanduser() if override else _DEFAULT_SETTINGS_PATH


def load_settings(
    path: Path | str | None = None,
    *,
    overrides: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Build :class:`Settings` from an optional JSON file, explicit overrides and the environment.

    Later sources win: file, then *overrides*, then ``QUOTAKEEPER_*`` variables.
    """

    env = os.environ if environ is None else environ
    target = Path(path).expanduser() if path is not None else default_settings_path()
    settings = _from_payload(_read_payload(target))
    if overrides:
        settings = _apply_overrides(settings, overrides, source="runtime")
    return _apply_env_overrides(settings, env)


def _read_payload(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        LOGGER.warning("Settings file %s is not valid JSON: %s", path, exc)
        return {}
    if not isinstance(payload, dict):
        LOGGER.warning("Settings file %s does not contain an object", path)
        return {}
    LOGGER.debug("Settings loaded from %s", path)
    return payload


def _from_payload(payload: Mapping[str, Any]) -> Settings:
    if not payload:
        return Settings()
    allowed = {item.name for item in fields(Settings)}
    data = {key: value for key, value in payload.items() if key in allowed}
    quota_payload = data.get("quota")
    if isinstance(quota_payload, Mapping):
        try:
            data["quota"] = QuotaSettings(**quota_payload)
        except TypeError:
            LOGGER.warning("Ignoring malformed quota settings: %s", quota_payload)
            data["quota"] = QuotaSettings()
    agent_payload = data.get("agent")
    if isinstance(agent_payload, Mapping):
        try:
            data["agent"] = AgentSettings(**agent_payload)
        except TypeError:
            LOGGER.warning("Ignoring malformed agent settings: %s", agent_payload)
            data["agent"] = AgentSettings()
    try:
        return Settings(**data)
    except TypeError as exc:
        LOGGER.warning("Settings payload contained unexpected data: %s", exc)
        return Settings()


def _apply_overrides(settings: Settings, overrides: Mapping[str, Any], *, source: str) -> Settings:
    allowed = {item.name for item in fields(Settings)}
    filtered = {key: value for key, value in overrides.items() if key in allowed and value is not None}
    metadata_override = filtered.get("metadata")
    if isinstance(metadata_override, Mapping):
        merged = dict(settings.metadata)
        merged.update(metadata_override)
        filtered["metadata"] = merged
    if filtered:
        LOGGER.debug("Applying %s settings overrides: %s", source, sorted(filtered))
        settings = replace(settings, **filtered)
    return settings


def _apply_env_overrides(settings: Settings, env: Mapping[str, str]) -> Settings:
    overrides: Dict[str, Any] = {}
    for env_name, field_name in _ENV_OVERRIDES.items():
        value = env.get(env_name)
        if value is not None:
            overrides[field_name] = value
    for env_name, field_name in _BOOL_ENV_OVERRIDES.items():
        value = env.get(env_name)
        if value is not None:
            overrides[field_name] = value.strip().lower() in _TRUE_VALUES
    for env_name, field_name in _INT_ENV_OVERRIDES.items():
        value = env.get(env_name)
        if value is None:
            continue
        try:
            overrides[field_name] = int(value, 10)
        except ValueError:
            LOGGER.warning("Environment override %s=%s is not a valid integer", env_name, value)
    for env_name, field_name in _FLOAT_ENV_OVERRIDES.items():
        value = env.get(env_name)
        if value is None:
            continue
        try:
            overrides[field_name] = float(value)
        except ValueError:
            LOGGER.warning("Environment override %s=%s is not a valid float", env_name, value)
    if overrides:
        settings = _apply_overrides(settings, overrides, source="environment")
    return settings


def redact_secret(value: str) -> str:
    stripped = (value or "").strip()
    if not stripped:
        return ""
    if len(stripped) <= 4:
        return "*" * len(stripped)
    return f"{stripped[:2]}{'*' * (len(stripped) - 4)}{stripped[-2:]}"
