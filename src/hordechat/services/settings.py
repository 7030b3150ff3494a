"""Settings dataclass and loading helpers."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping

from ..ai.ai_types import GenerationParams, JobOptions
from ..ai.client import ANONYMOUS_API_KEY, DEFAULT_BASE_URL, ClientSettings
from ..ai.orchestration.types import ChatBotConfig

__all__ = [
    "Settings",
    "SettingsStore",
    "load_settings",
    "redact_secret",
]

LOGGER = logging.getLogger(__name__)
_SETTINGS_DIR = Path.home() / ".hordechat"
_DEFAULT_SETTINGS_PATH = _SETTINGS_DIR / "settings.json"
_ENV_OVERRIDES: Mapping[str, str] = {
    "KOBOLD_KEY": "api_key",
    "CHATBOT_NAME": "name",
    "CHATBOT_PERSONA": "persona",
    "CHATBOT_HELLO": "hello",
    "DEMENTIA_COMMAND": "forget_command",
    "HORDECHAT_BASE_URL": "base_url",
}
_LIST_ENV_OVERRIDES: Mapping[str, str] = {
    "KOBOLD_MODELS": "allowed_models",
}
_BOOL_ENV_OVERRIDES: Mapping[str, str] = {
    "HORDECHAT_MENTION_ONLY": "mention_only",
    "HORDECHAT_DEBUG_LOGGING": "debug_logging",
}
_FLOAT_ENV_OVERRIDES: Mapping[str, str] = {
    "DEMENTIA_TIME": "memory_time_limit_minutes",
    "HORDECHAT_POLL_INTERVAL": "poll_interval",
    "HORDECHAT_REQUEST_TIMEOUT": "request_timeout",
}
_INT_ENV_OVERRIDES: Mapping[str, str] = {
    "HORDECHAT_MEMORY_LIMIT": "memory_space_limit",
}
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}


@dataclass(slots=True)
class Settings:
    """Chat bot settings gathered from a JSON file and the environment."""

    name: str = "Bot"
    persona: str | None = None
    hello: str | None = None
    api_key: str = ""
    base_url: str = DEFAULT_BASE_URL
    allowed_models: list[str] = field(default_factory=list)
    memory_time_limit_minutes: float | None = 10.0
    memory_space_limit: int | None = None
    mention_only: bool = False
    forget_command: str | None = None
    poll_interval: float = 1.5
    request_timeout: float = 30.0
    debug_logging: bool = False
    params: dict[str, Any] = field(default_factory=dict)

    def to_chatbot_config(self) -> ChatBotConfig:
        return ChatBotConfig(
            name=self.name,
            persona=self.persona or None,
            hello=self.hello or None,
            api_key=self.api_key or None,
            memory_time_limit_minutes=self.memory_time_limit_minutes,
            memory_space_limit=self.memory_space_limit,
            allowed_models=tuple(self.allowed_models),
            mention_only=self.mention_only,
        )

    def to_client_settings(self) -> ClientSettings:
        return ClientSettings(
            api_key=self.api_key or ANONYMOUS_API_KEY,
            base_url=self.base_url,
            request_timeout=self.request_timeout,
            poll_interval=self.poll_interval,
            debug_logging=self.debug_logging,
        )

    def to_job_options(self) -> JobOptions:
        """Return job options with the model allow-list and parameter overrides."""

        options = JobOptions(models=list(self.allowed_models))
        if not self.params:
            return options
        known = {item.name for item in fields(GenerationParams)}
        unknown = sorted(set(self.params) - known)
        if unknown:
            LOGGER.warning("Ignoring unknown generation parameters: %s", unknown)
        return options.with_params(**{k: v for k, v in self.params.items() if k in known})


class SettingsStore:
    """Loads :class:`Settings` from a JSON file plus overrides."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or _DEFAULT_SETTINGS_PATH

    @property
    def path(self) -> Path:
        return self._path

    def load(
        self,
        *,
        overrides: Mapping[str, Any] | None = None,
        env: Mapping[str, str] | None = None,
    ) -> Settings:
        """Load settings from disk, then apply CLI and environment overrides."""

        settings = Settings()
        payload = self._read_payload()
        if payload:
            try:
                settings = Settings(**_filter_fields(payload))
            except TypeError as exc:
                LOGGER.warning("Settings payload contained unexpected data: %s", exc)
                settings = Settings()
        settings = self._apply_env_overrides(settings, os.environ if env is None else env)
        if overrides:
            settings = self._apply_overrides(settings, overrides, source="CLI")
        LOGGER.debug(
            "Settings loaded from %s (name=%s, api_key=%s, models=%s)",
            self._path,
            settings.name,
            redact_secret(settings.api_key) or "(anonymous)",
            settings.allowed_models,
        )
        return settings

    def save(self, settings: Settings) -> Path:
        """Persist settings without the API key."""

        data = asdict(settings)
        data.pop("api_key", None)
        body = json.dumps(data, indent=2, sort_keys=True)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(self._path)
        return self._path

    def _read_payload(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        return payload if isinstance(payload, dict) else {}

    def _apply_overrides(
        self,
        settings: Settings,
        overrides: Mapping[str, Any],
        *,
        source: str = "runtime",
    ) -> Settings:
        allowed = {item.name for item in fields(Settings)}
        filtered = {
            key: value for key, value in overrides.items() if key in allowed and value is not None
        }
        if filtered:
            LOGGER.debug("Applying %s settings overrides: %s", source, sorted(filtered))
            settings = replace(settings, **filtered)
        return settings

    def _apply_env_overrides(self, settings: Settings, env: Mapping[str, str]) -> Settings:
        overrides: Dict[str, Any] = {}
        for env_name, field_name in _ENV_OVERRIDES.items():
            value = env.get(env_name)
            if value is not None:
                overrides[field_name] = value
        for env_name, field_name in _LIST_ENV_OVERRIDES.items():
            value = env.get(env_name)
            if value is not None:
                overrides[field_name] = [item.strip() for item in value.split(",") if item.strip()]
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
                LOGGER.warning(
                    "Environment override %s=%s is not a valid integer",
                    env_name,
                    value,
                )
        for env_name, field_name in _FLOAT_ENV_OVERRIDES.items():
            value = env.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = float(value)
            except ValueError:
                LOGGER.warning(
                    "Environment override %s=%s is not a valid float", env_name, value
                )
        if overrides:
            settings = self._apply_overrides(settings, overrides, source="environment")
        return settings


def load_settings(
    path: Path | str | None = None,
    *,
    overrides: Mapping[str, Any] | None = None,
    env: Mapping[str, str] | None = None,
) -> Settings:
    """Convenience wrapper around :meth:`SettingsStore.load`."""

    store = SettingsStore(Path(path).expanduser() if path else None)
    return store.load(overrides=overrides, env=env)


def _filter_fields(payload: Mapping[str, Any]) -> Dict[str, Any]:
    allowed = {item.name for item in fields(Settings)}
    return {key: value for key, value in payload.items() if key in allowed}


def redact_secret(value: str) -> str:
    stripped = (value or "").strip()
    if not stripped:
        return ""
    if len(stripped) <= 4:
        return "*" * len(stripped)
    return f"{stripped[:2]}{'*' * (len(stripped) - 4)}{stripped[-2:]}"
