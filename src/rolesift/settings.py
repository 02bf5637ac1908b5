"""Pydantic-based settings loaded from YAML with env-var overrides."""

from __future__ import annotations

import os
from datetime import date
from pathlib import Path
from typing import Any, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings

from rolesift.exceptions import ConfigurationError

_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_PREFIX = "ROLESIFT_"

Provider = Literal["openai", "gemini"]
_PROVIDERS: frozenset[str] = frozenset({"openai", "gemini"})


def _join_prompt(v: Any) -> str:
    if v is None:
        return ""
    if isinstance(v, (list, tuple)):
        return " ".join(str(part).strip() for part in v if str(part).strip())
    return str(v).strip()


class ModelSpec(BaseModel):
    """A model name tagged with the provider that serves it.

    Accepts ``"gemini:gemini-1.5-flash"``, a bare ``"gpt-4o-mini"`` (OpenAI),
    or a ``{provider, model}`` mapping.
    """

    model_config = {"frozen": True}

    provider: Provider = "openai"
    model: str

    @model_validator(mode="before")
    @classmethod
    def _parse_string(cls, v: Any) -> Any:
        if not isinstance(v, str):
            return v
        prefix, sep, rest = v.partition(":")
        if sep and prefix.strip().lower() in _PROVIDERS:
            return {"provider": prefix.strip().lower(), "model": rest.strip()}
        return {"provider": "openai", "model": v.strip()}

    @field_validator("model")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("model name must not be empty")
        return v.strip()

    def __str__(self) -> str:
        return f"{self.provider}:{self.model}"


class AISettings(BaseModel):
    # --- credentials ---
    api_key: str = ""
    base_url: str = ""  # OpenAI-compatible endpoint; empty = api.openai.com
    gemini_api_key: str = ""

    # --- model chains (first entry is the primary) ---
    title_models: list[ModelSpec] = Field(default_factory=list)
    detail_models: list[ModelSpec] = Field(default_factory=list)

    # --- retry / batching ---
    title_batch_size: int = 20
    title_max_attempts: int = 2
    detail_max_attempts: int = 3
    retry_delay_seconds: float = 2.0
    request_timeout_seconds: float = 60.0
    title_failure_policy: Literal["pass_through", "abort"] = "pass_through"

    # --- prompts ---
    title_prompt: str = ""
    detail_prompt: str = ""

    @field_validator("title_prompt", "detail_prompt", mode="before")
    @classmethod
    def _join_prompts(cls, v: Any) -> str:
        return _join_prompt(v)


class SiteSettings(BaseModel):
    """One job board. ``source`` / ``extractor`` name registered collaborators."""

    key: str
    host: str
    source: str = "fixture"
    extractor: str = ""  # defaults to the source kind
    keywords: list[str] = Field(default_factory=list)
    disallow_patterns: list[str] = Field(default_factory=list)
    description_selector: str = ""
    detail_prompt: str = ""  # overrides ai.detail_prompt for this site
    min_description_chars: int = 200
    description_attempts: int = 2
    options: dict[str, Any] = Field(default_factory=dict)

    @field_validator("detail_prompt", mode="before")
    @classmethod
    def _join_prompts(cls, v: Any) -> str:
        return _join_prompt(v)

    @field_validator("key")
    @classmethod
    def _normalise_key(cls, v: str) -> str:
        return v.strip().lower()

    @property
    def extractor_kind(self) -> str:
        return self.extractor or self.source


class AppSettings(BaseSettings):
    """Application configuration with YAML + env var support.

    Env vars are prefixed with ``ROLESIFT_`` and use ``__`` for nesting.
    Example: ``ROLESIFT_AI__API_KEY=sk-...``
    """

    model_config = {"env_prefix": _ENV_PREFIX, "env_nested_delimiter": "__"}

    # --- paths / time ---
    output_root: str = "data"
    timezone: str = "America/New_York"
    run_date: str = ""  # YYYY-MM-DD; enables backfill mode
    schedule_cron: str = "0 * * * *"  # used by --schedule

    # --- scraping ---
    keyword_batch_size: int = 5
    batch_pause_seconds: float = 30.0
    headless: bool = True
    user_data_dir: str = ""
    navigation_timeout_ms: int = 60_000

    ai: AISettings = Field(default_factory=AISettings)
    sites: list[SiteSettings] = Field(default_factory=list)

    @field_validator("timezone")
    @classmethod
    def _valid_zone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown time zone {v!r}") from exc
        return v

    @field_validator("run_date")
    @classmethod
    def _valid_run_date(cls, v: str) -> str:
        v = v.strip()
        if v:
            date.fromisoformat(v)
        return v

    # ---- lookups ----

    def site(self, key: str) -> SiteSettings:
        wanted = key.strip().lower()
        for site in self.sites:
            if site.key == wanted:
                return site
        raise ConfigurationError(f"Site config for key {key!r} was not found.")

    def detail_prompt_for(self, site: SiteSettings) -> str:
        return site.detail_prompt or self.ai.detail_prompt

    def validate_for_site(self, site: SiteSettings) -> None:
        """Fail fast on anything that would let a run silently degrade."""
        problems: list[str] = []
        if not self.ai.title_models:
            problems.append("ai.title_models is empty")
        if not self.ai.detail_models:
            problems.append("ai.detail_models is empty")
        if not self.ai.title_prompt:
            problems.append("ai.title_prompt is not configured")
        if not self.detail_prompt_for(site):
            problems.append(f"no detail prompt for site {site.key!r}")
        for name in ("title_batch_size", "title_max_attempts", "detail_max_attempts"):
            if getattr(self.ai, name) <= 0:
                problems.append(f"ai.{name} must be positive")
        if self.ai.retry_delay_seconds < 0:
            problems.append("ai.retry_delay_seconds must not be negative")
        if self.keyword_batch_size <= 0:
            problems.append("keyword_batch_size must be positive")
        if problems:
            raise ConfigurationError("; ".join(problems))

    # ---- factory ----

    @classmethod
    def from_yaml(cls, path: str | Path | None = None) -> "AppSettings":
        """Load settings from a YAML file, then overlay env vars.

        Env vars (``ROLESIFT_*``) take priority over YAML values.
        """
        if path is None:
            path = _PROJECT_ROOT / "settings.yaml"
        path = Path(path)
        raw: dict[str, Any] = {}
        if path.exists():
            with open(path) as fh:
                raw = yaml.safe_load(fh) or {}

        _drop_env_overridden(raw)
        return cls(**raw)


def _drop_env_overridden(raw: dict[str, Any]) -> None:
    """Remove YAML keys (top level or one section deep) that have an env override."""
    for key in list(raw.keys()):
        env_key = f"{_ENV_PREFIX}{key.upper()}"
        if env_key in os.environ:
            del raw[key]
            continue
        section = raw[key]
        if isinstance(section, dict):
            for sub in list(section.keys()):
                if f"{env_key}__{str(sub).upper()}" in os.environ:
                    del section[sub]
