"""Shared test fixtures."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

import pytest
import yaml

from rolesift.events import RecordingEventSink
from rolesift.settings import AppSettings, ModelSpec, SiteSettings

TITLE_PROMPT = "Flag irrelevant titles."
DETAIL_PROMPT = "Accept or reject this job."
RUN_DATE = "2026-10-15"
DAY_FOLDER = "10_15_2026"
HOST = "jobs.example.com"


class FakeGateway:
    """Scripted stand-in for ``ModelGateway``.

    ``title`` receives the decoded batch (list of dicts), ``detail`` the raw
    user message. Either may raise to simulate a failed attempt.
    """

    def __init__(
        self,
        title: Callable[[list[dict[str, Any]]], dict[str, Any]] | None = None,
        detail: Callable[[str], dict[str, Any]] | None = None,
    ) -> None:
        self.title = title or (lambda batch: {"remove": []})
        self.detail = detail or (lambda user: {"accepted": True, "reasoning": "Good fit."})
        self.calls: list[tuple[ModelSpec, str, str]] = []

    async def complete_json(self, spec: ModelSpec, system: str, user: str) -> dict[str, Any]:
        self.calls.append((spec, system, user))
        if system == TITLE_PROMPT:
            return self.title(json.loads(user))
        return self.detail(user)

    def title_calls(self) -> list[tuple[ModelSpec, str, str]]:
        return [c for c in self.calls if c[1] == TITLE_PROMPT]

    def detail_calls(self) -> list[tuple[ModelSpec, str, str]]:
        return [c for c in self.calls if c[1] != TITLE_PROMPT]

    def titled_ids(self) -> list[str]:
        return [entry["job_id"] for _, _, user in self.title_calls() for entry in json.loads(user)]


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def listing(job_id: str, title: str = "", **extra: Any) -> dict[str, Any]:
    item = {
        "title": title or f"Role {job_id}",
        "company": "Acme",
        "location": "Remote",
        "posted": "Today",
        "url": f"https://{HOST}/view/{job_id}",
        "job_id": job_id,
        "description": f"Full description for role {job_id}, long enough to evaluate.",
    }
    item.update(extra)
    return item


@pytest.fixture()
def sink() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture()
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture()
def write_fixture(tmp_path) -> Callable[[dict[str, Any]], Path]:
    """Write a fixture-source file and return its path."""

    def _write(data: dict[str, Any]) -> Path:
        path = tmp_path / "fixture_listings.yaml"
        path.write_text(yaml.safe_dump(data))
        return path

    return _write


@pytest.fixture()
def make_settings(tmp_path) -> Callable[..., AppSettings]:
    """Build settings for a single fixture-backed site rooted in tmp_path."""

    def _make(fixture_path: Path, keywords: list[str] | None = None, site: dict[str, Any] | None = None, **overrides: Any) -> AppSettings:
        site_cfg: dict[str, Any] = {
            "key": "demo",
            "host": HOST,
            "source": "fixture",
            "keywords": keywords if keywords is not None else ["python developer"],
            "min_description_chars": 0,
            "description_attempts": 1,
            "options": {"path": str(fixture_path)},
        }
        site_cfg.update(site or {})
        ai_cfg: dict[str, Any] = {
            "title_models": ["gpt-4o-mini", "gemini:gemini-1.5-flash"],
            "detail_models": ["gpt-4o-mini", "gpt-4o", "gemini:gemini-1.5-pro"],
            "title_prompt": TITLE_PROMPT,
            "detail_prompt": DETAIL_PROMPT,
            "retry_delay_seconds": 0,
        }
        ai_cfg.update(overrides.pop("ai", {}))
        values: dict[str, Any] = {
            "output_root": str(tmp_path / "data"),
            "run_date": RUN_DATE,
            "batch_pause_seconds": 0,
            "ai": ai_cfg,
            "sites": [SiteSettings(**site_cfg)],
        }
        values.update(overrides)
        return AppSettings(**values)

    return _make


@pytest.fixture()
def day_dir(tmp_path) -> Path:
    return tmp_path / "data" / HOST / DAY_FOLDER


@pytest.fixture()
def tmp_settings_yaml(tmp_path):
    """Write a minimal settings.yaml and return its path."""
    content = """\
output_root: "{root}"
timezone: "America/Chicago"
keyword_batch_size: 3
ai:
  api_key: "sk-test"
  title_models:
    - "gpt-4o-mini"
    - "gemini:gemini-1.5-flash"
  detail_models:
    - "gpt-4o"
  title_prompt:
    - "Line one."
    - "Line two."
  detail_prompt: "Judge the job."
sites:
  - key: "Demo"
    host: "jobs.example.com"
    keywords:
      - "python"
    options:
      path: "fixture.yaml"
""".format(root=str(tmp_path / "data"))
    p = tmp_path / "settings.yaml"
    p.write_text(content)
    return p
