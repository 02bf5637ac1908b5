"""Domain models for RoleSift."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone

OUTPUT_FIELDS: tuple[str, ...] = (
    "site",
    "title",
    "company",
    "location",
    "posted",
    "url",
    "job_id",
    "scraped_at",
)

STAGING_FIELDS: tuple[str, ...] = ("session_id", "keyword", *OUTPUT_FIELDS)


@dataclass(frozen=True)
class ListingRecord:
    """Immutable representation of one scraped job posting."""

    site: str
    url: str
    title: str = ""
    company: str = ""
    location: str = ""
    posted: str = ""
    job_id: str = ""
    scraped_at: str = ""

    def stage(self, session_id: str, keyword: str) -> StagedRole:
        return StagedRole(session_id=session_id, keyword=keyword, **asdict(self))


@dataclass(frozen=True)
class StagedRole:
    """A listing captured mid-pipeline, tagged with its session and keyword."""

    session_id: str
    keyword: str
    site: str
    url: str
    title: str = ""
    company: str = ""
    location: str = ""
    posted: str = ""
    job_id: str = ""
    scraped_at: str = ""

    def listing(self) -> ListingRecord:
        return ListingRecord(**{name: getattr(self, name) for name in OUTPUT_FIELDS})

    def staging_row(self) -> dict[str, str]:
        return {name: getattr(self, name) or "" for name in STAGING_FIELDS}

    def output_row(self) -> dict[str, str]:
        return {name: getattr(self, name) or "" for name in OUTPUT_FIELDS}


@dataclass(frozen=True)
class TitleEntry:
    """What the title stage gets to see. ``job_id`` holds the dedupe key."""

    title: str
    company: str
    location: str
    url: str
    job_id: str


@dataclass
class TitleFilterResult:
    removal_set: set[str] = field(default_factory=set)
    reasons: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class DetailPayload:
    title: str
    company: str
    location: str
    url: str
    description: str


@dataclass(frozen=True)
class DetailVerdict:
    accepted: bool
    reasoning: str = ""


@dataclass(frozen=True)
class RejectedJob:
    """One rejection, kept for the audit ledger."""

    site: str
    title: str
    url: str
    reason: str
    stage: str  # title, detail
    scraped_at: str = ""
    description: str = "N/A"


@dataclass
class RunMetrics:
    """Aggregated counters for one site run."""

    site: str
    session_id: str = ""
    resumed: bool = False
    started_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    ended_at: str = ""
    outcome: str = ""
    scraped: int = 0
    staged: int = 0
    title_rejected: int = 0
    detail_rejected: int = 0
    detail_failed: int = 0
    accepted: int = 0

    def finalize(self, outcome: str) -> None:
        self.outcome = outcome
        self.ended_at = datetime.now(timezone.utc).isoformat()

    def as_dict(self) -> dict[str, object]:
        return asdict(self)
