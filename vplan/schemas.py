from __future__ import annotations
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def normalize_class_key(classes: List[str]) -> str:
    """Canonical stored form: trimmed, uppercased, deduplicated, sorted, comma-joined."""
    return ",".join(sorted({c.strip().upper() for c in classes if c and c.strip()}))


def split_class_key(key: str) -> List[str]:
    return [c.strip() for c in (key or "").split(",") if c.strip()]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    # JSON surfaces speak camelCase, Python code uses snake_case
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChangeRecord(CamelModel):
    classes: List[str]
    day: date
    weekday: str
    lesson: str = ""
    teacher: Optional[str] = None
    subject: Optional[str] = None
    original_subject: Optional[str] = None
    room: Optional[str] = None
    change_type: Optional[str] = None
    note: Optional[str] = None
    week_type: Optional[str] = None
    source_page: str
    color: Optional[str] = None
    cancelled: bool = False
    changed: bool = False
    created_at: datetime = Field(default_factory=_utcnow)

    @field_validator("classes")
    @classmethod
    def clean_classes(cls, v: List[str]) -> List[str]:
        return [c.strip().upper() for c in v if c and c.strip()]

    @property
    def class_key(self) -> str:
        return normalize_class_key(self.classes)


class FetchLogEntry(CamelModel):
    timestamp: datetime = Field(default_factory=_utcnow)
    success: bool
    error: Optional[str] = None
    pages_fetched: int = 0


class EntryQuery(BaseModel):
    day: Optional[date] = None
    class_substring: Optional[str] = None
    limit: int = 500
    offset: int = 0
    sort: Literal["asc", "desc"] = "asc"

    @field_validator("limit")
    @classmethod
    def default_limit(cls, v: int) -> int:
        return v if v > 0 else 500

    @field_validator("offset")
    @classmethod
    def clamp_offset(cls, v: int) -> int:
        return max(0, v)


class Stats(CamelModel):
    total_entries: int
    days_tracked: int
    avg_per_day: float


class IngestResult(CamelModel):
    entries: List[ChangeRecord]
    pages_fetched: int


# ── HTTP responses ────────────────────────────────────────────────────────────

class EntriesPage(CamelModel):
    entries: List[ChangeRecord]
    total: int
    limit: int
    offset: int


class ClassesResponse(BaseModel):
    classes: List[str]


class FetchLogResponse(BaseModel):
    log: List[FetchLogEntry]


class HealthResponse(CamelModel):
    ok: bool = True
    last_successful_fetch: Optional[datetime] = None
    age_hours: Optional[float] = None
    stale: bool
    max_pages: int


class ScrapeResponse(CamelModel):
    ok: bool = True
    parsed: int
    inserted: int
    pages_fetched: int
    duration_ms: int


class AlertRequest(BaseModel):
    message: str = "Manual alert trigger"
    severity: str = "info"
    component: str = "manual"
    extra: Dict[str, Any] = Field(default_factory=dict)


class AlertResponse(BaseModel):
    ok: bool = True
