# Vaultsearch – Hybrid search and reranking for knowledge bases
# Copyright (c) 2026 4rce.com Digital Technologies GmbH.
# Use of this software is governed by the Business Source License 1.1. See LICENSE.md.

"""
Core data model: documents, search options, results, saved searches,
history and cache entries.

Results and options are frozen. Pipeline stages derive new results with
dataclasses.replace() instead of mutating, so cached lists can be handed
out repeatedly.
"""
import uuid
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Literal, Optional

SearchType = Literal["semantic", "keyword", "hybrid", "ai_enhanced"]
SortBy = Literal["relevance", "date", "title", "size"]
SortOrder = Literal["asc", "desc"]
Origin = Literal["file", "node", "external"]

SEARCH_TYPES: tuple[str, ...] = ("semantic", "keyword", "hybrid", "ai_enhanced")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so they compare with aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_timestamp(value: str | datetime | None) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    return as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


def normalize_extension(ext: str) -> str:
    return ext.strip().lower().lstrip(".")


# ── Corpus ───────────────────────────────────────────


@dataclass(frozen=True)
class DocumentRef:
    """A corpus document before its content is read."""
    path: str
    extension: str
    created_at: datetime
    modified_at: datetime
    size: int = 0

    @property
    def stem(self) -> str:
        name = self.path.rsplit("/", 1)[-1]
        return name.rsplit(".", 1)[0] if "." in name else name


@dataclass(frozen=True)
class CorpusDocument:
    ref: DocumentRef
    content: str
    tags: tuple[str, ...] = ()

    @property
    def path(self) -> str:
        return self.ref.path


# ── Results ──────────────────────────────────────────


@dataclass(frozen=True)
class ResultMetadata:
    source: str
    path: Optional[str] = None
    tags: tuple[str, ...] = ()
    created: Optional[str] = None
    modified: Optional[str] = None
    word_count: Optional[int] = None
    highlights: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "source": self.source,
            "path": self.path,
            "tags": list(self.tags),
            "created": self.created,
            "modified": self.modified,
            "word_count": self.word_count,
            "highlights": list(self.highlights),
        }


@dataclass(frozen=True)
class SearchResult:
    id: str
    title: str
    content: str
    origin: Origin
    score: float
    metadata: ResultMetadata
    full_text: str = ""
    document: Optional[DocumentRef] = None
    rerank_score: Optional[float] = None
    final_score: Optional[float] = None

    @property
    def ranking_score(self) -> float:
        """The finalized score if a stage has set one, else the raw score."""
        return self.final_score if self.final_score is not None else self.score

    @property
    def text(self) -> str:
        return self.full_text or self.content

    def to_dict(self, include_content: bool = True) -> dict:
        d = {
            "id": self.id,
            "title": self.title,
            "origin": self.origin,
            "score": self.score,
            "rerank_score": self.rerank_score,
            "final_score": self.final_score,
            "metadata": self.metadata.to_dict(),
        }
        if include_content:
            d["content"] = self.content
        return d


# ── Options ──────────────────────────────────────────


@dataclass(frozen=True)
class DateRange:
    start: datetime
    end: datetime

    def __post_init__(self):
        object.__setattr__(self, "start", as_utc(self.start))
        object.__setattr__(self, "end", as_utc(self.end))

    def contains(self, moment: datetime) -> bool:
        return self.start <= as_utc(moment) <= self.end


@dataclass(frozen=True)
class SearchOptions:
    query: str
    search_type: SearchType = "hybrid"
    max_results: int = 10
    use_rerank: bool = False
    rerank_threshold: float = 0.0
    include_content: bool = False
    file_types: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    folders: tuple[str, ...] = ()
    date_range: Optional[DateRange] = None
    sort_by: SortBy = "relevance"
    sort_order: SortOrder = "desc"

    def __post_init__(self):
        object.__setattr__(
            self, "file_types", tuple(normalize_extension(e) for e in self.file_types),
        )
        object.__setattr__(self, "tags", tuple(self.tags))
        object.__setattr__(self, "folders", tuple(self.folders))

    def cache_key_fields(self) -> dict:
        return {
            "query": self.query,
            "searchType": self.search_type,
            "useRerank": self.use_rerank,
            "fileTypes": list(self.file_types),
            "tags": list(self.tags),
            "folders": list(self.folders),
        }

    def to_dict(self) -> dict:
        d = {f.name: getattr(self, f.name) for f in fields(self)}
        for key in ("file_types", "tags", "folders"):
            d[key] = list(d[key])
        if self.date_range is not None:
            d["date_range"] = {
                "start": self.date_range.start.isoformat(),
                "end": self.date_range.end.isoformat(),
            }
        return d

    @classmethod
    def from_dict(cls, data: dict) -> "SearchOptions":
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known}
        dr = kwargs.get("date_range")
        if isinstance(dr, dict):
            kwargs["date_range"] = DateRange(
                start=parse_timestamp(dr["start"]), end=parse_timestamp(dr["end"]),
            )
        for key in ("file_types", "tags", "folders"):
            if kwargs.get(key) is None:
                kwargs.pop(key, None)
        return cls(**kwargs)


# ── Saved searches, history, cache ───────────────────


@dataclass
class SearchFilter:
    name: str
    type: Literal["tag", "folder", "date", "size", "type"]
    value: Any
    operator: Literal["equals", "contains", "greater", "less", "between"] = "equals"
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "value": self.value,
            "operator": self.operator,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SearchFilter":
        return cls(**{k: data[k] for k in ("id", "name", "type", "value", "operator") if k in data})


@dataclass
class SavedSearch:
    name: str
    query: str
    options: SearchOptions
    filters: list[SearchFilter] = field(default_factory=list)
    id: str = field(default_factory=lambda: f"search_{uuid.uuid4().hex[:12]}")
    created: str = field(default_factory=lambda: utc_now().isoformat())
    last_used: str = field(default_factory=lambda: utc_now().isoformat())
    use_count: int = 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "query": self.query,
            "options": self.options.to_dict(),
            "filters": [f.to_dict() for f in self.filters],
            "created": self.created,
            "last_used": self.last_used,
            "use_count": self.use_count,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SavedSearch":
        return cls(
            id=data["id"],
            name=data["name"],
            query=data["query"],
            options=SearchOptions.from_dict(data["options"]),
            filters=[SearchFilter.from_dict(f) for f in data.get("filters", [])],
            created=data.get("created", utc_now().isoformat()),
            last_used=data.get("last_used", utc_now().isoformat()),
            use_count=int(data.get("use_count", 0)),
        )


@dataclass(frozen=True)
class SearchHistoryEntry:
    query: str
    timestamp: str
    result_count: int
    search_type: str = "hybrid"

    def to_dict(self) -> dict:
        return {
            "query": self.query,
            "timestamp": self.timestamp,
            "result_count": self.result_count,
            "search_type": self.search_type,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SearchHistoryEntry":
        return cls(
            query=data["query"],
            timestamp=data["timestamp"],
            result_count=int(data.get("result_count", 0)),
            search_type=data.get("search_type", "hybrid"),
        )


@dataclass(frozen=True)
class CacheEntry:
    results: tuple[SearchResult, ...]
    timestamp: float

    def is_live(self, now: float, ttl: float) -> bool:
        return now - self.timestamp < ttl
