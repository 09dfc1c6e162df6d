from __future__ import annotations

"""
Pydantic schemas for request/response models.

This module is the API contract layer. It is used by:
- API routes (request bodies and response models)
- Tool runners, which read query parameters from these models and use
  ``model_dump()`` as the cache-key params
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def _strip_slashes(value: str) -> str:
    return value.strip().strip("/")


# ---------- Result envelope ----------


class ContentBlockRead(BaseModel):
    type: str = "text"
    text: str


class ResultRead(BaseModel):
    """Wire shape of every operation: ``{"content": [...], "isError": bool}``."""

    model_config = ConfigDict(populate_by_name=True)

    content: List[ContentBlockRead]
    is_error: bool = Field(alias="isError")


# ---------- Hosting CLI queries ----------


class CodeSearchQuery(BaseModel):
    query_terms: List[str] = Field(min_length=1)
    owner: Optional[str] = None
    repo: Optional[str] = None
    language: Optional[str] = None
    extension: Optional[str] = None
    filename: Optional[str] = None
    match: Optional[str] = Field(default=None, pattern="^(file|path)$")
    limit: int = Field(default=30, ge=1, le=100)

    @field_validator("query_terms")
    @classmethod
    def drop_blank_terms(cls, terms: List[str]) -> List[str]:
        cleaned = [t.strip() for t in terms if t and t.strip()]
        if not cleaned:
            raise ValueError("Provide at least one non-empty query term")
        return cleaned

    @model_validator(mode="after")
    def repo_needs_owner(self) -> "CodeSearchQuery":
        # `gh search code --repo` wants OWNER/REPO
        if self.repo and "/" not in self.repo and not self.owner:
            raise ValueError("repo must be OWNER/REPO or be combined with owner")
        return self


class RepoSearchQuery(BaseModel):
    query_terms: List[str] = Field(default_factory=list)
    owner: Optional[str] = None
    language: Optional[str] = None
    topic: Optional[List[str]] = None
    stars: Optional[str] = None
    sort: Optional[str] = Field(
        default=None, pattern="^(forks|help-wanted-issues|stars|updated)$"
    )
    limit: int = Field(default=30, ge=1, le=100)

    @model_validator(mode="after")
    def needs_some_filter(self) -> "RepoSearchQuery":
        self.query_terms = [t.strip() for t in self.query_terms if t and t.strip()]
        if not (self.query_terms or self.owner or self.topic or self.language):
            raise ValueError("Provide query_terms or at least one of owner/topic/language")
        return self


class CommitSearchQuery(BaseModel):
    query_terms: List[str] = Field(default_factory=list)
    owner: Optional[str] = None
    repo: Optional[str] = None
    author: Optional[str] = None
    committer: Optional[str] = None
    author_date: Optional[str] = None
    committer_date: Optional[str] = None
    hash: Optional[str] = None
    merge: Optional[bool] = None
    sort: Optional[str] = Field(default=None, pattern="^(author-date|committer-date)$")
    order: Optional[str] = Field(default=None, pattern="^(asc|desc)$")
    limit: int = Field(default=25, ge=1, le=50)

    @model_validator(mode="after")
    def needs_some_filter(self) -> "CommitSearchQuery":
        self.query_terms = [t.strip() for t in self.query_terms if t and t.strip()]
        if not (self.query_terms or self.owner or self.repo or self.author
                or self.committer or self.hash):
            raise ValueError(
                "Provide query_terms or at least one of owner/repo/author/committer/hash"
            )
        if self.repo and "/" not in self.repo and not self.owner:
            raise ValueError("repo must be OWNER/REPO or be combined with owner")
        return self


class IssueSearchQuery(BaseModel):
    """Filters shared by issue and pull request search (GitHub search qualifiers)."""

    query: str = Field(min_length=1, max_length=256)
    owner: Optional[str] = None
    repo: Optional[str] = None
    author: Optional[str] = None
    assignee: Optional[str] = None
    mentions: Optional[str] = None
    state: Optional[str] = Field(default=None, pattern="^(open|closed)$")
    labels: List[str] = Field(default_factory=list)
    created: Optional[str] = None
    updated: Optional[str] = None
    language: Optional[str] = None
    sort: Optional[str] = Field(
        default=None, pattern="^(comments|reactions|interactions|created|updated)$"
    )
    order: Optional[str] = Field(default=None, pattern="^(asc|desc)$")
    limit: int = Field(default=25, ge=1, le=100)

    @field_validator("query")
    @classmethod
    def strip_query(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("query must not be blank")
        return value

    @model_validator(mode="after")
    def repo_needs_owner(self) -> "IssueSearchQuery":
        if self.repo and "/" not in self.repo and not self.owner:
            raise ValueError("repo must be OWNER/REPO or be combined with owner")
        return self


class PullRequestSearchQuery(IssueSearchQuery):
    head: Optional[str] = None
    base: Optional[str] = None
    draft: Optional[bool] = None
    merged: Optional[bool] = None


class FileContentQuery(BaseModel):
    owner: str
    repo: str
    file_path: str
    branch: Optional[str] = None
    start_line: Optional[int] = Field(default=None, ge=1)
    end_line: Optional[int] = Field(default=None, ge=1)

    @field_validator("file_path")
    @classmethod
    def normalize_path(cls, value: str) -> str:
        value = _strip_slashes(value)
        if not value:
            raise ValueError("file_path must not be empty")
        return value

    @model_validator(mode="after")
    def check_range(self) -> "FileContentQuery":
        if self.start_line and self.end_line and self.end_line < self.start_line:
            raise ValueError("end_line must be >= start_line")
        return self


class RepoStructureQuery(BaseModel):
    owner: str
    repo: str
    branch: Optional[str] = None
    path: str = ""
    depth: int = Field(default=1, ge=1, le=4)
    include_ignored: bool = False
    show_media: bool = False

    @field_validator("path")
    @classmethod
    def normalize_path(cls, value: str) -> str:
        return _strip_slashes(value)


# ---------- Registry CLI queries ----------


class PackageSearchQuery(BaseModel):
    query: str = Field(min_length=1)
    search_limit: int = Field(default=20, ge=1, le=100)

    @field_validator("query")
    @classmethod
    def no_option_injection(cls, value: str) -> str:
        value = value.strip()
        if not value or value.startswith("-"):
            raise ValueError("query must be non-empty and must not start with '-'")
        return value


class PackageViewQuery(BaseModel):
    package_name: str = Field(min_length=1)
    fields: List[str] = Field(default_factory=list)

    @field_validator("package_name")
    @classmethod
    def no_option_injection(cls, value: str) -> str:
        value = value.strip()
        if value.startswith("-"):
            raise ValueError("package_name must not start with '-'")
        return value


# ---------- Cache ----------


class CacheStatsRead(BaseModel):
    hits: int
    misses: int
    sets: int
    total_keys: int
    last_reset: datetime
    hit_rate: float
    cache_size: int
