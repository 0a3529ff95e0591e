"""Pydantic models shared across the application.

Python attributes are snake_case; the JSON wire format is camelCase.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Track(_WireModel):
    """A track as fetched from the source platform."""

    name: str
    artists: List[str]
    album: Optional[str] = None
    duration_ms: Optional[int] = None
    isrc: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("track name must not be empty")
        return v

    @field_validator("artists")
    @classmethod
    def _artists_not_empty(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("track must have at least one artist")
        return v


class MatchCandidate(_WireModel):
    """One YouTube video proposed for a track (or a search-page fallback)."""

    video_id: Optional[str] = None
    title: str
    channel_title: str = ""
    channel_id: Optional[str] = None
    thumbnail_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("thumbnailUrl", "thumbnail_url", "thumbnail"),
        serialization_alias="thumbnailUrl",
    )
    published_at: Optional[str] = None
    url: str
    is_fallback: bool = False


class YouTubeMatch(_WireModel):
    matches: List[MatchCandidate] = Field(default_factory=list)
    top_match: Optional[MatchCandidate] = None
    error: Optional[str] = None
    is_fallback: Optional[bool] = None
    fallback_reason: Optional[str] = None


class ConversionResult(_WireModel):
    """Per-track output of a conversion, same index as the input track."""

    original: Track
    youtube: YouTubeMatch = Field(default_factory=YouTubeMatch)


class ConversionSummary(_WireModel):
    total: int
    successful: int
    failed: int
    success_rate: str
    quota_used: int
    quota_limit: int


class ConversionOutput(_WireModel):
    results: List[ConversionResult]
    summary: ConversionSummary


class QuotaStatus(_WireModel):
    """Snapshot of the quota tracker for the status endpoint."""

    quota_used: int
    quota_limit: int
    quota_remaining: int
    quota_exceeded: bool
    last_reset_date: str
    searches_used: int
    searches_remaining: int
