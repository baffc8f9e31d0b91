import logging
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)


class CatalogCandidate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int = Field(ge=1)
    title: str = ""
    release_date: str | None = None
    poster_path: str | None = None
    vote_average: float | None = None
    popularity: float | None = None
    overview: str | None = None

    @field_validator("title", mode="before")
    @classmethod
    def _title_or_empty(cls, value):
        return value or ""


class Genre(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    name: str = ""


class MovieDetail(CatalogCandidate):
    runtime: int | None = None
    genres: list[Genre] = Field(default_factory=list)


class WatchProvider(BaseModel):
    model_config = ConfigDict(extra="ignore")

    provider_id: int
    provider_name: str = ""
    logo_path: str | None = None
    display_priority: int | None = None


class WatchProviders(BaseModel):
    model_config = ConfigDict(extra="ignore")

    flatrate: list[WatchProvider] = Field(default_factory=list)
    rent: list[WatchProvider] = Field(default_factory=list)
    buy: list[WatchProvider] = Field(default_factory=list)

    @property
    def has_flatrate(self) -> bool:
        return bool(self.flatrate)


class WatchlistEntry(BaseModel):
    id: int = Field(ge=1)
    title: str = Field(min_length=1, max_length=500)
    release_date: str | None = None
    poster_path: str | None = None
    vote_average: float | None = None
    overview: str | None = None
    added_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_candidate(cls, movie: CatalogCandidate) -> "WatchlistEntry":
        return cls(
            id=movie.id,
            title=movie.title or f"#{movie.id}",
            release_date=movie.release_date,
            poster_path=movie.poster_path,
            vote_average=movie.vote_average,
            overview=movie.overview,
        )


def parse_candidates(rows: list | None) -> list[CatalogCandidate]:
    """Validate a loosely-shaped result list, dropping records without a usable id."""
    candidates: list[CatalogCandidate] = []
    for row in rows or []:
        if not isinstance(row, dict):
            continue
        try:
            candidates.append(CatalogCandidate.model_validate(row))
        except ValidationError:
            logger.debug("Dropping malformed catalog record: %r", row.get("id"))
    return candidates
