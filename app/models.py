"""Pydantic models describing catalog items and the persisted records."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Literal
from uuid import uuid4

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .utils import coerce_kind, utcnow

ContentKind = Literal["movie", "series"]


class CatalogItem(BaseModel):
    """A movie or series as returned by the catalog client.

    ``kind`` is fixed when the item is ingested, so a series never has to be
    told apart from a movie by which title field it happens to carry.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: int
    kind: ContentKind = Field(
        validation_alias=AliasChoices("kind", "type", "media_type"),
    )
    title: str = Field(validation_alias=AliasChoices("title", "name"))
    rating: float = Field(
        default=0.0, validation_alias=AliasChoices("rating", "vote_average")
    )
    release_date: date | None = Field(
        default=None,
        validation_alias=AliasChoices("releaseDate", "release_date", "first_air_date"),
        serialization_alias="releaseDate",
    )
    overview: str | None = None
    poster_path: str | None = Field(
        default=None,
        validation_alias=AliasChoices("posterPath", "poster_path"),
        serialization_alias="posterPath",
    )
    backdrop_path: str | None = Field(
        default=None,
        validation_alias=AliasChoices("backdropPath", "backdrop_path"),
        serialization_alias="backdropPath",
    )
    genre_ids: tuple[int, ...] = Field(
        default=(),
        validation_alias=AliasChoices("genreIds", "genre_ids"),
        serialization_alias="genreIds",
    )
    popularity: float | None = None
    vote_count: int | None = Field(
        default=None,
        validation_alias=AliasChoices("voteCount", "vote_count"),
        serialization_alias="voteCount",
    )
    original_language: str | None = Field(
        default=None,
        validation_alias=AliasChoices("originalLanguage", "original_language"),
        serialization_alias="originalLanguage",
    )

    @field_validator("kind", mode="before")
    @classmethod
    def _normalise_kind(cls, value: object) -> str:
        return coerce_kind(value)

    @field_validator("release_date", mode="before")
    @classmethod
    def _blank_date(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("rating", mode="before")
    @classmethod
    def _missing_rating(cls, value: object) -> object:
        return 0.0 if value is None else value

    @classmethod
    def from_tmdb(cls, payload: dict[str, Any], *, kind: ContentKind) -> "CatalogItem":
        """Build an item from a TMDB result, stamping the kind explicitly."""

        data = {key: value for key, value in payload.items() if key != "media_type"}
        data["kind"] = kind
        return cls.model_validate(data)

    @property
    def year(self) -> int | None:
        return self.release_date.year if self.release_date else None


class WishlistEntry(CatalogItem):
    """Snapshot of a catalog item taken when it was added to the wishlist."""

    added_at: datetime = Field(
        validation_alias=AliasChoices("addedAt", "added_at"),
        serialization_alias="addedAt",
    )

    @classmethod
    def from_item(
        cls, item: CatalogItem, *, added_at: datetime | None = None
    ) -> "WishlistEntry":
        fields = {
            name: getattr(item, name) for name in CatalogItem.model_fields
        }
        return cls(**fields, added_at=added_at or utcnow())

    def to_item(self) -> CatalogItem:
        return CatalogItem(
            **{name: getattr(self, name) for name in CatalogItem.model_fields}
        )


class UserRecord(BaseModel):
    """A registered account; stored without any credential material."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    email: str
    display_name: str = Field(
        validation_alias=AliasChoices("name", "displayName", "display_name"),
        serialization_alias="name",
    )
    avatar_ref: str | None = Field(
        default=None,
        validation_alias=AliasChoices("avatar", "avatarRef", "avatar_ref"),
        serialization_alias="avatar",
    )
    created_at: datetime = Field(
        validation_alias=AliasChoices("createdAt", "created_at"),
        serialization_alias="createdAt",
    )

    @classmethod
    def create(cls, email: str, display_name: str) -> "UserRecord":
        return cls(
            id=str(uuid4()),
            email=email.strip(),
            display_name=display_name.strip(),
            created_at=utcnow(),
        )

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class SessionPointer(BaseModel):
    """The persisted ``{"userId": ...}`` current-session marker."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(
        min_length=1,
        validation_alias=AliasChoices("userId", "user_id"),
        serialization_alias="userId",
    )


class Trailer(BaseModel):
    """A video attached to a catalog item."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    key: str
    name: str = ""
    site: str = "YouTube"
    video_type: str = Field(
        default="Trailer",
        validation_alias=AliasChoices("type", "video_type"),
        serialization_alias="type",
    )
    official: bool = False
