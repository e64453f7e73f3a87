"""Request/response contracts shared with the client app.

Field aliases keep the wire names the client already sends (camelCase
request keys, ``processingTime``, ``_debug``). The decoded models (Album,
MusicIntent, SmartRecommendation) are also the validators the decode
cascade checks model output against.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

# === Shelf scan ===


class SpineCoord(BaseModel):
    """Horizontal extent of one spine as a fraction of image width."""

    model_config = ConfigDict(populate_by_name=True)

    x_start: float = Field(alias="xStart")
    x_end: float = Field(alias="xEnd")


class ProcessVinylsRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    image_url: str | None = Field(default=None, alias="imageUrl")
    reanalyze_positions: list[int] = Field(default_factory=list, alias="reanalyzePositions")
    spine_coords: dict[int, SpineCoord] | None = Field(default=None, alias="spineCoords")

    @property
    def is_reanalysis(self) -> bool:
        return bool(self.reanalyze_positions) and self.spine_coords is not None


class Album(BaseModel):
    position: int
    artist: str
    title: str
    year: int | None = None
    confidence: float | None = Field(default=None, ge=0, le=1)
    spine_x_start: float | None = None
    spine_x_end: float | None = None


class VinylScan(BaseModel):
    # Required: a stray object must not decode as an empty shelf
    albums: list[Album]


class ProcessVinylsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    albums: list[Album] = []
    processing_time: float | None = Field(default=None, alias="processingTime")
    model: str | None = None
    image_url: str | None = Field(default=None, alias="imageUrl")
    error: str | None = None
    debug: dict[str, Any] | None = Field(default=None, alias="_debug")


# === Music intent ===


class MusicIntentRequest(BaseModel):
    query: str | None = None


class MusicIntent(BaseModel):
    genres: list[str] = []
    styles: list[str] = []
    year_start: int | None = None
    year_end: int | None = None
    mood_description: str
    energy: Literal["low", "medium", "high"]
    keywords: list[str] = []


# === Smart recommendation ===


class CollectionAlbum(BaseModel):
    """One album of the user's (already genre-filtered) collection."""

    model_config = ConfigDict(coerce_numbers_to_str=True)

    id: str
    artist: str = ""
    title: str = ""
    year: int | None = None
    genres: list[str] = []
    styles: list[str] = []


class SmartRecommendRequest(BaseModel):
    query: str | None = None
    albums: list[CollectionAlbum] | None = None


class Recommendation(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    album_id: str
    reason: str


class SmartRecommendation(BaseModel):
    recommendations: list[Recommendation]
    mood_summary: str = ""


class SmartRecommendResponse(BaseModel):
    recommendations: list[Recommendation] = []
    mood_summary: str = ""
    model: str | None = None
    error: str | None = None


# === Errors ===


class ErrorResponse(BaseModel):
    error: str
    message: str
    retryable: bool
    detail: str | None = None
