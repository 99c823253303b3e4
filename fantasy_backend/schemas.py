"""
Pydantic request/response schemas for the HTTP API.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from fantasy_backend.constants import (
    PERFORMER_POSITIONS,
    SCENE_TAGS,
    EventStatus,
    EventType,
    Gender,
    PrizeType,
    Rarity,
)


def _required_text(value: Optional[str], message: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValueError(message)
    return value


def _check_positions(positions: list[str]) -> list[str]:
    unknown = [p for p in positions if p not in PERFORMER_POSITIONS]
    if unknown:
        raise ValueError(f"Unknown positions: {', '.join(unknown)}")
    return list(dict.fromkeys(positions))


# -------------------- Users --------------------


class ConnectWalletRequest(BaseModel):
    address: str


class UserResponse(BaseModel):
    address: str
    points: int
    movies_submitted: int
    scenes_submitted: int
    nft_count: int
    tournament_wins: int
    is_admin: bool = False
    created_at: float
    updated_at: float


class LeaderEntry(BaseModel):
    rank: int
    address: str
    value: int


class LeaderboardResponse(BaseModel):
    stat: str
    leaders: list[LeaderEntry]


# -------------------- Performers --------------------


class PerformerRequest(BaseModel):
    name: str = Field(default="", validate_default=True)
    gender: Optional[Gender] = None
    positions: list[str] = Field(default_factory=list)
    bio: str = ""
    date_of_birth: Optional[date] = None

    @field_validator("name")
    @classmethod
    def _name(cls, value: str) -> str:
        return _required_text(value, "Name is required")

    @field_validator("positions")
    @classmethod
    def _positions(cls, value: list[str]) -> list[str]:
        return _check_positions(value)

    @model_validator(mode="after")
    def _required(self) -> "PerformerRequest":
        if self.gender is None:
            raise ValueError("Gender is required")
        if self.date_of_birth is None:
            raise ValueError("Date of Birth is required")
        if not self.positions:
            raise ValueError("At least one position must be selected")
        return self


class PerformerResponse(BaseModel):
    performer_id: str
    name: str
    gender: str
    positions: list[str]
    bio: str
    date_of_birth: Optional[str] = None
    image_path: Optional[str] = None
    movie_count: int
    submitted_by: Optional[str] = None
    created_at: float
    updated_at: float


class FilmographyEntry(BaseModel):
    movie_id: str
    title: str
    studio: str
    release_date: str


class PerformerProfileResponse(BaseModel):
    performer: PerformerResponse
    image_url: Optional[str] = None
    filmography: list[FilmographyEntry]
    cards: list["CardResponse"]


class ImageUploadRequest(BaseModel):
    content_type: Literal["image/jpeg", "image/png", "image/webp"] = "image/jpeg"


class ImageUploadResponse(BaseModel):
    url: str
    path: str


# -------------------- Movies --------------------


class MoviePerformerRequest(BaseModel):
    performer_id: Optional[str] = None
    name: str = ""
    gender: Optional[Gender] = None

    @model_validator(mode="after")
    def _identified(self) -> "MoviePerformerRequest":
        self.name = (self.name or "").strip()
        if not self.performer_id and (not self.name or self.gender is None):
            raise ValueError(
                "Each performer must have a name and valid gender (Male or Female)"
            )
        return self


class MovieRequest(BaseModel):
    title: str = Field(default="", validate_default=True)
    studio: str = Field(default="", validate_default=True)
    release_date: Optional[date] = None
    performers: list[MoviePerformerRequest] = Field(default_factory=list)
    description: Optional[str] = None
    genre: list[str] = Field(default_factory=list)
    rating: Optional[float] = Field(default=None, ge=0, le=10)

    @field_validator("title")
    @classmethod
    def _title(cls, value: str) -> str:
        return _required_text(value, "Movie title is required")

    @field_validator("studio")
    @classmethod
    def _studio(cls, value: str) -> str:
        return _required_text(value, "Studio name is required")

    @model_validator(mode="after")
    def _required(self) -> "MovieRequest":
        if self.release_date is None:
            raise ValueError("Release date is required")
        if not self.performers:
            raise ValueError("At least one performer is required")
        return self


class MovieUpdateRequest(BaseModel):
    title: Optional[str] = None
    studio: Optional[str] = None
    release_date: Optional[date] = None
    performers: Optional[list[MoviePerformerRequest]] = None
    description: Optional[str] = None
    genre: Optional[list[str]] = None
    rating: Optional[float] = Field(default=None, ge=0, le=10)

    @field_validator("title")
    @classmethod
    def _title(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return _required_text(value, "Movie title is required")

    @field_validator("studio")
    @classmethod
    def _studio(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return _required_text(value, "Studio name is required")

    @field_validator("performers")
    @classmethod
    def _performers(
        cls, value: Optional[list[MoviePerformerRequest]]
    ) -> Optional[list[MoviePerformerRequest]]:
        if value is not None and not value:
            raise ValueError("At least one performer is required")
        return value


class ScenePerformerRequest(BaseModel):
    performer_id: str
    name: Optional[str] = None
    tags: list[str] = Field(default_factory=list)

    @field_validator("tags", mode="before")
    @classmethod
    def _tag_flags(cls, value):
        # Accept {"Facial": true, "Anal": false} as well as ["Facial"].
        if isinstance(value, dict):
            return [tag for tag, enabled in value.items() if enabled]
        return value

    @field_validator("tags")
    @classmethod
    def _known_tags(cls, value: list[str]) -> list[str]:
        unknown = [tag for tag in value if tag not in SCENE_TAGS]
        if unknown:
            raise ValueError(f"Unknown scene tags: {', '.join(unknown)}")
        return list(dict.fromkeys(value))


class SceneRequest(BaseModel):
    scene_number: str = ""
    description: str = ""
    performers: list[ScenePerformerRequest] = Field(default_factory=list)

    def is_complete(self) -> bool:
        return bool(
            self.scene_number.strip() and self.description.strip() and self.performers
        )


class ScenesRequest(BaseModel):
    scenes: list[SceneRequest] = Field(default_factory=list)

    def complete_scenes(self) -> list[SceneRequest]:
        return [scene for scene in self.scenes if scene.is_complete()]

    @model_validator(mode="after")
    def _at_least_one(self) -> "ScenesRequest":
        if not self.complete_scenes():
            raise ValueError(
                "Please add at least one complete scene with all fields filled "
                "and at least one performer selected"
            )
        return self


class MovieResponse(BaseModel):
    movie_id: str
    title: str
    studio: str
    release_date: str
    performers: list[dict]
    scenes: list[dict]
    description: Optional[str] = None
    genre: list[str]
    rating: Optional[float] = None
    submitted_by: Optional[str] = None
    created_at: float
    updated_at: float


# -------------------- Cards --------------------


class CardRequest(BaseModel):
    name: str
    price: int = Field(..., ge=0)
    rarity: Rarity
    image: Optional[str] = None
    performer_id: Optional[str] = None
    positions: list[str] = Field(default_factory=list)
    stats: dict[str, int] = Field(default_factory=dict)
    traits: list[str] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _name(cls, value: str) -> str:
        return _required_text(value, "Card name is required")

    @field_validator("positions")
    @classmethod
    def _positions(cls, value: list[str]) -> list[str]:
        return _check_positions(value)


class CardResponse(BaseModel):
    card_id: str
    name: str
    price: int
    rarity: str
    image: Optional[str] = None
    available: bool
    owner_id: Optional[str] = None
    performer_id: Optional[str] = None
    positions: list[str]
    stats: dict[str, int]
    traits: list[str]
    created_at: float
    purchased_at: Optional[float] = None


class PurchaseResponse(BaseModel):
    card: CardResponse
    user: UserResponse


# -------------------- Events / competitions --------------------


class PrizeRequest(BaseModel):
    rank: int = Field(..., ge=1)
    amount: float = Field(..., ge=0)
    type: PrizeType = PrizeType.POINTS
    description: str = ""


class EventRulesRequest(BaseModel):
    max_entries: int = Field(1, ge=1)
    entry_fee: int = Field(0, ge=0)
    scoring_system: dict[str, float] = Field(default_factory=dict)
    restrictions: list[str] = Field(default_factory=list)
    max_performers: Optional[int] = Field(default=None, ge=1)
    required_positions: dict[str, int] = Field(default_factory=dict)

    @field_validator("required_positions")
    @classmethod
    def _positions(cls, value: dict[str, int]) -> dict[str, int]:
        _check_positions(list(value))
        if any(count < 0 for count in value.values()):
            raise ValueError("Position counts must be non-negative")
        return value


class EventRequest(BaseModel):
    title: str
    description: str
    type: EventType
    status: EventStatus = EventStatus.DRAFT
    start_date: datetime
    end_date: datetime
    prizes: list[PrizeRequest] = Field(default_factory=list)
    rules: EventRulesRequest = Field(default_factory=EventRulesRequest)
    movie_pool: list[str] = Field(default_factory=list)
    max_participants: int = Field(..., ge=1)
    prize_pool: float = Field(0.0, ge=0)

    @field_validator("title")
    @classmethod
    def _title(cls, value: str) -> str:
        return _required_text(value, "Event title is required")

    @field_validator("description")
    @classmethod
    def _description(cls, value: str) -> str:
        return _required_text(value, "Event description is required")

    @model_validator(mode="after")
    def _dates(self) -> "EventRequest":
        if self.end_date <= self.start_date:
            raise ValueError("End date must be after start date")
        if self.status == EventStatus.COMPLETED:
            raise ValueError("Events are completed by scoring, not by editing")
        return self


class EventStatusRequest(BaseModel):
    status: EventStatus


class EventResponse(BaseModel):
    event_id: str
    title: str
    description: str
    type: str
    status: str
    start_date: str
    end_date: str
    rules: dict
    prizes: list[dict]
    movie_pool: list[str]
    max_participants: int
    current_participants: int
    prize_pool: float
    created_by: Optional[str] = None
    created_at: float
    updated_at: float


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class EventListResponse(BaseModel):
    status: Literal["success"] = "success"
    data: list[EventResponse]
    pagination: Pagination


class TeamRequest(BaseModel):
    team: dict[str, list[str]]


class TeamResponse(BaseModel):
    competition_id: str
    user_id: str
    team: dict[str, list[str]]
    points: float
    rank: Optional[int] = None
    created_at: float
    updated_at: float


class UserCompetitionResponse(BaseModel):
    competition: EventResponse
    team: TeamResponse


class CompetitionLeaderboardResponse(BaseModel):
    competition_id: str
    status: str
    entries: list[TeamResponse]


# -------------------- Scene points --------------------


class ScenePointRequest(BaseModel):
    tag: str
    points: int
    description: str = ""

    @field_validator("tag")
    @classmethod
    def _tag(cls, value: str) -> str:
        if value not in SCENE_TAGS:
            raise ValueError(f"Unknown scene tag: {value}")
        return value

    @field_validator("points")
    @classmethod
    def _points(cls, value: int) -> int:
        if value < 0:
            raise ValueError("Points cannot be negative")
        return value


class ScenePointsRequest(BaseModel):
    values: list[ScenePointRequest]


class ScenePointResponse(BaseModel):
    tag_id: str
    name: str
    points: int
    description: str


# -------------------- Jobs / ops --------------------


class JobResponse(BaseModel):
    job_id: str
    kind: str
    status: str
    stage: str
    progress_percent: float
    error: Optional[str] = None
    payload: dict


class HealthResponse(BaseModel):
    status: str
    message: str
    database: str
    queue_depth: Optional[int] = None
    timestamp: str


class NativeCurrency(BaseModel):
    name: str
    symbol: str
    decimals: int = 18


class NetworkResponse(BaseModel):
    """Parameters for wallet_switchEthereumChain / wallet_addEthereumChain."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    chain_id: str
    chain_name: str
    native_currency: NativeCurrency
    rpc_urls: list[str]
    block_explorer_urls: list[str]


class CatalogResponse(BaseModel):
    positions: list[str]
    position_categories: dict[str, list[str]]
    scene_tags: list[str]
    leaderboard_stats: list[str]


PerformerProfileResponse.model_rebuild()
