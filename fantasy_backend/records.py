"""
Stored document shapes shared by the database clients, the routes and the worker.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from fantasy_backend.constants import JobKind, JobStatus


def _now() -> float:
    return time.time()


@dataclass
class UserRecord:
    address: str
    points: int = 0
    movies_submitted: int = 0
    scenes_submitted: int = 0
    nft_count: int = 0
    tournament_wins: int = 0
    created_at: float = field(default_factory=_now)
    updated_at: float = field(default_factory=_now)

    def __post_init__(self):
        self.address = self.address.lower()

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class PerformerRecord:
    performer_id: str
    name: str
    gender: str
    positions: list[str] = field(default_factory=list)
    bio: str = ""
    date_of_birth: Optional[str] = None
    image_path: Optional[str] = None
    movie_count: int = 0
    submitted_by: Optional[str] = None
    created_at: float = field(default_factory=_now)
    updated_at: float = field(default_factory=_now)

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class MovieRecord:
    """
    A movie with its cast and scenes embedded.

    ``performers`` holds ``{"performer_id", "name", "gender"}`` entries and
    ``scenes`` holds ``{"scene_number", "description", "performers"}`` entries
    where each scene performer is ``{"performer_id", "name", "tags"}``.
    """

    movie_id: str
    title: str
    studio: str
    release_date: str
    performers: list[dict] = field(default_factory=list)
    scenes: list[dict] = field(default_factory=list)
    description: Optional[str] = None
    genre: list[str] = field(default_factory=list)
    rating: Optional[float] = None
    submitted_by: Optional[str] = None
    created_at: float = field(default_factory=_now)
    updated_at: float = field(default_factory=_now)

    def performer_ids(self) -> list[str]:
        return [p["performer_id"] for p in self.performers if p.get("performer_id")]

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class CardRecord:
    card_id: str
    name: str
    price: int
    rarity: str
    image: Optional[str] = None
    available: bool = True
    owner_id: Optional[str] = None
    performer_id: Optional[str] = None
    positions: list[str] = field(default_factory=list)
    stats: dict[str, int] = field(default_factory=dict)
    traits: list[str] = field(default_factory=list)
    created_at: float = field(default_factory=_now)
    purchased_at: Optional[float] = None

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class EventRecord:
    """
    A competition. ``rules`` carries ``max_entries``, ``entry_fee``,
    ``scoring_system``, ``restrictions``, ``max_performers`` and
    ``required_positions``; ``prizes`` holds ``{"rank", "amount", "type",
    "description"}`` entries.
    """

    event_id: str
    title: str
    description: str
    type: str
    status: str
    start_date: str
    end_date: str
    rules: dict[str, Any] = field(default_factory=dict)
    prizes: list[dict] = field(default_factory=list)
    movie_pool: list[str] = field(default_factory=list)
    max_participants: int = 1
    current_participants: int = 0
    prize_pool: float = 0.0
    created_by: Optional[str] = None
    created_at: float = field(default_factory=_now)
    updated_at: float = field(default_factory=_now)

    @property
    def entry_fee(self) -> int:
        return int(self.rules.get("entry_fee", 0) or 0)

    @property
    def required_positions(self) -> dict[str, int]:
        return dict(self.rules.get("required_positions") or {})

    @property
    def max_performers(self) -> Optional[int]:
        return self.rules.get("max_performers")

    @property
    def scoring_system(self) -> dict[str, float]:
        return dict(self.rules.get("scoring_system") or {})

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class TeamRecord:
    competition_id: str
    user_id: str
    team: dict[str, list[str]]
    points: float = 0.0
    rank: Optional[int] = None
    created_at: float = field(default_factory=_now)
    updated_at: float = field(default_factory=_now)

    @property
    def key(self) -> str:
        return team_key(self.competition_id, self.user_id)

    def as_dict(self) -> dict:
        return asdict(self)


def team_key(competition_id: str, user_id: str) -> str:
    return f"{competition_id}-{user_id.lower()}"


@dataclass
class ScenePointValue:
    tag_id: str
    name: str
    points: int
    description: str = ""
    updated_at: float = field(default_factory=_now)

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class JobRecord:
    job_id: str
    kind: JobKind
    payload: dict = field(default_factory=dict)
    status: JobStatus = JobStatus.WAITING
    stage: str = "WAITING"
    progress_percent: float = 0.0
    error: Optional[str] = None
    locked_at: Optional[float] = None
    created_at: float = field(default_factory=_now)
    updated_at: float = field(default_factory=_now)

    def as_dict(self) -> dict:
        return {
            "job_id": self.job_id,
            "kind": self.kind.value,
            "payload": self.payload,
            "status": self.status.value,
            "stage": self.stage,
            "progress_percent": self.progress_percent,
            "error": self.error,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
