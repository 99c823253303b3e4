"""
Enumerations and fixed catalogs shared by the API, the database layer and the worker.
"""

from __future__ import annotations

from enum import Enum


class Gender(str, Enum):
    MALE = "Male"
    FEMALE = "Female"


class Rarity(str, Enum):
    COMMON = "Common"
    RARE = "Rare"
    EPIC = "Epic"
    LEGENDARY = "Legendary"


class EventType(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    SPECIAL = "special"


class EventStatus(str, Enum):
    DRAFT = "draft"
    UPCOMING = "upcoming"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PrizeType(str, Enum):
    TOKEN = "token"
    NFT = "nft"
    POINTS = "points"


class JobStatus(str, Enum):
    WAITING = "WAITING"
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"


class JobKind(str, Enum):
    POINTS_TOPUP = "POINTS_TOPUP"
    SCORE_COMPETITION = "SCORE_COMPETITION"


PERFORMER_POSITIONS: tuple[str, ...] = (
    "Lead",
    "Support",
    "Special",
    "Fetish",
    "NonSex",
    "Analqueen",
    "Cam Girl",
    "Legend",
    "MILF",
)

POSITION_CATEGORIES: dict[str, tuple[str, ...]] = {
    "MAIN": ("Lead", "Support", "Special"),
    "SPECIALTY": ("Fetish", "NonSex", "MILF"),
    "PREMIUM": ("Analqueen", "Cam Girl", "Legend"),
}

# Tags a scene submission may attach to each performer in the scene.
SCENE_TAGS: tuple[str, ...] = (
    "Facial",
    "Anal",
    "DP",
    "DPP",
    "DAP",
    "Pee",
    "NonSex",
    "LezOnly",
    "MastOnly",
    "BJOnly",
    "Swallow",
    "Bald",
    "Squirt",
    "Creampie",
    "A2M",
    "Fisting",
    "Shaved",
    "CumSwap",
    "TP",
    "TAP",
    "TPP",
    "AnalToy",
    "HJOnly",
    "Footjob",
)

DEFAULT_SCENE_POINTS = 10

# Key in an event's scoring system that prices a single scene appearance.
SCENE_APPEARANCE_KEY = "Scene"

LEADERBOARD_STATS: tuple[str, ...] = (
    "movies_submitted",
    "nft_count",
    "tournament_wins",
    "points",
)

# Events in these states are frozen for admin edits and deletes.
LOCKED_EVENT_STATUSES = frozenset(
    {EventStatus.ACTIVE.value, EventStatus.COMPLETED.value}
)

# Events in these states accept team entries.
OPEN_EVENT_STATUSES = frozenset(
    {EventStatus.UPCOMING.value, EventStatus.ACTIVE.value}
)

EVENT_STATUS_TRANSITIONS: dict[EventStatus, frozenset[EventStatus]] = {
    EventStatus.DRAFT: frozenset({EventStatus.UPCOMING, EventStatus.CANCELLED}),
    EventStatus.UPCOMING: frozenset(
        {EventStatus.DRAFT, EventStatus.ACTIVE, EventStatus.CANCELLED}
    ),
    # Completion only happens through competition scoring.
    EventStatus.ACTIVE: frozenset({EventStatus.CANCELLED}),
    EventStatus.COMPLETED: frozenset(),
    EventStatus.CANCELLED: frozenset(),
}
