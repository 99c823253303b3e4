"""
Database abstraction: the DbClient interface, the checks shared by every
implementation, and an in-memory implementation for development and tests.

Multi-document operations (card purchase, competition entry, competition
completion) are single methods so each implementation can run them atomically.
"""

from __future__ import annotations

import copy
import re
import threading
import time
import uuid
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional, Protocol

from fantasy_backend.constants import (
    EVENT_STATUS_TRANSITIONS,
    LEADERBOARD_STATS,
    LOCKED_EVENT_STATUSES,
    OPEN_EVENT_STATUSES,
    EventStatus,
    JobKind,
    JobStatus,
)
from fantasy_backend.errors import (
    ConflictError,
    InsufficientPointsError,
    InvalidRequestError,
    NotFoundError,
)
from fantasy_backend.records import (
    CardRecord,
    EventRecord,
    JobRecord,
    MovieRecord,
    PerformerRecord,
    ScenePointValue,
    TeamRecord,
    UserRecord,
    team_key,
)
from fantasy_backend.rosters import active_positions, team_card_ids, validate_team

EVENT_SORT_FIELDS = ("start_date", "end_date", "created_at", "title")


class DbClient(Protocol):
    """Interface for database access."""

    def ping(self) -> None:
        ...

    # Users

    def get_user(self, address: str) -> Optional[UserRecord]:
        ...

    def ensure_user(self, address: str, initial_points: int) -> UserRecord:
        ...

    def list_users_below(self, points: int, limit: int) -> list[UserRecord]:
        ...

    def top_up_users(self, addresses: list[str], points: int) -> int:
        ...

    def list_leaders(self, stat: str, limit: int = 10) -> list[UserRecord]:
        ...

    # Performers

    def create_performer(self, performer: PerformerRecord) -> PerformerRecord:
        ...

    def get_performer(self, performer_id: str) -> Optional[PerformerRecord]:
        ...

    def list_performers(
        self, query: Optional[str] = None, limit: int = 50, offset: int = 0
    ) -> list[PerformerRecord]:
        ...

    def set_performer_image(
        self, performer_id: str, image_path: str
    ) -> PerformerRecord:
        ...

    # Movies

    def create_movie(
        self,
        movie: MovieRecord,
        points_per_movie: int,
        new_performers: Iterable[PerformerRecord] = (),
    ) -> MovieRecord:
        ...

    def get_movie(self, movie_id: str) -> Optional[MovieRecord]:
        ...

    def get_movies(self, movie_ids: Iterable[str]) -> list[MovieRecord]:
        ...

    def list_movies(self, limit: int = 20, offset: int = 0) -> list[MovieRecord]:
        ...

    def movies_for_performer(self, performer_id: str) -> list[MovieRecord]:
        ...

    def update_movie(
        self,
        movie_id: str,
        changes: dict,
        new_performers: Iterable[PerformerRecord] = (),
    ) -> MovieRecord:
        ...

    def delete_movie(self, movie_id: str) -> None:
        ...

    def add_scenes(
        self,
        movie_id: str,
        scenes: list[dict],
        submitted_by: str,
        points_per_scene: int = 0,
    ) -> MovieRecord:
        ...

    # Cards

    def create_card(self, card: CardRecord) -> CardRecord:
        ...

    def get_card(self, card_id: str) -> Optional[CardRecord]:
        ...

    def get_cards(self, card_ids: Iterable[str]) -> Dict[str, CardRecord]:
        ...

    def list_cards(
        self,
        *,
        available: Optional[bool] = None,
        owner_id: Optional[str] = None,
        performer_id: Optional[str] = None,
    ) -> list[CardRecord]:
        ...

    def delete_card(self, card_id: str) -> None:
        ...

    def purchase_card(self, address: str, card_id: str) -> tuple[CardRecord, UserRecord]:
        ...

    # Events

    def create_event(self, event: EventRecord) -> EventRecord:
        ...

    def get_event(self, event_id: str) -> Optional[EventRecord]:
        ...

    def list_events(
        self,
        *,
        type: Optional[str] = None,
        statuses: Optional[Iterable[str]] = None,
        offset: int = 0,
        limit: int = 10,
        sort_by: str = "start_date",
        descending: bool = True,
    ) -> tuple[list[EventRecord], int]:
        ...

    def update_event(self, event_id: str, changes: dict) -> EventRecord:
        ...

    def delete_event(self, event_id: str) -> None:
        ...

    def set_event_status(self, event_id: str, status: EventStatus) -> EventRecord:
        ...

    # Competition teams

    def enter_competition(
        self, address: str, event_id: str, team: dict[str, list[str]]
    ) -> TeamRecord:
        ...

    def get_team(self, event_id: str, address: str) -> Optional[TeamRecord]:
        ...

    def list_teams(self, event_id: str) -> list[TeamRecord]:
        ...

    def list_user_teams(self, address: str) -> list[TeamRecord]:
        ...

    def complete_competition(
        self,
        event_id: str,
        ranked: list[tuple[str, float, int]],
        awards: dict[str, int],
    ) -> bool:
        ...

    # Scene point values

    def list_scene_points(self) -> list[ScenePointValue]:
        ...

    def save_scene_points(self, values: list[ScenePointValue]) -> list[ScenePointValue]:
        ...

    # Jobs

    def create_job(self, kind: JobKind, payload: Optional[dict] = None) -> JobRecord:
        ...

    def get_job(self, job_id: str) -> Optional[JobRecord]:
        ...

    def claim_job(self, job_id: str) -> Optional[JobRecord]:
        ...

    def claim_next_waiting_job(self) -> Optional[JobRecord]:
        ...

    def update_job_progress(
        self,
        job_id: str,
        *,
        status: Optional[JobStatus] = None,
        stage: Optional[str] = None,
        progress_percent: Optional[float] = None,
        error: Optional[str] = None,
    ) -> None:
        ...

    def requeue_stale_locks(self, lock_timeout_seconds: float = 600) -> int:
        ...


# -------------------- Shared checks --------------------


def new_id() -> str:
    return uuid.uuid4().hex


def normalize_title(value: str) -> str:
    return re.sub(r"\s+", " ", value or "").strip().lower()


def parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def check_leaderboard_stat(stat: str) -> None:
    if stat not in LEADERBOARD_STATS:
        raise InvalidRequestError(
            f"Unknown leaderboard stat {stat!r}; expected one of {', '.join(LEADERBOARD_STATS)}"
        )


def check_event_sort(sort_by: str) -> None:
    if sort_by not in EVENT_SORT_FIELDS:
        raise InvalidRequestError(f"Cannot sort events by {sort_by!r}")


def check_purchase(user: Optional[UserRecord], card: Optional[CardRecord]) -> None:
    if card is None or user is None:
        raise NotFoundError("Card or user not found")
    if not card.available or card.owner_id:
        raise ConflictError("Card is no longer available")
    if user.points < card.price:
        raise InsufficientPointsError()


def check_scene_performers(movie: MovieRecord, scenes: list[dict]) -> None:
    cast = set(movie.performer_ids())
    for scene in scenes:
        for performer in scene.get("performers", []):
            if performer.get("performer_id") not in cast:
                raise InvalidRequestError(
                    f"{performer.get('name') or performer.get('performer_id')} "
                    f"is not in the cast of {movie.title}"
                )


def check_event_editable(
    event: Optional[EventRecord], changes: Optional[dict] = None
) -> EventRecord:
    """
    Locked events cannot change at all. Once teams have entered, the cap cannot
    drop below the entry count and the fee and required positions are frozen.
    """
    if event is None:
        raise NotFoundError("Event not found")
    if event.status in LOCKED_EVENT_STATUSES:
        raise ConflictError(f"Cannot modify {event.status} event")
    changes = changes or {}
    entered = event.current_participants
    if "max_participants" in changes and changes["max_participants"] < entered:
        raise ConflictError(
            f"Max participants cannot be lower than the {entered} teams already entered"
        )
    if entered and "rules" in changes:
        rules = changes["rules"] or {}
        if int(rules.get("entry_fee", 0) or 0) != event.entry_fee:
            raise ConflictError("Cannot change the entry fee after teams have entered")
        new_positions = active_positions(rules.get("required_positions") or {})
        if new_positions != active_positions(event.required_positions):
            raise ConflictError(
                "Cannot change required positions after teams have entered"
            )
    return event


def check_scorable(event: Optional[EventRecord]) -> bool:
    """False when the event was already completed; cancelled events are refused."""
    if event is None:
        raise NotFoundError("Competition not found")
    if event.status == EventStatus.COMPLETED.value:
        return False
    if event.status == EventStatus.CANCELLED.value:
        raise ConflictError(f"Cannot score {event.status} event")
    return True


def check_status_transition(event: Optional[EventRecord], status: EventStatus) -> EventRecord:
    if event is None:
        raise NotFoundError("Event not found")
    current = EventStatus(event.status)
    if status == current:
        return event
    if status not in EVENT_STATUS_TRANSITIONS[current]:
        raise ConflictError(f"Cannot move event from {current.value} to {status.value}")
    return event


def check_entry(
    event: Optional[EventRecord],
    user: Optional[UserRecord],
    existing_team: Optional[TeamRecord],
    team: dict[str, list[str]],
    cards_by_id: Dict[str, CardRecord],
    now: Optional[datetime] = None,
) -> EventRecord:
    """Everything that must hold before a team is written and the fee is taken."""
    if event is None:
        raise NotFoundError("Competition not found")
    if event.status not in OPEN_EVENT_STATUSES:
        raise ConflictError(f"Competition is {event.status}")
    now = now or datetime.now(timezone.utc)
    if parse_timestamp(event.end_date) <= now:
        raise ConflictError("Competition has ended")
    if user is None:
        raise NotFoundError("User not found")
    if existing_team is not None:
        raise ConflictError("You have already entered this competition")
    if event.current_participants >= event.max_participants:
        raise ConflictError("Competition is full")
    if user.points < event.entry_fee:
        raise InsufficientPointsError()
    validate_team(
        event.required_positions,
        team,
        cards_by_id,
        owner=user.address,
        max_performers=event.max_performers,
    )
    return event


# -------------------- In-memory implementation --------------------


class InMemoryDbClient:
    """Simple in-memory database for development and tests.

    A re-entrant lock serializes every call, which makes each multi-step
    operation atomic with respect to other requests in the same process.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self.users: Dict[str, UserRecord] = {}
        self.performers: Dict[str, PerformerRecord] = {}
        self.movies: Dict[str, MovieRecord] = {}
        self.cards: Dict[str, CardRecord] = {}
        self.events: Dict[str, EventRecord] = {}
        self.teams: Dict[str, TeamRecord] = {}
        self.scene_points: Dict[str, ScenePointValue] = {}
        self.jobs: Dict[str, JobRecord] = {}

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self._lock:
            self.users.clear()
            self.performers.clear()
            self.movies.clear()
            self.cards.clear()
            self.events.clear()
            self.teams.clear()
            self.scene_points.clear()
            self.jobs.clear()

    def ping(self) -> None:
        return None

    # Users

    def get_user(self, address: str) -> Optional[UserRecord]:
        with self._lock:
            return copy.deepcopy(self.users.get(address.lower()))

    def ensure_user(self, address: str, initial_points: int) -> UserRecord:
        address = address.lower()
        with self._lock:
            user = self.users.get(address)
            if user is None:
                user = UserRecord(address=address, points=initial_points)
                self.users[address] = user
            elif user.points < initial_points:
                user.points = initial_points
                user.updated_at = time.time()
            return copy.deepcopy(user)

    def list_users_below(self, points: int, limit: int) -> list[UserRecord]:
        with self._lock:
            below = sorted(
                (u for u in self.users.values() if u.points < points),
                key=lambda u: u.address,
            )
            return copy.deepcopy(below[:limit])

    def top_up_users(self, addresses: list[str], points: int) -> int:
        updated = 0
        with self._lock:
            for address in addresses:
                user = self.users.get(address.lower())
                if user and user.points < points:
                    user.points = points
                    user.updated_at = time.time()
                    updated += 1
        return updated

    def list_leaders(self, stat: str, limit: int = 10) -> list[UserRecord]:
        check_leaderboard_stat(stat)
        with self._lock:
            ordered = sorted(
                self.users.values(),
                key=lambda u: (-getattr(u, stat), u.address),
            )
            return copy.deepcopy(ordered[:limit])

    # Performers

    def create_performer(self, performer: PerformerRecord) -> PerformerRecord:
        with self._lock:
            self.performers[performer.performer_id] = copy.deepcopy(performer)
            return performer

    def get_performer(self, performer_id: str) -> Optional[PerformerRecord]:
        with self._lock:
            return copy.deepcopy(self.performers.get(performer_id))

    def list_performers(
        self, query: Optional[str] = None, limit: int = 50, offset: int = 0
    ) -> list[PerformerRecord]:
        needle = (query or "").strip().lower()
        with self._lock:
            matches = sorted(
                (
                    p
                    for p in self.performers.values()
                    if not needle or needle in p.name.lower()
                ),
                key=lambda p: p.name.lower(),
            )
            return copy.deepcopy(matches[offset : offset + limit])

    def set_performer_image(
        self, performer_id: str, image_path: str
    ) -> PerformerRecord:
        with self._lock:
            performer = self.performers.get(performer_id)
            if performer is None:
                raise NotFoundError("Performer not found")
            performer.image_path = image_path
            performer.updated_at = time.time()
            return copy.deepcopy(performer)

    # Movies

    def _title_taken(self, title: str, exclude_id: Optional[str] = None) -> bool:
        key = normalize_title(title)
        return any(
            normalize_title(m.title) == key
            for m in self.movies.values()
            if m.movie_id != exclude_id
        )

    def create_movie(
        self,
        movie: MovieRecord,
        points_per_movie: int,
        new_performers: Iterable[PerformerRecord] = (),
    ) -> MovieRecord:
        with self._lock:
            if self._title_taken(movie.title):
                raise ConflictError("A movie with this title already exists")
            submitter = None
            if movie.submitted_by:
                submitter = self.users.get(movie.submitted_by.lower())
                if submitter is None:
                    raise NotFoundError("User not found")

            now = time.time()
            for performer in new_performers:
                self.performers[performer.performer_id] = copy.deepcopy(performer)
            self.movies[movie.movie_id] = copy.deepcopy(movie)
            if submitter is not None:
                submitter.points += points_per_movie
                submitter.movies_submitted += 1
                submitter.updated_at = now
            for performer_id in movie.performer_ids():
                performer = self.performers.get(performer_id)
                if performer:
                    performer.movie_count += 1
                    performer.updated_at = now
            return copy.deepcopy(movie)

    def get_movie(self, movie_id: str) -> Optional[MovieRecord]:
        with self._lock:
            return copy.deepcopy(self.movies.get(movie_id))

    def get_movies(self, movie_ids: Iterable[str]) -> list[MovieRecord]:
        with self._lock:
            return [
                copy.deepcopy(self.movies[movie_id])
                for movie_id in movie_ids
                if movie_id in self.movies
            ]

    def list_movies(self, limit: int = 20, offset: int = 0) -> list[MovieRecord]:
        with self._lock:
            ordered = sorted(
                self.movies.values(),
                key=lambda m: (m.release_date, m.created_at),
                reverse=True,
            )
            return copy.deepcopy(ordered[offset : offset + limit])

    def movies_for_performer(self, performer_id: str) -> list[MovieRecord]:
        with self._lock:
            movies = [
                m for m in self.movies.values() if performer_id in m.performer_ids()
            ]
            movies.sort(key=lambda m: m.release_date, reverse=True)
            return copy.deepcopy(movies)

    def update_movie(
        self,
        movie_id: str,
        changes: dict,
        new_performers: Iterable[PerformerRecord] = (),
    ) -> MovieRecord:
        with self._lock:
            movie = self.movies.get(movie_id)
            if movie is None:
                raise NotFoundError("Movie not found")
            if "title" in changes and self._title_taken(changes["title"], movie_id):
                raise ConflictError("A movie with this title already exists")
            for performer in new_performers:
                self.performers[performer.performer_id] = copy.deepcopy(performer)
            before = set(movie.performer_ids())
            for key, value in changes.items():
                setattr(movie, key, copy.deepcopy(value))
            after = set(movie.performer_ids())
            for performer_id in after - before:
                performer = self.performers.get(performer_id)
                if performer:
                    performer.movie_count += 1
            for performer_id in before - after:
                performer = self.performers.get(performer_id)
                if performer and performer.movie_count > 0:
                    performer.movie_count -= 1
            movie.updated_at = time.time()
            return copy.deepcopy(movie)

    def delete_movie(self, movie_id: str) -> None:
        with self._lock:
            movie = self.movies.pop(movie_id, None)
            if movie is None:
                raise NotFoundError("Movie not found")
            for performer_id in movie.performer_ids():
                performer = self.performers.get(performer_id)
                if performer and performer.movie_count > 0:
                    performer.movie_count -= 1

    def add_scenes(
        self,
        movie_id: str,
        scenes: list[dict],
        submitted_by: str,
        points_per_scene: int = 0,
    ) -> MovieRecord:
        with self._lock:
            movie = self.movies.get(movie_id)
            if movie is None:
                raise NotFoundError("Movie not found")
            check_scene_performers(movie, scenes)
            now = time.time()
            movie.scenes.extend(copy.deepcopy(scenes))
            movie.updated_at = now
            user = self.users.get(submitted_by.lower())
            if user is not None:
                user.scenes_submitted += len(scenes)
                user.points += points_per_scene * len(scenes)
                user.updated_at = now
            return copy.deepcopy(movie)

    # Cards

    def create_card(self, card: CardRecord) -> CardRecord:
        with self._lock:
            self.cards[card.card_id] = copy.deepcopy(card)
            return card

    def get_card(self, card_id: str) -> Optional[CardRecord]:
        with self._lock:
            return copy.deepcopy(self.cards.get(card_id))

    def get_cards(self, card_ids: Iterable[str]) -> Dict[str, CardRecord]:
        with self._lock:
            return {
                card_id: copy.deepcopy(self.cards[card_id])
                for card_id in card_ids
                if card_id in self.cards
            }

    def list_cards(
        self,
        *,
        available: Optional[bool] = None,
        owner_id: Optional[str] = None,
        performer_id: Optional[str] = None,
    ) -> list[CardRecord]:
        with self._lock:
            cards = [
                c
                for c in self.cards.values()
                if (available is None or c.available == available)
                and (owner_id is None or c.owner_id == owner_id.lower())
                and (performer_id is None or c.performer_id == performer_id)
            ]
            cards.sort(key=lambda c: c.created_at)
            return copy.deepcopy(cards)

    def delete_card(self, card_id: str) -> None:
        with self._lock:
            card = self.cards.get(card_id)
            if card is None:
                raise NotFoundError("Card not found")
            if card.owner_id:
                raise ConflictError("Cannot delete a card that has an owner")
            del self.cards[card_id]

    def purchase_card(self, address: str, card_id: str) -> tuple[CardRecord, UserRecord]:
        address = address.lower()
        with self._lock:
            card = self.cards.get(card_id)
            user = self.users.get(address)
            check_purchase(user, card)
            now = time.time()
            card.owner_id = address
            card.available = False
            card.purchased_at = now
            user.points -= card.price
            user.nft_count += 1
            user.updated_at = now
            return copy.deepcopy(card), copy.deepcopy(user)

    # Events

    def create_event(self, event: EventRecord) -> EventRecord:
        with self._lock:
            self.events[event.event_id] = copy.deepcopy(event)
            return event

    def get_event(self, event_id: str) -> Optional[EventRecord]:
        with self._lock:
            return copy.deepcopy(self.events.get(event_id))

    def list_events(
        self,
        *,
        type: Optional[str] = None,
        statuses: Optional[Iterable[str]] = None,
        offset: int = 0,
        limit: int = 10,
        sort_by: str = "start_date",
        descending: bool = True,
    ) -> tuple[list[EventRecord], int]:
        check_event_sort(sort_by)
        wanted = set(statuses) if statuses is not None else None
        with self._lock:
            events = [
                e
                for e in self.events.values()
                if (type is None or e.type == type)
                and (wanted is None or e.status in wanted)
            ]
            events.sort(key=lambda e: getattr(e, sort_by), reverse=descending)
            return copy.deepcopy(events[offset : offset + limit]), len(events)

    def update_event(self, event_id: str, changes: dict) -> EventRecord:
        with self._lock:
            event = check_event_editable(self.events.get(event_id), changes)
            for key, value in changes.items():
                setattr(event, key, copy.deepcopy(value))
            event.updated_at = time.time()
            return copy.deepcopy(event)

    def delete_event(self, event_id: str) -> None:
        with self._lock:
            check_event_editable(self.events.get(event_id))
            del self.events[event_id]

    def set_event_status(self, event_id: str, status: EventStatus) -> EventRecord:
        with self._lock:
            event = check_status_transition(self.events.get(event_id), status)
            event.status = status.value
            event.updated_at = time.time()
            return copy.deepcopy(event)

    # Competition teams

    def enter_competition(
        self, address: str, event_id: str, team: dict[str, list[str]]
    ) -> TeamRecord:
        address = address.lower()
        with self._lock:
            event = self.events.get(event_id)
            user = self.users.get(address)
            check_entry(
                event,
                user,
                self.teams.get(team_key(event_id, address)),
                team,
                {cid: self.cards[cid] for cid in team_card_ids(team) if cid in self.cards},
            )
            record = TeamRecord(
                competition_id=event_id, user_id=address, team=copy.deepcopy(team)
            )
            self.teams[record.key] = record
            event.current_participants += 1
            event.updated_at = record.created_at
            user.points -= event.entry_fee
            user.updated_at = record.created_at
            return copy.deepcopy(record)

    def get_team(self, event_id: str, address: str) -> Optional[TeamRecord]:
        with self._lock:
            return copy.deepcopy(self.teams.get(team_key(event_id, address)))

    def list_teams(self, event_id: str) -> list[TeamRecord]:
        with self._lock:
            teams = [t for t in self.teams.values() if t.competition_id == event_id]
            teams.sort(key=lambda t: (t.rank is None, t.rank or 0, t.created_at))
            return copy.deepcopy(teams)

    def list_user_teams(self, address: str) -> list[TeamRecord]:
        address = address.lower()
        with self._lock:
            teams = [t for t in self.teams.values() if t.user_id == address]
            teams.sort(key=lambda t: t.created_at, reverse=True)
            return copy.deepcopy(teams)

    def complete_competition(
        self,
        event_id: str,
        ranked: list[tuple[str, float, int]],
        awards: dict[str, int],
    ) -> bool:
        with self._lock:
            event = self.events.get(event_id)
            if not check_scorable(event):
                return False
            now = time.time()
            for user_id, score, rank in ranked:
                team = self.teams.get(team_key(event_id, user_id))
                if team is None:
                    continue
                team.points = score
                team.rank = rank
                team.updated_at = now
                user = self.users.get(user_id)
                if user is None:
                    continue
                user.points += awards.get(user_id, 0)
                if rank == 1:
                    user.tournament_wins += 1
                user.updated_at = now
            event.status = EventStatus.COMPLETED.value
            event.updated_at = now
            return True

    # Scene point values

    def list_scene_points(self) -> list[ScenePointValue]:
        with self._lock:
            return copy.deepcopy(sorted(self.scene_points.values(), key=lambda v: v.name))

    def save_scene_points(self, values: list[ScenePointValue]) -> list[ScenePointValue]:
        with self._lock:
            for value in values:
                value.updated_at = time.time()
                self.scene_points[value.tag_id] = copy.deepcopy(value)
        return self.list_scene_points()

    # Jobs

    def create_job(self, kind: JobKind, payload: Optional[dict] = None) -> JobRecord:
        record = JobRecord(job_id=new_id(), kind=kind, payload=dict(payload or {}))
        with self._lock:
            self.jobs[record.job_id] = record
            return copy.deepcopy(record)

    def get_job(self, job_id: str) -> Optional[JobRecord]:
        with self._lock:
            return copy.deepcopy(self.jobs.get(job_id))

    def _claim(self, job: JobRecord) -> JobRecord:
        now = time.time()
        job.status = JobStatus.RUNNING
        job.stage = "CLAIMED"
        job.locked_at = now
        job.updated_at = now
        return copy.deepcopy(job)

    def claim_job(self, job_id: str) -> Optional[JobRecord]:
        with self._lock:
            job = self.jobs.get(job_id)
            if job is None or job.status != JobStatus.WAITING:
                return None
            return self._claim(job)

    def claim_next_waiting_job(self) -> Optional[JobRecord]:
        with self._lock:
            waiting = sorted(
                (j for j in self.jobs.values() if j.status == JobStatus.WAITING),
                key=lambda j: j.created_at,
            )
            if not waiting:
                return None
            return self._claim(waiting[0])

    def update_job_progress(
        self,
        job_id: str,
        *,
        status: Optional[JobStatus] = None,
        stage: Optional[str] = None,
        progress_percent: Optional[float] = None,
        error: Optional[str] = None,
    ) -> None:
        with self._lock:
            job = self.jobs.get(job_id)
            if not job:
                return
            if status:
                job.status = status
            if stage:
                job.stage = stage
            if progress_percent is not None:
                job.progress_percent = progress_percent
            if error is not None:
                job.error = error
            job.updated_at = time.time()

    def requeue_stale_locks(self, lock_timeout_seconds: float = 600) -> int:
        now = time.time()
        requeued = 0
        with self._lock:
            for job in self.jobs.values():
                if (
                    job.status == JobStatus.RUNNING
                    and job.locked_at
                    and now - job.locked_at > lock_timeout_seconds
                ):
                    job.status = JobStatus.WAITING
                    job.stage = "WAITING"
                    job.progress_percent = 0.0
                    job.locked_at = None
                    job.updated_at = now
                    requeued += 1
        return requeued
