"""
SQLAlchemy-backed DbClient. Accepts any SQLAlchemy URL (Postgres in production,
SQLite for local runs and tests).

Every multi-document operation runs in one session transaction and locks the
rows it changes with SELECT ... FOR UPDATE. SQLite ignores FOR UPDATE, so its
transactions start with BEGIN IMMEDIATE instead. Contended counters and card
ownership are also written with guarded UPDATEs whose WHERE clause restates
the check.
"""

from __future__ import annotations

import logging
import time
from typing import Dict, Iterable, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Float,
    Integer,
    String,
    Text,
    create_engine,
    event,
    func,
    select,
    text,
    update,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from fantasy_backend.constants import (
    OPEN_EVENT_STATUSES,
    EventStatus,
    JobKind,
    JobStatus,
)
from fantasy_backend.db import (
    check_entry,
    check_event_editable,
    check_event_sort,
    check_leaderboard_stat,
    check_purchase,
    check_scene_performers,
    check_scorable,
    check_status_transition,
    new_id,
    normalize_title,
)
from fantasy_backend.errors import ConflictError, InsufficientPointsError, NotFoundError
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
from fantasy_backend.rosters import team_card_ids

logger = logging.getLogger(__name__)

DUPLICATE_TITLE = "A movie with this title already exists"


def _begin_immediate(engine) -> None:
    """
    Make every SQLite transaction take the write lock when it starts. pysqlite
    otherwise defers BEGIN, and two deferred writers can deadlock with
    "database is locked".
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class SqlDbClient:
    """DbClient over a relational database."""

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlDbClient")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        if self.engine.dialect.name == "sqlite":
            _begin_immediate(self.engine)
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def ping(self) -> None:
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    # -------------------- Row conversion --------------------

    @staticmethod
    def _to_user(row: "UserRow") -> UserRecord:
        return UserRecord(
            address=row.address,
            points=row.points,
            movies_submitted=row.movies_submitted,
            scenes_submitted=row.scenes_submitted,
            nft_count=row.nft_count,
            tournament_wins=row.tournament_wins,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    @staticmethod
    def _to_performer(row: "PerformerRow") -> PerformerRecord:
        return PerformerRecord(
            performer_id=row.performer_id,
            name=row.name,
            gender=row.gender,
            positions=list(row.positions or []),
            bio=row.bio or "",
            date_of_birth=row.date_of_birth,
            image_path=row.image_path,
            movie_count=row.movie_count,
            submitted_by=row.submitted_by,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    @staticmethod
    def _to_movie(row: "MovieRow") -> MovieRecord:
        return MovieRecord(
            movie_id=row.movie_id,
            title=row.title,
            studio=row.studio,
            release_date=row.release_date,
            performers=list(row.performers or []),
            scenes=list(row.scenes or []),
            description=row.description,
            genre=list(row.genre or []),
            rating=row.rating,
            submitted_by=row.submitted_by,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    @staticmethod
    def _to_card(row: "CardRow") -> CardRecord:
        return CardRecord(
            card_id=row.card_id,
            name=row.name,
            price=row.price,
            rarity=row.rarity,
            image=row.image,
            available=row.available,
            owner_id=row.owner_id,
            performer_id=row.performer_id,
            positions=list(row.positions or []),
            stats=dict(row.stats or {}),
            traits=list(row.traits or []),
            created_at=row.created_at,
            purchased_at=row.purchased_at,
        )

    @staticmethod
    def _to_event(row: "EventRow") -> EventRecord:
        return EventRecord(
            event_id=row.event_id,
            title=row.title,
            description=row.description,
            type=row.type,
            status=row.status,
            start_date=row.start_date,
            end_date=row.end_date,
            rules=dict(row.rules or {}),
            prizes=list(row.prizes or []),
            movie_pool=list(row.movie_pool or []),
            max_participants=row.max_participants,
            current_participants=row.current_participants,
            prize_pool=row.prize_pool,
            created_by=row.created_by,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    @staticmethod
    def _to_team(row: "TeamRow") -> TeamRecord:
        return TeamRecord(
            competition_id=row.competition_id,
            user_id=row.user_id,
            team={k: list(v) for k, v in (row.team or {}).items()},
            points=row.points,
            rank=row.rank,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    @staticmethod
    def _to_job(row: "JobRow") -> JobRecord:
        return JobRecord(
            job_id=row.job_id,
            kind=JobKind(row.kind),
            payload=dict(row.payload or {}),
            status=JobStatus(row.status),
            stage=row.stage,
            progress_percent=row.progress_percent,
            error=row.error,
            locked_at=row.locked_at,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    # -------------------- Users --------------------

    def get_user(self, address: str) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.get(UserRow, address.lower())
            return self._to_user(row) if row else None

    def ensure_user(self, address: str, initial_points: int) -> UserRecord:
        address = address.lower()
        now = time.time()
        with self.Session() as session:
            row = session.get(UserRow, address, with_for_update=True)
            if row is None:
                row = UserRow(
                    address=address,
                    points=initial_points,
                    movies_submitted=0,
                    scenes_submitted=0,
                    nft_count=0,
                    tournament_wins=0,
                    created_at=now,
                    updated_at=now,
                )
                session.add(row)
            elif row.points < initial_points:
                row.points = initial_points
                row.updated_at = now
            try:
                session.commit()
            except IntegrityError:
                # Another request created the user first.
                session.rollback()
                row = session.get(UserRow, address)
            return self._to_user(row)

    def list_users_below(self, points: int, limit: int) -> list[UserRecord]:
        with self.Session() as session:
            rows = session.execute(
                select(UserRow)
                .where(UserRow.points < points)
                .order_by(UserRow.address.asc())
                .limit(limit)
            ).scalars()
            return [self._to_user(row) for row in rows]

    def top_up_users(self, addresses: list[str], points: int) -> int:
        if not addresses:
            return 0
        with self.Session() as session:
            updated = (
                session.query(UserRow)
                .filter(
                    UserRow.address.in_([a.lower() for a in addresses]),
                    UserRow.points < points,
                )
                .update(
                    {UserRow.points: points, UserRow.updated_at: time.time()},
                    synchronize_session=False,
                )
            )
            session.commit()
            return updated or 0

    def list_leaders(self, stat: str, limit: int = 10) -> list[UserRecord]:
        check_leaderboard_stat(stat)
        column = getattr(UserRow, stat)
        with self.Session() as session:
            rows = session.execute(
                select(UserRow)
                .order_by(column.desc(), UserRow.address.asc())
                .limit(limit)
            ).scalars()
            return [self._to_user(row) for row in rows]

    # -------------------- Performers --------------------

    @staticmethod
    def _performer_row(performer: PerformerRecord) -> "PerformerRow":
        return PerformerRow(
            performer_id=performer.performer_id,
            name=performer.name,
            gender=performer.gender,
            positions=list(performer.positions),
            bio=performer.bio,
            date_of_birth=performer.date_of_birth,
            image_path=performer.image_path,
            movie_count=performer.movie_count,
            submitted_by=performer.submitted_by,
            created_at=performer.created_at,
            updated_at=performer.updated_at,
        )

    def create_performer(self, performer: PerformerRecord) -> PerformerRecord:
        with self.Session() as session:
            session.add(self._performer_row(performer))
            session.commit()
        return performer

    def get_performer(self, performer_id: str) -> Optional[PerformerRecord]:
        with self.Session() as session:
            row = session.get(PerformerRow, performer_id)
            return self._to_performer(row) if row else None

    def list_performers(
        self, query: Optional[str] = None, limit: int = 50, offset: int = 0
    ) -> list[PerformerRecord]:
        stmt = select(PerformerRow)
        needle = (query or "").strip()
        if needle:
            stmt = stmt.where(PerformerRow.name.ilike(f"%{needle}%"))
        stmt = stmt.order_by(func.lower(PerformerRow.name)).offset(offset).limit(limit)
        with self.Session() as session:
            return [self._to_performer(row) for row in session.execute(stmt).scalars()]

    def set_performer_image(
        self, performer_id: str, image_path: str
    ) -> PerformerRecord:
        with self.Session() as session:
            row = session.get(PerformerRow, performer_id, with_for_update=True)
            if row is None:
                raise NotFoundError("Performer not found")
            row.image_path = image_path
            row.updated_at = time.time()
            session.commit()
            return self._to_performer(row)

    @staticmethod
    def _guarded_update(session: Session, stmt) -> bool:
        result = session.execute(stmt.execution_options(synchronize_session=False))
        return result.rowcount == 1

    def _bump_movie_counts(
        self, session: Session, performer_ids: Iterable[str], delta: int
    ) -> None:
        ids = list(performer_ids)
        if not ids:
            return
        rows = session.execute(
            select(PerformerRow)
            .where(PerformerRow.performer_id.in_(ids))
            .with_for_update()
        ).scalars()
        for row in rows:
            row.movie_count = max(0, row.movie_count + delta)

    # -------------------- Movies --------------------

    def _title_taken(
        self, session: Session, title: str, exclude_id: Optional[str] = None
    ) -> bool:
        stmt = select(MovieRow.movie_id).where(MovieRow.title_key == normalize_title(title))
        if exclude_id:
            stmt = stmt.where(MovieRow.movie_id != exclude_id)
        return session.execute(stmt).first() is not None

    def create_movie(
        self,
        movie: MovieRecord,
        points_per_movie: int,
        new_performers: Iterable[PerformerRecord] = (),
    ) -> MovieRecord:
        with self.Session() as session:
            if self._title_taken(session, movie.title):
                raise ConflictError(DUPLICATE_TITLE)
            submitter = None
            if movie.submitted_by:
                submitter = session.get(
                    UserRow, movie.submitted_by.lower(), with_for_update=True
                )
                if submitter is None:
                    raise NotFoundError("User not found")

            for performer in new_performers:
                session.add(self._performer_row(performer))
            session.add(
                MovieRow(
                    movie_id=movie.movie_id,
                    title=movie.title,
                    title_key=normalize_title(movie.title),
                    studio=movie.studio,
                    release_date=movie.release_date,
                    performers=list(movie.performers),
                    scenes=list(movie.scenes),
                    description=movie.description,
                    genre=list(movie.genre),
                    rating=movie.rating,
                    submitted_by=movie.submitted_by,
                    created_at=movie.created_at,
                    updated_at=movie.updated_at,
                )
            )
            for performer_id in movie.performer_ids():
                session.add(
                    MoviePerformerRow(movie_id=movie.movie_id, performer_id=performer_id)
                )
            if submitter is not None:
                submitter.points += points_per_movie
                submitter.movies_submitted += 1
                submitter.updated_at = time.time()
            try:
                self._bump_movie_counts(session, movie.performer_ids(), 1)
                session.commit()
            except IntegrityError:
                session.rollback()
                raise ConflictError(DUPLICATE_TITLE)
        return movie

    def get_movie(self, movie_id: str) -> Optional[MovieRecord]:
        with self.Session() as session:
            row = session.get(MovieRow, movie_id)
            return self._to_movie(row) if row else None

    def get_movies(self, movie_ids: Iterable[str]) -> list[MovieRecord]:
        ids = list(movie_ids)
        if not ids:
            return []
        with self.Session() as session:
            rows = session.execute(
                select(MovieRow).where(MovieRow.movie_id.in_(ids))
            ).scalars()
            by_id = {row.movie_id: self._to_movie(row) for row in rows}
        return [by_id[movie_id] for movie_id in ids if movie_id in by_id]

    def list_movies(self, limit: int = 20, offset: int = 0) -> list[MovieRecord]:
        with self.Session() as session:
            rows = session.execute(
                select(MovieRow)
                .order_by(MovieRow.release_date.desc(), MovieRow.created_at.desc())
                .offset(offset)
                .limit(limit)
            ).scalars()
            return [self._to_movie(row) for row in rows]

    def movies_for_performer(self, performer_id: str) -> list[MovieRecord]:
        with self.Session() as session:
            rows = session.execute(
                select(MovieRow)
                .join(MoviePerformerRow, MoviePerformerRow.movie_id == MovieRow.movie_id)
                .where(MoviePerformerRow.performer_id == performer_id)
                .order_by(MovieRow.release_date.desc())
            ).scalars()
            return [self._to_movie(row) for row in rows]

    def update_movie(
        self,
        movie_id: str,
        changes: dict,
        new_performers: Iterable[PerformerRecord] = (),
    ) -> MovieRecord:
        with self.Session() as session:
            row = session.get(MovieRow, movie_id, with_for_update=True)
            if row is None:
                raise NotFoundError("Movie not found")
            if "title" in changes:
                if self._title_taken(session, changes["title"], movie_id):
                    raise ConflictError(DUPLICATE_TITLE)
                row.title_key = normalize_title(changes["title"])
            for performer in new_performers:
                session.add(self._performer_row(performer))
            before = set(self._to_movie(row).performer_ids())
            for key, value in changes.items():
                setattr(row, key, value)
            movie = self._to_movie(row)
            after = set(movie.performer_ids())
            for performer_id in after - before:
                session.add(MoviePerformerRow(movie_id=movie_id, performer_id=performer_id))
            if before - after:
                session.query(MoviePerformerRow).filter(
                    MoviePerformerRow.movie_id == movie_id,
                    MoviePerformerRow.performer_id.in_(before - after),
                ).delete(synchronize_session=False)
            self._bump_movie_counts(session, after - before, 1)
            self._bump_movie_counts(session, before - after, -1)
            row.updated_at = time.time()
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                raise ConflictError(DUPLICATE_TITLE)
            return self._to_movie(row)

    def delete_movie(self, movie_id: str) -> None:
        with self.Session() as session:
            row = session.get(MovieRow, movie_id, with_for_update=True)
            if row is None:
                raise NotFoundError("Movie not found")
            performer_ids = self._to_movie(row).performer_ids()
            session.query(MoviePerformerRow).filter(
                MoviePerformerRow.movie_id == movie_id
            ).delete(synchronize_session=False)
            self._bump_movie_counts(session, performer_ids, -1)
            session.delete(row)
            session.commit()

    def add_scenes(
        self,
        movie_id: str,
        scenes: list[dict],
        submitted_by: str,
        points_per_scene: int = 0,
    ) -> MovieRecord:
        with self.Session() as session:
            row = session.get(MovieRow, movie_id, with_for_update=True)
            if row is None:
                raise NotFoundError("Movie not found")
            check_scene_performers(self._to_movie(row), scenes)
            now = time.time()
            row.scenes = list(row.scenes or []) + list(scenes)
            row.updated_at = now
            user = session.get(UserRow, submitted_by.lower(), with_for_update=True)
            if user is not None:
                user.scenes_submitted += len(scenes)
                user.points += points_per_scene * len(scenes)
                user.updated_at = now
            session.commit()
            return self._to_movie(row)

    # -------------------- Cards --------------------

    def create_card(self, card: CardRecord) -> CardRecord:
        with self.Session() as session:
            session.add(
                CardRow(
                    card_id=card.card_id,
                    name=card.name,
                    price=card.price,
                    rarity=card.rarity,
                    image=card.image,
                    available=card.available,
                    owner_id=card.owner_id,
                    performer_id=card.performer_id,
                    positions=list(card.positions),
                    stats=dict(card.stats),
                    traits=list(card.traits),
                    created_at=card.created_at,
                    purchased_at=card.purchased_at,
                )
            )
            session.commit()
        return card

    def get_card(self, card_id: str) -> Optional[CardRecord]:
        with self.Session() as session:
            row = session.get(CardRow, card_id)
            return self._to_card(row) if row else None

    def get_cards(self, card_ids: Iterable[str]) -> Dict[str, CardRecord]:
        ids = list(card_ids)
        if not ids:
            return {}
        with self.Session() as session:
            rows = session.execute(select(CardRow).where(CardRow.card_id.in_(ids))).scalars()
            return {row.card_id: self._to_card(row) for row in rows}

    def list_cards(
        self,
        *,
        available: Optional[bool] = None,
        owner_id: Optional[str] = None,
        performer_id: Optional[str] = None,
    ) -> list[CardRecord]:
        stmt = select(CardRow)
        if available is not None:
            stmt = stmt.where(CardRow.available == available)
        if owner_id is not None:
            stmt = stmt.where(CardRow.owner_id == owner_id.lower())
        if performer_id is not None:
            stmt = stmt.where(CardRow.performer_id == performer_id)
        stmt = stmt.order_by(CardRow.created_at.asc())
        with self.Session() as session:
            return [self._to_card(row) for row in session.execute(stmt).scalars()]

    def delete_card(self, card_id: str) -> None:
        with self.Session() as session:
            row = session.get(CardRow, card_id, with_for_update=True)
            if row is None:
                raise NotFoundError("Card not found")
            if row.owner_id:
                raise ConflictError("Cannot delete a card that has an owner")
            session.delete(row)
            session.commit()

    def purchase_card(self, address: str, card_id: str) -> tuple[CardRecord, UserRecord]:
        address = address.lower()
        with self.Session() as session:
            card_row = session.get(CardRow, card_id, with_for_update=True)
            user_row = session.get(UserRow, address, with_for_update=True)
            check_purchase(
                self._to_user(user_row) if user_row else None,
                self._to_card(card_row) if card_row else None,
            )
            now = time.time()
            price = card_row.price
            claimed = self._guarded_update(
                session,
                update(CardRow)
                .where(
                    CardRow.card_id == card_id,
                    CardRow.available.is_(True),
                    CardRow.owner_id.is_(None),
                )
                .values(owner_id=address, available=False, purchased_at=now),
            )
            if not claimed:
                session.rollback()
                raise ConflictError("Card is no longer available")
            debited = self._guarded_update(
                session,
                update(UserRow)
                .where(UserRow.address == address, UserRow.points >= price)
                .values(
                    points=UserRow.points - price,
                    nft_count=UserRow.nft_count + 1,
                    updated_at=now,
                ),
            )
            if not debited:
                session.rollback()
                raise InsufficientPointsError()
            session.commit()
            session.refresh(card_row)
            session.refresh(user_row)
            return self._to_card(card_row), self._to_user(user_row)

    # -------------------- Events --------------------

    def create_event(self, event: EventRecord) -> EventRecord:
        with self.Session() as session:
            session.add(
                EventRow(
                    event_id=event.event_id,
                    title=event.title,
                    description=event.description,
                    type=event.type,
                    status=event.status,
                    start_date=event.start_date,
                    end_date=event.end_date,
                    rules=dict(event.rules),
                    prizes=list(event.prizes),
                    movie_pool=list(event.movie_pool),
                    max_participants=event.max_participants,
                    current_participants=event.current_participants,
                    prize_pool=event.prize_pool,
                    created_by=event.created_by,
                    created_at=event.created_at,
                    updated_at=event.updated_at,
                )
            )
            session.commit()
        return event

    def get_event(self, event_id: str) -> Optional[EventRecord]:
        with self.Session() as session:
            row = session.get(EventRow, event_id)
            return self._to_event(row) if row else None

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
        filters = []
        if type is not None:
            filters.append(EventRow.type == type)
        if statuses is not None:
            filters.append(EventRow.status.in_(list(statuses)))
        column = getattr(EventRow, sort_by)
        with self.Session() as session:
            total = session.execute(
                select(func.count()).select_from(EventRow).where(*filters)
            ).scalar_one()
            rows = session.execute(
                select(EventRow)
                .where(*filters)
                .order_by(column.desc() if descending else column.asc())
                .offset(offset)
                .limit(limit)
            ).scalars()
            return [self._to_event(row) for row in rows], total

    def update_event(self, event_id: str, changes: dict) -> EventRecord:
        with self.Session() as session:
            row = session.get(EventRow, event_id, with_for_update=True)
            check_event_editable(self._to_event(row) if row else None, changes)
            for key, value in changes.items():
                setattr(row, key, value)
            row.updated_at = time.time()
            session.commit()
            return self._to_event(row)

    def delete_event(self, event_id: str) -> None:
        with self.Session() as session:
            row = session.get(EventRow, event_id, with_for_update=True)
            check_event_editable(self._to_event(row) if row else None)
            session.delete(row)
            session.commit()

    def set_event_status(self, event_id: str, status: EventStatus) -> EventRecord:
        with self.Session() as session:
            row = session.get(EventRow, event_id, with_for_update=True)
            check_status_transition(self._to_event(row) if row else None, status)
            row.status = status.value
            row.updated_at = time.time()
            session.commit()
            return self._to_event(row)

    # -------------------- Competition teams --------------------

    def enter_competition(
        self, address: str, event_id: str, team: dict[str, list[str]]
    ) -> TeamRecord:
        address = address.lower()
        key = team_key(event_id, address)
        with self.Session() as session:
            event_row = session.get(EventRow, event_id, with_for_update=True)
            user_row = session.get(UserRow, address, with_for_update=True)
            existing = session.get(TeamRow, key)
            card_rows = session.execute(
                select(CardRow).where(CardRow.card_id.in_(team_card_ids(team)))
            ).scalars()
            event = check_entry(
                self._to_event(event_row) if event_row else None,
                self._to_user(user_row) if user_row else None,
                self._to_team(existing) if existing else None,
                team,
                {row.card_id: self._to_card(row) for row in card_rows},
            )
            now = time.time()
            seated = self._guarded_update(
                session,
                update(EventRow)
                .where(
                    EventRow.event_id == event_id,
                    EventRow.status.in_(OPEN_EVENT_STATUSES),
                    EventRow.current_participants < EventRow.max_participants,
                )
                .values(
                    current_participants=EventRow.current_participants + 1,
                    updated_at=now,
                ),
            )
            if not seated:
                session.rollback()
                raise ConflictError("Competition is full")
            fee = event.entry_fee
            debited = self._guarded_update(
                session,
                update(UserRow)
                .where(UserRow.address == address, UserRow.points >= fee)
                .values(points=UserRow.points - fee, updated_at=now),
            )
            if not debited:
                session.rollback()
                raise InsufficientPointsError()
            session.add(
                TeamRow(
                    id=key,
                    competition_id=event_id,
                    user_id=address,
                    team={k: list(v) for k, v in team.items()},
                    points=0.0,
                    rank=None,
                    created_at=now,
                    updated_at=now,
                )
            )
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                raise ConflictError("You have already entered this competition")
            return self._to_team(session.get(TeamRow, key))

    def get_team(self, event_id: str, address: str) -> Optional[TeamRecord]:
        with self.Session() as session:
            row = session.get(TeamRow, team_key(event_id, address))
            return self._to_team(row) if row else None

    def list_teams(self, event_id: str) -> list[TeamRecord]:
        with self.Session() as session:
            rows = session.execute(
                select(TeamRow)
                .where(TeamRow.competition_id == event_id)
                .order_by(
                    TeamRow.rank.is_(None),
                    TeamRow.rank.asc(),
                    TeamRow.created_at.asc(),
                )
            ).scalars()
            return [self._to_team(row) for row in rows]

    def list_user_teams(self, address: str) -> list[TeamRecord]:
        with self.Session() as session:
            rows = session.execute(
                select(TeamRow)
                .where(TeamRow.user_id == address.lower())
                .order_by(TeamRow.created_at.desc())
            ).scalars()
            return [self._to_team(row) for row in rows]

    def complete_competition(
        self,
        event_id: str,
        ranked: list[tuple[str, float, int]],
        awards: dict[str, int],
    ) -> bool:
        with self.Session() as session:
            event_row = session.get(EventRow, event_id, with_for_update=True)
            if not check_scorable(self._to_event(event_row) if event_row else None):
                return False
            now = time.time()
            completed = self._guarded_update(
                session,
                update(EventRow)
                .where(
                    EventRow.event_id == event_id,
                    EventRow.status.notin_(
                        [EventStatus.COMPLETED.value, EventStatus.CANCELLED.value]
                    ),
                )
                .values(status=EventStatus.COMPLETED.value, updated_at=now),
            )
            if not completed:
                session.rollback()
                return False
            for user_id, score, rank in ranked:
                team_row = session.get(TeamRow, team_key(event_id, user_id))
                if team_row is None:
                    continue
                team_row.points = score
                team_row.rank = rank
                team_row.updated_at = now
                session.execute(
                    update(UserRow)
                    .where(UserRow.address == user_id)
                    .values(
                        points=UserRow.points + awards.get(user_id, 0),
                        tournament_wins=UserRow.tournament_wins + (1 if rank == 1 else 0),
                        updated_at=now,
                    )
                    .execution_options(synchronize_session=False)
                )
            session.commit()
            return True

    # -------------------- Scene point values --------------------

    def list_scene_points(self) -> list[ScenePointValue]:
        with self.Session() as session:
            rows = session.execute(
                select(ScenePointRow).order_by(ScenePointRow.name.asc())
            ).scalars()
            return [
                ScenePointValue(
                    tag_id=row.tag_id,
                    name=row.name,
                    points=row.points,
                    description=row.description or "",
                    updated_at=row.updated_at,
                )
                for row in rows
            ]

    def save_scene_points(self, values: list[ScenePointValue]) -> list[ScenePointValue]:
        now = time.time()
        with self.Session() as session:
            for value in values:
                row = session.get(ScenePointRow, value.tag_id)
                if row is None:
                    row = ScenePointRow(tag_id=value.tag_id)
                    session.add(row)
                row.name = value.name
                row.points = value.points
                row.description = value.description
                row.updated_at = now
            session.commit()
        return self.list_scene_points()

    # -------------------- Jobs --------------------

    def create_job(self, kind: JobKind, payload: Optional[dict] = None) -> JobRecord:
        now = time.time()
        with self.Session() as session:
            row = JobRow(
                job_id=new_id(),
                kind=kind.value,
                payload=dict(payload or {}),
                status=JobStatus.WAITING.value,
                stage="WAITING",
                progress_percent=0.0,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return self._to_job(row)

    def get_job(self, job_id: str) -> Optional[JobRecord]:
        with self.Session() as session:
            row = session.get(JobRow, job_id)
            return self._to_job(row) if row else None

    def _claim(self, session: Session, stmt) -> Optional[JobRecord]:
        row = session.execute(stmt.with_for_update(skip_locked=True)).scalar_one_or_none()
        if not row:
            return None
        now = time.time()
        row.status = JobStatus.RUNNING.value
        row.stage = "CLAIMED"
        row.locked_at = now
        row.updated_at = now
        session.commit()
        session.refresh(row)
        return self._to_job(row)

    def claim_job(self, job_id: str) -> Optional[JobRecord]:
        with self.Session() as session:
            return self._claim(
                session,
                select(JobRow).where(
                    JobRow.job_id == job_id,
                    JobRow.status == JobStatus.WAITING.value,
                ),
            )

    def claim_next_waiting_job(self) -> Optional[JobRecord]:
        with self.Session() as session:
            return self._claim(
                session,
                select(JobRow)
                .where(JobRow.status == JobStatus.WAITING.value)
                .order_by(JobRow.created_at.asc())
                .limit(1),
            )

    def update_job_progress(
        self,
        job_id: str,
        *,
        status: Optional[JobStatus] = None,
        stage: Optional[str] = None,
        progress_percent: Optional[float] = None,
        error: Optional[str] = None,
    ) -> None:
        with self.Session() as session:
            row = session.get(JobRow, job_id)
            if not row:
                return
            if status:
                row.status = status.value
            if stage:
                row.stage = stage
            if progress_percent is not None:
                row.progress_percent = progress_percent
            if error is not None:
                row.error = error
            row.updated_at = time.time()
            session.commit()

    def requeue_stale_locks(self, lock_timeout_seconds: float = 600) -> int:
        cutoff = time.time() - lock_timeout_seconds
        with self.Session() as session:
            updated = (
                session.query(JobRow)
                .filter(
                    JobRow.status == JobStatus.RUNNING.value,
                    JobRow.locked_at != None,  # noqa: E711
                    JobRow.locked_at < cutoff,
                )
                .update(
                    {
                        JobRow.status: JobStatus.WAITING.value,
                        JobRow.stage: "WAITING",
                        JobRow.progress_percent: 0.0,
                        JobRow.locked_at: None,
                        JobRow.updated_at: time.time(),
                    },
                    synchronize_session=False,
                )
            )
            session.commit()
            if updated:
                logger.warning("Requeued %d stale jobs", updated)
            return updated or 0


Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    address = Column(String, primary_key=True)
    points = Column(Integer, nullable=False, default=0, index=True)
    movies_submitted = Column(Integer, nullable=False, default=0)
    scenes_submitted = Column(Integer, nullable=False, default=0)
    nft_count = Column(Integer, nullable=False, default=0)
    tournament_wins = Column(Integer, nullable=False, default=0)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class PerformerRow(Base):
    __tablename__ = "performers"

    performer_id = Column(String, primary_key=True)
    name = Column(String, nullable=False, index=True)
    gender = Column(String, nullable=False)
    positions = Column(JSON, nullable=False)
    bio = Column(Text, nullable=True)
    date_of_birth = Column(String, nullable=True)
    image_path = Column(String, nullable=True)
    movie_count = Column(Integer, nullable=False, default=0)
    submitted_by = Column(String, nullable=True)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class MovieRow(Base):
    __tablename__ = "movies"

    movie_id = Column(String, primary_key=True)
    title = Column(String, nullable=False)
    title_key = Column(String, nullable=False, unique=True)
    studio = Column(String, nullable=False)
    release_date = Column(String, nullable=False, index=True)
    performers = Column(JSON, nullable=False)
    scenes = Column(JSON, nullable=False)
    description = Column(Text, nullable=True)
    genre = Column(JSON, nullable=False)
    rating = Column(Float, nullable=True)
    submitted_by = Column(String, nullable=True, index=True)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class MoviePerformerRow(Base):
    __tablename__ = "movie_performers"

    movie_id = Column(String, primary_key=True)
    performer_id = Column(String, primary_key=True, index=True)


class CardRow(Base):
    __tablename__ = "cards"

    card_id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    price = Column(Integer, nullable=False)
    rarity = Column(String, nullable=False)
    image = Column(String, nullable=True)
    available = Column(Boolean, nullable=False, default=True, index=True)
    owner_id = Column(String, nullable=True, index=True)
    performer_id = Column(String, nullable=True, index=True)
    positions = Column(JSON, nullable=False)
    stats = Column(JSON, nullable=False)
    traits = Column(JSON, nullable=False)
    created_at = Column(Float, nullable=False)
    purchased_at = Column(Float, nullable=True)


class EventRow(Base):
    __tablename__ = "events"

    event_id = Column(String, primary_key=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    type = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False, index=True)
    start_date = Column(String, nullable=False)
    end_date = Column(String, nullable=False)
    rules = Column(JSON, nullable=False)
    prizes = Column(JSON, nullable=False)
    movie_pool = Column(JSON, nullable=False)
    max_participants = Column(Integer, nullable=False)
    current_participants = Column(Integer, nullable=False, default=0)
    prize_pool = Column(Float, nullable=False, default=0.0)
    created_by = Column(String, nullable=True)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class TeamRow(Base):
    __tablename__ = "competition_teams"

    id = Column(String, primary_key=True)
    competition_id = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    team = Column(JSON, nullable=False)
    points = Column(Float, nullable=False, default=0.0)
    rank = Column(Integer, nullable=True)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class ScenePointRow(Base):
    __tablename__ = "scene_points"

    tag_id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    points = Column(Integer, nullable=False)
    description = Column(Text, nullable=True)
    updated_at = Column(Float, nullable=False)


class JobRow(Base):
    __tablename__ = "jobs"

    job_id = Column(String, primary_key=True)
    kind = Column(String, nullable=False)
    payload = Column(JSON, nullable=False)
    status = Column(String, nullable=False, index=True)
    stage = Column(String, nullable=False, default="WAITING")
    progress_percent = Column(Float, nullable=False, default=0.0)
    error = Column(Text, nullable=True)
    locked_at = Column(Float, nullable=True)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)
