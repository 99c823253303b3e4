"""
HTTP routes for the Fantasy Flicks API.
"""

from __future__ import annotations

import logging
import math
import random
from datetime import datetime, timezone
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from fantasy_backend.config import get_settings
from fantasy_backend.constants import (
    LEADERBOARD_STATS,
    OPEN_EVENT_STATUSES,
    PERFORMER_POSITIONS,
    POSITION_CATEGORIES,
    SCENE_TAGS,
    EventStatus,
    EventType,
    JobKind,
)
from fantasy_backend.db import DbClient, check_scorable, check_status_transition, new_id
from fantasy_backend.dependencies import (
    get_db_client,
    get_queue_client,
    get_storage_client,
    get_wallet_address,
    is_admin_address,
    normalize_address,
    require_admin,
)
from fantasy_backend.errors import PermissionDeniedError
from fantasy_backend.queue import JobQueue
from fantasy_backend.records import (
    CardRecord,
    EventRecord,
    MovieRecord,
    PerformerRecord,
    ScenePointValue,
    UserRecord,
)
from fantasy_backend.sample_cards import create_sample_cards, ensure_sample_performers
from fantasy_backend.schemas import (
    CardRequest,
    CardResponse,
    CatalogResponse,
    CompetitionLeaderboardResponse,
    ConnectWalletRequest,
    EventListResponse,
    EventRequest,
    EventResponse,
    EventStatusRequest,
    FilmographyEntry,
    HealthResponse,
    ImageUploadRequest,
    ImageUploadResponse,
    JobResponse,
    LeaderboardResponse,
    LeaderEntry,
    MoviePerformerRequest,
    MovieRequest,
    MovieResponse,
    MovieUpdateRequest,
    NativeCurrency,
    NetworkResponse,
    Pagination,
    PerformerProfileResponse,
    PerformerRequest,
    PerformerResponse,
    PurchaseResponse,
    ScenePointResponse,
    ScenePointsRequest,
    ScenesRequest,
    TeamRequest,
    TeamResponse,
    UserCompetitionResponse,
    UserResponse,
)
from fantasy_backend.scoring import with_default_scene_points
from fantasy_backend.storage import StorageClient, performer_image_path

logger = logging.getLogger(__name__)

router = APIRouter()


def _user_response(user: UserRecord) -> UserResponse:
    return UserResponse(**user.as_dict(), is_admin=is_admin_address(user.address))


def _to_utc_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _connected_user(db: DbClient, address: str) -> UserRecord:
    user = db.get_user(address)
    if user is None:
        raise HTTPException(status_code=401, detail="Please connect your wallet")
    return user


def _resolve_cast(
    db: DbClient, performers: list[MoviePerformerRequest], address: str
) -> tuple[list[dict], list[PerformerRecord]]:
    """
    Turn submitted cast entries into ``{"performer_id", "name", "gender"}``.

    Entries with an id must reference a known performer; entries without one
    match an existing performer by exact name or become a new performer. New
    performers are returned unsaved so the movie write can store them.
    """
    cast: list[dict] = []
    created: dict[str, PerformerRecord] = {}
    seen: set[str] = set()
    for entry in performers:
        performer: Optional[PerformerRecord] = None
        if entry.performer_id:
            performer = db.get_performer(entry.performer_id)
            if performer is None:
                raise HTTPException(
                    status_code=400, detail=f"Unknown performer {entry.performer_id}"
                )
        else:
            for candidate in db.list_performers(query=entry.name, limit=50):
                if candidate.name.lower() == entry.name.lower():
                    performer = candidate
                    break
            if performer is None:
                performer = created.get(entry.name.lower())
            if performer is None:
                performer = PerformerRecord(
                    performer_id=new_id(),
                    name=entry.name,
                    gender=entry.gender.value,
                    submitted_by=address,
                )
                created[entry.name.lower()] = performer
        if performer.performer_id in seen:
            continue
        seen.add(performer.performer_id)
        cast.append(
            {
                "performer_id": performer.performer_id,
                "name": performer.name,
                "gender": performer.gender,
            }
        )
    return cast, list(created.values())


def _event_changes(payload: EventRequest) -> dict:
    return {
        "title": payload.title,
        "description": payload.description,
        "type": payload.type.value,
        "start_date": _to_utc_iso(payload.start_date),
        "end_date": _to_utc_iso(payload.end_date),
        "rules": payload.rules.model_dump(),
        "prizes": [prize.model_dump(mode="json") for prize in payload.prizes],
        "movie_pool": list(dict.fromkeys(payload.movie_pool)),
        "max_participants": payload.max_participants,
        "prize_pool": payload.prize_pool,
    }


def _job_response(job) -> JobResponse:
    return JobResponse(**job.as_dict())


# -------------------- Ops --------------------


@router.get("/health-check", response_model=HealthResponse)
def health_check(
    db: DbClient = Depends(get_db_client),
    queue: JobQueue = Depends(get_queue_client),
):
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        db.ping()
    except Exception:
        logger.exception("Database health check failed")
        return JSONResponse(
            status_code=503,
            content={
                "status": "error",
                "message": "Database connection failed",
                "database": "unavailable",
                "timestamp": timestamp,
            },
        )
    try:
        depth = queue.depth()
    except Exception:
        logger.warning("Queue depth unavailable", exc_info=True)
        depth = None
    return HealthResponse(
        status="OK",
        message="Server is running",
        database="connected",
        queue_depth=depth,
        timestamp=timestamp,
    )


@router.get("/network", response_model=NetworkResponse)
def network():
    settings = get_settings()
    return NetworkResponse(
        chain_id=hex(settings.chain_id),
        chain_name=settings.chain_name,
        native_currency=NativeCurrency(
            name=settings.chain_currency_name,
            symbol=settings.chain_currency_symbol,
        ),
        rpc_urls=[settings.chain_rpc_url],
        block_explorer_urls=[settings.chain_explorer_url],
    )


@router.get("/catalog", response_model=CatalogResponse)
def catalog():
    """Fixed vocabularies the client builds its forms from."""
    return CatalogResponse(
        positions=list(PERFORMER_POSITIONS),
        position_categories={
            name: list(positions) for name, positions in POSITION_CATEGORIES.items()
        },
        scene_tags=list(SCENE_TAGS),
        leaderboard_stats=list(LEADERBOARD_STATS),
    )


# -------------------- Users --------------------


@router.post("/users/connect", response_model=UserResponse)
def connect_wallet(payload: ConnectWalletRequest, db: DbClient = Depends(get_db_client)):
    """Create the user on first connect and top their balance up to the floor."""
    address = normalize_address(payload.address)
    user = db.ensure_user(address, get_settings().initial_points)
    logger.info("Wallet connected: %s", address)
    return _user_response(user)


@router.get("/users/{address}", response_model=UserResponse)
def get_user(address: str, db: DbClient = Depends(get_db_client)):
    user = db.get_user(normalize_address(address))
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return _user_response(user)


@router.get("/users/{address}/cards", response_model=list[CardResponse])
def get_user_cards(address: str, db: DbClient = Depends(get_db_client)):
    cards = db.list_cards(owner_id=normalize_address(address))
    return [CardResponse(**card.as_dict()) for card in cards]


@router.get(
    "/users/{address}/competitions", response_model=list[UserCompetitionResponse]
)
def get_user_competitions(address: str, db: DbClient = Depends(get_db_client)):
    entries = []
    for team in db.list_user_teams(normalize_address(address)):
        event = db.get_event(team.competition_id)
        if event is None:
            continue
        entries.append(
            UserCompetitionResponse(
                competition=EventResponse(**event.as_dict()),
                team=TeamResponse(**team.as_dict()),
            )
        )
    return entries


@router.get("/leaderboard", response_model=LeaderboardResponse)
def leaderboard(
    stat: str = Query("movies_submitted"),
    limit: int = Query(10, ge=1, le=100),
    db: DbClient = Depends(get_db_client),
):
    users = db.list_leaders(stat, limit)
    return LeaderboardResponse(
        stat=stat,
        leaders=[
            LeaderEntry(rank=index, address=user.address, value=getattr(user, stat))
            for index, user in enumerate(users, start=1)
        ],
    )


# -------------------- Performers --------------------


@router.post("/performers", response_model=PerformerResponse, status_code=201)
def create_performer(
    payload: PerformerRequest,
    address: str = Depends(get_wallet_address),
    db: DbClient = Depends(get_db_client),
):
    _connected_user(db, address)
    performer = db.create_performer(
        PerformerRecord(
            performer_id=new_id(),
            name=payload.name,
            gender=payload.gender.value,
            positions=payload.positions,
            bio=payload.bio.strip(),
            date_of_birth=payload.date_of_birth.isoformat(),
            submitted_by=address,
        )
    )
    logger.info("Performer %s created by %s", performer.performer_id, address)
    return PerformerResponse(**performer.as_dict())


@router.get("/performers", response_model=list[PerformerResponse])
def list_performers(
    q: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: DbClient = Depends(get_db_client),
):
    performers = db.list_performers(query=q, limit=limit, offset=offset)
    return [PerformerResponse(**p.as_dict()) for p in performers]


@router.get("/performers/{performer_id}", response_model=PerformerProfileResponse)
def get_performer(
    performer_id: str,
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    performer = db.get_performer(performer_id)
    if performer is None:
        raise HTTPException(status_code=404, detail="Performer not found")
    image_url = storage.presign_get(performer.image_path) if performer.image_path else None
    filmography = [
        FilmographyEntry(
            movie_id=movie.movie_id,
            title=movie.title,
            studio=movie.studio,
            release_date=movie.release_date,
        )
        for movie in db.movies_for_performer(performer_id)
    ]
    cards = [
        CardResponse(**card.as_dict())
        for card in db.list_cards(performer_id=performer_id)
    ]
    return PerformerProfileResponse(
        performer=PerformerResponse(**performer.as_dict()),
        image_url=image_url,
        filmography=filmography,
        cards=cards,
    )


@router.post("/performers/{performer_id}/image-url", response_model=ImageUploadResponse)
def performer_image_upload_url(
    performer_id: str,
    payload: ImageUploadRequest,
    address: str = Depends(get_wallet_address),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    """
    Presign an image upload for a performer and record where it will live.
    The client PUTs the file to the returned URL with the same content type.
    """
    _connected_user(db, address)
    if db.get_performer(performer_id) is None:
        raise HTTPException(status_code=404, detail="Performer not found")
    path = performer_image_path(performer_id, payload.content_type)
    url = storage.presign_put(path, payload.content_type)
    db.set_performer_image(performer_id, path)
    return ImageUploadResponse(url=url, path=path)


# -------------------- Movies --------------------


@router.post("/movies", response_model=MovieResponse, status_code=201)
def create_movie(
    payload: MovieRequest,
    address: str = Depends(get_wallet_address),
    db: DbClient = Depends(get_db_client),
):
    _connected_user(db, address)
    cast, new_performers = _resolve_cast(db, payload.performers, address)
    movie = db.create_movie(
        MovieRecord(
            movie_id=new_id(),
            title=payload.title,
            studio=payload.studio,
            release_date=payload.release_date.isoformat(),
            performers=cast,
            description=payload.description,
            genre=payload.genre,
            rating=payload.rating,
            submitted_by=address,
        ),
        get_settings().points_per_movie,
        new_performers,
    )
    logger.info("Movie %s (%s) submitted by %s", movie.movie_id, movie.title, address)
    return MovieResponse(**movie.as_dict())


@router.get("/movies", response_model=list[MovieResponse])
def list_movies(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: DbClient = Depends(get_db_client),
):
    return [MovieResponse(**m.as_dict()) for m in db.list_movies(limit, offset)]


@router.get("/movies/{movie_id}", response_model=MovieResponse)
def get_movie(movie_id: str, db: DbClient = Depends(get_db_client)):
    movie = db.get_movie(movie_id)
    if movie is None:
        raise HTTPException(status_code=404, detail="Movie not found")
    return MovieResponse(**movie.as_dict())


@router.put("/movies/{movie_id}", response_model=MovieResponse)
def update_movie(
    movie_id: str,
    payload: MovieUpdateRequest,
    address: str = Depends(get_wallet_address),
    db: DbClient = Depends(get_db_client),
):
    movie = db.get_movie(movie_id)
    if movie is None:
        raise HTTPException(status_code=404, detail="Movie not found")
    if not is_admin_address(address) and movie.submitted_by != address:
        raise PermissionDeniedError("Only the submitter or an admin can edit this movie")

    changes = payload.model_dump(exclude_unset=True, exclude={"performers"})
    if changes.get("release_date") is not None:
        changes["release_date"] = changes["release_date"].isoformat()
    for field_name in ("title", "studio", "release_date", "genre"):
        if field_name in changes and changes[field_name] is None:
            del changes[field_name]
    new_performers: list[PerformerRecord] = []
    if payload.performers is not None:
        changes["performers"], new_performers = _resolve_cast(
            db, payload.performers, address
        )
    updated = db.update_movie(movie_id, changes, new_performers)
    return MovieResponse(**updated.as_dict())


@router.delete("/movies/{movie_id}", status_code=204)
def delete_movie(
    movie_id: str,
    admin: str = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
):
    db.delete_movie(movie_id)
    logger.info("Movie %s deleted by %s", movie_id, admin)


@router.post("/movies/{movie_id}/scenes", response_model=MovieResponse, status_code=201)
def add_scenes(
    movie_id: str,
    payload: ScenesRequest,
    address: str = Depends(get_wallet_address),
    db: DbClient = Depends(get_db_client),
):
    _connected_user(db, address)
    movie = db.get_movie(movie_id)
    if movie is None:
        raise HTTPException(status_code=404, detail="Movie not found")
    names = {p["performer_id"]: p["name"] for p in movie.performers}
    scenes = [
        {
            "scene_number": scene.scene_number.strip(),
            "description": scene.description.strip(),
            "performers": [
                {
                    "performer_id": performer.performer_id,
                    "name": names.get(performer.performer_id, performer.name),
                    "tags": performer.tags,
                }
                for performer in scene.performers
            ],
        }
        for scene in payload.complete_scenes()
    ]
    updated = db.add_scenes(
        movie_id, scenes, address, get_settings().points_per_scene
    )
    logger.info("%d scenes added to movie %s by %s", len(scenes), movie_id, address)
    return MovieResponse(**updated.as_dict())


# -------------------- Cards --------------------


@router.get("/cards", response_model=list[CardResponse])
def list_cards(
    available: Optional[bool] = None,
    owner: Optional[str] = None,
    performer_id: Optional[str] = None,
    db: DbClient = Depends(get_db_client),
):
    cards = db.list_cards(
        available=available,
        owner_id=normalize_address(owner) if owner else None,
        performer_id=performer_id,
    )
    return [CardResponse(**card.as_dict()) for card in cards]


@router.post("/cards/{card_id}/purchase", response_model=PurchaseResponse)
def purchase_card(
    card_id: str,
    address: str = Depends(get_wallet_address),
    db: DbClient = Depends(get_db_client),
):
    card, user = db.purchase_card(address, card_id)
    logger.info("Card %s purchased by %s for %d", card.card_id, address, card.price)
    return PurchaseResponse(card=CardResponse(**card.as_dict()), user=_user_response(user))


# -------------------- Competitions --------------------


@router.get("/competitions", response_model=list[EventResponse])
def list_competitions(db: DbClient = Depends(get_db_client)):
    events, _ = db.list_events(
        statuses=sorted(OPEN_EVENT_STATUSES),
        limit=100,
        sort_by="start_date",
        descending=False,
    )
    return [EventResponse(**event.as_dict()) for event in events]


@router.get("/competitions/{competition_id}", response_model=EventResponse)
def get_competition(competition_id: str, db: DbClient = Depends(get_db_client)):
    event = db.get_event(competition_id)
    if event is None:
        raise HTTPException(status_code=404, detail="Competition not found")
    return EventResponse(**event.as_dict())


@router.post(
    "/competitions/{competition_id}/team", response_model=TeamResponse, status_code=201
)
def enter_competition(
    competition_id: str,
    payload: TeamRequest,
    address: str = Depends(get_wallet_address),
    db: DbClient = Depends(get_db_client),
):
    team = db.enter_competition(address, competition_id, payload.team)
    logger.info("%s entered competition %s", address, competition_id)
    return TeamResponse(**team.as_dict())


@router.get(
    "/competitions/{competition_id}/team/{address}", response_model=TeamResponse
)
def get_competition_team(
    competition_id: str, address: str, db: DbClient = Depends(get_db_client)
):
    team = db.get_team(competition_id, normalize_address(address))
    if team is None:
        raise HTTPException(status_code=404, detail="Team not found")
    return TeamResponse(**team.as_dict())


@router.get(
    "/competitions/{competition_id}/leaderboard",
    response_model=CompetitionLeaderboardResponse,
)
def competition_leaderboard(competition_id: str, db: DbClient = Depends(get_db_client)):
    event = db.get_event(competition_id)
    if event is None:
        raise HTTPException(status_code=404, detail="Competition not found")
    return CompetitionLeaderboardResponse(
        competition_id=competition_id,
        status=event.status,
        entries=[TeamResponse(**t.as_dict()) for t in db.list_teams(competition_id)],
    )


# -------------------- Admin: events --------------------


@router.get("/admin/events", response_model=EventListResponse)
def admin_list_events(
    type: Optional[EventType] = None,
    status: Optional[EventStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: str = Query("start_date"),
    order: Literal["asc", "desc"] = Query("desc"),
    _: str = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
):
    events, total = db.list_events(
        type=type.value if type else None,
        statuses=[status.value] if status else None,
        offset=(page - 1) * limit,
        limit=limit,
        sort_by=sort_by,
        descending=order == "desc",
    )
    return EventListResponse(
        data=[EventResponse(**event.as_dict()) for event in events],
        pagination=Pagination(
            page=page, limit=limit, total=total, pages=math.ceil(total / limit)
        ),
    )


@router.post("/admin/events", response_model=EventResponse, status_code=201)
def admin_create_event(
    payload: EventRequest,
    admin: str = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
):
    event = db.create_event(
        EventRecord(
            event_id=new_id(),
            status=payload.status.value,
            created_by=admin,
            **_event_changes(payload),
        )
    )
    logger.info("Event %s (%s) created", event.event_id, event.title)
    return EventResponse(**event.as_dict())


@router.get("/admin/events/{event_id}", response_model=EventResponse)
def admin_get_event(
    event_id: str,
    _: str = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
):
    event = db.get_event(event_id)
    if event is None:
        raise HTTPException(status_code=404, detail="Event not found")
    return EventResponse(**event.as_dict())


@router.put("/admin/events/{event_id}", response_model=EventResponse)
def admin_update_event(
    event_id: str,
    payload: EventRequest,
    _: str = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
):
    changes = _event_changes(payload)
    current = db.get_event(event_id)
    if current is not None and current.status != payload.status.value:
        check_status_transition(current, payload.status)
        changes["status"] = payload.status.value
    event = db.update_event(event_id, changes)
    return EventResponse(**event.as_dict())


@router.delete("/admin/events/{event_id}")
def admin_delete_event(
    event_id: str,
    _: str = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
):
    db.delete_event(event_id)
    logger.info("Event %s deleted", event_id)
    return {"status": "success", "message": "Event deleted successfully"}


@router.post("/admin/events/{event_id}/status", response_model=EventResponse)
def admin_set_event_status(
    event_id: str,
    payload: EventStatusRequest,
    _: str = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
):
    if payload.status == EventStatus.COMPLETED:
        raise HTTPException(
            status_code=400, detail="Events are completed by scoring, not by status"
        )
    event = db.set_event_status(event_id, payload.status)
    logger.info("Event %s moved to %s", event_id, event.status)
    return EventResponse(**event.as_dict())


@router.post(
    "/admin/events/{event_id}/score", response_model=JobResponse, status_code=202
)
def admin_score_event(
    event_id: str,
    _: str = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
    queue: JobQueue = Depends(get_queue_client),
):
    """Enqueue scoring; the worker ranks teams, pays prizes and completes the event."""
    event = db.get_event(event_id)
    if event is None:
        raise HTTPException(status_code=404, detail="Event not found")
    if not check_scorable(event):
        raise HTTPException(status_code=409, detail=f"Cannot score {event.status} event")
    job = db.create_job(JobKind.SCORE_COMPETITION, {"event_id": event_id})
    queue.enqueue(job.job_id)
    return _job_response(job)


# -------------------- Admin: cards --------------------


@router.post("/admin/cards", response_model=CardResponse, status_code=201)
def admin_create_card(
    payload: CardRequest,
    _: str = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
):
    if payload.performer_id and db.get_performer(payload.performer_id) is None:
        raise HTTPException(status_code=400, detail="Performer not found")
    card = db.create_card(
        CardRecord(
            card_id=new_id(),
            name=payload.name,
            price=payload.price,
            rarity=payload.rarity.value,
            image=payload.image,
            performer_id=payload.performer_id,
            positions=payload.positions,
            stats=payload.stats,
            traits=payload.traits,
        )
    )
    return CardResponse(**card.as_dict())


@router.post(
    "/admin/cards/sample", response_model=list[CardResponse], status_code=201
)
def admin_create_sample_cards(
    _: str = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
):
    performer_ids = ensure_sample_performers(db)
    cards = [
        db.create_card(card)
        for card in create_sample_cards(random.Random(), performer_ids)
    ]
    logger.info("Seeded %d sample cards", len(cards))
    return [CardResponse(**card.as_dict()) for card in cards]


@router.delete("/admin/cards/{card_id}", status_code=204)
def admin_delete_card(
    card_id: str,
    _: str = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
):
    db.delete_card(card_id)


# -------------------- Admin: scene points --------------------


@router.get("/admin/scene-points", response_model=list[ScenePointResponse])
def admin_get_scene_points(
    _: str = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
):
    values = with_default_scene_points(db.list_scene_points())
    return [ScenePointResponse(**value.as_dict()) for value in values]


@router.put("/admin/scene-points", response_model=list[ScenePointResponse])
def admin_save_scene_points(
    payload: ScenePointsRequest,
    _: str = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
):
    db.save_scene_points(
        [
            ScenePointValue(
                tag_id=value.tag.lower(),
                name=value.tag,
                points=value.points,
                description=value.description,
            )
            for value in payload.values
        ]
    )
    values = with_default_scene_points(db.list_scene_points())
    return [ScenePointResponse(**value.as_dict()) for value in values]


# -------------------- Admin: jobs --------------------


@router.post("/admin/jobs/points-topup", response_model=JobResponse, status_code=202)
def admin_points_topup(
    _: str = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
    queue: JobQueue = Depends(get_queue_client),
):
    settings = get_settings()
    job = db.create_job(
        JobKind.POINTS_TOPUP,
        {
            "initial_points": settings.initial_points,
            "batch_size": settings.points_topup_batch_size,
        },
    )
    queue.enqueue(job.job_id)
    return _job_response(job)


@router.get("/admin/jobs/{job_id}", response_model=JobResponse)
def admin_job_status(
    job_id: str,
    _: str = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
):
    job = db.get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return _job_response(job)
