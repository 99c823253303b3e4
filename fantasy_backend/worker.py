"""
Worker loop that processes queued admin jobs: points top-ups and competition scoring.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from fantasy_backend.config import get_settings
from fantasy_backend.constants import JobKind, JobStatus
from fantasy_backend.db import DbClient, check_scorable
from fantasy_backend.dependencies import get_db_client, get_queue_client
from fantasy_backend.errors import ConflictError
from fantasy_backend.queue import JobQueue
from fantasy_backend.records import JobRecord
from fantasy_backend.rosters import team_card_ids
from fantasy_backend.scoring import (
    performer_scene_points,
    prize_awards,
    rank_scores,
    score_team,
    with_default_scene_points,
)

logger = logging.getLogger(__name__)


def run_points_topup(job: JobRecord, db: DbClient) -> int:
    """
    Raise every balance below the floor to the floor, one capped batch at a time.
    Returns the number of users topped up.
    """
    settings = get_settings()
    floor = int(job.payload.get("initial_points", settings.initial_points))
    batch_size = int(job.payload.get("batch_size", settings.points_topup_batch_size))

    total = 0
    batch = 0
    while True:
        users = db.list_users_below(floor, batch_size)
        if not users:
            break
        updated = db.top_up_users([user.address for user in users], floor)
        total += updated
        batch += 1
        db.update_job_progress(
            job.job_id,
            stage=f"BATCH_{batch}",
            progress_percent=min(0.95, batch / (batch + 1)),
        )
        logger.info("[%s] Topped up %d users in batch %d", job.job_id, updated, batch)
        if len(users) < batch_size or updated == 0:
            break
    return total


def run_competition_scoring(job: JobRecord, db: DbClient) -> bool:
    """
    Score every team of a competition, pay the prizes and complete the event.
    Returns False when the competition had already been completed; a cancelled
    competition fails the job.
    """
    event_id = job.payload.get("event_id")
    event = db.get_event(event_id) if event_id else None
    if not check_scorable(event):
        logger.warning("[%s] Competition %s was already completed", job.job_id, event_id)
        return False

    db.update_job_progress(job.job_id, stage="LOAD", progress_percent=0.1)
    teams = db.list_teams(event.event_id)
    card_ids = {card_id for team in teams for card_id in team_card_ids(team.team)}
    cards = db.get_cards(card_ids)
    movies = db.get_movies(event.movie_pool)
    scene_values = {
        value.tag_id: value.points
        for value in with_default_scene_points(db.list_scene_points())
    }

    db.update_job_progress(job.job_id, stage="SCORE", progress_percent=0.5)
    performer_points = performer_scene_points(movies, scene_values, event.scoring_system)
    scores = {
        team.user_id: score_team(team.team, cards, performer_points) for team in teams
    }
    ranked = rank_scores(scores)
    awards = prize_awards(ranked, event.prizes)

    db.update_job_progress(job.job_id, stage="COMMIT", progress_percent=0.9)
    try:
        completed = db.complete_competition(event.event_id, ranked, awards)
    except ConflictError:
        logger.warning(
            "[%s] Competition %s was cancelled while scoring", job.job_id, event.event_id
        )
        raise
    if completed:
        logger.info(
            "[%s] Competition %s scored: %d teams, %d prize winners",
            job.job_id,
            event.event_id,
            len(ranked),
            len(awards),
        )
    else:
        logger.warning(
            "[%s] Competition %s was already completed", job.job_id, event.event_id
        )
    return completed


JOB_HANDLERS = {
    JobKind.POINTS_TOPUP: run_points_topup,
    JobKind.SCORE_COMPETITION: run_competition_scoring,
}


def process_job(job: JobRecord, db: DbClient) -> None:
    """Run a claimed job and record its outcome."""
    handler = JOB_HANDLERS[JobKind(job.kind)]
    try:
        db.update_job_progress(job.job_id, stage="STARTED", progress_percent=0.05)
        handler(job, db)
        db.update_job_progress(
            job.job_id,
            status=JobStatus.SUCCESS,
            stage="SUCCESS",
            progress_percent=1.0,
        )
    except Exception as e:
        logger.exception("[%s] %s job failed", job.job_id, job.kind)
        db.update_job_progress(
            job.job_id,
            status=JobStatus.ERROR,
            stage="ERROR",
            progress_percent=0.0,
            error=getattr(e, "message", None) or str(e),
        )
        raise


def process_next(
    *,
    db: Optional[DbClient] = None,
    queue: Optional[JobQueue] = None,
    block: bool = True,
    timeout: Optional[int] = None,
) -> bool:
    """
    Fetch and process one job from the queue (or DB fallback). Returns True if processed.
    """
    db = db or get_db_client()
    queue = queue or get_queue_client()

    job_id = queue.dequeue(block=block, timeout=timeout)
    if job_id:
        job = db.claim_job(job_id)
        if not job:
            # Unknown, or already claimed by another worker.
            logger.warning("Skipping job_id %s from queue; not claimable", job_id)
            return False
    else:
        # Fall back to polling for WAITING jobs that were never queued.
        job = db.claim_next_waiting_job()
        if not job:
            return False

    process_job(job, db)
    return True


def run_loop(poll_interval_seconds: float = 2.0) -> None:
    """
    Simple polling loop that blocks on the queue. Intended to be run under systemd/supervisor.
    """
    db = get_db_client()
    queue = get_queue_client()
    while True:
        try:
            db.requeue_stale_locks(lock_timeout_seconds=900)
        except Exception:
            logger.exception("Failed to requeue stale locks")
        try:
            processed = process_next(
                db=db, queue=queue, block=True, timeout=int(poll_interval_seconds)
            )
        except Exception:
            # Already recorded on the job; keep serving the queue.
            processed = True
        if not processed:
            time.sleep(poll_interval_seconds)


if __name__ == "__main__":
    logging.basicConfig(level=get_settings().log_level)
    run_loop()
