"""
Behaviour every DbClient must share. Mixed into the in-memory and SQL test cases.
"""

from __future__ import annotations

import concurrent.futures
import functools
import threading
from datetime import datetime, timedelta, timezone

from fantasy_backend.constants import EventStatus, JobKind, JobStatus
from fantasy_backend.db import new_id
from fantasy_backend.errors import (
    ConflictError,
    InsufficientPointsError,
    InvalidRequestError,
    NotFoundError,
    TeamValidationError,
)
from fantasy_backend.records import (
    CardRecord,
    EventRecord,
    MovieRecord,
    PerformerRecord,
    ScenePointValue,
)

ALICE = "0x" + "a" * 40
BOB = "0x" + "B" * 40


def make_card(price=100, positions=("Lead",), performer_id=None, name="Card"):
    return CardRecord(
        card_id=new_id(),
        name=name,
        price=price,
        rarity="Rare",
        positions=list(positions),
        performer_id=performer_id,
    )


def make_event(
    status=EventStatus.UPCOMING,
    required_positions=None,
    entry_fee=50,
    max_participants=10,
    end_in_days=7,
    prizes=None,
    movie_pool=None,
):
    now = datetime.now(timezone.utc)
    return EventRecord(
        event_id=new_id(),
        title="Weekly Showdown",
        description="Test event",
        type="weekly",
        status=status.value,
        start_date=(now - timedelta(days=1)).isoformat(),
        end_date=(now + timedelta(days=end_in_days)).isoformat(),
        rules={
            "max_entries": 1,
            "entry_fee": entry_fee,
            "scoring_system": {},
            "restrictions": [],
            "required_positions": required_positions or {"Lead": 1},
        },
        prizes=prizes or [],
        movie_pool=movie_pool or [],
        max_participants=max_participants,
    )


class DbClientContract:
    """Requires ``self.db`` to be a fresh client in setUp."""

    # Users

    def test_ensure_user_creates_and_tops_up(self):
        user = self.db.ensure_user(ALICE.upper().replace("0X", "0x"), 20000)
        self.assertEqual(user.address, ALICE)
        self.assertEqual(user.points, 20000)

        self.db.top_up_users([ALICE], 20000)
        self.db.purchase_card(ALICE, self.db.create_card(make_card(price=500)).card_id)
        self.assertEqual(self.db.get_user(ALICE).points, 19500)

        topped = self.db.ensure_user(ALICE, 20000)
        self.assertEqual(topped.points, 20000)
        self.assertEqual(topped.nft_count, 1)

    def test_list_users_below_and_top_up(self):
        self.db.ensure_user(ALICE, 100)
        self.db.ensure_user(BOB, 300)
        below = self.db.list_users_below(200, limit=10)
        self.assertEqual([u.address for u in below], [ALICE])
        self.assertEqual(self.db.top_up_users([ALICE, BOB], 200), 1)
        self.assertEqual(self.db.get_user(ALICE).points, 200)
        self.assertEqual(self.db.get_user(BOB).points, 300)

    def test_list_leaders_orders_by_stat(self):
        self.db.ensure_user(ALICE, 100)
        self.db.ensure_user(BOB, 300)
        leaders = self.db.list_leaders("points", limit=5)
        self.assertEqual([u.address for u in leaders], [BOB.lower(), ALICE])
        with self.assertRaises(InvalidRequestError):
            self.db.list_leaders("favourite_colour")

    # Movies

    def _performer(self, name="Jane Doe"):
        return self.db.create_performer(
            PerformerRecord(performer_id=new_id(), name=name, gender="Female")
        )

    def _movie(self, title, performers, submitted_by=ALICE):
        return MovieRecord(
            movie_id=new_id(),
            title=title,
            studio="Studio",
            release_date="2024-01-01",
            performers=[
                {"performer_id": p.performer_id, "name": p.name, "gender": p.gender}
                for p in performers
            ],
            submitted_by=submitted_by,
        )

    def test_create_movie_credits_submitter_and_performers(self):
        self.db.ensure_user(ALICE, 20000)
        jane = self._performer()
        movie = self.db.create_movie(self._movie("Night Shift", [jane]), 10)

        user = self.db.get_user(ALICE)
        self.assertEqual(user.points, 20010)
        self.assertEqual(user.movies_submitted, 1)
        self.assertEqual(self.db.get_performer(jane.performer_id).movie_count, 1)
        self.assertEqual(
            [m.movie_id for m in self.db.movies_for_performer(jane.performer_id)],
            [movie.movie_id],
        )

    def test_duplicate_title_is_rejected(self):
        self.db.ensure_user(ALICE, 20000)
        jane = self._performer()
        self.db.create_movie(self._movie("Night Shift", [jane]), 10)
        with self.assertRaises(ConflictError):
            self.db.create_movie(self._movie("  night   SHIFT ", [jane]), 10)
        self.assertEqual(self.db.get_user(ALICE).movies_submitted, 1)

    def test_rejected_movie_writes_store_no_new_performers(self):
        self.db.ensure_user(ALICE, 20000)
        jane = self._performer("Jane")
        self.db.create_movie(self._movie("Night Shift", [jane]), 0)
        other = self.db.create_movie(self._movie("Day Shift", [jane]), 0)
        newcomer = PerformerRecord(
            performer_id=new_id(), name="Brand New Person", gender="Female"
        )

        with self.assertRaises(ConflictError):
            self.db.create_movie(
                self._movie("Night Shift", [jane, newcomer]), 0, [newcomer]
            )
        with self.assertRaises(ConflictError):
            self.db.update_movie(
                other.movie_id,
                {
                    "title": "night shift",
                    "performers": self._movie("x", [newcomer]).performers,
                },
                [newcomer],
            )
        self.assertIsNone(self.db.get_performer(newcomer.performer_id))
        self.assertEqual([p.name for p in self.db.list_performers()], ["Jane"])

        self.db.create_movie(self._movie("Late Shift", [newcomer]), 0, [newcomer])
        stored = self.db.get_performer(newcomer.performer_id)
        self.assertEqual(stored.name, "Brand New Person")
        self.assertEqual(stored.movie_count, 1)

    def test_update_and_delete_movie_adjust_movie_counts(self):
        self.db.ensure_user(ALICE, 20000)
        jane = self._performer("Jane")
        june = self._performer("June")
        movie = self.db.create_movie(self._movie("Night Shift", [jane]), 0)

        updated = self.db.update_movie(
            movie.movie_id,
            {
                "performers": [
                    {"performer_id": june.performer_id, "name": "June", "gender": "Female"}
                ]
            },
        )
        self.assertEqual(updated.performer_ids(), [june.performer_id])
        self.assertEqual(self.db.get_performer(jane.performer_id).movie_count, 0)
        self.assertEqual(self.db.get_performer(june.performer_id).movie_count, 1)

        self.db.delete_movie(movie.movie_id)
        self.assertIsNone(self.db.get_movie(movie.movie_id))
        self.assertEqual(self.db.get_performer(june.performer_id).movie_count, 0)

    def test_add_scenes_requires_cast_members(self):
        self.db.ensure_user(ALICE, 20000)
        jane = self._performer()
        movie = self.db.create_movie(self._movie("Night Shift", [jane]), 0)
        scene = {
            "scene_number": "1",
            "description": "Opening",
            "performers": [{"performer_id": jane.performer_id, "name": "Jane", "tags": ["Anal"]}],
        }
        updated = self.db.add_scenes(movie.movie_id, [scene], ALICE, points_per_scene=2)
        self.assertEqual(len(updated.scenes), 1)
        user = self.db.get_user(ALICE)
        self.assertEqual(user.scenes_submitted, 1)
        self.assertEqual(user.points, 20002)

        stranger = {
            "scene_number": "2",
            "description": "Cameo",
            "performers": [{"performer_id": "nobody", "name": "Nobody", "tags": []}],
        }
        with self.assertRaises(InvalidRequestError):
            self.db.add_scenes(movie.movie_id, [stranger], ALICE)
        self.assertEqual(len(self.db.get_movie(movie.movie_id).scenes), 1)

    # Cards

    def test_purchase_moves_ownership_and_debits(self):
        self.db.ensure_user(ALICE, 1000)
        card = self.db.create_card(make_card(price=400))
        bought, user = self.db.purchase_card(ALICE, card.card_id)
        self.assertEqual(bought.owner_id, ALICE)
        self.assertFalse(bought.available)
        self.assertEqual(user.points, 600)
        self.assertEqual(user.nft_count, 1)
        self.assertEqual(
            [c.card_id for c in self.db.list_cards(owner_id=ALICE)], [card.card_id]
        )

    def test_purchase_rejects_sold_card(self):
        self.db.ensure_user(ALICE, 1000)
        self.db.ensure_user(BOB, 1000)
        card = self.db.create_card(make_card(price=400))
        self.db.purchase_card(ALICE, card.card_id)
        with self.assertRaises(ConflictError):
            self.db.purchase_card(BOB, card.card_id)
        self.assertEqual(self.db.get_user(BOB).points, 1000)
        self.assertEqual(self.db.get_card(card.card_id).owner_id, ALICE)

    def test_purchase_never_exceeds_balance(self):
        self.db.ensure_user(ALICE, 300)
        card = self.db.create_card(make_card(price=400))
        with self.assertRaises(InsufficientPointsError):
            self.db.purchase_card(ALICE, card.card_id)
        self.assertEqual(self.db.get_user(ALICE).points, 300)
        self.assertTrue(self.db.get_card(card.card_id).available)

    def test_purchase_unknown_card(self):
        self.db.ensure_user(ALICE, 300)
        with self.assertRaises(NotFoundError):
            self.db.purchase_card(ALICE, "missing")

    def test_delete_card_refuses_owned_cards(self):
        self.db.ensure_user(ALICE, 1000)
        owned = self.db.create_card(make_card())
        spare = self.db.create_card(make_card())
        self.db.purchase_card(ALICE, owned.card_id)
        with self.assertRaises(ConflictError):
            self.db.delete_card(owned.card_id)
        self.db.delete_card(spare.card_id)
        self.assertIsNone(self.db.get_card(spare.card_id))

    # Events

    def test_list_events_filters_and_paginates(self):
        for status in (EventStatus.DRAFT, EventStatus.UPCOMING, EventStatus.UPCOMING):
            self.db.create_event(make_event(status=status))
        events, total = self.db.list_events(statuses=["upcoming"], limit=1)
        self.assertEqual(total, 2)
        self.assertEqual(len(events), 1)
        _, everything = self.db.list_events()
        self.assertEqual(everything, 3)

    def test_locked_events_cannot_be_edited(self):
        event = self.db.create_event(make_event(status=EventStatus.ACTIVE))
        with self.assertRaises(ConflictError):
            self.db.update_event(event.event_id, {"title": "Renamed"})
        with self.assertRaises(ConflictError):
            self.db.delete_event(event.event_id)

    def test_status_transitions(self):
        event = self.db.create_event(make_event(status=EventStatus.DRAFT))
        moved = self.db.set_event_status(event.event_id, EventStatus.UPCOMING)
        self.assertEqual(moved.status, "upcoming")
        with self.assertRaises(ConflictError):
            self.db.set_event_status(event.event_id, EventStatus.COMPLETED)

    def test_event_edits_respect_entered_teams(self):
        self.db.ensure_user(ALICE, 1000)
        self.db.ensure_user(BOB, 1000)
        event = self.db.create_event(make_event(max_participants=5, entry_fee=50))
        for address in (ALICE, BOB):
            card = self._owned_card(address)
            self.db.enter_competition(address, event.event_id, {"Lead": [card.card_id]})

        refused = (
            {"max_participants": 1},
            {"rules": dict(event.rules, entry_fee=10)},
            {"rules": dict(event.rules, required_positions={"Lead": 1, "Support": 1})},
        )
        for changes in refused:
            with self.assertRaises(ConflictError):
                self.db.update_event(event.event_id, changes)
        stored = self.db.get_event(event.event_id)
        self.assertEqual(stored.max_participants, 5)
        self.assertEqual(stored.entry_fee, 50)

        updated = self.db.update_event(
            event.event_id,
            {
                "title": "Renamed",
                "max_participants": 2,
                "rules": dict(event.rules, scoring_system={"Anal": 2.0}),
            },
        )
        self.assertEqual(updated.title, "Renamed")
        self.assertEqual(updated.max_participants, 2)
        self.assertEqual(updated.current_participants, 2)
        self.assertEqual(updated.scoring_system, {"Anal": 2.0})

    def test_event_without_entries_can_change_rules(self):
        event = self.db.create_event(make_event(max_participants=5, entry_fee=50))
        updated = self.db.update_event(
            event.event_id,
            {"max_participants": 1, "rules": dict(event.rules, entry_fee=10)},
        )
        self.assertEqual(updated.max_participants, 1)
        self.assertEqual(updated.entry_fee, 10)

    # Competition entry

    def _owned_card(self, address, **kwargs):
        card = self.db.create_card(make_card(price=0, **kwargs))
        self.db.purchase_card(address, card.card_id)
        return card

    def test_enter_competition_writes_team_and_takes_fee(self):
        self.db.ensure_user(ALICE, 1000)
        card = self._owned_card(ALICE)
        event = self.db.create_event(make_event(entry_fee=50))

        team = self.db.enter_competition(ALICE, event.event_id, {"Lead": [card.card_id]})
        self.assertEqual(team.user_id, ALICE)
        self.assertEqual(self.db.get_user(ALICE).points, 950)
        self.assertEqual(self.db.get_event(event.event_id).current_participants, 1)
        self.assertIsNotNone(self.db.get_team(event.event_id, ALICE))

        with self.assertRaises(ConflictError):
            self.db.enter_competition(ALICE, event.event_id, {"Lead": [card.card_id]})
        self.assertEqual(self.db.get_user(ALICE).points, 950)

    def test_enter_competition_rejects_invalid_team_without_side_effects(self):
        self.db.ensure_user(ALICE, 1000)
        card = self._owned_card(ALICE)
        event = self.db.create_event(
            make_event(required_positions={"Lead": 1, "Support": 1})
        )
        with self.assertRaises(TeamValidationError) as ctx:
            self.db.enter_competition(
                ALICE,
                event.event_id,
                {"Lead": [card.card_id], "Support": [card.card_id]},
            )
        self.assertIn(f"Card {card.card_id} can only be selected once", ctx.exception.problems)
        self.assertEqual(self.db.get_user(ALICE).points, 1000)
        self.assertEqual(self.db.get_event(event.event_id).current_participants, 0)
        self.assertIsNone(self.db.get_team(event.event_id, ALICE))

    def test_enter_competition_respects_capacity(self):
        self.db.ensure_user(ALICE, 1000)
        self.db.ensure_user(BOB, 1000)
        alice_card = self._owned_card(ALICE)
        bob_card = self._owned_card(BOB)
        event = self.db.create_event(make_event(max_participants=1))
        self.db.enter_competition(ALICE, event.event_id, {"Lead": [alice_card.card_id]})
        with self.assertRaises(ConflictError):
            self.db.enter_competition(BOB, event.event_id, {"Lead": [bob_card.card_id]})
        self.assertEqual(self.db.get_event(event.event_id).current_participants, 1)

    def test_enter_competition_requires_fee(self):
        self.db.ensure_user(ALICE, 10)
        card = self._owned_card(ALICE)
        event = self.db.create_event(make_event(entry_fee=50))
        with self.assertRaises(InsufficientPointsError):
            self.db.enter_competition(ALICE, event.event_id, {"Lead": [card.card_id]})

    def test_enter_competition_rejects_closed_events(self):
        self.db.ensure_user(ALICE, 1000)
        card = self._owned_card(ALICE)
        draft = self.db.create_event(make_event(status=EventStatus.DRAFT))
        ended = self.db.create_event(make_event(end_in_days=-1))
        for event in (draft, ended):
            with self.assertRaises(ConflictError):
                self.db.enter_competition(ALICE, event.event_id, {"Lead": [card.card_id]})

    def test_complete_competition_is_applied_once(self):
        self.db.ensure_user(ALICE, 1000)
        card = self._owned_card(ALICE)
        event = self.db.create_event(make_event(entry_fee=0))
        self.db.enter_competition(ALICE, event.event_id, {"Lead": [card.card_id]})

        ranked = [(ALICE, 42.0, 1)]
        self.assertTrue(self.db.complete_competition(event.event_id, ranked, {ALICE: 500}))
        self.assertFalse(self.db.complete_competition(event.event_id, ranked, {ALICE: 500}))

        user = self.db.get_user(ALICE)
        self.assertEqual(user.points, 1500)
        self.assertEqual(user.tournament_wins, 1)
        team = self.db.get_team(event.event_id, ALICE)
        self.assertEqual(team.points, 42.0)
        self.assertEqual(team.rank, 1)
        self.assertEqual(self.db.get_event(event.event_id).status, "completed")
        self.assertEqual(
            [t.competition_id for t in self.db.list_user_teams(ALICE)], [event.event_id]
        )

    def test_cancelled_competition_cannot_be_completed(self):
        self.db.ensure_user(ALICE, 1000)
        card = self._owned_card(ALICE)
        event = self.db.create_event(make_event(entry_fee=0))
        self.db.enter_competition(ALICE, event.event_id, {"Lead": [card.card_id]})
        self.db.set_event_status(event.event_id, EventStatus.CANCELLED)

        with self.assertRaises(ConflictError):
            self.db.complete_competition(event.event_id, [(ALICE, 42.0, 1)], {ALICE: 500})

        self.assertEqual(self.db.get_event(event.event_id).status, "cancelled")
        user = self.db.get_user(ALICE)
        self.assertEqual(user.points, 1000)
        self.assertEqual(user.tournament_wins, 0)
        self.assertIsNone(self.db.get_team(event.event_id, ALICE).rank)

    # Scene points

    def test_save_scene_points_upserts(self):
        self.db.save_scene_points([ScenePointValue(tag_id="anal", name="Anal", points=25)])
        self.db.save_scene_points([ScenePointValue(tag_id="anal", name="Anal", points=30)])
        values = self.db.list_scene_points()
        self.assertEqual([(v.tag_id, v.points) for v in values], [("anal", 30)])

    # Jobs

    def test_job_claim_lifecycle(self):
        job = self.db.create_job(JobKind.POINTS_TOPUP, {"batch_size": 5})
        self.assertEqual(job.status, JobStatus.WAITING)

        claimed = self.db.claim_job(job.job_id)
        self.assertEqual(claimed.status, JobStatus.RUNNING)
        self.assertIsNone(self.db.claim_job(job.job_id))
        self.assertIsNone(self.db.claim_next_waiting_job())

        self.db.update_job_progress(
            job.job_id, status=JobStatus.SUCCESS, stage="DONE", progress_percent=1.0
        )
        updated = self.db.get_job(job.job_id)
        self.assertEqual(updated.status, JobStatus.SUCCESS)
        self.assertEqual(updated.stage, "DONE")
        self.assertEqual(updated.payload, {"batch_size": 5})

    def test_requeue_stale_locks(self):
        job = self.db.create_job(JobKind.SCORE_COMPETITION, {"event_id": "x"})
        self.db.claim_job(job.job_id)
        self.assertEqual(self.db.requeue_stale_locks(lock_timeout_seconds=-1), 1)
        self.assertEqual(self.db.get_job(job.job_id).status, JobStatus.WAITING)


def run_concurrently(calls):
    """Release every call at once from its own thread; returns results or raised errors."""
    barrier = threading.Barrier(len(calls))

    def run(call):
        barrier.wait()
        try:
            return call()
        except Exception as e:
            return e

    with concurrent.futures.ThreadPoolExecutor(max_workers=len(calls)) as executor:
        return list(executor.map(run, calls))


class ConcurrentWritesContract:
    """Requires ``self.db`` to be a fresh client that threads can share."""

    WORKERS = 8

    def _users(self, points):
        addresses = ["0x" + f"{i:040x}" for i in range(1, self.WORKERS + 1)]
        for address in addresses:
            self.db.ensure_user(address, points)
        return addresses

    def _split(self, outcomes):
        errors = [o for o in outcomes if isinstance(o, Exception)]
        for error in errors:
            self.assertIsInstance(error, ConflictError)
        return [o for o in outcomes if not isinstance(o, Exception)], errors

    def test_concurrent_purchases_sell_a_card_once(self):
        buyers = self._users(1000)
        card = self.db.create_card(make_card(price=400))

        outcomes = run_concurrently(
            [functools.partial(self.db.purchase_card, b, card.card_id) for b in buyers]
        )
        wins, errors = self._split(outcomes)
        self.assertEqual(len(wins), 1)
        self.assertEqual(len(errors), self.WORKERS - 1)

        owner = wins[0][1].address
        self.assertEqual(self.db.get_card(card.card_id).owner_id, owner)
        self.assertEqual(self.db.get_user(owner).points, 600)
        self.assertEqual(
            sum(self.db.get_user(b).points for b in buyers), 1000 * self.WORKERS - 400
        )
        self.assertEqual(sum(self.db.get_user(b).nft_count for b in buyers), 1)

    def test_concurrent_entries_never_exceed_capacity(self):
        players = self._users(1000)
        cards = {}
        for address in players:
            cards[address] = self.db.create_card(make_card(price=0))
            self.db.purchase_card(address, cards[address].card_id)
        event = self.db.create_event(make_event(max_participants=1, entry_fee=50))

        outcomes = run_concurrently(
            [
                functools.partial(
                    self.db.enter_competition,
                    address,
                    event.event_id,
                    {"Lead": [cards[address].card_id]},
                )
                for address in players
            ]
        )
        wins, errors = self._split(outcomes)
        self.assertEqual(len(wins), 1)
        self.assertEqual(len(errors), self.WORKERS - 1)

        self.assertEqual(self.db.get_event(event.event_id).current_participants, 1)
        self.assertEqual(len(self.db.list_teams(event.event_id)), 1)
        self.assertEqual(
            sum(self.db.get_user(a).points for a in players), 1000 * self.WORKERS - 50
        )

    def test_concurrent_entries_by_one_user_charge_once(self):
        self.db.ensure_user(ALICE, 1000)
        card = self.db.create_card(make_card(price=0))
        self.db.purchase_card(ALICE, card.card_id)
        event = self.db.create_event(make_event(max_participants=10, entry_fee=50))

        outcomes = run_concurrently(
            [
                functools.partial(
                    self.db.enter_competition,
                    ALICE,
                    event.event_id,
                    {"Lead": [card.card_id]},
                )
                for _ in range(self.WORKERS)
            ]
        )
        wins, _ = self._split(outcomes)
        self.assertEqual(len(wins), 1)
        self.assertEqual(self.db.get_user(ALICE).points, 950)
        self.assertEqual(self.db.get_event(event.event_id).current_participants, 1)
