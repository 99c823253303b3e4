import unittest

from fantasy_backend.constants import EventStatus, JobKind, JobStatus
from fantasy_backend.db import InMemoryDbClient, new_id
from fantasy_backend.errors import ConflictError
from fantasy_backend.queue import InMemoryJobQueue
from fantasy_backend.records import MovieRecord, ScenePointValue
from fantasy_backend.tests.db_contract import ALICE, BOB, make_card, make_event
from fantasy_backend.worker import process_next


class WorkerTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.queue = InMemoryJobQueue()

    def test_process_next_no_jobs(self):
        processed = process_next(db=self.db, queue=self.queue, block=False)
        self.assertFalse(processed)

    def test_points_topup_runs_in_batches(self):
        addresses = ["0x" + f"{i:040x}" for i in range(5)]
        for address in addresses:
            self.db.ensure_user(address, 10)
        self.db.ensure_user(ALICE, 50000)

        job = self.db.create_job(
            JobKind.POINTS_TOPUP, {"initial_points": 20000, "batch_size": 2}
        )
        self.queue.enqueue(job.job_id)
        self.assertTrue(process_next(db=self.db, queue=self.queue, block=False))

        updated = self.db.get_job(job.job_id)
        self.assertEqual(updated.status, JobStatus.SUCCESS)
        self.assertEqual(updated.progress_percent, 1.0)
        for address in addresses:
            self.assertEqual(self.db.get_user(address).points, 20000)
        self.assertEqual(self.db.get_user(ALICE).points, 50000)

    def test_waiting_job_is_polled_without_queue_entry(self):
        job = self.db.create_job(JobKind.POINTS_TOPUP, {"initial_points": 100})
        self.assertTrue(process_next(db=self.db, queue=self.queue, block=False))
        self.assertEqual(self.db.get_job(job.job_id).status, JobStatus.SUCCESS)

    def test_already_claimed_job_is_skipped(self):
        job = self.db.create_job(JobKind.POINTS_TOPUP, {"initial_points": 100})
        self.db.claim_job(job.job_id)
        self.queue.enqueue(job.job_id)
        self.assertFalse(process_next(db=self.db, queue=self.queue, block=False))

    def test_score_competition(self):
        self.db.ensure_user(ALICE, 1000)
        self.db.ensure_user(BOB, 1000)
        movie = self.db.create_movie(
            MovieRecord(
                movie_id=new_id(),
                title="Night Shift",
                studio="Studio",
                release_date="2024-01-01",
                performers=[
                    {"performer_id": "p1", "name": "Jane", "gender": "Female"},
                    {"performer_id": "p2", "name": "June", "gender": "Female"},
                ],
                scenes=[
                    {
                        "scene_number": "1",
                        "description": "Opening",
                        "performers": [
                            {"performer_id": "p1", "name": "Jane", "tags": ["Anal", "Facial"]},
                            {"performer_id": "p2", "name": "June", "tags": ["Facial"]},
                        ],
                    }
                ],
            ),
            0,
        )
        self.db.save_scene_points([ScenePointValue(tag_id="anal", name="Anal", points=30)])

        alice_card = self.db.create_card(make_card(price=0, performer_id="p1"))
        bob_card = self.db.create_card(make_card(price=0, performer_id="p2"))
        self.db.purchase_card(ALICE, alice_card.card_id)
        self.db.purchase_card(BOB, bob_card.card_id)

        event = self.db.create_event(
            make_event(
                entry_fee=0,
                movie_pool=[movie.movie_id],
                prizes=[
                    {"rank": 1, "amount": 500, "type": "points", "description": ""},
                    {"rank": 2, "amount": 100, "type": "points", "description": ""},
                ],
            )
        )
        self.db.enter_competition(ALICE, event.event_id, {"Lead": [alice_card.card_id]})
        self.db.enter_competition(BOB, event.event_id, {"Lead": [bob_card.card_id]})

        job = self.db.create_job(JobKind.SCORE_COMPETITION, {"event_id": event.event_id})
        self.queue.enqueue(job.job_id)
        self.assertTrue(process_next(db=self.db, queue=self.queue, block=False))

        self.assertEqual(self.db.get_job(job.job_id).status, JobStatus.SUCCESS)
        self.assertEqual(self.db.get_event(event.event_id).status, EventStatus.COMPLETED.value)

        # Jane: Anal 30 + Facial 10 (default); June: Facial 10.
        alice_team = self.db.get_team(event.event_id, ALICE)
        bob_team = self.db.get_team(event.event_id, BOB)
        self.assertEqual((alice_team.points, alice_team.rank), (40.0, 1))
        self.assertEqual((bob_team.points, bob_team.rank), (10.0, 2))

        alice = self.db.get_user(ALICE)
        self.assertEqual(alice.points, 1500)
        self.assertEqual(alice.tournament_wins, 1)
        self.assertEqual(self.db.get_user(BOB).points, 1100)

    def test_competition_cancelled_after_queueing_is_not_scored(self):
        self.db.ensure_user(ALICE, 1000)
        card = self.db.create_card(make_card(price=0, performer_id="p1"))
        self.db.purchase_card(ALICE, card.card_id)
        event = self.db.create_event(
            make_event(
                entry_fee=0,
                prizes=[{"rank": 1, "amount": 500, "type": "points", "description": ""}],
            )
        )
        self.db.enter_competition(ALICE, event.event_id, {"Lead": [card.card_id]})
        self.db.set_event_status(event.event_id, EventStatus.ACTIVE)

        job = self.db.create_job(JobKind.SCORE_COMPETITION, {"event_id": event.event_id})
        self.queue.enqueue(job.job_id)
        self.db.set_event_status(event.event_id, EventStatus.CANCELLED)

        with self.assertRaises(ConflictError):
            process_next(db=self.db, queue=self.queue, block=False)

        failed = self.db.get_job(job.job_id)
        self.assertEqual(failed.status, JobStatus.ERROR)
        self.assertEqual(failed.error, "Cannot score cancelled event")
        self.assertEqual(self.db.get_event(event.event_id).status, "cancelled")
        alice = self.db.get_user(ALICE)
        self.assertEqual(alice.points, 1000)
        self.assertEqual(alice.tournament_wins, 0)
        self.assertIsNone(self.db.get_team(event.event_id, ALICE).rank)

    def test_failed_job_is_marked_error(self):
        job = self.db.create_job(JobKind.SCORE_COMPETITION, {"event_id": "missing"})
        self.queue.enqueue(job.job_id)
        with self.assertRaises(Exception):
            process_next(db=self.db, queue=self.queue, block=False)
        failed = self.db.get_job(job.job_id)
        self.assertEqual(failed.status, JobStatus.ERROR)
        self.assertEqual(failed.error, "Competition not found")


if __name__ == "__main__":
    unittest.main()
