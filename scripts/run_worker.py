"""
Run the job worker: points top-ups and competition scoring.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from fantasy_backend.config import get_settings
from fantasy_backend.worker import process_next, run_loop


logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Run the Fantasy Flicks job worker")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Process at most one job without blocking, then exit",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=2.0,
        help="Seconds to wait on the queue before polling again",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=get_settings().log_level, format="%(levelname)s:%(name)s:%(message)s"
    )
    if args.once:
        processed = process_next(block=False)
        logger.info("Processed a job" if processed else "No job waiting")
        return 0

    run_loop(poll_interval_seconds=args.poll_interval)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
