"""
Seed the marketplace with the sample performer cards.

Writes one available card per sample performer into the configured database
(DATABASE_URL), pricing each within its rarity range. Sample performers are
created when missing so the cards score in competitions.
"""

from __future__ import annotations

import argparse
import logging
import random
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from fantasy_backend.dependencies import get_db_client
from fantasy_backend.sample_cards import create_sample_cards, ensure_sample_performers


logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed sample marketplace cards")
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed for prices, stats and images",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the cards without saving them",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")

    if args.dry_run:
        for card in create_sample_cards(random.Random(args.seed)):
            logger.info("%s (%s) %d points", card.name, card.rarity, card.price)
        return 0

    db = get_db_client()
    cards = create_sample_cards(random.Random(args.seed), ensure_sample_performers(db))
    for card in cards:
        db.create_card(card)
        logger.info("Added %s (%s) at %d points", card.name, card.rarity, card.price)
    logger.info("Successfully added %d sample cards to marketplace", len(cards))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
