"""
Sample marketplace cards for seeding a fresh database.
"""

from __future__ import annotations

import random
from typing import Mapping, Optional

from fantasy_backend.constants import Gender, Rarity
from fantasy_backend.db import DbClient, new_id
from fantasy_backend.records import CardRecord, PerformerRecord

SAMPLE_IMAGES = (
    "https://images.unsplash.com/photo-1534528741775-53994a69daeb",
    "https://images.unsplash.com/photo-1517841905240-472988babdf9",
    "https://images.unsplash.com/photo-1522075469751-3a6694fb2f61",
    "https://images.unsplash.com/photo-1544005313-94ddf0286df2",
    "https://images.unsplash.com/photo-1531746020798-e6953c6e8e04",
)

PRICE_RANGES: dict[Rarity, tuple[int, int]] = {
    Rarity.LEGENDARY: (2000, 2500),
    Rarity.EPIC: (1200, 1800),
    Rarity.RARE: (500, 1000),
}

SAMPLE_PERFORMERS = (
    ("Victoria Vixen", ("Legend", "MILF", "Lead"), Rarity.LEGENDARY),
    ("Luna Legend", ("Legend", "Cam Girl", "MILF"), Rarity.LEGENDARY),
    ("Sophia Storm", ("Analqueen", "Lead", "Special"), Rarity.EPIC),
    ("Aria Angel", ("Lead", "Special", "Cam Girl"), Rarity.RARE),
    ("Maya Mystique", ("Analqueen", "MILF", "Special"), Rarity.EPIC),
)


def ensure_sample_performers(db: DbClient) -> dict[str, str]:
    """Performer id per sample name; missing performers are created."""
    performer_ids = {}
    for name, positions, _ in SAMPLE_PERFORMERS:
        performer = next(
            (
                p
                for p in db.list_performers(query=name, limit=50)
                if p.name.lower() == name.lower()
            ),
            None,
        )
        if performer is None:
            performer = db.create_performer(
                PerformerRecord(
                    performer_id=new_id(),
                    name=name,
                    gender=Gender.FEMALE.value,
                    positions=list(positions),
                )
            )
        performer_ids[name] = performer.performer_id
    return performer_ids


def create_sample_cards(
    rng: random.Random | None = None,
    performer_ids: Optional[Mapping[str, str]] = None,
) -> list[CardRecord]:
    """
    One available card per sample performer, priced within its rarity range.
    Cards only score in competitions when ``performer_ids`` links them to
    performers.
    """
    performer_ids = performer_ids or {}
    rng = rng or random.Random()
    cards = []
    for name, positions, rarity in SAMPLE_PERFORMERS:
        low, high = PRICE_RANGES[rarity]
        cards.append(
            CardRecord(
                card_id=new_id(),
                name=name,
                price=rng.randint(low, high),
                rarity=rarity.value,
                image=rng.choice(SAMPLE_IMAGES),
                positions=list(positions),
                performer_id=performer_ids.get(name),
                stats={
                    "power": rng.randint(50, 99),
                    "agility": rng.randint(50, 99),
                    "stamina": rng.randint(50, 99),
                },
            )
        )
    return cards
