"""
Competition team (roster) rules.
"""

from __future__ import annotations

from typing import Mapping, Optional

from fantasy_backend.errors import TeamValidationError
from fantasy_backend.records import CardRecord


def active_positions(required_positions: Mapping[str, int]) -> dict[str, int]:
    """Positions that actually need cards; zero or negative counts are ignored."""
    return {
        position: int(count)
        for position, count in required_positions.items()
        if int(count) > 0
    }


def team_card_ids(team: Mapping[str, list[str]]) -> list[str]:
    return [card_id for card_ids in team.values() for card_id in card_ids]


def validate_team(
    required_positions: Mapping[str, int],
    team: Mapping[str, list[str]],
    cards_by_id: Mapping[str, CardRecord],
    owner: str,
    max_performers: Optional[int] = None,
) -> None:
    """
    Check a team against the competition's roster rules.

    Every problem found is collected so the caller can show them all at once.
    Raises TeamValidationError if there is at least one.
    """
    owner = owner.lower()
    required = active_positions(required_positions)
    problems: list[str] = []

    for position, count in required.items():
        selected = len(team.get(position) or [])
        if selected < count:
            problems.append(f"{position} needs {count} performers, got {selected}")
        elif selected > count:
            problems.append(
                f"Maximum {count} performers allowed for {position}, got {selected}"
            )

    for position, card_ids in team.items():
        if position not in required and card_ids:
            problems.append(f"{position} is not a position in this competition")

    seen: set[str] = set()
    for position, card_ids in team.items():
        for card_id in card_ids:
            if card_id in seen:
                problems.append(f"Card {card_id} can only be selected once")
                continue
            seen.add(card_id)

            card = cards_by_id.get(card_id)
            if card is None:
                problems.append(f"Card {card_id} does not exist")
                continue
            if (card.owner_id or "").lower() != owner:
                problems.append(f"You don't own card {card_id}")
            if card.positions and position not in card.positions:
                problems.append(f"{card.name} cannot play {position}")

    total = len(team_card_ids(team))
    if max_performers and total > max_performers:
        problems.append(f"A team may have at most {max_performers} performers")

    if not required:
        problems.append("This competition has no roster positions")

    if problems:
        raise TeamValidationError(problems)
