"""
Competition scoring: scene tags -> performer points -> team points -> ranks and prizes.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Iterable, Mapping

from fantasy_backend.constants import (
    DEFAULT_SCENE_POINTS,
    SCENE_APPEARANCE_KEY,
    SCENE_TAGS,
    PrizeType,
)
from fantasy_backend.records import CardRecord, MovieRecord, ScenePointValue


def with_default_scene_points(
    stored: Iterable[ScenePointValue],
) -> list[ScenePointValue]:
    """Every catalog tag, using the stored value where an admin set one."""
    by_tag = {value.tag_id: value for value in stored}
    return [
        by_tag.get(tag.lower())
        or ScenePointValue(tag_id=tag.lower(), name=tag, points=DEFAULT_SCENE_POINTS)
        for tag in SCENE_TAGS
    ]


def tag_value(
    tag: str,
    scene_values: Mapping[str, float],
    scoring_system: Mapping[str, float],
) -> float:
    if tag in scoring_system:
        return float(scoring_system[tag])
    return float(scene_values.get(tag.lower(), 0))


def performer_scene_points(
    movies: Iterable[MovieRecord],
    scene_values: Mapping[str, float],
    scoring_system: Mapping[str, float],
) -> dict[str, float]:
    """
    Points earned by each performer across the scenes of ``movies``.

    ``scene_values`` is keyed by lowercased tag; an event's ``scoring_system``
    overrides it tag by tag and may price a plain appearance under "Scene".
    """
    appearance = float(scoring_system.get(SCENE_APPEARANCE_KEY, 0))
    points: dict[str, float] = defaultdict(float)
    for movie in movies:
        for scene in movie.scenes:
            for performer in scene.get("performers", []):
                performer_id = performer.get("performer_id")
                if not performer_id:
                    continue
                points[performer_id] += appearance
                for tag in performer.get("tags", []):
                    points[performer_id] += tag_value(tag, scene_values, scoring_system)
    return dict(points)


def score_team(
    team: Mapping[str, list[str]],
    cards_by_id: Mapping[str, CardRecord],
    performer_points: Mapping[str, float],
) -> float:
    total = 0.0
    for card_ids in team.values():
        for card_id in card_ids:
            card = cards_by_id.get(card_id)
            if card is None or not card.performer_id:
                continue
            total += performer_points.get(card.performer_id, 0.0)
    return total


def rank_scores(scores: Mapping[str, float]) -> list[tuple[str, float, int]]:
    """
    Standard competition ranking (1, 2, 2, 4). Ties are listed by user id.
    """
    ordered = sorted(scores.items(), key=lambda item: (-item[1], item[0]))
    ranked: list[tuple[str, float, int]] = []
    previous_score = None
    rank = 0
    for position, (user_id, score) in enumerate(ordered, start=1):
        if score != previous_score:
            rank = position
            previous_score = score
        ranked.append((user_id, score, rank))
    return ranked


def prize_awards(
    ranked: Iterable[tuple[str, float, int]], prizes: Iterable[Mapping]
) -> dict[str, int]:
    """Points owed to each user; only prizes of type ``points`` pay out here."""
    by_rank: dict[int, int] = defaultdict(int)
    for prize in prizes:
        if prize.get("type", PrizeType.POINTS.value) != PrizeType.POINTS.value:
            continue
        by_rank[int(prize["rank"])] += int(prize.get("amount", 0))

    awards: dict[str, int] = {}
    for user_id, _, rank in ranked:
        amount = by_rank.get(rank, 0)
        if amount:
            awards[user_id] = awards.get(user_id, 0) + amount
    return awards
