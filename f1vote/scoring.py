"""Scoring utilities for race and season predictions."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

# Scoring weights ship with the package under ``data``.
DATA_DIR = Path(__file__).resolve().parent / "data"

# A player "wins" a race with at least this many exact hits.
RACE_WIN_PERFECT_HITS = 3


def _build_lookup(entries: List[Dict], key_field: str, value_field: str) -> Tuple[Dict[int, int], int]:
    """Build lookup dict and default value from settings entries."""
    lookup: Dict[int, int] = {}
    default = 0
    for item in entries:
        key = item[key_field]
        value = item[value_field]
        if isinstance(key, int):
            lookup[int(key)] = value
        elif key == "default_or_higher":
            default = value
    return lookup, default


with (DATA_DIR / "scoring.json").open() as f:
    _SETTINGS = json.load(f)

_POSITION_BONUS, _POSITION_BONUS_DEFAULT = _build_lookup(
    _SETTINGS["position_bonus_by_diff"], "diff", "points"
)
SCORED_POSITIONS = int(_SETTINGS.get("scored_positions", 10))
SELECTION_POINTS = int(_SETTINGS.get("selection_points", 1))
BONUS_P1 = int(_SETTINGS.get("bonus_p1", 3))
BONUS_PODIUM = int(_SETTINGS.get("bonus_podium", 5))
SEASON_MAX_POINTS = int(_SETTINGS.get("season_max_points", 5))


def point_value(predicted: int, actual: int) -> int:
    """Return season points for a pick: the full value for an exact hit, one
    point less per place of distance, never below zero."""
    return max(0, SEASON_MAX_POINTS - abs(actual - predicted))


def position_bonus(diff: int) -> int:
    """Return the race position-accuracy bonus for a positional difference."""
    return int(_POSITION_BONUS.get(abs(int(diff)), _POSITION_BONUS_DEFAULT))


def score_race_prediction(predicted: Sequence[str], results: Sequence[str], from_season: bool = False) -> Dict:
    """Score one ballot against the actual finishing order.

    Args:
        predicted: Driver slugs in predicted order, index 0 being P1.
        results: Driver slugs in actual finishing order.
        from_season: Marks ballots synthesised from season picks.

    Only the first ``SCORED_POSITIONS`` predicted places are scored and only
    drivers inside the actual top ``SCORED_POSITIONS`` earn anything. Each such
    driver earns a selection point plus a bonus for positional accuracy. A
    correct P1 adds ``BONUS_P1`` and an exact podium adds ``BONUS_PODIUM``.

    Returns:
        Dictionary with ``total_points``, ``perfect_predictions`` and a
        JSON-serialisable ``details`` breakdown.
    """
    top_results = list(results)[:SCORED_POSITIONS]
    actual_index = {slug: idx for idx, slug in enumerate(top_results)}

    total_points = 0
    perfect_predictions = 0
    predictions: List[Dict] = []
    for idx, slug in enumerate(list(predicted)[:SCORED_POSITIONS]):
        predicted_pos = idx + 1
        in_top = slug in actual_index
        actual_pos = actual_index[slug] + 1 if in_top else None

        selection_points = 0
        position_points = 0
        if actual_pos is not None:
            selection_points = SELECTION_POINTS
            diff = abs(predicted_pos - actual_pos)
            position_points = position_bonus(diff)
            if diff == 0:
                perfect_predictions += 1

        points = selection_points + position_points
        total_points += points
        predictions.append(
            {
                "driver": slug,
                "predicted_pos": predicted_pos,
                "actual_pos": actual_pos,
                "in_top10": in_top,
                "selection_points": selection_points,
                "position_points": position_points,
                "points": points,
            }
        )

    exact = {p["predicted_pos"] for p in predictions if p["actual_pos"] == p["predicted_pos"]}
    bonus_p1 = BONUS_P1 if 1 in exact else 0
    bonus_podium = BONUS_PODIUM if {1, 2, 3} <= exact else 0
    total_points += bonus_p1 + bonus_podium

    return {
        "total_points": total_points,
        "perfect_predictions": perfect_predictions,
        "details": {
            "predictions": predictions,
            "bonus_p1": bonus_p1,
            "bonus_podium": bonus_podium,
            "from_season": bool(from_season),
        },
    }


def score_season_prediction(predicted: Sequence[str], standings: Sequence[str]) -> Dict:
    """Score a season ranking against the final championship order.

    Drivers missing from ``standings`` are skipped.
    """
    actual_index = {slug: idx for idx, slug in enumerate(standings)}
    total_points = 0
    perfect_predictions = 0
    details: List[Dict] = []
    for predicted_idx, slug in enumerate(predicted):
        actual_idx = actual_index.get(slug)
        if actual_idx is None:
            continue
        points = point_value(predicted_idx, actual_idx)
        total_points += points
        if predicted_idx == actual_idx:
            perfect_predictions += 1
        details.append(
            {
                "driver": slug,
                "predicted_pos": predicted_idx + 1,
                "actual_pos": actual_idx + 1,
                "points": points,
            }
        )
    return {
        "total_points": total_points,
        "perfect_predictions": perfect_predictions,
        "details": details,
    }


def build_race_ballots(race_votes: Iterable[Dict], season_fallback: Iterable[Dict]) -> Dict[int, Tuple[List[str], bool]]:
    """Group stored votes into one ordered ballot per user.

    ``race_votes`` rows carry ``user_id``, ``position`` and ``driver_slug``.
    ``season_fallback`` rows carry the same plus ``active_season``; they are
    used only for users without any race vote. Season picks for drivers no
    longer active this season are dropped and the rest keep their relative
    order.

    Returns:
        Mapping of user id to ``(slugs, from_season)``.
    """
    by_user: Dict[int, List[Tuple[int, str]]] = {}
    for vote in race_votes:
        by_user.setdefault(vote["user_id"], []).append((int(vote["position"]), vote["driver_slug"]))

    ballots: Dict[int, Tuple[List[str], bool]] = {}
    for user_id, picks in by_user.items():
        picks.sort()
        ballots[user_id] = ([slug for _, slug in picks], False)

    season_by_user: Dict[int, List[Tuple[int, str]]] = {}
    for vote in season_fallback:
        user_id = vote["user_id"]
        if user_id in ballots:
            continue
        if not vote.get("active_season", True):
            continue
        season_by_user.setdefault(user_id, []).append((int(vote["position"]), vote["driver_slug"]))
    for user_id, picks in season_by_user.items():
        picks.sort()
        ballots[user_id] = ([slug for _, slug in picks], True)
    return ballots


def compute_leaderboard(
    players: Iterable[Dict],
    race_scores: Iterable[Dict],
    season_scores: Optional[Dict[int, Dict]] = None,
    vote_counts: Optional[Dict[int, int]] = None,
    completed_races: int = 0,
) -> List[Dict]:
    """Aggregate per-race scores into overall standings.

    Args:
        players: Player rows with ``id``, ``name``, ``team_name`` and ``avatar``.
        race_scores: Score rows with ``user_id``, ``total_points`` and
            ``perfect_predictions``.
        season_scores: Optional mapping of user id to a season score as
            returned by :func:`score_season_prediction`.
        vote_counts: Optional mapping of user id to stored vote count.
        completed_races: Number of races with published results.

    Returns:
        List of standings dictionaries sorted by total points (high points
        wins); equal totals and perfect counts share a place.
    """
    season_scores = season_scores or {}
    vote_counts = vote_counts or {}
    totals: Dict[int, Dict] = {}
    for score in race_scores:
        entry = totals.setdefault(
            score["user_id"], {"race_points": 0, "perfect_predictions": 0, "races_scored": 0, "race_wins": 0}
        )
        entry["race_points"] += int(score.get("total_points") or 0)
        perfect = int(score.get("perfect_predictions") or 0)
        entry["perfect_predictions"] += perfect
        entry["races_scored"] += 1
        if perfect >= RACE_WIN_PERFECT_HITS:
            entry["race_wins"] += 1

    standings: List[Dict] = []
    for player in players:
        pid = player["id"]
        race = totals.get(pid, {"race_points": 0, "perfect_predictions": 0, "races_scored": 0, "race_wins": 0})
        season = season_scores.get(pid) or {}
        season_points = int(season.get("total_points") or 0)
        standings.append(
            {
                "id": pid,
                "name": player.get("name") or "Anonymous",
                "team": player.get("team_name") or "No team",
                "avatar": player.get("avatar"),
                "vote_count": int(vote_counts.get(pid, 0)),
                "race_points": race["race_points"],
                "season_points": season_points,
                "total_points": race["race_points"] + season_points,
                "perfect_predictions": race["perfect_predictions"] + int(season.get("perfect_predictions") or 0),
                "races_scored": race["races_scored"],
                "race_wins": race["race_wins"],
                "has_scores": completed_races > 0,
            }
        )

    standings.sort(key=lambda r: (-r["total_points"], -r["perfect_predictions"], r["name"].lower()))

    last_key = None
    place = 0
    for idx, entry in enumerate(standings, start=1):
        key = (entry["total_points"], entry["perfect_predictions"])
        if key != last_key:
            place = idx
            last_key = key
        entry["place"] = place
    return standings


__all__ = [
    "point_value",
    "position_bonus",
    "score_race_prediction",
    "score_season_prediction",
    "build_race_ballots",
    "compute_leaderboard",
]
