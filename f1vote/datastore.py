from typing import Any, Dict, List, Optional, Sequence

# Datastore proxy
# Route modules import from here; every call is delegated to datastore_pg at
# call time so the PostgreSQL functions can be swapped out (e.g. in tests).

from . import datastore_pg as _pg


def get_user(user_id: int) -> Optional[Dict[str, Any]]:
    return _pg.get_user(user_id)


def get_user_by_username(username: str) -> Optional[Dict[str, Any]]:
    return _pg.get_user_by_username(username)


def create_user(username: str, password_hash: str, name: str, team_id: Optional[int] = None,
                favorite_driver_slug: Optional[str] = None, is_admin: bool = False) -> Dict[str, Any]:
    return _pg.create_user(username, password_hash, name, team_id=team_id,
                           favorite_driver_slug=favorite_driver_slug, is_admin=is_admin)


def update_user_profile(user_id: int, name: str, team_id: Optional[int], favorite_driver_slug: Optional[str]) -> Dict[str, Any]:
    return _pg.update_user_profile(user_id, name, team_id, favorite_driver_slug)


def update_user_avatar(user_id: int, avatar: Optional[str]) -> None:
    return _pg.update_user_avatar(user_id, avatar)


def list_players() -> List[Dict[str, Any]]:
    return _pg.list_players()


def list_users_with_vote_counts() -> List[Dict[str, Any]]:
    return _pg.list_users_with_vote_counts()


def vote_counts_by_user() -> Dict[int, int]:
    return _pg.vote_counts_by_user()


def delete_user(user_id: int) -> bool:
    return _pg.delete_user(user_id)


def list_teams() -> List[Dict[str, Any]]:
    return _pg.list_teams()


def get_team_by_name(name: str) -> Optional[Dict[str, Any]]:
    if not name:
        return None
    return _pg.get_team_by_name(name)


def list_drivers(active: Optional[bool] = None, active_season: Optional[bool] = None, order_by: str = "name") -> List[Dict[str, Any]]:
    return _pg.list_drivers(active=active, active_season=active_season, order_by=order_by)


def get_driver(slug: str) -> Optional[Dict[str, Any]]:
    if not slug:
        return None
    return _pg.get_driver(slug)


def save_driver(driver: Dict[str, Any]) -> Dict[str, Any]:
    return _pg.save_driver(driver)


def set_driver_flag(slug: str, field: str, value: bool) -> None:
    return _pg.set_driver_flag(slug, field, value)


def delete_driver(slug: str) -> None:
    return _pg.delete_driver(slug)


def list_races() -> List[Dict[str, Any]]:
    return _pg.list_races()


def get_race(round_no: int) -> Optional[Dict[str, Any]]:
    return _pg.get_race(round_no)


def get_race_by_id(race_id: int) -> Optional[Dict[str, Any]]:
    return _pg.get_race_by_id(race_id)


def save_race(race: Dict[str, Any]) -> Dict[str, Any]:
    return _pg.save_race(race)


def upsert_race(race: Dict[str, Any]) -> None:
    return _pg.upsert_race(race)


def delete_race(race_id: int) -> Optional[int]:
    return _pg.delete_race(race_id)


def count_completed_races() -> int:
    return _pg.count_completed_races()


def set_race_results(round_no: int, results: Sequence[str], completed: bool) -> None:
    return _pg.set_race_results(round_no, results, completed)


def get_race_ballot(user_id: int, round_no: int) -> List[str]:
    return _pg.get_race_ballot(user_id, round_no)


def replace_race_votes(user_id: int, round_no: int, slugs: Sequence[str]) -> None:
    return _pg.replace_race_votes(user_id, round_no, slugs)


def list_race_votes(round_no: int) -> List[Dict[str, Any]]:
    return _pg.list_race_votes(round_no)


def list_user_race_votes(user_id: int) -> List[Dict[str, Any]]:
    return _pg.list_user_race_votes(user_id)


def race_voter_ids(round_no: int) -> set:
    return _pg.race_voter_ids(round_no)


def list_season_votes(user_id: int, season: int) -> List[Dict[str, Any]]:
    """Return a user's season picks for drivers still active this season.

    Picks for drivers that were switched off are hidden and the remaining
    positions are re-compacted to 1..n without touching stored rows.
    """
    votes = [v for v in (_pg.list_season_votes(user_id, season) or []) if v.get("active_season", True)]
    for idx, vote in enumerate(votes, start=1):
        vote["position"] = idx
    return votes


def add_season_vote(user_id: int, slug: str, season: int) -> Optional[int]:
    return _pg.add_season_vote(user_id, slug, season)


def remove_season_vote(user_id: int, slug: str, season: int) -> None:
    return _pg.remove_season_vote(user_id, slug, season)


def replace_season_votes(user_id: int, season: int, slugs: Sequence[str]) -> None:
    return _pg.replace_season_votes(user_id, season, slugs)


def list_season_fallback_votes(season: int, max_position: int, exclude_user_ids: Sequence[int]) -> List[Dict[str, Any]]:
    return _pg.list_season_fallback_votes(season, max_position, exclude_user_ids)


def list_all_season_votes(season: int) -> List[Dict[str, Any]]:
    return _pg.list_all_season_votes(season)


def upsert_race_scores(round_no: int, scores: Sequence[Dict[str, Any]]) -> None:
    return _pg.upsert_race_scores(round_no, scores)


def delete_race_scores(round_no: int) -> None:
    return _pg.delete_race_scores(round_no)


def list_race_scores(round_no: int) -> List[Dict[str, Any]]:
    return _pg.list_race_scores(round_no)


def list_user_scores(user_id: int) -> List[Dict[str, Any]]:
    return _pg.list_user_scores(user_id)


def list_all_race_scores() -> List[Dict[str, Any]]:
    return _pg.list_all_race_scores()


def get_season_standings(season: int) -> Optional[List[str]]:
    return _pg.get_season_standings(season)


def set_season_standings(season: int, results: Optional[Sequence[str]]) -> None:
    return _pg.set_season_standings(season, results)
