import pytest

from f1vote import scoring
from f1vote.scoring import (
    build_race_ballots,
    compute_leaderboard,
    point_value,
    position_bonus,
    score_race_prediction,
    score_season_prediction,
)

RESULTS = ["ver", "nor", "lec", "pia", "ham", "rus", "ant", "alo", "gas", "sai", "alb", "str", "oco"]


def test_weights_loaded_from_package_data():
    assert scoring.SCORED_POSITIONS == 10
    assert scoring.SELECTION_POINTS == 1
    assert scoring.BONUS_P1 == 3
    assert scoring.BONUS_PODIUM == 5
    assert [position_bonus(d) for d in range(7)] == [6, 4, 3, 2, 1, 0, 0]


def test_position_bonus_uses_absolute_difference():
    assert position_bonus(-2) == position_bonus(2) == 3


def test_perfect_ballot_scores_maximum():
    res = score_race_prediction(RESULTS[:10], RESULTS)
    assert res["total_points"] == 78
    assert res["perfect_predictions"] == 10
    assert res["details"]["bonus_p1"] == 3
    assert res["details"]["bonus_podium"] == 5
    assert res["details"]["from_season"] is False


def test_swapped_front_row_loses_both_bonuses():
    ballot = ["nor", "ver"] + RESULTS[2:10]
    res = score_race_prediction(ballot, RESULTS)
    # two picks one place off (1 + 4 each) and eight exact (1 + 6 each)
    assert res["total_points"] == 2 * 5 + 8 * 7
    assert res["perfect_predictions"] == 8
    assert res["details"]["bonus_p1"] == 0
    assert res["details"]["bonus_podium"] == 0


def test_correct_winner_without_podium():
    ballot = ["ver", "lec", "nor"] + RESULTS[3:10]
    res = score_race_prediction(ballot, RESULTS)
    assert res["details"]["bonus_p1"] == 3
    assert res["details"]["bonus_podium"] == 0
    assert res["total_points"] == 7 + 5 + 5 + 7 * 7 + 3


def test_driver_outside_top_ten_scores_nothing():
    res = score_race_prediction(["alb"], RESULTS)
    pick = res["details"]["predictions"][0]
    assert pick["in_top10"] is False
    assert pick["actual_pos"] is None
    assert pick["points"] == 0
    assert res["total_points"] == 0


def test_far_miss_still_earns_selection_point():
    res = score_race_prediction(["sai"], RESULTS)
    pick = res["details"]["predictions"][0]
    assert pick["actual_pos"] == 10
    assert pick["selection_points"] == 1
    assert pick["position_points"] == 0
    assert res["total_points"] == 1


def test_only_first_ten_predictions_count():
    ballot = ["oco", "str", "alb", "bea", "hul", "bor", "per", "bot", "col", "law", "ver", "nor"]
    res = score_race_prediction(ballot, RESULTS)
    assert len(res["details"]["predictions"]) == 10
    assert res["total_points"] == 0


def test_empty_ballot_or_results():
    assert score_race_prediction([], RESULTS)["total_points"] == 0
    assert score_race_prediction(RESULTS[:10], [])["total_points"] == 0


def test_from_season_flag_is_recorded():
    res = score_race_prediction(RESULTS[:3], RESULTS, from_season=True)
    assert res["details"]["from_season"] is True


@pytest.mark.parametrize("predicted,actual,expected", [(0, 0, 5), (3, 1, 3), (1, 5, 1), (0, 7, 0)])
def test_season_point_value(predicted, actual, expected):
    assert point_value(predicted, actual) == expected


def test_score_season_prediction():
    res = score_season_prediction(["a", "b", "c", "x"], ["b", "a", "c"])
    assert res["total_points"] == 4 + 4 + 5
    assert res["perfect_predictions"] == 1
    assert [d["driver"] for d in res["details"]] == ["a", "b", "c"]


def test_build_race_ballots_prefers_race_votes_over_season():
    race_votes = [
        {"user_id": 1, "position": 2, "driver_slug": "nor"},
        {"user_id": 1, "position": 1, "driver_slug": "ver"},
    ]
    fallback = [
        {"user_id": 1, "position": 1, "driver_slug": "lec", "active_season": True},
        {"user_id": 2, "position": 1, "driver_slug": "lec", "active_season": True},
        {"user_id": 2, "position": 2, "driver_slug": "gone", "active_season": False},
        {"user_id": 2, "position": 3, "driver_slug": "ham", "active_season": True},
    ]
    ballots = build_race_ballots(race_votes, fallback)
    assert ballots[1] == (["ver", "nor"], False)
    assert ballots[2] == (["lec", "ham"], True)


def test_leaderboard_orders_and_shares_places():
    players = [
        {"id": 1, "name": "Alice", "team_name": "Ferrari", "avatar": None},
        {"id": 2, "name": "Bob", "team_name": None, "avatar": None},
        {"id": 3, "name": None, "team_name": "McLaren", "avatar": None},
    ]
    race_scores = [
        {"user_id": 1, "total_points": 30, "perfect_predictions": 3},
        {"user_id": 2, "total_points": 20, "perfect_predictions": 1},
        {"user_id": 2, "total_points": 10, "perfect_predictions": 2},
        {"user_id": 3, "total_points": 12, "perfect_predictions": 0},
    ]
    table = compute_leaderboard(players, race_scores, vote_counts={1: 10, 2: 20}, completed_races=2)
    assert [r["id"] for r in table] == [1, 2, 3]
    assert [r["place"] for r in table] == [1, 1, 3]
    assert table[0]["race_wins"] == 1
    assert table[1]["races_scored"] == 2
    assert table[1]["team"] == "No team"
    assert table[2]["name"] == "Anonymous"
    assert table[2]["vote_count"] == 0
    assert all(r["has_scores"] for r in table)


def test_leaderboard_tie_broken_by_perfect_predictions():
    players = [{"id": 1, "name": "A"}, {"id": 2, "name": "B"}]
    race_scores = [
        {"user_id": 1, "total_points": 20, "perfect_predictions": 1},
        {"user_id": 2, "total_points": 20, "perfect_predictions": 2},
    ]
    table = compute_leaderboard(players, race_scores, completed_races=1)
    assert [r["id"] for r in table] == [2, 1]
    assert [r["place"] for r in table] == [1, 2]


def test_leaderboard_adds_season_points():
    players = [{"id": 1, "name": "A"}, {"id": 2, "name": "B"}]
    season = {2: {"total_points": 15, "perfect_predictions": 1}}
    table = compute_leaderboard(players, [], season_scores=season)
    assert table[0]["id"] == 2
    assert table[0]["season_points"] == 15
    assert table[0]["total_points"] == 15
    assert table[1]["has_scores"] is False
