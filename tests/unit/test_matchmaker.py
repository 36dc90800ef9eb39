"""Unit tests for team balancing."""

import pytest

from src.services.errors import BalancingError
from src.services.matchmaker import MatchMaker


def make(ratings):
    return [{'id': i + 1, 'name': f"p{i + 1}", 'rating': r} for i, r in enumerate(ratings)]


def ratings_of(team):
    return sorted((p['rating'] for p in team), reverse=True)


def test_four_player_scenario():
    team_a, team_b = MatchMaker.balance_teams(make([1200, 1000, 900, 1100]), team_size=2)
    assert ratings_of(team_a) == [1200, 900]
    assert ratings_of(team_b) == [1100, 1000]


def test_ties_go_to_team_a():
    team_a, team_b = MatchMaker.balance_teams(make([1000, 1000]), team_size=1)
    assert [p['id'] for p in team_a] == [1]
    assert [p['id'] for p in team_b] == [2]


def test_full_team_receives_no_more_players():
    # Ratings muito desiguais: sem limite de vagas o time B ficaria com 3
    team_a, team_b = MatchMaker.balance_teams(make([3000, 100, 100, 100]), team_size=2)
    assert len(team_a) == len(team_b) == 2
    assert ratings_of(team_a) == [3000, 100]


def test_five_vs_five_is_a_partition():
    players = make([1500, 1420, 1300, 1250, 1200, 1100, 1000, 950, 900, 800])
    team_a, team_b = MatchMaker.balance_teams(players, team_size=5)
    ids = [p['id'] for p in team_a + team_b]
    assert sorted(ids) == list(range(1, 11))
    assert len(team_a) == len(team_b) == 5


@pytest.mark.parametrize("count", [0, 3, 5])
def test_wrong_player_count_raises(count):
    with pytest.raises(BalancingError):
        MatchMaker.balance_teams(make([1000] * count), team_size=2)


def test_missing_rating_uses_default_and_is_flagged(caplog):
    players = make([1200, 1000, 900])
    players.append({'id': 4, 'name': 'novato', 'rating': None})

    with caplog.at_level("WARNING", logger="matchmaker"):
        team_a, team_b = MatchMaker.balance_teams(players, team_size=2, default_rating=1100)

    newbie = next(p for p in team_a + team_b if p['id'] == 4)
    assert newbie['rating'] == 1100
    assert newbie['missing_rating'] is True
    assert "novato" in caplog.text


def test_balance_with_group_keeps_group_together():
    group = make([900, 800])
    others = [{'id': 10, 'name': 'x', 'rating': 1500}, {'id': 11, 'name': 'y', 'rating': 1400}]
    team_a, team_b = MatchMaker.balance_with_group(group, others, team_size=2)
    assert {p['id'] for p in team_a} == {1, 2}
    assert {p['id'] for p in team_b} == {10, 11}


def test_balance_with_group_rejects_wrong_size():
    with pytest.raises(BalancingError):
        MatchMaker.balance_with_group(make([900]), make([1, 2, 3]), team_size=2)


def test_team_average_rounds_half_up():
    assert MatchMaker.team_average([{'rating': 1000}, {'rating': 1001}]) == 1001
    assert MatchMaker.team_average([]) == 0
