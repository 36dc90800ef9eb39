"""Integration tests for ending, cancelling and voting on matches."""

from sqlalchemy import update

from src.database.config import session_scope
from src.database.models import Player
from src.services.errors import InvalidMatchState, MatchNotFound, TeamMismatch
from src.services.notifier import MATCH_COMPLETED, MATCH_CANCELLED


async def start_match(service, fill_queue, ratings):
    players = await fill_queue(ratings)
    created = await service.try_create_match()
    assert created.success, created.message
    return players, created


async def ratings_by_id(service, players):
    return {p.id: (await service.players.get(p.id)).rating for p in players}


async def test_equal_teams_move_sixteen_points(service, fill_queue, notifier):
    players, created = await start_match(service, fill_queue, [1000] * 4)
    team_a, team_b = created.data['teams']

    result = await service.report_winner(created.match_id, team_a['id'])

    assert result.success, result.message
    assert result.data['winner_delta'] == 16
    assert result.data['loser_delta'] == -16
    ratings = await ratings_by_id(service, players)
    for p in team_a['players']:
        assert ratings[p['id']] == 1016
    for p in team_b['players']:
        assert ratings[p['id']] == 984

    winner = await service.players.get(team_a['players'][0]['id'])
    loser = await service.players.get(team_b['players'][0]['id'])
    assert (winner.wins, winner.losses, winner.win_streak) == (1, 0, 1)
    assert (loser.wins, loser.losses, loser.loss_streak) == (0, 1, 1)

    match = (await service.get_match(created.match_id)).data['match']
    assert match['status'] == "completed"
    assert notifier.of(MATCH_COMPLETED)[0]['winner']['id'] == team_a['id']
    assert (created.match_id, 555) in notifier.closed


async def test_rating_floor(service, fill_queue):
    players, created = await start_match(service, fill_queue, [10] * 4)
    team_a, team_b = created.data['teams']

    await service.report_winner(created.match_id, team_a['id'])

    ratings = await ratings_by_id(service, players)
    for p in team_b['players']:
        assert ratings[p['id']] == 1


async def test_win_resets_loss_streak(service, fill_queue, session_factory):
    players, created = await start_match(service, fill_queue, [1000] * 4)
    team_a, _ = created.data['teams']
    winner_id = team_a['players'][0]['id']
    async with session_scope(session_factory) as session:
        await session.execute(update(Player).where(Player.id == winner_id).values(loss_streak=4))

    await service.report_winner(created.match_id, team_a['id'])

    winner = await service.players.get(winner_id)
    assert winner.loss_streak == 0
    assert winner.win_streak == 1


async def test_streak_bonus_on_third_win(service, fill_queue, session_factory):
    players, created = await start_match(service, fill_queue, [1000] * 4)
    team_a, team_b = created.data['teams']
    winner_ids = [p['id'] for p in team_a['players']]
    async with session_scope(session_factory) as session:
        await session.execute(update(Player).where(Player.id.in_(winner_ids)).values(win_streak=2))

    result = await service.report_winner(created.match_id, team_a['id'])

    # 3ª vitória seguida: +16 do Elo e +5 de bônus
    ratings = await ratings_by_id(service, players)
    assert all(ratings[pid] == 1021 for pid in winner_ids)
    assert all(c['bonus'] == 5 for c in result.data['changes'] if c['won'])
    assert all(ratings[p['id']] == 984 for p in team_b['players'])


async def test_second_end_is_rejected(service, fill_queue):
    players, created = await start_match(service, fill_queue, [1000] * 4)
    team_a, team_b = created.data['teams']

    first = await service.report_winner(created.match_id, team_a['id'])
    before = await ratings_by_id(service, players)
    second = await service.report_winner(created.match_id, team_b['id'])

    assert first.success
    assert isinstance(second.error, InvalidMatchState)
    assert await ratings_by_id(service, players) == before


async def test_unknown_team_and_match(service, fill_queue):
    _, created = await start_match(service, fill_queue, [1000] * 4)

    wrong_team = await service.report_winner(created.match_id, 9999)
    missing = await service.report_winner(9999, 1)

    assert isinstance(wrong_team.error, TeamMismatch)
    assert isinstance(missing.error, MatchNotFound)
    match = (await service.get_match(created.match_id)).data['match']
    assert match['status'] == "active"


async def test_cancel_requeues_everyone(service, fill_queue, notifier):
    players, created = await start_match(service, fill_queue, [1200, 1000, 900, 1100])
    before = await ratings_by_id(service, players)

    result = await service.cancel_match(created.match_id)

    assert result.success
    assert sorted(result.data['requeued']) == sorted(p.id for p in players)
    snapshot = await service.queue_snapshot()
    assert len(snapshot) == 4
    assert all(e['priority'] == 0 for e in snapshot)
    assert await ratings_by_id(service, players) == before
    assert len(service.processing) == 0
    assert notifier.of(MATCH_CANCELLED)[0]['match_id'] == created.match_id


async def test_closed_match_cannot_be_cancelled_or_ended(service, fill_queue):
    _, created = await start_match(service, fill_queue, [1000] * 4)
    team_a, _ = created.data['teams']
    await service.cancel_match(created.match_id)

    again = await service.cancel_match(created.match_id)
    ended = await service.report_winner(created.match_id, team_a['id'])

    assert isinstance(again.error, InvalidMatchState)
    assert isinstance(ended.error, InvalidMatchState)


async def test_players_can_rejoin_after_result(service, fill_queue):
    players, created = await start_match(service, fill_queue, [1000] * 4)
    team_a, _ = created.data['teams']
    await service.report_winner(created.match_id, team_a['id'])

    for p in players:
        assert (await service.join_queue(p.discord_id, p.display_name)).success
    assert len(service.processing) == 0


async def test_vote_winner_needs_half_of_the_players(service, fill_queue):
    _, created = await start_match(service, fill_queue, [1000] * 4)
    team_a, team_b = created.data['teams']
    voters = [p['discord_id'] for p in team_b['players']]

    first = await service.vote_winner(created.match_id, voters[0], team_b['id'])
    assert first.success
    assert first.data['required'] == 2
    match = (await service.get_match(created.match_id)).data['match']
    assert match['status'] == "active"

    second = await service.vote_winner(created.match_id, voters[1], team_b['id'])

    assert second.success
    assert second.data['winner_delta'] == 16
    match = (await service.get_match(created.match_id)).data['match']
    assert match['status'] == "completed"


async def test_changed_vote_counts_once(service, fill_queue):
    _, created = await start_match(service, fill_queue, [1000] * 4)
    team_a, team_b = created.data['teams']
    voter = team_a['players'][0]['discord_id']

    await service.vote_winner(created.match_id, voter, team_a['id'])
    changed = await service.vote_winner(created.match_id, voter, team_b['id'])

    assert changed.success
    assert changed.data['votes'] == {team_b['id']: 1}


async def test_outsider_cannot_vote(service, fill_queue, make_players):
    _, created = await start_match(service, fill_queue, [1000] * 4)
    team_a, _ = created.data['teams']
    [outsider] = await make_players([1000], start_discord_id=100)

    result = await service.vote_winner(created.match_id, outsider.discord_id, team_a['id'])

    assert not result.success
    match = (await service.get_match(created.match_id)).data['match']
    assert match['status'] == "active"


async def test_loss_resets_win_streak(service, fill_queue, session_factory):
    _, created = await start_match(service, fill_queue, [1000] * 4)
    team_a, team_b = created.data['teams']
    loser_id = team_b['players'][0]['id']
    async with session_scope(session_factory) as session:
        await session.execute(update(Player).where(Player.id == loser_id).values(win_streak=5))

    await service.report_winner(created.match_id, team_a['id'])

    loser = await service.players.get(loser_id)
    assert (loser.win_streak, loser.loss_streak) == (0, 1)
