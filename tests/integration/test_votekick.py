"""Integration tests for vote kicks."""

import pytest

from src.database.config import session_scope
from src.database.models import VoteKickStatus
from src.database.repositories import VoteRepository
from src.services.errors import VoteKickError
from src.services.matchmaking import MatchmakingService
from src.services.notifier import VOTE_KICK_STARTED, VOTE_KICK_FINISHED
from src.services.settings import MatchmakingConfig


@pytest.fixture
def trio_service(session_factory, notifier):
    # 3v3: 2 votos necessários e 2 companheiros aptos a votar
    config = MatchmakingConfig(
        team_size=3, min_queue_size=6, auto_match_creation=False,
        vote_majority_percent=50, vote_min_votes=1,
    )
    return MatchmakingService(session_factory, config, notifier)


@pytest.fixture
async def trio_match(trio_service):
    for discord_id in range(1, 7):
        assert (await trio_service.join_queue(discord_id, f"jogador{discord_id}")).success
    created = await trio_service.try_create_match()
    assert created.success, created.message
    team_a, team_b = created.data['teams']
    return {
        'match_id': created.match_id,
        'team_a': [p['discord_id'] for p in team_a['players']],
        'team_b': [p['discord_id'] for p in team_b['players']],
    }


async def vote_kick_status(session_factory, vote_kick_id):
    async with session_scope(session_factory) as session:
        return (await VoteRepository.get_vote_kick(session, vote_kick_id)).status


async def test_initiate_records_initiator_vote(trio_service, trio_match, notifier):
    initiator, target, _ = trio_match['team_a']

    result = await trio_service.initiate_vote_kick(initiator, target)

    assert result.success, result.message
    assert result.match_id == trio_match['match_id']
    assert result.data['required'] == 2
    assert result.data['eligible'] == 2
    assert 'passed' not in result.data
    assert notifier.of(VOTE_KICK_STARTED)[0]['target_discord_id'] == target


async def test_cannot_kick_yourself(trio_service, trio_match):
    me = trio_match['team_a'][0]

    result = await trio_service.initiate_vote_kick(me, me)

    assert isinstance(result.error, VoteKickError)


async def test_cannot_kick_the_other_team(trio_service, trio_match):
    result = await trio_service.initiate_vote_kick(trio_match['team_a'][0], trio_match['team_b'][0])

    assert isinstance(result.error, VoteKickError)


async def test_one_pending_vote_per_target(trio_service, trio_match):
    first, target, third = trio_match['team_a']

    opened = await trio_service.initiate_vote_kick(first, target)
    duplicate = await trio_service.initiate_vote_kick(third, target)

    assert opened.success
    assert isinstance(duplicate.error, VoteKickError)


async def test_player_outside_any_match_cannot_initiate(trio_service, trio_match, make_players):
    [outsider] = await make_players([1000], start_discord_id=100)

    result = await trio_service.initiate_vote_kick(outsider.discord_id, trio_match['team_a'][0])

    assert isinstance(result.error, VoteKickError)


async def test_target_and_other_team_cannot_vote(trio_service, trio_match):
    initiator, target, _ = trio_match['team_a']
    opened = await trio_service.initiate_vote_kick(initiator, target)
    vote_kick_id = opened.data['vote_kick_id']

    by_target = await trio_service.cast_vote(vote_kick_id, target, False)
    by_enemy = await trio_service.cast_vote(vote_kick_id, trio_match['team_b'][0], True)

    assert not by_target.tallied
    assert not by_enemy.tallied
    assert isinstance(by_target.error, VoteKickError)


async def test_double_vote_is_rejected(trio_service, trio_match):
    initiator, target, _ = trio_match['team_a']
    opened = await trio_service.initiate_vote_kick(initiator, target)

    again = await trio_service.cast_vote(opened.data['vote_kick_id'], initiator, True)

    assert not again.tallied


async def test_approval_passes_the_vote(trio_service, trio_match, session_factory, notifier):
    initiator, target, mate = trio_match['team_a']
    opened = await trio_service.initiate_vote_kick(initiator, target)
    vote_kick_id = opened.data['vote_kick_id']

    tally = await trio_service.cast_vote(vote_kick_id, mate, True)

    assert tally.tallied
    assert tally.passed is True
    assert (tally.approvals, tally.required) == (2, 2)
    assert await vote_kick_status(session_factory, vote_kick_id) == VoteKickStatus.APPROVED
    finished = notifier.of(VOTE_KICK_FINISHED)[0]
    assert finished['passed'] is True
    assert finished['target_discord_id'] == target


async def test_rejection_closes_the_vote(trio_service, trio_match, session_factory):
    initiator, target, mate = trio_match['team_a']
    opened = await trio_service.initiate_vote_kick(initiator, target)
    vote_kick_id = opened.data['vote_kick_id']

    tally = await trio_service.cast_vote(vote_kick_id, mate, False)

    # Todos os companheiros votaram sem chegar a 2 aprovações
    assert tally.passed is False
    assert await vote_kick_status(session_factory, vote_kick_id) == VoteKickStatus.REJECTED


async def test_vote_after_close_is_rejected(trio_service, trio_match):
    initiator, target, mate = trio_match['team_a']
    opened = await trio_service.initiate_vote_kick(initiator, target)
    vote_kick_id = opened.data['vote_kick_id']
    await trio_service.cast_vote(vote_kick_id, mate, True)

    late = await trio_service.cast_vote(vote_kick_id, initiator, True)

    assert not late.tallied
    assert isinstance(late.error, VoteKickError)


async def test_two_player_team_decides_on_initiation(service, fill_queue):
    await fill_queue([1000] * 4)
    created = await service.try_create_match()
    initiator, target = [p['discord_id'] for p in created.data['teams'][0]['players']]

    result = await service.initiate_vote_kick(initiator, target)

    # 1 voto necessário e só 1 companheiro: o voto de quem abriu já decide
    assert result.success
    assert result.data['required'] == 1
    assert result.data['passed'] is True


async def test_required_votes(trio_service):
    assert trio_service.vote_kicks.required_votes(3) == 2
    assert trio_service.vote_kicks.required_votes(5) == 3
    assert trio_service.vote_kicks.required_votes(1) == 1


async def test_vote_kick_dies_with_its_match(trio_service, trio_match, session_factory, notifier):
    initiator, target, mate = trio_match['team_a']
    opened = await trio_service.initiate_vote_kick(initiator, target)
    vote_kick_id = opened.data['vote_kick_id']
    match = (await trio_service.get_match(trio_match['match_id'])).data['match']

    await trio_service.report_winner(trio_match['match_id'], match['teams'][0]['id'])
    late = await trio_service.cast_vote(vote_kick_id, mate, True)

    assert not late.tallied
    assert isinstance(late.error, VoteKickError)
    assert await vote_kick_status(session_factory, vote_kick_id) == VoteKickStatus.REJECTED
    assert notifier.of(VOTE_KICK_FINISHED) == []


async def test_cancel_rejects_pending_vote_kicks(trio_service, trio_match, session_factory):
    initiator, target, _ = trio_match['team_a']
    opened = await trio_service.initiate_vote_kick(initiator, target)

    await trio_service.cancel_match(trio_match['match_id'])

    assert await vote_kick_status(session_factory, opened.data['vote_kick_id']) == VoteKickStatus.REJECTED
