"""Integration tests for the shared queue (SQLite em arquivo)."""

import asyncio
from datetime import datetime, timedelta

from src.services.errors import AlreadyQueued, AlreadyInMatch, QueueFull
from src.services.queue import QueueService
from src.services.settings import MatchmakingConfig
from src.services.state import ProcessingSet


async def test_duplicate_join_is_rejected(service, make_players):
    [player] = await make_players([1000])

    first = await service.join_queue(player.discord_id, player.display_name)
    second = await service.join_queue(player.discord_id, player.display_name)

    assert first.success
    assert not second.success
    assert isinstance(second.error, AlreadyQueued)
    assert await service.queue.size() == 1


async def test_concurrent_joins_only_one_entry(service, make_players):
    [player] = await make_players([1000])

    results = await asyncio.gather(*[service.queue.enqueue(player.id) for _ in range(5)])

    assert sum(r.success for r in results) == 1
    assert all(isinstance(r.error, AlreadyQueued) for r in results if not r.success)
    assert await service.queue.size() == 1


async def test_join_creates_player_on_first_use(service):
    result = await service.join_queue(777, "novato")
    assert result.success

    player = await service.players.get_by_discord_id(777)
    assert player.rating == 1000
    assert player.display_name == "novato"


async def test_processing_flag_blocks_join(service, make_players):
    [player] = await make_players([1000])
    service.processing.add_all([player.id])

    result = await service.join_queue(player.discord_id, player.display_name)

    assert isinstance(result.error, AlreadyInMatch)
    assert await service.queue.size() == 0


async def test_player_in_open_match_cannot_join(service, fill_queue):
    players = await fill_queue([1000, 1000, 1000, 1000])
    created = await service.try_create_match()
    assert created.success

    result = await service.join_queue(players[0].discord_id, players[0].display_name)

    assert isinstance(result.error, AlreadyInMatch)
    assert str(created.match_id) in result.message


async def test_queue_full(session_factory, make_players, notifier):
    from src.services.matchmaking import MatchmakingService

    config = MatchmakingConfig(team_size=2, min_queue_size=4, max_queue_size=4, auto_match_creation=False)
    service = MatchmakingService(session_factory, config, notifier)
    await make_players([1000] * 5)

    for discord_id in range(1, 5):
        assert (await service.join_queue(discord_id, f"jogador{discord_id}")).success
    result = await service.join_queue(5, "jogador5")

    assert isinstance(result.error, QueueFull)
    assert await service.queue.size() == 4


async def test_ordering_priority_then_join_time(service, make_players):
    players = await make_players([1000, 1000, 1000])
    await service.queue.enqueue(players[0].id)
    await service.queue.enqueue(players[1].id)
    await service.queue.enqueue(players[2].id, priority=2)

    snapshot = await service.queue_snapshot()

    assert [e['player_id'] for e in snapshot] == [players[2].id, players[0].id, players[1].id]
    assert [e['position'] for e in snapshot] == [1, 2, 3]


async def test_leave_queue(service, fill_queue):
    [player] = await fill_queue([1000])

    left = await service.leave_queue(player.discord_id)
    again = await service.leave_queue(player.discord_id)

    assert left.success
    assert not again.success
    assert await service.queue.size() == 0


async def test_select_for_match_takes_top_n_and_flags_them(service, make_players):
    players = await make_players([1000, 1100, 1200])
    for p in players:
        await service.queue.enqueue(p.id)

    reserved = await service.queue.select_for_match(2)

    assert [e['player_id'] for e in reserved] == [players[0].id, players[1].id]
    assert all(e['player_id'] in service.processing for e in reserved)
    assert await service.queue.size() == 1


async def test_concurrent_reservations_never_overlap(session_factory, config, make_players):
    players = await make_players([1000] * 8)
    # Duas instâncias = dois processos: locks e flags separados, só o banco em comum
    store_a = QueueService(session_factory, config, ProcessingSet())
    store_b = QueueService(session_factory, config, ProcessingSet())
    for p in players:
        await store_a.enqueue(p.id)

    results = await asyncio.gather(
        store_a.select_for_match(4), store_b.select_for_match(4),
        store_a.select_for_match(4), store_b.select_for_match(4),
    )

    taken = [e['player_id'] for r in results for e in r]
    assert len(taken) == len(set(taken)) == 8
    assert await store_a.size() == 0


async def test_timeout_sweep_removes_only_old_entries(service, make_players):
    old, fresh = await make_players([1000, 1000])
    await service.queue.restore([{
        'player_id': old.id,
        'joined_at': datetime.utcnow() - timedelta(hours=2),
        'rating_at_join': 1000,
    }])
    await service.queue.enqueue(fresh.id)

    expired = await service.queue.timeout_sweep(max_age_seconds=3600)

    assert [e['player_id'] for e in expired] == [old.id]
    assert [e['player_id'] for e in await service.queue_snapshot()] == [fresh.id]


async def test_clear_queue(service, fill_queue):
    await fill_queue([1000, 1000, 1000])

    result = await service.clear_queue()

    assert result.success
    assert result.data['removed'] == 3
    assert await service.queue.size() == 0


async def test_admin_add_goes_to_front(service, fill_queue):
    await fill_queue([1000, 1000])

    result = await service.admin_add_to_queue(50, "vip", priority=1)

    assert result.success
    snapshot = await service.queue_snapshot()
    assert snapshot[0]['name'] == "vip"


async def test_inactive_player_cannot_join(service, make_players):
    [player] = await make_players([1000])
    await service.set_active(player.discord_id, False)

    result = await service.join_queue(player.discord_id, player.display_name)

    assert not result.success
    assert await service.queue.size() == 0
