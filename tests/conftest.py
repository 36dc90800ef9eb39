"""Pytest configuration and fixtures."""

import pytest
from typing import AsyncGenerator

from src.database.config import build_engine, build_session_factory, init_db
from src.services.matchmaking import MatchmakingService
from src.services.notifier import Notifier
from src.services.settings import MatchmakingConfig


class RecordingNotifier(Notifier):
    """Guarda os eventos em memória; canal da partida opcional."""

    def __init__(self, channel_id=None, fail_announce=False, fail_channel=False):
        self.events = []
        self.opened = []
        self.closed = []
        self.channel_id = channel_id
        self.fail_announce = fail_announce
        self.fail_channel = fail_channel

    async def announce(self, event, payload):
        if self.fail_announce:
            raise RuntimeError("discord fora do ar")
        self.events.append((event, payload))

    async def open_match_channel(self, match):
        if self.fail_channel:
            raise RuntimeError("sem permissão para criar canal")
        self.opened.append(match['match_id'])
        return self.channel_id

    async def close_match_channel(self, match_id, channel_id):
        self.closed.append((match_id, channel_id))

    def of(self, event):
        return [payload for name, payload in self.events if name == event]


@pytest.fixture
async def engine(tmp_path) -> AsyncGenerator:
    """Banco SQLite em arquivo (cada sessão com conexão própria, como em produção)."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.sqlite'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def config():
    # 2v2 para os cenários ficarem pequenos
    return MatchmakingConfig(
        team_size=2,
        min_queue_size=4,
        max_queue_size=20,
        auto_match_creation=False,
        vote_min_votes=1,
        vote_majority_percent=50,
    )


@pytest.fixture
def notifier():
    return RecordingNotifier(channel_id=555)


@pytest.fixture
def service(session_factory, config, notifier):
    return MatchmakingService(session_factory, config, notifier)


@pytest.fixture
def make_players(service):
    """Cria jogadores (discord_id 1..n) com os ratings pedidos e devolve os objetos Player."""
    async def _make(ratings, start_discord_id=1):
        players = []
        for i, rating in enumerate(ratings):
            discord_id = start_discord_id + i
            player = await service.players.get_or_create(discord_id, f"jogador{discord_id}")
            if rating is not None and rating != player.rating:
                await service.players.set_rating(player.id, rating)
            players.append(await service.players.get(player.id))
        return players
    return _make


@pytest.fixture
def fill_queue(service, make_players):
    """Cria os jogadores e coloca todos na fila, na ordem dada."""
    async def _fill(ratings, start_discord_id=1):
        players = await make_players(ratings, start_discord_id)
        for p in players:
            result = await service.join_queue(p.discord_id, p.display_name)
            assert result.success, result.message
        return players
    return _fill


@pytest.fixture
def recording_notifier():
    """A classe, para testes que precisam de um notifier com falhas configuradas."""
    return RecordingNotifier
