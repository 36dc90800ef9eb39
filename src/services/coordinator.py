import asyncio
import logging
from datetime import datetime, timedelta
from sqlalchemy.exc import SQLAlchemyError

from src.database.config import session_scope
from src.database.models import MatchStatus, OPEN_MATCH_STATUSES
from src.database.repositories import PlayerRepository, MatchRepository
from src.services.errors import (
    OperationResult, MatchmakingError, InsufficientPlayers, PlayerNotFound,
    InvalidMatchState, MatchNotFound, PersistenceError
)
from src.services.matchmaker import MatchMaker
from src.services.notifier import Notifier, safe_announce, MATCH_CREATED, QUEUE_TIMEOUT
from src.services.players import player_dict
from src.services.queue import QueueService
from src.services.settings import MatchmakingConfig
from src.services.state import GroupTracker
from src.utils.compensation import CompensationStack

logger = logging.getLogger("partidas")


def team_view(team: dict) -> dict:
    """Time vindo do repositório (com objetos Player) -> dicionário simples."""
    return {
        'id': team['id'],
        'name': team['name'],
        'avg_rating': team['avg_rating'],
        'players': [player_dict(p) for p in team['players']],
    }


class MatchCoordinator:
    """
    Fila -> reserva -> balanceamento -> persistência -> anúncio.
    Só uma criação de partida roda por vez neste processo (single-flight);
    entre processos quem garante é a reserva travada no banco.
    """

    def __init__(self, session_factory, config: MatchmakingConfig, queue: QueueService,
                 notifier: Notifier = None, groups: GroupTracker = None):
        self.session_factory = session_factory
        self.config = config
        self.queue = queue
        self.processing = queue.processing
        self.notifier = notifier or Notifier()
        self.groups = groups if groups is not None else GroupTracker(config.group_loss_cap)
        self._create_lock = asyncio.Lock()

    async def try_create_match(self, force: bool = False) -> OperationResult:
        """
        Tenta formar uma partida com o topo da fila.
        `force=True` ignora o mínimo configurado da fila (ainda exige 2 times completos).
        """
        if self._create_lock.locked():
            logger.debug("Criação de partida já em andamento; aguardando a vez.")

        async with self._create_lock:
            try:
                return await self._create_match(force)
            except MatchmakingError as e:
                return OperationResult.fail(e)
            except SQLAlchemyError as e:
                logger.exception(f"Erro de banco ao criar partida: {e}")
                return OperationResult.fail(PersistenceError())

    def _preferred_group(self, queued_ids: set) -> list:
        """Grupo retido mais antigo que está inteiro na fila (e cabe em um time)."""
        for group in self.groups.retained_groups():
            if len(group) == self.config.team_size and queued_ids.issuperset(group):
                return group
        return []

    async def _create_match(self, force: bool) -> OperationResult:
        n = self.config.players_per_match
        needed = n if force else self.config.match_threshold

        listing = await self.queue.list()
        if len(listing) < needed:
            return OperationResult.fail(
                InsufficientPlayers(f"Jogadores insuficientes na fila ({len(listing)}/{needed})."),
                queue_size=len(listing)
            )

        preferred = self._preferred_group({e['player_id'] for e in listing})

        reserved = await self.queue.select_for_match(n, preferred)
        if not reserved:
            return OperationResult.fail(InsufficientPlayers("Os jogadores da fila já foram reservados por outra partida."))

        ids = [e['player_id'] for e in reserved]
        compensation = CompensationStack()

        async def release_flags():
            self.processing.discard_all(ids)

        async def requeue():
            await self.queue.restore(reserved, priority=0)

        compensation.push("liberar jogadores em processamento", release_flags)
        compensation.push(f"devolver {len(reserved)} jogadores à fila", requeue)

        try:
            if len(reserved) < n:
                raise InsufficientPlayers(f"Só foi possível reservar {len(reserved)}/{n} jogadores.")

            match = await self._persist_match(reserved, preferred, compensation)
        except MatchmakingError as e:
            logger.warning(f"Criação de partida abortada: {e}. Desfazendo {len(compensation)} passos.")
            await compensation.rollback()
            return OperationResult.fail(e)
        except SQLAlchemyError as e:
            logger.exception(f"Erro de banco ao criar partida com {ids}: {e}")
            await compensation.rollback()
            return OperationResult.fail(PersistenceError())
        except asyncio.CancelledError:
            # Loop cancelado (cog descarregado) no meio da criação
            logger.warning(f"Criação de partida cancelada. Devolvendo {ids} à fila.")
            await compensation.rollback()
            raise
        except Exception as e:
            logger.exception(f"Erro inesperado ao criar partida com {ids}: {e}")
            await compensation.rollback()
            return OperationResult.fail(PersistenceError())

        compensation.discard()
        # A partir daqui os Times gravados respondem por "está em partida"
        self.processing.discard_all(ids)

        await safe_announce(self.notifier, MATCH_CREATED, match)

        team_a, team_b = match['teams']
        return OperationResult.ok(
            f"Partida #{match['match_id']} criada: **{team_a['name']}** ({team_a['avg_rating']}) x "
            f"**{team_b['name']}** ({team_b['avg_rating']}).",
            match_id=match['match_id'],
            teams=match['teams'],
            channel_id=match['channel_id']
        )

    async def _persist_match(self, reserved: list, preferred: list, compensation: CompensationStack) -> dict:
        ids = [e['player_id'] for e in reserved]

        async with session_scope(self.session_factory) as session:
            rows = await PlayerRepository.get_many(session, ids)
        missing = [pid for pid in ids if pid not in rows]
        if missing:
            raise PlayerNotFound(f"Jogadores reservados não encontrados: {missing}")
        players = [player_dict(rows[pid]) for pid in ids]

        group = set(preferred) if preferred and set(preferred).issubset(ids) else None
        if group:
            logger.info(f"Mantendo grupo {sorted(group)} junto no mesmo time.")
            team_a, team_b = MatchMaker.balance_with_group(
                [p for p in players if p['id'] in group],
                [p for p in players if p['id'] not in group],
                self.config.team_size, self.config.default_rating
            )
        else:
            team_a, team_b = MatchMaker.balance_teams(players, self.config.team_size, self.config.default_rating)

        name_a, name_b = self.config.team_names
        avg_a, avg_b = MatchMaker.team_average(team_a), MatchMaker.team_average(team_b)

        async with session_scope(self.session_factory) as session:
            match_id, (team_a_id, team_b_id) = await MatchRepository.create_with_teams(session, [
                (name_a, avg_a, [p['id'] for p in team_a]),
                (name_b, avg_b, [p['id'] for p in team_b]),
            ])

        async def cancel_partial():
            async with session_scope(self.session_factory) as session:
                await MatchRepository.transition(
                    session, match_id, OPEN_MATCH_STATUSES, MatchStatus.CANCELLED, finished_at=datetime.utcnow()
                )

        compensation.push(f"cancelar partida #{match_id}", cancel_partial)

        match = {
            'match_id': match_id,
            'status': MatchStatus.WAITING.value,
            'teams': [
                {'id': team_a_id, 'name': name_a, 'avg_rating': avg_a, 'players': team_a},
                {'id': team_b_id, 'name': name_b, 'avg_rating': avg_b, 'players': team_b},
            ],
            'channel_id': None,
        }

        channel_id = await self._open_channel(match)
        if channel_id:
            async def close_channel():
                await self.notifier.close_match_channel(match_id, channel_id)
            compensation.push(f"apagar canal da partida #{match_id}", close_channel)

        values = {'channel_id': channel_id} if channel_id else {}
        async with session_scope(self.session_factory) as session:
            activated = await MatchRepository.transition(
                session, match_id, [MatchStatus.WAITING], MatchStatus.ACTIVE, **values
            )
        if not activated:
            raise InvalidMatchState(f"A partida #{match_id} saiu de 'waiting' antes de ser ativada.")

        match['status'] = MatchStatus.ACTIVE.value
        match['channel_id'] = channel_id
        logger.info(
            f"Partida #{match_id} criada: {name_a} {[p['id'] for p in team_a]} ({avg_a}) x "
            f"{name_b} {[p['id'] for p in team_b]} ({avg_b})"
        )
        return match

    async def _open_channel(self, match: dict):
        """Canal da partida é opcional: falhou, a partida segue sem ele."""
        try:
            return await self.notifier.open_match_channel(match)
        except Exception as e:
            logger.error(f"Falha ao criar canal da partida #{match['match_id']}: {e}")
            return None

    async def get_match(self, match_id: int) -> dict:
        async with session_scope(self.session_factory) as session:
            match = await MatchRepository.get(session, match_id)
            if not match:
                raise MatchNotFound(f"Partida #{match_id} não encontrada.")
            teams = await MatchRepository.get_teams(session, match_id)

        return {
            'match_id': match.id,
            'status': match.status.value,
            'created_at': match.created_at,
            'finished_at': match.finished_at,
            'winning_team_id': match.winning_team_id,
            'channel_id': match.channel_id,
            'teams': [team_view(t) for t in teams],
        }

    async def active_matches(self) -> list:
        async with session_scope(self.session_factory) as session:
            matches = await MatchRepository.list_by_status(session, OPEN_MATCH_STATUSES)
            result = []
            for match in matches:
                teams = await MatchRepository.get_teams(session, match.id)
                result.append({
                    'match_id': match.id,
                    'status': match.status.value,
                    'created_at': match.created_at,
                    'channel_id': match.channel_id,
                    'teams': [team_view(t) for t in teams],
                })
        return result

    async def archive_finished_matches(self, retention_days: int = None) -> OperationResult:
        if retention_days is None:
            retention_days = self.config.match_retention_days
        cutoff = datetime.utcnow() - timedelta(days=retention_days)

        async with session_scope(self.session_factory) as session:
            archived = await MatchRepository.archive_finished_before(session, cutoff)

        logger.info(f"{archived} partidas finalizadas antes de {cutoff:%d/%m/%Y} foram arquivadas.")
        return OperationResult.ok(f"{archived} partidas arquivadas.", archived=archived)

    async def run_periodic_check(self) -> list:
        """
        Ciclo do loop de fundo: varre timeouts da fila e, se a criação automática
        estiver ligada, monta quantas partidas a fila permitir.
        """
        expired = await self.queue.timeout_sweep()
        if expired:
            await safe_announce(self.notifier, QUEUE_TIMEOUT, {
                'player_ids': [e['player_id'] for e in expired],
                'timeout_minutes': self.config.queue_timeout_minutes,
            })

        created = []
        if not self.config.auto_match_creation:
            return created

        while True:
            result = await self.try_create_match()
            if not result.success:
                break
            created.append(result.match_id)
        return created
